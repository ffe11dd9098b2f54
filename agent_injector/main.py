"""
Main CLI interface for the agent injector.
"""

import argparse
import logging
import os
import sys
from typing import List, Optional, Sequence

from .config.log_config import configure_logging
from .config.settings import Config, parse_duration
from .core.daemon import InjectionDaemon
from .core.detector import Detector
from .core.exceptions import ConfigError, InjectorError
from .core.injector import Injector, summarize
from .core.inspector import ProcessInspector
from .core.restart import ProcessManager
from .models.process_info import AgentDescriptor, ClassifiedProcess, ProcessFilter
from .output.formatters import JSONFormatter, TextFormatter
from .output.handlers import create_output_handler
from .ui.interactive import InjectMenu


def create_formatter(args):
    """JSON or text formatter based on arguments."""
    return JSONFormatter() if getattr(args, 'format', 'text') == 'json' else TextFormatter()


def build_injector(config: Config, logger: logging.Logger) -> Injector:
    """Wire reader, detector, process manager and injector from configuration."""
    reader = ProcessInspector(logger=logger.getChild('inspector'))
    detector = Detector(reader, config.exclusion_rules(), logger=logger.getChild('detector'))
    manager = ProcessManager(reader, config.restart_policy(), logger=logger.getChild('restart'))
    return Injector(
        detector,
        manager,
        check_permissions=bool(config.get('security.check_permissions', True)),
        logger=logger.getChild('injector'),
    )


def resolve_agents(args, config: Config) -> List[AgentDescriptor]:
    """Agent from the command line, else the enabled agents from configuration."""
    if getattr(args, 'agent', None):
        return [AgentDescriptor(path=args.agent, options=getattr(args, 'options', None) or '')]
    agents = config.enabled_agents()
    if not agents:
        raise ConfigError("no enabled agents in configuration")
    return agents


def warn_if_unprivileged(logger: logging.Logger):
    """Non-root users can only restart their own processes."""
    if os.geteuid() != 0:
        logger.warning("Not running as root: only processes owned by uid %d can be injected", os.geteuid())


def confirm(prompt: str) -> bool:
    response = input(prompt)
    return response.strip().lower() in ['y', 'yes']


def run_list(args, config: Config, injector: Injector) -> int:
    process_filter = ProcessFilter(
        pids=[args.pid] if args.pid else [],
        users=args.user or [],
        patterns=args.pattern or [],
        has_agent=False if args.no_agent else None,
    )
    processes = injector.detector.discover(process_filter)
    if args.agent:
        processes = [proc for proc in processes
                     if any(agent.same_agent(AgentDescriptor(path=args.agent)) for agent in proc.agents)]

    formatter = create_formatter(args)
    handler = create_output_handler(args.output_file)
    if args.pid and len(processes) == 1:
        handler.output(formatter.format_process_detail(processes[0]))
    else:
        handler.output(formatter.format_processes(processes))
    return 0


def select_targets(args, injector: Injector, agents: Sequence[AgentDescriptor],
                   logger: logging.Logger) -> List[ClassifiedProcess]:
    if args.all:
        processes = injector.detector.discover()
        return [proc for proc in processes if injector.needs_injection(proc, agents)]

    targets = []
    for pid in args.pid:
        process = injector.detector.find(pid)
        if process is None:
            logger.warning("Process %d not found or not a Java process", pid)
            continue
        targets.append(process)
    return targets


def run_inject(args, config: Config, injector: Injector, logger: logging.Logger) -> int:
    if not args.pid and not args.all:
        print("Error: specify target processes with --pid or --all", file=sys.stderr)
        return 2
    if args.pid and args.all:
        print("Error: --pid and --all cannot be used together", file=sys.stderr)
        return 2

    agents = resolve_agents(args, config)
    targets = select_targets(args, injector, agents, logger)
    if not targets:
        print("No target processes found")
        return 0

    formatter = create_formatter(args)
    print("\nTarget processes:")
    print(formatter.format_targets(targets, agents))

    if args.dry_run:
        print("[DRY RUN] Would inject the following:")
        for proc in targets:
            print(f"  PID {proc.pid}: {proc.entry_point}")
        return 0

    require_confirmation = bool(config.get('security.require_confirmation', True))
    if require_confirmation and not args.force:
        if not confirm("\nProceed with injection? (y/N): "):
            print("Injection cancelled")
            return 0

    warn_if_unprivileged(logger)
    results = injector.batch_inject(targets, agents)
    print(formatter.format_results(results))

    total, succeeded, failed = summarize(results)
    logger.info("Injection completed: %d total, %d succeeded, %d failed", total, succeeded, failed)
    return 0 if failed == 0 else 1


def run_daemon(args, config: Config, injector: Injector, logger: logging.Logger) -> int:
    agents = resolve_agents(args, config)
    interval = parse_duration(args.interval) if args.interval else config.daemon_interval()
    daemon = InjectionDaemon(
        injector,
        agents,
        interval=interval,
        process_filter=config.default_filter(),
        pid_file=args.pid_file or config.get('daemon.pid_file', ''),
        logger=logger.getChild('daemon'),
    )
    daemon.install_signal_handlers()
    warn_if_unprivileged(logger)
    daemon.run(once=args.once)
    return 0


def run_interactive(args, config: Config, injector: Injector) -> int:
    menu = InjectMenu(
        injector,
        resolve_agents(args, config),
        require_confirmation=bool(config.get('security.require_confirmation', True)),
    )
    results = menu.run()
    _, _, failed = summarize(results)
    return 0 if failed == 0 else 1


def create_argument_parser():
    """Create and configure argument parser."""
    parser = argparse.ArgumentParser(
        prog='agent-injector',
        description='Discover Java processes and inject javaagents by restarting them',
    )
    parser.add_argument('-c', '--config', help='Configuration file path')
    parser.add_argument('-d', '--debug', action='store_true', help='Enable debug logging')
    subparsers = parser.add_subparsers(dest='command')

    list_parser = subparsers.add_parser('list', help='List Java processes and their agents')
    list_parser.add_argument('-p', '--pid', type=int, help='Show details for one process')
    list_parser.add_argument('-u', '--user', action='append', help='Only processes owned by user')
    list_parser.add_argument('--pattern', action='append', help='Regex against name, jar or main class')
    list_parser.add_argument('-a', '--agent', help='Only processes with this agent attached')
    list_parser.add_argument('--no-agent', action='store_true', help='Only processes without agents')
    list_parser.add_argument('-f', '--format', choices=['text', 'json'], default='text', help='Output format')
    list_parser.add_argument('-o', '--output-file', default='', help='Write output to a file')

    inject_parser = subparsers.add_parser('inject', help='Inject agents into Java processes')
    inject_parser.add_argument('-p', '--pid', type=int, action='append', default=[],
                               help='Target process id (repeatable)')
    inject_parser.add_argument('-a', '--all', action='store_true', help='All processes that need injection')
    inject_parser.add_argument('--agent', help='Agent jar path (default: enabled agents from config)')
    inject_parser.add_argument('--options', default='', help='Agent options string')
    inject_parser.add_argument('-n', '--dry-run', action='store_true', help='Show targets without injecting')
    inject_parser.add_argument('-f', '--force', action='store_true', help='Skip confirmation')
    inject_parser.add_argument('--format', choices=['text', 'json'], default='text', help='Output format')

    daemon_parser = subparsers.add_parser('daemon', help='Scan and inject periodically')
    daemon_parser.add_argument('-i', '--interval', help='Scan interval, e.g. 30s or 5m')
    daemon_parser.add_argument('--once', action='store_true', help='Run a single scan and exit')
    daemon_parser.add_argument('--pid-file', default='', help='Write daemon pid to this file')
    daemon_parser.add_argument('--agent', help='Agent jar path (default: enabled agents from config)')
    daemon_parser.add_argument('--options', default='', help='Agent options string')

    interactive_parser = subparsers.add_parser('interactive', help='Interactive menu')
    interactive_parser.add_argument('--agent', help='Agent jar path (default: enabled agents from config)')
    interactive_parser.add_argument('--options', default='', help='Agent options string')

    return parser


def main(argv: Optional[Sequence[str]] = None):
    """Main entry point."""
    parser = create_argument_parser()
    args = parser.parse_args(argv)

    try:
        config = Config(args.config)
        config.validate(check_files=False)
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    level = 'debug' if args.debug or config.debug else config.get('log.level', 'info')
    try:
        logger = configure_logging(level, config.get('log.format', 'text'), config.get('log.output', 'stderr'))
    except (ValueError, OSError) as e:
        print(f"Error: failed to init logger: {e}", file=sys.stderr)
        sys.exit(1)
    logger.debug("Configuration loaded from %s", config.source or 'defaults')

    injector = build_injector(config, logger)
    command = args.command or 'interactive'
    if args.command is None:
        args.agent = None

    try:
        if command == 'list':
            code = run_list(args, config, injector)
        elif command == 'inject':
            code = run_inject(args, config, injector, logger)
        elif command == 'daemon':
            code = run_daemon(args, config, injector, logger)
        else:
            code = run_interactive(args, config, injector)
    except (ConfigError, InjectorError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    except KeyboardInterrupt:
        print("\nInterrupted", file=sys.stderr)
        sys.exit(1)

    sys.exit(code)


if __name__ == '__main__':
    main()
