"""
Output formatters for process listings and injection results.
"""

import json
from abc import ABC, abstractmethod
from io import StringIO
from typing import Any, Dict, Sequence

from ..models.process_info import AgentDescriptor, ClassifiedProcess, InjectionResult


def format_bytes(size: int) -> str:
    """Format bytes as human-readable string."""
    for unit in ['B', 'KB', 'MB', 'GB']:
        if size < 1024 or unit == 'GB':
            return f"{size} {unit}" if unit == 'B' else f"{size:.2f} {unit}"
        size = size / 1024
    return f"{size:.2f} GB"


def truncate(text: str, max_len: int) -> str:
    if len(text) <= max_len:
        return text
    return text[:max_len - 3] + '...'


def _agent_text(agent: AgentDescriptor) -> str:
    return agent.full_param or agent.to_param()


class OutputFormatter(ABC):
    """Base class for output formatters."""

    @abstractmethod
    def format_processes(self, processes: Sequence[ClassifiedProcess]) -> str:
        """Format a process listing."""
        pass

    @abstractmethod
    def format_process_detail(self, process: ClassifiedProcess) -> str:
        """Format everything known about one process."""
        pass

    @abstractmethod
    def format_targets(self, processes: Sequence[ClassifiedProcess],
                       agents: Sequence[AgentDescriptor]) -> str:
        """Format the processes an injection is about to touch."""
        pass

    @abstractmethod
    def format_results(self, results: Sequence[InjectionResult]) -> str:
        """Format injection results."""
        pass


class TextFormatter(OutputFormatter):
    """Plain text formatter."""

    def format_processes(self, processes: Sequence[ClassifiedProcess]) -> str:
        if not processes:
            return "No Java processes found\n"

        output = StringIO()
        output.write(f"{'PID':<8} {'User':<12} {'Main Class/JAR':<32} {'Agents'}\n")
        output.write("-" * 80 + "\n")
        for proc in processes:
            agents = ', '.join(agent.path for agent in proc.agents) if proc.agents else 'none'
            output.write(f"{proc.pid:<8} {proc.user:<12} {truncate(proc.entry_point, 30):<32} {agents}\n")
        output.write(f"\nTotal: {len(processes)} Java process(es)\n")
        return output.getvalue()

    def format_process_detail(self, process: ClassifiedProcess) -> str:
        snap = process.snapshot
        output = StringIO()
        output.write(f"Java Process {snap.pid}\n")
        output.write("=" * 50 + "\n")
        output.write(f"Name: {snap.name}\n")
        output.write(f"User: {snap.user} (uid {snap.uid})\n")
        output.write(f"State: {snap.state or 'unknown'}\n")
        output.write(f"Executable: {snap.exe or 'unknown'}\n")
        output.write(f"Working Directory: {snap.cwd or 'unknown'}\n")
        started = snap.start_time.strftime('%Y-%m-%d %H:%M:%S') if snap.start_time else 'unknown'
        output.write(f"Started: {started}\n")
        output.write(f"Main Class/JAR: {process.entry_point}\n")
        output.write(f"Memory: RSS {format_bytes(snap.memory_rss)}, VMS {format_bytes(snap.memory_vms)}\n")
        output.write(f"CPU: {snap.cpu_percent:.1f}%  Threads: {snap.threads}  Open FDs: {snap.open_fds}\n")
        output.write(f"Command: {' '.join(snap.cmdline)}\n")

        output.write(f"\nAgents ({len(process.agents)}):\n")
        for agent in process.agents:
            output.write(f"  {_agent_text(agent)}\n")
        if not process.agents:
            output.write("  none\n")
        return output.getvalue()

    def format_targets(self, processes: Sequence[ClassifiedProcess],
                       agents: Sequence[AgentDescriptor]) -> str:
        will_add = ', '.join(agent.path for agent in agents)
        output = StringIO()
        output.write(f"{'PID':<8} {'User':<12} {'Main Class/JAR':<27} {'Current':<8} {'Will Add'}\n")
        for proc in processes:
            current = str(len(proc.agents)) if proc.agents else 'none'
            output.write(f"{proc.pid:<8} {proc.user:<12} {truncate(proc.entry_point, 25):<27} "
                         f"{current:<8} {will_add}\n")
        return output.getvalue()

    def format_results(self, results: Sequence[InjectionResult]) -> str:
        output = StringIO()
        output.write("Results:\n")
        output.write(f"{'PID':<8} {'Status':<10} {'New PID':<8} {'Message'}\n")
        for result in results:
            status = 'Success' if result.success else 'Failed'
            new_pid = str(result.new_pid) if result.new_pid > 0 else '-'
            output.write(f"{result.pid:<8} {status:<10} {new_pid:<8} {result.message}\n")

        succeeded = sum(1 for result in results if result.success)
        output.write(f"\nInjected: {succeeded}/{len(results)}\n")
        return output.getvalue()


class JSONFormatter(OutputFormatter):
    """JSON formatter."""

    def format_processes(self, processes: Sequence[ClassifiedProcess]) -> str:
        return json.dumps([self._process_to_dict(proc) for proc in processes], indent=2)

    def format_process_detail(self, process: ClassifiedProcess) -> str:
        return json.dumps(self._process_to_dict(process, detail=True), indent=2, default=str)

    def format_targets(self, processes: Sequence[ClassifiedProcess],
                       agents: Sequence[AgentDescriptor]) -> str:
        return json.dumps({
            'targets': [self._process_to_dict(proc) for proc in processes],
            'agents': [agent.to_param() for agent in agents],
        }, indent=2)

    def format_results(self, results: Sequence[InjectionResult]) -> str:
        return json.dumps([result.to_dict() for result in results], indent=2)

    def _process_to_dict(self, process: ClassifiedProcess, detail: bool = False) -> Dict[str, Any]:
        data = {
            'pid': process.pid,
            'name': process.name,
            'user': process.user,
            'main_class': process.main_class,
            'jar_file': process.jar_file,
            'agents': [
                {'path': agent.path, 'options': agent.options, 'full_param': agent.full_param}
                for agent in process.agents
            ],
        }
        if detail:
            snap = process.snapshot
            data.update({
                'uid': snap.uid,
                'cmdline': list(snap.cmdline),
                'cwd': snap.cwd,
                'exec_path': snap.exe,
                'start_time': snap.start_time.isoformat() if snap.start_time else None,
                'memory_rss': snap.memory_rss,
                'memory_vms': snap.memory_vms,
                'cpu_percent': snap.cpu_percent,
                'threads': snap.threads,
                'open_fds': snap.open_fds,
            })
        return data
