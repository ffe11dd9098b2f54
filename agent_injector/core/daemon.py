"""
Periodic scan-and-inject loop.
"""

import logging
import os
import signal
import threading
from typing import Callable, Optional, Sequence

from ..models.process_info import AgentDescriptor, ProcessFilter
from .exceptions import InjectorError, OperationCancelled
from .injector import Injector, summarize


class InjectionDaemon:
    """Scans for Java processes missing agents and injects them on an interval."""

    def __init__(self, injector: Injector, agents: Sequence[AgentDescriptor],
                 interval: float = 60.0,
                 process_filter: Optional[ProcessFilter] = None,
                 pid_file: str = '',
                 logger: Optional[logging.Logger] = None,
                 echo: Callable[[str], None] = print):
        self.injector = injector
        self.agents = list(agents)
        self.interval = interval
        self.process_filter = process_filter
        self.pid_file = pid_file
        self.logger = logger or logging.getLogger(__name__)
        self.echo = echo
        self.stop_event = threading.Event()
        self.scan_count = 0
        self.inject_count = 0

    def stop(self, *_args) -> None:
        """Request shutdown; usable as a signal handler."""
        self.stop_event.set()

    def install_signal_handlers(self) -> None:
        signal.signal(signal.SIGINT, self.stop)
        signal.signal(signal.SIGTERM, self.stop)

    def scan_once(self) -> int:
        """One discovery + injection pass. Returns the number of successes."""
        self.scan_count += 1
        self.logger.info("Scanning for Java processes (scan #%d)", self.scan_count)
        self.injector.manager.reap()

        try:
            processes = self.injector.detector.discover(self.process_filter, self.stop_event)
        except OperationCancelled:
            return 0
        except InjectorError as e:
            self.logger.error("Failed to discover processes: %s", e)
            return 0

        targets = [proc for proc in processes if self.injector.needs_injection(proc, self.agents)]
        if not targets:
            self.echo("No processes need injection")
            return 0

        self.echo(f"Found {len(targets)} process(es) needing injection")
        results = self.injector.batch_inject(targets, self.agents, self.stop_event)
        for result in results:
            if result.success:
                self.logger.info("Injected agent into %d (new pid %d)", result.pid, result.new_pid)
            else:
                self.logger.error("Failed to inject %d: %s", result.pid, result.error)

        total, succeeded, _ = summarize(results)
        self.inject_count += succeeded
        self.echo(f"Injected: {succeeded}/{total}")
        return succeeded

    def run(self, once: bool = False) -> None:
        """Scan until stopped (or exactly once)."""
        self.logger.info("Daemon started (interval %ss, once=%s)", self.interval, once)
        self._write_pid_file()
        try:
            while not self.stop_event.is_set():
                self.scan_once()
                if once:
                    break
                self.stop_event.wait(timeout=self.interval)
        finally:
            self._remove_pid_file()
        self.logger.info("Daemon stopped after %d scan(s), %d injection(s)",
                         self.scan_count, self.inject_count)

    def _write_pid_file(self) -> None:
        if not self.pid_file:
            return
        with open(self.pid_file, 'w') as f:
            f.write(f"{os.getpid()}\n")

    def _remove_pid_file(self) -> None:
        if not self.pid_file:
            return
        try:
            os.remove(self.pid_file)
        except FileNotFoundError:
            pass
