"""
Process inspection through psutil.

Every read is independently fallible: the process table changes under our
feet, and a process listed a moment ago may be gone by the time it is read.
Identity reads (command line, owner, status) raise ProcessUnreadableError;
secondary reads degrade to empty values.
"""

import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

import psutil

from ..models.process_info import ProcessSnapshot
from .exceptions import DiscoveryError, ProcessUnreadableError

# FileNotFoundError escapes psutil when a process directory exists but one of its files is gone
READ_ERRORS = (psutil.Error, OSError)


class ProcessInspector:
    """Reads process attributes, keeping psutil handles between scans."""

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(__name__)
        self._processes: Dict[int, psutil.Process] = {}

    def list_pids(self) -> List[int]:
        """List the ids of all processes currently in the table."""
        try:
            pids = sorted(psutil.pids())
        except OSError as e:
            raise DiscoveryError(f"failed to list processes: {e}") from e

        live = set(pids)
        for pid in list(self._processes):
            if pid not in live:
                del self._processes[pid]
        return pids

    def _process(self, pid: int) -> psutil.Process:
        proc = self._processes.get(pid)
        if proc is not None and proc.is_running():
            return proc
        try:
            proc = psutil.Process(pid)
        except READ_ERRORS as e:
            self._processes.pop(pid, None)
            raise ProcessUnreadableError(pid, 'process', e) from e
        self._processes[pid] = proc
        return proc

    def read_cmdline(self, pid: int) -> List[str]:
        """Argument vector, empty arguments and undecodable bytes preserved."""
        try:
            return self._process(pid).cmdline()
        except READ_ERRORS as e:
            raise ProcessUnreadableError(pid, 'cmdline', e) from e

    def read_environ(self, pid: int) -> Dict[str, str]:
        try:
            return dict(self._process(pid).environ())
        except READ_ERRORS as e:
            raise ProcessUnreadableError(pid, 'environ', e) from e

    def snapshot(self, pid: int) -> ProcessSnapshot:
        """Read everything we know about one process."""
        proc = self._process(pid)
        with proc.oneshot():
            try:
                cmdline = proc.cmdline()
                name = proc.name()
                uid = proc.uids().real
                user = proc.username()
                state = proc.status()
                ppid = proc.ppid()
                threads = proc.num_threads()
            except READ_ERRORS as e:
                raise ProcessUnreadableError(pid, 'status', e) from e

            cwd = self._optional(pid, 'cwd', proc.cwd, '')
            exe = self._optional(pid, 'exe', proc.exe, '')
            environ = self._optional(pid, 'environ', lambda: dict(proc.environ()), {})
            created = self._optional(pid, 'create time', proc.create_time, None)
            memory = self._optional(pid, 'memory', proc.memory_info, None)
            open_fds = self._optional(pid, 'fds', proc.num_fds, 0)
            cpu = self._optional(pid, 'cpu', lambda: proc.cpu_percent(interval=None), 0.0)

        return ProcessSnapshot(
            pid=pid,
            name=name,
            cmdline=tuple(cmdline),
            environ=environ,
            user=user,
            uid=uid,
            cwd=cwd,
            exe=exe,
            start_time=datetime.fromtimestamp(created) if created is not None else None,
            memory_rss=memory.rss if memory else 0,
            memory_vms=memory.vms if memory else 0,
            cpu_percent=cpu,
            threads=threads,
            open_fds=open_fds,
            state=state,
            ppid=ppid,
        )

    def launch_context(self, pid: int) -> Tuple[List[str], str, Dict[str, str]]:
        """Command line, working directory and environment needed to relaunch."""
        cmdline = self.read_cmdline(pid)
        proc = self._process(pid)
        cwd = self._optional(pid, 'cwd', proc.cwd, '')
        environ = self._optional(pid, 'environ', lambda: dict(proc.environ()), {})
        return cmdline, cwd, environ

    def _optional(self, pid: int, what: str, read: Callable[[], Any], default: Any) -> Any:
        try:
            return read()
        except READ_ERRORS as e:
            self.logger.debug("Degraded read of %s for process %d: %s", what, pid, e)
            return default
