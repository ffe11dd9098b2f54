"""Shared fixtures: fake proc trees and process builders."""

import logging
import os
from typing import Dict, Optional, Sequence

import psutil
import pytest

from agent_injector.core.classifier import classify
from agent_injector.models.process_info import (
    ClassifiedProcess, ProcessSnapshot, RestartOutcome, RestartPolicy,
)


class FakeProcTree:
    """Writes /proc-style files for made-up processes under a temp directory."""

    def __init__(self, root, btime: int):
        self.root = root
        self.btime = btime
        (root / 'stat').write_text(f"cpu  0 0 0 0 0 0 0 0 0 0\nbtime {btime}\n")

    def add(self, pid: int, cmdline: Sequence[str] = ('java',), environ: Optional[Dict[str, str]] = None,
            name: str = 'java', uid: int = 0, threads: int = 12, cwd: str = '/srv/app',
            exe: str = '/usr/lib/jvm/bin/java', start_ticks: int = 1000,
            statm: str = '100 200 30 4 0 50 0', fds: int = 3, write_status: bool = True,
            raw_cmdline: Optional[bytes] = None):
        proc_dir = self.root / str(pid)
        proc_dir.mkdir()
        if raw_cmdline is None:
            raw_cmdline = b''.join(os.fsencode(arg) + b'\x00' for arg in cmdline)
        (proc_dir / 'cmdline').write_bytes(raw_cmdline)
        env = environ or {}
        (proc_dir / 'environ').write_bytes(
            b''.join(f"{k}={v}".encode() + b'\x00' for k, v in env.items())
        )
        if write_status:
            (proc_dir / 'status').write_text(
                f"Name:\t{name}\n"
                f"State:\tS (sleeping)\n"
                f"Pid:\t{pid}\n"
                f"PPid:\t1\n"
                f"Uid:\t{uid}\t{uid}\t{uid}\t{uid}\n"
                f"Gid:\t{uid}\t{uid}\t{uid}\t{uid}\n"
                f"Threads:\t{threads}\n"
            )
        # state, ppid, then zeros up to starttime (field 22) and the tail psutil indexes into
        fields = ['S', '1'] + ['0'] * 17 + [str(start_ticks)] + ['0'] * 32
        (proc_dir / 'stat').write_text(f"{pid} ({name}) " + ' '.join(fields) + "\n")
        (proc_dir / 'statm').write_text(statm + "\n")
        fd_dir = proc_dir / 'fd'
        fd_dir.mkdir()
        for fd in range(fds):
            (fd_dir / str(fd)).write_text('')
        if cwd:
            os.symlink(cwd, proc_dir / 'cwd')
        if exe:
            os.symlink(exe, proc_dir / 'exe')
        return proc_dir


@pytest.fixture
def proc_tree(tmp_path, monkeypatch):
    """A fake proc tree that psutil reads instead of /proc."""
    btime = int(psutil.boot_time())
    root = tmp_path / 'proc'
    root.mkdir()
    monkeypatch.setattr(psutil, 'PROCFS_PATH', str(root))
    return FakeProcTree(root, btime)


def build_snapshot(pid: int = 4000001, cmdline: Sequence[str] = ('java', '-jar', 'app.jar'),
                   user: str = 'alice', uid: int = 1000, exe: str = '/usr/bin/java',
                   name: str = 'java', **kwargs) -> ProcessSnapshot:
    return ProcessSnapshot(
        pid=pid,
        name=name,
        cmdline=tuple(cmdline),
        environ=kwargs.pop('environ', {}),
        user=user,
        uid=uid,
        exe=exe,
        **kwargs,
    )


@pytest.fixture
def make_process():
    """Factory for classified processes."""
    def factory(**kwargs) -> ClassifiedProcess:
        return classify(build_snapshot(**kwargs))
    return factory


@pytest.fixture
def test_logger():
    logger = logging.getLogger('tests.agent_injector')
    logger.setLevel(logging.DEBUG)
    return logger


class FakeDetector:
    """Serves classified processes from a dict keyed by pid."""

    def __init__(self, processes=(), exclusions=()):
        self.processes = {p.pid: p for p in processes}
        self.exclusions = list(exclusions)

    def discover(self, process_filter=None, cancel_event=None):
        if process_filter is not None and process_filter.pids:
            pids = process_filter.pids
        else:
            pids = sorted(self.processes)
        return [self.processes[pid] for pid in pids if pid in self.processes]

    def find(self, pid):
        return self.processes.get(pid)


class FakeManager:
    """Restarts by registering the rewritten process with a FakeDetector."""

    def __init__(self, detector, failures=None):
        self.detector = detector
        self.failures = failures or {}
        self.policy = RestartPolicy()
        self.plans = []
        self.next_pid = 5000001
        self.reap_calls = 0

    def reap(self):
        self.reap_calls += 1
        return 0

    def restart(self, plan):
        self.plans.append(plan)
        if plan.old_pid in self.failures:
            raise self.failures[plan.old_pid]
        new_pid = self.next_pid
        self.next_pid += 1
        old = self.detector.processes.pop(plan.old_pid, None)
        user = old.user if old else 'alice'
        uid = old.uid if old else 1000
        self.detector.processes[new_pid] = classify(
            build_snapshot(pid=new_pid, cmdline=plan.new_cmdline, user=user, uid=uid)
        )
        return RestartOutcome(old_pid=plan.old_pid, new_pid=new_pid, start_attempts=1)
