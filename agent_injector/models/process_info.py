"""
Data models for process snapshots, agents and injection results.
"""

import os
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


@dataclass(frozen=True)
class ProcessSnapshot:
    """Point-in-time read of one OS process."""
    pid: int
    name: str
    cmdline: Tuple[str, ...]
    environ: Dict[str, str]
    user: str
    uid: int
    cwd: str = ''
    exe: str = ''
    start_time: Optional[datetime] = None
    memory_rss: int = 0  # bytes
    memory_vms: int = 0  # bytes
    cpu_percent: float = 0.0
    threads: int = 0
    open_fds: int = 0
    state: str = ''
    ppid: int = 0


@dataclass(frozen=True)
class AgentDescriptor:
    """A javaagent artifact, optionally with its options string."""
    path: str
    options: str = ''
    full_param: str = ''

    @property
    def normalized_path(self) -> str:
        return os.path.normpath(self.path) if self.path else ''

    def same_agent(self, other: 'AgentDescriptor') -> bool:
        """Agents are the same artifact when their cleaned paths are equal."""
        return self.normalized_path == other.normalized_path

    def to_param(self) -> str:
        """Render as a launch flag."""
        if self.options:
            return f"-javaagent:{self.path}={self.options}"
        return f"-javaagent:{self.path}"


@dataclass(frozen=True)
class ClassifiedProcess:
    """A snapshot plus the Java verdict, detected agents and entry point."""
    snapshot: ProcessSnapshot
    is_java: bool
    agents: Tuple[AgentDescriptor, ...] = ()
    main_class: str = ''
    jar_file: str = ''

    @property
    def pid(self) -> int:
        return self.snapshot.pid

    @property
    def name(self) -> str:
        return self.snapshot.name

    @property
    def user(self) -> str:
        return self.snapshot.user

    @property
    def uid(self) -> int:
        return self.snapshot.uid

    @property
    def cmdline(self) -> Tuple[str, ...]:
        return self.snapshot.cmdline

    @property
    def entry_point(self) -> str:
        """Jar file if known, else main class, else 'unknown'."""
        return self.jar_file or self.main_class or 'unknown'


@dataclass
class ProcessFilter:
    """Conjunctive discovery filter. Empty predicates do not constrain."""
    pids: List[int] = field(default_factory=list)
    names: List[str] = field(default_factory=list)
    users: List[str] = field(default_factory=list)
    patterns: List[str] = field(default_factory=list)
    has_agent: Optional[bool] = None
    min_uptime: Optional[float] = None  # seconds


@dataclass
class ExclusionRule:
    """Configuration-owned veto rule."""
    name: str = ''
    pids: List[int] = field(default_factory=list)
    users: List[str] = field(default_factory=list)
    patterns: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class RestartPolicy:
    """Timing and retry knobs for a single restart."""
    grace_period: float = 10.0
    kill_timeout: float = 30.0
    verify_wait: float = 5.0
    max_start_retries: int = 3
    retry_delay: float = 1.0
    force_stop: bool = True
    proceed_on_stop_failure: bool = True


@dataclass(frozen=True)
class RestartPlan:
    """What to restart, with which command line, under which policy."""
    old_pid: int
    new_cmdline: Tuple[str, ...]
    policy: RestartPolicy = field(default_factory=RestartPolicy)


class RestartState(Enum):
    """Phases of a single restart."""
    IDLE = 'idle'
    STOPPING = 'stopping'
    STARTING = 'starting'
    VERIFYING = 'verifying'
    SUCCEEDED = 'succeeded'
    FAILED = 'failed'


@dataclass
class RestartOutcome:
    """Result of a successful restart."""
    old_pid: int
    new_pid: int
    start_attempts: int
    state: RestartState = RestartState.SUCCEEDED


@dataclass
class InjectionResult:
    """Per-target record of one injection attempt."""
    pid: int
    old_cmdline: List[str]
    old_agents: List[AgentDescriptor]
    new_cmdline: List[str] = field(default_factory=list)
    new_agents: List[AgentDescriptor] = field(default_factory=list)
    new_pid: int = 0
    success: bool = False
    message: str = ''
    error: Optional[BaseException] = None
    start_attempts: int = 0

    def to_dict(self) -> Dict[str, Any]:
        """Plain dictionary suitable for JSON output."""
        return {
            'pid': self.pid,
            'success': self.success,
            'new_pid': self.new_pid,
            'message': self.message,
            'old_cmdline': list(self.old_cmdline),
            'new_cmdline': list(self.new_cmdline),
            'old_agents': [agent.full_param or agent.to_param() for agent in self.old_agents],
            'new_agents': [agent.full_param or agent.to_param() for agent in self.new_agents],
            'start_attempts': self.start_attempts,
            'error': str(self.error) if self.error else None,
        }
