"""
Exception hierarchy for discovery, permission and restart failures.
"""

from typing import Optional


class InjectorError(Exception):
    """Base class for all agent injector errors."""


class ConfigError(InjectorError):
    """Configuration file missing, unparsable or invalid."""


class DiscoveryError(InjectorError):
    """The process table itself could not be enumerated."""


class OperationCancelled(InjectorError):
    """A scan or batch was cancelled between units of work."""


class ProcessUnreadableError(InjectorError):
    """A per-process read failed, usually because the process exited."""

    def __init__(self, pid: int, what: str, cause: Optional[BaseException] = None):
        self.pid = pid
        self.what = what
        self.cause = cause
        detail = f": {cause}" if cause else ''
        super().__init__(f"failed to read {what} of process {pid}{detail}")


class InsufficientPermissionsError(InjectorError):
    """Caller may not signal or replace the target process."""

    def __init__(self, pid: int, owner: str):
        self.pid = pid
        self.owner = owner
        super().__init__(
            f"insufficient permissions for process {pid} (owned by {owner}, requires root)"
        )


class RestartError(InjectorError):
    """Base class for failures inside a restart."""

    def __init__(self, message: str, attempts: int = 0):
        self.attempts = attempts
        super().__init__(message)


class StopError(RestartError):
    """The old process could not be stopped."""


class StopTimeoutError(StopError):
    """The old process outlived the grace period and force was not allowed."""


class StartFailureError(RestartError):
    """The replacement process could not be spawned."""


class VerifyFailureError(RestartError):
    """The replacement process died before verification."""
