"""
Stop / start / verify cycle for replacing a running process.

A restart runs IDLE -> STOPPING -> STARTING -> VERIFYING and ends in
SUCCEEDED or FAILED. The working directory and environment are captured
before the old process is signalled, since they vanish with it.
"""

import logging
import os
import signal
import subprocess
import time
from typing import Callable, Dict, List, Optional, Sequence

import psutil

from ..models.process_info import RestartOutcome, RestartPlan, RestartPolicy, RestartState
from .exceptions import (
    ProcessUnreadableError, RestartError, StartFailureError, StopError,
    StopTimeoutError, VerifyFailureError,
)
from .inspector import ProcessInspector


class ProcessManager:
    """Signals, spawns and restarts processes."""

    def __init__(self, reader: Optional[ProcessInspector] = None,
                 policy: Optional[RestartPolicy] = None,
                 logger: Optional[logging.Logger] = None,
                 sleep: Callable[[float], None] = time.sleep):
        self.logger = logger or logging.getLogger(__name__)
        self.reader = reader or ProcessInspector(logger=self.logger)
        self.policy = policy or RestartPolicy()
        self.state = RestartState.IDLE
        self._sleep = sleep
        self._children: Dict[int, subprocess.Popen] = {}

    @property
    def children(self) -> List[int]:
        """Pids of spawned processes not yet reaped."""
        return sorted(self._children)

    def reap(self) -> int:
        """Collect the exit status of finished children and stop tracking them."""
        finished = [pid for pid, child in self._children.items() if child.poll() is not None]
        for pid in finished:
            child = self._children.pop(pid)
            self.logger.debug("Reaped process %d (exit code %s)", pid, child.returncode)
        return len(finished)

    def _enter(self, state: RestartState, pid: int) -> None:
        self.logger.debug("Restart of %d: %s -> %s", pid, self.state.value, state.value)
        self.state = state

    def stop(self, pid: int, sig: int = signal.SIGTERM,
             timeout: Optional[float] = None, force: Optional[bool] = None) -> None:
        """
        Signal a process and wait for it to exit.

        On timeout the process is killed if force is allowed, otherwise
        StopTimeoutError is raised. A process that is already gone counts
        as stopped.
        """
        timeout = self.policy.grace_period if timeout is None else timeout
        force = self.policy.force_stop if force is None else force

        self.logger.info("Stopping process %d with %s", pid, signal.Signals(sig).name)
        try:
            proc = psutil.Process(pid)
            proc.send_signal(sig)
        except psutil.NoSuchProcess:
            self.logger.info("Process %d already exited", pid)
            self._children.pop(pid, None)
            return
        except psutil.AccessDenied as e:
            raise StopError(f"failed to send signal to process {pid}: {e}") from e

        try:
            proc.wait(timeout=timeout)
        except psutil.TimeoutExpired:
            if not force:
                raise StopTimeoutError(f"timeout waiting for process {pid} to exit")
            self.logger.warning("Process %d did not exit within %ss, killing", pid, timeout)
            self._kill(proc)
            self._children.pop(pid, None)
            return
        except psutil.NoSuchProcess:
            pass
        # psutil has already collected the exit status of our own children
        self._children.pop(pid, None)
        self.logger.info("Process %d stopped", pid)

    def _kill(self, proc: psutil.Process) -> None:
        try:
            proc.kill()
            proc.wait(timeout=self.policy.kill_timeout)
        except psutil.NoSuchProcess:
            pass
        except psutil.AccessDenied as e:
            raise StopError(f"failed to kill process {proc.pid}: {e}") from e
        except psutil.TimeoutExpired as e:
            raise StopError(
                f"process {proc.pid} persisted after SIGKILL for {self.policy.kill_timeout}s"
            ) from e
        self.logger.info("Process %d killed", proc.pid)

    def start(self, cmdline: Sequence[str], cwd: str = '',
              environ: Optional[Dict[str, str]] = None) -> int:
        """Launch a detached process and return its pid."""
        if not cmdline:
            raise StartFailureError("command line is empty")
        self.reap()

        env = None
        if environ:
            env = dict(os.environ)
            env.update(environ)

        self.logger.info("Starting process: %s (cwd=%s)", ' '.join(cmdline), cwd or '.')
        try:
            child = subprocess.Popen(
                list(cmdline),
                cwd=cwd or None,
                env=env,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                start_new_session=True,
            )
        except (OSError, ValueError, subprocess.SubprocessError) as e:
            raise StartFailureError(f"failed to start process: {e}") from e

        self._children[child.pid] = child
        self.logger.info("Process started with pid %d", child.pid)
        return child.pid

    def is_running(self, pid: int) -> bool:
        """Zero-signal existence check. Zombies count as dead."""
        child = self._children.get(pid)
        if child is not None and child.poll() is not None:
            del self._children[pid]
            return False
        if not psutil.pid_exists(pid):
            return False
        try:
            return psutil.Process(pid).status() != psutil.STATUS_ZOMBIE
        except psutil.NoSuchProcess:
            return False
        except psutil.AccessDenied:
            return True

    def restart(self, plan: RestartPlan) -> RestartOutcome:
        """
        Replace plan.old_pid with a process running plan.new_cmdline.

        Raises a RestartError subclass describing the phase that failed.
        """
        policy = plan.policy
        self.state = RestartState.IDLE
        try:
            return self._restart(plan, policy)
        except RestartError:
            self._enter(RestartState.FAILED, plan.old_pid)
            raise

    def _restart(self, plan: RestartPlan, policy: RestartPolicy) -> RestartOutcome:
        old_pid = plan.old_pid
        self._enter(RestartState.STOPPING, old_pid)
        try:
            _, cwd, environ = self.reader.launch_context(old_pid)
        except ProcessUnreadableError as e:
            raise StopError(f"failed to get process info: {e}") from e

        self.logger.info("Restarting process %d: %s", old_pid, ' '.join(plan.new_cmdline))
        try:
            self.stop(old_pid, timeout=policy.grace_period, force=policy.force_stop)
        except StopTimeoutError:
            raise
        except StopError as e:
            if not policy.proceed_on_stop_failure:
                raise
            self.logger.warning("Failed to stop process %d gracefully, starting anyway: %s", old_pid, e)

        self._enter(RestartState.STARTING, old_pid)
        new_pid, attempts = self._start_with_retries(plan.new_cmdline, cwd, environ, policy)

        self._enter(RestartState.VERIFYING, old_pid)
        if policy.verify_wait > 0:
            self.logger.info("Waiting %ss for process %d to stabilize", policy.verify_wait, new_pid)
            self._sleep(policy.verify_wait)
        if not self.is_running(new_pid):
            raise VerifyFailureError(
                f"new process {new_pid} exited during verification", attempts=attempts
            )

        self._enter(RestartState.SUCCEEDED, old_pid)
        self.logger.info("Process restarted: old pid %d, new pid %d", old_pid, new_pid)
        return RestartOutcome(old_pid=old_pid, new_pid=new_pid, start_attempts=attempts)

    def _start_with_retries(self, cmdline: Sequence[str], cwd: str,
                            environ: Dict[str, str], policy: RestartPolicy):
        max_attempts = max(1, policy.max_start_retries)
        last_error: Optional[StartFailureError] = None
        for attempt in range(1, max_attempts + 1):
            try:
                return self.start(cmdline, cwd, environ), attempt
            except StartFailureError as e:
                last_error = e
                self.logger.warning("Start attempt %d/%d failed: %s", attempt, max_attempts, e)
                if attempt < max_attempts:
                    self._sleep(policy.retry_delay)
        raise StartFailureError(
            f"failed to start process after {max_attempts} attempt(s): {last_error}",
            attempts=max_attempts,
        ) from last_error
