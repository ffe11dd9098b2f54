"""
Static agent injection: rewrite the launch command line and restart.
"""

import logging
import threading
from typing import List, Optional, Sequence, Tuple

from ..models.process_info import (
    AgentDescriptor, ClassifiedProcess, InjectionResult, ProcessFilter, RestartPlan, RestartPolicy,
)
from . import policy as policy_rules
from .detector import Detector
from .exceptions import InjectorError, InsufficientPermissionsError, RestartError
from .restart import ProcessManager
from .rewriter import build_command_line


class Injector:
    """Injects javaagents into running Java processes by restarting them."""

    def __init__(self, detector: Detector, manager: ProcessManager,
                 restart_policy: Optional[RestartPolicy] = None,
                 check_permissions: bool = True,
                 logger: Optional[logging.Logger] = None):
        self.detector = detector
        self.manager = manager
        self.restart_policy = restart_policy or manager.policy
        self.check_permissions = check_permissions
        self.logger = logger or logging.getLogger(__name__)

    def needs_injection(self, process: ClassifiedProcess,
                        agents: Sequence[AgentDescriptor]) -> bool:
        """Not excluded and missing at least one of the agents."""
        return policy_rules.needs_injection(process, agents, self.detector.exclusions, self.logger)

    def inject(self, process: ClassifiedProcess,
               agents: Sequence[AgentDescriptor]) -> InjectionResult:
        """
        Inject agents into one process.

        Per-target failures are reported in the returned result, never raised.
        """
        self.logger.info("Injecting %d agent(s) into process %d", len(agents), process.pid)
        result = InjectionResult(
            pid=process.pid,
            old_cmdline=list(process.cmdline),
            old_agents=list(process.agents),
        )

        if self.check_permissions:
            try:
                policy_rules.check_permissions(process)
            except InsufficientPermissionsError as e:
                result.error = e
                result.message = f"Permission denied: {e}"
                self.logger.error("Failed to inject process %d: %s", process.pid, e)
                return result

        result.new_cmdline = build_command_line(process.cmdline, agents)
        plan = RestartPlan(
            old_pid=process.pid,
            new_cmdline=tuple(result.new_cmdline),
            policy=self.restart_policy,
        )

        try:
            outcome = self.manager.restart(plan)
        except RestartError as e:
            result.error = e
            result.start_attempts = e.attempts
            result.message = f"Failed to restart process: {e}"
            self.logger.error("Failed to inject process %d: %s", process.pid, e)
            return result

        result.new_pid = outcome.new_pid
        result.start_attempts = outcome.start_attempts
        result.success = True
        result.message = (
            f"Successfully injected agent and restarted process "
            f"(old PID: {process.pid}, new PID: {outcome.new_pid})"
        )

        try:
            restarted = self.detector.find(outcome.new_pid)
        except InjectorError as e:
            self.logger.debug("Could not re-read agents of process %d: %s", outcome.new_pid, e)
        else:
            if restarted is not None:
                result.new_agents = list(restarted.agents)

        self.logger.info("Agent injected: old pid %d, new pid %d", process.pid, outcome.new_pid)
        return result

    def batch_inject(self, targets: Sequence[ClassifiedProcess],
                     agents: Sequence[AgentDescriptor],
                     cancel_event: Optional[threading.Event] = None) -> List[InjectionResult]:
        """
        Inject each target in order, one at a time.

        A failed target does not stop the batch. Cancellation is checked only
        between targets; an in-flight restart always completes.
        """
        results = []
        for process in targets:
            if cancel_event is not None and cancel_event.is_set():
                self.logger.warning("Batch inject cancelled, %d target(s) skipped",
                                    len(targets) - len(results))
                break
            results.append(self.inject(process, agents))
        return results

    def validate(self, pid: int, expected_agents: Sequence[AgentDescriptor]) -> None:
        """Raise InjectorError unless the process carries every expected agent."""
        processes = self.detector.discover(ProcessFilter(pids=[pid]))
        if not processes:
            raise InjectorError(f"process {pid} not found")
        for agent in expected_agents:
            if not policy_rules.has_agent(processes[0], agent.path):
                raise InjectorError(f"agent not found: {agent.path}")


def summarize(results: Sequence[InjectionResult]) -> Tuple[int, int, int]:
    """(total, succeeded, failed) counts."""
    succeeded = sum(1 for result in results if result.success)
    return len(results), succeeded, len(results) - succeeded
