"""Tests for single and batch injection."""

import os
import threading

import pytest

from agent_injector.core.exceptions import (
    InjectorError, StartFailureError, StopTimeoutError,
)
from agent_injector.core.injector import Injector, summarize
from agent_injector.core.classifier import classify
from agent_injector.models.process_info import (
    AgentDescriptor, ExclusionRule, InjectionResult,
)
from conftest import FakeDetector, FakeManager, build_snapshot

AGENT = AgentDescriptor(path='/opt/agent.jar')


def _own_process(pid, cmdline=('java', '-jar', 'app.jar')):
    return classify(build_snapshot(pid=pid, cmdline=cmdline, uid=os.getuid()))


@pytest.fixture
def targets():
    return [_own_process(4000001), _own_process(4000002), _own_process(4000003)]


def _injector(targets, failures=None, exclusions=(), test_logger=None):
    detector = FakeDetector(targets, exclusions)
    manager = FakeManager(detector, failures)
    return Injector(detector, manager, logger=test_logger), manager


class TestInject:
    """Tests for a single injection."""

    def test_success(self, targets, test_logger):
        injector, manager = _injector(targets, test_logger=test_logger)
        result = injector.inject(targets[0], [AGENT])

        assert result.success
        assert result.pid == 4000001
        assert result.new_pid == 5000001
        assert result.old_cmdline == ['java', '-jar', 'app.jar']
        assert result.new_cmdline == ['java', '-javaagent:/opt/agent.jar', '-jar', 'app.jar']
        assert [agent.path for agent in result.new_agents] == ['/opt/agent.jar']
        assert result.message == ('Successfully injected agent and restarted process '
                                  '(old PID: 4000001, new PID: 5000001)')
        assert manager.plans[0].new_cmdline == tuple(result.new_cmdline)

    def test_restart_failure_is_reported(self, targets):
        error = StartFailureError('failed to start process after 3 attempt(s): boom', attempts=3)
        injector, _ = _injector(targets, failures={4000001: error})
        result = injector.inject(targets[0], [AGENT])

        assert not result.success
        assert result.error is error
        assert result.start_attempts == 3
        assert result.message.startswith('Failed to restart process: ')

    def test_permission_denied(self, targets):
        foreign = classify(build_snapshot(pid=4000009, uid=os.getuid() + 1, user='mallory'))
        injector, manager = _injector(targets)
        result = injector.inject(foreign, [AGENT])

        if os.getuid() == 0:
            assert result.success
        else:
            assert not result.success
            assert result.message.startswith('Permission denied: ')
            assert manager.plans == []

    def test_needs_injection_respects_exclusions(self, targets):
        injector, _ = _injector(targets, exclusions=[ExclusionRule(pids=[4000002])])
        assert injector.needs_injection(targets[0], [AGENT])
        assert not injector.needs_injection(targets[1], [AGENT])


class TestBatchInject:
    """Tests for batch injection."""

    def test_failure_does_not_stop_batch(self, targets):
        """The second of three targets times out; the other two succeed."""
        timeout = StopTimeoutError('timeout waiting for process 4000002 to exit')
        injector, manager = _injector(targets, failures={4000002: timeout})

        results = injector.batch_inject(targets, [AGENT])

        assert [r.pid for r in results] == [4000001, 4000002, 4000003]
        assert [r.success for r in results] == [True, False, True]
        assert results[1].error is timeout
        assert len(manager.plans) == 3
        assert summarize(results) == (3, 2, 1)

    def test_cancelled_between_targets(self, targets):
        cancel = threading.Event()
        injector, manager = _injector(targets)

        original_restart = manager.restart

        def restart_then_cancel(plan):
            outcome = original_restart(plan)
            cancel.set()
            return outcome

        manager.restart = restart_then_cancel
        results = injector.batch_inject(targets, [AGENT], cancel_event=cancel)

        assert [r.pid for r in results] == [4000001]
        assert results[0].success

    def test_empty_batch(self):
        injector, _ = _injector([])
        assert injector.batch_inject([], [AGENT]) == []


class TestValidate:
    """Tests for post-injection validation."""

    def test_agent_present(self):
        process = _own_process(4000001, cmdline=('java', '-javaagent:/opt/x/../agent.jar', 'Main'))
        injector, _ = _injector([process])
        injector.validate(4000001, [AGENT])

    def test_agent_missing(self, targets):
        injector, _ = _injector(targets)
        with pytest.raises(InjectorError, match='agent not found'):
            injector.validate(4000001, [AGENT])

    def test_process_missing(self, targets):
        injector, _ = _injector(targets)
        with pytest.raises(InjectorError, match='not found'):
            injector.validate(4999999, [AGENT])


def test_summarize():
    results = [
        InjectionResult(pid=1, old_cmdline=[], old_agents=[], success=True),
        InjectionResult(pid=2, old_cmdline=[], old_agents=[]),
    ]
    assert summarize(results) == (2, 1, 1)
    assert summarize([]) == (0, 0, 0)
