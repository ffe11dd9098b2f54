"""Tests for the interactive menu, driven by scripted input."""

from agent_injector.core.classifier import classify
from agent_injector.core.injector import Injector
from agent_injector.models.process_info import AgentDescriptor
from agent_injector.ui.interactive import InjectMenu
from conftest import FakeDetector, FakeManager, build_snapshot

AGENT = AgentDescriptor(path='/opt/agent.jar')


def _scripted(answers):
    """Input function replaying answers, then signalling end of input."""
    remaining = iter(answers)

    def read_answer(_prompt):
        try:
            return next(remaining)
        except StopIteration:
            raise EOFError
    return read_answer


def _menu(answers, require_confirmation=False, test_logger=None):
    detector = FakeDetector([
        classify(build_snapshot(pid=4000001, user='alice', cmdline=['java', '-jar', 'a.jar'])),
        classify(build_snapshot(pid=4000002, user='bob', cmdline=['java', '-javaagent:/opt/agent.jar', 'B'])),
        classify(build_snapshot(pid=4000003, user='alice', cmdline=['java', 'com.example.C'])),
    ])
    manager = FakeManager(detector)
    injector = Injector(detector, manager, check_permissions=False, logger=test_logger)
    read_answer = _scripted(answers)
    printed = []
    menu = InjectMenu(injector, [AGENT], input_func=read_answer,
                      print_func=lambda *args, **_kwargs: printed.append(' '.join(map(str, args))),
                      require_confirmation=require_confirmation)
    return menu, manager, printed


def test_quit_without_action(test_logger):
    menu, manager, printed = _menu(['q'], test_logger=test_logger)
    assert menu.run() == []
    assert manager.plans == []
    assert any('4000003' in line for line in printed)


def test_inject_selection(test_logger):
    menu, manager, _ = _menu(['i 1,3', 'q'], test_logger=test_logger)
    results = menu.run()
    assert [result.pid for result in results] == [4000001, 4000003]
    assert all(result.success for result in results)
    assert [plan.old_pid for plan in manager.plans] == [4000001, 4000003]


def test_inject_requires_confirmation(test_logger):
    menu, manager, printed = _menu(['i 1', 'no', 'q'], require_confirmation=True, test_logger=test_logger)
    assert menu.run() == []
    assert manager.plans == []
    assert 'Injection cancelled' in printed


def test_invalid_selection(test_logger):
    menu, manager, printed = _menu(['i 9', 'x', 'q'], test_logger=test_logger)
    menu.run()
    assert manager.plans == []
    assert 'invalid process number: 9' in printed
    assert 'Invalid selection' in printed


def test_missing_filter_hides_injected(test_logger):
    menu, manager, _ = _menu(['f', '2', 'i 2', 'q'], test_logger=test_logger)
    results = menu.run()
    assert [result.pid for result in results] == [4000003]


def test_user_filter(test_logger):
    menu, _, printed = _menu(['f', '3', 'bob', 'q'], test_logger=test_logger)
    menu.run()
    header = max(i for i, line in enumerate(printed) if 'Filter: user' in line)
    last_listing = printed[header:]
    assert any('4000002' in line for line in last_listing)
    assert not any('4000001' in line for line in last_listing)


def test_detail(test_logger):
    menu, _, printed = _menu(['2', 'q'], test_logger=test_logger)
    menu.run()
    assert any(line.startswith('Java Process 4000002') for line in printed)


def test_end_of_input_exits(test_logger):
    menu, _, _ = _menu([], test_logger=test_logger)
    assert menu.run() == []
