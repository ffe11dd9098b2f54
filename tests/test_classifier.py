"""Tests for Java process detection and agent parsing."""

from agent_injector.core.classifier import (
    classify, extract_agents, infer_entry_point, is_java_process, launcher_index, parse_agent_param,
)
from conftest import build_snapshot


class TestIsJavaProcess:
    """Tests for the Java verdict heuristic."""

    def test_executable_name(self):
        assert is_java_process(['/proc/self/exe'], exe='/usr/lib/jvm/java-17/bin/java')

    def test_argument_contains_token(self):
        assert is_java_process(['/opt/jdk/bin/java', 'Main'])

    def test_jar_argument(self):
        assert is_java_process(['launcher', 'app.jar'])

    def test_not_java(self):
        assert not is_java_process(['/usr/sbin/nginx', '-g', 'daemon off;'], exe='/usr/sbin/nginx')

    def test_script_path_is_misclassified(self):
        """Known imprecision: a script mentioning the token counts as Java."""
        assert is_java_process(['/bin/sh', '/opt/scripts/start-java-app.sh'], exe='/bin/sh')

    def test_deterministic(self):
        cmdline = ['java', '-javaagent:/a.jar', '-jar', 'app.jar']
        assert classify(build_snapshot(cmdline=cmdline)) == classify(build_snapshot(cmdline=cmdline))


class TestAgentParsing:
    """Tests for -javaagent extraction."""

    def test_colon_form(self):
        agent = parse_agent_param('-javaagent:/opt/agent.jar')
        assert agent.path == '/opt/agent.jar'
        assert agent.options == ''
        assert agent.full_param == '-javaagent:/opt/agent.jar'

    def test_equals_form(self):
        agent = parse_agent_param('-javaagent=/opt/agent.jar')
        assert agent.path == '/opt/agent.jar'

    def test_options_split_at_first_equals(self):
        agent = parse_agent_param('-javaagent:/opt/agent.jar=mode=full,debug=true')
        assert agent.path == '/opt/agent.jar'
        assert agent.options == 'mode=full,debug=true'

    def test_not_an_agent(self):
        assert parse_agent_param('-Xmx1g') is None
        assert parse_agent_param('-javaagents:/x.jar') is None

    def test_extract_keeps_order_and_duplicates(self):
        cmdline = [
            'java',
            '-javaagent:/opt/a.jar',
            '-Xmx1g',
            '-javaagent=/opt/b.jar=x',
            '-javaagent:/opt/a.jar',
            '-jar', 'app.jar',
        ]
        agents = extract_agents(cmdline)
        assert [agent.path for agent in agents] == ['/opt/a.jar', '/opt/b.jar', '/opt/a.jar']
        assert agents[1].options == 'x'


class TestEntryPoint:
    """Tests for main class / jar inference."""

    def test_jar(self):
        assert infer_entry_point(['java', '-Xmx1g', '-jar', '/srv/app.jar', 'arg']) == ('', '/srv/app.jar')

    def test_main_class(self):
        main_class, jar = infer_entry_point(['/usr/bin/java', '-Dfoo=bar', 'com.example.Main', 'x'])
        assert main_class == 'com.example.Main'
        assert jar == ''

    def test_classpath_operand_skipped(self):
        main_class, _ = infer_entry_point(['java', '-cp', 'lib/*:conf', 'com.example.Main'])
        assert main_class == 'com.example.Main'

    def test_jar_found_after_main_class_candidate(self):
        main_class, jar = infer_entry_point(['java', 'Launcher', 'plugin.jar'])
        assert main_class == 'Launcher'
        assert jar == 'plugin.jar'

    def test_agent_flag_is_not_the_jar(self):
        cmdline = ['java', '-javaagent:/opt/a.jar', '-cp', 'lib/*:conf', 'com.example.Main']
        assert infer_entry_point(cmdline) == ('com.example.Main', '')

    def test_classpath_jar_is_the_jar(self):
        assert infer_entry_point(['java', '-cp', 'app.jar', 'com.Main']) == ('', 'app.jar')
        assert infer_entry_point(['java', '-Xmx1g', '-classpath', '/srv/lib/svc.jar', 'Main']) == \
            ('', '/srv/lib/svc.jar')

    def test_launcher_index(self):
        assert launcher_index(['sudo', '-u', 'app', '/opt/jdk/bin/java', 'Main']) == 3
        assert launcher_index(['run.sh', 'Main']) == 0


def test_classify_java_process():
    process = classify(build_snapshot(cmdline=['java', '-javaagent:/opt/a.jar', '-jar', 'app.jar']))
    assert process.is_java
    assert process.jar_file == 'app.jar'
    assert [agent.path for agent in process.agents] == ['/opt/a.jar']


def test_classify_non_java_process():
    process = classify(build_snapshot(cmdline=['/usr/bin/redis-server'], exe='/usr/bin/redis-server',
                                      name='redis-server'))
    assert not process.is_java
    assert process.agents == ()
