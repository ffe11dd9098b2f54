"""
Java process detection and javaagent parsing.

These are heuristics over the argument vector and executable path. A shell
script whose path merely contains "java" will be reported as a Java process,
and module-path launches do not yield a useful main class.
"""

import os
from typing import List, Optional, Sequence, Tuple

from ..models.process_info import AgentDescriptor, ClassifiedProcess, ProcessSnapshot

RUNTIME_TOKEN = 'java'
JAR_SUFFIX = '.jar'
AGENT_PREFIXES = ('-javaagent:', '-javaagent=')
CLASSPATH_FLAGS = ('-cp', '-classpath', '--class-path')


def is_java_process(cmdline: Sequence[str], exe: str = '') -> bool:
    """Check if process is a Java application"""
    if exe and os.path.basename(exe) == RUNTIME_TOKEN:
        return True
    return any(RUNTIME_TOKEN in arg or arg.endswith(JAR_SUFFIX) for arg in cmdline)


def parse_agent_param(arg: str) -> Optional[AgentDescriptor]:
    """Parse a single -javaagent flag into path and options."""
    for prefix in AGENT_PREFIXES:
        if arg.startswith(prefix):
            param = arg[len(prefix):]
            break
    else:
        return None

    path, _, options = param.partition('=')
    return AgentDescriptor(path=path, options=options, full_param=arg)


def extract_agents(cmdline: Sequence[str]) -> List[AgentDescriptor]:
    """All agent flags in argument order, duplicates included."""
    agents = []
    for arg in cmdline:
        agent = parse_agent_param(arg)
        if agent is not None:
            agents.append(agent)
    return agents


def infer_entry_point(cmdline: Sequence[str]) -> Tuple[str, str]:
    """
    Best-effort (main_class, jar_file) inference.

    The first argument after the launcher ending in .jar is the jar file,
    classpath operands included, and ends the scan. Agent flags never count.
    Before that, the first argument that is neither a flag, a classpath
    operand nor an assignment is the main class candidate.
    """
    main_class = ''
    jar_file = ''
    start = launcher_index(cmdline) + 1 if cmdline else 0
    classpath_operand = False
    for arg in cmdline[start:]:
        is_operand, classpath_operand = classpath_operand, arg in CLASSPATH_FLAGS
        if arg.endswith(JAR_SUFFIX) and not arg.startswith(AGENT_PREFIXES):
            jar_file = arg
            break
        if is_operand or main_class:
            continue
        if not arg.startswith('-') and '=' not in arg:
            main_class = arg
    return main_class, jar_file


def launcher_index(cmdline: Sequence[str]) -> int:
    """Index of the first argument whose base name contains the runtime token, else 0."""
    for index, arg in enumerate(cmdline):
        if RUNTIME_TOKEN in os.path.basename(arg):
            return index
    return 0


def classify(snapshot: ProcessSnapshot) -> ClassifiedProcess:
    """Attach the Java verdict, agents and entry point to a snapshot."""
    java = is_java_process(snapshot.cmdline, snapshot.exe)
    if not java:
        return ClassifiedProcess(snapshot=snapshot, is_java=False)

    main_class, jar_file = infer_entry_point(snapshot.cmdline)
    return ClassifiedProcess(
        snapshot=snapshot,
        is_java=True,
        agents=tuple(extract_agents(snapshot.cmdline)),
        main_class=main_class,
        jar_file=jar_file,
    )
