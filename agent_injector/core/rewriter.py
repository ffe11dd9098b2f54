"""
Command line rewriting: insert javaagent flags right after the launcher.
"""

from typing import List, Sequence

from ..models.process_info import AgentDescriptor
from .classifier import launcher_index


def format_agent_param(agent: AgentDescriptor) -> str:
    """Build the -javaagent flag for an agent."""
    return agent.to_param()


def build_command_line(original: Sequence[str], agents_to_add: Sequence[AgentDescriptor]) -> List[str]:
    """
    Return a new argument vector with one agent flag per agent inserted
    immediately after the launcher token.

    Existing agent flags are left alone; calling this twice with the same
    agent yields the flag twice.
    """
    original = list(original)
    if not original:
        return [format_agent_param(agent) for agent in agents_to_add]

    insert_at = launcher_index(original) + 1
    new_cmdline = original[:insert_at]
    new_cmdline.extend(format_agent_param(agent) for agent in agents_to_add)
    new_cmdline.extend(original[insert_at:])
    return new_cmdline
