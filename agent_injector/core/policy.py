"""
Filters, exclusion rules and the "does this process still need the agent" check.
"""

import logging
import os
import re
from datetime import datetime
from typing import Iterable, List, Optional, Sequence

from ..models.process_info import AgentDescriptor, ClassifiedProcess, ExclusionRule, ProcessFilter
from .exceptions import InsufficientPermissionsError

_default_logger = logging.getLogger(__name__)


def _pattern_hits(process: ClassifiedProcess, patterns: Iterable[str],
                  logger: logging.Logger) -> bool:
    """True if any valid pattern matches the name, jar file or main class."""
    for pattern in patterns:
        try:
            regex = re.compile(pattern)
        except re.error as e:
            logger.warning("Invalid regex pattern %r: %s", pattern, e)
            continue
        if (regex.search(process.name) or
                regex.search(process.jar_file) or
                regex.search(process.main_class)):
            return True
    return False


def _uptime(process: ClassifiedProcess) -> Optional[float]:
    start = process.snapshot.start_time
    if start is None:
        return None
    return (datetime.now() - start).total_seconds()


def matches(process: ClassifiedProcess, process_filter: Optional[ProcessFilter],
            logger: Optional[logging.Logger] = None) -> bool:
    """Check every non-empty predicate of the filter."""
    if process_filter is None:
        return True
    logger = logger or _default_logger

    if process_filter.pids and process.pid not in process_filter.pids:
        return False
    if process_filter.names and process.name not in process_filter.names:
        return False
    if process_filter.users and process.user not in process_filter.users:
        return False
    if process_filter.has_agent is not None:
        if process_filter.has_agent != bool(process.agents):
            return False
    if process_filter.min_uptime is not None:
        uptime = _uptime(process)
        if uptime is None or uptime < process_filter.min_uptime:
            return False
    if process_filter.patterns and not _pattern_hits(process, process_filter.patterns, logger):
        return False
    return True


def is_excluded(process: ClassifiedProcess, rules: Sequence[ExclusionRule],
                logger: Optional[logging.Logger] = None) -> bool:
    """True if any rule vetoes the process by pid, user or pattern."""
    logger = logger or _default_logger
    for rule in rules:
        if process.pid in rule.pids:
            return True
        if process.user in rule.users:
            return True
        if rule.patterns and _pattern_hits(process, rule.patterns, logger):
            return True
    return False


def has_agent(process: ClassifiedProcess, agent_path: str) -> bool:
    """Is an agent with this (normalized) path already attached?"""
    wanted = os.path.normpath(agent_path)
    return any(agent.normalized_path == wanted for agent in process.agents)


def missing_agents(process: ClassifiedProcess,
                   agents: Sequence[AgentDescriptor]) -> List[AgentDescriptor]:
    return [agent for agent in agents if not has_agent(process, agent.path)]


def needs_injection(process: ClassifiedProcess, agents: Sequence[AgentDescriptor],
                    rules: Sequence[ExclusionRule] = (),
                    logger: Optional[logging.Logger] = None) -> bool:
    """False when excluded; otherwise True if any target agent is missing."""
    if is_excluded(process, rules, logger):
        return False
    return bool(missing_agents(process, agents))


def check_permissions(process: ClassifiedProcess, current_uid: Optional[int] = None) -> None:
    """Raise unless we own the process or are root."""
    uid = os.getuid() if current_uid is None else current_uid
    if process.uid != uid and uid != 0:
        raise InsufficientPermissionsError(process.pid, process.user)
