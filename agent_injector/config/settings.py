"""
Configuration management for the agent injector.
"""

import copy
import os
import re
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from ..core.exceptions import ConfigError
from ..models.process_info import AgentDescriptor, ExclusionRule, ProcessFilter, RestartPolicy

_DURATION_RE = re.compile(r'^\s*(\d+(?:\.\d+)?)\s*(ms|s|m|h)?\s*$')
_DURATION_UNITS = {'ms': 0.001, 's': 1.0, 'm': 60.0, 'h': 3600.0, None: 1.0}


def parse_duration(value: Any) -> float:
    """Seconds from a number or a string like '500ms', '10s', '2m'."""
    if isinstance(value, bool):
        raise ConfigError(f"invalid duration: {value!r}")
    if isinstance(value, (int, float)):
        return float(value)
    match = _DURATION_RE.match(str(value))
    if not match:
        raise ConfigError(f"invalid duration: {value!r}")
    return float(match.group(1)) * _DURATION_UNITS[match.group(2)]


def default_config_paths() -> List[Path]:
    return [
        Path.cwd() / 'config.yaml',
        Path.cwd() / 'configs' / 'config.yaml',
        Path.home() / '.agent-injector' / 'config.yaml',
        Path('/etc/agent-injector/config.yaml'),
    ]


class Config:
    """Configuration manager."""

    def __init__(self, path: Optional[str] = None, search_paths: Optional[List[Path]] = None):
        self._config = self._load_default_config()
        self.source: Optional[Path] = None
        if path:
            self._load_file(Path(path))
        else:
            self._load_user_config(search_paths if search_paths is not None else default_config_paths())

    def _load_default_config(self) -> Dict[str, Any]:
        """Load default configuration."""
        return {
            'version': '1.0',
            'debug': False,
            'log': {
                'level': 'info',
                'format': 'text',
                'output': 'stderr',
            },
            'agents': [
                {
                    'name': 'iast-agent',
                    'path': '/opt/iast/agent/iast-agent.jar',
                    'options': '',
                    'enabled': True,
                    'priority': 100,
                },
            ],
            'process': {
                'include_patterns': [],
                'user_filter': [],
            },
            'daemon': {
                'interval': 60,
                'pid_file': '',
            },
            'exclude': [],
            'restart': {
                'grace_period': 10,
                'kill_timeout': 30,
                'max_retries': 3,
                'verify_wait': 5,
                'retry_delay': 1,
                'force_stop': True,
                'proceed_on_stop_failure': True,
            },
            'security': {
                'check_permissions': True,
                'require_confirmation': True,
            },
        }

    def _load_user_config(self, config_paths: List[Path]):
        """Load the first configuration file found on the search path."""
        for config_path in config_paths:
            if config_path.exists():
                self._load_file(config_path)
                break

    def _load_file(self, config_path: Path):
        if not config_path.exists():
            raise ConfigError(f"config file not found: {config_path}")
        try:
            with open(config_path, 'r') as f:
                user_config = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"failed to parse config file {config_path}: {e}") from e
        except OSError as e:
            raise ConfigError(f"failed to read config file {config_path}: {e}") from e
        if not isinstance(user_config, dict):
            raise ConfigError(f"config file {config_path} must contain a mapping")
        self._merge_config(user_config)
        self.source = config_path

    def _merge_config(self, user_config: Dict[str, Any]):
        """Merge user configuration with default configuration."""
        def deep_merge(default: Dict, user: Dict) -> Dict:
            result = default.copy()
            for key, value in user.items():
                if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                    result[key] = deep_merge(result[key], value)
                else:
                    result[key] = value
            return result

        self._config = deep_merge(self._config, user_config)

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value by key (supports dot notation)."""
        keys = key.split('.')
        value = self._config

        for k in keys:
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default

        return value

    def set(self, key: str, value: Any):
        """Set a configuration value by dotted key."""
        keys = key.split('.')
        target = self._config
        for k in keys[:-1]:
            target = target.setdefault(k, {})
        target[keys[-1]] = value

    def as_dict(self) -> Dict[str, Any]:
        return copy.deepcopy(self._config)

    @property
    def debug(self) -> bool:
        return bool(self.get('debug', False))

    def validate(self, check_files: bool = True):
        """Raise ConfigError on the first invalid setting."""
        for i, agent in enumerate(self.get('agents') or []):
            if not agent.get('name'):
                raise ConfigError(f"agent[{i}]: name cannot be empty")
            if not agent.get('path'):
                raise ConfigError(f"agent[{i}]: path cannot be empty")
            if check_files and agent.get('enabled', True) and not os.path.exists(agent['path']):
                raise ConfigError(f"agent[{i}]: file not found: {agent['path']}")

        if parse_duration(self.get('daemon.interval', 60)) <= 0:
            raise ConfigError("daemon.interval must be positive")

        policy = self.restart_policy()
        for name in ('grace_period', 'kill_timeout', 'verify_wait', 'retry_delay'):
            if getattr(policy, name) < 0:
                raise ConfigError(f"restart.{name} cannot be negative")
        if policy.max_start_retries < 1:
            raise ConfigError("restart.max_retries must be at least 1")

        for i, rule in enumerate(self.get('exclude') or []):
            if not isinstance(rule, dict):
                raise ConfigError(f"exclude[{i}]: must be a mapping")

    def enabled_agents(self) -> List[AgentDescriptor]:
        """Enabled agents, highest priority first."""
        agents = [agent for agent in (self.get('agents') or []) if agent.get('enabled', True)]
        agents.sort(key=lambda agent: agent.get('priority', 0), reverse=True)
        return [AgentDescriptor(path=agent['path'], options=agent.get('options') or '')
                for agent in agents]

    def exclusion_rules(self) -> List[ExclusionRule]:
        rules = []
        for rule in self.get('exclude') or []:
            rules.append(ExclusionRule(
                name=rule.get('name', ''),
                pids=[int(pid) for pid in rule.get('pids') or []],
                users=list(rule.get('users') or []),
                patterns=list(rule.get('patterns') or []),
            ))
        return rules

    def restart_policy(self) -> RestartPolicy:
        restart = self.get('restart', {})
        return RestartPolicy(
            grace_period=parse_duration(restart.get('grace_period', 10)),
            kill_timeout=parse_duration(restart.get('kill_timeout', 30)),
            verify_wait=parse_duration(restart.get('verify_wait', 5)),
            max_start_retries=int(restart.get('max_retries', 3)),
            retry_delay=parse_duration(restart.get('retry_delay', 1)),
            force_stop=bool(restart.get('force_stop', True)),
            proceed_on_stop_failure=bool(restart.get('proceed_on_stop_failure', True)),
        )

    def default_filter(self) -> ProcessFilter:
        """Discovery filter from the process section."""
        return ProcessFilter(
            users=list(self.get('process.user_filter') or []),
            patterns=list(self.get('process.include_patterns') or []),
        )

    def daemon_interval(self) -> float:
        return parse_duration(self.get('daemon.interval', 60))
