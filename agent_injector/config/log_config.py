"""
Logging setup. Components take a logger at construction; this builds it.
"""

import logging
import sys
from typing import Optional

from pythonjsonlogger.json import JsonFormatter

LOGGER_NAME = 'agent_injector'
TEXT_FORMAT = '%(asctime)s %(levelname)-7s %(name)s: %(message)s'
JSON_FORMAT = '%(asctime)s %(levelname)s %(name)s %(message)s'
JSON_FIELDS = {'asctime': 'time', 'levelname': 'level', 'name': 'logger'}


def _make_handler(output: str) -> logging.Handler:
    if not output or output == 'stderr':
        return logging.StreamHandler(sys.stderr)
    if output == 'stdout':
        return logging.StreamHandler(sys.stdout)
    return logging.FileHandler(output)


def configure_logging(level: str = 'info', fmt: str = 'text', output: str = 'stderr',
                      logger: Optional[logging.Logger] = None) -> logging.Logger:
    """
    Configure and return the package logger.

    Args:
        level: debug, info, warning or error.
        fmt: 'text' or 'json' (one object per line).
        output: 'stdout', 'stderr' or a file path.
        logger: logger to configure instead of the package logger.
    """
    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        raise ValueError(f"invalid log level: {level}")

    logger = logger or logging.getLogger(LOGGER_NAME)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    handler = _make_handler(output)
    if fmt == 'json':
        handler.setFormatter(JsonFormatter(JSON_FORMAT, datefmt='%Y-%m-%dT%H:%M:%S',
                                           rename_fields=JSON_FIELDS))
    else:
        handler.setFormatter(logging.Formatter(TEXT_FORMAT))

    logger.addHandler(handler)
    logger.setLevel(numeric_level)
    logger.propagate = False
    return logger
