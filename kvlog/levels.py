"""Log levels shared by every backend."""

import logging
from enum import Enum
from typing import Union

from kvlog.exceptions import InvalidLevelError


class Level(str, Enum):
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARN = "WARN"
    ERROR = "ERROR"

    @property
    def severity(self) -> int:
        """Numeric severity compatible with the stdlib ``logging`` module."""
        return _SEVERITY[self]

    @property
    def method_name(self) -> str:
        """Name of the structlog method that emits this level."""
        return _METHOD_NAMES[self]

    def __str__(self) -> str:
        return self.value


_SEVERITY = {
    Level.DEBUG: logging.DEBUG,
    Level.INFO: logging.INFO,
    Level.WARN: logging.WARNING,
    Level.ERROR: logging.ERROR,
}

_METHOD_NAMES = {
    Level.DEBUG: "debug",
    Level.INFO: "info",
    Level.WARN: "warning",
    Level.ERROR: "error",
}

_ALIASES = {
    "WARNING": Level.WARN,
    "ERR": Level.ERROR,
}


def parse_level(value: Union[str, Level]) -> Level:
    """
    Convert a level name into a Level.

    Names are case-insensitive; ``WARNING`` is accepted as an alias of
    ``WARN`` so stdlib-style configuration values keep working.

    Args:
        value: Level name or Level instance

    Returns:
        The matching Level

    Raises:
        InvalidLevelError: If the name does not denote a known level
    """
    if isinstance(value, Level):
        return value
    if not isinstance(value, str):
        raise InvalidLevelError(f"invalid level: {value!r}", details={"level": repr(value)})

    name = value.strip().upper()
    if name in _ALIASES:
        return _ALIASES[name]
    try:
        return Level(name)
    except ValueError:
        raise InvalidLevelError(f"invalid level: {value}", details={"level": value}) from None
