"""
kvlog Interfaces

Defines the capability contract every logging backend satisfies and the
observer contract used by the Scavenger to fan entries out.
"""

from abc import ABC, abstractmethod
from typing import Any, Protocol, runtime_checkable

from kvlog.levels import Level


class Logger(ABC):
    """Abstract base class for all logging backends.

    A backend implements three primitives - ``log`` (Sprint-like operands),
    ``logf`` (printf-style template) and ``logw`` (message plus key/value
    fields) - together with child derivation and flushing. The leveled
    convenience methods (``debug``, ``infof``, ``warnw`` ...) are provided here
    on top of the primitives and carry no state of their own.

    Key/value arguments accept plain alternating ``key, value`` items mixed
    with ``kvlog.fields.Field`` objects. Keys must be strings; malformed input
    is reported by the backend rather than raised.
    """

    @abstractmethod
    def new_logger_with(self, *key_vals: Any) -> "Logger":
        """Return a child logger carrying additional context fields.

        The child shares the parent's output but owns its own field set, so
        fields added here never show up on the parent.

        Args:
            *key_vals: Alternating keys and values, possibly mixed with Fields

        Returns:
            A new logger of the same backend
        """

    @abstractmethod
    def log(self, level: Level, *args: Any) -> None:
        """Log operands joined Sprint-style at ``level``."""

    @abstractmethod
    def logf(self, level: Level, template: str, *args: Any) -> None:
        """Log a ``%``-style templated message at ``level``."""

    @abstractmethod
    def logw(self, level: Level, message: str, *key_vals: Any) -> None:
        """Log a message with additional key/value context at ``level``."""

    @abstractmethod
    def level_enabled(self, level: Level) -> bool:
        """Whether messages at ``level`` would be emitted."""

    @abstractmethod
    def flush(self) -> None:
        """Flush buffered output.

        Raises:
            Exception: The first error encountered while flushing
        """

    def debug(self, *args: Any) -> None:
        self.log(Level.DEBUG, *args)

    def info(self, *args: Any) -> None:
        self.log(Level.INFO, *args)

    def warn(self, *args: Any) -> None:
        self.log(Level.WARN, *args)

    def error(self, *args: Any) -> None:
        self.log(Level.ERROR, *args)

    def debugf(self, template: str, *args: Any) -> None:
        self.logf(Level.DEBUG, template, *args)

    def infof(self, template: str, *args: Any) -> None:
        self.logf(Level.INFO, template, *args)

    def warnf(self, template: str, *args: Any) -> None:
        self.logf(Level.WARN, template, *args)

    def errorf(self, template: str, *args: Any) -> None:
        self.logf(Level.ERROR, template, *args)

    def debugw(self, message: str, *key_vals: Any) -> None:
        self.logw(Level.DEBUG, message, *key_vals)

    def infow(self, message: str, *key_vals: Any) -> None:
        self.logw(Level.INFO, message, *key_vals)

    def warnw(self, message: str, *key_vals: Any) -> None:
        self.logw(Level.WARN, message, *key_vals)

    def errorw(self, message: str, *key_vals: Any) -> None:
        self.logw(Level.ERROR, message, *key_vals)


@runtime_checkable
class Printer(Protocol):
    """Observer notified of every entry a Scavenger records.

    A printer may optionally expose ``sync() -> None``; the Scavenger calls it
    from ``flush``.
    """

    def print(self, level: Level, message: str) -> None:
        ...
