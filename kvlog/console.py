"""
kvlog Console Backend

Human-oriented console logger. Each line carries a timestamp, the level, the
caller's ``file:line`` and the message with its field block:

    14:03:07 WARN  handlers.py:42	hello	{"foo": 100}

Colour is used when the output stream is an interactive terminal unless
disabled; bare mode prints the message and fields only.
"""

import copy
import os
import sys
import threading
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Optional, TextIO

from kvlog.exceptions import FlushError
from kvlog.fields import EMPTY_FIELDS, FieldSet, join_message, render_with_fields, sprint, sprintf
from kvlog.interfaces import Logger
from kvlog.levels import Level, parse_level

_PACKAGE_DIR = os.path.dirname(os.path.abspath(__file__))

COLORS = {
    Level.DEBUG: "\033[35m",  # Magenta
    Level.INFO: "\033[32m",   # Green
    Level.WARN: "\033[33m",   # Yellow
    Level.ERROR: "\033[31m",  # Red
}
GRAY = "\033[2;37m"
RESET = "\033[0m"

TIME_FORMAT = "%H:%M:%S"


class Mode(Enum):
    COLORED = "colored"
    PLAIN = "plain"
    BARE = "bare"


@dataclass(frozen=True)
class Option:
    """
    Construction option for ConsoleLogger.

    Options are applied by ascending priority, so ``without_color`` and
    ``with_bare_mode`` win regardless of where they appear in the argument
    list.
    """
    apply: Callable[["ConsoleLogger"], None]
    priority: int = 0


def with_level(level: Any) -> Option:
    """
    Set the lowest level to output.

    Raises:
        InvalidLevelError: If ``level`` is not DEBUG, INFO, WARN or ERROR
    """
    parsed = parse_level(level)

    def apply(cl: "ConsoleLogger") -> None:
        cl._min_level = parsed
    return Option(apply)


def with_stream(stream: Optional[TextIO]) -> Option:
    """Write to ``stream`` instead of ``sys.stderr``."""
    def apply(cl: "ConsoleLogger") -> None:
        cl._stream = stream
    return Option(apply)


def with_fields(*key_vals: Any) -> Option:
    """Add context fields; malformed pairs are dropped silently."""
    fields, _ = EMPTY_FIELDS.merge(key_vals)

    def apply(cl: "ConsoleLogger") -> None:
        cl._fields = fields
    return Option(apply)


def with_extra_caller_skip(skip: int) -> Option:
    """Skip ``skip`` more frames when reporting the caller's file and line."""
    def apply(cl: "ConsoleLogger") -> None:
        cl._extra_skip = skip
    return Option(apply)


def with_time_format(time_format: str) -> Option:
    def apply(cl: "ConsoleLogger") -> None:
        cl._time_format = time_format
    return Option(apply)


def with_color() -> Option:
    """Always colour the output, even when the stream is not a terminal."""
    def apply(cl: "ConsoleLogger") -> None:
        cl._mode = Mode.COLORED
    return Option(apply, priority=1)


def without_color() -> Option:
    def apply(cl: "ConsoleLogger") -> None:
        cl._mode = Mode.PLAIN
    return Option(apply, priority=1)


def with_bare_mode() -> Option:
    """Remove time, level and caller from every line."""
    def apply(cl: "ConsoleLogger") -> None:
        cl._mode = Mode.BARE
    return Option(apply, priority=2)


def is_interactive_terminal(stream: Any) -> bool:
    isatty = getattr(stream, "isatty", None)
    try:
        return bool(isatty and isatty())
    except ValueError:
        return False


def caller_location(extra_skip: int = 0) -> Optional[str]:
    """
    Return ``file:line`` of the first frame outside this package.

    Args:
        extra_skip: Additional frames to skip past that first outside frame

    Returns:
        ``basename:lineno`` or None when the stack is too shallow
    """
    frame = sys._getframe(1)
    while frame is not None and os.path.dirname(os.path.abspath(frame.f_code.co_filename)) == _PACKAGE_DIR:
        frame = frame.f_back
    for _ in range(max(extra_skip, 0)):
        if frame is None:
            break
        frame = frame.f_back
    if frame is None:
        return None
    return f"{os.path.basename(frame.f_code.co_filename)}:{frame.f_lineno}"


class ConsoleLogger(Logger):
    """
    Console logger implementing both the Logger and the Printer contract.

    Loggers derived with ``new_logger_with`` share the stream and the write
    lock with their parent and own a new field set.
    """

    def __init__(self, *options: Option):
        self._stream: Optional[TextIO] = sys.stderr
        self._min_level = Level.DEBUG
        self._mode: Optional[Mode] = None
        self._extra_skip = 0
        self._fields: FieldSet = EMPTY_FIELDS
        self._time_format = TIME_FORMAT
        self._lock = threading.Lock()
        for option in sorted(options, key=lambda o: o.priority):
            option.apply(self)
        if self._mode is None:
            self._mode = Mode.COLORED if is_interactive_terminal(self._stream) else Mode.PLAIN

    @property
    def mode(self) -> Mode:
        return self._mode

    @property
    def fields(self) -> FieldSet:
        return self._fields

    def _header(self, level: Level) -> str:
        if self._mode is Mode.BARE:
            return ""
        timestamp = datetime.now().strftime(self._time_format)
        name = level.value
        padding = " " if len(name) == 4 else ""
        location = caller_location(self._extra_skip) or "?"
        if self._mode is Mode.COLORED:
            return f"{timestamp} {COLORS[level]}{name}{RESET}{padding} {GRAY}{location}{RESET}\t"
        return f"{timestamp} {name}{padding} {location}\t"

    def _write(self, level: Level, text: str) -> None:
        line = self._header(level) + text + "\n"
        with self._lock:
            if self._stream is not None:
                self._stream.write(line)

    def _write_diagnostics(self, diagnostics: Any) -> None:
        for diagnostic in diagnostics:
            self._write(diagnostic.level, diagnostic.render())

    def new_logger_with(self, *key_vals: Any) -> "ConsoleLogger":
        child = copy.copy(self)
        if key_vals:
            child._fields, split = self._fields.merge(key_vals)
            self._write_diagnostics(split.diagnostics())
        return child

    def log(self, level: Level, *args: Any) -> None:
        level = parse_level(level)
        if not args or not self.level_enabled(level):
            return
        text, _ = render_with_fields(sprint(*args), self._fields)
        self._write(level, text)

    def logf(self, level: Level, template: str, *args: Any) -> None:
        level = parse_level(level)
        if self.level_enabled(level):
            text, _ = render_with_fields(sprintf(template, *args), self._fields)
            self._write(level, text)

    def logw(self, level: Level, message: str, *key_vals: Any) -> None:
        level = parse_level(level)
        text, diagnostics = render_with_fields(message, self._fields, key_vals)
        self._write_diagnostics(diagnostics)
        if self.level_enabled(level):
            self._write(level, text)

    def print(self, level: Level, message: str) -> None:
        """Write an already rendered message; lets a Scavenger echo to the console."""
        level = parse_level(level)
        if self.level_enabled(level):
            self._write(level, join_message(message, self._fields.render()))

    def level_enabled(self, level: Level) -> bool:
        return parse_level(level).severity >= self._min_level.severity

    def flush(self) -> None:
        """
        Flush the output stream.

        Raises:
            FlushError: If the logger has no stream
        """
        if self._stream is None:
            raise FlushError("nil writer")
        flush = getattr(self._stream, "flush", None)
        if callable(flush):
            flush()

    def sync(self) -> None:
        self.flush()
