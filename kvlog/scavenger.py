"""
kvlog Scavenger

In-memory logging backend that captures every entry for later assertions.

A root Scavenger owns an EntryStore. Loggers derived from it with
``new_logger_with`` share that store but carry their own immutable field set,
so anything logged by a descendant is visible from the root while fields never
leak back to the parent.

Example:
    >>> sc = Scavenger()
    >>> sc.warnw("hello", "foo", 100, "bar", "qux")
    >>> sc.dump()
    'WARN\\thello\\t{"foo": 100, "bar": "qux"}\\n'
    >>> sc.exists("rex: ^hello")
    True
"""

import dataclasses
import json
import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Sequence, Tuple, TYPE_CHECKING

from kvlog.exceptions import InvalidLevelError
from kvlog.fields import (
    EMPTY_FIELDS,
    Diagnostic,
    FieldSet,
    join_message,
    render_with_fields,
    sprint,
    sprintf,
    stringify,
)
from kvlog.finder import FindResult, MessageFinder, SequenceResult
from kvlog.interfaces import Logger, Printer
from kvlog.levels import Level, parse_level
from kvlog.sinks import MemorySink, flush_all

if TYPE_CHECKING:
    from kvlog.sinks import SinkRegistry
    from kvlog.structured import LoggerConfig, StructuredLogger

logger = logging.getLogger(__name__)

_CAPTURE_DROPPED_KEYS = ("timestamp", "ts")


@dataclass(frozen=True)
class LogEntry:
    """A captured log entry.

    Attributes:
        level: Level the entry was logged at
        message: Rendered message including any field block
    """
    level: Level
    message: str


class EntryStore:
    """
    Append-only, lock-guarded list of LogEntry records.

    The single lock serializes every append and every read, so entries appear
    in the order their appends acquired it.
    """

    def __init__(self, entries: Optional[Sequence[LogEntry]] = None):
        self._lock = threading.Lock()
        self._entries: List[LogEntry] = list(entries or [])

    def append(self, *entries: LogEntry) -> None:
        with self._lock:
            self._entries.extend(entries)

    def snapshot(self) -> List[LogEntry]:
        with self._lock:
            return list(self._entries)

    def clear(self) -> None:
        with self._lock:
            self._entries = []

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class Scavenger(Logger):
    """
    Logger that collects all log messages for later queries.

    Attributes:
        printers: Observers notified of every recorded entry, in order
    """

    def __init__(self, *printers: Printer):
        self._store = EntryStore()
        self._fields: FieldSet = EMPTY_FIELDS
        self.printers: Tuple[Printer, ...] = tuple(printers)

    @classmethod
    def _derive(cls, store: EntryStore, fields: FieldSet, printers: Tuple[Printer, ...]) -> "Scavenger":
        scavenger = cls.__new__(cls)
        scavenger._store = store
        scavenger._fields = fields
        scavenger.printers = tuple(printers)
        return scavenger

    @property
    def fields(self) -> FieldSet:
        return self._fields

    def _record(self, level: Level, message: str, diagnostics: Sequence[Diagnostic] = ()) -> None:
        entries = [LogEntry(d.level, d.render()) for d in diagnostics]
        entries.append(LogEntry(level, message))
        self._publish(entries)

    def _publish(self, entries: List[LogEntry]) -> None:
        # Diagnostics and the entry they belong to are appended together.
        self._store.append(*entries)
        # Printers run outside the store lock so they may log back into it.
        for entry in entries:
            for printer in self.printers:
                printer.print(entry.level, entry.message)

    # Logger primitives

    def new_logger_with(self, *key_vals: Any) -> "Scavenger":
        fields, split = self._fields.merge(key_vals)
        diagnostics = split.diagnostics()
        if diagnostics:
            self._publish([LogEntry(d.level, d.render()) for d in diagnostics])
        return self._derive(self._store, fields, self.printers)

    def log(self, level: Level, *args: Any) -> None:
        message, _ = render_with_fields(sprint(*args), self._fields)
        self._record(parse_level(level), message)

    def logf(self, level: Level, template: str, *args: Any) -> None:
        message, _ = render_with_fields(sprintf(template, *args), self._fields)
        self._record(parse_level(level), message)

    def logw(self, level: Level, message: str, *key_vals: Any) -> None:
        rendered, diagnostics = render_with_fields(message, self._fields, key_vals)
        self._record(parse_level(level), rendered, diagnostics)

    def level_enabled(self, level: Level) -> bool:
        return True

    def flush(self) -> None:
        """
        Call ``sync`` on every printer that provides it.

        Every printer is synced even when an earlier one fails.

        Raises:
            Exception: The first error raised by a printer
        """
        flush_all(list(self.printers), "sync")

    # Store access

    def reset(self) -> None:
        """Clear all collected messages, for every logger sharing the store."""
        self._store.clear()

    def entries(self) -> List[LogEntry]:
        """Return a copy of the collected entries."""
        return self._store.snapshot()

    def __len__(self) -> int:
        return len(self._store)

    def dump(self) -> str:
        """Render all entries as ``<LEVEL>\\t<message>`` lines."""
        return "".join(f"{e.level.value}\t{e.message}\n" for e in self._store.snapshot())

    def filter(self, predicate: Optional[Callable[[Level, str], bool]]) -> "Scavenger":
        """
        Create a new, independent Scavenger holding the matching entries.

        Args:
            predicate: Called as ``predicate(level, message)``; None keeps all

        Returns:
            Scavenger with its own store, unaffected by later changes to this one
        """
        kept = [e for e in self._store.snapshot() if predicate is None or predicate(e.level, e.message)]
        scavenger = Scavenger()
        scavenger._store = EntryStore(kept)
        return scavenger

    def finder(self) -> MessageFinder:
        return MessageFinder(self._store)

    # Convenience queries

    def string_exists(self, substr: str) -> bool:
        return self.finder().find_string(substr).found

    def unique_string_exists(self, substr: str) -> bool:
        return self.finder().find_unique_string(substr).found

    def find_string_sequence(self, substrs: Sequence[str]) -> SequenceResult:
        return self.finder().find_string_sequence(substrs)

    def regexp_exists(self, pattern: str) -> bool:
        return self.finder().find_regexp(pattern).found

    def unique_regexp_exists(self, pattern: str) -> bool:
        return self.finder().find_unique_regexp(pattern).found

    def find_regexp_sequence(self, patterns: Sequence[str]) -> SequenceResult:
        return self.finder().find_regexp_sequence(patterns)

    def exists(self, pattern: str) -> bool:
        """Whether any message matches; ``rex:`` patterns are regular expressions."""
        return self.finder().find(pattern).found

    def unique_exists(self, pattern: str) -> bool:
        return self.finder().find_unique(pattern).found

    def find(self, pattern: str) -> FindResult:
        return self.finder().find(pattern)

    def find_sequence(self, patterns: Sequence[str]) -> SequenceResult:
        return self.finder().find_sequence(patterns)

    # Structured backend bridge

    def structured_capture(
        self,
        registry: "SinkRegistry",
        config: Optional["LoggerConfig"] = None,
    ) -> "StructuredLogger":
        """
        Build a StructuredLogger whose output lands in this Scavenger.

        The structured backend writes JSON lines into a MemorySink that is
        registered in ``registry`` only while the backend is being built.
        Each line is parsed back into a LogEntry: ``level`` and ``event``
        become the entry's level and message, the remaining keys its field
        block.

        Args:
            registry: Registry used to resolve the temporary memory URI
            config: Base configuration; development defaults when omitted

        Returns:
            StructuredLogger bridged into this Scavenger's store
        """
        from kvlog.structured import LoggerConfig

        base = config or LoggerConfig.development()
        sink = MemorySink(on_line=self._collect_line)
        with registry.scoped(sink, prefix="scavenger") as uri:
            capture_config = dataclasses.replace(
                base,
                output_paths=[uri],
                renderer="json",
                timestamp_format=None,
                include_trace_context=False,
            )
            structured = capture_config.build(registry)
        logger.debug("Bridged structured logger into scavenger via %s", uri)
        return structured

    def _collect_line(self, line: str) -> None:
        if not line:
            return
        try:
            event = json.loads(line)
        except ValueError:
            self._record(Level.ERROR, line)
            return
        if not isinstance(event, dict):
            self._record(Level.ERROR, line)
            return
        try:
            level = parse_level(event.pop("level", Level.INFO))
        except InvalidLevelError:
            level = Level.ERROR
        message = str(event.pop("event", ""))
        for key in _CAPTURE_DROPPED_KEYS:
            event.pop(key, None)
        # Keep the order the structured backend emitted the fields in.
        block = FieldSet((key, stringify(value)) for key, value in event.items()).render()
        self._record(level, join_message(message, block))
