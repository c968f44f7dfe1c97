"""
kvlog Structured Backend

Provides the production-grade backend built on structlog. ``LoggerConfig``
describes the processor chain and outputs; ``build`` wires a structlog bound
logger to them without touching structlog's global configuration, so several
differently configured backends can coexist in one process.
"""

import json
import logging
import sys
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

import structlog
from opentelemetry import trace

from kvlog.console import is_interactive_terminal
from kvlog.exceptions import ConfigurationException
from kvlog.fields import FieldSplit, split_fields, sprint, sprintf, stringify, strip_newline
from kvlog.interfaces import Logger
from kvlog.levels import Level, parse_level
from kvlog.sinks import MultiWriter, SinkRegistry, flush_all, open_output

logger = logging.getLogger(__name__)

RENDERERS = ("json", "console")
EPOCH_MILLIS = "epoch_millis"
DEVELOPMENT_TIME_FORMAT = "%d|%H:%M:%S.%f"

# Keys the bound-logger API or the processor chain owns.
RESERVED_KEYS = frozenset({"self", "event", "level", "timestamp", "ts", "exc_info", "stack_info"})
RESERVED_KEY_PREFIX = "fields."


@dataclass
class LoggerConfig:
    """
    Configuration for a StructuredLogger.

    Attributes:
        level: Lowest level that is emitted
        output_paths: Where lines go: ``stdout``, ``stderr``, ``memory://<name>``
            or a file path
        renderer: ``json`` for one JSON object per line, ``console`` for
            structlog's human-readable renderer
        colors: Whether the console renderer uses ANSI colours
        timestamp_format: ``iso``, ``epoch_millis``, a strftime format, or
            None for no timestamp
        include_trace_context: Add OpenTelemetry trace and span ids when a
            span is recording
    """
    level: Level = Level.INFO
    output_paths: List[str] = field(default_factory=lambda: ["stderr"])
    renderer: str = "json"
    colors: bool = False
    timestamp_format: Optional[str] = "iso"
    include_trace_context: bool = False

    @classmethod
    def development(cls, timestamp_format: str = DEVELOPMENT_TIME_FORMAT) -> "LoggerConfig":
        """Debug level, console renderer, colours when stdout is a terminal."""
        return cls(
            level=Level.DEBUG,
            output_paths=["stderr"],
            renderer="console",
            colors=is_interactive_terminal(sys.stdout),
            timestamp_format=timestamp_format,
        )

    @classmethod
    def production(cls) -> "LoggerConfig":
        """Info level, JSON lines with epoch millisecond timestamps and trace ids."""
        return cls(
            level=Level.INFO,
            output_paths=["stderr"],
            renderer="json",
            timestamp_format=EPOCH_MILLIS,
            include_trace_context=True,
        )

    def processors(self) -> List[Any]:
        """
        Build the structlog processor chain for this configuration.

        Returns:
            Processors ending with the configured renderer
        """
        if self.renderer not in RENDERERS:
            raise ConfigurationException(
                f"unknown renderer: {self.renderer}",
                details={"renderer": self.renderer, "allowed": list(RENDERERS)},
            )

        processors: List[Any] = [structlog.processors.add_log_level]
        if self.timestamp_format == EPOCH_MILLIS:
            processors.append(add_epoch_millis)
        elif self.timestamp_format:
            processors.append(structlog.processors.TimeStamper(fmt=self.timestamp_format))
        if self.include_trace_context:
            processors.append(add_trace_context)
        processors.extend([
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
        ])
        if self.renderer == "json":
            processors.append(structlog.processors.JSONRenderer())
        else:
            processors.append(structlog.dev.ConsoleRenderer(colors=self.colors))
        return processors

    def build(self, registry: Optional[SinkRegistry] = None) -> "StructuredLogger":
        """
        Build a StructuredLogger from this configuration.

        Args:
            registry: Registry used to resolve ``memory://`` outputs

        Returns:
            Ready-to-use StructuredLogger

        Raises:
            ConfigurationException: If an output cannot be opened or the
                configuration is invalid
        """
        level = parse_level(self.level)
        if not self.output_paths:
            raise ConfigurationException("at least one output path is required")
        outputs = [open_output(path, registry) for path in self.output_paths]
        writer = outputs[0] if len(outputs) == 1 else MultiWriter(outputs)

        bound = structlog.wrap_logger(
            structlog.PrintLogger(file=writer),
            processors=self.processors(),
            wrapper_class=structlog.make_filtering_bound_logger(level.severity),
            context_class=dict,
            cache_logger_on_first_use=False,
        ).bind()
        logger.debug(
            "Built structured logger: level=%s outputs=%s renderer=%s",
            level.value, self.output_paths, self.renderer,
        )
        return StructuredLogger(bound, level, outputs)

    def must_build(self, registry: Optional[SinkRegistry] = None) -> "StructuredLogger":
        """Same as ``build``; exists for call sites that treat failure as fatal."""
        return self.build(registry)


def development_config() -> LoggerConfig:
    return LoggerConfig.development()


def production_config() -> LoggerConfig:
    return LoggerConfig.production()


def add_epoch_millis(logger, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Add a ``ts`` field with the current Unix time in milliseconds."""
    event_dict["ts"] = int(time.time() * 1000)
    return event_dict


def add_trace_context(logger, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """
    Add OpenTelemetry trace context to log entries.

    Args:
        logger: Logger instance
        method_name: Log method name
        event_dict: Event dictionary to process

    Returns:
        Event dictionary with trace context
    """
    span = trace.get_current_span()
    if span and span.is_recording():
        span_context = span.get_span_context()
        if "trace_id" not in event_dict:
            event_dict["trace_id"] = format(span_context.trace_id, "032x")
        if "span_id" not in event_dict:
            event_dict["span_id"] = format(span_context.span_id, "016x")
    return event_dict


def event_fields(pairs: List[Tuple[str, Any]]) -> Dict[str, Any]:
    """
    Turn user key/value pairs into keyword arguments for a bound logger.

    Keys in RESERVED_KEYS are prefixed with ``fields.`` so they can neither
    collide with bound-logger parameters nor be overwritten by processors.
    Values the JSON renderer cannot encode are replaced by their field-block
    text.

    Args:
        pairs: Well-formed (key, value) pairs in call order

    Returns:
        Ordered dict of safe keys to renderable values, last write wins
    """
    result: Dict[str, Any] = {}
    for key, value in pairs:
        if key in RESERVED_KEYS:
            key = RESERVED_KEY_PREFIX + key
        result[key] = _renderable(value)
    return result


def _renderable(value: Any) -> Any:
    try:
        json.dumps(value, default=repr)
    except Exception:
        return stringify(value)
    return value


class StructuredLogger(Logger):
    """
    Logger backed by a structlog bound logger.

    Context fields live in the bound logger's context: ``new_logger_with``
    rebinds a fresh, key-sorted context so the parent is never modified.
    Per-call fields are passed with the event, after the context fields.
    Field keys the structlog API reserves are emitted as ``fields.<key>``.

    Attributes:
        level: Lowest level that is emitted
    """

    def __init__(self, bound: Any, level: Level, outputs: List[Any], context: Optional[Dict[str, Any]] = None):
        self._bound = bound
        self.level = level
        self._outputs = outputs
        self._context: Dict[str, Any] = dict(context or {})

    @property
    def bound_logger(self) -> Any:
        """The underlying structlog bound logger."""
        return self._bound

    def _report(self, split: FieldSplit) -> None:
        for diagnostic in split.diagnostics():
            self._bound.error(diagnostic.message, **event_fields([(diagnostic.key, diagnostic.value)]))

    def _emit(self, level: Level, message: str, pairs: List[Tuple[str, Any]]) -> None:
        bound = self._bound.bind(**event_fields(pairs)) if pairs else self._bound
        emit = getattr(bound, level.method_name)
        emit(message)

    def new_logger_with(self, *key_vals: Any) -> "StructuredLogger":
        split = split_fields(key_vals)
        self._report(split)
        merged = dict(self._context)
        merged.update(event_fields(split.pairs))
        context = dict(sorted(merged.items()))
        return StructuredLogger(self._bound.new(**context), self.level, self._outputs, context)

    def log(self, level: Level, *args: Any) -> None:
        level = parse_level(level)
        if self.level_enabled(level):
            self._emit(level, sprint(*args), [])

    def logf(self, level: Level, template: str, *args: Any) -> None:
        level = parse_level(level)
        if self.level_enabled(level):
            self._emit(level, sprintf(template, *args), [])

    def logw(self, level: Level, message: str, *key_vals: Any) -> None:
        level = parse_level(level)
        split = split_fields(key_vals)
        self._report(split)
        if self.level_enabled(level):
            self._emit(level, strip_newline(message), split.pairs)

    def level_enabled(self, level: Level) -> bool:
        return parse_level(level).severity >= self.level.severity

    def flush(self) -> None:
        """Flush every output; the first error is raised after all were tried."""
        flush_all(self._outputs, "flush")
