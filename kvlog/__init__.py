"""
kvlog - Structured Logging Facade

A small logging capability with interchangeable backends and an in-memory
capture backend for assertions in tests.

Key features:
- One Logger contract: plain, printf-style and key/value logging per level
- Deterministic field blocks: {"key1": value1, "key2": value2}
- Scavenger: records every entry and answers substring, regular expression
  and ordered-sequence queries about them
- Backends: ConsoleLogger (human output), StructuredLogger (structlog),
  Devourer (discards everything)
- Environment-driven configuration via LoggingSettings and build_logger
"""

from .levels import Level, parse_level
from .exceptions import (
    KvlogException,
    UsageError,
    InvalidPatternError,
    InvalidLevelError,
    ConfigurationException,
    FlushError,
)
from .fields import Field, FieldSet
from .interfaces import Logger, Printer
from .finder import FindResult, SequenceResult, MessageFinder
from .scavenger import LogEntry, Scavenger
from .console import (
    ConsoleLogger,
    with_bare_mode,
    with_color,
    with_extra_caller_skip,
    with_fields,
    with_level,
    with_stream,
    with_time_format,
    without_color,
)
from .structured import LoggerConfig, StructuredLogger, development_config, production_config
from .devourer import Devourer
from .sinks import MemorySink, SinkRegistry
from .settings import LoggingSettings, build_logger, get_settings, reset_settings

__all__ = [
    # Core
    'Level',
    'parse_level',
    'Logger',
    'Printer',
    'Field',
    'FieldSet',

    # Errors
    'KvlogException',
    'UsageError',
    'InvalidPatternError',
    'InvalidLevelError',
    'ConfigurationException',
    'FlushError',

    # Capture and queries
    'Scavenger',
    'LogEntry',
    'MessageFinder',
    'FindResult',
    'SequenceResult',

    # Backends
    'ConsoleLogger',
    'with_bare_mode',
    'with_color',
    'with_extra_caller_skip',
    'with_fields',
    'with_level',
    'with_stream',
    'with_time_format',
    'without_color',
    'StructuredLogger',
    'LoggerConfig',
    'development_config',
    'production_config',
    'Devourer',
    'MemorySink',
    'SinkRegistry',

    # Configuration
    'LoggingSettings',
    'get_settings',
    'reset_settings',
    'build_logger',
]
