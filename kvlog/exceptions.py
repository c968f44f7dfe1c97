"""Custom exceptions for kvlog."""

from typing import Any, Dict, Optional


class KvlogException(Exception):
    """Base exception for all kvlog errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.details = details or {}


class UsageError(KvlogException):
    """Raised when the library is called in a way that can never succeed.

    Usage errors indicate a programming mistake in the caller (a malformed
    search pattern, an unknown level name) and are raised immediately rather
    than being recorded as log output.
    """
    pass


class InvalidPatternError(UsageError, ValueError):
    """Raised when a search pattern is not a valid regular expression."""
    pass


class InvalidLevelError(UsageError, ValueError):
    """Raised when a level name is not one of DEBUG, INFO, WARN or ERROR."""
    pass


class ConfigurationException(KvlogException):
    """Raised when a logger backend cannot be built from its configuration."""
    pass


class FlushError(KvlogException):
    """Raised when a backend has nothing it can flush to."""
    pass
