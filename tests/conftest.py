"""Shared pytest fixtures and configuration for kvlog tests."""

import io

import pytest
import structlog

from kvlog.console import ConsoleLogger, with_bare_mode, with_stream
from kvlog.scavenger import Scavenger
from kvlog.settings import reset_settings
from kvlog.sinks import SinkRegistry


@pytest.fixture(autouse=True)
def clean_logging_state():
    """Reset structlog and cached settings around every test."""
    structlog.reset_defaults()
    reset_settings()
    yield
    structlog.reset_defaults()
    reset_settings()


@pytest.fixture
def scavenger():
    """Fresh root Scavenger without printers."""
    return Scavenger()


@pytest.fixture
def registry():
    """Empty memory sink registry."""
    return SinkRegistry()


@pytest.fixture
def stream():
    """In-memory text stream standing in for stderr."""
    return io.StringIO()


@pytest.fixture
def bare_console(stream):
    """Console logger writing bare lines to the ``stream`` fixture."""
    return ConsoleLogger(with_stream(stream), with_bare_mode())


@pytest.fixture
def populated_scavenger():
    """Scavenger holding a small, known sequence of entries."""
    sc = Scavenger()
    sc.info("starting")
    sc.warnw("hello", "foo", 100, "bar", "qux")
    sc.errorf("failed after %d attempts", 3)
    sc.debug("done")
    return sc
