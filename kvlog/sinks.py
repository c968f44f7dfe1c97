"""
kvlog Output Sinks

Provides the writable destinations a backend can be pointed at:

- ``MemorySink``: in-process buffer, optionally forwarding complete lines to a
  callback
- ``SinkRegistry``: explicit registry that resolves ``memory://<name>`` URIs
  to registered MemorySinks, with scoped registration
- ``MultiWriter``: fan-out writer used when a backend has several outputs
- ``open_output``: resolves an output path (``stdout``, ``stderr``, a memory
  URI or a file path) to a writable object
"""

import io
import itertools
import logging
import sys
import threading
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterator, List, Optional, TextIO
from urllib.parse import urlparse

from kvlog.exceptions import ConfigurationException

logger = logging.getLogger(__name__)

MEMORY_SCHEME = "memory"


class MemorySink:
    """
    Thread-safe in-memory text sink.

    Without ``on_line`` everything written is kept in an internal buffer for
    ``getvalue``. With ``on_line`` each complete line (without its newline) is
    handed to the callback as soon as it has been written and is not kept;
    only an unfinished trailing line is held until its newline arrives.

    Attributes:
        on_line: Optional callback receiving every complete line
    """

    def __init__(self, on_line: Optional[Callable[[str], None]] = None):
        self.on_line = on_line
        self._lock = threading.Lock()
        self._buffer = io.StringIO()
        self._pending = ""
        self.closed = False

    def write(self, data: str) -> int:
        with self._lock:
            if self.on_line is None:
                self._buffer.write(data)
                return len(data)
            self._pending += data
            *lines, self._pending = self._pending.split("\n")
        for line in lines:
            self.on_line(line)
        return len(data)

    def flush(self) -> None:
        pass

    def getvalue(self) -> str:
        with self._lock:
            return self._buffer.getvalue()

    def reset(self) -> None:
        with self._lock:
            self._buffer = io.StringIO()
            self._pending = ""

    def close(self) -> None:
        self.closed = True


class SinkRegistry:
    """
    Registry mapping names to MemorySinks for ``memory://`` output paths.

    The registry is an explicit object handed to whoever builds a backend;
    there is no process-wide instance. Registrations are meant to be
    short-lived: ``scoped`` registers a sink under a generated unique name for
    exactly as long as a backend needs to resolve it.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._sinks: Dict[str, MemorySink] = {}
        self._counter = itertools.count(1)

    def register(self, name: str, sink: MemorySink) -> str:
        """
        Register a sink under a name.

        Args:
            name: Registration name, used as the URI host
            sink: Sink to register

        Returns:
            The ``memory://<name>`` URI resolving to the sink

        Raises:
            ConfigurationException: If the name is empty or already taken
        """
        if not name:
            raise ConfigurationException("memory sink name must not be empty")
        with self._lock:
            if name in self._sinks:
                raise ConfigurationException(
                    f"memory sink already registered: {name}",
                    details={"name": name},
                )
            self._sinks[name] = sink
        logger.debug("Registered memory sink %s", name)
        return f"{MEMORY_SCHEME}://{name}"

    def unregister(self, name: str) -> None:
        with self._lock:
            self._sinks.pop(name, None)
        logger.debug("Unregistered memory sink %s", name)

    def next_name(self, prefix: str = "sink") -> str:
        return f"{prefix}-{next(self._counter)}"

    @contextmanager
    def scoped(self, sink: MemorySink, prefix: str = "sink") -> Iterator[str]:
        """
        Register a sink under a generated name for the duration of a block.

        Example:
            >>> with registry.scoped(sink) as uri:
            ...     logger = config.build(registry)
        """
        name = self.next_name(prefix)
        uri = self.register(name, sink)
        try:
            yield uri
        finally:
            self.unregister(name)

    def resolve(self, uri: str) -> MemorySink:
        """
        Look up the sink a ``memory://`` URI refers to.

        Raises:
            ConfigurationException: If the URI is malformed or not registered
        """
        parsed = urlparse(uri)
        if parsed.scheme != MEMORY_SCHEME or not parsed.netloc:
            raise ConfigurationException(f"invalid memory sink uri: {uri}", details={"uri": uri})
        with self._lock:
            sink = self._sinks.get(parsed.netloc)
        if sink is None:
            raise ConfigurationException(
                f"memory sink not registered: {parsed.netloc}",
                details={"uri": uri},
            )
        return sink

    def __contains__(self, name: str) -> bool:
        with self._lock:
            return name in self._sinks

    def __len__(self) -> int:
        with self._lock:
            return len(self._sinks)


class MultiWriter:
    """Writes to several outputs; ``flush`` attempts all of them."""

    def __init__(self, outputs: List[Any]):
        self.outputs = list(outputs)

    def write(self, data: str) -> int:
        for output in self.outputs:
            output.write(data)
        return len(data)

    def flush(self) -> None:
        flush_all(self.outputs, "flush")


def flush_all(targets: List[Any], method: str) -> None:
    """
    Call ``method`` on every target that has it.

    Every target is attempted even when an earlier one fails; the first
    error is raised once all of them have been tried.

    Args:
        targets: Objects to flush
        method: Name of the flush method (``flush`` or ``sync``)
    """
    first_error: Optional[BaseException] = None
    for target in targets:
        fn = getattr(target, method, None)
        if not callable(fn):
            continue
        try:
            fn()
        except Exception as error:
            if first_error is None:
                first_error = error
            else:
                logger.warning("Additional %s failure on %r: %s", method, target, error)
    if first_error is not None:
        raise first_error


def open_output(path: str, registry: Optional[SinkRegistry] = None) -> TextIO:
    """
    Resolve an output path to a writable text object.

    Args:
        path: ``stdout``, ``stderr``, ``memory://<name>`` or a file path
        registry: Registry used to resolve memory URIs

    Returns:
        Writable object with ``write`` and ``flush``

    Raises:
        ConfigurationException: If the output cannot be opened
    """
    if path == "stdout":
        return sys.stdout
    if path == "stderr":
        return sys.stderr
    if path.startswith(f"{MEMORY_SCHEME}://"):
        if registry is None:
            raise ConfigurationException(
                "memory output requires a sink registry",
                details={"path": path},
            )
        return registry.resolve(path)
    try:
        return open(path, "a", encoding="utf-8")
    except OSError as error:
        raise ConfigurationException(
            f"cannot open log output {path}: {error}",
            details={"path": path, "error_type": type(error).__name__},
        ) from error
