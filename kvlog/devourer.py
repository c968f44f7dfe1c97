"""No-op logging backend."""

from typing import Any

from kvlog.interfaces import Logger
from kvlog.levels import Level


class Devourer(Logger):
    """Logger that devours all messages and outputs nothing."""

    def new_logger_with(self, *key_vals: Any) -> Logger:
        return Devourer()

    def log(self, level: Level, *args: Any) -> None:
        pass

    def logf(self, level: Level, template: str, *args: Any) -> None:
        pass

    def logw(self, level: Level, message: str, *key_vals: Any) -> None:
        pass

    def level_enabled(self, level: Level) -> bool:
        return False

    def flush(self) -> None:
        pass
