"""
kvlog Configuration

Environment-driven configuration using pydantic-settings, plus the factory
that turns it into a ready-to-use Logger.

ARCHITECTURAL PRINCIPLES:
- Only this module reads environment variables
- Backends receive their configuration explicitly (options or LoggerConfig)
- Invalid values fail early with ConfigurationException
"""

import logging
from enum import Enum
from typing import List, Optional

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from kvlog.console import ConsoleLogger, Option, with_bare_mode, with_color, with_level, with_stream, without_color
from kvlog.devourer import Devourer
from kvlog.exceptions import ConfigurationException, InvalidLevelError
from kvlog.interfaces import Logger
from kvlog.levels import Level, parse_level
from kvlog.sinks import SinkRegistry, open_output
from kvlog.structured import LoggerConfig

logger = logging.getLogger(__name__)


class Environment(str, Enum):
    DEVELOPMENT = "development"
    PRODUCTION = "production"
    TESTING = "testing"


class Backend(str, Enum):
    CONSOLE = "console"
    STRUCTURED = "structured"
    DEVOURER = "devourer"


class ColorMode(str, Enum):
    AUTO = "auto"
    ALWAYS = "always"
    NEVER = "never"


class LoggingSettings(BaseSettings):
    """Logging configuration"""
    environment: Environment = Field(default=Environment.DEVELOPMENT, validation_alias="ENVIRONMENT")
    level: Level = Field(default=Level.INFO, validation_alias="LOG_LEVEL")
    backend: Backend = Field(default=Backend.CONSOLE, validation_alias="LOG_BACKEND")
    color: ColorMode = Field(default=ColorMode.AUTO, validation_alias="LOG_COLOR")
    bare: bool = Field(default=False, validation_alias="LOG_BARE")
    output: str = Field(default="stderr", validation_alias="LOG_OUTPUT")

    # Structured logging
    include_trace_id: bool = Field(default=True, validation_alias="INCLUDE_TRACE_ID")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="",
        extra="ignore",
        populate_by_name=True,
    )

    @field_validator("level", mode="before")
    @classmethod
    def validate_level(cls, v):
        """Accept any case and the stdlib WARNING spelling"""
        try:
            return parse_level(v)
        except InvalidLevelError as e:
            raise ValueError(str(e)) from e

    @field_validator("environment", "backend", "color", mode="before")
    @classmethod
    def normalize_case(cls, v):
        return v.strip().lower() if isinstance(v, str) else v

    def is_production(self) -> bool:
        return self.environment == Environment.PRODUCTION

    def console_options(self) -> List[Option]:
        """Translate these settings into ConsoleLogger options."""
        options: List[Option] = [with_level(self.level)]
        if self.color == ColorMode.ALWAYS:
            options.append(with_color())
        elif self.color == ColorMode.NEVER:
            options.append(without_color())
        if self.bare:
            options.append(with_bare_mode())
        return options

    def logger_config(self) -> LoggerConfig:
        """Translate these settings into a structured backend configuration."""
        config = LoggerConfig.production() if self.is_production() else LoggerConfig.development()
        config.level = self.level
        config.output_paths = [self.output]
        config.include_trace_context = self.include_trace_id
        if self.color == ColorMode.ALWAYS:
            config.colors = True
        elif self.color == ColorMode.NEVER:
            config.colors = False
        return config


# =============================================================================
# SINGLETON MANAGEMENT
# =============================================================================

_settings_instance: Optional[LoggingSettings] = None


def get_settings() -> LoggingSettings:
    """
    Get global settings instance (singleton pattern).

    Raises:
        ConfigurationException: If settings validation fails
    """
    global _settings_instance
    if _settings_instance is None:
        try:
            _settings_instance = LoggingSettings()
        except ValidationError as e:
            raise ConfigurationException(
                f"Settings initialization failed: {e}",
                details={"errors": [err["msg"] for err in e.errors()]},
            ) from e
        logger.debug(
            "Loaded logging settings: environment=%s backend=%s level=%s",
            _settings_instance.environment.value,
            _settings_instance.backend.value,
            _settings_instance.level.value,
        )
    return _settings_instance


def reset_settings() -> None:
    """
    Reset settings instance (primarily for testing).

    Forces recreation of settings on next get_settings() call.
    """
    global _settings_instance
    _settings_instance = None


def build_logger(settings: Optional[LoggingSettings] = None, registry: Optional[SinkRegistry] = None) -> Logger:
    """
    Build the Logger selected by the settings.

    The production environment always gets the structured JSON backend;
    otherwise ``backend`` decides.

    Args:
        settings: Settings to use, ``get_settings()`` when omitted
        registry: Registry used to resolve ``memory://`` outputs

    Returns:
        ConsoleLogger, StructuredLogger or Devourer

    Raises:
        ConfigurationException: If the settings are invalid or the output
            cannot be opened
    """
    settings = settings or get_settings()

    if settings.backend == Backend.DEVOURER and not settings.is_production():
        return Devourer()
    if settings.is_production() or settings.backend == Backend.STRUCTURED:
        return settings.logger_config().build(registry)

    stream = open_output(settings.output, registry)
    return ConsoleLogger(with_stream(stream), *settings.console_options())
