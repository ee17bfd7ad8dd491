"""Logging Configuration.

Log levels, output formats and the LoggingConfig used by configure_logging.
"""

from dataclasses import dataclass, field
from enum import Enum


class LogLevel(str, Enum):
    """Log level options."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class LogFormat(str, Enum):
    """Log output format."""
    JSON = "json"
    CONSOLE = "console"


@dataclass
class LoggingConfig:
    """Structured logging configuration for the alert engine."""

    level: LogLevel = LogLevel.INFO
    format: LogFormat = LogFormat.JSON
    include_caller: bool = True
    use_colors: bool = True
    service_name: str = "oracle-alerts"
    # Loggers capped at WARNING regardless of level
    quiet_loggers: list[str] = field(default_factory=lambda: ["urllib3", "asyncio"])

    @classmethod
    def from_settings(cls, settings, **overrides) -> "LoggingConfig":
        """Build from environment-backed Settings; unknown values fall back to defaults."""
        level = str(settings.log_level).upper()
        fmt = str(settings.log_format).lower()
        values = {
            "level": LogLevel(level) if level in LogLevel.__members__ else LogLevel.INFO,
            "format": LogFormat(fmt) if fmt in [f.value for f in LogFormat] else LogFormat.JSON,
        }
        values.update(overrides)
        return cls(**values)


DEFAULT_LOGGING_CONFIG = LoggingConfig()
