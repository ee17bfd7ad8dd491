"""Structured Logging for the alert engine.

Provides JSON/console log formatting and contextvar-based binding of
alert identifiers to every log record emitted while an alert is processed.
"""

from src.logging_config.config import LogFormat, LoggingConfig, LogLevel
from src.logging_config.context import LogContext, get_context_dict
from src.logging_config.setup import configure_logging

__all__ = [
    "LogFormat",
    "LogLevel",
    "LoggingConfig",
    "LogContext",
    "configure_logging",
    "get_context_dict",
]
