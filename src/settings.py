"""Centralized settings for the oracle alert engine.

Uses pydantic-settings to load from environment variables (prefixed
ORACLE_ALERTS_) with defaults matching AlertConfig.
"""

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Alert engine settings loaded from environment variables."""

    # --- Engine windows (seconds) ---
    dedup_window_seconds: int = 3600
    suppression_retention_seconds: int = 86400
    cleanup_interval_seconds: int = 3600
    recent_window_seconds: int = 86400

    # --- Feature flags ---
    enable_escalation: bool = True
    auto_cleanup: bool = True

    # --- Notification ---
    default_channels: list[str] = ["email"]

    # --- Logging ---
    log_level: str = "INFO"
    log_format: str = "json"

    model_config = {
        "env_prefix": "ORACLE_ALERTS_",
        "env_file": ".env",
        "extra": "ignore",
    }


@lru_cache
def get_settings() -> Settings:
    """Get cached settings singleton."""
    return Settings()
