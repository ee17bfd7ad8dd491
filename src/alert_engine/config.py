"""Alert Management Engine - Configuration."""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import List

logger = logging.getLogger(__name__)


class AlertSeverity(str, Enum):
    """Alert severity levels."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class AlertStatus(str, Enum):
    """Alert lifecycle status."""

    ACTIVE = "active"
    ACKNOWLEDGED = "acknowledged"
    RESOLVED = "resolved"
    SUPPRESSED = "suppressed"
    ESCALATED = "escalated"


class ChannelType(str, Enum):
    """Notification channel classes the engine can request."""

    EMAIL = "email"
    SMS = "sms"
    WEBHOOK = "webhook"
    SLACK = "slack"
    TELEGRAM = "telegram"
    PUSH = "push"


class ConditionOperator(str, Enum):
    """Operators usable in a suppression condition."""

    EQUALS = "equals"
    CONTAINS = "contains"
    IN = "in"
    GT = "gt"
    LT = "lt"


class NotificationStatus(str, Enum):
    """Outcome of a notification attempt."""

    SENT = "sent"
    FAILED = "failed"
    RETRYING = "retrying"


# Statuses after which no escalation level may fire
HANDLED_STATUSES = frozenset({AlertStatus.ACKNOWLEDGED, AlertStatus.RESOLVED})

# Legal lifecycle transitions; RESOLVED and SUPPRESSED are terminal
ALLOWED_TRANSITIONS = {
    AlertStatus.ACTIVE: frozenset(
        {AlertStatus.ACKNOWLEDGED, AlertStatus.RESOLVED, AlertStatus.ESCALATED}
    ),
    AlertStatus.ESCALATED: frozenset({AlertStatus.ACKNOWLEDGED, AlertStatus.RESOLVED}),
    AlertStatus.ACKNOWLEDGED: frozenset({AlertStatus.RESOLVED}),
    AlertStatus.RESOLVED: frozenset(),
    AlertStatus.SUPPRESSED: frozenset(),
}


# ── Default Constants ────────────────────────────────────────────────

DEFAULT_DEDUP_WINDOW_SECONDS = 3600
DEFAULT_SUPPRESSION_RETENTION_SECONDS = 24 * 3600
DEFAULT_CLEANUP_INTERVAL_SECONDS = 3600
DEFAULT_RECENT_WINDOW_SECONDS = 24 * 3600


@dataclass
class AlertConfig:
    """Engine-wide alerting configuration."""

    dedup_window_seconds: int = DEFAULT_DEDUP_WINDOW_SECONDS
    suppression_retention_seconds: int = DEFAULT_SUPPRESSION_RETENTION_SECONDS
    cleanup_interval_seconds: int = DEFAULT_CLEANUP_INTERVAL_SECONDS
    recent_window_seconds: int = DEFAULT_RECENT_WINDOW_SECONDS
    enable_escalation: bool = True
    auto_cleanup: bool = True
    default_channels: List[ChannelType] = field(
        default_factory=lambda: [ChannelType.EMAIL]
    )

    @classmethod
    def from_settings(cls, settings) -> "AlertConfig":
        """Build an AlertConfig from environment-backed Settings."""
        return cls(
            dedup_window_seconds=settings.dedup_window_seconds,
            suppression_retention_seconds=settings.suppression_retention_seconds,
            cleanup_interval_seconds=settings.cleanup_interval_seconds,
            recent_window_seconds=settings.recent_window_seconds,
            enable_escalation=settings.enable_escalation,
            auto_cleanup=settings.auto_cleanup,
            default_channels=[ChannelType(c) for c in settings.default_channels],
        )
