"""Alert Management Engine.

Turns anomaly and health signals from the oracle monitors into
deduplicated, suppressible alerts with timed, policy-driven escalation.
"""

from .config import (
    AlertSeverity,
    AlertStatus,
    ChannelType,
    ConditionOperator,
    NotificationStatus,
    AlertConfig,
)
from .clock import Clock, SystemClock, VirtualClock, TimerHandle
from .exceptions import AlertEngineError, ConfigurationError, InvalidAlertError
from .models import (
    Alert,
    AlertCandidate,
    AlertStats,
    EscalationLevel,
    EscalationPolicy,
    EscalationRecord,
    NotificationRecord,
    SuppressionCondition,
    SuppressionRule,
)
from .dedup import Deduplicator
from .suppression import SuppressionEngine
from .escalation import EscalationScheduler, DEFAULT_ESCALATION_LEVELS
from .notifications import DeliveryResult, NotificationDispatcher
from .manager import AlertManager

__all__ = [
    # Config
    "AlertSeverity",
    "AlertStatus",
    "ChannelType",
    "ConditionOperator",
    "NotificationStatus",
    "AlertConfig",
    # Clock
    "Clock",
    "SystemClock",
    "VirtualClock",
    "TimerHandle",
    # Errors
    "AlertEngineError",
    "ConfigurationError",
    "InvalidAlertError",
    # Models
    "Alert",
    "AlertCandidate",
    "AlertStats",
    "EscalationLevel",
    "EscalationPolicy",
    "EscalationRecord",
    "NotificationRecord",
    "SuppressionCondition",
    "SuppressionRule",
    # Components
    "Deduplicator",
    "SuppressionEngine",
    "EscalationScheduler",
    "DEFAULT_ESCALATION_LEVELS",
    "DeliveryResult",
    "NotificationDispatcher",
    # Manager
    "AlertManager",
]
