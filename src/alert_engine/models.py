"""Alert Management Engine - Data Models."""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from .config import (
    HANDLED_STATUSES,
    AlertSeverity,
    AlertStatus,
    ChannelType,
    ConditionOperator,
    NotificationStatus,
)


def generate_id(prefix: str) -> str:
    """Generate an opaque identifier such as ``alert-1f3c...``."""
    return f"{prefix}-{uuid.uuid4().hex[:12]}"


@dataclass(frozen=True)
class AlertCandidate:
    """A raw signal submitted by a producer, before dedup and suppression."""

    source: str
    severity: AlertSeverity
    title: str
    description: str = ""
    symbol: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class EscalationRecord:
    """One executed escalation level."""

    level: int
    timestamp: datetime
    reason: str
    notified_channels: List[ChannelType] = field(default_factory=list)


@dataclass
class NotificationRecord:
    """One notification attempt on a channel."""

    channel: ChannelType
    timestamp: datetime
    status: NotificationStatus
    error: Optional[str] = None


@dataclass
class Alert:
    """Represents a single alert in the system."""

    source: str
    severity: AlertSeverity
    title: str
    created_at: datetime
    updated_at: datetime
    alert_id: str = field(default_factory=lambda: generate_id("alert"))
    description: str = ""
    symbol: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    status: AlertStatus = AlertStatus.ACTIVE
    escalation_level: int = 0
    escalation_history: List[EscalationRecord] = field(default_factory=list)
    notification_history: List[NotificationRecord] = field(default_factory=list)
    acknowledged_at: Optional[datetime] = None
    acknowledged_by: Optional[str] = None
    resolved_at: Optional[datetime] = None
    resolved_by: Optional[str] = None
    suppression_reason: Optional[str] = None
    duplicate_of: Optional[str] = None

    @property
    def is_handled(self) -> bool:
        """True once an operator acknowledged or resolved the alert."""
        return self.status in HANDLED_STATUSES

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to a JSON-friendly dict."""

        def _ts(value: Optional[datetime]) -> Optional[str]:
            return value.isoformat() if value else None

        return {
            "alert_id": self.alert_id,
            "source": self.source,
            "symbol": self.symbol,
            "severity": self.severity.value,
            "status": self.status.value,
            "title": self.title,
            "description": self.description,
            "metadata": dict(self.metadata),
            "escalation_level": self.escalation_level,
            "escalation_history": [
                {
                    "level": r.level,
                    "timestamp": _ts(r.timestamp),
                    "reason": r.reason,
                    "notified_channels": [c.value for c in r.notified_channels],
                }
                for r in self.escalation_history
            ],
            "notification_history": [
                {
                    "channel": n.channel.value,
                    "timestamp": _ts(n.timestamp),
                    "status": n.status.value,
                    "error": n.error,
                }
                for n in self.notification_history
            ],
            "created_at": _ts(self.created_at),
            "updated_at": _ts(self.updated_at),
            "acknowledged_at": _ts(self.acknowledged_at),
            "acknowledged_by": self.acknowledged_by,
            "resolved_at": _ts(self.resolved_at),
            "resolved_by": self.resolved_by,
            "suppression_reason": self.suppression_reason,
            "duplicate_of": self.duplicate_of,
        }


@dataclass(frozen=True)
class SuppressionCondition:
    """A leaf predicate evaluated against a flattened alert view."""

    field: str
    operator: ConditionOperator
    value: Union[str, int, float, List[Any]]


@dataclass
class SuppressionRule:
    """An administrator-defined rule that drops matching alerts."""

    rule_id: str
    name: str
    conditions: List[SuppressionCondition]
    duration_ms: int
    reason: str
    created_at: datetime
    enabled: bool = True
    expires_at: Optional[datetime] = None

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and self.expires_at < now


@dataclass(frozen=True)
class EscalationLevel:
    """A single timed level in an escalation policy."""

    level: int
    name: str
    timeout_ms: int
    channels: List[ChannelType] = field(default_factory=list)
    require_acknowledgment: bool = True
    auto_escalate: bool = True
    notify_on_escalation: bool = False


@dataclass(frozen=True)
class EscalationPolicy:
    """An ordered chain of escalation levels."""

    policy_id: str
    name: str
    levels: List[EscalationLevel] = field(default_factory=list)
    default_channels: List[ChannelType] = field(default_factory=list)


@dataclass(frozen=True)
class DuplicateCheck:
    """Result of a deduplication lookup."""

    is_duplicate: bool
    count: int
    duplicate_of_key: Optional[str] = None


@dataclass(frozen=True)
class SuppressionDecision:
    """Result of evaluating suppression rules."""

    suppressed: bool
    rule_id: Optional[str] = None
    reason: Optional[str] = None


@dataclass
class AlertStats:
    """Aggregate statistics over every alert in the store."""

    total_alerts: int = 0
    active_alerts: int = 0
    recent_alerts: int = 0
    alerts_by_severity: Dict[str, int] = field(default_factory=dict)
    alerts_by_status: Dict[str, int] = field(default_factory=dict)
    alerts_by_source: Dict[str, int] = field(default_factory=dict)
    average_resolution_time_ms: float = 0.0
    median_resolution_time_ms: float = 0.0
    suppression_rate: float = 0.0
    escalation_rate: float = 0.0


def flatten_candidate(candidate: Union[AlertCandidate, Alert]) -> Dict[str, Any]:
    """Build the flattened dotted-key view used by suppression conditions.

    Top-level attributes map to their own name (enums to their value) and
    nested metadata maps to ``metadata.<key>[.<key>...]``. Keys whose value
    is None are omitted so that a condition on them never matches.
    """
    view: Dict[str, Any] = {
        "source": candidate.source,
        "severity": candidate.severity.value,
        "title": candidate.title,
        "description": candidate.description,
    }
    if candidate.symbol is not None:
        view["symbol"] = candidate.symbol
    if isinstance(candidate, Alert):
        view["status"] = candidate.status.value

    def _walk(prefix: str, value: Any) -> None:
        if isinstance(value, dict):
            for key, child in value.items():
                _walk(f"{prefix}.{key}", child)
        elif value is not None:
            view[prefix] = value

    _walk("metadata", candidate.metadata or {})
    return view
