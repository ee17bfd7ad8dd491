"""Alert Management Engine - Alert Store & Lifecycle Manager."""

import logging
import threading
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional, Type, TypeVar, Union

import numpy as np

from .clock import Clock, SystemClock, TimerHandle
from .config import (
    ALLOWED_TRANSITIONS,
    AlertConfig,
    AlertSeverity,
    AlertStatus,
    ChannelType,
    NotificationStatus,
)
from .dedup import Deduplicator
from .escalation import DEFAULT_ESCALATION_LEVELS, DEFAULT_POLICY_NAME, EscalationScheduler
from .exceptions import InvalidAlertError
from .models import (
    Alert,
    AlertCandidate,
    AlertStats,
    DuplicateCheck,
    EscalationLevel,
    EscalationPolicy,
    NotificationRecord,
    SuppressionDecision,
    SuppressionRule,
)
from .notifications import DeliveryResult, NotificationDispatcher
from .suppression import SuppressionEngine

logger = logging.getLogger(__name__)

# Delivery collaborator: may return delivery results synchronously, or None
Notifier = Callable[[Alert, EscalationLevel], Optional[Iterable[DeliveryResult]]]

_E = TypeVar("_E", bound=Enum)


def _parse_enum(enum_cls: Type[_E], value: Any, field: str) -> _E:
    """Coerce caller input to an enum member, raising InvalidAlertError if unknown."""
    try:
        return enum_cls(value)
    except ValueError:
        raise InvalidAlertError(f"Unknown {field}: {value!r}", field=field) from None


class AlertManager:
    """Central alert management service.

    Turns candidate signals into alerts after deduplication and
    suppression, hands new alerts to the escalation scheduler, drives
    acknowledge/resolve transitions and reports aggregate statistics.
    Thread-safe: the alert map and pending escalation timers share one
    re-entrant lock; the deduplicator and suppression engine guard their
    own state.

    Example:
        manager = AlertManager(clock=VirtualClock())
        alert = manager.create_alert(
            source="sync", severity="high", title="lag", symbol="ETH/USD",
        )
        manager.acknowledge_alert(alert.alert_id, "oncall")
    """

    def __init__(
        self,
        config: Optional[AlertConfig] = None,
        clock: Optional[Clock] = None,
        notifier: Optional[Notifier] = None,
    ) -> None:
        self._config = config or AlertConfig()
        self._clock = clock or SystemClock()
        self._lock = threading.RLock()
        self._alerts: Dict[str, Alert] = {}
        self._deduplicator = Deduplicator(
            clock=self._clock, window_seconds=self._config.dedup_window_seconds
        )
        self._suppression = SuppressionEngine(
            clock=self._clock,
            retention_seconds=self._config.suppression_retention_seconds,
        )
        self._dispatcher = NotificationDispatcher(clock=self._clock)
        self._notifier: Notifier = notifier or self._dispatcher
        self._escalation = EscalationScheduler(
            self._handle_escalation, clock=self._clock, lock=self._lock
        )
        self._cleanup_handle: Optional[TimerHandle] = None
        self._running = False

        self._initialize_default_policy()
        if self._config.auto_cleanup:
            self.start()

    @property
    def config(self) -> AlertConfig:
        return self._config

    @property
    def clock(self) -> Clock:
        return self._clock

    @property
    def deduplicator(self) -> Deduplicator:
        """Access the deduplicator."""
        return self._deduplicator

    @property
    def suppression(self) -> SuppressionEngine:
        """Access the suppression engine."""
        return self._suppression

    @property
    def escalation(self) -> EscalationScheduler:
        """Access the escalation scheduler."""
        return self._escalation

    @property
    def dispatcher(self) -> NotificationDispatcher:
        """Access the built-in notification dispatcher."""
        return self._dispatcher

    # ── Alert lifecycle ──────────────────────────────────────────────

    def create_alert(
        self,
        source: str,
        severity: Union[AlertSeverity, str],
        title: str,
        description: str = "",
        symbol: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        policy_id: Optional[str] = None,
    ) -> Optional[Alert]:
        """Create an alert from a producer signal.

        The signal is checked by the deduplicator first and the
        suppression engine second; either one dropping it returns None.

        Args:
            source: Originating subsystem (e.g. "sync", "price-deviation").
            severity: low, medium, high or critical.
            title: Short alert title; part of the dedup key.
            description: Free-form description.
            symbol: Optional asset/feed identifier.
            metadata: Optional free-form attributes.
            policy_id: Escalation policy; the default policy when omitted.

        Returns:
            The new Alert, or None if it was a duplicate or suppressed.

        Raises:
            InvalidAlertError: If source, title or severity is invalid.
        """
        candidate = self._build_candidate(source, severity, title, description, symbol, metadata)

        duplicate = self._check_duplicate(candidate)
        if duplicate.is_duplicate:
            logger.debug(
                "Duplicate alert dropped: %s (count=%d)",
                duplicate.duplicate_of_key,
                duplicate.count,
            )
            return None

        decision = self._check_suppression(candidate)
        if decision.suppressed:
            logger.info("Alert suppressed by rule %s: %s", decision.rule_id, decision.reason)
            return None

        now = self._clock.now()
        alert = Alert(
            source=candidate.source,
            severity=candidate.severity,
            title=candidate.title,
            description=candidate.description,
            symbol=candidate.symbol,
            metadata=dict(candidate.metadata),
            created_at=now,
            updated_at=now,
        )
        with self._lock:
            self._alerts[alert.alert_id] = alert
            # Timer is registered before any other caller can see the alert
            if self._config.enable_escalation:
                self._escalation.start_escalation(alert, policy_id)
        logger.info(
            "Alert created: %s [%s] %s - %s",
            alert.alert_id,
            alert.severity.value,
            alert.source,
            alert.title,
        )
        return alert

    def acknowledge_alert(self, alert_id: str, acknowledged_by: str) -> Optional[Alert]:
        """Acknowledge an alert and stop its escalation.

        Acknowledging an already acknowledged or resolved alert is a no-op.

        Returns:
            The alert, or None if no alert has that ID.
        """
        with self._lock:
            alert = self._alerts.get(alert_id)
            if alert is None:
                return None
            if not self._transition_locked(alert, AlertStatus.ACKNOWLEDGED):
                logger.debug("Alert %s is %s, acknowledge ignored", alert_id, alert.status.value)
                return alert
            alert.acknowledged_at = alert.updated_at
            alert.acknowledged_by = acknowledged_by
            self._escalation.cancel_escalation(alert_id)
        logger.info("Alert %s acknowledged by %s", alert_id, acknowledged_by)
        return alert

    def resolve_alert(self, alert_id: str, resolved_by: str) -> Optional[Alert]:
        """Resolve an alert and stop its escalation.

        Resolving an already resolved alert is a no-op.

        Returns:
            The alert, or None if no alert has that ID.
        """
        with self._lock:
            alert = self._alerts.get(alert_id)
            if alert is None:
                return None
            if not self._transition_locked(alert, AlertStatus.RESOLVED):
                logger.debug("Alert %s already resolved", alert_id)
                return alert
            alert.resolved_at = alert.updated_at
            alert.resolved_by = resolved_by
            self._escalation.cancel_escalation(alert_id)
        logger.info("Alert %s resolved by %s", alert_id, resolved_by)
        return alert

    def record_notification(
        self,
        alert_id: str,
        channel: Union[ChannelType, str],
        status: Union[NotificationStatus, str],
        error: Optional[str] = None,
    ) -> Optional[Alert]:
        """Record a delivery outcome reported back by a collaborator.

        Returns:
            The alert, or None if no alert has that ID.

        Raises:
            InvalidAlertError: If channel or status is unknown.
        """
        record = NotificationRecord(
            channel=_parse_enum(ChannelType, channel, "channel"),
            timestamp=self._clock.now(),
            status=_parse_enum(NotificationStatus, status, "status"),
            error=error,
        )
        with self._lock:
            alert = self._alerts.get(alert_id)
            if alert is None:
                return None
            alert.notification_history.append(record)
            alert.updated_at = record.timestamp
        return alert

    # ── Queries ──────────────────────────────────────────────────────

    def get_alert(self, alert_id: str) -> Optional[Alert]:
        """Get a single alert by ID, or None."""
        with self._lock:
            return self._alerts.get(alert_id)

    def get_alerts(
        self,
        status: Optional[Union[AlertStatus, str]] = None,
        severity: Optional[Union[AlertSeverity, str]] = None,
        source: Optional[str] = None,
        symbol: Optional[str] = None,
    ) -> List[Alert]:
        """Get alerts with optional filtering, newest first.

        Raises:
            InvalidAlertError: If a status or severity filter is unknown.
        """
        with self._lock:
            # Reversed insertion order breaks ties between equal timestamps
            results = list(reversed(list(self._alerts.values())))

        if status is not None:
            status = _parse_enum(AlertStatus, status, "status")
            results = [a for a in results if a.status == status]
        if severity is not None:
            severity = _parse_enum(AlertSeverity, severity, "severity")
            results = [a for a in results if a.severity == severity]
        if source is not None:
            results = [a for a in results if a.source == source]
        if symbol is not None:
            results = [a for a in results if a.symbol == symbol]

        return sorted(results, key=lambda a: a.created_at, reverse=True)

    def get_stats(self) -> AlertStats:
        """Aggregate counts, resolution times and rates over all alerts."""
        with self._lock:
            alerts = list(self._alerts.values())

        by_severity = {s.value: 0 for s in AlertSeverity}
        by_status = {s.value: 0 for s in AlertStatus}
        by_source: Dict[str, int] = {}
        recent_cutoff = self._clock.now() - timedelta(seconds=self._config.recent_window_seconds)
        recent = 0
        durations_ms: List[float] = []

        for alert in alerts:
            by_severity[alert.severity.value] += 1
            by_status[alert.status.value] += 1
            by_source[alert.source] = by_source.get(alert.source, 0) + 1
            if alert.created_at >= recent_cutoff:
                recent += 1
            if alert.resolved_at is not None:
                durations_ms.append(
                    (alert.resolved_at - alert.created_at).total_seconds() * 1000.0
                )

        durations = np.asarray(durations_ms, dtype=float)
        total = len(alerts)

        return AlertStats(
            total_alerts=total,
            active_alerts=by_status[AlertStatus.ACTIVE.value],
            recent_alerts=recent,
            alerts_by_severity=by_severity,
            alerts_by_status=by_status,
            alerts_by_source=by_source,
            average_resolution_time_ms=float(durations.mean()) if durations.size else 0.0,
            median_resolution_time_ms=float(np.median(durations)) if durations.size else 0.0,
            suppression_rate=by_status[AlertStatus.SUPPRESSED.value] / total if total else 0.0,
            escalation_rate=by_status[AlertStatus.ESCALATED.value] / total if total else 0.0,
        )

    def get_dedup_stats(self) -> Dict[str, int]:
        return self._deduplicator.get_stats()

    def get_escalation_state(self, alert_id: str) -> Optional[Dict[str, Any]]:
        return self._escalation.get_escalation_state(alert_id)

    # ── Suppression configuration ────────────────────────────────────

    def add_suppression_rule(
        self,
        name: str,
        conditions: List[Any],
        duration_ms: int,
        reason: str,
        enabled: bool = True,
        expires_at: Optional[datetime] = None,
    ) -> SuppressionRule:
        """Register a suppression rule.

        Raises:
            ConfigurationError: If the rule is malformed.
        """
        return self._suppression.add_rule(
            name=name,
            conditions=conditions,
            duration_ms=duration_ms,
            reason=reason,
            enabled=enabled,
            expires_at=expires_at,
        )

    def remove_suppression_rule(self, rule_id: str) -> bool:
        return self._suppression.remove_rule(rule_id)

    def set_suppression_rule_enabled(self, rule_id: str, enabled: bool) -> Optional[SuppressionRule]:
        return self._suppression.set_rule_enabled(rule_id, enabled)

    def get_suppression_rules(self) -> List[SuppressionRule]:
        return self._suppression.get_rules()

    # ── Escalation configuration ─────────────────────────────────────

    def add_escalation_policy(
        self,
        name: str,
        levels: List[Any],
        default_channels: Optional[List[Any]] = None,
        make_default: bool = False,
    ) -> EscalationPolicy:
        """Register an escalation policy.

        Raises:
            ConfigurationError: If the policy is malformed.
        """
        return self._escalation.add_policy(
            name=name,
            levels=levels,
            default_channels=default_channels,
            make_default=make_default,
        )

    def remove_escalation_policy(self, policy_id: str) -> bool:
        return self._escalation.remove_policy(policy_id)

    def set_default_escalation_policy(self, policy_id: str) -> bool:
        return self._escalation.set_default_policy(policy_id)

    def get_escalation_policy(self, policy_id: str) -> Optional[EscalationPolicy]:
        return self._escalation.get_policy(policy_id)

    def get_escalation_policies(self) -> List[EscalationPolicy]:
        return self._escalation.get_all_policies()

    # ── Background cleanup ───────────────────────────────────────────

    def start(self) -> None:
        """Arm the periodic cleanup sweep."""
        with self._lock:
            if self._running:
                return
            self._running = True
            self._arm_cleanup_locked()
        logger.info(
            "Alert manager started (cleanup every %ds)", self._config.cleanup_interval_seconds
        )

    def stop(self) -> None:
        """Stop the cleanup sweep and cancel all pending escalations."""
        with self._lock:
            self._running = False
            if self._cleanup_handle is not None:
                self._cleanup_handle.cancel()
                self._cleanup_handle = None
            cancelled = self._escalation.cancel_all()
        logger.info("Alert manager stopped (%d pending escalations cancelled)", cancelled)

    @property
    def running(self) -> bool:
        return self._running

    def run_cleanup(self) -> Dict[str, int]:
        """Sweep expired suppression and dedup bookkeeping now."""
        removed = {
            "suppressions": self._suppression.cleanup_expired_suppressions(),
            "dedup_records": self._deduplicator.cleanup(),
        }
        logger.debug("Cleanup sweep removed %s", removed)
        return removed

    def _arm_cleanup_locked(self) -> None:
        self._cleanup_handle = self._clock.call_later(
            self._config.cleanup_interval_seconds, self._scheduled_cleanup
        )

    def _scheduled_cleanup(self) -> None:
        with self._lock:
            if not self._running:
                return
        try:
            self.run_cleanup()
        except Exception:
            logger.exception("Scheduled cleanup failed")
        with self._lock:
            if self._running:
                self._arm_cleanup_locked()

    # ── Internals ────────────────────────────────────────────────────

    def _build_candidate(
        self,
        source: str,
        severity: Union[AlertSeverity, str],
        title: str,
        description: str,
        symbol: Optional[str],
        metadata: Optional[Dict[str, Any]],
    ) -> AlertCandidate:
        if not source or not isinstance(source, str):
            raise InvalidAlertError("Alert source is required", field="source")
        if not title or not isinstance(title, str):
            raise InvalidAlertError("Alert title is required", field="title")
        severity = _parse_enum(AlertSeverity, severity, "severity")
        return AlertCandidate(
            source=source,
            severity=severity,
            title=title,
            description=description or "",
            symbol=symbol,
            metadata=dict(metadata or {}),
        )

    def _check_duplicate(self, candidate: AlertCandidate) -> DuplicateCheck:
        # Fail open: an extra alert beats a lost one
        try:
            return self._deduplicator.check_duplicate(candidate)
        except Exception:
            logger.exception("Deduplication failed for '%s', treating as new", candidate.title)
            return DuplicateCheck(is_duplicate=False, count=1)

    def _check_suppression(self, candidate: AlertCandidate) -> SuppressionDecision:
        try:
            return self._suppression.should_suppress(candidate)
        except Exception:
            logger.exception("Suppression check failed for '%s', not suppressing", candidate.title)
            return SuppressionDecision(suppressed=False)

    def _transition_locked(self, alert: Alert, target: AlertStatus) -> bool:
        if target not in ALLOWED_TRANSITIONS[alert.status]:
            return False
        alert.status = target
        alert.updated_at = self._clock.now()
        return True

    def _handle_escalation(self, alert: Alert, level: EscalationLevel) -> None:
        """Deliver an escalated level and record the attempts on the alert."""
        try:
            results = self._notifier(alert, level)
        except Exception as exc:
            logger.exception("Notifier failed for alert %s level %d", alert.alert_id, level.level)
            now = self._clock.now()
            records = [
                NotificationRecord(
                    channel=channel,
                    timestamp=now,
                    status=NotificationStatus.FAILED,
                    error=str(exc) or type(exc).__name__,
                )
                for channel in level.channels
            ]
        else:
            if results is None:
                now = self._clock.now()
                records = [
                    NotificationRecord(channel=channel, timestamp=now, status=NotificationStatus.SENT)
                    for channel in level.channels
                ]
            else:
                records = [
                    NotificationRecord(
                        channel=r.channel,
                        timestamp=r.delivered_at,
                        status=r.status,
                        error=r.error,
                    )
                    for r in results
                ]

        with self._lock:
            alert.notification_history.extend(records)
            if records:
                alert.updated_at = max(alert.updated_at, records[-1].timestamp)

    def _initialize_default_policy(self) -> None:
        self._escalation.add_policy(
            name=DEFAULT_POLICY_NAME,
            levels=DEFAULT_ESCALATION_LEVELS,
            default_channels=self._config.default_channels,
            make_default=True,
        )
