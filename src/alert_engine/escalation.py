"""Alert Management Engine - Escalation Scheduling."""

import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from src.logging_config.context import LogContext

from .clock import Clock, SystemClock, TimerHandle
from .config import AlertStatus, ChannelType
from .models import Alert, EscalationLevel, EscalationPolicy, EscalationRecord, generate_id
from .schemas import validate_escalation_policy

logger = logging.getLogger(__name__)

EscalationCallback = Callable[[Alert, EscalationLevel], None]

DEFAULT_POLICY_NAME = "Default Escalation Policy"

DEFAULT_ESCALATION_LEVELS = [
    EscalationLevel(
        level=1,
        name="Initial Alert",
        timeout_ms=5 * 60 * 1000,
        channels=[ChannelType.EMAIL, ChannelType.WEBHOOK],
        require_acknowledgment=True,
        auto_escalate=True,
        notify_on_escalation=False,
    ),
    EscalationLevel(
        level=2,
        name="Manager Notification",
        timeout_ms=10 * 60 * 1000,
        channels=[ChannelType.EMAIL, ChannelType.SMS, ChannelType.SLACK],
        require_acknowledgment=True,
        auto_escalate=True,
        notify_on_escalation=True,
    ),
    EscalationLevel(
        level=3,
        name="Executive Escalation",
        timeout_ms=15 * 60 * 1000,
        channels=[ChannelType.EMAIL, ChannelType.SMS, ChannelType.SLACK, ChannelType.TELEGRAM],
        require_acknowledgment=False,
        auto_escalate=False,
        notify_on_escalation=True,
    ),
]


@dataclass
class _PendingEscalation:
    """The single armed timer of an alert's escalation chain."""

    alert: Alert
    policy: EscalationPolicy
    level_index: int
    handle: Optional[TimerHandle] = None

    @property
    def level(self) -> EscalationLevel:
        return self.policy.levels[self.level_index]


class EscalationScheduler:
    """Drives per-alert chains of timed escalation levels.

    Each alert has at most one armed timer. A level's timer is armed only
    when the previous level fires, so levels fire in order and timeouts
    are relative to entry into the level. Pending timers live under the
    same lock as the alert store, and a firing timer re-checks both its
    own registration and the alert status after taking the lock, so an
    acknowledge or resolve that completed first always wins.

    The escalation callback runs after the lock is released.
    """

    def __init__(
        self,
        on_escalate: EscalationCallback,
        clock: Optional[Clock] = None,
        lock=None,
    ) -> None:
        self._on_escalate = on_escalate
        self._clock = clock or SystemClock()
        self._lock = lock or threading.RLock()
        self._policies: Dict[str, EscalationPolicy] = {}
        self._default_policy_id: Optional[str] = None
        self._pending: Dict[str, _PendingEscalation] = {}

    # ── Policy management ────────────────────────────────────────────

    def add_policy(
        self,
        name: str,
        levels: List[Any],
        default_channels: Optional[List[Any]] = None,
        make_default: bool = False,
    ) -> EscalationPolicy:
        """Validate and register an escalation policy.

        The first registered policy becomes the default unless another
        one is later registered with ``make_default=True``.

        Raises:
            ConfigurationError: If the policy or any level is malformed.
        """
        validated = validate_escalation_policy(
            name=name,
            levels=levels,
            default_channels=default_channels or [],
        )
        policy = EscalationPolicy(
            policy_id=generate_id("policy"),
            name=validated.name,
            levels=[EscalationLevel(**lvl.model_dump()) for lvl in validated.levels],
            default_channels=list(validated.default_channels),
        )
        with self._lock:
            self._policies[policy.policy_id] = policy
            if make_default or self._default_policy_id is None:
                self._default_policy_id = policy.policy_id
        logger.info("Added escalation policy: %s (%s)", policy.policy_id, policy.name)
        return policy

    def remove_policy(self, policy_id: str) -> bool:
        """Remove a policy. Alerts already escalating under it keep it.

        Returns:
            True if the policy was found and removed.
        """
        with self._lock:
            if self._policies.pop(policy_id, None) is None:
                return False
            if self._default_policy_id == policy_id:
                self._default_policy_id = next(iter(self._policies), None)
        logger.info("Removed escalation policy: %s", policy_id)
        return True

    def set_default_policy(self, policy_id: str) -> bool:
        with self._lock:
            if policy_id not in self._policies:
                return False
            self._default_policy_id = policy_id
        logger.info("Default escalation policy set to %s", policy_id)
        return True

    def get_default_policy(self) -> Optional[EscalationPolicy]:
        with self._lock:
            if self._default_policy_id is None:
                return None
            return self._policies.get(self._default_policy_id)

    def get_policy(self, policy_id: str) -> Optional[EscalationPolicy]:
        with self._lock:
            return self._policies.get(policy_id)

    def get_all_policies(self) -> List[EscalationPolicy]:
        """Get all registered policies in registration order."""
        with self._lock:
            return list(self._policies.values())

    # ── Escalation chain ─────────────────────────────────────────────

    def start_escalation(self, alert: Alert, policy_id: Optional[str] = None) -> bool:
        """Arm the first level of a policy for an alert.

        Args:
            alert: The alert to escalate.
            policy_id: Explicit policy; the default policy when omitted.

        Returns:
            True if a timer was armed.
        """
        with self._lock:
            lookup_id = policy_id or self._default_policy_id
            policy = self._policies.get(lookup_id) if lookup_id else None
            if policy is None:
                logger.warning(
                    "No escalation policy found for alert %s (policy_id=%s)",
                    alert.alert_id,
                    policy_id,
                )
                return False

            self._cancel_locked(alert.alert_id)
            self._schedule_locked(alert, policy, 0)
        logger.info(
            "Started escalation for alert %s with policy %s",
            alert.alert_id,
            policy.policy_id,
        )
        return True

    def cancel_escalation(self, alert_id: str) -> bool:
        """Cancel the pending timer of an alert. Idempotent.

        Returns:
            True if a pending timer was cancelled.
        """
        with self._lock:
            cancelled = self._cancel_locked(alert_id)
        if cancelled:
            logger.debug("Escalation cancelled for alert %s", alert_id)
        return cancelled

    def cancel_all(self) -> int:
        """Cancel every pending timer, e.g. on shutdown."""
        with self._lock:
            alert_ids = list(self._pending)
            for alert_id in alert_ids:
                self._cancel_locked(alert_id)
        return len(alert_ids)

    @property
    def pending_count(self) -> int:
        with self._lock:
            return len(self._pending)

    def get_escalation_state(self, alert_id: str) -> Optional[Dict[str, Any]]:
        """Inspect the pending escalation of an alert.

        Returns:
            Dict with policy_id, next_level, fires_at and
            time_remaining_seconds, or None if nothing is pending.
        """
        with self._lock:
            pending = self._pending.get(alert_id)
            if pending is None or pending.handle is None:
                return None
            fires_at = pending.handle.when
            remaining = (fires_at - self._clock.now()).total_seconds()
            return {
                "policy_id": pending.policy.policy_id,
                "current_level": pending.alert.escalation_level,
                "next_level": pending.level.level,
                "fires_at": fires_at,
                "time_remaining_seconds": max(0.0, remaining),
            }

    def _cancel_locked(self, alert_id: str) -> bool:
        pending = self._pending.pop(alert_id, None)
        if pending is None:
            return False
        if pending.handle is not None:
            pending.handle.cancel()
        return True

    def _schedule_locked(self, alert: Alert, policy: EscalationPolicy, level_index: int) -> None:
        if level_index >= len(policy.levels):
            logger.info("Alert %s reached maximum escalation level", alert.alert_id)
            return

        pending = _PendingEscalation(alert=alert, policy=policy, level_index=level_index)
        delay = pending.level.timeout_ms / 1000.0
        pending.handle = self._clock.call_later(delay, self._fire, pending)
        self._pending[alert.alert_id] = pending

    def _fire(self, pending: _PendingEscalation) -> None:
        alert = pending.alert
        level = pending.level

        with self._lock:
            if self._pending.get(alert.alert_id) is not pending:
                logger.debug("Stale escalation timer for alert %s ignored", alert.alert_id)
                return
            del self._pending[alert.alert_id]

            if alert.is_handled:
                logger.debug("Alert %s already handled, abandoning escalation", alert.alert_id)
                return

            now = self._clock.now()
            alert.escalation_level = level.level
            alert.escalation_history.append(
                EscalationRecord(
                    level=level.level,
                    timestamp=now,
                    reason=f"Auto-escalated after {level.timeout_ms}ms",
                    notified_channels=list(level.channels),
                )
            )
            if level.notify_on_escalation:
                alert.status = AlertStatus.ESCALATED
            alert.updated_at = now

            if level.auto_escalate and pending.level_index < len(pending.policy.levels) - 1:
                self._schedule_locked(alert, pending.policy, pending.level_index + 1)
            else:
                logger.info("Alert %s reached final escalation level %d", alert.alert_id, level.level)

        with LogContext(
            alert_id=alert.alert_id,
            policy_id=pending.policy.policy_id,
            extra={"escalation_level": level.level},
        ):
            logger.info("Escalated alert %s to level %d: %s", alert.alert_id, level.level, level.name)
            try:
                self._on_escalate(alert, level)
            except Exception:
                # State already advanced; delivery is best-effort
                logger.exception("Escalation callback failed for alert %s", alert.alert_id)
