"""Alert Management Engine - Suppression Rules."""

import logging
import math
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple

from .clock import Clock, SystemClock
from .config import DEFAULT_SUPPRESSION_RETENTION_SECONDS, ConditionOperator
from .models import (
    AlertCandidate,
    SuppressionCondition,
    SuppressionDecision,
    SuppressionRule,
    flatten_candidate,
    generate_id,
)
from .schemas import validate_suppression_rule

logger = logging.getLogger(__name__)

_MISSING = object()


def _to_number(value: Any) -> Optional[float]:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return None if math.isnan(number) else number


def evaluate_condition(condition: SuppressionCondition, view: Dict[str, Any]) -> bool:
    """Evaluate one condition against a flattened alert view.

    A field path absent from the view never matches.
    """
    actual = view.get(condition.field, _MISSING)
    if actual is _MISSING:
        return False

    expected = condition.value
    op = condition.operator

    if op == ConditionOperator.EQUALS:
        if isinstance(actual, bool) != isinstance(expected, bool):
            return False
        return actual == expected
    if op == ConditionOperator.CONTAINS:
        return str(expected) in str(actual)
    if op == ConditionOperator.IN:
        return any(actual == item or str(actual) == str(item) for item in expected)
    if op in (ConditionOperator.GT, ConditionOperator.LT):
        left, right = _to_number(actual), _to_number(expected)
        if left is None or right is None:
            return False
        return left > right if op == ConditionOperator.GT else left < right
    return False


@dataclass
class _SuppressionLogEntry:
    suppressed_at: datetime
    count: int


class SuppressionEngine:
    """Evaluates registered rules and decides whether to drop an alert.

    Rules are evaluated in registration order; the first enabled,
    unexpired rule whose conditions all match wins. Bookkeeping per
    (source, symbol, severity) key works as a throttle: inside the rule's
    window the original timestamp is kept and only the count grows, after
    it the next match re-arms the window.
    """

    def __init__(
        self,
        clock: Optional[Clock] = None,
        retention_seconds: int = DEFAULT_SUPPRESSION_RETENTION_SECONDS,
    ) -> None:
        self._clock = clock or SystemClock()
        self._retention = timedelta(seconds=retention_seconds)
        self._rules: Dict[str, SuppressionRule] = {}
        self._log: Dict[Tuple[str, Optional[str], str], _SuppressionLogEntry] = {}
        self._lock = threading.Lock()

    # ── Rule management ──────────────────────────────────────────────

    def add_rule(
        self,
        name: str,
        conditions: List[Any],
        duration_ms: int,
        reason: str,
        enabled: bool = True,
        expires_at: Optional[datetime] = None,
    ) -> SuppressionRule:
        """Validate and register a suppression rule.

        Args:
            name: Human-readable rule name.
            conditions: SuppressionCondition objects or equivalent dicts
                with ``field``, ``operator`` and ``value``.
            duration_ms: Suppression window in milliseconds.
            reason: Reason attached to suppressed alerts.
            enabled: Whether the rule is evaluated.
            expires_at: Optional time after which the rule is ignored.

        Returns:
            The registered SuppressionRule.

        Raises:
            ConfigurationError: If the rule is malformed.
        """
        validated = validate_suppression_rule(
            name=name,
            conditions=conditions,
            duration_ms=duration_ms,
            reason=reason,
            enabled=enabled,
            expires_at=expires_at,
        )
        rule = SuppressionRule(
            rule_id=generate_id("rule"),
            name=validated.name,
            conditions=[
                SuppressionCondition(field=c.field, operator=c.operator, value=c.value)
                for c in validated.conditions
            ],
            duration_ms=validated.duration_ms,
            reason=validated.reason,
            created_at=self._clock.now(),
            enabled=validated.enabled,
            expires_at=validated.expires_at,
        )
        with self._lock:
            self._rules[rule.rule_id] = rule
        logger.info("Added suppression rule: %s (%s)", rule.rule_id, rule.name)
        return rule

    def remove_rule(self, rule_id: str) -> bool:
        """Remove a rule by ID.

        Returns:
            True if the rule was found and removed.
        """
        with self._lock:
            removed = self._rules.pop(rule_id, None) is not None
        if removed:
            logger.info("Removed suppression rule: %s", rule_id)
        return removed

    def set_rule_enabled(self, rule_id: str, enabled: bool) -> Optional[SuppressionRule]:
        """Enable or disable a rule in place."""
        with self._lock:
            rule = self._rules.get(rule_id)
            if rule is None:
                return None
            rule.enabled = enabled
        logger.info("Suppression rule %s %s", rule_id, "enabled" if enabled else "disabled")
        return rule

    def get_rule(self, rule_id: str) -> Optional[SuppressionRule]:
        with self._lock:
            return self._rules.get(rule_id)

    def get_rules(self) -> List[SuppressionRule]:
        """Get all rules in registration order."""
        with self._lock:
            return list(self._rules.values())

    # ── Evaluation ───────────────────────────────────────────────────

    @staticmethod
    def generate_key(candidate: AlertCandidate) -> Tuple[str, Optional[str], str]:
        return (candidate.source, candidate.symbol, candidate.severity.value)

    def should_suppress(self, candidate: AlertCandidate) -> SuppressionDecision:
        """Decide whether a candidate alert should be dropped.

        Args:
            candidate: The incoming signal.

        Returns:
            SuppressionDecision naming the matching rule, if any.
        """
        view = flatten_candidate(candidate)
        now = self._clock.now()

        with self._lock:
            for rule in self._rules.values():
                if not rule.enabled or rule.is_expired(now):
                    continue
                if not all(evaluate_condition(c, view) for c in rule.conditions):
                    continue

                key = self.generate_key(candidate)
                entry = self._log.get(key)
                window = timedelta(milliseconds=rule.duration_ms)
                if entry is not None and now - entry.suppressed_at < window:
                    entry.count += 1
                else:
                    self._log[key] = _SuppressionLogEntry(suppressed_at=now, count=1)
                return SuppressionDecision(
                    suppressed=True, rule_id=rule.rule_id, reason=rule.reason
                )

        return SuppressionDecision(suppressed=False)

    def get_suppression_count(self, candidate: AlertCandidate) -> int:
        """How many times the candidate's key was suppressed in its current window."""
        with self._lock:
            entry = self._log.get(self.generate_key(candidate))
            return entry.count if entry else 0

    def cleanup_expired_suppressions(self) -> int:
        """Drop suppression bookkeeping older than the retention period.

        Returns:
            Number of entries removed.
        """
        now = self._clock.now()
        with self._lock:
            stale = [k for k, e in self._log.items() if now - e.suppressed_at > self._retention]
            for key in stale:
                del self._log[key]
        if stale:
            logger.debug("Removed %d expired suppression entries", len(stale))
        return len(stale)
