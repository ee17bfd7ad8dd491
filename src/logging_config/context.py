"""Log Context Management.

Thread-safe logging context using contextvars for binding the alert,
policy and escalation level being processed to log entries.
"""

from contextvars import ContextVar
from dataclasses import dataclass, field
from typing import Any


_alert_id_var: ContextVar[str] = ContextVar("alert_id", default="")
_policy_id_var: ContextVar[str] = ContextVar("policy_id", default="")
_extra_context_var: ContextVar[dict] = ContextVar("extra_context", default={})


def get_context_dict() -> dict[str, Any]:
    """Get all context variables as a dictionary for log binding."""
    ctx = {}
    alert_id = _alert_id_var.get()
    if alert_id:
        ctx["alert_id"] = alert_id
    policy_id = _policy_id_var.get()
    if policy_id:
        ctx["policy_id"] = policy_id
    extra = _extra_context_var.get()
    if extra:
        ctx.update(extra)
    return ctx


@dataclass
class LogContext:
    """Context manager binding alert identifiers to log entries.

    Restores the previous context on exit, so contexts nest.

    Example:
        with LogContext(alert_id="alert-1", extra={"escalation_level": 2}):
            logger.info("notifying")  # includes alert_id, escalation_level
    """

    alert_id: str = ""
    policy_id: str = ""
    extra: dict[str, Any] = field(default_factory=dict)

    _tokens: list = field(default_factory=list, repr=False)

    def __enter__(self) -> "LogContext":
        merged = {**_extra_context_var.get(), **self.extra}
        self._tokens = [
            (_alert_id_var, _alert_id_var.set(self.alert_id or _alert_id_var.get())),
            (_policy_id_var, _policy_id_var.set(self.policy_id or _policy_id_var.get())),
            (_extra_context_var, _extra_context_var.set(merged)),
        ]
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        for var, token in reversed(self._tokens):
            var.reset(token)
        self._tokens.clear()
