"""Alert Management Engine - Configuration Schemas.

Pydantic schemas that validate suppression rules and escalation policies
at registration time, so malformed configuration is rejected up front
instead of failing on the evaluation path.
"""

import dataclasses
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from .config import ChannelType, ConditionOperator
from .exceptions import ConfigurationError


# ─── Suppression ─────────────────────────────────────────────────────────


class SuppressionConditionSchema(BaseModel):
    """A single AND-combined suppression predicate."""

    field: str = Field(min_length=1)
    operator: ConditionOperator
    value: Any

    @field_validator("field")
    @classmethod
    def _check_path(cls, v: str) -> str:
        v = v.strip()
        if not v or any(not part for part in v.split(".")):
            raise ValueError(f"invalid field path: '{v}'")
        return v

    @model_validator(mode="after")
    def _check_value(self) -> "SuppressionConditionSchema":
        op = self.operator
        if op == ConditionOperator.IN:
            if not isinstance(self.value, (list, tuple, set, frozenset)):
                raise ValueError("'in' requires a list value")
            self.value = list(self.value)
        elif op in (ConditionOperator.GT, ConditionOperator.LT):
            if isinstance(self.value, (list, tuple, dict)) or self.value is None:
                raise ValueError(f"'{op.value}' requires a numeric value")
            try:
                float(self.value)
            except (TypeError, ValueError):
                raise ValueError(f"'{op.value}' requires a numeric value") from None
        elif op == ConditionOperator.CONTAINS:
            if self.value is None or isinstance(self.value, (list, tuple, dict)):
                raise ValueError("'contains' requires a scalar value")
        return self


class SuppressionRuleSchema(BaseModel):
    """Suppression rule registration payload."""

    name: str = Field(min_length=1)
    conditions: List[SuppressionConditionSchema] = Field(min_length=1)
    duration_ms: int = Field(gt=0)
    reason: str = Field(min_length=1)
    enabled: bool = True
    expires_at: Optional[datetime] = None

    @field_validator("expires_at")
    @classmethod
    def _assume_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        if v is not None and v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v


# ─── Escalation ──────────────────────────────────────────────────────────


class EscalationLevelSchema(BaseModel):
    """One timed level of an escalation policy."""

    level: int = Field(ge=0)
    name: str = Field(min_length=1)
    timeout_ms: int = Field(ge=0)
    channels: List[ChannelType] = Field(min_length=1)
    require_acknowledgment: bool = True
    auto_escalate: bool = True
    notify_on_escalation: bool = False


class EscalationPolicySchema(BaseModel):
    """Escalation policy registration payload."""

    name: str = Field(min_length=1)
    levels: List[EscalationLevelSchema] = Field(min_length=1)
    default_channels: List[ChannelType] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_level_order(self) -> "EscalationPolicySchema":
        numbers = [lvl.level for lvl in self.levels]
        if any(b <= a for a, b in zip(numbers, numbers[1:])):
            raise ValueError(f"level numbers must be strictly increasing, got {numbers}")
        return self


# ─── Helpers ─────────────────────────────────────────────────────────────


def _as_mapping(item: Any) -> Any:
    if dataclasses.is_dataclass(item) and not isinstance(item, type):
        return dataclasses.asdict(item)
    return item


def _error_details(exc: ValidationError) -> List[Dict[str, Any]]:
    return [
        {"field": ".".join(str(loc) for loc in err["loc"]), "issue": err["msg"]}
        for err in exc.errors()
    ]


def validate_suppression_rule(**data: Any) -> SuppressionRuleSchema:
    """Validate a suppression rule payload.

    Raises:
        ConfigurationError: If any field or condition is malformed.
    """
    if isinstance(data.get("conditions"), (list, tuple)):
        data["conditions"] = [_as_mapping(c) for c in data["conditions"]]
    try:
        return SuppressionRuleSchema.model_validate(data)
    except ValidationError as exc:
        raise ConfigurationError(
            f"Invalid suppression rule '{data.get('name', '')}'",
            details=_error_details(exc),
        ) from exc


def validate_escalation_policy(**data: Any) -> EscalationPolicySchema:
    """Validate an escalation policy payload.

    Raises:
        ConfigurationError: If the policy or any of its levels is malformed.
    """
    if isinstance(data.get("levels"), (list, tuple)):
        data["levels"] = [_as_mapping(lvl) for lvl in data["levels"]]
    try:
        return EscalationPolicySchema.model_validate(data)
    except ValidationError as exc:
        raise ConfigurationError(
            f"Invalid escalation policy '{data.get('name', '')}'",
            details=_error_details(exc),
        ) from exc
