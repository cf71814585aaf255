"""
Pydantic models for the AlertRule CRD (monitoring.my.domain/v1).

Two spec shapes exist for AlertRule:

- ``AlertRuleSpec``: the canonical fixed-field shape
  (alert, expr, severity, for, labels, annotations, deploymentRef)
- ``RuleSetSpec``: a list of rules with notification channels and a
  single ``targetDeployment``

``parse_alert_rule_spec`` picks the shape from the keys present and refuses
a spec that mixes both.
"""

from __future__ import annotations

import re
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

# Prometheus durations: 30s, 1m, 1h30m, 2d, 500ms
_DURATION = re.compile(r"^((\d+)y)?((\d+)w)?((\d+)d)?((\d+)h)?((\d+)m)?((\d+)s)?((\d+)ms)?$")


def duration_validator(v: Optional[str]) -> Optional[str]:
    """Validate a Prometheus duration string, treating '' as absent."""
    if v is None or v == "":
        return None
    if not isinstance(v, str) or not _DURATION.match(v):
        raise ValueError(f"Invalid duration: {v!r} (expected e.g. '30s', '1m', '1h30m')")
    return v


class Severity(str, Enum):
    """Alert severity levels."""
    CRITICAL = "critical"
    WARNING = "warning"
    INFO = "info"


class ConditionStatus(str, Enum):
    """Tri-state condition status."""
    TRUE = "True"
    FALSE = "False"
    UNKNOWN = "Unknown"


class ConditionType:
    """Condition types recorded on AlertRule status."""
    READY = "Ready"
    DEGRADED = "Degraded"


class Reason:
    """Condition reasons."""
    PROMETHEUS_RULE_CREATED = "PrometheusRuleCreated"
    PROMETHEUS_RULE_NOT_FOUND = "PrometheusRuleNotFound"
    PROMETHEUS_RULE_CREATION_FAILED = "PrometheusRuleCreationFailed"
    PROMETHEUS_RULE_UPDATE_FAILED = "PrometheusRuleUpdateFailed"
    CONFIG_MAP_NOT_FOUND = "ConfigMapNotFound"
    CONFIG_MAP_CREATION_FAILED = "ConfigMapCreationFailed"
    CONFIG_MAP_UPDATE_FAILED = "ConfigMapUpdateFailed"
    GENERATION_FAILED = "GenerationFailed"
    RECONCILED = "Reconciled"
    ERROR = "Error"


class SpecShapeError(ValueError):
    """Raised when an AlertRule spec mixes the fixed-field and rule-list shapes."""


class DeploymentReference(BaseModel):
    """Non-owning pointer to a Deployment."""
    namespace: str = Field(..., min_length=1, description="Namespace of the Deployment")
    name: str = Field(..., min_length=1, description="Name of the Deployment")


class AlertRuleSpec(BaseModel):
    """Fixed-field AlertRule spec."""

    model_config = ConfigDict(populate_by_name=True)

    alert: str = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("alert", "alertName"),
        serialization_alias="alert",
        description="Alert name for the rule",
    )
    expr: str = Field(
        ...,
        validation_alias=AliasChoices("expr", "expression"),
        serialization_alias="expr",
        description="PromQL expression",
    )
    severity: Optional[Severity] = Field(None, description="Severity level")
    for_: Optional[str] = Field(None, alias="for", description="Minimum time the expression must hold")
    labels: Dict[str, str] = Field(default_factory=dict)
    annotations: Dict[str, str] = Field(default_factory=dict)
    deployment_ref: Optional[DeploymentReference] = Field(None, alias="deploymentRef")

    _validate_for = field_validator("for_", mode="before")(duration_validator)

    @field_validator("severity", mode="before")
    @classmethod
    def empty_severity(cls, v: Any) -> Any:
        return None if v == "" else v


class NotificationChannel(BaseModel):
    """Notification endpoints attached to a rule."""
    discord: Optional[str] = None
    email: Optional[str] = None


class RuleDefinition(BaseModel):
    """One entry of a RuleSetSpec."""

    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(..., min_length=1)
    condition: str = Field(...)
    duration: Optional[str] = None
    severity: Severity
    notifications: List[NotificationChannel] = Field(default_factory=list)

    _validate_duration = field_validator("duration", mode="before")(duration_validator)


class RuleSetSpec(BaseModel):
    """List-based AlertRule spec with notification channels."""

    model_config = ConfigDict(populate_by_name=True)

    rules: List[RuleDefinition] = Field(..., min_length=1)
    target_deployment: str = Field(..., alias="targetDeployment")
    deployment_ref: Optional[DeploymentReference] = Field(None, alias="deploymentRef")


AnyAlertRuleSpec = Union[AlertRuleSpec, RuleSetSpec]

_FIXED_KEYS = {"alert", "alertName", "expr", "expression"}


def parse_alert_rule_spec(data: Mapping[str, Any]) -> AnyAlertRuleSpec:
    """
    Parse a raw AlertRule spec into whichever shape it uses.

    Raises:
        SpecShapeError: If the spec carries both ``rules`` and fixed alert fields
        pydantic.ValidationError: If the chosen shape does not validate
    """
    if "rules" in data:
        mixed = sorted(_FIXED_KEYS.intersection(data))
        if mixed:
            raise SpecShapeError(
                f"AlertRule spec mixes 'rules' with fixed-field keys {mixed}; "
                "use one shape or the other"
            )
        return RuleSetSpec.model_validate(dict(data))
    return AlertRuleSpec.model_validate(dict(data))


class Condition(BaseModel):
    """A single typed observation on AlertRule status."""

    model_config = ConfigDict(populate_by_name=True)

    type: str = Field(..., min_length=1)
    status: ConditionStatus
    reason: str = ""
    message: str = ""
    last_transition_time: Optional[datetime] = Field(None, alias="lastTransitionTime")
    observed_generation: int = Field(0, alias="observedGeneration")

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the Kubernetes metav1.Condition shape."""
        data: Dict[str, Any] = {
            "type": self.type,
            "status": self.status.value,
            "reason": self.reason,
            "message": self.message,
            "observedGeneration": self.observed_generation,
        }
        if self.last_transition_time is not None:
            data["lastTransitionTime"] = self.last_transition_time.strftime("%Y-%m-%dT%H:%M:%SZ")
        return data


class AlertRuleStatus(BaseModel):
    """Observed state of an AlertRule."""
    conditions: List[Condition] = Field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "AlertRuleStatus":
        """Create from the raw status block of an AlertRule object."""
        if not data:
            return cls()
        return cls(conditions=[Condition.model_validate(c) for c in data.get("conditions") or []])

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the raw status block."""
        return {"conditions": [c.to_dict() for c in self.conditions]}
