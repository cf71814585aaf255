"""
Tests for AlertRule spec and status models.
"""

from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from alertrule_operator.models import (
    AlertRuleSpec,
    AlertRuleStatus,
    Condition,
    ConditionStatus,
    RuleSetSpec,
    Severity,
    SpecShapeError,
    parse_alert_rule_spec,
)


class TestAlertRuleSpec:
    """Fixed-field spec parsing."""

    def test_wire_names(self, checkout_spec):
        """camelCase wire keys map onto model fields."""
        spec = AlertRuleSpec.model_validate(checkout_spec)
        assert spec.alert == "checkoutPodDown"
        assert spec.expr == 'up{job="checkout"} == 0'
        assert spec.for_ == "1m"
        assert spec.severity == Severity.CRITICAL
        assert spec.deployment_ref.namespace == "shop"
        assert spec.deployment_ref.name == "checkout"

    def test_long_field_names_accepted(self):
        """alertName/expression are accepted as alternatives to alert/expr."""
        spec = AlertRuleSpec.model_validate({"alertName": "Foo", "expression": "vector(1)"})
        assert spec.alert == "Foo"
        assert spec.expr == "vector(1)"

    def test_optional_fields_default_empty(self):
        spec = AlertRuleSpec.model_validate({"alert": "Foo", "expr": "vector(1)"})
        assert spec.severity is None
        assert spec.for_ is None
        assert spec.labels == {}
        assert spec.annotations == {}
        assert spec.deployment_ref is None

    def test_empty_strings_treated_as_absent(self):
        spec = AlertRuleSpec.model_validate(
            {"alert": "Foo", "expr": "vector(1)", "for": "", "severity": ""}
        )
        assert spec.for_ is None
        assert spec.severity is None

    def test_missing_alert_rejected(self):
        with pytest.raises(ValidationError):
            AlertRuleSpec.model_validate({"expr": "vector(1)"})

    def test_invalid_severity_rejected(self):
        with pytest.raises(ValidationError):
            AlertRuleSpec.model_validate({"alert": "Foo", "expr": "vector(1)", "severity": "page"})

    @pytest.mark.parametrize("duration", ["30s", "1m", "1h30m", "2d", "500ms"])
    def test_valid_durations(self, duration):
        spec = AlertRuleSpec.model_validate({"alert": "Foo", "expr": "vector(1)", "for": duration})
        assert spec.for_ == duration

    @pytest.mark.parametrize("duration", ["5", "one minute", "1m ", "-1m"])
    def test_invalid_durations(self, duration):
        with pytest.raises(ValidationError):
            AlertRuleSpec.model_validate({"alert": "Foo", "expr": "vector(1)", "for": duration})


class TestParseAlertRuleSpec:
    """Shape selection between fixed-field and rule-list specs."""

    def test_fixed_shape(self, checkout_spec):
        assert isinstance(parse_alert_rule_spec(checkout_spec), AlertRuleSpec)

    def test_rule_list_shape(self, rule_set_spec):
        spec = parse_alert_rule_spec(rule_set_spec)
        assert isinstance(spec, RuleSetSpec)
        assert spec.target_deployment == "checkout"
        assert [r.name for r in spec.rules] == ["HighErrorRate", "HighLatency"]
        assert spec.rules[0].notifications[0].discord == "https://discord.example/hook"

    def test_mixed_shapes_rejected(self, rule_set_spec):
        """A spec carrying both shapes is flagged, not merged."""
        rule_set_spec["alert"] = "Foo"
        with pytest.raises(SpecShapeError, match="mixes"):
            parse_alert_rule_spec(rule_set_spec)

    def test_empty_rule_list_rejected(self):
        with pytest.raises(ValidationError):
            parse_alert_rule_spec({"rules": [], "targetDeployment": "checkout"})


class TestAlertRuleStatus:
    """Status round-tripping."""

    def test_from_empty(self):
        assert AlertRuleStatus.from_dict(None).conditions == []
        assert AlertRuleStatus.from_dict({}).conditions == []

    def test_round_trip(self):
        raw = {
            "conditions": [
                {
                    "type": "Ready",
                    "status": "True",
                    "reason": "PrometheusRuleCreated",
                    "message": "ok",
                    "lastTransitionTime": "2025-01-01T12:00:00Z",
                    "observedGeneration": 3,
                }
            ]
        }
        status = AlertRuleStatus.from_dict(raw)
        condition = status.conditions[0]
        assert condition.status == ConditionStatus.TRUE
        assert condition.observed_generation == 3
        assert condition.last_transition_time == datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)
        assert status.to_dict() == raw

    def test_unstamped_condition_omits_time(self):
        condition = Condition(type="Ready", status=ConditionStatus.UNKNOWN, reason="Error")
        assert "lastTransitionTime" not in condition.to_dict()
