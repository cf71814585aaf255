"""
Rendering of AlertRule specs into Prometheus rule documents.

Two output formats share one normalisation step:

- ``render_rule_groups``: the ``{"groups": [...]}`` document carried in a
  PrometheusRule spec
- ``render_config_blob``: the ``alertrules.yaml`` text stored in a ConfigMap

Rendering is a pure function of the spec. Maps are emitted in sorted key
order, so two specs that differ only in map insertion order render to the
same bytes and the same ``fingerprint``.

Usage:
    renderer = RuleRenderer(operator_name="alert-rule-operator")
    document = renderer.render_rule_groups("checkout-alert", spec)
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Union

import yaml

from alertrule_operator.errors import RenderError
from alertrule_operator.models import (
    AlertRuleSpec,
    AnyAlertRuleSpec,
    RuleSetSpec,
    parse_alert_rule_spec,
)

MANAGED_BY_LABEL = "managed-by"
CONFIG_BLOB_KEY = "alertrules.yaml"


@dataclass(frozen=True)
class RuleEntry:
    """One alerting rule, normalised from either spec shape."""
    alert: str
    expr: str
    duration: Optional[str] = None
    labels: Dict[str, str] = field(default_factory=dict)
    annotations: Dict[str, str] = field(default_factory=dict)


def fingerprint(document: Union[Mapping[str, Any], str]) -> str:
    """SHA-256 over a canonical encoding of a rendered document."""
    if isinstance(document, str):
        payload = document
    else:
        payload = json.dumps(document, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def _quoted(value: str) -> str:
    # A JSON string is a valid YAML double-quoted scalar
    return json.dumps(value, ensure_ascii=False)


def _plain(value: str) -> str:
    """Emit ``value`` unquoted when YAML reads it back unchanged."""
    if not value or "\n" in value or value != value.strip():
        return _quoted(value)
    try:
        loaded = yaml.safe_load(value)
    except yaml.YAMLError:
        return _quoted(value)
    return value if loaded == value else _quoted(value)


class RuleRenderer:
    """
    Renders AlertRule specs into rule-group documents.

    Built-in rule labels are the operator identity marker plus the
    configured selector labels. User labels override built-ins on
    collision, except the identity marker, which always wins.
    """

    def __init__(
        self,
        operator_name: str = "alert-rule-operator",
        selector_labels: Optional[Mapping[str, str]] = None,
    ):
        self.operator_name = operator_name
        self.selector_labels = dict(selector_labels or {})

    @classmethod
    def from_config(cls, config) -> "RuleRenderer":
        """Build a renderer from an OperatorConfig."""
        return cls(operator_name=config.operator_name, selector_labels=config.selector_labels)

    def builtin_labels(self) -> Dict[str, str]:
        labels = dict(self.selector_labels)
        labels[MANAGED_BY_LABEL] = self.operator_name
        return labels

    def merge_labels(self, user_labels: Mapping[str, str]) -> Dict[str, str]:
        """Overlay user labels on the built-ins, keeping the identity marker."""
        merged = self.builtin_labels()
        for key, value in user_labels.items():
            if key == MANAGED_BY_LABEL:
                continue
            merged[key] = value
        return dict(sorted(merged.items()))

    @staticmethod
    def coerce_spec(spec: Union[AnyAlertRuleSpec, Mapping[str, Any]]) -> AnyAlertRuleSpec:
        if isinstance(spec, (AlertRuleSpec, RuleSetSpec)):
            return spec
        return parse_alert_rule_spec(spec)

    def rule_entries(self, spec: Union[AnyAlertRuleSpec, Mapping[str, Any]]) -> List[RuleEntry]:
        """Normalise a spec into rule entries, preserving declared order."""
        spec = self.coerce_spec(spec)

        if isinstance(spec, RuleSetSpec):
            if not spec.rules:
                raise RenderError("AlertRule declares no rules")
            entries = []
            for rule in spec.rules:
                labels = {
                    "alertname": rule.name,
                    "severity": rule.severity.value,
                    "deployment": spec.target_deployment,
                }
                annotations = {
                    "summary": rule.name,
                    "severity": rule.severity.value,
                }
                for channel_type in ("discord", "email"):
                    endpoints = [
                        getattr(n, channel_type) for n in rule.notifications if getattr(n, channel_type)
                    ]
                    if endpoints:
                        annotations[channel_type] = ", ".join(endpoints)
                entries.append(
                    RuleEntry(
                        alert=rule.name,
                        expr=rule.condition,
                        duration=rule.duration,
                        labels=labels,
                        annotations=annotations,
                    )
                )
        else:
            labels = {}
            if spec.severity is not None:
                labels["severity"] = spec.severity.value
            labels.update(spec.labels)
            entries = [
                RuleEntry(
                    alert=spec.alert,
                    expr=spec.expr,
                    duration=spec.for_,
                    labels=labels,
                    annotations=dict(spec.annotations),
                )
            ]

        for entry in entries:
            if not entry.expr.strip():
                raise RenderError(f"Rule {entry.alert!r} has an empty expression")
            if "\n" in entry.alert:
                raise RenderError(f"Rule name {entry.alert!r} contains a newline")
        return entries

    def render_rule_groups(
        self,
        name: str,
        spec: Union[AnyAlertRuleSpec, Mapping[str, Any]],
    ) -> Dict[str, Any]:
        """
        Render the PrometheusRule ``spec`` document for AlertRule ``name``.

        Optional fields (``for``, ``annotations``) are omitted when empty.
        """
        rules = []
        for entry in self.rule_entries(spec):
            rule: Dict[str, Any] = {"alert": entry.alert, "expr": entry.expr}
            if entry.duration:
                rule["for"] = entry.duration
            rule["labels"] = self.merge_labels(entry.labels)
            if entry.annotations:
                rule["annotations"] = dict(sorted(entry.annotations.items()))
            rules.append(rule)

        return {"groups": [{"name": f"{name}-group", "rules": rules}]}

    def render_config_blob(
        self,
        name: str,
        spec: Union[AnyAlertRuleSpec, Mapping[str, Any]],
    ) -> str:
        """
        Render the ``alertrules.yaml`` text for AlertRule ``name``.

        Label and annotation values are always double-quoted; the
        rule-list variant's fixed keys come first, in their fixed order.
        A user-supplied ``managed-by`` label is dropped; the identity marker
        lives on the ConfigMap metadata.
        """
        spec = self.coerce_spec(spec)
        entries = self.rule_entries(spec)

        deployment = None
        if isinstance(spec, AlertRuleSpec) and spec.deployment_ref is not None:
            deployment = spec.deployment_ref.name

        lines = ["groups:", f"- name: {_plain(name)}", "  rules:"]
        for entry in entries:
            lines.append(f"  - alert: {_plain(entry.alert)}")
            lines.append(f"    expr: {_plain(entry.expr)}")
            if entry.duration:
                lines.append(f"    for: {_plain(entry.duration)}")

            labels = self._blob_labels(entry, deployment)
            lines.append("    labels:")
            lines.extend(f"      {_plain(k)}: {_quoted(v)}" for k, v in labels.items())

            annotations = self._blob_annotations(entry)
            if annotations:
                lines.append("    annotations:")
                lines.extend(f"      {_plain(k)}: {_quoted(v)}" for k, v in annotations.items())

        return "\n".join(lines) + "\n"

    @staticmethod
    def _blob_labels(entry: RuleEntry, deployment: Optional[str]) -> Dict[str, str]:
        labels = {"alertname": entry.labels.get("alertname", entry.alert)}
        if "severity" in entry.labels:
            labels["severity"] = entry.labels["severity"]
        if "deployment" in entry.labels:
            labels["deployment"] = entry.labels["deployment"]
        elif deployment:
            labels["deployment"] = deployment
        for key in sorted(entry.labels):
            if key == MANAGED_BY_LABEL:
                continue
            labels.setdefault(key, entry.labels[key])
        return labels

    @staticmethod
    def _blob_annotations(entry: RuleEntry) -> Dict[str, str]:
        annotations: Dict[str, str] = {}
        for key in ("summary", "severity", "discord", "email"):
            if key in entry.annotations:
                annotations[key] = entry.annotations[key]
        for key in sorted(entry.annotations):
            annotations.setdefault(key, entry.annotations[key])
        return annotations
