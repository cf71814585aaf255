"""
Artifact backends.

A backend knows how to turn a rendered AlertRule into the object that
carries it (PrometheusRule or ConfigMap), and how to carry identity and
version fields forward from an existing object so the reconciler can
issue a full replace. The reconciler is parameterised with one backend
at construction time and never branches on the format itself.
"""

from __future__ import annotations

import copy
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, Type

from alertrule_operator.identity import controller_owner_reference
from alertrule_operator.models import AnyAlertRuleSpec, Reason
from alertrule_operator.renderer import CONFIG_BLOB_KEY, MANAGED_BY_LABEL, RuleRenderer
from alertrule_operator.resources import (
    ALERT_RULE,
    ALERT_RULE_GROUP,
    CONFIG_MAP,
    PROMETHEUS_RULE,
    ResourceKind,
)

logger = logging.getLogger(__name__)

ALERT_RULE_BACKREF_LABEL = f"alertrule.{ALERT_RULE_GROUP}"
APP_NAME_LABEL = "app.kubernetes.io/name"
APP_MANAGED_BY_LABEL = "app.kubernetes.io/managed-by"
CONTROLLER_NAME = "alertrule-controller"

# Metadata fields the server owns; carried forward on replace
_SERVER_FIELDS = ("resourceVersion", "uid", "creationTimestamp", "generation")


class ArtifactBackend(ABC):
    """Builds and replaces the artifact that carries rendered rules."""

    kind: ResourceKind
    created_reason: str
    not_found_reason: str
    create_failed_reason: str
    update_failed_reason: str

    def __init__(self, renderer: RuleRenderer):
        self.renderer = renderer

    @abstractmethod
    def render(self, name: str, spec: AnyAlertRuleSpec) -> Any:
        """Render the payload for AlertRule ``name``."""

    @abstractmethod
    def _payload(self, rendered: Any) -> Dict[str, Any]:
        """Top-level fields (besides metadata) that carry the payload."""

    def build(self, alert_rule: Dict[str, Any], rendered: Any) -> Dict[str, Any]:
        """Desired artifact object for an AlertRule and its rendered payload."""
        metadata = alert_rule["metadata"]
        labels = dict(self.renderer.selector_labels)
        labels.update(
            {
                APP_NAME_LABEL: self.renderer.operator_name,
                APP_MANAGED_BY_LABEL: CONTROLLER_NAME,
                MANAGED_BY_LABEL: self.renderer.operator_name,
                ALERT_RULE_BACKREF_LABEL: metadata["name"],
            }
        )
        body = {
            "apiVersion": self.kind.api_version,
            "kind": self.kind.kind,
            "metadata": {
                "name": metadata["name"],
                "namespace": metadata["namespace"],
                "labels": dict(sorted(labels.items())),
                "ownerReferences": [controller_owner_reference(alert_rule, ALERT_RULE)],
            },
        }
        body.update(self._payload(rendered))
        return body

    def carry_forward(self, desired: Dict[str, Any], existing: Dict[str, Any]) -> Dict[str, Any]:
        """
        Replace body: the desired object with server-owned metadata copied
        from ``existing``. Foreign labels and annotations on the existing
        object are kept; ours take precedence.
        """
        body = copy.deepcopy(desired)
        old_md = existing.get("metadata") or {}
        new_md = body["metadata"]
        for field in _SERVER_FIELDS:
            if field in old_md:
                new_md[field] = old_md[field]

        labels = dict(old_md.get("labels") or {})
        labels.update(new_md.get("labels") or {})
        new_md["labels"] = dict(sorted(labels.items()))
        if old_md.get("annotations"):
            new_md["annotations"] = dict(old_md["annotations"])
        return body


_BACKENDS: Dict[str, Type[ArtifactBackend]] = {}


def register_artifact_backend(name: str):
    """Decorator to register an artifact backend."""
    def decorator(cls: Type[ArtifactBackend]) -> Type[ArtifactBackend]:
        _BACKENDS[name] = cls
        return cls
    return decorator


@register_artifact_backend("prometheusrule")
class PrometheusRuleBackend(ArtifactBackend):
    """monitoring.coreos.com/v1 PrometheusRule carrying a rule-group document."""

    kind = PROMETHEUS_RULE
    created_reason = Reason.PROMETHEUS_RULE_CREATED
    not_found_reason = Reason.PROMETHEUS_RULE_NOT_FOUND
    create_failed_reason = Reason.PROMETHEUS_RULE_CREATION_FAILED
    update_failed_reason = Reason.PROMETHEUS_RULE_UPDATE_FAILED

    def render(self, name: str, spec: AnyAlertRuleSpec) -> Dict[str, Any]:
        return self.renderer.render_rule_groups(name, spec)

    def _payload(self, rendered: Dict[str, Any]) -> Dict[str, Any]:
        return {"spec": rendered}


@register_artifact_backend("configmap")
class ConfigMapBackend(ArtifactBackend):
    """ConfigMap holding the rule-group document as ``alertrules.yaml``."""

    kind = CONFIG_MAP
    created_reason = Reason.RECONCILED
    not_found_reason = Reason.CONFIG_MAP_NOT_FOUND
    create_failed_reason = Reason.CONFIG_MAP_CREATION_FAILED
    update_failed_reason = Reason.CONFIG_MAP_UPDATE_FAILED

    def render(self, name: str, spec: AnyAlertRuleSpec) -> str:
        return self.renderer.render_config_blob(name, spec)

    def _payload(self, rendered: str) -> Dict[str, Any]:
        return {"data": {CONFIG_BLOB_KEY: rendered}}


def get_backend(name: str, renderer: Optional[RuleRenderer] = None) -> ArtifactBackend:
    """
    Get an artifact backend by name.

    Args:
        name: 'prometheusrule' or 'configmap'
        renderer: Renderer to use; built from the global config when omitted
    """
    if name not in _BACKENDS:
        raise ValueError(f"Unknown artifact backend: {name!r} (expected one of {sorted(_BACKENDS)})")
    if renderer is None:
        from alertrule_operator.config import get_config

        renderer = RuleRenderer.from_config(get_config())
    logger.debug("Using %s artifact backend", name)
    return _BACKENDS[name](renderer)
