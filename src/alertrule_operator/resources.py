"""
Resource kinds the operator reads and writes.

Each kind carries enough API coordinates for the store backends to route
calls (core, apps, or custom objects API) without branching on names.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class ResourceKind:
    """API coordinates of a Kubernetes resource type."""
    group: str
    version: str
    plural: str
    kind: str
    namespaced: bool = True
    status_subresource: bool = False

    @property
    def api_version(self) -> str:
        """apiVersion string as it appears on objects."""
        if self.group:
            return f"{self.group}/{self.version}"
        return self.version

    @property
    def is_custom(self) -> bool:
        """True for CRD-backed kinds served by the custom objects API."""
        return self.group not in ("", "apps")

    def __str__(self) -> str:
        return f"{self.kind}.{self.group or 'core'}"


ALERT_RULE_GROUP = "monitoring.my.domain"

ALERT_RULE = ResourceKind(
    group=ALERT_RULE_GROUP,
    version="v1",
    plural="alertrules",
    kind="AlertRule",
    status_subresource=True,
)

PROMETHEUS_RULE = ResourceKind(
    group="monitoring.coreos.com",
    version="v1",
    plural="prometheusrules",
    kind="PrometheusRule",
)

CONFIG_MAP = ResourceKind(
    group="",
    version="v1",
    plural="configmaps",
    kind="ConfigMap",
)

DEPLOYMENT = ResourceKind(
    group="apps",
    version="v1",
    plural="deployments",
    kind="Deployment",
    status_subresource=True,
)
