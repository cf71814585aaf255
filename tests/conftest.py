"""
Pytest configuration and fixtures for AlertRule operator tests.
"""

from __future__ import annotations

import os
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Generator, Optional

import pytest

from alertrule_operator.backends import get_backend
from alertrule_operator.config import OperatorConfig, reset_config
from alertrule_operator.reconcilers import AlertRuleReconciler, DeploymentReconciler
from alertrule_operator.renderer import RuleRenderer
from alertrule_operator.resources import ALERT_RULE, DEPLOYMENT
from alertrule_operator.store import MemoryStore


# ============================================================================
# Environment Fixtures
# ============================================================================


@pytest.fixture(autouse=True)
def clean_env() -> Generator[None, None, None]:
    """Strip ALERTRULE_OPERATOR_* variables and reset the config singleton."""
    original = {k: v for k, v in os.environ.items() if k.startswith("ALERTRULE_OPERATOR_")}
    for key in original:
        del os.environ[key]
    reset_config()

    yield

    for key in [k for k in os.environ if k.startswith("ALERTRULE_OPERATOR_")]:
        del os.environ[key]
    os.environ.update(original)
    reset_config()


@pytest.fixture
def config() -> OperatorConfig:
    """Default operator configuration, independent of any .env file."""
    return OperatorConfig(_env_file=None)


@pytest.fixture
def clock() -> Callable[[], datetime]:
    """Deterministic clock advancing one second per call."""
    state = {"now": datetime(2025, 1, 1, 12, 0, 0, tzinfo=timezone.utc)}

    def tick() -> datetime:
        state["now"] += timedelta(seconds=1)
        return state["now"]

    return tick


# ============================================================================
# Spec Fixtures
# ============================================================================


@pytest.fixture
def checkout_spec() -> Dict[str, Any]:
    """Fixed-field AlertRule spec."""
    return {
        "alert": "checkoutPodDown",
        "expr": 'up{job="checkout"} == 0',
        "for": "1m",
        "severity": "critical",
        "labels": {"team": "payments", "deployment": "checkout"},
        "annotations": {"summary": "Pod checkout is down"},
        "deploymentRef": {"namespace": "shop", "name": "checkout"},
    }


@pytest.fixture
def rule_set_spec() -> Dict[str, Any]:
    """List-based AlertRule spec with notification channels."""
    return {
        "targetDeployment": "checkout",
        "rules": [
            {
                "name": "HighErrorRate",
                "condition": "rate(http_errors_total[5m]) > 0.1",
                "duration": "5m",
                "severity": "warning",
                "notifications": [
                    {"discord": "https://discord.example/hook"},
                    {"email": "oncall@example.com"},
                ],
            },
            {
                "name": "HighLatency",
                "condition": "histogram_quantile(0.99, rate(latency_bucket[5m])) > 1",
                "duration": "10m",
                "severity": "critical",
            },
        ],
    }


# ============================================================================
# Store Fixtures
# ============================================================================


@pytest.fixture
def store() -> MemoryStore:
    """Empty in-memory store with garbage collection."""
    return MemoryStore()


@pytest.fixture
def make_alert_rule(store: MemoryStore) -> Callable[..., Dict[str, Any]]:
    """Create an AlertRule in the store."""

    def _make(name: str, spec: Dict[str, Any], namespace: str = "shop",
              owner: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        metadata: Dict[str, Any] = {"name": name, "namespace": namespace}
        if owner is not None:
            metadata["ownerReferences"] = [owner]
        return store.create(
            ALERT_RULE,
            {
                "apiVersion": ALERT_RULE.api_version,
                "kind": ALERT_RULE.kind,
                "metadata": metadata,
                "spec": spec,
            },
        )

    return _make


@pytest.fixture
def make_deployment(store: MemoryStore) -> Callable[..., Dict[str, Any]]:
    """Create a Deployment in the store."""

    def _make(name: str, namespace: str = "shop") -> Dict[str, Any]:
        return store.create(
            DEPLOYMENT,
            {
                "apiVersion": "apps/v1",
                "kind": "Deployment",
                "metadata": {"name": name, "namespace": namespace, "labels": {"app": name}},
                "spec": {
                    "replicas": 2,
                    "selector": {"matchLabels": {"app": name}},
                    "template": {"metadata": {"labels": {"app": name}}},
                },
            },
        )

    return _make


# ============================================================================
# Reconciler Fixtures
# ============================================================================


@pytest.fixture
def renderer(config: OperatorConfig) -> RuleRenderer:
    return RuleRenderer.from_config(config)


@pytest.fixture
def alert_rule_reconciler(store, renderer, clock) -> AlertRuleReconciler:
    """AlertRule reconciler writing PrometheusRules."""
    return AlertRuleReconciler(store, get_backend("prometheusrule", renderer), clock=clock)


@pytest.fixture
def configmap_reconciler(store, renderer, clock) -> AlertRuleReconciler:
    """AlertRule reconciler writing ConfigMaps."""
    return AlertRuleReconciler(store, get_backend("configmap", renderer), clock=clock)


@pytest.fixture
def deployment_reconciler(store, config) -> DeploymentReconciler:
    return DeploymentReconciler(store, config)
