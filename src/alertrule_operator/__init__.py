"""
AlertRule Operator - declarative Prometheus alerting rules for Kubernetes workloads.

This package keeps two kinds of derived resources in sync with the AlertRule
custom resource (monitoring.my.domain/v1):

- A rendered alerting-rule artifact, either a PrometheusRule object or a
  ConfigMap holding an ``alertrules.yaml`` document
- A default AlertRule per Deployment, owned by that Deployment

Key Features:
- Deterministic rendering (render twice, get the same bytes)
- Idempotent create/replace with optimistic concurrency
- Owner references for cascade deletion, no finalizers
- Status conditions recorded on the AlertRule itself

Example usage:
    from alertrule_operator import AlertRuleReconciler, MemoryStore, ObjectKey
    from alertrule_operator.backends import get_backend

    store = MemoryStore()
    reconciler = AlertRuleReconciler(store, get_backend("prometheusrule"))
    reconciler.reconcile(ObjectKey("default", "checkout-alert"))
"""

__version__ = "0.1.0"
__all__ = [
    "AlertRuleReconciler",
    "DeploymentReconciler",
    "RuleRenderer",
    "MemoryStore",
    "KubernetesStore",
    "ObjectKey",
    "__version__",
]


# Lazy imports to avoid loading the kubernetes client at import time
def __getattr__(name: str):
    if name == "AlertRuleReconciler":
        from alertrule_operator.reconcilers.alertrule import AlertRuleReconciler
        return AlertRuleReconciler
    if name == "DeploymentReconciler":
        from alertrule_operator.reconcilers.deployment import DeploymentReconciler
        return DeploymentReconciler
    if name == "RuleRenderer":
        from alertrule_operator.renderer import RuleRenderer
        return RuleRenderer
    if name == "MemoryStore":
        from alertrule_operator.store.memory import MemoryStore
        return MemoryStore
    if name == "KubernetesStore":
        from alertrule_operator.store.kubernetes import KubernetesStore
        return KubernetesStore
    if name == "ObjectKey":
        from alertrule_operator.identity import ObjectKey
        return ObjectKey
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
