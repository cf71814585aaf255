"""
Reconcilers for AlertRules and Deployments.

Both expose ``reconcile(key) -> ReconcileResult`` and raise a
``ReconcileError`` subclass on failure. They hold no shared mutable
state, so different keys can be reconciled concurrently.
"""

from alertrule_operator.reconcilers.alertrule import AlertRuleReconciler
from alertrule_operator.reconcilers.deployment import DeploymentReconciler
from alertrule_operator.reconcilers.result import Action, ReconcileResult

__all__ = [
    "Action",
    "AlertRuleReconciler",
    "DeploymentReconciler",
    "ReconcileResult",
]
