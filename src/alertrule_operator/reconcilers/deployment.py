"""
Deployment reconciler.

Makes sure every Deployment has an AlertRule named ``<deployment>-alert``:

- Deployment gone: delete that AlertRule (not-found is success)
- Deployment being deleted: nothing to do, owner references cascade
- No AlertRule yet: create a default PodDown rule owned by the Deployment
- AlertRule exists: correct ``spec.deploymentRef`` if it drifted

Only ``deploymentRef`` is ever rewritten on an existing AlertRule.
Severity, expression, duration, labels and annotations belong to whoever
last wrote the AlertRule directly.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode

from alertrule_operator.config import OperatorConfig, get_config
from alertrule_operator.errors import ReconcileError
from alertrule_operator.identity import (
    ObjectKey,
    alert_rule_name_for,
    controller_owner_reference,
    delete_if_present,
    get_optional,
    is_being_deleted,
)
from alertrule_operator.logger import ReconcileLogger
from alertrule_operator.reconcilers.result import Action, ReconcileResult
from alertrule_operator.renderer import MANAGED_BY_LABEL
from alertrule_operator.resources import ALERT_RULE, DEPLOYMENT
from alertrule_operator.store.base import ObjectStore

logger = logging.getLogger(__name__)


def _format_ref(ref: Optional[Dict[str, Any]]) -> Optional[str]:
    if not ref:
        return None
    return f"{ref.get('namespace')}/{ref.get('name')}"


class DeploymentReconciler:
    """
    Derives one AlertRule per Deployment.

    Example:
        reconciler = DeploymentReconciler(store)
        reconciler.reconcile(ObjectKey("shop", "checkout"))
    """

    def __init__(self, store: ObjectStore, config: Optional[OperatorConfig] = None):
        self.store = store
        self.config = config or get_config()
        self.events = ReconcileLogger(controller="deployment")
        self.tracer = trace.get_tracer(__name__)

    def reconcile(self, key: ObjectKey) -> ReconcileResult:
        """
        Converge the AlertRule derived from Deployment ``key``.

        Raises:
            StoreError: A store call failed; retry later
        """
        with self.tracer.start_as_current_span(
            "deployment.reconcile",
            attributes={"deployment.namespace": key.namespace, "deployment.name": key.name},
        ) as span:
            try:
                result = self._reconcile(key)
            except ReconcileError as e:
                span.record_exception(e)
                span.set_status(Status(StatusCode.ERROR, str(e)))
                self.events.log_failed(key, e, e.retryable)
                raise
            span.set_attribute("reconcile.action", result.action.value)
            return result

    def _reconcile(self, key: ObjectKey) -> ReconcileResult:
        alert_key = ObjectKey(key.namespace, alert_rule_name_for(key.name))

        deployment = get_optional(self.store, DEPLOYMENT, key)
        if deployment is None:
            logger.info("Deployment %s not found, checking for AlertRule %s to delete", key, alert_key)
            if delete_if_present(self.store, ALERT_RULE, alert_key):
                self.events.log_alert_rule_deleted(alert_key, deployment=str(key))
                return ReconcileResult(alert_key, Action.DELETED)
            return ReconcileResult(alert_key, Action.SKIPPED)

        if is_being_deleted(deployment):
            logger.info("Deployment %s is being deleted, skipping reconciliation", key)
            return ReconcileResult(alert_key, Action.SKIPPED)

        alert_rule = get_optional(self.store, ALERT_RULE, alert_key)
        if alert_rule is None:
            logger.info("Creating AlertRule %s for Deployment %s", alert_key, key)
            self.store.create(ALERT_RULE, self.default_alert_rule(deployment, alert_key.name))
            self.events.log_alert_rule_created(alert_key, deployment=str(key))
            return ReconcileResult(alert_key, Action.CREATED)

        desired_ref = {"namespace": key.namespace, "name": key.name}
        spec = alert_rule.setdefault("spec", {})
        current_ref = spec.get("deploymentRef")
        if current_ref and all(current_ref.get(k) == v for k, v in desired_ref.items()):
            return ReconcileResult(alert_key, Action.UNCHANGED)

        logger.info("Updating AlertRule %s deployment reference", alert_key)
        spec["deploymentRef"] = desired_ref
        # Full replace of the object just read; resourceVersion guards concurrent edits
        self.store.update(ALERT_RULE, alert_rule)
        self.events.log_ref_updated(alert_key, from_ref=_format_ref(current_ref), to_ref=str(key))
        return ReconcileResult(alert_key, Action.UPDATED)

    def default_alert_rule(self, deployment: Dict[str, Any], name: str) -> Dict[str, Any]:
        """Default PodDown AlertRule for a Deployment, owned by it."""
        metadata = deployment["metadata"]
        workload = metadata["name"]
        namespace = metadata["namespace"]
        duration = self.config.default_for

        return {
            "apiVersion": ALERT_RULE.api_version,
            "kind": ALERT_RULE.kind,
            "metadata": {
                "name": name,
                "namespace": namespace,
                "labels": {
                    "app": workload,
                    MANAGED_BY_LABEL: self.config.operator_name,
                    "deployment.kubernetes.io/name": workload,
                },
                "ownerReferences": [controller_owner_reference(deployment, DEPLOYMENT)],
            },
            "spec": {
                "alert": f"{workload}PodDown",
                "expr": f'up{{job="{workload}"}} == 0',
                "for": duration,
                "severity": self.config.default_severity,
                "labels": {
                    "deployment": workload,
                    "namespace": namespace,
                },
                "annotations": {
                    "summary": f"Pod {workload} is down",
                    "description": (
                        f"Pod {workload} in namespace {namespace} has been down for more than {duration}"
                    ),
                },
                "deploymentRef": {
                    "namespace": namespace,
                    "name": workload,
                },
            },
        }
