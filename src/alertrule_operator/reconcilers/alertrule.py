"""
AlertRule reconciler.

Renders each AlertRule into its artifact (PrometheusRule or ConfigMap,
depending on the backend), creates or fully replaces the artifact, and
records the outcome as status conditions on the AlertRule.

Flow per key:
- AlertRule gone: delete the artifact of the same name (not-found is success)
- AlertRule being deleted: nothing to do, owner references cascade
- Otherwise: render, upsert, re-check the artifact, write conditions

The artifact write and the status write are independent. A crash between
them is repaired by the next reconcile, which re-derives both.
"""

from __future__ import annotations

import copy
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode
from pydantic import ValidationError

from alertrule_operator.backends import ALERT_RULE_BACKREF_LABEL, ArtifactBackend
from alertrule_operator.conditions import find_condition, make_condition, upsert_condition
from alertrule_operator.errors import (
    ConflictError,
    NotFoundError,
    ReconcileError,
    RenderError,
    StoreError,
)
from alertrule_operator.identity import (
    ObjectKey,
    delete_if_present,
    get_optional,
    is_being_deleted,
)
from alertrule_operator.logger import ReconcileLogger
from alertrule_operator.models import (
    AlertRuleStatus,
    Condition,
    ConditionStatus,
    ConditionType,
    Reason,
    SpecShapeError,
    parse_alert_rule_spec,
)
from alertrule_operator.reconcilers.result import Action, ReconcileResult
from alertrule_operator.renderer import fingerprint
from alertrule_operator.resources import ALERT_RULE
from alertrule_operator.store.base import ObjectStore

logger = logging.getLogger(__name__)


def _payload(obj: Dict[str, Any]) -> Dict[str, Any]:
    """Fields compared to decide whether a replace changed anything."""
    metadata = obj.get("metadata") or {}
    return {
        "labels": metadata.get("labels") or {},
        "ownerReferences": metadata.get("ownerReferences") or [],
        "spec": obj.get("spec"),
        "data": obj.get("data"),
    }


class AlertRuleReconciler:
    """
    Keeps one artifact per AlertRule in sync with its spec.

    Example:
        reconciler = AlertRuleReconciler(store, get_backend("prometheusrule"))
        result = reconciler.reconcile(ObjectKey("shop", "checkout-alert"))
    """

    def __init__(
        self,
        store: ObjectStore,
        backend: ArtifactBackend,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.store = store
        self.backend = backend
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self.events = ReconcileLogger(controller="alertrule")
        self.tracer = trace.get_tracer(__name__)

    def reconcile(self, key: ObjectKey) -> ReconcileResult:
        """
        Converge the artifact for ``key``.

        Raises:
            RenderError: The spec cannot be rendered (Degraded is recorded)
            StoreError: A store call failed; retry later
        """
        with self.tracer.start_as_current_span(
            "alertrule.reconcile",
            attributes={
                "alertrule.namespace": key.namespace,
                "alertrule.name": key.name,
                "artifact.kind": self.backend.kind.kind,
            },
        ) as span:
            try:
                result = self._reconcile(key)
            except ReconcileError as e:
                span.record_exception(e)
                span.set_status(Status(StatusCode.ERROR, str(e)))
                self.events.log_failed(key, e, e.retryable)
                raise
            span.set_attribute("reconcile.action", result.action.value)
            if result.fingerprint:
                span.set_attribute("artifact.fingerprint", result.fingerprint)
            return result

    def _reconcile(self, key: ObjectKey) -> ReconcileResult:
        alert_rule = get_optional(self.store, ALERT_RULE, key)
        if alert_rule is None:
            return self._delete_artifact(key)

        if is_being_deleted(alert_rule):
            logger.debug("AlertRule %s is being deleted, skipping", key)
            return ReconcileResult(key, Action.SKIPPED)

        try:
            spec = parse_alert_rule_spec(alert_rule.get("spec") or {})
            rendered = self.backend.render(key.name, spec)
        except (RenderError, SpecShapeError, ValidationError) as e:
            logger.error("Unable to generate alert rules for %s: %s", key, e)
            self._record_failure(
                alert_rule, Reason.GENERATION_FAILED, f"Failed to generate alert rules: {e}"
            )
            if isinstance(e, RenderError):
                raise
            raise RenderError(str(e)) from e

        digest = fingerprint(rendered)
        desired = self.backend.build(alert_rule, rendered)
        action = self._upsert(alert_rule, key, desired, digest)
        ready = self._record_ready(alert_rule, key)

        return ReconcileResult(key, action, fingerprint=digest, requeue=not ready)

    def _upsert(
        self,
        alert_rule: Dict[str, Any],
        key: ObjectKey,
        desired: Dict[str, Any],
        digest: str,
    ) -> Action:
        kind = self.backend.kind
        existing = get_optional(self.store, kind, key)

        if existing is None:
            try:
                self.store.create(kind, desired)
            except ConflictError:
                raise
            except StoreError as e:
                logger.error("Unable to create %s %s: %s", kind.kind, key, e)
                self._record_failure(
                    alert_rule, self.backend.create_failed_reason, f"Failed to create {kind.kind}: {e}"
                )
                raise
            logger.info("Created %s %s", kind.kind, key)
            self.events.log_artifact_created(key, kind=kind.kind, fingerprint=digest)
            return Action.CREATED

        body = self.backend.carry_forward(desired, existing)
        unchanged = _payload(body) == _payload(existing)
        try:
            self.store.update(kind, body)
        except ConflictError:
            raise
        except StoreError as e:
            logger.error("Unable to update %s %s: %s", kind.kind, key, e)
            self._record_failure(
                alert_rule, self.backend.update_failed_reason, f"Failed to update {kind.kind}: {e}"
            )
            raise

        if unchanged:
            logger.debug("Replaced %s %s with identical content", kind.kind, key)
            return Action.UNCHANGED
        logger.info("Updated %s %s", kind.kind, key)
        self.events.log_artifact_updated(key, kind=kind.kind, fingerprint=digest)
        return Action.UPDATED

    def _record_ready(self, alert_rule: Dict[str, Any], key: ObjectKey) -> bool:
        """Re-check the artifact and record Ready; returns True if it exists."""
        kind = self.backend.kind
        fetch_error: Optional[StoreError] = None
        try:
            self.store.get(kind, key.namespace, key.name)
            ready = make_condition(
                ConditionType.READY,
                ConditionStatus.TRUE,
                self.backend.created_reason,
                f"{kind.kind} {key} is up to date",
            )
        except NotFoundError:
            ready = make_condition(
                ConditionType.READY,
                ConditionStatus.FALSE,
                self.backend.not_found_reason,
                f"{kind.kind} {key} not found",
            )
        except StoreError as e:
            fetch_error = e
            ready = make_condition(
                ConditionType.READY,
                ConditionStatus.UNKNOWN,
                Reason.ERROR,
                f"Failed to get {kind.kind}: {e}",
            )

        conditions = self._apply(alert_rule, ready)
        if ready.status == ConditionStatus.TRUE and find_condition(conditions, ConditionType.DEGRADED):
            self._apply(
                alert_rule,
                make_condition(
                    ConditionType.DEGRADED,
                    ConditionStatus.FALSE,
                    Reason.RECONCILED,
                    "AlertRule reconciled successfully",
                ),
            )
        self._write_status(alert_rule)

        if fetch_error is not None:
            raise fetch_error
        return ready.status == ConditionStatus.TRUE

    def _record_failure(self, alert_rule: Dict[str, Any], reason: str, message: str) -> None:
        """Record Degraded=True; a failed status write is logged, not raised."""
        self._apply(
            alert_rule,
            make_condition(ConditionType.DEGRADED, ConditionStatus.TRUE, reason, message),
        )
        try:
            self._write_status(alert_rule)
        except StoreError as e:
            logger.error("Unable to update status of AlertRule %s: %s", ObjectKey.of(alert_rule), e)

    def _apply(self, alert_rule: Dict[str, Any], condition: Condition) -> List[Condition]:
        """Upsert a condition into the in-memory AlertRule's status."""
        status = AlertRuleStatus.from_dict(alert_rule.get("status"))
        generation = (alert_rule.get("metadata") or {}).get("generation", 0)
        status.conditions = upsert_condition(status.conditions, condition, generation, now=self._clock())
        merged = dict(alert_rule.get("status") or {})
        merged.update(status.to_dict())
        alert_rule["status"] = merged
        return status.conditions

    def _write_status(self, alert_rule: Dict[str, Any]) -> None:
        updated = self.store.update_status(ALERT_RULE, copy.deepcopy(alert_rule))
        # Keep the local copy current so a second status write is not stale
        alert_rule["metadata"]["resourceVersion"] = updated["metadata"]["resourceVersion"]

    def _delete_artifact(self, key: ObjectKey) -> ReconcileResult:
        """Not-found path: remove the artifact this AlertRule produced, if any."""
        kind = self.backend.kind
        artifact = get_optional(self.store, kind, key)
        if artifact is None:
            logger.debug("AlertRule %s and its %s are both gone", key, kind.kind)
            return ReconcileResult(key, Action.SKIPPED)

        if not self._produced_by_alert_rule(artifact, key):
            logger.warning(
                "AlertRule %s not found; leaving %s %s alone because it was not rendered from it",
                key,
                kind.kind,
                key,
            )
            return ReconcileResult(key, Action.SKIPPED)

        if delete_if_present(self.store, kind, key):
            logger.info("Deleted %s %s for missing AlertRule", kind.kind, key)
            self.events.log_artifact_deleted(key, kind=kind.kind)
            return ReconcileResult(key, Action.DELETED)
        return ReconcileResult(key, Action.SKIPPED)

    @staticmethod
    def _produced_by_alert_rule(artifact: Dict[str, Any], key: ObjectKey) -> bool:
        metadata = artifact.get("metadata") or {}
        if (metadata.get("labels") or {}).get(ALERT_RULE_BACKREF_LABEL) == key.name:
            return True
        return any(
            ref.get("kind") == ALERT_RULE.kind and ref.get("name") == key.name
            for ref in metadata.get("ownerReferences") or []
        )
