"""
kopf wiring for the AlertRule operator.

Run with:
    kopf run -m alertrule_operator.operator --all-namespaces

kopf decides when to reconcile; this module only translates its events
into ``reconcile(key)`` calls and maps failures onto kopf's retry model:

- StoreError  -> TemporaryError(delay=requeue_delay_seconds)
- RenderError -> TemporaryError(delay=render_error_backoff_seconds)

Deletions are observed through raw watch events so no finalizer is ever
added; the not-found paths of the reconcilers do the cleanup. kopf does
not retry event handlers, so those calls retry in place (``run_deletion``).
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Dict

import kopf

from alertrule_operator.backends import get_backend
from alertrule_operator.config import OperatorConfig, get_config
from alertrule_operator.errors import RenderError, StoreError
from alertrule_operator.identity import ObjectKey
from alertrule_operator.logger import configure_logging
from alertrule_operator.reconcilers import AlertRuleReconciler, DeploymentReconciler
from alertrule_operator.reconcilers.result import ReconcileResult
from alertrule_operator.renderer import RuleRenderer
from alertrule_operator.resources import ALERT_RULE, ALERT_RULE_GROUP, DEPLOYMENT
from alertrule_operator.store import StoreType, get_store

logger = logging.getLogger(__name__)


def run_reconcile(
    reconcile: Callable[[ObjectKey], ReconcileResult],
    key: ObjectKey,
    config: OperatorConfig,
) -> None:
    """Invoke a reconciler and convert failures into kopf retries."""
    try:
        result = reconcile(key)
    except RenderError as e:
        raise kopf.TemporaryError(str(e), delay=config.render_error_backoff_seconds) from e
    except StoreError as e:
        raise kopf.TemporaryError(str(e), delay=config.requeue_delay_seconds) from e

    logger.debug("Reconciled %s: %s", key, result.action.value)
    if result.requeue:
        raise kopf.TemporaryError(f"{key} has not converged yet", delay=config.requeue_delay_seconds)


def run_deletion(
    reconcile: Callable[[ObjectKey], ReconcileResult],
    key: ObjectKey,
    config: OperatorConfig,
) -> None:
    """
    Reconcile a deleted object, retrying in place.

    kopf never retries event handlers, so a transient failure on the
    deletion path is retried here, up to ``deletion_retry_attempts`` times.
    """
    attempts = config.deletion_retry_attempts
    for attempt in range(1, attempts + 1):
        try:
            run_reconcile(reconcile, key, config)
            return
        except kopf.TemporaryError as e:
            if attempt == attempts:
                logger.error("Giving up on deleted %s after %d attempts: %s", key, attempts, e)
                raise
            logger.warning(
                "Deletion reconcile of %s failed (attempt %d/%d), retrying in %ss: %s",
                key,
                attempt,
                attempts,
                config.requeue_delay_seconds,
                e,
            )
            time.sleep(config.requeue_delay_seconds)


def build_reconcilers(config: OperatorConfig) -> Dict[str, Any]:
    """Construct the store and both reconcilers from configuration."""
    store = get_store(StoreType(config.store_type), kubeconfig=config.kubeconfig)
    backend = get_backend(config.artifact_backend, RuleRenderer.from_config(config))
    return {
        "alert_rules": AlertRuleReconciler(store, backend),
        "deployments": DeploymentReconciler(store, config),
    }


@kopf.on.startup()
def configure(settings: kopf.OperatorSettings, memo: kopf.Memo, **_: Any) -> None:
    config = get_config()
    configure_logging(config.log_level, config.log_format)

    settings.posting.level = logging.WARNING
    settings.persistence.progress_storage = kopf.AnnotationsProgressStorage(prefix=ALERT_RULE_GROUP)
    settings.persistence.diffbase_storage = kopf.AnnotationsDiffBaseStorage(
        prefix=ALERT_RULE_GROUP,
        key="last-handled-configuration",
    )

    memo.config = config
    memo.update(build_reconcilers(config))
    logger.info(
        "AlertRule operator started (backend=%s, store=%s)",
        config.artifact_backend,
        config.store_type,
    )


@kopf.on.resume(ALERT_RULE.group, ALERT_RULE.version, ALERT_RULE.plural)
@kopf.on.create(ALERT_RULE.group, ALERT_RULE.version, ALERT_RULE.plural)
@kopf.on.update(ALERT_RULE.group, ALERT_RULE.version, ALERT_RULE.plural)
def alert_rule_changed(name: str, namespace: str, memo: kopf.Memo, **_: Any) -> None:
    run_reconcile(memo.alert_rules.reconcile, ObjectKey(namespace, name), memo.config)


@kopf.on.event(ALERT_RULE.group, ALERT_RULE.version, ALERT_RULE.plural)
def alert_rule_event(event: Dict[str, Any], name: str, namespace: str, memo: kopf.Memo, **_: Any) -> None:
    if event.get("type") == "DELETED":
        run_deletion(memo.alert_rules.reconcile, ObjectKey(namespace, name), memo.config)


@kopf.on.resume(DEPLOYMENT.group, DEPLOYMENT.version, DEPLOYMENT.plural)
@kopf.on.create(DEPLOYMENT.group, DEPLOYMENT.version, DEPLOYMENT.plural)
@kopf.on.update(DEPLOYMENT.group, DEPLOYMENT.version, DEPLOYMENT.plural)
def deployment_changed(name: str, namespace: str, memo: kopf.Memo, **_: Any) -> None:
    run_reconcile(memo.deployments.reconcile, ObjectKey(namespace, name), memo.config)


@kopf.on.event(DEPLOYMENT.group, DEPLOYMENT.version, DEPLOYMENT.plural)
def deployment_event(event: Dict[str, Any], name: str, namespace: str, memo: kopf.Memo, **_: Any) -> None:
    if event.get("type") == "DELETED":
        run_deletion(memo.deployments.reconcile, ObjectKey(namespace, name), memo.config)
