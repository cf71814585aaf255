"""
Tests for the kopf handler wiring.
"""

from unittest.mock import MagicMock, patch

import kopf
import pytest

from alertrule_operator import operator
from alertrule_operator.errors import ConflictError, RenderError, StoreError
from alertrule_operator.identity import ObjectKey
from alertrule_operator.reconcilers import Action, AlertRuleReconciler, DeploymentReconciler, ReconcileResult
from alertrule_operator.resources import ALERT_RULE_GROUP
from alertrule_operator.store import MemoryStore

KEY = ObjectKey("shop", "checkout-alert")


@pytest.fixture
def memo(config):
    memo = kopf.Memo()
    memo.config = config
    memo.alert_rules = MagicMock()
    memo.alert_rules.reconcile.return_value = ReconcileResult(KEY, Action.UNCHANGED)
    memo.deployments = MagicMock()
    memo.deployments.reconcile.return_value = ReconcileResult(KEY, Action.UNCHANGED)
    return memo


class TestRunReconcile:
    """Failure mapping onto kopf retries."""

    def test_success(self, config):
        reconcile = MagicMock(return_value=ReconcileResult(KEY, Action.CREATED))
        operator.run_reconcile(reconcile, KEY, config)
        reconcile.assert_called_once_with(KEY)

    def test_render_error_backs_off(self, config):
        reconcile = MagicMock(side_effect=RenderError("empty expression"))
        with pytest.raises(kopf.TemporaryError) as excinfo:
            operator.run_reconcile(reconcile, KEY, config)
        assert excinfo.value.delay == config.render_error_backoff_seconds

    @pytest.mark.parametrize("error", [StoreError("unavailable", status=503), ConflictError("stale")])
    def test_store_error_requeues(self, config, error):
        reconcile = MagicMock(side_effect=error)
        with pytest.raises(kopf.TemporaryError) as excinfo:
            operator.run_reconcile(reconcile, KEY, config)
        assert excinfo.value.delay == config.requeue_delay_seconds

    def test_not_ready_requeues(self, config):
        reconcile = MagicMock(return_value=ReconcileResult(KEY, Action.CREATED, requeue=True))
        with pytest.raises(kopf.TemporaryError):
            operator.run_reconcile(reconcile, KEY, config)

    def test_unexpected_errors_propagate(self, config):
        reconcile = MagicMock(side_effect=KeyError("metadata"))
        with pytest.raises(KeyError):
            operator.run_reconcile(reconcile, KEY, config)


class TestRunDeletion:
    """Deletion-path retries, which kopf does not do for event handlers."""

    def test_store_error_retried(self, config):
        reconcile = MagicMock(
            side_effect=[StoreError("unavailable", status=503), ReconcileResult(KEY, Action.DELETED)]
        )
        with patch("alertrule_operator.operator.time.sleep") as mock_sleep:
            operator.run_deletion(reconcile, KEY, config)

        assert reconcile.call_count == 2
        mock_sleep.assert_called_once_with(config.requeue_delay_seconds)

    def test_gives_up_after_attempts(self, config):
        config = config.model_copy(update={"deletion_retry_attempts": 3})
        reconcile = MagicMock(side_effect=StoreError("unavailable", status=503))

        with patch("alertrule_operator.operator.time.sleep") as mock_sleep:
            with pytest.raises(kopf.TemporaryError):
                operator.run_deletion(reconcile, KEY, config)

        assert reconcile.call_count == 3
        assert mock_sleep.call_count == 2

    def test_success_does_not_sleep(self, config):
        reconcile = MagicMock(return_value=ReconcileResult(KEY, Action.SKIPPED))
        with patch("alertrule_operator.operator.time.sleep") as mock_sleep:
            operator.run_deletion(reconcile, KEY, config)
        mock_sleep.assert_not_called()

    def test_deleted_event_retries(self, memo):
        memo.deployments.reconcile.side_effect = [
            StoreError("timeout", status=504),
            ReconcileResult(ObjectKey("shop", "checkout-alert"), Action.DELETED),
        ]
        with patch("alertrule_operator.operator.time.sleep"):
            operator.deployment_event(event={"type": "DELETED"}, name="checkout", namespace="shop", memo=memo)

        assert memo.deployments.reconcile.call_count == 2
        memo.deployments.reconcile.assert_called_with(ObjectKey("shop", "checkout"))


class TestHandlers:
    """Handlers forward to the right reconciler."""

    def test_alert_rule_changed(self, memo):
        operator.alert_rule_changed(name="checkout-alert", namespace="shop", memo=memo)
        memo.alert_rules.reconcile.assert_called_once_with(KEY)
        memo.deployments.reconcile.assert_not_called()

    def test_deployment_changed(self, memo):
        operator.deployment_changed(name="checkout", namespace="shop", memo=memo)
        memo.deployments.reconcile.assert_called_once_with(ObjectKey("shop", "checkout"))

    def test_deleted_event_reconciles(self, memo):
        operator.alert_rule_event(event={"type": "DELETED"}, name="checkout-alert", namespace="shop", memo=memo)
        memo.alert_rules.reconcile.assert_called_once_with(KEY)

    @pytest.mark.parametrize("event_type", ["ADDED", "MODIFIED", None])
    def test_other_events_ignored(self, memo, event_type):
        operator.deployment_event(event={"type": event_type}, name="checkout", namespace="shop", memo=memo)
        memo.deployments.reconcile.assert_not_called()


class TestStartup:
    """Operator startup configuration."""

    def test_configure(self, monkeypatch):
        monkeypatch.setenv("ALERTRULE_OPERATOR_STORE_TYPE", "memory")
        settings = kopf.OperatorSettings()
        memo = kopf.Memo()

        with patch("alertrule_operator.operator.configure_logging") as mock_logging:
            operator.configure(settings=settings, memo=memo)

        mock_logging.assert_called_once_with("info", "json")
        assert isinstance(memo.alert_rules, AlertRuleReconciler)
        assert isinstance(memo.deployments, DeploymentReconciler)
        assert isinstance(memo.alert_rules.store, MemoryStore)
        assert isinstance(settings.persistence.progress_storage, kopf.AnnotationsProgressStorage)
        assert settings.persistence.progress_storage.prefix == ALERT_RULE_GROUP

    def test_configmap_backend(self, config):
        config = config.model_copy(update={"store_type": "memory", "artifact_backend": "configmap"})
        reconcilers = operator.build_reconcilers(config)
        assert reconcilers["alert_rules"].backend.kind.kind == "ConfigMap"
