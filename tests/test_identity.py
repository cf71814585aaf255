"""
Tests for resource kinds and identity helpers.
"""

import pytest

from alertrule_operator.identity import (
    ObjectKey,
    alert_rule_name_for,
    delete_if_present,
    get_optional,
    is_being_deleted,
)
from alertrule_operator.resources import ALERT_RULE, CONFIG_MAP, DEPLOYMENT, PROMETHEUS_RULE


class TestResourceKind:
    def test_api_versions(self):
        assert ALERT_RULE.api_version == "monitoring.my.domain/v1"
        assert PROMETHEUS_RULE.api_version == "monitoring.coreos.com/v1"
        assert CONFIG_MAP.api_version == "v1"
        assert DEPLOYMENT.api_version == "apps/v1"

    def test_custom_kinds(self):
        assert ALERT_RULE.is_custom
        assert PROMETHEUS_RULE.is_custom
        assert not CONFIG_MAP.is_custom
        assert not DEPLOYMENT.is_custom

    def test_str(self):
        assert str(CONFIG_MAP) == "ConfigMap.core"
        assert str(ALERT_RULE) == "AlertRule.monitoring.my.domain"


class TestObjectKey:
    def test_str(self):
        assert str(ObjectKey("shop", "checkout")) == "shop/checkout"

    def test_parse(self):
        assert ObjectKey.parse("shop/checkout") == ObjectKey("shop", "checkout")
        assert ObjectKey.parse("checkout") == ObjectKey("default", "checkout")
        assert ObjectKey.parse("checkout", default_namespace="ops") == ObjectKey("ops", "checkout")

    @pytest.mark.parametrize("value", ["", "/checkout", "shop/"])
    def test_parse_invalid(self, value):
        with pytest.raises(ValueError):
            ObjectKey.parse(value)

    def test_of(self):
        obj = {"metadata": {"namespace": "shop", "name": "checkout"}}
        assert ObjectKey.of(obj) == ObjectKey("shop", "checkout")


class TestHelpers:
    def test_alert_rule_name(self):
        assert alert_rule_name_for("checkout") == "checkout-alert"

    def test_is_being_deleted(self):
        assert not is_being_deleted({"metadata": {}})
        assert is_being_deleted({"metadata": {"deletionTimestamp": "2025-01-01T00:00:00Z"}})

    def test_get_optional(self, store):
        key = ObjectKey("shop", "settings")
        assert get_optional(store, CONFIG_MAP, key) is None
        store.create(CONFIG_MAP, {"metadata": {"name": "settings", "namespace": "shop"}})
        assert get_optional(store, CONFIG_MAP, key)["metadata"]["name"] == "settings"

    def test_delete_if_present(self, store):
        key = ObjectKey("shop", "settings")
        store.create(CONFIG_MAP, {"metadata": {"name": "settings", "namespace": "shop"}})
        assert delete_if_present(store, CONFIG_MAP, key) is True
        assert delete_if_present(store, CONFIG_MAP, key) is False
