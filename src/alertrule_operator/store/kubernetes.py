"""
Kubernetes API server store backend.

Custom kinds (AlertRule, PrometheusRule) go through CustomObjectsApi;
ConfigMaps through CoreV1Api; Deployments through AppsV1Api. Typed
responses are converted to plain dicts so every backend hands the
reconcilers the same shape.
"""

from __future__ import annotations

import json
import logging
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterator, Optional

from kubernetes import client, config
from kubernetes.client.rest import ApiException

from alertrule_operator.resources import ResourceKind
from alertrule_operator.store.base import (
    AlreadyExistsError,
    BaseStore,
    ConflictError,
    NotFoundError,
    StoreError,
    StoreType,
    register_backend,
)

logger = logging.getLogger(__name__)

# Method-name stems of the typed clients, keyed by plural
_TYPED_RESOURCES = {
    "configmaps": "config_map",
    "deployments": "deployment",
}

_PROPAGATION_POLICY = "Background"


def translate_api_exception(exc: ApiException, what: str) -> StoreError:
    """Map an ApiException onto the store error taxonomy."""
    if exc.status == 404:
        return NotFoundError(f"{what} not found")
    if exc.status == 409:
        reason = ""
        try:
            reason = json.loads(exc.body or "{}").get("reason", "")
        except (TypeError, ValueError):
            pass
        if reason == "AlreadyExists":
            return AlreadyExistsError(f"{what} already exists")
        return ConflictError(f"Conflict writing {what}: {exc.reason}")
    return StoreError(f"API error on {what}: {exc.status} {exc.reason}", status=exc.status)


@register_backend(StoreType.KUBERNETES)
class KubernetesStore(BaseStore):
    """
    Object store backed by the Kubernetes API server.

    Args:
        kubeconfig: Path to a kubeconfig; in-cluster config is tried first when omitted
        api_client: Preconfigured ApiClient (skips config loading)
    """

    def __init__(
        self,
        kubeconfig: Optional[str] = None,
        api_client: Optional[client.ApiClient] = None,
        **_: Any,
    ):
        if api_client is None:
            if kubeconfig:
                config.load_kube_config(config_file=kubeconfig)
            else:
                try:
                    config.load_incluster_config()
                except config.ConfigException:
                    config.load_kube_config()
            api_client = client.ApiClient()

        self.api_client = api_client
        self.custom_api = client.CustomObjectsApi(api_client)
        self.core_api = client.CoreV1Api(api_client)
        self.apps_api = client.AppsV1Api(api_client)
        logger.debug("KubernetesStore initialized")

    @contextmanager
    def _api_errors(self, kind: ResourceKind, namespace: str, name: str) -> Iterator[None]:
        try:
            yield
        except ApiException as e:
            raise translate_api_exception(e, f"{kind.kind} {namespace}/{name}") from e

    def _typed(self, kind: ResourceKind, verb: str) -> Callable[..., Any]:
        """Resolve e.g. ('read', ConfigMap) to core_api.read_namespaced_config_map."""
        stem = _TYPED_RESOURCES.get(kind.plural)
        if stem is None:
            raise ValueError(f"Unsupported resource kind: {kind}")
        api = self.apps_api if kind.group == "apps" else self.core_api
        suffix = "_status" if verb == "replace_status" else ""
        verb = "replace" if verb == "replace_status" else verb
        return getattr(api, f"{verb}_namespaced_{stem}{suffix}")

    def _to_dict(self, kind: ResourceKind, obj: Any) -> Dict[str, Any]:
        data = obj if isinstance(obj, dict) else self.api_client.sanitize_for_serialization(obj)
        data.setdefault("apiVersion", kind.api_version)
        data.setdefault("kind", kind.kind)
        return data

    @staticmethod
    def _identity(body: Dict[str, Any]) -> tuple:
        metadata = body.get("metadata") or {}
        return metadata.get("namespace", "default"), metadata.get("name", "")

    def get(self, kind: ResourceKind, namespace: str, name: str) -> Dict[str, Any]:
        """Fetch an object."""
        with self._api_errors(kind, namespace, name):
            if kind.is_custom:
                obj = self.custom_api.get_namespaced_custom_object(
                    group=kind.group,
                    version=kind.version,
                    namespace=namespace,
                    plural=kind.plural,
                    name=name,
                )
            else:
                obj = self._typed(kind, "read")(name=name, namespace=namespace)
        return self._to_dict(kind, obj)

    def create(self, kind: ResourceKind, body: Dict[str, Any]) -> Dict[str, Any]:
        """Create an object."""
        namespace, name = self._identity(body)
        with self._api_errors(kind, namespace, name):
            if kind.is_custom:
                obj = self.custom_api.create_namespaced_custom_object(
                    group=kind.group,
                    version=kind.version,
                    namespace=namespace,
                    plural=kind.plural,
                    body=body,
                )
            else:
                obj = self._typed(kind, "create")(namespace=namespace, body=body)
        logger.debug(f"Created {kind.kind} {namespace}/{name}")
        return self._to_dict(kind, obj)

    def update(self, kind: ResourceKind, body: Dict[str, Any]) -> Dict[str, Any]:
        """Replace an object (PUT); the API server enforces resourceVersion."""
        namespace, name = self._identity(body)
        with self._api_errors(kind, namespace, name):
            if kind.is_custom:
                obj = self.custom_api.replace_namespaced_custom_object(
                    group=kind.group,
                    version=kind.version,
                    namespace=namespace,
                    plural=kind.plural,
                    name=name,
                    body=body,
                )
            else:
                obj = self._typed(kind, "replace")(name=name, namespace=namespace, body=body)
        logger.debug(f"Replaced {kind.kind} {namespace}/{name}")
        return self._to_dict(kind, obj)

    def update_status(self, kind: ResourceKind, body: Dict[str, Any]) -> Dict[str, Any]:
        """Replace the status subresource."""
        namespace, name = self._identity(body)
        with self._api_errors(kind, namespace, name):
            if kind.is_custom:
                obj = self.custom_api.replace_namespaced_custom_object_status(
                    group=kind.group,
                    version=kind.version,
                    namespace=namespace,
                    plural=kind.plural,
                    name=name,
                    body=body,
                )
            else:
                obj = self._typed(kind, "replace_status")(name=name, namespace=namespace, body=body)
        return self._to_dict(kind, obj)

    def delete(self, kind: ResourceKind, namespace: str, name: str) -> None:
        """Delete an object with background propagation."""
        with self._api_errors(kind, namespace, name):
            if kind.is_custom:
                self.custom_api.delete_namespaced_custom_object(
                    group=kind.group,
                    version=kind.version,
                    namespace=namespace,
                    plural=kind.plural,
                    name=name,
                    propagation_policy=_PROPAGATION_POLICY,
                )
            else:
                self._typed(kind, "delete")(
                    name=name,
                    namespace=namespace,
                    propagation_policy=_PROPAGATION_POLICY,
                )
        logger.debug(f"Deleted {kind.kind} {namespace}/{name}")
