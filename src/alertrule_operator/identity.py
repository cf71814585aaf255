"""
Identity and lookup helpers shared by both reconcilers.
"""

from __future__ import annotations

from typing import Any, Dict, NamedTuple, Optional

from alertrule_operator.resources import ResourceKind
from alertrule_operator.store.base import NotFoundError, ObjectStore

ALERT_RULE_SUFFIX = "-alert"


class ObjectKey(NamedTuple):
    """Namespaced identity of a resource."""
    namespace: str
    name: str

    def __str__(self) -> str:
        return f"{self.namespace}/{self.name}"

    @classmethod
    def parse(cls, value: str, default_namespace: str = "default") -> "ObjectKey":
        """Parse 'namespace/name' (or a bare name in the default namespace)."""
        if "/" in value:
            namespace, name = value.split("/", 1)
        else:
            namespace, name = default_namespace, value
        if not namespace or not name:
            raise ValueError(f"Invalid object key: {value!r}")
        return cls(namespace, name)

    @classmethod
    def of(cls, obj: Dict[str, Any]) -> "ObjectKey":
        """Key of a raw object."""
        metadata = obj.get("metadata") or {}
        return cls(metadata.get("namespace", ""), metadata["name"])


def alert_rule_name_for(workload_name: str) -> str:
    """Canonical AlertRule name for a Deployment."""
    return f"{workload_name}{ALERT_RULE_SUFFIX}"


def controller_owner_reference(owner: Dict[str, Any], kind: ResourceKind) -> Dict[str, Any]:
    """
    Build a controller owner reference pointing at ``owner``.

    apiVersion and kind come from ``kind`` because objects read through
    typed clients often come back without them.
    """
    metadata = owner["metadata"]
    return {
        "apiVersion": kind.api_version,
        "kind": kind.kind,
        "name": metadata["name"],
        "uid": metadata["uid"],
        "controller": True,
        "blockOwnerDeletion": True,
    }


def is_being_deleted(obj: Dict[str, Any]) -> bool:
    """True once the platform has set a deletion timestamp."""
    return bool((obj.get("metadata") or {}).get("deletionTimestamp"))


def get_optional(store: ObjectStore, kind: ResourceKind, key: ObjectKey) -> Optional[Dict[str, Any]]:
    """Fetch an object, returning None when it does not exist."""
    try:
        return store.get(kind, key.namespace, key.name)
    except NotFoundError:
        return None


def delete_if_present(store: ObjectStore, kind: ResourceKind, key: ObjectKey) -> bool:
    """Delete an object; returns False if it was already gone."""
    try:
        store.delete(kind, key.namespace, key.name)
    except NotFoundError:
        return False
    return True
