"""
In-memory object store.

Behaves like the API server as far as the reconcilers can tell:
uid/resourceVersion/generation bookkeeping, optimistic concurrency,
status subresource separation, and owner-reference cascade deletion.
Used by the test suite and by ``alertrule-operator render``.
"""

from __future__ import annotations

import copy
import itertools
import logging
import threading
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from alertrule_operator.resources import ResourceKind
from alertrule_operator.store.base import (
    AlreadyExistsError,
    BaseStore,
    ConflictError,
    NotFoundError,
    StoreType,
    register_backend,
)

logger = logging.getLogger(__name__)

_Key = Tuple[str, str, str]


def _now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _desired_state(obj: Dict[str, Any]) -> Dict[str, Any]:
    """Everything that counts towards metadata.generation."""
    return {k: v for k, v in obj.items() if k not in ("metadata", "status", "apiVersion", "kind")}


@register_backend(StoreType.MEMORY)
class MemoryStore(BaseStore):
    """
    Thread-safe in-memory store.

    Args:
        garbage_collect: Cascade deletes to dependents through ownerReferences
    """

    def __init__(self, garbage_collect: bool = True, **_: Any):
        self.garbage_collect = garbage_collect
        self._objects: Dict[_Key, Dict[str, Any]] = {}
        self._versions = itertools.count(1)
        self._lock = threading.RLock()

    @staticmethod
    def _key(kind: ResourceKind, namespace: str, name: str) -> _Key:
        return (f"{kind.plural}.{kind.group}", namespace, name)

    def _require(self, kind: ResourceKind, namespace: str, name: str) -> Dict[str, Any]:
        obj = self._objects.get(self._key(kind, namespace, name))
        if obj is None:
            raise NotFoundError(f"{kind.kind} {namespace}/{name} not found")
        return obj

    @staticmethod
    def _check_version(kind: ResourceKind, body: Dict[str, Any], current: Dict[str, Any]) -> None:
        expected = (body.get("metadata") or {}).get("resourceVersion")
        actual = current["metadata"]["resourceVersion"]
        if expected and expected != actual:
            md = current["metadata"]
            raise ConflictError(
                f"Operation cannot be fulfilled on {kind.plural} \"{md['name']}\": "
                f"the object has been modified (resourceVersion {expected} != {actual})"
            )

    def get(self, kind: ResourceKind, namespace: str, name: str) -> Dict[str, Any]:
        """Fetch a deep copy of an object."""
        with self._lock:
            return copy.deepcopy(self._require(kind, namespace, name))

    def list(self, kind: ResourceKind, namespace: Optional[str] = None) -> List[Dict[str, Any]]:
        """List objects of a kind, optionally within one namespace."""
        prefix = f"{kind.plural}.{kind.group}"
        with self._lock:
            return [
                copy.deepcopy(obj)
                for (k, ns, _), obj in sorted(self._objects.items())
                if k == prefix and (namespace is None or ns == namespace)
            ]

    def create(self, kind: ResourceKind, body: Dict[str, Any]) -> Dict[str, Any]:
        """Create an object, assigning server-side metadata."""
        obj = copy.deepcopy(body)
        metadata = obj.setdefault("metadata", {})
        name = metadata.get("name")
        if not name:
            raise ValueError(f"{kind.kind} body has no metadata.name")
        namespace = metadata.setdefault("namespace", "default")
        key = self._key(kind, namespace, name)

        with self._lock:
            if key in self._objects:
                raise AlreadyExistsError(f"{kind.kind} {namespace}/{name} already exists")

            obj.setdefault("apiVersion", kind.api_version)
            obj.setdefault("kind", kind.kind)
            metadata["uid"] = str(uuid.uuid4())
            metadata["resourceVersion"] = str(next(self._versions))
            metadata["generation"] = 1
            metadata["creationTimestamp"] = _now()
            if kind.status_subresource:
                obj.pop("status", None)

            self._objects[key] = obj
            logger.debug("Created %s %s/%s", kind.kind, namespace, name)
            return copy.deepcopy(obj)

    def update(self, kind: ResourceKind, body: Dict[str, Any]) -> Dict[str, Any]:
        """Replace an object; status is untouched for kinds with a status subresource."""
        metadata = body.get("metadata") or {}
        namespace = metadata.get("namespace", "default")
        name = metadata.get("name", "")

        with self._lock:
            current = self._require(kind, namespace, name)
            self._check_version(kind, body, current)

            obj = copy.deepcopy(body)
            new_md = obj.setdefault("metadata", {})
            old_md = current["metadata"]
            for field in ("uid", "creationTimestamp", "generation", "deletionTimestamp"):
                if field in old_md:
                    new_md[field] = old_md[field]
                else:
                    new_md.pop(field, None)
            if _desired_state(obj) != _desired_state(current):
                new_md["generation"] = old_md["generation"] + 1

            if kind.status_subresource:
                obj.pop("status", None)
                if "status" in current:
                    obj["status"] = copy.deepcopy(current["status"])

            new_md["resourceVersion"] = str(next(self._versions))
            self._objects[self._key(kind, namespace, name)] = obj
            logger.debug("Updated %s %s/%s", kind.kind, namespace, name)
            return copy.deepcopy(obj)

    def update_status(self, kind: ResourceKind, body: Dict[str, Any]) -> Dict[str, Any]:
        """Replace only the status block."""
        metadata = body.get("metadata") or {}
        namespace = metadata.get("namespace", "default")
        name = metadata.get("name", "")

        with self._lock:
            current = self._require(kind, namespace, name)
            self._check_version(kind, body, current)

            obj = copy.deepcopy(current)
            obj["status"] = copy.deepcopy(body.get("status") or {})
            obj["metadata"]["resourceVersion"] = str(next(self._versions))
            self._objects[self._key(kind, namespace, name)] = obj
            return copy.deepcopy(obj)

    def delete(self, kind: ResourceKind, namespace: str, name: str) -> None:
        """Delete an object and, if enabled, everything it owns."""
        with self._lock:
            obj = self._require(kind, namespace, name)
            del self._objects[self._key(kind, namespace, name)]
            logger.debug("Deleted %s %s/%s", kind.kind, namespace, name)
            if self.garbage_collect:
                self._collect_dependents(obj["metadata"]["uid"])

    def mark_for_deletion(self, kind: ResourceKind, namespace: str, name: str) -> None:
        """Set deletionTimestamp, as the API server does while finalizers are pending."""
        with self._lock:
            obj = self._require(kind, namespace, name)
            obj["metadata"]["deletionTimestamp"] = _now()
            obj["metadata"]["resourceVersion"] = str(next(self._versions))

    def _collect_dependents(self, owner_uid: str) -> None:
        dependents = [
            key
            for key, obj in self._objects.items()
            if any(ref.get("uid") == owner_uid for ref in obj["metadata"].get("ownerReferences") or [])
        ]
        for key in dependents:
            obj = self._objects.pop(key, None)
            if obj is None:
                continue
            logger.debug("Garbage collected %s %s/%s", obj.get("kind"), key[1], key[2])
            self._collect_dependents(obj["metadata"]["uid"])
