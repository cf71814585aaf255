"""
Object store abstraction for the AlertRule operator.

Reconcilers take a store as a constructor argument, so the same code runs
against:
- The Kubernetes API server (KubernetesStore)
- An in-memory store for tests and offline rendering (MemoryStore)

Example:
    from alertrule_operator.store import get_store, StoreType

    store = get_store(StoreType.MEMORY)
    store.create(ALERT_RULE, body)
"""

from alertrule_operator.store.base import (
    AlreadyExistsError,
    ConflictError,
    NotFoundError,
    ObjectStore,
    StoreError,
    StoreType,
    get_store,
)
from alertrule_operator.store.kubernetes import KubernetesStore
from alertrule_operator.store.memory import MemoryStore

__all__ = [
    "AlreadyExistsError",
    "ConflictError",
    "NotFoundError",
    "ObjectStore",
    "StoreError",
    "StoreType",
    "get_store",
    "KubernetesStore",
    "MemoryStore",
]
