"""
Base object store protocol and factory.

Defines the interface every store backend implements. Objects are plain
dicts in the Kubernetes JSON shape (apiVersion, kind, metadata, spec, ...).
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Dict, Optional, Protocol, Type, runtime_checkable

from alertrule_operator.errors import (
    AlreadyExistsError,
    ConflictError,
    NotFoundError,
    StoreError,
)
from alertrule_operator.resources import ResourceKind

logger = logging.getLogger(__name__)

__all__ = [
    "AlreadyExistsError",
    "BaseStore",
    "ConflictError",
    "NotFoundError",
    "ObjectStore",
    "StoreError",
    "StoreType",
    "get_store",
    "register_backend",
]


class StoreType(str, Enum):
    """Available store backend types."""
    KUBERNETES = "kubernetes"
    MEMORY = "memory"


@runtime_checkable
class ObjectStore(Protocol):
    """
    Protocol defining the object store interface.

    All calls are synchronous. Missing objects raise NotFoundError;
    stale writes raise ConflictError.
    """

    def get(self, kind: ResourceKind, namespace: str, name: str) -> Dict[str, Any]:
        """Fetch an object."""
        ...

    def create(self, kind: ResourceKind, body: Dict[str, Any]) -> Dict[str, Any]:
        """Create an object; returns the stored object."""
        ...

    def update(self, kind: ResourceKind, body: Dict[str, Any]) -> Dict[str, Any]:
        """Replace an object, checking metadata.resourceVersion."""
        ...

    def update_status(self, kind: ResourceKind, body: Dict[str, Any]) -> Dict[str, Any]:
        """Replace the status subresource, checking metadata.resourceVersion."""
        ...

    def delete(self, kind: ResourceKind, namespace: str, name: str) -> None:
        """Delete an object; dependents are garbage collected."""
        ...


class BaseStore(ABC):
    """
    Abstract base class for store backends.
    """

    @abstractmethod
    def get(self, kind: ResourceKind, namespace: str, name: str) -> Dict[str, Any]:
        """Fetch an object."""
        pass

    @abstractmethod
    def create(self, kind: ResourceKind, body: Dict[str, Any]) -> Dict[str, Any]:
        """Create an object."""
        pass

    @abstractmethod
    def update(self, kind: ResourceKind, body: Dict[str, Any]) -> Dict[str, Any]:
        """Replace an object."""
        pass

    @abstractmethod
    def update_status(self, kind: ResourceKind, body: Dict[str, Any]) -> Dict[str, Any]:
        """Replace the status subresource."""
        pass

    @abstractmethod
    def delete(self, kind: ResourceKind, namespace: str, name: str) -> None:
        """Delete an object."""
        pass


# Store backend registry
_BACKENDS: Dict[StoreType, Type[BaseStore]] = {}


def register_backend(store_type: StoreType):
    """Decorator to register a store backend."""
    def decorator(cls: Type[BaseStore]) -> Type[BaseStore]:
        _BACKENDS[store_type] = cls
        return cls
    return decorator


def get_store(
    store_type: Optional[StoreType] = None,
    **kwargs: Any,
) -> BaseStore:
    """
    Get a store backend instance.

    Args:
        store_type: Explicit store type; defaults to the configured one
        **kwargs: Backend-specific options (e.g. kubeconfig)

    Returns:
        Store backend instance
    """
    # Import backends to register them
    from alertrule_operator.store import kubernetes, memory  # noqa: F401

    if store_type is None:
        from alertrule_operator.config import get_config

        store_type = StoreType(get_config().store_type)

    if store_type not in _BACKENDS:
        raise ValueError(f"Unknown store type: {store_type}")

    logger.debug("Using %s store backend", store_type.value)
    return _BACKENDS[store_type](**kwargs)
