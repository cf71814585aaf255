"""
Exception hierarchy for reconciliation.

Every failure a reconciler raises is a ``ReconcileError``. ``retryable``
tells the event framework whether retrying without a spec change can help.
"""

from __future__ import annotations

from typing import Optional


class ReconcileError(Exception):
    """Base class for reconciliation failures."""

    retryable: bool = True


class StoreError(ReconcileError):
    """Object store call failed; transient unless proven otherwise."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class NotFoundError(StoreError):
    """Object does not exist. Expected absence, not a failure, in most callers."""

    def __init__(self, message: str):
        super().__init__(message, status=404)


class ConflictError(StoreError):
    """Write lost an optimistic-concurrency race (stale resourceVersion)."""

    def __init__(self, message: str):
        super().__init__(message, status=409)


class AlreadyExistsError(ConflictError):
    """Create raced with another writer."""


class RenderError(ReconcileError):
    """AlertRule spec cannot be rendered; recurs until the spec changes."""

    retryable = False
