"""
Reconcile outcomes.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from alertrule_operator.identity import ObjectKey


class Action(str, Enum):
    """What a reconcile did."""
    CREATED = "created"
    UPDATED = "updated"
    UNCHANGED = "unchanged"
    DELETED = "deleted"
    SKIPPED = "skipped"


@dataclass
class ReconcileResult:
    """Outcome of a single reconcile call."""
    key: ObjectKey
    action: Action
    fingerprint: Optional[str] = None
    requeue: bool = False
