"""
Status condition bookkeeping.

At most one condition per type. Upsert replaces a condition in place
(keeping list order) or appends a new one, and always restamps
lastTransitionTime and observedGeneration, even when status, reason and
message are unchanged. Every reconcile therefore writes status.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Optional, Sequence

from alertrule_operator.models import Condition, ConditionStatus


def find_condition(conditions: Sequence[Condition], condition_type: str) -> Optional[Condition]:
    """Return the condition of the given type, if present."""
    for condition in conditions:
        if condition.type == condition_type:
            return condition
    return None


def upsert_condition(
    conditions: Sequence[Condition],
    new: Condition,
    generation: int,
    now: Optional[datetime] = None,
) -> List[Condition]:
    """
    Insert or replace ``new`` by type.

    Args:
        conditions: Current ordered condition list (not modified)
        new: Condition to record
        generation: metadata.generation of the resource being observed
        now: Timestamp to stamp; defaults to the current UTC time

    Returns:
        A new list with the condition applied
    """
    stamped = new.model_copy(
        update={
            "last_transition_time": (now or datetime.now(timezone.utc)).replace(microsecond=0),
            "observed_generation": generation,
        }
    )

    result = list(conditions)
    for i, existing in enumerate(result):
        if existing.type == stamped.type:
            result[i] = stamped
            return result

    result.append(stamped)
    return result


def make_condition(
    condition_type: str,
    status: ConditionStatus,
    reason: str,
    message: str = "",
) -> Condition:
    """Shorthand for an unstamped condition."""
    return Condition(type=condition_type, status=status, reason=reason, message=message)
