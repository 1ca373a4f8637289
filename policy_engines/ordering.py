"""
policy_engines.ordering -- Priority management.

Responsibility:
    Renumber policy priorities from an explicit ordering, compute the
    "most restrictive first" ordering, and pick the priority for a newly
    created policy.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - ``reorder`` assigns priorities ``0..n-1`` in list order and accepts
      only a permutation of every policy id, so no policy is left with a
      stale or duplicate priority.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Sequence

from policy_kernel.domain.policy import Policy, PolicyAction
from policy_kernel.exceptions import PolicyValidationError

# Lower rank is evaluated first.
RESTRICTIVENESS: dict[PolicyAction, int] = {
    PolicyAction.DENY: 0,
    PolicyAction.REQUIRE_APPROVAL: 1,
    PolicyAction.ALLOW: 2,
}


def reorder(
    policies: Sequence[Policy],
    ordered_ids: Sequence[int],
) -> tuple[Policy, ...]:
    """Return the policies in ``ordered_ids`` order with priorities 0..n-1.

    Raises:
        PolicyValidationError: ``ordered_ids`` is not a permutation of the
            policy ids.
    """
    by_id = {p.id: p for p in policies}
    errors: list[dict[str, str]] = []

    if len(set(ordered_ids)) != len(ordered_ids):
        errors.append({"field": "ordered_ids", "message": "contains duplicate ids"})
    unknown = sorted(i for i in set(ordered_ids) if i not in by_id)
    if unknown:
        errors.append({
            "field": "ordered_ids",
            "message": f"unknown policy ids: {unknown}",
        })
    missing = sorted(i for i in by_id if i not in set(ordered_ids))
    if missing:
        errors.append({
            "field": "ordered_ids",
            "message": f"missing policy ids: {missing}",
        })
    if errors:
        raise PolicyValidationError(errors)

    return tuple(
        dataclasses.replace(by_id[policy_id], priority=position)
        for position, policy_id in enumerate(ordered_ids)
    )


def restrictive_order(policies: Sequence[Policy]) -> list[int]:
    """Policy ids ordered deny, then require_approval, then allow.

    Ties keep the oldest (lowest id) policy first.
    """
    ranked = sorted(
        policies,
        key=lambda p: (RESTRICTIVENESS[p.action], p.id if p.id is not None else 0),
    )
    return [p.id for p in ranked if p.id is not None]


def next_priority(policies: Sequence[Policy]) -> int:
    if not policies:
        return 0
    return max(p.priority for p in policies) + 1
