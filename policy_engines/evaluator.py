"""
policy_engines.evaluator -- Pure policy evaluator.

Responsibility:
    Select the controlling policy for a transfer request and return its
    action, or deny when nothing matches.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - Deterministic ordering: enforceable policies sorted by ``priority``
      (ties by ``id``); lower number wins; first match wins.
    - Fail-closed: no matching policy resolves to DENY.  Absence of
      policy never allows a transfer.
    - Pending changes are inert: a ``pending_approval`` policy is enforced
      with its current fields and flagged through ``policy_in_review``.
    - Never raises for a well-formed request; every call yields a Decision.
"""

from __future__ import annotations

from collections.abc import Iterable

from policy_engines.matcher import match_policy
from policy_engines.tracer import traced_engine
from policy_kernel.domain.policy import (
    EVALUATED_STATUSES,
    Decision,
    Policy,
    PolicyAction,
    PolicyInReview,
    PolicyStatus,
    TransactionRequest,
)

DEFAULT_DENY_REASON = "No matching policy; default deny."


def enforceable_policies(policies: Iterable[Policy]) -> list[Policy]:
    """Active-toggled policies in an enforced status, in evaluation order."""
    return sorted(
        (p for p in policies if p.is_active and p.status in EVALUATED_STATUSES),
        key=lambda p: (p.priority, p.id if p.id is not None else 0),
    )


@traced_engine("evaluator", "1.0", fingerprint_fields=("request",))
def evaluate_policies(
    policies: Iterable[Policy],
    request: TransactionRequest,
) -> Decision:
    """Return the first matching policy's decision, or default deny."""
    ordered = enforceable_policies(policies)
    evaluated: list[int | None] = []

    for policy in ordered:
        evaluated.append(policy.id)
        result = match_policy(policy, request)
        if not result.matched:
            continue

        return Decision(
            action=policy.action,
            reason=(
                f"Matched policy '{policy.label}' "
                f"(priority {policy.priority}): {result.reason}"
            ),
            matched_policy=policy,
            policy_in_review=_review_notice(policy),
            match=result,
            evaluated_policy_ids=tuple(evaluated),
        )

    return Decision(
        action=PolicyAction.DENY,
        reason=DEFAULT_DENY_REASON,
        evaluated_policy_ids=tuple(evaluated),
    )


def _review_notice(policy: Policy) -> PolicyInReview | None:
    if policy.status != PolicyStatus.PENDING_APPROVAL:
        return None
    change_type = policy.pending_change_type
    if change_type is None:
        return None
    return PolicyInReview(
        is_in_review=True,
        change_type=change_type,
        policy_name=policy.label,
    )
