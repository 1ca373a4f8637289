"""
policy_engines.governance -- Pure change-governance state machine.

Responsibility:
    Drive a policy through ``active -> pending_approval -> {active, deleted}``
    for edits and deletions, using the quorum validator at submission and
    at each approval; cancel pending changes; publish drafts.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  Every function takes the
    current policy and returns a ``GovernanceResult``; persistence is the
    caller's job.

Invariants enforced:
    - Fail fast: every rejection is raised before a result is built, so a
      caller that persists only returned results never writes partially.
    - Only ``GOVERNANCE_TRANSITIONS`` edges are taken.
    - One pending change at a time per policy.
    - A pending patch is validated at submission and again when applied.
    - ``change_approvers`` never holds the same identity twice; the change
      initiator cannot approve their own change.
    - Authorization: approve/cancel require a roster identity (submission
      too when ``restrict_submission_to_roster``).  An empty roster is
      UNGOVERNED: unrestricted unless ``allow_ungoverned`` is False.
    - Drafts are not enforced, so draft edits, deletions and publication
      apply directly (still authorized) without collecting quorum.
"""

from __future__ import annotations

import dataclasses
from datetime import datetime

from policy_engines.quorum import record_approval, validate_submission
from policy_kernel.domain.governance import (
    DEFAULT_RULES,
    GovernanceOutcome,
    GovernanceResult,
    GovernanceRules,
)
from policy_kernel.domain.identity import Identity, roster_is_name_only
from policy_kernel.domain.policy import (
    GOVERNANCE_TRANSITIONS,
    GovernanceMode,
    PendingDeletion,
    Policy,
    PolicyPatch,
    PolicyStatus,
)
from policy_kernel.domain.validation import validate_patch, validate_policy
from policy_kernel.exceptions import (
    ChangeAlreadyPendingError,
    IdentityAmbiguousError,
    InvalidGovernanceTransitionError,
    NotAuthorizedError,
)


# =========================================================================
# Submission
# =========================================================================


def submit_change(
    policy: Policy,
    patch: PolicyPatch,
    submitter: Identity,
    now: datetime,
    rules: GovernanceRules = DEFAULT_RULES,
) -> GovernanceResult:
    """Submit an edit; apply it at once if quorum is already met."""
    _require_submittable(policy)
    merged = validate_patch(policy, patch)
    _authorize_submission(policy, submitter, "edit this policy", rules)

    if policy.status == PolicyStatus.DRAFT:
        return GovernanceResult(
            policy=dataclasses.replace(merged, updated_at=now),
            outcome=GovernanceOutcome.APPLIED,
            reason="Draft updated",
        )

    outcome = validate_submission(
        policy.change_approvers_list,
        policy.change_approvals_required,
        submitter,
        rules.address_prefix,
    )
    if outcome.is_satisfied:
        return GovernanceResult(
            policy=dataclasses.replace(merged.cleared_pending(), updated_at=now),
            outcome=GovernanceOutcome.APPLIED,
            reason="Change approved at submission and applied",
        )

    return GovernanceResult(
        policy=_queue(policy, patch, submitter, outcome.approvals, now),
        outcome=GovernanceOutcome.QUEUED,
        reason=_awaiting(len(outcome.approvals), outcome.required),
    )


def submit_deletion(
    policy: Policy,
    submitter: Identity,
    now: datetime,
    rules: GovernanceRules = DEFAULT_RULES,
) -> GovernanceResult:
    """Submit a deletion; delete at once if quorum is already met.

    A DELETED result is an in-memory echo; the caller removes the record.
    """
    _require_submittable(policy)
    _authorize_submission(policy, submitter, "delete this policy", rules)

    if policy.status == PolicyStatus.DRAFT:
        return _deleted(policy, now, "Draft deleted")

    outcome = validate_submission(
        policy.change_approvers_list,
        policy.change_approvals_required,
        submitter,
        rules.address_prefix,
    )
    if outcome.is_satisfied:
        return _deleted(policy, now, "Deletion approved at submission")

    return GovernanceResult(
        policy=_queue(policy, PendingDeletion(), submitter, outcome.approvals, now),
        outcome=GovernanceOutcome.QUEUED,
        reason=_awaiting(len(outcome.approvals), outcome.required),
    )


# =========================================================================
# Approval and cancellation
# =========================================================================


def approve_change(
    policy: Policy,
    approver: Identity,
    now: datetime,
    rules: GovernanceRules = DEFAULT_RULES,
) -> GovernanceResult:
    """Record an approval; apply the pending change once quorum is reached.

    A repeat approval by the same identity returns the policy unchanged.
    """
    if policy.status != PolicyStatus.PENDING_APPROVAL or policy.pending_change is None:
        raise InvalidGovernanceTransitionError(
            policy.status.value, PolicyStatus.ACTIVE.value, policy.id,
        )
    _authorize(policy, approver, "approve changes to this policy", rules)

    already_counted = approver.find_in(policy.change_approvers) is not None
    if (
        not already_counted
        and policy.change_initiator is not None
        and approver.matches(policy.change_initiator)
    ):
        raise NotAuthorizedError(
            approver.label,
            "approve changes to this policy",
            "the change initiator cannot approve their own change",
        )

    outcome = record_approval(
        policy.change_approvers,
        policy.change_approvals_required,
        approver,
        policy.change_approvers_list,
    )
    if outcome.duplicate:
        return GovernanceResult(
            policy=policy,
            outcome=GovernanceOutcome.DUPLICATE_APPROVAL,
            reason=f"{approver.label} has already approved this change",
        )

    if not outcome.quorum_reached:
        return GovernanceResult(
            policy=dataclasses.replace(
                policy, change_approvers=outcome.approvals, updated_at=now,
            ),
            outcome=GovernanceOutcome.APPROVAL_RECORDED,
            reason=_awaiting(len(outcome.approvals), outcome.required),
        )

    pending = policy.pending_change
    if isinstance(pending, PendingDeletion):
        return _deleted(policy, now, "Deletion approved by quorum")

    merged = validate_patch(policy, pending)
    return GovernanceResult(
        policy=dataclasses.replace(merged.cleared_pending(), updated_at=now),
        outcome=GovernanceOutcome.APPLIED,
        reason="Change approved by quorum and applied",
    )


def cancel_change(
    policy: Policy,
    canceler: Identity,
    now: datetime,
    rules: GovernanceRules = DEFAULT_RULES,
) -> GovernanceResult:
    """Discard a pending change and return the policy to ``active``.

    This is the escape hatch for pending changes that can no longer reach
    quorum (e.g. the roster shrank after submission).
    """
    if policy.status != PolicyStatus.PENDING_APPROVAL:
        raise InvalidGovernanceTransitionError(
            policy.status.value, PolicyStatus.ACTIVE.value, policy.id,
        )
    _authorize(policy, canceler, "cancel changes to this policy", rules)

    return GovernanceResult(
        policy=dataclasses.replace(policy.cleared_pending(), updated_at=now),
        outcome=GovernanceOutcome.CANCELLED,
        reason=f"Pending change cancelled by {canceler.label}",
    )


def publish_draft(
    policy: Policy,
    actor: Identity,
    now: datetime,
    rules: GovernanceRules = DEFAULT_RULES,
) -> GovernanceResult:
    """Move a draft to ``active`` so the evaluator enforces it."""
    if policy.status != PolicyStatus.DRAFT:
        raise InvalidGovernanceTransitionError(
            policy.status.value, PolicyStatus.ACTIVE.value, policy.id,
        )
    _authorize_submission(policy, actor, "publish this policy", rules)
    validate_policy(policy)
    return GovernanceResult(
        policy=dataclasses.replace(policy, status=PolicyStatus.ACTIVE, updated_at=now),
        outcome=GovernanceOutcome.APPLIED,
        reason="Draft published",
    )


# =========================================================================
# Helpers
# =========================================================================


def _require_submittable(policy: Policy) -> None:
    if policy.status == PolicyStatus.PENDING_APPROVAL:
        raise ChangeAlreadyPendingError(policy.id)
    if not GOVERNANCE_TRANSITIONS[policy.status]:
        raise InvalidGovernanceTransitionError(
            policy.status.value, PolicyStatus.PENDING_APPROVAL.value, policy.id,
        )


def _authorize_submission(
    policy: Policy,
    actor: Identity,
    operation: str,
    rules: GovernanceRules,
) -> None:
    if rules.restrict_submission_to_roster or policy.status == PolicyStatus.DRAFT:
        _authorize(policy, actor, operation, rules)
        return
    _require_identified(actor, operation)
    _check_ungoverned(policy, actor, operation, rules)


def _authorize(
    policy: Policy,
    actor: Identity,
    operation: str,
    rules: GovernanceRules,
) -> None:
    _require_identified(actor, operation)
    if _check_ungoverned(policy, actor, operation, rules):
        return

    roster = policy.change_approvers_list
    if actor.is_address_only and roster_is_name_only(roster, rules.address_prefix):
        raise IdentityAmbiguousError(actor.address or "")
    if actor.find_in(roster) is None:
        raise NotAuthorizedError(
            actor.label, operation,
            "not listed in the policy change approvers",
        )


def _check_ungoverned(
    policy: Policy,
    actor: Identity,
    operation: str,
    rules: GovernanceRules,
) -> bool:
    """True if the policy is ungoverned and the operation may proceed."""
    if policy.governance_mode != GovernanceMode.UNGOVERNED:
        return False
    if not rules.allow_ungoverned:
        raise NotAuthorizedError(
            actor.label, operation,
            "policy has no change approvers and ungoverned changes are disabled",
        )
    return True


def _require_identified(actor: Identity, operation: str) -> None:
    if actor.is_anonymous:
        raise NotAuthorizedError(actor.label, operation, "an identity is required")


def _queue(
    policy: Policy,
    change: PolicyPatch | PendingDeletion,
    submitter: Identity,
    approvals: tuple[str, ...],
    now: datetime,
) -> Policy:
    return dataclasses.replace(
        policy,
        status=PolicyStatus.PENDING_APPROVAL,
        pending_change=change,
        change_initiator=submitter.label,
        change_approvers=approvals,
        change_requested_at=now,
        updated_at=now,
    )


def _deleted(policy: Policy, now: datetime, reason: str) -> GovernanceResult:
    echo = dataclasses.replace(
        policy.cleared_pending(), status=PolicyStatus.DELETED, updated_at=now,
    )
    return GovernanceResult(policy=echo, outcome=GovernanceOutcome.DELETED, reason=reason)


def _awaiting(current: int, required: int) -> str:
    remaining = max(0, required - current)
    return (
        f"{current} of {required} approval(s) received; "
        f"awaiting {remaining} more"
    )
