"""
policy_engines.transfer_approval -- Multi-party approval of transfers.

Responsibility:
    Turn an evaluator decision into a transaction (or none) and accumulate
    approvals on pending transactions until their quorum is met.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - ``deny`` never produces a transaction.
    - ``approvals`` never holds the same identity twice; every recorded
      approval has a matching timestamp.
    - A completed transaction accepts no further approvals.
    - Roster-restricted when the roster is non-empty.
"""

from __future__ import annotations

import dataclasses
from datetime import datetime

from policy_engines.quorum import record_approval
from policy_kernel.domain.identity import Identity
from policy_kernel.domain.policy import Decision, PolicyAction, TransactionRequest
from policy_kernel.domain.transaction import (
    ApprovalStamp,
    Transaction,
    TransactionApprovalResult,
    TransactionStatus,
    TransferOutcome,
)
from policy_kernel.exceptions import (
    NotAuthorizedError,
    TransactionAlreadyCompletedError,
)


def open_transaction(
    decision: Decision,
    request: TransactionRequest,
    now: datetime,
    initiator: Identity | None = None,
) -> TransferOutcome:
    """Create the transaction implied by ``decision``.

    ``initiator`` defaults to the request initiator treated as a name; it
    is approved opportunistically when it appears on the roster.
    """
    if decision.action == PolicyAction.DENY:
        return TransferOutcome(decision=decision)

    base = Transaction(
        initiator=request.initiator,
        source_wallet=request.source_wallet,
        destination=request.destination,
        amount_usd=request.amount_usd,
        asset=request.asset,
        policy_id=decision.matched_policy.id if decision.matched_policy else None,
        created_at=now,
    )

    if decision.action == PolicyAction.ALLOW:
        completed = dataclasses.replace(
            base,
            quorum_required=0,
            status=TransactionStatus.COMPLETED,
            completed_at=now,
        )
        return TransferOutcome(decision=decision, transaction=completed)

    policy = decision.matched_policy
    pending = dataclasses.replace(
        base,
        approvers=policy.approvers if policy else (),
        quorum_required=policy.quorum_required if policy else 1,
    )

    actor = initiator or Identity(name=request.initiator)
    if actor.find_in(pending.approvers) is not None:
        pending = approve_transaction(pending, actor, now).transaction

    return TransferOutcome(decision=decision, transaction=pending)


def approve_transaction(
    tx: Transaction,
    approver: Identity,
    now: datetime,
) -> TransactionApprovalResult:
    """Record ``approver`` on ``tx``; complete it once quorum is reached.

    Raises:
        NotAuthorizedError: approver is anonymous or not on a non-empty roster.
        TransactionAlreadyCompletedError: a new approval on a completed
            transaction.
    """
    if approver.is_anonymous:
        raise NotAuthorizedError(
            approver.label, "approve this transaction", "an identity is required",
        )
    if tx.approvers and approver.find_in(tx.approvers) is None:
        raise NotAuthorizedError(
            approver.label, "approve this transaction",
            "not listed in the transaction approvers",
        )

    outcome = record_approval(tx.approvals, tx.quorum_required, approver, tx.approvers)
    if outcome.duplicate:
        return TransactionApprovalResult(transaction=tx, duplicate=True)
    if tx.is_completed:
        raise TransactionAlreadyCompletedError(tx.id)

    recorded = outcome.approvals[-1]
    stamps = tx.approval_timestamps + (ApprovalStamp(recorded, now),)
    updated = dataclasses.replace(
        tx, approvals=outcome.approvals, approval_timestamps=stamps,
    )
    if outcome.quorum_reached:
        updated = dataclasses.replace(
            updated, status=TransactionStatus.COMPLETED, completed_at=now,
        )
    return TransactionApprovalResult(
        transaction=updated,
        completed_now=outcome.quorum_reached,
    )
