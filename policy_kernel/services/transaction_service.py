"""
TransactionService -- submit transfers and collect their approvals.

Responsibility:
    Evaluate a transfer against the stored policies, record the resulting
    transaction (none for a deny) and accumulate approvals until quorum.

Architecture position:
    Kernel > Services -- imperative shell around
    ``policy_engines.evaluator`` and ``policy_engines.transfer_approval``.

Invariants enforced:
    - Fail-closed: a denied transfer creates no record.
    - Approvals are applied under ``SELECT ... FOR UPDATE`` plus version
      CAS, so concurrent approvers never lose each other's approval.
"""

from __future__ import annotations

import dataclasses

from sqlalchemy.orm import Session

from policy_engines import approve_transaction, evaluate_policies, open_transaction
from policy_kernel.domain.clock import Clock, SystemClock
from policy_kernel.domain.identity import (
    DEFAULT_ADDRESS_PREFIX,
    IdentityResolver,
    resolve_identity,
)
from policy_kernel.domain.policy import TransactionRequest
from policy_kernel.domain.transaction import (
    Transaction,
    TransactionApprovalResult,
    TransactionStatus,
    TransferOutcome,
)
from policy_kernel.domain.validation import parse_request
from policy_kernel.logging_config import LogContext, get_logger
from policy_kernel.models.transaction import TransactionModel
from policy_kernel.services.base import BaseService
from policy_kernel.services.policy_store import PolicyStore, TransactionStore

logger = get_logger("services.transaction")


class TransactionService(BaseService[TransactionModel]):
    """Transfers decided by policy and approved by quorum."""

    def __init__(
        self,
        session: Session,
        *,
        clock: Clock | None = None,
        identities: IdentityResolver | None = None,
        address_prefix: str = DEFAULT_ADDRESS_PREFIX,
    ):
        super().__init__(session)
        self.store = TransactionStore(session)
        self.policies = PolicyStore(session)
        self._clock = clock or SystemClock()
        self._identities = identities
        self._address_prefix = address_prefix

    def submit_transfer(self, request: TransactionRequest) -> TransferOutcome:
        """
        Evaluate ``request`` and record the transaction it implies.

        ``allow`` completes immediately, ``deny`` records nothing, and
        ``require_approval`` opens a pending transaction (self-approved by
        the initiator when they are on the approver roster).

        Raises:
            PolicyValidationError: Malformed request; nothing is recorded.
        """
        request = parse_request(request)
        decision = evaluate_policies(self.policies.list(), request)
        initiator = resolve_identity(
            self._identities, name=request.initiator,
            address_prefix=self._address_prefix,
        )
        outcome = open_transaction(decision, request, self._clock.now(), initiator)

        if outcome.transaction is None:
            logger.info(
                "policy_default_deny" if decision.is_default_deny else "policy_evaluated",
                extra={
                    "action": decision.action.value,
                    "initiator": request.initiator,
                    "amount_usd": request.amount_usd,
                    "reason": decision.reason,
                },
            )
            return outcome

        stored = self.store.add(outcome.transaction)
        with LogContext.bind(actor=initiator.label, transaction_id=stored.id):
            logger.info(
                "transaction_created",
                extra={
                    "action": decision.action.value,
                    "policy_id": stored.policy_id,
                    "status": stored.status.value,
                    "approvals": list(stored.approvals),
                    "required": stored.quorum_required,
                    "amount_usd": stored.amount_usd,
                    "asset": stored.asset,
                },
            )
        return dataclasses.replace(outcome, transaction=stored)

    def approve_transaction(
        self,
        transaction_id: int,
        approver_address: str | None = None,
        approver_name: str | None = None,
    ) -> TransactionApprovalResult:
        """
        Record an approval; complete the transaction once quorum is met.

        Raises:
            TransactionNotFoundError: Unknown id.
            NotAuthorizedError: Approver not on the roster.
            TransactionAlreadyCompletedError: New approval after completion.
            OptimisticLockError: Concurrent modification.
        """
        approver = resolve_identity(
            self._identities, approver_address, approver_name, self._address_prefix,
        )
        with LogContext.bind(actor=approver.label, transaction_id=transaction_id):
            tx = self.store.get(transaction_id, for_update=True)
            result = approve_transaction(tx, approver, self._clock.now())
            if result.duplicate:
                logger.info("duplicate_approval_ignored", extra={"status": tx.status.value})
                return result

            stored = self.store.update(result.transaction)
            logger.info(
                "transaction_approved",
                extra={
                    "approvals": list(stored.approvals),
                    "required": stored.quorum_required,
                    "completed": result.completed_now,
                },
            )
            return dataclasses.replace(result, transaction=stored)

    def get_transaction(self, transaction_id: int) -> Transaction:
        return self.store.get(transaction_id)

    def list_pending(self) -> list[Transaction]:
        return self.store.list(status=TransactionStatus.PENDING.value)
