"""
Transaction domain types (``policy_kernel.domain.transaction``).

Responsibility
--------------
Transfers that a policy sent to multi-party approval.  Structurally
parallel to a policy's change governance: an approver roster, a quorum,
and the accumulated approvals with their timestamps.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum

from policy_kernel.domain.policy import Decision


class TransactionStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"


@dataclass(frozen=True)
class ApprovalStamp:
    """Who approved a transaction, and when."""

    approver: str
    approved_at: datetime


@dataclass(frozen=True)
class Transaction:
    """An outgoing transfer under (or past) approval."""

    initiator: str
    source_wallet: str
    destination: str
    amount_usd: Decimal
    asset: str
    id: int | None = None
    policy_id: int | None = None
    approvers: tuple[str, ...] = ()
    quorum_required: int = 1
    approvals: tuple[str, ...] = ()
    approval_timestamps: tuple[ApprovalStamp, ...] = ()
    status: TransactionStatus = TransactionStatus.PENDING
    created_at: datetime | None = None
    completed_at: datetime | None = None
    version: int = 0

    @property
    def is_completed(self) -> bool:
        return self.status == TransactionStatus.COMPLETED

    @property
    def remaining_approvals(self) -> int:
        return max(0, self.quorum_required - len(self.approvals))


@dataclass(frozen=True)
class TransactionApprovalResult:
    transaction: Transaction
    duplicate: bool = False
    completed_now: bool = False


@dataclass(frozen=True)
class TransferOutcome:
    """Result of submitting a transfer: the decision plus any transaction.

    Denied transfers produce no transaction.
    """

    decision: Decision
    transaction: Transaction | None = None

    @property
    def denied(self) -> bool:
        return self.transaction is None
