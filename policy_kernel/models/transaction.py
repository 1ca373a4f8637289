"""
Module: policy_kernel.models.transaction
Responsibility: ORM persistence for transfers under multi-party approval.

Architecture position: Kernel > Models.  May import from db/base.py and
    domain/ only.

Invariants enforced:
    - Optimistic concurrency via ``version`` (version_id_col), so two
      approvers racing on the same transaction cannot overwrite each
      other's approval.
    - ``approval_timestamps`` is parallel to ``approvals``.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from sqlalchemy import JSON, CheckConstraint, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from policy_kernel.db.base import Base, StringList

if TYPE_CHECKING:
    from policy_kernel.domain.transaction import Transaction


class TransactionModel(Base):
    """Persistent transfer record."""

    __tablename__ = "transactions"

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'completed')",
            name="ck_transactions_valid_status",
        ),
        Index("ix_transactions_status_created", "status", "created_at"),
    )

    initiator: Mapped[str] = mapped_column(String(200), nullable=False)
    source_wallet: Mapped[str] = mapped_column(String(200), nullable=False)
    destination: Mapped[str] = mapped_column(String(200), nullable=False)
    amount_usd: Mapped[Decimal] = mapped_column(nullable=False)
    asset: Mapped[str] = mapped_column(String(50), nullable=False)
    policy_id: Mapped[int | None] = mapped_column(Integer, nullable=True)

    approvers: Mapped[list[str]] = mapped_column(StringList(), nullable=False, default=list)
    quorum_required: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    approvals: Mapped[list[str]] = mapped_column(StringList(), nullable=False, default=list)
    approval_timestamps: Mapped[list[dict[str, Any]]] = mapped_column(
        JSON, nullable=False, default=list,
    )
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    created_at: Mapped[datetime | None] = mapped_column(nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return (
            f"<Transaction {self.id} {self.amount_usd} {self.asset} "
            f"status={self.status} approvals={len(self.approvals)}/{self.quorum_required}>"
        )

    def to_dto(self) -> Transaction:
        """Convert ORM model to frozen domain DTO."""
        from policy_kernel.domain.transaction import (
            ApprovalStamp,
            Transaction as TransactionDTO,
            TransactionStatus,
        )

        stamps = tuple(
            ApprovalStamp(
                approver=s["approver"],
                approved_at=datetime.fromisoformat(s["approved_at"]),
            )
            for s in (self.approval_timestamps or [])
        )
        return TransactionDTO(
            id=self.id,
            initiator=self.initiator,
            source_wallet=self.source_wallet,
            destination=self.destination,
            amount_usd=self.amount_usd,
            asset=self.asset,
            policy_id=self.policy_id,
            approvers=tuple(self.approvers),
            quorum_required=self.quorum_required,
            approvals=tuple(self.approvals),
            approval_timestamps=stamps,
            status=TransactionStatus(self.status),
            created_at=self.created_at,
            completed_at=self.completed_at,
            version=self.version,
        )

    @classmethod
    def from_dto(cls, dto: Transaction) -> TransactionModel:
        """Create ORM model from domain DTO."""
        model = cls(
            initiator=dto.initiator,
            source_wallet=dto.source_wallet,
            destination=dto.destination,
            amount_usd=dto.amount_usd,
            asset=dto.asset,
            policy_id=dto.policy_id,
            created_at=dto.created_at,
        )
        model.apply_dto(dto)
        return model

    def apply_dto(self, dto: Transaction) -> None:
        """Copy the approval state of ``dto`` onto this row."""
        self.approvers = list(dto.approvers)
        self.quorum_required = dto.quorum_required
        self.approvals = list(dto.approvals)
        self.approval_timestamps = [
            {"approver": s.approver, "approved_at": s.approved_at.isoformat()}
            for s in dto.approval_timestamps
        ]
        self.status = dto.status.value
        self.completed_at = dto.completed_at
