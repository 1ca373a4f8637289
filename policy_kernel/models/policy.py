"""
Module: policy_kernel.models.policy
Responsibility: ORM persistence for transfer policies and their pending
    governed changes.

Architecture position: Kernel > Models.  May import from db/base.py and
    domain/ only.

Invariants enforced:
    - Optimistic concurrency: ``version`` is the mapper's version_id_col, so
      every UPDATE is a compare-and-swap; a lost race raises StaleDataError
      (mapped to OptimisticLockError by the store).
    - Valid statuses only: DB check constraint on ``status``.
    - Total order: ``priority`` is unique, so two policies never tie.
    - The pending change is stored as the submitted patch payload (or the
      ``{"__delete": true}`` sentinel), never as a merged policy.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from policy_kernel.db.base import Base, StringList

if TYPE_CHECKING:
    from policy_kernel.domain.policy import Policy


class PolicyModel(Base):
    """Persistent transfer policy.

    Guarantees:
        - ``version`` increments on every flush that changes the row.
        - List columns always load as lists.
    """

    __tablename__ = "policies"

    __table_args__ = (
        CheckConstraint(
            "status IN ('draft', 'active', 'pending_approval')",
            name="ck_policies_valid_status",
        ),
        CheckConstraint(
            "action IN ('allow', 'deny', 'require_approval')",
            name="ck_policies_valid_action",
        ),
        UniqueConstraint("priority", name="uq_policies_priority"),
        Index("ix_policies_priority", "priority", "id"),
    )

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    priority: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    condition_logic: Mapped[str] = mapped_column(String(3), nullable=False, default="AND")
    initiator_type: Mapped[str] = mapped_column(String(20), nullable=False, default="any")
    initiator_values: Mapped[list[str]] = mapped_column(StringList(), nullable=False, default=list)
    source_wallet_type: Mapped[str] = mapped_column(String(20), nullable=False, default="any")
    source_wallet_values: Mapped[list[str]] = mapped_column(StringList(), nullable=False, default=list)
    destination_type: Mapped[str] = mapped_column(String(20), nullable=False, default="any")
    destination_values: Mapped[list[str]] = mapped_column(StringList(), nullable=False, default=list)
    amount_condition: Mapped[str] = mapped_column(String(20), nullable=False, default="any")
    amount_min: Mapped[Decimal | None] = mapped_column(nullable=True)
    amount_max: Mapped[Decimal | None] = mapped_column(nullable=True)
    asset_type: Mapped[str] = mapped_column(String(20), nullable=False, default="any")
    asset_values: Mapped[list[str]] = mapped_column(StringList(), nullable=False, default=list)

    action: Mapped[str] = mapped_column(String(20), nullable=False, default="deny")
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="active")

    approvers: Mapped[list[str]] = mapped_column(StringList(), nullable=False, default=list)
    quorum_required: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    change_approvers_list: Mapped[list[str]] = mapped_column(StringList(), nullable=False, default=list)
    change_approvals_required: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    change_approvers: Mapped[list[str]] = mapped_column(StringList(), nullable=False, default=list)
    change_initiator: Mapped[str | None] = mapped_column(String(200), nullable=True)
    pending_changes: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    change_requested_at: Mapped[datetime | None] = mapped_column(nullable=True)

    created_at: Mapped[datetime | None] = mapped_column(nullable=True)
    updated_at: Mapped[datetime | None] = mapped_column(nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return (
            f"<Policy {self.id} {self.name!r} priority={self.priority} "
            f"status={self.status} v{self.version}>"
        )

    def to_dto(self) -> Policy:
        """Convert ORM model to frozen domain DTO."""
        from policy_kernel.domain.policy import (
            AmountCondition,
            AssetType,
            ConditionLogic,
            DestinationType,
            InitiatorType,
            Policy as PolicyDTO,
            PolicyAction,
            PolicyStatus,
            SourceWalletType,
        )
        from policy_kernel.domain.validation import parse_patch

        pending = parse_patch(self.pending_changes) if self.pending_changes else None

        return PolicyDTO(
            id=self.id,
            name=self.name,
            description=self.description or "",
            priority=self.priority,
            condition_logic=ConditionLogic(self.condition_logic),
            initiator_type=InitiatorType(self.initiator_type),
            initiator_values=tuple(self.initiator_values),
            source_wallet_type=SourceWalletType(self.source_wallet_type),
            source_wallet_values=tuple(self.source_wallet_values),
            destination_type=DestinationType(self.destination_type),
            destination_values=tuple(self.destination_values),
            amount_condition=AmountCondition(self.amount_condition),
            amount_min=self.amount_min,
            amount_max=self.amount_max,
            asset_type=AssetType(self.asset_type),
            asset_values=tuple(self.asset_values),
            action=PolicyAction.parse(self.action),
            is_active=self.is_active,
            status=PolicyStatus(self.status),
            approvers=tuple(self.approvers),
            quorum_required=self.quorum_required,
            change_approvers_list=tuple(self.change_approvers_list),
            change_approvals_required=self.change_approvals_required,
            change_approvers=tuple(self.change_approvers),
            change_initiator=self.change_initiator,
            pending_change=pending,
            change_requested_at=self.change_requested_at,
            created_at=self.created_at,
            updated_at=self.updated_at,
            version=self.version,
        )

    @classmethod
    def from_dto(cls, dto: Policy) -> PolicyModel:
        """Create ORM model from domain DTO.  ``id`` and ``version`` are
        assigned by the database."""
        model = cls()
        model.apply_dto(dto)
        return model

    def apply_dto(self, dto: Policy) -> None:
        """Copy every mutable field of ``dto`` onto this row."""
        self.name = dto.name
        self.description = dto.description
        self.priority = dto.priority
        self.condition_logic = dto.condition_logic.value
        self.initiator_type = dto.initiator_type.value
        self.initiator_values = list(dto.initiator_values)
        self.source_wallet_type = dto.source_wallet_type.value
        self.source_wallet_values = list(dto.source_wallet_values)
        self.destination_type = dto.destination_type.value
        self.destination_values = list(dto.destination_values)
        self.amount_condition = dto.amount_condition.value
        self.amount_min = dto.amount_min
        self.amount_max = dto.amount_max
        self.asset_type = dto.asset_type.value
        self.asset_values = list(dto.asset_values)
        self.action = dto.action.value
        self.is_active = dto.is_active
        self.status = dto.status.value
        self.approvers = list(dto.approvers)
        self.quorum_required = dto.quorum_required
        self.change_approvers_list = list(dto.change_approvers_list)
        self.change_approvals_required = dto.change_approvals_required
        self.change_approvers = list(dto.change_approvers)
        self.change_initiator = dto.change_initiator
        self.pending_changes = (
            dto.pending_change.to_payload() if dto.pending_change is not None else None
        )
        self.change_requested_at = dto.change_requested_at
        self.created_at = dto.created_at
        self.updated_at = dto.updated_at
