"""
Record stores for policies and transactions.

Responsibility:
    Load and persist ``Policy`` / ``Transaction`` DTOs by id.  The stores
    are the only code that touches the ORM rows; everything above them
    works with frozen domain values.

Architecture position:
    Kernel > Services.  Imports models/ and domain/; used by PolicyService
    and TransactionService.

Invariants enforced:
    - Read-modify-write safety: ``get(..., for_update=True)`` issues
      ``SELECT ... FOR UPDATE`` with ``populate_existing`` so the row is
      fresh and locked (on backends that lock).  ``update`` refuses a DTO
      whose ``version`` no longer matches the row, and the mapper's
      version column turns a lost race at flush time into StaleDataError.
      Both surface as ``OptimisticLockError``.
    - Unique priorities: a policy stored at a priority that another
      transaction already took surfaces as ``PriorityConflictError``.
      ``reprioritize`` parks moved rows at negative priorities before
      writing the final ones, so swaps never collide mid-flush.
    - Flush only; never commit.

Failure modes:
    - PolicyNotFoundError / TransactionNotFoundError for unknown ids.
    - OptimisticLockError when another transaction changed the record
      after it was read.  Retrying the whole operation is safe because
      repeat approvals are no-ops.
"""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError

from policy_kernel.domain.policy import Policy
from policy_kernel.domain.transaction import Transaction
from policy_kernel.exceptions import (
    OptimisticLockError,
    PolicyNotFoundError,
    PriorityConflictError,
    TransactionNotFoundError,
)
from policy_kernel.logging_config import get_logger
from policy_kernel.models.policy import PolicyModel
from policy_kernel.models.transaction import TransactionModel
from policy_kernel.services.base import BaseService

logger = get_logger("services.store")


class PolicyStore(BaseService[PolicyModel]):
    """Persistence for policies keyed by integer id."""

    def _load(self, policy_id: int, *, for_update: bool = False) -> PolicyModel:
        stmt = select(PolicyModel).where(PolicyModel.id == policy_id)
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        row = self.session.execute(stmt).scalar_one_or_none()
        if row is None:
            raise PolicyNotFoundError(policy_id)
        return row

    def get(self, policy_id: int, *, for_update: bool = False) -> Policy:
        return self._load(policy_id, for_update=for_update).to_dto()

    def list(self) -> list[Policy]:
        """All stored policies in evaluation order (priority, then id)."""
        stmt = select(PolicyModel).order_by(PolicyModel.priority, PolicyModel.id)
        return [row.to_dto() for row in self.session.execute(stmt).scalars()]

    def add(self, policy: Policy) -> Policy:
        row = PolicyModel.from_dto(policy)
        self.session.add(row)
        _flush(self.session, "policy", None, priority=policy.priority)
        return row.to_dto()

    def update(self, policy: Policy) -> Policy:
        """Persist ``policy`` over its stored row.

        Raises:
            OptimisticLockError: the row's version differs from
                ``policy.version``.
        """
        row = self._load(policy.id, for_update=True)
        _check_version("policy", policy.id, row.version, policy.version)
        row.apply_dto(policy)
        _flush(self.session, "policy", policy.id, priority=policy.priority)
        return row.to_dto()

    def reprioritize(self, policies: list[Policy]) -> list[Policy]:
        """Persist ``policies`` whose priorities were renumbered together.

        Raises:
            OptimisticLockError: any row changed since it was read.
        """
        rows = []
        for policy in policies:
            row = self._load(policy.id, for_update=True)
            _check_version("policy", policy.id, row.version, policy.version)
            rows.append(row)

        for parked, row in enumerate(rows, start=1):
            row.priority = -parked
        _flush(self.session, "policy", None)

        for row, policy in zip(rows, policies):
            row.apply_dto(policy)
        _flush(self.session, "policy", None)
        return [row.to_dto() for row in rows]

    def delete(self, policy: Policy) -> None:
        row = self._load(policy.id, for_update=True)
        _check_version("policy", policy.id, row.version, policy.version)
        self.session.delete(row)
        _flush(self.session, "policy", policy.id)


class TransactionStore(BaseService[TransactionModel]):
    """Persistence for transactions keyed by integer id."""

    def _load(self, transaction_id: int, *, for_update: bool = False) -> TransactionModel:
        stmt = select(TransactionModel).where(TransactionModel.id == transaction_id)
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        row = self.session.execute(stmt).scalar_one_or_none()
        if row is None:
            raise TransactionNotFoundError(transaction_id)
        return row

    def get(self, transaction_id: int, *, for_update: bool = False) -> Transaction:
        return self._load(transaction_id, for_update=for_update).to_dto()

    def list(self, status: str | None = None) -> list[Transaction]:
        stmt = select(TransactionModel).order_by(TransactionModel.id)
        if status is not None:
            stmt = stmt.where(TransactionModel.status == status)
        return [row.to_dto() for row in self.session.execute(stmt).scalars()]

    def add(self, transaction: Transaction) -> Transaction:
        row = TransactionModel.from_dto(transaction)
        self.session.add(row)
        self.session.flush()
        return row.to_dto()

    def update(self, transaction: Transaction) -> Transaction:
        row = self._load(transaction.id, for_update=True)
        _check_version("transaction", transaction.id, row.version, transaction.version)
        row.apply_dto(transaction)
        _flush(self.session, "transaction", transaction.id)
        return row.to_dto()

    def delete(self, transaction: Transaction) -> None:
        row = self._load(transaction.id, for_update=True)
        _check_version("transaction", transaction.id, row.version, transaction.version)
        self.session.delete(row)
        _flush(self.session, "transaction", transaction.id)


def _check_version(entity_type: str, entity_id, stored: int, expected: int) -> None:
    if stored != expected:
        logger.warning(
            "optimistic_lock_conflict",
            extra={
                "entity_type": entity_type,
                "entity_id": entity_id,
                "stored_version": stored,
                "expected_version": expected,
            },
        )
        raise OptimisticLockError(entity_type, str(entity_id))


def _flush(session, entity_type: str, entity_id, priority: int | None = None) -> None:
    try:
        session.flush()
    except IntegrityError as exc:
        if priority is None or "priority" not in str(exc.orig):
            raise
        logger.warning(
            "priority_conflict",
            extra={"entity_type": entity_type, "entity_id": entity_id, "priority": priority},
        )
        raise PriorityConflictError(priority) from exc
    except StaleDataError as exc:
        logger.warning(
            "optimistic_lock_conflict",
            extra={"entity_type": entity_type, "entity_id": entity_id},
        )
        raise OptimisticLockError(entity_type, str(entity_id)) from exc
