"""
Typed Exception Hierarchy for the Policy Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Governance decisions must be explainable. Callers (the CRUD layer, an API,
a CLI) need to distinguish "you are not on the roster" from "the quorum can
never be reached" without parsing message strings. Every exception here:

  1. Has its own class (catch by type, not message)
  2. Carries a class-level CODE attribute (machine-readable, API-safe)
  3. Stores its context as attributes (shortfall counts, ids, field errors)
  4. Has a human-readable message sufficient to explain the rejection

Example:
    try:
        service.submit_change(policy_id, patch, address, name)
    except QuorumInfeasibleError as e:
        api_response(code=e.code, shortfall=e.shortfall, message=str(e))

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    PolicyKernelError (base)
    |
    +-- ValidationError
    |   +-- PolicyValidationError
    |
    +-- NotFoundError
    |   +-- PolicyNotFoundError
    |   +-- TransactionNotFoundError
    |
    +-- GovernanceError
    |   +-- NotAuthorizedError
    |   +-- QuorumInfeasibleError
    |   +-- IdentityAmbiguousError
    |   +-- ChangeAlreadyPendingError
    |   +-- InvalidGovernanceTransitionError
    |   +-- TransactionAlreadyCompletedError
    |
    +-- ConcurrencyError
    |   +-- OptimisticLockError
    |   +-- PriorityConflictError
    |
    +-- ConfigurationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category     | Code                          | When Raised
-------------|-------------------------------|--------------------------------------
Validation   | POLICY_VALIDATION_FAILED      | Malformed policy or patch shape
-------------|-------------------------------|--------------------------------------
Not found    | POLICY_NOT_FOUND              | Policy id doesn't exist
             | TRANSACTION_NOT_FOUND         | Transaction id doesn't exist
-------------|-------------------------------|--------------------------------------
Governance   | NOT_AUTHORIZED                | Actor not on the change roster
             | QUORUM_INFEASIBLE             | Roster too small to ever reach quorum
             | IDENTITY_AMBIGUOUS            | Address-only actor vs name roster
             | CHANGE_ALREADY_PENDING        | Second submission while pending
             | INVALID_GOVERNANCE_TRANSITION | e.g. approving a non-pending policy
             | TRANSACTION_ALREADY_COMPLETED | Approving a completed transfer
-------------|-------------------------------|--------------------------------------
Concurrency  | OPTIMISTIC_LOCK_CONFLICT      | Record changed by another request
             | PRIORITY_CONFLICT             | Concurrent create took the same priority
-------------|-------------------------------|--------------------------------------
Config       | CONFIGURATION_ERROR           | Unreadable or invalid YAML config

===============================================================================
HANDLING PATTERNS
===============================================================================

1. Duplicate approvals are NOT errors. ``approve_change`` returns the
   unchanged policy; retries are safe.

2. ConcurrencyError is retryable. Reload the record and re-apply:

    except OptimisticLockError:
        retry(approve_change, policy_id, approver)

3. Every GovernanceError is raised BEFORE any state is written. Catching one
   never requires compensating writes.
"""

from __future__ import annotations


class PolicyKernelError(Exception):
    """
    Base exception for all policy kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "POLICY_KERNEL_ERROR"


# Validation exceptions


class ValidationError(PolicyKernelError):
    """Base exception for malformed input."""

    code: str = "VALIDATION_ERROR"


class PolicyValidationError(ValidationError):
    """
    Policy or patch failed shape validation.

    ``field_errors`` is a list of ``{"field": ..., "message": ...}`` dicts so
    callers can surface field-level detail.
    """

    code: str = "POLICY_VALIDATION_FAILED"

    def __init__(self, field_errors: list[dict[str, str]]):
        self.field_errors = field_errors
        detail = "; ".join(
            f"{e['field']}: {e['message']}" for e in field_errors
        )
        super().__init__(f"Policy validation failed: {detail}")


# Not-found exceptions


class NotFoundError(PolicyKernelError):
    """Base exception for operations on ids that do not exist."""

    code: str = "NOT_FOUND"


class PolicyNotFoundError(NotFoundError):
    """Policy with given id was not found."""

    code: str = "POLICY_NOT_FOUND"

    def __init__(self, policy_id: int):
        self.policy_id = policy_id
        super().__init__(f"Policy not found: {policy_id}")


class TransactionNotFoundError(NotFoundError):
    """Transaction with given id was not found."""

    code: str = "TRANSACTION_NOT_FOUND"

    def __init__(self, transaction_id: int):
        self.transaction_id = transaction_id
        super().__init__(f"Transaction not found: {transaction_id}")


# Governance exceptions


class GovernanceError(PolicyKernelError):
    """Base exception for change-governance rejections."""

    code: str = "GOVERNANCE_ERROR"


class NotAuthorizedError(GovernanceError):
    """Actor is not on the roster for the attempted operation."""

    code: str = "NOT_AUTHORIZED"

    def __init__(self, actor: str, operation: str, reason: str = ""):
        self.actor = actor
        self.operation = operation
        self.reason = reason or "actor is not in the approvers list"
        super().__init__(
            f"{actor} is not authorized to {operation}: {self.reason}"
        )


class QuorumInfeasibleError(GovernanceError):
    """
    Submission rejected because quorum can never be reached.

    Raised at submission so no pending state is created that could only be
    resolved by cancellation.
    """

    code: str = "QUORUM_INFEASIBLE"

    def __init__(self, required: int, self_count: int, eligible: int):
        self.required = required
        self.self_count = self_count
        self.eligible = eligible
        self.shortfall = required - self_count - eligible
        super().__init__(
            f"Quorum cannot be reached: {required - self_count} more "
            f"approval(s) needed but only {eligible} eligible approver(s) "
            f"remain (short by {self.shortfall})"
        )


class IdentityAmbiguousError(GovernanceError):
    """Submitter is known only by address but the roster lists names."""

    code: str = "IDENTITY_AMBIGUOUS"

    def __init__(self, address: str):
        self.address = address
        super().__init__(
            f"Cannot verify identity for {address}: the approvers list "
            "contains display names and this address has no known name"
        )


class ChangeAlreadyPendingError(GovernanceError):
    """A change is already awaiting approval on this policy."""

    code: str = "CHANGE_ALREADY_PENDING"

    def __init__(self, policy_id: int | None):
        self.policy_id = policy_id
        super().__init__(
            f"Policy {policy_id} already has a change pending approval; "
            "approve or cancel it first"
        )


class InvalidGovernanceTransitionError(GovernanceError):
    """Attempted a governance status transition that is not allowed."""

    code: str = "INVALID_GOVERNANCE_TRANSITION"

    def __init__(self, from_status: str, to_status: str, policy_id: int | None = None):
        self.from_status = from_status
        self.to_status = to_status
        self.policy_id = policy_id
        super().__init__(
            f"Invalid governance transition for policy {policy_id}: "
            f"{from_status} -> {to_status}"
        )


class TransactionAlreadyCompletedError(GovernanceError):
    """Approval submitted for a transaction that already reached quorum."""

    code: str = "TRANSACTION_ALREADY_COMPLETED"

    def __init__(self, transaction_id: int | None):
        self.transaction_id = transaction_id
        super().__init__(
            f"Transaction {transaction_id} is already completed"
        )


# Concurrency exceptions


class ConcurrencyError(PolicyKernelError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class OptimisticLockError(ConcurrencyError):
    """Optimistic locking conflict detected."""

    code: str = "OPTIMISTIC_LOCK_CONFLICT"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(
            f"Optimistic lock conflict on {entity_type} {entity_id}: "
            "entity was modified by another transaction"
        )


class PriorityConflictError(ConcurrencyError):
    """Another transaction stored a policy at the same priority first."""

    code: str = "PRIORITY_CONFLICT"

    def __init__(self, priority: int):
        self.priority = priority
        super().__init__(
            f"Priority {priority} was taken by a concurrent change; retry"
        )


# Configuration exceptions


class ConfigurationError(PolicyKernelError):
    """Configuration file missing, unreadable, or invalid."""

    code: str = "CONFIGURATION_ERROR"

    def __init__(self, source: str, reason: str):
        self.source = source
        self.reason = reason
        super().__init__(f"Invalid configuration {source}: {reason}")
