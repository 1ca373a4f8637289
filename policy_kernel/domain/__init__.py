"""
Pure domain layer.

Immutable value objects for policies, transactions, identities and
governance results, with NO dependencies on:
- ORM (SQLAlchemy)
- Database
- I/O
"""

from policy_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from policy_kernel.domain.governance import (
    DEFAULT_RULES,
    ApprovalOutcome,
    GovernanceOutcome,
    GovernanceResult,
    GovernanceRules,
    QuorumStatus,
    SubmissionOutcome,
    SubmissionState,
)
from policy_kernel.domain.identity import (
    Identity,
    IdentityDirectory,
    IdentityResolver,
    resolve_identity,
)
from policy_kernel.domain.policy import (
    AmountCondition,
    AssetType,
    ChangeType,
    ConditionLogic,
    Decision,
    DestinationType,
    GovernanceMode,
    InitiatorType,
    MatchResult,
    PendingDeletion,
    Policy,
    PolicyAction,
    PolicyInReview,
    PolicyPatch,
    PolicyStatus,
    SourceWalletType,
    TransactionRequest,
)
from policy_kernel.domain.transaction import (
    ApprovalStamp,
    Transaction,
    TransactionApprovalResult,
    TransactionStatus,
    TransferOutcome,
)

__all__ = [
    "AmountCondition",
    "ApprovalOutcome",
    "ApprovalStamp",
    "AssetType",
    "ChangeType",
    "Clock",
    "ConditionLogic",
    "DEFAULT_RULES",
    "Decision",
    "DestinationType",
    "DeterministicClock",
    "GovernanceMode",
    "GovernanceOutcome",
    "GovernanceResult",
    "GovernanceRules",
    "Identity",
    "IdentityDirectory",
    "IdentityResolver",
    "InitiatorType",
    "MatchResult",
    "PendingDeletion",
    "Policy",
    "PolicyAction",
    "PolicyInReview",
    "PolicyPatch",
    "PolicyStatus",
    "QuorumStatus",
    "SourceWalletType",
    "SubmissionOutcome",
    "SubmissionState",
    "SystemClock",
    "Transaction",
    "TransactionApprovalResult",
    "TransactionRequest",
    "TransactionStatus",
    "TransferOutcome",
    "resolve_identity",
]
