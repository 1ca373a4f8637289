"""
Governance domain types (``policy_kernel.domain.governance``).

Responsibility
--------------
Result records returned by the quorum validator and the change-governance
state machine.  The engines return these; the services decide what to
persist from them.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from policy_kernel.domain.identity import DEFAULT_ADDRESS_PREFIX
from policy_kernel.domain.policy import Policy


@dataclass(frozen=True)
class GovernanceRules:
    """Configurable knobs of the governance state machine.

    ``allow_ungoverned``: policies with an empty change roster accept
    governance operations from anyone.  When False such operations are
    refused.

    ``restrict_submission_to_roster``: only roster members may submit
    edits/deletions.  When False anyone identified may propose a change;
    it still needs quorum from the roster.
    """

    allow_ungoverned: bool = True
    restrict_submission_to_roster: bool = False
    address_prefix: str = DEFAULT_ADDRESS_PREFIX


DEFAULT_RULES = GovernanceRules()


class SubmissionState(str, Enum):
    """What the quorum validator decided for a submission."""

    SATISFIED = "satisfied"
    QUEUED = "queued"


@dataclass(frozen=True)
class SubmissionOutcome:
    """Result of ``validate_submission``.

    ``approvals`` is the initial approval list: the matched roster entry of
    a self-counted submitter, or empty.
    """

    state: SubmissionState
    approvals: tuple[str, ...] = ()
    required: int = 1
    self_counted: bool = False

    @property
    def is_satisfied(self) -> bool:
        return self.state == SubmissionState.SATISFIED


@dataclass(frozen=True)
class ApprovalOutcome:
    """Result of ``record_approval``."""

    approvals: tuple[str, ...]
    required: int
    quorum_reached: bool
    duplicate: bool = False

    @property
    def remaining(self) -> int:
        return max(0, self.required - len(self.approvals))


@dataclass(frozen=True)
class QuorumStatus:
    """Progress of a pending change toward quorum."""

    current: int
    required: int
    remaining: int
    eligible_remaining: tuple[str, ...] = ()
    is_infeasible: bool = False


class GovernanceOutcome(str, Enum):
    """What a governance operation did to the policy."""

    APPLIED = "applied"
    QUEUED = "queued"
    APPROVAL_RECORDED = "approval_recorded"
    DUPLICATE_APPROVAL = "duplicate_approval"
    DELETED = "deleted"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class GovernanceResult:
    """A governance operation's resulting policy and outcome.

    When ``outcome`` is DELETED the policy is an in-memory echo with
    ``status = deleted``; the record itself must be removed by the caller.
    """

    policy: Policy
    outcome: GovernanceOutcome
    reason: str = ""

    @property
    def requires_write(self) -> bool:
        return self.outcome != GovernanceOutcome.DUPLICATE_APPROVAL

    @property
    def is_deleted(self) -> bool:
        return self.outcome == GovernanceOutcome.DELETED
