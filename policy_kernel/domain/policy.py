"""
Policy domain types (``policy_kernel.domain.policy``).

Responsibility
--------------
Pure value objects for transfer policies: the condition vocabulary, the
canonical action enum, the policy record itself, the typed ``PolicyPatch``
used for governed edits, and the request/decision records produced by the
evaluator.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  No imports
from ``db/``, ``models/``, ``services/`` or outer layers.

Invariants enforced
-------------------
* Canonical actions -- the legacy ``approve`` alias is folded into
  ``PolicyAction.ALLOW`` by ``PolicyAction.parse`` at the input boundary.
* Lifecycle -- ``GOVERNANCE_TRANSITIONS`` lists the only legal status
  changes driven by change governance.
* Inert pending change -- ``Policy.pending_change`` never influences the
  fields read by the matcher; only ``Policy.with_patch`` applies it.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any

DELETE_SENTINEL_KEY = "__delete"

# Optional policy fields a patch may reset to ``None``.
CLEARABLE_FIELDS: frozenset[str] = frozenset({"amount_min", "amount_max"})


# =========================================================================
# Enumerations
# =========================================================================


class PolicyAction(str, Enum):
    """What happens to a transfer matched by a policy."""

    ALLOW = "allow"
    DENY = "deny"
    REQUIRE_APPROVAL = "require_approval"

    @classmethod
    def parse(cls, value: str | PolicyAction) -> PolicyAction:
        """Parse an action, folding the legacy ``approve`` alias into ALLOW."""
        if isinstance(value, PolicyAction):
            return value
        if value == "approve":
            return cls.ALLOW
        return cls(value)


class ConditionLogic(str, Enum):
    AND = "AND"
    OR = "OR"


class PolicyStatus(str, Enum):
    """Policy lifecycle states."""

    DRAFT = "draft"
    ACTIVE = "active"
    PENDING_APPROVAL = "pending_approval"
    DELETED = "deleted"


class InitiatorType(str, Enum):
    ANY = "any"
    USER = "user"
    GROUP = "group"


class SourceWalletType(str, Enum):
    ANY = "any"
    SPECIFIC = "specific"


class DestinationType(str, Enum):
    ANY = "any"
    INTERNAL = "internal"
    EXTERNAL = "external"
    WHITELIST = "whitelist"


class AmountCondition(str, Enum):
    ANY = "any"
    ABOVE = "above"
    BELOW = "below"
    BETWEEN = "between"


class AssetType(str, Enum):
    ANY = "any"
    SPECIFIC = "specific"


class ChangeType(str, Enum):
    """Kind of change awaiting approval on a policy."""

    EDIT = "edit"
    DELETE = "delete"


class GovernanceMode(str, Enum):
    """Whether a policy has a change roster.

    UNGOVERNED policies (empty ``change_approvers_list``) accept governance
    operations from anyone.
    """

    GOVERNED = "governed"
    UNGOVERNED = "ungoverned"


# =========================================================================
# Lifecycle
# =========================================================================


GOVERNANCE_TRANSITIONS: dict[PolicyStatus, frozenset[PolicyStatus]] = {
    PolicyStatus.DRAFT: frozenset({
        PolicyStatus.DRAFT,
        PolicyStatus.ACTIVE,
        PolicyStatus.DELETED,
    }),
    PolicyStatus.ACTIVE: frozenset({
        PolicyStatus.ACTIVE,
        PolicyStatus.PENDING_APPROVAL,
        PolicyStatus.DELETED,
    }),
    PolicyStatus.PENDING_APPROVAL: frozenset({
        PolicyStatus.PENDING_APPROVAL,
        PolicyStatus.ACTIVE,
        PolicyStatus.DELETED,
    }),
    PolicyStatus.DELETED: frozenset(),
}

# Statuses whose current rule is enforced by the evaluator.
EVALUATED_STATUSES: frozenset[PolicyStatus] = frozenset({
    PolicyStatus.ACTIVE,
    PolicyStatus.PENDING_APPROVAL,
})


# =========================================================================
# Pending changes
# =========================================================================


@dataclass(frozen=True)
class PolicyPatch:
    """A typed edit to a policy.

    ``None`` means "leave unchanged".  Optional policy fields named in
    ``cleared`` are reset to ``None`` when the patch is applied.
    """

    name: str | None = None
    description: str | None = None
    action: PolicyAction | None = None
    condition_logic: ConditionLogic | None = None
    initiator_type: InitiatorType | None = None
    initiator_values: tuple[str, ...] | None = None
    source_wallet_type: SourceWalletType | None = None
    source_wallet_values: tuple[str, ...] | None = None
    destination_type: DestinationType | None = None
    destination_values: tuple[str, ...] | None = None
    amount_condition: AmountCondition | None = None
    amount_min: Decimal | None = None
    amount_max: Decimal | None = None
    asset_type: AssetType | None = None
    asset_values: tuple[str, ...] | None = None
    approvers: tuple[str, ...] | None = None
    quorum_required: int | None = None
    change_approvers_list: tuple[str, ...] | None = None
    change_approvals_required: int | None = None
    is_active: bool | None = None
    cleared: frozenset[str] = frozenset()

    def __post_init__(self) -> None:
        unknown = self.cleared - CLEARABLE_FIELDS
        if unknown:
            raise ValueError(f"fields cannot be cleared: {sorted(unknown)}")
        both = [name for name in self.cleared if getattr(self, name) is not None]
        if both:
            raise ValueError(f"fields both set and cleared: {sorted(both)}")

    def set_fields(self) -> tuple[str, ...]:
        return tuple(
            f.name for f in dataclasses.fields(self)
            if f.name != "cleared" and getattr(self, f.name) is not None
        )

    def changed_fields(self) -> tuple[str, ...]:
        return self.set_fields() + tuple(sorted(self.cleared))

    @property
    def is_empty(self) -> bool:
        return not self.changed_fields()

    def to_payload(self) -> dict[str, Any]:
        """JSON-safe dict of the set fields; cleared fields map to ``None``."""
        payload: dict[str, Any] = {name: None for name in sorted(self.cleared)}
        for name in self.set_fields():
            payload[name] = _to_json_value(getattr(self, name))
        return payload


@dataclass(frozen=True)
class PendingDeletion:
    """Sentinel pending change: delete the policy once quorum is reached."""

    def to_payload(self) -> dict[str, Any]:
        return {DELETE_SENTINEL_KEY: True}


PendingChange = PolicyPatch | PendingDeletion


def _to_json_value(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, tuple):
        return list(value)
    return value


# =========================================================================
# Policy
# =========================================================================


@dataclass(frozen=True)
class Policy:
    """A named, prioritized rule mapping transfer conditions to an action.

    ``version`` is the persisted record version used for optimistic
    concurrency; 0 means "not yet stored".
    """

    id: int | None = None
    name: str = ""
    description: str = ""
    priority: int = 0
    condition_logic: ConditionLogic = ConditionLogic.AND
    initiator_type: InitiatorType = InitiatorType.ANY
    initiator_values: tuple[str, ...] = ()
    source_wallet_type: SourceWalletType = SourceWalletType.ANY
    source_wallet_values: tuple[str, ...] = ()
    destination_type: DestinationType = DestinationType.ANY
    destination_values: tuple[str, ...] = ()
    amount_condition: AmountCondition = AmountCondition.ANY
    amount_min: Decimal | None = None
    amount_max: Decimal | None = None
    asset_type: AssetType = AssetType.ANY
    asset_values: tuple[str, ...] = ()
    action: PolicyAction = PolicyAction.DENY
    is_active: bool = True
    status: PolicyStatus = PolicyStatus.ACTIVE
    approvers: tuple[str, ...] = ()
    quorum_required: int = 1
    change_approvers_list: tuple[str, ...] = ()
    change_approvals_required: int = 1
    change_approvers: tuple[str, ...] = ()
    change_initiator: str | None = None
    pending_change: PolicyPatch | PendingDeletion | None = None
    change_requested_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    version: int = 0

    @property
    def is_pending(self) -> bool:
        return self.status == PolicyStatus.PENDING_APPROVAL

    @property
    def pending_change_type(self) -> ChangeType | None:
        if self.pending_change is None:
            return None
        if isinstance(self.pending_change, PendingDeletion):
            return ChangeType.DELETE
        return ChangeType.EDIT

    @property
    def governance_mode(self) -> GovernanceMode:
        if self.change_approvers_list:
            return GovernanceMode.GOVERNED
        return GovernanceMode.UNGOVERNED

    @property
    def label(self) -> str:
        return self.name or f"policy {self.id}"

    def with_patch(self, patch: PolicyPatch) -> Policy:
        """Return a copy with every set or cleared patch field applied."""
        changes: dict[str, Any] = {name: None for name in patch.cleared}
        changes.update({name: getattr(patch, name) for name in patch.set_fields()})
        return dataclasses.replace(self, **changes)

    def cleared_pending(self) -> Policy:
        """Return a copy with all pending-change bookkeeping removed."""
        return dataclasses.replace(
            self,
            status=PolicyStatus.ACTIVE,
            pending_change=None,
            change_approvers=(),
            change_initiator=None,
            change_requested_at=None,
        )


# =========================================================================
# Evaluation records
# =========================================================================


@dataclass(frozen=True)
class TransactionRequest:
    """An outgoing transfer to be decided.  Ephemeral, never persisted."""

    initiator: str
    source_wallet: str
    destination: str
    amount_usd: Decimal
    asset: str
    destination_is_internal: bool = False
    initiator_groups: tuple[str, ...] = ()


@dataclass(frozen=True)
class DimensionResult:
    """Outcome of one configured condition dimension."""

    dimension: str
    matched: bool
    detail: str = ""


@dataclass(frozen=True)
class MatchResult:
    """Result of matching one policy against one request."""

    matched: bool
    dimensions: tuple[DimensionResult, ...] = ()
    reason: str = ""

    @property
    def is_catch_all(self) -> bool:
        return not self.dimensions


@dataclass(frozen=True)
class PolicyInReview:
    """Warning that the controlling policy has a change awaiting quorum."""

    is_in_review: bool
    change_type: ChangeType
    policy_name: str


@dataclass(frozen=True)
class Decision:
    """The evaluator's verdict for a transfer request."""

    action: PolicyAction
    reason: str
    matched_policy: Policy | None = None
    policy_in_review: PolicyInReview | None = None
    match: MatchResult | None = None
    evaluated_policy_ids: tuple[int | None, ...] = field(default=())

    @property
    def is_default_deny(self) -> bool:
        return self.matched_policy is None
