"""
PolicyService -- imperative shell for policy CRUD, evaluation and change
governance.

Responsibility:
    Resolve the acting identity, load the policy under a row lock, run the
    pure engine (``policy_engines``), persist what the engine returned and
    log the outcome.  This is the only place where governance decisions
    touch storage.

Architecture position:
    Kernel > Services -- imperative shell.  Calls policy_engines for every
    decision; never decides anything itself.

Invariants enforced:
    - Creation is not governed; every later edit, deletion, toggle and
      publication goes through the governance state machine.
    - Fail fast: engines raise before anything is written, and the store
      only flushes, so a rejected operation leaves the caller's transaction
      clean.
    - Read-modify-write under ``SELECT ... FOR UPDATE`` plus version CAS;
      a lost race raises ``OptimisticLockError``.
    - Ungoverned policies (empty change roster) are logged as warnings on
      every governance operation and listed by ``governance_warnings``.

Failure modes:
    - PolicyValidationError on a malformed payload or patch.
    - PolicyNotFoundError on an unknown id.
    - GovernanceError subclasses (NotAuthorized, QuorumInfeasible,
      IdentityAmbiguous, ChangeAlreadyPending, InvalidGovernanceTransition).
    - OptimisticLockError on a concurrent modification.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Callable, Mapping
from datetime import datetime
from typing import Any

from sqlalchemy.orm import Session

from policy_engines import (
    approve_change,
    cancel_change,
    evaluate_policies,
    next_priority,
    publish_draft,
    quorum_status,
    reorder,
    restrictive_order,
    submit_change,
    submit_deletion,
)
from policy_kernel.domain.clock import Clock, SystemClock
from policy_kernel.domain.governance import (
    DEFAULT_RULES,
    GovernanceOutcome,
    GovernanceResult,
    GovernanceRules,
    QuorumStatus,
)
from policy_kernel.domain.identity import Identity, IdentityResolver, resolve_identity
from policy_kernel.domain.policy import (
    Decision,
    GovernanceMode,
    Policy,
    PolicyPatch,
    PolicyStatus,
    TransactionRequest,
)
from policy_kernel.domain.validation import (
    parse_patch,
    parse_policy,
    parse_request,
    validate_policy,
)
from policy_kernel.exceptions import PolicyValidationError
from policy_kernel.logging_config import LogContext, get_logger
from policy_kernel.models.policy import PolicyModel
from policy_kernel.services.base import BaseService
from policy_kernel.services.policy_store import PolicyStore

logger = get_logger("services.policy")

_OUTCOME_EVENTS: dict[GovernanceOutcome, str] = {
    GovernanceOutcome.APPLIED: "change_applied",
    GovernanceOutcome.QUEUED: "change_submitted",
    GovernanceOutcome.APPROVAL_RECORDED: "change_approval_recorded",
    GovernanceOutcome.DUPLICATE_APPROVAL: "duplicate_approval_ignored",
    GovernanceOutcome.DELETED: "policy_deleted",
    GovernanceOutcome.CANCELLED: "change_cancelled",
}


class PolicyService(BaseService[PolicyModel]):
    """
    Policy CRUD, evaluation and quorum-governed changes.

    Contract:
        Every public method returns frozen domain values (``Policy``,
        ``Decision``, ``GovernanceResult``), never ORM rows.

    Non-goals:
        - Does NOT commit; wrap calls in ``session_scope()``.
        - Does NOT authenticate callers.  The actor's address and display
          name are taken as given and resolved through ``identities``.
    """

    def __init__(
        self,
        session: Session,
        *,
        clock: Clock | None = None,
        identities: IdentityResolver | None = None,
        rules: GovernanceRules = DEFAULT_RULES,
        default_change_approvals_required: int = 1,
    ):
        super().__init__(session)
        self.store = PolicyStore(session)
        self._clock = clock or SystemClock()
        self._identities = identities
        self._rules = rules
        self._default_change_approvals = default_change_approvals_required

    # ------------------------------------------------------------------
    # Identity
    # ------------------------------------------------------------------

    def identity(self, address: str | None = None, name: str | None = None) -> Identity:
        """Resolve a caller-supplied address/name into one ``Identity``."""
        return resolve_identity(
            self._identities, address, name, self._rules.address_prefix,
        )

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------

    def create_policy(
        self,
        payload: Mapping[str, Any] | Policy,
        *,
        actor_address: str | None = None,
        actor_name: str | None = None,
    ) -> Policy:
        """
        Create a policy at the lowest priority (evaluated last).

        Args:
            payload: A creation payload (snake_case or camelCase keys) or an
                unsaved ``Policy``.

        Raises:
            PolicyValidationError: The payload is malformed.
        """
        if isinstance(payload, Policy):
            policy = payload
            validate_policy(policy)
        else:
            policy = parse_policy(payload)
            if not (
                "change_approvals_required" in payload
                or "changeApprovalsRequired" in payload
            ):
                policy = self._with_default_change_quorum(policy)

        if policy.status not in (PolicyStatus.ACTIVE, PolicyStatus.DRAFT):
            raise PolicyValidationError([{
                "field": "status",
                "message": "new policies must be 'active' or 'draft'",
            }])

        now = self._clock.now()
        policy = dataclasses.replace(
            policy,
            id=None,
            priority=next_priority(self.store.list()),
            created_at=now,
            updated_at=now,
            version=0,
        )
        stored = self.store.add(policy)

        actor = self.identity(actor_address, actor_name)
        with LogContext.bind(actor=actor.label, policy_id=stored.id):
            logger.info(
                "policy_created",
                extra={
                    "policy_name": stored.name,
                    "priority": stored.priority,
                    "action": stored.action.value,
                    "status": stored.status.value,
                    "governance_mode": stored.governance_mode.value,
                },
            )
            if stored.governance_mode == GovernanceMode.UNGOVERNED:
                logger.warning(
                    "ungoverned_policy_operation",
                    extra={"operation": "create", "policy_name": stored.name},
                )
        return stored

    def get_policy(self, policy_id: int) -> Policy:
        return self.store.get(policy_id)

    def list_policies(self) -> list[Policy]:
        """All policies in evaluation order."""
        return self.store.list()

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------

    def evaluate(self, request: TransactionRequest) -> Decision:
        """Decide ``request`` against the stored policies (fail-closed).

        Raises:
            PolicyValidationError: The request amount is not a
                non-negative number.
        """
        request = parse_request(request)
        decision = evaluate_policies(self.store.list(), request)

        extra = {
            "action": decision.action.value,
            "initiator": request.initiator,
            "amount_usd": request.amount_usd,
            "asset": request.asset,
            "evaluated_policy_ids": list(decision.evaluated_policy_ids),
        }
        if decision.is_default_deny:
            logger.info("policy_default_deny", extra=extra)
        else:
            extra["matched_policy_id"] = decision.matched_policy.id
            extra["in_review"] = decision.policy_in_review is not None
            logger.info("policy_evaluated", extra=extra)
        return decision

    # ------------------------------------------------------------------
    # Governance
    # ------------------------------------------------------------------

    def submit_change(
        self,
        policy_id: int,
        patch: PolicyPatch | Mapping[str, Any],
        submitter_address: str | None = None,
        submitter_name: str | None = None,
    ) -> GovernanceResult:
        """
        Propose an edit.  Applied immediately if the submitter alone meets
        the change quorum, otherwise queued as ``pending_approval``.

        Raises:
            PolicyValidationError: Malformed patch or invalid merged policy.
            ChangeAlreadyPendingError: Another change is awaiting quorum.
            QuorumInfeasibleError: The roster cannot reach quorum.
        """
        typed = self._coerce_patch(patch)
        return self._govern(
            "submit_change", policy_id, submitter_address, submitter_name,
            lambda policy, actor, now: submit_change(
                policy, typed, actor, now, self._rules,
            ),
            extra={"changed_fields": list(typed.changed_fields())},
        )

    def submit_deletion(
        self,
        policy_id: int,
        submitter_address: str | None = None,
        submitter_name: str | None = None,
    ) -> GovernanceResult:
        """Propose deleting a policy; deleted immediately if quorum is met."""
        return self._govern(
            "submit_deletion", policy_id, submitter_address, submitter_name,
            lambda policy, actor, now: submit_deletion(policy, actor, now, self._rules),
        )

    def approve_change(
        self,
        policy_id: int,
        approver_address: str | None = None,
        approver_name: str | None = None,
    ) -> GovernanceResult:
        """Approve the pending change.  Repeat approvals are no-ops."""
        return self._govern(
            "approve_change", policy_id, approver_address, approver_name,
            lambda policy, actor, now: approve_change(policy, actor, now, self._rules),
        )

    def cancel_change(
        self,
        policy_id: int,
        canceler_address: str | None = None,
        canceler_name: str | None = None,
    ) -> GovernanceResult:
        """Discard the pending change and return the policy to ``active``."""
        return self._govern(
            "cancel_change", policy_id, canceler_address, canceler_name,
            lambda policy, actor, now: cancel_change(policy, actor, now, self._rules),
        )

    def publish_draft(
        self,
        policy_id: int,
        actor_address: str | None = None,
        actor_name: str | None = None,
    ) -> GovernanceResult:
        return self._govern(
            "publish_draft", policy_id, actor_address, actor_name,
            lambda policy, actor, now: publish_draft(policy, actor, now, self._rules),
        )

    def toggle_policy(
        self,
        policy_id: int,
        actor_address: str | None = None,
        actor_name: str | None = None,
        *,
        is_active: bool | None = None,
    ) -> GovernanceResult:
        """Flip (or set) ``is_active`` as a governed edit."""
        current = self.store.get(policy_id)
        target = (not current.is_active) if is_active is None else is_active
        return self.submit_change(
            policy_id, PolicyPatch(is_active=target), actor_address, actor_name,
        )

    # ------------------------------------------------------------------
    # Ordering
    # ------------------------------------------------------------------

    def reorder(self, ordered_ids: list[int]) -> list[Policy]:
        """
        Renumber priorities 0..n-1 in ``ordered_ids`` order.

        Raises:
            PolicyValidationError: ``ordered_ids`` is not a permutation of
                every stored policy id.
        """
        locked = [self.store.get(p.id, for_update=True) for p in self.store.list()]
        reordered = reorder(locked, ordered_ids)
        before = {p.id: p.priority for p in locked}
        now = self._clock.now()
        changed = [
            dataclasses.replace(p, updated_at=now)
            for p in reordered
            if before[p.id] != p.priority
        ]
        self.store.reprioritize(changed)
        logger.info("policies_reordered", extra={"ordered_ids": list(ordered_ids)})
        return self.store.list()

    def apply_restrictive_order(self) -> list[Policy]:
        """Reorder deny first, then require_approval, then allow."""
        return self.reorder(restrictive_order(self.store.list()))

    # ------------------------------------------------------------------
    # Review helpers
    # ------------------------------------------------------------------

    def quorum_status(self, policy_id: int) -> QuorumStatus | None:
        """Progress of the pending change, or None when nothing is pending."""
        policy = self.store.get(policy_id)
        if policy.status != PolicyStatus.PENDING_APPROVAL:
            return None
        return self._quorum_status(policy)

    def governance_warnings(self) -> list[str]:
        """Human-readable warnings: ungoverned policies and stuck changes."""
        warnings: list[str] = []
        for policy in self.store.list():
            if policy.governance_mode == GovernanceMode.UNGOVERNED:
                state = "allowed" if self._rules.allow_ungoverned else "refused"
                warnings.append(
                    f"Policy '{policy.label}' has no change approvers; "
                    f"governance operations are {state} for any identity"
                )
            if policy.status == PolicyStatus.PENDING_APPROVAL:
                status = self._quorum_status(policy)
                if status.is_infeasible:
                    warnings.append(
                        f"Pending change on '{policy.label}' can no longer reach "
                        f"quorum ({status.current}/{status.required}, "
                        f"{len(status.eligible_remaining)} eligible); cancel it"
                    )
        return warnings

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _govern(
        self,
        operation: str,
        policy_id: int,
        address: str | None,
        name: str | None,
        step: Callable[[Policy, Identity, datetime], GovernanceResult],
        extra: dict[str, Any] | None = None,
    ) -> GovernanceResult:
        actor = self.identity(address, name)
        with LogContext.bind(actor=actor.label, policy_id=policy_id):
            policy = self.store.get(policy_id, for_update=True)
            if policy.governance_mode == GovernanceMode.UNGOVERNED:
                logger.warning(
                    "ungoverned_policy_operation",
                    extra={
                        "operation": operation,
                        "allowed": self._rules.allow_ungoverned,
                    },
                )

            result = step(policy, actor, self._clock.now())
            result = self._persist(result)

            logger.info(
                _OUTCOME_EVENTS[result.outcome],
                extra={
                    "operation": operation,
                    "status": result.policy.status.value,
                    "approvals": list(result.policy.change_approvers),
                    "required": result.policy.change_approvals_required,
                    "reason": result.reason,
                    **(extra or {}),
                },
            )
            return result

    def _persist(self, result: GovernanceResult) -> GovernanceResult:
        if not result.requires_write:
            return result
        if result.is_deleted:
            self.store.delete(result.policy)
            return result
        return dataclasses.replace(result, policy=self.store.update(result.policy))

    def _quorum_status(self, policy: Policy) -> QuorumStatus:
        roster = policy.change_approvers_list
        return quorum_status(
            roster,
            policy.change_approvers,
            policy.change_approvals_required,
            members=[self.identity(name=entry) for entry in roster],
        )

    def _coerce_patch(self, patch: PolicyPatch | Mapping[str, Any]) -> PolicyPatch:
        if isinstance(patch, PolicyPatch):
            return patch
        parsed = parse_patch(patch)
        if not isinstance(parsed, PolicyPatch):
            raise PolicyValidationError([{
                "field": "patch",
                "message": "use submit_deletion to delete a policy",
            }])
        return parsed

    def _with_default_change_quorum(self, policy: Policy) -> Policy:
        required = self._default_change_approvals
        if policy.change_approvers_list:
            required = min(required, len(policy.change_approvers_list))
        return dataclasses.replace(policy, change_approvals_required=max(1, required))
