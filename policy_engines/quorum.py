"""
policy_engines.quorum -- Pure quorum validator.

Responsibility:
    Decide, for a roster, a required approval count and a submitter,
    whether a governed request is admissible and whether it is already
    satisfied; accumulate approvals toward quorum.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced (``validate_submission``, in order of precedence):
    1. Identity-ambiguous -- an address-only submitter facing a roster of
       display names is rejected; an unverifiable identity never counts.
    2. Self-count -- a submitter on the roster contributes one approval.
    3. Immediate satisfaction -- self-count >= required approves at once.
    4. Feasibility -- the remaining roster must be able to supply the
       missing approvals; otherwise the submission is rejected with the
       exact shortfall, so no pending state can deadlock.
    5. Queued -- otherwise pending, pre-populated with the self-count.

    ``record_approval`` ignores a repeat approver (idempotent retries) and
    reports when the count reaches the requirement.

Ungoverned rosters:
    An empty roster bounds nothing: no self-count is possible and the
    feasibility check is skipped.  Authorization for that case is decided
    by the governance state machine.
"""

from __future__ import annotations

from collections.abc import Sequence

from policy_kernel.domain.governance import (
    ApprovalOutcome,
    QuorumStatus,
    SubmissionOutcome,
    SubmissionState,
)
from policy_kernel.domain.identity import (
    DEFAULT_ADDRESS_PREFIX,
    Identity,
    looks_like_address,
    roster_is_name_only,
)
from policy_kernel.exceptions import IdentityAmbiguousError, QuorumInfeasibleError


def validate_submission(
    roster: Sequence[str],
    required: int,
    submitter: Identity,
    address_prefix: str = DEFAULT_ADDRESS_PREFIX,
) -> SubmissionOutcome:
    """Decide whether a submission is satisfied, queued, or inadmissible.

    Raises:
        IdentityAmbiguousError: submitter known only by address and the
            roster lists only display names.
        QuorumInfeasibleError: the roster cannot supply enough approvals.
    """
    if submitter.is_address_only and roster_is_name_only(roster, address_prefix):
        raise IdentityAmbiguousError(submitter.address or "")

    own_entry = submitter.find_in(roster)
    self_count = 1 if own_entry is not None else 0
    approvals: tuple[str, ...] = (own_entry,) if own_entry is not None else ()

    if self_count >= required:
        return SubmissionOutcome(
            state=SubmissionState.SATISFIED,
            approvals=approvals,
            required=required,
            self_counted=bool(self_count),
        )

    if roster:
        eligible = [entry for entry in roster if not submitter.matches(entry)]
        if len(eligible) < required - self_count:
            raise QuorumInfeasibleError(required, self_count, len(eligible))

    return SubmissionOutcome(
        state=SubmissionState.QUEUED,
        approvals=approvals,
        required=required,
        self_counted=bool(self_count),
    )


def record_approval(
    approvals: Sequence[str],
    required: int,
    approver: Identity,
    roster: Sequence[str] = (),
) -> ApprovalOutcome:
    """Add ``approver`` to ``approvals`` unless already present.

    The recorded string is the approver's roster entry when there is one,
    so names and addresses of the same actor never count twice.
    """
    current = tuple(approvals)
    if approver.find_in(current) is not None:
        return ApprovalOutcome(
            approvals=current,
            required=required,
            quorum_reached=len(current) >= required,
            duplicate=True,
        )

    entry = approver.find_in(roster) or approver.label
    updated = current + (entry,)
    return ApprovalOutcome(
        approvals=updated,
        required=required,
        quorum_reached=len(updated) >= required,
    )


def quorum_status(
    roster: Sequence[str],
    approvals: Sequence[str],
    required: int,
    members: Sequence[Identity] | None = None,
    address_prefix: str = DEFAULT_ADDRESS_PREFIX,
) -> QuorumStatus:
    """Report progress of a pending change toward quorum.

    ``members`` are the resolved identities of the roster entries, in
    roster order.  A person listed by both name and address counts once,
    and is not eligible once either entry has approved.  Without
    ``members`` each entry stands for itself.

    ``is_infeasible`` flags a pending change that the remaining roster can
    no longer complete (e.g. the roster shrank after submission); such a
    change can only be cancelled.
    """
    if members is None:
        members = [_entry_identity(entry, address_prefix) for entry in roster]

    current = len(approvals)
    remaining = max(0, required - current)
    # One (first roster entry, merged identity) pair per person.
    people: list[tuple[str, Identity]] = []
    for entry, member in zip(roster, members):
        for i, (first, known) in enumerate(people):
            if member.is_same_actor(known):
                people[i] = (first, Identity(
                    address=known.address or member.address,
                    name=known.name or member.name,
                ))
                break
        else:
            people.append((entry, member))
    eligible = tuple(
        first for first, person in people if person.find_in(approvals) is None
    )
    infeasible = bool(roster) and remaining > 0 and len(eligible) < remaining
    return QuorumStatus(
        current=current,
        required=required,
        remaining=remaining,
        eligible_remaining=eligible,
        is_infeasible=infeasible,
    )


def _entry_identity(entry: str, address_prefix: str) -> Identity:
    if looks_like_address(entry, address_prefix):
        return Identity(address=entry)
    return Identity(name=entry)
