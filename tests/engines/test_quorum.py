"""
Tests for the quorum validator.

Covers the submission rules in precedence order:
1. Identity-ambiguous rejection
2. Self-count
3. Immediate satisfaction
4. Feasibility with exact shortfall
5. Queued with pre-populated approvals
plus approval accumulation and the quorum status view.
"""

import pytest

from policy_engines.quorum import quorum_status, record_approval, validate_submission
from policy_kernel.domain.governance import SubmissionState
from policy_kernel.domain.identity import Identity
from policy_kernel.exceptions import IdentityAmbiguousError, QuorumInfeasibleError

MEIR = Identity(address="0xc333", name="Meir")
ISHAI = Identity(name="Ishai")
OMER = Identity(name="Omer")
OUTSIDER = Identity(name="Vitalik")


class TestValidateSubmission:

    def test_self_counted_quorum_of_one_is_satisfied(self):
        outcome = validate_submission(["Meir", "Ishai"], 1, MEIR)

        assert outcome.state == SubmissionState.SATISFIED
        assert outcome.self_counted is True
        assert outcome.approvals == ("Meir",)

    def test_self_counted_submitter_is_queued_with_own_approval(self):
        outcome = validate_submission(["Meir", "Ishai", "Omer"], 2, MEIR)

        assert outcome.state == SubmissionState.QUEUED
        assert outcome.approvals == ("Meir",)

    def test_outside_submitter_is_queued_with_no_approvals(self):
        outcome = validate_submission(["Meir", "Ishai"], 2, OUTSIDER)

        assert outcome.state == SubmissionState.QUEUED
        assert outcome.approvals == ()
        assert outcome.self_counted is False

    def test_single_member_roster_cannot_reach_two(self):
        with pytest.raises(QuorumInfeasibleError) as exc_info:
            validate_submission(["Meir"], 2, MEIR)

        assert exc_info.value.shortfall == 1
        assert exc_info.value.eligible == 0

    def test_outside_submitter_shortfall_is_exact(self):
        with pytest.raises(QuorumInfeasibleError) as exc_info:
            validate_submission(["Meir"], 3, OUTSIDER)

        assert exc_info.value.shortfall == 2

    def test_address_only_submitter_facing_name_roster_is_ambiguous(self):
        with pytest.raises(IdentityAmbiguousError):
            validate_submission(["Meir", "Ishai"], 1, Identity(address="0xc333"))

    def test_address_only_submitter_matches_address_roster(self):
        outcome = validate_submission(["0xC333", "Ishai"], 1, Identity(address="0xc333"))

        assert outcome.state == SubmissionState.SATISFIED
        assert outcome.approvals == ("0xC333",)

    def test_ambiguity_checked_before_feasibility(self):
        with pytest.raises(IdentityAmbiguousError):
            validate_submission(["Meir"], 5, Identity(address="0xc333"))

    def test_empty_roster_skips_feasibility(self):
        outcome = validate_submission([], 2, OUTSIDER)

        assert outcome.state == SubmissionState.QUEUED
        assert outcome.approvals == ()


class TestRecordApproval:

    def test_accumulates_until_quorum(self):
        first = record_approval((), 2, ISHAI, ["Meir", "Ishai", "Omer"])
        second = record_approval(first.approvals, 2, OMER, ["Meir", "Ishai", "Omer"])

        assert first.quorum_reached is False
        assert first.remaining == 1
        assert second.quorum_reached is True
        assert second.approvals == ("Ishai", "Omer")

    def test_duplicate_is_a_no_op(self):
        outcome = record_approval(("Ishai",), 2, ISHAI, ["Meir", "Ishai"])

        assert outcome.duplicate is True
        assert outcome.approvals == ("Ishai",)
        assert outcome.quorum_reached is False

    def test_name_and_address_of_same_actor_count_once(self):
        roster = ["Meir", "Ishai"]
        first = record_approval((), 2, Identity(address="0xc333", name="Meir"), roster)
        again = record_approval(first.approvals, 2, Identity(name="Meir"), roster)

        assert again.duplicate is True
        assert len(again.approvals) == 1

    def test_records_roster_entry_spelling(self):
        outcome = record_approval((), 1, Identity(address="0xabc"), ["0xABC"])

        assert outcome.approvals == ("0xABC",)


class TestQuorumStatus:

    def test_reports_progress(self):
        status = quorum_status(["Meir", "Ishai", "Omer"], ["Meir"], 2)

        assert status.current == 1
        assert status.remaining == 1
        assert status.eligible_remaining == ("Ishai", "Omer")
        assert status.is_infeasible is False

    def test_shrunken_roster_is_infeasible(self):
        status = quorum_status(["Meir"], ["Meir"], 3)

        assert status.is_infeasible is True

    def test_name_and_address_of_one_person_count_once(self):
        roster = ["Meir", "0xC333", "Ishai"]
        members = [Identity(name="Meir"), MEIR, ISHAI]

        status = quorum_status(roster, ["Ishai"], 3, members=members)

        assert status.eligible_remaining == ("Meir",)
        assert status.is_infeasible is True

    def test_person_who_approved_by_address_is_not_eligible(self):
        roster = ["Meir", "0xC333", "Ishai", "Omer"]
        members = [Identity(name="Meir"), MEIR, ISHAI, OMER]

        status = quorum_status(roster, ["0xC333"], 3, members=members)

        assert status.eligible_remaining == ("Ishai", "Omer")
        assert status.is_infeasible is False

    def test_address_entries_compare_case_insensitively(self):
        status = quorum_status(["0xABC", "0xabc"], [], 2)

        assert status.eligible_remaining == ("0xABC",)
        assert status.is_infeasible is True
