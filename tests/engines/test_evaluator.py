"""
Tests for the policy evaluator.

Covers:
- Fail-closed default deny
- Priority determinism (lower number wins, ties by id)
- Inactive and draft policies are skipped
- Pending policies keep enforcing their current rule and are flagged
- Property: a request matching nothing is always denied
"""

from decimal import Decimal

from hypothesis import given, settings
from hypothesis import strategies as st

from policy_engines.evaluator import DEFAULT_DENY_REASON, evaluate_policies
from policy_kernel.domain.policy import (
    AmountCondition,
    AssetType,
    ChangeType,
    PendingDeletion,
    Policy,
    PolicyAction,
    PolicyPatch,
    PolicyStatus,
    TransactionRequest,
)


def _request(**overrides) -> TransactionRequest:
    values = {
        "initiator": "Meir",
        "source_wallet": "Main Treasury",
        "destination": "0xabc",
        "amount_usd": Decimal("100"),
        "asset": "ETH",
    }
    values.update(overrides)
    return TransactionRequest(**values)


class TestFailClosed:

    def test_no_policies_denies(self):
        decision = evaluate_policies([], _request())

        assert decision.action == PolicyAction.DENY
        assert decision.reason == DEFAULT_DENY_REASON
        assert decision.is_default_deny

    def test_no_matching_policy_denies(self):
        policies = [
            Policy(id=1, name="btc only", action=PolicyAction.ALLOW,
                   asset_type=AssetType.SPECIFIC, asset_values=("BTC",)),
        ]

        decision = evaluate_policies(policies, _request(asset="ETH"))

        assert decision.action == PolicyAction.DENY
        assert decision.matched_policy is None
        assert decision.evaluated_policy_ids == (1,)

    def test_inactive_policy_is_skipped(self):
        policies = [Policy(id=1, name="allow all", action=PolicyAction.ALLOW, is_active=False)]

        decision = evaluate_policies(policies, _request())

        assert decision.is_default_deny

    def test_draft_policy_is_skipped(self):
        policies = [
            Policy(id=1, name="draft", action=PolicyAction.ALLOW, status=PolicyStatus.DRAFT),
        ]

        assert evaluate_policies(policies, _request()).is_default_deny

    @settings(max_examples=50, deadline=None)
    @given(
        amount=st.decimals(min_value=0, max_value=10**9, places=2, allow_nan=False),
        asset=st.sampled_from(["ETH", "USDC", "DAI"]),
    )
    def test_request_matching_nothing_is_always_denied(self, amount, asset):
        policies = [
            Policy(id=1, name="btc", action=PolicyAction.ALLOW,
                   asset_type=AssetType.SPECIFIC, asset_values=("BTC",)),
            Policy(id=2, name="huge", action=PolicyAction.ALLOW, priority=1,
                   amount_condition=AmountCondition.ABOVE, amount_min=Decimal(10**10)),
        ]

        decision = evaluate_policies(policies, _request(amount_usd=amount, asset=asset))

        assert decision.action == PolicyAction.DENY


class TestPriority:

    def test_lower_priority_number_wins(self):
        deny = Policy(id=1, name="deny", priority=1, action=PolicyAction.DENY)
        allow = Policy(id=2, name="allow", priority=0, action=PolicyAction.ALLOW)

        decision = evaluate_policies([deny, allow], _request())

        assert decision.action == PolicyAction.ALLOW
        assert decision.matched_policy.id == 2

    def test_ties_break_on_id(self):
        first = Policy(id=7, name="first", priority=0, action=PolicyAction.REQUIRE_APPROVAL,
                       approvers=("Meir",))
        second = Policy(id=3, name="second", priority=0, action=PolicyAction.DENY)

        decision = evaluate_policies([first, second], _request())

        assert decision.matched_policy.id == 3

    def test_first_match_stops_evaluation(self):
        policies = [
            Policy(id=1, name="a", priority=0, action=PolicyAction.ALLOW),
            Policy(id=2, name="b", priority=1, action=PolicyAction.DENY),
        ]

        decision = evaluate_policies(policies, _request())

        assert decision.evaluated_policy_ids == (1,)

    def test_decision_reason_names_policy(self):
        policies = [Policy(id=1, name="Small transfers", action=PolicyAction.ALLOW)]

        decision = evaluate_policies(policies, _request())

        assert "Small transfers" in decision.reason


class TestPolicyInReview:

    def test_pending_edit_keeps_current_rule(self):
        policy = Policy(
            id=1,
            name="Guarded",
            action=PolicyAction.ALLOW,
            status=PolicyStatus.PENDING_APPROVAL,
            pending_change=PolicyPatch(action=PolicyAction.DENY),
        )

        decision = evaluate_policies([policy], _request())

        assert decision.action == PolicyAction.ALLOW
        assert decision.policy_in_review is not None
        assert decision.policy_in_review.change_type == ChangeType.EDIT
        assert decision.policy_in_review.policy_name == "Guarded"

    def test_pending_deletion_is_flagged(self):
        policy = Policy(
            id=1,
            name="Going away",
            action=PolicyAction.DENY,
            status=PolicyStatus.PENDING_APPROVAL,
            pending_change=PendingDeletion(),
        )

        decision = evaluate_policies([policy], _request())

        assert decision.action == PolicyAction.DENY
        assert decision.policy_in_review.change_type == ChangeType.DELETE

    def test_active_policy_has_no_review_notice(self):
        decision = evaluate_policies(
            [Policy(id=1, name="p", action=PolicyAction.ALLOW)], _request(),
        )

        assert decision.policy_in_review is None
