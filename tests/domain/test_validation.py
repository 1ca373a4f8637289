"""
Tests for policy payload parsing and shape validation.

Covers:
- camelCase / snake_case payloads and the legacy ``approve`` action
- Field-level errors (all reported at once)
- Roster / quorum bounds for transfer approvers
- Patch parsing, including the deletion sentinel and cleared fields
- Transfer request normalization
"""

from decimal import Decimal

import pytest

from policy_kernel.domain.policy import (
    AmountCondition,
    AssetType,
    PendingDeletion,
    Policy,
    PolicyAction,
    PolicyPatch,
    PolicyStatus,
    TransactionRequest,
)
from policy_kernel.domain.validation import (
    parse_patch,
    parse_policy,
    parse_request,
    validate_patch,
    validate_policy,
)
from policy_kernel.exceptions import PolicyValidationError


def _fields(exc_info) -> set[str]:
    return {e["field"] for e in exc_info.value.field_errors}


class TestParsePolicy:

    def test_camel_case_payload(self):
        policy = parse_policy({
            "name": "Large USDC",
            "action": "require_approval",
            "assetType": "specific",
            "assetValues": ["USDC"],
            "amountCondition": "above",
            "amountMin": "5000",
            "approvers": ["Meir", "Ishai"],
            "quorumRequired": 2,
        })

        assert policy.asset_type == AssetType.SPECIFIC
        assert policy.asset_values == ("USDC",)
        assert policy.amount_condition == AmountCondition.ABOVE
        assert policy.amount_min == Decimal("5000")
        assert policy.quorum_required == 2
        assert policy.status == PolicyStatus.ACTIVE

    def test_legacy_approve_action_becomes_allow(self):
        policy = parse_policy({"name": "legacy", "action": "approve"})

        assert policy.action == PolicyAction.ALLOW

    def test_float_amount_keeps_its_decimal_text(self):
        policy = parse_policy({
            "name": "float",
            "amount_condition": "below",
            "amount_min": 0.1,
        })

        assert policy.amount_min == Decimal("0.1")

    def test_draft_status_is_accepted(self):
        assert parse_policy({"name": "d", "status": "draft"}).status == PolicyStatus.DRAFT

    def test_pending_status_is_refused_at_creation(self):
        with pytest.raises(PolicyValidationError) as exc_info:
            parse_policy({"name": "p", "status": "pending_approval"})

        assert _fields(exc_info) == {"status"}

    def test_read_only_and_unknown_fields_are_rejected(self):
        with pytest.raises(PolicyValidationError) as exc_info:
            parse_policy({"name": "x", "priority": 3, "colour": "red"})

        assert _fields(exc_info) == {"priority", "colour"}

    def test_all_errors_are_reported_together(self):
        with pytest.raises(PolicyValidationError) as exc_info:
            parse_policy({"name": "x", "action": "explode", "quorumRequired": "many"})

        assert _fields(exc_info) == {"action", "quorum_required"}

    def test_bool_is_not_an_integer(self):
        with pytest.raises(PolicyValidationError):
            parse_policy({"name": "x", "quorum_required": True})

    def test_string_is_not_a_list(self):
        with pytest.raises(PolicyValidationError):
            parse_policy({"name": "x", "approvers": "Meir"})


class TestValidatePolicy:

    def test_blank_name(self):
        with pytest.raises(PolicyValidationError) as exc_info:
            validate_policy(Policy(name="   "))

        assert "name" in _fields(exc_info)

    def test_require_approval_needs_approvers(self):
        with pytest.raises(PolicyValidationError) as exc_info:
            validate_policy(Policy(name="x", action=PolicyAction.REQUIRE_APPROVAL))

        assert "approvers" in _fields(exc_info)

    def test_transfer_quorum_bounded_by_roster(self):
        policy = Policy(
            name="x",
            action=PolicyAction.REQUIRE_APPROVAL,
            approvers=("Meir",),
            quorum_required=2,
        )

        with pytest.raises(PolicyValidationError) as exc_info:
            validate_policy(policy)

        assert _fields(exc_info) == {"quorum_required"}

    def test_change_quorum_above_roster_is_left_to_submission(self):
        # Rejected with the exact shortfall when a change is submitted.
        validate_policy(Policy(name="x", change_approvers_list=("Meir",),
                               change_approvals_required=2))

    def test_quorum_must_be_positive(self):
        with pytest.raises(PolicyValidationError) as exc_info:
            validate_policy(Policy(name="x", change_approvals_required=0))

        assert _fields(exc_info) == {"change_approvals_required"}

    def test_duplicate_roster_entries(self):
        with pytest.raises(PolicyValidationError) as exc_info:
            validate_policy(Policy(name="x", change_approvers_list=("Meir", "Meir")))

        assert "change_approvers_list" in _fields(exc_info)

    @pytest.mark.parametrize("condition", [AmountCondition.ABOVE, AmountCondition.BELOW])
    def test_one_sided_amount_needs_min(self, condition):
        with pytest.raises(PolicyValidationError):
            validate_policy(Policy(name="x", amount_condition=condition))

    def test_between_min_above_max(self):
        policy = Policy(
            name="x",
            amount_condition=AmountCondition.BETWEEN,
            amount_min=Decimal("500"),
            amount_max=Decimal("100"),
        )

        with pytest.raises(PolicyValidationError) as exc_info:
            validate_policy(policy)

        assert _fields(exc_info) == {"amount_max"}

    def test_negative_amount(self):
        with pytest.raises(PolicyValidationError):
            validate_policy(Policy(name="x", amount_condition=AmountCondition.ABOVE,
                                   amount_min=Decimal("-1")))

    def test_specific_asset_needs_values(self):
        with pytest.raises(PolicyValidationError) as exc_info:
            validate_policy(Policy(name="x", asset_type=AssetType.SPECIFIC))

        assert _fields(exc_info) == {"asset_values"}


class TestPatches:

    def test_parse_patch_fields(self):
        patch = parse_patch({"amountMin": "5000", "isActive": False})

        assert patch == PolicyPatch(amount_min=Decimal("5000"), is_active=False)

    def test_deletion_sentinel(self):
        assert parse_patch({"__delete": True}) == PendingDeletion()

    def test_patch_payload_round_trips_through_json_shape(self):
        patch = PolicyPatch(action=PolicyAction.DENY, asset_values=("ETH",),
                            amount_min=Decimal("12.50"))

        assert parse_patch(patch.to_payload()) == patch

    def test_status_is_not_patchable(self):
        with pytest.raises(PolicyValidationError):
            parse_patch({"status": "active"})

    def test_validate_patch_returns_merged_policy(self):
        policy = Policy(id=1, name="x", amount_condition=AmountCondition.ABOVE,
                        amount_min=Decimal("1000"))

        merged = validate_patch(policy, PolicyPatch(amount_min=Decimal("5000")))

        assert merged.amount_min == Decimal("5000")
        assert policy.amount_min == Decimal("1000")

    def test_none_clears_an_optional_amount(self):
        patch = parse_patch({"amountMax": None, "name": "open band"})

        assert patch.cleared == frozenset({"amount_max"})
        assert patch.changed_fields() == ("name", "amount_max")
        assert not patch.is_empty

    def test_none_for_other_fields_is_ignored(self):
        assert parse_patch({"description": None}).is_empty

    def test_cleared_fields_round_trip_through_payload(self):
        patch = PolicyPatch(amount_min=Decimal("10"), cleared=frozenset({"amount_max"}))

        payload = patch.to_payload()

        assert payload == {"amount_min": "10", "amount_max": None}
        assert parse_patch(payload) == patch

    def test_same_field_given_twice(self):
        with pytest.raises(PolicyValidationError) as exc_info:
            parse_patch({"amountMax": None, "amount_max": "500"})

        assert _fields(exc_info) == {"amount_max"}

    def test_only_optional_fields_can_be_cleared(self):
        with pytest.raises(ValueError):
            PolicyPatch(cleared=frozenset({"name"}))

    def test_clearing_upper_bound_opens_the_band(self):
        policy = Policy(id=1, name="band", amount_condition=AmountCondition.BETWEEN,
                        amount_min=Decimal("100"), amount_max=Decimal("500"))

        merged = validate_patch(policy, PolicyPatch(cleared=frozenset({"amount_max"})))

        assert merged.amount_max is None
        assert merged.amount_min == Decimal("100")

    def test_clearing_a_required_bound_is_rejected(self):
        policy = Policy(id=1, name="big", amount_condition=AmountCondition.ABOVE,
                        amount_min=Decimal("1000"))

        with pytest.raises(PolicyValidationError) as exc_info:
            validate_patch(policy, PolicyPatch(cleared=frozenset({"amount_min"})))

        assert _fields(exc_info) == {"amount_min"}


def _request(amount) -> TransactionRequest:
    return TransactionRequest(
        initiator="Meir",
        source_wallet="Main Treasury",
        destination="0xabc",
        amount_usd=amount,
        asset="ETH",
    )


class TestParseRequest:

    @pytest.mark.parametrize(
        "raw, expected",
        [
            (Decimal("250.10"), Decimal("250.10")),
            ("500", Decimal("500")),
            (" 12.5 ", Decimal("12.5")),
            (7, Decimal("7")),
            (0.1, Decimal("0.1")),
            ("0", Decimal("0")),
        ],
    )
    def test_amount_is_coerced_to_decimal(self, raw, expected):
        request = parse_request(_request(raw))

        assert isinstance(request.amount_usd, Decimal)
        assert request.amount_usd == expected
        assert request.initiator == "Meir"

    @pytest.mark.parametrize(
        "raw",
        [Decimal("-50"), "-0.01", "NaN", "Infinity", "abc", "", None, True, [100]],
    )
    def test_bad_amount_is_rejected(self, raw):
        with pytest.raises(PolicyValidationError) as exc_info:
            parse_request(_request(raw))

        assert _fields(exc_info) == {"amount_usd"}

    def test_non_string_fields_are_reported_together(self):
        request = TransactionRequest(
            initiator=None, source_wallet="Main Treasury", destination="0xabc",
            amount_usd="-1", asset=5,
        )

        with pytest.raises(PolicyValidationError) as exc_info:
            parse_request(request)

        assert _fields(exc_info) == {"amount_usd", "initiator", "asset"}
