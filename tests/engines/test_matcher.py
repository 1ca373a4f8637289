"""
Tests for the condition matcher.

Covers:
- Catch-all: no configured dimension matches every request
- AND / OR combination of configured dimensions
- Each dimension type (initiator, source wallet, destination, amount, asset)
- Amount bound semantics (strict above/below, inclusive between)
"""

from decimal import Decimal

import pytest

from policy_engines.matcher import match_policy
from policy_kernel.domain.policy import (
    AmountCondition,
    AssetType,
    ConditionLogic,
    DestinationType,
    InitiatorType,
    Policy,
    SourceWalletType,
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


def _policy(**overrides) -> Policy:
    values = {"id": 1, "name": "p"}
    values.update(overrides)
    return Policy(**values)


class TestCatchAll:
    """A policy with every dimension set to 'any' matches everything."""

    def test_no_conditions_matches(self):
        result = match_policy(_policy(), _request())

        assert result.matched is True
        assert result.is_catch_all
        assert "No conditions configured" in result.reason

    @pytest.mark.parametrize("amount", ["0", "0.01", "999999999"])
    def test_no_conditions_matches_any_amount(self, amount):
        assert match_policy(_policy(), _request(amount_usd=Decimal(amount))).matched


class TestConditionLogic:
    """AND requires all configured dimensions, OR requires one."""

    def _two_dimension_policy(self, logic: ConditionLogic) -> Policy:
        return _policy(
            condition_logic=logic,
            asset_type=AssetType.SPECIFIC,
            asset_values=("ETH",),
            amount_condition=AmountCondition.ABOVE,
            amount_min=Decimal("1000"),
        )

    def test_and_with_one_dimension_failing_does_not_match(self):
        policy = self._two_dimension_policy(ConditionLogic.AND)

        result = match_policy(policy, _request(asset="ETH", amount_usd=Decimal("500")))

        assert result.matched is False
        assert "unmatched amount" in result.reason

    def test_or_with_one_dimension_passing_matches(self):
        policy = self._two_dimension_policy(ConditionLogic.OR)

        result = match_policy(policy, _request(asset="ETH", amount_usd=Decimal("500")))

        assert result.matched is True

    def test_and_with_both_passing_matches(self):
        policy = self._two_dimension_policy(ConditionLogic.AND)

        result = match_policy(policy, _request(asset="ETH", amount_usd=Decimal("5000")))

        assert result.matched is True
        assert result.reason.startswith("AND: matched")

    def test_or_with_both_failing_does_not_match(self):
        policy = self._two_dimension_policy(ConditionLogic.OR)

        result = match_policy(policy, _request(asset="BTC", amount_usd=Decimal("5")))

        assert result.matched is False

    def test_unconfigured_dimensions_are_not_reported(self):
        policy = self._two_dimension_policy(ConditionLogic.AND)

        result = match_policy(policy, _request())

        assert {d.dimension for d in result.dimensions} == {"asset", "amount"}


class TestDimensions:

    def test_initiator_user(self):
        policy = _policy(initiator_type=InitiatorType.USER, initiator_values=("Meir",))

        assert match_policy(policy, _request(initiator="Meir")).matched
        assert not match_policy(policy, _request(initiator="Omer")).matched

    def test_initiator_group(self):
        policy = _policy(initiator_type=InitiatorType.GROUP, initiator_values=("treasury",))

        assert match_policy(policy, _request(initiator_groups=("ops", "treasury"))).matched
        assert not match_policy(policy, _request(initiator_groups=("ops",))).matched

    def test_source_wallet_specific(self):
        policy = _policy(
            source_wallet_type=SourceWalletType.SPECIFIC,
            source_wallet_values=("Payroll Wallet",),
        )

        assert match_policy(policy, _request(source_wallet="Payroll Wallet")).matched
        assert not match_policy(policy, _request(source_wallet="Main Treasury")).matched

    def test_destination_internal_and_external(self):
        internal = _policy(destination_type=DestinationType.INTERNAL)
        external = _policy(destination_type=DestinationType.EXTERNAL)

        assert match_policy(internal, _request(destination_is_internal=True)).matched
        assert not match_policy(internal, _request(destination_is_internal=False)).matched
        assert match_policy(external, _request(destination_is_internal=False)).matched

    def test_destination_whitelist(self):
        policy = _policy(
            destination_type=DestinationType.WHITELIST,
            destination_values=("0xabc",),
        )

        assert match_policy(policy, _request(destination="0xabc")).matched
        assert not match_policy(policy, _request(destination="0xdef")).matched

    def test_asset_specific(self):
        policy = _policy(asset_type=AssetType.SPECIFIC, asset_values=("USDC", "USDT"))

        assert match_policy(policy, _request(asset="USDT")).matched
        assert not match_policy(policy, _request(asset="ETH")).matched


class TestAmountBounds:

    def test_above_is_strict(self):
        policy = _policy(amount_condition=AmountCondition.ABOVE, amount_min=Decimal("1000"))

        assert not match_policy(policy, _request(amount_usd=Decimal("1000"))).matched
        assert match_policy(policy, _request(amount_usd=Decimal("1000.01"))).matched

    def test_below_is_strict(self):
        policy = _policy(amount_condition=AmountCondition.BELOW, amount_min=Decimal("1000"))

        assert not match_policy(policy, _request(amount_usd=Decimal("1000"))).matched
        assert match_policy(policy, _request(amount_usd=Decimal("999.99"))).matched

    def test_between_is_inclusive(self):
        policy = _policy(
            amount_condition=AmountCondition.BETWEEN,
            amount_min=Decimal("100"),
            amount_max=Decimal("200"),
        )

        assert match_policy(policy, _request(amount_usd=Decimal("100"))).matched
        assert match_policy(policy, _request(amount_usd=Decimal("200"))).matched
        assert not match_policy(policy, _request(amount_usd=Decimal("200.01"))).matched

    def test_between_without_max_is_unbounded_above(self):
        policy = _policy(amount_condition=AmountCondition.BETWEEN, amount_min=Decimal("100"))

        assert match_policy(policy, _request(amount_usd=Decimal("10000000"))).matched
        assert not match_policy(policy, _request(amount_usd=Decimal("99"))).matched
