"""
policy_engines.matcher -- Pure condition matcher.

Responsibility:
    Decide whether one policy's conditions match one transfer request and
    report the per-dimension results.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import policy_kernel/domain/ types.

Invariants enforced:
    - Unconfigured (``any``) dimensions are excluded from evaluation.
    - A policy with no configured dimension matches every request.
    - ``AND`` requires every configured dimension; ``OR`` requires one.
    - Amount bounds: ``between`` defaults min to 0 and max to +infinity;
      ``above``/``below`` compare strictly against ``amount_min``.
"""

from __future__ import annotations

from decimal import Decimal

from policy_kernel.domain.policy import (
    AmountCondition,
    AssetType,
    ConditionLogic,
    DestinationType,
    DimensionResult,
    InitiatorType,
    MatchResult,
    Policy,
    SourceWalletType,
    TransactionRequest,
)

_ZERO = Decimal("0")
_INFINITY = Decimal("Infinity")


def match_policy(policy: Policy, request: TransactionRequest) -> MatchResult:
    """Match ``request`` against ``policy``'s configured dimensions."""
    checks = (
        _match_initiator,
        _match_source_wallet,
        _match_destination,
        _match_amount,
        _match_asset,
    )
    dimensions = tuple(
        result for result in (check(policy, request) for check in checks)
        if result is not None
    )

    if not dimensions:
        return MatchResult(
            matched=True,
            reason="No conditions configured; policy matches every transfer",
        )

    if policy.condition_logic == ConditionLogic.OR:
        matched = any(d.matched for d in dimensions)
    else:
        matched = all(d.matched for d in dimensions)

    return MatchResult(
        matched=matched,
        dimensions=dimensions,
        reason=_describe(policy.condition_logic, dimensions),
    )


def _describe(logic: ConditionLogic, dimensions: tuple[DimensionResult, ...]) -> str:
    hits = [d.dimension for d in dimensions if d.matched]
    misses = [d.dimension for d in dimensions if not d.matched]
    parts = []
    if hits:
        parts.append("matched " + ", ".join(hits))
    if misses:
        parts.append("unmatched " + ", ".join(misses))
    return f"{logic.value}: " + "; ".join(parts)


def _match_initiator(policy: Policy, request: TransactionRequest) -> DimensionResult | None:
    if policy.initiator_type == InitiatorType.USER:
        ok = request.initiator in policy.initiator_values
        return DimensionResult("initiator", ok, f"user {request.initiator!r}")
    if policy.initiator_type == InitiatorType.GROUP:
        groups = [g for g in request.initiator_groups if g in policy.initiator_values]
        detail = f"groups {', '.join(groups)}" if groups else "no listed group"
        return DimensionResult("initiator", bool(groups), detail)
    return None


def _match_source_wallet(policy: Policy, request: TransactionRequest) -> DimensionResult | None:
    if policy.source_wallet_type == SourceWalletType.SPECIFIC:
        ok = request.source_wallet in policy.source_wallet_values
        return DimensionResult("source_wallet", ok, request.source_wallet)
    return None


def _match_destination(policy: Policy, request: TransactionRequest) -> DimensionResult | None:
    kind = policy.destination_type
    if kind == DestinationType.INTERNAL:
        return DimensionResult("destination", request.destination_is_internal, "internal")
    if kind == DestinationType.EXTERNAL:
        return DimensionResult("destination", not request.destination_is_internal, "external")
    if kind == DestinationType.WHITELIST:
        ok = request.destination in policy.destination_values
        return DimensionResult("destination", ok, f"whitelist {request.destination}")
    return None


def _match_amount(policy: Policy, request: TransactionRequest) -> DimensionResult | None:
    condition = policy.amount_condition
    amount = request.amount_usd
    low = policy.amount_min if policy.amount_min is not None else _ZERO

    if condition == AmountCondition.ABOVE:
        return DimensionResult("amount", amount > low, f"{amount} > {low}")
    if condition == AmountCondition.BELOW:
        return DimensionResult("amount", amount < low, f"{amount} < {low}")
    if condition == AmountCondition.BETWEEN:
        high = policy.amount_max if policy.amount_max is not None else _INFINITY
        return DimensionResult("amount", low <= amount <= high, f"{low} <= {amount} <= {high}")
    return None


def _match_asset(policy: Policy, request: TransactionRequest) -> DimensionResult | None:
    if policy.asset_type == AssetType.SPECIFIC:
        ok = request.asset in policy.asset_values
        return DimensionResult("asset", ok, request.asset)
    return None
