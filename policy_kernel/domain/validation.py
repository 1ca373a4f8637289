"""
Policy shape validation (``policy_kernel.domain.validation``).

Responsibility
--------------
The input boundary for policies, patches and transfer requests.  Parses
loosely-typed payloads (snake_case, or the camelCase keys used by existing
clients) into ``Policy`` / ``PolicyPatch`` values, normalizes the legacy
``approve`` action, and validates the resulting shape.  A patch is validated by
applying it to the policy and validating the merged result against the
same rules as creation.  In a patch, an explicit ``None`` for an optional
field (``amount_min`` / ``amount_max``) clears it.  ``parse_request``
normalizes a transfer request before it reaches the evaluator.

Architecture position
---------------------
**Kernel domain layer** -- pure.  Raises ``PolicyValidationError`` with
field-level detail; never touches storage.
"""

from __future__ import annotations

import dataclasses
from dataclasses import fields
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Mapping

from policy_kernel.domain.policy import (
    CLEARABLE_FIELDS,
    DELETE_SENTINEL_KEY,
    AmountCondition,
    AssetType,
    ConditionLogic,
    DestinationType,
    InitiatorType,
    PendingDeletion,
    Policy,
    PolicyAction,
    PolicyPatch,
    PolicyStatus,
    SourceWalletType,
    TransactionRequest,
)
from policy_kernel.exceptions import PolicyValidationError

_CAMEL_ALIASES: dict[str, str] = {
    "conditionLogic": "condition_logic",
    "initiatorType": "initiator_type",
    "initiatorValues": "initiator_values",
    "sourceWalletType": "source_wallet_type",
    "sourceWalletValues": "source_wallet_values",
    "destinationType": "destination_type",
    "destinationValues": "destination_values",
    "amountCondition": "amount_condition",
    "amountMin": "amount_min",
    "amountMax": "amount_max",
    "assetType": "asset_type",
    "assetValues": "asset_values",
    "isActive": "is_active",
    "quorumRequired": "quorum_required",
    "changeApproversList": "change_approvers_list",
    "changeApprovalsRequired": "change_approvals_required",
}

_ENUM_FIELDS: dict[str, type[Enum]] = {
    "condition_logic": ConditionLogic,
    "initiator_type": InitiatorType,
    "source_wallet_type": SourceWalletType,
    "destination_type": DestinationType,
    "amount_condition": AmountCondition,
    "asset_type": AssetType,
    "status": PolicyStatus,
}

_LIST_FIELDS = frozenset({
    "initiator_values",
    "source_wallet_values",
    "destination_values",
    "asset_values",
    "approvers",
    "change_approvers_list",
})

_DECIMAL_FIELDS = frozenset({"amount_min", "amount_max"})
_INT_FIELDS = frozenset({"quorum_required", "change_approvals_required"})

PATCH_FIELDS: frozenset[str] = frozenset(
    f.name for f in fields(PolicyPatch) if f.name != "cleared"
)
CREATE_FIELDS: frozenset[str] = PATCH_FIELDS | {"status"}


class _Errors:
    """Accumulates field errors so one response reports all of them."""

    def __init__(self) -> None:
        self.items: list[dict[str, str]] = []

    def add(self, field_name: str, message: str) -> None:
        self.items.append({"field": field_name, "message": message})

    def raise_if_any(self) -> None:
        if self.items:
            raise PolicyValidationError(self.items)


# =========================================================================
# Parsing
# =========================================================================


def parse_policy(payload: Mapping[str, Any]) -> Policy:
    """Parse and validate a creation payload into an unsaved ``Policy``."""
    values = _parse_fields(payload, CREATE_FIELDS)
    status = values.get("status", PolicyStatus.ACTIVE)
    if status not in (PolicyStatus.ACTIVE, PolicyStatus.DRAFT):
        raise PolicyValidationError([{
            "field": "status",
            "message": "new policies must be 'active' or 'draft'",
        }])
    policy = Policy(**values)
    validate_policy(policy)
    return policy


def parse_patch(payload: Mapping[str, Any]) -> PolicyPatch | PendingDeletion:
    """Parse a stored or submitted pending-change payload.

    ``{"__delete": true}`` yields ``PendingDeletion``.  ``None`` for an
    optional amount field records it in ``PolicyPatch.cleared``.
    """
    if payload.get(DELETE_SENTINEL_KEY) is True:
        return PendingDeletion()
    values = _parse_fields(payload, PATCH_FIELDS, clearable=CLEARABLE_FIELDS)
    return PolicyPatch(**values)


def _parse_fields(
    payload: Mapping[str, Any],
    allowed: frozenset[str],
    clearable: frozenset[str] = frozenset(),
) -> dict[str, Any]:
    errors = _Errors()
    values: dict[str, Any] = {}
    cleared: set[str] = set()

    for raw_key, raw in payload.items():
        key = _CAMEL_ALIASES.get(raw_key, raw_key)
        if key not in allowed:
            errors.add(raw_key, "unknown or read-only field")
            continue
        if key in values or key in cleared:
            errors.add(raw_key, "given more than once")
            continue
        if raw is None:
            if key in clearable:
                cleared.add(key)
            continue
        try:
            values[key] = _coerce(key, raw)
        except (ValueError, TypeError, InvalidOperation) as exc:
            errors.add(key, f"invalid value {raw!r}: {exc}")

    errors.raise_if_any()
    if cleared:
        values["cleared"] = frozenset(cleared)
    return values


def parse_request(request: TransactionRequest) -> TransactionRequest:
    """Normalize a transfer request; reject it if it cannot be evaluated.

    ``amount_usd`` may arrive as a string, int or float from a transport
    layer; it is coerced to a finite, non-negative ``Decimal``.

    Raises:
        PolicyValidationError: one entry per malformed field.
    """
    errors = _Errors()

    amount = request.amount_usd
    if isinstance(amount, bool) or not isinstance(amount, (Decimal, int, float, str)):
        errors.add("amount_usd", f"invalid value {amount!r}: expected a number")
    else:
        try:
            amount = _to_decimal(amount)
        except (ValueError, InvalidOperation) as exc:
            errors.add("amount_usd", f"invalid value {amount!r}: {exc}")
        else:
            if not amount.is_finite() or amount < 0:
                errors.add("amount_usd", "must be a non-negative number")

    for name in ("initiator", "source_wallet", "destination", "asset"):
        if not isinstance(getattr(request, name), str):
            errors.add(name, "expected a string")

    errors.raise_if_any()
    return dataclasses.replace(request, amount_usd=amount)


def _to_decimal(raw: Any) -> Decimal:
    if isinstance(raw, float):
        raw = repr(raw)
    text = str(raw).strip()
    if text == "":
        raise ValueError("empty amount")
    return Decimal(text)


def _coerce(key: str, raw: Any) -> Any:
    if key == "action":
        return PolicyAction.parse(raw)
    if key in _ENUM_FIELDS:
        return _ENUM_FIELDS[key](raw)
    if key in _LIST_FIELDS:
        if isinstance(raw, str) or not hasattr(raw, "__iter__"):
            raise TypeError("expected a list of strings")
        return tuple(str(v) for v in raw)
    if key in _DECIMAL_FIELDS:
        return _to_decimal(raw)
    if key in _INT_FIELDS:
        if isinstance(raw, bool):
            raise TypeError("expected an integer")
        return int(raw)
    if key == "is_active":
        if not isinstance(raw, bool):
            raise TypeError("expected a boolean")
        return raw
    return str(raw)


# =========================================================================
# Validation
# =========================================================================


def validate_policy(policy: Policy) -> None:
    """Raise ``PolicyValidationError`` if the policy shape is inadmissible."""
    errors = _Errors()

    if not policy.name.strip():
        errors.add("name", "must not be empty")

    _check_dimension_values(policy, errors)
    _check_amounts(policy, errors)
    _check_roster(
        errors, "approvers", policy.approvers,
        "quorum_required", policy.quorum_required,
    )
    _check_roster(
        errors, "change_approvers_list", policy.change_approvers_list,
        "change_approvals_required", policy.change_approvals_required,
        bounded=False,
    )
    if policy.action == PolicyAction.REQUIRE_APPROVAL and not policy.approvers:
        errors.add("approvers", "required when action is 'require_approval'")

    errors.raise_if_any()


def validate_patch(policy: Policy, patch: PolicyPatch) -> Policy:
    """Validate ``patch`` against ``policy``; return the merged policy."""
    if patch.is_empty:
        raise PolicyValidationError([{
            "field": "patch",
            "message": "no changes submitted",
        }])
    merged = policy.with_patch(patch)
    validate_policy(merged)
    return merged


def _check_dimension_values(policy: Policy, errors: _Errors) -> None:
    if policy.initiator_type != InitiatorType.ANY and not policy.initiator_values:
        errors.add("initiator_values", f"required for initiator type '{policy.initiator_type.value}'")
    if policy.source_wallet_type == SourceWalletType.SPECIFIC and not policy.source_wallet_values:
        errors.add("source_wallet_values", "required for source wallet type 'specific'")
    if policy.destination_type == DestinationType.WHITELIST and not policy.destination_values:
        errors.add("destination_values", "required for destination type 'whitelist'")
    if policy.asset_type == AssetType.SPECIFIC and not policy.asset_values:
        errors.add("asset_values", "required for asset type 'specific'")


def _check_amounts(policy: Policy, errors: _Errors) -> None:
    for name in ("amount_min", "amount_max"):
        value = getattr(policy, name)
        if value is not None and (not value.is_finite() or value < 0):
            errors.add(name, "must be a non-negative number")

    condition = policy.amount_condition
    if condition in (AmountCondition.ABOVE, AmountCondition.BELOW) and policy.amount_min is None:
        errors.add("amount_min", f"required for amount condition '{condition.value}'")
    if (
        condition == AmountCondition.BETWEEN
        and policy.amount_min is not None
        and policy.amount_max is not None
        and policy.amount_min > policy.amount_max
    ):
        errors.add("amount_max", "must be greater than or equal to amount_min")


def _check_roster(
    errors: _Errors,
    roster_field: str,
    roster: tuple[str, ...],
    required_field: str,
    required: int,
    bounded: bool = True,
) -> None:
    if required < 1:
        errors.add(required_field, "must be at least 1")
    if len(set(roster)) != len(roster):
        errors.add(roster_field, "must not contain duplicates")
    # Change-roster feasibility is decided per submission by the quorum
    # validator, which reports the exact shortfall.
    if bounded and roster and required > len(roster):
        errors.add(
            required_field,
            f"requires {required} approval(s) but only {len(roster)} "
            f"approver(s) are listed",
        )
