"""
Module: policy_engines
Responsibility:
    Package entrypoint that re-exports the public symbols of the pure
    decision engines.  This is the canonical import surface for the
    service layer (policy_kernel.services).

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import policy_kernel.domain, policy_kernel.exceptions,
    policy_kernel.logging_config and sibling engine modules.
    MUST NOT import policy_kernel.db, models or services.

Invariants enforced:
    - Purity: engines NEVER read the clock.  ``now`` is passed in by the
      caller.
    - Decimal-only amounts: thresholds and transfer amounts are ``Decimal``.
    - Determinism: identical inputs always produce identical outputs.

Failure modes:
    - Typed ``PolicyKernelError`` subclasses from governance and ordering
      on inadmissible input.  The evaluator never raises for a
      well-formed request.

Audit relevance:
    ``evaluate_policies`` is traced via ``@traced_engine`` (see
    ``policy_engines.tracer``), emitting POLICY_ENGINE_TRACE records with
    engine name, version and input fingerprint.

Usage:
    from policy_engines import evaluate_policies, submit_change
    from policy_engines.quorum import validate_submission
"""

from policy_engines.evaluator import (
    DEFAULT_DENY_REASON,
    enforceable_policies,
    evaluate_policies,
)
from policy_engines.governance import (
    approve_change,
    cancel_change,
    publish_draft,
    submit_change,
    submit_deletion,
)
from policy_engines.matcher import match_policy
from policy_engines.ordering import next_priority, reorder, restrictive_order
from policy_engines.quorum import quorum_status, record_approval, validate_submission
from policy_engines.tracer import compute_input_fingerprint, traced_engine
from policy_engines.transfer_approval import approve_transaction, open_transaction

__all__ = [
    "DEFAULT_DENY_REASON",
    "approve_change",
    "approve_transaction",
    "cancel_change",
    "compute_input_fingerprint",
    "enforceable_policies",
    "evaluate_policies",
    "match_policy",
    "next_priority",
    "open_transaction",
    "publish_draft",
    "quorum_status",
    "record_approval",
    "reorder",
    "restrictive_order",
    "submit_change",
    "submit_deletion",
    "traced_engine",
    "validate_submission",
]
