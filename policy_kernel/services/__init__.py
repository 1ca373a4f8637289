"""
Services -- the imperative shell around the pure engines.

Each service takes a SQLAlchemy ``Session`` and only flushes; the caller
owns the transaction via ``policy_kernel.db.session_scope()``.
"""

from policy_kernel.services.policy_service import PolicyService
from policy_kernel.services.policy_store import PolicyStore, TransactionStore
from policy_kernel.services.transaction_service import TransactionService

__all__ = [
    "PolicyService",
    "PolicyStore",
    "TransactionService",
    "TransactionStore",
]
