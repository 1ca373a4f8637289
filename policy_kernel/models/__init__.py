"""ORM models. Importing this package registers every table on ``Base.metadata``."""

from policy_kernel.models.policy import PolicyModel
from policy_kernel.models.transaction import TransactionModel

__all__ = [
    "PolicyModel",
    "TransactionModel",
]
