"""
Policy Kernel

Transfer-policy decisions and change governance:
- Priority-ordered policy evaluation with a fail-closed default
- Quorum-based approval of policy edits, deletions and transfers
- Optimistic concurrency on every governed write
- Structured JSON logging and typed, coded exceptions
"""

__version__ = "0.1.0"
