"""
Database infrastructure for Apex.

- ``base``: declarative ``Base`` and column mixins
- ``service``: ``DatabaseService`` (engine, sessions, transactions)
- ``retry_policy``: ``TransactionRetryPolicy`` for conflicting transactions
"""

from src.core.database.base import Base, IdMixin, TimestampMixin
from src.core.database.retry_policy import RetryConfig, TransactionRetryPolicy
from src.core.database.service import (
    DatabaseInitializationError,
    DatabaseNotInitializedError,
    DatabaseService,
    DatabaseSettings,
)

__all__ = [
    "Base",
    "IdMixin",
    "TimestampMixin",
    "DatabaseService",
    "DatabaseSettings",
    "DatabaseInitializationError",
    "DatabaseNotInitializedError",
    "RetryConfig",
    "TransactionRetryPolicy",
]
