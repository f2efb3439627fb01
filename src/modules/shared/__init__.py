"""
Shared service foundations.

- BaseService: config, events, logging and argument checks for services
- BaseRepository: generic async SQLAlchemy queries with optional row locks
- Domain exceptions and their classification helpers

    from src.modules.shared import BaseService, NotFoundError
"""

from __future__ import annotations

from .base_repository import BaseRepository
from .base_service import BaseService
from .exceptions import (
    ApexDomainException,
    ConcurrencyConflictError,
    ErrorSeverity,
    InvalidOperationError,
    NotFoundError,
    TransientProgressionError,
    ValidationError,
    get_error_severity,
    is_transient_error,
    should_alert,
)

__all__ = [
    "BaseService",
    "BaseRepository",
    "ApexDomainException",
    "ConcurrencyConflictError",
    "ErrorSeverity",
    "InvalidOperationError",
    "NotFoundError",
    "TransientProgressionError",
    "ValidationError",
    "get_error_severity",
    "is_transient_error",
    "should_alert",
]
