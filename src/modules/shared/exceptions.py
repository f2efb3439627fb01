"""
Domain exceptions for the Apex progression engine.

Error Taxonomy
--------------
- Not-applicable outcomes (no thresholds, zero new tiers, no breakthrough
  rule) are *return values*, never exceptions.
- `NotFoundError`: unknown athlete / domain / submission / challenge, raised
  before any state change.
- `ValidationError`: malformed caller input.
- `InvalidOperationError`: a well-formed request the current state forbids.
- `ConcurrencyConflictError`: a write conflict on a serialized row; retried
  transparently by `TransactionRetryPolicy`.
- `TransientProgressionError`: conflict still present after the bounded
  retries; safe for the caller to retry later.

Callers (review flows, admin tooling, HTTP adapters) map these onto their own
responses using `error_code` and `is_retryable`.
"""

from __future__ import annotations

from typing import Any, Optional

from src.core.exceptions import ApexError, ErrorSeverity


class ApexDomainException(ApexError):
    """Base for errors a caller can act on."""


class NotFoundError(ApexDomainException):
    """
    A referenced athlete, domain, challenge or submission does not exist.

    >>> NotFoundError("Athlete", 42).error_code
    'ATHLETE_NOT_FOUND'
    """

    DEFAULT_SEVERITY = ErrorSeverity.INFO

    def __init__(self, resource_type: str, identifier: Optional[Any] = None) -> None:
        self.resource_type = resource_type
        self.identifier = identifier
        message = f"{resource_type} not found"
        if identifier is not None:
            message = f"{message}: {identifier}"
        super().__init__(
            message,
            details={"resource_type": resource_type, "identifier": identifier},
            error_code=f"{resource_type.upper()}_NOT_FOUND",
        )


class ValidationError(ApexDomainException):
    DEFAULT_SEVERITY = ErrorSeverity.INFO

    def __init__(self, field: str, message: str) -> None:
        self.field = field
        self.validation_message = message
        super().__init__(
            f"Validation error for {field}: {message}",
            details={"field": field, "validation_message": message},
            error_code=f"VALIDATION_{field.upper()}",
        )


class InvalidOperationError(ApexDomainException):
    """
    The request is well formed but the current state forbids it, e.g.
    confirming a breakthrough below the letter ceiling.
    """

    DEFAULT_SEVERITY = ErrorSeverity.INFO

    def __init__(self, action: str, reason: str) -> None:
        self.action = action
        self.reason = reason
        super().__init__(
            f"Invalid operation '{action}': {reason}",
            details={"action": action, "reason": reason},
            error_code=f"INVALID_{action.upper()}",
        )


class ConcurrencyConflictError(ApexDomainException):
    """A versioned row changed, or a row was created, under this transaction."""

    DEFAULT_SEVERITY = ErrorSeverity.WARNING
    DEFAULT_RETRYABLE = True

    def __init__(self, resource_type: str, key: Any) -> None:
        self.resource_type = resource_type
        self.key = key
        super().__init__(
            f"Concurrent modification of {resource_type} {key}",
            details={"resource_type": resource_type, "key": key},
            error_code="CONCURRENCY_CONFLICT",
        )


class TransientProgressionError(ApexDomainException):
    """
    Conflicts persisted through every retry. Nothing was committed, so the
    caller may try again later.
    """

    DEFAULT_SEVERITY = ErrorSeverity.WARNING
    DEFAULT_RETRYABLE = True

    def __init__(self, operation: str, attempts: int) -> None:
        self.operation = operation
        self.attempts = attempts
        super().__init__(
            f"{operation} failed after {attempts} attempts due to concurrent updates",
            details={"operation": operation, "attempts": attempts},
            error_code="TRANSIENT_FAILURE",
        )


# ============================================================================
# Helpers
# ============================================================================


def is_transient_error(exc: BaseException) -> bool:
    return isinstance(exc, ApexError) and exc.is_retryable


def get_error_severity(exc: BaseException) -> ErrorSeverity:
    """Severity of an Apex error; anything unexpected counts as ERROR."""
    return exc.severity if isinstance(exc, ApexError) else ErrorSeverity.ERROR


def should_alert(exc: BaseException) -> bool:
    return get_error_severity(exc) in (ErrorSeverity.ERROR, ErrorSeverity.CRITICAL)


__all__ = [
    "ErrorSeverity",
    "ApexDomainException",
    "NotFoundError",
    "ValidationError",
    "InvalidOperationError",
    "ConcurrencyConflictError",
    "TransientProgressionError",
    "is_transient_error",
    "get_error_severity",
    "should_alert",
]
