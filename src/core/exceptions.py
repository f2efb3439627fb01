"""
Exception base for Apex.

Every error raised on purpose by this codebase derives from `ApexError` and
carries the same structured fields, so log handlers and callers can treat
infrastructure and domain failures uniformly:

- ``message``: human-readable description
- ``details``: structured context for logs
- ``severity``: `ErrorSeverity`, drives alerting
- ``is_retryable``: whether repeating the operation can succeed
- ``error_code``: stable identifier for programmatic handling

Domain errors live in `src.modules.shared.exceptions`; this module holds the
base class and the infrastructure errors.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional


class ErrorSeverity(Enum):
    DEBUG = "debug"
    INFO = "info"  # caller mistakes, expected
    WARNING = "warning"  # handled, usually retryable
    ERROR = "error"
    CRITICAL = "critical"  # service cannot run


class ApexError(Exception):
    """Structured base exception. Subclasses set the two class defaults."""

    DEFAULT_SEVERITY: ErrorSeverity = ErrorSeverity.ERROR
    DEFAULT_RETRYABLE: bool = False

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        severity: Optional[ErrorSeverity] = None,
        is_retryable: Optional[bool] = None,
        error_code: Optional[str] = None,
    ) -> None:
        self.message = message
        self.details: Dict[str, Any] = details or {}
        self.severity = severity or self.DEFAULT_SEVERITY
        self.is_retryable = self.DEFAULT_RETRYABLE if is_retryable is None else is_retryable
        self.error_code = error_code or type(self).__name__
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error_type": type(self).__name__,
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
            "severity": self.severity.value,
            "is_retryable": self.is_retryable,
        }

    def __str__(self) -> str:
        suffix = f" | Details: {self.details}" if self.details else ""
        return f"[{self.error_code}] {self.message}{suffix}"

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.message!r}, error_code={self.error_code!r})"


class ApexInfrastructureException(ApexError):
    """Failures of configuration or backing services rather than of caller input."""


class ConfigurationError(ApexInfrastructureException):
    """
    A configuration key is missing or holds an unusable value, e.g. an XP
    table that does not increase with rank. Raised at startup.
    """

    DEFAULT_SEVERITY = ErrorSeverity.CRITICAL

    def __init__(self, config_key: str, message: str) -> None:
        self.config_key = config_key
        super().__init__(
            f"Configuration error for {config_key}: {message}",
            details={"config_key": config_key, "message": message},
            error_code="CONFIG_ERROR",
        )


__all__ = [
    "ApexError",
    "ApexInfrastructureException",
    "ConfigurationError",
    "ErrorSeverity",
]
