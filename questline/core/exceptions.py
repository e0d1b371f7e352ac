"""
Infrastructure exceptions for Questline.

Purpose
-------
Structured exception hierarchy for engineering-level failures: persistence
outages, configuration errors, lock contention and optimistic-concurrency
conflicts. Domain rule violations (missing quest, invalid transition) live in
``questline.modules.shared.exceptions``.

Design Notes
------------
- All infrastructure exceptions inherit from
  ``QuestlineInfrastructureException``.
- Each exception carries ``message``, ``details``, ``severity``,
  ``is_retryable`` and ``error_code``.
- ``is_transient_error``, ``get_error_severity`` and ``should_alert``
  centralize the common handling patterns.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional


class ErrorSeverity(Enum):
    """Error severity levels for logging and alerting."""

    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class QuestlineInfrastructureException(Exception):
    """
    Base exception for infrastructure-level errors.

    Args:
        message: Human-readable error message
        details: Additional structured data about the error
        severity: Error severity level for logging handlers
        is_retryable: Whether the operation can be retried
        error_code: Optional code for programmatic handling
    """

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
        self.message: str = message
        self.details: Dict[str, Any] = details or {}
        self.severity: ErrorSeverity = severity or self.DEFAULT_SEVERITY
        self.is_retryable: bool = (
            is_retryable if is_retryable is not None else self.DEFAULT_RETRYABLE
        )
        self.error_code: str = error_code or self.__class__.__name__
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
            "severity": self.severity.value,
            "is_retryable": self.is_retryable,
        }

    def __str__(self) -> str:
        details_str = f" | Details: {self.details}" if self.details else ""
        return f"[{self.error_code}] {self.message}{details_str}"


class ConfigurationError(QuestlineInfrastructureException):
    """Raised when a configuration key is invalid or missing."""

    DEFAULT_SEVERITY = ErrorSeverity.CRITICAL
    DEFAULT_RETRYABLE = False

    def __init__(self, config_key: str, message: str) -> None:
        self.config_key = config_key
        super().__init__(
            f"Configuration error for {config_key}: {message}",
            details={"config_key": config_key, "message": message},
            error_code="CONFIG_ERROR",
        )


class StoreUnavailableError(QuestlineInfrastructureException):
    """
    Raised when the persistence store (or a collaborator the engine must read
    before writing) cannot serve a request.

    The caller's transport layer is expected to retry.

    Args:
        operation: Description of the operation that failed
        original_error: The underlying exception, if any
    """

    DEFAULT_SEVERITY = ErrorSeverity.ERROR
    DEFAULT_RETRYABLE = True

    def __init__(self, operation: str, original_error: Optional[Exception] = None) -> None:
        self.operation = operation
        self.original_error = original_error
        error_msg = str(original_error) if original_error else "store unavailable"
        super().__init__(
            f"Store unavailable during {operation}: {error_msg}",
            details={
                "operation": operation,
                "error": error_msg,
                "error_type": type(original_error).__name__ if original_error else None,
            },
            error_code="STORE_UNAVAILABLE",
        )


class ConcurrencyConflictError(QuestlineInfrastructureException):
    """
    Raised when an optimistic-concurrency write keeps losing the race after
    all retry attempts.

    Args:
        operation: Name of the read-modify-write operation
        attempts: Number of attempts made
    """

    DEFAULT_SEVERITY = ErrorSeverity.WARNING
    DEFAULT_RETRYABLE = True

    def __init__(self, operation: str, attempts: int, original_error: Optional[Exception] = None) -> None:
        self.operation = operation
        self.attempts = attempts
        self.original_error = original_error
        super().__init__(
            f"Concurrent modification conflict during {operation} after {attempts} attempt(s)",
            details={
                "operation": operation,
                "attempts": attempts,
                "error_type": type(original_error).__name__ if original_error else None,
            },
            error_code="CONCURRENCY_CONFLICT",
        )


class LockAcquisitionError(QuestlineInfrastructureException):
    """Raised when a per-learner lock cannot be acquired in time."""

    DEFAULT_SEVERITY = ErrorSeverity.WARNING
    DEFAULT_RETRYABLE = True

    def __init__(self, lock_key: str, timeout: float, original_error: Optional[Exception] = None) -> None:
        self.lock_key = lock_key
        self.timeout = timeout
        super().__init__(
            f"Could not acquire lock '{lock_key}' within {timeout:.1f}s",
            details={
                "lock_key": lock_key,
                "timeout": timeout,
                "error": str(original_error) if original_error else None,
            },
            error_code="LOCK_TIMEOUT",
        )


class EventBusError(QuestlineInfrastructureException):
    """Raised when publishing to the event bus fails as a whole."""

    DEFAULT_SEVERITY = ErrorSeverity.ERROR
    DEFAULT_RETRYABLE = True

    def __init__(self, operation: str, event_type: str, original_error: Exception) -> None:
        self.operation = operation
        self.event_type = event_type
        self.original_error = original_error
        super().__init__(
            f"Event bus error during {operation} for event '{event_type}': {original_error}",
            details={
                "operation": operation,
                "event_type": event_type,
                "error": str(original_error),
                "error_type": type(original_error).__name__,
            },
            error_code="EVENT_BUS_ERROR",
        )


def is_transient_error(exc: Exception) -> bool:
    """True if the exception is marked retryable."""
    is_retryable = getattr(exc, "is_retryable", None)
    if isinstance(is_retryable, bool):
        return is_retryable
    return False


def get_error_severity(exc: Exception) -> ErrorSeverity:
    """Severity for logging; unknown exceptions default to ERROR."""
    severity = getattr(exc, "severity", None)
    if isinstance(severity, ErrorSeverity):
        return severity
    return ErrorSeverity.ERROR


def should_alert(exc: Exception) -> bool:
    """True if severity is ERROR or CRITICAL."""
    return get_error_severity(exc) in (ErrorSeverity.ERROR, ErrorSeverity.CRITICAL)
