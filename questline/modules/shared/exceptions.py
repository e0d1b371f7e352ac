"""
Domain exceptions for Questline.

Purpose
-------
Business-rule failures raised by the quest, streak and reward services.
Infrastructure failures (store outages, lock timeouts, concurrency
conflicts) live in ``questline.core.exceptions``.

Handling contract
-----------------
- ``NotFoundError`` and ``InvalidStateError`` are terminal for the calling
  request and are never retried automatically. Callers treat NotFound on
  quest completion as already resolved.
- ``PartialRewardFailureError`` is raised after a completion has been
  committed; the completion stays, and the failed grants can be re-sent
  with the same idempotency keys.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

from questline.core.exceptions import ErrorSeverity


class QuestlineDomainException(Exception):
    """
    Base exception for all domain-level errors.

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

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"details={self.details!r}, "
            f"severity={self.severity.value!r}, "
            f"is_retryable={self.is_retryable!r}"
            ")"
        )


class NotFoundError(QuestlineDomainException):
    """
    Raised when a learner, quest or template cannot be found.

    Args:
        resource_type: Type of resource (e.g., "Quest", "Learner")
        identifier: Optional identifier for the missing resource
    """

    DEFAULT_SEVERITY = ErrorSeverity.INFO
    DEFAULT_RETRYABLE = False

    def __init__(self, resource_type: str, identifier: Optional[Any] = None) -> None:
        self.resource_type = resource_type
        self.identifier = identifier

        if identifier is not None:
            message = f"{resource_type} not found: {identifier}"
        else:
            message = f"{resource_type} not found"

        super().__init__(
            message,
            details={"resource_type": resource_type, "identifier": identifier},
            error_code=f"{resource_type.upper()}_NOT_FOUND",
        )


class ValidationError(QuestlineDomainException):
    """
    Raised when caller input fails validation.

    Args:
        field: Name of the field that failed validation
        message: Explanation of why validation failed
    """

    DEFAULT_SEVERITY = ErrorSeverity.INFO
    DEFAULT_RETRYABLE = False

    def __init__(self, field: str, message: str) -> None:
        self.field = field
        self.validation_message = message
        super().__init__(
            f"Validation error for {field}: {message}",
            details={"field": field, "validation_message": message},
            error_code=f"VALIDATION_{field.upper()}",
        )


class InvalidStateError(QuestlineDomainException):
    """
    Raised when an operation violates the quest lifecycle or catalog rules:
    completing an already-completed or expired quest, or a template whose
    objective target is not positive.

    Args:
        action: The attempted action
        reason: Why it is not allowed
    """

    DEFAULT_SEVERITY = ErrorSeverity.INFO
    DEFAULT_RETRYABLE = False

    def __init__(self, action: str, reason: str, **details: Any) -> None:
        self.action = action
        self.reason = reason
        super().__init__(
            f"Invalid state for '{action}': {reason}",
            details={"action": action, "reason": reason, **details},
            error_code="INVALID_STATE",
        )


@dataclass(frozen=True)
class RewardGrantFailure:
    """One reward grant that raised."""

    index: int
    reward_type: str
    idempotency_key: str
    error: str
    error_type: str


class PartialRewardFailureError(QuestlineDomainException):
    """
    Raised when one or more reward grants failed after the owning quest or
    milestone was already marked claimed.

    Args:
        learner_id: Learner whose grants failed
        source: What the rewards belonged to (quest id or ``streak:<n>``)
        failures: The grants that raised
        granted: Number of grants that succeeded
    """

    DEFAULT_SEVERITY = ErrorSeverity.WARNING
    DEFAULT_RETRYABLE = True

    def __init__(
        self,
        learner_id: str,
        source: str,
        failures: Sequence[RewardGrantFailure],
        granted: int = 0,
    ) -> None:
        self.learner_id = learner_id
        self.source = source
        self.failures: List[RewardGrantFailure] = list(failures)
        self.granted = granted
        super().__init__(
            f"{len(self.failures)} reward grant(s) failed for {source}",
            details={
                "learner_id": learner_id,
                "source": source,
                "granted": granted,
                "failures": [
                    {
                        "index": f.index,
                        "reward_type": f.reward_type,
                        "idempotency_key": f.idempotency_key,
                        "error_type": f.error_type,
                    }
                    for f in self.failures
                ],
            },
            error_code="PARTIAL_REWARD_FAILURE",
        )

    def merge(self, other: "PartialRewardFailureError") -> "PartialRewardFailureError":
        """Combine two failures for the same learner into one error."""
        return PartialRewardFailureError(
            self.learner_id,
            f"{self.source},{other.source}",
            [*self.failures, *other.failures],
            self.granted + other.granted,
        )
