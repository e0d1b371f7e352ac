"""
Database Retry Policy - optimistic-concurrency resilience.

Purpose
-------
Re-run a whole read-modify-write operation (including its transaction) when
it loses a race against another writer. The default retriable error is
SQLAlchemy's ``StaleDataError``, raised when a versioned row was changed
between read and write.

Backoff Strategy
----------------
- Exponential: base_ms * 2^(attempt - 1)
- Capped at max_backoff_ms
- Jittered by random(0, jitter_ms)

When retries are exhausted on a retriable error the policy raises
``ConcurrencyConflictError``; any other exception propagates unchanged on
the first attempt.

Pattern
-------
Retry the operation that opens the transaction, never work inside one:

>>> async def operation():
...     async with DatabaseService.get_transaction() as session:
...         ...
>>> await retry_policy.execute(operation, operation_name="quest.apply_activity")
"""

from __future__ import annotations

import asyncio
import random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Tuple, Type, TypeVar

from sqlalchemy.orm.exc import StaleDataError

from questline.core.config.config import Config
from questline.core.exceptions import ConcurrencyConflictError
from questline.core.logging.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


@dataclass
class DatabaseRetryConfig:
    """
    Attributes
    ----------
    max_attempts : int
        Maximum number of attempts (including the first).
    initial_backoff_ms : int
        Backoff before the second attempt.
    max_backoff_ms : int
        Upper bound for a single backoff.
    jitter_ms : int
        Maximum random jitter added to each backoff.
    retriable_exceptions : tuple
        Exception types that trigger a retry.
    """

    max_attempts: int
    initial_backoff_ms: int
    max_backoff_ms: int
    jitter_ms: int
    retriable_exceptions: Tuple[Type[BaseException], ...] = (StaleDataError,)

    @classmethod
    def from_config(cls) -> DatabaseRetryConfig:
        base_ms = int(Config.DATABASE_RETRY_BASE_DELAY_MS)
        return cls(
            max_attempts=int(Config.DATABASE_RETRY_MAX_ATTEMPTS),
            initial_backoff_ms=base_ms,
            max_backoff_ms=int(Config.DATABASE_RETRY_MAX_DELAY_MS),
            jitter_ms=base_ms,
        )


class DatabaseRetryPolicy:
    """Execute async operations with retry on concurrency conflicts."""

    def __init__(
        self,
        config: DatabaseRetryConfig,
        *,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        rng: Optional[random.Random] = None,
    ) -> None:
        self._config = config
        self._sleep = sleep
        self._rng = rng or random.Random()

    @classmethod
    def from_config(cls) -> DatabaseRetryPolicy:
        return cls(DatabaseRetryConfig.from_config())

    @property
    def config(self) -> DatabaseRetryConfig:
        return self._config

    def _is_retriable(self, exc: BaseException) -> bool:
        return isinstance(exc, self._config.retriable_exceptions)

    def _compute_backoff_ms(self, attempt: int) -> int:
        exponent = max(attempt - 1, 0)
        capped = min(self._config.initial_backoff_ms * (2**exponent), self._config.max_backoff_ms)
        jitter = self._rng.randint(0, self._config.jitter_ms) if self._config.jitter_ms > 0 else 0
        return capped + jitter

    async def execute(
        self,
        operation: Callable[[], Awaitable[T]],
        *,
        operation_name: str,
        context: Optional[dict[str, Any]] = None,
    ) -> T:
        """
        Run ``operation`` until it succeeds or retries are exhausted.

        Raises
        ------
        ConcurrencyConflictError
            The operation kept failing with a retriable error.
        Exception
            Any non-retriable error, unchanged.
        """
        ctx_extra = dict(context or {})
        ctx_extra["operation_name"] = operation_name

        attempt = 0
        while True:
            attempt += 1
            try:
                return await operation()
            except Exception as exc:
                if not self._is_retriable(exc):
                    raise

                if attempt >= self._config.max_attempts:
                    logger.error(
                        "Database operation retries exhausted",
                        extra={
                            **ctx_extra,
                            "attempt": attempt,
                            "error_type": type(exc).__name__,
                            "max_attempts": self._config.max_attempts,
                        },
                    )
                    raise ConcurrencyConflictError(operation_name, attempt, exc) from exc

                backoff_ms = self._compute_backoff_ms(attempt)
                logger.warning(
                    "Database operation conflicted; retrying",
                    extra={
                        **ctx_extra,
                        "attempt": attempt,
                        "error_type": type(exc).__name__,
                        "backoff_ms": backoff_ms,
                    },
                )
                await self._sleep(backoff_ms / 1000.0)
