"""
Database subsystem.

Async SQLAlchemy engine and session management, retry policy for
optimistic-concurrency conflicts, and the ORM base classes.
"""

from questline.core.database.base import (
    Base,
    IdMixin,
    JSONDocument,
    TimestampMixin,
    UTCDateTime,
    utc_now,
)
from questline.core.database.retry_policy import DatabaseRetryConfig, DatabaseRetryPolicy
from questline.core.database.service import (
    DatabaseInitializationError,
    DatabaseNotInitializedError,
    DatabaseService,
)

__all__ = [
    "Base",
    "IdMixin",
    "TimestampMixin",
    "JSONDocument",
    "UTCDateTime",
    "utc_now",
    "DatabaseService",
    "DatabaseInitializationError",
    "DatabaseNotInitializedError",
    "DatabaseRetryConfig",
    "DatabaseRetryPolicy",
]
