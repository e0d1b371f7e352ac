"""
Database Service - core persistence infrastructure.

Purpose
-------
Single async engine and session factory for the quest engine, with
transaction discipline (commit on success, rollback on any exception) and
translation of store outages into typed ``StoreUnavailableError``.

Architecture Notes
------------------
**Transaction Model**:
- ``get_transaction()`` is the interface for all state mutations.
- Never call ``session.commit()`` inside service code.
- Concurrency signals (``IntegrityError``, ``StaleDataError``) propagate
  untouched so ``DatabaseRetryPolicy`` and callers can react to them.
- ``OperationalError`` and other driver errors become
  ``StoreUnavailableError``.

**Connection Pooling**:
- QueuePool for server databases (configurable pool_size/max_overflow).
- NullPool for SQLite and the testing environment.

Usage Example
-------------
>>> async with DatabaseService.get_transaction() as session:
...     row = await session.get(UserQuest, row_id, with_for_update=True)
...     row.completed = True
"""

from __future__ import annotations

import asyncio
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncGenerator, Optional, Type

from sqlalchemy import text
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm.exc import StaleDataError
from sqlalchemy.pool import NullPool, Pool

from questline.core.config.config import Config
from questline.core.database.base import Base
from questline.core.exceptions import StoreUnavailableError
from questline.core.logging.logger import get_logger

logger = get_logger(__name__)


class DatabaseInitializationError(RuntimeError):
    """Raised when database engine initialization fails."""


class DatabaseNotInitializedError(RuntimeError):
    """Raised when database operations are attempted before initialization."""


@dataclass(frozen=True)
class _DatabaseConfigSnapshot:
    url: str
    echo: bool
    use_null_pool: bool
    pool_size: int
    max_overflow: int
    pool_recycle: int
    statement_timeout_ms: int

    @property
    def is_postgres(self) -> bool:
        return self.url.startswith(("postgresql://", "postgresql+asyncpg://"))

    @property
    def is_sqlite(self) -> bool:
        return self.url.startswith("sqlite")

    @property
    def url_scheme(self) -> str:
        return self.url.split(":", 1)[0] if ":" in self.url else "unknown"


class DatabaseService:
    """
    Centralized async database engine and session management.

    Lifecycle: ``initialize()`` / ``shutdown()``.
    Sessions: ``get_session()`` (no auto-commit) and ``get_transaction()``.
    Utilities: ``create_schema()``, ``health_check()``.
    """

    _engine: Optional[AsyncEngine] = None
    _session_factory: Optional[async_sessionmaker[AsyncSession]] = None
    _config_snapshot: Optional[_DatabaseConfigSnapshot] = None
    _init_lock: Optional[asyncio.Lock] = None

    # ========================================================================
    # Initialization & Shutdown
    # ========================================================================

    @classmethod
    def _lock(cls) -> asyncio.Lock:
        if cls._init_lock is None:
            cls._init_lock = asyncio.Lock()
        return cls._init_lock

    @classmethod
    def _build_config_snapshot(cls, url: Optional[str]) -> _DatabaseConfigSnapshot:
        database_url = url or getattr(Config, "DATABASE_URL", None)
        if not database_url or not isinstance(database_url, str):
            logger.error("DATABASE_URL is not configured or invalid")
            raise DatabaseInitializationError("DATABASE_URL must be configured as a non-empty string")

        return _DatabaseConfigSnapshot(
            url=database_url,
            echo=bool(Config.DATABASE_ECHO),
            use_null_pool=Config.is_testing() or database_url.startswith("sqlite"),
            pool_size=int(Config.DATABASE_POOL_SIZE),
            max_overflow=int(Config.DATABASE_MAX_OVERFLOW),
            pool_recycle=int(Config.DATABASE_POOL_RECYCLE),
            statement_timeout_ms=int(Config.DATABASE_STATEMENT_TIMEOUT_MS),
        )

    @classmethod
    async def initialize(cls, url: Optional[str] = None) -> None:
        """
        Initialize the engine and session factory (idempotent).

        ``url`` overrides ``Config.DATABASE_URL``.
        """
        async with cls._lock():
            if cls._engine is not None:
                logger.debug("DatabaseService already initialized; skipping")
                return

            try:
                config = cls._build_config_snapshot(url)
                engine_kwargs: dict[str, Any] = {"echo": config.echo}
                if config.use_null_pool:
                    pool_class: Type[Pool] = NullPool
                    engine_kwargs["poolclass"] = pool_class
                else:
                    engine_kwargs.update(
                        pool_size=config.pool_size,
                        max_overflow=config.max_overflow,
                        pool_recycle=config.pool_recycle,
                        pool_pre_ping=True,
                    )

                cls._engine = create_async_engine(config.url, **engine_kwargs)
                cls._session_factory = async_sessionmaker(
                    bind=cls._engine,
                    class_=AsyncSession,
                    expire_on_commit=False,
                )
                cls._config_snapshot = config

                logger.info(
                    "DatabaseService initialized successfully",
                    extra={"url_scheme": config.url_scheme, "null_pool": config.use_null_pool},
                )
            except DatabaseInitializationError:
                raise
            except Exception as exc:
                logger.error(
                    "DatabaseService initialization failed",
                    extra={"error": str(exc), "error_type": type(exc).__name__},
                    exc_info=True,
                )
                raise DatabaseInitializationError(f"Database initialization failed: {exc}") from exc

    @classmethod
    async def shutdown(cls) -> None:
        async with cls._lock():
            if cls._engine is None:
                return
            try:
                await cls._engine.dispose()
                logger.info("DatabaseService shutdown complete")
            finally:
                cls._engine = None
                cls._session_factory = None
                cls._config_snapshot = None

    @classmethod
    def is_initialized(cls) -> bool:
        return cls._engine is not None

    @classmethod
    async def create_schema(cls) -> None:
        """Create all tables registered on ``Base.metadata``."""
        import questline.database.models  # noqa: F401  (registers mappers)

        cls._ensure_initialized()
        assert cls._engine is not None
        async with cls._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database schema created", extra={"tables": sorted(Base.metadata.tables)})

    # ========================================================================
    # Health Check
    # ========================================================================

    @classmethod
    async def health_check(cls) -> bool:
        """``SELECT 1`` liveness check. Never raises."""
        if cls._engine is None:
            logger.warning("Health check called on uninitialized DatabaseService")
            return False

        start = time.perf_counter()
        try:
            async with cls._engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            return True
        except (OperationalError, DBAPIError, OSError) as exc:
            logger.warning(
                "Database health check failed",
                extra={"error": str(exc), "error_type": type(exc).__name__},
            )
            return False
        finally:
            logger.debug(
                "Database health check completed",
                extra={"duration_ms": (time.perf_counter() - start) * 1000.0},
            )

    # ========================================================================
    # Session & Transaction Context Managers
    # ========================================================================

    @classmethod
    def _ensure_initialized(cls) -> None:
        if cls._session_factory is None or cls._engine is None:
            logger.error("DatabaseService operation attempted before initialization")
            raise DatabaseNotInitializedError(
                "DatabaseService must be initialized before use. "
                "Call DatabaseService.initialize() during startup."
            )

    @classmethod
    async def _configure_session(cls, session: AsyncSession) -> None:
        config = cls._config_snapshot
        if config is not None and config.is_postgres:
            await session.execute(text(f"SET LOCAL statement_timeout = {config.statement_timeout_ms}"))

    @classmethod
    @asynccontextmanager
    async def get_session(cls) -> AsyncGenerator[AsyncSession, None]:
        """
        Session without automatic commit, for read paths.

        Store outages surface as ``StoreUnavailableError``.
        """
        cls._ensure_initialized()
        assert cls._session_factory is not None

        async with cls._session_factory() as session:
            try:
                await cls._configure_session(session)
                yield session
            except IntegrityError:
                raise
            except (OperationalError, DBAPIError) as exc:
                logger.error(
                    "Store error in read session",
                    extra={"error": str(exc), "error_type": type(exc).__name__},
                )
                raise StoreUnavailableError("read", exc) from exc

    @classmethod
    @asynccontextmanager
    async def get_transaction(cls) -> AsyncGenerator[AsyncSession, None]:
        """
        Session wrapped in an atomic transaction.

        Commits on success; rolls back on any exception and re-raises it,
        except driver/connection errors which become ``StoreUnavailableError``.
        """
        cls._ensure_initialized()
        assert cls._session_factory is not None

        start = time.perf_counter()
        async with cls._session_factory() as session:
            try:
                await cls._configure_session(session)
                yield session
                await session.commit()
                logger.debug(
                    "Database transaction committed",
                    extra={"duration_ms": (time.perf_counter() - start) * 1000.0},
                )
            except (IntegrityError, StaleDataError) as exc:
                await session.rollback()
                logger.info(
                    "Concurrent write detected; transaction rolled back",
                    extra={"error_type": type(exc).__name__},
                )
                raise
            except (OperationalError, DBAPIError) as exc:
                await session.rollback()
                logger.error(
                    "Store error in transaction; rolled back",
                    extra={
                        "error": str(exc),
                        "error_type": type(exc).__name__,
                        "duration_ms": (time.perf_counter() - start) * 1000.0,
                    },
                    exc_info=True,
                )
                raise StoreUnavailableError("transaction", exc) from exc
            except BaseException as exc:
                await session.rollback()
                logger.debug(
                    "Transaction rolled back",
                    extra={"error_type": type(exc).__name__},
                )
                raise
