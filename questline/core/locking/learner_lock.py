"""
Per-learner serialization points.

Every read-modify-write the engine performs for one learner (activity
application, quest generation, completion, streak updates) runs inside
``hold(learner_id)``. Requests for different learners never contend.

Two backends share the same interface:

- ``InMemoryLearnerLock``: one ``asyncio.Lock`` per learner, for a single
  process. Idle locks are dropped so the registry stays bounded.
- ``RedisLearnerLock``: distributed lock with ``SET NX`` plus a unique
  token and a Lua compare-and-delete release, for multi-process
  deployments.

The optimistic ``version`` column on the persisted rows stays in force
under both backends; the lock only removes most of the contention.
"""

from __future__ import annotations

import asyncio
import time
import uuid
from contextlib import asynccontextmanager
from typing import AsyncContextManager, AsyncGenerator, Dict, Optional, Protocol

from redis.asyncio import Redis
from redis.exceptions import RedisError

from questline.core.config.config import Config
from questline.core.exceptions import LockAcquisitionError, StoreUnavailableError
from questline.core.logging.logger import get_logger

logger = get_logger(__name__)


class LearnerLock(Protocol):
    def hold(self, learner_id: str, *, operation: str = "") -> AsyncContextManager[None]:
        ...


class InMemoryLearnerLock:
    """Process-local lock registry keyed by learner id."""

    def __init__(self, wait_timeout: Optional[float] = None) -> None:
        self._locks: Dict[str, asyncio.Lock] = {}
        self._waiters: Dict[str, int] = {}
        self._wait_timeout = float(wait_timeout if wait_timeout is not None else Config.LEARNER_LOCK_TIMEOUT_SEC)

    def __len__(self) -> int:
        return len(self._locks)

    @asynccontextmanager
    async def hold(self, learner_id: str, *, operation: str = "") -> AsyncGenerator[None, None]:
        lock = self._locks.setdefault(learner_id, asyncio.Lock())
        self._waiters[learner_id] = self._waiters.get(learner_id, 0) + 1
        try:
            try:
                await asyncio.wait_for(lock.acquire(), self._wait_timeout)
            except asyncio.TimeoutError as exc:
                logger.warning(
                    "Learner lock wait timed out",
                    extra={"learner_id": learner_id, "operation_name": operation},
                )
                raise LockAcquisitionError(f"learner:{learner_id}", self._wait_timeout, exc) from exc
            try:
                yield
            finally:
                lock.release()
        finally:
            self._waiters[learner_id] -= 1
            if self._waiters[learner_id] == 0:
                del self._waiters[learner_id]
                self._locks.pop(learner_id, None)


class RedisLearnerLock:
    """Distributed per-learner lock backed by redis.asyncio."""

    _LUA_UNLOCK_SCRIPT = """
    if redis.call("GET", KEYS[1]) == ARGV[1] then
        return redis.call("DEL", KEYS[1])
    else
        return 0
    end
    """

    def __init__(
        self,
        client: Redis,
        *,
        key_prefix: str = "questline:learner-lock:",
        lock_timeout: Optional[int] = None,
        wait_timeout: Optional[float] = None,
        retry_interval: float = 0.05,
    ) -> None:
        self._client = client
        self._prefix = key_prefix
        self._lock_timeout = int(lock_timeout if lock_timeout is not None else Config.LEARNER_LOCK_TIMEOUT_SEC)
        self._wait_timeout = float(wait_timeout if wait_timeout is not None else Config.LEARNER_LOCK_TIMEOUT_SEC)
        self._retry_interval = retry_interval

    @classmethod
    def from_url(cls, url: Optional[str] = None, **kwargs) -> "RedisLearnerLock":
        client = Redis.from_url(url or Config.REDIS_URL, decode_responses=True)
        return cls(client, **kwargs)

    @asynccontextmanager
    async def hold(self, learner_id: str, *, operation: str = "") -> AsyncGenerator[None, None]:
        key = f"{self._prefix}{learner_id}"
        token = uuid.uuid4().hex
        deadline = time.monotonic() + self._wait_timeout
        acquired = False

        try:
            while True:
                try:
                    acquired = bool(await self._client.set(name=key, value=token, nx=True, ex=self._lock_timeout))
                except RedisError as exc:
                    logger.error(
                        "Redis lock acquisition error",
                        extra={"lock_key": key, "error": str(exc), "error_type": type(exc).__name__},
                    )
                    raise StoreUnavailableError("learner_lock.acquire", exc) from exc

                if acquired:
                    logger.debug("Redis lock acquired", extra={"lock_key": key, "operation_name": operation})
                    break

                if time.monotonic() >= deadline:
                    logger.warning(
                        "Failed to acquire Redis lock within timeout",
                        extra={"lock_key": key, "wait_timeout_seconds": self._wait_timeout},
                    )
                    raise LockAcquisitionError(key, self._wait_timeout)

                await asyncio.sleep(self._retry_interval)

            yield

        finally:
            if acquired:
                try:
                    released = await self._client.eval(self._LUA_UNLOCK_SCRIPT, 1, key, token)
                except RedisError as exc:
                    logger.error(
                        "Redis lock release failed; lock will expire",
                        extra={"lock_key": key, "error": str(exc)},
                    )
                else:
                    if not released:
                        logger.warning("Redis lock already expired or stolen", extra={"lock_key": key})

    async def close(self) -> None:
        await self._client.aclose()


def build_learner_lock() -> LearnerLock:
    """Pick the lock backend named by ``Config.LEARNER_LOCK_BACKEND``."""
    if Config.LEARNER_LOCK_BACKEND == "redis":
        logger.info("Using Redis learner locks", extra={"redis_url_set": bool(Config.REDIS_URL)})
        return RedisLearnerLock.from_url()
    return InMemoryLearnerLock()
