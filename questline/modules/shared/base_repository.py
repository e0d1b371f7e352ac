"""
Base Repository Pattern

Purpose
-------
Type-safe, generic repository over SQLAlchemy 2.0 async sessions.
Repositories encapsulate data access and never manage transactions;
services open them through ``DatabaseService.get_transaction()``.

Usage
-----
    class UserQuestRepository(BaseRepository[UserQuest]):
        async def find_active(self, session, learner_id, now):
            return await self.find_many_where(
                session,
                UserQuest.learner_id == learner_id,
                UserQuest.completed.is_(False),
                UserQuest.expires_at > now,
            )
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Generic, List, Optional, Sequence, Type, TypeVar

from sqlalchemy import func, inspect, select

if TYPE_CHECKING:
    from logging import Logger

    from sqlalchemy import ColumnElement
    from sqlalchemy.ext.asyncio import AsyncSession

T = TypeVar("T")


class BaseRepository(Generic[T]):
    """
    Generic base repository.

    Row locks use ``SELECT ... FOR UPDATE OF <table>`` so eager-joined
    relationships are not locked. Backends without row locks ignore it.
    """

    def __init__(self, model_class: Type[T], logger: Logger) -> None:
        self.model_class = model_class
        self.log = logger
        self._pk = inspect(model_class).primary_key[0]

    async def get(self, session: AsyncSession, id_value: Any, *, for_update: bool = False) -> Optional[T]:
        """Get a single record by primary key."""
        return await self.find_one_where(session, self._pk == id_value, for_update=for_update)

    async def find_one_where(
        self,
        session: AsyncSession,
        *conditions: ColumnElement[bool],
        for_update: bool = False,
    ) -> Optional[T]:
        stmt = select(self.model_class).where(*conditions)
        if for_update:
            stmt = stmt.with_for_update(of=self.model_class)

        result = await session.execute(stmt)
        instance = result.unique().scalar_one_or_none()

        self.log.debug(
            f"Repository.find_one_where: {self.model_class.__name__}",
            extra={
                "model": self.model_class.__name__,
                "found": instance is not None,
                "locked": for_update,
            },
        )
        return instance

    async def find_many_where(
        self,
        session: AsyncSession,
        *conditions: ColumnElement[bool],
        for_update: bool = False,
        order_by: Optional[Sequence[Any]] = None,
        limit: Optional[int] = None,
    ) -> List[T]:
        stmt = select(self.model_class).where(*conditions)
        if order_by:
            stmt = stmt.order_by(*order_by)
        if for_update:
            stmt = stmt.with_for_update(of=self.model_class)
        if limit is not None:
            stmt = stmt.limit(limit)

        result = await session.execute(stmt)
        instances = list(result.unique().scalars().all())

        self.log.debug(
            f"Repository.find_many_where: {self.model_class.__name__}",
            extra={
                "model": self.model_class.__name__,
                "count": len(instances),
                "locked": for_update,
            },
        )
        return instances

    async def exists(self, session: AsyncSession, *conditions: ColumnElement[bool]) -> bool:
        return await self.count_where(session, *conditions) > 0

    async def count_where(self, session: AsyncSession, *conditions: ColumnElement[bool]) -> int:
        stmt = select(func.count()).select_from(self.model_class).where(*conditions)
        result = await session.execute(stmt)
        return int(result.scalar_one())

    async def add(self, session: AsyncSession, instance: T) -> T:
        """Stage a new row and flush so constraint violations surface here."""
        session.add(instance)
        await session.flush()
        self.log.debug(
            f"Repository.add: {self.model_class.__name__}",
            extra={"model": self.model_class.__name__},
        )
        return instance

    async def add_all(self, session: AsyncSession, instances: Sequence[Any]) -> None:
        session.add_all(list(instances))
        await session.flush()
        self.log.debug(
            "Repository.add_all",
            extra={"model": self.model_class.__name__, "count": len(instances)},
        )
