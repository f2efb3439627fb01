"""
Base Repository

Purpose
-------
Generic async query helpers over one SQLAlchemy model. Repositories take the
session as an argument on every call; they never open, commit or roll back
transactions (the unit of work owning the session does).

Locking
-------
`get_for_update` and `for_update=True` issue SELECT ... FOR UPDATE. With
`find_many_where`, rows are locked in `order_by` order.

Usage
-----
    class DomainProgressRepository(BaseRepository[DomainProgressRow]):
        async def for_athlete(self, session, athlete_id):
            return await self.find_many_where(
                session,
                DomainProgressRow.athlete_id == athlete_id,
                order_by=(DomainProgressRow.domain_id,),
            )
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Generic, List, Optional, Sequence, Type, TypeVar

from sqlalchemy import func, select

if TYPE_CHECKING:
    from logging import Logger

    from sqlalchemy import ColumnElement, Select
    from sqlalchemy.ext.asyncio import AsyncSession

T = TypeVar("T")


class BaseRepository(Generic[T]):
    """Query helpers for the model `T`."""

    def __init__(self, model_class: Type[T], logger: Logger) -> None:
        self.model_class = model_class
        self.log = logger

    @property
    def model_name(self) -> str:
        return self.model_class.__name__

    def _trace(self, action: str, **fields: Any) -> None:
        self.log.debug(
            f"{self.model_name}.{action}",
            extra={"model": self.model_name, **fields},
        )

    def _select(
        self,
        conditions: Sequence[ColumnElement[bool]],
        *,
        order_by: Sequence[Any] = (),
        for_update: bool = False,
        limit: Optional[int] = None,
    ) -> Select:
        stmt = select(self.model_class).where(*conditions)
        if order_by:
            stmt = stmt.order_by(*order_by)
        if for_update:
            stmt = stmt.with_for_update()
        if limit is not None:
            stmt = stmt.limit(limit)
        return stmt

    # ========================================================================
    # Reads
    # ========================================================================

    async def get(self, session: AsyncSession, id_value: Any) -> Optional[T]:
        """Row by primary key, unlocked."""
        row = await session.get(self.model_class, id_value)
        self._trace("get", id=id_value, found=row is not None)
        return row

    async def get_for_update(self, session: AsyncSession, id_value: Any) -> Optional[T]:
        """Row by primary key, locked until the transaction ends."""
        stmt = self._select(
            [self.model_class.id == id_value],  # type: ignore[attr-defined]
            for_update=True,
        )
        row = (await session.execute(stmt)).scalar_one_or_none()
        self._trace("get_for_update", id=id_value, found=row is not None)
        return row

    async def find_one_where(
        self,
        session: AsyncSession,
        *conditions: ColumnElement[bool],
        for_update: bool = False,
    ) -> Optional[T]:
        stmt = self._select(conditions, for_update=for_update)
        row = (await session.execute(stmt)).scalar_one_or_none()
        self._trace("find_one_where", found=row is not None, locked=for_update)
        return row

    async def find_many_where(
        self,
        session: AsyncSession,
        *conditions: ColumnElement[bool],
        order_by: Sequence[Any] = (),
        for_update: bool = False,
        limit: Optional[int] = None,
    ) -> List[T]:
        stmt = self._select(conditions, order_by=order_by, for_update=for_update, limit=limit)
        rows = list((await session.execute(stmt)).scalars().all())
        self._trace("find_many_where", found_count=len(rows), locked=for_update, limit=limit)
        return rows

    async def count(self, session: AsyncSession, *conditions: ColumnElement[bool]) -> int:
        stmt = select(func.count()).select_from(self.model_class).where(*conditions)
        total = (await session.execute(stmt)).scalar_one()
        self._trace("count", count=total)
        return total

    async def exists(self, session: AsyncSession, *conditions: ColumnElement[bool]) -> bool:
        return await self.count(session, *conditions) > 0

    # ========================================================================
    # Writes
    # ========================================================================

    def add(self, session: AsyncSession, instance: T) -> T:
        session.add(instance)
        self._trace("add")
        return instance

    async def flush(self, session: AsyncSession) -> None:
        """Flush pending rows so server defaults and ids are populated."""
        await session.flush()
        self._trace("flush")


__all__ = ["BaseRepository"]
