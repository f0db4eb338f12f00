"""
Ledger Store.

Repository over an AsyncSession exposing the four capabilities the
domain services rely on: create, find_unique, update and transaction.
Services receive a LedgerStore instead of reaching for a global client,
so tests can hand them a session bound to an in-memory database.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional, Sequence, Type, TypeVar

from fastapi import Depends
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.db.session import get_db

ModelT = TypeVar("ModelT")


class LedgerStore:

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, instance: ModelT) -> ModelT:
        """Stage a new row and flush so its primary key is populated."""
        self.session.add(instance)
        await self.session.flush()
        return instance

    async def find_unique(
        self,
        model: Type[ModelT],
        entity_id: Any,
        for_update: bool = False,
    ) -> Optional[ModelT]:
        """
        Load one row by primary key, always from the database.

        Rows already in the identity map are overwritten with the current
        database state, so a transition never acts on a stale copy.
        """
        if entity_id is None:
            return None
        stmt = select(model).where(model.id == entity_id).execution_options(populate_existing=True)
        if for_update:
            stmt = stmt.with_for_update()
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def find_first(self, model: Type[ModelT], for_update: bool = False) -> Optional[ModelT]:
        """Load the earliest-created row of a table (singleton lookups)."""
        stmt = select(model).order_by(model.id).limit(1).execution_options(populate_existing=True)
        if for_update:
            stmt = stmt.with_for_update()
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def find_many(self, stmt) -> Sequence[Any]:
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def update(self, instance: ModelT, **values) -> ModelT:
        """Apply attribute changes to a loaded row and flush them."""
        for field, value in values.items():
            setattr(instance, field, value)
        await self.session.flush()
        return instance

    async def compare_and_set(
        self,
        model: Type[Any],
        entity_id: Any,
        expected: Dict[str, Any],
        values: Dict[str, Any],
    ) -> bool:
        """
        Conditional single-row UPDATE.

        Returns:
            True if exactly one row matched ``expected`` and was updated
        """
        stmt = update(model).where(model.id == entity_id)
        for field, value in expected.items():
            stmt = stmt.where(getattr(model, field) == value)
        stmt = stmt.values(**values).execution_options(synchronize_session=False)
        result = await self.session.execute(stmt)
        return result.rowcount == 1

    async def increment(self, model: Type[Any], entity_id: Any, field: str, amount: int) -> bool:
        """Atomic ``field = field + amount`` without a read-modify-write in Python."""
        column = getattr(model, field)
        stmt = (
            update(model)
            .where(model.id == entity_id)
            .values({field: column + amount})
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1

    async def guarded_decrement(self, model: Type[Any], entity_id: Any, field: str, amount: int) -> bool:
        """
        Atomic ``field = field - amount`` that only applies while the
        result stays non-negative.

        Returns:
            False if the current value is smaller than ``amount``
        """
        column = getattr(model, field)
        stmt = (
            update(model)
            .where(model.id == entity_id, column >= amount)
            .values({field: column - amount})
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1

    @asynccontextmanager
    async def transaction(self):
        """
        Commit everything staged inside the block, or roll all of it back.

        The commit is shielded: once it starts, a cancelled request cannot
        leave a half-written transaction behind.
        """
        try:
            yield self
        except BaseException:
            await self.session.rollback()
            raise
        try:
            await asyncio.shield(self.session.commit())
        except Exception:
            await self.session.rollback()
            raise


async def get_ledger_store(db: AsyncSession = Depends(get_db)) -> LedgerStore:
    """FastAPI dependency providing a request-scoped LedgerStore."""
    return LedgerStore(db)
