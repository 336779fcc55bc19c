"""
Shared async repository for the marketplace tables.

Each concrete repository (projects, investments, KYC documents, ...) wraps one
SQLModel table and adds its joined reads.  Every statement goes through the
database circuit breaker.

Two write styles coexist.  ``create``, ``update`` and ``delete`` commit on
their own; ``add`` only flushes, so the investment commit and KYC review can
stage several rows and call ``commit()`` once.  A commit that fails is rolled
back here before the error propagates to ``data_access``.
"""

import logging
from typing import Any, Dict, Generic, Optional, Type, TypeVar

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlmodel import SQLModel

from agrofund.core.resilience import db_circuit_breaker
from agrofund.models.mixins import utcnow

logger = logging.getLogger(__name__)

ModelType = TypeVar("ModelType", bound=SQLModel)


class BaseRepository(Generic[ModelType]):
    """CRUD over one table, bound to the request's session."""

    def __init__(self, model: Type[ModelType], db: AsyncSession):
        self.model = model
        self.db = db

    # ── Internal helpers ──

    async def _execute_with_circuit_breaker(self, func: Any, *args: Any, **kwargs: Any) -> Any:
        return await db_circuit_breaker.call(func, *args, **kwargs)

    async def _commit(self, operation: str) -> None:
        try:
            await self.db.commit()
        except SQLAlchemyError:
            await self.db.rollback()
            logger.error("%s failed for %s; rolled back", operation, self.model.__name__)
            raise

    # ── Reads ──

    async def get(self, id: Any) -> Optional[ModelType]:
        """Fetch a single entity by primary key.  Returns ``None`` if not found."""

        async def _get() -> Optional[ModelType]:
            return await self.db.get(self.model, id)

        return await self._execute_with_circuit_breaker(_get)

    async def count(self, **filters: Any) -> int:
        """Count entities, optionally restricted by column equality filters."""

        async def _count() -> int:
            stmt = select(func.count()).select_from(self.model)
            for column, value in filters.items():
                stmt = stmt.where(getattr(self.model, column) == value)
            result = await self.db.execute(stmt)
            return result.scalar_one()

        return await self._execute_with_circuit_breaker(_count)

    # ── Writes ──

    async def add(self, obj_in: ModelType) -> ModelType:
        """Stage an insert inside the current transaction (flush, no commit)."""

        async def _add() -> ModelType:
            self.db.add(obj_in)
            await self.db.flush()
            return obj_in

        return await self._execute_with_circuit_breaker(_add)

    async def create(self, obj_in: ModelType) -> ModelType:
        """Insert a new entity, commit, and return the refreshed instance."""

        async def _create() -> ModelType:
            self.db.add(obj_in)
            await self._commit("create")
            await self.db.refresh(obj_in)
            return obj_in

        return await self._execute_with_circuit_breaker(_create)

    async def update(self, entity: ModelType, changes: Optional[Dict[str, Any]] = None) -> ModelType:
        """
        Apply ``changes`` to ``entity`` (if given), stamp ``updated_at`` and commit.

        The entity is merged first, so detached instances are accepted.
        """

        async def _update() -> ModelType:
            merged = await self.db.merge(entity)
            for field, value in (changes or {}).items():
                setattr(merged, field, value)
            if hasattr(merged, "updated_at"):
                merged.updated_at = utcnow()
            await self._commit("update")
            await self.db.refresh(merged)
            return merged

        return await self._execute_with_circuit_breaker(_update)

    async def delete(self, id: Any) -> bool:
        """
        Delete an entity by primary key.

        Returns ``True`` if the entity was found and deleted, ``False`` if
        it did not exist.
        """

        async def _delete() -> bool:
            entity = await self.db.get(self.model, id)
            if entity is None:
                return False
            await self.db.delete(entity)
            await self._commit("delete")
            return True

        return await self._execute_with_circuit_breaker(_delete)

    async def commit(self) -> None:
        """Commit work staged with :meth:`add` (and any other pending changes)."""
        await self._execute_with_circuit_breaker(self._commit, "commit")

    async def rollback(self) -> None:
        await self.db.rollback()
