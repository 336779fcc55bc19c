"""Notification repository."""

from typing import List
from uuid import UUID

from sqlalchemy.future import select

from agrofund.models.notification import Notification
from agrofund.repositories.base import BaseRepository


class NotificationRepository(BaseRepository[Notification]):
    """Concrete repository for :class:`Notification` entities."""

    async def list_for_user(self, user_id: UUID, limit: int = 50) -> List[Notification]:
        async def _list() -> List[Notification]:
            stmt = (
                select(Notification)
                .where(Notification.user_id == user_id)
                .order_by(Notification.created_at.desc(), Notification.id)
                .limit(limit)
            )
            return list((await self.db.execute(stmt)).scalars().all())

        return await self._execute_with_circuit_breaker(_list)
