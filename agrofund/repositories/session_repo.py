"""Repository for bearer-token sessions."""

from typing import Optional, Tuple
from uuid import UUID

from sqlalchemy import delete
from sqlalchemy.future import select

from agrofund.models.auth_session import UserSession
from agrofund.models.mixins import utcnow
from agrofund.models.user import User
from agrofund.repositories.base import BaseRepository


class SessionRepository(BaseRepository[UserSession]):
    """Concrete repository for :class:`UserSession` entities."""

    async def get_active(self, token: str) -> Optional[Tuple[UserSession, User]]:
        """The unexpired session for ``token`` and its user, if any."""

        async def _get() -> Optional[Tuple[UserSession, User]]:
            stmt = (
                select(UserSession, User)
                .join(User, User.id == UserSession.user_id)
                .where(UserSession.token == token, UserSession.expires_at > utcnow())
            )
            row = (await self.db.execute(stmt)).first()
            return (row[0], row[1]) if row is not None else None

        return await self._execute_with_circuit_breaker(_get)

    async def revoke(self, token: str) -> None:
        async def _revoke() -> None:
            await self.db.execute(delete(UserSession).where(UserSession.token == token))
            await self._commit("revoke")

        await self._execute_with_circuit_breaker(_revoke)

    async def purge_expired(self, user_id: UUID) -> None:
        """Drop a user's expired sessions (no commit)."""

        async def _purge() -> None:
            await self.db.execute(
                delete(UserSession).where(
                    UserSession.user_id == user_id, UserSession.expires_at <= utcnow()
                )
            )

        await self._execute_with_circuit_breaker(_purge)
