"""User repository — lookups by e-mail and per-role counts."""

from typing import Dict, Optional

from sqlalchemy import func
from sqlalchemy.future import select

from agrofund.models.user import User
from agrofund.repositories.base import BaseRepository


class UserRepository(BaseRepository[User]):
    """Concrete repository for :class:`User` entities."""

    async def get_by_email(self, email: str) -> Optional[User]:
        """E-mails are stored normalised, so this is an exact match on the unique index."""

        async def _get() -> Optional[User]:
            stmt = select(User).where(User.email == email)
            return (await self.db.execute(stmt)).scalars().first()

        return await self._execute_with_circuit_breaker(_get)

    async def count_by_role(self) -> Dict[str, int]:
        async def _count() -> Dict[str, int]:
            stmt = select(User.role, func.count()).group_by(User.role)
            result = await self.db.execute(stmt)
            return {role.value: count for role, count in result.all()}

        return await self._execute_with_circuit_breaker(_count)
