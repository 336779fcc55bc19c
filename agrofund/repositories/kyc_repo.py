"""KYC document repository."""

from typing import List, Tuple
from uuid import UUID

from sqlalchemy.future import select

from agrofund.models.kyc import KYCDocument, ReviewStatus
from agrofund.models.user import User
from agrofund.repositories.base import BaseRepository


class KYCRepository(BaseRepository[KYCDocument]):
    """Concrete repository for :class:`KYCDocument` entities."""

    async def list_for_user(self, user_id: UUID) -> List[KYCDocument]:
        async def _list() -> List[KYCDocument]:
            stmt = (
                select(KYCDocument)
                .where(KYCDocument.user_id == user_id)
                .order_by(KYCDocument.created_at.desc(), KYCDocument.id)
            )
            return list((await self.db.execute(stmt)).scalars().all())

        return await self._execute_with_circuit_breaker(_list)

    async def list_pending(self) -> List[Tuple[KYCDocument, User]]:
        """Review queue, oldest submission first."""

        async def _list() -> List[Tuple[KYCDocument, User]]:
            stmt = (
                select(KYCDocument, User)
                .join(User, User.id == KYCDocument.user_id)
                .where(KYCDocument.status == ReviewStatus.PENDING)
                .order_by(KYCDocument.created_at, KYCDocument.id)
            )
            return [(doc, user) for doc, user in (await self.db.execute(stmt)).all()]

        return await self._execute_with_circuit_breaker(_list)

    async def statuses_for_user(self, user_id: UUID) -> List[ReviewStatus]:
        async def _statuses() -> List[ReviewStatus]:
            stmt = select(KYCDocument.status).where(KYCDocument.user_id == user_id)
            return list((await self.db.execute(stmt)).scalars().all())

        return await self._execute_with_circuit_breaker(_statuses)
