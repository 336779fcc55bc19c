"""Profile service — reading and editing a user's own profile and avatar."""

import logging
from uuid import UUID

from fastapi import UploadFile

from agrofund.core.results import DataError, DataErrorKind, data_access
from agrofund.repositories.user_repo import UserRepository
from agrofund.schemas.user import (
    PROFILE_FIELDS,
    PrincipalBase,
    ProfileUpdate,
    principal_from_user,
)
from agrofund.storage import (
    AVATARS_BUCKET,
    IMAGE_TYPES,
    LocalObjectStorage,
    StorageError,
    UploadRejected,
    read_upload,
    timestamped_name,
)

logger = logging.getLogger(__name__)


class ProfileService:
    def __init__(self, user_repo: UserRepository, storage: LocalObjectStorage):
        self._repo = user_repo
        self._storage = storage

    @data_access("Get profile")
    async def get_profile(self, user_id: UUID) -> PrincipalBase:
        user = await self._repo.get(user_id)
        if user is None:
            raise DataError.not_found("User not found")
        return principal_from_user(user)

    @data_access("Update profile")
    async def update_profile(self, principal: PrincipalBase, changes: ProfileUpdate) -> PrincipalBase:
        """Write the submitted fields that belong to the caller's role."""
        user = await self._repo.get(principal.id)
        if user is None:
            raise DataError.not_found("User not found")
        allowed = PROFILE_FIELDS[user.role]
        data = {k: v for k, v in changes.model_dump(exclude_unset=True).items() if k in allowed}
        updated = await self._repo.update(user, data)
        logger.info("Profile %s updated (%s)", user.id, ", ".join(sorted(data)) or "no fields")
        return principal_from_user(updated)

    @data_access("Upload avatar")
    async def upload_avatar(self, principal: PrincipalBase, upload: UploadFile) -> PrincipalBase:
        user = await self._repo.get(principal.id)
        if user is None:
            raise DataError.not_found("User not found")
        try:
            data = await read_upload(upload, IMAGE_TYPES)
        except UploadRejected as exc:
            raise DataError.invalid(str(exc))

        path = f"{user.id}/{timestamped_name('avatar', upload.filename or 'avatar')}"
        try:
            url = await self._storage.upload(AVATARS_BUCKET, path, data)
        except StorageError:
            raise DataError(DataErrorKind.UNEXPECTED)
        try:
            updated = await self._repo.update(user, {"avatar_url": url})
        except Exception:
            await self._storage.delete(AVATARS_BUCKET, path)
            raise
        return principal_from_user(updated)
