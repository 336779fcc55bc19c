"""
Auth service — accounts, password hashing and bearer-token sessions.

Passwords are hashed with ``werkzeug.security``; sessions are opaque random
tokens stored in ``user_sessions`` with an expiry.  A valid token resolves to
a role-specific principal (see ``agrofund.schemas.user``).
"""

import logging
import secrets
from datetime import timedelta
from typing import Optional

from werkzeug.security import check_password_hash, generate_password_hash

from agrofund.core.config import settings
from agrofund.core.results import DataError, DataErrorKind, data_access
from agrofund.models.auth_session import UserSession
from agrofund.models.mixins import utcnow
from agrofund.models.user import User
from agrofund.repositories.session_repo import SessionRepository
from agrofund.repositories.user_repo import UserRepository
from agrofund.schemas.user import (
    PasswordChangeForm,
    PrincipalBase,
    SessionResponse,
    SignInForm,
    SignUpForm,
    principal_from_user,
)

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS = "Invalid email or password"


class AuthService:
    def __init__(self, user_repo: UserRepository, session_repo: SessionRepository):
        self._user_repo = user_repo
        self._session_repo = session_repo

    async def _open_session(self, user: User) -> UserSession:
        session = UserSession(
            token=secrets.token_urlsafe(32),
            user_id=user.id,
            expires_at=utcnow() + timedelta(hours=settings.SESSION_TTL_HOURS),
        )
        await self._session_repo.purge_expired(user.id)
        return await self._session_repo.add(session)

    @staticmethod
    def _response(session: UserSession, user: User) -> SessionResponse:
        return SessionResponse(
            access_token=session.token,
            expires_at=session.expires_at,
            user=principal_from_user(user),
        )

    @data_access("Sign up")
    async def sign_up(self, form: SignUpForm) -> SessionResponse:
        """Create a farmer or investor account and sign it in."""
        if await self._user_repo.get_by_email(form.email) is not None:
            raise DataError(DataErrorKind.CONFLICT, "An account with this email already exists")

        user = User(
            email=form.email,
            name=form.name,
            role=form.role,
            password_hash=generate_password_hash(form.password),
        )
        try:
            await self._user_repo.add(user)
            session = await self._open_session(user)
            await self._user_repo.commit()
        except Exception:
            await self._user_repo.rollback()
            raise
        logger.info("New %s account %s", user.role.value, user.id, extra={"user_id": str(user.id)})
        return self._response(session, user)

    @data_access("Sign in")
    async def sign_in(self, form: SignInForm) -> SessionResponse:
        user = await self._user_repo.get_by_email(form.email)
        if user is None or not check_password_hash(user.password_hash, form.password):
            logger.info("Failed sign-in for %s", form.email)
            raise DataError.unauthenticated(INVALID_CREDENTIALS)
        try:
            session = await self._open_session(user)
            await self._session_repo.commit()
        except Exception:
            await self._session_repo.rollback()
            raise
        return self._response(session, user)

    @data_access("Sign out")
    async def sign_out(self, token: str) -> None:
        await self._session_repo.revoke(token)

    @data_access("Resolve session")
    async def get_current_user(self, token: Optional[str]) -> Optional[PrincipalBase]:
        """The principal for a live session token, or ``None``."""
        if not token:
            return None
        row = await self._session_repo.get_active(token)
        if row is None:
            return None
        _, user = row
        return principal_from_user(user)

    @data_access("Change password")
    async def update_password(self, principal: PrincipalBase, form: PasswordChangeForm) -> None:
        user = await self._user_repo.get(principal.id)
        if user is None:
            raise DataError.not_found("User not found")
        if not check_password_hash(user.password_hash, form.current_password):
            raise DataError.invalid("Current password is incorrect")
        await self._user_repo.update(user, {"password_hash": generate_password_hash(form.new_password)})
        logger.info("Password changed for %s", user.id, extra={"user_id": str(user.id)})
