"""
Request-scoped dependencies shared by the endpoint modules.

The bearer token is resolved once per request into a role-specific
principal; ``require_role`` narrows an endpoint to given roles.
"""

from typing import Callable, Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from agrofund.core.exceptions import AuthenticationRequired, PermissionDenied
from agrofund.db.session import get_db
from agrofund.models.auth_session import UserSession
from agrofund.models.user import User, UserRole
from agrofund.repositories.session_repo import SessionRepository
from agrofund.repositories.user_repo import UserRepository
from agrofund.schemas.user import PrincipalBase
from agrofund.services.auth_service import AuthService

bearer_scheme = HTTPBearer(auto_error=False)


def get_auth_service(db: AsyncSession = Depends(get_db)) -> AuthService:
    return AuthService(
        user_repo=UserRepository(User, db),
        session_repo=SessionRepository(UserSession, db),
    )


def get_token(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> str:
    if credentials is None or not credentials.credentials:
        raise AuthenticationRequired()
    return credentials.credentials


async def get_current_principal(
    token: str = Depends(get_token),
    auth: AuthService = Depends(get_auth_service),
) -> PrincipalBase:
    principal = (await auth.get_current_user(token)).unwrap()
    if principal is None:
        raise AuthenticationRequired("Session expired or invalid")
    return principal


def require_role(*roles: UserRole) -> Callable:
    """Dependency factory: the caller's principal, if their role is in ``roles``."""

    async def _require(principal: PrincipalBase = Depends(get_current_principal)) -> PrincipalBase:
        if principal.role not in roles:
            allowed = " or ".join(role.value for role in roles)
            raise PermissionDenied(f"This action requires the {allowed} role")
        return principal

    return _require
