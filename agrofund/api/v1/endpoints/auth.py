"""
Auth API endpoints.

- POST  /auth/signup    — Create a farmer or investor account
- POST  /auth/login     — Exchange email + password for a bearer token
- POST  /auth/logout    — Revoke the current token
- GET   /auth/me        — The signed-in principal
- PUT   /auth/password  — Change the signed-in user's password
"""

from fastapi import APIRouter, Depends, Response

from agrofund.api.deps import get_auth_service, get_current_principal, get_token
from agrofund.schemas.common import ErrorResponse, ValidationErrorResponse
from agrofund.schemas.user import (
    PasswordChangeForm,
    Principal,
    PrincipalBase,
    SessionResponse,
    SignInForm,
    SignUpForm,
)
from agrofund.services.auth_service import AuthService

router = APIRouter()


@router.post(
    "/signup",
    response_model=SessionResponse,
    status_code=201,
    summary="Create an account",
    description=(
        "Registers a **farmer** or **investor** and returns a session token. "
        "Admin accounts cannot be created through this endpoint."
    ),
    responses={
        409: {"model": ErrorResponse, "description": "Email already registered"},
        422: {"model": ValidationErrorResponse, "description": "Validation error"},
    },
)
async def sign_up(
    form: SignUpForm,
    service: AuthService = Depends(get_auth_service),
) -> SessionResponse:
    return (await service.sign_up(form)).unwrap()


@router.post(
    "/login",
    response_model=SessionResponse,
    summary="Sign in",
    responses={
        401: {"model": ErrorResponse, "description": "Invalid email or password"},
        422: {"model": ValidationErrorResponse, "description": "Validation error"},
    },
)
async def sign_in(
    form: SignInForm,
    service: AuthService = Depends(get_auth_service),
) -> SessionResponse:
    return (await service.sign_in(form)).unwrap()


@router.post(
    "/logout",
    status_code=204,
    summary="Sign out",
    description="Revokes the bearer token used for this request.",
    responses={401: {"model": ErrorResponse, "description": "Not signed in"}},
)
async def sign_out(
    token: str = Depends(get_token),
    service: AuthService = Depends(get_auth_service),
) -> Response:
    (await service.sign_out(token)).unwrap()
    return Response(status_code=204)


@router.get(
    "/me",
    response_model=Principal,
    summary="Current user",
    description="The signed-in user, shaped by role (farmer, investor or admin).",
    responses={401: {"model": ErrorResponse, "description": "Not signed in"}},
)
async def read_me(principal: PrincipalBase = Depends(get_current_principal)) -> PrincipalBase:
    return principal


@router.put(
    "/password",
    status_code=204,
    summary="Change password",
    responses={
        401: {"model": ErrorResponse, "description": "Not signed in"},
        422: {
            "model": ValidationErrorResponse,
            "description": "Weak new password or wrong current password",
        },
    },
)
async def change_password(
    form: PasswordChangeForm,
    principal: PrincipalBase = Depends(get_current_principal),
    service: AuthService = Depends(get_auth_service),
) -> Response:
    (await service.update_password(principal, form)).unwrap()
    return Response(status_code=204)
