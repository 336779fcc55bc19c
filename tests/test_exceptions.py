"""
Unit tests for the error taxonomy and its HTTP mapping.

Tests cover:
- Domain exceptions and their status codes
- DataError kinds → HTTP exceptions (DataResult.unwrap)
- translate_error for store exceptions (SQLSTATE and SQLite text)
- The data_access decorator
- The registered exception handlers
"""

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from pydantic import BaseModel, field_validator
from sqlalchemy.exc import IntegrityError, NoResultFound, OperationalError

from agrofund.core.exceptions import (
    AppException,
    AuthenticationRequired,
    BusinessRuleViolation,
    ConflictException,
    NotFoundException,
    PermissionDenied,
    UnexpectedError,
    add_exception_handlers,
)
from agrofund.core.resilience import CircuitBreakerError
from agrofund.core.results import (
    DISPLAY_MESSAGES,
    DataError,
    DataErrorKind,
    DataResult,
    data_access,
    translate_error,
)


def _integrity(message: str, sqlstate: str = None) -> IntegrityError:
    orig = Exception(message)
    if sqlstate is not None:
        orig.sqlstate = sqlstate
    return IntegrityError("INSERT ...", {}, orig)


# ────────────────────────────────────────────────────────────────────────────
# Domain exceptions
# ────────────────────────────────────────────────────────────────────────────


class TestDomainExceptions:
    @pytest.mark.parametrize(
        "exc, status",
        [
            (NotFoundException("Project not found"), 404),
            (ConflictException("Duplicate"), 409),
            (BusinessRuleViolation("Minimum investment is ₦1,000"), 422),
            (AuthenticationRequired(), 401),
            (PermissionDenied(), 403),
            (UnexpectedError(), 500),
        ],
    )
    def test_status_codes(self, exc, status):
        assert isinstance(exc, AppException)
        assert exc.status_code == status

    def test_not_found_with_identifier(self):
        exc = NotFoundException("Project", "4444")
        assert exc.message == "Project with id '4444' not found"

    def test_not_found_plain_message(self):
        assert NotFoundException("Unknown form 'x'").message == "Unknown form 'x'"


# ────────────────────────────────────────────────────────────────────────────
# DataError / DataResult
# ────────────────────────────────────────────────────────────────────────────


class TestDataResult:
    def test_success_unwraps(self):
        result = DataResult.success([1])
        assert result.ok
        assert result.unwrap() == [1]

    def test_default_display_message(self):
        error = DataError(DataErrorKind.CONFLICT)
        assert error.message == DISPLAY_MESSAGES[DataErrorKind.CONFLICT]

    @pytest.mark.parametrize(
        "kind, exc_type",
        [
            (DataErrorKind.NOT_FOUND, NotFoundException),
            (DataErrorKind.FORBIDDEN, PermissionDenied),
            (DataErrorKind.UNAUTHENTICATED, AuthenticationRequired),
            (DataErrorKind.CONFLICT, ConflictException),
            (DataErrorKind.REFERENCE_MISSING, BusinessRuleViolation),
            (DataErrorKind.INVALID, BusinessRuleViolation),
            (DataErrorKind.UNEXPECTED, UnexpectedError),
        ],
    )
    def test_unwrap_raises_mapped_exception(self, kind, exc_type):
        result = DataResult.failure(DataError(kind, "boom"))
        assert not result.ok
        with pytest.raises(exc_type, match="boom"):
            result.unwrap()


class TestTranslateError:
    def test_foreign_key_by_sqlstate(self):
        assert translate_error(_integrity("violates", "23503")).kind == DataErrorKind.REFERENCE_MISSING

    def test_unique_by_sqlstate(self):
        assert translate_error(_integrity("duplicate key", "23505")).kind == DataErrorKind.CONFLICT

    def test_sqlite_foreign_key_text(self):
        error = _integrity("FOREIGN KEY constraint failed")
        assert translate_error(error).kind == DataErrorKind.REFERENCE_MISSING

    def test_sqlite_unique_text(self):
        error = _integrity("UNIQUE constraint failed: users.email")
        assert translate_error(error).kind == DataErrorKind.CONFLICT

    def test_no_result(self):
        assert translate_error(NoResultFound()).kind == DataErrorKind.NOT_FOUND

    def test_data_error_passes_through(self):
        error = DataError.invalid("Funding goal cannot be less than the amount already raised")
        assert translate_error(error) is error

    def test_anything_else_is_unexpected(self):
        assert translate_error(RuntimeError("x")).kind == DataErrorKind.UNEXPECTED


class TestDataAccess:
    @pytest.mark.asyncio
    async def test_wraps_value(self):
        @data_access("Load")
        async def load():
            return {"id": 1}

        assert (await load()).data == {"id": 1}

    @pytest.mark.asyncio
    async def test_keeps_ready_result(self):
        ready = DataResult.success(5)

        @data_access("Load")
        async def load():
            return ready

        assert await load() is ready

    @pytest.mark.asyncio
    async def test_data_error_becomes_result(self):
        @data_access("Invest")
        async def invest():
            raise DataError.forbidden("Only investors can invest in projects")

        result = await invest()
        assert result.error.kind == DataErrorKind.FORBIDDEN
        assert result.error.message == "Only investors can invest in projects"

    @pytest.mark.asyncio
    async def test_integrity_error_translated(self):
        @data_access("Sign up")
        async def sign_up():
            raise _integrity("UNIQUE constraint failed: users.email")

        assert (await sign_up()).error.kind == DataErrorKind.CONFLICT

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "exc",
        [
            OperationalError("SELECT 1", {}, Exception("connection lost")),
            CircuitBreakerError("database", 12.0),
            ConnectionError("refused"),
        ],
    )
    async def test_store_failures_are_unexpected(self, exc):
        @data_access("Read")
        async def read():
            raise exc

        result = await read()
        assert result.error.kind == DataErrorKind.UNEXPECTED
        assert result.error.message == DISPLAY_MESSAGES[DataErrorKind.UNEXPECTED]

    @pytest.mark.asyncio
    async def test_programming_errors_propagate(self):
        @data_access("Read")
        async def read():
            raise KeyError("bug")

        with pytest.raises(KeyError):
            await read()


# ────────────────────────────────────────────────────────────────────────────
# Exception handlers
# ────────────────────────────────────────────────────────────────────────────


def _app() -> FastAPI:
    # debug=False lets the catch-all handler answer instead of re-raising.
    app = FastAPI(debug=False)
    add_exception_handlers(app)

    class Body(BaseModel):
        amount: int

        @field_validator("amount")
        @classmethod
        def positive(cls, v: int) -> int:
            if v <= 0:
                raise ValueError("Amount must be positive")
            return v

    @app.get("/denied")
    async def denied():
        raise AuthenticationRequired()

    @app.post("/validate")
    async def validate(body: Body):
        return {"ok": True}

    @app.get("/crash")
    async def crash():
        raise RuntimeError("unexpected")

    return app


def _client() -> AsyncClient:
    transport = ASGITransport(app=_app(), raise_app_exceptions=False)
    return AsyncClient(transport=transport, base_url="http://test")


class TestExceptionHandlers:
    @pytest.mark.asyncio
    async def test_app_exception_401_has_challenge(self):
        async with _client() as client:
            resp = await client.get("/denied")
        assert resp.status_code == 401
        assert resp.headers["www-authenticate"] == "Bearer"
        assert resp.json() == {"error": True, "message": "Authentication required"}

    @pytest.mark.asyncio
    async def test_validation_details(self):
        async with _client() as client:
            resp = await client.post("/validate", json={"amount": -5})
        assert resp.status_code == 422
        assert resp.json()["details"] == [
            {"field": "body -> amount", "message": "Amount must be positive"}
        ]

    @pytest.mark.asyncio
    async def test_unknown_route_404(self):
        async with _client() as client:
            resp = await client.get("/nowhere")
        assert resp.status_code == 404
        assert resp.json()["error"] is True

    @pytest.mark.asyncio
    async def test_unhandled_500(self):
        async with _client() as client:
            resp = await client.get("/crash")
        assert resp.status_code == 500
        assert "Internal Server Error" in resp.json()["message"]
