"""Error taxonomy and its JSON rendering."""

from __future__ import annotations

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from app.core.errors import (
    GENERIC_NOT_FOUND,
    ForbiddenError,
    NotFoundError,
    PreconditionFailedError,
    ValidationFailedError,
    register_exception_handlers,
)


class TestErrorClasses:
    @pytest.mark.parametrize(
        "cls,code,status",
        [
            (NotFoundError, "NOT_FOUND", 404),
            (ForbiddenError, "FORBIDDEN", 403),
            (PreconditionFailedError, "PRECONDITION_FAILED", 412),
            (ValidationFailedError, "VALIDATION", 400),
        ],
    )
    def test_codes_and_statuses(self, cls, code, status):
        exc = cls("boom")
        assert exc.code == code
        assert exc.status_code == status
        assert exc.detail == "boom"

    def test_not_found_uses_generic_message(self):
        assert NotFoundError().detail == GENERIC_NOT_FOUND


class TestExceptionHandler:
    async def test_renders_detail_and_code(self):
        app = FastAPI()
        register_exception_handlers(app)

        @app.get("/boom")
        async def boom():
            raise PreconditionFailedError("Promote another administrator first")

        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
            resp = await c.get("/boom")
        assert resp.status_code == 412
        assert resp.json() == {
            "detail": "Promote another administrator first",
            "code": "PRECONDITION_FAILED",
        }
