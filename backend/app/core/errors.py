"""Error taxonomy for the sharing engine.

Every error is an ``HTTPException`` so services can raise it directly and the
routers never translate. ``code`` is the stable machine-readable identifier.
"""

from __future__ import annotations

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse

GENERIC_NOT_FOUND = "Dashboard not found"


class SharingError(HTTPException):
    code: str = "INTERNAL"
    status: int = 500
    default_detail: str = "Unexpected error"

    def __init__(self, detail: str | None = None) -> None:
        super().__init__(status_code=self.status, detail=detail or self.default_detail)


class NotFoundError(SharingError):
    """Read denial and true absence; callers must not be able to tell them apart."""

    code = "NOT_FOUND"
    status = 404
    default_detail = GENERIC_NOT_FOUND


class ForbiddenError(SharingError):
    code = "FORBIDDEN"
    status = 403
    default_detail = "Insufficient permissions"


class PreconditionFailedError(SharingError):
    code = "PRECONDITION_FAILED"
    status = 412
    default_detail = "Precondition failed"


class ValidationFailedError(SharingError):
    code = "VALIDATION"
    status = 400
    default_detail = "Invalid input"


async def sharing_error_handler(request: Request, exc: SharingError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "code": exc.code},
        headers=getattr(exc, "headers", None),
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(SharingError, sharing_error_handler)
