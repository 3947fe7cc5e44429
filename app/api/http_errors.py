from __future__ import annotations

from collections.abc import Mapping

from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse

from app.core.errors import Conflict, Forbidden, InvalidInput, InvalidState, NotFound, StoreUnavailable

DOMAIN_STATUSES: Mapping[type[Exception], int] = {
    InvalidInput: 400,
    Forbidden: 403,
    NotFound: 404,
    InvalidState: 409,
    Conflict: 409,
    StoreUnavailable: 503,
}


def domain_status(exc: Exception, default_status: int = 400) -> int:
    for exc_type, status in DOMAIN_STATUSES.items():
        if isinstance(exc, exc_type):
            return status
    return default_status


def domain_error(exc: Exception) -> HTTPException:
    status = domain_status(exc)
    detail = str(exc) or getattr(exc, "code", "error")
    return HTTPException(status_code=status, detail=detail)


async def domain_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    http_exc = domain_error(exc)
    return JSONResponse(
        status_code=http_exc.status_code,
        content={"detail": http_exc.detail, "code": getattr(exc, "code", None)},
    )
