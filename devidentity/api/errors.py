"""Translate domain errors into HTTP responses."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from ..domain.errors import AccountError, AccountSuspendedError, RateLimitedError

logger = logging.getLogger(__name__)

_STATUS_BY_KIND = {
    "validation": status.HTTP_400_BAD_REQUEST,
    "authentication": status.HTTP_401_UNAUTHORIZED,
    "authorization": status.HTTP_403_FORBIDDEN,
    "not_found": status.HTTP_404_NOT_FOUND,
    "conflict": status.HTTP_409_CONFLICT,
    "rate_limited": status.HTTP_429_TOO_MANY_REQUESTS,
    "unavailable": status.HTTP_503_SERVICE_UNAVAILABLE,
}


def status_for(exc: AccountError) -> int:
    return _STATUS_BY_KIND.get(exc.kind, status.HTTP_500_INTERNAL_SERVER_ERROR)


async def handle_account_error(request: Request, exc: AccountError) -> JSONResponse:
    """Render an ``AccountError`` as ``{"detail": ...}`` with a status matching its kind."""
    status_code = status_for(exc)
    headers: dict[str, str] = {}
    if status_code == status.HTTP_401_UNAUTHORIZED:
        headers["WWW-Authenticate"] = "Bearer"
    if isinstance(exc, RateLimitedError):
        headers["Retry-After"] = str(exc.retry_after)

    if status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
        detail = "service unavailable" if exc.kind == "unavailable" else "internal server error"
    else:
        logger.debug("%s %s rejected (%s): %s", request.method, request.url.path, exc.kind, exc)
        detail = exc.message

    body = {"detail": detail}
    if isinstance(exc, AccountSuspendedError):
        body["code"] = "account_suspended"
    return JSONResponse(status_code=status_code, content=body, headers=headers)


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AccountError, handle_account_error)
