"""FastAPI dependencies resolving shared services and the session identity."""

from __future__ import annotations

from fastapi import Header, Request

from ..domain.errors import ForbiddenError
from ..domain.service import AccountService
from ..security.rate_limit import RateLimiter
from ..security.session import SessionGate, SessionIdentity


def get_service(request: Request) -> AccountService:
    """Resolve the `AccountService` stored on the FastAPI application state."""
    service: AccountService = request.app.state.account_service
    return service


def get_rate_limiter(request: Request) -> RateLimiter:
    limiter: RateLimiter = request.app.state.rate_limiter
    return limiter


def require_identity(
    request: Request,
    authorization: str | None = Header(default=None),
) -> SessionIdentity:
    """Validate the bearer token and attach the identity to ``request.state``.

    Raises before the route handler runs, so handlers depending on this never
    see an unauthenticated request.
    """
    gate: SessionGate = request.app.state.session_gate
    identity = gate.authenticate(authorization)
    request.state.identity = identity
    return identity


def ensure_self(identity: SessionIdentity, account_id: str) -> None:
    """Developers may only manage their own account."""
    if identity.account_id != account_id:
        raise ForbiddenError()
