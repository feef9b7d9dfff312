"""FastAPI application wiring for the developer identity service."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response, status
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from psycopg_pool import ConnectionPool

from .api.errors import register_error_handlers
from .api.routes import auth_router, developers_router
from .config import Settings, get_settings
from .domain.account import AccountStatus
from .domain.service import AccountService
from .logging_config import configure_logging
from .repository import AccountRepository
from .security.passwords import CredentialPolicy
from .security.rate_limit import build_rate_limiter
from .security.session import SessionGate
from .security.tokens import TokenService

logger = logging.getLogger(__name__)

settings = get_settings()


def build_token_service(settings: Settings) -> TokenService:
    return TokenService(
        settings.jwt_secret,
        issuer=settings.jwt_issuer,
        access_ttl_seconds=settings.access_token_ttl_seconds,
        refresh_ttl_seconds=settings.refresh_token_ttl_seconds,
        leeway_seconds=settings.jwt_leeway_seconds,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialise shared resources (Postgres pool, services) for the app lifecycle."""
    configure_logging(settings.log_level)
    settings.validate()

    pool = ConnectionPool(
        settings.database_url,
        min_size=settings.db_pool_min_size,
        max_size=settings.db_pool_max_size,
        timeout=settings.db_pool_timeout_seconds,
        kwargs={"options": f"-c statement_timeout={settings.db_statement_timeout_ms}"},
        open=False,
    )
    pool.open()
    repository = AccountRepository(pool)
    tokens = build_token_service(settings)

    app.state.pool = pool
    app.state.repository = repository
    app.state.account_service = AccountService(
        repository,
        CredentialPolicy(rounds=settings.bcrypt_rounds),
        tokens,
        registration_status=AccountStatus(settings.registration_status),
    )
    app.state.session_gate = SessionGate(tokens)
    app.state.rate_limiter = build_rate_limiter(
        backend=settings.rate_limit_backend,
        max_requests=settings.rate_limit_requests,
        window_seconds=settings.rate_limit_window_seconds,
        redis_url=settings.redis_url,
    )
    logger.info("%s %s started", settings.app_name, settings.version)
    try:
        yield
    finally:
        pool.close()


app = FastAPI(title=settings.app_name, version=settings.version, lifespan=lifespan)
register_error_handlers(app)


@app.get("/healthz", tags=["health"])
def healthz(request: Request, response: Response) -> dict[str, str]:
    """Report readiness, including database connectivity."""
    repository: AccountRepository = request.app.state.repository
    if not repository.ping():
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return {"status": "unhealthy", "db": "disconnected"}
    return {"status": "ok"}


@app.get("/metrics", include_in_schema=False)
def metrics() -> Response:
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


app.include_router(auth_router)
app.include_router(developers_router)
