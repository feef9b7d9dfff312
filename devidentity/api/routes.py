"""HTTP route definitions for the developer identity service."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, Query, Request, Response, status
from pydantic import BaseModel, Field

from ..domain.account import Account, AccountStatus
from ..domain.contracts import AccountFilter, RegisterAccountInput, UpdateProfileInput
from ..domain.service import AccountService
from ..security.rate_limit import RateLimiter
from ..security.session import SessionIdentity
from ..security.tokens import TokenPair
from .dependencies import ensure_self, get_rate_limiter, get_service, require_identity


auth_router = APIRouter(prefix="/auth", tags=["auth"])
developers_router = APIRouter(
    prefix="/developers",
    tags=["developers"],
    dependencies=[Depends(require_identity)],
)


class DeveloperResponse(BaseModel):
    """Serialised representation of an `Account`; never includes the password hash."""

    id: str
    email: str
    full_name: str | None
    company_name: str | None
    status: AccountStatus
    email_verified: bool
    plan_tier: str
    created_at: datetime
    updated_at: datetime
    last_login_at: datetime | None
    metadata: dict[str, Any]

    @classmethod
    def from_domain(cls, account: Account) -> "DeveloperResponse":
        """Build a response model from the domain aggregate."""
        return cls(
            id=account.account_id,
            email=account.email,
            full_name=account.full_name,
            company_name=account.company_name,
            status=account.status,
            email_verified=account.email_verified,
            plan_tier=account.plan_tier,
            created_at=account.created_at,
            updated_at=account.updated_at,
            last_login_at=account.last_login_at,
            metadata=dict(account.metadata),
        )


class RegisterRequest(BaseModel):
    email: str
    password: str
    full_name: str | None = None
    company_name: str | None = None


class RegisterResponse(BaseModel):
    id: str
    email: str


class LoginRequest(BaseModel):
    email: str
    password: str


class DeveloperRef(BaseModel):
    id: str
    email: str


class TokenResponse(BaseModel):
    """Token issuance response containing the bearer tokens and metadata."""

    access_token: str
    token_type: str = "bearer"
    expires_in: int
    refresh_token: str
    refresh_expires_in: int
    developer: DeveloperRef

    @classmethod
    def from_pair(cls, pair: TokenPair) -> "TokenResponse":
        return cls(
            access_token=pair.access_token,
            expires_in=pair.access_expires_in,
            refresh_token=pair.refresh_token,
            refresh_expires_in=pair.refresh_expires_in,
            developer=DeveloperRef(id=pair.account_id, email=pair.email),
        )


class RefreshRequest(BaseModel):
    refresh_token: str


class UpdateDeveloperRequest(BaseModel):
    full_name: str | None = None
    company_name: str | None = None
    plan_tier: str | None = Field(default=None, min_length=1, max_length=50)


class ChangePasswordRequest(BaseModel):
    old_password: str
    new_password: str


class MetadataRequest(BaseModel):
    key: str = Field(..., min_length=1, max_length=128)
    value: Any = None


def _client_key(request: Request, scope: str) -> str:
    host = request.client.host if request.client else "unknown"
    return f"{scope}:{host}"


# /auth


@auth_router.post("/register", response_model=RegisterResponse, status_code=status.HTTP_201_CREATED)
def register(
    request: Request,
    payload: RegisterRequest,
    service: AccountService = Depends(get_service),
    limiter: RateLimiter = Depends(get_rate_limiter),
) -> RegisterResponse:
    """Create a developer account."""
    limiter.check(_client_key(request, "register"))
    registration = RegisterAccountInput(
        email=payload.email,
        password=payload.password,
        full_name=payload.full_name,
        company_name=payload.company_name,
    )
    payload.password = ""
    account = service.register(registration)
    return RegisterResponse(id=account.account_id, email=account.email)


@auth_router.post("/login", response_model=TokenResponse)
def login(
    request: Request,
    payload: LoginRequest,
    service: AccountService = Depends(get_service),
    limiter: RateLimiter = Depends(get_rate_limiter),
) -> TokenResponse:
    """Exchange email and password for an access/refresh token pair."""
    limiter.check(_client_key(request, "login"))
    pair = service.authenticate(payload.email, payload.password)
    return TokenResponse.from_pair(pair)


@auth_router.post("/refresh", response_model=TokenResponse)
def refresh(
    request: Request,
    payload: RefreshRequest,
    service: AccountService = Depends(get_service),
    limiter: RateLimiter = Depends(get_rate_limiter),
) -> TokenResponse:
    limiter.check(_client_key(request, "refresh"))
    pair = service.refresh_session(payload.refresh_token)
    return TokenResponse.from_pair(pair)


@auth_router.get("/profile", response_model=DeveloperResponse)
def profile(
    identity: SessionIdentity = Depends(require_identity),
    service: AccountService = Depends(get_service),
) -> DeveloperResponse:
    """Return the authenticated developer's own record."""
    return DeveloperResponse.from_domain(service.get_account(identity.account_id))


# /developers


@developers_router.get("", response_model=list[DeveloperResponse])
def list_developers(
    status_filter: AccountStatus | None = Query(default=None, alias="status"),
    plan_tier: str | None = Query(default=None),
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=20, ge=1, le=100),
    service: AccountService = Depends(get_service),
) -> list[DeveloperResponse]:
    accounts = service.list_accounts(
        AccountFilter(status=status_filter, plan_tier=plan_tier), page=page, page_size=page_size
    )
    return [DeveloperResponse.from_domain(account) for account in accounts]


@developers_router.get("/{account_id}", response_model=DeveloperResponse)
def get_developer(
    account_id: str,
    identity: SessionIdentity = Depends(require_identity),
    service: AccountService = Depends(get_service),
) -> DeveloperResponse:
    ensure_self(identity, account_id)
    return DeveloperResponse.from_domain(service.get_account(account_id))


@developers_router.put("/{account_id}", response_model=DeveloperResponse)
def update_developer(
    account_id: str,
    payload: UpdateDeveloperRequest,
    identity: SessionIdentity = Depends(require_identity),
    service: AccountService = Depends(get_service),
) -> DeveloperResponse:
    """Update profile fields; status changes go through the dedicated endpoints."""
    ensure_self(identity, account_id)
    account = service.update_profile(
        account_id,
        UpdateProfileInput(
            full_name=payload.full_name,
            company_name=payload.company_name,
            plan_tier=payload.plan_tier,
        ),
    )
    return DeveloperResponse.from_domain(account)


@developers_router.put("/{account_id}/password", status_code=status.HTTP_204_NO_CONTENT)
def change_password(
    account_id: str,
    payload: ChangePasswordRequest,
    identity: SessionIdentity = Depends(require_identity),
    service: AccountService = Depends(get_service),
) -> Response:
    ensure_self(identity, account_id)
    service.change_password(account_id, payload.old_password, payload.new_password)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@developers_router.post("/{account_id}/verify-email", status_code=status.HTTP_204_NO_CONTENT)
def verify_email(
    account_id: str,
    identity: SessionIdentity = Depends(require_identity),
    service: AccountService = Depends(get_service),
) -> Response:
    ensure_self(identity, account_id)
    service.verify_email(account_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@developers_router.post("/{account_id}/metadata", status_code=status.HTTP_204_NO_CONTENT)
def merge_metadata(
    account_id: str,
    payload: MetadataRequest,
    identity: SessionIdentity = Depends(require_identity),
    service: AccountService = Depends(get_service),
) -> Response:
    ensure_self(identity, account_id)
    service.merge_metadata(account_id, payload.key, payload.value)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@developers_router.post("/{account_id}/suspend", status_code=status.HTTP_204_NO_CONTENT)
def suspend_developer(
    account_id: str,
    identity: SessionIdentity = Depends(require_identity),
    service: AccountService = Depends(get_service),
) -> Response:
    ensure_self(identity, account_id)
    service.suspend(account_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@developers_router.delete("/{account_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_developer(
    account_id: str,
    purge: bool = Query(default=False),
    identity: SessionIdentity = Depends(require_identity),
    service: AccountService = Depends(get_service),
) -> Response:
    """Soft delete by default; ``?purge=true`` removes the row permanently."""
    ensure_self(identity, account_id)
    if purge:
        service.hard_delete(account_id)
    else:
        service.soft_delete(account_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
