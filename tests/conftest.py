from __future__ import annotations

import copy
import threading
import uuid
from datetime import datetime, timezone
from typing import Any, Iterable

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from devidentity.api.errors import register_error_handlers
from devidentity.api.routes import auth_router, developers_router
from devidentity.domain.account import Account, AccountStatus
from devidentity.domain.contracts import EMAIL_UNIQUE_CONSTRAINT, AccountFilter, RegisterAccountInput
from devidentity.domain.errors import AccountNotFoundError, StaleCredentialError, UniqueConstraintError
from devidentity.domain.service import AccountService
from devidentity.security.passwords import CredentialPolicy
from devidentity.security.rate_limit import MemoryRateLimiter
from devidentity.security.session import SessionGate
from devidentity.security.tokens import TokenService

TEST_SECRET = "test-signing-secret"


class FakeAccountStore:
    """In-memory store mimicking the Postgres repository's filters and conditional updates."""

    def __init__(self) -> None:
        self._rows: dict[str, Account] = {}
        self._lock = threading.Lock()

    def _now(self, previous: datetime | None = None) -> datetime:
        now = datetime.now(timezone.utc)
        return max(now, previous) if previous else now

    def _live(self, account_id: str) -> Account:
        row = self._rows.get(account_id)
        if row is None or row.status is AccountStatus.deleted:
            raise AccountNotFoundError()
        return row

    def insert_account(
        self, payload: RegisterAccountInput, password_hash: str, status: AccountStatus
    ) -> Account:
        with self._lock:
            for row in self._rows.values():
                if row.email == payload.email and row.status is not AccountStatus.deleted:
                    raise UniqueConstraintError(EMAIL_UNIQUE_CONSTRAINT)
            now = self._now()
            account = Account(
                account_id=str(uuid.uuid4()),
                email=payload.email,
                password_hash=password_hash,
                status=status,
                email_verified=False,
                plan_tier="free",
                created_at=now,
                updated_at=now,
                full_name=payload.full_name,
                company_name=payload.company_name,
            )
            self._rows[account.account_id] = account
            return copy.deepcopy(account)

    def find_by_id(self, account_id: str) -> Account:
        with self._lock:
            return copy.deepcopy(self._live(account_id))

    def find_by_email(self, email: str) -> Account:
        with self._lock:
            for row in self._rows.values():
                if row.email == email and row.status is not AccountStatus.deleted:
                    return copy.deepcopy(row)
        raise AccountNotFoundError()

    def find_all(self, account_filter: AccountFilter, page: int, page_size: int) -> list[Account]:
        with self._lock:
            rows = list(self._rows.values())
        if account_filter.status is None:
            rows = [row for row in rows if row.status is not AccountStatus.deleted]
        else:
            rows = [row for row in rows if row.status is account_filter.status]
        if account_filter.plan_tier:
            rows = [row for row in rows if row.plan_tier == account_filter.plan_tier]
        rows.sort(key=lambda row: row.created_at, reverse=True)
        start = (page - 1) * page_size
        return [copy.deepcopy(row) for row in rows[start : start + page_size]]

    def cas_update_password(self, account_id: str, expected_hash: str, new_hash: str) -> None:
        with self._lock:
            row = self._live(account_id)
            if row.password_hash != expected_hash:
                raise StaleCredentialError()
            row.password_hash = new_hash
            row.updated_at = self._now(row.updated_at)

    def reset_password(self, account_id: str, new_hash: str) -> None:
        with self._lock:
            row = self._live(account_id)
            row.password_hash = new_hash
            row.updated_at = self._now(row.updated_at)

    def update_status(
        self, account_id: str, status: AccountStatus, from_statuses: Iterable[AccountStatus]
    ) -> None:
        with self._lock:
            row = self._rows.get(account_id)
            if row is None or row.status not in set(from_statuses):
                raise AccountNotFoundError()
            row.status = status
            row.updated_at = self._now(row.updated_at)

    def mark_email_verified(self, account_id: str) -> None:
        with self._lock:
            row = self._live(account_id)
            row.email_verified = True
            row.updated_at = self._now(row.updated_at)

    def update_profile(self, account_id: str, changes: dict[str, str]) -> Account:
        with self._lock:
            row = self._live(account_id)
            for name, value in changes.items():
                setattr(row, name, value)
            row.updated_at = self._now(row.updated_at)
            return copy.deepcopy(row)

    def update_last_login(self, account_id: str, at: datetime) -> None:
        with self._lock:
            row = self._live(account_id)
            row.last_login_at = at
            row.updated_at = self._now(row.updated_at)

    def merge_metadata(self, account_id: str, key: str, value: Any) -> None:
        with self._lock:
            row = self._live(account_id)
            row.metadata = {**row.metadata, key: value}
            row.updated_at = self._now(row.updated_at)

    def hard_delete(self, account_id: str) -> None:
        with self._lock:
            if self._rows.pop(account_id, None) is None:
                raise AccountNotFoundError()

    def raw(self, account_id: str) -> Account | None:
        """Return the stored row regardless of status."""
        return self._rows.get(account_id)


@pytest.fixture(scope="session")
def credentials() -> CredentialPolicy:
    return CredentialPolicy(rounds=4)


@pytest.fixture
def tokens() -> TokenService:
    return TokenService(TEST_SECRET, issuer="devidentity-test")


@pytest.fixture
def store() -> FakeAccountStore:
    return FakeAccountStore()


@pytest.fixture
def service(store, credentials, tokens) -> AccountService:
    return AccountService(store, credentials, tokens)


@pytest.fixture
def api_client(service, tokens):
    """Provide a FastAPI test client with isolated state."""
    app = FastAPI()
    register_error_handlers(app)
    app.include_router(auth_router)
    app.include_router(developers_router)
    app.state.account_service = service
    app.state.session_gate = SessionGate(tokens)
    app.state.rate_limiter = MemoryRateLimiter(max_requests=100, window_seconds=60)

    with TestClient(app) as client:
        yield client
