from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime, timezone

import pytest
from psycopg import errors as pg_errors
from psycopg_pool import PoolTimeout

from devidentity.config import Settings
from devidentity.domain.account import AccountStatus
from devidentity.domain.errors import (
    AccountNotFoundError,
    ConfigurationError,
    StoreUnavailableError,
)
from devidentity.repository import AccountRepository


def test_settings_require_signing_secret():
    with pytest.raises(ConfigurationError):
        Settings(jwt_secret="").validate()


def test_settings_reject_unknown_registration_status():
    with pytest.raises(ConfigurationError):
        Settings(jwt_secret="s3cret", registration_status="suspended").validate()


def test_settings_accept_pending_registration():
    Settings(jwt_secret="s3cret", registration_status="pending").validate()


class ExhaustedPool:
    """Pool stand-in whose checkout always times out."""

    @contextmanager
    def connection(self):
        raise PoolTimeout("couldn't get a connection after 5.00 sec")
        yield  # pragma: no cover


def test_pool_timeout_surfaces_as_store_unavailable():
    repository = AccountRepository(ExhaustedPool())
    with pytest.raises(StoreUnavailableError):
        repository.find_by_id("8b2f1f5c-0000-0000-0000-000000000000")
    assert repository.ping() is False


class RecordingCursor:
    """Cursor stand-in that records statements and optionally fails them."""

    def __init__(self, error=None):
        self.error = error
        self.executed = []
        self.rowcount = 0

    def execute(self, query, params=None):
        if self.error is not None:
            raise self.error
        self.executed.append((query, params))

    def fetchone(self):
        return None


class RecordingPool:
    def __init__(self, error=None):
        self.cur = RecordingCursor(error)

    @contextmanager
    def connection(self):
        yield self

    @contextmanager
    def cursor(self, row_factory=None):
        yield self.cur


@pytest.mark.parametrize(
    "call",
    [
        lambda repo: repo.find_by_id("not-a-uuid"),
        lambda repo: repo.hard_delete("not-a-uuid"),
        lambda repo: repo.update_status("not-a-uuid", AccountStatus.suspended, [AccountStatus.active]),
        lambda repo: repo.cas_update_password("not-a-uuid", "old", "new"),
        lambda repo: repo.merge_metadata("not-a-uuid", "k", 1),
    ],
)
def test_malformed_id_is_not_found_without_querying(call):
    pool = RecordingPool()
    with pytest.raises(AccountNotFoundError):
        call(AccountRepository(pool))
    assert pool.cur.executed == []


def test_invalid_text_representation_maps_to_not_found():
    pool = RecordingPool(pg_errors.InvalidTextRepresentation("invalid input syntax for type uuid"))
    with pytest.raises(AccountNotFoundError):
        AccountRepository(pool).find_by_id("8b2f1f5c-0000-0000-0000-000000000000")


def test_well_formed_id_is_passed_as_uuid():
    pool = RecordingPool()
    account_id = "8b2f1f5c-0000-0000-0000-000000000000"
    with pytest.raises(AccountNotFoundError):
        AccountRepository(pool).find_by_id(account_id)
    [(_, params)] = pool.cur.executed
    assert str(params[0]) == account_id


def test_map_record_builds_account():
    now = datetime.now(timezone.utc)
    row = (
        "8b2f1f5c-0000-0000-0000-000000000000",
        "a@b.com",
        "$2b$04$hash",
        "suspended",
        True,
        "free",
        now,
        now,
        "Ada",
        None,
        None,
        None,
    )
    account = AccountRepository(ExhaustedPool())._map_record(row)
    assert account.status is AccountStatus.suspended
    assert account.metadata == {}
    assert account.email_verified is True
    assert "$2b$04$hash" not in repr(account)


def test_entry_point_serves_app_with_configured_address(monkeypatch):
    import uvicorn

    from devidentity import __main__ as entry

    calls = []
    monkeypatch.setattr(uvicorn, "run", lambda app, **kwargs: calls.append((app, kwargs)))
    monkeypatch.setattr(entry, "get_settings", lambda: Settings(http_host="127.0.0.1", http_port=9100))

    entry.main()

    [(app, kwargs)] = calls
    assert app == "devidentity.main:app"
    assert kwargs["host"] == "127.0.0.1"
    assert kwargs["port"] == 9100
