"""Postgres-backed account store."""

from __future__ import annotations

import logging
import uuid
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Iterable, Iterator

import psycopg
from psycopg import errors as pg_errors
from psycopg.rows import tuple_row
from psycopg.types.json import Json
from psycopg_pool import ConnectionPool, PoolTimeout

from .domain.account import Account, AccountStatus
from .domain.contracts import AccountFilter, RegisterAccountInput
from .domain.errors import (
    AccountNotFoundError,
    StaleCredentialError,
    StoreUnavailableError,
    UniqueConstraintError,
)

logger = logging.getLogger(__name__)

_COLUMNS = """
    id::text, email, password_hash, status, email_verified, plan_tier,
    created_at, updated_at, full_name, company_name, last_login_at, metadata
"""

_PROFILE_COLUMNS = frozenset({"full_name", "company_name", "plan_tier"})


def _row_id(account_id: str) -> uuid.UUID:
    """Parse a developer id; anything that is not a UUID cannot name a row."""
    try:
        return uuid.UUID(str(account_id))
    except ValueError:
        raise AccountNotFoundError() from None


class AccountRepository:
    """Account persistence on a shared psycopg connection pool.

    Every call checks a connection out of the pool for a single transaction.
    Pool checkout is bounded by the pool timeout and statements by the
    server-side ``statement_timeout`` configured on the pool's connections.
    """

    def __init__(self, pool: ConnectionPool) -> None:
        """Store the connection pool used for all database interactions."""
        self._pool = pool

    @contextmanager
    def _cursor(self) -> Iterator[psycopg.Cursor]:
        try:
            with self._pool.connection() as conn:
                with conn.cursor(row_factory=tuple_row) as cur:
                    yield cur
        except PoolTimeout as exc:
            logger.error("timed out waiting for a database connection")
            raise StoreUnavailableError("timed out waiting for a database connection") from exc
        except pg_errors.QueryCanceled as exc:
            logger.error("database statement cancelled: %s", exc)
            raise StoreUnavailableError("database statement timed out") from exc
        except pg_errors.InvalidTextRepresentation as exc:
            raise AccountNotFoundError() from exc
        except psycopg.OperationalError as exc:
            logger.error("database unavailable: %s", exc)
            raise StoreUnavailableError() from exc

    def insert_account(
        self, payload: RegisterAccountInput, password_hash: str, status: AccountStatus
    ) -> Account:
        """Insert a developer row; the email must be unused by non-deleted rows."""
        try:
            with self._cursor() as cur:
                cur.execute(
                    f"""
                    INSERT INTO developers (email, password_hash, full_name, company_name, status)
                    VALUES (%s, %s, %s, %s, %s)
                    RETURNING {_COLUMNS}
                    """,
                    (payload.email, password_hash, payload.full_name, payload.company_name, status.value),
                )
                row = cur.fetchone()
        except pg_errors.UniqueViolation as exc:
            raise UniqueConstraintError(exc.diag.constraint_name) from exc
        return self._map_record(row)

    def find_by_id(self, account_id: str) -> Account:
        with self._cursor() as cur:
            cur.execute(
                f"SELECT {_COLUMNS} FROM developers WHERE id = %s AND status <> 'deleted'",
                (_row_id(account_id),),
            )
            row = cur.fetchone()
        if row is None:
            raise AccountNotFoundError()
        return self._map_record(row)

    def find_by_email(self, email: str) -> Account:
        with self._cursor() as cur:
            cur.execute(
                f"SELECT {_COLUMNS} FROM developers WHERE email = %s AND status <> 'deleted'",
                (email,),
            )
            row = cur.fetchone()
        if row is None:
            raise AccountNotFoundError()
        return self._map_record(row)

    def find_all(self, account_filter: AccountFilter, page: int, page_size: int) -> list[Account]:
        """Return one page of developers, newest first."""
        clauses: list[str] = []
        params: list[Any] = []

        if account_filter.status is None:
            clauses.append("status <> 'deleted'")
        else:
            clauses.append("status = %s")
            params.append(account_filter.status.value)
        if account_filter.plan_tier:
            clauses.append("plan_tier = %s")
            params.append(account_filter.plan_tier)

        where_sql = " AND ".join(clauses)
        params.extend([page_size, (page - 1) * page_size])
        with self._cursor() as cur:
            cur.execute(
                f"""
                SELECT {_COLUMNS}
                FROM developers
                WHERE {where_sql}
                ORDER BY created_at DESC, id DESC
                LIMIT %s OFFSET %s
                """,
                params,
            )
            rows = cur.fetchall()
        return [self._map_record(row) for row in rows]

    def cas_update_password(self, account_id: str, expected_hash: str, new_hash: str) -> None:
        """Swap the password hash only while it still equals ``expected_hash``."""
        with self._cursor() as cur:
            cur.execute(
                """
                UPDATE developers
                SET password_hash = %s, updated_at = NOW()
                WHERE id = %s AND password_hash = %s AND status <> 'deleted'
                """,
                (new_hash, _row_id(account_id), expected_hash),
            )
            if cur.rowcount == 1:
                return
            cur.execute(
                "SELECT 1 FROM developers WHERE id = %s AND status <> 'deleted'",
                (_row_id(account_id),),
            )
            exists = cur.fetchone() is not None
        if not exists:
            raise AccountNotFoundError()
        raise StaleCredentialError()

    def reset_password(self, account_id: str, new_hash: str) -> None:
        self._execute_update(
            """
            UPDATE developers
            SET password_hash = %s, updated_at = NOW()
            WHERE id = %s AND status <> 'deleted'
            """,
            (new_hash, _row_id(account_id)),
        )

    def update_status(
        self, account_id: str, status: AccountStatus, from_statuses: Iterable[AccountStatus]
    ) -> None:
        """Move a row to ``status`` if it currently holds one of ``from_statuses``."""
        sources = [source.value for source in from_statuses]
        self._execute_update(
            """
            UPDATE developers
            SET status = %s, updated_at = NOW()
            WHERE id = %s AND status = ANY(%s)
            """,
            (status.value, _row_id(account_id), sources),
        )

    def mark_email_verified(self, account_id: str) -> None:
        self._execute_update(
            """
            UPDATE developers
            SET email_verified = TRUE, updated_at = NOW()
            WHERE id = %s AND status <> 'deleted'
            """,
            (_row_id(account_id),),
        )

    def update_profile(self, account_id: str, changes: dict[str, str]) -> Account:
        """Update whitelisted profile columns and return the refreshed account."""
        unknown = set(changes) - _PROFILE_COLUMNS
        if unknown:
            raise ValueError(f"not profile fields: {sorted(unknown)}")
        assignments = ", ".join(f"{column} = %s" for column in sorted(changes))
        params = [changes[column] for column in sorted(changes)]
        params.append(_row_id(account_id))
        with self._cursor() as cur:
            cur.execute(
                f"""
                UPDATE developers
                SET {assignments}, updated_at = NOW()
                WHERE id = %s AND status <> 'deleted'
                RETURNING {_COLUMNS}
                """,
                params,
            )
            row = cur.fetchone()
        if row is None:
            raise AccountNotFoundError()
        return self._map_record(row)

    def update_last_login(self, account_id: str, at: datetime) -> None:
        self._execute_update(
            """
            UPDATE developers
            SET last_login_at = %s, updated_at = NOW()
            WHERE id = %s AND status <> 'deleted'
            """,
            (at, _row_id(account_id)),
        )

    def merge_metadata(self, account_id: str, key: str, value: Any) -> None:
        """Merge a single key into the JSONB metadata bag."""
        self._execute_update(
            """
            UPDATE developers
            SET metadata = COALESCE(metadata, '{}'::jsonb) || jsonb_build_object(%s::text, %s::jsonb),
                updated_at = NOW()
            WHERE id = %s AND status <> 'deleted'
            """,
            (key, Json(value), _row_id(account_id)),
        )

    def hard_delete(self, account_id: str) -> None:
        self._execute_update("DELETE FROM developers WHERE id = %s", (_row_id(account_id),))

    def ping(self) -> bool:
        """Return ``True`` when the database answers a trivial query."""
        try:
            with self._cursor() as cur:
                cur.execute("SELECT 1")
                cur.fetchone()
        except StoreUnavailableError:
            return False
        return True

    def _execute_update(self, query: str, params: tuple[Any, ...]) -> None:
        with self._cursor() as cur:
            cur.execute(query, params)
            affected = cur.rowcount
        if affected == 0:
            raise AccountNotFoundError()

    def _map_record(self, row: tuple) -> Account:
        """Convert a raw database tuple into the domain ``Account`` dataclass."""
        return Account(
            account_id=row[0],
            email=row[1],
            password_hash=row[2],
            status=AccountStatus(row[3]),
            email_verified=row[4],
            plan_tier=row[5],
            created_at=row[6],
            updated_at=row[7],
            full_name=row[8],
            company_name=row[9],
            last_login_at=row[10],
            metadata=row[11] or {},
        )
