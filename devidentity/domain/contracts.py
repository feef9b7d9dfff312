"""Domain-level request contracts and the storage protocol the service relies on."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterable, Protocol

from .account import Account, AccountStatus

EMAIL_UNIQUE_CONSTRAINT = "developers_email_live_key"


@dataclass(slots=True)
class RegisterAccountInput:
    """Raw registration fields; ``password`` is blanked once it has been hashed."""

    email: str
    password: str
    full_name: str | None = None
    company_name: str | None = None


@dataclass(slots=True)
class UpdateProfileInput:
    """Profile fields a developer may change. ``None`` leaves a field untouched."""

    full_name: str | None = None
    company_name: str | None = None
    plan_tier: str | None = None

    def changes(self) -> dict[str, str]:
        return {
            name: value
            for name, value in (
                ("full_name", self.full_name),
                ("company_name", self.company_name),
                ("plan_tier", self.plan_tier),
            )
            if value is not None
        }


@dataclass(slots=True)
class AccountFilter:
    """Listing filter. Without a status, deleted accounts are excluded."""

    status: AccountStatus | None = None
    plan_tier: str | None = None


class AccountStore(Protocol):
    """Durable account storage consumed by :class:`~devidentity.domain.service.AccountService`.

    Lookups and updates ignore rows whose status is ``deleted`` unless noted.
    Implementations raise :class:`~devidentity.domain.errors.StoreUnavailableError`
    when the backend cannot answer within its configured bounds.
    """

    def insert_account(
        self, payload: RegisterAccountInput, password_hash: str, status: AccountStatus
    ) -> Account:
        """Persist a new account; raises ``UniqueConstraintError`` on duplicates."""
        ...

    def find_by_id(self, account_id: str) -> Account:
        ...

    def find_by_email(self, email: str) -> Account:
        ...

    def find_all(self, account_filter: AccountFilter, page: int, page_size: int) -> list[Account]:
        """List accounts; a ``deleted`` status filter is the only way to see deleted rows."""
        ...

    def cas_update_password(self, account_id: str, expected_hash: str, new_hash: str) -> None:
        """Swap the hash only if it still equals ``expected_hash``.

        Raises ``AccountNotFoundError`` when the row is gone and
        ``StaleCredentialError`` when the stored hash differs.
        """
        ...

    def reset_password(self, account_id: str, new_hash: str) -> None:
        ...

    def update_status(
        self, account_id: str, status: AccountStatus, from_statuses: Iterable[AccountStatus]
    ) -> None:
        """Set ``status`` on a row currently holding one of ``from_statuses``."""
        ...

    def mark_email_verified(self, account_id: str) -> None:
        ...

    def update_profile(self, account_id: str, changes: dict[str, str]) -> Account:
        ...

    def update_last_login(self, account_id: str, at: datetime) -> None:
        ...

    def merge_metadata(self, account_id: str, key: str, value: Any) -> None:
        ...

    def hard_delete(self, account_id: str) -> None:
        """Remove the row regardless of status."""
        ...
