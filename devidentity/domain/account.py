from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class AccountStatus(str, Enum):
    pending = "pending"
    active = "active"
    suspended = "suspended"
    deleted = "deleted"


# target status -> statuses a row may hold for the transition to apply
TRANSITIONS: dict[AccountStatus, frozenset[AccountStatus]] = {
    AccountStatus.active: frozenset({AccountStatus.pending, AccountStatus.active}),
    AccountStatus.suspended: frozenset({AccountStatus.pending, AccountStatus.active, AccountStatus.suspended}),
    AccountStatus.deleted: frozenset({AccountStatus.pending, AccountStatus.active, AccountStatus.suspended}),
}


def allowed_sources(target: AccountStatus) -> frozenset[AccountStatus]:
    """Return the statuses from which ``target`` may be entered."""
    return TRANSITIONS.get(target, frozenset())


@dataclass(slots=True)
class Account:
    """Aggregate root for a developer's identity and credentials."""

    account_id: str
    email: str
    password_hash: str = field(repr=False)
    status: AccountStatus
    email_verified: bool
    plan_tier: str
    created_at: datetime
    updated_at: datetime
    full_name: str | None = None
    company_name: str | None = None
    last_login_at: datetime | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def can_authenticate(self) -> bool:
        return self.status is AccountStatus.active
