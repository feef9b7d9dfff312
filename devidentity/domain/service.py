"""Account lifecycle service orchestrating credentials, storage and session tokens."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from .account import Account, AccountStatus, allowed_sources
from .contracts import (
    EMAIL_UNIQUE_CONSTRAINT,
    AccountFilter,
    AccountStore,
    RegisterAccountInput,
    UpdateProfileInput,
)
from .errors import (
    AccountError,
    AccountNotFoundError,
    AccountSuspendedError,
    EmailExistsError,
    InvalidCredentialsError,
    InvalidEmailError,
    InvalidPasswordError,
    InvalidTokenError,
    PasswordConflictError,
    StaleCredentialError,
    UniqueConstraintError,
)
from ..metrics import LOGIN_ATTEMPTS, REGISTRATIONS
from ..security.passwords import CredentialPolicy, validate_email, validate_password_strength
from ..security.tokens import TokenKind, TokenPair, TokenService

logger = logging.getLogger(__name__)


class AccountService:
    """Developer account workflows: registration, login, credential rotation, status changes."""

    def __init__(
        self,
        store: AccountStore,
        credentials: CredentialPolicy,
        tokens: TokenService,
        *,
        registration_status: AccountStatus = AccountStatus.active,
    ) -> None:
        """Store collaborators.

        ``registration_status`` decides whether new accounts may log in right
        away (``active``) or only after :meth:`verify_email` or :meth:`activate`
        (``pending``).
        """
        if registration_status not in (AccountStatus.active, AccountStatus.pending):
            raise ValueError(f"unsupported registration status: {registration_status}")
        self._store = store
        self._credentials = credentials
        self._tokens = tokens
        self._registration_status = registration_status

    # registration and lookups

    def register(self, payload: RegisterAccountInput) -> Account:
        """Validate, hash and persist a new developer account."""
        logger.debug("registering developer")
        if not validate_email(payload.email):
            REGISTRATIONS.labels(outcome="invalid").inc()
            raise InvalidEmailError()
        try:
            validate_password_strength(payload.password)
        except AccountError:
            REGISTRATIONS.labels(outcome="invalid").inc()
            raise

        password_hash = self._credentials.hash(payload.password)
        payload.password = ""

        try:
            account = self._store.insert_account(payload, password_hash, self._registration_status)
        except UniqueConstraintError as exc:
            if exc.constraint != EMAIL_UNIQUE_CONSTRAINT:
                raise
            REGISTRATIONS.labels(outcome="duplicate").inc()
            raise EmailExistsError() from exc

        REGISTRATIONS.labels(outcome="created").inc()
        logger.info("developer registered account_id=%s status=%s", account.account_id, account.status.value)
        return account

    def get_account(self, account_id: str) -> Account:
        return self._store.find_by_id(account_id)

    def get_account_by_email(self, email: str) -> Account:
        return self._store.find_by_email(email)

    def list_accounts(
        self, account_filter: AccountFilter | None = None, page: int = 1, page_size: int = 20
    ) -> list[Account]:
        """Return a page of accounts ordered newest first."""
        page = max(1, page)
        page_size = max(1, min(page_size, 100))
        return self._store.find_all(account_filter or AccountFilter(), page, page_size)

    def update_profile(self, account_id: str, changes: UpdateProfileInput) -> Account:
        """Apply profile changes. Status is deliberately not editable here."""
        fields = changes.changes()
        if not fields:
            return self._store.find_by_id(account_id)
        account = self._store.update_profile(account_id, fields)
        logger.debug("developer profile updated account_id=%s fields=%s", account_id, sorted(fields))
        return account

    # sessions

    def authenticate(self, email: str, password: str) -> TokenPair:
        """Check credentials and issue a token pair.

        Unknown emails, wrong passwords and ineligible statuses are all
        reported as :class:`InvalidCredentialsError`. A suspended account is
        reported as such, but only once its password has been verified.
        """
        try:
            account = self._store.find_by_email(email)
        except AccountNotFoundError:
            self._credentials.verify_dummy(password)
            LOGIN_ATTEMPTS.labels(outcome="invalid").inc()
            raise InvalidCredentialsError() from None

        if not self._credentials.verify(password, account.password_hash):
            LOGIN_ATTEMPTS.labels(outcome="invalid").inc()
            logger.debug("invalid password attempt account_id=%s", account.account_id)
            raise InvalidCredentialsError()
        if account.status is AccountStatus.suspended:
            LOGIN_ATTEMPTS.labels(outcome="suspended").inc()
            raise AccountSuspendedError()
        if not account.can_authenticate:
            LOGIN_ATTEMPTS.labels(outcome="ineligible").inc()
            logger.debug("login refused for status=%s account_id=%s", account.status.value, account.account_id)
            raise InvalidCredentialsError()

        pair = self._tokens.issue_pair(account.account_id, account.email)
        self._record_login(account.account_id)
        LOGIN_ATTEMPTS.labels(outcome="success").inc()
        logger.info("developer logged in account_id=%s", account.account_id)
        return pair

    def refresh_session(self, refresh_token: str) -> TokenPair:
        """Exchange a refresh token for a new pair after re-checking the account status.

        The presented refresh token is not invalidated; it remains usable until it expires.
        """
        claims = self._tokens.validate(refresh_token, kind=TokenKind.refresh)
        try:
            account = self._store.find_by_id(claims.account_id)
        except AccountNotFoundError:
            raise InvalidTokenError("account unavailable") from None

        if account.status is AccountStatus.suspended:
            raise AccountSuspendedError()
        if not account.can_authenticate:
            raise InvalidTokenError("account unavailable")

        logger.debug("session refreshed account_id=%s", account.account_id)
        return self._tokens.issue_pair(account.account_id, account.email)

    def _record_login(self, account_id: str) -> None:
        try:
            self._store.update_last_login(account_id, datetime.now(timezone.utc))
        except AccountError as exc:
            logger.warning("failed to record last login account_id=%s: %s", account_id, exc)

    # credentials

    def change_password(self, account_id: str, old_password: str, new_password: str) -> None:
        """Rotate a password, guarded by a compare-and-swap on the verified hash.

        Raises
        ------
        InvalidPasswordError
            ``old_password`` does not match the stored hash.
        PasswordConflictError
            The stored hash changed between verification and the write.
        """
        account = self._store.find_by_id(account_id)
        if not self._credentials.verify(old_password, account.password_hash):
            raise InvalidPasswordError()

        validate_password_strength(new_password)
        new_hash = self._credentials.hash(new_password)
        try:
            self._store.cas_update_password(account_id, account.password_hash, new_hash)
        except StaleCredentialError as exc:
            logger.info("concurrent password change detected account_id=%s", account_id)
            raise PasswordConflictError() from exc
        logger.info("developer password changed account_id=%s", account_id)

    def reset_password(self, account_id: str, new_password: str) -> None:
        """Overwrite the password unconditionally.

        Callers must already have authenticated the requester by other means.
        """
        validate_password_strength(new_password)
        self._store.reset_password(account_id, self._credentials.hash(new_password))
        logger.info("developer password reset account_id=%s", account_id)

    # metadata and status

    def merge_metadata(self, account_id: str, key: str, value: Any) -> None:
        self._store.merge_metadata(account_id, key, value)
        logger.debug("metadata merged account_id=%s key=%s", account_id, key)

    def verify_email(self, account_id: str) -> None:
        """Mark the email verified and promote a pending account to active."""
        self._store.mark_email_verified(account_id)
        account = self._store.find_by_id(account_id)
        if account.status is AccountStatus.pending:
            self._transition(account_id, AccountStatus.active)
        logger.info("developer email verified account_id=%s", account_id)

    def activate(self, account_id: str) -> None:
        self._transition(account_id, AccountStatus.active)
        logger.info("developer activated account_id=%s", account_id)

    def suspend(self, account_id: str) -> None:
        self._transition(account_id, AccountStatus.suspended)
        logger.info("developer suspended account_id=%s", account_id)

    def soft_delete(self, account_id: str) -> None:
        self._transition(account_id, AccountStatus.deleted)
        logger.info("developer soft deleted account_id=%s", account_id)

    def hard_delete(self, account_id: str) -> None:
        self._store.hard_delete(account_id)
        logger.info("developer purged account_id=%s", account_id)

    def _transition(self, account_id: str, target: AccountStatus) -> None:
        self._store.update_status(account_id, target, allowed_sources(target))
