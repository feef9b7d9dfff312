"""Error taxonomy for the developer identity core.

Every failure raised by the domain, the security helpers, or the account store
derives from :class:`AccountError` and carries a ``kind`` so transport layers can
pick a response without inspecting messages.
"""

from __future__ import annotations


class AccountError(Exception):
    """Base class for all classified identity errors."""

    kind = "internal"
    default_message = "identity error"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.default_message)

    @property
    def message(self) -> str:
        return str(self)


class ConfigurationError(AccountError):
    kind = "configuration"
    default_message = "invalid configuration"


# validation


class ValidationError(AccountError):
    kind = "validation"
    default_message = "invalid input"


class InvalidEmailError(ValidationError):
    default_message = "invalid email format"


class ShortPasswordError(ValidationError):
    default_message = "password should be at least 8 characters long"


class WeakPasswordError(ValidationError):
    default_message = "password should include a letter and a number or symbol"


class PasswordTooLongError(ValidationError):
    default_message = "password should be at most 72 bytes long"


# not found


class AccountNotFoundError(AccountError):
    kind = "not_found"
    default_message = "developer not found"


# conflicts


class ConflictError(AccountError):
    kind = "conflict"
    default_message = "conflicting update"


class UniqueConstraintError(ConflictError):
    """Raised by the store when an insert violates a uniqueness constraint."""

    default_message = "unique constraint violated"

    def __init__(self, constraint: str | None, message: str | None = None) -> None:
        super().__init__(message or f"unique constraint violated: {constraint}")
        self.constraint = constraint


class EmailExistsError(ConflictError):
    default_message = "email already registered"


class StaleCredentialError(ConflictError):
    """Raised by the store when a compare-and-swap finds a different hash."""

    default_message = "stored password hash does not match expected value"


class PasswordConflictError(ConflictError):
    default_message = "password was changed concurrently"


# authentication


class AuthenticationError(AccountError):
    kind = "authentication"
    default_message = "authentication failed"


class InvalidCredentialsError(AuthenticationError):
    default_message = "invalid credentials"


class InvalidPasswordError(AuthenticationError):
    default_message = "invalid password"


class MissingCredentialsError(AuthenticationError):
    default_message = "missing authorization header"


class InvalidTokenError(AuthenticationError):
    default_message = "invalid token"


class ExpiredTokenError(AuthenticationError):
    default_message = "token has expired"


# authorization


class AuthorizationError(AccountError):
    kind = "authorization"
    default_message = "not allowed"


class AccountSuspendedError(AuthorizationError):
    default_message = "account suspended"


class ForbiddenError(AuthorizationError):
    default_message = "operation not permitted for this account"


# throttling / availability


class RateLimitedError(AccountError):
    kind = "rate_limited"
    default_message = "rate limited"

    def __init__(self, retry_after: int, message: str | None = None) -> None:
        super().__init__(message)
        self.retry_after = retry_after


class StoreUnavailableError(AccountError):
    kind = "unavailable"
    default_message = "account store unavailable"
