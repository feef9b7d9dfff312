"""Bearer token gate applied to authenticated requests."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from ..domain.errors import ExpiredTokenError, InvalidTokenError, MissingCredentialsError
from ..metrics import TOKEN_REJECTIONS
from .tokens import TokenKind, TokenService

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class SessionIdentity:
    """Identity attached to a request once its bearer token checks out."""

    account_id: str
    email: str


class SessionGate:
    """Validate ``Authorization: Bearer`` headers against the token service.

    Every request is verified independently; nothing is cached between calls.
    """

    def __init__(self, tokens: TokenService) -> None:
        self._tokens = tokens

    def authenticate(self, authorization: str | None) -> SessionIdentity:
        """Return the identity for a bearer header or raise an authentication error."""
        if not authorization:
            TOKEN_REJECTIONS.labels(reason="missing").inc()
            raise MissingCredentialsError()

        parts = authorization.split(" ")
        if len(parts) != 2 or parts[0].lower() != "bearer" or not parts[1]:
            TOKEN_REJECTIONS.labels(reason="malformed").inc()
            raise MissingCredentialsError("invalid authorization header format")

        try:
            claims = self._tokens.validate(parts[1], kind=TokenKind.access)
        except ExpiredTokenError:
            TOKEN_REJECTIONS.labels(reason="expired").inc()
            raise
        except InvalidTokenError:
            TOKEN_REJECTIONS.labels(reason="invalid").inc()
            logger.debug("rejected bearer token")
            raise

        return SessionIdentity(account_id=claims.account_id, email=claims.email)
