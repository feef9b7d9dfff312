"""Issuing and validating signed session tokens."""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable

import jwt

from ..domain.errors import ExpiredTokenError, InvalidTokenError

ALGORITHM = "HS256"
DEFAULT_ACCESS_TTL_SECONDS = 15 * 60
DEFAULT_REFRESH_TTL_SECONDS = 7 * 24 * 60 * 60
_REQUIRED_CLAIMS = ["iss", "sub", "email", "iat", "exp", "kind"]


class TokenKind(str, Enum):
    access = "access"
    refresh = "refresh"


@dataclass(slots=True, frozen=True)
class SessionClaims:
    """Verified identity claims carried by a token."""

    account_id: str
    email: str
    issued_at: int
    expires_at: int
    kind: TokenKind
    token_id: str | None = None


@dataclass(slots=True)
class TokenPair:
    """Access/refresh tokens handed to a developer after authentication."""

    access_token: str
    access_expires_in: int
    refresh_token: str
    refresh_expires_in: int
    account_id: str
    email: str


class TokenService:
    """Stateless HS256 token issuer sharing one secret between both token kinds.

    Tokens are never recorded server side, so there is no revocation: logging
    out means the client discards its tokens, and a stolen refresh token stays
    usable until it expires.
    """

    def __init__(
        self,
        secret: str,
        *,
        issuer: str = "devidentity",
        access_ttl_seconds: int = DEFAULT_ACCESS_TTL_SECONDS,
        refresh_ttl_seconds: int = DEFAULT_REFRESH_TTL_SECONDS,
        leeway_seconds: int = 0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if not secret:
            raise ValueError("token signing secret must not be empty")
        self._secret = secret
        self._issuer = issuer
        self._access_ttl = access_ttl_seconds
        self._refresh_ttl = refresh_ttl_seconds
        self._leeway = leeway_seconds
        self._clock = clock

    @property
    def access_ttl_seconds(self) -> int:
        return self._access_ttl

    @property
    def refresh_ttl_seconds(self) -> int:
        return self._refresh_ttl

    def issue_pair(self, account_id: str, email: str) -> TokenPair:
        """Mint a fresh access/refresh pair for an authenticated account.

        Parameters
        ----------
        account_id:
            Account identifier placed in the ``sub`` claim.
        email:
            Email address the account authenticated with.

        Returns
        -------
        TokenPair
            Both encoded tokens together with their lifetimes in seconds.
        """
        now = int(self._clock())
        return TokenPair(
            access_token=self._encode(account_id, email, TokenKind.access, now, self._access_ttl),
            access_expires_in=self._access_ttl,
            refresh_token=self._encode(account_id, email, TokenKind.refresh, now, self._refresh_ttl),
            refresh_expires_in=self._refresh_ttl,
            account_id=account_id,
            email=email,
        )

    def validate(self, token: str, *, kind: TokenKind | None = None) -> SessionClaims:
        """Verify signature, issuer and expiry of ``token`` and return its claims.

        Parameters
        ----------
        token:
            Encoded token previously produced by :meth:`issue_pair`.
        kind:
            When given, tokens of the other kind are rejected as invalid.

        Raises
        ------
        ExpiredTokenError
            The token is correctly signed but past its expiry.
        InvalidTokenError
            The token is malformed, tampered with, from another issuer or of the wrong kind.
        """
        try:
            payload: dict[str, Any] = jwt.decode(
                token,
                self._secret,
                algorithms=[ALGORITHM],
                issuer=self._issuer,
                leeway=self._leeway,
                options={"require": _REQUIRED_CLAIMS, "verify_iat": False},
            )
        except jwt.ExpiredSignatureError as exc:
            raise ExpiredTokenError() from exc
        except jwt.PyJWTError as exc:
            raise InvalidTokenError() from exc

        try:
            claims = SessionClaims(
                account_id=str(payload["sub"]),
                email=str(payload["email"]),
                issued_at=int(payload["iat"]),
                expires_at=int(payload["exp"]),
                kind=TokenKind(payload["kind"]),
                token_id=payload.get("jti"),
            )
        except (TypeError, ValueError) as exc:
            raise InvalidTokenError() from exc

        if kind is not None and claims.kind is not kind:
            raise InvalidTokenError(f"expected {kind.value} token")
        return claims

    def _encode(self, subject: str, email: str, kind: TokenKind, now: int, ttl: int) -> str:
        payload: dict[str, Any] = {
            "iss": self._issuer,
            "sub": subject,
            "email": email,
            "kind": kind.value,
            "iat": now,
            "exp": now + ttl,
            "jti": uuid.uuid4().hex,
        }
        return jwt.encode(payload, self._secret, algorithm=ALGORITHM)
