"""Credential policy: email syntax, password strength and bcrypt hashing."""

from __future__ import annotations

import logging
import string

import bcrypt
from email_validator import EmailNotValidError, validate_email as _validate_mailbox

from ..domain.errors import PasswordTooLongError, ShortPasswordError, WeakPasswordError

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 8
# bcrypt only consumes the first 72 bytes of its input
MAX_PASSWORD_BYTES = 72
_LETTERS = frozenset(string.ascii_letters)


def validate_email(candidate: str) -> bool:
    """Return ``True`` when ``candidate`` is a syntactically valid mailbox. No DNS lookups."""
    if not candidate:
        return False
    try:
        _validate_mailbox(candidate, check_deliverability=False)
    except EmailNotValidError:
        return False
    return True


def validate_password_strength(candidate: str) -> None:
    """Raise when ``candidate`` does not meet the password policy.

    A password must be at least eight bytes long once UTF-8 encoded and mix
    at least one ASCII letter with at least one character that is not a letter
    (digits and symbols count as the same class).

    Raises
    ------
    ShortPasswordError
        Fewer than eight UTF-8 bytes.
    WeakPasswordError
        Only letters, or no letters at all.
    PasswordTooLongError
        More than 72 bytes once UTF-8 encoded.
    """
    encoded_length = len(candidate.encode("utf-8"))
    if encoded_length < MIN_PASSWORD_LENGTH:
        raise ShortPasswordError()

    has_letter = False
    has_other = False
    for ch in candidate:
        if ch in _LETTERS:
            has_letter = True
        else:
            has_other = True
        if has_letter and has_other:
            break

    if not (has_letter and has_other):
        raise WeakPasswordError()
    if encoded_length > MAX_PASSWORD_BYTES:
        raise PasswordTooLongError()


class CredentialPolicy:
    """Produce and check salted bcrypt hashes with a tunable work factor."""

    def __init__(self, rounds: int = 12) -> None:
        self._rounds = rounds
        # fixed hash used to spend comparable time on lookups that found no account
        self._dummy_hash = bcrypt.hashpw(b"placeholder-password-1", bcrypt.gensalt(rounds))

    @property
    def rounds(self) -> int:
        return self._rounds

    def hash(self, plaintext: str) -> str:
        """Return a bcrypt hash of ``plaintext`` with a fresh random salt."""
        hashed = bcrypt.hashpw(plaintext.encode("utf-8"), bcrypt.gensalt(self._rounds))
        return hashed.decode("utf-8")

    def verify(self, plaintext: str, hashed: str) -> bool:
        """Compare ``plaintext`` with ``hashed``; malformed hashes yield ``False``."""
        try:
            return bcrypt.checkpw(plaintext.encode("utf-8"), hashed.encode("utf-8"))
        except (ValueError, TypeError):
            logger.debug("password verification against malformed hash")
            return False

    def verify_dummy(self, plaintext: str) -> None:
        bcrypt.checkpw(plaintext.encode("utf-8")[:MAX_PASSWORD_BYTES], self._dummy_hash)
