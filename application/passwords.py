from __future__ import annotations

import hashlib
import secrets
from typing import Optional

from passlib.context import CryptContext
from passlib.exc import UnknownHashError


RESET_TOKEN_BYTES = 32


class Argon2PasswordHasher:
    """
    `PasswordHasher` backed by passlib's Argon2id implementation.

    passlib salts every hash and its `verify` runs in constant time with
    respect to the candidate password.
    """

    def __init__(self, context: Optional[CryptContext] = None) -> None:
        self._context = context or CryptContext(schemes=["argon2"], deprecated="auto")

    def hash(self, password: str) -> str:
        return self._context.hash(password)

    def verify(self, password: str, password_hash: str) -> bool:
        try:
            return self._context.verify(password, password_hash)
        except (UnknownHashError, ValueError):
            return False

    def needs_update(self, password_hash: str) -> bool:
        return self._context.needs_update(password_hash)


def generate_reset_token() -> str:
    return secrets.token_urlsafe(RESET_TOKEN_BYTES)


def hash_reset_token(token: str) -> str:
    # Tokens are high-entropy, so a plain SHA-256 is enough to keep the
    # stored form useless to anyone reading the table.
    return hashlib.sha256(token.encode()).hexdigest()
