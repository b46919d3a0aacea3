"""Password hashing and credential checks backing the login flow."""
from __future__ import annotations

import logging
from typing import Optional

from passlib.context import CryptContext

from .database import Database
from .models import LoginResult

logger = logging.getLogger("accounts.authentication")

_PBKDF2_ROUNDS = 600_000


class PasswordHasher:
    """Hash and verify passwords using a passlib context."""

    def __init__(self, *, rounds: int = _PBKDF2_ROUNDS) -> None:
        self._context = CryptContext(
            schemes=["pbkdf2_sha256"],
            deprecated="auto",
            pbkdf2_sha256__default_rounds=rounds,
        )

    def hash(self, password: str) -> str:
        if not password:
            raise ValueError("Password must not be empty")
        return self._context.hash(password)

    def verify(self, password: str, hashed: str) -> bool:
        if not hashed:
            return False
        try:
            return self._context.verify(password, hashed)
        except (ValueError, TypeError):
            return False


class Authenticator:
    """Check login credentials against the user store."""

    def __init__(self, database: Database, hasher: PasswordHasher) -> None:
        self._database = database
        self._hasher = hasher

    @property
    def hasher(self) -> PasswordHasher:
        return self._hasher

    def check_credentials(self, email: str, password: str) -> Optional[LoginResult]:
        """Return the login payload when the credentials match, otherwise ``None``."""

        record = self._database.get_user_by_email(email)
        if record is None:
            return None
        if not self._hasher.verify(password, record.password_hash):
            return None
        return LoginResult(user_id=record.id, name=record.name, email=record.email)


__all__ = ["Authenticator", "PasswordHasher"]
