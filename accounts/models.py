"""Domain models for user accounts and transfers."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class User:
    """Public view of a user account stored in the accounts database."""

    id: int
    name: str
    email: str
    created_at: datetime


@dataclass(frozen=True)
class UserRecord:
    """Full user row including the hashed credential."""

    id: int
    name: str
    email: str
    password_hash: str
    created_at: datetime

    def to_user(self) -> User:
        return User(id=self.id, name=self.name, email=self.email, created_at=self.created_at)


@dataclass(frozen=True)
class Transfer:
    """A balance transfer between two users."""

    id: int
    from_user_id: int
    to_user_id: int
    amount: float
    timestamp: datetime


@dataclass(frozen=True)
class LoginResult:
    user_id: int
    name: str
    email: str


__all__ = ["LoginResult", "Transfer", "User", "UserRecord"]
