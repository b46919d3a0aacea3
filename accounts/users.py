"""User account operations exposed to the HTTP layer."""
from __future__ import annotations

import logging
from typing import Optional

from .authentication import PasswordHasher
from .database import Database
from .errors import DuplicateError, InvalidCredentialsError, InvalidInputError, NotFoundError
from .models import User
from .query import PaginationResult, UserQuery, list_users

logger = logging.getLogger("accounts.users")


class UserService:
    def __init__(
        self,
        database: Database,
        hasher: PasswordHasher,
        *,
        password_min_length: Optional[int] = None,
        password_max_length: Optional[int] = None,
    ) -> None:
        self._database = database
        self._hasher = hasher
        self._password_min_length = password_min_length
        self._password_max_length = password_max_length

    def list_users(self, query: UserQuery) -> PaginationResult:
        snapshot = self._database.list_users()
        return list_users(snapshot, query)

    def get_user(self, user_id: int) -> User:
        record = self._database.get_user(user_id)
        if record is None:
            raise NotFoundError("Unknown user")
        return record.to_user()

    def _check_password_policy(self, password: str) -> None:
        minimum = self._password_min_length
        maximum = self._password_max_length
        if minimum is not None and len(password) < minimum:
            raise InvalidInputError(f"Password must be at least {minimum} characters long")
        if maximum is not None and len(password) > maximum:
            raise InvalidInputError(f"Password must be at most {maximum} characters long")

    def email_is_registered(self, email: str) -> bool:
        return self._database.get_user_by_email(email) is not None

    def create_user(self, name: str, email: str, password: str, password_confirm: str) -> User:
        if password != password_confirm:
            raise InvalidInputError("Password confirmation mismatched")
        self._check_password_policy(password)
        if self.email_is_registered(email):
            raise DuplicateError("Email is already registered")

        user = self._database.create_user(name, email, self._hasher.hash(password))
        logger.info("Created user %s", user.id)
        return user

    def update_user(self, user_id: int, name: str, email: str) -> User:
        if self._database.get_user(user_id) is None:
            raise NotFoundError("Unknown user")

        holder = self._database.get_user_by_email(email)
        if holder is not None and holder.id != user_id:
            raise DuplicateError("Email is already registered")

        updated = self._database.update_user(user_id, name=name, email=email)
        if updated is None:
            raise NotFoundError("Unknown user")
        logger.info("Updated user %s", user_id)
        return updated

    def delete_user(self, user_id: int) -> None:
        if not self._database.delete_user(user_id):
            raise NotFoundError("Unknown user")
        logger.info("Deleted user %s", user_id)

    def change_password(
        self,
        user_id: int,
        password_old: str,
        password_new: str,
        password_confirm: str,
    ) -> None:
        if password_new != password_confirm:
            raise InvalidInputError("Password confirmation mismatched")
        self._check_password_policy(password_new)

        record = self._database.get_user(user_id)
        if record is None:
            raise NotFoundError("Unknown user")
        if not self._hasher.verify(password_old, record.password_hash):
            raise InvalidCredentialsError("Wrong password")

        if not self._database.set_password(user_id, self._hasher.hash(password_new)):
            raise NotFoundError("Unknown user")
        logger.info("Changed password for user %s", user_id)


__all__ = ["UserService"]
