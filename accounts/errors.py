"""Error kinds raised by the accounts service."""
from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    NOT_FOUND = "not_found"
    VALIDATION = "validation"
    DUPLICATE = "duplicate"
    INVALID_CREDENTIALS = "invalid_credentials"
    RATE_LIMITED = "rate_limited"
    COLLABORATOR_UNAVAILABLE = "collaborator_unavailable"


class AccountsError(RuntimeError):
    """Base class for failures the HTTP layer translates into responses."""

    kind: ErrorKind = ErrorKind.VALIDATION

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NotFoundError(AccountsError):
    """Raised when a user or transfer does not exist."""

    kind = ErrorKind.NOT_FOUND


class InvalidInputError(AccountsError):
    """Raised for malformed input such as a mismatched password confirmation."""

    kind = ErrorKind.VALIDATION


class DuplicateError(AccountsError):
    """Raised when an email address is already registered."""

    kind = ErrorKind.DUPLICATE


class InvalidCredentialsError(AccountsError):
    kind = ErrorKind.INVALID_CREDENTIALS


class RateLimitedError(AccountsError):
    """Raised while a login lockout window is active."""

    kind = ErrorKind.RATE_LIMITED

    def __init__(self, message: str, *, retry_after: int = 0) -> None:
        super().__init__(message)
        self.retry_after = retry_after


class CollaboratorUnavailableError(AccountsError):
    """Raised when storage or credential checks fail for non-business reasons."""

    kind = ErrorKind.COLLABORATOR_UNAVAILABLE


__all__ = [
    "AccountsError",
    "CollaboratorUnavailableError",
    "DuplicateError",
    "ErrorKind",
    "InvalidCredentialsError",
    "InvalidInputError",
    "NotFoundError",
    "RateLimitedError",
]
