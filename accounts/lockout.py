"""Brute-force protection for the login flow.

The guard counts failed login attempts per email address.  Once an address
reaches the configured threshold every further attempt is rejected without
consulting the authenticator until the lockout window, measured from the most
recent failure, has elapsed.  A successful login clears the counter.

State lives in a :class:`LockoutStore`.  The default store keeps records in
process memory only; nothing is shared between processes and nothing survives
a restart.  Records older than the window are swept out of stores that
support it, at most once per window.
"""

from __future__ import annotations

import logging
import math
import threading
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import AsyncIterator, Callable, Dict, Optional, Protocol

import anyio

from .errors import InvalidCredentialsError, RateLimitedError
from .models import LoginResult

logger = logging.getLogger("accounts.lockout")

DEFAULT_MAX_ATTEMPTS = 5
DEFAULT_WINDOW = timedelta(minutes=30)


@dataclass(frozen=True)
class LockoutRecord:
    count: int
    timestamp: datetime


class LockoutStore(Protocol):
    def get(self, email: str) -> Optional[LockoutRecord]: ...

    def set(self, email: str, record: LockoutRecord) -> None: ...

    def delete(self, email: str) -> None: ...


class InMemoryLockoutStore:
    """Thread-safe dictionary of lockout records."""

    def __init__(self) -> None:
        self._records: Dict[str, LockoutRecord] = {}
        self._lock = threading.Lock()

    def get(self, email: str) -> Optional[LockoutRecord]:
        with self._lock:
            return self._records.get(email)

    def set(self, email: str, record: LockoutRecord) -> None:
        with self._lock:
            self._records[email] = record

    def delete(self, email: str) -> None:
        with self._lock:
            self._records.pop(email, None)

    def purge_expired(self, now: datetime, window: timedelta) -> int:
        """Drop records whose last failure is at least ``window`` old."""

        with self._lock:
            stale = [key for key, record in self._records.items() if now - record.timestamp >= window]
            for key in stale:
                del self._records[key]
        return len(stale)

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)


class CredentialChecker(Protocol):
    def check_credentials(self, email: str, password: str) -> Optional[LoginResult]: ...


@dataclass
class _KeyLock:
    lock: anyio.Lock
    users: int = 0


class LockoutGuard:
    """Gate login attempts behind a per-email failure counter."""

    def __init__(
        self,
        authenticator: CredentialChecker,
        *,
        store: Optional[LockoutStore] = None,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        window: timedelta = DEFAULT_WINDOW,
        clock: Optional[Callable[[], datetime]] = None,
        normalize_email: bool = False,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if window <= timedelta(0):
            raise ValueError("window must be positive")
        self._authenticator = authenticator
        self._store: LockoutStore = store if store is not None else InMemoryLockoutStore()
        self._max_attempts = max_attempts
        self._window = window
        self._clock = clock
        self._normalize_email = normalize_email
        self._locks: Dict[str, _KeyLock] = {}
        self._locks_guard = threading.Lock()
        self._last_purge: Optional[datetime] = None

    @property
    def store(self) -> LockoutStore:
        return self._store

    @property
    def max_attempts(self) -> int:
        return self._max_attempts

    @property
    def window(self) -> timedelta:
        return self._window

    def key_for(self, email: str) -> str:
        # Raw addresses are tracked as supplied unless normalisation is enabled,
        # so case variants of one address keep separate counters by default.
        if self._normalize_email:
            return email.strip().lower()
        return email

    def retry_after(self, email: str) -> int:
        """Return the number of seconds left in an active lockout, or 0."""

        record = self._store.get(self.key_for(email))
        if record is None or record.count < self._max_attempts:
            return 0
        remaining = self._window - (self._now() - record.timestamp)
        if remaining <= timedelta(0):
            return 0
        return max(1, math.ceil(remaining.total_seconds()))

    async def attempt_login(self, email: str, password: str) -> LoginResult:
        """Check credentials unless the address is locked out.

        Raises :class:`RateLimitedError` while the lockout window is active and
        :class:`InvalidCredentialsError` when the credentials do not match.
        Storage failures raised by the authenticator propagate unchanged and
        leave the counter untouched.
        """

        key = self.key_for(email)
        self._purge_expired()
        async with self._serialized(key):
            record = self._store.get(key)
            now = self._now()
            if record is not None and record.count >= self._max_attempts:
                if now - record.timestamp < self._window:
                    raise RateLimitedError(
                        "Too many failed login attempts. Please try again later.",
                        retry_after=self.retry_after(email),
                    )
                logger.info("Lockout window elapsed for %s; resetting failure counter", key)
                record = LockoutRecord(count=0, timestamp=now)
                self._store.set(key, record)
            elif record is not None and now - record.timestamp >= self._window:
                # Failures older than the window no longer count towards a lockout.
                record = None

            result = await anyio.to_thread.run_sync(
                self._authenticator.check_credentials, email, password
            )

            if result is None:
                count = (record.count if record is not None else 0) + 1
                self._store.set(key, LockoutRecord(count=count, timestamp=self._now()))
                if count >= self._max_attempts:
                    logger.warning("Locking out %s after %d failed login attempts", key, count)
                else:
                    logger.warning("Failed login attempt %d for %s", count, key)
                raise InvalidCredentialsError("Wrong email or password")

            self._store.delete(key)
            logger.info("User %s signed in", result.user_id)
            return result

    def _purge_expired(self) -> None:
        purge = getattr(self._store, "purge_expired", None)
        if purge is None:
            return
        now = self._now()
        if self._last_purge is not None and now - self._last_purge < self._window:
            return
        self._last_purge = now
        removed = purge(now, self._window)
        if removed:
            logger.debug("Purged %d expired lockout records", removed)

    @asynccontextmanager
    async def _serialized(self, key: str) -> AsyncIterator[None]:
        with self._locks_guard:
            entry = self._locks.get(key)
            if entry is None:
                entry = _KeyLock(lock=anyio.Lock())
                self._locks[key] = entry
            entry.users += 1
        try:
            async with entry.lock:
                yield
        finally:
            with self._locks_guard:
                entry.users -= 1
                if entry.users == 0:
                    self._locks.pop(key, None)

    def _now(self) -> datetime:
        if self._clock is not None:
            return self._clock()
        return datetime.now(timezone.utc)


__all__ = [
    "DEFAULT_MAX_ATTEMPTS",
    "DEFAULT_WINDOW",
    "InMemoryLockoutStore",
    "LockoutGuard",
    "LockoutRecord",
    "LockoutStore",
]
