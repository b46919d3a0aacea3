"""SQLite-backed persistence for users and transfers."""
from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator, List, Optional

from .errors import CollaboratorUnavailableError, DuplicateError
from .models import Transfer, User, UserRecord

logger = logging.getLogger("accounts.database")


def _ensure_directory(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)


def resolve_database_path(env_value: Optional[str]) -> Path:
    """Resolve the on-disk path for the application database."""

    if env_value:
        return Path(env_value).expanduser().resolve(strict=False)
    base_dir = Path(__file__).resolve().parent.parent / "data"
    return (base_dir / "accounts.sqlite3").resolve(strict=False)


def _current_timestamp() -> datetime:
    return datetime.now(timezone.utc)


def _serialize_datetime(value: datetime) -> str:
    return value.isoformat()


def _parse_datetime(value: str) -> datetime:
    return datetime.fromisoformat(value)


def normalize_email(email: str) -> str:
    return email.strip().lower()


class Database:
    """Simple wrapper around SQLite for persisting users and transfers."""

    def __init__(self, path: Path) -> None:
        _ensure_directory(path)
        self._path = path

    @property
    def path(self) -> Path:
        return self._path

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    @contextmanager
    def _session(self) -> Iterator[sqlite3.Connection]:
        """Open a transaction and translate driver failures into service errors."""

        try:
            conn = self._connect()
        except sqlite3.Error as exc:
            logger.exception("Unable to open database at %s", self._path)
            raise CollaboratorUnavailableError("User storage is unavailable") from exc

        try:
            with conn:
                yield conn
        except sqlite3.IntegrityError as exc:
            if "email" in str(exc):
                raise DuplicateError("Email is already registered") from exc
            raise CollaboratorUnavailableError(f"User storage rejected the request: {exc}") from exc
        except sqlite3.Error as exc:
            logger.exception("Database operation failed")
            raise CollaboratorUnavailableError("User storage is unavailable") from exc
        finally:
            conn.close()

    def initialize(self) -> None:
        """Create the required tables if they do not already exist."""

        with self._session() as conn:
            conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS users (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    name TEXT NOT NULL,
                    email TEXT NOT NULL UNIQUE,
                    password_hash TEXT NOT NULL,
                    created_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS transfers (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    from_user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
                    to_user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
                    amount REAL NOT NULL,
                    timestamp TEXT NOT NULL
                );

                CREATE INDEX IF NOT EXISTS idx_transfers_from_user_id ON transfers(from_user_id);
                CREATE INDEX IF NOT EXISTS idx_transfers_to_user_id ON transfers(to_user_id);
                """
            )

    # ------------------------------------------------------------------
    # User management
    # ------------------------------------------------------------------
    def list_users(self) -> List[UserRecord]:
        """Return a snapshot of every stored user in insertion order."""

        with self._session() as conn:
            rows = conn.execute("SELECT * FROM users ORDER BY id").fetchall()
        return [self._row_to_user_record(row) for row in rows]

    def get_user(self, user_id: int) -> Optional[UserRecord]:
        with self._session() as conn:
            row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
        if row is None:
            return None
        return self._row_to_user_record(row)

    def get_user_by_email(self, email: str) -> Optional[UserRecord]:
        with self._session() as conn:
            row = conn.execute(
                "SELECT * FROM users WHERE email = ?",
                (normalize_email(email),),
            ).fetchone()
        if row is None:
            return None
        return self._row_to_user_record(row)

    def create_user(self, name: str, email: str, password_hash: str) -> User:
        """Insert a user whose password has already been hashed."""

        if not password_hash:
            raise ValueError("Password hash must not be empty")

        created_at = _current_timestamp()
        normalized_email = normalize_email(email)

        with self._session() as conn:
            cursor = conn.execute(
                """
                INSERT INTO users (name, email, password_hash, created_at)
                VALUES (?, ?, ?, ?)
                """,
                (name, normalized_email, password_hash, _serialize_datetime(created_at)),
            )
            user_id = cursor.lastrowid

        return User(id=int(user_id), name=name, email=normalized_email, created_at=created_at)

    def update_user(self, user_id: int, *, name: str, email: str) -> Optional[User]:
        """Update the display name/email address for an existing user."""

        with self._session() as conn:
            cursor = conn.execute(
                "UPDATE users SET name = ?, email = ? WHERE id = ?",
                (name, normalize_email(email), user_id),
            )
            if cursor.rowcount == 0:
                return None

        refreshed = self.get_user(user_id)
        if refreshed is None:
            return None
        return refreshed.to_user()

    def delete_user(self, user_id: int) -> bool:
        with self._session() as conn:
            cursor = conn.execute("DELETE FROM users WHERE id = ?", (user_id,))
            return cursor.rowcount > 0

    def set_password(self, user_id: int, password_hash: str) -> bool:
        if not password_hash:
            raise ValueError("Password hash must not be empty")
        with self._session() as conn:
            cursor = conn.execute(
                "UPDATE users SET password_hash = ? WHERE id = ?",
                (password_hash, user_id),
            )
            return cursor.rowcount > 0

    # ------------------------------------------------------------------
    # Transfer management
    # ------------------------------------------------------------------
    def list_transfers(self) -> List[Transfer]:
        with self._session() as conn:
            rows = conn.execute("SELECT * FROM transfers ORDER BY id").fetchall()
        return [self._row_to_transfer(row) for row in rows]

    def get_transfer(self, transfer_id: int) -> Optional[Transfer]:
        with self._session() as conn:
            row = conn.execute("SELECT * FROM transfers WHERE id = ?", (transfer_id,)).fetchone()
        if row is None:
            return None
        return self._row_to_transfer(row)

    def create_transfer(self, from_user_id: int, to_user_id: int, amount: float) -> Transfer:
        timestamp = _current_timestamp()
        with self._session() as conn:
            cursor = conn.execute(
                """
                INSERT INTO transfers (from_user_id, to_user_id, amount, timestamp)
                VALUES (?, ?, ?, ?)
                """,
                (from_user_id, to_user_id, float(amount), _serialize_datetime(timestamp)),
            )
            transfer_id = cursor.lastrowid

        return Transfer(
            id=int(transfer_id),
            from_user_id=from_user_id,
            to_user_id=to_user_id,
            amount=float(amount),
            timestamp=timestamp,
        )

    def update_transfer(self, transfer_id: int, *, amount: float) -> Optional[Transfer]:
        with self._session() as conn:
            cursor = conn.execute(
                "UPDATE transfers SET amount = ? WHERE id = ?",
                (float(amount), transfer_id),
            )
            if cursor.rowcount == 0:
                return None
        return self.get_transfer(transfer_id)

    def delete_transfer(self, transfer_id: int) -> bool:
        with self._session() as conn:
            cursor = conn.execute("DELETE FROM transfers WHERE id = ?", (transfer_id,))
            return cursor.rowcount > 0

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _row_to_user_record(self, row: sqlite3.Row) -> UserRecord:
        return UserRecord(
            id=int(row["id"]),
            name=str(row["name"]),
            email=str(row["email"]),
            password_hash=str(row["password_hash"]),
            created_at=_parse_datetime(str(row["created_at"])),
        )

    def _row_to_transfer(self, row: sqlite3.Row) -> Transfer:
        return Transfer(
            id=int(row["id"]),
            from_user_id=int(row["from_user_id"]),
            to_user_id=int(row["to_user_id"]),
            amount=float(row["amount"]),
            timestamp=_parse_datetime(str(row["timestamp"])),
        )


__all__ = ["Database", "normalize_email", "resolve_database_path"]
