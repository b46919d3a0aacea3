"""Register one account directly in the database, bypassing the HTTP API."""

from __future__ import annotations

import argparse
import os
import sys
from pathlib import Path
from typing import Sequence

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from accounts.database import Database, resolve_database_path  # noqa: E402
from accounts.errors import AccountsError  # noqa: E402
from main import _prompt_for_password, build_user_service  # noqa: E402


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Register an account in the accounts database")
    parser.add_argument("name")
    parser.add_argument("email")
    parser.add_argument("--db", dest="db_path", default=None, help="SQLite file (default: ACCOUNTS_DB_PATH)")
    parser.add_argument(
        "--password-stdin",
        action="store_true",
        help="Read the password from the first line of standard input instead of prompting",
    )
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)

    if args.password_stdin:
        password = sys.stdin.readline().rstrip("\r\n")
    else:
        password = _prompt_for_password()
    if not password:
        print("No password supplied; account not created.", file=sys.stderr)
        return 1

    database = Database(resolve_database_path(args.db_path or os.getenv("ACCOUNTS_DB_PATH")))
    database.initialize()

    try:
        user = build_user_service(database).create_user(
            args.name.strip(), args.email.strip(), password, password
        )
    except AccountsError as exc:
        print(f"Could not register {args.email}: {exc}", file=sys.stderr)
        return 1

    print(f"Registered #{user.id} {user.email}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
