"""Command-line interface for the accounts service."""

from __future__ import annotations
import argparse
import logging
import os
import sys
from getpass import getpass
from typing import Sequence

import httpx

from accounts.authentication import PasswordHasher
from accounts.config import load_settings
from accounts.database import Database, resolve_database_path
from accounts.errors import AccountsError
from accounts.users import UserService

logger = logging.getLogger("accounts.main")

_DEFAULT_SERVICE_URL = "http://localhost:8000"


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Accounts service utilities")
    subparsers = parser.add_subparsers(dest="command")

    parser.set_defaults(command="serve")

    subparsers.add_parser("init-db", help="Initialise the accounts database")

    serve_parser = subparsers.add_parser("serve", help="Start the HTTP accounts service")
    serve_parser.add_argument("--host", default="0.0.0.0", help="Bind address for the API")
    serve_parser.add_argument(
        "--port",
        type=int,
        default=8000,
        help="Port for the HTTP API (default: 8000)",
    )

    admin_parser = subparsers.add_parser(
        "admin", help="Launch the interactive administration console"
    )
    admin_parser.add_argument(
        "--service-url",
        default=None,
        help="Base URL of a running accounts service (default: http://localhost:8000)",
    )

    args_list = list(argv) if argv is not None else sys.argv[1:]
    known_commands = {"serve", "admin", "init-db"}

    if not args_list:
        args_list = ["serve"]
    else:
        first = args_list[0]
        if first in ("-h", "--help"):
            return parser.parse_args(args_list)
        if first not in known_commands:
            if any(flag in args_list for flag in ("-h", "--help")):
                return parser.parse_args(args_list)
            args_list = ["serve", *args_list]

    return parser.parse_args(args_list)


def _initialise_database() -> Database:
    db_path = resolve_database_path(os.getenv("ACCOUNTS_DB_PATH"))
    database = Database(db_path)
    database.initialize()
    logger.info("Database initialised at %s", db_path)
    return database


def build_user_service(database: Database) -> UserService:
    settings = load_settings()
    return UserService(
        database,
        PasswordHasher(),
        password_min_length=settings.password_min_length,
        password_max_length=settings.password_max_length,
    )


def _serve(*, database: Database, host: str, port: int) -> None:
    from accounts.api import create_app
    import uvicorn

    logger.info("Starting accounts API on http://%s:%s", host, port)

    app = create_app(database=database)
    uvicorn.run(app, host=host, port=port, log_level="info")


def _run_admin_cli(database: Database, *, default_service_url: str | None = None) -> None:
    """Provide an interactive management console for administrators."""

    service_url = default_service_url or _DEFAULT_SERVICE_URL
    service = build_user_service(database)

    print("Accounts Service Administration Console")
    print("Press Ctrl+C at any time to exit.\n")

    try:
        while True:
            print("Select an option:")
            print("  1) List all users")
            print("  2) Add a new user")
            print("  3) Search users on a running service")
            print("  4) Exit")

            choice = input("Enter choice [1-4]: ").strip()

            if choice == "1":
                _list_users(database)
            elif choice == "2":
                _add_user(service)
            elif choice == "3":
                _search_remote_users(service_url)
            elif choice == "4":
                print("Goodbye!")
                return
            else:
                print("Invalid selection. Please choose a number from the menu.\n")

            print()
    except KeyboardInterrupt:
        print("\nExiting administration console.")


def _list_users(database: Database) -> None:
    users = database.list_users()
    if not users:
        print("No users are currently registered.")
        return

    print(f"{len(users)} user(s) found:")
    print(f"{'ID':>4}  {'Name':<24}  {'Email':<32}  Created")
    print("-" * 80)
    for user in users:
        created = user.created_at.strftime("%Y-%m-%d %H:%M:%S %Z")
        print(f"{user.id:>4}  {user.name:<24}  {user.email:<32}  {created}")


def _add_user(service: UserService) -> None:
    print("\nCreate a new user (leave the name blank to cancel).")
    name = input("Name: ").strip()
    if not name:
        print("User creation cancelled.")
        return

    email = input("Email address: ").strip()
    if not email:
        print("An email address is required.")
        return

    password = _prompt_for_password()
    if password is None:
        print("Aborted creating user.")
        return

    try:
        user = service.create_user(name, email, password, password)
    except AccountsError as exc:
        print(f"Failed to create user: {exc}")
        return

    print(f"Created user #{user.id}: {user.name} <{user.email}>")


def _prompt_for_password() -> str | None:
    settings = load_settings()
    minimum = settings.password_min_length
    maximum = settings.password_max_length
    for _ in range(3):
        password = getpass(f"Password ({minimum}-{maximum} characters): ")
        if not minimum <= len(password) <= maximum:
            print("Password length is out of range. Please try again.")
            continue
        confirmation = getpass("Confirm password: ")
        if password != confirmation:
            print("Passwords do not match. Please try again.")
            continue
        return password
    return None


def _search_remote_users(base_url: str) -> None:
    email = os.getenv("ACCOUNTS_CLI_EMAIL")
    password = os.getenv("ACCOUNTS_CLI_PASSWORD")
    if not email or not password:
        print(
            "Set ACCOUNTS_CLI_EMAIL and ACCOUNTS_CLI_PASSWORD before querying a running service."
        )
        return

    search = input("Search (e.g. name:ann, leave blank for all): ").strip()
    sort = input("Sort (e.g. email:asc, leave blank for none): ").strip()
    params = {key: value for key, value in (("search", search), ("sort", sort)) if value}

    endpoint = base_url.rstrip("/") + "/users"

    try:
        response = httpx.get(endpoint, params=params, auth=(email, password), timeout=10.0)
    except httpx.HTTPError as exc:
        print(f"Failed to contact accounts service: {exc}")
        return

    if response.status_code in (401, 403):
        print(f"Authentication failed ({response.status_code}): {response.text.strip()}")
        return
    if response.status_code != 200:
        print(f"Service responded with {response.status_code}: {response.text.strip()}")
        return

    try:
        payload = response.json()
    except ValueError:
        print("Service returned an unexpected response format.")
        return

    users = payload.get("data", [])
    if not users:
        print("No users matched.")
        return

    print(f"Found {payload.get('count', len(users))} user(s):")
    for user in users:
        print(f"- #{user.get('id')} {user.get('name')} <{user.get('email')}>")


def main(argv: Sequence[str] | None = None) -> None:
    """Entry point for CLI usage."""

    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(message)s")

    args = _parse_args(argv)
    database = _initialise_database()

    if args.command == "serve":
        _serve(database=database, host=args.host, port=args.port)
    elif args.command == "admin":
        _run_admin_cli(database, default_service_url=args.service_url)
    elif args.command == "init-db":
        print("Database initialisation complete.")


if __name__ == "__main__":
    main()
