"""Command-line interface for the job application tracker service."""

from __future__ import annotations

import argparse
import logging
import os
import sys
from getpass import getpass
from pathlib import Path
from typing import Sequence

from app.config import TrackerSettings, load_settings
from app.database import Database

logger = logging.getLogger("jobtracker.main")


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Job application tracker utilities")
    parser.add_argument(
        "--config",
        default=None,
        help="Path to a YAML settings file (defaults to TRACKER_CONFIG or config/tracker.yaml)",
    )
    subparsers = parser.add_subparsers(dest="command")

    parser.set_defaults(command="serve")

    subparsers.add_parser("init-db", help="Initialise the tracker database")

    serve_parser = subparsers.add_parser("serve", help="Start the HTTP service")
    serve_parser.add_argument("--host", default="127.0.0.1", help="Bind address for the API")
    serve_parser.add_argument(
        "--port",
        type=int,
        default=8000,
        help="Port for the HTTP API (default: 8000)",
    )

    subparsers.add_parser("admin", help="Launch the interactive account console")

    args_list = list(argv) if argv is not None else sys.argv[1:]
    known_commands = {"serve", "admin", "init-db"}

    global_args: list[str] = []
    while len(args_list) >= 2 and args_list[0] == "--config":
        global_args.extend(args_list[:2])
        args_list = args_list[2:]

    if not args_list:
        args_list = ["serve"]
    else:
        first = args_list[0]
        if first in ("-h", "--help"):
            return parser.parse_args(global_args + args_list)
        if first not in known_commands:
            if any(flag in args_list for flag in ("-h", "--help")):
                return parser.parse_args(global_args + args_list)
            args_list = ["serve", *args_list]

    return parser.parse_args(global_args + args_list)


def _load_settings(config: str | None) -> TrackerSettings:
    return load_settings(Path(config).expanduser() if config else None)


def _initialise_database(settings: TrackerSettings) -> Database:
    database = Database(settings.database_path)
    database.initialize()
    logger.info("Database initialised at %s", settings.database_path)
    return database


def _serve(*, database: Database, settings: TrackerSettings, host: str, port: int) -> None:
    from app.service import create_app
    import uvicorn

    logger.info("Starting tracker API on http://%s:%s", host, port)
    app = create_app(database=database, settings=settings)
    uvicorn.run(app, host=host, port=port, log_level=settings.log_level.lower())


def _run_admin_cli(database: Database, *, password_min_length: int) -> None:
    """Provide an interactive account console for operators."""

    print("Job Application Tracker Administration Console")
    print("Press Ctrl+C at any time to exit.\n")

    try:
        while True:
            print("Select an option:")
            print("  1) List all users")
            print("  2) Add a new user")
            print("  3) Delete a user and their applications")
            print("  4) Exit")

            choice = input("Enter choice [1-4]: ").strip()

            if choice == "1":
                _list_users(database)
            elif choice == "2":
                _add_user(database, password_min_length)
            elif choice == "3":
                _delete_user(database)
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
    print(f"{'ID':<36}  {'Name':<24}  {'Email':<32}  Created")
    print("-" * 110)
    for user in users:
        created = user.created_at.strftime("%Y-%m-%d %H:%M:%S %Z")
        email = user.email or "<no email>"
        print(f"{user.id:<36}  {user.name:<24}  {email:<32}  {created}")


def _add_user(database: Database, password_min_length: int) -> None:
    print("\nCreate a new user (leave the name blank to cancel).")
    name = input("Name: ").strip()
    if not name:
        print("User creation cancelled.")
        return

    email = input("Email address: ").strip() or None

    password = _prompt_for_password(password_min_length)
    if password is None:
        print("Aborted creating user.")
        return

    try:
        user = database.create_user(name, email, password)
    except ValueError as exc:
        print(f"Failed to create user: {exc}")
        return

    print(f"Created user {user.id}: {user.name} <{user.email or 'no email set'}>")


def _delete_user(database: Database) -> None:
    email = input("Email address of the user to delete: ").strip()
    if not email:
        print("Deletion cancelled.")
        return

    user = database.get_user_by_email(email)
    if user is None:
        print(f"No user is registered with {email}.")
        return

    confirm = input(f"Delete {user.name} <{user.email}> and all of their applications? [y/N]: ")
    if confirm.strip().lower() not in {"y", "yes"}:
        print("Deletion cancelled.")
        return

    if database.delete_user(user.id):
        print(f"Deleted user {user.id}.")
    else:
        print("User could not be deleted.")


def _prompt_for_password(min_length: int) -> str | None:
    for _ in range(3):
        password = getpass(f"Password (min {min_length} characters): ")
        if len(password) < min_length:
            print("Password is too short. Please try again.")
            continue
        confirm = getpass("Confirm password: ")
        if password != confirm:
            print("Passwords do not match. Please try again.")
            continue
        return password
    return None


def main(argv: Sequence[str] | None = None) -> None:
    """Entry point for CLI usage."""

    args = _parse_args(argv)
    settings = _load_settings(args.config or os.getenv("TRACKER_CONFIG"))

    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    database = _initialise_database(settings)

    if args.command == "serve":
        _serve(database=database, settings=settings, host=args.host, port=args.port)
    elif args.command == "admin":
        _run_admin_cli(database, password_min_length=settings.password_min_length)
    elif args.command == "init-db":
        print("Database initialisation complete.")


if __name__ == "__main__":
    main()
