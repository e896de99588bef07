"""Create a tracker account without starting the interactive console.

Settings come from the same YAML file and ``TRACKER_*`` variables the
service reads, so the configured password length applies here too.
"""
from __future__ import annotations

import argparse
import getpass
import sys
from dataclasses import replace
from pathlib import Path
from typing import Optional, Sequence, TextIO

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.config import TrackerSettings, load_settings
from app.database import Database, resolve_database_path

MAX_ATTEMPTS = 3


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Create a job application tracker account")
    parser.add_argument("name", help="Display name for the user")
    parser.add_argument("email", help="Unique email address for login")
    parser.add_argument(
        "--config",
        default=None,
        help="Path to a YAML settings file (defaults to TRACKER_CONFIG or config/tracker.yaml)",
    )
    parser.add_argument(
        "--db",
        dest="db_path",
        default=None,
        help="Override the database path from the settings file",
    )
    parser.add_argument(
        "--password-stdin",
        action="store_true",
        help="Read the password from the first line of standard input instead of prompting",
    )
    return parser.parse_args(argv)


def resolve_settings(args: argparse.Namespace) -> TrackerSettings:
    settings = load_settings(Path(args.config).expanduser() if args.config else None)
    if args.db_path:
        settings = replace(settings, database_path=resolve_database_path(args.db_path))
    return settings


def password_problem(password: str, min_length: int) -> Optional[str]:
    if len(password) < min_length:
        return f"Password must be at least {min_length} characters long."
    return None


def prompt_for_password(min_length: int) -> Optional[str]:
    for _ in range(MAX_ATTEMPTS):
        password = getpass.getpass(f"Password (min {min_length} characters): ")
        problem = password_problem(password, min_length)
        if problem:
            print(problem, file=sys.stderr)
            continue
        if password != getpass.getpass("Confirm password: "):
            print("Passwords do not match. Try again.", file=sys.stderr)
            continue
        return password
    return None


def read_password(stream: TextIO, min_length: int) -> Optional[str]:
    password = stream.readline().rstrip("\r\n")
    problem = password_problem(password, min_length)
    if problem:
        print(problem, file=sys.stderr)
        return None
    return password


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    try:
        settings = resolve_settings(args)
    except ValueError as exc:
        print(f"Invalid configuration: {exc}", file=sys.stderr)
        return 2

    min_length = settings.password_min_length
    if args.password_stdin:
        password = read_password(sys.stdin, min_length)
    else:
        password = prompt_for_password(min_length)
    if password is None:
        print("No account was created.", file=sys.stderr)
        return 1

    database = Database(settings.database_path)
    database.initialize()

    try:
        user = database.create_user(args.name, args.email, password)
    except ValueError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    print(f"Created user {user.id}: {user.name} <{user.email}> in {settings.database_path}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
