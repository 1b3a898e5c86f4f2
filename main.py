"""Command-line interface for the user management service."""

from __future__ import annotations
import argparse
import logging
import os
import sys
from getpass import getpass
from pathlib import Path
from typing import Sequence


def _running_in_virtualenv() -> bool:
    """Return ``True`` when the current interpreter is executing inside a venv."""

    base_prefix = getattr(sys, "base_prefix", sys.prefix)
    return sys.prefix != base_prefix


def _bootstrap_virtualenv() -> None:
    """Re-exec the script using the bundled virtualenv interpreter when available."""

    if _running_in_virtualenv():
        return

    root = Path(__file__).resolve().parent
    venv_dir = root / ".venv"
    if not venv_dir.is_dir():
        return

    candidates = (
        venv_dir / "bin" / "python",
        venv_dir / "bin" / "python3",
        venv_dir / "Scripts" / "python.exe",
        venv_dir / "Scripts" / "python",
    )

    script = str(Path(__file__).resolve())
    for candidate in candidates:
        if candidate.exists():
            os.execv(str(candidate), [str(candidate), script, *sys.argv[1:]])


if __name__ == "__main__":
    _bootstrap_virtualenv()

from userapp.api import build_service
from userapp.config import Settings, load_settings
from userapp.database import Database
from userapp.errors import UserAppError
from userapp.passwords import is_valid
from userapp.service import UserService

logger = logging.getLogger("userapp.main")


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="User management utilities")
    parser.add_argument(
        "--config",
        default=None,
        help="Path to a YAML settings file (defaults to USERAPP_CONFIG or config/userapp.yaml)",
    )
    subparsers = parser.add_subparsers(dest="command")

    parser.set_defaults(command="serve")

    subparsers.add_parser("init-db", help="Initialise the user database")

    serve_parser = subparsers.add_parser("serve", help="Start the HTTP service")
    serve_parser.add_argument("--host", default="127.0.0.1", help="Bind address for the API")
    serve_parser.add_argument(
        "--port",
        type=int,
        default=8000,
        help="Port for the HTTP API (default: 8000)",
    )

    create_parser = subparsers.add_parser("create-user", help="Register a new user")
    create_parser.add_argument("login", help="Unique login name")
    create_parser.add_argument("firstname", help="First name")
    create_parser.add_argument("lastname", help="Last name")
    create_parser.add_argument("email", help="Unique email address")

    subparsers.add_parser("list-users", help="List active users")

    delete_parser = subparsers.add_parser("delete-user", help="Soft-delete a user")
    delete_parser.add_argument("user_id", type=int, help="Id of the user to delete")

    args_list = list(argv) if argv is not None else sys.argv[1:]
    known_commands = {"serve", "init-db", "create-user", "list-users", "delete-user"}

    # Global options may precede the subcommand.
    prefix: list[str] = []
    while len(args_list) >= 2 and args_list[0] == "--config":
        prefix.extend(args_list[:2])
        args_list = args_list[2:]

    if not args_list:
        args_list = ["serve"]
    else:
        first = args_list[0]
        if first in ("-h", "--help"):
            return parser.parse_args([*prefix, *args_list])
        if first not in known_commands:
            if any(flag in args_list for flag in ("-h", "--help")):
                return parser.parse_args([*prefix, *args_list])
            args_list = ["serve", *args_list]

    return parser.parse_args([*prefix, *args_list])


def _load_settings(config: str | None) -> Settings:
    return load_settings(Path(config).expanduser() if config else None)


def _initialise_database(settings: Settings) -> Database:
    database = Database(settings.database_path)
    database.initialize()
    logger.info("Database initialised at %s", settings.database_path)
    return database


def _serve(*, settings: Settings, service: UserService, host: str, port: int) -> None:
    from userapp.api import create_app
    import uvicorn

    logger.info("Starting user management API on http://%s:%s", host, port)

    app = create_app(service=service, settings=settings)
    uvicorn.run(app, host=host, port=port, log_level=settings.log_level.lower())


def _prompt_for_password() -> str | None:
    for _ in range(3):
        password = getpass("Password: ")
        if not is_valid(password):
            print(
                "Password must have at least 8 characters and include numbers, "
                "lowercase, and uppercase letters."
            )
            continue
        confirmation = getpass("Confirm password: ")
        if password != confirmation:
            print("Passwords do not match. Please try again.")
            continue
        return password
    return None


def _create_user(service: UserService, args: argparse.Namespace) -> int:
    password = _prompt_for_password()
    if password is None:
        print("Aborted creating user.", file=sys.stderr)
        return 1

    try:
        user_id = service.register(
            {
                "login": args.login,
                "firstname": args.firstname,
                "lastname": args.lastname,
                "email": args.email,
                "password": password,
            }
        )
    except UserAppError as exc:
        print(f"Error: {exc.message}", file=sys.stderr)
        return 1

    print(f"Created user #{user_id}: {args.login} <{args.email}>")
    return 0


def _list_users(service: UserService) -> int:
    users = service.list_active()
    if not users:
        print("No users are currently registered.")
        return 0

    print(f"{len(users)} user(s) found:")
    print(f"{'ID':>4}  {'Login':<20}  {'Name':<28}  Email")
    print("-" * 80)
    for user in users:
        name = f"{user.firstname} {user.lastname}"
        print(f"{user.id:>4}  {user.login:<20}  {name:<28}  {user.email}")
    return 0


def _delete_user(service: UserService, user_id: int) -> int:
    try:
        service.delete(user_id)
    except UserAppError as exc:
        print(f"Error: {exc.message}", file=sys.stderr)
        return 1
    print(f"User with id {user_id} has been deleted.")
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point for CLI usage."""

    args = _parse_args(argv)
    try:
        settings = _load_settings(args.config)
    except FileNotFoundError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(message)s",
    )

    database = _initialise_database(settings)

    if args.command == "init-db":
        print("Database initialisation complete.")
        return 0

    service = build_service(settings, database=database)

    if args.command == "serve":
        _serve(settings=settings, service=service, host=args.host, port=args.port)
        return 0
    if args.command == "create-user":
        return _create_user(service, args)
    if args.command == "list-users":
        return _list_users(service)
    if args.command == "delete-user":
        return _delete_user(service, args.user_id)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
