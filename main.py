"""Command-line interface for the taskboard service."""

from __future__ import annotations

import argparse
import logging
import sys
from getpass import getpass
from pathlib import Path
from typing import Sequence

from taskboard.config import Settings, load_role_seed
from taskboard.database import Database
from taskboard.errors import TaskboardError

logger = logging.getLogger("taskboard.main")

_MIN_PASSWORD_LENGTH = 8


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Taskboard utilities")
    subparsers = parser.add_subparsers(dest="command")

    parser.set_defaults(command="serve")

    subparsers.add_parser("init-db", help="Initialise the taskboard database")

    serve_parser = subparsers.add_parser("serve", help="Start the HTTP service")
    serve_parser.add_argument("--host", default="127.0.0.1", help="Bind address for the service")
    serve_parser.add_argument("--port", type=int, default=8000, help="Port to listen on (default: 8000)")
    serve_parser.add_argument(
        "--ssl-certfile",
        default=None,
        help="Path to the TLS certificate chain in PEM format",
    )
    serve_parser.add_argument(
        "--ssl-keyfile",
        default=None,
        help="Path to the TLS private key in PEM format",
    )

    seed_parser = subparsers.add_parser("seed-roles", help="Create or update roles from a YAML file")
    seed_parser.add_argument(
        "--file",
        dest="roles_file",
        default=None,
        help="Role seed file (defaults to TASKBOARD_ROLES_FILE or config/roles.yaml)",
    )

    user_parser = subparsers.add_parser("create-user", help="Create a user account")
    user_parser.add_argument("name", help="Display name for the user")
    user_parser.add_argument("email", help="Unique email address for login")
    user_parser.add_argument("--role", required=True, help="Name of the role to grant")

    subparsers.add_parser("list-users", help="List user accounts")

    args_list = list(argv) if argv is not None else sys.argv[1:]
    known_commands = {"serve", "init-db", "seed-roles", "create-user", "list-users"}

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


def _initialise_database(settings: Settings) -> Database:
    database = Database(settings.database_path)
    database.initialize()
    logger.info("Database initialised at %s", settings.database_path)
    return database


def _serve(
    *,
    database: Database,
    settings: Settings,
    host: str,
    port: int,
    ssl_certfile: str | None,
    ssl_keyfile: str | None,
) -> None:
    from taskboard.service import create_app
    import uvicorn

    if bool(ssl_certfile) ^ bool(ssl_keyfile):
        raise SystemExit("Both --ssl-certfile and --ssl-keyfile must be provided together.")

    protocol = "https" if ssl_certfile and ssl_keyfile else "http"
    logger.info("Starting taskboard on %s://%s:%s", protocol, host, port)

    app = create_app(database=database, settings=settings)
    uvicorn.run(
        app,
        host=host,
        port=port,
        log_level="info",
        ssl_certfile=ssl_certfile,
        ssl_keyfile=ssl_keyfile,
    )


def _seed_roles(database: Database, roles_file: Path) -> int:
    try:
        seeds = load_role_seed(roles_file)
    except (OSError, ValueError) as exc:
        print(f"Failed to load roles from {roles_file}: {exc}", file=sys.stderr)
        return 1

    for seed in seeds:
        role = database.upsert_role(seed.name, seed.rank)
        print(f"Role #{role.id}: {role.name} (rank {role.rank})")
    return 0


def _prompt_for_password() -> str | None:
    for _ in range(3):
        password = getpass(f"Password (min {_MIN_PASSWORD_LENGTH} characters): ")
        if len(password) < _MIN_PASSWORD_LENGTH:
            print("Password is too short. Please try again.")
            continue
        confirmation = getpass("Confirm password: ")
        if password != confirmation:
            print("Passwords do not match. Please try again.")
            continue
        return password
    return None


def _create_user(database: Database, *, name: str, email: str, role_name: str) -> int:
    role = database.get_role_by_name(role_name)
    if role is None:
        print(f"Unknown role '{role_name}'. Run the seed-roles command first.", file=sys.stderr)
        return 1

    password = _prompt_for_password()
    if password is None:
        print("Aborted creating user.", file=sys.stderr)
        return 1

    try:
        user = database.create_user(name.strip(), email, password, role.id)
    except (TaskboardError, ValueError) as exc:
        print(f"Failed to create user: {exc}", file=sys.stderr)
        return 1

    print(f"Created user #{user.id}: {user.name} <{user.email}> as {role.name}")
    return 0


def _list_users(database: Database) -> None:
    users = database.list_users()
    if not users:
        print("No users are currently registered.")
        return

    print(f"{len(users)} user(s) found:")
    print(f"{'ID':>4}  {'Name':<24}  {'Email':<32}  {'Role':<16}  Tasks")
    print("-" * 90)
    for user in users:
        role = user.role.name if user.role else "<no role>"
        done = sum(1 for task in user.tasks if task.is_completed)
        print(f"{user.id:>4}  {user.name:<24}  {user.email:<32}  {role:<16}  {done}/{len(user.tasks)}")


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point for CLI usage."""

    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(message)s")

    args = _parse_args(argv)
    settings = Settings.from_env()
    database = _initialise_database(settings)

    if args.command == "serve":
        _serve(
            database=database,
            settings=settings,
            host=args.host,
            port=args.port,
            ssl_certfile=args.ssl_certfile,
            ssl_keyfile=args.ssl_keyfile,
        )
    elif args.command == "seed-roles":
        roles_file = Path(args.roles_file).expanduser() if args.roles_file else settings.roles_path
        return _seed_roles(database, roles_file)
    elif args.command == "create-user":
        return _create_user(database, name=args.name, email=args.email, role_name=args.role)
    elif args.command == "list-users":
        _list_users(database)
    elif args.command == "init-db":
        print("Database initialisation complete.")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
