"""
Command line entry point.

    leaveguard serve
    leaveguard create-user --email admin@example.com --name Admin --role Admin
    leaveguard unlock <user_id>
"""

import argparse
import getpass
import sys

from loguru import logger

from .access import Role
from .auth import Authenticator, JWTHandler, LogNotifier, UserDatabase
from .config import Settings, configure_logging
from .errors import IdentifierTaken, UserNotFound


def _serve(settings: Settings, args) -> int:
    from .server import run

    if args.host:
        settings = settings.model_copy(update={"host": args.host})
    if args.port:
        settings = settings.model_copy(update={"port": args.port})
    run(settings)
    return 0


def _create_user(settings: Settings, args) -> int:
    password = getpass.getpass("Password: ")
    if not password:
        print("Error: Password required")
        return 1
    if getpass.getpass("Confirm password: ") != password:
        print("Error: Passwords do not match")
        return 1

    db = UserDatabase(settings.db_path)
    try:
        account = db.create_user(
            name=args.name,
            email=args.email.strip().lower(),
            password=password,
            role=Role(args.role),
            department=args.department,
            location=args.location,
            employment_status=args.employment_status,
        )
    except IdentifierTaken as e:
        print(f"Error: {e}")
        return 1

    print(f"Created {account.role.value} {account.email} ({account.user_id})")
    return 0


def _unlock(settings: Settings, args) -> int:
    notifier = LogNotifier(max_workers=1)
    authenticator = Authenticator(UserDatabase(settings.db_path), JWTHandler(settings.jwt_secret), notifier)
    try:
        authenticator.unlock(args.user_id)
    except UserNotFound as e:
        print(f"Error: {e}")
        return 1
    finally:
        notifier.shutdown()

    print(f"Unlocked {args.user_id}")
    return 0


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(prog="leaveguard", description="Leave management service")
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Run the HTTP API")
    serve.add_argument("--host", help="Bind address (default: LEAVEGUARD_HOST)")
    serve.add_argument("--port", type=int, help="Port (default: LEAVEGUARD_PORT)")
    serve.set_defaults(func=_serve)

    create = sub.add_parser("create-user", help="Create a user (password is prompted)")
    create.add_argument("--email", required=True)
    create.add_argument("--name", required=True)
    create.add_argument("--role", default=Role.EMPLOYEE.value, choices=[r.value for r in Role])
    create.add_argument("--department")
    create.add_argument("--location")
    create.add_argument("--employment-status", default="Full-Time")
    create.set_defaults(func=_create_user)

    unlock = sub.add_parser("unlock", help="Clear a user's lockout")
    unlock.add_argument("user_id")
    unlock.set_defaults(func=_unlock)

    args = parser.parse_args(argv)
    settings = Settings.from_env()
    configure_logging(settings.log_level)
    logger.debug(f"Database: {settings.db_path}")
    return args.func(settings, args)


if __name__ == "__main__":
    sys.exit(main())
