"""CLI commands for the session service."""

import argparse
import asyncio
import getpass
import sys

from pydantic import ValidationError
from sqlalchemy.orm import Session

from app.config import settings
from app.database import Base, SessionLocal, engine
from app.services.auth.directory import UserDirectory
from app.services.auth.errors import ConflictError
from app.services.auth_schemas import CreateUserInput
from app.services.session_store import RedisKVStore, SessionStore


def create_tables() -> None:
    """Create the user directory tables."""
    import app.models  # noqa: F401  registers models on Base.metadata

    Base.metadata.create_all(engine)
    print("Tables created.")


def create_user(username: str, email: str, password: str | None = None) -> None:
    """Register a user account."""
    # Get password if not provided
    if not password:
        password = getpass.getpass("Password: ")
        password_confirm = getpass.getpass("Confirm password: ")
        if password != password_confirm:
            print("Error: Passwords do not match.")
            sys.exit(1)

    try:
        data = CreateUserInput(username=username, email=email, password=password)
    except ValidationError as e:
        for error in e.errors():
            field = ".".join(str(part) for part in error["loc"])
            print(f"Error: {field}: {error['msg']}")
        sys.exit(1)

    db: Session = SessionLocal()
    try:
        user = asyncio.run(UserDirectory(db).create(data))
    except ConflictError as e:
        print(f"Error: {e.detail}")
        sys.exit(1)
    finally:
        db.close()

    print(f"User created successfully: {username} ({user.id})")


async def _rebuild_session_index() -> int:
    kv = RedisKVStore.from_url(settings.redis_url)
    store = SessionStore(
        kv,
        key_prefix=settings.session_key_prefix,
        index_prefix=settings.session_index_prefix,
        ttl=settings.session_max_age,
    )
    try:
        return await store.rebuild_index()
    finally:
        await kv.close()


def rebuild_session_index() -> None:
    """Repopulate the per-user session index from a full scan of the store."""
    count = asyncio.run(_rebuild_session_index())
    print(f"Indexed {count} sessions.")


def main():
    parser = argparse.ArgumentParser(description="Session service CLI")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    subparsers.add_parser("create-tables", help="Create database tables")

    create_user_parser = subparsers.add_parser("create-user", help="Create a user")
    create_user_parser.add_argument("--username", required=True, help="Username")
    create_user_parser.add_argument("--email", required=True, help="Email address")
    create_user_parser.add_argument(
        "--password", help="Password (will prompt if not provided)"
    )

    subparsers.add_parser(
        "rebuild-session-index", help="Rebuild the per-user session index"
    )

    args = parser.parse_args()

    if args.command == "create-tables":
        create_tables()
    elif args.command == "create-user":
        create_user(args.username, args.email, args.password)
    elif args.command == "rebuild-session-index":
        rebuild_session_index()
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
