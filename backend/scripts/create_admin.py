"""Seed an administrator account directly in the user store."""
import argparse
import asyncio
import getpass
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from pydantic import ValidationError

from userdir.core.config import get_settings
from userdir.core.exceptions import DirectoryError
from userdir.core.security import PasswordHasher
from userdir.db.session import build_engine, build_session_factory, create_schema
from userdir.repositories.users import SqlUserRepository
from userdir.schemas.user import Role, UserCreate


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Create a user directory administrator")
    parser.add_argument("username", help="Unique username")
    parser.add_argument("email", help="Unique email address")
    parser.add_argument(
        "--db",
        dest="database_url",
        default=None,
        help="SQLAlchemy database URL (defaults to USERDIR_DATABASE_URL)",
    )
    return parser.parse_args()


def prompt_for_password() -> str:
    for _ in range(3):
        password = getpass.getpass("Password: ")
        confirm = getpass.getpass("Confirm password: ")
        if password != confirm:
            print("Passwords do not match. Try again.", file=sys.stderr)
            continue
        if len(password) < 8:
            print("Password must be at least 8 characters long.", file=sys.stderr)
            continue
        return password
    raise SystemExit("Failed to set password after three attempts.")


async def create_admin(database_url: str, draft: UserCreate):
    engine = build_engine(database_url)
    try:
        await create_schema(engine)
        repository = SqlUserRepository(build_session_factory(engine))
        return await repository.insert(
            username=draft.username,
            email=draft.email,
            password_hash=PasswordHasher.hash(draft.password),
            roles=[role.value for role in draft.roles],
        )
    finally:
        await engine.dispose()


def main() -> int:
    args = parse_args()
    password = prompt_for_password()

    try:
        draft = UserCreate(username=args.username, email=args.email, password=password, roles=[Role.ADMIN])
    except ValidationError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    database_url = args.database_url or get_settings().database_url
    try:
        record = asyncio.run(create_admin(database_url, draft))
    except DirectoryError as exc:
        print(f"Error: {exc.message}", file=sys.stderr)
        return 1

    print(f"Created administrator {record.id}: {record.username} <{record.email}>")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
