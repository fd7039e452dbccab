"""Management CLI for local development.

Usage:
    python -m app.cli init-db                              # Create all tables
    python -m app.cli create-user <name> <email> [role]    # role: user | manager
    python -m app.cli issue-token <email>                  # Print a bearer token
"""

import asyncio
import sys

from sqlalchemy import select

from app.auth.jwt import create_access_token
from app.database import Base, async_session, engine
from app.models import User, UserRole


async def init_db():
    """Create every table from the model metadata (use Alembic in production)."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    await engine.dispose()
    print("Tables created.")


async def create_user(name: str, email: str, role: str = "user"):
    try:
        user_role = UserRole(role)
    except ValueError:
        print(f"Unknown role '{role}' (expected: user, manager)")
        return

    async with async_session() as db:
        existing = await db.execute(select(User).where(User.email == email))
        if existing.scalar_one_or_none():
            print(f"User {email} already exists.")
            return
        user = User(name=name, email=email, role=user_role)
        db.add(user)
        await db.commit()
        print(f"  Created {user_role.value} {name} <{email}> id={user.id}")
    await engine.dispose()


async def issue_token(email: str):
    async with async_session() as db:
        result = await db.execute(select(User).where(User.email == email))
        user = result.scalar_one_or_none()
    await engine.dispose()

    if not user:
        print(f"No user with email {email}.")
        return
    if not user.is_active:
        print(f"User {email} is inactive.")
        return
    print(create_access_token(user.id, user.role.value))


if __name__ == "__main__":
    cmd = sys.argv[1] if len(sys.argv) > 1 else ""
    args = sys.argv[2:]
    if cmd == "init-db":
        asyncio.run(init_db())
    elif cmd == "create-user" and len(args) >= 2:
        asyncio.run(create_user(*args[:3]))
    elif cmd == "issue-token" and len(args) == 1:
        asyncio.run(issue_token(args[0]))
    else:
        print("Usage: python -m app.cli [init-db|create-user <name> <email> [role]|issue-token <email>]")
