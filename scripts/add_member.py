"""Grant a user a role in a world.

Usage:
    python scripts/add_member.py <world_id> <user_id> [GM|PL]
"""

from __future__ import annotations

import asyncio
import sys

from app.domain import permissions
from app.infra.db import async_session_factory, init_db


async def grant(world_id: str, user_id: str, role: str) -> None:
    await init_db()
    async with async_session_factory() as db:
        existing = await permissions.get_member(db, world_id, user_id)
        if existing is not None and existing.role == role:
            print(f"User '{user_id}' is already {role} in world '{world_id}'.")
            return
        try:
            await permissions.add_member(db, world_id, user_id, role=role)
        except ValueError as e:
            print(f"Error: {e}")
            sys.exit(1)
        await db.commit()
        print(f"User '{user_id}' is now {role} in world '{world_id}'.")


if __name__ == "__main__":
    if len(sys.argv) not in (3, 4):
        print("Usage: python scripts/add_member.py <world_id> <user_id> [GM|PL]")
        sys.exit(1)
    role = sys.argv[3].upper() if len(sys.argv) == 4 else "PL"
    asyncio.run(grant(sys.argv[1], sys.argv[2], role))
