"""Permission helpers — GM/PL role checks for montage operations."""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.db_models import WorldMember

ROLES = ("GM", "PL")


async def get_member(
    db: AsyncSession, world_id: str, user_id: str
) -> WorldMember | None:
    result = await db.execute(
        select(WorldMember).where(
            WorldMember.world_id == world_id,
            WorldMember.user_id == user_id,
        )
    )
    return result.scalar_one_or_none()


async def is_gm(db: AsyncSession, world_id: str, user_id: str) -> bool:
    member = await get_member(db, world_id, user_id)
    return member is not None and member.role == "GM"


async def require_gm(
    db: AsyncSession, world_id: str, user_id: str
) -> WorldMember:
    """Verify user is GM in this world. Raises ValueError if not."""
    member = await get_member(db, world_id, user_id)
    if member is None:
        raise ValueError(f"User {user_id} is not in world {world_id}")
    if member.role != "GM":
        raise ValueError("Only the GM can perform this action")
    return member


async def require_member(
    db: AsyncSession, world_id: str, user_id: str
) -> WorldMember:
    """Verify user is in the world (any role). Raises ValueError if not."""
    member = await get_member(db, world_id, user_id)
    if member is None:
        raise ValueError(f"User {user_id} is not in world {world_id}")
    return member


async def add_member(
    db: AsyncSession, world_id: str, user_id: str, role: str = "PL"
) -> WorldMember:
    if role not in ROLES:
        raise ValueError(f"Unknown role: {role}")
    member = await get_member(db, world_id, user_id)
    if member is None:
        member = WorldMember(world_id=world_id, user_id=user_id, role=role)
        db.add(member)
    else:
        member.role = role
    await db.flush()
    return member


async def list_members(db: AsyncSession, world_id: str) -> list[WorldMember]:
    result = await db.execute(
        select(WorldMember)
        .where(WorldMember.world_id == world_id)
        .order_by(WorldMember.joined_at)
    )
    return list(result.scalars().all())
