"""Hero roster — eligible heroes and their characteristics."""

from __future__ import annotations

import json

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.db_models import Hero
from app.models.montage import HeroRef

CHARACTERISTICS = ("might", "agility", "reason", "intuition", "presence")


async def create_hero(
    db: AsyncSession,
    world_id: str,
    name: str,
    owner_user_id: str | None = None,
    img: str | None = None,
    characteristics: dict[str, int] | None = None,
    skills: list[str] | None = None,
) -> Hero:
    characteristics = characteristics or {}
    unknown = set(characteristics) - set(CHARACTERISTICS)
    if unknown:
        raise ValueError(f"Unknown characteristic(s): {', '.join(sorted(unknown))}")

    hero = Hero(
        world_id=world_id,
        owner_user_id=owner_user_id,
        name=name,
        characteristics_json=json.dumps(characteristics),
        skills_json=json.dumps(skills or []),
    )
    if img:
        hero.img = img
    db.add(hero)
    await db.flush()
    return hero


async def get_hero(db: AsyncSession, world_id: str, actor_id: str) -> Hero | None:
    result = await db.execute(
        select(Hero).where(Hero.world_id == world_id, Hero.id == actor_id)
    )
    return result.scalar_one_or_none()


async def get_heroes(db: AsyncSession, world_id: str) -> list[Hero]:
    result = await db.execute(
        select(Hero).where(Hero.world_id == world_id).order_by(Hero.created_at)
    )
    return list(result.scalars().all())


async def get_available_heroes(db: AsyncSession, world_id: str) -> list[HeroRef]:
    """Player-owned heroes, as participant descriptors for a new test."""
    heroes = await get_heroes(db, world_id)
    return [
        HeroRef(actor_id=h.id, name=h.name, img=h.img)
        for h in heroes
        if h.owner_user_id
    ]


def get_characteristics(hero: Hero) -> dict[str, int]:
    return json.loads(hero.characteristics_json) if hero.characteristics_json else {}


def get_skills(hero: Hero) -> list[str]:
    return json.loads(hero.skills_json) if hero.skills_json else []


async def get_characteristic(
    db: AsyncSession, world_id: str, actor_id: str, key: str | None
) -> int:
    """Characteristic score for a roll; 0 when the hero or key is unknown."""
    if not key:
        return 0
    hero = await get_hero(db, world_id, actor_id)
    if hero is None:
        return 0
    return get_characteristics(hero).get(key.lower(), 0)


async def has_skill(db: AsyncSession, world_id: str, actor_id: str, skill: str | None) -> bool:
    if not skill:
        return False
    hero = await get_hero(db, world_id, actor_id)
    if hero is None:
        return False
    wanted = skill.lower()
    return any(s.lower() == wanted for s in get_skills(hero))


async def get_owned_actor_ids(db: AsyncSession, world_id: str, user_id: str) -> set[str]:
    result = await db.execute(
        select(Hero.id).where(Hero.world_id == world_id, Hero.owner_user_id == user_id)
    )
    return set(result.scalars().all())
