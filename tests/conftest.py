"""Shared test fixtures."""

from dataclasses import dataclass, field

import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.domain import permissions, roster
from app.domain.montage.workflow import MontageWorkflow
from app.infra.auth import create_access_token
from app.infra.db import get_db
from app.infra.ws_manager import ConnectionManager
from app.main import app
from app.models.db_models import Base
from app.modules.dice.roller import RollOutcome

TEST_DB_URL = "sqlite+aiosqlite:///:memory:"

WORLD_ID = "world-1"
GM_ID = "gm-user"


@pytest_asyncio.fixture
async def db_engine():
    engine = create_async_engine(TEST_DB_URL, echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(db_engine):
    factory = async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)
    async with factory() as session:
        yield session


@pytest_asyncio.fixture
async def client(db_engine):
    factory = async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)

    async def _override_get_db():
        async with factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = _override_get_db
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()


# --- Deterministic rolls ---


class FixedRollProvider:
    """Returns queued (total, natural) pairs; records what it was asked for."""

    def __init__(self, *rolls: tuple[int, int]) -> None:
        self._rolls = list(rolls)
        self.calls: list[dict] = []

    def queue(self, total: int, natural: int) -> None:
        self._rolls.append((total, natural))

    def roll(self, characteristic_value: int = 0, skill_bonus: int = 0, modifier: int = 0) -> RollOutcome:
        self.calls.append({
            "characteristic_value": characteristic_value,
            "skill_bonus": skill_bonus,
            "modifier": modifier,
        })
        total, natural = self._rolls.pop(0)
        return RollOutcome(
            total=total,
            natural_roll=natural,
            dice=[natural // 2, natural - natural // 2],
            modifier=total - natural,
        )


# --- World setup helpers ---


@dataclass
class World:
    world_id: str
    gm_id: str
    hero_ids: list[str] = field(default_factory=list)
    owners: dict[str, str] = field(default_factory=dict)  # hero id -> user id


async def make_world(
    db: AsyncSession,
    hero_count: int = 5,
    world_id: str = WORLD_ID,
    characteristics: dict[str, int] | None = None,
    skills: list[str] | None = None,
) -> World:
    """A world with one GM and ``hero_count`` players, each owning one hero."""
    world = World(world_id=world_id, gm_id=GM_ID)
    await permissions.add_member(db, world_id, GM_ID, role="GM")
    for i in range(hero_count):
        user_id = f"player-{i + 1}"
        await permissions.add_member(db, world_id, user_id, role="PL")
        hero = await roster.create_hero(
            db,
            world_id,
            name=f"Hero {i + 1}",
            owner_user_id=user_id,
            characteristics=characteristics,
            skills=skills,
        )
        world.hero_ids.append(hero.id)
        world.owners[hero.id] = user_id
    await db.commit()
    return world


def make_workflow(
    db: AsyncSession,
    world: World,
    roll_provider: FixedRollProvider | None = None,
    broadcaster: ConnectionManager | None = None,
) -> MontageWorkflow:
    return MontageWorkflow(
        db,
        world.world_id,
        roll_provider=roll_provider or FixedRollProvider(),
        broadcaster=broadcaster or ConnectionManager(),
    )


def auth_headers(user_id: str) -> dict:
    token = create_access_token(user_id)
    return {"Authorization": f"Bearer {token.access_token}"}
