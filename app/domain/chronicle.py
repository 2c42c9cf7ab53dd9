"""Chronicle — append and query a world's chat-style transcript."""

from __future__ import annotations

import json

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.db_models import ChronicleEntry


async def _next_seq(db: AsyncSession, world_id: str) -> int:
    result = await db.execute(
        select(func.coalesce(func.max(ChronicleEntry.seq), 0)).where(
            ChronicleEntry.world_id == world_id
        )
    )
    return result.scalar_one() + 1


async def append_entry(
    db: AsyncSession,
    world_id: str,
    event: str,
    payload: dict | None = None,
    content: str | None = None,
    whisper: bool = False,
    recipient_user_id: str | None = None,
) -> ChronicleEntry:
    seq = await _next_seq(db, world_id)
    entry = ChronicleEntry(
        world_id=world_id,
        seq=seq,
        event=event,
        payload_json=json.dumps(payload, default=str) if payload else None,
        content=content,
        whisper=whisper,
        recipient_user_id=recipient_user_id,
    )
    db.add(entry)
    await db.flush()
    return entry


async def get_chronicle(
    db: AsyncSession,
    world_id: str,
    include_whispers: bool = False,
    user_id: str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> list[ChronicleEntry]:
    """Entries visible to a reader.

    GM readers pass ``include_whispers=True``; players see public entries and
    those addressed to them.
    """
    stmt = select(ChronicleEntry).where(ChronicleEntry.world_id == world_id)
    if not include_whispers:
        visible = ChronicleEntry.whisper == False  # noqa: E712
        if user_id is not None:
            visible = or_(visible, ChronicleEntry.recipient_user_id == user_id)
        stmt = stmt.where(visible)
    result = await db.execute(
        stmt.order_by(ChronicleEntry.seq).limit(limit).offset(offset)
    )
    return list(result.scalars().all())
