"""SQLAlchemy ORM models for montage-core."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    DateTime,
    Enum,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def _uuid() -> str:
    return uuid.uuid4().hex


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


class WorldMember(Base):
    """A user's role in a game world — the GM is the single authority."""

    __tablename__ = "world_members"

    world_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    role: Mapped[str] = mapped_column(
        Enum("GM", "PL", name="member_role"), nullable=False
    )
    joined_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    def __str__(self) -> str:
        return f"{self.role} ({self.user_id[:8]} in {self.world_id[:8]})"


class Hero(Base):
    """A player-owned hero eligible to join montage tests."""

    __tablename__ = "heroes"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=_uuid)
    world_id: Mapped[str] = mapped_column(String(64), nullable=False)
    owner_user_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    img: Mapped[str] = mapped_column(
        String(256), nullable=False, default="icons/svg/mystery-man.svg"
    )
    # {"might": 2, "agility": 1, "reason": 0, "intuition": 0, "presence": -1}
    characteristics_json: Mapped[str] = mapped_column(Text, nullable=False, default="{}")
    skills_json: Mapped[str] = mapped_column(Text, nullable=False, default="[]")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    def __str__(self) -> str:
        return self.name

    __table_args__ = (
        Index("ix_hero_world", "world_id"),
    )


class ActiveTest(Base):
    """The single active-test slot of a world."""

    __tablename__ = "active_tests"

    world_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    test_id: Mapped[str] = mapped_column(String(32), nullable=False)
    status: Mapped[str] = mapped_column(
        Enum("setup", "active", "resolved", name="test_status"), nullable=False
    )
    data_json: Mapped[str] = mapped_column(Text, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )

    def __str__(self) -> str:
        return f"Test {self.test_id[:8]} ({self.status})"


class DraftTest(Base):
    """A saved montage test not yet launched."""

    __tablename__ = "draft_tests"

    id: Mapped[str] = mapped_column(String(32), primary_key=True)
    world_id: Mapped[str] = mapped_column(String(64), nullable=False)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    data_json: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    def __str__(self) -> str:
        return self.name

    __table_args__ = (
        Index("ix_draft_world", "world_id"),
    )


class ArchivedTest(Base):
    """A resolved montage test kept for history."""

    __tablename__ = "archived_tests"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=_uuid)
    world_id: Mapped[str] = mapped_column(String(64), nullable=False)
    test_id: Mapped[str] = mapped_column(String(32), nullable=False)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    outcome: Mapped[str | None] = mapped_column(String(32), nullable=True)
    victories: Mapped[int] = mapped_column(Integer, default=0)
    data_json: Mapped[str] = mapped_column(Text, nullable=False)
    completed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    def __str__(self) -> str:
        return f"{self.name} ({self.outcome})"

    __table_args__ = (
        Index("ix_archive_world", "world_id"),
    )


class ChronicleEntry(Base):
    """One notification posted to a world's chat-style transcript."""

    __tablename__ = "chronicle_entries"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=_uuid)
    world_id: Mapped[str] = mapped_column(String(64), nullable=False)
    seq: Mapped[int] = mapped_column(Integer, nullable=False)
    event: Mapped[str] = mapped_column(String(32), nullable=False)
    payload_json: Mapped[str | None] = mapped_column(Text, nullable=True)
    content: Mapped[str | None] = mapped_column(Text, nullable=True)
    whisper: Mapped[bool] = mapped_column(Boolean, default=False)
    recipient_user_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    def __str__(self) -> str:
        return f"#{self.seq} {self.event}"

    __table_args__ = (
        Index("ix_chronicle_world_seq", "world_id", "seq"),
    )
