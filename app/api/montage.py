"""Montage API — command submission, test snapshots, drafts and roster."""

from __future__ import annotations

import json
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from app.domain import chronicle, permissions, roster
from app.domain.dispatcher import dispatch, get_view, handle_chat_command
from app.domain.montage import tables
from app.domain.montage.workflow import MontageWorkflow
from app.infra.auth import get_current_user_id
from app.infra.db import get_db
from app.models.db_models import Hero
from app.models.event import CommandPayload, MontageCommand
from app.models.montage import Complication, GmNotes, MontageDifficulty, MontageTest

router = APIRouter(prefix="/api/montage/worlds/{world_id}", tags=["montage"])


# --- Request schemas ---


class CommandRequest(BaseModel):
    payload: CommandPayload


class DraftRequest(BaseModel):
    name: str | None = None
    difficulty: MontageDifficulty = MontageDifficulty.MODERATE
    hero_ids: list[str] | None = None
    max_rounds: int | None = Field(default=None, ge=1)
    success_limit: int | None = None
    failure_limit: int | None = None
    complications: list[Complication] = []
    gm_notes: GmNotes | None = None


class CreateHeroRequest(BaseModel):
    name: str
    owner_user_id: str | None = None
    img: str | None = None
    characteristics: dict[str, int] = {}
    skills: list[str] = []


class AddMemberRequest(BaseModel):
    user_id: str
    role: str = "PL"


class ChatRequest(BaseModel):
    text: str


# --- Helpers ---


async def _member_or_403(db: AsyncSession, world_id: str, user_id: str) -> None:
    try:
        await permissions.require_member(db, world_id, user_id)
    except ValueError as e:
        raise HTTPException(status_code=403, detail=str(e))


async def _gm_or_403(db: AsyncSession, world_id: str, user_id: str) -> None:
    try:
        await permissions.require_gm(db, world_id, user_id)
    except ValueError as e:
        raise HTTPException(status_code=403, detail=str(e))


async def _build_from(workflow: MontageWorkflow, body: DraftRequest) -> MontageTest:
    return await workflow.build_test(
        name=body.name,
        difficulty=body.difficulty,
        hero_ids=body.hero_ids,
        max_rounds=body.max_rounds,
        success_limit=body.success_limit,
        failure_limit=body.failure_limit,
        complications=body.complications,
        gm_notes=body.gm_notes,
    )


def _hero_dict(hero: Hero) -> dict:
    return {
        "id": hero.id,
        "name": hero.name,
        "img": hero.img,
        "owner_user_id": hero.owner_user_id,
        "characteristics": roster.get_characteristics(hero),
        "skills": roster.get_skills(hero),
    }


# --- Commands ---


@router.post("/commands")
async def submit_command(
    world_id: str,
    body: CommandRequest,
    user_id: Annotated[str, Depends(get_current_user_id)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> dict:
    """Submit a command to the montage dispatcher.

    The state change is committed and broadcast to the world's WebSocket
    clients by the workflow itself; the response carries the new snapshot.
    """
    command = MontageCommand(world_id=world_id, user_id=user_id, payload=body.payload)
    result = await dispatch(db, command)
    return result.model_dump(mode="json")


# --- Queries ---


@router.get("/test")
async def get_test(
    world_id: str,
    user_id: Annotated[str, Depends(get_current_user_id)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> dict:
    await _member_or_403(db, world_id, user_id)
    test = await MontageWorkflow(db, world_id).repo.load()
    if test is None:
        return {"test": None}
    return {
        "test": test.model_dump(mode="json"),
        "summary": tables.difficulty_summary(test.difficulty, test.hero_count),
    }


@router.get("/view")
async def get_world_view(
    world_id: str,
    user_id: Annotated[str, Depends(get_current_user_id)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> dict:
    try:
        return await get_view(db, world_id, user_id)
    except ValueError as e:
        raise HTTPException(status_code=403, detail=str(e))


@router.get("/archive")
async def list_archive(
    world_id: str,
    user_id: Annotated[str, Depends(get_current_user_id)],
    db: Annotated[AsyncSession, Depends(get_db)],
    limit: int = 50,
) -> list[dict]:
    await _member_or_403(db, world_id, user_id)
    tests = await MontageWorkflow(db, world_id).repo.list_archive(limit=limit)
    return [t.model_dump(mode="json") for t in tests]


@router.get("/chronicle")
async def get_chronicle(
    world_id: str,
    user_id: Annotated[str, Depends(get_current_user_id)],
    db: Annotated[AsyncSession, Depends(get_db)],
    limit: int = 50,
    offset: int = 0,
) -> list[dict]:
    """Transcript entries; whispers are visible to the GM and their recipient."""
    await _member_or_403(db, world_id, user_id)
    gm = await permissions.is_gm(db, world_id, user_id)
    entries = await chronicle.get_chronicle(
        db, world_id, include_whispers=gm, user_id=user_id, limit=limit, offset=offset
    )
    return [
        {
            "seq": e.seq,
            "event": e.event,
            "payload": json.loads(e.payload_json) if e.payload_json else None,
            "content": e.content,
            "whisper": e.whisper,
            "created_at": e.created_at.isoformat() if e.created_at else None,
        }
        for e in entries
    ]


# --- Drafts ---


@router.get("/drafts")
async def list_drafts(
    world_id: str,
    user_id: Annotated[str, Depends(get_current_user_id)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> list[dict]:
    await _gm_or_403(db, world_id, user_id)
    drafts = await MontageWorkflow(db, world_id).repo.list_drafts()
    return [d.model_dump(mode="json") for d in drafts]


@router.post("/drafts", status_code=201)
async def create_draft(
    world_id: str,
    body: DraftRequest,
    user_id: Annotated[str, Depends(get_current_user_id)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> dict:
    await _gm_or_403(db, world_id, user_id)
    workflow = MontageWorkflow(db, world_id)
    test = await _build_from(workflow, body)
    await workflow.repo.add_draft(test)
    return test.model_dump(mode="json")


@router.get("/drafts/{draft_id}")
async def get_draft(
    world_id: str,
    draft_id: str,
    user_id: Annotated[str, Depends(get_current_user_id)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> dict:
    await _gm_or_403(db, world_id, user_id)
    draft = await MontageWorkflow(db, world_id).repo.get_draft(draft_id)
    if draft is None:
        raise HTTPException(status_code=404, detail="Draft not found")
    return draft.model_dump(mode="json")


@router.put("/drafts/{draft_id}")
async def update_draft(
    world_id: str,
    draft_id: str,
    body: DraftRequest,
    user_id: Annotated[str, Depends(get_current_user_id)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> dict:
    await _gm_or_403(db, world_id, user_id)
    workflow = MontageWorkflow(db, world_id)
    test = await _build_from(workflow, body)
    test.id = draft_id
    if not await workflow.repo.update_draft(test):
        raise HTTPException(status_code=404, detail="Draft not found")
    return test.model_dump(mode="json")


@router.delete("/drafts/{draft_id}", status_code=204)
async def delete_draft(
    world_id: str,
    draft_id: str,
    user_id: Annotated[str, Depends(get_current_user_id)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> None:
    await _gm_or_403(db, world_id, user_id)
    await MontageWorkflow(db, world_id).repo.delete_draft(draft_id)


# --- Roster ---


@router.post("/heroes", status_code=201)
async def create_hero(
    world_id: str,
    body: CreateHeroRequest,
    user_id: Annotated[str, Depends(get_current_user_id)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> dict:
    """GMs may create heroes for anyone; players only for themselves."""
    await _member_or_403(db, world_id, user_id)
    owner = body.owner_user_id or user_id
    if owner != user_id and not await permissions.is_gm(db, world_id, user_id):
        raise HTTPException(status_code=403, detail="Players can only create their own heroes")
    try:
        hero = await roster.create_hero(
            db,
            world_id,
            name=body.name,
            owner_user_id=owner,
            img=body.img,
            characteristics=body.characteristics,
            skills=body.skills,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return _hero_dict(hero)


@router.get("/heroes")
async def list_heroes(
    world_id: str,
    user_id: Annotated[str, Depends(get_current_user_id)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> list[dict]:
    await _member_or_403(db, world_id, user_id)
    return [_hero_dict(h) for h in await roster.get_heroes(db, world_id)]


@router.post("/members", status_code=201)
async def add_member(
    world_id: str,
    body: AddMemberRequest,
    user_id: Annotated[str, Depends(get_current_user_id)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> dict:
    """Grant a world role. The first member of an empty world may be anyone."""
    if await permissions.list_members(db, world_id):
        await _gm_or_403(db, world_id, user_id)
    try:
        member = await permissions.add_member(db, world_id, body.user_id, role=body.role)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"world_id": member.world_id, "user_id": member.user_id, "role": member.role}


# --- Chat ---


@router.post("/chat")
async def chat(
    world_id: str,
    body: ChatRequest,
    user_id: Annotated[str, Depends(get_current_user_id)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> dict:
    """Chat-line hook; ``/montage`` answers with the view to open."""
    try:
        view = await handle_chat_command(db, world_id, user_id, body.text)
    except ValueError as e:
        raise HTTPException(status_code=403, detail=str(e))
    if view is None:
        return {"handled": False}
    return {"handled": True, **view}
