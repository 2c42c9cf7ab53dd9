"""Montage test record — the full state of one test, stored as a JSON snapshot."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, Field

DEFAULT_TEST_NAME = "Montage Test"


def _uuid() -> str:
    return uuid.uuid4().hex


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MontageStatus(str, Enum):
    SETUP = "setup"
    ACTIVE = "active"
    RESOLVED = "resolved"


class MontageDifficulty(str, Enum):
    EASY = "easy"
    MODERATE = "moderate"
    HARD = "hard"


class ActionDifficulty(str, Enum):
    """Individual test difficulty, set per action by the GM."""

    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


class ActionType(str, Enum):
    ROLL = "roll"
    AID = "aid"
    ABILITY = "ability"
    NOTHING = "nothing"


class MontageOutcome(str, Enum):
    TOTAL_SUCCESS = "totalSuccess"
    PARTIAL_SUCCESS = "partialSuccess"
    TOTAL_FAILURE = "totalFailure"


class HeroRef(BaseModel):
    actor_id: str
    name: str
    img: str = "icons/svg/mystery-man.svg"


class Complication(BaseModel):
    id: str = Field(default_factory=_uuid)
    description: str = ""
    trigger_round: int = Field(default=1, ge=1, le=2)
    resolved: bool = False
    effect: str = ""
    failure_outcome: str = ""


class GmNotes(BaseModel):
    total_success: str = ""
    partial_success: str = ""
    total_failure: str = ""
    general: str = ""


class Action(BaseModel):
    actor_id: str
    type: ActionType = ActionType.NOTHING
    description: str = ""
    characteristic: str | None = None
    skill: str | None = None
    difficulty: ActionDifficulty | None = None
    roll_total: int | None = None
    natural_roll: int | None = None
    tier: int | None = None
    outcome: str | None = None
    is_success: bool | None = None
    ability_name: str | None = None
    aid_target: str | None = None
    aid_result: str | None = None
    auto_successes: int = 0
    approved: bool = False
    resolved: bool = False
    gm_notes: str = ""


class RoundRecord(BaseModel):
    round_number: int
    actions: list[Action] = []


class ActionSubmission(BaseModel):
    """A player's request awaiting GM approval."""

    actor_id: str
    user_id: str | None = None
    type: ActionType
    description: str = ""
    aid_target: str | None = None
    characteristic: str | None = None
    skill: str | None = None
    submitted_at: datetime = Field(default_factory=_utcnow)


class MontageTest(BaseModel):
    id: str = Field(default_factory=_uuid)
    name: str = DEFAULT_TEST_NAME
    difficulty: MontageDifficulty
    hero_count: int = Field(ge=0)
    success_limit: int = Field(ge=2)
    failure_limit: int = Field(ge=2)
    current_successes: int = Field(default=0, ge=0)
    current_failures: int = Field(default=0, ge=0)
    current_round: int = Field(default=1, ge=1)
    max_rounds: int = Field(ge=1)
    status: MontageStatus = MontageStatus.SETUP
    outcome: MontageOutcome | None = None
    victories: int = 0
    heroes: list[HeroRef] = []
    complications: list[Complication] = []
    rounds: list[RoundRecord] = []
    pending_actions: list[ActionSubmission] = []
    gm_notes: GmNotes = Field(default_factory=GmNotes)
    completed_at: datetime | None = None

    def hero(self, actor_id: str) -> HeroRef | None:
        return next((h for h in self.heroes if h.actor_id == actor_id), None)

    def pending_for(self, actor_id: str) -> ActionSubmission | None:
        return next((p for p in self.pending_actions if p.actor_id == actor_id), None)


# --- Factories ---


def create_montage_test(
    difficulty: MontageDifficulty | str,
    heroes: list[HeroRef] | None = None,
    name: str | None = None,
    hero_count: int | None = None,
    max_rounds: int | None = None,
    success_limit: int | None = None,
    failure_limit: int | None = None,
    complications: list[Complication] | None = None,
    gm_notes: GmNotes | None = None,
) -> MontageTest:
    """Build a blank test in ``setup`` status.

    Limits are derived from difficulty and hero count unless overridden; an
    override is still floored at the minimum limit.
    """
    from app.domain.montage import tables

    difficulty = MontageDifficulty(difficulty)
    heroes = heroes or []
    if hero_count is None:
        hero_count = len(heroes)
    limits = tables.calculate_limits(difficulty, hero_count)

    return MontageTest(
        name=name or DEFAULT_TEST_NAME,
        difficulty=difficulty,
        hero_count=hero_count,
        success_limit=max(tables.MIN_LIMIT, success_limit)
        if success_limit is not None else limits.success_limit,
        failure_limit=max(tables.MIN_LIMIT, failure_limit)
        if failure_limit is not None else limits.failure_limit,
        max_rounds=max_rounds if max_rounds is not None else tables.DEFAULT_MAX_ROUNDS,
        heroes=heroes,
        complications=complications or [],
        gm_notes=gm_notes or GmNotes(),
    )


def create_complication(
    description: str = "",
    trigger_round: int = 1,
    effect: str = "",
    failure_outcome: str = "",
) -> Complication:
    return Complication(
        description=description,
        trigger_round=trigger_round,
        effect=effect,
        failure_outcome=failure_outcome,
    )


def create_round(round_number: int) -> RoundRecord:
    return RoundRecord(round_number=round_number, actions=[])


def create_action(actor_id: str, type: ActionType | str = ActionType.NOTHING, **fields) -> Action:
    return Action(actor_id=actor_id, type=ActionType(type), **fields)
