"""Montage command schemas — input to the single-authority dispatcher."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field

from app.models.montage import (
    ActionDifficulty,
    ActionType,
    Complication,
    GmNotes,
    MontageDifficulty,
)


class CommandType(str, Enum):
    # Test lifecycle
    CREATE_TEST = "create_test"
    ACTIVATE_TEST = "activate_test"
    END_TEST_EARLY = "end_test_early"
    ARCHIVE_TEST = "archive_test"
    ABANDON_TEST = "abandon_test"

    # Player requests
    SUBMIT_ACTION = "submit_action"
    ROLL_RESULT = "roll_result"
    REQUEST_ROLL = "request_roll"
    REQUEST_REFRESH = "request_refresh"

    # GM workflow
    APPROVE_ACTION = "approve_action"
    REJECT_ACTION = "reject_action"
    REMOVE_ACTION = "remove_action"
    ADJUST_TALLY = "adjust_tally"
    ADVANCE_ROUND = "advance_round"
    RESOLVE_COMPLICATION = "resolve_complication"


PLAYER_COMMANDS = frozenset({
    CommandType.SUBMIT_ACTION,
    CommandType.ROLL_RESULT,
    CommandType.REQUEST_ROLL,
    CommandType.REQUEST_REFRESH,
})


# --- Lifecycle payloads ---


class CreateTestPayload(BaseModel):
    command: Literal["create_test"] = "create_test"
    name: str | None = None
    difficulty: MontageDifficulty = MontageDifficulty.MODERATE
    hero_ids: list[str] | None = None  # None = every available hero
    max_rounds: int | None = Field(default=None, ge=1)
    success_limit: int | None = None  # Override calculated value
    failure_limit: int | None = None  # Override calculated value
    complications: list[Complication] = []
    gm_notes: GmNotes | None = None


class ActivateTestPayload(BaseModel):
    command: Literal["activate_test"] = "activate_test"
    draft_id: str | None = None  # Launch this draft into the active slot first


class EndTestEarlyPayload(BaseModel):
    command: Literal["end_test_early"] = "end_test_early"


class ArchiveTestPayload(BaseModel):
    command: Literal["archive_test"] = "archive_test"


class AbandonTestPayload(BaseModel):
    command: Literal["abandon_test"] = "abandon_test"


# --- Player payloads ---


class SubmitActionPayload(BaseModel):
    command: Literal["submit_action"] = "submit_action"
    actor_id: str
    action_type: ActionType
    description: str = ""
    aid_target: str | None = None
    characteristic: str | None = None
    skill: str | None = None


class RollResultPayload(BaseModel):
    command: Literal["roll_result"] = "roll_result"
    actor_id: str
    roll_total: int
    natural_roll: int


class RequestRollPayload(BaseModel):
    command: Literal["request_roll"] = "request_roll"
    actor_id: str
    modifier: int = 0


class RequestRefreshPayload(BaseModel):
    command: Literal["request_refresh"] = "request_refresh"


# --- GM payloads ---


class ApproveActionPayload(BaseModel):
    command: Literal["approve_action"] = "approve_action"
    actor_id: str
    difficulty: ActionDifficulty | None = None  # Roll/aid only; defaults to medium
    auto_successes: int = Field(default=0, ge=0)  # Ability only
    ability_name: str | None = None
    gm_notes: str = ""
    auto_roll: bool = False  # Roll immediately instead of waiting for the player


class RejectActionPayload(BaseModel):
    command: Literal["reject_action"] = "reject_action"
    actor_id: str
    reason: str = "The Director has rejected this action."


class RemoveActionPayload(BaseModel):
    command: Literal["remove_action"] = "remove_action"
    actor_id: str


class AdjustTallyPayload(BaseModel):
    command: Literal["adjust_tally"] = "adjust_tally"
    successes: int | None = None  # Absolute value, not a delta
    failures: int | None = None


class AdvanceRoundPayload(BaseModel):
    command: Literal["advance_round"] = "advance_round"


class ResolveComplicationPayload(BaseModel):
    command: Literal["resolve_complication"] = "resolve_complication"
    complication_id: str


CommandPayload = Annotated[
    Union[
        CreateTestPayload,
        ActivateTestPayload,
        EndTestEarlyPayload,
        ArchiveTestPayload,
        AbandonTestPayload,
        SubmitActionPayload,
        RollResultPayload,
        RequestRollPayload,
        RequestRefreshPayload,
        ApproveActionPayload,
        RejectActionPayload,
        RemoveActionPayload,
        AdjustTallyPayload,
        AdvanceRoundPayload,
        ResolveComplicationPayload,
    ],
    Field(discriminator="command"),
]


class MontageCommand(BaseModel):
    """Top-level request submitted by a GM or player client."""

    world_id: str
    user_id: str
    payload: CommandPayload
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
