"""Engine result schemas — output from the montage dispatcher."""

from __future__ import annotations

from pydantic import BaseModel


class PowerRollResult(BaseModel):
    actor_id: str
    dice: list[int]
    natural_roll: int
    modifier: int
    total: int
    tier: int


class StateChange(BaseModel):
    entity_type: str  # "montage_test", "action", "pending_action"
    entity_id: str
    field: str
    old_value: str | None = None
    new_value: str | None = None


class EngineResult(BaseModel):
    success: bool
    event_type: str
    data: dict = {}
    state_changes: list[StateChange] = []
    rolls: list[PowerRollResult] = []
    error: str | None = None
