"""Power roll providers — 2d10 rolls for montage tests.

Two implementations share one interface and are picked at construction:
``NativeRollProvider`` adds the hero's characteristic and skill bonus,
``GenericRollProvider`` is a plain two-die-plus-modifier roll.
"""

from __future__ import annotations

import random
from dataclasses import dataclass
from typing import Protocol

from app.modules.dice.parser import roll_expression

POWER_DICE = "2d10"


@dataclass
class RollOutcome:
    total: int
    natural_roll: int
    dice: list[int]
    modifier: int


class RollProvider(Protocol):
    def roll(
        self,
        characteristic_value: int = 0,
        skill_bonus: int = 0,
        modifier: int = 0,
    ) -> RollOutcome: ...


def _power_expression(modifier: int) -> str:
    if modifier > 0:
        return f"{POWER_DICE}+{modifier}"
    if modifier < 0:
        return f"{POWER_DICE}-{-modifier}"
    return POWER_DICE


def _power_roll(modifier: int, rng: random.Random | None) -> RollOutcome:
    result = roll_expression(_power_expression(modifier), rng)
    return RollOutcome(
        total=result.total,
        natural_roll=result.subtotal,
        dice=result.individual_rolls,
        modifier=result.modifier,
    )


class NativeRollProvider:
    """Power roll: 2d10 + characteristic + skill bonus + situational modifier."""

    def __init__(self, rng: random.Random | None = None) -> None:
        self._rng = rng

    def roll(
        self,
        characteristic_value: int = 0,
        skill_bonus: int = 0,
        modifier: int = 0,
    ) -> RollOutcome:
        return _power_roll(characteristic_value + skill_bonus + modifier, self._rng)


class GenericRollProvider:
    """Fallback roll when no character data is available: 2d10 + modifier."""

    def __init__(self, rng: random.Random | None = None) -> None:
        self._rng = rng

    def roll(
        self,
        characteristic_value: int = 0,
        skill_bonus: int = 0,
        modifier: int = 0,
    ) -> RollOutcome:
        return _power_roll(modifier, self._rng)


def make_roll_provider(kind: str, rng: random.Random | None = None) -> RollProvider:
    if kind == "native":
        return NativeRollProvider(rng)
    if kind == "generic":
        return GenericRollProvider(rng)
    raise ValueError(f"Unknown roll provider: {kind}")
