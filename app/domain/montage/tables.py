"""Difficulty and outcome tables for montage tests.

All functions here are pure. An unknown difficulty key is a wiring error and
raises ``ValueError`` immediately.
"""

from __future__ import annotations

from dataclasses import dataclass

from app.models.montage import ActionDifficulty, MontageDifficulty, MontageOutcome

BASE_HERO_COUNT = 5
MIN_LIMIT = 2
DEFAULT_MAX_ROUNDS = 2

# Power roll tiers for 2d10 + characteristic
TIER_1_MAX = 11
TIER_2_MAX = 16

CRITICAL_NATURAL = 19


@dataclass(frozen=True)
class Limits:
    success_limit: int
    failure_limit: int


@dataclass(frozen=True)
class OutcomeEntry:
    key: str
    is_success: bool


@dataclass(frozen=True)
class AssistOutcome:
    key: str


# Limits for a party of BASE_HERO_COUNT heroes
DIFFICULTY_TABLE_BASE: dict[MontageDifficulty, Limits] = {
    MontageDifficulty.EASY: Limits(success_limit=5, failure_limit=5),
    MontageDifficulty.MODERATE: Limits(success_limit=6, failure_limit=4),
    MontageDifficulty.HARD: Limits(success_limit=7, failure_limit=3),
}

SUCCESS_CONSEQUENCE = OutcomeEntry("successConsequence", True)
SUCCESS = OutcomeEntry("success", True)
SUCCESS_REWARD = OutcomeEntry("successReward", True)
FAILURE = OutcomeEntry("failure", False)
FAILURE_CONSEQUENCE = OutcomeEntry("failureConsequence", False)

TEST_OUTCOMES: dict[ActionDifficulty, dict[int, OutcomeEntry]] = {
    ActionDifficulty.EASY: {1: SUCCESS_CONSEQUENCE, 2: SUCCESS, 3: SUCCESS_REWARD},
    ActionDifficulty.MEDIUM: {1: FAILURE, 2: SUCCESS_CONSEQUENCE, 3: SUCCESS},
    ActionDifficulty.HARD: {1: FAILURE_CONSEQUENCE, 2: FAILURE, 3: SUCCESS},
}

ASSIST_OUTCOMES: dict[int, AssistOutcome] = {
    1: AssistOutcome("bane"),
    2: AssistOutcome("edge"),
    3: AssistOutcome("doubleEdge"),
}

VICTORIES: dict[MontageOutcome, dict[MontageDifficulty, int]] = {
    MontageOutcome.TOTAL_SUCCESS: {
        MontageDifficulty.EASY: 1,
        MontageDifficulty.MODERATE: 1,
        MontageDifficulty.HARD: 2,
    },
    MontageOutcome.PARTIAL_SUCCESS: {
        MontageDifficulty.EASY: 0,
        MontageDifficulty.MODERATE: 1,
        MontageDifficulty.HARD: 1,
    },
    MontageOutcome.TOTAL_FAILURE: {
        MontageDifficulty.EASY: 0,
        MontageDifficulty.MODERATE: 0,
        MontageDifficulty.HARD: 0,
    },
}


def _montage_difficulty(difficulty: MontageDifficulty | str) -> MontageDifficulty:
    try:
        return MontageDifficulty(difficulty)
    except ValueError:
        raise ValueError(f"Unknown montage difficulty: {difficulty}") from None


def _test_difficulty(difficulty: ActionDifficulty | str) -> ActionDifficulty:
    try:
        return ActionDifficulty(difficulty)
    except ValueError:
        raise ValueError(f"Unknown test difficulty: {difficulty}") from None


def calculate_limits(difficulty: MontageDifficulty | str, hero_count: int) -> Limits:
    """Success/failure limits for a montage test.

    The base table is written for five heroes; each hero above or below
    shifts both limits by one, never below ``MIN_LIMIT``.
    """
    base = DIFFICULTY_TABLE_BASE[_montage_difficulty(difficulty)]
    delta = hero_count - BASE_HERO_COUNT
    return Limits(
        success_limit=max(MIN_LIMIT, base.success_limit + delta),
        failure_limit=max(MIN_LIMIT, base.failure_limit + delta),
    )


def get_tier(total: int) -> int:
    if total <= TIER_1_MAX:
        return 1
    if total <= TIER_2_MAX:
        return 2
    return 3


def is_critical(natural_roll: int | None) -> bool:
    return natural_roll is not None and natural_roll >= CRITICAL_NATURAL


def get_test_outcome(
    test_difficulty: ActionDifficulty | str,
    tier: int,
    is_critical_roll: bool = False,
) -> OutcomeEntry:
    """Outcome of one individual test within a montage.

    A natural 19 or 20 counts as success with reward whatever the difficulty.
    """
    if is_critical_roll:
        return SUCCESS_REWARD
    return TEST_OUTCOMES[_test_difficulty(test_difficulty)][tier]


def get_assist_outcome(tier: int) -> AssistOutcome:
    return ASSIST_OUTCOMES[tier]


def get_victories(outcome: MontageOutcome, difficulty: MontageDifficulty | str) -> int:
    return VICTORIES[MontageOutcome(outcome)][_montage_difficulty(difficulty)]


def difficulty_summary(difficulty: MontageDifficulty | str, hero_count: int) -> str:
    """e.g. ``"Moderate: 6 successes needed, 4 failures allowed"``."""
    d = _montage_difficulty(difficulty)
    limits = calculate_limits(d, hero_count)
    return (
        f"{d.value.capitalize()}: {limits.success_limit} successes needed, "
        f"{limits.failure_limit} failures allowed"
    )
