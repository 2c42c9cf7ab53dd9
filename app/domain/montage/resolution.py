"""Resolution evaluator and round queries for montage tests."""

from __future__ import annotations

from dataclasses import dataclass

from app.domain.montage import tables
from app.models.montage import Complication, HeroRef, MontageOutcome, MontageTest, RoundRecord


@dataclass(frozen=True)
class Resolution:
    resolved: bool
    outcome: MontageOutcome | None = None
    victories: int = 0


UNRESOLVED = Resolution(resolved=False)

OUTCOME_LABELS = {
    MontageOutcome.TOTAL_SUCCESS: "Total Success",
    MontageOutcome.PARTIAL_SUCCESS: "Partial Success",
    MontageOutcome.TOTAL_FAILURE: "Total Failure",
}


def evaluate_resolution(test: MontageTest) -> Resolution:
    """Decide whether the test is over and with which outcome.

    Rules, in order:
    1. Total success when successes reach the success limit.
    2. When the failure limit is hit or the rounds run out, partial success
       if successes lead failures by at least two, total failure otherwise.
    3. Otherwise the test goes on.
    """
    if test.current_successes >= test.success_limit:
        return Resolution(
            resolved=True,
            outcome=MontageOutcome.TOTAL_SUCCESS,
            victories=tables.get_victories(MontageOutcome.TOTAL_SUCCESS, test.difficulty),
        )

    failure_limit_hit = test.current_failures >= test.failure_limit
    rounds_exhausted = test.current_round > test.max_rounds

    if failure_limit_hit or rounds_exhausted:
        margin = test.current_successes - test.current_failures
        if margin >= 2:
            return Resolution(
                resolved=True,
                outcome=MontageOutcome.PARTIAL_SUCCESS,
                victories=tables.get_victories(MontageOutcome.PARTIAL_SUCCESS, test.difficulty),
            )
        return Resolution(resolved=True, outcome=MontageOutcome.TOTAL_FAILURE, victories=0)

    return UNRESOLVED


def get_current_round(test: MontageTest) -> RoundRecord | None:
    return next((r for r in test.rounds if r.round_number == test.current_round), None)


def is_round_complete(test: MontageTest) -> bool:
    """Every hero has an action this round and all of them are resolved."""
    round_ = get_current_round(test)
    if round_ is None:
        return False
    return len(round_.actions) >= len(test.heroes) and all(a.resolved for a in round_.actions)


def has_hero_acted(test: MontageTest, actor_id: str) -> bool:
    round_ = get_current_round(test)
    if round_ is None:
        return False
    return any(a.actor_id == actor_id for a in round_.actions)


def heroes_waiting(test: MontageTest) -> list[HeroRef]:
    """Heroes with no action at all in the current round."""
    round_ = get_current_round(test)
    if round_ is None:
        return list(test.heroes)
    acted = {a.actor_id for a in round_.actions}
    return [h for h in test.heroes if h.actor_id not in acted]


def heroes_acted(test: MontageTest) -> list[HeroRef]:
    """Heroes whose action this round is resolved."""
    round_ = get_current_round(test)
    if round_ is None:
        return []
    acted = {a.actor_id for a in round_.actions if a.resolved}
    return [h for h in test.heroes if h.actor_id in acted]


def complications_for_round(test: MontageTest, round_number: int | None = None) -> list[Complication]:
    """Unresolved complications already triggered by the given round."""
    n = round_number if round_number is not None else test.current_round
    return [c for c in test.complications if c.trigger_round <= n and not c.resolved]


def outcome_label(outcome: MontageOutcome | str | None) -> str:
    if outcome is None:
        return "Unknown"
    try:
        return OUTCOME_LABELS[MontageOutcome(outcome)]
    except ValueError:
        return "Unknown"
