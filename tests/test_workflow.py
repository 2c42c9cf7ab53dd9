"""Tests for the montage action workflow."""

import asyncio

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.domain import chronicle
from app.infra.ws_manager import ConnectionManager
from app.models.db_models import Base
from app.models.montage import ActionType, MontageOutcome, MontageStatus
from tests.conftest import FixedRollProvider, make_workflow, make_world


async def _start(db, world, difficulty="moderate", **options):
    wf = make_workflow(db, world, roll_provider=options.pop("roll_provider", None))
    await wf.create_test(difficulty=difficulty, **options)
    assert await wf.activate_test() is True
    return wf


async def _roll(wf, actor_id, total, natural=None, difficulty="medium"):
    """Submit, approve and resolve one roll action."""
    assert await wf.submit_action(actor_id, ActionType.ROLL, characteristic="might")
    assert await wf.approve_action(actor_id, difficulty=difficulty)
    assert await wf.handle_roll_result(actor_id, total, natural if natural is not None else total)


# --- Scenarios ---


@pytest.mark.asyncio
async def test_moderate_six_successes_is_total_success(db_session):
    world = await make_world(db_session, hero_count=5)
    wf = await _start(db_session, world, "moderate")

    test = await wf.repo.load()
    assert (test.success_limit, test.failure_limit) == (6, 4)

    for hero_id in world.hero_ids:
        await _roll(wf, hero_id, 17)
    test = await wf.repo.load()
    assert test.current_successes == 5
    assert test.status == MontageStatus.ACTIVE
    assert test.current_round == 2

    await _roll(wf, world.hero_ids[0], 17)
    test = await wf.repo.load()
    assert test.status == MontageStatus.RESOLVED
    assert test.outcome == MontageOutcome.TOTAL_SUCCESS
    assert test.victories == 1


@pytest.mark.asyncio
async def test_hard_three_failures_is_total_failure(db_session):
    world = await make_world(db_session, hero_count=5)
    wf = await _start(db_session, world, "hard")

    test = await wf.repo.load()
    assert (test.success_limit, test.failure_limit) == (7, 3)

    await _roll(wf, world.hero_ids[0], 17)
    for hero_id in world.hero_ids[1:4]:
        await _roll(wf, hero_id, 5)

    test = await wf.repo.load()
    assert test.current_successes == 1
    assert test.current_failures == 3
    assert test.status == MontageStatus.RESOLVED
    assert test.outcome == MontageOutcome.TOTAL_FAILURE
    assert test.victories == 0


@pytest.mark.asyncio
async def test_easy_rounds_exhausted_with_margin_is_partial(db_session):
    world = await make_world(db_session, hero_count=5)
    wf = await _start(db_session, world, "easy")

    test = await wf.repo.load()
    assert (test.success_limit, test.failure_limit) == (5, 5)

    # Round 1: two successes, one failure, two heroes do nothing
    await _roll(wf, world.hero_ids[0], 14)
    await _roll(wf, world.hero_ids[1], 14)
    await _roll(wf, world.hero_ids[2], 5, difficulty="hard")
    for hero_id in world.hero_ids[3:]:
        await wf.submit_action(hero_id, ActionType.NOTHING)
        await wf.approve_action(hero_id)
    test = await wf.repo.load()
    assert test.current_round == 2

    # Round 2: two successes, one failure, then the GM closes the round
    await _roll(wf, world.hero_ids[0], 14)
    await _roll(wf, world.hero_ids[1], 14)
    await _roll(wf, world.hero_ids[2], 5, difficulty="hard")
    assert await wf.advance_round() is True

    test = await wf.repo.load()
    assert (test.current_successes, test.current_failures) == (4, 2)
    assert test.current_round == 3
    assert test.outcome == MontageOutcome.PARTIAL_SUCCESS
    assert test.victories == 0


@pytest.mark.asyncio
async def test_natural_nineteen_on_medium_forces_success_reward(db_session):
    world = await make_world(db_session, hero_count=5)
    wf = await _start(db_session, world)

    await wf.submit_action(world.hero_ids[0], ActionType.ROLL)
    await wf.approve_action(world.hero_ids[0], difficulty="medium")
    await wf.handle_roll_result(world.hero_ids[0], roll_total=19, natural_roll=19)

    test = await wf.repo.load()
    action = test.rounds[0].actions[0]
    assert action.tier == 3
    assert action.outcome == "successReward"
    assert action.is_success is True
    assert test.current_successes == 1


@pytest.mark.asyncio
async def test_low_total_critical_still_succeeds(db_session):
    world = await make_world(db_session, hero_count=5)
    wf = await _start(db_session, world)

    await wf.submit_action(world.hero_ids[0], ActionType.ROLL)
    await wf.approve_action(world.hero_ids[0], difficulty="hard")
    await wf.handle_roll_result(world.hero_ids[0], roll_total=10, natural_roll=19)

    action = (await wf.repo.load()).rounds[0].actions[0]
    assert action.tier == 1
    assert action.outcome == "successReward"


# --- Submission and approval ---


@pytest.mark.asyncio
async def test_submit_is_noop_for_duplicates_and_strangers(db_session):
    world = await make_world(db_session, hero_count=3)
    wf = await _start(db_session, world)
    hero = world.hero_ids[0]

    assert await wf.submit_action(hero, ActionType.ROLL) is True
    assert await wf.submit_action(hero, ActionType.ROLL) is False
    assert await wf.submit_action("not-a-hero", ActionType.ROLL) is False

    test = await wf.repo.load()
    assert len(test.pending_actions) == 1


@pytest.mark.asyncio
async def test_submit_is_noop_after_hero_acted(db_session):
    world = await make_world(db_session, hero_count=3)
    wf = await _start(db_session, world)
    hero = world.hero_ids[0]

    await _roll(wf, hero, 14)
    assert await wf.submit_action(hero, ActionType.ROLL) is False


@pytest.mark.asyncio
async def test_submit_requires_active_test(db_session):
    world = await make_world(db_session, hero_count=3)
    wf = make_workflow(db_session, world)
    await wf.create_test()
    assert await wf.submit_action(world.hero_ids[0], ActionType.ROLL) is False


@pytest.mark.asyncio
async def test_aid_needs_another_hero_as_target(db_session):
    world = await make_world(db_session, hero_count=3)
    wf = await _start(db_session, world)
    a, b = world.hero_ids[0], world.hero_ids[1]

    assert await wf.submit_action(a, ActionType.AID, aid_target=a) is False
    assert await wf.submit_action(a, ActionType.AID, aid_target="ghost") is False
    assert await wf.submit_action(a, ActionType.AID, aid_target=b) is True


@pytest.mark.asyncio
async def test_aid_records_assist_without_tally(db_session):
    world = await make_world(db_session, hero_count=3)
    wf = await _start(db_session, world)
    a, b = world.hero_ids[0], world.hero_ids[1]

    await wf.submit_action(a, ActionType.AID, aid_target=b)
    await wf.approve_action(a)
    await wf.handle_roll_result(a, roll_total=13, natural_roll=11)

    test = await wf.repo.load()
    action = test.rounds[0].actions[0]
    assert action.aid_result == "edge"
    assert action.aid_target == b
    assert action.resolved is True
    assert (test.current_successes, test.current_failures) == (0, 0)


@pytest.mark.asyncio
async def test_approve_defaults_to_medium(db_session):
    world = await make_world(db_session, hero_count=3)
    wf = await _start(db_session, world)
    hero = world.hero_ids[0]

    await wf.submit_action(hero, ActionType.ROLL)
    await wf.approve_action(hero)
    test = await wf.repo.load()
    action = test.rounds[0].actions[0]
    assert action.difficulty == "medium"
    assert action.approved is True
    assert action.resolved is False
    assert test.pending_actions == []


@pytest.mark.asyncio
async def test_ability_adds_auto_successes(db_session):
    world = await make_world(db_session, hero_count=3)
    wf = await _start(db_session, world)
    hero = world.hero_ids[0]

    await wf.submit_action(hero, ActionType.ABILITY, description="Inspiring speech")
    await wf.approve_action(hero, auto_successes=2, ability_name="Rally")

    test = await wf.repo.load()
    action = test.rounds[0].actions[0]
    assert action.resolved is True
    assert action.is_success is True
    assert action.ability_name == "Rally"
    assert test.current_successes == 2


@pytest.mark.asyncio
async def test_ability_with_no_successes_is_not_a_success(db_session):
    world = await make_world(db_session, hero_count=3)
    wf = await _start(db_session, world)
    hero = world.hero_ids[0]

    await wf.submit_action(hero, ActionType.ABILITY)
    await wf.approve_action(hero, auto_successes=0)
    action = (await wf.repo.load()).rounds[0].actions[0]
    assert action.is_success is False


@pytest.mark.asyncio
async def test_nothing_resolves_without_tally(db_session):
    world = await make_world(db_session, hero_count=3)
    wf = await _start(db_session, world)
    hero = world.hero_ids[0]

    await wf.submit_action(hero, ActionType.NOTHING)
    await wf.approve_action(hero)
    test = await wf.repo.load()
    action = test.rounds[0].actions[0]
    assert action.type == ActionType.NOTHING
    assert action.resolved is True
    assert action.description == "Does nothing this round."
    assert (test.current_successes, test.current_failures) == (0, 0)


@pytest.mark.asyncio
async def test_reject_returns_hero_to_idle(db_session):
    world = await make_world(db_session, hero_count=3)
    wf = await _start(db_session, world)
    hero = world.hero_ids[0]

    await wf.submit_action(hero, ActionType.ROLL)
    assert await wf.reject_action(hero, "Not here") is True
    test = await wf.repo.load()
    assert test.pending_actions == []
    assert test.rounds[0].actions == []
    assert await wf.submit_action(hero, ActionType.ROLL) is True


@pytest.mark.asyncio
async def test_stale_operations_are_noops(db_session):
    world = await make_world(db_session, hero_count=3)
    wf = await _start(db_session, world)
    hero = world.hero_ids[0]

    assert await wf.approve_action(hero) is False
    assert await wf.reject_action(hero) is False
    assert await wf.handle_roll_result(hero, 15, 10) is False
    assert await wf.remove_action(hero) is False
    assert await wf.resolve_complication("missing") is False


@pytest.mark.asyncio
async def test_second_roll_result_is_ignored(db_session):
    world = await make_world(db_session, hero_count=3)
    wf = await _start(db_session, world)
    hero = world.hero_ids[0]

    await _roll(wf, hero, 17)
    assert await wf.handle_roll_result(hero, 5, 5) is False
    test = await wf.repo.load()
    assert (test.current_successes, test.current_failures) == (1, 0)


# --- Engine-side rolls ---


@pytest.mark.asyncio
async def test_auto_roll_uses_characteristic_and_skill(db_session):
    world = await make_world(
        db_session, hero_count=3, characteristics={"might": 2}, skills=["Climb"]
    )
    roller = FixedRollProvider((18, 14))
    wf = await _start(db_session, world, roll_provider=roller)
    hero = world.hero_ids[0]

    await wf.submit_action(hero, ActionType.ROLL, characteristic="might", skill="climb")
    await wf.approve_action(hero, difficulty="easy", auto_roll=True)

    assert roller.calls == [{"characteristic_value": 2, "skill_bonus": 2, "modifier": 0}]
    test = await wf.repo.load()
    action = test.rounds[0].actions[0]
    assert action.roll_total == 18
    assert action.outcome == "successReward"
    assert test.current_successes == 1
    assert len(wf.rolls) == 1
    assert wf.rolls[0].tier == 3


@pytest.mark.asyncio
async def test_request_roll_applies_modifier(db_session):
    world = await make_world(db_session, hero_count=3, characteristics={"agility": 1})
    roller = FixedRollProvider((9, 10))
    wf = await _start(db_session, world, roll_provider=roller)
    hero = world.hero_ids[0]

    await wf.submit_action(hero, ActionType.ROLL, characteristic="agility")
    await wf.approve_action(hero)
    assert await wf.request_roll(hero, modifier=-2) is True

    assert roller.calls[0] == {"characteristic_value": 1, "skill_bonus": 0, "modifier": -2}
    test = await wf.repo.load()
    assert test.current_failures == 1
    assert await wf.request_roll(hero) is False


# --- Tallies ---


@pytest.mark.asyncio
async def test_remove_action_reverses_roll_exactly(db_session):
    world = await make_world(db_session, hero_count=3)
    wf = await _start(db_session, world)
    a, b = world.hero_ids[0], world.hero_ids[1]

    await _roll(wf, a, 17)
    await _roll(wf, b, 5)
    assert await wf.remove_action(a) is True
    assert await wf.remove_action(b) is True

    test = await wf.repo.load()
    assert (test.current_successes, test.current_failures) == (0, 0)
    assert test.rounds[0].actions == []
    assert await wf.submit_action(a, ActionType.ROLL) is True


@pytest.mark.asyncio
async def test_remove_action_reverses_ability(db_session):
    world = await make_world(db_session, hero_count=3)
    wf = await _start(db_session, world)
    hero = world.hero_ids[0]

    await wf.submit_action(hero, ActionType.ABILITY)
    await wf.approve_action(hero, auto_successes=3)
    await wf.remove_action(hero)
    assert (await wf.repo.load()).current_successes == 0


@pytest.mark.asyncio
async def test_remove_action_floors_at_zero(db_session):
    world = await make_world(db_session, hero_count=3)
    wf = await _start(db_session, world)
    hero = world.hero_ids[0]

    await _roll(wf, hero, 17)
    await wf.adjust_tally(successes=0)
    await wf.remove_action(hero)
    assert (await wf.repo.load()).current_successes == 0


@pytest.mark.asyncio
async def test_remove_action_ignores_unresolved(db_session):
    world = await make_world(db_session, hero_count=3)
    wf = await _start(db_session, world)
    hero = world.hero_ids[0]

    await wf.submit_action(hero, ActionType.ROLL)
    await wf.approve_action(hero)
    assert await wf.remove_action(hero) is False


@pytest.mark.asyncio
async def test_adjust_tally_sets_absolute_values_and_resolves(db_session):
    world = await make_world(db_session, hero_count=5)
    wf = await _start(db_session, world, "moderate")

    await wf.adjust_tally(successes=3, failures=-4)
    test = await wf.repo.load()
    assert (test.current_successes, test.current_failures) == (3, 0)
    assert test.status == MontageStatus.ACTIVE

    await wf.adjust_tally(successes=6)
    test = await wf.repo.load()
    assert test.status == MontageStatus.RESOLVED
    assert test.outcome == MontageOutcome.TOTAL_SUCCESS


@pytest.mark.asyncio
async def test_adjust_tally_without_values_is_noop(db_session):
    world = await make_world(db_session, hero_count=3)
    wf = await _start(db_session, world)
    assert await wf.adjust_tally() is False


# --- Rounds ---


@pytest.mark.asyncio
async def test_round_waits_for_every_hero(db_session):
    world = await make_world(db_session, hero_count=3)
    wf = await _start(db_session, world)

    await _roll(wf, world.hero_ids[0], 14)
    await _roll(wf, world.hero_ids[1], 14)
    await wf.submit_action(world.hero_ids[2], ActionType.ROLL)
    await wf.approve_action(world.hero_ids[2])
    assert (await wf.repo.load()).current_round == 1

    await wf.handle_roll_result(world.hero_ids[2], 14, 12)
    test = await wf.repo.load()
    assert test.current_round == 2
    assert [r.round_number for r in test.rounds] == [1, 2]


@pytest.mark.asyncio
async def test_advance_round_clears_pending(db_session):
    world = await make_world(db_session, hero_count=3)
    wf = await _start(db_session, world)

    await wf.submit_action(world.hero_ids[0], ActionType.ROLL)
    assert await wf.advance_round() is True
    test = await wf.repo.load()
    assert test.current_round == 2
    assert test.pending_actions == []


@pytest.mark.asyncio
async def test_advance_past_last_round_resolves(db_session):
    world = await make_world(db_session, hero_count=3)
    wf = await _start(db_session, world, max_rounds=1)

    await wf.advance_round()
    test = await wf.repo.load()
    assert test.status == MontageStatus.RESOLVED
    assert test.current_round == 2
    assert test.outcome == MontageOutcome.TOTAL_FAILURE


@pytest.mark.asyncio
async def test_last_round_completing_resolves_without_advance(db_session):
    world = await make_world(db_session, hero_count=2)
    wf = await _start(db_session, world, "easy", max_rounds=1)

    for hero_id in world.hero_ids:
        await wf.submit_action(hero_id, ActionType.NOTHING)
        await wf.approve_action(hero_id)

    test = await wf.repo.load()
    assert test.status == MontageStatus.RESOLVED
    assert test.current_round == 2
    assert test.outcome == MontageOutcome.TOTAL_FAILURE
    assert (test.current_successes, test.current_failures) == (0, 0)


@pytest.mark.asyncio
async def test_end_test_early(db_session):
    world = await make_world(db_session, hero_count=5)
    wf = await _start(db_session, world, "moderate")

    await wf.adjust_tally(successes=3, failures=1)
    assert await wf.end_test_early() is True
    test = await wf.repo.load()
    assert test.status == MontageStatus.RESOLVED
    assert test.current_round == test.max_rounds + 1
    assert test.outcome == MontageOutcome.PARTIAL_SUCCESS


@pytest.mark.asyncio
async def test_resolved_test_is_frozen(db_session):
    world = await make_world(db_session, hero_count=3)
    wf = await _start(db_session, world)
    await wf.end_test_early()

    assert await wf.submit_action(world.hero_ids[0], ActionType.ROLL) is False
    assert await wf.adjust_tally(successes=5) is False
    assert await wf.advance_round() is False
    assert await wf.remove_action(world.hero_ids[0]) is False
    assert await wf.end_test_early() is False


# --- Lifecycle ---


@pytest.mark.asyncio
async def test_create_test_uses_owned_heroes(db_session):
    world = await make_world(db_session, hero_count=4)
    wf = make_workflow(db_session, world)
    test = await wf.create_test(name="Crossing", hero_ids=world.hero_ids[:2])

    assert test.status == MontageStatus.SETUP
    assert test.name == "Crossing"
    assert [h.actor_id for h in test.heroes] == world.hero_ids[:2]
    assert (test.success_limit, test.failure_limit) == (3, 2)


@pytest.mark.asyncio
async def test_limit_overrides_are_floored(db_session):
    world = await make_world(db_session, hero_count=5)
    wf = make_workflow(db_session, world)
    test = await wf.create_test(success_limit=1, failure_limit=9)
    assert (test.success_limit, test.failure_limit) == (2, 9)


@pytest.mark.asyncio
async def test_only_one_active_test(db_session):
    world = await make_world(db_session, hero_count=3)
    wf = await _start(db_session, world)
    first = await wf.repo.load()

    assert await wf.create_test(name="Second") is None
    assert await wf.activate_test() is False
    test = await wf.repo.load()
    assert test.id == first.id
    assert test.status == MontageStatus.ACTIVE

    warnings = [e for e in await chronicle.get_chronicle(db_session, world.world_id, include_whispers=True)
                if e.event == "warning"]
    assert len(warnings) == 2


@pytest.mark.asyncio
async def test_activate_from_draft(db_session):
    world = await make_world(db_session, hero_count=3)
    wf = make_workflow(db_session, world)
    draft = await wf.build_test(name="Saved", difficulty="hard")
    await wf.repo.add_draft(draft)
    await db_session.commit()

    assert await wf.activate_test(draft.id) is True
    test = await wf.repo.load()
    assert test.id == draft.id
    assert test.status == MontageStatus.ACTIVE
    assert test.current_round == 1
    assert len(test.rounds) == 1


@pytest.mark.asyncio
async def test_activate_unknown_draft_is_noop(db_session):
    world = await make_world(db_session, hero_count=3)
    wf = make_workflow(db_session, world)
    assert await wf.activate_test("nope") is False
    assert await wf.repo.load() is None


@pytest.mark.asyncio
async def test_archive_requires_resolution(db_session):
    world = await make_world(db_session, hero_count=3)
    wf = await _start(db_session, world)
    assert await wf.archive_test() is False

    await wf.end_test_early()
    assert await wf.archive_test() is True
    assert await wf.repo.load() is None
    archived = await wf.repo.list_archive()
    assert len(archived) == 1
    assert archived[0].completed_at is not None


@pytest.mark.asyncio
async def test_abandon_clears_slot(db_session):
    world = await make_world(db_session, hero_count=3)
    wf = await _start(db_session, world)
    assert await wf.abandon_test() is True
    assert await wf.repo.load() is None
    assert await wf.abandon_test() is False


@pytest.mark.asyncio
async def test_resolve_complication(db_session):
    from app.models.montage import create_complication

    world = await make_world(db_session, hero_count=3)
    complication = create_complication("The bridge sways", trigger_round=2)
    wf = await _start(db_session, world, complications=[complication])

    assert await wf.resolve_complication(complication.id) is True
    assert await wf.resolve_complication(complication.id) is False
    test = await wf.repo.load()
    assert test.complications[0].resolved is True


# --- Broadcast and notifications ---


@pytest.mark.asyncio
async def test_every_mutation_broadcasts_a_snapshot(db_session):
    world = await make_world(db_session, hero_count=3)
    manager = ConnectionManager()
    seen = []
    manager.subscribe(world.world_id, seen.append)
    wf = make_workflow(db_session, world, broadcaster=manager)

    await wf.create_test()
    await wf.activate_test()
    await wf.submit_action(world.hero_ids[0], ActionType.ROLL)
    await wf.submit_action(world.hero_ids[0], ActionType.ROLL)  # no-op, no broadcast

    assert [r.event_type for r in seen] == ["test_created", "test_activated", "state_update"]
    assert seen[-1].data["test"]["pending_actions"][0]["actor_id"] == world.hero_ids[0]


@pytest.mark.asyncio
async def test_resolution_broadcasts_test_resolved(db_session):
    world = await make_world(db_session, hero_count=3)
    manager = ConnectionManager()
    seen = []
    manager.subscribe(world.world_id, seen.append)
    wf = make_workflow(db_session, world, broadcaster=manager)
    await wf.create_test()
    await wf.activate_test()

    await wf.end_test_early()
    assert seen[-1].event_type == "test_resolved"
    assert seen[-1].data["test"]["status"] == "resolved"


@pytest.mark.asyncio
async def test_notifications_are_recorded(db_session):
    world = await make_world(db_session, hero_count=1)
    wf = await _start(db_session, world, max_rounds=1)
    hero = world.hero_ids[0]

    await wf.submit_action(hero, ActionType.ROLL)
    await wf.approve_action(hero)
    await wf.handle_roll_result(hero, 17, 15)

    entries = await chronicle.get_chronicle(db_session, world.world_id, include_whispers=True)
    events = [e.event for e in entries]
    assert events == [
        "test_activated",
        "action_submitted",
        "action_approved",
        "round_summary",
        "test_complete",
    ]
    assert [e.seq for e in entries] == [1, 2, 3, 4, 5]


@pytest.mark.asyncio
async def test_bad_difficulty_aborts_without_persisting(db_session):
    world = await make_world(db_session, hero_count=3)
    wf = await _start(db_session, world)
    hero = world.hero_ids[0]
    await wf.submit_action(hero, ActionType.ROLL)

    with pytest.raises(ValueError):
        await wf.approve_action(hero, difficulty="legendary")

    test = await wf.repo.load()
    assert len(test.pending_actions) == 1
    assert test.rounds[0].actions == []


@pytest.mark.asyncio
async def test_launching_draft_while_active_changes_nothing(db_session):
    world = await make_world(db_session, hero_count=3)
    wf = await _start(db_session, world)
    active = await wf.repo.load()
    draft = await wf.build_test(name="Queued")
    await wf.repo.add_draft(draft)
    await db_session.commit()

    assert await wf.activate_test(draft.id) is False
    assert await wf.repo.load() == active
    assert (await wf.repo.get_draft(draft.id)).status == MontageStatus.SETUP


@pytest.mark.asyncio
async def test_rolls_belong_to_a_single_operation(db_session):
    world = await make_world(db_session, hero_count=3)
    roller = FixedRollProvider((18, 14), (9, 8))
    manager = ConnectionManager()
    seen = []
    manager.subscribe(world.world_id, seen.append)
    wf = make_workflow(db_session, world, roll_provider=roller, broadcaster=manager)
    await wf.create_test()
    await wf.activate_test()
    first, second = world.hero_ids[0], world.hero_ids[1]

    for hero_id in (first, second):
        await wf.submit_action(hero_id, ActionType.ROLL)
        await wf.approve_action(hero_id, auto_roll=True)

    assert [r.total for r in seen[-1].rolls] == [9]
    assert [r.total for r in wf.rolls] == [9]

    assert await wf.submit_action(first, ActionType.ROLL) is False
    assert wf.rolls == []


@pytest.mark.asyncio
async def test_concurrent_submissions_apply_once(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'montage.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with factory() as db:
        world = await make_world(db, hero_count=3, world_id="world-concurrent")
        await _start(db, world)
    hero = world.hero_ids[0]

    async def submit() -> bool:
        async with factory() as db:
            return await make_workflow(db, world).submit_action(hero, ActionType.ROLL)

    try:
        applied = await asyncio.gather(*(submit() for _ in range(6)))
        async with factory() as db:
            test = await make_workflow(db, world).repo.load()
    finally:
        await engine.dispose()

    assert sorted(applied) == [False] * 5 + [True]
    assert [p.actor_id for p in test.pending_actions] == [hero]
