"""Montage action workflow — submit, approve, roll and resolve.

Every mutation follows the same path: take the world's lock, load the full
test record, mutate it in memory, save and commit, then broadcast the new
snapshot. An operation whose precondition no longer holds is a silent no-op,
so a stale or duplicate request never corrupts the record.
"""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from typing import Awaitable, Callable

from sqlalchemy.ext.asyncio import AsyncSession

from app.domain import roster
from app.domain.montage import resolution, tables
from app.domain.montage.notify import Notifier
from app.domain.montage.repository import MontageRepository
from app.infra.config import settings
from app.infra.ws_manager import ConnectionManager, ws_manager
from app.models.montage import (
    Action,
    ActionDifficulty,
    ActionSubmission,
    ActionType,
    Complication,
    GmNotes,
    MontageDifficulty,
    MontageStatus,
    MontageTest,
    RoundRecord,
    create_action,
    create_montage_test,
    create_round,
)
from app.models.result import EngineResult, PowerRollResult
from app.modules.dice.roller import RollProvider, make_roll_provider

logger = logging.getLogger("montage-core.workflow")

Mutation = Callable[[MontageTest], Awaitable[bool]]

NOTHING_DESCRIPTION = "Does nothing this round."


class WorldLocks:
    """One asyncio.Lock per world; at most one mutation in flight per test."""

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    def get(self, world_id: str) -> asyncio.Lock:
        return self._locks[world_id]


world_locks = WorldLocks()


def view_for(test: MontageTest | None, gm: bool) -> str:
    """Which surface a user should see: config, gm_tracker or player_tracker."""
    if gm:
        return "config" if test is None else "gm_tracker"
    return "player_tracker"


class MontageWorkflow:
    def __init__(
        self,
        db: AsyncSession,
        world_id: str,
        roll_provider: RollProvider | None = None,
        notifier: Notifier | None = None,
        broadcaster: ConnectionManager | None = None,
    ) -> None:
        self.db = db
        self.world_id = world_id
        self.repo = MontageRepository(db, world_id)
        self.roll_provider = roll_provider or make_roll_provider(settings.roll_provider)
        self.notifier = notifier or Notifier(db, world_id)
        self.broadcaster = broadcaster or ws_manager
        self.rolls: list[PowerRollResult] = []
        self._resolved_now = False

    # --- Transaction plumbing ---

    async def with_test(
        self, fn: Mutation, status: MontageStatus | None = MontageStatus.ACTIVE
    ) -> bool:
        """Apply ``fn`` to the stored test under the world lock.

        ``fn`` returns False when its precondition failed; nothing is written
        in that case. Returns whether the mutation was applied.
        """
        async with world_locks.get(self.world_id):
            self._reset()
            test = await self.repo.load()
            if test is None or (status is not None and test.status != status):
                logger.debug("world=%s no %s test; ignoring", self.world_id, status)
                return False
            try:
                applied = await fn(test)
                if not applied:
                    return False
                await self._commit(test)
            except Exception:
                await self.db.rollback()
                raise
            await self._broadcast(test)
        return True

    def _reset(self) -> None:
        """Forget the rolls and resolution flag of the previous operation."""
        self.rolls = []
        self._resolved_now = False

    async def _commit(self, test: MontageTest) -> None:
        await self.repo.save(test)
        await self.db.commit()

    async def _broadcast(self, test: MontageTest | None, event_type: str | None = None) -> None:
        if event_type is None:
            event_type = "test_resolved" if self._resolved_now else "state_update"
        result = EngineResult(
            success=True,
            event_type=event_type,
            data={"test": test.model_dump(mode="json") if test else None},
            rolls=list(self.rolls),
        )
        await self.broadcaster.broadcast_to_world(self.world_id, result)

    # --- Test lifecycle ---

    async def create_test(
        self,
        name: str | None = None,
        difficulty: MontageDifficulty | str = MontageDifficulty.MODERATE,
        hero_ids: list[str] | None = None,
        max_rounds: int | None = None,
        success_limit: int | None = None,
        failure_limit: int | None = None,
        complications: list[Complication] | None = None,
        gm_notes: GmNotes | None = None,
    ) -> MontageTest | None:
        """Build a new test in the active slot, in setup status.

        Refused while another test is active. A resolved test still occupying
        the slot is archived first.
        """
        async with world_locks.get(self.world_id):
            self._reset()
            current = await self.repo.load()
            if current is not None and current.status == MontageStatus.ACTIVE:
                await self.notifier.warn("A montage test is already active.")
                await self.db.commit()
                return None
            if current is not None and current.status == MontageStatus.RESOLVED:
                await self.repo.archive(current)

            test = await self.build_test(
                name=name,
                difficulty=difficulty,
                hero_ids=hero_ids,
                max_rounds=max_rounds,
                success_limit=success_limit,
                failure_limit=failure_limit,
                complications=complications,
                gm_notes=gm_notes,
            )
            await self._commit(test)
            logger.info("world=%s created test %s (%s)", self.world_id, test.id, test.difficulty.value)
            await self._broadcast(test, "test_created")
        return test

    async def build_test(
        self,
        name: str | None = None,
        difficulty: MontageDifficulty | str = MontageDifficulty.MODERATE,
        hero_ids: list[str] | None = None,
        max_rounds: int | None = None,
        success_limit: int | None = None,
        failure_limit: int | None = None,
        complications: list[Complication] | None = None,
        gm_notes: GmNotes | None = None,
    ) -> MontageTest:
        """A fresh setup-status test over the world's player-owned heroes."""
        heroes = await roster.get_available_heroes(self.db, self.world_id)
        if hero_ids is not None:
            wanted = set(hero_ids)
            heroes = [h for h in heroes if h.actor_id in wanted]
        return create_montage_test(
            difficulty,
            heroes=heroes,
            name=name,
            max_rounds=max_rounds if max_rounds is not None else settings.default_max_rounds,
            success_limit=success_limit,
            failure_limit=failure_limit,
            complications=complications,
            gm_notes=gm_notes,
        )

    async def activate_test(self, draft_id: str | None = None) -> bool:
        """Start the test in the active slot, or launch a saved draft first."""
        async with world_locks.get(self.world_id):
            self._reset()
            current = await self.repo.load()
            if current is not None and current.status == MontageStatus.ACTIVE:
                await self.notifier.warn("A montage test is already active.")
                await self.db.commit()
                return False

            if draft_id is not None:
                test = await self.repo.get_draft(draft_id)
                if test is None:
                    logger.debug("world=%s draft %s not found", self.world_id, draft_id)
                    return False
                if current is not None and current.status == MontageStatus.RESOLVED:
                    await self.repo.archive(current)
            else:
                test = current
                if test is None or test.status != MontageStatus.SETUP:
                    return False

            test.status = MontageStatus.ACTIVE
            test.current_round = 1
            test.rounds = [create_round(1)]
            test.pending_actions = []
            await self.notifier.test_activated(test)
            await self._commit(test)
            logger.info("world=%s activated test %s", self.world_id, test.id)
            await self._broadcast(test, "test_activated")
        return True

    async def archive_test(self) -> bool:
        """Move a resolved test from the active slot into the archive."""
        async with world_locks.get(self.world_id):
            self._reset()
            test = await self.repo.load()
            if test is None or test.status != MontageStatus.RESOLVED:
                return False
            await self.repo.archive(test)
            await self.repo.clear()
            await self.db.commit()
            logger.info("world=%s archived test %s", self.world_id, test.id)
            await self._broadcast(None, "test_archived")
        return True

    async def abandon_test(self) -> bool:
        """Discard the active slot without archiving."""
        async with world_locks.get(self.world_id):
            self._reset()
            test = await self.repo.load()
            if test is None:
                return False
            await self.repo.clear()
            await self.db.commit()
            logger.info("world=%s abandoned test %s", self.world_id, test.id)
            await self._broadcast(None, "test_abandoned")
        return True

    # --- Player requests ---

    async def submit_action(
        self,
        actor_id: str,
        action_type: ActionType | str,
        description: str = "",
        aid_target: str | None = None,
        characteristic: str | None = None,
        skill: str | None = None,
        user_id: str | None = None,
    ) -> bool:
        action_type = ActionType(action_type)

        async def _apply(test: MontageTest) -> bool:
            if test.hero(actor_id) is None:
                logger.debug("world=%s %s is not in this test", self.world_id, actor_id)
                return False
            if test.pending_for(actor_id) is not None:
                return False
            if resolution.has_hero_acted(test, actor_id):
                return False
            if action_type == ActionType.AID and (
                aid_target == actor_id or test.hero(aid_target or "") is None
            ):
                logger.debug("world=%s bad aid target %s", self.world_id, aid_target)
                return False

            submission = ActionSubmission(
                actor_id=actor_id,
                user_id=user_id,
                type=action_type,
                description=description,
                aid_target=aid_target if action_type == ActionType.AID else None,
                characteristic=characteristic,
                skill=skill,
            )
            test.pending_actions.append(submission)
            await self.notifier.action_submitted(test, submission)
            return True

        return await self.with_test(_apply)

    async def handle_roll_result(self, actor_id: str, roll_total: int, natural_roll: int) -> bool:
        """Apply a roll the player made for their approved action."""

        async def _apply(test: MontageTest) -> bool:
            action = self._outstanding_action(test, actor_id)
            if action is None:
                return False
            self._apply_roll(test, action, roll_total, natural_roll)
            await self._settle(test)
            return True

        return await self.with_test(_apply)

    async def request_roll(self, actor_id: str, modifier: int = 0) -> bool:
        """Roll for an approved action through the configured RollProvider."""

        async def _apply(test: MontageTest) -> bool:
            action = self._outstanding_action(test, actor_id)
            if action is None:
                return False
            await self._auto_roll(test, action, modifier)
            await self._settle(test)
            return True

        return await self.with_test(_apply)

    # --- GM workflow ---

    async def approve_action(
        self,
        actor_id: str,
        difficulty: ActionDifficulty | str | None = None,
        auto_successes: int = 0,
        ability_name: str | None = None,
        gm_notes: str = "",
        auto_roll: bool = False,
    ) -> bool:
        async def _apply(test: MontageTest) -> bool:
            pending = test.pending_for(actor_id)
            if pending is None:
                return False
            test.pending_actions.remove(pending)
            round_ = self._current_round(test)

            if pending.type == ActionType.NOTHING:
                round_.actions.append(create_action(
                    actor_id,
                    ActionType.NOTHING,
                    description=pending.description or NOTHING_DESCRIPTION,
                    approved=True,
                    resolved=True,
                    gm_notes=gm_notes,
                ))
                await self._settle(test)
                return True

            if pending.type == ActionType.ABILITY:
                successes = max(0, auto_successes)
                round_.actions.append(create_action(
                    actor_id,
                    ActionType.ABILITY,
                    description=pending.description,
                    ability_name=ability_name,
                    auto_successes=successes,
                    is_success=successes > 0,
                    approved=True,
                    resolved=True,
                    gm_notes=gm_notes,
                ))
                test.current_successes += successes
                await self._settle(test)
                return True

            # Roll and aid wait for a roll result
            test_difficulty = ActionDifficulty(difficulty or ActionDifficulty.MEDIUM)
            action = create_action(
                actor_id,
                pending.type,
                description=pending.description,
                characteristic=pending.characteristic,
                skill=pending.skill,
                difficulty=test_difficulty,
                aid_target=pending.aid_target,
                approved=True,
                gm_notes=gm_notes,
            )
            round_.actions.append(action)
            if auto_roll:
                await self._auto_roll(test, action)
                await self._settle(test)
            else:
                await self.notifier.action_approved(pending, test_difficulty.value)
            return True

        return await self.with_test(_apply)

    async def reject_action(self, actor_id: str, reason: str = "") -> bool:
        async def _apply(test: MontageTest) -> bool:
            pending = test.pending_for(actor_id)
            if pending is None:
                return False
            test.pending_actions.remove(pending)
            await self.notifier.action_rejected(pending, reason)
            return True

        return await self.with_test(_apply)

    async def remove_action(self, actor_id: str) -> bool:
        """Take back a hero's resolved action in the current round.

        Tallies are reversed exactly; the round is not re-checked for
        completion, so the hero simply gets to act again.
        """

        async def _apply(test: MontageTest) -> bool:
            round_ = resolution.get_current_round(test)
            if round_ is None:
                return False
            action = next(
                (a for a in round_.actions if a.actor_id == actor_id and a.resolved),
                None,
            )
            if action is None:
                return False
            round_.actions.remove(action)
            if action.type == ActionType.ABILITY:
                test.current_successes = max(0, test.current_successes - action.auto_successes)
            elif action.type == ActionType.ROLL:
                if action.is_success is True:
                    test.current_successes = max(0, test.current_successes - 1)
                elif action.is_success is False:
                    test.current_failures = max(0, test.current_failures - 1)
            logger.info("world=%s removed %s action of %s", self.world_id, action.type.value, actor_id)
            return True

        return await self.with_test(_apply)

    async def adjust_tally(self, successes: int | None = None, failures: int | None = None) -> bool:
        """Set tallies to absolute values (floored at zero), then check resolution."""
        if successes is None and failures is None:
            return False

        async def _apply(test: MontageTest) -> bool:
            if successes is not None:
                test.current_successes = max(0, successes)
            if failures is not None:
                test.current_failures = max(0, failures)
            result = resolution.evaluate_resolution(test)
            if result.resolved:
                await self._resolve_test(test, result)
            return True

        return await self.with_test(_apply)

    async def advance_round(self) -> bool:
        """Close the current round regardless of how many heroes acted."""

        async def _apply(test: MontageTest) -> bool:
            round_ = resolution.get_current_round(test)
            if round_ is not None:
                await self.notifier.round_summary(test, round_)
            result = resolution.evaluate_resolution(test)
            if result.resolved:
                await self._resolve_test(test, result)
                return True
            await self._next_round_or_resolve(test)
            return True

        return await self.with_test(_apply)

    async def end_test_early(self) -> bool:
        async def _apply(test: MontageTest) -> bool:
            test.current_round = test.max_rounds + 1
            await self._resolve_test(test, resolution.evaluate_resolution(test))
            return True

        return await self.with_test(_apply)

    async def resolve_complication(self, complication_id: str) -> bool:
        async def _apply(test: MontageTest) -> bool:
            complication = next(
                (c for c in test.complications if c.id == complication_id), None
            )
            if complication is None or complication.resolved:
                return False
            complication.resolved = True
            return True

        return await self.with_test(_apply)

    # --- Internals ---

    def _current_round(self, test: MontageTest) -> RoundRecord:
        round_ = resolution.get_current_round(test)
        if round_ is None:
            round_ = create_round(test.current_round)
            test.rounds.append(round_)
        return round_

    @staticmethod
    def _outstanding_action(test: MontageTest, actor_id: str) -> Action | None:
        round_ = resolution.get_current_round(test)
        if round_ is None:
            return None
        return next(
            (
                a for a in round_.actions
                if a.actor_id == actor_id
                and a.approved
                and not a.resolved
                and a.type in (ActionType.ROLL, ActionType.AID)
            ),
            None,
        )

    async def _auto_roll(self, test: MontageTest, action: Action, modifier: int = 0) -> None:
        characteristic = await roster.get_characteristic(
            self.db, self.world_id, action.actor_id, action.characteristic
        )
        skill_bonus = (
            settings.skill_bonus
            if await roster.has_skill(self.db, self.world_id, action.actor_id, action.skill)
            else 0
        )
        outcome = self.roll_provider.roll(
            characteristic_value=characteristic,
            skill_bonus=skill_bonus,
            modifier=modifier,
        )
        self.rolls.append(PowerRollResult(
            actor_id=action.actor_id,
            dice=outcome.dice,
            natural_roll=outcome.natural_roll,
            modifier=outcome.modifier,
            total=outcome.total,
            tier=tables.get_tier(outcome.total),
        ))
        self._apply_roll(test, action, outcome.total, outcome.natural_roll)

    @staticmethod
    def _apply_roll(test: MontageTest, action: Action, roll_total: int, natural_roll: int) -> None:
        tier = tables.get_tier(roll_total)
        action.roll_total = roll_total
        action.natural_roll = natural_roll
        action.tier = tier
        if action.type == ActionType.AID:
            action.aid_result = tables.get_assist_outcome(tier).key
        else:
            outcome = tables.get_test_outcome(
                action.difficulty or ActionDifficulty.MEDIUM,
                tier,
                tables.is_critical(natural_roll),
            )
            action.outcome = outcome.key
            action.is_success = outcome.is_success
            if outcome.is_success:
                test.current_successes += 1
            else:
                test.current_failures += 1
        action.resolved = True

    async def _settle(self, test: MontageTest) -> None:
        """Resolve on a limit hit, otherwise close the round if everyone acted."""
        if test.status != MontageStatus.ACTIVE:
            return
        result = resolution.evaluate_resolution(test)
        if result.resolved:
            await self._resolve_test(test, result)
            return
        await self._check_round_completion(test)

    async def _check_round_completion(self, test: MontageTest) -> None:
        if not resolution.is_round_complete(test):
            return
        result = resolution.evaluate_resolution(test)
        if result.resolved:
            await self._resolve_test(test, result)
            return
        await self.notifier.round_summary(test, resolution.get_current_round(test))
        await self._next_round_or_resolve(test)

    async def _next_round_or_resolve(self, test: MontageTest) -> None:
        if test.current_round < test.max_rounds:
            test.current_round += 1
            test.rounds.append(create_round(test.current_round))
            test.pending_actions = []
            logger.info("world=%s test %s round %d", self.world_id, test.id, test.current_round)
            await self.notifier.round_advanced(test)
            return
        test.current_round = test.max_rounds + 1
        await self._resolve_test(test, resolution.evaluate_resolution(test))

    async def _resolve_test(self, test: MontageTest, result: resolution.Resolution) -> None:
        test.status = MontageStatus.RESOLVED
        test.outcome = result.outcome
        test.victories = result.victories
        test.pending_actions = []
        self._resolved_now = True
        logger.info(
            "world=%s test %s resolved: %s (%d victories)",
            self.world_id, test.id, test.outcome.value if test.outcome else None, test.victories,
        )
        await self.notifier.test_complete(test)
