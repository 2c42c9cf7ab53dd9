"""Command dispatcher — the single entry point for montage commands.

Clients never mutate a test themselves: every request becomes a
MontageCommand and is routed here, where roles are checked before the
workflow runs.
"""

from __future__ import annotations

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from app.domain import permissions, roster
from app.domain.montage import resolution
from app.domain.montage.notify import Notifier
from app.domain.montage.workflow import MontageWorkflow, view_for
from app.models.event import (
    PLAYER_COMMANDS,
    ActivateTestPayload,
    AdjustTallyPayload,
    ApproveActionPayload,
    CommandType,
    CreateTestPayload,
    MontageCommand,
    RejectActionPayload,
    RemoveActionPayload,
    RequestRollPayload,
    ResolveComplicationPayload,
    RollResultPayload,
    SubmitActionPayload,
)
from app.models.montage import MontageStatus, MontageTest
from app.models.result import EngineResult
from app.modules.dice.roller import RollProvider

logger = logging.getLogger("montage-core.dispatcher")

MONTAGE_CHAT_COMMAND = "/montage"

# Player commands that act on behalf of a specific hero
_ACTOR_COMMANDS = frozenset({
    CommandType.SUBMIT_ACTION,
    CommandType.ROLL_RESULT,
    CommandType.REQUEST_ROLL,
})


async def dispatch(
    db: AsyncSession,
    command: MontageCommand,
    roll_provider: RollProvider | None = None,
) -> EngineResult:
    """Route a MontageCommand to the workflow and return an EngineResult."""
    payload = command.payload
    ct = CommandType(payload.command)
    workflow = MontageWorkflow(db, command.world_id, roll_provider=roll_provider)

    try:
        denied = await _check_permission(db, command, ct, workflow.notifier)
        if denied is not None:
            await db.commit()
            return EngineResult(success=False, event_type=ct.value, error=denied)

        if ct == CommandType.CREATE_TEST:
            return await _handle_create_test(workflow, payload)
        elif ct == CommandType.ACTIVATE_TEST:
            p: ActivateTestPayload = payload  # type: ignore[assignment]
            applied = await workflow.activate_test(p.draft_id)
            if not applied and await _slot_is_active(workflow):
                return EngineResult(
                    success=False, event_type=ct.value, error="A montage test is already active"
                )
        elif ct == CommandType.END_TEST_EARLY:
            applied = await workflow.end_test_early()
        elif ct == CommandType.ARCHIVE_TEST:
            applied = await workflow.archive_test()
        elif ct == CommandType.ABANDON_TEST:
            applied = await workflow.abandon_test()
        elif ct == CommandType.SUBMIT_ACTION:
            applied = await _handle_submit_action(workflow, command)
        elif ct == CommandType.ROLL_RESULT:
            rp: RollResultPayload = payload  # type: ignore[assignment]
            applied = await workflow.handle_roll_result(rp.actor_id, rp.roll_total, rp.natural_roll)
        elif ct == CommandType.REQUEST_ROLL:
            qp: RequestRollPayload = payload  # type: ignore[assignment]
            applied = await workflow.request_roll(qp.actor_id, qp.modifier)
        elif ct == CommandType.REQUEST_REFRESH:
            applied = True
        elif ct == CommandType.APPROVE_ACTION:
            applied = await _handle_approve_action(workflow, payload)
        elif ct == CommandType.REJECT_ACTION:
            jp: RejectActionPayload = payload  # type: ignore[assignment]
            applied = await workflow.reject_action(jp.actor_id, jp.reason)
        elif ct == CommandType.REMOVE_ACTION:
            mp: RemoveActionPayload = payload  # type: ignore[assignment]
            applied = await workflow.remove_action(mp.actor_id)
        elif ct == CommandType.ADJUST_TALLY:
            tp: AdjustTallyPayload = payload  # type: ignore[assignment]
            applied = await workflow.adjust_tally(tp.successes, tp.failures)
        elif ct == CommandType.ADVANCE_ROUND:
            applied = await workflow.advance_round()
        elif ct == CommandType.RESOLVE_COMPLICATION:
            cp: ResolveComplicationPayload = payload  # type: ignore[assignment]
            applied = await workflow.resolve_complication(cp.complication_id)
        else:
            return EngineResult(
                success=False, event_type=ct.value, error=f"Unhandled command: {ct.value}"
            )
    except Exception as exc:
        logger.exception("world=%s command %s failed", command.world_id, ct.value)
        return EngineResult(success=False, event_type=ct.value, error=str(exc))

    return await _snapshot_result(workflow, ct.value, applied)


async def _check_permission(
    db: AsyncSession, command: MontageCommand, ct: CommandType, notifier: Notifier
) -> str | None:
    """Return a denial message, or None when the caller may run the command."""
    member = await permissions.get_member(db, command.world_id, command.user_id)
    if member is None:
        return f"User {command.user_id} is not in world {command.world_id}"
    if member.role == "GM":
        return None
    if ct not in PLAYER_COMMANDS:
        message = "Only the GM can perform this action"
        await notifier.warn(message, recipient_user_id=command.user_id)
        return message
    if ct in _ACTOR_COMMANDS:
        actor_id = command.payload.actor_id  # type: ignore[union-attr]
        owned = await roster.get_owned_actor_ids(db, command.world_id, command.user_id)
        if actor_id not in owned:
            message = "You do not own this hero"
            await notifier.warn(message, recipient_user_id=command.user_id)
            return message
    return None


async def _slot_is_active(workflow: MontageWorkflow) -> bool:
    test = await workflow.repo.load()
    return test is not None and test.status == MontageStatus.ACTIVE


async def _snapshot_result(workflow: MontageWorkflow, event_type: str, applied: bool) -> EngineResult:
    test = await workflow.repo.load()
    return EngineResult(
        success=True,
        event_type=event_type,
        data={
            "applied": applied,
            "test": test.model_dump(mode="json") if test else None,
        },
        rolls=workflow.rolls,
    )


# --- Handlers with payload unpacking ---


async def _handle_create_test(workflow: MontageWorkflow, payload: CreateTestPayload) -> EngineResult:
    test = await workflow.create_test(
        name=payload.name,
        difficulty=payload.difficulty,
        hero_ids=payload.hero_ids,
        max_rounds=payload.max_rounds,
        success_limit=payload.success_limit,
        failure_limit=payload.failure_limit,
        complications=payload.complications,
        gm_notes=payload.gm_notes,
    )
    if test is None:
        return EngineResult(
            success=False,
            event_type="create_test",
            error="A montage test is already active",
        )
    return EngineResult(
        success=True,
        event_type="create_test",
        data={"applied": True, "test": test.model_dump(mode="json")},
    )


async def _handle_submit_action(workflow: MontageWorkflow, command: MontageCommand) -> bool:
    p: SubmitActionPayload = command.payload  # type: ignore[assignment]
    return await workflow.submit_action(
        p.actor_id,
        p.action_type,
        description=p.description,
        aid_target=p.aid_target,
        characteristic=p.characteristic,
        skill=p.skill,
        user_id=command.user_id,
    )


async def _handle_approve_action(workflow: MontageWorkflow, p: ApproveActionPayload) -> bool:
    return await workflow.approve_action(
        p.actor_id,
        difficulty=p.difficulty,
        auto_successes=p.auto_successes,
        ability_name=p.ability_name,
        gm_notes=p.gm_notes,
        auto_roll=p.auto_roll,
    )


# --- Views ---


async def get_view(db: AsyncSession, world_id: str, user_id: str) -> dict:
    """The surface a user should open, together with the current snapshot."""
    await permissions.require_member(db, world_id, user_id)
    gm = await permissions.is_gm(db, world_id, user_id)
    workflow = MontageWorkflow(db, world_id)
    test = await workflow.repo.load()
    view = {
        "view": view_for(test, gm),
        "is_gm": gm,
        "test": test.model_dump(mode="json") if test else None,
    }
    if test is not None and test.status == MontageStatus.ACTIVE:
        view["round"] = _round_state(test, gm)
    return view


def _round_state(test: MontageTest, gm: bool) -> dict:
    """Round progress for the trackers; the GM also gets the open complications."""
    state = {
        "heroes_waiting": [h.model_dump() for h in resolution.heroes_waiting(test)],
        "heroes_acted": [h.model_dump() for h in resolution.heroes_acted(test)],
    }
    if gm:
        state["complications"] = [
            c.model_dump() for c in resolution.complications_for_round(test)
        ]
    return state


async def handle_chat_command(db: AsyncSession, world_id: str, user_id: str, text: str) -> dict | None:
    """Interpret a chat line. Returns the view to open, or None if not ours.

    ``/montage`` opens the tracker for the caller's role; ``/montage new``
    sends the GM to the configuration view even while a test exists.
    """
    parts = text.strip().lower().split()
    if not parts or parts[0] != MONTAGE_CHAT_COMMAND:
        return None
    if len(parts) > 2 or (len(parts) == 2 and parts[1] != "new"):
        return None
    view = await get_view(db, world_id, user_id)
    if len(parts) == 2 and view["is_gm"]:
        view["view"] = "config"
    return view
