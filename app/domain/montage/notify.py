"""Montage notifications — chat-style transcript of a test's progress."""

from __future__ import annotations

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from app.domain import chronicle
from app.domain.montage import resolution
from app.models.montage import ActionSubmission, MontageTest, RoundRecord

logger = logging.getLogger("montage-core.notify")

SPEAKER = "Montage Test"


class Notifier:
    """Fire-and-forget notification sink.

    Each notification is appended to the world's chronicle inside a savepoint;
    a failure is logged and never aborts the operation that raised it.
    """

    def __init__(self, db: AsyncSession, world_id: str) -> None:
        self.db = db
        self.world_id = world_id

    async def notify(
        self,
        event: str,
        payload: dict | None = None,
        content: str | None = None,
        whisper: bool = False,
        recipient_user_id: str | None = None,
    ) -> None:
        logger.debug("world=%s notify %s", self.world_id, event)
        try:
            async with self.db.begin_nested():
                await chronicle.append_entry(
                    self.db,
                    self.world_id,
                    event,
                    payload=payload,
                    content=content,
                    whisper=whisper,
                    recipient_user_id=recipient_user_id,
                )
        except Exception:
            logger.exception("world=%s could not record %s notification", self.world_id, event)

    async def warn(self, message: str, recipient_user_id: str | None = None) -> None:
        logger.warning("world=%s %s", self.world_id, message)
        await self.notify(
            "warning",
            {"message": message},
            content=message,
            whisper=True,
            recipient_user_id=recipient_user_id,
        )

    # --- Montage messages ---

    async def action_submitted(self, test: MontageTest, submission: ActionSubmission) -> None:
        hero = test.hero(submission.actor_id)
        hero_name = hero.name if hero else "Unknown"
        content = f"{hero_name} wants to {submission.type.value}"
        if submission.description:
            content += f": {submission.description}"
        await self.notify(
            "action_submitted",
            {"actor_id": submission.actor_id, "type": submission.type.value},
            content=content,
            whisper=True,
        )

    async def action_approved(
        self, submission: ActionSubmission, difficulty: str | None
    ) -> None:
        await self.notify(
            "action_approved",
            {
                "actor_id": submission.actor_id,
                "type": submission.type.value,
                "difficulty": difficulty,
                "aid_target": submission.aid_target,
            },
            whisper=True,
            recipient_user_id=submission.user_id,
        )

    async def action_rejected(self, submission: ActionSubmission, reason: str) -> None:
        await self.notify(
            "action_rejected",
            {"actor_id": submission.actor_id, "reason": reason},
            content=reason or None,
            whisper=True,
            recipient_user_id=submission.user_id,
        )

    async def round_summary(self, test: MontageTest, round_: RoundRecord) -> None:
        lines = [
            f"{test.name} — Round {round_.round_number}/{test.max_rounds}",
            f"Successes {test.current_successes}/{test.success_limit}, "
            f"Failures {test.current_failures}/{test.failure_limit}",
        ]
        for action in round_.actions:
            hero = test.hero(action.actor_id)
            name = hero.name if hero else "Unknown Hero"
            detail = action.type.value
            if action.outcome:
                detail += f" ({action.outcome})"
            elif action.aid_result:
                detail += f" ({action.aid_result})"
            elif action.auto_successes:
                detail += f" (+{action.auto_successes})"
            lines.append(f"{name}: {detail}")
        await self.notify(
            "round_summary",
            {
                "round": round_.round_number,
                "successes": test.current_successes,
                "failures": test.current_failures,
            },
            content="\n".join(lines),
        )

    async def round_advanced(self, test: MontageTest) -> None:
        await self.notify(
            "round_advanced",
            {"round": test.current_round, "max_rounds": test.max_rounds},
            content=f"Round {test.current_round} of {test.max_rounds} begins.",
        )

    async def test_activated(self, test: MontageTest) -> None:
        await self.notify(
            "test_activated",
            {"test_id": test.id, "name": test.name},
            content=f"{test.name} has begun.",
        )

    async def test_complete(self, test: MontageTest) -> None:
        label = resolution.outcome_label(test.outcome)
        await self.notify(
            "test_complete",
            {
                "test_id": test.id,
                "outcome": test.outcome.value if test.outcome else None,
                "victories": test.victories,
                "successes": test.current_successes,
                "failures": test.current_failures,
            },
            content=(
                f"{test.name}: {label} — {test.current_successes} successes, "
                f"{test.current_failures} failures, {test.victories} victories."
            ),
        )
