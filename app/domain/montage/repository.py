"""Montage persistence — active slot, drafts and archive for one world."""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.db_models import ActiveTest, ArchivedTest, DraftTest
from app.models.montage import MontageTest


class MontageRepository:
    """Keyed store of montage tests for a single world.

    ``save`` only flushes; the caller owns the transaction and commits once
    the whole operation has succeeded.
    """

    def __init__(self, db: AsyncSession, world_id: str) -> None:
        self.db = db
        self.world_id = world_id

    # --- Active slot ---

    async def _active_row(self) -> ActiveTest | None:
        result = await self.db.execute(
            select(ActiveTest).where(ActiveTest.world_id == self.world_id)
        )
        return result.scalar_one_or_none()

    async def load(self) -> MontageTest | None:
        row = await self._active_row()
        if row is None:
            return None
        return MontageTest.model_validate_json(row.data_json)

    async def save(self, test: MontageTest) -> None:
        row = await self._active_row()
        data = test.model_dump_json()
        if row is None:
            row = ActiveTest(
                world_id=self.world_id,
                test_id=test.id,
                status=test.status.value,
                data_json=data,
            )
            self.db.add(row)
        else:
            row.test_id = test.id
            row.status = test.status.value
            row.data_json = data
        await self.db.flush()

    async def clear(self) -> None:
        await self.db.execute(
            delete(ActiveTest).where(ActiveTest.world_id == self.world_id)
        )
        await self.db.flush()

    # --- Drafts ---

    async def _draft_row(self, test_id: str) -> DraftTest | None:
        result = await self.db.execute(
            select(DraftTest).where(
                DraftTest.world_id == self.world_id,
                DraftTest.id == test_id,
            )
        )
        return result.scalar_one_or_none()

    async def list_drafts(self) -> list[MontageTest]:
        result = await self.db.execute(
            select(DraftTest)
            .where(DraftTest.world_id == self.world_id)
            .order_by(DraftTest.created_at)
        )
        return [MontageTest.model_validate_json(r.data_json) for r in result.scalars().all()]

    async def get_draft(self, test_id: str) -> MontageTest | None:
        row = await self._draft_row(test_id)
        if row is None:
            return None
        return MontageTest.model_validate_json(row.data_json)

    async def add_draft(self, test: MontageTest) -> MontageTest:
        self.db.add(DraftTest(
            id=test.id,
            world_id=self.world_id,
            name=test.name,
            data_json=test.model_dump_json(),
        ))
        await self.db.flush()
        return test

    async def update_draft(self, test: MontageTest) -> bool:
        """Replace a stored draft. Returns False when no such draft exists."""
        row = await self._draft_row(test.id)
        if row is None:
            return False
        row.name = test.name
        row.data_json = test.model_dump_json()
        await self.db.flush()
        return True

    async def delete_draft(self, test_id: str) -> None:
        await self.db.execute(
            delete(DraftTest).where(
                DraftTest.world_id == self.world_id,
                DraftTest.id == test_id,
            )
        )
        await self.db.flush()

    # --- Archive ---

    async def archive(self, test: MontageTest) -> ArchivedTest:
        completed_at = datetime.now(timezone.utc)
        snapshot = test.model_copy(update={"completed_at": completed_at})
        row = ArchivedTest(
            world_id=self.world_id,
            test_id=test.id,
            name=test.name,
            outcome=test.outcome.value if test.outcome else None,
            victories=test.victories,
            data_json=snapshot.model_dump_json(),
            completed_at=completed_at,
        )
        self.db.add(row)
        await self.db.flush()
        return row

    async def list_archive(self, limit: int = 50) -> list[MontageTest]:
        result = await self.db.execute(
            select(ArchivedTest)
            .where(ArchivedTest.world_id == self.world_id)
            .order_by(ArchivedTest.completed_at.desc())
            .limit(limit)
        )
        return [MontageTest.model_validate_json(r.data_json) for r in result.scalars().all()]
