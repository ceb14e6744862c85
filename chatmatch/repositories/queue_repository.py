from typing import Any, List, Optional, Sequence

from sqlalchemy import delete
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from chatmatch.models.api.queue import QueueEntry
from chatmatch.models.db.queue_entry_model import QueueEntryModel
from chatmatch.repositories.base_repository import BaseRepository


class QueueRepository(BaseRepository[QueueEntryModel, QueueEntry]):
    """Repository for random chat queue operations."""

    key_name = "user_id"

    def __init__(self, db: AsyncSession):
        super().__init__(db, QueueEntryModel)

    async def upsert(self, entry: QueueEntry) -> QueueEntry:
        """Insert the entry or replace the user's existing one."""
        query = (
            insert(self.model_class)
            .values(
                user_id=entry.user_id,
                interests=entry.interests,
                is_anonymous=entry.is_anonymous,
                joined_queue_at=entry.joined_queue_at,
            )
            .on_conflict_do_update(
                index_elements=[self.model_class.user_id],
                set_={
                    "interests": entry.interests,
                    "is_anonymous": entry.is_anonymous,
                    "joined_queue_at": entry.joined_queue_at,
                },
            )
        )
        await self.db.execute(query)
        await self.db.commit()
        return entry

    async def delete_version(self, entry: QueueEntry) -> bool:
        """Delete the entry only if it still carries the same join time."""
        query = delete(self.model_class).where(
            self.model_class.user_id == entry.user_id,
            self.model_class.joined_queue_at == entry.joined_queue_at,
        )
        result: Any = await self.db.execute(query)
        await self.db.commit()
        return bool(result.rowcount)

    async def claim_pair(self, own: QueueEntry, candidate: QueueEntry) -> bool:
        """Delete both entries in one transaction if both are still current.

        Rows are locked in user_id order so two claims over overlapping pairs
        cannot deadlock; a claim that finds a row gone or re-joined rolls back.
        """
        expected = {own.user_id: own, candidate.user_id: candidate}
        user_ids = sorted(expected)

        query = (
            select(self.model_class)
            .where(self.model_class.user_id.in_(user_ids))
            .order_by(self.model_class.user_id)
            .with_for_update()
        )
        result = await self.db.execute(query)
        locked = {row.user_id: row for row in result.scalars().all()}

        if len(locked) != len(user_ids) or any(
            locked[user_id].joined_queue_at != expected[user_id].joined_queue_at
            for user_id in user_ids
        ):
            await self.db.rollback()
            return False

        await self.db.execute(
            delete(self.model_class).where(self.model_class.user_id.in_(user_ids))
        )
        await self.db.commit()
        return True

    async def find_candidates(
        self,
        exclude_user_id: str,
        interests: Optional[Sequence[str]] = None,
        limit: int = 1,
    ) -> List[QueueEntry]:
        """Oldest waiting entries of other users, optionally sharing a tag."""
        query = select(self.model_class).where(
            self.model_class.user_id != exclude_user_id
        )
        if interests:
            query = query.where(self.model_class.interests.overlap(list(interests)))

        query = query.order_by(
            self.model_class.joined_queue_at.asc(), self.model_class.user_id.asc()
        ).limit(limit)

        result = await self.db.execute(query)
        db_models = result.scalars().all()
        return [self._to_pydantic(db_model) for db_model in db_models]

    def _to_pydantic(self, db_model: Any) -> QueueEntry:
        """Convert SQLAlchemy QueueEntryModel to Pydantic QueueEntry."""
        return QueueEntry(
            user_id=db_model.user_id,
            interests=list(db_model.interests or []),
            is_anonymous=db_model.is_anonymous,
            joined_queue_at=db_model.joined_queue_at,
        )

    def _from_pydantic(self, pydantic_model: QueueEntry) -> QueueEntryModel:
        """Convert Pydantic QueueEntry to SQLAlchemy QueueEntryModel."""
        return QueueEntryModel(
            user_id=pydantic_model.user_id,
            interests=pydantic_model.interests,
            is_anonymous=pydantic_model.is_anonymous,
            joined_queue_at=pydantic_model.joined_queue_at,
        )
