from datetime import datetime, timezone
from typing import Any, List, Sequence
from uuid import UUID

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from chatmatch.models.api.participants import ParticipantResponse
from chatmatch.models.db.participant_model import ParticipantModel
from chatmatch.repositories.base_repository import BaseRepository


class ParticipantRepository(BaseRepository[ParticipantModel, ParticipantResponse]):
    """Repository for conversation participant operations."""

    def __init__(self, db: AsyncSession):
        super().__init__(db, ParticipantModel)

    async def get_by_conversation(
        self, conversation_id: UUID
    ) -> List[ParticipantResponse]:
        """Get all participants for a conversation."""
        query = (
            select(self.model_class)
            .where(self.model_class.conversation_id == conversation_id)
            .order_by(self.model_class.joined_at)
        )
        result = await self.db.execute(query)
        db_models = result.scalars().all()
        return [self._to_pydantic(db_model) for db_model in db_models]

    async def add_participants(
        self, conversation_id: UUID, user_ids: Sequence[str]
    ) -> List[ParticipantResponse]:
        """Add all users to a conversation in a single commit."""
        joined_at = datetime.now(timezone.utc)
        participants = [
            ParticipantResponse(
                conversation_id=conversation_id,
                user_id=user_id,
                joined_at=joined_at,
            )
            for user_id in user_ids
        ]
        self.db.add_all([self._from_pydantic(p) for p in participants])
        await self.db.commit()
        return participants

    async def archive(self, conversation_id: UUID, user_id: str) -> bool:
        """Archive the conversation for one participant."""
        query = (
            update(self.model_class)
            .where(
                self.model_class.conversation_id == conversation_id,
                self.model_class.user_id == user_id,
            )
            .values(is_archived=True)
        )
        result: Any = await self.db.execute(query)
        await self.db.commit()
        return bool(result.rowcount)

    def _to_pydantic(self, db_model: Any) -> ParticipantResponse:
        """Convert SQLAlchemy ParticipantModel to Pydantic ParticipantResponse."""
        return ParticipantResponse(
            conversation_id=db_model.conversation_id,
            user_id=db_model.user_id,
            joined_at=db_model.joined_at,
            is_archived=db_model.is_archived,
            unread_count=db_model.unread_count,
        )

    def _from_pydantic(self, pydantic_model: ParticipantResponse) -> ParticipantModel:
        """Convert Pydantic ParticipantResponse to SQLAlchemy ParticipantModel."""
        return ParticipantModel(
            conversation_id=pydantic_model.conversation_id,
            user_id=pydantic_model.user_id,
            joined_at=pydantic_model.joined_at,
            is_archived=pydantic_model.is_archived,
            unread_count=pydantic_model.unread_count,
        )
