from datetime import datetime, timezone
from typing import Any, List, Optional
from uuid import UUID, uuid4

from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy.orm import selectinload

from chatmatch.models.api.conversations import (
    ConversationKind,
    ConversationResponse,
    ConversationStatus,
)
from chatmatch.models.db.conversation_model import ConversationModel
from chatmatch.models.db.participant_model import ParticipantModel
from chatmatch.repositories.base_repository import BaseRepository


class ConversationRepository(BaseRepository[ConversationModel, ConversationResponse]):
    """Repository for conversation operations."""

    def __init__(self, db: AsyncSession):
        super().__init__(db, ConversationModel)

    def _with_participants(self) -> Any:
        return select(self.model_class).options(
            selectinload(self.model_class.participants)
        )

    def _has_participant(self, user_id: str) -> Any:
        return self.model_class.participants.any(ParticipantModel.user_id == user_id)

    async def get_by_key(self, key: Any) -> Optional[ConversationResponse]:
        """Get a conversation by ID with participants loaded."""
        query = self._with_participants().where(self.model_class.id == UUID(str(key)))
        result = await self.db.execute(query)
        db_model = result.scalar_one_or_none()
        return self._to_pydantic(db_model) if db_model else None

    async def delete(self, key: Any) -> bool:
        """Delete a conversation; participant rows go with it (ON DELETE CASCADE)."""
        query = delete(self.model_class).where(self.model_class.id == UUID(str(key)))
        result: Any = await self.db.execute(query)
        await self.db.commit()
        return bool(result.rowcount)

    async def create_conversation(
        self, kind: ConversationKind, creator_id: str, status: ConversationStatus
    ) -> ConversationResponse:
        """Create a new conversation without participants."""
        now = datetime.now(timezone.utc)
        conversation = ConversationResponse(
            id=uuid4(),
            type=kind,
            creator_id=creator_id,
            status=status,
            created_at=now,
            last_message_at=now,
            participants=[],
        )
        db_model = self._from_pydantic(conversation)
        self.db.add(db_model)
        await self.db.commit()
        return conversation

    async def find_direct(
        self, user_a: str, user_b: str
    ) -> Optional[ConversationResponse]:
        """Find the oldest direct conversation both users take part in."""
        query = (
            self._with_participants()
            .where(
                self.model_class.type == ConversationKind.DIRECT.value,
                self._has_participant(user_a),
                self._has_participant(user_b),
            )
            .order_by(self.model_class.created_at.asc())
            .limit(1)
        )
        result = await self.db.execute(query)
        db_model = result.scalars().first()
        return self._to_pydantic(db_model) if db_model else None

    async def has_accepted(self, user_a: str, user_b: str) -> bool:
        """True when the two users already share an accepted conversation."""
        query = (
            select(self.model_class.id)
            .where(
                self.model_class.status == ConversationStatus.ACCEPTED.value,
                self._has_participant(user_a),
                self._has_participant(user_b),
            )
            .limit(1)
        )
        result = await self.db.execute(query)
        return result.scalars().first() is not None

    async def find_latest_random_since(
        self, user_id: str, since: datetime
    ) -> Optional[ConversationResponse]:
        """Newest random conversation of the user created at or after since."""
        query = (
            self._with_participants()
            .where(
                self.model_class.type == ConversationKind.RANDOM.value,
                self.model_class.created_at >= since,
                self._has_participant(user_id),
            )
            .order_by(self.model_class.created_at.desc())
            .limit(1)
        )
        result = await self.db.execute(query)
        db_model = result.scalars().first()
        return self._to_pydantic(db_model) if db_model else None

    async def list_for_user(
        self,
        user_id: str,
        include_archived: bool = False,
        limit: int = 50,
        offset: int = 0,
    ) -> List[ConversationResponse]:
        """List the user's conversations, most recent activity first."""
        query = self._with_participants().join(
            ParticipantModel,
            (ParticipantModel.conversation_id == self.model_class.id)
            & (ParticipantModel.user_id == user_id),
        )
        if not include_archived:
            query = query.where(ParticipantModel.is_archived.is_(False))

        query = (
            query.order_by(self.model_class.last_message_at.desc())
            .limit(limit)
            .offset(offset)
        )
        result = await self.db.execute(query)
        db_models = result.scalars().all()
        return [self._to_pydantic(db_model) for db_model in db_models]

    async def set_status(
        self, conversation_id: UUID, status: ConversationStatus
    ) -> Optional[ConversationResponse]:
        """Update the request status of a conversation."""
        query = self._with_participants().where(self.model_class.id == conversation_id)
        result = await self.db.execute(query)
        db_model = result.scalar_one_or_none()
        if not db_model:
            return None

        db_model.status = status.value
        await self.db.commit()
        return self._to_pydantic(db_model)

    def _to_pydantic(self, db_model: Any) -> ConversationResponse:
        """Convert SQLAlchemy ConversationModel to Pydantic ConversationResponse."""
        return ConversationResponse(
            id=db_model.id,
            type=db_model.type,
            creator_id=db_model.creator_id,
            status=db_model.status,
            created_at=db_model.created_at,
            last_message_at=db_model.last_message_at,
            participants=[p.user_id for p in db_model.participants],
        )

    def _from_pydantic(self, pydantic_model: ConversationResponse) -> ConversationModel:
        """Convert Pydantic ConversationResponse to SQLAlchemy ConversationModel."""
        return ConversationModel(
            id=pydantic_model.id,
            type=pydantic_model.type.value,
            creator_id=pydantic_model.creator_id,
            status=pydantic_model.status.value,
            created_at=pydantic_model.created_at,
            last_message_at=pydantic_model.last_message_at,
        )
