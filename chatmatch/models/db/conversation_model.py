import uuid

from sqlalchemy import Column, DateTime, String, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from chatmatch.database import Base


class ConversationModel(Base):
    """SQLAlchemy model for conversations table."""

    __tablename__ = "conversations"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    type = Column(String(10), nullable=False, default="direct")
    creator_id = Column(String(64), nullable=False)
    status = Column(String(10), nullable=False, default="pending")
    created_at = Column(DateTime(timezone=True), default=func.now())
    last_message_at = Column(DateTime(timezone=True), default=func.now())

    # Relationships
    participants = relationship(
        "ParticipantModel",
        back_populates="conversation",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    # Constraints (enforced by database CHECK constraints in the migration)
    # type IN ('direct', 'random')
    # status IN ('pending', 'accepted', 'rejected')
