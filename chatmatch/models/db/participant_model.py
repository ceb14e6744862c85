from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from chatmatch.database import Base


class ParticipantModel(Base):
    """SQLAlchemy model for conversation_participants table."""

    __tablename__ = "conversation_participants"

    # (conversation_id, user_id) is the primary key, so a user joins a
    # conversation at most once
    conversation_id = Column(
        UUID(as_uuid=True),
        ForeignKey("conversations.id", ondelete="CASCADE"),
        primary_key=True,
    )
    user_id = Column(String(64), primary_key=True)
    joined_at = Column(DateTime(timezone=True), default=func.now())
    is_archived = Column(Boolean, nullable=False, default=False)
    unread_count = Column(Integer, nullable=False, default=0)

    # Relationships
    conversation = relationship("ConversationModel", back_populates="participants")
