from sqlalchemy import Boolean, Column, DateTime, String, func
from sqlalchemy.dialects.postgresql import ARRAY

from chatmatch.database import Base


class QueueEntryModel(Base):
    """SQLAlchemy model for random_chat_queue table."""

    __tablename__ = "random_chat_queue"

    user_id = Column(String(64), primary_key=True)
    interests = Column(ARRAY(String(50)), nullable=False, default=list)
    is_anonymous = Column(Boolean, nullable=False, default=False)
    joined_queue_at = Column(
        DateTime(timezone=True), nullable=False, default=func.now(), index=True
    )
