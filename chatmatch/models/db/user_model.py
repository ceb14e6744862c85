from sqlalchemy import Boolean, Column, DateTime, String, Text, func

from chatmatch.database import Base


class UserModel(Base):
    """SQLAlchemy model for the public part of the users table."""

    __tablename__ = "users"

    id = Column(String(64), primary_key=True)
    username = Column(String(50), nullable=False)
    bio = Column(Text)
    avatar_url = Column(String(500))
    is_online = Column(Boolean, nullable=False, default=False)
    last_seen = Column(DateTime(timezone=True), default=func.now())
    created_at = Column(DateTime(timezone=True), default=func.now())
