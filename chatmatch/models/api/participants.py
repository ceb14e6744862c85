from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict


class ParticipantResponse(BaseModel):
    """Response model for participant data."""

    conversation_id: UUID
    user_id: str
    joined_at: datetime
    is_archived: bool = False
    unread_count: int = 0

    model_config = ConfigDict(from_attributes=True)
