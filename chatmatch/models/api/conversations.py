from datetime import datetime
from enum import Enum
from typing import List
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class ConversationKind(str, Enum):
    DIRECT = "direct"
    RANDOM = "random"


class ConversationStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class ConversationResponse(BaseModel):
    """Response model for conversation data."""

    id: UUID
    type: ConversationKind
    creator_id: str
    status: ConversationStatus
    created_at: datetime
    last_message_at: datetime
    participants: List[str] = Field(default_factory=list)  # participant user ids

    model_config = ConfigDict(from_attributes=True)


class CreateDirectConversationRequest(BaseModel):
    """Request model for opening a direct conversation with another user."""

    user_id: str = Field(..., description="User opening the conversation")
    other_user_id: str = Field(..., description="User being contacted")
