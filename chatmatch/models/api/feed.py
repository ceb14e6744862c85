from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict

from pydantic import BaseModel, Field

QUEUE_CHANNEL = "random_chat_queue"


def match_channel(user_id: str) -> str:
    """Broadcast channel carrying match notifications for one user."""
    return f"random_match:{user_id}"


class ChangeEventType(str, Enum):
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    BROADCAST = "BROADCAST"


class ChangeEvent(BaseModel):
    """A row mutation or ephemeral broadcast delivered by the change feed."""

    channel: str
    type: ChangeEventType
    payload: Dict[str, Any] = Field(default_factory=dict)
    emitted_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
