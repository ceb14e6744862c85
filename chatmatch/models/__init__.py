# Export all models
from .api import (
    ConversationResponse,
    MatchEvent,
    ParticipantResponse,
    PeerProfile,
    QueueEntry,
)
from .db import (
    ConversationModel,
    ParticipantModel,
    QueueEntryModel,
    UserModel,
)

__all__ = [
    # API models
    "ConversationResponse",
    "MatchEvent",
    "ParticipantResponse",
    "PeerProfile",
    "QueueEntry",
    # DB models
    "ConversationModel",
    "ParticipantModel",
    "QueueEntryModel",
    "UserModel",
]
