# Repository classes for database operations
from .base_repository import BaseRepository
from .conversation_repository import ConversationRepository
from .participant_repository import ParticipantRepository
from .queue_repository import QueueRepository
from .user_repository import UserRepository

__all__ = [
    "BaseRepository",
    "ConversationRepository",
    "ParticipantRepository",
    "QueueRepository",
    "UserRepository",
]
