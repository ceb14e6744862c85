# API models for request/response contracts
from .conversations import (
    ConversationKind,
    ConversationResponse,
    ConversationStatus,
    CreateDirectConversationRequest,
)
from .feed import ChangeEvent, ChangeEventType
from .matching import (
    MatchAttempt,
    MatchAttemptStatus,
    MatchCommand,
    MatchErrorKind,
    MatchEvent,
    MatchEventType,
    MatchResult,
    MatchState,
)
from .participants import ParticipantResponse
from .queue import QueueEntry
from .users import PeerProfile

__all__ = [
    "ChangeEvent",
    "ChangeEventType",
    "ConversationKind",
    "ConversationResponse",
    "ConversationStatus",
    "CreateDirectConversationRequest",
    "MatchAttempt",
    "MatchAttemptStatus",
    "MatchCommand",
    "MatchErrorKind",
    "MatchEvent",
    "MatchEventType",
    "MatchResult",
    "MatchState",
    "ParticipantResponse",
    "PeerProfile",
    "QueueEntry",
]
