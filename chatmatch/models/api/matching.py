from enum import Enum
from typing import List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from .conversations import ConversationResponse
from .users import PeerProfile


class MatchState(str, Enum):
    IDLE = "idle"
    SEARCHING = "searching"
    MATCHED = "matched"
    CHATTING = "chatting"


class MatchEventType(str, Enum):
    SEARCHING = "searching"
    MATCHED = "matched"
    TIMED_OUT = "timed_out"
    IDLE = "idle"
    CHATTING = "chatting"
    ERROR = "error"


class MatchErrorKind(str, Enum):
    PERSISTENCE = "persistence"
    PROVISION = "provision"
    INVALID_STATE = "invalid_state"
    INTERNAL = "internal"


class MatchEvent(BaseModel):
    """Event delivered to the UI layer."""

    type: MatchEventType
    conversation_id: Optional[UUID] = None
    peer: Optional[PeerProfile] = None
    error_kind: Optional[MatchErrorKind] = None
    detail: Optional[str] = None


class MatchResult(BaseModel):
    """A successful pairing as seen from the matching side."""

    conversation: ConversationResponse
    peer: PeerProfile
    own_anonymous: bool
    peer_anonymous: bool


class MatchAttemptStatus(str, Enum):
    MATCHED = "matched"
    NO_CANDIDATE = "no_candidate"
    NOT_QUEUED = "not_queued"


class MatchAttempt(BaseModel):
    """Outcome of one match attempt."""

    status: MatchAttemptStatus
    result: Optional[MatchResult] = None


class MatchCommand(BaseModel):
    """Command sent by the UI over the matching websocket."""

    action: Literal["start", "cancel", "skip", "chat"]
    interests: List[str] = Field(default_factory=list)
    anonymous: bool = False
