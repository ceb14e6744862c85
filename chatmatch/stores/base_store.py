import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional, Sequence
from uuid import UUID

from chatmatch.clients.base_change_feed_client import BaseChangeFeedClient
from chatmatch.models.api.conversations import (
    ConversationKind,
    ConversationResponse,
    ConversationStatus,
)
from chatmatch.models.api.feed import QUEUE_CHANNEL, ChangeEvent, ChangeEventType
from chatmatch.models.api.participants import ParticipantResponse
from chatmatch.models.api.queue import QueueEntry
from chatmatch.models.api.users import PeerProfile

logger = logging.getLogger(__name__)


async def announce_queue_change(
    feed: Optional[BaseChangeFeedClient], event_type: ChangeEventType, user_id: str
) -> None:
    """Publish a committed queue mutation. Feed failures are logged, never raised."""
    if feed is None:
        return
    try:
        await feed.publish(
            ChangeEvent(
                channel=QUEUE_CHANNEL, type=event_type, payload={"user_id": user_id}
            )
        )
    except Exception:
        logger.warning(
            "Could not announce %s of queue entry %s",
            event_type.value,
            user_id,
            exc_info=True,
        )


class QueueStore(ABC):
    """Shared table of users waiting for a random match.

    Every method raises PersistenceError when the backend fails. Mutations are
    announced on the queue channel of the change feed once committed.
    """

    @abstractmethod
    async def upsert(self, entry: QueueEntry) -> QueueEntry:
        """Insert the entry, replacing any existing entry of the same user."""

    @abstractmethod
    async def get(self, user_id: str) -> Optional[QueueEntry]:
        """Current entry of the user, if any."""

    @abstractmethod
    async def delete_by_user(self, user_id: str) -> bool:
        """Delete the user's entry. Returns False when there was none."""

    @abstractmethod
    async def delete_if_present(self, entry: QueueEntry) -> bool:
        """Delete the entry only if that exact version is still queued."""

    @abstractmethod
    async def claim_pair(self, own: QueueEntry, candidate: QueueEntry) -> bool:
        """Atomically delete both entries if both versions are still queued.

        Returns False, deleting nothing, when either entry is gone or has been
        replaced by a newer join.
        """

    @abstractmethod
    async def query(
        self,
        exclude_user_id: str,
        interests: Optional[Sequence[str]] = None,
        limit: int = 1,
    ) -> List[QueueEntry]:
        """Oldest entries of other users, restricted to overlapping interests."""


class ConversationStore(ABC):
    """Conversations and their participant rows."""

    @abstractmethod
    async def find_direct_conversation(
        self, user_a: str, user_b: str
    ) -> Optional[ConversationResponse]:
        """Existing direct conversation shared by both users."""

    @abstractmethod
    async def has_accepted_conversation(self, user_a: str, user_b: str) -> bool:
        """True when both users share an accepted conversation of any kind."""

    @abstractmethod
    async def insert_conversation(
        self, kind: ConversationKind, creator_id: str, status: ConversationStatus
    ) -> ConversationResponse:
        """Insert a conversation row without participants."""

    @abstractmethod
    async def insert_participants(
        self, conversation_id: UUID, user_ids: Sequence[str]
    ) -> List[ParticipantResponse]:
        """Insert all participant rows in one write."""

    @abstractmethod
    async def delete_conversation(self, conversation_id: UUID) -> bool:
        """Delete a conversation and its participant rows."""

    @abstractmethod
    async def get_conversation(
        self, conversation_id: UUID
    ) -> Optional[ConversationResponse]:
        """Conversation by id with participant user ids."""

    @abstractmethod
    async def list_participants(
        self, conversation_id: UUID
    ) -> List[ParticipantResponse]:
        """Participant rows of a conversation."""

    @abstractmethod
    async def list_for_user(
        self,
        user_id: str,
        include_archived: bool = False,
        limit: int = 50,
        offset: int = 0,
    ) -> List[ConversationResponse]:
        """Conversations the user takes part in, newest activity first."""

    @abstractmethod
    async def find_latest_random_since(
        self, user_id: str, since: datetime
    ) -> Optional[ConversationResponse]:
        """Newest random conversation of the user created at or after since."""

    @abstractmethod
    async def set_status(
        self, conversation_id: UUID, status: ConversationStatus
    ) -> Optional[ConversationResponse]:
        """Change the request status of a conversation."""

    @abstractmethod
    async def archive(self, conversation_id: UUID, user_id: str) -> bool:
        """Archive the conversation for one participant."""


class ProfileStore(ABC):
    """Read-only access to public user profiles."""

    @abstractmethod
    async def get_profile(self, user_id: str) -> Optional[PeerProfile]:
        """Public profile of the user, if known."""
