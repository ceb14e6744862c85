"""In-process stores used for local runs and tests.

Each store owns an asyncio.Lock that plays the part of the database's
conditional-write primitive, and every operation suspends once before touching
state so concurrent callers interleave the way independent clients would.
"""

import asyncio
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence
from uuid import UUID, uuid4

from chatmatch.clients.base_change_feed_client import BaseChangeFeedClient
from chatmatch.errors import PersistenceError
from chatmatch.models.api.conversations import (
    ConversationKind,
    ConversationResponse,
    ConversationStatus,
)
from chatmatch.models.api.feed import ChangeEventType
from chatmatch.models.api.participants import ParticipantResponse
from chatmatch.models.api.queue import QueueEntry
from chatmatch.models.api.users import PeerProfile
from chatmatch.stores.base_store import (
    ConversationStore,
    ProfileStore,
    QueueStore,
    announce_queue_change,
)


class MemoryQueueStore(QueueStore):
    """Queue table kept in a dict keyed by user id."""

    def __init__(self, feed: Optional[BaseChangeFeedClient] = None):
        self._entries: Dict[str, QueueEntry] = {}
        self._lock = asyncio.Lock()
        self._feed = feed

    def __len__(self) -> int:
        return len(self._entries)

    def snapshot(self) -> List[QueueEntry]:
        """Copy of every live entry, oldest first."""
        return sorted(self._entries.values(), key=lambda e: e.joined_queue_at)

    async def upsert(self, entry: QueueEntry) -> QueueEntry:
        await asyncio.sleep(0)
        async with self._lock:
            existed = entry.user_id in self._entries
            self._entries[entry.user_id] = entry.model_copy(deep=True)
        await self._announce(
            ChangeEventType.UPDATE if existed else ChangeEventType.INSERT, entry.user_id
        )
        return entry

    async def get(self, user_id: str) -> Optional[QueueEntry]:
        await asyncio.sleep(0)
        entry = self._entries.get(user_id)
        return entry.model_copy(deep=True) if entry else None

    async def delete_by_user(self, user_id: str) -> bool:
        await asyncio.sleep(0)
        async with self._lock:
            removed = self._entries.pop(user_id, None) is not None
        if removed:
            await self._announce(ChangeEventType.DELETE, user_id)
        return removed

    async def delete_if_present(self, entry: QueueEntry) -> bool:
        await asyncio.sleep(0)
        async with self._lock:
            current = self._entries.get(entry.user_id)
            removed = current is not None and current.same_version(entry)
            if removed:
                del self._entries[entry.user_id]
        if removed:
            await self._announce(ChangeEventType.DELETE, entry.user_id)
        return removed

    async def claim_pair(self, own: QueueEntry, candidate: QueueEntry) -> bool:
        await asyncio.sleep(0)
        async with self._lock:
            for expected in (own, candidate):
                current = self._entries.get(expected.user_id)
                if current is None or not current.same_version(expected):
                    return False
            del self._entries[own.user_id]
            del self._entries[candidate.user_id]
        await self._announce(ChangeEventType.DELETE, own.user_id)
        await self._announce(ChangeEventType.DELETE, candidate.user_id)
        return True

    async def query(
        self,
        exclude_user_id: str,
        interests: Optional[Sequence[str]] = None,
        limit: int = 1,
    ) -> List[QueueEntry]:
        await asyncio.sleep(0)
        candidates = [
            entry
            for entry in self._entries.values()
            if entry.user_id != exclude_user_id
            and (not interests or entry.shares_interest(interests))
        ]
        candidates.sort(key=lambda e: (e.joined_queue_at, e.user_id))
        return [entry.model_copy(deep=True) for entry in candidates[:limit]]

    async def _announce(self, event_type: ChangeEventType, user_id: str) -> None:
        await announce_queue_change(self._feed, event_type, user_id)


class MemoryConversationStore(ConversationStore):
    """Conversations and participants kept in dicts."""

    def __init__(self) -> None:
        self._conversations: Dict[UUID, ConversationResponse] = {}
        self._participants: Dict[UUID, Dict[str, ParticipantResponse]] = {}
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._conversations)

    def all_conversations(self) -> List[ConversationResponse]:
        return [self._with_participants(c) for c in self._conversations.values()]

    def _with_participants(
        self, conversation: ConversationResponse
    ) -> ConversationResponse:
        return conversation.model_copy(
            update={"participants": list(self._participants.get(conversation.id, {}))}
        )

    def _shared(self, user_a: str, user_b: str) -> List[ConversationResponse]:
        shared = [
            conversation
            for conversation in self._conversations.values()
            if {user_a, user_b} <= set(self._participants.get(conversation.id, {}))
        ]
        shared.sort(key=lambda c: c.created_at)
        return shared

    async def find_direct_conversation(
        self, user_a: str, user_b: str
    ) -> Optional[ConversationResponse]:
        await asyncio.sleep(0)
        for conversation in self._shared(user_a, user_b):
            if conversation.type == ConversationKind.DIRECT:
                return self._with_participants(conversation)
        return None

    async def has_accepted_conversation(self, user_a: str, user_b: str) -> bool:
        await asyncio.sleep(0)
        return any(
            c.status == ConversationStatus.ACCEPTED for c in self._shared(user_a, user_b)
        )

    async def insert_conversation(
        self, kind: ConversationKind, creator_id: str, status: ConversationStatus
    ) -> ConversationResponse:
        await asyncio.sleep(0)
        now = datetime.now(timezone.utc)
        conversation = ConversationResponse(
            id=uuid4(),
            type=kind,
            creator_id=creator_id,
            status=status,
            created_at=now,
            last_message_at=now,
        )
        async with self._lock:
            self._conversations[conversation.id] = conversation
            self._participants[conversation.id] = {}
        return conversation

    async def insert_participants(
        self, conversation_id: UUID, user_ids: Sequence[str]
    ) -> List[ParticipantResponse]:
        await asyncio.sleep(0)
        async with self._lock:
            rows = self._participants.get(conversation_id)
            if rows is None:
                raise PersistenceError(f"Conversation {conversation_id} does not exist")
            if len(set(user_ids)) != len(user_ids) or rows.keys() & set(user_ids):
                raise PersistenceError("Duplicate conversation participant")

            joined_at = datetime.now(timezone.utc)
            inserted = [
                ParticipantResponse(
                    conversation_id=conversation_id, user_id=user_id, joined_at=joined_at
                )
                for user_id in user_ids
            ]
            for participant in inserted:
                rows[participant.user_id] = participant
        return inserted

    async def delete_conversation(self, conversation_id: UUID) -> bool:
        await asyncio.sleep(0)
        async with self._lock:
            self._participants.pop(conversation_id, None)
            return self._conversations.pop(conversation_id, None) is not None

    async def get_conversation(
        self, conversation_id: UUID
    ) -> Optional[ConversationResponse]:
        await asyncio.sleep(0)
        conversation = self._conversations.get(conversation_id)
        return self._with_participants(conversation) if conversation else None

    async def list_participants(
        self, conversation_id: UUID
    ) -> List[ParticipantResponse]:
        await asyncio.sleep(0)
        return [
            p.model_copy()
            for p in self._participants.get(conversation_id, {}).values()
        ]

    async def list_for_user(
        self,
        user_id: str,
        include_archived: bool = False,
        limit: int = 50,
        offset: int = 0,
    ) -> List[ConversationResponse]:
        await asyncio.sleep(0)
        found = []
        for conversation in self._conversations.values():
            participant = self._participants.get(conversation.id, {}).get(user_id)
            if participant and (include_archived or not participant.is_archived):
                found.append(self._with_participants(conversation))
        found.sort(key=lambda c: c.last_message_at, reverse=True)
        return found[offset : offset + limit]

    async def find_latest_random_since(
        self, user_id: str, since: datetime
    ) -> Optional[ConversationResponse]:
        await asyncio.sleep(0)
        found = [
            c
            for c in self._conversations.values()
            if c.type == ConversationKind.RANDOM
            and c.created_at >= since
            and user_id in self._participants.get(c.id, {})
        ]
        if not found:
            return None
        return self._with_participants(max(found, key=lambda c: c.created_at))

    async def set_status(
        self, conversation_id: UUID, status: ConversationStatus
    ) -> Optional[ConversationResponse]:
        await asyncio.sleep(0)
        async with self._lock:
            conversation = self._conversations.get(conversation_id)
            if conversation is None:
                return None
            conversation = conversation.model_copy(update={"status": status})
            self._conversations[conversation_id] = conversation
        return self._with_participants(conversation)

    async def archive(self, conversation_id: UUID, user_id: str) -> bool:
        await asyncio.sleep(0)
        async with self._lock:
            participant = self._participants.get(conversation_id, {}).get(user_id)
            if participant is None:
                return False
            self._participants[conversation_id][user_id] = participant.model_copy(
                update={"is_archived": True}
            )
        return True


class MemoryProfileStore(ProfileStore):
    """Profiles registered up front."""

    def __init__(self) -> None:
        self._profiles: Dict[str, PeerProfile] = {}

    def add_profile(self, profile: PeerProfile) -> None:
        self._profiles[profile.id] = profile

    async def get_profile(self, user_id: str) -> Optional[PeerProfile]:
        await asyncio.sleep(0)
        return self._profiles.get(user_id)
