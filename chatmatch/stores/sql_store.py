"""Stores backed by PostgreSQL through the SQLAlchemy repositories.

Each call opens its own short-lived session, so a store instance can be held
by long-running match sessions. SQLAlchemy and connection failures
surface as PersistenceError.
"""

from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncGenerator, List, Optional, Sequence
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

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
from chatmatch.repositories.conversation_repository import ConversationRepository
from chatmatch.repositories.participant_repository import ParticipantRepository
from chatmatch.repositories.queue_repository import QueueRepository
from chatmatch.repositories.user_repository import UserRepository
from chatmatch.stores.base_store import (
    ConversationStore,
    ProfileStore,
    QueueStore,
    announce_queue_change,
)


class _SqlStore:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    @asynccontextmanager
    async def _session(self) -> AsyncGenerator[AsyncSession, None]:
        async with self._session_factory() as session:
            try:
                yield session
            except (SQLAlchemyError, OSError) as e:
                await session.rollback()
                raise PersistenceError(str(e)) from e


class SqlQueueStore(_SqlStore, QueueStore):
    """Queue table in PostgreSQL; mutations are announced on the change feed."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        feed: Optional[BaseChangeFeedClient] = None,
    ):
        super().__init__(session_factory)
        self._feed = feed

    async def upsert(self, entry: QueueEntry) -> QueueEntry:
        async with self._session() as db:
            entry = await QueueRepository(db).upsert(entry)
        await self._announce(ChangeEventType.UPDATE, entry.user_id)
        return entry

    async def get(self, user_id: str) -> Optional[QueueEntry]:
        async with self._session() as db:
            return await QueueRepository(db).get_by_key(user_id)

    async def delete_by_user(self, user_id: str) -> bool:
        async with self._session() as db:
            removed = await QueueRepository(db).delete(user_id)
        if removed:
            await self._announce(ChangeEventType.DELETE, user_id)
        return removed

    async def delete_if_present(self, entry: QueueEntry) -> bool:
        async with self._session() as db:
            removed = await QueueRepository(db).delete_version(entry)
        if removed:
            await self._announce(ChangeEventType.DELETE, entry.user_id)
        return removed

    async def claim_pair(self, own: QueueEntry, candidate: QueueEntry) -> bool:
        async with self._session() as db:
            claimed = await QueueRepository(db).claim_pair(own, candidate)
        if claimed:
            await self._announce(ChangeEventType.DELETE, own.user_id)
            await self._announce(ChangeEventType.DELETE, candidate.user_id)
        return claimed

    async def query(
        self,
        exclude_user_id: str,
        interests: Optional[Sequence[str]] = None,
        limit: int = 1,
    ) -> List[QueueEntry]:
        async with self._session() as db:
            return await QueueRepository(db).find_candidates(
                exclude_user_id, interests=interests, limit=limit
            )

    async def _announce(self, event_type: ChangeEventType, user_id: str) -> None:
        await announce_queue_change(self._feed, event_type, user_id)


class SqlConversationStore(_SqlStore, ConversationStore):
    """Conversations and participants in PostgreSQL."""

    async def find_direct_conversation(
        self, user_a: str, user_b: str
    ) -> Optional[ConversationResponse]:
        async with self._session() as db:
            return await ConversationRepository(db).find_direct(user_a, user_b)

    async def has_accepted_conversation(self, user_a: str, user_b: str) -> bool:
        async with self._session() as db:
            return await ConversationRepository(db).has_accepted(user_a, user_b)

    async def insert_conversation(
        self, kind: ConversationKind, creator_id: str, status: ConversationStatus
    ) -> ConversationResponse:
        async with self._session() as db:
            return await ConversationRepository(db).create_conversation(
                kind, creator_id, status
            )

    async def insert_participants(
        self, conversation_id: UUID, user_ids: Sequence[str]
    ) -> List[ParticipantResponse]:
        async with self._session() as db:
            return await ParticipantRepository(db).add_participants(
                conversation_id, user_ids
            )

    async def delete_conversation(self, conversation_id: UUID) -> bool:
        async with self._session() as db:
            return await ConversationRepository(db).delete(conversation_id)

    async def get_conversation(
        self, conversation_id: UUID
    ) -> Optional[ConversationResponse]:
        async with self._session() as db:
            return await ConversationRepository(db).get_by_key(conversation_id)

    async def list_participants(
        self, conversation_id: UUID
    ) -> List[ParticipantResponse]:
        async with self._session() as db:
            return await ParticipantRepository(db).get_by_conversation(conversation_id)

    async def list_for_user(
        self,
        user_id: str,
        include_archived: bool = False,
        limit: int = 50,
        offset: int = 0,
    ) -> List[ConversationResponse]:
        async with self._session() as db:
            return await ConversationRepository(db).list_for_user(
                user_id, include_archived=include_archived, limit=limit, offset=offset
            )

    async def find_latest_random_since(
        self, user_id: str, since: datetime
    ) -> Optional[ConversationResponse]:
        async with self._session() as db:
            return await ConversationRepository(db).find_latest_random_since(
                user_id, since
            )

    async def set_status(
        self, conversation_id: UUID, status: ConversationStatus
    ) -> Optional[ConversationResponse]:
        async with self._session() as db:
            return await ConversationRepository(db).set_status(conversation_id, status)

    async def archive(self, conversation_id: UUID, user_id: str) -> bool:
        async with self._session() as db:
            return await ParticipantRepository(db).archive(conversation_id, user_id)


class SqlProfileStore(_SqlStore, ProfileStore):
    """Public profiles from the users table."""

    async def get_profile(self, user_id: str) -> Optional[PeerProfile]:
        async with self._session() as db:
            return await UserRepository(db).get_by_key(user_id)
