import logging
from typing import Dict, List, Optional

from chatmatch.clients.base_change_feed_client import BaseChangeFeedClient
from chatmatch.clients.memory_change_feed_client import MemoryChangeFeedClient
from chatmatch.clients.redis_change_feed_client import RedisChangeFeedClient
from chatmatch.config import Settings
from chatmatch.database import init_engine
from chatmatch.services.change_feed_listener import DEFAULT_DEBOUNCE_SECONDS
from chatmatch.services.conversation_provisioner import ConversationProvisioner
from chatmatch.services.match_session import MatchSession
from chatmatch.services.matcher_service import DEFAULT_MAX_RETRIES, Matcher
from chatmatch.services.queue_membership_service import (
    DEFAULT_QUEUE_TIMEOUT_SECONDS,
    QueueMembershipController,
)
from chatmatch.stores.base_store import ConversationStore, ProfileStore, QueueStore
from chatmatch.stores.memory_store import (
    MemoryConversationStore,
    MemoryProfileStore,
    MemoryQueueStore,
)
from chatmatch.stores.sql_store import (
    SqlConversationStore,
    SqlProfileStore,
    SqlQueueStore,
)

logger = logging.getLogger(__name__)


class MatchingService:
    """Entry point of the UI layer into random matching.

    Holds one MatchSession per connected user; every session shares the same
    stores, change feed and matcher.
    """

    def __init__(
        self,
        queue_store: QueueStore,
        conversation_store: ConversationStore,
        profile_store: ProfileStore,
        feed: BaseChangeFeedClient,
        timeout_seconds: float = DEFAULT_QUEUE_TIMEOUT_SECONDS,
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
        max_retries: int = DEFAULT_MAX_RETRIES,
    ):
        self.queue_store = queue_store
        self.conversation_store = conversation_store
        self.profile_store = profile_store
        self.feed = feed
        self.timeout_seconds = timeout_seconds
        self.debounce_seconds = debounce_seconds
        self.provisioner = ConversationProvisioner(conversation_store)
        self.matcher = Matcher(
            queue_store, self.provisioner, profile_store, feed, max_retries=max_retries
        )
        self._sessions: Dict[str, MatchSession] = {}

    def session_for(self, user_id: str) -> MatchSession:
        """The user's session, created idle on first use."""
        session = self._sessions.get(user_id)
        if session is None:
            session = MatchSession(
                user_id,
                matcher=self.matcher,
                conversation_store=self.conversation_store,
                feed=self.feed,
                controller=QueueMembershipController(
                    self.queue_store, timeout_seconds=self.timeout_seconds
                ),
                debounce_seconds=self.debounce_seconds,
            )
            self._sessions[user_id] = session
        return session

    async def start_matching(
        self, user_id: str, interests: List[str], anonymous: bool
    ) -> MatchSession:
        session = self.session_for(user_id)
        await session.start(interests, anonymous)
        return session

    async def cancel_matching(self, user_id: str) -> MatchSession:
        session = self.session_for(user_id)
        await session.cancel()
        return session

    async def skip(self, user_id: str) -> MatchSession:
        session = self.session_for(user_id)
        await session.skip()
        return session

    async def open_chat(self, user_id: str) -> MatchSession:
        session = self.session_for(user_id)
        await session.open_chat()
        return session

    async def close_session(
        self, user_id: str, session: Optional[MatchSession] = None
    ) -> None:
        """Tear down the user's session; a stale handle never closes a newer one."""
        current = self._sessions.get(user_id)
        if current is None or (session is not None and session is not current):
            if session is not None:
                await session.close()
            return
        del self._sessions[user_id]
        await current.close()

    async def shutdown(self) -> None:
        for user_id in list(self._sessions):
            await self.close_session(user_id)
        await self.feed.close()


def create_matching_service(settings: Settings) -> MatchingService:
    """Wire stores and change feed for the configured backends."""
    feed: BaseChangeFeedClient
    if settings.redis_url:
        feed = RedisChangeFeedClient(settings.redis_url)
    else:
        feed = MemoryChangeFeedClient()

    queue_store: QueueStore
    conversation_store: ConversationStore
    profile_store: ProfileStore
    if settings.store_backend == "sql":
        session_factory = init_engine(settings.database_url or "", echo=settings.sql_debug)
        queue_store = SqlQueueStore(session_factory, feed)
        conversation_store = SqlConversationStore(session_factory)
        profile_store = SqlProfileStore(session_factory)
    else:
        queue_store = MemoryQueueStore(feed)
        conversation_store = MemoryConversationStore()
        profile_store = MemoryProfileStore()

    logger.info(
        "Matching backends: stores=%s, change feed=%s",
        settings.store_backend,
        "redis" if settings.redis_url else "memory",
    )
    return MatchingService(
        queue_store,
        conversation_store,
        profile_store,
        feed,
        timeout_seconds=settings.queue_timeout_seconds,
        debounce_seconds=settings.match_debounce_seconds,
        max_retries=settings.match_max_retries,
    )
