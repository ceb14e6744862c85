import asyncio
import os
from typing import Any, AsyncGenerator, Awaitable, Callable, Generator
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

# The app reads its settings on import; tests always run on the memory backend
os.environ["STORE_BACKEND"] = "memory"
os.environ.pop("REDIS_URL", None)

from chatmatch.clients.memory_change_feed_client import MemoryChangeFeedClient  # noqa: E402
from chatmatch.main import app  # noqa: E402
from chatmatch.models.api.matching import MatchEvent, MatchEventType  # noqa: E402
from chatmatch.services.conversation_provisioner import (  # noqa: E402
    ConversationProvisioner,
)
from chatmatch.services.match_session import MatchSession  # noqa: E402
from chatmatch.services.matcher_service import Matcher  # noqa: E402
from chatmatch.services.matching_service import MatchingService  # noqa: E402
from chatmatch.stores.memory_store import (  # noqa: E402
    MemoryConversationStore,
    MemoryProfileStore,
    MemoryQueueStore,
)


@pytest.fixture(scope="function")
async def mock_db() -> AsyncGenerator[AsyncMock, None]:
    """Create a mock database session for unit tests."""
    # Use mock to avoid database connection issues in unit tests
    mock_session = AsyncMock()
    mock_session.commit = AsyncMock()
    mock_session.rollback = AsyncMock()
    mock_session.close = AsyncMock()
    mock_session.refresh = AsyncMock()
    mock_session.execute = AsyncMock()
    mock_session.add = MagicMock()  # add is sync, not async
    mock_session.add_all = MagicMock()

    yield mock_session


@pytest.fixture
async def feed() -> AsyncGenerator[MemoryChangeFeedClient, None]:
    """In-process change feed, closed after the test."""
    client = MemoryChangeFeedClient()
    yield client
    await client.close()


@pytest.fixture
def queue_store(feed: MemoryChangeFeedClient) -> MemoryQueueStore:
    return MemoryQueueStore(feed)


@pytest.fixture
def conversation_store() -> MemoryConversationStore:
    return MemoryConversationStore()


@pytest.fixture
def profile_store() -> MemoryProfileStore:
    return MemoryProfileStore()


@pytest.fixture
def provisioner(
    conversation_store: MemoryConversationStore,
) -> ConversationProvisioner:
    return ConversationProvisioner(conversation_store)


@pytest.fixture
def matcher(
    queue_store: MemoryQueueStore,
    provisioner: ConversationProvisioner,
    profile_store: MemoryProfileStore,
    feed: MemoryChangeFeedClient,
) -> Matcher:
    return Matcher(queue_store, provisioner, profile_store, feed)


@pytest.fixture
async def matching_service(
    queue_store: MemoryQueueStore,
    conversation_store: MemoryConversationStore,
    profile_store: MemoryProfileStore,
    feed: MemoryChangeFeedClient,
) -> AsyncGenerator[MatchingService, None]:
    """Matching service on memory stores with debouncing turned off."""
    service = MatchingService(
        queue_store,
        conversation_store,
        profile_store,
        feed,
        timeout_seconds=5,
        debounce_seconds=0,
    )
    yield service
    await service.shutdown()


@pytest.fixture
def wait_for_event() -> Callable[..., Awaitable[MatchEvent]]:
    """Return a helper that reads session events until one of the given type."""

    async def _wait(
        session: MatchSession, event_type: MatchEventType, timeout: float = 2.0
    ) -> MatchEvent:
        async def _next_matching() -> MatchEvent:
            while True:
                event = await session.next_event()
                if event.type == event_type:
                    return event

        return await asyncio.wait_for(_next_matching(), timeout)

    return _wait


@pytest.fixture
def client() -> Generator[TestClient, Any, None]:
    """Create a test client for the FastAPI app."""
    with TestClient(app) as test_client:
        yield test_client
