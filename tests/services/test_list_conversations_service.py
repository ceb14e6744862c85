from datetime import datetime, timezone
from typing import List
from unittest.mock import AsyncMock, patch
from uuid import uuid4

import pytest

from chatmatch.models.api.conversations import (
    ConversationKind,
    ConversationResponse,
    ConversationStatus,
)
from chatmatch.services.list_conversations_service import ListConversationsService
from chatmatch.stores.memory_store import MemoryConversationStore


class TestListConversationsService:
    """Unit tests for ListConversationsService."""

    @pytest.fixture
    def service(
        self, conversation_store: MemoryConversationStore
    ) -> ListConversationsService:
        """ListConversationsService instance."""
        return ListConversationsService(conversation_store)

    @pytest.fixture
    def sample_conversations(self) -> List[ConversationResponse]:
        """Sample conversation responses."""
        now = datetime.now(timezone.utc)
        return [
            ConversationResponse(
                id=uuid4(),
                type=ConversationKind.RANDOM,
                creator_id="alice",
                status=ConversationStatus.ACCEPTED,
                created_at=now,
                last_message_at=now,
                participants=["alice", "bob"],
            ),
            ConversationResponse(
                id=uuid4(),
                type=ConversationKind.DIRECT,
                creator_id="carol",
                status=ConversationStatus.PENDING,
                created_at=now,
                last_message_at=now,
                participants=["carol", "alice"],
            ),
        ]

    def test_service_initialization(
        self, conversation_store: MemoryConversationStore
    ) -> None:
        """Test that the service initializes correctly."""
        service = ListConversationsService(conversation_store)
        assert service.conversation_store is conversation_store

    @pytest.mark.asyncio
    async def test_list_conversations_default_params(
        self,
        service: ListConversationsService,
        sample_conversations: List[ConversationResponse],
    ) -> None:
        """Test list_conversations with default parameters."""
        with patch.object(
            service.conversation_store,
            "list_for_user",
            new_callable=AsyncMock,
            return_value=sample_conversations,
        ) as mock_list_for_user:
            result = await service.list_conversations("alice")

            assert result == sample_conversations
            mock_list_for_user.assert_called_once_with(
                "alice", include_archived=False, limit=50, offset=0
            )

    @pytest.mark.asyncio
    async def test_list_conversations_custom_params(
        self,
        service: ListConversationsService,
        sample_conversations: List[ConversationResponse],
    ) -> None:
        with patch.object(
            service.conversation_store,
            "list_for_user",
            new_callable=AsyncMock,
            return_value=sample_conversations[:1],
        ) as mock_list_for_user:
            result = await service.list_conversations(
                "alice", include_archived=True, limit=10, offset=20
            )

            assert len(result) == 1
            mock_list_for_user.assert_called_once_with(
                "alice", include_archived=True, limit=10, offset=20
            )

    @pytest.mark.asyncio
    async def test_list_conversations_none_params_use_defaults(
        self, service: ListConversationsService
    ) -> None:
        with patch.object(
            service.conversation_store,
            "list_for_user",
            new_callable=AsyncMock,
            return_value=[],
        ) as mock_list_for_user:
            await service.list_conversations("alice", limit=None, offset=None)

            mock_list_for_user.assert_called_once_with(
                "alice", include_archived=False, limit=50, offset=0
            )

    @pytest.mark.asyncio
    async def test_list_conversations_requires_user(
        self, service: ListConversationsService
    ) -> None:
        with pytest.raises(ValueError, match="user_id is required"):
            await service.list_conversations("")

    @pytest.mark.asyncio
    async def test_list_conversations_invalid_limit(
        self, service: ListConversationsService
    ) -> None:
        """Test validation of limit parameter."""
        with pytest.raises(ValueError, match="Limit must be between 1 and 1000"):
            await service.list_conversations("alice", limit=0)

        with pytest.raises(ValueError, match="Limit must be between 1 and 1000"):
            await service.list_conversations("alice", limit=1001)

    @pytest.mark.asyncio
    async def test_list_conversations_invalid_offset(
        self, service: ListConversationsService
    ) -> None:
        """Test validation of offset parameter."""
        with pytest.raises(ValueError, match="Offset must be non-negative"):
            await service.list_conversations("alice", offset=-1)

    @pytest.mark.asyncio
    async def test_list_conversations_hides_archived(
        self,
        service: ListConversationsService,
        conversation_store: MemoryConversationStore,
    ) -> None:
        conversation = await conversation_store.insert_conversation(
            ConversationKind.RANDOM, "alice", ConversationStatus.ACCEPTED
        )
        await conversation_store.insert_participants(conversation.id, ["alice", "bob"])
        await conversation_store.archive(conversation.id, "alice")

        assert await service.list_conversations("alice") == []
        archived = await service.list_conversations("alice", include_archived=True)
        assert [c.id for c in archived] == [conversation.id]
        assert [c.id for c in await service.list_conversations("bob")] == [
            conversation.id
        ]

    @pytest.mark.asyncio
    async def test_get_conversation_summary(
        self,
        service: ListConversationsService,
        sample_conversations: List[ConversationResponse],
    ) -> None:
        conversation = sample_conversations[0]
        with patch.object(
            service.conversation_store,
            "get_conversation",
            new_callable=AsyncMock,
            return_value=conversation,
        ) as mock_get:
            result = await service.get_conversation_summary(conversation.id)

            assert result == conversation
            mock_get.assert_called_once_with(conversation.id)

    @pytest.mark.asyncio
    async def test_get_conversation_summary_not_found(
        self, service: ListConversationsService
    ) -> None:
        conversation_id = uuid4()

        with pytest.raises(ValueError, match="not found"):
            await service.get_conversation_summary(conversation_id)
