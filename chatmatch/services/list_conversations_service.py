from typing import List, Optional
from uuid import UUID

from chatmatch.models.api.conversations import ConversationResponse
from chatmatch.stores.base_store import ConversationStore


class ListConversationsService:
    """Service for listing a user's conversations with pagination."""

    def __init__(self, conversation_store: ConversationStore):
        self.conversation_store = conversation_store

    async def list_conversations(
        self,
        user_id: str,
        include_archived: bool = False,
        limit: Optional[int] = 50,
        offset: Optional[int] = 0,
    ) -> List[ConversationResponse]:
        """
        List conversations of one user:

        1. Validate paging parameters
        2. Retrieve the user's conversations, newest activity first
        3. Archived conversations are left out unless requested
        """
        # Validate parameters
        if not user_id:
            raise ValueError("user_id is required")
        if limit is not None and (limit <= 0 or limit > 1000):
            raise ValueError("Limit must be between 1 and 1000")
        if offset is not None and offset < 0:
            raise ValueError("Offset must be non-negative")

        # Use default values if None
        limit = limit or 50
        offset = offset or 0

        return await self.conversation_store.list_for_user(
            user_id, include_archived=include_archived, limit=limit, offset=offset
        )

    async def get_conversation_summary(
        self, conversation_id: UUID
    ) -> ConversationResponse:
        """Get a conversation with its participants"""
        conversation = await self.conversation_store.get_conversation(conversation_id)
        if not conversation:
            raise ValueError(f"Conversation with ID {conversation_id} not found")
        return conversation
