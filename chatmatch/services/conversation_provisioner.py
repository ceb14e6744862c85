import logging
from typing import List
from uuid import UUID

from chatmatch.errors import PersistenceError, ProvisionError
from chatmatch.models.api.conversations import (
    ConversationKind,
    ConversationResponse,
    ConversationStatus,
)
from chatmatch.stores.base_store import ConversationStore

logger = logging.getLogger(__name__)


class ConversationProvisioner:
    """Creates conversations together with their two participant rows."""

    def __init__(self, conversation_store: ConversationStore):
        self.conversation_store = conversation_store

    async def get_or_create(
        self, user_a: str, user_b: str, kind: ConversationKind
    ) -> ConversationResponse:
        """
        Find or create a conversation between two users:

        1. Direct conversations are reused when the pair already has one
        2. Random conversations are always new and start accepted
        3. Insert the conversation, then both participant rows
        4. Remove the conversation again if its participants cannot be added
        """
        if user_a == user_b:
            raise ProvisionError("Cannot open a conversation with yourself")

        # Step 1 and 2: Reuse or decide the initial status
        try:
            if kind == ConversationKind.DIRECT:
                existing = await self.conversation_store.find_direct_conversation(
                    user_a, user_b
                )
                if existing:
                    return existing
                status = await self._direct_status(user_a, user_b)
            else:
                status = ConversationStatus.ACCEPTED

            # Step 3: Insert the conversation row
            conversation = await self.conversation_store.insert_conversation(
                kind, creator_id=user_a, status=status
            )
        except PersistenceError as e:
            raise ProvisionError(f"Could not create conversation: {e}") from e

        participants: List[str] = [user_a, user_b]
        try:
            await self.conversation_store.insert_participants(
                conversation.id, participants
            )
        except PersistenceError as e:
            # Step 4: Never leave a conversation without participants behind
            await self._discard_orphan(conversation.id)
            raise ProvisionError(f"Could not add participants: {e}") from e

        logger.info(
            "Created %s conversation %s for %s and %s",
            kind.value,
            conversation.id,
            user_a,
            user_b,
        )
        return conversation.model_copy(update={"participants": participants})

    async def _direct_status(self, user_a: str, user_b: str) -> ConversationStatus:
        """Direct chats start as requests unless the pair already talks."""
        if await self.conversation_store.has_accepted_conversation(user_a, user_b):
            return ConversationStatus.ACCEPTED
        return ConversationStatus.PENDING

    async def _discard_orphan(self, conversation_id: UUID) -> None:
        try:
            await self.conversation_store.delete_conversation(conversation_id)
        except PersistenceError:
            logger.error(
                "Orphaned conversation %s has no participants and could not be "
                "deleted",
                conversation_id,
                exc_info=True,
            )
