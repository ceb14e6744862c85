import logging
from uuid import UUID

from chatmatch.errors import InvalidTransition
from chatmatch.models.api.conversations import (
    ConversationKind,
    ConversationResponse,
    ConversationStatus,
)
from chatmatch.services.conversation_provisioner import ConversationProvisioner
from chatmatch.stores.base_store import ConversationStore

logger = logging.getLogger(__name__)


class DirectConversationService:
    """Direct conversations: opening them and resolving chat requests."""

    def __init__(
        self,
        conversation_store: ConversationStore,
        provisioner: ConversationProvisioner,
    ):
        self.conversation_store = conversation_store
        self.provisioner = provisioner

    async def open_direct(self, user_id: str, other_user_id: str) -> ConversationResponse:
        """Return the pair's direct conversation, creating it on first contact."""
        return await self.provisioner.get_or_create(
            user_id, other_user_id, ConversationKind.DIRECT
        )

    async def accept(self, conversation_id: UUID) -> ConversationResponse:
        return await self._resolve(conversation_id, ConversationStatus.ACCEPTED)

    async def reject(self, conversation_id: UUID) -> ConversationResponse:
        return await self._resolve(conversation_id, ConversationStatus.REJECTED)

    async def archive(self, conversation_id: UUID, user_id: str) -> None:
        """Hide the conversation from one participant's list."""
        if not await self.conversation_store.archive(conversation_id, user_id):
            raise ValueError(
                f"User {user_id} is not a participant of conversation {conversation_id}"
            )
        logger.info("User %s archived conversation %s", user_id, conversation_id)

    async def _resolve(
        self, conversation_id: UUID, status: ConversationStatus
    ) -> ConversationResponse:
        conversation = await self.conversation_store.get_conversation(conversation_id)
        if not conversation:
            raise ValueError(f"Conversation with ID {conversation_id} not found")
        if conversation.status != ConversationStatus.PENDING:
            raise InvalidTransition(
                f"mark the conversation {status.value}", conversation.status.value
            )

        updated = await self.conversation_store.set_status(conversation_id, status)
        if not updated:
            raise ValueError(f"Conversation with ID {conversation_id} not found")
        logger.info("Conversation %s %s", conversation_id, status.value)
        return updated
