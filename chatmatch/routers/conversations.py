import logging
from typing import Dict, List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query

from chatmatch.dependencies import matching_service
from chatmatch.errors import InvalidTransition, PersistenceError, ProvisionError
from chatmatch.models.api.conversations import (
    ConversationResponse,
    CreateDirectConversationRequest,
)
from chatmatch.services.direct_conversation_service import DirectConversationService
from chatmatch.services.list_conversations_service import ListConversationsService
from chatmatch.services.matching_service import MatchingService

logger = logging.getLogger(__name__)

router = APIRouter()


def _direct_service(service: MatchingService) -> DirectConversationService:
    return DirectConversationService(service.conversation_store, service.provisioner)


@router.get("", response_model=List[ConversationResponse])
async def list_conversations(
    user_id: str = Query(..., description="User whose conversations to list"),
    include_archived: bool = Query(
        False, description="Include conversations the user archived"
    ),
    limit: Optional[int] = Query(
        50, description="Maximum number of conversations to return", ge=1, le=1000
    ),
    offset: Optional[int] = Query(
        0, description="Number of conversations to skip", ge=0
    ),
    service: MatchingService = Depends(matching_service),
) -> List[ConversationResponse]:
    """
    List the conversations of a user, newest activity first.

    Query parameters:
    - user_id: Participant whose conversations are listed
    - include_archived: Also return archived conversations (default: false)
    - limit: Maximum number of conversations to return (default: 50, max: 1000)
    - offset: Number of conversations to skip (default: 0)
    """
    try:
        list_service = ListConversationsService(service.conversation_store)
        return await list_service.list_conversations(
            user_id, include_archived=include_archived, limit=limit, offset=offset
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except PersistenceError:
        logger.exception("Listing conversations of %s failed", user_id)
        raise HTTPException(status_code=503, detail="Conversation store unavailable")
    except Exception:
        logger.exception("Listing conversations of %s failed", user_id)
        raise HTTPException(status_code=500, detail="Internal server error")


@router.post("/direct", response_model=ConversationResponse)
async def open_direct_conversation(
    request: CreateDirectConversationRequest,
    service: MatchingService = Depends(matching_service),
) -> ConversationResponse:
    """
    Get or create the direct conversation between two users.

    A new conversation starts as a pending request unless the two users
    already share an accepted conversation.
    """
    try:
        return await _direct_service(service).open_direct(
            request.user_id, request.other_user_id
        )
    except ProvisionError as e:
        if isinstance(e.__cause__, PersistenceError):
            logger.exception("Opening a direct conversation failed")
            raise HTTPException(status_code=503, detail="Conversation store unavailable")
        raise HTTPException(status_code=400, detail=str(e))
    except Exception:
        logger.exception("Opening a direct conversation failed")
        raise HTTPException(status_code=500, detail="Internal server error")


@router.get("/{conversation_id}", response_model=ConversationResponse)
async def get_conversation(
    conversation_id: UUID, service: MatchingService = Depends(matching_service)
) -> ConversationResponse:
    """
    Get detailed information about a specific conversation.

    Path parameters:
    - conversation_id: UUID of the conversation
    """
    try:
        list_service = ListConversationsService(service.conversation_store)
        return await list_service.get_conversation_summary(conversation_id)
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except PersistenceError:
        logger.exception("Loading conversation %s failed", conversation_id)
        raise HTTPException(status_code=503, detail="Conversation store unavailable")
    except Exception:
        logger.exception("Loading conversation %s failed", conversation_id)
        raise HTTPException(status_code=500, detail="Internal server error")


@router.post("/{conversation_id}/accept", response_model=ConversationResponse)
async def accept_conversation(
    conversation_id: UUID, service: MatchingService = Depends(matching_service)
) -> ConversationResponse:
    """Accept a pending chat request."""
    try:
        return await _direct_service(service).accept(conversation_id)
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InvalidTransition as e:
        raise HTTPException(status_code=409, detail=str(e))
    except PersistenceError:
        logger.exception("Accepting conversation %s failed", conversation_id)
        raise HTTPException(status_code=503, detail="Conversation store unavailable")
    except Exception:
        logger.exception("Accepting conversation %s failed", conversation_id)
        raise HTTPException(status_code=500, detail="Internal server error")


@router.post("/{conversation_id}/reject", response_model=ConversationResponse)
async def reject_conversation(
    conversation_id: UUID, service: MatchingService = Depends(matching_service)
) -> ConversationResponse:
    """Reject a pending chat request."""
    try:
        return await _direct_service(service).reject(conversation_id)
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InvalidTransition as e:
        raise HTTPException(status_code=409, detail=str(e))
    except PersistenceError:
        logger.exception("Rejecting conversation %s failed", conversation_id)
        raise HTTPException(status_code=503, detail="Conversation store unavailable")
    except Exception:
        logger.exception("Rejecting conversation %s failed", conversation_id)
        raise HTTPException(status_code=500, detail="Internal server error")


@router.post("/{conversation_id}/archive")
async def archive_conversation(
    conversation_id: UUID,
    user_id: str = Query(..., description="Participant archiving the conversation"),
    service: MatchingService = Depends(matching_service),
) -> Dict[str, str]:
    """Archive a conversation for one participant only."""
    try:
        await _direct_service(service).archive(conversation_id, user_id)
        return {"status": "archived"}
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except PersistenceError:
        logger.exception("Archiving conversation %s failed", conversation_id)
        raise HTTPException(status_code=503, detail="Conversation store unavailable")
    except Exception:
        logger.exception("Archiving conversation %s failed", conversation_id)
        raise HTTPException(status_code=500, detail="Internal server error")
