import asyncio
import logging

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect
from pydantic import ValidationError

from chatmatch.dependencies import matching_service
from chatmatch.errors import InvalidTransition
from chatmatch.models.api.matching import (
    MatchCommand,
    MatchErrorKind,
    MatchEvent,
    MatchEventType,
)
from chatmatch.services.match_session import MatchSession
from chatmatch.services.matching_service import MatchingService

logger = logging.getLogger(__name__)

router = APIRouter()


async def _pump_events(websocket: WebSocket, session: MatchSession) -> None:
    """Forward session events to the client until the socket goes away."""
    while True:
        event = await session.next_event()
        await websocket.send_text(event.model_dump_json())


async def _dispatch(
    service: MatchingService, user_id: str, command: MatchCommand
) -> None:
    if command.action == "start":
        await service.start_matching(user_id, command.interests, command.anonymous)
    elif command.action == "cancel":
        await service.cancel_matching(user_id)
    elif command.action == "skip":
        await service.skip(user_id)
    else:
        await service.open_chat(user_id)


@router.websocket("/ws/{user_id}")
async def random_match_socket(
    websocket: WebSocket,
    user_id: str,
    service: MatchingService = Depends(matching_service),
) -> None:
    """
    Random matching for one user.

    Client commands:
    - {"action": "start", "interests": [...], "anonymous": false}
    - {"action": "cancel"}
    - {"action": "skip"}
    - {"action": "chat"}

    Server messages are MatchEvent objects: searching, matched, timed_out,
    idle, chatting and error.
    """
    await websocket.accept()
    session = service.session_for(user_id)
    pump = asyncio.create_task(_pump_events(websocket, session))
    logger.info("Random match socket opened for %s", user_id)

    try:
        while True:
            data = await websocket.receive_text()
            try:
                command = MatchCommand.model_validate_json(data)
            except ValidationError:
                await websocket.send_text(
                    MatchEvent(
                        type=MatchEventType.ERROR, detail="Invalid command payload"
                    ).model_dump_json()
                )
                continue

            try:
                await _dispatch(service, user_id, command)
            except InvalidTransition as e:
                await websocket.send_text(
                    MatchEvent(
                        type=MatchEventType.ERROR,
                        error_kind=MatchErrorKind.INVALID_STATE,
                        detail=str(e),
                    ).model_dump_json()
                )
    except WebSocketDisconnect:
        logger.info("Random match socket closed for %s", user_id)
    finally:
        pump.cancel()
        await service.close_session(user_id, session)
