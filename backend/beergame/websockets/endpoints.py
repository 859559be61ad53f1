import logging
from typing import Optional

from fastapi import WebSocket, WebSocketDisconnect
from fastapi.routing import APIRouter
from pydantic import ValidationError

from ..core.exceptions import GameProtocolError
from ..schemas.websocket import (
    AdminAction,
    AdminMessage,
    PlayerAction,
    PlayerMessage,
    ServerEvent,
    ServerMessage,
)
from ..services.game_service import GameService
from . import ConnectionManager

router = APIRouter()
logger = logging.getLogger(__name__)


def _error(reason: str) -> ServerMessage:
    return ServerMessage(type=ServerEvent.ERROR, err=reason)


def _ack(**data) -> ServerMessage:
    return ServerMessage(type=ServerEvent.ACK, data=data)


async def handle_player_message(
    service: GameService, client_id: str, username: Optional[str], message: PlayerMessage
) -> tuple[ServerMessage, Optional[str]]:
    """Apply one player message; returns the reply and the (possibly new) username."""

    if message.type == PlayerAction.SUBMIT_USERNAME:
        if username is not None:
            return _error("Already registered"), username
        slot = await service.register_user(message.name or "", client_id)
        summary = service.summary()
        return (
            _ack(
                num_users=summary.num_users,
                idx=slot.index,
                group=service.group_snapshot(slot.group_id).model_dump(mode="json"),
                game_ended=service.state.ended,
            ),
            slot.name,
        )

    if username is None:
        return _error("Submit a username first"), username
    remaining = await service.submit_user_order(username, message.quantity)
    return _ack(waiting_for_orders=remaining), username


async def handle_admin_message(service: GameService, message: AdminMessage) -> ServerMessage:
    if message.type == AdminAction.CREATE_TEAM:
        group = await service.create_team(message.player_types or [])
        return _ack(group_id=group.id, **service.summary().model_dump(mode="json"))
    if message.type == AdminAction.REMOVE_GROUP:
        await service.remove_group(message.group_id or "")
    elif message.type == AdminAction.START_GAME:
        await service.start_game()
    elif message.type == AdminAction.RESET_GAME:
        await service.reset_game()
    elif message.type == AdminAction.END_GAME:
        await service.end_game()
    return _ack(**service.summary().model_dump(mode="json"))


@router.websocket("/ws/play")
async def player_endpoint(websocket: WebSocket):
    service: GameService = websocket.app.state.game_service
    manager: ConnectionManager = websocket.app.state.connection_manager
    client_id = await manager.connect(websocket)
    username: Optional[str] = None
    logger.info(f"Player connection accepted - Client: {client_id}")

    try:
        while True:
            data = await websocket.receive_json()
            try:
                message = PlayerMessage.model_validate(data)
                reply, username = await handle_player_message(service, client_id, username, message)
            except ValidationError as e:
                reply = _error(f"Invalid message: {e.errors()[0]['msg']}")
            except GameProtocolError as e:
                logger.info(f"Rejected player message from {username or client_id}: {e.reason}")
                reply = _error(e.reason)
            await websocket.send_json(reply.model_dump(mode="json"))

    except WebSocketDisconnect:
        logger.info(f"Client {client_id} disconnected")

    finally:
        manager.disconnect(client_id)
        if username is not None:
            await service.disconnect(username)


@router.websocket("/ws/admin")
async def admin_endpoint(websocket: WebSocket):
    service: GameService = websocket.app.state.game_service
    manager: ConnectionManager = websocket.app.state.connection_manager
    client_id = await manager.connect(websocket, admin=True)
    logger.info(f"Admin connection accepted - Client: {client_id}")

    try:
        while True:
            data = await websocket.receive_json()
            try:
                message = AdminMessage.model_validate(data)
                reply = await handle_admin_message(service, message)
            except ValidationError as e:
                reply = _error(f"Invalid message: {e.errors()[0]['msg']}")
            except GameProtocolError as e:
                logger.info(f"Rejected admin message: {e.reason}")
                reply = _error(e.reason)
            await websocket.send_json(reply.model_dump(mode="json"))

    except WebSocketDisconnect:
        logger.info(f"Admin {client_id} disconnected")

    finally:
        manager.disconnect(client_id)
