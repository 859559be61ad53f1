import logging
import uuid
from typing import Dict, Iterable, List, Optional, Set

from fastapi import WebSocket

from ..models.game import GameState
from ..schemas.game import GameSummary, GroupSnapshot, ParticipantSnapshot
from ..schemas.websocket import ServerEvent, ServerMessage

logger = logging.getLogger(__name__)


class ConnectionManager:
    """Notifier backed by open websockets.

    Player sockets are addressed by the connection handle stored on their
    seat; admin sockets receive every group and table update.
    """

    def __init__(self, state: Optional[GameState] = None):
        self.state = state
        self.active_connections: Dict[str, WebSocket] = {}
        self.admins: Set[str] = set()

    def bind_state(self, state: GameState) -> None:
        self.state = state

    async def connect(self, websocket: WebSocket, *, admin: bool = False) -> str:
        await websocket.accept()
        client_id = uuid.uuid4().hex
        self.active_connections[client_id] = websocket
        if admin:
            self.admins.add(client_id)
        return client_id

    def disconnect(self, client_id: str) -> None:
        self.active_connections.pop(client_id, None)
        self.admins.discard(client_id)

    def _group_connections(self, group_id: str) -> List[str]:
        if self.state is None:
            return []
        group = self.state.groups.get(group_id)
        if group is None:
            return []
        return [p.connection for p in group.participants if p.connection]

    async def send_personal_message(self, message: ServerMessage, client_id: str) -> None:
        websocket = self.active_connections.get(client_id)
        if websocket is None:
            return
        try:
            await websocket.send_json(message.model_dump(mode="json"))
        except Exception as e:
            logger.error(f"Error sending to {client_id}: {e}", exc_info=True)
            self.disconnect(client_id)

    async def send_many(self, message: ServerMessage, client_ids: Iterable[str]) -> None:
        for client_id in list(client_ids):
            await self.send_personal_message(message, client_id)

    async def broadcast(self, message: ServerMessage) -> None:
        await self.send_many(message, self.active_connections.keys())

    # ------------------------------------------------------------------
    # Notifier
    # ------------------------------------------------------------------
    async def next_turn(self, connection: Optional[str], week: int, participant: ParticipantSnapshot) -> None:
        if connection is None:
            return
        await self.send_personal_message(
            ServerMessage(
                type=ServerEvent.NEXT_TURN,
                data={"week": week, "update": participant.model_dump(mode="json")},
            ),
            connection,
        )

    async def group_updated(self, group_id: str, group: GroupSnapshot) -> None:
        await self.send_many(
            ServerMessage(
                type=ServerEvent.GROUP_UPDATED,
                data={"group_id": group_id, "group": group.model_dump(mode="json")},
            ),
            self.admins,
        )

    async def order_wait_updated(self, group_id: str, remaining: List[str]) -> None:
        await self.send_many(
            ServerMessage(
                type=ServerEvent.ORDER_WAIT_UPDATED,
                data={"group_id": group_id, "waiting_for_orders": remaining},
            ),
            self._group_connections(group_id),
        )

    async def game_started(self, group_id: str, week: int) -> None:
        await self.send_many(
            ServerMessage(type=ServerEvent.GAME_STARTED, data={"group_id": group_id, "week": week}),
            self._group_connections(group_id),
        )

    async def game_ended(self, summary: GameSummary) -> None:
        await self.broadcast(ServerMessage(type=ServerEvent.GAME_ENDED, data=summary.model_dump(mode="json")))

    async def game_reset(self, summary: GameSummary) -> None:
        await self.broadcast(ServerMessage(type=ServerEvent.GAME_RESET, data=summary.model_dump(mode="json")))

    async def group_removed(self, group_id: str, connections: List[str]) -> None:
        await self.send_many(
            ServerMessage(type=ServerEvent.KICKED_OUT, data={"group_id": group_id}),
            connections,
        )

    async def table_updated(self, summary: GameSummary) -> None:
        await self.send_many(
            ServerMessage(type=ServerEvent.TABLE_UPDATED, data=summary.model_dump(mode="json")),
            self.admins,
        )
