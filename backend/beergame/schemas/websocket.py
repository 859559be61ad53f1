from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class PlayerAction(str, Enum):
    SUBMIT_USERNAME = "submit_username"
    SUBMIT_ORDER = "submit_order"


class AdminAction(str, Enum):
    CREATE_TEAM = "create_team"
    REMOVE_GROUP = "remove_group"
    START_GAME = "start_game"
    RESET_GAME = "reset_game"
    END_GAME = "end_game"
    GET_STATE = "get_state"


class ServerEvent(str, Enum):
    ACK = "ack"
    ERROR = "error"
    NEXT_TURN = "next_turn"
    GROUP_UPDATED = "group_updated"
    ORDER_WAIT_UPDATED = "order_wait_updated"
    GAME_STARTED = "game_started"
    GAME_ENDED = "game_ended"
    GAME_RESET = "game_reset"
    KICKED_OUT = "kicked_out"
    TABLE_UPDATED = "table_updated"


class PlayerMessage(BaseModel):
    """Inbound message on the player socket."""
    type: PlayerAction
    name: Optional[str] = None
    quantity: Any = None


class AdminMessage(BaseModel):
    """Inbound message on the admin socket."""
    type: AdminAction
    player_types: Optional[List[str]] = Field(default=None, description="Four entries for create_team")
    group_id: Optional[str] = None


class ServerMessage(BaseModel):
    """Outbound envelope; ``err`` is set only on errors."""
    type: ServerEvent
    data: Dict[str, Any] = {}
    err: Optional[str] = None
