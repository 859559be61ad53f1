"""Process-scoped game context: team setup, lifecycle and order entry points."""

from __future__ import annotations

import logging
from typing import Any, List, Optional, Sequence

from ..core.config import Settings
from ..core.exceptions import (
    GameProtocolError,
    RegistrationError,
    TeamSetupError,
    UnknownGroupError,
)
from ..models.game import (
    HUMAN,
    ROLE_NAMES,
    GameState,
    Group,
    UserSlot,
    make_group,
    parse_player_type,
)
from ..schemas.game import GameSummary, GroupSnapshot
from .decisions import DecisionProvider
from .notifier import Notifier
from .order_collector import OrderCollector
from .turn_engine import TurnEngine

logger = logging.getLogger(__name__)


class GameService:
    """Owns one :class:`GameState` and wires the engine to the collector.

    Every operation the connection layer needs goes through here; protocol
    errors are raised as :class:`GameProtocolError` before anything changes.
    """

    def __init__(self, settings: Settings, notifier: Notifier, decisions: DecisionProvider) -> None:
        self.settings = settings
        self.notifier = notifier
        self.state = GameState()
        self.engine = TurnEngine(self.state, notifier, settings)
        self.collector = OrderCollector(self.state, self.engine, decisions, notifier, settings)
        self.engine.bind_collector(self.collector)

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------
    def get_group(self, group_id: str) -> Group:
        group = self.state.groups.get(group_id)
        if group is None:
            raise UnknownGroupError(group_id)
        return group

    def group_snapshot(self, group_id: str) -> GroupSnapshot:
        return self.engine.snapshot(self.get_group(group_id))

    def summary(self) -> GameSummary:
        return self.engine.summary()

    # ------------------------------------------------------------------
    # Players
    # ------------------------------------------------------------------
    async def register_user(self, name: str, connection: str) -> UserSlot:
        """Seat a human player, or reconnect one who dropped out."""

        name = (name or "").strip()
        if not name:
            raise RegistrationError("Invalid Username")

        existing = self.state.users.get(name)
        if existing is not None:
            if existing.connection is not None:
                raise RegistrationError("Username already in use")
            group = self.get_group(existing.group_id)
            existing.connection = connection
            group.participants[existing.index].connection = connection
            logger.info("%s reconnected to group %s", name, existing.group_id)
            await self.notifier.table_updated(self.summary())
            return existing

        if self.state.started or self.state.ended:
            raise RegistrationError("Game Started")

        slot = self._claim_open_slot(name, connection)
        if slot is None:
            group = self._add_group([HUMAN] * len(ROLE_NAMES))
            logger.info("Created human group %s for %s", group.id, name)
            slot = self._seat(group, 0, name, connection)
        await self.notifier.table_updated(self.summary())
        return slot

    def _claim_open_slot(self, name: str, connection: str) -> Optional[UserSlot]:
        for group in self.state.groups.values():
            for index, participant in enumerate(group.participants):
                if participant.is_human and not participant.is_claimed:
                    return self._seat(group, index, name, connection)
        return None

    def _seat(self, group: Group, index: int, name: str, connection: str) -> UserSlot:
        participant = group.participants[index]
        participant.name = name
        participant.connection = connection
        slot = UserSlot(name=name, group_id=group.id, index=index, connection=connection)
        self.state.users[name] = slot
        logger.info("%s joined group %s as %s", name, group.id, participant.role.name)
        return slot

    async def disconnect(self, name: str) -> None:
        """Forget a player's connection; the seat and its last order stay."""

        slot = self.state.users.get(name)
        if slot is None:
            return
        slot.connection = None
        group = self.state.groups.get(slot.group_id)
        if group is not None:
            group.participants[slot.index].connection = None
        logger.info("%s disconnected", name)
        await self.notifier.table_updated(self.summary())

    # ------------------------------------------------------------------
    # Teams
    # ------------------------------------------------------------------
    def _add_group(self, kinds) -> Group:
        group = make_group(
            kinds,
            starting_inventory=self.settings.STARTING_INVENTORY,
            starting_throughput=self.settings.STARTING_THROUGHPUT,
        )
        self.state.groups[group.id] = group
        return group

    async def create_team(self, player_types: Sequence[str]) -> Group:
        if self.state.started or self.state.ended:
            raise TeamSetupError("Cannot create teams after game has started.")
        if not player_types or len(player_types) != len(ROLE_NAMES):
            raise TeamSetupError("Must specify player type for all 4 roles.")
        try:
            kinds = [parse_player_type(raw, self.settings.AI_MODELS) for raw in player_types]
        except ValueError as exc:
            raise TeamSetupError(str(exc)) from exc

        group = self._add_group(kinds)
        logger.info("Created group %s with %s", group.id, [kind.label() for kind in kinds])
        await self.notifier.table_updated(self.summary())
        return group

    async def remove_group(self, group_id: str) -> None:
        self.get_group(group_id)
        async with self.collector.lock_for(group_id):
            group = self.get_group(group_id)
            for participant in group.participants:
                if participant.is_human and participant.name:
                    self.state.users.pop(participant.name, None)
            del self.state.groups[group_id]
        self.collector.forget(group_id)
        logger.info("Removed group %s", group_id)

        connections = [p.connection for p in group.participants if p.is_human and p.connection]
        await self.notifier.group_removed(group_id, connections)
        if self.engine.check_game_complete():
            await self.notifier.game_ended(self.summary())
        await self.notifier.table_updated(self.summary())

    # ------------------------------------------------------------------
    # Game lifecycle
    # ------------------------------------------------------------------
    async def start_game(self) -> None:
        if self.state.started:
            raise GameProtocolError("The game has already begun.")
        if not self.state.groups:
            raise GameProtocolError("You need at least one team to play the game.")
        for group in self.state.groups.values():
            for participant in group.participants:
                if participant.is_human and (not participant.name or not participant.connection):
                    raise GameProtocolError(
                        "All human player slots must be filled before you can start the game."
                    )

        self.state.started = True
        self.state.ended = False
        logger.info("[Game] Starting with %s groups", len(self.state.groups))
        for group_id in list(self.state.groups):
            await self.notifier.game_started(group_id, 0)
            await self.collector.kickoff(group_id)

    async def reset_game(self) -> None:
        if not self.state.started:
            raise GameProtocolError("The game has not started.")
        self.state.started = False
        self.state.ended = False
        for group_id, group in list(self.state.groups.items()):
            async with self.collector.lock_for(group_id):
                group.reset(self.settings.STARTING_INVENTORY, self.settings.STARTING_THROUGHPUT)
                self.collector.clear_decision_state(group_id)
        logger.info("[Game] Reset")
        await self.notifier.game_reset(self.summary())

    async def end_game(self) -> None:
        if not self.state.started or self.state.ended:
            raise GameProtocolError("The game is not running.")
        self.state.ended = True
        logger.info("[Game] Ended by admin")
        await self.notifier.game_ended(self.summary())

    async def drain(self) -> None:
        """Wait for background AI batches to settle."""
        await self.collector.drain()

    async def shutdown(self) -> None:
        await self.collector.cancel_all()

    # ------------------------------------------------------------------
    # Orders
    # ------------------------------------------------------------------
    async def submit_order(self, group_id: str, role_name: str, quantity: Any) -> List[str]:
        return await self.collector.submit(group_id, role_name, quantity)

    async def submit_user_order(self, name: str, quantity: Any) -> List[str]:
        slot = self.state.users.get(name)
        if slot is None:
            raise RegistrationError("Unknown player")
        group = self.get_group(slot.group_id)
        return await self.submit_order(slot.group_id, group.participants[slot.index].role.name, quantity)
