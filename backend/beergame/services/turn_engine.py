"""Advance orchestration: pipeline step, notifications, completion detection."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Optional

from ..core.config import Settings
from ..models.game import GameState, Group
from ..schemas.game import GameSummary, GroupSnapshot, ParticipantSnapshot
from .engine import advance_group
from .notifier import Notifier

if TYPE_CHECKING:  # pragma: no cover
    from .order_collector import OrderCollector

logger = logging.getLogger(__name__)


class TurnEngine:
    """Runs one advance for one group.

    Callers must hold the group's lock (see :class:`OrderCollector`); the
    engine never takes it itself.
    """

    def __init__(self, state: GameState, notifier: Notifier, settings: Settings) -> None:
        self.state = state
        self.notifier = notifier
        self.settings = settings
        self.collector: Optional["OrderCollector"] = None

    def bind_collector(self, collector: "OrderCollector") -> None:
        self.collector = collector

    def snapshot(self, group: Group) -> GroupSnapshot:
        return GroupSnapshot.from_group(
            group, rank=self.state.rank(group.id), max_weeks=self.settings.MAX_WEEKS
        )

    def summary(self) -> GameSummary:
        return GameSummary.from_state(self.state, max_weeks=self.settings.MAX_WEEKS)

    def check_game_complete(self) -> bool:
        """Set the global ended flag once every group is complete; True only the first time."""

        if not self.state.started or self.state.ended:
            return False
        if not self.state.all_complete(self.settings.MAX_WEEKS):
            return False
        self.state.ended = True
        logger.info(
            "[Game] All groups completed %s weeks. Game ended automatically.", self.settings.MAX_WEEKS
        )
        return True

    async def advance(self, group: Group) -> None:
        advance_group(group, self.settings)
        logger.info("[Game] Group %s advanced to week %s", group.id, group.week)

        complete = group.is_complete(self.settings.MAX_WEEKS)
        newly_ended = False
        if complete:
            logger.info("[Game] Group %s has completed %s weeks", group.id, self.settings.MAX_WEEKS)
            newly_ended = self.check_game_complete()

        for participant in group.participants:
            await self.notifier.next_turn(
                participant.connection,
                group.week,
                ParticipantSnapshot.from_participant(participant),
            )
        await self.notifier.group_updated(group.id, self.snapshot(group))
        if newly_ended:
            await self.notifier.game_ended(self.summary())

        if self.state.started and not self.state.ended and not complete and self.collector is not None:
            self.collector.request_ai_orders(group)
