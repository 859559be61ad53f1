"""Per-group order synchronisation for human and AI seats.

All state lives on the event loop thread. Each group has its own
``asyncio.Lock``; recording an order and the empty-check that triggers an
advance happen inside one critical section, so an emptied waiting set fires
exactly one advance. Provider calls run outside the lock, which keeps a
human's submission for another role in the same group from being blocked by
a slow AI batch, and keeps groups fully independent of each other.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional, Set, Tuple

from ..core.config import Settings
from ..core.exceptions import (
    GameEndedError,
    GameNotStartedError,
    InvalidOrderError,
    UnknownGroupError,
    UnknownRoleError,
)
from ..models.game import GameState, Group, Participant
from ..schemas.game import GroupSnapshot, ParticipantSnapshot
from .decisions import DecisionProvider, resolve_order
from .notifier import Notifier
from .turn_engine import TurnEngine

logger = logging.getLogger(__name__)

# (epoch, week) identifying the advance an AI batch was requested for
BatchToken = Tuple[int, int]


def coerce_quantity(raw: Any) -> int:
    """Validate a submitted quantity; negative values clamp to zero."""

    if isinstance(raw, bool):
        raise InvalidOrderError("Order must be a whole number")
    if isinstance(raw, int):
        quantity = raw
    elif isinstance(raw, float) and raw.is_integer():
        quantity = int(raw)
    elif isinstance(raw, str):
        try:
            quantity = int(raw.strip())
        except ValueError:
            raise InvalidOrderError(f"Order must be a whole number, got {raw!r}") from None
    else:
        raise InvalidOrderError(f"Order must be a whole number, got {raw!r}")
    return max(0, quantity)


class OrderCollector:
    def __init__(
        self,
        state: GameState,
        engine: TurnEngine,
        decisions: DecisionProvider,
        notifier: Notifier,
        settings: Settings,
    ) -> None:
        self.state = state
        self.engine = engine
        self.decisions = decisions
        self.notifier = notifier
        self.settings = settings
        self._locks: Dict[str, asyncio.Lock] = {}
        self._ai_batches: Dict[str, BatchToken] = {}
        self._tasks: Set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # Locking helpers
    # ------------------------------------------------------------------
    def lock_for(self, group_id: str) -> asyncio.Lock:
        lock = self._locks.get(group_id)
        if lock is None:
            lock = self._locks[group_id] = asyncio.Lock()
        return lock

    def forget(self, group_id: str) -> None:
        """Drop per-group bookkeeping after a group is removed."""
        self._locks.pop(group_id, None)
        self._ai_batches.pop(group_id, None)
        self.clear_decision_state(group_id)

    def clear_decision_state(self, group_id: str) -> None:
        """Let stateful providers start the group over (reset or removal)."""
        forget = getattr(self.decisions, "forget", None)
        if forget is not None:
            forget(group_id)

    def ai_batch_pending(self, group_id: str) -> bool:
        return group_id in self._ai_batches

    def _require_group(self, group_id: str) -> Group:
        group = self.state.groups.get(group_id)
        if group is None:
            raise UnknownGroupError(group_id)
        return group

    def _check_accepting(self, group: Group) -> None:
        if self.state.ended or group.is_complete(self.settings.MAX_WEEKS):
            raise GameEndedError()
        # A group only takes orders once its week-0 advance has run
        if not self.state.started or group.week == 0:
            raise GameNotStartedError()

    @staticmethod
    def _record(group: Group, participant: Participant, quantity: int) -> None:
        # Last write wins; a role already recorded just gets its value replaced
        participant.role.upstream.orders = quantity
        group.waiting_for_orders.discard(participant.role.name)

    def _is_live(self, group_id: str, token: BatchToken) -> Optional[Group]:
        group = self.state.groups.get(group_id)
        if group is None or (group.epoch, group.week) != token:
            return None
        if not self.state.started or self.state.ended:
            return None
        return group

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    async def kickoff(self, group_id: str) -> None:
        """Run a group's week-0 advance (game start)."""
        async with self.lock_for(group_id):
            group = self._require_group(group_id)
            await self.engine.advance(group)

    async def submit(self, group_id: str, role_name: str, quantity: Any) -> List[str]:
        """Record ``role_name``'s order; advance the group if it was the last one missing.

        Returns the roles still being waited on (empty once an advance fired
        or an AI batch is about to fire it).
        """

        quantity = coerce_quantity(quantity)
        async with self.lock_for(group_id):
            group = self._require_group(group_id)
            self._check_accepting(group)
            participant = group.participant_for(role_name)
            if participant is None:
                raise UnknownRoleError(role_name)

            self._record(group, participant, quantity)
            logger.info("Group %s: %s ordered %s", group_id, role_name, quantity)
            remaining = group.pending_roles()
            if not remaining:
                if not self.ai_batch_pending(group_id):
                    await self.engine.advance(group)
                return []

        await self.notifier.order_wait_updated(group_id, remaining)
        return remaining

    def request_ai_orders(self, group: Group) -> Optional[asyncio.Task]:
        """Start the AI batch for ``group``'s current week in the background.

        Called by the engine while it holds the group lock, so marking the
        batch as pending is atomic with the advance that created the week.
        """

        ai_participants = group.ai_participants()
        if not ai_participants:
            return None
        token: BatchToken = (group.epoch, group.week)
        self._ai_batches[group.id] = token
        task = asyncio.create_task(self._run_ai_batch(group.id, token))
        self._tasks.add(task)
        task.add_done_callback(self._batch_done)
        return task

    def _batch_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("AI batch failed", exc_info=task.exception())

    async def drain(self) -> None:
        """Wait until no AI batch is running, including batches started meanwhile."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def cancel_all(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        await asyncio.gather(*list(self._tasks), return_exceptions=True)
        self._ai_batches.clear()

    # ------------------------------------------------------------------
    # AI batch
    # ------------------------------------------------------------------
    async def _run_ai_batch(self, group_id: str, token: BatchToken) -> None:
        if self.settings.AI_THINKING_DELAY > 0:
            await asyncio.sleep(self.settings.AI_THINKING_DELAY)

        group = self._is_live(group_id, token)
        if group is not None:
            group_snapshot = self.engine.snapshot(group)
            decisions = [
                self._decide_and_record(
                    group_id,
                    token,
                    ParticipantSnapshot.from_participant(participant),
                    group_snapshot,
                )
                for participant in group.ai_participants()
            ]
            await asyncio.gather(*decisions)

        async with self.lock_for(group_id):
            if self._ai_batches.get(group_id) == token:
                del self._ai_batches[group_id]
            group = self._is_live(group_id, token)
            if group is None:
                return
            remaining = group.pending_roles()
            if not remaining:
                await self.engine.advance(group)
                return

        await self.notifier.order_wait_updated(group_id, remaining)

    async def _decide_and_record(
        self,
        group_id: str,
        token: BatchToken,
        participant: ParticipantSnapshot,
        group_snapshot: GroupSnapshot,
    ) -> None:
        role_name = participant.role.name
        quantity = await resolve_order(self.decisions, participant, group_snapshot, self.settings)
        async with self.lock_for(group_id):
            group = self._is_live(group_id, token)
            if group is None:
                logger.info("Dropping stale AI order for %s in group %s", role_name, group_id)
                return
            seat = group.participant_for(role_name)
            if seat is not None:
                self._record(group, seat, quantity)
