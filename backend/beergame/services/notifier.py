"""Outbound notifications consumed by the connection layer."""

from __future__ import annotations

from typing import List, Optional, Protocol

from ..schemas.game import GameSummary, GroupSnapshot, ParticipantSnapshot


class Notifier(Protocol):
    """Pushes state snapshots to players and admins.

    Implementations must not raise for an individual failed delivery.
    """

    async def next_turn(
        self, connection: Optional[str], week: int, participant: ParticipantSnapshot
    ) -> None: ...

    async def group_updated(self, group_id: str, group: GroupSnapshot) -> None: ...

    async def order_wait_updated(self, group_id: str, remaining: List[str]) -> None: ...

    async def game_started(self, group_id: str, week: int) -> None: ...

    async def game_ended(self, summary: GameSummary) -> None: ...

    async def game_reset(self, summary: GameSummary) -> None: ...

    async def group_removed(self, group_id: str, connections: List[str]) -> None: ...

    async def table_updated(self, summary: GameSummary) -> None: ...
