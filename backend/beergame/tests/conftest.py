from typing import Any, Callable, Dict, List, Optional, Tuple

import pytest

from beergame.core.config import Settings
from beergame.core.exceptions import RateLimitedError
from beergame.schemas.game import GameSummary, GroupSnapshot, ParticipantSnapshot
from beergame.services.game_service import GameService
from beergame.services.policies import PolicyDecisionProvider
from beergame.services.decisions import ProviderRouter


class RecordingNotifier:
    """Collects every notification in order for later assertions."""

    def __init__(self) -> None:
        self.events: List[Tuple[str, Any]] = []

    def of(self, kind: str) -> List[Any]:
        return [payload for name, payload in self.events if name == kind]

    async def next_turn(self, connection: Optional[str], week: int, participant: ParticipantSnapshot) -> None:
        self.events.append(("next_turn", (connection, week, participant)))

    async def group_updated(self, group_id: str, group: GroupSnapshot) -> None:
        self.events.append(("group_updated", (group_id, group)))

    async def order_wait_updated(self, group_id: str, remaining: List[str]) -> None:
        self.events.append(("order_wait_updated", (group_id, list(remaining))))

    async def game_started(self, group_id: str, week: int) -> None:
        self.events.append(("game_started", (group_id, week)))

    async def game_ended(self, summary: GameSummary) -> None:
        self.events.append(("game_ended", summary))

    async def game_reset(self, summary: GameSummary) -> None:
        self.events.append(("game_reset", summary))

    async def group_removed(self, group_id: str, connections: List[str]) -> None:
        self.events.append(("group_removed", (group_id, list(connections))))

    async def table_updated(self, summary: GameSummary) -> None:
        self.events.append(("table_updated", summary))


class ScriptedProvider:
    """Decision provider driven by a callable; records every call."""

    def __init__(self, decide: Callable[[ParticipantSnapshot, GroupSnapshot], Any]) -> None:
        self._decide = decide
        self.calls: List[Tuple[str, int]] = []

    async def decide(self, participant: ParticipantSnapshot, group: GroupSnapshot) -> int:
        self.calls.append((participant.role.name, group.week))
        result = self._decide(participant, group)
        if isinstance(result, Exception):
            raise result
        return result


class AlwaysRateLimited:
    def __init__(self, retry_after: Optional[float] = 0.0) -> None:
        self.retry_after = retry_after
        self.calls = 0

    async def decide(self, participant: ParticipantSnapshot, group: GroupSnapshot) -> int:
        self.calls += 1
        raise RateLimitedError("429 Too Many Requests", retry_after=self.retry_after)


# Group cost history for a 40-week game where every role always orders what it
# last received from downstream.
ECHO_COST_HISTORY: List[float] = [
    0, 24, 72, 144, 240, 360, 504, 672, 864, 1078,
    1312, 1562, 1830, 2112, 2410, 2720, 3048, 3392, 3756, 4140,
    4552, 4996, 5480, 6012, 6604, 7268, 8020, 8880, 9868, 11004,
    12308, 13800, 15500, 17428, 19604, 22044, 24760, 27764, 31064, 34668,
]


def make_settings(**overrides: Any) -> Settings:
    values: Dict[str, Any] = {"AI_THINKING_DELAY": 0.0, "DEFAULT_RETRY_AFTER": 0.0}
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture()
def settings() -> Settings:
    return make_settings()


@pytest.fixture()
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture()
def policy_router() -> ProviderRouter:
    return ProviderRouter({"policy": PolicyDecisionProvider()})


@pytest.fixture()
def service(settings, notifier, policy_router) -> GameService:
    return GameService(settings, notifier, policy_router)
