"""In-memory game state: roles, participants, groups and the process-scoped registry."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import Deque, Dict, List, Optional, Set, Union

# Position index 0..3, downstream (customer side) to upstream (production side)
ROLE_NAMES: List[str] = ["Retailer", "Wholesaler", "Warehouse", "Factory"]
CUSTOMER = "Customer"
# Abstract source feeding the Factory's production queue
PRODUCTION_SOURCE = "Factory"
FACTORY_INDEX = len(ROLE_NAMES) - 1


@dataclass
class RoleLink:
    """Last known order/shipment exchanged with one neighbour."""

    name: str
    orders: int
    shipments: int


@dataclass
class Role:
    index: int
    name: str
    upstream: RoleLink
    downstream: RoleLink


def make_role(index: int, starting_throughput: int) -> Role:
    """Build a fresh role for position ``index`` with steady-state pipeline values."""

    upstream_name = ROLE_NAMES[index + 1] if index < FACTORY_INDEX else PRODUCTION_SOURCE
    downstream_name = ROLE_NAMES[index - 1] if index > 0 else CUSTOMER
    return Role(
        index=index,
        name=ROLE_NAMES[index],
        upstream=RoleLink(upstream_name, starting_throughput, starting_throughput),
        downstream=RoleLink(downstream_name, starting_throughput, starting_throughput),
    )


def make_roles(starting_throughput: int) -> List[Role]:
    return [make_role(index, starting_throughput) for index in range(len(ROLE_NAMES))]


# ----------------------------------------------------------------------
# Player kinds
# ----------------------------------------------------------------------
@dataclass(frozen=True)
class Human:
    tag = "human"

    def label(self) -> str:
        return self.tag


@dataclass(frozen=True)
class AiModel:
    provider: str
    model: str
    tag = "ai"

    def label(self) -> str:
        return f"{self.provider}:{self.model}"


PlayerKind = Union[Human, AiModel]
HUMAN = Human()


def parse_player_type(raw: str, catalog: Dict[str, str]) -> PlayerKind:
    """Resolve a player type string into a :data:`PlayerKind`.

    Accepts ``"human"``, a model id listed in ``catalog`` (model -> provider)
    or an explicit ``"provider:model"`` pair.
    """
    value = str(raw or "").strip()
    if not value:
        raise ValueError("Player type is required")
    if value.lower() == Human.tag:
        return HUMAN
    if value in catalog:
        return AiModel(provider=catalog[value], model=value)
    provider, sep, model = value.partition(":")
    if sep and provider and model:
        return AiModel(provider=provider.lower(), model=model)
    raise ValueError(f"Unknown player type: {value}")


# ----------------------------------------------------------------------
# Participants and groups
# ----------------------------------------------------------------------
@dataclass
class Participant:
    role: Role
    kind: PlayerKind
    inventory: int
    name: Optional[str] = None
    connection: Optional[str] = None
    cost: float = 0.0
    backlog: int = 0
    cost_history: List[float] = field(default_factory=list)
    inventory_history: List[int] = field(default_factory=list)
    backlog_history: List[int] = field(default_factory=list)
    order_history: List[int] = field(default_factory=list)

    @property
    def is_human(self) -> bool:
        return isinstance(self.kind, Human)

    @property
    def is_claimed(self) -> bool:
        return self.name is not None

    def reset(self, role: Role, starting_inventory: int) -> None:
        """Re-initialise play state in place, keeping identity and connection."""
        self.role = role
        self.cost = 0.0
        self.inventory = starting_inventory
        self.backlog = 0
        self.clear_history()

    def clear_history(self) -> None:
        self.cost_history = []
        self.inventory_history = []
        self.backlog_history = []
        self.order_history = []


def new_group_id() -> str:
    return uuid.uuid4().hex[:12]


@dataclass
class Group:
    """One independent playthrough with exactly four participants."""

    participants: List[Participant]
    id: str = field(default_factory=new_group_id)
    week: int = 0
    cost: float = 0.0
    cost_history: List[float] = field(default_factory=list)
    # shipping[i]: goods in transit toward position i
    shipping: List[Deque[int]] = field(default_factory=list)
    # mailing[i]: orders in transit from position i toward position i + 1
    mailing: List[Deque[int]] = field(default_factory=list)
    waiting_for_orders: Set[str] = field(default_factory=set)
    # Bumped on every reset so in-flight AI batches can tell they are stale
    epoch: int = 0

    def __post_init__(self) -> None:
        if len(self.participants) != len(ROLE_NAMES):
            raise ValueError(f"A group needs exactly {len(ROLE_NAMES)} participants")
        for index, participant in enumerate(self.participants):
            if participant.role.index != index:
                raise ValueError("Participants must be ordered by role index")

    @property
    def role_names(self) -> List[str]:
        return [participant.role.name for participant in self.participants]

    def participant_for(self, role_name: str) -> Optional[Participant]:
        for participant in self.participants:
            if participant.role.name == role_name:
                return participant
        return None

    def ai_participants(self) -> List[Participant]:
        return [p for p in self.participants if not p.is_human]

    def pending_roles(self) -> List[str]:
        """Waiting set in role order."""
        return [name for name in self.role_names if name in self.waiting_for_orders]

    def is_complete(self, max_weeks: int) -> bool:
        return self.week >= max_weeks

    def reset(self, starting_inventory: int, starting_throughput: int) -> None:
        self.week = 0
        self.cost = 0.0
        self.cost_history = []
        self.shipping = []
        self.mailing = []
        self.waiting_for_orders = set()
        self.epoch += 1
        for participant, role in zip(self.participants, make_roles(starting_throughput)):
            participant.reset(role, starting_inventory)


def make_group(
    kinds: List[PlayerKind],
    *,
    starting_inventory: int,
    starting_throughput: int,
) -> Group:
    """Create a group with one participant per role.

    Human seats start unclaimed; AI seats are named after their model and role.
    """
    participants: List[Participant] = []
    for role, kind in zip(make_roles(starting_throughput), kinds):
        participant = Participant(role=role, kind=kind, inventory=starting_inventory)
        if isinstance(kind, AiModel):
            participant.name = f"AI-{kind.model}-{role.name}"
        participants.append(participant)
    return Group(participants=participants)


@dataclass
class UserSlot:
    """Directory entry locating a human player's seat."""

    name: str
    group_id: str
    index: int
    connection: Optional[str] = None


@dataclass
class GameState:
    """Everything one game process knows; nothing outlives the process."""

    groups: Dict[str, Group] = field(default_factory=dict)
    users: Dict[str, UserSlot] = field(default_factory=dict)
    started: bool = False
    ended: bool = False

    def rank(self, group_id: str) -> int:
        """Positional index of a group, derived from creation order."""
        return list(self.groups).index(group_id)

    def all_complete(self, max_weeks: int) -> bool:
        return bool(self.groups) and all(g.is_complete(max_weeks) for g in self.groups.values())

    @property
    def num_users(self) -> int:
        return sum(
            1
            for group in self.groups.values()
            for participant in group.participants
            if participant.connection is not None or not participant.is_human
        )
