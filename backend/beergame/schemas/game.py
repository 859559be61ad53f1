from typing import List, Optional

from pydantic import BaseModel, Field

from ..models.game import Group, GameState, Participant, RoleLink, Role


class RoleLinkSnapshot(BaseModel):
    name: str
    orders: int
    shipments: int

    @classmethod
    def from_link(cls, link: RoleLink) -> "RoleLinkSnapshot":
        return cls(name=link.name, orders=link.orders, shipments=link.shipments)


class RoleSnapshot(BaseModel):
    index: int
    name: str
    upstream: RoleLinkSnapshot
    downstream: RoleLinkSnapshot

    @classmethod
    def from_role(cls, role: Role) -> "RoleSnapshot":
        return cls(
            index=role.index,
            name=role.name,
            upstream=RoleLinkSnapshot.from_link(role.upstream),
            downstream=RoleLinkSnapshot.from_link(role.downstream),
        )


class ParticipantSnapshot(BaseModel):
    """Read-only view of one seat, sent to players and decision providers."""

    name: Optional[str] = None
    player_type: str = Field(..., description="'human' or 'provider:model'")
    provider: Optional[str] = None
    model: Optional[str] = None
    connected: bool = False
    role: RoleSnapshot
    cost: float
    inventory: int
    backlog: int
    cost_history: List[float] = []
    inventory_history: List[int] = []
    backlog_history: List[int] = []
    order_history: List[int] = []

    @classmethod
    def from_participant(cls, participant: Participant) -> "ParticipantSnapshot":
        kind = participant.kind
        return cls(
            name=participant.name,
            player_type=kind.label(),
            provider=getattr(kind, "provider", None),
            model=getattr(kind, "model", None),
            connected=participant.connection is not None,
            role=RoleSnapshot.from_role(participant.role),
            cost=participant.cost,
            inventory=participant.inventory,
            backlog=participant.backlog,
            cost_history=list(participant.cost_history),
            inventory_history=list(participant.inventory_history),
            backlog_history=list(participant.backlog_history),
            order_history=list(participant.order_history),
        )


class GroupSnapshot(BaseModel):
    id: str
    rank: int
    week: int
    epoch: int = 0
    cost: float
    cost_history: List[float] = []
    participants: List[ParticipantSnapshot]
    waiting_for_orders: List[str] = []
    complete: bool = False

    @classmethod
    def from_group(cls, group: Group, *, rank: int, max_weeks: int) -> "GroupSnapshot":
        return cls(
            id=group.id,
            rank=rank,
            week=group.week,
            epoch=group.epoch,
            cost=group.cost,
            cost_history=list(group.cost_history),
            participants=[ParticipantSnapshot.from_participant(p) for p in group.participants],
            waiting_for_orders=group.pending_roles(),
            complete=group.is_complete(max_weeks),
        )


class GameSummary(BaseModel):
    status: str
    num_users: int
    max_weeks: int
    groups: List[GroupSnapshot] = []

    @classmethod
    def from_state(cls, state: GameState, *, max_weeks: int) -> "GameSummary":
        if state.started and state.ended:
            status = "ended"
        elif state.started:
            status = "started"
        else:
            status = "waiting"
        return cls(
            status=status,
            num_users=state.num_users,
            max_weeks=max_weeks,
            groups=[
                GroupSnapshot.from_group(group, rank=rank, max_weeks=max_weeks)
                for rank, group in enumerate(state.groups.values())
            ],
        )
