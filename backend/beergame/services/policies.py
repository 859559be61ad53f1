"""Offline AI seats: rule-based order policies behind the provider interface.

A policy maps a seat snapshot to the quantity it orders upstream.
`NaiveEchoPolicy` repeats whatever the downstream partner just asked for, the
classic benchmark. `PIPolicy` steers net stock (on hand minus backlog) toward
a base-stock target with a proportional-integral correction on top of the
latest demand. Controller state is kept per seat, keyed by group id, reset epoch
and role, so one instance serves every group.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Mapping, Optional, Tuple

from ..core.exceptions import ProviderUnavailableError
from ..schemas.game import GroupSnapshot, ParticipantSnapshot


class OrderPolicy:
    """Base interface for order policies."""

    def order(self, participant: ParticipantSnapshot, group: GroupSnapshot) -> int:
        """Return the order quantity for the coming week."""
        raise NotImplementedError

    def forget(self, group_id: str) -> None:
        """Drop any per-seat state held for ``group_id``."""


class NaiveEchoPolicy(OrderPolicy):
    """Echo the most recent incoming order from the downstream partner."""

    def order(self, participant: ParticipantSnapshot, group: GroupSnapshot) -> int:
        return max(0, int(participant.role.downstream.orders))


@dataclass
class PIState:
    integral_error: float = 0.0


class PIPolicy(OrderPolicy):
    """Simple PI controller operating on on-hand inventory minus backlog."""

    def __init__(
        self,
        base_stock: int = 12,
        kp: float = 0.6,
        ki: float = 0.1,
        clamp_min: int = 0,
        clamp_max: Optional[int] = None,
    ) -> None:
        self.base_stock = int(base_stock)
        self.kp = float(kp)
        self.ki = float(ki)
        self.clamp_min = int(clamp_min)
        self.clamp_max = None if clamp_max is None else int(clamp_max)
        self.states: Dict[Tuple[str, int, str], PIState] = {}

    def order(self, participant: ParticipantSnapshot, group: GroupSnapshot) -> int:
        state = self.states.setdefault((group.id, group.epoch, participant.role.name), PIState())
        error = self.base_stock - (participant.inventory - participant.backlog)
        state.integral_error += error

        target = participant.role.downstream.orders + self.kp * error + self.ki * state.integral_error
        quantity = max(self.clamp_min, int(round(target)))
        if self.clamp_max is not None:
            quantity = min(quantity, self.clamp_max)
        return quantity

    def forget(self, group_id: str) -> None:
        for key in [key for key in self.states if key[0] == group_id]:
            del self.states[key]


class PolicyDecisionProvider:
    """Decision provider backed by in-process policies keyed by model id."""

    def __init__(self, policies: Optional[Mapping[str, OrderPolicy]] = None) -> None:
        self.policies: Dict[str, OrderPolicy] = dict(
            policies if policies is not None else {"naive": NaiveEchoPolicy(), "pi": PIPolicy()}
        )

    def forget(self, group_id: str) -> None:
        for policy in self.policies.values():
            policy.forget(group_id)

    async def decide(self, participant: ParticipantSnapshot, group: GroupSnapshot) -> int:
        policy = self.policies.get(participant.model or "")
        if policy is None:
            raise ProviderUnavailableError(f"Unknown policy: {participant.model}")
        return policy.order(participant, group)
