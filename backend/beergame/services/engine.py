"""Core Beer Game pipeline transition: one week for one group.

The functions here only touch the :class:`Group` they are given. Orders for
the week must already sit in each role's ``upstream.orders`` field (the order
collector writes them there); at week 0 they are forced to the starting
throughput so the freshly seeded pipelines stay in steady state.
"""

from __future__ import annotations

import logging
from collections import deque
from typing import Any, Dict

from ..core.config import Settings
from ..core.demand_patterns import customer_demand
from ..models.game import FACTORY_INDEX, Group

logger = logging.getLogger(__name__)

# Shipments need two weeks to arrive, orders one week to be mailed upstream
SHIPPING_DELAY = 2
MAILING_DELAY = 1


def seed_pipelines(group: Group, settings: Settings) -> None:
    """Fill every delay queue with steady-state throughput and clear histories."""

    throughput = settings.STARTING_THROUGHPUT
    group.shipping = [deque([throughput] * SHIPPING_DELAY) for _ in group.participants]
    group.mailing = [deque([throughput] * MAILING_DELAY) for _ in range(FACTORY_INDEX)]
    group.cost_history = []
    for participant in group.participants:
        participant.clear_history()


def advance_group(group: Group, settings: Settings) -> Dict[str, Dict[str, Any]]:
    """Advance ``group`` by one week and return per-role statistics.

    Roles are processed strictly from Retailer (0) to Factory (3): role ``i``
    pops the order role ``i - 1`` mailed, and pushes the goods it ships into
    role ``i - 1``'s shipping queue behind what that role already received.
    """

    if group.week == 0:
        seed_pipelines(group, settings)

    stats: Dict[str, Dict[str, Any]] = {}
    for idx, participant in enumerate(group.participants):
        role = participant.role

        # Histories record the state at the start of the week
        participant.cost_history.append(participant.cost)
        participant.inventory_history.append(participant.inventory)
        participant.backlog_history.append(participant.backlog)
        inventory_before = participant.inventory
        backlog_before = participant.backlog

        # Step 1 – receive the shipment at the head of our queue
        role.upstream.shipments = group.shipping[idx].popleft()
        participant.inventory += role.upstream.shipments

        # Step 2 – observe the incoming order
        if idx == 0:
            role.downstream.orders = customer_demand(group.week, settings)
        else:
            role.downstream.orders = group.mailing[idx - 1].popleft()

        # Step 3/4 – ship what we can, backlog first
        to_ship = participant.backlog + role.downstream.orders
        role.downstream.shipments = min(participant.inventory, to_ship)
        if idx > 0:
            group.shipping[idx - 1].append(role.downstream.shipments)

        # Step 5 – carry the shortfall as backlog
        participant.backlog = max(0, to_ship - participant.inventory)
        participant.inventory = max(0, participant.inventory - to_ship)

        # Step 6 – place the upstream order
        if group.week == 0:
            role.upstream.orders = settings.STARTING_THROUGHPUT
        if idx == FACTORY_INDEX:
            # The Factory's production goes straight into its own receiving queue
            group.shipping[idx].append(role.upstream.orders)
        else:
            group.mailing[idx].append(role.upstream.orders)
        participant.order_history.append(role.upstream.orders)

        # Step 7 – the group total accumulates each role's running cost before this week's charge
        group.cost += participant.cost
        cost_added = (
            participant.inventory * settings.INVENTORY_COST
            + participant.backlog * settings.BACKLOG_COST
        )
        participant.cost += cost_added

        stats[role.name] = {
            "week": group.week,
            "inventory_before": inventory_before,
            "backlog_before": backlog_before,
            "incoming_shipment": role.upstream.shipments,
            "incoming_order": role.downstream.orders,
            "demand": to_ship,
            "shipped": role.downstream.shipments,
            "inventory_after": participant.inventory,
            "backlog_after": participant.backlog,
            "order_placed": role.upstream.orders,
            "cost_added": cost_added,
            "total_cost": participant.cost,
        }
        logger.debug("[%s] week %s: %s", role.name, group.week, stats[role.name])

    group.cost_history.append(group.cost)
    group.week += 1
    group.waiting_for_orders = set(group.role_names)
    return stats


def pipeline_lengths(group: Group) -> Dict[str, list]:
    """Queue lengths, handy for checking the one-pop-one-push balance."""

    return {
        "shipping": [len(queue) for queue in group.shipping],
        "mailing": [len(queue) for queue in group.mailing],
    }
