"""Prompt construction for LLM-backed ordering decisions."""

from __future__ import annotations

from typing import List

from ..core.config import Settings
from ..schemas.game import GroupSnapshot, ParticipantSnapshot

SYSTEM_PROMPT = (
    "You are a supply chain manager making ordering decisions. "
    "Respond with ONLY a single integer number representing the quantity to order."
)

HISTORY_WINDOW = 5


def _history_lines(participant: ParticipantSnapshot) -> List[str]:
    weeks = len(participant.inventory_history)
    if not weeks:
        return []
    start = max(0, weeks - HISTORY_WINDOW)
    lines = [f"RECENT HISTORY (last {weeks - start} weeks):"]
    for week in range(start, weeks):
        placed = participant.order_history[week] if week < len(participant.order_history) else "N/A"
        lines.append(
            f"Week {week}: Inventory={participant.inventory_history[week]}, "
            f"Backlog={participant.backlog_history[week]}, Order Placed={placed}"
        )
    return lines


def build_order_prompt(
    participant: ParticipantSnapshot, group: GroupSnapshot, settings: Settings
) -> str:
    """Describe the seat's situation and ask for one upstream order quantity."""

    role = participant.role
    sections = [
        f"You are the {role.name} in a four-stage beer supply chain. "
        f"You sell to {role.downstream.name} and buy from {role.upstream.name}.",
        "",
        "OBJECTIVE: keep total cost low while serving every order you receive.",
        "",
        "COSTS:",
        f"- Holding inventory: ${settings.INVENTORY_COST} per unit per week",
        f"- Backlog (unfilled orders): ${settings.BACKLOG_COST} per unit per week",
        "",
        f"STATE (week {group.week}):",
        f"- On hand: {participant.inventory} units, including {role.upstream.shipments} "
        "units that arrived this week",
        f"- Backlog: {participant.backlog} units",
        f"- Latest order from {role.downstream.name}: {role.downstream.orders} units",
        f"- Cost so far: ${participant.cost:.2f}",
    ]
    history = _history_lines(participant)
    if history:
        sections.append("")
        sections.extend(history)
    sections.extend(
        [
            "",
            "Shipments take two weeks to arrive and orders take a week to reach your supplier. "
            "Over-reacting to demand changes amplifies swings up the chain.",
            "",
            f"How many units do you order from {role.upstream.name} this week? "
            'Answer with the number only (e.g. "8").',
        ]
    )
    return "\n".join(sections)
