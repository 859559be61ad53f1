"""Order decisions for AI seats: provider protocol, routing, retries and fallback."""

from __future__ import annotations

import asyncio
import logging
import re
from typing import Awaitable, Callable, Dict, Mapping, Optional, Protocol

from ..core.config import Settings
from ..core.exceptions import (
    DecisionError,
    DecisionParseError,
    ProviderUnavailableError,
    RateLimitedError,
)
from ..schemas.game import GroupSnapshot, ParticipantSnapshot

logger = logging.getLogger(__name__)

_INTEGER_RE = re.compile(r"-?\d+")

Sleep = Callable[[float], Awaitable[None]]


class DecisionProvider(Protocol):
    """Resolves the upstream order quantity for a non-human seat."""

    async def decide(self, participant: ParticipantSnapshot, group: GroupSnapshot) -> int:
        """Return the order quantity or raise :class:`DecisionError`."""


def parse_order_quantity(text: Optional[str]) -> int:
    """Extract the first integer from a free-text model answer."""

    match = _INTEGER_RE.search(text or "")
    if not match:
        raise DecisionParseError(f"No order quantity in response: {text!r}")
    quantity = int(match.group(0))
    if quantity < 0:
        raise DecisionParseError(f"Negative order quantity in response: {text!r}")
    return quantity


def fallback_order(participant: ParticipantSnapshot, settings: Settings) -> int:
    """Last order received from downstream, or the starting throughput when there is none."""

    return participant.role.downstream.orders or settings.STARTING_THROUGHPUT


class ProviderRouter:
    """Dispatches on the participant's provider tag."""

    def __init__(self, providers: Optional[Mapping[str, DecisionProvider]] = None) -> None:
        self.providers: Dict[str, DecisionProvider] = dict(providers or {})

    def register(self, provider_id: str, provider: DecisionProvider) -> None:
        self.providers[provider_id] = provider

    def forget(self, group_id: str) -> None:
        for provider in self.providers.values():
            forget = getattr(provider, "forget", None)
            if forget is not None:
                forget(group_id)

    async def decide(self, participant: ParticipantSnapshot, group: GroupSnapshot) -> int:
        provider = self.providers.get(participant.provider or "")
        if provider is None:
            raise ProviderUnavailableError(
                f"No decision provider configured for {participant.player_type}"
            )
        return await provider.decide(participant, group)


async def resolve_order(
    provider: DecisionProvider,
    participant: ParticipantSnapshot,
    group: GroupSnapshot,
    settings: Settings,
    *,
    sleep: Sleep = asyncio.sleep,
) -> int:
    """Ask ``provider`` for an order, never failing.

    Rate-limited calls are retried up to ``MAX_AI_RETRIES`` attempts in total,
    waiting the provider's hint or ``DEFAULT_RETRY_AFTER`` seconds in between.
    Every other failure falls back immediately.
    """

    fallback = fallback_order(participant, settings)
    role_name = participant.role.name
    logger.info("[AI] Requesting decision from %s for %s", participant.player_type, role_name)

    for attempt in range(1, settings.MAX_AI_RETRIES + 1):
        try:
            quantity = await provider.decide(participant, group)
        except RateLimitedError as exc:
            if attempt >= settings.MAX_AI_RETRIES:
                logger.warning(
                    "[AI] Max retries reached for %s (%s), using fallback %s",
                    participant.name,
                    role_name,
                    fallback,
                )
                return fallback
            delay = exc.retry_after if exc.retry_after is not None else settings.DEFAULT_RETRY_AFTER
            logger.info(
                "[AI] Rate limit hit for %s, retry %s/%s after %s seconds",
                participant.player_type,
                attempt,
                settings.MAX_AI_RETRIES,
                delay,
            )
            await sleep(max(0.0, float(delay)))
            continue
        except DecisionError as exc:
            logger.warning("[AI] Decision failed for %s: %s; using fallback %s", participant.name, exc, fallback)
            return fallback
        except Exception as exc:
            logger.error(
                "[AI Error] Failed to get decision for %s: %s; using fallback %s",
                participant.name,
                exc,
                fallback,
                exc_info=True,
            )
            return fallback

        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 0:
            logger.warning("[AI] Invalid order %r from %s, using fallback %s", quantity, participant.name, fallback)
            return fallback
        logger.info("[AI] %s ordered: %s", participant.name, quantity)
        return quantity

    return fallback
