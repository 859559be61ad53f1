"""LLM-backed decision providers (OpenAI and Anthropic)."""

import logging
import re
from typing import Any, Optional

import anthropic
import openai
from anthropic import AsyncAnthropic
from openai import AsyncOpenAI

from ..core.config import Settings
from ..core.exceptions import DecisionError, RateLimitedError
from ..schemas.game import GroupSnapshot, ParticipantSnapshot
from .decisions import ProviderRouter, parse_order_quantity
from .llm_payload import SYSTEM_PROMPT, build_order_prompt
from .policies import PolicyDecisionProvider

logger = logging.getLogger(__name__)

_RETRY_AFTER_MESSAGE = re.compile(r"retry after (\d+(?:\.\d+)?) second", re.IGNORECASE)


def extract_retry_after(exc: Exception) -> Optional[float]:
    """Seconds to wait before retrying, from the response header or the error text."""

    response = getattr(exc, "response", None)
    headers = getattr(response, "headers", None) or {}
    raw = headers.get("retry-after") if hasattr(headers, "get") else None
    if raw is not None:
        try:
            return float(raw)
        except (TypeError, ValueError):
            pass
    match = _RETRY_AFTER_MESSAGE.search(str(exc))
    if match:
        return float(match.group(1))
    return None


class OpenAIDecisionProvider:
    """Chat-completions provider; the participant's model id selects the model."""

    def __init__(self, settings: Settings, client: Optional[Any] = None) -> None:
        self.settings = settings
        if client is None:
            if not settings.OPENAI_API_KEY:
                raise ValueError("OPENAI_API_KEY environment variable not set")
            client = AsyncOpenAI(api_key=settings.OPENAI_API_KEY, timeout=settings.AI_REQUEST_TIMEOUT)
        self.client = client

    async def decide(self, participant: ParticipantSnapshot, group: GroupSnapshot) -> int:
        prompt = build_order_prompt(participant, group, self.settings)
        try:
            response = await self.client.chat.completions.create(
                model=participant.model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": prompt},
                ],
            )
        except openai.RateLimitError as exc:
            raise RateLimitedError(str(exc), retry_after=extract_retry_after(exc)) from exc
        except openai.APIError as exc:
            raise DecisionError(f"OpenAI request failed: {exc}") from exc

        content = response.choices[0].message.content or ""
        return parse_order_quantity(content.strip())


class AnthropicDecisionProvider:
    """Messages API provider for Claude models."""

    def __init__(self, settings: Settings, client: Optional[Any] = None, max_tokens: int = 100) -> None:
        self.settings = settings
        self.max_tokens = max_tokens
        if client is None:
            if not settings.ANTHROPIC_API_KEY:
                raise ValueError("ANTHROPIC_API_KEY environment variable not set")
            client = AsyncAnthropic(api_key=settings.ANTHROPIC_API_KEY, timeout=settings.AI_REQUEST_TIMEOUT)
        self.client = client

    async def decide(self, participant: ParticipantSnapshot, group: GroupSnapshot) -> int:
        prompt = build_order_prompt(participant, group, self.settings)
        try:
            response = await self.client.messages.create(
                model=participant.model,
                max_tokens=self.max_tokens,
                system=SYSTEM_PROMPT,
                messages=[{"role": "user", "content": prompt}],
            )
        except anthropic.RateLimitError as exc:
            raise RateLimitedError(str(exc), retry_after=extract_retry_after(exc)) from exc
        except anthropic.APIError as exc:
            raise DecisionError(f"Anthropic request failed: {exc}") from exc

        text = "".join(
            getattr(block, "text", "") for block in response.content if getattr(block, "type", "") == "text"
        )
        return parse_order_quantity(text.strip())


def build_provider_router(settings: Settings) -> ProviderRouter:
    """Register the offline policies plus every LLM provider whose key is configured."""

    router = ProviderRouter({"policy": PolicyDecisionProvider()})
    if settings.OPENAI_API_KEY:
        router.register("openai", OpenAIDecisionProvider(settings))
        logger.info("OpenAI client initialized for AI players")
    else:
        logger.warning("OPENAI_API_KEY not set; OpenAI seats will use fallback orders")
    if settings.ANTHROPIC_API_KEY:
        router.register("anthropic", AnthropicDecisionProvider(settings))
        logger.info("Anthropic client initialized for AI players")
    else:
        logger.warning("ANTHROPIC_API_KEY not set; Claude seats will use fallback orders")
    return router
