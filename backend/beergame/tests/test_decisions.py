from types import SimpleNamespace

import httpx
import openai
import pytest

from beergame.core.exceptions import DecisionParseError, ProviderUnavailableError, RateLimitedError
from beergame.models.game import HUMAN, AiModel, make_group, parse_player_type
from beergame.schemas.game import GroupSnapshot, ParticipantSnapshot
from beergame.services.decisions import ProviderRouter, parse_order_quantity, resolve_order
from beergame.services.llm_agent import (
    AnthropicDecisionProvider,
    OpenAIDecisionProvider,
    build_provider_router,
    extract_retry_after,
)
from beergame.services.llm_payload import build_order_prompt
from beergame.services.policies import PIPolicy, PolicyDecisionProvider

from conftest import AlwaysRateLimited, ScriptedProvider, make_settings


class SleepRecorder:
    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)


def _snapshots(settings, model="gpt-5-mini", provider="openai", downstream_orders=7):
    group = make_group(
        [AiModel(provider, model), HUMAN, HUMAN, HUMAN],
        starting_inventory=settings.STARTING_INVENTORY,
        starting_throughput=settings.STARTING_THROUGHPUT,
    )
    seat = group.participants[0]
    seat.role.downstream.orders = downstream_orders
    participant = ParticipantSnapshot.from_participant(seat)
    return participant, GroupSnapshot.from_group(group, rank=0, max_weeks=settings.MAX_WEEKS)


@pytest.mark.parametrize(
    "text, expected",
    [("8", 8), ("  12\n", 12), ("I would order 15 units", 15), ("0", 0)],
)
def test_parse_order_quantity(text, expected):
    assert parse_order_quantity(text) == expected


@pytest.mark.parametrize("text", ["", None, "a lot", "-3"])
def test_parse_order_quantity_rejects_garbage(text):
    with pytest.raises(DecisionParseError):
        parse_order_quantity(text)


def test_parse_player_type_uses_catalog_and_explicit_provider(settings):
    assert parse_player_type("human", settings.AI_MODELS) == HUMAN
    assert parse_player_type("claude-sonnet-4-5", settings.AI_MODELS) == AiModel("anthropic", "claude-sonnet-4-5")
    assert parse_player_type("openai:gpt-4o", settings.AI_MODELS) == AiModel("openai", "gpt-4o")
    with pytest.raises(ValueError):
        parse_player_type("mystery-model", settings.AI_MODELS)


@pytest.mark.asyncio
async def test_resolve_order_returns_provider_answer(settings):
    participant, group = _snapshots(settings)
    provider = ScriptedProvider(lambda p, g: 11)

    assert await resolve_order(provider, participant, group, settings) == 11
    assert provider.calls == [("Retailer", 0)]


@pytest.mark.asyncio
async def test_rate_limit_retries_then_falls_back(settings):
    participant, group = _snapshots(settings, downstream_orders=9)
    provider = AlwaysRateLimited(retry_after=None)
    sleep = SleepRecorder()
    slow = make_settings(DEFAULT_RETRY_AFTER=5.0)

    quantity = await resolve_order(provider, participant, group, slow, sleep=sleep)

    assert quantity == 9
    assert provider.calls == slow.MAX_AI_RETRIES
    assert sleep.delays == [5.0] * (slow.MAX_AI_RETRIES - 1)


@pytest.mark.asyncio
async def test_rate_limit_uses_provider_hint_and_recovers(settings):
    participant, group = _snapshots(settings)
    answers = [RateLimitedError("429", retry_after=2.5), 6]
    provider = ScriptedProvider(lambda p, g: answers.pop(0))
    sleep = SleepRecorder()

    assert await resolve_order(provider, participant, group, settings, sleep=sleep) == 6
    assert sleep.delays == [2.5]


@pytest.mark.asyncio
async def test_permanent_errors_fall_back_without_retry(settings):
    participant, group = _snapshots(settings, downstream_orders=0)
    provider = ScriptedProvider(lambda p, g: RuntimeError("connection reset"))
    sleep = SleepRecorder()

    quantity = await resolve_order(provider, participant, group, settings, sleep=sleep)

    # No downstream order known yet, so the starting throughput is used
    assert quantity == settings.STARTING_THROUGHPUT
    assert len(provider.calls) == 1
    assert sleep.delays == []


@pytest.mark.asyncio
@pytest.mark.parametrize("answer", [-4, "12", 3.5, None])
async def test_invalid_answers_fall_back(settings, answer):
    participant, group = _snapshots(settings, downstream_orders=5)
    provider = ScriptedProvider(lambda p, g: answer)

    assert await resolve_order(provider, participant, group, settings) == 5


@pytest.mark.asyncio
async def test_router_dispatches_on_provider_tag(settings):
    participant, group = _snapshots(settings, model="naive", provider="policy", downstream_orders=13)
    router = ProviderRouter({"policy": PolicyDecisionProvider()})

    assert await router.decide(participant, group) == 13

    missing, _ = _snapshots(settings, provider="gemini", model="gemini-pro")
    with pytest.raises(ProviderUnavailableError):
        await router.decide(missing, group)


def test_pi_policy_tracks_state_per_seat(settings):
    policy = PIPolicy(base_stock=12)
    participant, group = _snapshots(settings, model="pi", provider="policy", downstream_orders=4)
    participant = participant.model_copy(update={"inventory": 2, "backlog": 0})

    first = policy.order(participant, group)
    second = policy.order(participant, group)

    assert first == 11  # 4 + 0.6 * 10 + 0.1 * 10
    assert second == 12  # integral error grows to 20
    assert len(policy.states) == 1


def test_prompt_mentions_neighbours_and_history(settings):
    participant, group = _snapshots(settings)
    participant = participant.model_copy(
        update={"inventory_history": [12, 10], "backlog_history": [0, 2], "order_history": [4, 6]}
    )

    prompt = build_order_prompt(participant, group, settings)

    assert "Retailer" in prompt
    assert "Customer" in prompt and "Wholesaler" in prompt
    assert "Week 1: Inventory=10, Backlog=2, Order Placed=6" in prompt


def test_extract_retry_after_reads_header_then_message():
    with_header = SimpleNamespace(response=SimpleNamespace(headers={"retry-after": "7"}))
    assert extract_retry_after(with_header) == 7.0
    assert extract_retry_after(RuntimeError("Please retry after 12 seconds")) == 12.0
    assert extract_retry_after(RuntimeError("slow down")) is None


class _FakeCompletions:
    def __init__(self, outcome):
        self.outcome = outcome
        self.calls = []

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        if isinstance(self.outcome, Exception):
            raise self.outcome
        message = SimpleNamespace(content=self.outcome)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def _openai_client(outcome):
    return SimpleNamespace(chat=SimpleNamespace(completions=_FakeCompletions(outcome)))


@pytest.mark.asyncio
async def test_openai_provider_parses_reply(settings):
    client = _openai_client(" 14 ")
    provider = OpenAIDecisionProvider(settings, client=client)
    participant, group = _snapshots(settings)

    assert await provider.decide(participant, group) == 14
    call = client.chat.completions.calls[0]
    assert call["model"] == "gpt-5-mini"
    assert call["messages"][0]["role"] == "system"


@pytest.mark.asyncio
async def test_openai_rate_limit_maps_to_retryable_error(settings):
    request = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
    response = httpx.Response(429, headers={"retry-after": "3"}, request=request)
    error = openai.RateLimitError("Rate limit reached", response=response, body=None)
    provider = OpenAIDecisionProvider(settings, client=_openai_client(error))
    participant, group = _snapshots(settings)

    with pytest.raises(RateLimitedError) as excinfo:
        await provider.decide(participant, group)
    assert excinfo.value.retry_after == 3.0


@pytest.mark.asyncio
async def test_anthropic_provider_joins_text_blocks(settings):
    class FakeMessages:
        async def create(self, **kwargs):
            assert kwargs["max_tokens"] == 100
            return SimpleNamespace(content=[SimpleNamespace(type="text", text="10")])

    provider = AnthropicDecisionProvider(settings, client=SimpleNamespace(messages=FakeMessages()))
    participant, group = _snapshots(settings, provider="anthropic", model="claude-sonnet-4-5")

    assert await provider.decide(participant, group) == 10


def test_router_only_registers_configured_providers():
    router = build_provider_router(make_settings(OPENAI_API_KEY=None, ANTHROPIC_API_KEY=None))
    assert set(router.providers) == {"policy"}

    router = build_provider_router(make_settings(OPENAI_API_KEY="sk-test", ANTHROPIC_API_KEY=None))
    assert set(router.providers) == {"policy", "openai"}
