import pytest

from beergame.core.exceptions import GameProtocolError, RegistrationError, TeamSetupError, UnknownGroupError
from beergame.models.game import HUMAN, AiModel
from beergame.services.game_service import GameService

from conftest import ECHO_COST_HISTORY, make_settings


@pytest.mark.asyncio
async def test_create_team_parses_player_types(service, notifier):
    group = await service.create_team(["human", "gpt-5-mini", "claude-opus-4-5", "policy:naive"])

    kinds = [p.kind for p in group.participants]
    assert kinds == [
        HUMAN,
        AiModel("openai", "gpt-5-mini"),
        AiModel("anthropic", "claude-opus-4-5"),
        AiModel("policy", "naive"),
    ]
    assert group.participants[0].name is None
    assert group.participants[1].name == "AI-gpt-5-mini-Wholesaler"
    assert service.state.num_users == 3
    assert notifier.of("table_updated")


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "player_types, reason",
    [
        (["human", "human", "human"], "Must specify player type for all 4 roles."),
        ([], "Must specify player type for all 4 roles."),
        (["human", "human", "human", "bogus"], "Unknown player type: bogus"),
    ],
)
async def test_create_team_rejects_bad_input(service, player_types, reason):
    with pytest.raises(TeamSetupError) as excinfo:
        await service.create_team(player_types)
    assert excinfo.value.reason == reason
    assert service.state.groups == {}


@pytest.mark.asyncio
async def test_registration_claims_open_human_slots_first(service):
    team = await service.create_team(["naive", "human", "naive", "human"])

    first = await service.register_user("ann", "c1")
    second = await service.register_user("bob", "c2")
    third = await service.register_user("cy", "c3")

    assert (first.group_id, first.index) == (team.id, 1)
    assert (second.group_id, second.index) == (team.id, 3)
    # No open seat left: a new all-human group is formed
    assert third.group_id != team.id and third.index == 0
    new_group = service.get_group(third.group_id)
    assert all(p.is_human for p in new_group.participants)
    assert [p.name for p in new_group.participants] == ["cy", None, None, None]


@pytest.mark.asyncio
async def test_reconnect_restores_the_same_seat(service):
    await service.register_user("ann", "c1")
    with pytest.raises(RegistrationError):
        await service.register_user("ann", "c9")

    await service.disconnect("ann")
    slot = service.state.users["ann"]
    group = service.get_group(slot.group_id)
    assert group.participants[0].connection is None
    assert group.participants[0].name == "ann"

    again = await service.register_user("ann", "c2")
    assert (again.group_id, again.index) == (slot.group_id, 0)
    assert group.participants[0].connection == "c2"


@pytest.mark.asyncio
async def test_registration_rules(service):
    with pytest.raises(RegistrationError) as excinfo:
        await service.register_user("   ", "c0")
    assert excinfo.value.reason == "Invalid Username"

    await service.create_team(["naive"] * 4)
    await service.start_game()
    with pytest.raises(RegistrationError) as excinfo:
        await service.register_user("late", "c1")
    assert excinfo.value.reason == "Game Started"
    await service.drain()


@pytest.mark.asyncio
async def test_start_game_guards(service):
    with pytest.raises(GameProtocolError) as excinfo:
        await service.start_game()
    assert excinfo.value.reason == "You need at least one team to play the game."

    await service.create_team(["human", "naive", "naive", "naive"])
    with pytest.raises(GameProtocolError) as excinfo:
        await service.start_game()
    assert "human player slots must be filled" in excinfo.value.reason

    await service.register_user("ann", "c1")
    await service.disconnect("ann")
    with pytest.raises(GameProtocolError):
        await service.start_game()

    await service.register_user("ann", "c2")
    await service.start_game()
    with pytest.raises(GameProtocolError) as excinfo:
        await service.start_game()
    assert excinfo.value.reason == "The game has already begun."
    with pytest.raises(TeamSetupError):
        await service.create_team(["naive"] * 4)
    await service.drain()


@pytest.mark.asyncio
async def test_start_announces_and_advances_every_group(service, notifier):
    first = await service.create_team(["human"] + ["naive"] * 3)
    second = await service.create_team(["human"] + ["naive"] * 3)
    await service.register_user("ann", "c1")
    await service.register_user("bob", "c2")

    await service.start_game()

    assert notifier.of("game_started") == [(first.id, 0), (second.id, 0)]
    assert first.week == 1 and second.week == 1
    snapshots = [snap for _, snap in notifier.of("group_updated")]
    assert [(s.id, s.rank, s.week) for s in snapshots] == [(first.id, 0, 1), (second.id, 1, 1)]
    await service.drain()


@pytest.mark.asyncio
async def test_remove_group_keeps_other_ids(service, notifier):
    first = await service.create_team(["naive"] * 4)
    second = await service.create_team(["human"] + ["naive"] * 3)
    third = await service.create_team(["naive"] * 4)
    await service.register_user("ann", "c1")

    await service.remove_group(second.id)

    assert list(service.state.groups) == [first.id, third.id]
    assert service.group_snapshot(third.id).rank == 1
    assert "ann" not in service.state.users
    assert notifier.of("group_removed") == [(second.id, ["c1"])]
    with pytest.raises(UnknownGroupError):
        await service.remove_group(second.id)


@pytest.mark.asyncio
async def test_removing_the_last_running_group_ends_the_game(notifier, policy_router):
    service = GameService(make_settings(MAX_WEEKS=3), notifier, policy_router)
    done = await service.create_team(["naive"] * 4)
    stuck = await service.create_team(["human"] + ["naive"] * 3)
    await service.register_user("ann", "c1")
    await service.start_game()
    await service.drain()
    assert done.week == 3 and stuck.week == 1
    assert not service.state.ended

    await service.remove_group(stuck.id)

    assert service.state.ended
    assert len(notifier.of("game_ended")) == 1


@pytest.mark.asyncio
async def test_reset_and_end_guards(service, notifier):
    with pytest.raises(GameProtocolError):
        await service.reset_game()
    with pytest.raises(GameProtocolError):
        await service.end_game()

    group = await service.create_team(["human"] + ["naive"] * 3)
    await service.register_user("ann", "c1")
    await service.start_game()
    await service.drain()
    await service.submit_order(group.id, "Retailer", 4)
    await service.drain()
    assert group.week == 2

    await service.end_game()
    assert service.summary().status == "ended"
    with pytest.raises(GameProtocolError):
        await service.end_game()

    await service.reset_game()
    assert service.summary().status == "waiting"
    assert group.week == 0
    assert group.participants[0].connection == "c1"
    assert [p.inventory for p in group.participants] == [12, 12, 12, 12]
    assert len(notifier.of("game_reset")) == 1


@pytest.mark.asyncio
async def test_submit_user_order_routes_to_the_players_role(service):
    group = await service.create_team(["naive", "human", "naive", "naive"])
    await service.register_user("bob", "c1")
    await service.start_game()
    await service.drain()

    assert await service.submit_user_order("bob", 6) == []
    assert group.participants[1].order_history[-1] == 6
    with pytest.raises(RegistrationError):
        await service.submit_user_order("nobody", 6)


@pytest.mark.asyncio
async def test_full_policy_game_matches_golden_costs(service, notifier, settings):
    group = await service.create_team(["naive"] * 4)

    await service.start_game()
    await service.drain()

    assert group.week == settings.MAX_WEEKS
    assert group.cost_history == ECHO_COST_HISTORY
    assert service.state.ended
    summary = notifier.of("game_ended")[0]
    assert summary.status == "ended"
    assert summary.groups[0].complete


@pytest.mark.asyncio
async def test_reset_replays_pi_team_from_a_clean_controller(notifier, policy_router):
    service = GameService(make_settings(MAX_WEEKS=20), notifier, policy_router)
    group = await service.create_team(["pi"] * 4)
    await service.start_game()
    await service.drain()
    first_run = list(group.cost_history)

    await service.reset_game()
    await service.start_game()
    await service.drain()

    assert group.cost_history == first_run
    pi = policy_router.providers["policy"].policies["pi"]
    assert {key[1] for key in pi.states} == {group.epoch}

    await service.remove_group(group.id)
    assert pi.states == {}


@pytest.mark.asyncio
async def test_removing_unknown_group_leaves_no_lock_behind(service):
    with pytest.raises(UnknownGroupError):
        await service.remove_group("missing")
    assert "missing" not in service.collector._locks
