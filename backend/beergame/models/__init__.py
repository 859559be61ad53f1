from .game import (
    AiModel,
    GameState,
    Group,
    Human,
    Participant,
    PlayerKind,
    Role,
    RoleLink,
    UserSlot,
    make_group,
    make_roles,
    parse_player_type,
)

__all__ = [
    "AiModel",
    "GameState",
    "Group",
    "Human",
    "Participant",
    "PlayerKind",
    "Role",
    "RoleLink",
    "UserSlot",
    "make_group",
    "make_roles",
    "parse_player_type",
]
