from .game import GameSummary, GroupSnapshot, ParticipantSnapshot, RoleSnapshot

__all__ = ["GameSummary", "GroupSnapshot", "ParticipantSnapshot", "RoleSnapshot"]
