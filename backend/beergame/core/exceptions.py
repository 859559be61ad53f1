"""Error taxonomy shared by the engine, the order collector and the providers."""

from typing import Optional


class GameProtocolError(Exception):
    """An action that is invalid in the current phase of the game.

    Raised before any state is touched; ``reason`` is shown to the caller.
    """

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


class GameEndedError(GameProtocolError):
    def __init__(self, reason: str = "Game has ended") -> None:
        super().__init__(reason)


class GameNotStartedError(GameProtocolError):
    def __init__(self, reason: str = "Game has not started") -> None:
        super().__init__(reason)


class UnknownGroupError(GameProtocolError):
    def __init__(self, group_id: str) -> None:
        super().__init__(f"Unknown group: {group_id}")
        self.group_id = group_id


class UnknownRoleError(GameProtocolError):
    def __init__(self, role_name: str) -> None:
        super().__init__(f"Unknown role: {role_name}")
        self.role_name = role_name


class InvalidOrderError(GameProtocolError):
    pass


class RegistrationError(GameProtocolError):
    pass


class TeamSetupError(GameProtocolError):
    pass


class DecisionError(Exception):
    """A decision provider could not produce an order quantity."""


class RateLimitedError(DecisionError):
    """Transient provider failure; the call may be retried after ``retry_after`` seconds."""

    def __init__(self, message: str = "rate limited", retry_after: Optional[float] = None) -> None:
        super().__init__(message)
        self.retry_after = retry_after


class DecisionParseError(DecisionError):
    """The provider answered, but not with a non-negative integer."""


class ProviderUnavailableError(DecisionError):
    """No provider is configured for the participant's model."""
