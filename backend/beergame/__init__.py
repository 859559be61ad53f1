"""Beer distribution game simulator: turn engine, order collection and websocket layer."""

__version__ = "1.0.0"
