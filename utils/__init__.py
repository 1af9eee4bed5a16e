"""
Utilities Package

Common utilities and helper functions for the presence watch bot.
"""

from .errors import (
    BotError,
    ConfigurationError,
    ConnectionTimeoutError,
    ConnectPermissionError,
    PlaybackError,
    TransientFetchError,
    ValidationError,
)
from .logging import get_logger, setup_logging
from .tasks import spawn
from .types import (
    Action,
    ConnectionState,
    ConnectionStatus,
    Join,
    Leave,
    Move,
    NoAction,
    WatchPredicate,
    WatchSet,
)

__all__ = [
    "Action",
    "BotError",
    "ConfigurationError",
    "ConnectPermissionError",
    "ConnectionState",
    "ConnectionStatus",
    "ConnectionTimeoutError",
    "Join",
    "Leave",
    "Move",
    "NoAction",
    "PlaybackError",
    "TransientFetchError",
    "ValidationError",
    "WatchPredicate",
    "WatchSet",
    "get_logger",
    "setup_logging",
    "spawn",
]
