"""
Type definitions and common data structures for the presence watch bot.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import NamedTuple

# channel_id -> ids of the humans currently in it, in channel listing order
GuildSnapshot = Mapping[int, frozenset[int]]


class WatchSet(NamedTuple):
    """The watched pair. Empty, or exactly two distinct human user ids."""

    ids: tuple[int, ...] = ()

    @property
    def is_complete(self) -> bool:
        return len(self.ids) == 2

    def as_set(self) -> frozenset[int]:
        return frozenset(self.ids)

    def __contains__(self, user_id: object) -> bool:  # type: ignore[override]
        return user_id in self.ids


class WatchPredicate(str, Enum):
    """Which co-location rule triggers a join."""

    ALONE_TOGETHER = "alone_together"  # both present, exactly two humans
    TOGETHER = "together"  # both present, any occupancy


class ConnectionStatus(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECOVERING = "recovering"


@dataclass(frozen=True)
class ConnectionState:
    """Logical voice connection for one guild."""

    status: ConnectionStatus = ConnectionStatus.DISCONNECTED
    channel_id: int | None = None

    @classmethod
    def disconnected(cls) -> "ConnectionState":
        return cls()

    @classmethod
    def connecting(cls, channel_id: int) -> "ConnectionState":
        return cls(ConnectionStatus.CONNECTING, channel_id)

    @classmethod
    def connected(cls, channel_id: int) -> "ConnectionState":
        return cls(ConnectionStatus.CONNECTED, channel_id)

    @classmethod
    def recovering(cls, channel_id: int | None) -> "ConnectionState":
        return cls(ConnectionStatus.RECOVERING, channel_id)

    @property
    def is_active(self) -> bool:
        """True for every status that holds (or is acquiring) a connection."""
        return self.status is not ConnectionStatus.DISCONNECTED

    def describe(self) -> str:
        if self.channel_id is None:
            return self.status.value
        return f"{self.status.value}({self.channel_id})"


@dataclass(frozen=True)
class NoAction:
    """Nothing to do. ``reason`` is kept for logging."""

    reason: str = "unchanged"


@dataclass(frozen=True)
class Join:
    channel_id: int


@dataclass(frozen=True)
class Move:
    from_channel_id: int
    to_channel_id: int


@dataclass(frozen=True)
class Leave:
    channel_id: int | None = None


Action = NoAction | Join | Move | Leave


@dataclass
class RelaySession:
    """A DM relay: target's DMs to the bot are forwarded to the origin channel."""

    dm_channel_id: int
    origin_channel_id: int
    target_user_id: int
    invoker_id: int
    expires_at: float
    relayed: int = field(default=0)

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at
