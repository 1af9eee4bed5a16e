"""
Connection reconciliation: compare the rule verdict with the guild's
connection state and pick the smallest corrective action.

The decision itself (``reconcile``) is a pure function. ``ConnectionReconciler``
applies it against the guild-scoped state store and records cooldowns.
"""

import asyncio
import time
from collections.abc import Callable
from dataclasses import dataclass, field

from utils.log_context import get_guild_extra
from utils.logging import get_logger
from utils.types import (
    Action,
    ConnectionState,
    Join,
    Leave,
    Move,
    NoAction,
)

logger = get_logger(__name__)

Clock = Callable[[], float]


def reconcile(
    verdict: int | None,
    state: ConnectionState,
    last_join: float | None,
    now: float,
    cooldown: float,
) -> Action:
    """
    Decide what the bot should do in one guild.

    Args:
        verdict: Target channel from the rule evaluator, or None.
        state: Current logical connection.
        last_join: Time of the last join or move, None if never.
        now: Current time on the same clock as ``last_join``.
        cooldown: Minimum seconds between two joins.
    """
    if verdict is None:
        if state.is_active:
            return Leave(state.channel_id)
        return NoAction("idle")

    if state.is_active and state.channel_id == verdict:
        return NoAction("already connected")

    if last_join is not None and now - last_join < cooldown:
        return NoAction("cooldown")

    if state.is_active and state.channel_id is not None:
        return Move(state.channel_id, verdict)
    return Join(verdict)


class CooldownGuard:
    """Per-guild timestamp of the last join, read from a monotonic clock."""

    def __init__(self, window: float, clock: Clock = time.monotonic) -> None:
        self.window = window
        self.clock = clock
        self._last_join: dict[int, float] = {}

    def now(self) -> float:
        return self.clock()

    def last_join(self, guild_id: int) -> float | None:
        return self._last_join.get(guild_id)

    def record_join(self, guild_id: int, now: float | None = None) -> None:
        self._last_join[guild_id] = self.clock() if now is None else now

    def remaining(self, guild_id: int, now: float | None = None) -> float:
        last = self._last_join.get(guild_id)
        if last is None:
            return 0.0
        now = self.clock() if now is None else now
        return max(0.0, self.window - (now - last))

    def is_cooling_down(self, guild_id: int, now: float | None = None) -> bool:
        return self.remaining(guild_id, now) > 0


@dataclass
class GuildRecord:
    state: ConnectionState = field(default_factory=ConnectionState.disconnected)
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    suppressed: int = 0


class GuildStateStore:
    """Guild-scoped mutable state, reached only through these accessors."""

    def __init__(self) -> None:
        self._records: dict[int, GuildRecord] = {}

    def _record(self, guild_id: int) -> GuildRecord:
        record = self._records.get(guild_id)
        if record is None:
            record = self._records[guild_id] = GuildRecord()
        return record

    def get(self, guild_id: int) -> ConnectionState:
        record = self._records.get(guild_id)
        return record.state if record else ConnectionState.disconnected()

    def set(self, guild_id: int, state: ConnectionState) -> None:
        record = self._record(guild_id)
        if record.state != state:
            logger.debug(
                "Guild state %s -> %s",
                record.state.describe(),
                state.describe(),
                extra=get_guild_extra(guild_id, state.channel_id, state=state.status.value),
            )
        record.state = state

    def lock_for(self, guild_id: int) -> asyncio.Lock:
        return self._record(guild_id).lock

    def note_suppressed(self, guild_id: int) -> int:
        record = self._record(guild_id)
        record.suppressed += 1
        return record.suppressed

    def suppressed_count(self, guild_id: int) -> int:
        record = self._records.get(guild_id)
        return record.suppressed if record else 0

    def connected_guild_ids(self) -> list[int]:
        return [gid for gid, rec in self._records.items() if rec.state.is_active]

    def snapshot(self) -> dict[int, ConnectionState]:
        return {gid: rec.state for gid, rec in self._records.items()}

    def forget(self, guild_id: int) -> None:
        """Drop the state for a guild the bot left; the lock goes with it."""
        record = self._records.get(guild_id)
        if record and not record.lock.locked():
            del self._records[guild_id]


class ConnectionReconciler:
    """Owns the per-guild state store and the cooldown guard."""

    def __init__(self, cooldown: CooldownGuard, store: GuildStateStore | None = None) -> None:
        self.cooldown = cooldown
        self.store = store or GuildStateStore()

    def decide(self, guild_id: int, verdict: int | None, now: float | None = None) -> Action:
        """
        Apply ``reconcile`` for one guild. A Join or Move stamps the cooldown
        at decision time so a failing connect cannot be retried in a loop.
        """
        now = self.cooldown.now() if now is None else now
        state = self.store.get(guild_id)
        action = reconcile(
            verdict,
            state,
            self.cooldown.last_join(guild_id),
            now,
            self.cooldown.window,
        )

        if isinstance(action, (Join, Move)):
            self.cooldown.record_join(guild_id, now)
        elif isinstance(action, NoAction) and action.reason == "cooldown":
            count = self.store.note_suppressed(guild_id)
            logger.info(
                "Within cooldown (%.0fms left). Skipping re-join to %s.",
                self.cooldown.remaining(guild_id, now) * 1000,
                verdict,
                extra=get_guild_extra(guild_id, verdict, action="suppressed", suppressed=count),
            )
        return action

    def state(self, guild_id: int) -> ConnectionState:
        return self.store.get(guild_id)
