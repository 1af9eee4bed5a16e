"""
DM relay sessions.

While a session is open, direct messages the target user sends to the bot
are forwarded to the channel the session was started from. Sessions are
keyed by the target's DM channel id and expire after a fixed duration;
expiry is checked on every lookup and by a periodic sweep.
"""

import time
from collections.abc import Callable
from typing import Any

from utils.types import RelaySession

from .base import BaseService


class RelayService(BaseService):
    def __init__(
        self,
        *,
        default_minutes: int = 10,
        max_minutes: int = 120,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        super().__init__("relay")
        self.default_minutes = default_minutes
        self.max_minutes = max_minutes
        self.clock = clock
        self._sessions: dict[int, RelaySession] = {}

    async def _initialize_impl(self) -> None:
        self._sessions.clear()

    async def _shutdown_impl(self) -> None:
        self._sessions.clear()

    def clamp_minutes(self, minutes: int | None) -> int:
        if minutes is None:
            return self.default_minutes
        return max(1, min(self.max_minutes, minutes))

    def start(
        self,
        *,
        dm_channel_id: int,
        origin_channel_id: int,
        target_user_id: int,
        invoker_id: int,
        minutes: int | None = None,
    ) -> RelaySession:
        """Open (or replace) the session for ``dm_channel_id``."""
        duration = self.clamp_minutes(minutes) * 60
        session = RelaySession(
            dm_channel_id=dm_channel_id,
            origin_channel_id=origin_channel_id,
            target_user_id=target_user_id,
            invoker_id=invoker_id,
            expires_at=self.clock() + duration,
        )
        replaced = self._sessions.get(dm_channel_id)
        self._sessions[dm_channel_id] = session
        self.logger.info(
            "Relay %s for user %s -> channel %s (%d min)",
            "replaced" if replaced else "started",
            target_user_id,
            origin_channel_id,
            duration // 60,
            extra={"user_id": str(invoker_id), "channel_id": str(origin_channel_id)},
        )
        return session

    def get(self, dm_channel_id: int) -> RelaySession | None:
        """Return the live session for a DM channel, dropping it if expired."""
        session = self._sessions.get(dm_channel_id)
        if session is None:
            return None
        if session.is_expired(self.clock()):
            del self._sessions[dm_channel_id]
            self.logger.debug("Relay for DM channel %s expired on lookup", dm_channel_id)
            return None
        return session

    def stop_for_target(self, target_user_id: int) -> RelaySession | None:
        for dm_channel_id, session in list(self._sessions.items()):
            if session.target_user_id == target_user_id:
                del self._sessions[dm_channel_id]
                self.logger.info("Relay for user %s stopped", target_user_id)
                return session
        return None

    def sweep(self) -> list[RelaySession]:
        """Remove and return every expired session."""
        now = self.clock()
        expired = [s for s in self._sessions.values() if s.is_expired(now)]
        for session in expired:
            del self._sessions[session.dm_channel_id]
        if expired:
            self.logger.info("Swept %d expired relay session(s)", len(expired))
        return expired

    def active_sessions(self) -> list[RelaySession]:
        now = self.clock()
        return [s for s in self._sessions.values() if not s.is_expired(now)]

    def status_details(self) -> dict[str, Any]:
        return {"sessions": len(self._sessions)}
