"""
Voice Connection Lifecycle Manager

Wraps discord.py's connect/move/disconnect primitives and records every
transition in the guild state store. All waits are bounded: a connect that
does not become ready in time and a drop that does not recover in time both
end in a destroyed connection and DISCONNECTED.
"""

import asyncio
from typing import Any

import discord

from helpers.audio import GreetingPlayer
from utils.errors import ConnectionTimeoutError, ConnectPermissionError
from utils.log_context import get_guild_extra
from utils.types import ConnectionState, ConnectionStatus

from .base import BaseService
from .reconciler import GuildStateStore

# Extra time on top of discord.py's own handshake timeout before giving up.
CONNECT_GRACE_SECONDS = 5.0
RECOVERY_POLL_SECONDS = 0.25


class VoiceLifecycleManager(BaseService):
    """Owns at most one voice client per guild."""

    def __init__(
        self,
        store: GuildStateStore,
        *,
        connect_timeout: float = 15.0,
        recovery_timeout: float = 5.0,
        greeting: GreetingPlayer | None = None,
    ) -> None:
        super().__init__("voice_lifecycle")
        self.store = store
        self.connect_timeout = connect_timeout
        self.recovery_timeout = recovery_timeout
        self.greeting = greeting
        self.greetings_played = 0

    async def _initialize_impl(self) -> None:
        if self.greeting is not None:
            self.greeting.warn_if_missing()

    def can_connect(self, channel: discord.abc.GuildChannel) -> bool:
        """True when the bot's member may connect to ``channel``."""
        me = channel.guild.me
        if me is None:
            return False
        return channel.permissions_for(me).connect

    def _require_connect(self, guild: discord.Guild, channel: discord.abc.GuildChannel) -> None:
        if not self.can_connect(channel):
            raise ConnectPermissionError(guild.id, channel.id)

    async def join(
        self,
        guild: discord.Guild,
        channel: discord.VoiceChannel | discord.StageChannel,
        *,
        greet: bool = True,
    ) -> discord.VoiceClient:
        """
        Connect to ``channel`` from scratch, destroying any previous client.

        Raises:
            ConnectionTimeoutError: The connection was not ready in time.
            ConnectPermissionError: The bot may not connect to ``channel``; nothing changes.
        """
        self._require_connect(guild, channel)
        extra = get_guild_extra(guild.id, channel.id, action="join")
        self.store.set(guild.id, ConnectionState.connecting(channel.id))
        await self._destroy_client(guild)

        try:
            voice_client = await asyncio.wait_for(
                channel.connect(
                    timeout=self.connect_timeout,
                    reconnect=True,
                    self_deaf=False,
                    self_mute=False,
                ),
                timeout=self.connect_timeout + CONNECT_GRACE_SECONDS,
            )
        except asyncio.TimeoutError as e:
            self.logger.warning(
                "Voice connection to #%s timed out after %.0fs",
                channel.name,
                self.connect_timeout,
                extra=extra,
            )
            await self._teardown(guild)
            raise ConnectionTimeoutError(guild.id, channel.id, self.connect_timeout) from e
        except Exception:
            await self._teardown(guild)
            raise

        self.store.set(guild.id, ConnectionState.connected(channel.id))
        if greet and self.greeting is not None and self.greeting.play(voice_client):
            self.greetings_played += 1
        return voice_client

    async def move(
        self,
        guild: discord.Guild,
        channel: discord.VoiceChannel | discord.StageChannel,
    ) -> discord.VoiceClient:
        """
        Move the live client to ``channel``. Falls back to a silent fresh
        join when there is no live client to move.

        Raises:
            ConnectionTimeoutError: The move did not complete in time.
            ConnectPermissionError: The bot may not connect to ``channel``; nothing changes.
        """
        self._require_connect(guild, channel)
        voice_client = guild.voice_client
        if not isinstance(voice_client, discord.VoiceClient) or not voice_client.is_connected():
            return await self.join(guild, channel, greet=False)

        self.store.set(guild.id, ConnectionState.connecting(channel.id))
        try:
            await asyncio.wait_for(voice_client.move_to(channel), timeout=self.connect_timeout)
        except asyncio.TimeoutError as e:
            self.logger.warning(
                "Moving to #%s timed out", channel.name,
                extra=get_guild_extra(guild.id, channel.id, action="move"),
            )
            await self._teardown(guild)
            raise ConnectionTimeoutError(guild.id, channel.id, self.connect_timeout) from e
        except Exception:
            await self._teardown(guild)
            raise

        self.store.set(guild.id, ConnectionState.connected(channel.id))
        return voice_client

    async def leave(self, guild: discord.Guild) -> None:
        """
        Disconnect from voice. Returns once the disconnect was issued; the
        gateway confirms asynchronously.
        """
        await self._teardown(guild)

    async def force_destroy(self, guild: discord.Guild) -> None:
        """Tear down regardless of state (guild unavailable or removed)."""
        if self.store.get(guild.id).is_active or guild.voice_client is not None:
            self.logger.info(
                "Force-destroying voice connection", extra=get_guild_extra(guild.id, action="destroy")
            )
        await self._teardown(guild)

    async def recover(self, guild: discord.Guild) -> bool:
        """
        Handle an unexpected drop: wait up to ``recovery_timeout`` for the
        client to resume or reconnect, otherwise destroy it.

        Returns True when the connection recovered.
        """
        state = self.store.get(guild.id)
        if state.status is not ConnectionStatus.CONNECTED:
            return False

        extra = get_guild_extra(guild.id, state.channel_id, action="recover")
        self.store.set(guild.id, ConnectionState.recovering(state.channel_id))
        self.logger.warning("Voice connection dropped; waiting for recovery", extra=extra)

        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.recovery_timeout
        while True:
            voice_client = guild.voice_client
            if voice_client is not None and voice_client.is_connected() and voice_client.channel:
                self.store.set(guild.id, ConnectionState.connected(voice_client.channel.id))
                self.logger.info("Voice connection recovered", extra=extra)
                return True
            if loop.time() >= deadline:
                break
            await asyncio.sleep(RECOVERY_POLL_SECONDS)

        self.logger.warning(
            "Voice connection did not recover within %.0fs; destroying",
            self.recovery_timeout,
            extra=extra,
        )
        await self._teardown(guild)
        return False

    async def _teardown(self, guild: discord.Guild) -> None:
        # State first, so our own disconnect event is not mistaken for a drop.
        self.store.set(guild.id, ConnectionState.disconnected())
        await self._destroy_client(guild)

    async def _destroy_client(self, guild: discord.Guild) -> None:
        voice_client = guild.voice_client
        if voice_client is None:
            return
        try:
            if isinstance(voice_client, discord.VoiceClient):
                GreetingPlayer.stop(voice_client)
            await voice_client.disconnect(force=True)
        except Exception as e:
            self.logger.exception(
                "Failed to leave voice", exc_info=e, extra=get_guild_extra(guild.id)
            )

    async def _shutdown_impl(self) -> None:
        for guild_id in self.store.connected_guild_ids():
            self.store.set(guild_id, ConnectionState.disconnected())

    def status_details(self) -> dict[str, Any]:
        return {
            "connect_timeout": self.connect_timeout,
            "recovery_timeout": self.recovery_timeout,
            "greetings_played": self.greetings_played,
        }
