"""
Presence Watch Service

Single dispatch point for everything that can change whether the bot belongs
in a voice channel. Each inbound event kind has its own entry method; all of
them funnel into ``evaluate_guild``, which runs snapshot -> rule -> decision
-> lifecycle under that guild's lock.
"""

import asyncio
from typing import TYPE_CHECKING, Any

import discord

from utils.errors import ConnectionTimeoutError, ConnectPermissionError, TransientFetchError
from utils.log_context import get_guild_extra
from utils.types import (
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

from .base import BaseService
from .presence_rules import describe_verdict, evaluate, fetch_guild_members, read_snapshot
from .reconciler import ConnectionReconciler
from .voice_lifecycle import VoiceLifecycleManager
from .watcher_registry import WatchCandidate, WatcherRegistry

if TYPE_CHECKING:
    from discord.ext.commands import Bot


class PresenceWatchService(BaseService):
    """Drives the voice connection of every guild from the watch rule."""

    def __init__(
        self,
        bot: "Bot",
        registry: WatcherRegistry,
        reconciler: ConnectionReconciler,
        lifecycle: VoiceLifecycleManager,
        predicate: WatchPredicate = WatchPredicate.ALONE_TOGETHER,
    ) -> None:
        super().__init__("presence")
        self.bot = bot
        self.registry = registry
        self.reconciler = reconciler
        self.lifecycle = lifecycle
        self.predicate = predicate
        self.evaluations = 0
        self.failures = 0

    async def _initialize_impl(self) -> None:
        self.logger.info(
            "Watch rule: %s (%s), cooldown %.0fms",
            self.predicate.value,
            describe_verdict(self.predicate),
            self.reconciler.cooldown.window * 1000,
        )

    # ------------------------------------------------------------------
    # Evaluation pipeline
    # ------------------------------------------------------------------

    def resolve_target_channel(self, guild: discord.Guild) -> int | None:
        """Snapshot the guild and apply the watch rule and the permission check."""
        verdict = evaluate(read_snapshot(guild), self.registry.watch_set, self.predicate)
        if verdict is None:
            return None

        if self.reconciler.state(guild.id).channel_id == verdict:
            return verdict

        channel = guild.get_channel(verdict)
        if channel is None:
            return None
        if not self.lifecycle.can_connect(channel):
            self.logger.warning(
                "Missing Connect permission for #%s; not joining",
                channel.name,
                extra=get_guild_extra(guild.id, channel.id, action="permission"),
            )
            return None
        return verdict

    async def evaluate_guild(self, guild: discord.Guild, *, refresh_members: bool = False) -> Action:
        """
        Reconcile one guild. Calls for the same guild are serialized; calls
        for different guilds may overlap.

        With ``refresh_members`` the member cache is fetched first; if that
        fails the guild is left untouched for this pass.
        """
        async with self.reconciler.store.lock_for(guild.id):
            self.evaluations += 1
            try:
                if refresh_members:
                    await fetch_guild_members(guild)
                verdict = self.resolve_target_channel(guild)
            except TransientFetchError as e:
                self.logger.warning(
                    "Skipping evaluation this pass: %s", e, extra=get_guild_extra(guild.id)
                )
                return NoAction("unknown state")

            watch_set = self.registry.watch_set
            action = self.reconciler.decide(guild.id, verdict)
            await self._apply(guild, action, watch_set)
            return action

    async def evaluate_guild_safely(
        self, guild: discord.Guild, *, refresh_members: bool = False
    ) -> Action | None:
        """``evaluate_guild`` for event handlers: failures are logged, never raised."""
        try:
            return await self.evaluate_guild(guild, refresh_members=refresh_members)
        except Exception as e:
            self.failures += 1
            self.logger.exception(
                "evaluateGuild error", exc_info=e, extra=get_guild_extra(guild.id)
            )
            return None

    async def _apply(self, guild: discord.Guild, action: Action, watch_set: WatchSet) -> None:
        if isinstance(action, NoAction):
            if action.reason == "already connected":
                self.logger.debug(
                    "Already connected to %s.",
                    self.reconciler.state(guild.id).channel_id,
                    extra=get_guild_extra(guild.id),
                )
            return

        if isinstance(action, Leave):
            await self.lifecycle.leave(guild)
            self.logger.info(
                "Left #%s (no longer %s).",
                self._channel_name(guild, action.channel_id),
                describe_verdict(self.predicate),
                extra=get_guild_extra(guild.id, action.channel_id, action="leave"),
            )
            return

        target_id = action.channel_id if isinstance(action, Join) else action.to_channel_id
        channel = guild.get_channel(target_id)
        if not isinstance(channel, (discord.VoiceChannel, discord.StageChannel)):
            self.logger.warning(
                "Target channel %s vanished before joining", target_id,
                extra=get_guild_extra(guild.id, target_id),
            )
            return

        try:
            if isinstance(action, Move):
                await self.lifecycle.move(guild, channel)
                verb = "Moved to"
            else:
                await self.lifecycle.join(guild, channel)
                verb = "Joined"
        except ConnectionTimeoutError as e:
            self.logger.warning(str(e), extra=get_guild_extra(guild.id, target_id, action="timeout"))
            return
        except ConnectPermissionError as e:
            self.logger.warning(str(e), extra=get_guild_extra(guild.id, target_id, action="permission"))
            return

        # The pair may have been cleared while connecting; log the one that was evaluated.
        self.logger.info(
            "%s #%s because %s are %s.",
            verb,
            channel.name,
            " & ".join(str(user_id) for user_id in watch_set.ids),
            describe_verdict(self.predicate),
            extra=get_guild_extra(guild.id, channel.id, action=type(action).__name__.lower()),
        )

    # ------------------------------------------------------------------
    # Inbound events
    # ------------------------------------------------------------------

    async def handle_voice_state_change(
        self,
        member: discord.Member,
        before_channel: discord.abc.GuildChannel | None,
        after_channel: discord.abc.GuildChannel | None,
    ) -> None:
        guild = member.guild
        if self.bot.user is not None and member.id == self.bot.user.id:
            await self.handle_self_voice_update(guild, after_channel)
            return

        if before_channel == after_channel:
            # mute/deafen/stream toggles do not change occupancy
            return

        watch_set = self.registry.watch_set
        if not watch_set.is_complete and not self.reconciler.state(guild.id).is_active:
            return

        if member.id in watch_set:
            self.logger.info(
                "Tracked user %s moved: %s → %s",
                member.id,
                self._describe_channel(before_channel),
                self._describe_channel(after_channel),
                extra=get_guild_extra(guild.id, user_id=str(member.id)),
            )

        await self.evaluate_guild_safely(guild)

    async def handle_self_voice_update(
        self,
        guild: discord.Guild,
        after_channel: discord.abc.GuildChannel | None,
    ) -> None:
        """The bot's own voice state changed: detect drops and external moves."""
        moved_externally = False
        async with self.reconciler.store.lock_for(guild.id):
            state = self.reconciler.state(guild.id)
            if state.status is not ConnectionStatus.CONNECTED:
                return
            if after_channel is None:
                live = guild.voice_client
                if (
                    live is not None
                    and live.is_connected()
                    and live.channel is not None
                    and live.channel.id == state.channel_id
                ):
                    # Late event from a connection we already replaced
                    self.logger.debug(
                        "Ignoring stale disconnect; still in %s", state.channel_id,
                        extra=get_guild_extra(guild.id, state.channel_id),
                    )
                    return
                await self.lifecycle.recover(guild)
                return
            if after_channel.id != state.channel_id:
                # Someone dragged the bot; track where it actually is
                self.reconciler.store.set(guild.id, ConnectionState.connected(after_channel.id))
                moved_externally = True

        if moved_externally:
            await self.evaluate_guild_safely(guild)

    async def handle_guild_unavailable(self, guild: discord.Guild) -> None:
        async with self.reconciler.store.lock_for(guild.id):
            await self.lifecycle.force_destroy(guild)

    async def handle_guild_remove(self, guild: discord.Guild) -> None:
        await self.handle_guild_unavailable(guild)
        self.reconciler.store.forget(guild.id)

    async def rescan_all(self, *, fetch_members: bool = False) -> dict[int, Action | None]:
        """Evaluate every guild. Used for the startup scan and the periodic rescan."""
        guilds = list(self.bot.guilds)
        results = await asyncio.gather(
            *(self.evaluate_guild_safely(g, refresh_members=fetch_members) for g in guilds)
        )
        return {guild.id: result for guild, result in zip(guilds, results)}

    # ------------------------------------------------------------------
    # Administrative mutations
    # ------------------------------------------------------------------

    async def set_watchers(
        self, first: WatchCandidate | None, second: WatchCandidate | None
    ) -> WatchSet:
        """
        Replace the watched pair and re-evaluate every guild.

        Raises:
            ValidationError: Propagated from the registry; nothing changes.
        """
        watch_set = self.registry.set(first, second)
        await asyncio.gather(*(self.evaluate_guild_safely(g) for g in self.bot.guilds))
        return watch_set

    async def clear_watchers(self) -> WatchSet:
        """
        Clear the watched pair and force a re-evaluation of every guild the
        bot is connected in. Returns once each leave has been initiated.
        """
        previous = self.registry.clear()
        pending = []
        for guild_id in self.reconciler.store.connected_guild_ids():
            guild = self.bot.get_guild(guild_id)
            if guild is None:
                self.reconciler.store.set(guild_id, ConnectionState.disconnected())
                continue
            pending.append(self.evaluate_guild_safely(guild))
        await asyncio.gather(*pending)
        return previous

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    def guild_status(self, guild_id: int) -> dict[str, Any]:
        cooldown = self.reconciler.cooldown
        return {
            "state": self.reconciler.state(guild_id).describe(),
            "cooldown_remaining_ms": int(cooldown.remaining(guild_id) * 1000),
            "suppressed_joins": self.reconciler.store.suppressed_count(guild_id),
        }

    def status_details(self) -> dict[str, Any]:
        return {
            "predicate": self.predicate.value,
            "evaluations": self.evaluations,
            "failures": self.failures,
            "guilds": {
                str(gid): state.describe()
                for gid, state in self.reconciler.store.snapshot().items()
            },
        }

    @staticmethod
    def _describe_channel(channel: discord.abc.GuildChannel | None) -> str:
        if channel is None:
            return "none"
        return f"{channel.name} ({channel.id})"

    @staticmethod
    def _channel_name(guild: discord.Guild, channel_id: int | None) -> str:
        if channel_id is None:
            return "unknown"
        channel = guild.get_channel(channel_id)
        return channel.name if channel is not None else str(channel_id)
