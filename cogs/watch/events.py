"""
Watch Events Cog

Translates gateway events into calls on the PresenceWatchService and runs the
periodic full rescan.
"""

from typing import TYPE_CHECKING

import discord
from discord.ext import commands, tasks

from utils.logging import get_logger
from utils.tasks import spawn

if TYPE_CHECKING:
    from services.presence_service import PresenceWatchService

logger = get_logger(__name__)


class WatchEvents(commands.Cog):
    """Handles voice state, guild availability and ready events."""

    def __init__(self, bot: commands.Bot) -> None:
        self.bot = bot
        self._booted = False

    @property
    def presence(self) -> "PresenceWatchService":
        if not hasattr(self.bot, "services") or self.bot.services is None:
            raise RuntimeError("Bot services not initialized")
        return self.bot.services.presence

    async def cog_load(self) -> None:
        settings = getattr(self.bot, "settings", None)
        if settings is not None and settings.rescan_interval > 0:
            self.rescan.change_interval(seconds=settings.rescan_interval)
            self.rescan.start()

    async def cog_unload(self) -> None:
        self.rescan.cancel()

    @commands.Cog.listener()
    async def on_ready(self) -> None:
        """Set presence and run the initial scan once per process."""
        if self._booted:
            return
        self._booted = True

        logger.info(f"Logged in as {self.bot.user}.")
        settings = getattr(self.bot, "settings", None)
        if settings is not None:
            try:
                await self.bot.change_presence(
                    activity=discord.Activity(
                        type=discord.ActivityType.watching, name=settings.presence_text
                    ),
                    status=discord.Status.online,
                )
            except Exception as e:
                logger.exception("Failed to set presence", exc_info=e)

        # Member chunking can take a while on large guilds; do not hold up on_ready.
        spawn(self.presence.rescan_all(fetch_members=True), name="watch.initial_scan")

    @commands.Cog.listener()
    async def on_voice_state_update(
        self,
        member: discord.Member,
        before: discord.VoiceState,
        after: discord.VoiceState,
    ) -> None:
        try:
            await self.presence.handle_voice_state_change(
                member=member,
                before_channel=before.channel,
                after_channel=after.channel,
            )
        except Exception as e:
            logger.exception(
                f"Error handling voice state update for {member} "
                f"(before: {before.channel}, after: {after.channel}): {e}"
            )

    @commands.Cog.listener()
    async def on_guild_unavailable(self, guild: discord.Guild) -> None:
        try:
            await self.presence.handle_guild_unavailable(guild)
        except Exception as e:
            logger.exception("Error tearing down voice for unavailable guild %s", guild.id, exc_info=e)

    @commands.Cog.listener()
    async def on_guild_remove(self, guild: discord.Guild) -> None:
        try:
            await self.presence.handle_guild_remove(guild)
        except Exception as e:
            logger.exception("Error cleaning up removed guild %s", guild.id, exc_info=e)

    @tasks.loop(seconds=300)
    async def rescan(self) -> None:
        await self.presence.rescan_all()

    @rescan.before_loop
    async def before_rescan(self) -> None:
        await self.bot.wait_until_ready()

    @rescan.error
    async def rescan_error(self, error: BaseException) -> None:
        logger.exception("Periodic rescan failed", exc_info=error)


async def setup(bot: commands.Bot) -> None:
    """Set up the Watch Events cog."""
    await bot.add_cog(WatchEvents(bot))
