"""
Relay Commands Cog

/pc_relay_start opens a session that forwards the target's DMs to the bot
into the channel the command was used in. /pc_relay_stop ends it early;
otherwise it expires on its own.
"""

from typing import TYPE_CHECKING

import discord
from discord import app_commands
from discord.ext import commands, tasks

from helpers.discord_reply import reply, reply_error, send_to_channel
from utils.log_context import get_context_extra
from utils.logging import get_logger

if TYPE_CHECKING:
    from services.relay_service import RelayService
    from utils.types import RelaySession

logger = get_logger(__name__)

MAX_RELAY_LENGTH = 1800


class RelayCommands(commands.Cog):
    def __init__(self, bot: commands.Bot) -> None:
        self.bot = bot

    @property
    def relay(self) -> "RelayService":
        if not hasattr(self.bot, "services") or self.bot.services is None:
            raise RuntimeError("Bot services not initialized")
        return self.bot.services.relay

    async def cog_load(self) -> None:
        settings = getattr(self.bot, "settings", None)
        if settings is not None:
            self.sweep.change_interval(seconds=settings.relay_sweep_interval)
        self.sweep.start()

    async def cog_unload(self) -> None:
        self.sweep.cancel()

    @app_commands.command(name="pc_relay_start", description="Relay a user's DMs to the bot into this channel")
    @app_commands.describe(user="User whose DMs are relayed", minutes="How long the relay stays open")
    @app_commands.guild_only()
    @app_commands.default_permissions(manage_guild=True)
    async def pc_relay_start(
        self,
        interaction: discord.Interaction,
        user: discord.User,
        minutes: app_commands.Range[int, 1, 1440] | None = None,
    ) -> None:
        if user.bot:
            await reply_error(interaction, "Pick a human user.")
            return
        if interaction.channel is None:
            await reply_error(interaction, "Use this command in a server channel.")
            return

        await interaction.response.defer(ephemeral=True, thinking=True)
        try:
            dm_channel = user.dm_channel or await user.create_dm()
        except discord.HTTPException as e:
            logger.warning("Could not open DM with %s: %s", user.id, e, extra=get_context_extra(interaction))
            await reply_error(interaction, "Could not open a DM with that user.")
            return

        session = self.relay.start(
            dm_channel_id=dm_channel.id,
            origin_channel_id=interaction.channel.id,
            target_user_id=user.id,
            invoker_id=interaction.user.id,
            minutes=minutes,
        )
        duration = self.relay.clamp_minutes(minutes)
        await send_to_channel(
            dm_channel,
            f"Messages you send here for the next {duration} minute(s) will be shared "
            f"in a server channel.",
        )
        logger.info("Relay started", extra=get_context_extra(interaction, target_id=str(session.target_user_id)))
        await reply(interaction, f"Relaying DMs from {user.mention} here for {duration} minute(s).")

    @app_commands.command(name="pc_relay_stop", description="Stop relaying a user's DMs")
    @app_commands.describe(user="User whose relay should end")
    @app_commands.guild_only()
    @app_commands.default_permissions(manage_guild=True)
    async def pc_relay_stop(self, interaction: discord.Interaction, user: discord.User) -> None:
        session = self.relay.stop_for_target(user.id)
        if session is None:
            await reply_error(interaction, f"No relay is open for {user.mention}.")
            return
        await reply(interaction, f"Stopped relaying DMs from {user.mention}.")

    @commands.Cog.listener()
    async def on_message(self, message: discord.Message) -> None:
        if message.guild is not None or message.author.bot:
            return

        session = self.relay.get(message.channel.id)
        if session is None or message.author.id != session.target_user_id:
            return

        origin = self.bot.get_channel(session.origin_channel_id)
        if origin is None or not isinstance(origin, discord.abc.Messageable):
            logger.warning("Relay origin channel %s is gone; stopping", session.origin_channel_id)
            self.relay.stop_for_target(session.target_user_id)
            return

        content = message.content or ""
        if message.attachments:
            content = "\n".join([content, *(a.url for a in message.attachments)]).strip()
        if not content:
            return
        if len(content) > MAX_RELAY_LENGTH:
            content = content[:MAX_RELAY_LENGTH] + "…"

        if await send_to_channel(origin, f"**{message.author}** (DM): {content}"):
            session.relayed += 1

    @tasks.loop(seconds=60)
    async def sweep(self) -> None:
        for session in self.relay.sweep():
            await self._announce_expiry(session)

    @sweep.before_loop
    async def before_sweep(self) -> None:
        await self.bot.wait_until_ready()

    async def _announce_expiry(self, session: "RelaySession") -> None:
        origin = self.bot.get_channel(session.origin_channel_id)
        if origin is not None and isinstance(origin, discord.abc.Messageable):
            await send_to_channel(
                origin,
                f"Relay for <@{session.target_user_id}> expired after {session.relayed} message(s).",
            )

    async def cog_app_command_error(
        self,
        interaction: discord.Interaction,
        error: app_commands.AppCommandError,
    ) -> None:
        original = getattr(error, "original", error)
        logger.exception("interaction error: %s", original, exc_info=original)
        await reply_error(interaction)


async def setup(bot: commands.Bot) -> None:
    await bot.add_cog(RelayCommands(bot))
