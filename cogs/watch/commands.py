"""
Watch Commands Cog

Administrative slash commands for the watched pair: /pc_set, /pc_status and
/pc_clear. Replies are always ephemeral.
"""

from typing import TYPE_CHECKING

import discord
from discord import app_commands
from discord.ext import commands

from helpers.discord_reply import reply, reply_error
from services.presence_rules import describe_verdict
from utils.errors import ValidationError
from utils.log_context import get_context_extra
from utils.logging import get_logger

if TYPE_CHECKING:
    from services.presence_service import PresenceWatchService

logger = get_logger(__name__)


def format_watchers(ids: tuple[int, ...]) -> str:
    return " & ".join(f"<@{user_id}>" for user_id in ids)


class WatchCommands(commands.Cog):
    """Set, show and clear the two watched users."""

    def __init__(self, bot: commands.Bot) -> None:
        self.bot = bot

    @property
    def presence(self) -> "PresenceWatchService":
        if not hasattr(self.bot, "services") or self.bot.services is None:
            raise RuntimeError("Bot services not initialized")
        return self.bot.services.presence

    @app_commands.command(name="pc_set", description="Set the two watched users")
    @app_commands.describe(user1="First user", user2="Second user")
    @app_commands.guild_only()
    @app_commands.default_permissions(manage_guild=True)
    async def pc_set(
        self,
        interaction: discord.Interaction,
        user1: discord.User,
        user2: discord.User,
    ) -> None:
        logger.info(
            "pc_set command triggered",
            extra=get_context_extra(interaction, target_ids=[str(user1.id), str(user2.id)]),
        )
        # Re-evaluation may include a voice connect; answer within the 3s window.
        await interaction.response.defer(ephemeral=True, thinking=True)

        try:
            watch_set = await self.presence.set_watchers(user1, user2)
        except ValidationError as e:
            await reply_error(interaction, str(e))
            return

        await reply(interaction, f"Watching {format_watchers(watch_set.ids)}.")

    @app_commands.command(name="pc_status", description="Show current watched users")
    @app_commands.guild_only()
    async def pc_status(self, interaction: discord.Interaction) -> None:
        presence = self.presence
        watch_set = presence.registry.status()

        if watch_set.is_complete:
            lines = [f"Currently watching: {format_watchers(watch_set.ids)}"]
        else:
            lines = ["No watchers set. Use `/pc_set user1:@A user2:@B`."]

        lines.append(
            f"Rule: `{presence.predicate.value}` (join when {describe_verdict(presence.predicate)})"
        )
        if interaction.guild is not None:
            status = presence.guild_status(interaction.guild.id)
            lines.append(f"Voice: `{status['state']}`")
            if status["cooldown_remaining_ms"]:
                lines.append(f"Cooldown: {status['cooldown_remaining_ms']}ms remaining")

        await reply(interaction, "\n".join(lines))

    @app_commands.command(name="pc_clear", description="Clear watched users")
    @app_commands.guild_only()
    @app_commands.default_permissions(manage_guild=True)
    async def pc_clear(self, interaction: discord.Interaction) -> None:
        logger.info("pc_clear command triggered", extra=get_context_extra(interaction))
        await interaction.response.defer(ephemeral=True, thinking=True)

        await self.presence.clear_watchers()
        await reply(interaction, "Cleared watchers. Use `/pc_set` to configure.")

    async def cog_app_command_error(
        self,
        interaction: discord.Interaction,
        error: app_commands.AppCommandError,
    ) -> None:
        original = getattr(error, "original", error)
        logger.exception(
            "interaction error: %s", original, exc_info=original, extra=get_context_extra(interaction)
        )
        await reply_error(interaction)


async def setup(bot: commands.Bot) -> None:
    """Set up the Watch Commands cog."""
    await bot.add_cog(WatchCommands(bot))
