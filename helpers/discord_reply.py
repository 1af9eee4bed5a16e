"""
Reply helpers for slash commands.

Every administrative reply is ephemeral. The helpers pick ``response`` or
``followup`` depending on whether the interaction was already answered or
deferred, and never raise: a reply that cannot be delivered is logged.
"""

from __future__ import annotations

import discord

from utils.logging import get_logger

logger = get_logger(__name__)

GENERIC_ERROR = "Error handling command."


async def reply(
    interaction: discord.Interaction, text: str, *, ephemeral: bool = True
) -> bool:
    """
    Send ``text`` to the invoker. Returns True when the message was delivered.

    Example:
        await reply(interaction, "Watching <@1> & <@2>.")
    """
    try:
        if interaction.response.is_done():
            await interaction.followup.send(text, ephemeral=ephemeral)
        else:
            await interaction.response.send_message(text, ephemeral=ephemeral)
        return True
    except discord.NotFound:
        logger.warning("Interaction expired before response could be sent")
    except discord.HTTPException as e:
        logger.exception(f"Failed to send response: {e}")
    return False


async def reply_error(
    interaction: discord.Interaction, text: str = GENERIC_ERROR
) -> bool:
    """Send an error notice to the invoker, prefixed with a cross mark."""
    if not text.startswith("❌"):
        text = f"❌ {text}"
    return await reply(interaction, text)


async def send_to_channel(channel: discord.abc.Messageable, text: str) -> bool:
    """Post ``text`` to a channel, used for bot-initiated relay messages."""
    try:
        await channel.send(text, allowed_mentions=discord.AllowedMentions.none())
        return True
    except discord.Forbidden:
        logger.warning("Missing permission to post in channel %s", getattr(channel, "id", channel))
    except discord.HTTPException as e:
        logger.warning("Failed to post in channel %s: %s", getattr(channel, "id", channel), e)
    return False


__all__ = ["GENERIC_ERROR", "reply", "reply_error", "send_to_channel"]
