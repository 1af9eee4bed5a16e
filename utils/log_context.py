"""
Build the ``extra=`` dict for structured log lines.

The JSON formatter in ``utils.logging`` lifts guild_id, user_id, channel_id
and command_name out of the record; ids are stringified so snowflakes
survive JSON consumers that use doubles.
"""

from typing import Any

import discord


def get_context_extra(
    interaction: discord.Interaction | None = None,
    guild: discord.Guild | None = None,
    user: discord.abc.User | None = None,
    channel: discord.abc.Snowflake | None = None,
    **additional: Any,
) -> dict[str, Any]:
    """
    Context for a slash command or an event handler. Explicit arguments win
    over what the interaction carries.

    Example:
        logger.info("pc_set command triggered", extra=get_context_extra(interaction))
    """
    if interaction is not None:
        guild = guild or interaction.guild
        user = user or interaction.user
        channel = channel or interaction.channel

    extra: dict[str, Any] = {}
    command = getattr(interaction, "command", None)
    if command is not None:
        extra["command_name"] = command.qualified_name
    for key, source in (("guild_id", guild), ("user_id", user), ("channel_id", channel)):
        if source is not None:
            extra[key] = str(source.id)
    extra.update(additional)
    return extra


def get_guild_extra(
    guild_id: int, channel_id: int | None = None, **additional: Any
) -> dict[str, Any]:
    """Context for code paths that only hold raw ids."""
    extra: dict[str, Any] = {"guild_id": str(guild_id)}
    if channel_id is not None:
        extra["channel_id"] = str(channel_id)
    extra.update(additional)
    return extra
