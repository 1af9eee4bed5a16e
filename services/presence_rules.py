"""
Membership snapshots and the watch predicates evaluated against them.

Everything in here except ``fetch_guild_members`` is synchronous and reads
only the gateway cache, so it is safe to call as often as events arrive.
"""

from collections.abc import Iterable

import discord

from utils.errors import TransientFetchError
from utils.logging import get_logger
from utils.types import GuildSnapshot, WatchPredicate, WatchSet

logger = get_logger(__name__)

# Exactly this many humans may share the channel under ALONE_TOGETHER.
ALONE_OCCUPANCY = 2


def voice_channels(guild: discord.Guild) -> list[discord.VoiceChannel | discord.StageChannel]:
    """Voice and stage channels in the guild's listing order."""
    return [
        channel
        for channel in guild.channels
        if isinstance(channel, (discord.VoiceChannel, discord.StageChannel))
    ]


def human_ids(members: Iterable[discord.Member]) -> frozenset[int]:
    return frozenset(m.id for m in members if not m.bot)


def read_snapshot(guild: discord.Guild) -> GuildSnapshot:
    """Build a fresh ``channel_id -> human ids`` view of the guild's voice channels."""
    return {channel.id: human_ids(channel.members) for channel in voice_channels(guild)}


async def fetch_guild_members(guild: discord.Guild) -> None:
    """
    Warm the member cache for ``guild`` so voice occupancy is complete.

    Raises:
        TransientFetchError: The member list could not be fetched.
    """
    if guild.chunked:
        return
    try:
        await guild.chunk(cache=True)
    except (discord.HTTPException, discord.ClientException) as e:
        raise TransientFetchError(f"Could not fetch members for guild {guild.id}: {e}") from e


def evaluate(
    snapshot: GuildSnapshot,
    watch_set: WatchSet,
    predicate: WatchPredicate = WatchPredicate.ALONE_TOGETHER,
) -> int | None:
    """
    Return the channel the bot should be in, or None.

    ALONE_TOGETHER picks the first channel holding both watched users and
    exactly two humans. TOGETHER picks the channel holding both watched
    users regardless of who else is there. An incomplete watch set never
    matches.
    """
    if not watch_set.is_complete:
        return None

    watched = watch_set.as_set()
    for channel_id, members in snapshot.items():
        if not watched <= members:
            continue
        if predicate is WatchPredicate.TOGETHER:
            return channel_id
        if len(members) == ALONE_OCCUPANCY:
            return channel_id
    return None


def describe_verdict(predicate: WatchPredicate) -> str:
    if predicate is WatchPredicate.TOGETHER:
        return "together"
    return "alone together"
