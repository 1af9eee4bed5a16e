"""
Custom exception classes for the presence watch bot.

These provide a hierarchy of typed exceptions so callers can decide which
failures are fatal (configuration) and which only cost one evaluation pass.
"""


class BotError(Exception):
    """Base exception for bot-related errors."""

    pass


class ConfigurationError(BotError):
    """Required configuration is missing or malformed. Fatal at startup."""

    pass


class ValidationError(BotError):
    """An administrative command was given invalid watcher arguments."""

    pass


class TransientFetchError(BotError):
    """A member or channel lookup failed; the guild state is unknown this pass."""

    pass


class ConnectionTimeoutError(BotError):
    """A voice connection did not reach the ready state in time."""

    def __init__(self, guild_id: int, channel_id: int, timeout: float) -> None:
        super().__init__(
            f"Voice connection to channel {channel_id} in guild {guild_id} "
            f"not ready after {timeout:.1f}s"
        )
        self.guild_id = guild_id
        self.channel_id = channel_id
        self.timeout = timeout


class ConnectPermissionError(BotError):
    """The bot lacks the connect permission on the target channel."""

    def __init__(self, guild_id: int, channel_id: int) -> None:
        super().__init__(
            f"Missing connect permission for channel {channel_id} in guild {guild_id}"
        )
        self.guild_id = guild_id
        self.channel_id = channel_id


class PlaybackError(BotError):
    """The greeting sound could not be played. Never fatal."""

    pass
