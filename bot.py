import asyncio
import sys

import discord
from discord.ext import commands
from dotenv import load_dotenv

from config.config_loader import ConfigLoader
from config.settings import BotSettings, load_settings
from services.service_container import ServiceContainer
from utils.errors import ConfigurationError
from utils.logging import get_logger, setup_logging

logger = get_logger(__name__)

# Configure intents - start from none and enable only what's required
intents = discord.Intents.none()
intents.guilds = True  # Required: guild availability, channel cache
intents.members = True  # Required: complete member cache for occupancy counts
intents.voice_states = True  # Required: voice join/leave/move events
intents.dm_messages = True  # Required: DM relay

initial_extensions = [
    "cogs.watch.events",
    "cogs.watch.commands",
    "cogs.relay.commands",
]


class WatchBot(commands.Bot):
    """Bot carrying settings and the service container."""

    def __init__(self, settings: BotSettings, *args, **kwargs) -> None:
        kwargs.setdefault("command_prefix", commands.when_mentioned)
        kwargs.setdefault("intents", intents)
        if settings.application_id is not None:
            kwargs.setdefault("application_id", settings.application_id)
        super().__init__(*args, **kwargs)

        self.settings = settings
        self.services = ServiceContainer(settings, self)

    async def setup_hook(self) -> None:
        """Initialize services, load cogs, and sync commands."""
        await self.services.initialize()
        for report in await self.services.health_report():
            logger.info("Service status: %s", report)

        for ext in initial_extensions:
            await self.load_extension(ext)
            logger.info(f"Loaded extension: {ext}")

        await self._sync_commands()

        logger.info("Registered commands: ")
        for command in self.tree.walk_commands():
            logger.info(
                f"- Command: {command.name}, Description: {command.description}"
            )

    async def _sync_commands(self) -> None:
        """Sync to the admin guild for instant availability, otherwise globally."""
        try:
            if self.settings.admin_guild_id is not None:
                guild = discord.Object(id=self.settings.admin_guild_id)
                self.tree.copy_global_to(guild=guild)
                await self.tree.sync(guild=guild)
                logger.info(
                    "Slash commands registered in guild: %s", self.settings.admin_guild_id
                )
            else:
                await self.tree.sync()
                logger.info("All commands synced globally.")
        except discord.HTTPException as e:
            logger.exception("Failed to register commands", exc_info=e)

    async def on_error(self, event_method: str, *args, **kwargs) -> None:
        # Events are independent; log and keep running.
        logger.exception("Unhandled error in %s", event_method)

    async def close(self) -> None:
        await self.services.shutdown()
        await super().close()


async def run(settings: BotSettings) -> None:
    bot = WatchBot(settings)
    async with bot:
        await bot.start(settings.token)


def main() -> int:
    load_dotenv()
    ConfigLoader.load_config()

    try:
        settings = load_settings()
    except ConfigurationError as e:
        setup_logging()
        logger.critical("Configuration error: %s", e)
        return 1

    setup_logging(settings.log_file, level_name=settings.log_level, verbose=settings.verbose)
    logger.info(
        "Starting presence watch bot (rule=%s, cooldown=%dms)",
        settings.watch_mode.value,
        settings.cooldown_ms,
    )

    try:
        asyncio.run(run(settings))
    except KeyboardInterrupt:
        logger.info("Shutting down")
    return 0


if __name__ == "__main__":
    sys.exit(main())
