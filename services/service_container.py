"""
Service Container

Builds the bot's services from ``BotSettings`` and manages their lifecycle
in dependency order.
"""

from typing import TYPE_CHECKING, Any, Optional

from config.config_loader import ConfigLoader
from helpers.audio import GreetingPlayer
from utils.logging import get_logger

from .base import BaseService
from .presence_service import PresenceWatchService
from .reconciler import ConnectionReconciler, CooldownGuard
from .relay_service import RelayService
from .voice_lifecycle import VoiceLifecycleManager
from .watcher_registry import WatcherRegistry

if TYPE_CHECKING:
    from discord.ext.commands import Bot

    from config.settings import BotSettings


class ServiceContainer:
    """Central access point for the bot's services."""

    def __init__(self, settings: "BotSettings", bot: Optional["Bot"] = None) -> None:
        self.logger = get_logger("services.container")
        self.settings = settings
        self.bot = bot

        self.watchers = WatcherRegistry(settings.watchers_file, settings.watch_ids)
        self.reconciler = ConnectionReconciler(CooldownGuard(settings.cooldown_seconds))
        self.voice = VoiceLifecycleManager(
            self.reconciler.store,
            connect_timeout=settings.connect_timeout,
            recovery_timeout=settings.recovery_timeout,
            greeting=GreetingPlayer(settings.sound_file, settings.sound_volume),
        )
        self.presence = PresenceWatchService(
            bot,
            self.watchers,
            self.reconciler,
            self.voice,
            settings.watch_mode,
        )
        self.relay = RelayService(
            default_minutes=settings.relay_default_minutes,
            max_minutes=settings.relay_max_minutes,
        )
        self._initialized = False

    def get_all_services(self) -> list[BaseService]:
        """Services in initialization order."""
        return [self.watchers, self.voice, self.presence, self.relay]

    async def initialize(self) -> None:
        """Initialize all services in dependency order."""
        if self._initialized:
            self.logger.warning("ServiceContainer already initialized")
            return

        self.logger.info("Initializing services")
        for service in self.get_all_services():
            await service.initialize()
        self._initialized = True
        self.logger.info("All services initialized")

    async def shutdown(self) -> None:
        """Shut services down in reverse order; errors are logged per service."""
        for service in reversed(self.get_all_services()):
            await service.shutdown()
        self._initialized = False

    async def health_report(self) -> list[dict[str, Any]]:
        """Config file status followed by one entry per service."""
        report: list[dict[str, Any]] = [{"service": "config", **ConfigLoader.get_config_status()}]
        for service in self.get_all_services():
            report.append(await service.health_check())
        return report
