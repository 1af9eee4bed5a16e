"""
Services package for the presence watch bot.

Each service owns one concern of the watch pipeline: the watched pair, the
reconciliation state, the voice lifecycle, the dispatch entry points and the
DM relay.
"""

from .base import BaseService
from .presence_service import PresenceWatchService
from .reconciler import ConnectionReconciler, CooldownGuard, GuildStateStore
from .relay_service import RelayService
from .service_container import ServiceContainer
from .voice_lifecycle import VoiceLifecycleManager
from .watcher_registry import WatcherRegistry

__all__ = [
    "BaseService",
    "ConnectionReconciler",
    "CooldownGuard",
    "GuildStateStore",
    "PresenceWatchService",
    "RelayService",
    "ServiceContainer",
    "VoiceLifecycleManager",
    "WatcherRegistry",
]
