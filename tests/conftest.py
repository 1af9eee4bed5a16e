import sys
from pathlib import Path
from unittest.mock import MagicMock

import pytest
import pytest_asyncio

# Ensure project root is on sys.path when pytest is invoked from elsewhere.
PROJECT_ROOT = Path(__file__).parent.parent.resolve()
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from helpers.audio import GreetingPlayer
from services.presence_service import PresenceWatchService
from services.reconciler import ConnectionReconciler, CooldownGuard
from services.voice_lifecycle import VoiceLifecycleManager
from services.watcher_registry import WatcherRegistry
from tests.factories import FakeBot, FakeClock, FakeGuild
from utils.types import WatchPredicate

WATCHER_A = 1001
WATCHER_B = 1002
OUTSIDER = 1003

COOLDOWN_SECONDS = 8.0


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def guild() -> FakeGuild:
    return FakeGuild(guild_id=555)


@pytest.fixture
def bot(guild) -> FakeBot:
    return FakeBot([guild])


@pytest.fixture
def watchers_file(tmp_path) -> Path:
    return tmp_path / "watchers.json"


@pytest_asyncio.fixture
async def registry(watchers_file) -> WatcherRegistry:
    service = WatcherRegistry(watchers_file, (WATCHER_A, WATCHER_B))
    await service.initialize()
    return service


@pytest.fixture
def reconciler(clock) -> ConnectionReconciler:
    return ConnectionReconciler(CooldownGuard(COOLDOWN_SECONDS, clock=clock))


@pytest.fixture
def greeting() -> MagicMock:
    player = MagicMock(spec=GreetingPlayer)
    player.play.return_value = True
    return player


@pytest.fixture
def lifecycle(reconciler, greeting) -> VoiceLifecycleManager:
    return VoiceLifecycleManager(
        reconciler.store,
        connect_timeout=1.0,
        recovery_timeout=0.05,
        greeting=greeting,
    )


@pytest.fixture
def predicate() -> WatchPredicate:
    return WatchPredicate.ALONE_TOGETHER


@pytest_asyncio.fixture
async def presence(bot, registry, reconciler, lifecycle, predicate) -> PresenceWatchService:
    service = PresenceWatchService(bot, registry, reconciler, lifecycle, predicate)
    await service.initialize()
    return service
