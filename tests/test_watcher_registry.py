"""Tests for the watcher registry: validation, persistence and startup sources."""

import json

import pytest

from services.watcher_registry import WatcherRegistry, load_watchers_file
from tests.conftest import OUTSIDER, WATCHER_A, WATCHER_B
from tests.factories import FakeUser
from utils.errors import ValidationError
from utils.types import WatchSet


class TestValidation:
    @pytest.mark.asyncio
    async def test_same_user_twice_is_rejected(self, registry):
        user = FakeUser(OUTSIDER)

        with pytest.raises(ValidationError):
            registry.set(user, user)

        assert registry.status() == WatchSet((WATCHER_A, WATCHER_B))

    @pytest.mark.asyncio
    async def test_bot_account_is_rejected(self, registry):
        with pytest.raises(ValidationError):
            registry.set(FakeUser(OUTSIDER), FakeUser(7, bot=True))

        assert registry.status() == WatchSet((WATCHER_A, WATCHER_B))

    @pytest.mark.asyncio
    async def test_missing_user_is_rejected(self, registry):
        with pytest.raises(ValidationError):
            registry.set(FakeUser(OUTSIDER), None)

    @pytest.mark.asyncio
    async def test_failed_set_does_not_touch_file(self, registry, watchers_file):
        with pytest.raises(ValidationError):
            registry.set(FakeUser(OUTSIDER), FakeUser(OUTSIDER))

        assert not watchers_file.exists()


class TestMutation:
    @pytest.mark.asyncio
    async def test_set_replaces_and_persists(self, registry, watchers_file):
        result = registry.set(FakeUser(OUTSIDER), FakeUser(WATCHER_A))

        assert result == WatchSet((OUTSIDER, WATCHER_A))
        assert registry.status() == result
        assert json.loads(watchers_file.read_text()) == {
            "watchers": [str(OUTSIDER), str(WATCHER_A)]
        }

    @pytest.mark.asyncio
    async def test_clear_empties_and_persists(self, registry, watchers_file):
        previous = registry.clear()

        assert previous == WatchSet((WATCHER_A, WATCHER_B))
        assert registry.status() == WatchSet()
        assert json.loads(watchers_file.read_text()) == {"watchers": []}

    @pytest.mark.asyncio
    async def test_health_check_reports_watchers(self, registry):
        health = await registry.health_check()

        assert health["watchers"] == [str(WATCHER_A), str(WATCHER_B)]
        assert health["source"] == "environment"


class TestStartup:
    @pytest.mark.asyncio
    async def test_environment_wins_over_file(self, watchers_file):
        watchers_file.write_text(json.dumps({"watchers": ["1", "2"]}))
        registry = WatcherRegistry(watchers_file, (WATCHER_A, WATCHER_B))

        await registry.initialize()

        assert registry.status().ids == (WATCHER_A, WATCHER_B)

    @pytest.mark.asyncio
    async def test_falls_back_to_file(self, watchers_file):
        watchers_file.write_text(json.dumps({"watchers": ["11", "22"]}))
        registry = WatcherRegistry(watchers_file)

        await registry.initialize()

        assert registry.status().ids == (11, 22)
        assert registry.source == "file"

    @pytest.mark.asyncio
    async def test_missing_file_means_no_watchers(self, watchers_file):
        registry = WatcherRegistry(watchers_file)

        await registry.initialize()

        assert not registry.status().is_complete


@pytest.mark.parametrize(
    "content",
    [
        "not json",
        json.dumps(["1", "2"]),
        json.dumps({"watchers": ["1"]}),
        json.dumps({"watchers": ["1", "1"]}),
        json.dumps({"watchers": ["a", "b"]}),
    ],
)
def test_malformed_watcher_file_is_ignored(tmp_path, content):
    path = tmp_path / "watchers.json"
    path.write_text(content)

    assert load_watchers_file(path) == WatchSet()
