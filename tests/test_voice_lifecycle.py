"""Tests for the voice connection lifecycle manager."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from tests.factories import make_voice_client
from utils.errors import ConnectionTimeoutError, ConnectPermissionError
from utils.types import ConnectionState, ConnectionStatus

GUILD_ID = 555


@pytest.fixture
def channel(guild):
    return guild.add_voice_channel(10, [], name="hangout")


@pytest.fixture
def other_channel(guild):
    return guild.add_voice_channel(20, [], name="lounge")


class TestJoin:
    @pytest.mark.asyncio
    async def test_join_connects_and_greets(self, lifecycle, guild, channel, greeting):
        voice_client = await lifecycle.join(guild, channel)

        channel.connect.assert_awaited_once()
        assert guild.voice_client is voice_client
        assert lifecycle.store.get(guild.id) == ConnectionState.connected(10)
        greeting.play.assert_called_once_with(voice_client)
        assert lifecycle.greetings_played == 1

    @pytest.mark.asyncio
    async def test_join_without_greeting(self, lifecycle, guild, channel, greeting):
        await lifecycle.join(guild, channel, greet=False)

        greeting.play.assert_not_called()

    @pytest.mark.asyncio
    async def test_join_destroys_previous_client_first(self, lifecycle, guild, channel, other_channel):
        stale = make_voice_client(guild, other_channel)
        guild.voice_client = stale

        await lifecycle.join(guild, channel)

        stale.disconnect.assert_awaited_once_with(force=True)
        assert guild.voice_client is not stale

    @pytest.mark.asyncio
    async def test_timeout_destroys_and_reports(self, lifecycle, guild, channel):
        channel.connect.side_effect = asyncio.TimeoutError()

        with pytest.raises(ConnectionTimeoutError) as excinfo:
            await lifecycle.join(guild, channel)

        assert excinfo.value.channel_id == 10
        assert lifecycle.store.get(guild.id) == ConnectionState.disconnected()

    @pytest.mark.asyncio
    async def test_unexpected_connect_error_reverts_state(self, lifecycle, guild, channel):
        channel.connect.side_effect = RuntimeError("boom")

        with pytest.raises(RuntimeError):
            await lifecycle.join(guild, channel)

        assert lifecycle.store.get(guild.id).status is ConnectionStatus.DISCONNECTED


class TestMove:
    @pytest.mark.asyncio
    async def test_move_reuses_client_without_greeting(
        self, lifecycle, guild, channel, other_channel, greeting
    ):
        voice_client = await lifecycle.join(guild, channel)
        greeting.play.reset_mock()

        moved = await lifecycle.move(guild, other_channel)

        assert moved is voice_client
        voice_client.move_to.assert_awaited_once_with(other_channel)
        greeting.play.assert_not_called()
        assert lifecycle.store.get(guild.id) == ConnectionState.connected(20)

    @pytest.mark.asyncio
    async def test_move_without_live_client_joins_silently(
        self, lifecycle, guild, other_channel, greeting
    ):
        await lifecycle.move(guild, other_channel)

        other_channel.connect.assert_awaited_once()
        greeting.play.assert_not_called()

    @pytest.mark.asyncio
    async def test_move_timeout_tears_down(self, lifecycle, guild, channel, other_channel):
        voice_client = await lifecycle.join(guild, channel)
        voice_client.move_to = AsyncMock(side_effect=asyncio.TimeoutError())

        with pytest.raises(ConnectionTimeoutError):
            await lifecycle.move(guild, other_channel)

        voice_client.disconnect.assert_awaited_once_with(force=True)
        assert lifecycle.store.get(guild.id) == ConnectionState.disconnected()


class TestLeave:
    @pytest.mark.asyncio
    async def test_leave_disconnects(self, lifecycle, guild, channel):
        voice_client = await lifecycle.join(guild, channel)

        await lifecycle.leave(guild)

        voice_client.disconnect.assert_awaited_once_with(force=True)
        assert guild.voice_client is None
        assert lifecycle.store.get(guild.id) == ConnectionState.disconnected()

    @pytest.mark.asyncio
    async def test_leave_stops_greeting_in_progress(self, lifecycle, guild, channel):
        voice_client = await lifecycle.join(guild, channel)
        voice_client.is_playing.return_value = True

        await lifecycle.leave(guild)

        voice_client.stop.assert_called_once()

    @pytest.mark.asyncio
    async def test_disconnect_error_is_logged_not_raised(self, lifecycle, guild, channel):
        voice_client = await lifecycle.join(guild, channel)
        voice_client.disconnect.side_effect = RuntimeError("socket gone")

        await lifecycle.leave(guild)

        assert lifecycle.store.get(guild.id) == ConnectionState.disconnected()

    @pytest.mark.asyncio
    async def test_force_destroy_without_client(self, lifecycle, guild):
        lifecycle.store.set(guild.id, ConnectionState.connecting(10))

        await lifecycle.force_destroy(guild)

        assert lifecycle.store.get(guild.id) == ConnectionState.disconnected()


class TestRecover:
    @pytest.mark.asyncio
    async def test_recovers_when_client_reconnects(self, lifecycle, guild, channel):
        await lifecycle.join(guild, channel)

        recovered = await lifecycle.recover(guild)

        assert recovered is True
        assert lifecycle.store.get(guild.id) == ConnectionState.connected(10)

    @pytest.mark.asyncio
    async def test_destroys_when_window_elapses(self, lifecycle, guild, channel):
        voice_client = await lifecycle.join(guild, channel)
        voice_client.is_connected.return_value = False

        recovered = await lifecycle.recover(guild)

        assert recovered is False
        voice_client.disconnect.assert_awaited_once_with(force=True)
        assert lifecycle.store.get(guild.id) == ConnectionState.disconnected()

    @pytest.mark.asyncio
    async def test_ignored_unless_connected(self, lifecycle, guild):
        assert await lifecycle.recover(guild) is False
        assert lifecycle.store.get(guild.id) == ConnectionState.disconnected()


class TestPermissions:
    def test_can_connect_reads_channel_permissions(self, lifecycle, guild):
        allowed = guild.add_voice_channel(30, [])
        denied = guild.add_voice_channel(40, [], can_connect=False)

        assert lifecycle.can_connect(allowed) is True
        assert lifecycle.can_connect(denied) is False
        allowed.permissions_for.assert_called_with(guild.me)

    @pytest.mark.asyncio
    async def test_join_without_permission_changes_nothing(self, lifecycle, guild):
        denied = guild.add_voice_channel(40, [], can_connect=False)

        with pytest.raises(ConnectPermissionError):
            await lifecycle.join(guild, denied)

        denied.connect.assert_not_awaited()
        assert lifecycle.store.get(guild.id) == ConnectionState.disconnected()

    @pytest.mark.asyncio
    async def test_move_without_permission_keeps_connection(self, lifecycle, guild, channel):
        voice_client = await lifecycle.join(guild, channel)
        denied = guild.add_voice_channel(40, [], can_connect=False)

        with pytest.raises(ConnectPermissionError):
            await lifecycle.move(guild, denied)

        voice_client.move_to.assert_not_awaited()
        assert lifecycle.store.get(guild.id) == ConnectionState.connected(channel.id)
