"""Tests for greeting playback."""

from unittest.mock import MagicMock, patch

import discord

from helpers.audio import GreetingPlayer
from tests.factories import FakeGuild, make_voice_client


def connected_client():
    guild = FakeGuild()
    channel = guild.add_voice_channel(10, [])
    return make_voice_client(guild, channel)


class TestGreetingPlayer:
    def test_missing_asset_joins_silently(self, tmp_path):
        player = GreetingPlayer(tmp_path / "missing.ogg")
        voice_client = connected_client()

        assert player.play(voice_client) is False
        voice_client.play.assert_not_called()

    def test_plays_through_volume_transformer(self, tmp_path):
        sound = tmp_path / "hello.ogg"
        sound.write_bytes(b"OggS")
        player = GreetingPlayer(sound, volume=0.5)
        voice_client = connected_client()

        with (
            patch("helpers.audio.discord.FFmpegPCMAudio") as ffmpeg,
            patch("helpers.audio.discord.PCMVolumeTransformer") as transformer,
        ):
            assert player.play(voice_client) is True

        ffmpeg.assert_called_once_with(str(sound), options="-vn")
        transformer.assert_called_once_with(ffmpeg.return_value, volume=0.5)
        source = voice_client.play.call_args.args[0]
        assert source is transformer.return_value

    def test_ffmpeg_failure_is_not_fatal(self, tmp_path):
        sound = tmp_path / "hello.ogg"
        sound.write_bytes(b"OggS")
        player = GreetingPlayer(sound)
        voice_client = connected_client()

        with patch(
            "helpers.audio.discord.FFmpegPCMAudio",
            side_effect=discord.ClientException("ffmpeg was not found."),
        ):
            assert player.play(voice_client) is False

    def test_play_after_teardown_is_swallowed(self, tmp_path):
        sound = tmp_path / "hello.ogg"
        sound.write_bytes(b"OggS")
        player = GreetingPlayer(sound)
        voice_client = connected_client()
        voice_client.play.side_effect = discord.ClientException("Not connected to voice.")

        with patch("helpers.audio.discord.FFmpegPCMAudio"), patch("helpers.audio.discord.PCMVolumeTransformer"):
            assert player.play(voice_client) is False

    def test_after_callback_tolerates_errors_after_disconnect(self, tmp_path):
        player = GreetingPlayer(tmp_path / "x.ogg")
        voice_client = connected_client()
        voice_client.is_connected.return_value = False

        callback = player._after_callback(voice_client)

        callback(RuntimeError("socket closed"))
        callback(None)

    def test_disabled_player_does_nothing(self, tmp_path):
        player = GreetingPlayer(tmp_path / "x.ogg", enabled=False)
        voice_client = MagicMock()

        assert player.play(voice_client) is False
