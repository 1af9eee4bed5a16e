"""
One-shot greeting playback.

FFmpeg decodes the asset and resamples it to 48 kHz stereo s16le PCM, the
layout discord.py's Opus encoder expects. A volume transformer applies the
configured gain. Playback is fire-and-forget: the connection can be torn
down mid-greeting, and errors reported after that are expected.
"""

from pathlib import Path

import discord

from utils.errors import PlaybackError
from utils.log_context import get_guild_extra
from utils.logging import get_logger

logger = get_logger(__name__)

# FFmpegPCMAudio already requests s16le at 48 kHz stereo; only drop video streams.
FFMPEG_OPTIONS = "-vn"


class GreetingPlayer:
    """Plays the configured sound once per fresh join."""

    def __init__(self, sound_file: Path | str, volume: float = 0.75, enabled: bool = True) -> None:
        self.sound_file = Path(sound_file)
        self.volume = volume
        self.enabled = enabled

    def asset_available(self) -> bool:
        return self.sound_file.is_file()

    def warn_if_missing(self) -> None:
        if self.enabled and not self.asset_available():
            logger.warning(
                f"Join sound not found: {self.sound_file}. Bot will join silently."
            )

    def build_source(self) -> discord.AudioSource:
        """
        Raises:
            PlaybackError: The asset is missing or FFmpeg could not be started.
        """
        if not self.asset_available():
            raise PlaybackError(f"Join sound not found: {self.sound_file}")
        try:
            pcm = discord.FFmpegPCMAudio(str(self.sound_file), options=FFMPEG_OPTIONS)
        except discord.ClientException as e:
            raise PlaybackError(f"Could not start FFmpeg for {self.sound_file}: {e}") from e
        return discord.PCMVolumeTransformer(pcm, volume=self.volume)

    def play(self, voice_client: discord.VoiceClient) -> bool:
        """
        Attach the greeting to ``voice_client`` and start it.

        Returns True when playback started. Never raises.
        """
        if not self.enabled:
            return False

        guild_id = voice_client.guild.id
        extra = get_guild_extra(guild_id, voice_client.channel.id)
        try:
            if voice_client.is_playing():
                voice_client.stop()
            source = self.build_source()
            voice_client.play(source, after=self._after_callback(voice_client))
        except PlaybackError as e:
            logger.warning(f"{e}. Staying connected without a greeting.", extra=extra)
            return False
        except discord.ClientException as e:
            # Raised when the connection went away between join and play
            logger.debug("Greeting skipped, voice client not ready: %s", e, extra=extra)
            return False

        logger.info(f"Playing join sound: {self.sound_file.name}", extra=extra)
        return True

    def _after_callback(self, voice_client: discord.VoiceClient):
        extra = get_guild_extra(voice_client.guild.id)

        def _after(error: Exception | None) -> None:
            # Runs on the audio player thread
            if error is None:
                logger.info(
                    "Join sound finished. Staying connected until state changes.",
                    extra=extra,
                )
            elif voice_client.is_connected():
                logger.error("Audio player error: %s", error, extra=extra)
            else:
                logger.debug("Audio player stopped after teardown: %s", error, extra=extra)

        return _after

    @staticmethod
    def stop(voice_client: discord.VoiceClient | None) -> None:
        if voice_client is not None and voice_client.is_playing():
            voice_client.stop()
