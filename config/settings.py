"""
Runtime settings assembled from the environment and the YAML defaults.

Environment variables always win over ``config/config.yaml``. Everything is
validated once at startup; a ``ConfigurationError`` here stops the process.
"""

import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from config.config_loader import ConfigLoader
from utils.errors import ConfigurationError
from utils.types import WatchPredicate

MIN_VOLUME = 0.0
MAX_VOLUME = 2.0

_TRUTHY = {"1", "true", "yes", "on"}
_FALSY = {"0", "false", "no", "off", ""}


@dataclass(frozen=True)
class BotSettings:
    token: str
    watch_ids: tuple[int, ...]
    watch_mode: WatchPredicate
    sound_file: Path
    sound_volume: float
    cooldown_seconds: float
    verbose: bool
    log_level: str
    log_file: str
    admin_guild_id: int | None
    application_id: int | None
    watchers_file: Path
    connect_timeout: float
    recovery_timeout: float
    rescan_interval: float
    presence_text: str
    relay_default_minutes: int
    relay_max_minutes: int
    relay_sweep_interval: float

    @property
    def cooldown_ms(self) -> int:
        return int(self.cooldown_seconds * 1000)


def clamp_volume(value: float) -> float:
    return max(MIN_VOLUME, min(MAX_VOLUME, value))


def parse_user_id(raw: str, source: str) -> int:
    """Parse a Discord snowflake, accepting a ``<@id>`` mention as well."""
    text = raw.strip().removeprefix("<@").removeprefix("!").removesuffix(">")
    if not text.isdigit():
        raise ConfigurationError(f"{source} must be a numeric user id, got {raw!r}")
    return int(text)


def parse_watch_ids(env: Mapping[str, str]) -> tuple[int, ...]:
    """
    Resolve the watched pair from ``WATCH_IDS`` (comma separated) or
    ``WATCH_ID_1``/``WATCH_ID_2``. Returns an empty tuple when neither
    form supplies exactly two ids, so the watcher file can be used instead.
    """
    combined = [part.strip() for part in env.get("WATCH_IDS", "").split(",")]
    combined = [part for part in combined if part]
    pair = [env.get(key, "").strip() for key in ("WATCH_ID_1", "WATCH_ID_2")]
    pair = [part for part in pair if part]

    if len(combined) == 2:
        ids = tuple(parse_user_id(part, "WATCH_IDS") for part in combined)
    elif len(pair) == 2:
        ids = tuple(parse_user_id(part, "WATCH_ID_1/WATCH_ID_2") for part in pair)
    else:
        return ()

    if ids[0] == ids[1]:
        raise ConfigurationError("Watched user ids must be two different users")
    return ids


def _pick(env: Mapping[str, str], key: str, section: dict[str, Any], name: str, default: Any) -> Any:
    raw = env.get(key)
    if raw is not None and raw.strip() != "":
        return raw.strip()
    return section.get(name, default)


def _as_float(value: Any, key: str) -> float:
    try:
        return float(value)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"{key} must be a number, got {value!r}") from e


def _as_int(value: Any, key: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"{key} must be an integer, got {value!r}") from e


def _as_bool(value: Any, key: str) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUTHY:
        return True
    if text in _FALSY:
        return False
    raise ConfigurationError(f"{key} must be a boolean flag, got {value!r}")


def _optional_id(env: Mapping[str, str], key: str) -> int | None:
    raw = env.get(key, "").strip()
    if not raw:
        return None
    return parse_user_id(raw, key)


def load_settings(
    env: Mapping[str, str] | None = None,
    config: dict[str, Any] | None = None,
) -> BotSettings:
    """Build ``BotSettings`` from the environment layered over YAML defaults."""
    env = os.environ if env is None else env
    config = ConfigLoader.load_config() if config is None else config

    token = (env.get("DISCORD_TOKEN") or env.get("TOKEN") or "").strip()
    if not token:
        raise ConfigurationError("Missing DISCORD_TOKEN (or TOKEN) in environment")

    logging_cfg = config.get("logging") or {}
    watch_cfg = config.get("watch") or {}
    voice_cfg = config.get("voice") or {}
    audio_cfg = config.get("audio") or {}
    presence_cfg = config.get("presence") or {}
    relay_cfg = config.get("relay") or {}

    mode_raw = str(_pick(env, "WATCH_MODE", watch_cfg, "mode", "alone_together")).lower()
    try:
        watch_mode = WatchPredicate(mode_raw)
    except ValueError as e:
        choices = ", ".join(p.value for p in WatchPredicate)
        raise ConfigurationError(
            f"WATCH_MODE must be one of {choices}, got {mode_raw!r}"
        ) from e

    cooldown_ms = _as_float(_pick(env, "COOLDOWN_MS", watch_cfg, "cooldown_ms", 8000), "COOLDOWN_MS")
    if cooldown_ms < 0:
        raise ConfigurationError("COOLDOWN_MS must not be negative")

    connect_timeout = _as_float(
        _pick(env, "CONNECT_TIMEOUT_SECONDS", voice_cfg, "connect_timeout_seconds", 15),
        "CONNECT_TIMEOUT_SECONDS",
    )
    recovery_timeout = _as_float(
        _pick(env, "RECOVERY_TIMEOUT_SECONDS", voice_cfg, "recovery_timeout_seconds", 5),
        "RECOVERY_TIMEOUT_SECONDS",
    )
    if connect_timeout <= 0 or recovery_timeout <= 0:
        raise ConfigurationError("Voice timeouts must be positive")

    relay_default = _as_int(_pick(env, "RELAY_DEFAULT_MINUTES", relay_cfg, "default_minutes", 10), "RELAY_DEFAULT_MINUTES")
    relay_max = _as_int(_pick(env, "RELAY_MAX_MINUTES", relay_cfg, "max_minutes", 120), "RELAY_MAX_MINUTES")
    relay_sweep = _as_float(
        _pick(env, "RELAY_SWEEP_INTERVAL_SECONDS", relay_cfg, "sweep_interval_seconds", 60),
        "RELAY_SWEEP_INTERVAL_SECONDS",
    )
    if relay_sweep <= 0:
        raise ConfigurationError("RELAY_SWEEP_INTERVAL_SECONDS must be positive")

    return BotSettings(
        token=token,
        watch_ids=parse_watch_ids(env),
        watch_mode=watch_mode,
        sound_file=Path(str(_pick(env, "SOUND_FILE", audio_cfg, "sound_file", "sounds/join.ogg"))),
        sound_volume=clamp_volume(_as_float(_pick(env, "SOUND_VOLUME", audio_cfg, "volume", 0.75), "SOUND_VOLUME")),
        cooldown_seconds=cooldown_ms / 1000.0,
        verbose=_as_bool(env.get("VERBOSE", "false"), "VERBOSE"),
        log_level=str(_pick(env, "LOG_LEVEL", logging_cfg, "level", "INFO")),
        log_file=str(_pick(env, "LOG_FILE", logging_cfg, "file", "logs/bot.log")),
        admin_guild_id=_optional_id(env, "ADMIN_GUILD_ID"),
        application_id=_optional_id(env, "APPLICATION_ID"),
        watchers_file=Path(str(_pick(env, "WATCHERS_FILE", watch_cfg, "watchers_file", "watchers.json"))),
        connect_timeout=connect_timeout,
        recovery_timeout=recovery_timeout,
        rescan_interval=_as_float(
            _pick(env, "RESCAN_INTERVAL_SECONDS", watch_cfg, "rescan_interval_seconds", 300),
            "RESCAN_INTERVAL_SECONDS",
        ),
        presence_text=str(_pick(env, "PRESENCE_TEXT", presence_cfg, "text", "youeatra")),
        relay_default_minutes=max(1, relay_default),
        relay_max_minutes=max(1, relay_max),
        relay_sweep_interval=relay_sweep,
    )
