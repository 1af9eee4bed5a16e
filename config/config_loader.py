# config/config_loader.py

import logging
import os
from pathlib import Path
from typing import Any, ClassVar

import yaml

DEFAULT_CONFIG_PATH = Path(__file__).resolve().parent / "config.yaml"


def _read_yaml(path: Path) -> tuple[dict[str, Any], str]:
    """Parse ``path`` and return (mapping, status). Never raises."""
    try:
        with path.open(encoding="utf-8") as file:
            loaded = yaml.safe_load(file) or {}
    except FileNotFoundError:
        logging.warning("No configuration file at %s; running on built-in defaults.", path)
        return {}, "degraded"
    except (yaml.YAMLError, UnicodeDecodeError) as e:
        logging.exception("Could not parse configuration at %s: %s", path, e)
        return {}, "error"

    if not isinstance(loaded, dict):
        logging.warning("Configuration at %s is not a mapping; ignoring it.", path)
        return {}, "degraded"
    return loaded, "ok"


class ConfigLoader:
    """
    Process-wide holder for the YAML defaults (watch rule, voice timeouts,
    greeting audio, presence text, relay limits).

    The token and the watched ids never live here; they come from the
    environment (see ``config.settings``), which also overrides any value
    below.

    Status is one of ``not_loaded``, ``ok``, ``degraded`` (file missing or
    not a mapping) or ``error`` (unparseable).
    """

    _config: ClassVar[dict[str, Any]] = {}
    _config_status: ClassVar[str] = "not_loaded"
    _config_path: ClassVar[str | None] = None

    @classmethod
    def load_config(cls, config_path: str | None = None) -> dict[str, Any]:
        """
        Load the file on first call and return the cached mapping afterwards.

        The path is ``config_path``, else ``$CONFIG_PATH``, else the bundled
        ``config/config.yaml``.
        """
        if cls._config_status != "not_loaded":
            return cls._config

        path = Path(config_path or os.environ.get("CONFIG_PATH") or DEFAULT_CONFIG_PATH)
        cls._config_path = str(path)
        cls._config, cls._config_status = _read_yaml(path)
        if cls._config_status == "ok":
            logging.info("Configuration loaded from %s", path)
        return cls._config

    @classmethod
    def get_config_status(cls) -> dict[str, Any]:
        return {
            "config_status": cls._config_status,
            "config_path": cls._config_path,
            "config_loaded": bool(cls._config),
        }

    @classmethod
    def reset(cls) -> None:
        """Forget the loaded file so the next ``load_config`` reads again."""
        cls._config = {}
        cls._config_status = "not_loaded"
        cls._config_path = None
