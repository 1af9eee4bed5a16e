from .config_loader import ConfigLoader
from .settings import BotSettings, load_settings

__all__ = ["BotSettings", "ConfigLoader", "load_settings"]
