"""
Watch Package

Voice presence watching: gateway listeners and the administrative
slash commands that manage the watched pair.
"""

from .commands import WatchCommands
from .events import WatchEvents

__all__ = ["WatchCommands", "WatchEvents"]
