"""
Relay Package

Time-limited relay of a user's direct messages into a guild channel.
"""

from .commands import RelayCommands

__all__ = ["RelayCommands"]
