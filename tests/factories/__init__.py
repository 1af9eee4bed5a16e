"""
Test Factories Module

Fake discord objects and clocks shared by the test suite.
"""

from .discord_factories import (
    BOT_USER_ID,
    FakeBot,
    FakeClock,
    FakeGuild,
    FakeInteraction,
    FakeMember,
    FakeTextChannel,
    FakeUser,
    make_voice_channel,
    make_voice_client,
    make_voice_state,
)

__all__ = [
    "BOT_USER_ID",
    "FakeBot",
    "FakeClock",
    "FakeGuild",
    "FakeInteraction",
    "FakeMember",
    "FakeTextChannel",
    "FakeUser",
    "make_voice_channel",
    "make_voice_client",
    "make_voice_state",
]
