"""
Watcher Registry

Process-wide owner of the watched pair. Initialized from the environment
when it supplies two ids, otherwise from the watcher file. Every mutation
replaces the whole pair and then persists it.
"""

from pathlib import Path
from typing import Any, Protocol

from helpers.atomic_write import AtomicWriteError, atomic_write_json, read_json
from utils.errors import ValidationError
from utils.types import WatchSet

from .base import BaseService


class WatchCandidate(Protocol):
    """Anything with a user id and a bot flag (discord.User, discord.Member)."""

    id: int
    bot: bool


def load_watchers_file(path: Path) -> WatchSet:
    """Read ``{"watchers": ["id1", "id2"]}``; anything else is an empty set."""
    data = read_json(path)
    if data is None:
        return WatchSet()

    raw = data.get("watchers")
    if not isinstance(raw, list) or len(raw) != 2:
        return WatchSet()

    try:
        ids = tuple(int(str(item)) for item in raw)
    except ValueError:
        return WatchSet()
    if ids[0] == ids[1]:
        return WatchSet()
    return WatchSet(ids)


class WatcherRegistry(BaseService):
    """Holds the (at most two) watched user ids."""

    def __init__(self, path: Path | str, initial: tuple[int, ...] = ()) -> None:
        super().__init__("watchers")
        self.path = Path(path)
        self._initial = tuple(initial)
        self._watch_set = WatchSet()
        self.source = "none"

    async def _initialize_impl(self) -> None:
        if len(self._initial) == 2:
            self._watch_set = WatchSet(self._initial)
            self.source = "environment"
        else:
            self._watch_set = load_watchers_file(self.path)
            self.source = "file" if self._watch_set.is_complete else "none"

        if self._watch_set.is_complete:
            first, second = self._watch_set.ids
            self.logger.info(f"Watching {first} & {second} (from {self.source}).")
        else:
            self.logger.info(
                "No watcher IDs configured yet. Use /pc_set to configure two users, "
                "or set WATCH_IDS / WATCH_ID_1 & WATCH_ID_2 and restart."
            )

    @property
    def watch_set(self) -> WatchSet:
        return self._watch_set

    def status(self) -> WatchSet:
        return self._watch_set

    def set(self, first: WatchCandidate | None, second: WatchCandidate | None) -> WatchSet:
        """
        Replace the watched pair.

        Raises:
            ValidationError: A user is missing, is a bot, or both are the same user.
        """
        if first is None or second is None:
            raise ValidationError("Pick **two different human** users.")
        if first.bot or second.bot:
            raise ValidationError("Pick **two different human** users.")
        if first.id == second.id:
            raise ValidationError("Pick **two different human** users.")

        self._watch_set = WatchSet((first.id, second.id))
        self.source = "command"
        self._persist()
        self.logger.info(f"Watching {first.id} & {second.id}.")
        return self._watch_set

    def clear(self) -> WatchSet:
        previous = self._watch_set
        self._watch_set = WatchSet()
        self.source = "none"
        self._persist()
        self.logger.info("Cleared watchers.")
        return previous

    def _persist(self) -> None:
        payload = {"watchers": [str(user_id) for user_id in self._watch_set.ids]}
        try:
            atomic_write_json(self.path, payload)
        except AtomicWriteError:
            # The in-memory pair stays authoritative for this process.
            self.logger.warning("Watcher list kept in memory only; %s not written", self.path)

    def status_details(self) -> dict[str, Any]:
        return {
            "watchers": [str(user_id) for user_id in self._watch_set.ids],
            "source": self.source,
            "path": str(self.path),
        }
