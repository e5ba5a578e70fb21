"""Tracks which names are currently typing.

Membership changes only on explicit start/stop signals; there is no
server-side timeout. Both calls report whether membership changed so the
room only broadcasts real changes, and listeners always get the full set.
"""
from typing import List, Set


class TypingTracker:
    def __init__(self) -> None:
        self._typing: Set[str] = set()

    def __contains__(self, name: str) -> bool:
        return name in self._typing

    def start(self, name: str) -> bool:
        if name in self._typing:
            return False
        self._typing.add(name)
        return True

    def stop(self, name: str) -> bool:
        if name not in self._typing:
            return False
        self._typing.discard(name)
        return True

    def names(self) -> List[str]:
        return sorted(self._typing)
