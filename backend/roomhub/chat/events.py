"""Outbound events produced by the room.

Every room operation returns a list of outbounds. Each one is either a
``Broadcast`` (every live connection, minus an exclusion set) or a
``Targeted`` send (an explicit connection set). The transport layer resolves
recipients and serializes ``event`` as JSON; the room never touches sockets.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Iterable, List, Union

ConnectionId = str
Event = Dict[str, Any]

# Outbound event types
JOINED = "joined"
USER_JOINED = "user_joined"
USER_LEFT = "user_left"
ONLINE_USERS = "online_users"
TYPING_USERS = "typing_users"
HISTORY = "history"
MESSAGE = "message"
REACTION_UPDATED = "reaction_updated"
RECEIPT_UPDATED = "receipt_updated"
OLDER_MESSAGES = "older_messages"
ERROR = "error"


@dataclass(frozen=True)
class Broadcast:
    """Deliver ``event`` to all connections except ``exclude``."""
    event: Event
    exclude: FrozenSet[ConnectionId] = field(default_factory=frozenset)

    def recipients(self, live: Iterable[ConnectionId]) -> List[ConnectionId]:
        return [conn for conn in live if conn not in self.exclude]


@dataclass(frozen=True)
class Targeted:
    """Deliver ``event`` only to ``connections`` (those still live)."""
    event: Event
    connections: FrozenSet[ConnectionId] = field(default_factory=frozenset)

    def recipients(self, live: Iterable[ConnectionId]) -> List[ConnectionId]:
        return [conn for conn in live if conn in self.connections]


Outbound = Union[Broadcast, Targeted]


def error_event(message: str) -> Event:
    return {"type": ERROR, "error": message}
