"""Presence registry: who is in the room, and on which connection.

Keeps a connection -> name map and its inverse. Names are unique at any
instant; a colliding join gets the first free suffix (``alice#1``,
``alice#2``, ...) and keeps that name for the life of the session.
"""
import logging
from typing import Dict, List, Optional, Set

from .events import ConnectionId

logger = logging.getLogger(__name__)


class PresenceRegistry:
    """Bidirectional connection <-> display name mapping."""

    def __init__(self) -> None:
        self._names: Dict[ConnectionId, str] = {}
        self._connections: Dict[str, ConnectionId] = {}

    def __len__(self) -> int:
        return len(self._names)

    def __contains__(self, connection: ConnectionId) -> bool:
        return connection in self._names

    def _unique_name(self, requested: str) -> str:
        candidate = requested
        counter = 1
        while candidate in self._connections:
            candidate = f"{requested}#{counter}"
            counter += 1
        return candidate

    def join(self, connection: ConnectionId, requested_name: str) -> str:
        """Bind ``connection`` to a unique name derived from ``requested_name``.

        Always succeeds. Empty names are the caller's problem. A connection
        that joins again gives up its previous name first.

        Returns:
            The assigned (possibly suffixed) name.
        """
        previous = self._names.pop(connection, None)
        if previous is not None:
            self._connections.pop(previous, None)

        assigned = self._unique_name(requested_name)
        self._names[connection] = assigned
        self._connections[assigned] = connection
        if assigned != requested_name:
            logger.info(f"[Presence] Name '{requested_name}' taken, assigned '{assigned}'")
        return assigned

    def leave(self, connection: ConnectionId) -> Optional[str]:
        """Remove the binding for ``connection``.

        Idempotent: returns None if the connection never joined or has
        already left.
        """
        name = self._names.pop(connection, None)
        if name is not None and self._connections.get(name) == connection:
            del self._connections[name]
        return name

    def name_of(self, connection: ConnectionId) -> Optional[str]:
        return self._names.get(connection)

    def connections_of(self, name: str) -> Set[ConnectionId]:
        """Connections currently bound to ``name`` (zero or one)."""
        connection = self._connections.get(name)
        return {connection} if connection is not None else set()

    def all_names(self) -> List[str]:
        """Roster of joined names, sorted for stable display."""
        return sorted(self._connections)
