"""Append-only message log for the room.

Messages are kept in arrival order. Ids come from a per-log sequence
("1", "2", ...) that is independent of wall-clock time, and an id -> position
index backs lookups. Pagination compares messages by their position in the
log, never by the numeric value of the id.

The log is in-memory only and has no size bound; everything is lost on
restart.
"""
import logging
from typing import Dict, List, Optional

from .schemas import ChatMessage

logger = logging.getLogger(__name__)

# Default number of messages returned by older_than()
DEFAULT_PAGE_SIZE = 20


class MessageLog:
    """Ordered, append-only store of ChatMessage records."""

    def __init__(self) -> None:
        self._messages: List[ChatMessage] = []
        # message id -> index in self._messages
        self._positions: Dict[str, int] = {}
        self._next_seq = 1

    def __len__(self) -> int:
        return len(self._messages)

    def _issue_id(self) -> str:
        message_id = str(self._next_seq)
        self._next_seq += 1
        return message_id

    def append(self, message: ChatMessage) -> ChatMessage:
        """Assign the next id and append ``message`` at the tail.

        No validation happens here; callers reject empty or oversized
        messages before they reach the log.

        Returns:
            The stored record (a copy of ``message`` carrying its new id).
        """
        stored = message.model_copy(update={"id": self._issue_id()}, deep=True)
        self._positions[stored.id] = len(self._messages)
        self._messages.append(stored)
        logger.debug(f"[Log] Appended message {stored.id} from {stored.author}")
        return stored

    def find(self, message_id: str) -> Optional[ChatMessage]:
        position = self._positions.get(message_id)
        if position is None:
            return None
        return self._messages[position]

    def position_of(self, message_id: str) -> Optional[int]:
        return self._positions.get(message_id)

    def history_snapshot(self) -> List[ChatMessage]:
        """Point-in-time copy of the whole log, oldest first.

        Later appends and annotation changes do not show up in the copy.
        """
        return [msg.model_copy(deep=True) for msg in self._messages]

    def older_than(
        self, reference_id: str, count: int = DEFAULT_PAGE_SIZE
    ) -> List[ChatMessage]:
        """Return up to ``count`` messages immediately preceding ``reference_id``.

        Messages come back oldest first and never include the reference
        message itself. An unknown ``reference_id`` yields an empty list.

        Args:
            reference_id: Id of the oldest message the client already has.
            count: Maximum number of messages to return.

        Returns:
            Snapshot copies of the preceding messages, in log order.
        """
        position = self._positions.get(reference_id)
        if position is None:
            logger.debug(f"[Log] older_than: unknown reference id {reference_id}")
            return []
        if count <= 0:
            return []
        start = max(0, position - count)
        return [msg.model_copy(deep=True) for msg in self._messages[start:position]]

    def latest(self, count: int = DEFAULT_PAGE_SIZE) -> List[ChatMessage]:
        """Return the most recent ``count`` messages, oldest first."""
        if count <= 0:
            return []
        return [msg.model_copy(deep=True) for msg in self._messages[-count:]]
