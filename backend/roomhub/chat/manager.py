"""WebSocket connection manager for the chat room.

This module binds live WebSocket connections to the Room state machine. The
Room decides *what* to send and *to whom* (as Broadcast/Targeted outbounds);
this manager resolves those to sockets and delivers them.

Key features:
    - Server-issued connection ids (never client-provided)
    - One outbox queue per connection, drained by its own writer task, so a
      slow socket only delays itself
    - Automatic dead connection cleanup (a failed send tears the session
      down through the normal disconnect flow)

Thread Safety:
    This implementation is designed for async/await usage with a single event loop.
    Room mutations are synchronous and ``dispatch`` enqueues without awaiting,
    so every socket receives events in the order the room produced them. It
    is NOT thread-safe for concurrent access from multiple threads.
"""
import asyncio
import logging
import uuid
from typing import Dict, Iterable, Optional

from fastapi import WebSocket

from roomhub.config import get_config

from .events import ConnectionId, Event, Outbound, Targeted
from .room import Room

logger = logging.getLogger(__name__)


class ConnectionManager:
    """Owns the room and the table of live WebSocket connections.

    Note:
        This is a singleton-style global instance. All WebSocket handlers
        share the same ConnectionManager to maintain consistent state.
    """

    def __init__(self, room: Optional[Room] = None) -> None:
        self._room = room
        # connection id -> WebSocket, in connect order
        self.active_connections: Dict[ConnectionId, WebSocket] = {}
        self._outboxes: Dict[ConnectionId, asyncio.Queue] = {}
        self._writers: Dict[ConnectionId, asyncio.Task] = {}
        # total events ever queued; lets drain() spot late arrivals
        self._queued = 0

    @property
    def room(self) -> Room:
        """The room, created from the current config on first use."""
        if self._room is None:
            chat = get_config().chat
            self._room = Room(
                page_size=chat.history_page_size,
                dedupe_reactions=chat.dedupe_reactions,
            )
        return self._room

    def reset(self, room: Optional[Room] = None) -> None:
        """Drop all connections and start a fresh room (for testing)."""
        for writer in self._writers.values():
            if not writer.done() and not writer.get_loop().is_closed():
                writer.cancel()
        self._writers.clear()
        self._outboxes.clear()
        self.active_connections.clear()
        self._room = room

    def get_room_size(self) -> int:
        """Get the number of active connections."""
        return len(self.active_connections)

    async def connect(self, websocket: WebSocket) -> ConnectionId:
        """Accept a WebSocket connection and register it as anonymous.

        Returns:
            The server-issued connection id.
        """
        await websocket.accept()
        connection_id = str(uuid.uuid4())
        outbox: asyncio.Queue = asyncio.Queue()
        self.active_connections[connection_id] = websocket
        self._outboxes[connection_id] = outbox
        self._writers[connection_id] = asyncio.create_task(
            self._writer(connection_id, websocket, outbox)
        )
        self.room.connect(connection_id)
        return connection_id

    async def disconnect(self, connection_id: ConnectionId) -> None:
        """Stop the connection's writer and run the room's disconnect flow."""
        writer = self._writers.get(connection_id)
        outbox = self._outboxes.get(connection_id)
        self._drop(connection_id)
        if writer is not None and writer is not asyncio.current_task():
            writer.cancel()
        if outbox is not None:
            self._discard(outbox)

    def _drop(self, connection_id: ConnectionId) -> None:
        self.active_connections.pop(connection_id, None)
        self._outboxes.pop(connection_id, None)
        self._writers.pop(connection_id, None)
        self.dispatch(self.room.disconnect(connection_id))

    def dispatch(self, outbounds: Iterable[Outbound]) -> None:
        """Queue outbounds for their recipients, in order, without blocking.

        Call this right after the room mutation that produced the outbounds;
        each connection's writer task performs the actual sends.
        """
        for outbound in outbounds:
            for conn in outbound.recipients(self._outboxes):
                self._outboxes[conn].put_nowait(outbound.event)
                self._queued += 1

    def send_to(self, connection_id: ConnectionId, event: Event) -> None:
        """Queue a single event for one connection."""
        self.dispatch([Targeted(event, frozenset({connection_id}))])

    async def drain(self) -> None:
        """Wait until every queued event has been handed to its socket.

        Teardown of a dead connection queues more events while we wait, so
        repeat until a pass completes with nothing new queued.
        """
        while True:
            queued = self._queued
            await asyncio.gather(*[outbox.join() for outbox in list(self._outboxes.values())])
            if self._queued == queued:
                return

    @staticmethod
    def _discard(outbox: asyncio.Queue) -> None:
        while not outbox.empty():
            outbox.get_nowait()
            outbox.task_done()

    async def _writer(self, connection_id: ConnectionId, websocket: WebSocket,
                      outbox: asyncio.Queue) -> None:
        """Send queued events to one socket until it fails or is cancelled."""
        while True:
            event = await outbox.get()
            try:
                success = await self._safe_send(websocket, event)
            finally:
                outbox.task_done()
            if not success:
                break

        self._discard(outbox)
        if connection_id in self.active_connections:
            logger.debug(f"[WS] Removed dead connection {connection_id}")
            self._drop(connection_id)

    async def _safe_send(self, connection: WebSocket, message: dict) -> bool:
        """Send a message to a WebSocket connection with error handling.

        Args:
            connection: The WebSocket to send to.
            message: JSON-serializable message to send.

        Returns:
            True if successful, False if connection failed.
        """
        try:
            await connection.send_json(message)
            return True
        except Exception as e:
            logger.debug(f"[WS] Failed to send to connection: {e}")
            return False


# Global singleton instance used by all WebSocket handlers
manager = ConnectionManager()
