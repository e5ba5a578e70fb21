"""The chat room state machine.

The Room owns the four pieces of room state (presence, typing set, message
log, reaction/read annotations) and turns every inbound event into a list of
outbound events (see ``events``). It never awaits and never touches a
socket, so each call applies its mutations completely before the next event
is handled.

Connection lifecycle:
    CONNECTED (anonymous) -> JOINED (named) -> DISCONNECTED

There is no way back from DISCONNECTED. Events from connections that are not
in the required state are ignored and produce no output.
"""
import logging
from enum import Enum
from typing import Dict, List, Optional

from roomhub.files import Attachment

from . import events
from .events import Broadcast, ConnectionId, Outbound, Targeted
from .message_log import DEFAULT_PAGE_SIZE, MessageLog
from .presence import PresenceRegistry
from .receipts import ReceiptRelay
from .schemas import ChatMessage, MessageKind
from .typing_tracker import TypingTracker

logger = logging.getLogger(__name__)

# Author name stamped on server-issued announcements
SYSTEM_AUTHOR = "System"


class ConnectionState(str, Enum):
    CONNECTED = "connected"
    JOINED = "joined"
    DISCONNECTED = "disconnected"


def _dump(messages: List[ChatMessage]) -> List[dict]:
    return [msg.model_dump(mode="json") for msg in messages]


class Room:
    """Single chat room: presence, typing, message log and receipts.

    Args:
        page_size: Default number of messages returned by request_older().
        dedupe_reactions: Count at most one reaction per reader and emoji.
    """

    def __init__(self, page_size: int = DEFAULT_PAGE_SIZE, dedupe_reactions: bool = False) -> None:
        self.page_size = page_size
        self.presence = PresenceRegistry()
        self.typing = TypingTracker()
        self.log = MessageLog()
        self.receipts = ReceiptRelay(self.log, dedupe_reactions=dedupe_reactions)
        # Live connections only, in connect order
        self._states: Dict[ConnectionId, ConnectionState] = {}

    # =========================================================================
    # Connection lifecycle
    # =========================================================================

    def state_of(self, connection: ConnectionId) -> ConnectionState:
        return self._states.get(connection, ConnectionState.DISCONNECTED)

    def is_joined(self, connection: ConnectionId) -> bool:
        return self.state_of(connection) is ConnectionState.JOINED

    def live_connections(self) -> List[ConnectionId]:
        return list(self._states)

    def connect(self, connection: ConnectionId) -> List[Outbound]:
        """Register a new anonymous connection. Nothing is announced yet."""
        if connection in self._states:
            return []
        self._states[connection] = ConnectionState.CONNECTED
        return []

    def join(self, connection: ConnectionId, requested_name: str) -> List[Outbound]:
        """Name the connection and bring it into the room.

        The joiner gets an acknowledgement with its assigned name and the
        full history; everyone else hears about the new user; everyone gets
        the refreshed roster.
        """
        if self.state_of(connection) is not ConnectionState.CONNECTED:
            logger.debug(f"[Room] Ignoring join from {connection} in state {self.state_of(connection)}")
            return []

        name = self.presence.join(connection, requested_name)
        self._states[connection] = ConnectionState.JOINED
        logger.info(f"[Room] {name} ({connection}) joined. Online: {len(self.presence)}")

        only_joiner = frozenset({connection})
        return [
            Targeted({"type": events.JOINED, "username": name, "requested": requested_name}, only_joiner),
            Broadcast({"type": events.USER_JOINED, "username": name}, exclude=only_joiner),
            self._online_users(),
            Targeted({"type": events.HISTORY, "messages": _dump(self.log.history_snapshot())}, only_joiner),
        ]

    def disconnect(self, connection: ConnectionId) -> List[Outbound]:
        """Tear the connection down. A second call is a silent no-op."""
        if self._states.pop(connection, None) is None:
            return []

        name = self.presence.leave(connection)
        if name is None:
            logger.info(f"[Room] Anonymous connection {connection} disconnected")
            return []

        outbounds: List[Outbound] = []
        if self.typing.stop(name):
            outbounds.append(self._typing_users())
        outbounds.append(Broadcast({"type": events.USER_LEFT, "username": name}))
        outbounds.append(self._online_users())
        logger.info(f"[Room] {name} ({connection}) left. Online: {len(self.presence)}")
        return outbounds

    # =========================================================================
    # Messages
    # =========================================================================

    def send(
        self,
        connection: ConnectionId,
        content: str,
        kind: MessageKind = MessageKind.TEXT,
        attachment: Optional[Attachment] = None,
        time: Optional[str] = None,
    ) -> List[Outbound]:
        """Append a message from the connection's session and broadcast it.

        Sending ends the author's typing state. The sender receives the same
        broadcast as everyone else.
        """
        author = self.presence.name_of(connection)
        if author is None:
            return []

        outbounds: List[Outbound] = []
        if self.typing.stop(author):
            outbounds.append(self._typing_users())

        stored = self.log.append(
            ChatMessage(author=author, kind=kind, content=content, attachment=attachment, time=time)
        )
        logger.info(f"[Room] Message {stored.id} ({stored.kind.value}) from {author}: {content[:50]}")
        outbounds.append(Broadcast({"type": events.MESSAGE, **stored.model_dump(mode="json")}))
        return outbounds

    def post_system(self, content: str) -> List[Outbound]:
        """Append a server-issued announcement and broadcast it."""
        stored = self.log.append(
            ChatMessage(author=SYSTEM_AUTHOR, kind=MessageKind.SYSTEM, content=content)
        )
        logger.info(f"[Room] System message {stored.id}: {content[:50]}")
        return [Broadcast({"type": events.MESSAGE, **stored.model_dump(mode="json")})]

    def request_older(
        self,
        connection: ConnectionId,
        reference_id: str,
        count: Optional[int] = None,
        request_id: Optional[str] = None,
    ) -> List[Outbound]:
        """Reply to the requester with the page preceding ``reference_id``.

        An unknown reference id yields an empty page, never an error.
        """
        if connection not in self._states:
            return []

        older = self.log.older_than(reference_id, count or self.page_size)
        logger.debug(f"[Room] Sending {len(older)} older messages to {connection}")
        reply = {
            "type": events.OLDER_MESSAGES,
            "messageId": reference_id,
            "messages": _dump(older),
        }
        if request_id is not None:
            reply["requestId"] = request_id
        return [Targeted(reply, frozenset({connection}))]

    # =========================================================================
    # Typing
    # =========================================================================

    def typing_start(self, connection: ConnectionId) -> List[Outbound]:
        name = self.presence.name_of(connection)
        if name is None or not self.typing.start(name):
            return []
        return [self._typing_users()]

    def typing_stop(self, connection: ConnectionId) -> List[Outbound]:
        name = self.presence.name_of(connection)
        if name is None or not self.typing.stop(name):
            return []
        return [self._typing_users()]

    # =========================================================================
    # Reactions and read receipts
    # =========================================================================

    def react(self, connection: ConnectionId, message_id: str, emoji: str) -> List[Outbound]:
        reactor = self.presence.name_of(connection)
        if reactor is None:
            return []

        tally = self.receipts.react(message_id, reactor, emoji)
        if tally is None:
            return []
        logger.debug(f"[Room] {reactor} reacted to {message_id} with {emoji}")
        return [Broadcast({
            "type": events.REACTION_UPDATED,
            "messageId": message_id,
            "reactor": reactor,
            "emoji": emoji,
            "reactions": tally,
        })]

    def mark_read(self, connection: ConnectionId, message_id: str) -> List[Outbound]:
        """Record a read receipt and tell only the author's connection(s)."""
        reader = self.presence.name_of(connection)
        if reader is None:
            return []

        result = self.receipts.mark_read(message_id, reader)
        if result is None:
            return []
        author, read_by = result

        author_connections = self.presence.connections_of(author)
        if not author_connections:
            return []
        logger.debug(f"[Room] {reader} read {message_id} from {author}")
        return [Targeted(
            {
                "type": events.RECEIPT_UPDATED,
                "messageId": message_id,
                "reader": reader,
                "readBy": read_by,
            },
            frozenset(author_connections),
        )]

    # =========================================================================
    # Queries
    # =========================================================================

    def roster(self) -> Dict[str, List[str]]:
        return {"users": self.presence.all_names(), "typing": self.typing.names()}

    def page(self, before_id: Optional[str] = None, limit: Optional[int] = None) -> List[ChatMessage]:
        """Messages before ``before_id`` (or the latest ones), oldest first."""
        limit = limit or self.page_size
        if before_id is None:
            return self.log.latest(limit)
        return self.log.older_than(before_id, limit)

    def _online_users(self) -> Broadcast:
        return Broadcast({"type": events.ONLINE_USERS, "users": self.presence.all_names()})

    def _typing_users(self) -> Broadcast:
        return Broadcast({"type": events.TYPING_USERS, "users": self.typing.names()})
