"""Chat router providing WebSocket and HTTP endpoints.

This module provides:
    - WebSocket /ws/chat: Real-time chat messaging
    - GET /chat/history: Paginated message history
    - GET /chat/users: Online users and who is typing
    - POST /chat/system: Post a system announcement

The WebSocket protocol supports:
    - Join with automatic name de-duplication (alice, alice#1, ...)
    - Message history delivery on join
    - User join/leave notifications and online user list
    - Real-time message broadcasting (text and file)
    - Typing indicators
    - Reactions
    - Read receipts (delivered to the message author only)
    - Loading older messages (request/response via requestId)

Protocol Message Types (client -> server):
    - join: {username}
    - message: {content, time?}  (the default when ``type`` is missing)
    - file: {fileName, fileType, data, content?, time?}  (mimeType also accepted)
    - typing_start / typing_stop
    - reaction: {messageId, emoji}
    - read: {messageId}
    - request_older: {messageId, requestId?, limit?}
"""
import json
import logging
from typing import Callable, Dict, List, Optional

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, ValidationError

from roomhub.config import get_config

from .events import ConnectionId, Outbound, error_event
from .manager import manager
from .schemas import (
    FileMessageRequest,
    JoinRequest,
    MessageKind,
    OlderMessagesRequest,
    ReactionRequest,
    ReadReceiptRequest,
    SendMessageRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter()


class InboundError(Exception):
    """An inbound frame rejected at the boundary; reported to the sender only."""


class SystemMessageRequest(BaseModel):
    """Request body for POST /chat/system."""
    content: str = Field(..., min_length=1, description="Announcement text")


# =============================================================================
# WebSocket frame handlers
# =============================================================================


def _check_length(content: str) -> None:
    limit = get_config().chat.max_message_length
    if limit and len(content) > limit:
        raise InboundError(f"Message too long (max {limit} characters)")


def _handle_join(connection: ConnectionId, data: dict) -> List[Outbound]:
    if manager.room.is_joined(connection):
        raise InboundError("Already joined")
    request = JoinRequest.model_validate(data)
    max_length = get_config().chat.max_name_length
    if len(request.username) > max_length:
        raise InboundError(f"Username too long (max {max_length} characters)")
    return manager.room.join(connection, request.username)


def _handle_message(connection: ConnectionId, data: dict) -> List[Outbound]:
    request = SendMessageRequest.model_validate(data)
    _check_length(request.content)
    return manager.room.send(connection, request.content, time=request.time)


def _handle_file(connection: ConnectionId, data: dict) -> List[Outbound]:
    request = FileMessageRequest.model_validate(data)
    _check_length(request.content)
    logger.info(f"[WS] File message {request.fileName} ({request.mimeType}) from {connection}")
    return manager.room.send(
        connection,
        request.content,
        kind=MessageKind.FILE,
        attachment=request.to_attachment(),
        time=request.time,
    )


def _handle_typing_start(connection: ConnectionId, data: dict) -> List[Outbound]:
    return manager.room.typing_start(connection)


def _handle_typing_stop(connection: ConnectionId, data: dict) -> List[Outbound]:
    return manager.room.typing_stop(connection)


def _handle_reaction(connection: ConnectionId, data: dict) -> List[Outbound]:
    request = ReactionRequest.model_validate(data)
    return manager.room.react(connection, request.messageId, request.emoji)


def _handle_read(connection: ConnectionId, data: dict) -> List[Outbound]:
    request = ReadReceiptRequest.model_validate(data)
    return manager.room.mark_read(connection, request.messageId)


def _handle_request_older(connection: ConnectionId, data: dict) -> List[Outbound]:
    request = OlderMessagesRequest.model_validate(data)
    limit = request.limit
    if limit is not None:
        limit = min(limit, get_config().chat.max_page_size)
    return manager.room.request_older(
        connection, request.messageId, count=limit, request_id=request.requestId
    )


Handler = Callable[[ConnectionId, dict], List[Outbound]]

HANDLERS: Dict[str, Handler] = {
    "join": _handle_join,
    "message": _handle_message,
    "file": _handle_file,
    "typing_start": _handle_typing_start,
    "typing_stop": _handle_typing_stop,
    "reaction": _handle_reaction,
    "read": _handle_read,
    "request_older": _handle_request_older,
}

# Frame types accepted before the connection has joined
ANONYMOUS_TYPES = {"join", "request_older"}


def _describe(exc: ValidationError) -> str:
    first = exc.errors()[0]
    location = ".".join(str(part) for part in first.get("loc", ()))
    return f"{location}: {first.get('msg')}" if location else first.get("msg", "")


def handle_frame(connection: ConnectionId, raw: str) -> List[Outbound]:
    """Validate one inbound text frame and apply it to the room.

    Raises:
        InboundError: The frame is malformed or not allowed right now.
    """
    try:
        data = json.loads(raw)
    except json.JSONDecodeError:
        raise InboundError("Invalid message format: not valid JSON")
    if not isinstance(data, dict):
        raise InboundError("Invalid message format: expected a JSON object")

    message_type = data.get("type", "message")
    handler = HANDLERS.get(message_type) if isinstance(message_type, str) else None
    if handler is None:
        raise InboundError(f"Unknown message type: {message_type}")
    if message_type not in ANONYMOUS_TYPES and not manager.room.is_joined(connection):
        raise InboundError("Join the chat before sending")

    try:
        return handler(connection, data)
    except ValidationError as exc:
        raise InboundError(f"Invalid message format: {_describe(exc)}")


@router.websocket("/ws/chat")
async def websocket_chat_endpoint(websocket: WebSocket) -> None:
    """WebSocket endpoint for the chat room.

    This endpoint handles the complete chat lifecycle for a single client.

    Protocol Flow:
        1. Client connects (anonymous, nothing is announced)
        2. Client sends: {type: "join", username}
           → Client receives: {type: "joined", username} (possibly suffixed)
           → Others receive: {type: "user_joined", username}
           → Everyone receives: {type: "online_users", users: [...]}
           → Client receives: {type: "history", messages: [...]}
        3. Client sends: {content}
           → Everyone receives: {type: "message", ...fullMessage}
        4. Client sends: {type: "read", messageId}
           → Author receives: {type: "receipt_updated", messageId, reader, readBy}
        5. On disconnect → Everyone receives: {type: "user_left"} and the roster

    Malformed frames are answered with {type: "error", error} to the sender
    only; the connection stays open.
    """
    max_participants = get_config().chat.max_participants
    if max_participants > 0 and manager.get_room_size() >= max_participants:
        logger.warning(
            f"[WS] Room is full ({max_participants} participants). "
            "Rejecting new connection."
        )
        await websocket.close(code=1008)  # 1008 = Policy Violation
        return

    connection = await manager.connect(websocket)
    logger.info(f"[WS] Connection {connection} accepted. {manager.get_room_size()} connections")

    try:
        while True:
            raw = await websocket.receive_text()
            try:
                outbounds = handle_frame(connection, raw)
            except InboundError as exc:
                logger.debug(f"[WS] Rejected frame from {connection}: {exc}")
                manager.send_to(connection, error_event(str(exc)))
                continue
            manager.dispatch(outbounds)

    except WebSocketDisconnect:
        logger.info(f"[WS] Connection {connection} closed")
    finally:
        # Idempotent; also covers handlers that failed unexpectedly
        await manager.disconnect(connection)


# =============================================================================
# HTTP endpoints
# =============================================================================


@router.get("/chat/history")
async def get_message_history(
    before: Optional[str] = Query(None, description="Message ID cursor (get messages before this one)"),
    limit: Optional[int] = Query(None, ge=1, description="Number of messages to return")
) -> JSONResponse:
    """Get paginated message history.

    Clients can fetch older messages by passing the id of the oldest message
    they currently have. An unknown cursor returns an empty page.

    Returns:
        JSON with messages array and hasMore boolean.

    Example:
        GET /chat/history?limit=20
        GET /chat/history?before=42&limit=20
    """
    chat = get_config().chat
    limit = min(limit or chat.history_page_size, chat.max_page_size)  # Prevent abuse
    room = manager.room
    messages = room.page(before, limit)

    has_more = False
    if messages:
        has_more = (room.log.position_of(messages[0].id) or 0) > 0

    return JSONResponse({
        "messages": [msg.model_dump(mode="json") for msg in messages],
        "hasMore": has_more
    })


@router.get("/chat/users")
async def get_online_users() -> dict:
    """Get the online users and the names currently typing, both sorted."""
    return manager.room.roster()


@router.post("/chat/system")
async def post_system_message(request: SystemMessageRequest) -> JSONResponse:
    """Post a system announcement to the room.

    The message is stored in history and broadcast to all clients.
    """
    outbounds = manager.room.post_system(request.content)
    manager.dispatch(outbounds)
    message = {k: v for k, v in outbounds[0].event.items() if k != "type"}
    return JSONResponse(message)
