"""Tests for WebSocket chat functionality with multi-client support.

Protocol recap:
1. Connect (anonymous), then send {type: "join", username}
2. Joiner receives: joined, online_users, history
3. Everyone else receives: user_joined, online_users
"""
import pytest
from starlette.websockets import WebSocketDisconnect

from roomhub.chat.manager import manager


def join(ws, username):
    """Helper to join and consume the joiner's frames."""
    ws.send_json({"type": "join", "username": username})
    joined = ws.receive_json()
    assert joined["type"] == "joined"
    online = ws.receive_json()
    assert online["type"] == "online_users"
    history = ws.receive_json()
    assert history["type"] == "history"
    return joined["username"], history


def receive_types(ws, count):
    return [ws.receive_json()["type"] for _ in range(count)]


def test_join_receives_ack_roster_and_history(client):
    with client.websocket_connect("/ws/chat") as ws:
        ws.send_json({"type": "join", "username": "alice"})
        assert ws.receive_json() == {"type": "joined", "username": "alice", "requested": "alice"}
        assert ws.receive_json() == {"type": "online_users", "users": ["alice"]}
        assert ws.receive_json() == {"type": "history", "messages": []}


def test_duplicate_names_are_suffixed(client):
    with client.websocket_connect("/ws/chat") as ws1, \
         client.websocket_connect("/ws/chat") as ws2:
        assert join(ws1, "alice")[0] == "alice"
        assert join(ws2, "alice")[0] == "alice#1"

        # First client hears about the second one
        assert ws1.receive_json() == {"type": "user_joined", "username": "alice#1"}
        assert ws1.receive_json() == {"type": "online_users", "users": ["alice", "alice#1"]}


def test_websocket_chat_two_clients(client):
    """Both clients, sender included, receive the same broadcast."""
    with client.websocket_connect("/ws/chat") as ws1, \
         client.websocket_connect("/ws/chat") as ws2:
        join(ws1, "alice")
        join(ws2, "bob")
        receive_types(ws1, 2)  # user_joined, online_users

        ws1.send_json({"type": "message", "content": "Hello from alice", "time": "10:01"})
        data1 = ws1.receive_json()
        data2 = ws2.receive_json()

        assert data1["type"] == "message"
        assert data1["author"] == "alice"
        assert data1["content"] == "Hello from alice"
        assert data1["kind"] == "text"
        assert data1["time"] == "10:01"
        assert isinstance(data1["ts"], float)
        assert data1 == data2
        assert len(manager.room.log) == 1


def test_message_history_on_join(client):
    with client.websocket_connect("/ws/chat") as ws1:
        join(ws1, "alice")
        ws1.send_json({"content": "First message"})
        ws1.receive_json()
        ws1.send_json({"content": "Second message"})
        ws1.receive_json()

        with client.websocket_connect("/ws/chat") as ws2:
            _, history = join(ws2, "bob")
            assert [m["content"] for m in history["messages"]] == ["First message", "Second message"]
            assert [m["id"] for m in history["messages"]] == ["1", "2"]


def test_typing_indicator_and_send_clears_it(client):
    with client.websocket_connect("/ws/chat") as ws1, \
         client.websocket_connect("/ws/chat") as ws2:
        join(ws1, "alice")
        join(ws2, "bob")
        receive_types(ws1, 2)

        ws1.send_json({"type": "typing_start"})
        assert ws2.receive_json() == {"type": "typing_users", "users": ["alice"]}
        assert ws1.receive_json() == {"type": "typing_users", "users": ["alice"]}

        ws1.send_json({"content": "done"})
        assert ws2.receive_json() == {"type": "typing_users", "users": []}
        assert ws2.receive_json()["type"] == "message"


def test_disconnect_while_typing_clears_entry(client):
    with client.websocket_connect("/ws/chat") as ws1:
        join(ws1, "alice")
        with client.websocket_connect("/ws/chat") as ws2:
            join(ws2, "bob")
            receive_types(ws1, 2)
            ws2.send_json({"type": "typing_start"})
            assert ws1.receive_json()["users"] == ["bob"]
            ws2.receive_json()

        assert ws1.receive_json() == {"type": "typing_users", "users": []}
        assert ws1.receive_json() == {"type": "user_left", "username": "bob"}
        assert ws1.receive_json() == {"type": "online_users", "users": ["alice"]}
        assert manager.room.roster() == {"users": ["alice"], "typing": []}


def test_reaction_is_broadcast(client):
    with client.websocket_connect("/ws/chat") as ws1, \
         client.websocket_connect("/ws/chat") as ws2:
        join(ws1, "alice")
        join(ws2, "bob")
        receive_types(ws1, 2)

        ws1.send_json({"content": "react to me"})
        message_id = ws1.receive_json()["id"]
        ws2.receive_json()

        ws2.send_json({"type": "reaction", "messageId": message_id, "emoji": "👍"})
        for ws in (ws1, ws2):
            update = ws.receive_json()
            assert update["type"] == "reaction_updated"
            assert update["reactions"] == {"👍": 1}
            assert update["reactor"] == "bob"


def test_read_receipt_goes_only_to_author(client):
    with client.websocket_connect("/ws/chat") as ws1, \
         client.websocket_connect("/ws/chat") as ws2:
        join(ws1, "alice")
        join(ws2, "bob")
        receive_types(ws1, 2)

        ws1.send_json({"content": "did you read this?"})
        message_id = ws1.receive_json()["id"]
        ws2.receive_json()

        ws2.send_json({"type": "read", "messageId": message_id})
        assert ws1.receive_json() == {
            "type": "receipt_updated",
            "messageId": message_id,
            "reader": "bob",
            "readBy": ["bob"],
        }

        # bob got nothing for the receipt: his next frame is the next message
        ws1.send_json({"content": "next"})
        assert ws2.receive_json()["content"] == "next"


def test_request_older_messages(client):
    with client.websocket_connect("/ws/chat") as ws:
        join(ws, "alice")
        for i in range(1, 26):
            ws.send_json({"content": f"msg {i}"})
            ws.receive_json()

        ws.send_json({"type": "request_older", "messageId": "25", "requestId": "page-1"})
        reply = ws.receive_json()
        assert reply["type"] == "older_messages"
        assert reply["requestId"] == "page-1"
        assert [m["content"] for m in reply["messages"]] == [f"msg {i}" for i in range(5, 25)]

        ws.send_json({"type": "request_older", "messageId": "unknown"})
        assert ws.receive_json() == {"type": "older_messages", "messageId": "unknown", "messages": []}


def test_file_message(client):
    with client.websocket_connect("/ws/chat") as ws:
        join(ws, "alice")
        ws.send_json({
            "type": "file",
            "fileName": "report.pdf",
            "mimeType": "application/pdf",
            "data": "JVBERi0xLjQ=",
            "content": "quarterly report",
        })
        message = ws.receive_json()
        assert message["kind"] == "file"
        assert message["content"] == "quarterly report"
        assert message["attachment"] == {
            "fileName": "report.pdf",
            "mimeType": "application/pdf",
            "fileType": "pdf",
            "data": "JVBERi0xLjQ=",
        }


def test_file_message_with_file_type_field(client):
    with client.websocket_connect("/ws/chat") as ws:
        join(ws, "alice")
        ws.send_json({
            "type": "file",
            "fileName": "cat.png",
            "fileType": "image/png",
            "data": "iVBORw0KGgo=",
        })
        message = ws.receive_json()
        assert message["kind"] == "file"
        assert message["attachment"]["mimeType"] == "image/png"
        assert message["attachment"]["fileType"] == "image"
        assert manager.room.log.latest(1)[0].attachment.mimeType == "image/png"


class TestInvalidFrames:
    def test_send_before_join(self, client):
        with client.websocket_connect("/ws/chat") as ws:
            ws.send_json({"content": "hello?"})
            response = ws.receive_json()
            assert response["type"] == "error"
            assert "Join" in response["error"]
            assert len(manager.room.log) == 0

    def test_empty_content(self, client):
        with client.websocket_connect("/ws/chat") as ws:
            join(ws, "alice")
            ws.send_json({"content": "   "})
            response = ws.receive_json()
            assert response["type"] == "error"
            assert "Invalid message format" in response["error"]

    def test_empty_username(self, client):
        with client.websocket_connect("/ws/chat") as ws:
            ws.send_json({"type": "join", "username": ""})
            assert ws.receive_json()["type"] == "error"
            # The connection is still usable
            assert join(ws, "alice")[0] == "alice"

    def test_not_json(self, client):
        with client.websocket_connect("/ws/chat") as ws:
            ws.send_text("definitely not json")
            response = ws.receive_json()
            assert response == {"type": "error", "error": "Invalid message format: not valid JSON"}

    def test_unknown_type(self, client):
        with client.websocket_connect("/ws/chat") as ws:
            join(ws, "alice")
            ws.send_json({"type": "teleport"})
            assert ws.receive_json() == {"type": "error", "error": "Unknown message type: teleport"}

    def test_join_twice(self, client):
        with client.websocket_connect("/ws/chat") as ws:
            join(ws, "alice")
            ws.send_json({"type": "join", "username": "bob"})
            assert ws.receive_json() == {"type": "error", "error": "Already joined"}

    def test_message_too_long(self, client, default_settings):
        default_settings.chat.max_message_length = 5
        with client.websocket_connect("/ws/chat") as ws:
            join(ws, "alice")
            ws.send_json({"content": "way too long"})
            assert "too long" in ws.receive_json()["error"]

    def test_reaction_on_unknown_message_is_silent(self, client):
        with client.websocket_connect("/ws/chat") as ws:
            join(ws, "alice")
            ws.send_json({"type": "reaction", "messageId": "404", "emoji": "👍"})
            ws.send_json({"content": "still here"})
            assert ws.receive_json()["content"] == "still here"


def test_room_full_rejects_connection(client, default_settings):
    default_settings.chat.max_participants = 1
    with client.websocket_connect("/ws/chat") as ws1:
        join(ws1, "alice")
        with pytest.raises(WebSocketDisconnect) as exc_info:
            with client.websocket_connect("/ws/chat"):
                pass
        assert exc_info.value.code == 1008


# =============================================================================
# HTTP endpoints
# =============================================================================


def test_history_endpoint_paginates(client):
    for i in range(1, 26):
        manager.room.post_system(f"announcement {i}")

    response = client.get("/chat/history")
    assert response.status_code == 200
    body = response.json()
    assert [m["content"] for m in body["messages"]] == [f"announcement {i}" for i in range(6, 26)]
    assert body["hasMore"] is True

    response = client.get("/chat/history", params={"before": body["messages"][0]["id"]})
    body = response.json()
    assert [m["id"] for m in body["messages"]] == ["1", "2", "3", "4", "5"]
    assert body["hasMore"] is False


def test_history_endpoint_unknown_cursor(client):
    manager.room.post_system("hello")
    body = client.get("/chat/history", params={"before": "nope"}).json()
    assert body == {"messages": [], "hasMore": False}


def test_users_endpoint(client):
    with client.websocket_connect("/ws/chat") as ws:
        join(ws, "zoe")
        ws.send_json({"type": "typing_start"})
        ws.receive_json()
        assert client.get("/chat/users").json() == {"users": ["zoe"], "typing": ["zoe"]}


def test_system_message_is_broadcast(client):
    with client.websocket_connect("/ws/chat") as ws:
        join(ws, "alice")
        response = client.post("/chat/system", json={"content": "Maintenance at noon"})
        assert response.status_code == 200
        assert response.json()["kind"] == "system"

        message = ws.receive_json()
        assert message["type"] == "message"
        assert message["author"] == "System"
        assert message["content"] == "Maintenance at noon"


def test_system_message_requires_content(client):
    assert client.post("/chat/system", json={"content": ""}).status_code == 422


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}
