"""Single-room chat: room state machine and its WebSocket transport."""
