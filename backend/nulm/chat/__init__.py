"""Anonymous one-on-one chat: participants, the chat engine and its WebSocket endpoint."""
