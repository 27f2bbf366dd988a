"""Chat router providing the matchmaking WebSocket endpoint.

Protocol Message Types (client -> server, JSON with a ``type`` field):
    - enter-state: Ask to be matched
    - chat-message: Send ``message`` to the current partner
    - restart-connect: Leave the current partner and find a new one
    - report-disconnected: Report the current partner (``roomId``, ``reasons``)
    - session-action: ``action`` is ``reset`` or ``background``
    - user-disconnect: Leave matching without closing the connection

Server -> client types: set-nickname, wait-state, chat-ready, chat-message,
chat-end, warning-message, ban, session-expired, system-message.
"""
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from . import messages
from .engine import get_engine
from .participant import client_address

logger = logging.getLogger(__name__)

router = APIRouter()


@router.websocket("/ws/chat")
async def websocket_chat_endpoint(websocket: WebSocket) -> None:
    """WebSocket endpoint driving one participant through the engine.

    Events from one connection are handled strictly in arrival order; each
    handler runs to completion before the next frame is read.
    """
    engine = get_engine()
    await websocket.accept()
    participant = await engine.connect(websocket, client_address(websocket.headers, websocket.client))
    logger.info(f"[WS] New connection: {participant.id} [IP:{participant.peer_address}]")

    try:
        while participant.connected:
            data = await websocket.receive_json()
            if not isinstance(data, dict):
                continue
            event = data.get("type")
            logger.debug("[WS] %s received: type=%s", participant.id, event)

            if event == "enter-state":
                await engine.enter(participant)
            elif event == "chat-message":
                await engine.chat_message(participant, str(data.get("message", "")))
            elif event == "restart-connect":
                await engine.restart(participant)
            elif event == "report-disconnected":
                await engine.report_in_room(participant, data.get("roomId"), data.get("reasons"))
            elif event == "session-action":
                await engine.session_action(participant, data.get("action", ""))
            elif event == "user-disconnect":
                await engine.user_disconnect(participant)
            else:
                await participant.send(
                    messages.SYSTEM_MESSAGE,
                    message=messages.UNKNOWN_EVENT.format(event=event),
                    messageType=messages.ERROR,
                )

    except WebSocketDisconnect:
        logger.info(f"[WS] IP: {participant.address or participant.peer_address} connection closed")
    except RuntimeError as exc:
        # Raised by receive after the server side has already closed the socket.
        logger.debug(f"[WS] Receive after close for {participant.id}: {exc}")
    finally:
        await engine.disconnect(participant)
