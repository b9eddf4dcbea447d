"""Listener WebSocket: the operator's browser subscribes to a call's live audio."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect

from api.dependencies import get_relay_hub
from calls.errors import MalformedEventError
from calls.events import JoinCallMessage, MuteMessage, parse_listener_message
from telephony.relay_hub import RelayHub

LOGGER = logging.getLogger(__name__)

router = APIRouter(tags=["relay"])


@router.websocket("/media-stream")
async def listener_stream(websocket: WebSocket, hub: RelayHub = Depends(get_relay_hub)) -> None:
    await websocket.accept()
    LOGGER.info("New listener WebSocket connection established")
    call_id: str | None = None
    try:
        while True:
            text = await websocket.receive_text()
            try:
                message = parse_listener_message(text)
            except MalformedEventError as exc:
                LOGGER.warning("Ignoring listener message: %s", exc.detail)
                continue

            if isinstance(message, JoinCallMessage):
                if call_id is not None and call_id != message.call_id:
                    hub.on_listener_disconnect(call_id, websocket)
                binding = await hub.join(message.call_id, websocket)
                call_id = message.call_id if binding is not None else None
            elif call_id is not None:
                hub.set_muted(call_id, websocket, isinstance(message, MuteMessage))
    except WebSocketDisconnect:
        pass
    finally:
        if call_id is not None:
            hub.on_listener_disconnect(call_id, websocket)
