from __future__ import annotations

import base64
import binascii
import json
import logging
from typing import Any

from calls.registry import CallRegistry
from telephony.relay_hub import RelayHub

LOGGER = logging.getLogger(__name__)


class TwilioMediaStream:
    """One Twilio Media Streams connection feeding the relay hub.

    Twilio sends ``connected``, then ``start`` (naming the call), a run of
    ``media`` events with base64 mu-law payloads, and finally ``stop``.
    """

    def __init__(self, hub: RelayHub, registry: CallRegistry) -> None:
        self._hub = hub
        self._registry = registry
        self.call_id: str | None = None
        self.stream_sid: str | None = None

    @property
    def attached(self) -> bool:
        return (
            self.call_id is not None
            and self.stream_sid is not None
            and self._hub.is_producer(self.call_id, self.stream_sid)
        )

    async def handle_event(self, message: dict[str, Any]) -> bool:
        """Apply one stream event. Returns False when the stream should be closed."""

        event = str(message.get("event") or "")
        if event == "start":
            return self._start(message)
        if event == "media":
            await self._media(message)
            return True
        if event == "stop":
            self.close()
            return False
        return True

    def _start(self, message: dict[str, Any]) -> bool:
        start = message.get("start") or {}
        call_id = str(start.get("callSid") or "").strip()
        stream_sid = str(start.get("streamSid") or message.get("streamSid") or "").strip()
        if not call_id or not stream_sid:
            LOGGER.warning("Media stream start without callSid/streamSid; closing")
            return False
        if not self._hub.attach_producer(call_id, stream_sid):
            return False

        self.call_id = call_id
        self.stream_sid = stream_sid
        if call_id in self._registry:
            self._registry.set_stream(call_id, stream_sid)
        LOGGER.info("Media stream %s started for call %s", stream_sid, call_id)
        return True

    async def _media(self, message: dict[str, Any]) -> None:
        if not self.attached:
            return
        media = message.get("media") or {}
        if media.get("track") and media.get("track") != "inbound":
            return
        payload = media.get("payload")
        if not isinstance(payload, str) or not payload:
            return
        try:
            frame = base64.b64decode(payload, validate=True)
        except binascii.Error:
            LOGGER.debug("Skipping media event with invalid base64 payload")
            return
        await self._hub.on_producer_frame(self.call_id, frame)

    def close(self) -> None:
        if self.call_id is None or self.stream_sid is None:
            return
        if self._hub.is_producer(self.call_id, self.stream_sid):
            self._hub.detach_producer(self.call_id, self.stream_sid)
            if self.call_id in self._registry:
                self._registry.set_stream(self.call_id, None)
            LOGGER.info("Media stream %s for call %s stopped", self.stream_sid, self.call_id)


def parse_twilio_ws_message(text: str) -> dict[str, Any]:
    message = json.loads(text)
    if not isinstance(message, dict):
        raise ValueError("Media stream message is not a JSON object")
    return message
