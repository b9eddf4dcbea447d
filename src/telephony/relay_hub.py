from __future__ import annotations

import asyncio
import base64
import logging
from dataclasses import dataclass, field
from typing import Any, Protocol

from calls.registry import CallRegistry

LOGGER = logging.getLogger(__name__)


class ListenerConnection(Protocol):
    """The part of a WebSocket the hub writes to."""

    async def send_json(self, data: Any) -> None:  # pragma: no cover - protocol stub
        ...


@dataclass(slots=True, eq=False)
class RelayBinding:
    call_id: str
    connection: ListenerConnection
    muted: bool = False
    closed: bool = False
    send_lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    in_flight: asyncio.Task[None] | None = None

    @property
    def busy(self) -> bool:
        return self.in_flight is not None and not self.in_flight.done()


class RelayHub:
    """Forwards live call audio from one producer to at most one listener per call.

    Bindings are non-owning: the hub never closes a listener connection. A
    newer join for the same call replaces the binding and the older
    connection simply stops receiving frames.

    Frames are never queued. A frame arriving while the previous one is still
    being written, or while nobody is listening, is dropped.
    """

    def __init__(self, registry: CallRegistry) -> None:
        self._registry = registry
        self._bindings: dict[str, RelayBinding] = {}
        self._producers: dict[str, str] = {}

    @property
    def listener_count(self) -> int:
        return len(self._bindings)

    @property
    def producer_count(self) -> int:
        return len(self._producers)

    def has_listener(self, call_id: str) -> bool:
        return call_id in self._bindings

    def binding_for(self, call_id: str) -> RelayBinding | None:
        return self._bindings.get(call_id)

    async def join(self, call_id: str, connection: ListenerConnection) -> RelayBinding | None:
        """Bind ``connection`` as the listener for ``call_id``.

        Joining a call the registry does not know yet is accepted; frames
        start flowing once the session exists and is active. If that session
        is never created, the binding lives until the listener disconnects and
        no ``call-ended`` is sent. Joining a call that has already ended is
        acknowledged and answered with ``call-ended`` without creating a
        binding.
        """

        session = None
        if call_id in self._registry:
            session = self._registry.get(call_id)

        if session is not None and not session.is_active:
            await _send(connection, {"type": "joined", "callId": call_id})
            await _send(
                connection,
                {"type": "call-ended", "callId": call_id, "status": session.status.value},
            )
            return None

        binding = RelayBinding(call_id=call_id, connection=connection)
        previous = self._bindings.get(call_id)
        self._bindings[call_id] = binding
        if previous is not None:
            previous.closed = True
            if previous.connection is not connection:
                LOGGER.info("Listener for call %s replaced by a newer join", call_id)

        LOGGER.info("Listener joined call %s", call_id)
        await _send(
            connection,
            {"type": "joined", "callId": call_id, "message": "Connected to live audio stream"},
        )
        return binding

    def set_muted(self, call_id: str, connection: ListenerConnection, muted: bool) -> bool:
        binding = self._bindings.get(call_id)
        if binding is None or binding.connection is not connection:
            return False
        binding.muted = muted
        return True

    async def on_producer_frame(self, call_id: str, payload: bytes) -> bool:
        """Hand one audio frame to the listener's writer.

        The write runs as its own task so a slow listener never holds up the
        producer. Returns True if the frame was handed off, False if it was
        dropped (no listener, muted, inactive call, or a write still pending).
        """

        binding = self._bindings.get(call_id)
        if binding is None or binding.muted or binding.busy:
            return False
        if not self._registry.is_active(call_id):
            return False

        binding.in_flight = asyncio.create_task(
            self._write_frame(binding, payload),
            name=f"relay-frame-{call_id}",
        )
        # Give the write its first step; a ready socket finishes here.
        await asyncio.sleep(0)
        return True

    async def _write_frame(self, binding: RelayBinding, payload: bytes) -> None:
        async with binding.send_lock:
            # Re-check after acquiring: teardown may have run in between.
            if binding.closed or not self._registry.is_active(binding.call_id):
                return
            message = {"type": "audio", "payload": base64.b64encode(payload).decode("ascii")}
            try:
                await binding.connection.send_json(message)
            except Exception as exc:  # connection went away mid-write
                LOGGER.debug(
                    "Dropping listener for call %s after send failure: %s", binding.call_id, exc
                )
                self._drop(binding.call_id, binding)

    async def on_session_terminal(self, call_id: str, status: str | None = None) -> bool:
        """Send ``call-ended`` to the bound listener, if any, and drop the binding.

        Returns True if a listener was notified.
        """

        self._producers.pop(call_id, None)
        binding = self._bindings.pop(call_id, None)
        if binding is None:
            return False
        # Closed before the notice so no frame can follow it.
        binding.closed = True

        notice: dict[str, Any] = {"type": "call-ended", "callId": call_id}
        if status:
            notice["status"] = status
        async with binding.send_lock:
            delivered = await _send(binding.connection, notice)
        LOGGER.info("Relay for call %s torn down", call_id)
        return delivered

    def on_listener_disconnect(self, call_id: str, connection: ListenerConnection) -> None:
        binding = self._bindings.get(call_id)
        if binding is None or binding.connection is not connection:
            return
        self._drop(call_id, binding)
        LOGGER.info("Listener left call %s", call_id)

    def attach_producer(self, call_id: str, stream_sid: str) -> bool:
        """Register the media stream feeding ``call_id``; only one at a time."""

        current = self._producers.get(call_id)
        if current is not None and current != stream_sid:
            LOGGER.warning(
                "Refusing second media stream %s for call %s (already fed by %s)",
                stream_sid,
                call_id,
                current,
            )
            return False
        self._producers[call_id] = stream_sid
        return True

    def detach_producer(self, call_id: str, stream_sid: str) -> None:
        if self._producers.get(call_id) == stream_sid:
            del self._producers[call_id]

    def is_producer(self, call_id: str, stream_sid: str) -> bool:
        return self._producers.get(call_id) == stream_sid

    def _drop(self, call_id: str, binding: RelayBinding) -> None:
        binding.closed = True
        if self._bindings.get(call_id) is binding:
            del self._bindings[call_id]


async def _send(connection: ListenerConnection, message: dict[str, Any]) -> bool:
    try:
        await connection.send_json(message)
    except Exception as exc:
        LOGGER.debug("Could not send %s to listener: %s", message.get("type"), exc)
        return False
    return True
