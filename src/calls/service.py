"""Operator commands that span the control plane, the registry and the relay."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from calls.errors import ControlPlaneError
from calls.registry import CallRegistry
from calls.schemas import CallSession, CallStatus
from integrations.control_plane import ControlPlane
from integrations.twiml import to_ws_url, twiml_goodbye
from telephony.relay_hub import RelayHub

LOGGER = logging.getLogger(__name__)

STATUS_CALLBACK_EVENTS = ("initiated", "ringing", "answered", "completed")


@dataclass(frozen=True)
class CallbackUrls:
    """Public URLs the carrier and the operator's browser connect back to."""

    base_url: str

    @property
    def outgoing_call(self) -> str:
        return f"{self.base_url}/api/twilio/outgoing-call"

    @property
    def continue_call(self) -> str:
        return f"{self.base_url}/api/twilio/continue-call"

    @property
    def status(self) -> str:
        return f"{self.base_url}/api/twilio/status"

    @property
    def recording(self) -> str:
        return f"{self.base_url}/api/twilio/recording"

    @property
    def transcription(self) -> str:
        return f"{self.base_url}/api/twilio/transcription"

    @property
    def producer_stream(self) -> str:
        return to_ws_url(f"{self.base_url}/api/twilio/stream")

    @property
    def listener_stream(self) -> str:
        return to_ws_url(f"{self.base_url}/media-stream")


class CallService:
    def __init__(
        self,
        registry: CallRegistry,
        hub: RelayHub,
        control_plane: ControlPlane,
        urls: CallbackUrls,
        *,
        goodbye_text: str,
        voice: str = "alice",
        record_calls: bool = False,
    ) -> None:
        self._registry = registry
        self._hub = hub
        self._control_plane = control_plane
        self._urls = urls
        self._goodbye_text = goodbye_text
        self._voice = voice
        self._record_calls = record_calls

    @property
    def urls(self) -> CallbackUrls:
        return self._urls

    async def create_session(self, destination: str) -> CallSession:
        """Place the call, then start tracking it.

        A rejected call raises ``ControlPlaneError`` before anything is
        recorded, so failed attempts leave no session behind.
        """

        LOGGER.info("Initiating call to %s", destination)
        handle = await self._control_plane.create_call(
            destination,
            url=self._urls.outgoing_call,
            status_callback=self._urls.status,
            status_events=STATUS_CALLBACK_EVENTS,
            recording_callback=self._urls.recording if self._record_calls else None,
        )
        session = self._registry.create(handle.sid, destination)
        LOGGER.info("Call %s initiated (provider status %s)", handle.sid, handle.status)
        return session

    async def end_session(self, call_id: str) -> CallSession:
        """Hang up a call and tear down its relay.

        The hangup directive may fail if the far end already hung up; that is
        logged and the session is ended locally regardless.
        """

        session = self._registry.get(call_id)
        LOGGER.info("Ending call %s", call_id)

        if session.is_active:
            try:
                await self._control_plane.update_call(
                    call_id, twiml=twiml_goodbye(self._goodbye_text, voice=self._voice)
                )
            except ControlPlaneError as exc:
                LOGGER.info("Call %s may have already ended: %s", call_id, exc.detail)

        # Re-read: a status webhook may have ended the call while we awaited.
        if self._registry.update_status(call_id, CallStatus.COMPLETED):
            await self._hub.on_session_terminal(call_id, CallStatus.COMPLETED.value)
        return self._registry.get(call_id)
