"""Applies control-plane webhook events to the call registry.

Delivery from the provider is at-least-once and unordered, and may refer to
calls this process never tracked. Unknown calls and malformed payloads are
dropped after logging; they never fail the webhook.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from typing import Any

from calls.errors import MalformedEventError, SessionNotFoundError
from calls.events import ContentEvent, StatusEvent
from calls.registry import CallRegistry
from calls.schemas import RecordingEntry, TranscriptionEntry
from telephony.relay_hub import RelayHub

LOGGER = logging.getLogger(__name__)

EventParser = Callable[[Mapping[str, Any]], "StatusEvent | ContentEvent | None"]


class WebhookProcessor:
    def __init__(self, registry: CallRegistry, hub: RelayHub) -> None:
        self._registry = registry
        self._hub = hub

    async def handle_form(self, parse: EventParser, form: Mapping[str, Any]) -> bool:
        """Parse a raw callback form and process it. Returns True if state changed."""

        try:
            event = parse(form)
        except MalformedEventError as exc:
            LOGGER.warning("Dropping malformed webhook: %s", exc.detail)
            return False
        if event is None:
            return False
        return await self.process(event)

    async def process(self, event: StatusEvent | ContentEvent) -> bool:
        try:
            if isinstance(event, StatusEvent):
                return await self._apply_status(event)
            return self._apply_content(event)
        except SessionNotFoundError:
            LOGGER.info("Dropping %s event for untracked call %s", event.kind, event.call_id)
            return False

    async def _apply_status(self, event: StatusEvent) -> bool:
        LOGGER.info(
            "Call status update: %s is now %s",
            event.call_id,
            event.raw_status or event.status.value,
        )
        changed = self._registry.update_status(event.call_id, event.status)
        if changed and event.status.is_terminal:
            await self._hub.on_session_terminal(event.call_id, event.status.value)
        return changed

    def _apply_content(self, event: ContentEvent) -> bool:
        changed = False
        if event.text:
            changed = self._registry.append_transcription(
                event.call_id,
                TranscriptionEntry(text=event.text, source_id=event.source_id),
            )
        if event.recording_ref:
            changed = (
                self._registry.append_recording(
                    event.call_id,
                    RecordingEntry(url=event.recording_ref, source_id=event.source_id),
                )
                or changed
            )
        if not changed:
            LOGGER.info("Duplicate content %s for call %s ignored", event.source_id, event.call_id)
        return changed
