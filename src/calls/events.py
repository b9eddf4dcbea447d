"""Inbound event models.

Provider webhooks and listener socket messages are validated here, at the
boundary, into a closed set of variants. Anything that does not fit raises
``MalformedEventError``.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from typing import Annotated, Any, Literal, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, model_validator

from calls.errors import MalformedEventError
from calls.schemas import CallStatus, normalize_provider_status


class StatusEvent(BaseModel):
    """Lifecycle transition reported by the control plane."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["status"] = "status"
    call_id: str = Field(min_length=1)
    status: CallStatus
    raw_status: str | None = None


class ContentEvent(BaseModel):
    """Transcription text or recording reference for a call."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["content"] = "content"
    call_id: str = Field(min_length=1)
    text: str | None = None
    recording_ref: str | None = None
    source_id: str | None = None

    @model_validator(mode="after")
    def has_payload(self) -> ContentEvent:
        if not self.text and not self.recording_ref:
            raise ValueError("Content event carries neither text nor a recording reference.")
        return self


def _field(form: Mapping[str, Any], name: str) -> str | None:
    value = form.get(name)
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def status_event_from_form(form: Mapping[str, Any]) -> StatusEvent:
    """Build a status event from a Twilio status callback form."""

    call_id = _field(form, "CallSid")
    raw_status = _field(form, "CallStatus")
    if not call_id or not raw_status:
        raise MalformedEventError("Status callback is missing CallSid or CallStatus.")
    status = normalize_provider_status(raw_status)
    if status is None:
        raise MalformedEventError(f"Unknown call status: {raw_status}")
    return StatusEvent(call_id=call_id, status=status, raw_status=raw_status)


def transcription_event_from_form(form: Mapping[str, Any]) -> ContentEvent | None:
    """Build a content event from a Twilio transcription callback form.

    Handles both the classic recording transcription callback
    (``TranscriptionText``) and real-time ``<Transcription>`` callbacks, whose
    text sits in the ``TranscriptionData`` JSON. Real-time lifecycle events
    (started, stopped) carry no content and yield None.
    """

    text = _field(form, "TranscriptionText")
    source_id = _field(form, "TranscriptionSid")

    realtime_event = _field(form, "TranscriptionEvent")
    if realtime_event is not None:
        if realtime_event != "transcription-content":
            return None
        try:
            data = json.loads(_field(form, "TranscriptionData") or "{}")
        except json.JSONDecodeError as exc:
            raise MalformedEventError("TranscriptionData is not valid JSON.") from exc
        if not isinstance(data, dict):
            raise MalformedEventError("TranscriptionData is not a JSON object.")
        text = str(data.get("transcript") or "").strip() or None
        sequence = _field(form, "SequenceId")
        if source_id and sequence:
            source_id = f"{source_id}:{sequence}"

    try:
        return ContentEvent(
            call_id=_field(form, "CallSid") or "",
            text=text,
            source_id=source_id,
        )
    except ValidationError as exc:
        raise MalformedEventError(f"Invalid transcription callback: {exc.errors()[0]['msg']}") from exc


def recording_event_from_form(form: Mapping[str, Any]) -> ContentEvent:
    """Build a content event from a Twilio recording status callback form."""

    try:
        return ContentEvent(
            call_id=_field(form, "CallSid") or "",
            recording_ref=_field(form, "RecordingUrl"),
            source_id=_field(form, "RecordingSid"),
        )
    except ValidationError as exc:
        raise MalformedEventError(f"Invalid recording callback: {exc.errors()[0]['msg']}") from exc


# Listener socket messages


class JoinCallMessage(BaseModel):
    type: Literal["join-call"]
    call_id: str = Field(min_length=1, validation_alias=AliasChoices("callId", "callSid", "call_id"))


class MuteMessage(BaseModel):
    type: Literal["mute"]


class UnmuteMessage(BaseModel):
    type: Literal["unmute"]


ListenerMessage = Annotated[
    Union[JoinCallMessage, MuteMessage, UnmuteMessage],
    Field(discriminator="type"),
]

_LISTENER_MESSAGE = TypeAdapter(ListenerMessage)


def parse_listener_message(text: str) -> JoinCallMessage | MuteMessage | UnmuteMessage:
    try:
        return _LISTENER_MESSAGE.validate_json(text)
    except ValidationError as exc:
        raise MalformedEventError(f"Invalid listener message: {exc.errors()[0]['msg']}") from exc
