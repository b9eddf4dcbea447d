"""API-facing Pydantic models.

Field names follow the camelCase JSON the operator UI already speaks.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator

from calls.schemas import CallSession


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class InitiateCallRequest(_CamelModel):
    to: str = Field(min_length=1, description="E.164 phone number, e.g. +15551234567")

    @field_validator("to")
    @classmethod
    def strip_number(cls, value: str) -> str:
        number = value.strip()
        if not number:
            raise ValueError("Destination number may not be empty.")
        return number


class InitiateCallResponse(_CamelModel):
    success: bool = True
    call_sid: str = Field(alias="callSid")
    status: str
    to: str
    streaming_enabled: bool = Field(default=True, alias="streamingEnabled")
    websocket_url: str = Field(alias="websocketUrl")


class SpeakTextRequest(_CamelModel):
    call_sid: str = Field(alias="callSid", min_length=1)
    text: str = Field(min_length=1, max_length=4000)
    voice: str | None = Field(default="alice")
    rate: str | float | None = Field(default="1.0")

    @field_validator("text")
    @classmethod
    def text_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Text may not be empty.")
        return value


class SpeakTextResponse(_CamelModel):
    success: bool = True
    message: str = "Text spoken successfully"
    strategy: str
    voice: str
    rate: str


class EndCallRequest(_CamelModel):
    call_sid: str = Field(alias="callSid", min_length=1)


class EndCallResponse(_CamelModel):
    success: bool = True
    message: str = "Call ended successfully"
    status: str


class MessageView(_CamelModel):
    text: str
    escaped_text: str = Field(alias="escapedText")
    timestamp: datetime
    voice: str
    rate: str


class TranscriptionView(_CamelModel):
    text: str
    timestamp: datetime
    source_id: str | None = Field(default=None, alias="sourceId")


class RecordingView(_CamelModel):
    url: str
    timestamp: datetime
    source_id: str | None = Field(default=None, alias="sourceId")


class CallSessionView(_CamelModel):
    call_sid: str = Field(alias="callSid")
    to: str
    status: str
    is_active: bool = Field(alias="isActive")
    start_time: datetime = Field(alias="startTime")
    messages_sent: list[MessageView] = Field(alias="messagesSent")
    transcriptions: list[TranscriptionView] = Field(default_factory=list)
    recordings: list[RecordingView] = Field(default_factory=list)
    stream_active: bool = Field(alias="streamActive")
    stream_sid: str | None = Field(default=None, alias="streamSid")
    websocket_connected: bool = Field(alias="websocketConnected")

    @classmethod
    def from_session(cls, session: CallSession, *, websocket_connected: bool) -> CallSessionView:
        return cls(
            call_sid=session.id,
            to=session.destination,
            status=session.status.value,
            is_active=session.is_active,
            start_time=session.start_time,
            messages_sent=[
                MessageView(
                    text=m.text,
                    escaped_text=m.escaped_text,
                    timestamp=m.timestamp,
                    voice=m.voice,
                    rate=m.rate,
                )
                for m in session.messages_sent
            ],
            transcriptions=[
                TranscriptionView(text=t.text, timestamp=t.timestamp, source_id=t.source_id)
                for t in session.transcriptions
            ],
            recordings=[
                RecordingView(url=r.url, timestamp=r.timestamp, source_id=r.source_id)
                for r in session.recordings
            ],
            stream_active=session.stream_active,
            stream_sid=session.stream_sid,
            websocket_connected=websocket_connected,
        )


class CallStatusResponse(CallSessionView):
    success: bool = True
    streaming_enabled: bool = Field(default=True, alias="streamingEnabled")


class ActiveCallsResponse(_CamelModel):
    success: bool = True
    active_calls: list[CallSessionView] = Field(alias="activeCalls")
    websocket_connections: int = Field(alias="webSocketConnections")


class HealthResponse(_CamelModel):
    status: str
    timestamp: datetime
    environment: str
    base_url: str | None = Field(default=None, alias="baseUrl")
    twilio_configured: bool = Field(alias="twilioConfigured")
    tracked_calls: int = Field(alias="trackedCalls")
    websocket_connections: int = Field(alias="webSocketConnections")
    media_streams: int = Field(alias="mediaStreams")
