"""Call session records and lifecycle statuses."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum


class CallStatus(str, Enum):
    INITIATED = "initiated"
    RINGING = "ringing"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELED = "canceled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES

    @property
    def rank(self) -> int:
        """Position in the lifecycle; every terminal status shares the last rank."""

        return _STATUS_RANK[self]


TERMINAL_STATUSES = frozenset({CallStatus.COMPLETED, CallStatus.FAILED, CallStatus.CANCELED})

_STATUS_RANK = {
    CallStatus.INITIATED: 0,
    CallStatus.RINGING: 1,
    CallStatus.IN_PROGRESS: 2,
    CallStatus.COMPLETED: 3,
    CallStatus.FAILED: 3,
    CallStatus.CANCELED: 3,
}

# Twilio reports a few more statuses than the lifecycle tracks.
_PROVIDER_STATUS_ALIASES = {
    "queued": CallStatus.INITIATED,
    "initiated": CallStatus.INITIATED,
    "ringing": CallStatus.RINGING,
    "answered": CallStatus.IN_PROGRESS,
    "in-progress": CallStatus.IN_PROGRESS,
    "in_progress": CallStatus.IN_PROGRESS,
    "completed": CallStatus.COMPLETED,
    "busy": CallStatus.FAILED,
    "no-answer": CallStatus.FAILED,
    "failed": CallStatus.FAILED,
    "canceled": CallStatus.CANCELED,
    "cancelled": CallStatus.CANCELED,
}


def normalize_provider_status(raw: str) -> CallStatus | None:
    """Map a provider status string onto the tracked lifecycle, or None if unknown."""

    return _PROVIDER_STATUS_ALIASES.get((raw or "").strip().lower())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True, slots=True)
class MessageEntry:
    text: str
    escaped_text: str
    voice: str
    rate: str
    timestamp: datetime = field(default_factory=utcnow)


@dataclass(frozen=True, slots=True)
class TranscriptionEntry:
    text: str
    source_id: str | None = None
    timestamp: datetime = field(default_factory=utcnow)


@dataclass(frozen=True, slots=True)
class RecordingEntry:
    url: str
    source_id: str | None = None
    timestamp: datetime = field(default_factory=utcnow)


@dataclass(slots=True)
class CallSession:
    id: str
    destination: str
    status: CallStatus = CallStatus.INITIATED
    start_time: datetime = field(default_factory=utcnow)
    messages_sent: list[MessageEntry] = field(default_factory=list)
    transcriptions: list[TranscriptionEntry] = field(default_factory=list)
    recordings: list[RecordingEntry] = field(default_factory=list)
    stream_active: bool = False
    stream_sid: str | None = None

    @property
    def is_active(self) -> bool:
        return not self.status.is_terminal

    def snapshot(self) -> CallSession:
        """Return a copy whose lists are detached from this record."""

        return replace(
            self,
            messages_sent=list(self.messages_sent),
            transcriptions=list(self.transcriptions),
            recordings=list(self.recordings),
        )
