"""In-memory registry of call sessions.

The registry is the only owner of ``CallSession`` records. Everything else
reads snapshots through ``get``/``list`` and mutates through the methods
below. All methods are synchronous and never await, so on a single event
loop each call is atomic with respect to other coroutines.
"""

from __future__ import annotations

import logging

from calls.errors import DuplicateSessionError, SessionInactiveError, SessionNotFoundError
from calls.schemas import (
    CallSession,
    CallStatus,
    MessageEntry,
    RecordingEntry,
    TranscriptionEntry,
)

LOGGER = logging.getLogger(__name__)


class CallRegistry:
    """Single-process store of call lifecycle state.

    Note: state lives only as long as the process. For multi-worker
    deployments this would need a shared store.
    """

    def __init__(self) -> None:
        self._sessions: dict[str, CallSession] = {}
        self._seen_content: dict[str, set[tuple[str, str]]] = {}

    def __contains__(self, call_id: object) -> bool:
        return call_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)

    def create(self, call_id: str, destination: str) -> CallSession:
        if call_id in self._sessions:
            raise DuplicateSessionError(call_id)
        session = CallSession(id=call_id, destination=destination)
        self._sessions[call_id] = session
        self._seen_content[call_id] = set()
        LOGGER.info("Tracking call %s to %s", call_id, destination)
        return session.snapshot()

    def get(self, call_id: str) -> CallSession:
        return self._require(call_id).snapshot()

    def list(self) -> list[CallSession]:
        return [session.snapshot() for session in self._sessions.values()]

    def is_active(self, call_id: str) -> bool:
        """Cheap check used on the media path; unknown calls are not active."""

        session = self._sessions.get(call_id)
        return session is not None and session.is_active

    def update_status(self, call_id: str, status: CallStatus) -> bool:
        """Move a call forward in its lifecycle.

        Returns True if the status changed. Repeats, regressions to an earlier
        stage and any change after a terminal status are ignored.
        """

        session = self._require(call_id)
        current = session.status
        if current.is_terminal or status.rank <= current.rank:
            if status is not current:
                LOGGER.info(
                    "Ignoring status %s for call %s (already %s)",
                    status.value,
                    call_id,
                    current.value,
                )
            return False

        session.status = status
        if status.is_terminal:
            session.stream_active = False
        LOGGER.info("Call %s is now %s", call_id, status.value)
        return True

    def set_stream(self, call_id: str, stream_sid: str | None) -> None:
        session = self._require(call_id)
        session.stream_sid = stream_sid
        session.stream_active = stream_sid is not None and session.is_active

    def append_message(self, call_id: str, entry: MessageEntry) -> None:
        session = self._require(call_id)
        if not session.is_active:
            raise SessionInactiveError(call_id, session.status.value)
        session.messages_sent.append(entry)

    # Content from the provider may race the terminal status webhook, so it is
    # accepted on ended calls too.

    def append_transcription(self, call_id: str, entry: TranscriptionEntry) -> bool:
        session = self._require(call_id)
        if not self._first_sighting(call_id, "transcription", entry.source_id):
            return False
        session.transcriptions.append(entry)
        return True

    def append_recording(self, call_id: str, entry: RecordingEntry) -> bool:
        session = self._require(call_id)
        if not self._first_sighting(call_id, "recording", entry.source_id):
            return False
        session.recordings.append(entry)
        return True

    def _first_sighting(self, call_id: str, kind: str, source_id: str | None) -> bool:
        if source_id is None:
            return True
        seen = self._seen_content[call_id]
        if (kind, source_id) in seen:
            return False
        seen.add((kind, source_id))
        return True

    def _require(self, call_id: str) -> CallSession:
        session = self._sessions.get(call_id)
        if session is None:
            raise SessionNotFoundError(call_id)
        return session
