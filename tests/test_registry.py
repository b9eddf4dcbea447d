from __future__ import annotations

import pytest

from calls.errors import DuplicateSessionError, SessionInactiveError, SessionNotFoundError
from calls.registry import CallRegistry
from calls.schemas import (
    CallStatus,
    MessageEntry,
    RecordingEntry,
    TranscriptionEntry,
    normalize_provider_status,
)


def _message(text: str = "hi") -> MessageEntry:
    return MessageEntry(text=text, escaped_text=text, voice="alice", rate="1.0")


def test_create_starts_initiated_and_active():
    registry = CallRegistry()
    session = registry.create("CA1", "+15551234567")

    assert session.status is CallStatus.INITIATED
    assert session.is_active
    assert session.messages_sent == []
    assert session.transcriptions == []
    assert session.recordings == []


def test_create_rejects_duplicate_id():
    registry = CallRegistry()
    registry.create("CA1", "+15551234567")

    with pytest.raises(DuplicateSessionError):
        registry.create("CA1", "+15550000000")
    assert registry.get("CA1").destination == "+15551234567"


@pytest.mark.parametrize("call_id", ["CA-never", "", "ca1"])
def test_get_unknown_call_raises_not_found(call_id):
    registry = CallRegistry()
    registry.create("CA1", "+15551234567")

    with pytest.raises(SessionNotFoundError):
        registry.get(call_id)


def test_update_status_unknown_call_raises_not_found():
    with pytest.raises(SessionNotFoundError):
        CallRegistry().update_status("CA404", CallStatus.RINGING)


@pytest.mark.parametrize("status", list(CallStatus))
def test_is_active_tracks_terminal_statuses(status):
    registry = CallRegistry()
    registry.create("CA1", "+15551234567")
    registry.update_status("CA1", status)

    session = registry.get("CA1")
    assert session.status is status
    assert session.is_active is (status not in {CallStatus.COMPLETED, CallStatus.FAILED, CallStatus.CANCELED})


def test_out_of_order_statuses_never_regress():
    registry = CallRegistry()
    registry.create("CA1", "+15551234567")

    assert registry.update_status("CA1", CallStatus.RINGING) is True
    assert registry.update_status("CA1", CallStatus.INITIATED) is False
    assert registry.update_status("CA1", CallStatus.IN_PROGRESS) is True
    assert registry.update_status("CA1", CallStatus.RINGING) is False

    session = registry.get("CA1")
    assert session.status is CallStatus.IN_PROGRESS
    assert session.is_active


def test_terminal_status_is_absorbing_and_idempotent():
    registry = CallRegistry()
    registry.create("CA1", "+15551234567")
    registry.update_status("CA1", CallStatus.IN_PROGRESS)

    assert registry.update_status("CA1", CallStatus.COMPLETED) is True
    assert registry.update_status("CA1", CallStatus.COMPLETED) is False
    assert registry.update_status("CA1", CallStatus.FAILED) is False
    assert registry.update_status("CA1", CallStatus.IN_PROGRESS) is False
    assert registry.get("CA1").status is CallStatus.COMPLETED
    assert not registry.is_active("CA1")


def test_append_message_rejected_once_inactive():
    registry = CallRegistry()
    registry.create("CA1", "+15551234567")
    registry.append_message("CA1", _message("first"))
    registry.update_status("CA1", CallStatus.CANCELED)

    with pytest.raises(SessionInactiveError):
        registry.append_message("CA1", _message("late"))
    assert [m.text for m in registry.get("CA1").messages_sent] == ["first"]


def test_append_message_unknown_call_raises_not_found():
    with pytest.raises(SessionNotFoundError):
        CallRegistry().append_message("CA404", _message())


def test_content_is_accepted_after_termination():
    registry = CallRegistry()
    registry.create("CA1", "+15551234567")
    registry.update_status("CA1", CallStatus.COMPLETED)

    assert registry.append_transcription("CA1", TranscriptionEntry(text="tail", source_id="TR1"))
    assert registry.append_recording("CA1", RecordingEntry(url="https://rec/1", source_id="RE1"))

    session = registry.get("CA1")
    assert [t.text for t in session.transcriptions] == ["tail"]
    assert [r.url for r in session.recordings] == ["https://rec/1"]


def test_content_with_source_id_is_deduplicated():
    registry = CallRegistry()
    registry.create("CA1", "+15551234567")

    assert registry.append_transcription("CA1", TranscriptionEntry(text="hello", source_id="TR1"))
    assert not registry.append_transcription("CA1", TranscriptionEntry(text="hello", source_id="TR1"))
    # Same id on a different content kind is a different item.
    assert registry.append_recording("CA1", RecordingEntry(url="https://rec/1", source_id="TR1"))

    assert len(registry.get("CA1").transcriptions) == 1


def test_content_without_source_id_is_appended_every_time():
    registry = CallRegistry()
    registry.create("CA1", "+15551234567")

    registry.append_transcription("CA1", TranscriptionEntry(text="again"))
    registry.append_transcription("CA1", TranscriptionEntry(text="again"))

    assert len(registry.get("CA1").transcriptions) == 2


def test_snapshots_are_detached_from_registry_state():
    registry = CallRegistry()
    registry.create("CA1", "+15551234567")
    snapshot = registry.get("CA1")

    snapshot.messages_sent.append(_message("forged"))
    snapshot.status = CallStatus.COMPLETED

    session = registry.get("CA1")
    assert session.messages_sent == []
    assert session.is_active


def test_list_returns_every_tracked_call():
    registry = CallRegistry()
    registry.create("CA1", "+15551234567")
    registry.create("CA2", "+15557654321")
    registry.update_status("CA2", CallStatus.FAILED)

    listed = {s.id: s for s in registry.list()}
    assert set(listed) == {"CA1", "CA2"}
    assert listed["CA1"].is_active and not listed["CA2"].is_active


def test_stream_flags_follow_stream_and_termination():
    registry = CallRegistry()
    registry.create("CA1", "+15551234567")

    registry.set_stream("CA1", "MZ1")
    assert registry.get("CA1").stream_active
    assert registry.get("CA1").stream_sid == "MZ1"

    registry.update_status("CA1", CallStatus.COMPLETED)
    assert not registry.get("CA1").stream_active


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("queued", CallStatus.INITIATED),
        ("in-progress", CallStatus.IN_PROGRESS),
        ("answered", CallStatus.IN_PROGRESS),
        ("busy", CallStatus.FAILED),
        ("no-answer", CallStatus.FAILED),
        ("Canceled", CallStatus.CANCELED),
        ("exploded", None),
    ],
)
def test_normalize_provider_status(raw, expected):
    assert normalize_provider_status(raw) is expected
