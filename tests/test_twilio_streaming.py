from __future__ import annotations

import asyncio
import base64
import json

import pytest
from fakes import FakeListener

from calls.schemas import CallStatus
from integrations.twilio_streaming import TwilioMediaStream, parse_twilio_ws_message


def _start(call_id: str = "CA1", stream_sid: str = "MZ1") -> dict:
    return {
        "event": "start",
        "streamSid": stream_sid,
        "start": {"callSid": call_id, "streamSid": stream_sid, "tracks": ["inbound"]},
    }


def _media(frame: bytes, track: str = "inbound") -> dict:
    return {
        "event": "media",
        "streamSid": "MZ1",
        "media": {"track": track, "payload": base64.b64encode(frame).decode("ascii")},
    }


@pytest.fixture()
def live(registry, hub):
    registry.create("CA1", "+15551234567")
    registry.update_status("CA1", CallStatus.IN_PROGRESS)
    listener = FakeListener()
    asyncio.run(hub.join("CA1", listener))
    return listener


def test_start_attaches_producer_and_flags_the_session(registry, hub, live):
    stream = TwilioMediaStream(hub, registry)

    assert asyncio.run(stream.handle_event({"event": "connected", "protocol": "Call"})) is True
    assert asyncio.run(stream.handle_event(_start())) is True

    assert stream.attached
    session = registry.get("CA1")
    assert session.stream_active
    assert session.stream_sid == "MZ1"


def test_inbound_media_is_forwarded_as_raw_frames(registry, hub, live):
    stream = TwilioMediaStream(hub, registry)

    async def scenario():
        await stream.handle_event(_start())
        await stream.handle_event(_media(b"\xff\x7f\x00"))
        await stream.handle_event(_media(b"outbound", track="outbound"))

    asyncio.run(scenario())
    assert [base64.b64decode(f["payload"]) for f in live.frames] == [b"\xff\x7f\x00"]


def test_media_before_start_or_with_bad_payload_is_skipped(registry, hub, live):
    stream = TwilioMediaStream(hub, registry)

    async def scenario():
        await stream.handle_event(_media(b"early"))
        await stream.handle_event(_start())
        await stream.handle_event({"event": "media", "media": {"track": "inbound", "payload": "not base64!"}})
        await stream.handle_event({"event": "media", "media": {"track": "inbound"}})

    asyncio.run(scenario())
    assert live.frames == []


def test_stop_detaches_and_clears_stream_flag(registry, hub, live):
    stream = TwilioMediaStream(hub, registry)

    async def scenario():
        await stream.handle_event(_start())
        return await stream.handle_event({"event": "stop", "streamSid": "MZ1"})

    assert asyncio.run(scenario()) is False
    assert not stream.attached
    assert hub.producer_count == 0
    assert not registry.get("CA1").stream_active


def test_second_stream_for_same_call_is_refused(registry, hub, live):
    first = TwilioMediaStream(hub, registry)
    second = TwilioMediaStream(hub, registry)

    async def scenario():
        assert await first.handle_event(_start(stream_sid="MZ1"))
        assert not await second.handle_event(_start(stream_sid="MZ2"))
        second.close()

    asyncio.run(scenario())
    assert hub.is_producer("CA1", "MZ1")
    assert registry.get("CA1").stream_sid == "MZ1"


def test_start_without_call_sid_closes_the_stream(registry, hub):
    stream = TwilioMediaStream(hub, registry)

    assert asyncio.run(stream.handle_event({"event": "start", "start": {"streamSid": "MZ1"}})) is False
    assert hub.producer_count == 0


def test_stream_for_untracked_call_still_attaches(registry, hub):
    stream = TwilioMediaStream(hub, registry)

    assert asyncio.run(stream.handle_event(_start(call_id="CA-unknown"))) is True
    assert hub.is_producer("CA-unknown", "MZ1")
    assert "CA-unknown" not in registry


def test_parse_twilio_ws_message():
    assert parse_twilio_ws_message(json.dumps({"event": "connected"})) == {"event": "connected"}
    with pytest.raises(ValueError):
        parse_twilio_ws_message("[1, 2]")
    with pytest.raises(ValueError):
        parse_twilio_ws_message("{broken")
