from __future__ import annotations

import asyncio
import xml.etree.ElementTree as ET

import pytest
from fakes import FakeControlPlane

from calls.errors import SessionInactiveError, SessionNotFoundError, SpeakDeliveryError
from calls.registry import CallRegistry
from calls.schemas import CallStatus
from integrations.twiml import escape_text
from speech.injection import InBandStrategy, MessageInjectionPipeline, SideChannelStrategy
from speech.voices import normalize_rate, normalize_voice

CONTINUE_URL = "https://relay.example.com/api/twilio/continue-call"


def _pipeline(registry: CallRegistry, control_plane: FakeControlPlane) -> MessageInjectionPipeline:
    return MessageInjectionPipeline(
        registry,
        [
            SideChannelStrategy(control_plane),
            InBandStrategy(control_plane, continue_url=CONTINUE_URL, timeout=300),
        ],
    )


@pytest.fixture()
def live_call(registry):
    registry.create("CA1", "+15551234567")
    registry.update_status("CA1", CallStatus.IN_PROGRESS)
    return registry


def test_side_channel_success_leaves_primary_call_untouched(live_call, control_plane):
    result = asyncio.run(_pipeline(live_call, control_plane).speak("CA1", "Hello", "alice", "1.0"))

    assert result.delivered_by.strategy == "side-channel"
    assert [a.strategy for a in result.attempts] == ["side-channel"]
    assert control_plane.updated == []
    leg = control_plane.side_channel_legs[0]
    assert leg["to"] == "+15551234567"
    assert "<Say voice=\"alice\">Hello</Say>" in leg["twiml"]
    assert "<Gather" not in leg["twiml"]
    assert len(live_call.get("CA1").messages_sent) == 1


def test_fallback_to_in_band_when_side_channel_fails(live_call, control_plane):
    control_plane.fail_side_channel = True

    result = asyncio.run(_pipeline(live_call, control_plane).speak("CA1", "Hello <there>"))

    assert result.delivered_by.strategy == "in-band"
    assert [(a.strategy, a.ok) for a in result.attempts] == [("side-channel", False), ("in-band", True)]
    assert len(control_plane.updated) == 1
    assert control_plane.side_channel_legs == []

    call_id, twiml = control_plane.updated[0]
    assert call_id == "CA1"
    assert "Hello &lt;there&gt;" in twiml
    assert f"action=\"{CONTINUE_URL}\"" in twiml

    messages = live_call.get("CA1").messages_sent
    assert len(messages) == 1
    assert messages[0].text == "Hello <there>"
    assert messages[0].escaped_text == "Hello &lt;there&gt;"


def test_both_strategies_failing_reports_each_cause_and_records_nothing(live_call, control_plane):
    control_plane.fail_side_channel = True
    control_plane.fail_updates = True

    with pytest.raises(SpeakDeliveryError) as exc_info:
        asyncio.run(_pipeline(live_call, control_plane).speak("CA1", "Hello"))

    err = exc_info.value
    assert "side-channel: Side leg rejected" in err.detail
    assert "in-band: Call is not in-progress" in err.detail
    assert err.code == 21220
    assert [o.strategy for o in err.outcomes] == ["side-channel", "in-band"]
    assert live_call.get("CA1").messages_sent == []


def test_speak_unknown_call_raises_not_found(registry, control_plane):
    with pytest.raises(SessionNotFoundError):
        asyncio.run(_pipeline(registry, control_plane).speak("CA404", "Hello"))
    assert control_plane.created == []


def test_speak_ended_call_raises_inactive_without_contacting_provider(live_call, control_plane):
    live_call.update_status("CA1", CallStatus.COMPLETED)

    with pytest.raises(SessionInactiveError):
        asyncio.run(_pipeline(live_call, control_plane).speak("CA1", "Hello"))
    assert control_plane.created == []
    assert control_plane.updated == []


def test_call_ending_mid_delivery_rejects_the_record_after_speaking(live_call, control_plane, caplog):
    control_plane.during_create = lambda: live_call.update_status("CA1", CallStatus.COMPLETED)

    with caplog.at_level("WARNING", logger="speech.injection"):
        with pytest.raises(SessionInactiveError):
            asyncio.run(_pipeline(live_call, control_plane).speak("CA1", "Goodbye soon"))

    # The side leg was placed, so the text was spoken, but nothing is recorded.
    assert len(control_plane.side_channel_legs) == 1
    assert live_call.get("CA1").messages_sent == []
    assert "ended while its message was being delivered" in caplog.text


def test_speak_rejects_blank_text(live_call, control_plane):
    with pytest.raises(ValueError):
        asyncio.run(_pipeline(live_call, control_plane).speak("CA1", "   "))


def test_voice_hint_and_rate_are_normalized_into_the_record(live_call, control_plane):
    result = asyncio.run(
        _pipeline(live_call, control_plane).speak("CA1", "Hi", "Google UK English Female", "1.5")
    )

    assert result.entry.voice == "woman"
    assert result.entry.rate == "1.5"
    assert "<prosody rate=\"150%\">Hi</prosody>" in control_plane.side_channel_legs[0]["twiml"]


@pytest.mark.parametrize(
    ("hint", "expected"),
    [
        (None, "alice"),
        ("", "alice"),
        ("alice", "alice"),
        ("Microsoft David - English (United States) male", "man"),
        ("Female Voice", "woman"),
        ("Samantha (woman)", "woman"),
        ("MALE", "man"),
        ("Daniel", "alice"),
    ],
)
def test_normalize_voice(hint, expected):
    assert normalize_voice(hint) == expected


@pytest.mark.parametrize(
    ("rate", "expected"),
    [(None, "1.0"), ("1.0", "1.0"), (0.1, "0.5"), ("3", "2.0"), ("fast", "1.0"), ("nan", "1.0")],
)
def test_normalize_rate(rate, expected):
    assert normalize_rate(rate) == expected


@pytest.mark.parametrize(
    "text",
    [
        "Hello <there>",
        "Tom & Jerry's \"show\"",
        "<<>>&&''\"\"",
        "a < b > c & d ' e \" f",
        "&amp; already escaped",
    ],
)
def test_escaped_text_round_trips_through_an_xml_parser(text):
    escaped = escape_text(text)

    for char in "<>\"'":
        assert char not in escaped
    assert ET.fromstring(f"<Say>{escaped}</Say>").text == text
    assert ET.fromstring(f"<Say voice=\"{escaped}\"/>").get("voice") == text
