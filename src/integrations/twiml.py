"""TwiML documents for the relay call flow.

Every piece of caller-controlled text goes through ``escape_text`` before it
is placed in a document; an unescaped ``<`` or ``&`` corrupts the document.
"""

from __future__ import annotations

from xml.sax.saxutils import escape

_XML_HEADER = "<?xml version=\"1.0\" encoding=\"UTF-8\"?>"
_QUOTE_ENTITIES = {'"': "&quot;", "'": "&apos;"}


def escape_text(text: str) -> str:
    """Entity-escape ``< > & " '`` for element content and attribute values."""

    return escape(text, _QUOTE_ENTITIES)


def to_ws_url(http_url: str) -> str:
    if http_url.startswith("https://"):
        return "wss://" + http_url.removeprefix("https://")
    if http_url.startswith("http://"):
        return "ws://" + http_url.removeprefix("http://")
    return http_url


def _say(text: str, *, voice: str, rate: str = "1.0") -> str:
    """``<Say>`` with a non-default rate wrapped in SSML ``<prosody>``.

    Twilio applies SSML only to Polly and Google voices. With the basic
    ``alice``/``man``/``woman`` voices the tag is not honoured and the text is
    spoken at the normal rate; the requested rate is still recorded.
    """

    body = escape_text(text)
    if rate != "1.0":
        percent = round(float(rate) * 100)
        body = f"<prosody rate=\"{percent}%\">{body}</prosody>"
    return f"<Say voice=\"{escape_text(voice)}\">{body}</Say>"


def _gather(*, action_url: str, timeout: int) -> str:
    return (
        f"<Gather input=\"speech\" timeout=\"{int(timeout)}\" "
        f"action=\"{escape_text(action_url)}\" method=\"POST\" />"
    )


def twiml_outgoing_call(
    *,
    greeting: str,
    voice: str,
    stream_url: str,
    stream_name: str,
    track: str,
    continue_url: str,
    timeout: int,
    transcription_callback: str | None = None,
) -> str:
    """Greet, start relaying the far end's audio and hold the call open."""

    start = (
        "<Start>"
        f"<Stream name=\"{escape_text(stream_name)}\" url=\"{escape_text(stream_url)}\" "
        f"track=\"{escape_text(track)}\" />"
        "</Start>"
    )
    if transcription_callback:
        start += (
            "<Start>"
            f"<Transcription statusCallbackUrl=\"{escape_text(transcription_callback)}\" "
            "track=\"inbound_track\" />"
            "</Start>"
        )
    return (
        _XML_HEADER
        + "<Response>"
        + _say(greeting, voice=voice)
        + start
        + _gather(action_url=continue_url, timeout=timeout)
        + "</Response>"
    )


def twiml_keep_alive(*, continue_url: str, timeout: int) -> str:
    return _XML_HEADER + "<Response>" + _gather(action_url=continue_url, timeout=timeout) + "</Response>"


def twiml_say(text: str, *, voice: str, rate: str = "1.0") -> str:
    """A document that only speaks; used for the side-channel call leg."""

    return _XML_HEADER + "<Response>" + _say(text, voice=voice, rate=rate) + "</Response>"


def twiml_say_and_resume(
    text: str,
    *,
    voice: str,
    rate: str,
    continue_url: str,
    timeout: int,
) -> str:
    """Speak into the live call, then go back to holding it open.

    The media stream started by ``twiml_outgoing_call`` keeps running across
    call updates, so relaying resumes on its own.
    """

    return (
        _XML_HEADER
        + "<Response>"
        + _say(text, voice=voice, rate=rate)
        + _gather(action_url=continue_url, timeout=timeout)
        + "</Response>"
    )


def twiml_goodbye(text: str, *, voice: str) -> str:
    return _XML_HEADER + "<Response>" + _say(text, voice=voice) + "<Hangup/></Response>"
