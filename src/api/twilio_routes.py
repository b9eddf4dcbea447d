"""Twilio Voice integration.

This module provides:
- TwiML webhooks driving the relay call (greeting, media stream, keep-alive).
- Status, recording and transcription callbacks feeding the call registry.
- The Media Streams WebSocket that produces the live audio for the relay.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request, Response, WebSocket, WebSocketDisconnect
from fastapi.responses import PlainTextResponse

from api.dependencies import get_callback_urls, get_registry, get_relay_hub, get_webhook_processor
from calls.events import recording_event_from_form, status_event_from_form, transcription_event_from_form
from calls.registry import CallRegistry
from calls.service import CallbackUrls
from calls.webhook_processor import WebhookProcessor
from config.settings import get_settings
from integrations.twilio_streaming import TwilioMediaStream, parse_twilio_ws_message
from integrations.twiml import twiml_keep_alive, twiml_outgoing_call, twiml_say_and_resume
from speech.voices import normalize_rate, normalize_voice
from telephony.relay_hub import RelayHub

LOGGER = logging.getLogger(__name__)

router = APIRouter(prefix="/twilio", tags=["twilio"])


def _twiml_response(xml: str) -> Response:
    # Twilio expects application/xml
    return Response(content=xml, media_type="application/xml")


def _ok() -> PlainTextResponse:
    return PlainTextResponse("OK")


@router.post("/outgoing-call")
async def twilio_outgoing_call(
    request: Request,
    urls: CallbackUrls = Depends(get_callback_urls),
) -> Response:
    settings = get_settings()
    form = await request.form()
    LOGGER.info("Outgoing call TwiML: %s calling %s", form.get("From"), form.get("To"))

    return _twiml_response(
        twiml_outgoing_call(
            greeting=settings.greeting_text,
            voice=normalize_voice(settings.default_voice),
            stream_url=urls.producer_stream,
            stream_name=settings.stream_name,
            track=settings.stream_track,
            continue_url=urls.continue_call,
            timeout=settings.gather_timeout_seconds,
            transcription_callback=urls.transcription if settings.record_calls else None,
        )
    )


@router.post("/continue-call")
async def twilio_continue_call(urls: CallbackUrls = Depends(get_callback_urls)) -> Response:
    return _twiml_response(
        twiml_keep_alive(
            continue_url=urls.continue_call,
            timeout=get_settings().gather_timeout_seconds,
        )
    )


@router.post("/speak-message")
async def twilio_speak_message(
    request: Request,
    urls: CallbackUrls = Depends(get_callback_urls),
) -> Response:
    """TwiML that speaks a ``message`` form field, then keeps the call open."""

    settings = get_settings()
    form = await request.form()
    message = str(form.get("message") or "").strip()
    if not message:
        return _twiml_response(
            twiml_keep_alive(continue_url=urls.continue_call, timeout=settings.gather_timeout_seconds)
        )

    return _twiml_response(
        twiml_say_and_resume(
            message,
            voice=normalize_voice(str(form.get("voice") or ""), normalize_voice(settings.default_voice)),
            rate=normalize_rate(str(form.get("rate") or "1.0")),
            continue_url=urls.continue_call,
            timeout=settings.gather_timeout_seconds,
        )
    )


@router.post("/status")
async def twilio_call_status(
    request: Request,
    processor: WebhookProcessor = Depends(get_webhook_processor),
) -> PlainTextResponse:
    form = await request.form()
    await processor.handle_form(status_event_from_form, form)
    return _ok()


@router.post("/transcription")
async def twilio_transcription(
    request: Request,
    processor: WebhookProcessor = Depends(get_webhook_processor),
) -> PlainTextResponse:
    form = await request.form()
    await processor.handle_form(transcription_event_from_form, form)
    return _ok()


@router.post("/recording")
async def twilio_recording(
    request: Request,
    processor: WebhookProcessor = Depends(get_webhook_processor),
) -> PlainTextResponse:
    form = await request.form()
    await processor.handle_form(recording_event_from_form, form)
    return _ok()


@router.websocket("/stream")
async def twilio_media_stream(
    websocket: WebSocket,
    hub: RelayHub = Depends(get_relay_hub),
    registry: CallRegistry = Depends(get_registry),
) -> None:
    await websocket.accept()
    stream = TwilioMediaStream(hub, registry)
    try:
        while True:
            text = await websocket.receive_text()
            try:
                message = parse_twilio_ws_message(text)
            except ValueError:
                LOGGER.warning("Ignoring unparseable media stream message")
                continue
            if not await stream.handle_event(message):
                break
    except WebSocketDisconnect:
        return
    finally:
        stream.close()

    await websocket.close()
