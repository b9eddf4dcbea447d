"""Operator-facing routes: place, speak into, inspect and end calls."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from api.dependencies import (
    get_call_service,
    get_callback_urls,
    get_injection_pipeline,
    get_registry,
    get_relay_hub,
)
from api.schemas import (
    ActiveCallsResponse,
    CallSessionView,
    CallStatusResponse,
    EndCallRequest,
    EndCallResponse,
    HealthResponse,
    InitiateCallRequest,
    InitiateCallResponse,
    SpeakTextRequest,
    SpeakTextResponse,
)
from calls.registry import CallRegistry
from calls.schemas import utcnow
from calls.service import CallbackUrls, CallService
from config.settings import get_settings
from integrations.twilio_client import twilio_configured
from speech.injection import MessageInjectionPipeline
from telephony.relay_hub import RelayHub

router = APIRouter()


@router.get("/health", response_model=HealthResponse)
async def health(
    registry: CallRegistry = Depends(get_registry),
    hub: RelayHub = Depends(get_relay_hub),
    urls: CallbackUrls = Depends(get_callback_urls),
) -> HealthResponse:
    return HealthResponse(
        status="ok",
        timestamp=utcnow(),
        environment=get_settings().environment,
        base_url=urls.base_url,
        twilio_configured=twilio_configured(),
        tracked_calls=len(registry),
        websocket_connections=hub.listener_count,
        media_streams=hub.producer_count,
    )


@router.post("/initiate-call", response_model=InitiateCallResponse)
async def initiate_call(
    payload: InitiateCallRequest,
    service: CallService = Depends(get_call_service),
) -> InitiateCallResponse:
    session = await service.create_session(payload.to)
    return InitiateCallResponse(
        call_sid=session.id,
        status=session.status.value,
        to=session.destination,
        websocket_url=service.urls.listener_stream,
    )


@router.post("/speak-text", response_model=SpeakTextResponse)
async def speak_text(
    payload: SpeakTextRequest,
    pipeline: MessageInjectionPipeline = Depends(get_injection_pipeline),
) -> SpeakTextResponse:
    result = await pipeline.speak(payload.call_sid, payload.text, payload.voice, payload.rate)
    return SpeakTextResponse(
        strategy=result.delivered_by.strategy,
        voice=result.entry.voice,
        rate=result.entry.rate,
    )


@router.post("/end-call", response_model=EndCallResponse)
async def end_call(
    payload: EndCallRequest,
    service: CallService = Depends(get_call_service),
) -> EndCallResponse:
    session = await service.end_session(payload.call_sid)
    return EndCallResponse(status=session.status.value)


@router.get("/call-status/{call_sid}", response_model=CallStatusResponse)
async def call_status(
    call_sid: str,
    registry: CallRegistry = Depends(get_registry),
    hub: RelayHub = Depends(get_relay_hub),
) -> CallStatusResponse:
    session = registry.get(call_sid)
    return CallStatusResponse.from_session(session, websocket_connected=hub.has_listener(call_sid))


@router.get("/active-calls", response_model=ActiveCallsResponse)
async def active_calls(
    registry: CallRegistry = Depends(get_registry),
    hub: RelayHub = Depends(get_relay_hub),
) -> ActiveCallsResponse:
    return ActiveCallsResponse(
        active_calls=[
            CallSessionView.from_session(s, websocket_connected=hub.has_listener(s.id))
            for s in registry.list()
        ],
        websocket_connections=hub.listener_count,
    )
