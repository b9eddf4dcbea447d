"""Shared FastAPI dependencies.

Process-wide singletons are built lazily and cached; tests replace them via
``app.dependency_overrides``. Separated to avoid circular imports between
route modules.
"""

from __future__ import annotations

from functools import lru_cache

from fastapi import Depends, Request

from calls.errors import ControlPlaneError
from calls.registry import CallRegistry
from calls.service import CallbackUrls, CallService
from calls.webhook_processor import WebhookProcessor
from config.settings import get_settings
from integrations.control_plane import ControlPlane
from speech.injection import InBandStrategy, MessageInjectionPipeline, SideChannelStrategy
from speech.voices import normalize_voice
from telephony.relay_hub import RelayHub


@lru_cache(maxsize=1)
def get_registry() -> CallRegistry:
    return CallRegistry()


@lru_cache(maxsize=1)
def get_relay_hub() -> RelayHub:
    return RelayHub(get_registry())


@lru_cache(maxsize=1)
def get_webhook_processor() -> WebhookProcessor:
    return WebhookProcessor(get_registry(), get_relay_hub())


@lru_cache(maxsize=1)
def _control_plane_factory() -> ControlPlane:
    # Lazy import so the app starts without Twilio credentials.
    from integrations.twilio_client import build_control_plane

    return build_control_plane()


def get_control_plane() -> ControlPlane:
    try:
        return _control_plane_factory()
    except ValueError as exc:
        raise ControlPlaneError(str(exc)) from exc


def get_callback_urls(request: Request) -> CallbackUrls:
    settings = get_settings()
    if settings.public_base_url:
        return CallbackUrls(settings.public_base_url)
    # Fallback to request host. This may not work behind proxies; prefer PUBLIC_BASE_URL.
    return CallbackUrls(str(request.base_url).rstrip("/"))


def get_call_service(
    registry: CallRegistry = Depends(get_registry),
    hub: RelayHub = Depends(get_relay_hub),
    control_plane: ControlPlane = Depends(get_control_plane),
    urls: CallbackUrls = Depends(get_callback_urls),
) -> CallService:
    settings = get_settings()
    return CallService(
        registry,
        hub,
        control_plane,
        urls,
        goodbye_text=settings.goodbye_text,
        voice=normalize_voice(settings.default_voice),
        record_calls=settings.record_calls,
    )


def get_injection_pipeline(
    registry: CallRegistry = Depends(get_registry),
    control_plane: ControlPlane = Depends(get_control_plane),
    urls: CallbackUrls = Depends(get_callback_urls),
) -> MessageInjectionPipeline:
    settings = get_settings()
    return MessageInjectionPipeline(
        registry,
        [
            SideChannelStrategy(control_plane),
            InBandStrategy(
                control_plane,
                continue_url=urls.continue_call,
                timeout=settings.gather_timeout_seconds,
            ),
        ],
        default_voice=normalize_voice(settings.default_voice),
    )
