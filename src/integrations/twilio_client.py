from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Any

from twilio.base.exceptions import TwilioException, TwilioRestException

from calls.errors import ControlPlaneError
from config.settings import get_settings
from integrations.control_plane import CallHandle, ControlPlane

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class TwilioConfig:
    account_sid: str
    auth_token: str
    from_number: str
    public_base_url: str


def get_twilio_config() -> TwilioConfig:
    settings = get_settings()
    if not settings.twilio_account_sid or not settings.twilio_auth_token:
        raise ValueError("Twilio credentials are not configured")
    if not settings.twilio_from_number:
        raise ValueError("Twilio from-number is not configured")
    if not settings.public_base_url:
        raise ValueError("PUBLIC_BASE_URL is required for Twilio callbacks")

    return TwilioConfig(
        account_sid=settings.twilio_account_sid,
        auth_token=settings.twilio_auth_token,
        from_number=settings.twilio_from_number,
        public_base_url=settings.public_base_url.rstrip("/"),
    )


def twilio_configured() -> bool:
    try:
        get_twilio_config()
    except ValueError:
        return False
    return True


def build_twilio_client():
    from twilio.rest import Client

    cfg = get_twilio_config()
    return Client(cfg.account_sid, cfg.auth_token)


class TwilioControlPlane(ControlPlane):
    """Control plane backed by the Twilio REST API.

    The Twilio SDK is synchronous; requests run in a worker thread so the
    event loop keeps relaying media while they are in flight.
    """

    def __init__(self, client: Any, from_number: str) -> None:
        self._client = client
        self._from_number = from_number

    async def create_call(
        self,
        to: str,
        *,
        url: str | None = None,
        twiml: str | None = None,
        status_callback: str | None = None,
        status_events: Sequence[str] = (),
        recording_callback: str | None = None,
    ) -> CallHandle:
        if (url is None) == (twiml is None):
            raise ValueError("Exactly one of url or twiml is required")

        params: dict[str, Any] = {"to": to, "from_": self._from_number}
        if url is not None:
            params.update(url=url, method="POST")
        else:
            params["twiml"] = twiml
        if status_callback:
            params.update(status_callback=status_callback, status_callback_method="POST")
            if status_events:
                params["status_callback_event"] = list(status_events)
        if recording_callback:
            params.update(
                record=True,
                recording_status_callback=recording_callback,
                recording_status_callback_method="POST",
            )

        call = await self._request(self._client.calls.create, **params)
        return CallHandle(sid=str(call.sid), status=str(call.status or "queued"))

    async def update_call(self, call_id: str, *, twiml: str) -> None:
        await self._request(self._client.calls(call_id).update, twiml=twiml)

    async def _request(self, method: Callable[..., Any], **params: Any) -> Any:
        try:
            return await asyncio.to_thread(method, **params)
        except TwilioRestException as exc:
            LOGGER.warning("Twilio rejected request (%s): %s", exc.code, exc.msg)
            raise ControlPlaneError(str(exc.msg), code=exc.code, upstream_status=exc.status) from exc
        except (TwilioException, OSError) as exc:
            LOGGER.warning("Twilio request failed: %s", exc)
            raise ControlPlaneError(f"Twilio request failed: {exc}") from exc


def build_control_plane() -> TwilioControlPlane:
    cfg = get_twilio_config()
    return TwilioControlPlane(build_twilio_client(), cfg.from_number)
