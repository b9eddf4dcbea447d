"""Speaking operator-typed text into a live call.

Delivery tries a side-channel call leg first, which leaves the primary call
and its media stream untouched, and falls back once to updating the primary
call in-band. Each strategy reports a ``DeliveryOutcome`` instead of raising,
and the pipeline raises ``SpeakDeliveryError`` only when every strategy failed.
There is no retry beyond that single fallback.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass

from calls.errors import ControlPlaneError, SessionInactiveError, SpeakDeliveryError
from calls.registry import CallRegistry
from calls.schemas import CallSession, MessageEntry
from integrations.control_plane import ControlPlane
from integrations.twiml import escape_text, twiml_say, twiml_say_and_resume
from speech.voices import DEFAULT_VOICE, SayVoice, normalize_rate, normalize_voice

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class Utterance:
    text: str
    voice: SayVoice
    rate: str

    @property
    def escaped_text(self) -> str:
        return escape_text(self.text)


@dataclass(frozen=True)
class DeliveryOutcome:
    strategy: str
    ok: bool
    error: ControlPlaneError | None = None
    leg_sid: str | None = None


@dataclass(frozen=True)
class SpeakResult:
    entry: MessageEntry
    delivered_by: DeliveryOutcome
    attempts: tuple[DeliveryOutcome, ...]


class DeliveryStrategy(ABC):
    name: str

    @abstractmethod
    async def deliver(self, session: CallSession, utterance: Utterance) -> DeliveryOutcome:
        """Try to speak ``utterance`` into ``session``; never raises for provider failures."""


class SideChannelStrategy(DeliveryStrategy):
    """Place an independent call leg to the same destination that only speaks."""

    name = "side-channel"

    def __init__(self, control_plane: ControlPlane) -> None:
        self._control_plane = control_plane

    async def deliver(self, session: CallSession, utterance: Utterance) -> DeliveryOutcome:
        twiml = twiml_say(utterance.text, voice=utterance.voice, rate=utterance.rate)
        try:
            handle = await self._control_plane.create_call(session.destination, twiml=twiml)
        except ControlPlaneError as exc:
            LOGGER.warning("Side-channel delivery for call %s failed: %s", session.id, exc.detail)
            return DeliveryOutcome(self.name, ok=False, error=exc)
        return DeliveryOutcome(self.name, ok=True, leg_sid=handle.sid)


class InBandStrategy(DeliveryStrategy):
    """Replace the primary call's TwiML with the message, then resume holding the call."""

    name = "in-band"

    def __init__(self, control_plane: ControlPlane, *, continue_url: str, timeout: int) -> None:
        self._control_plane = control_plane
        self._continue_url = continue_url
        self._timeout = timeout

    async def deliver(self, session: CallSession, utterance: Utterance) -> DeliveryOutcome:
        twiml = twiml_say_and_resume(
            utterance.text,
            voice=utterance.voice,
            rate=utterance.rate,
            continue_url=self._continue_url,
            timeout=self._timeout,
        )
        try:
            await self._control_plane.update_call(session.id, twiml=twiml)
        except ControlPlaneError as exc:
            LOGGER.warning("In-band delivery for call %s failed: %s", session.id, exc.detail)
            return DeliveryOutcome(self.name, ok=False, error=exc)
        return DeliveryOutcome(self.name, ok=True)


class MessageInjectionPipeline:
    def __init__(
        self,
        registry: CallRegistry,
        strategies: Sequence[DeliveryStrategy],
        *,
        default_voice: SayVoice = DEFAULT_VOICE,
    ) -> None:
        if not strategies:
            raise ValueError("At least one delivery strategy is required.")
        self._registry = registry
        self._strategies = tuple(strategies)
        self._default_voice = default_voice

    async def speak(
        self,
        call_id: str,
        text: str,
        voice_hint: str | None = None,
        rate: str | float | None = None,
    ) -> SpeakResult:
        session = self._registry.get(call_id)
        if not session.is_active:
            raise SessionInactiveError(call_id, session.status.value)
        if not text or not text.strip():
            raise ValueError("Text may not be empty.")

        utterance = Utterance(
            text=text,
            voice=normalize_voice(voice_hint, self._default_voice),
            rate=normalize_rate(rate),
        )
        LOGGER.info("Sending message to call %s (%d chars)", call_id, len(text))

        attempts: list[DeliveryOutcome] = []
        for strategy in self._strategies:
            outcome = await strategy.deliver(session, utterance)
            attempts.append(outcome)
            if outcome.ok:
                break
        else:
            LOGGER.error("Every delivery strategy failed for call %s", call_id)
            raise SpeakDeliveryError(attempts)

        entry = MessageEntry(
            text=text,
            escaped_text=utterance.escaped_text,
            voice=utterance.voice,
            rate=utterance.rate,
        )
        try:
            self._registry.append_message(call_id, entry)
        except SessionInactiveError:
            LOGGER.warning(
                "Call %s ended while its message was being delivered via %s; not recorded",
                call_id,
                attempts[-1].strategy,
            )
            raise
        LOGGER.info("Message delivered to call %s via %s", call_id, attempts[-1].strategy)
        return SpeakResult(entry=entry, delivered_by=attempts[-1], attempts=tuple(attempts))
