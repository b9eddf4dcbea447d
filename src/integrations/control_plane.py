"""Shared abstractions for the telephony control plane."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass


@dataclass(frozen=True)
class CallHandle:
    sid: str
    status: str


class ControlPlane(ABC):
    """Places calls and changes what a live call is doing.

    Implementations raise ``calls.errors.ControlPlaneError`` for every
    rejection or transport failure.
    """

    @abstractmethod
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
        """Place an outbound call driven by a TwiML URL or an inline document."""

    @abstractmethod
    async def update_call(self, call_id: str, *, twiml: str) -> None:
        """Replace the TwiML a live call is executing."""
