"""Domain-specific exceptions for call session operations.

These exceptions are safe to import from API layers without pulling in the
Twilio SDK.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING

if TYPE_CHECKING:  # pragma: no cover
    from speech.injection import DeliveryOutcome


class CallRelayError(Exception):
    status_code: int = 500
    default_detail: str = "Call relay error"

    def __init__(self, detail: str | None = None) -> None:
        super().__init__(detail or self.default_detail)
        self.detail = detail or self.default_detail


class SessionNotFoundError(CallRelayError):
    status_code = 404
    default_detail = "Call not found."

    def __init__(self, call_id: str, detail: str | None = None) -> None:
        super().__init__(detail or f"Call not found: {call_id}")
        self.call_id = call_id


class DuplicateSessionError(CallRelayError):
    status_code = 409
    default_detail = "Call already tracked."

    def __init__(self, call_id: str) -> None:
        super().__init__(f"Call already tracked: {call_id}")
        self.call_id = call_id


class SessionInactiveError(CallRelayError):
    status_code = 409
    default_detail = "Call has ended."

    def __init__(self, call_id: str, status: str | None = None) -> None:
        suffix = f" ({status})" if status else ""
        super().__init__(f"Call has ended: {call_id}{suffix}")
        self.call_id = call_id
        self.status = status


class MalformedEventError(CallRelayError):
    status_code = 400
    default_detail = "Malformed event."


class ControlPlaneError(CallRelayError):
    """The telephony control plane rejected a request or could not be reached."""

    status_code = 502
    default_detail = "Telephony provider request failed."

    def __init__(
        self,
        detail: str | None = None,
        *,
        code: int | str | None = None,
        upstream_status: int | None = None,
    ) -> None:
        super().__init__(detail)
        self.code = code
        self.upstream_status = upstream_status


class SpeakDeliveryError(ControlPlaneError):
    """Every delivery strategy failed for one spoken message."""

    default_detail = "Message could not be delivered."

    def __init__(self, outcomes: Sequence[DeliveryOutcome]) -> None:
        causes = "; ".join(
            f"{outcome.strategy}: {outcome.error.detail if outcome.error else 'failed'}"
            for outcome in outcomes
        )
        last = outcomes[-1].error if outcomes else None
        super().__init__(
            f"Message could not be delivered ({causes})" if causes else None,
            code=last.code if last else None,
            upstream_status=last.upstream_status if last else None,
        )
        self.outcomes = list(outcomes)
