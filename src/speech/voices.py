from __future__ import annotations

import math
from typing import Literal

SayVoice = Literal["alice", "man", "woman"]

DEFAULT_VOICE: SayVoice = "alice"

_FEMALE_TOKENS = ("female", "woman", "women")
_MALE_TOKENS = ("male",)


def normalize_voice(hint: str | None, default: SayVoice = DEFAULT_VOICE) -> SayVoice:
    """Map a free-form voice hint (often a browser voice name) to a <Say> voice.

    Only three coarse voices exist on the synthesis side, so the mapping is
    lossy: female hints become ``woman``, male hints ``man``, anything else
    (including ``alice`` itself) the default.
    """

    hint_norm = (hint or "").strip().lower()
    if not hint_norm:
        return default
    if hint_norm in {"alice", "man", "woman"}:
        return hint_norm  # type: ignore[return-value]
    # "female" contains "male", so female tokens are checked first.
    if any(token in hint_norm for token in _FEMALE_TOKENS):
        return "woman"
    if any(token in hint_norm for token in _MALE_TOKENS):
        return "man"
    return default


def normalize_rate(rate: str | float | None) -> str:
    """Return the speaking rate as a decimal string, clamped to 0.5-2.0."""

    try:
        value = float(rate) if rate is not None else 1.0
    except (TypeError, ValueError):
        value = 1.0
    if not math.isfinite(value):
        value = 1.0
    value = min(max(value, 0.5), 2.0)
    return f"{value:.1f}"
