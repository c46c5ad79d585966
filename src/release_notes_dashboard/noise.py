"""Heuristics that separate release announcements from channel chatter."""

from __future__ import annotations

import html
import re
from dataclasses import dataclass, field

DEFAULT_MIN_LENGTH = 200

DEFAULT_ACKNOWLEDGEMENTS = (
    "thanks",
    "thank you",
    "thx",
    "ty",
    "nice",
    "great",
    "awesome",
    "congrats",
    "congratulations",
    "love it",
    "+1",
    "lgtm",
    "ok",
    "okay",
    "cool",
    "done",
    "noted",
)

_ADDRESSED_RE = re.compile(r"^@\w")
_TRAILING_NOISE_RE = re.compile(r"[\s!.,?]+$")


@dataclass
class NoisePolicy:
    """Tunable thresholds for :func:`classify_message`."""

    min_length: int = DEFAULT_MIN_LENGTH
    acknowledgements: list[str] = field(default_factory=lambda: list(DEFAULT_ACKNOWLEDGEMENTS))

    def is_acknowledgement(self, text: str) -> bool:
        phrase = _TRAILING_NOISE_RE.sub("", text.strip().lower())
        if not phrase:
            return False
        for ack in self.acknowledgements:
            ack = ack.strip().lower()
            if phrase == ack or phrase.startswith(ack + " "):
                return True
        return False


@dataclass(frozen=True)
class NoiseVerdict:
    suppress: bool
    reason: str


def classify_message(
    main_text: str,
    detail_text: str,
    reply_count: int = 0,
    policy: NoisePolicy | None = None,
) -> NoiseVerdict:
    """Decide whether a parent message should be hidden from the dashboard.

    Args:
        main_text: Normalized main text.
        detail_text: Normalized detail text.
        reply_count: Number of replies attached during thread reconstruction.
        policy: Threshold and acknowledgement list; defaults apply when None.

    Returns:
        A verdict. Messages with replies are always kept; short messages with
        no detail are suppressed and the reason names the kind of fragment.
    """
    policy = policy or NoisePolicy()

    if reply_count > 0:
        return NoiseVerdict(suppress=False, reason="has-replies")

    main = (main_text or "").strip()
    detail = (detail_text or "").strip()
    # Normalized text carries HTML entities; measure what the reader sees.
    visible = html.unescape(main)

    if visible and len(visible) < policy.min_length and not detail:
        if policy.is_acknowledgement(visible):
            reason = "acknowledgement"
        elif _ADDRESSED_RE.match(visible):
            reason = "addressed-reply"
        else:
            reason = "short-fragment"
        return NoiseVerdict(suppress=True, reason=reason)

    return NoiseVerdict(suppress=False, reason="substantive")
