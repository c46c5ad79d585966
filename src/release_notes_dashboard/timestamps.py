"""Helpers for the loosely-typed timestamp tokens found in the sheet export."""

from __future__ import annotations

import re
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation

_NUMERIC_RE = re.compile(r"^\d+(?:\.\d+)?$")
_LEADING_DIGIT_RE = re.compile(r"^\d")

# Formats seen in Google Sheets exports besides ISO 8601.
_DATE_FORMATS = (
    "%m/%d/%Y %H:%M:%S",
    "%m/%d/%Y %H:%M",
    "%m/%d/%Y",
    "%Y/%m/%d %H:%M:%S",
    "%Y/%m/%d",
)


def is_numeric_token(token: str | None) -> bool:
    """Return True for epoch-seconds tokens such as ``1700000000.123456``."""

    return bool(token) and bool(_NUMERIC_RE.match(token.strip()))


def is_timestamp_shaped(token: str | None) -> bool:
    """Return True if the token belongs to the same lexical family as a timestamp.

    Both epoch tokens and ISO-like dates start with a digit; Slack user and
    channel ids (``U024BE7LH``) do not.
    """

    if not token:
        return False
    return bool(_LEADING_DIGIT_RE.match(token.strip()))


def canonical_key(token: str | None) -> str:
    """Return a lookup key so that ``"100"`` and ``"100.000"`` collide."""

    if not token:
        return ""
    stripped = token.strip()
    if is_numeric_token(stripped):
        try:
            return format(Decimal(stripped).normalize(), "f")
        except InvalidOperation:
            return stripped
    return stripped


def to_epoch_seconds(token: str | None) -> float | None:
    """Convert a timestamp token to epoch seconds, or None if it cannot be read."""

    if not token:
        return None

    stripped = token.strip()
    if is_numeric_token(stripped):
        return float(stripped)

    parsed = _parse_datetime(stripped)
    if parsed is None:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.timestamp()


def _parse_datetime(value: str) -> datetime | None:
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        pass

    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(value, fmt)
        except ValueError:
            continue
    return None


def sort_key(token: str | None) -> tuple[int, float]:
    """Ascending sort key; unreadable tokens sort after every readable one."""

    seconds = to_epoch_seconds(token)
    if seconds is None:
        return (1, 0.0)
    return (0, seconds)


def recency_key(token: str | None) -> tuple[int, float]:
    """Key for ``sorted(..., reverse=True)``; unreadable tokens still sort last."""

    seconds = to_epoch_seconds(token)
    if seconds is None:
        return (0, 0.0)
    return (1, seconds)


def format_timestamp(token: str | None) -> str:
    """Format a timestamp token for display."""

    if not token:
        return "Unknown"

    seconds = to_epoch_seconds(token)
    if seconds is None:
        return token
    try:
        return datetime.fromtimestamp(seconds, tz=timezone.utc).strftime("%Y-%m-%d %H:%M")
    except (OverflowError, OSError, ValueError):
        return token
