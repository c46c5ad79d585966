"""Turn Slack-flavoured message text into display-safe text."""

from __future__ import annotations

import re

# Links.
_LABELLED_LINK_RE = re.compile(r"<((?:https?|ftp|mailto):[^<>|\s]+)\|([^<>]*)>", re.IGNORECASE)
_BARE_LINK_RE = re.compile(r"<((?:https?|ftp|mailto):[^<>|\s]+)>", re.IGNORECASE)

# Channels.
_CHANNEL_RE = re.compile(r"<#[A-Za-z0-9]+(?:\|([^<>]*))?>")

# Mentions.
_USER_MENTION_RE = re.compile(r"<@[A-Za-z0-9]+(?:\|([^<>]*))?>")
_BROADCAST_RE = re.compile(r"<!(here|channel|everyone)(?:\|[^<>]*)?>", re.IGNORECASE)
_SPECIAL_LABELLED_RE = re.compile(r"<![^<>|]+\|([^<>]*)>")

# Emoji. Digit-only names are clock times, not shortcodes.
_EMOJI_RE = re.compile(r":(?![0-9]+:)[A-Za-z0-9_+\-]+:")

# Code.
_FENCED_CODE_RE = re.compile(r"```.*?```", re.DOTALL)
_STRAY_FENCE_RE = re.compile(r"```")
_INLINE_CODE_RE = re.compile(r"`([^`\n]+)`")

# Emphasis. Markers must hug the text they wrap.
_STAR_EMPHASIS_RE = re.compile(r"\*{1,2}(?=\S)([^*\n]*?\S)\*{1,2}")
_UNDERSCORE_EMPHASIS_RE = re.compile(r"(?<![\w/])_{1,2}(?=\S)([^_\n]*?\S)_{1,2}(?!\w)")
_STRIKE_RE = re.compile(r"(?<![\w/])~(?=\S)([^~\n]*?\S)~(?!\w)")

# Bullets and quotes.
_BULLET_RE = re.compile(r"^[ \t]*[-*•·▪▫◦‣⁃][ \t]+", re.MULTILINE)
_QUOTE_RE = re.compile(r"^[ \t]*(?:>|&gt;)+[ \t]?", re.MULTILINE)

# Whitespace.
_INLINE_SPACE_RE = re.compile(r"[ \t\u00a0]+")
_BLANK_LINES_RE = re.compile(r"\n{3,}")

# Leftover chat tokens and unsafe characters.
_LEFTOVER_TOKEN_RE = re.compile(r"<[^<>\n]*>")
_BARE_AMPERSAND_RE = re.compile(r"&(?!(?:[A-Za-z]+|#\d+|#x[0-9A-Fa-f]+);)")

BULLET = "• "

SECTION_HEADERS = (
    "Problem",
    "Solution",
    "What's new",
    "Why it matters",
    "What's next",
    "Impact",
    "Details",
)
_SECTION_HEADER_RE = re.compile(
    r"^(" + "|".join(re.escape(header) for header in SECTION_HEADERS) + r")(?=\s*:|\s*$)",
    re.IGNORECASE | re.MULTILINE,
)

_MAX_PASSES = 8


def format_sender_name(name: str | None) -> str:
    """Turn a dotted login such as ``jane.doe`` into ``Jane Doe``."""

    if not name:
        return ""
    parts = [part for part in name.strip().lower().split(".") if part]
    return " ".join(part[:1].upper() + part[1:] for part in parts)


def normalize_text(text: str | None) -> str:
    """Rewrite Slack markup into clean text that is safe to render as HTML.

    The rules are applied until the text stops changing, so the result is a
    fixed point: ``normalize_text(normalize_text(x)) == normalize_text(x)``.

    Args:
        text: Raw message text, possibly None.

    Returns:
        Cleaned text with links relabelled, mentions and channels rewritten,
        emoji, code fences and emphasis markers removed, bullets unified and
        blank lines collapsed.
    """
    if not text:
        return ""

    cleaned = text.replace("\r\n", "\n").replace("\r", "\n")
    for _ in range(_MAX_PASSES):
        updated = _normalize_once(cleaned)
        if updated == cleaned:
            break
        cleaned = updated
    return cleaned


def _normalize_once(text: str) -> str:
    text = _LABELLED_LINK_RE.sub(lambda match: match.group(2).strip() or match.group(1), text)
    text = _BARE_LINK_RE.sub(r"\1", text)

    text = _CHANNEL_RE.sub(_channel_name, text)

    text = _USER_MENTION_RE.sub(_mention_name, text)
    text = _BROADCAST_RE.sub(lambda match: "@" + match.group(1).lower(), text)
    text = _SPECIAL_LABELLED_RE.sub(r"\1", text)

    text = _EMOJI_RE.sub("", text)

    text = _FENCED_CODE_RE.sub("", text)
    text = _STRAY_FENCE_RE.sub("", text)
    text = _INLINE_CODE_RE.sub(r"\1", text)

    text = _STAR_EMPHASIS_RE.sub(r"\1", text)
    text = _UNDERSCORE_EMPHASIS_RE.sub(r"\1", text)
    text = _STRIKE_RE.sub(r"\1", text)

    text = _QUOTE_RE.sub("", text)
    text = _BULLET_RE.sub(BULLET, text)

    text = _LEFTOVER_TOKEN_RE.sub("", text)
    text = _escape(text)

    return _tidy_whitespace(text)


def _channel_name(match: re.Match) -> str:
    name = (match.group(1) or "").strip().lstrip("#")
    return f"#{name}" if name else ""


def _mention_name(match: re.Match) -> str:
    name = (match.group(1) or "").strip().lstrip("@")
    return f"@{name}" if name else "@user"


def _escape(text: str) -> str:
    text = _BARE_AMPERSAND_RE.sub("&amp;", text)
    return (
        text.replace("<", "&lt;")
        .replace(">", "&gt;")
        .replace("*", "&#42;")
        .replace("_", "&#95;")
    )


def _tidy_whitespace(text: str) -> str:
    lines = [_INLINE_SPACE_RE.sub(" ", line).strip() for line in text.split("\n")]
    joined = "\n".join(lines)
    return _BLANK_LINES_RE.sub("\n\n", joined).strip()


def mark_section_headers(text: str) -> str:
    """Wrap known section headers at the start of a line in ``<strong>``.

    Expects normalized text; nothing other than the header words changes.
    """
    if not text:
        return ""
    return _SECTION_HEADER_RE.sub(r"<strong>\1</strong>", text)


def to_html(text: str) -> str:
    """Render normalized text as an HTML fragment."""

    return mark_section_headers(text).replace("\n", "<br/>")
