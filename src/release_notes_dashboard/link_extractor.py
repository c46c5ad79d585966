"""Collect the URLs a release note refers to."""

from __future__ import annotations

import html
import re
from dataclasses import dataclass

_URL_RE = re.compile(
    r"<(?P<wrapped>(?:https?|ftp)://[^<>|\s]+)(?:\|(?P<label>[^<>]*))?>"
    r"|(?P<bare>(?:https?|ftp)://[^\s<>|]+)",
    re.IGNORECASE,
)
_TRAILING_PUNCTUATION = ".,;:!?)]}'\""


@dataclass(frozen=True)
class ExtractedLink:
    url: str
    label: str

    def to_dict(self) -> dict[str, str]:
        return {"url": self.url, "label": self.label}


def extract_links(text: str | None) -> list[ExtractedLink]:
    """Return every http(s)/ftp URL in ``text`` in the order they appear.

    Works on raw, un-normalized text. Slack-wrapped links (``<url|label>`` or
    ``<url>``) lose their delimiters; the label is kept when present.
    Duplicates are preserved.
    """
    if not text:
        return []

    links: list[ExtractedLink] = []
    for match in _URL_RE.finditer(text):
        if match.group("wrapped"):
            url = html.unescape(match.group("wrapped"))
            label = html.unescape((match.group("label") or "").strip()) or url
        else:
            url = html.unescape(match.group("bare")).rstrip(_TRAILING_PUNCTUATION)
            label = url
        if "://" not in url or url.endswith("://"):
            continue
        links.append(ExtractedLink(url=url, label=label))
    return links


def extract_urls(text: str | None) -> list[str]:
    """Return only the URL strings from :func:`extract_links`."""

    return [link.url for link in extract_links(text)]
