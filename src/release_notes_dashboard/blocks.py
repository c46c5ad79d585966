"""Build Slack Block Kit components for the release notes home tab."""

import html
from typing import Any

from release_notes_dashboard.assembler import Thread
from release_notes_dashboard.timestamps import format_timestamp

# Slack caps section text at 3000 characters and a view at 100 blocks.
MAX_SECTION_CHARS = 3000
MAX_THREADS = 20


def build_release_blocks(threads: list[Thread], limit: int = MAX_THREADS) -> list[dict]:
    """Build Slack Block Kit blocks for the release notes view.

    Args:
        threads: Assembled release threads, most recent first.
        limit: Maximum number of threads to render.

    Returns:
        List of Block Kit block dictionaries.
    """
    blocks: list[dict] = []

    blocks.append(
        {
            "type": "header",
            "text": {
                "type": "plain_text",
                "text": "Release Notes",
                "emoji": True,
            },
        }
    )

    if not threads:
        blocks.append(
            {
                "type": "section",
                "text": {
                    "type": "mrkdwn",
                    "text": "_No release notes found. Check the sheet URL in the dashboard config._",
                },
            }
        )
        return blocks

    with_replies = sum(1 for t in threads if t.replies)
    staged = sum(1 for t in threads if t.stage)

    blocks.append(
        {
            "type": "section",
            "text": {
                "type": "mrkdwn",
                "text": f"*{len(threads)} releases* | {with_replies} with discussion | {staged} staged",
            },
        }
    )

    blocks.append({"type": "divider"})

    for thread in threads[:limit]:
        blocks.extend(_build_thread_blocks(thread))
        blocks.append({"type": "divider"})

    blocks.append(
        {
            "type": "actions",
            "elements": [
                {
                    "type": "button",
                    "text": {
                        "type": "plain_text",
                        "text": "Refresh Release Notes",
                        "emoji": True,
                    },
                    "action_id": "refresh_release_notes",
                }
            ],
        }
    )

    return blocks


def _build_thread_blocks(thread: Thread) -> list[dict]:
    """Build blocks for a single release thread."""
    blocks = []
    parent = thread.parent

    blocks.append(
        {
            "type": "section",
            "text": {
                "type": "mrkdwn",
                "text": _section_text(parent.main_text, parent.detail_text),
            },
        }
    )

    details = [
        f"{_escape_mrkdwn(parent.sender)} | {format_timestamp(parent.occurred_at)}",
    ]
    if thread.stage:
        details.append(f"Stage: *{_escape_mrkdwn(thread.stage)}*")
    if thread.replies:
        details.append(f"Replies: {len(thread.replies)}")
    blocks.append(
        {
            "type": "context",
            "elements": [{"type": "mrkdwn", "text": " | ".join(details)}],
        }
    )

    links = _resource_links(thread)
    if links:
        blocks.append(
            {
                "type": "context",
                "elements": [{"type": "mrkdwn", "text": " • ".join(links)}],
            }
        )

    return blocks


def _resource_links(thread: Thread) -> list[str]:
    links = [
        f"<{link.url}|{_escape_mrkdwn(link.label)}>" for link in thread.extracted_links
    ]
    if thread.parent.attachment_url:
        links.append(f"<{thread.parent.attachment_url}|View Screenshot>")
    if thread.parent.external_url:
        links.append(f"<{thread.parent.external_url}|View in Slack>")
    return links


def _section_text(main_text: str, detail_text: str) -> str:
    main = _escape_mrkdwn(main_text)
    if not detail_text:
        return _truncate(main, MAX_SECTION_CHARS) or "_(no text)_"

    # Leave room for the bold markers and the newline.
    main = _truncate(main, MAX_SECTION_CHARS // 2 - 3)
    detail = _truncate(_escape_mrkdwn(detail_text), MAX_SECTION_CHARS - len(main) - 3)
    return f"*{main}*\n{detail}" if main else detail


def _truncate(text: str, limit: int) -> str:
    """Shorten escaped text without splitting an ``&...;`` entity."""
    if len(text) <= limit:
        return text
    cut = text[: limit - 1]
    amp = cut.rfind("&")
    if amp > cut.rfind(";"):
        cut = cut[:amp]
    return cut + "…"


def _escape_mrkdwn(value: Any) -> str:
    # Normalized text is HTML-escaped. Slack decodes &amp;, &lt; and &gt; but
    # would format literal * and _, so those stay as entities.
    text = html.unescape(str(value or ""))
    return (
        text.replace("&", "&amp;")
        .replace("<", "&lt;")
        .replace(">", "&gt;")
        .replace("*", "&#42;")
        .replace("_", "&#95;")
    )
