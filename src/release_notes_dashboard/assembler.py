"""Assemble display-ready release threads from raw sheet rows."""

from __future__ import annotations

import html
import logging
from dataclasses import dataclass, field
from typing import Any, Iterable

from release_notes_dashboard.link_extractor import ExtractedLink, extract_links
from release_notes_dashboard.noise import NoisePolicy, classify_message
from release_notes_dashboard.records import OverrideTable, RawRecord, parse_rows
from release_notes_dashboard.text_normalizer import format_sender_name, normalize_text
from release_notes_dashboard.thread_reconstructor import ThreadReconstructor
from release_notes_dashboard.timestamps import recency_key

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Message:
    """Cleaned view of a single record."""

    record_id: int
    occurred_at: str
    sender: str
    main_text: str
    detail_text: str
    attachment_url: str | None = None
    external_url: str | None = None

    @classmethod
    def from_record(cls, record: RawRecord) -> Message:
        return cls(
            record_id=record.id,
            occurred_at=record.occurred_at,
            sender=format_sender_name(record.sender_raw),
            main_text=normalize_text(record.main_text),
            detail_text=normalize_text(record.detail_text),
            attachment_url=record.attachment_url,
            external_url=record.external_url,
        )


@dataclass
class Thread:
    """A release note with its replies, links and stage."""

    parent: Message
    replies: list[Message] = field(default_factory=list)
    extracted_links: list[ExtractedLink] = field(default_factory=list)
    stage: str | None = None

    @property
    def key(self) -> str:
        return self.parent.occurred_at


class ReleaseAssembler:
    """Runs the full pipeline: overrides, threading, noise filtering, cleanup."""

    def __init__(
        self,
        policy: NoisePolicy | None = None,
        overrides: OverrideTable | None = None,
        reconstructor: ThreadReconstructor | None = None,
    ):
        self.policy = policy or NoisePolicy()
        self.overrides = overrides or OverrideTable()
        self.reconstructor = reconstructor or ThreadReconstructor()

    def assemble(self, records: Iterable[RawRecord]) -> list[Thread]:
        """Build threads from parsed records, most recent first."""

        patched = self.overrides.apply(records)
        groups = self.reconstructor.reconstruct(patched)

        threads: list[Thread] = []
        suppressed = 0
        for group in groups:
            parent = Message.from_record(group.parent)
            verdict = classify_message(
                parent.main_text,
                parent.detail_text,
                reply_count=len(group.replies),
                policy=self.policy,
            )
            if verdict.suppress:
                suppressed += 1
                logger.debug(f"Suppressed {parent.occurred_at}: {verdict.reason}")
                continue

            raw_parent_text = f"{group.parent.main_text or ''} {group.parent.detail_text or ''}"
            threads.append(
                Thread(
                    parent=parent,
                    replies=[Message.from_record(reply) for reply in group.replies],
                    extracted_links=extract_links(raw_parent_text),
                    stage=group.parent.stage_label,
                )
            )

        if suppressed:
            logger.info(f"Suppressed {suppressed} short message(s) out of {len(groups)}")

        return sorted(threads, key=lambda thread: recency_key(thread.parent.occurred_at), reverse=True)


def assemble_releases(
    rows: Iterable[Any],
    policy: NoisePolicy | None = None,
    overrides: OverrideTable | None = None,
) -> list[Thread]:
    """Parse untyped sheet rows and assemble them into threads."""

    return ReleaseAssembler(policy=policy, overrides=overrides).assemble(parse_rows(rows))


def filter_threads(threads: Iterable[Thread], term: str | None) -> list[Thread]:
    """Case-insensitive search over a thread's main and detail text."""

    threads = list(threads)
    needle = (term or "").strip().lower()
    if not needle:
        return threads

    return [
        thread
        for thread in threads
        if needle in html.unescape(thread.parent.main_text).lower()
        or needle in html.unescape(thread.parent.detail_text).lower()
    ]
