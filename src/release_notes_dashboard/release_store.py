"""In-memory holder for the threads currently shown on the dashboard."""

from __future__ import annotations

import hashlib
import json
import logging
import threading
from datetime import datetime
from typing import Any, Iterable

from release_notes_dashboard.assembler import ReleaseAssembler, Thread
from release_notes_dashboard.records import parse_rows

logger = logging.getLogger(__name__)


def rows_fingerprint(rows: list[Any]) -> str:
    """Return a stable hash of the fetched rows."""

    payload = json.dumps(rows, sort_keys=True, default=str, ensure_ascii=False)
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


class ReleaseStore:
    """Keeps the latest assembled threads.

    Every refresh replaces the list wholesale. Stage changes live only in
    memory and disappear on the next refresh.
    """

    def __init__(self, assembler: ReleaseAssembler | None = None):
        self.assembler = assembler or ReleaseAssembler()
        self._lock = threading.Lock()
        self._threads: list[Thread] = []
        self._fingerprint: str | None = None
        self._last_refresh: datetime | None = None

    @property
    def threads(self) -> list[Thread]:
        with self._lock:
            return list(self._threads)

    @property
    def last_refresh(self) -> datetime | None:
        return self._last_refresh

    def refresh(self, rows: Iterable[Any]) -> bool:
        """Rebuild threads from rows.

        Returns:
            True if the row content differs from the previous refresh.
        """
        rows = list(rows)
        threads = self.assembler.assemble(parse_rows(rows))
        fingerprint = rows_fingerprint(rows)

        with self._lock:
            changed = fingerprint != self._fingerprint
            self._threads = threads
            self._fingerprint = fingerprint
            self._last_refresh = datetime.now()

        logger.info(f"Release store refreshed: {len(threads)} thread(s), changed={changed}")
        return changed

    def get(self, key: str) -> Thread | None:
        with self._lock:
            return next((thread for thread in self._threads if thread.key == key), None)

    def set_stage(self, key: str, stage: str | None) -> bool:
        """Reassign a thread's stage in memory; False if the thread is unknown."""

        with self._lock:
            for thread in self._threads:
                if thread.key == key:
                    thread.stage = stage or None
                    return True
        return False

    def stats(self, threads: list[Thread] | None = None) -> dict[str, Any]:
        """Summary counts for the dashboard's stat cards."""

        threads = self.threads if threads is None else threads
        by_stage: dict[str, int] = {}
        for thread in threads:
            label = thread.stage or "Unstaged"
            by_stage[label] = by_stage.get(label, 0) + 1

        return {
            "total": len(threads),
            "withReplies": sum(1 for thread in threads if thread.replies),
            "replies": sum(len(thread.replies) for thread in threads),
            "links": sum(len(thread.extracted_links) for thread in threads),
            "byStage": by_stage,
        }
