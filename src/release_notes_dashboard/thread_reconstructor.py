"""Rebuild Slack threads from the flat rows of the sheet export."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable

from release_notes_dashboard.records import RawRecord
from release_notes_dashboard.timestamps import canonical_key, is_timestamp_shaped, sort_key

logger = logging.getLogger(__name__)


@dataclass
class ThreadGroup:
    """A parent record and the replies attached to it."""

    parent: RawRecord
    replies: list[RawRecord] = field(default_factory=list)


class ThreadReconstructor:
    """Groups raw records into parent + reply threads."""

    def reconstruct(self, records: Iterable[RawRecord]) -> list[ThreadGroup]:
        """Partition records into threads.

        Args:
            records: Records in fetch order.

        Returns:
            One group per parent, in the order the parents were read. Orphaned
            replies are promoted to standalone parents at their own position.
        """
        placed: list[tuple[int, ThreadGroup]] = []
        by_key: dict[str, ThreadGroup] = {}
        pending: list[tuple[int, RawRecord]] = []

        for position, record in enumerate(records):
            if self.is_reply(record):
                pending.append((position, record))
                continue

            group = ThreadGroup(parent=record)
            placed.append((position, group))
            key = canonical_key(record.occurred_at)
            # Duplicate timestamps: replies attach to the first parent read.
            if key and key not in by_key:
                by_key[key] = group

        for position, record in pending:
            group = by_key.get(canonical_key(record.parent_link_id))
            if group is not None:
                group.replies.append(record)
                continue

            logger.debug(
                f"Promoting orphan reply {record.occurred_at} (parent {record.parent_link_id} not found)"
            )
            placed.append((position, ThreadGroup(parent=record)))

        placed.sort(key=lambda item: item[0])
        groups = [group for _, group in placed]
        for group in groups:
            group.replies.sort(key=lambda reply: sort_key(reply.occurred_at))
        return groups

    @staticmethod
    def is_reply(record: RawRecord) -> bool:
        """Return True when the record links to a different, timestamp-shaped parent."""

        link = record.parent_link_id
        if not link or not is_timestamp_shaped(link):
            return False
        return canonical_key(link) != canonical_key(record.occurred_at)
