"""Typed records for rows fetched from the release notes sheet."""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Iterable

logger = logging.getLogger(__name__)

# Header names used by the opensheet JSON export, in positional order.
SHEET_COLUMNS = (
    "Timestamp",
    "Sender",
    "Main Message",
    "Detailed Notes",
    "Screenshot Link",
    "Slack Link",
    "thread_ts",
    "Stage",
)


@dataclass(frozen=True)
class RawRecord:
    """One row of the exported channel, read-only once parsed."""

    id: int
    occurred_at: str
    sender_raw: str = "Unknown"
    main_text: str = ""
    detail_text: str = ""
    attachment_url: str | None = None
    external_url: str | None = None
    parent_link_id: str | None = None
    stage_label: str | None = None


def _cell(row: Sequence[Any], position: int) -> str:
    if position >= len(row):
        return ""
    value = row[position]
    if value is None:
        return ""
    return value if isinstance(value, str) else str(value)


def _optional(value: str) -> str | None:
    stripped = value.strip()
    if not stripped or stripped.lower() == "null":
        return None
    return stripped


def parse_row(row: Sequence[Any], index: int) -> RawRecord:
    """Build a RawRecord from a positional row.

    Args:
        row: ``[occurredAt, senderRaw, mainText, detailText, attachmentUrl,
            externalUrl, parentLinkId, stageLabel, ...]``. Missing trailing
            cells are treated as absent.
        index: 1-based row position within the current fetch.

    Returns:
        The parsed record.
    """
    return RawRecord(
        id=index,
        occurred_at=_cell(row, 0).strip(),
        sender_raw=_cell(row, 1).strip() or "Unknown",
        main_text=_cell(row, 2),
        detail_text=_cell(row, 3),
        attachment_url=_optional(_cell(row, 4)),
        external_url=_optional(_cell(row, 5)),
        parent_link_id=_optional(_cell(row, 6)),
        stage_label=_optional(_cell(row, 7)),
    )


def parse_named_row(row: Mapping[str, Any], index: int) -> RawRecord:
    """Build a RawRecord from an opensheet row keyed by header names."""

    return parse_row([row.get(column) for column in SHEET_COLUMNS], index)


def parse_rows(rows: Iterable[Any]) -> list[RawRecord]:
    """Parse every usable row, skipping anything that is not row-shaped."""

    records: list[RawRecord] = []
    for position, row in enumerate(rows, start=1):
        if isinstance(row, Mapping):
            records.append(parse_named_row(row, position))
        elif isinstance(row, Sequence) and not isinstance(row, (str, bytes)):
            records.append(parse_row(row, position))
        else:
            logger.debug(f"Skipping row {position}: unsupported shape {type(row).__name__}")
    return records


# ----------------------------------------------------------------------
# Manual fix-ups
# ----------------------------------------------------------------------

PATCHABLE_FIELDS = frozenset(
    item.name for item in fields(RawRecord) if item.name not in {"id", "occurred_at"}
)
OPTIONAL_FIELDS = frozenset({"attachment_url", "external_url", "parent_link_id", "stage_label"})


def _coerce_patch_value(field_name: str, value: Any) -> tuple[bool, str | None]:
    """Return ``(ok, value)`` with JSON scalars turned into the field's text type."""

    if value is None:
        return field_name in OPTIONAL_FIELDS, None
    if isinstance(value, bool):
        return False, None
    if isinstance(value, str):
        return True, value
    if isinstance(value, (int, float)):
        return True, str(value)
    return False, None


class OverrideTable:
    """Per-record corrections keyed by ``occurred_at``.

    A patch may set any RawRecord field except ``id`` and ``occurred_at``, or
    ``"hidden": true`` to drop the record before threads are rebuilt. Numbers
    are stored as text; values of any other type are dropped with a warning.
    """

    def __init__(self, patches: Mapping[str, Mapping[str, Any]] | None = None):
        self.hidden: set[str] = set()
        self.patches: dict[str, dict[str, str | None]] = {}
        for key, patch in (patches or {}).items():
            record_key = str(key).strip()
            if not isinstance(patch, Mapping):
                logger.warning(f"Ignoring override for {record_key}: patch must be an object")
                continue
            if patch.get("hidden") is True:
                self.hidden.add(record_key)
                continue
            changes = self._clean_patch(record_key, patch)
            if changes:
                self.patches[record_key] = changes

    @staticmethod
    def _clean_patch(record_key: str, patch: Mapping[str, Any]) -> dict[str, str | None]:
        changes: dict[str, str | None] = {}
        for field_name, value in patch.items():
            if field_name == "hidden":
                continue
            if field_name not in PATCHABLE_FIELDS:
                logger.warning(f"Ignoring unknown override field {field_name!r} for {record_key}")
                continue
            ok, coerced = _coerce_patch_value(field_name, value)
            if not ok:
                logger.warning(
                    f"Ignoring override field {field_name!r} for {record_key}: "
                    f"unsupported value {value!r}"
                )
                continue
            changes[field_name] = coerced
        return changes

    def __len__(self) -> int:
        return len(self.patches) + len(self.hidden)

    def apply(self, records: Iterable[RawRecord]) -> list[RawRecord]:
        """Return records with patches applied and hidden records removed."""

        patched: list[RawRecord] = []
        for record in records:
            if record.occurred_at in self.hidden:
                continue
            changes = self.patches.get(record.occurred_at)
            patched.append(replace(record, **changes) if changes else record)
        return patched


def load_overrides(path: str | Path | None) -> OverrideTable:
    """Load an override table from a JSON file, falling back to an empty table."""

    if not path:
        return OverrideTable()

    override_path = Path(path).expanduser()
    if not override_path.exists():
        logger.warning(f"Override file not found: {override_path}")
        return OverrideTable()

    try:
        data = json.loads(override_path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        logger.warning(f"Malformed override file {override_path}: {exc}")
        return OverrideTable()

    if not isinstance(data, dict):
        logger.warning(f"Override file {override_path} must contain a JSON object")
        return OverrideTable()

    return OverrideTable(data)
