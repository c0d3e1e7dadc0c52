"""Roster import: turn a spreadsheet-ish table of entrants into competitors.

Row 1 holds headers. Columns are detected by alias (case-insensitive), so a
sheet exported from a registration form usually works unchanged:

- dog: dog / name / dog name / dogname / dog_name
- breed (optional): breed / dog breed / dogbreed / breed name
- size: size / height / jump height / class
- handler: handler / human / owner / handler name / handlername

Rows that cannot be used are reported back with a reason instead of aborting
the import.
"""
from __future__ import annotations

import csv
import io
import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, List, Optional, Sequence

from .state import ActionResult, CompetitionStore

logger = logging.getLogger(__name__)

DOG_ALIASES = ("dog", "name", "dog name", "dogname", "dog_name")
BREED_ALIASES = ("breed", "dog breed", "dogbreed", "breed name")
SIZE_ALIASES = ("size", "height", "jump height", "class")
HUMAN_ALIASES = ("handler", "human", "owner", "handler name", "handlername")

_SIZE_WORDS = {
    "s": "S",
    "small": "S",
    "m": "M",
    "medium": "M",
    "med": "M",
    "i": "I",
    "intermediate": "I",
    "inter": "I",
    "l": "L",
    "large": "L",
}


@dataclass
class RosterRow:
    dog: str
    breed: str
    size: str
    human: str


@dataclass
class SkippedRow:
    raw: List[str]
    reason: str


@dataclass
class RosterParseResult:
    valid: List[RosterRow] = field(default_factory=list)
    skipped: List[SkippedRow] = field(default_factory=list)


def normalize_size(raw: str) -> Optional[str]:
    return _SIZE_WORDS.get((raw or "").strip().lower())


def _find_column(headers: Sequence[str], aliases: Iterable[str]) -> int:
    wanted = set(aliases)
    for idx, header in enumerate(headers):
        if header.strip().lower() in wanted:
            return idx
    return -1


def _cell(value: Any) -> str:
    return "" if value is None else str(value).strip()


def parse_roster_rows(rows: Iterable[Sequence[Any]]) -> RosterParseResult:
    """Parse header + data rows (cells may be any scalar, e.g. from openpyxl)."""
    table = [[_cell(v) for v in row] for row in rows]
    table = [row for row in table if any(row)]
    if len(table) < 2:
        return RosterParseResult()

    headers = table[0]
    dog_idx = _find_column(headers, DOG_ALIASES)
    breed_idx = _find_column(headers, BREED_ALIASES)
    size_idx = _find_column(headers, SIZE_ALIASES)
    human_idx = _find_column(headers, HUMAN_ALIASES)

    if dog_idx == -1 or size_idx == -1 or human_idx == -1:
        return RosterParseResult(
            skipped=[SkippedRow(headers, "Could not detect required columns (Dog, Size, Handler)")]
        )

    def at(row: List[str], idx: int) -> str:
        return row[idx] if 0 <= idx < len(row) else ""

    result = RosterParseResult()
    for row in table[1:]:
        dog = at(row, dog_idx)
        human = at(row, human_idx)
        size_raw = at(row, size_idx)
        breed = at(row, breed_idx) or "—"
        size = normalize_size(size_raw)

        if not dog:
            result.skipped.append(SkippedRow(row, "Missing dog name"))
            continue
        if not human:
            result.skipped.append(SkippedRow(row, "Missing handler name"))
            continue
        if not size:
            result.skipped.append(SkippedRow(row, f'Unknown size "{size_raw}" (use S/M/I/L)'))
            continue
        result.valid.append(RosterRow(dog=dog, breed=breed, size=size, human=human))
    return result


def parse_roster_csv(text: str) -> RosterParseResult:
    """Parse CSV text (quoted fields may contain commas and doubled quotes)."""
    reader = csv.reader(io.StringIO((text or "").lstrip("\ufeff")))
    return parse_roster_rows(reader)


def import_roster(
    store: CompetitionStore, round_id: str, parsed: RosterParseResult
) -> List[ActionResult]:
    """Append every valid row to `round_id` (next run order per size group).

    Rows the store rejects are moved to `parsed.skipped` with the store's reason.
    """
    results: List[ActionResult] = []
    for row in parsed.valid:
        result = store.add_competitor(
            dog_name=row.dog,
            human_name=row.human,
            size=row.size,
            breed=row.breed,
            round_id=round_id,
        )
        if not result.ok:
            parsed.skipped.append(
                SkippedRow([row.dog, row.breed, row.size, row.human], result.reason or "rejected")
            )
        results.append(result)
    added = sum(1 for r in results if r.ok)
    logger.info("Roster import into %s: %s added, %s skipped", round_id, added, len(parsed.skipped))
    return results
