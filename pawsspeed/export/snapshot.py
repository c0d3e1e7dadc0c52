"""JSON snapshot export/import (full backup and restore).

Format::

    {
      "competitors": [...],
      "rounds": [...],
      "courseTimeConfig": {"<roundId>": {"sct": 40, "mct": 56}},
      "exportDate": "2026-05-01T10:00:00+00:00"
    }

Import is all-or-nothing: the whole payload is validated before anything is applied.
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, ValidationError

from pawsspeed.core.state import CompetitionStore
from pawsspeed.core.types import CompetitionState, CourseTimeConfig, Competitor, Round
from pawsspeed.core.validation import CompetitorRecord, CourseTimeInput, RoundRecord

logger = logging.getLogger(__name__)


class SnapshotError(ValueError):
    """Malformed snapshot; nothing was applied."""


class _SnapshotModel(BaseModel):
    competitors: List[CompetitorRecord]
    rounds: List[RoundRecord] = Field(default_factory=list)
    courseTimeConfig: Dict[str, CourseTimeInput] = Field(default_factory=dict)
    exportDate: Optional[str] = None


@dataclass
class Snapshot:
    competitors: List[Competitor]
    rounds: List[Round]
    course_time_config: CourseTimeConfig
    export_date: Optional[str]


def export_snapshot(state: CompetitionState, now: Optional[datetime] = None) -> Dict[str, Any]:
    return {
        "competitors": list(state.get("competitors") or []),
        "rounds": list(state.get("rounds") or []),
        "courseTimeConfig": dict(state.get("courseTimeConfig") or {}),
        "exportDate": (now or datetime.now(timezone.utc)).isoformat(),
    }


def dumps_snapshot(state: CompetitionState, now: Optional[datetime] = None) -> str:
    return json.dumps(export_snapshot(state, now), ensure_ascii=False, indent=2)


def parse_snapshot(raw: str | bytes | Dict[str, Any]) -> Snapshot:
    """Parse and validate a snapshot.

    Raises:
        SnapshotError: If the payload is not JSON or does not have the snapshot shape
    """
    if isinstance(raw, (str, bytes)):
        try:
            data = json.loads(raw)
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise SnapshotError(f"invalid JSON: {exc}") from exc
    else:
        data = raw
    if not isinstance(data, dict) or "competitors" not in data:
        raise SnapshotError("snapshot must be an object with a competitors list")
    try:
        model = _SnapshotModel.model_validate(data)
    except ValidationError as exc:
        raise SnapshotError(f"invalid snapshot: {exc}") from exc

    ids = [c.id for c in model.competitors]
    if len(ids) != len(set(ids)):
        raise SnapshotError("duplicate competitor ids")

    return Snapshot(
        competitors=[c.model_dump() for c in model.competitors],  # type: ignore[misc]
        rounds=[r.model_dump() for r in model.rounds],  # type: ignore[misc]
        course_time_config={k: v.model_dump() for k, v in model.courseTimeConfig.items()},  # type: ignore[misc]
        export_date=model.exportDate,
    )


def apply_snapshot(store: CompetitionStore, snapshot: Snapshot) -> None:
    """Restore a parsed snapshot: unknown rounds are added, then competitors and
    course times are replaced wholesale."""
    referenced = {c["round_id"] for c in snapshot.competitors}
    known = {r["id"] for r in store.rounds} | {r["id"] for r in snapshot.rounds}
    missing = sorted(referenced - known)
    rounds = list(snapshot.rounds) + [
        {"id": rid, "name": rid, "abbreviation": rid[:4], "sort_order": 0} for rid in missing
    ]
    store.merge_rounds(rounds)  # type: ignore[arg-type]
    store.import_data(snapshot.competitors, snapshot.course_time_config)
    logger.info(
        "Restored snapshot from %s (%s competitors)", snapshot.export_date, len(snapshot.competitors)
    )


def import_snapshot(store: CompetitionStore, raw: str | bytes | Dict[str, Any]) -> Snapshot:
    snapshot = parse_snapshot(raw)
    apply_snapshot(store, snapshot)
    return snapshot
