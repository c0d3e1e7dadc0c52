"""Shared ranking tables for the exporters.

Every export (spreadsheet, document, image) shows the same rows: one (round, size)
group ranked by `rank_competitors`, in the engine's output order.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

import pandas as pd

from pawsspeed.core.constants import SIZE_LABELS, SIZES
from pawsspeed.core.ranking import rank_competitors
from pawsspeed.core.running_order import group_members
from pawsspeed.core.scoring import NO_COURSE_TIME, score_status
from pawsspeed.core.types import CompetitionState, CourseTime, RankedCompetitor, Round

COLUMNS = [
    "Rank",
    "Size",
    "Order",
    "Dog",
    "Breed",
    "Handler",
    "C.Faults",
    "Refusals",
    "T.Faults",
    "Total Faults",
    "Time",
    "Status",
]

NO_RANK = "—"


@dataclass
class GroupTable:
    round: Round
    size: str
    course_time: CourseTime
    ranked: List[RankedCompetitor]

    @property
    def size_label(self) -> str:
        return SIZE_LABELS.get(self.size, self.size)

    @property
    def title(self) -> str:
        return f"{self.round['name']} – {self.size_label} ({self.size})"


def _blank(value: Any) -> Any:
    return "" if value is None else value


def ranking_row(comp: RankedCompetitor) -> Dict[str, Any]:
    rank = comp.get("rank")
    return {
        "Rank": rank if rank is not None else NO_RANK,
        "Size": comp.get("size", ""),
        "Order": comp.get("run_order", ""),
        "Dog": comp.get("dog_name", ""),
        "Breed": comp.get("breed") or "",
        "Handler": comp.get("human_name", ""),
        "C.Faults": _blank(comp.get("fault")),
        "Refusals": _blank(comp.get("refusal")),
        "T.Faults": _blank(comp.get("time_fault")),
        "Total Faults": _blank(comp.get("total_fault")),
        "Time": _blank(comp.get("time_sec")),
        "Status": score_status(comp),
    }


def ranking_frame(ranked: Iterable[RankedCompetitor]) -> pd.DataFrame:
    return pd.DataFrame([ranking_row(c) for c in ranked], columns=COLUMNS)


def rounds_in_order(state: CompetitionState, round_id: Optional[str] = None) -> List[Round]:
    rounds = sorted(state.get("rounds") or [], key=lambda r: r.get("sort_order", 0))
    if round_id is not None:
        rounds = [r for r in rounds if r["id"] == round_id]
    return rounds


def course_time(state: CompetitionState, round_id: str) -> CourseTime:
    return dict((state.get("courseTimeConfig") or {}).get(round_id) or NO_COURSE_TIME)  # type: ignore[return-value]


def build_group(state: CompetitionState, rnd: Round, size: str) -> GroupTable:
    members = group_members(state.get("competitors") or [], rnd["id"], size)
    return GroupTable(
        round=rnd,
        size=size,
        course_time=course_time(state, rnd["id"]),
        ranked=rank_competitors(members),
    )


def build_groups(
    state: CompetitionState,
    round_id: Optional[str] = None,
    size: Optional[str] = None,
) -> List[GroupTable]:
    """Ranked tables for every (round, size) with entrants, rounds in configured order, sizes S→L."""
    sizes = [size] if size else SIZES
    groups: List[GroupTable] = []
    for rnd in rounds_in_order(state, round_id):
        for sz in sizes:
            group = build_group(state, rnd, sz)
            if group.ranked:
                groups.append(group)
    return groups


def format_time(value: Optional[float]) -> str:
    return f"{value:.2f}s" if value is not None else ""
