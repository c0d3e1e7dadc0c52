"""Scoring calculator (pure, no I/O).

Converts the raw inputs of a run (course faults, refusals, elapsed time) into the
derived fields of a competitor, given the round's course times:

- time fault: one point per *full* second over SCT (fractions below a full second
  add nothing)
- elimination: time strictly over MCT (when MCT > 0) eliminates; eliminated runs
  carry no numeric score
- total fault: course faults + refusals + time fault

Every function returns new dicts; callers own persistence.
"""
from __future__ import annotations

import math
from typing import Any, Dict, Iterable, List, Optional

from .types import Competitor, CourseTime

NO_COURSE_TIME: CourseTime = {"sct": 0, "mct": 0}


def time_fault(time: Optional[float], sct: float) -> int:
    """Whole seconds over SCT; 0 when unset or within SCT."""
    if time is None or time <= sct:
        return 0
    return int(math.floor(time - sct))


def is_over_max_time(time: Optional[float], mct: float) -> bool:
    """True iff time is set, MCT is positive and time exceeds it."""
    return time is not None and mct > 0 and time > mct


def compute_score(competitor: Competitor, course_time: CourseTime) -> Dict[str, Any]:
    """Derive time_fault / total_fault / eliminated for one competitor.

    Returns only the derived fields. An unrun competitor (no time) keeps its
    current elimination flag so a manual elimination is not undone.
    """
    run_time = competitor.get("time_sec")
    if run_time is None:
        return {
            "time_fault": None,
            "total_fault": None,
            "eliminated": bool(competitor.get("eliminated", False)),
        }
    if is_over_max_time(run_time, course_time.get("mct", 0)):
        return {"time_fault": None, "total_fault": None, "eliminated": True}

    tf = time_fault(run_time, course_time.get("sct", 0))
    total = (competitor.get("fault") or 0) + (competitor.get("refusal") or 0) + tf
    return {"time_fault": tf, "total_fault": total, "eliminated": False}


def score_competitor(
    competitor: Competitor,
    fault: Optional[int],
    refusal: Optional[int],
    time_sec: float,
    course_time: CourseTime,
) -> Competitor:
    """Store raw inputs verbatim (blank faults/refusals become 0) and re-derive."""
    updated: Competitor = dict(competitor)  # type: ignore[assignment]
    updated["fault"] = fault if fault is not None else 0
    updated["refusal"] = refusal if refusal is not None else 0
    updated["time_sec"] = time_sec
    # A fresh score always clears a previous manual elimination before deriving.
    updated["eliminated"] = False
    updated.update(compute_score(updated, course_time))
    return updated


def eliminate_competitor(competitor: Competitor) -> Competitor:
    """Manual disqualification: clear every score field and mark eliminated."""
    updated: Competitor = dict(competitor)  # type: ignore[assignment]
    updated.update(
        {
            "fault": None,
            "refusal": None,
            "time_sec": None,
            "time_fault": None,
            "total_fault": None,
            "eliminated": True,
        }
    )
    return updated


def recompute_round(
    competitors: Iterable[Competitor], round_id: str, course_time: CourseTime
) -> List[Competitor]:
    """Re-derive every already-scored competitor of `round_id` under new course times.

    Competitors without a time are returned untouched. Applying the same course
    times twice yields the same list.
    """
    result: List[Competitor] = []
    for comp in competitors:
        if comp.get("round_id") != round_id or comp.get("time_sec") is None:
            result.append(comp)
            continue
        updated: Competitor = dict(comp)  # type: ignore[assignment]
        updated["eliminated"] = False
        updated.update(compute_score(updated, course_time))
        result.append(updated)
    return result


def score_status(competitor: Competitor) -> str:
    """Display status: Eliminated / Done / Pending."""
    if competitor.get("eliminated"):
        return "Eliminated"
    if competitor.get("total_fault") is not None:
        return "Done"
    return "Pending"
