"""Ranking engine for one (round, size) group.

Output order is part of the contract (exports and displays rely on list order):

1. clear rounds (total 0) by time ascending, ranked 1..k
2. faulted rounds by total ascending, then time ascending, ranks continue
3. eliminated entries (rank None) in their original relative order
4. pending entries (rank None) in their original relative order

The engine does not filter by round or size; callers pass a single group.
"""
from __future__ import annotations

from typing import Iterable, List

from .types import Competitor, RankedCompetitor


def _time_key(comp: Competitor) -> float:
    t = comp.get("time_sec")
    return t if t is not None else 0.0


def _is_scored(comp: Competitor) -> bool:
    return comp.get("total_fault") is not None and not comp.get("eliminated")


def rank_competitors(competitors: Iterable[Competitor]) -> List[RankedCompetitor]:
    group = list(competitors)
    scored = [c for c in group if _is_scored(c)]

    # sorted() is stable, so equal keys keep their input order.
    clear = sorted((c for c in scored if c["total_fault"] == 0), key=_time_key)
    faulted = sorted(
        (c for c in scored if c["total_fault"] > 0),
        key=lambda c: (c["total_fault"], _time_key(c)),
    )
    eliminated = [c for c in group if c.get("eliminated")]
    pending = [c for c in group if c.get("total_fault") is None and not c.get("eliminated")]

    result: List[RankedCompetitor] = []
    for idx, comp in enumerate(clear + faulted, start=1):
        result.append({**comp, "rank": idx})  # type: ignore[typeddict-item]
    for comp in eliminated + pending:
        result.append({**comp, "rank": None})  # type: ignore[typeddict-item]
    return result


def ranked_only(ranked: Iterable[RankedCompetitor]) -> List[RankedCompetitor]:
    return [c for c in ranked if c.get("rank") is not None]


def podium(ranked: Iterable[RankedCompetitor]) -> List[RankedCompetitor]:
    """Top three ranked entries, or an empty list when fewer than three are ranked."""
    placed = ranked_only(ranked)
    if len(placed) < 3:
        return []
    return placed[:3]
