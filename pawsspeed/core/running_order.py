"""Running-order model.

Run order is stored per (round, size) group as a 1-based, contiguous, unique
integer. Every operation here returns a *new* competitor list whose touched
group is renumbered 1..n, so contiguity holds after any sequence of calls.

The "now running" queue is different: it spans the whole round (all sizes),
ordered size ascending (S < M < I < L) and then run order ascending.
"""
from __future__ import annotations

import logging
import random
from typing import Iterable, List, Optional, Sequence

from .constants import size_sort_key
from .types import Competitor

logger = logging.getLogger(__name__)

UP_NEXT_COUNT = 3


def in_group(comp: Competitor, round_id: str, size: str) -> bool:
    return comp.get("round_id") == round_id and comp.get("size") == size


def group_members(
    competitors: Iterable[Competitor], round_id: str, size: str
) -> List[Competitor]:
    """Members of one group in run order."""
    members = [c for c in competitors if in_group(c, round_id, size)]
    return sorted(members, key=lambda c: c.get("run_order") or 0)


def next_run_order(competitors: Iterable[Competitor], round_id: str, size: str) -> int:
    """max(run_order in group) + 1, or 1 for an empty group."""
    orders = [c.get("run_order") or 0 for c in competitors if in_group(c, round_id, size)]
    return max(orders, default=0) + 1


def apply_group_order(
    competitors: Sequence[Competitor],
    round_id: str,
    size: str,
    ordered_ids: Sequence[str],
) -> Optional[List[Competitor]]:
    """Assign run_order 1..n following `ordered_ids`.

    `ordered_ids` must be exactly the ids of the group (any order). Anything else
    (missing, extra or duplicated ids) is rejected with None.
    """
    group_ids = [c["id"] for c in competitors if in_group(c, round_id, size)]
    if len(ordered_ids) != len(group_ids) or set(ordered_ids) != set(group_ids):
        logger.warning(
            "Rejected reorder for round=%s size=%s: ids do not match the group",
            round_id,
            size,
        )
        return None

    position = {cid: idx for idx, cid in enumerate(ordered_ids, start=1)}
    result: List[Competitor] = []
    for comp in competitors:
        if in_group(comp, round_id, size):
            comp = {**comp, "run_order": position[comp["id"]]}  # type: ignore[typeddict-item]
        result.append(comp)
    return result


def compact_group(
    competitors: Sequence[Competitor], round_id: str, size: str
) -> List[Competitor]:
    """Renumber a group to 1..n preserving relative order (closes gaps)."""
    ordered = [c["id"] for c in group_members(competitors, round_id, size)]
    result = apply_group_order(competitors, round_id, size, ordered)
    return result if result is not None else list(competitors)


def move_before(
    competitors: Sequence[Competitor], dragged_id: str, target_id: str
) -> Optional[List[Competitor]]:
    """Drag-and-drop: take `dragged_id` out and reinsert it at the target's index.

    Both entries must share round and size; otherwise the move is rejected (None).
    Dropping an entry on itself is a no-op that returns the list unchanged.
    """
    by_id = {c["id"]: c for c in competitors}
    dragged = by_id.get(dragged_id)
    target = by_id.get(target_id)
    if dragged is None or target is None:
        return None
    if dragged.get("round_id") != target.get("round_id") or dragged.get("size") != target.get("size"):
        logger.warning(
            "Rejected move of %s onto %s: different round or size class", dragged_id, target_id
        )
        return None
    if dragged_id == target_id:
        return list(competitors)

    round_id, size = dragged["round_id"], dragged["size"]
    order = [c["id"] for c in group_members(competitors, round_id, size)]
    from_idx = order.index(dragged_id)
    to_idx = order.index(target_id)
    moved = order.pop(from_idx)
    order.insert(to_idx, moved)
    return apply_group_order(competitors, round_id, size, order)


def randomize_group(
    competitors: Sequence[Competitor],
    round_id: str,
    size: str,
    rng: Optional[random.Random] = None,
) -> Optional[List[Competitor]]:
    """Uniform Fisher-Yates shuffle of one group; None when fewer than 2 members."""
    ids = [c["id"] for c in group_members(competitors, round_id, size)]
    if len(ids) < 2:
        return None
    rng = rng or random.Random()
    for i in range(len(ids) - 1, 0, -1):
        j = rng.randint(0, i)
        ids[i], ids[j] = ids[j], ids[i]
    return apply_group_order(competitors, round_id, size, ids)


def round_in_running_order(
    competitors: Iterable[Competitor], round_id: str
) -> List[Competitor]:
    """All entries of a round, size ascending then run order ascending."""
    members = [c for c in competitors if c.get("round_id") == round_id]
    return sorted(
        members,
        key=lambda c: (size_sort_key(c.get("size", "")), c.get("run_order") or 0),
    )


def run_queue(competitors: Iterable[Competitor], round_id: str) -> List[Competitor]:
    """Entries that still have to run (no total, not eliminated), across all sizes."""
    return [
        c
        for c in round_in_running_order(competitors, round_id)
        if c.get("total_fault") is None and not c.get("eliminated")
    ]


def now_running(competitors: Iterable[Competitor], round_id: str) -> Optional[Competitor]:
    queue = run_queue(competitors, round_id)
    return queue[0] if queue else None


def up_next(
    competitors: Iterable[Competitor], round_id: str, count: int = UP_NEXT_COUNT
) -> List[Competitor]:
    return run_queue(competitors, round_id)[1 : 1 + count]
