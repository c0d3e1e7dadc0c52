"""Type definitions for competition state, run entries and sync records."""
from __future__ import annotations

from typing import Dict, List, Literal, Optional, TypedDict

Size = Literal["S", "M", "I", "L"]
SyncStatus = Literal["off", "connecting", "connected", "error"]


class Competitor(TypedDict, total=False):
    """One dog's scheduled or completed run within one round."""
    id: str
    round_id: str
    dog_id: str
    size: Size
    run_order: int
    dog_name: str
    breed: str
    human_name: str
    icon: Optional[str]

    # Raw inputs (stored verbatim)
    fault: Optional[int]
    refusal: Optional[int]
    time_sec: Optional[float]

    # Derived by the scoring calculator, never entered directly
    time_fault: Optional[int]
    total_fault: Optional[int]
    eliminated: bool


class RankedCompetitor(Competitor, total=False):
    """Read-only ranking view (never persisted)."""
    rank: Optional[int]


class CourseTime(TypedDict):
    sct: float
    mct: float


CourseTimeConfig = Dict[str, CourseTime]


class Round(TypedDict, total=False):
    """
    A competition stage.

    `id` is an opaque stable key; `name` is the mutable display label, so a rename
    never has to re-key competitors or the course time config.
    """
    id: str
    name: str
    abbreviation: str  # <= 4 chars, used in compact headers
    sort_order: int


class CompetitionState(TypedDict, total=False):
    # Persisted subset
    schemaVersion: int
    rounds: List[Round]
    courseTimeConfig: CourseTimeConfig
    competitors: List[Competitor]
    liveRoundId: Optional[str]

    # Transient (never persisted)
    currentRoundId: Optional[str]
    hostUnlocked: bool
    selectedCompetitorId: Optional[str]


class SyncRecord(TypedDict, total=False):
    """Shared remote record keyed by session code."""
    session_id: str
    competitors: List[Competitor]
    course_time_config: CourseTimeConfig
    rounds: List[Round]
    last_updated_by: str
    updated_at: str
