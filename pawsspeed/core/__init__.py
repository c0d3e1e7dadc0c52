from .commands import CommandOutcome, apply_command, parse_command
from .constants import DEFAULT_MCT, DEFAULT_SCT, SIZES, dog_emoji
from .ranking import podium, rank_competitors, ranked_only
from .roster import RosterParseResult, import_roster, parse_roster_csv, parse_roster_rows
from .running_order import now_running, run_queue, up_next
from .scoring import (
    compute_score,
    eliminate_competitor,
    is_over_max_time,
    recompute_round,
    score_competitor,
    score_status,
    time_fault,
)
from .state import ActionResult, CompetitionStore, default_state
from .types import CompetitionState, Competitor, CourseTime, RankedCompetitor, Round, SyncRecord
from .validation import InputSanitizer, ValidatedCmd

__all__ = [
    "ActionResult",
    "CommandOutcome",
    "CompetitionState",
    "CompetitionStore",
    "Competitor",
    "CourseTime",
    "DEFAULT_MCT",
    "DEFAULT_SCT",
    "InputSanitizer",
    "RankedCompetitor",
    "RosterParseResult",
    "Round",
    "SIZES",
    "SyncRecord",
    "ValidatedCmd",
    "apply_command",
    "compute_score",
    "default_state",
    "dog_emoji",
    "eliminate_competitor",
    "import_roster",
    "is_over_max_time",
    "now_running",
    "parse_command",
    "parse_roster_csv",
    "parse_roster_rows",
    "podium",
    "rank_competitors",
    "ranked_only",
    "recompute_round",
    "run_queue",
    "score_competitor",
    "score_status",
    "time_fault",
    "up_next",
]
