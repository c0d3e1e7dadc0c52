"""Command dispatch onto the competition store.

A command is a plain dict with a `type` plus camelCase fields (the same shape the
web client posts to `/api/cmd`). `apply_command` validates it, routes it to the
matching named store action and reports a `CommandOutcome`.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, FrozenSet

from .state import ActionResult, CompetitionStore
from .validation import ValidatedCmd

logger = logging.getLogger(__name__)


@dataclass
class CommandOutcome:
    """Result of applying a command."""

    ok: bool
    type: str
    reason: str | None = None
    changed: FrozenSet[str] = frozenset()
    toast: str | None = None
    data: Dict[str, Any] = field(default_factory=dict)


def parse_command(cmd: Dict[str, Any]) -> ValidatedCmd:
    """Validate a raw command dict.

    Raises:
        ValueError: If the command type is unknown or a required field is missing
    """
    try:
        return ValidatedCmd(**cmd)
    except Exception as e:
        logger.warning(f"Command validation failed: {e}")
        raise ValueError(f"Invalid command: {str(e)}")


def _add_competitor(store: CompetitionStore, c: ValidatedCmd) -> ActionResult:
    return store.add_competitor(
        dog_name=c.dogName or "",
        human_name=c.humanName or "",
        size=c.size or "",
        breed=c.breed or "",
        icon=c.icon,
        round_id=c.roundId,
        dog_id=c.dogId,
    )


_HANDLERS: Dict[str, Callable[[CompetitionStore, ValidatedCmd], ActionResult]] = {
    "ADD_ROUND": lambda s, c: s.add_round(c.name or "", c.abbreviation),
    "RENAME_ROUND": lambda s, c: s.rename_round(c.roundId, c.name or "", c.abbreviation),
    "DELETE_ROUND": lambda s, c: s.delete_round(c.roundId),
    "SET_ROUND_ABBR": lambda s, c: s.set_round_abbreviation(c.roundId, c.abbreviation or ""),
    "SET_CURRENT_ROUND": lambda s, c: s.set_current_round(c.roundId),
    "SET_LIVE_ROUND": lambda s, c: s.set_live_round(c.roundId),
    "ADD_COMPETITOR": _add_competitor,
    "REMOVE_COMPETITOR": lambda s, c: s.remove_competitor(c.competitorId),
    "SAVE_SCORE": lambda s, c: s.save_score(c.competitorId, c.fault, c.refusal, c.time),
    "ELIMINATE": lambda s, c: s.eliminate(c.competitorId),
    "UPDATE_ICON": lambda s, c: s.update_icon(c.dogName or "", c.humanName or "", c.icon),
    "UPDATE_COURSE_TIME": lambda s, c: s.update_course_time(c.roundId, c.sct, c.mct),
    "REORDER_GROUP": lambda s, c: s.reorder_group(c.roundId, c.size, c.orderedIds or []),
    "MOVE_COMPETITOR": lambda s, c: s.move_competitor(c.competitorId, c.targetId),
    "RANDOMIZE_GROUP": lambda s, c: s.randomize_group(c.roundId, c.size),
    "CLEAR_ALL": lambda s, c: s.clear_all(),
}


def apply_command(store: CompetitionStore, cmd: Dict[str, Any] | ValidatedCmd) -> CommandOutcome:
    """Apply one command to the store.

    Invalid command shapes raise ValueError (see `parse_command`); a well-formed
    command that the store rejects returns `ok=False` with the store's reason and
    leaves the state unchanged.
    """
    validated = cmd if isinstance(cmd, ValidatedCmd) else parse_command(cmd)
    result = _HANDLERS[validated.type](store, validated)
    toast = result.data.get("toast") if result.ok else None
    return CommandOutcome(
        ok=result.ok,
        type=validated.type,
        reason=result.reason,
        changed=result.changed,
        toast=toast,
        data={k: v for k, v in result.data.items() if k != "toast"},
    )


__all__ = ["CommandOutcome", "apply_command", "parse_command"]
