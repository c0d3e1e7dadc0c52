"""Competition state container (pure, no FastAPI/disk).

`CompetitionStore` is the single source of truth for one competition:
- rounds (stable ids + display names/abbreviations)
- course time config keyed by round id
- competitors (run entries) across all rounds
- current / live round pointers

Discipline:
- every mutation goes through a named action returning `ActionResult`
- invalid mutations are rejected as a no-op (ok=False + reason) and logged; they never raise
- top-level values are replaced, never edited in place, so listeners can compare by identity
- listeners registered with `subscribe()` run after every successful change with the set of
  changed keys; persistence and sync push hang off these

Only a subset of the state is persisted (see `PERSISTED_KEYS`). Transient fields (current round,
host unlock, selection) are recomputed or reset on load.
"""
from __future__ import annotations

import logging
import random
import re
import uuid
from copy import deepcopy
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, FrozenSet, Iterable, List, Optional, Sequence

from pydantic import ValidationError

from . import running_order
from .constants import (
    ABBREVIATION_MAX_LEN,
    DEFAULT_COURSE_TIMES,
    DEFAULT_MCT,
    DEFAULT_ROUND_ABBREVIATIONS,
    DEFAULT_ROUNDS,
    DEFAULT_SCT,
    SIZES,
    dog_emoji,
)
from .scoring import (
    NO_COURSE_TIME,
    eliminate_competitor,
    recompute_round,
    score_competitor,
)
from .types import CompetitionState, Competitor, CourseTime, CourseTimeConfig, Round
from .validation import CompetitorInput, CourseTimeInput, InputSanitizer, ScoreInput

logger = logging.getLogger(__name__)

# Bumped when the persisted shape changes incompatibly. Older payloads have no
# `schemaVersion` (round names doubled as ids) and are discarded on load.
SCHEMA_VERSION = 2

PERSISTED_KEYS = ("rounds", "courseTimeConfig", "competitors", "liveRoundId")
# Keys replicated by the sync protocol.
SYNCED_KEYS = frozenset({"rounds", "courseTimeConfig", "competitors"})

Listener = Callable[["CompetitionStore", FrozenSet[str]], None]


@dataclass
class ActionResult:
    """Outcome of a store action."""

    ok: bool
    reason: str | None = None
    changed: FrozenSet[str] = frozenset()
    data: Dict[str, Any] = field(default_factory=dict)


def _reject(action: str, reason: str, **context: Any) -> ActionResult:
    logger.warning("Rejected %s: %s %s", action, reason, context or "")
    return ActionResult(ok=False, reason=reason)


def slugify(value: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", (value or "").strip().lower()).strip("-")
    return slug or "x"


def derive_dog_id(dog_name: str) -> str:
    """Weak cross-round identity: same dog name, same id."""
    return f"dog-{slugify(dog_name)}"


def default_rounds() -> List[Round]:
    return [
        {
            "id": slugify(name),
            "name": name,
            "abbreviation": DEFAULT_ROUND_ABBREVIATIONS.get(name, name[:ABBREVIATION_MAX_LEN]),
            "sort_order": idx,
        }
        for idx, name in enumerate(DEFAULT_ROUNDS)
    ]


def default_state() -> CompetitionState:
    """Fresh competition: the default rounds with their course times, no entrants."""
    rounds = default_rounds()
    course_times: CourseTimeConfig = {
        r["id"]: dict(DEFAULT_COURSE_TIMES[r["name"]]) for r in rounds  # type: ignore[misc]
    }
    first = rounds[0]["id"] if rounds else None
    return {
        "schemaVersion": SCHEMA_VERSION,
        "rounds": rounds,
        "courseTimeConfig": course_times,
        "competitors": [],
        "liveRoundId": first,
        "currentRoundId": first,
        "hostUnlocked": False,
        "selectedCompetitorId": None,
    }


class CompetitionStore:
    def __init__(
        self,
        state: CompetitionState | None = None,
        *,
        rng: random.Random | None = None,
        id_factory: Callable[[], str] | None = None,
    ) -> None:
        self._state: Dict[str, Any] = dict(deepcopy(state) if state is not None else default_state())
        self._listeners: List[Listener] = []
        self._rng = rng or random.Random()
        self._new_id = id_factory or (lambda: str(uuid.uuid4()))

    # ==================== READ ACCESS ====================

    def get_state(self) -> CompetitionState:
        """Deep copy of the full state (callers cannot alias internal structures)."""
        return deepcopy(self._state)  # type: ignore[return-value]

    @property
    def rounds(self) -> List[Round]:
        return deepcopy(self._sorted_rounds())

    @property
    def competitors(self) -> List[Competitor]:
        return deepcopy(self._state["competitors"])

    @property
    def course_time_config(self) -> CourseTimeConfig:
        return deepcopy(self._state["courseTimeConfig"])

    @property
    def current_round_id(self) -> Optional[str]:
        return self._state.get("currentRoundId")

    @property
    def live_round_id(self) -> Optional[str]:
        return self._state.get("liveRoundId")

    @property
    def host_unlocked(self) -> bool:
        return bool(self._state.get("hostUnlocked"))

    def get_round(self, round_id: str) -> Optional[Round]:
        rnd = self._find_round(round_id)
        return dict(rnd) if rnd else None  # type: ignore[return-value]

    def get_competitor(self, competitor_id: str) -> Optional[Competitor]:
        comp = self._find_competitor(competitor_id)
        return dict(comp) if comp else None  # type: ignore[return-value]

    def course_time_for(self, round_id: str) -> CourseTime:
        ct = self._state["courseTimeConfig"].get(round_id)
        return dict(ct) if ct else dict(NO_COURSE_TIME)  # type: ignore[return-value]

    def group(self, round_id: str, size: str) -> List[Competitor]:
        return deepcopy(running_order.group_members(self._state["competitors"], round_id, size))

    # ==================== SUBSCRIPTIONS ====================

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a change listener; returns the matching unsubscribe callable."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _commit(self, action: str, changes: Dict[str, Any], **data: Any) -> ActionResult:
        changed = frozenset(k for k, v in changes.items() if self._state.get(k) is not v)
        self._state.update(changes)
        if changed:
            logger.debug("%s changed %s", action, sorted(changed))
            for listener in list(self._listeners):
                try:
                    listener(self, changed)
                except Exception as exc:
                    # A failing persistence/sync hook must not undo a local mutation.
                    logger.error("Store listener failed after %s: %s", action, exc, exc_info=True)
        return ActionResult(ok=True, changed=changed, data=data)

    # ==================== INTERNAL HELPERS ====================

    def _sorted_rounds(self) -> List[Round]:
        return sorted(self._state["rounds"], key=lambda r: r.get("sort_order", 0))

    def _find_round(self, round_id: Optional[str]) -> Optional[Round]:
        if round_id is None:
            return None
        return next((r for r in self._state["rounds"] if r["id"] == round_id), None)

    def _find_round_by_name(self, name: str) -> Optional[Round]:
        return next((r for r in self._state["rounds"] if r["name"] == name), None)

    def _find_competitor(self, competitor_id: str) -> Optional[Competitor]:
        return next((c for c in self._state["competitors"] if c["id"] == competitor_id), None)

    def _replace_competitor(self, updated: Competitor) -> List[Competitor]:
        return [updated if c["id"] == updated["id"] else c for c in self._state["competitors"]]

    # ==================== POINTERS / SESSION FLAGS ====================

    def set_current_round(self, round_id: str) -> ActionResult:
        if not self._find_round(round_id):
            return _reject("set_current_round", "round_not_found", round_id=round_id)
        return self._commit(
            "set_current_round", {"currentRoundId": round_id, "selectedCompetitorId": None}
        )

    def set_live_round(self, round_id: str) -> ActionResult:
        if not self._find_round(round_id):
            return _reject("set_live_round", "round_not_found", round_id=round_id)
        return self._commit("set_live_round", {"liveRoundId": round_id})

    def set_host_unlocked(self, unlocked: bool) -> ActionResult:
        return self._commit("set_host_unlocked", {"hostUnlocked": bool(unlocked)})

    def select_competitor(self, competitor_id: Optional[str]) -> ActionResult:
        if competitor_id is not None and not self._find_competitor(competitor_id):
            return _reject("select_competitor", "competitor_not_found", competitor_id=competitor_id)
        return self._commit("select_competitor", {"selectedCompetitorId": competitor_id})

    # ==================== ROUND ACTIONS ====================

    def add_round(self, name: str, abbreviation: str | None = None) -> ActionResult:
        trimmed = InputSanitizer.sanitize_name(name or "")
        if not trimmed:
            return _reject("add_round", "empty_name")
        if self._find_round_by_name(trimmed):
            return _reject("add_round", "duplicate_name", name=trimmed)

        abbr = InputSanitizer.sanitize_abbreviation(abbreviation or trimmed) or trimmed[:ABBREVIATION_MAX_LEN]
        order = max((r.get("sort_order", 0) for r in self._state["rounds"]), default=-1) + 1
        new_round: Round = {
            "id": f"round-{self._new_id()}",
            "name": trimmed,
            "abbreviation": abbr,
            "sort_order": order,
        }
        course_times = dict(self._state["courseTimeConfig"])
        course_times[new_round["id"]] = {"sct": DEFAULT_SCT, "mct": DEFAULT_MCT}
        logger.info("Added round %s (%s)", trimmed, new_round["id"])
        return self._commit(
            "add_round",
            {"rounds": [*self._state["rounds"], new_round], "courseTimeConfig": course_times},
            round=dict(new_round),
        )

    def rename_round(
        self, round_id: str, name: str, abbreviation: str | None = None
    ) -> ActionResult:
        """Change a round's display name (and optionally abbreviation).

        Ids are stable, so nothing else is re-keyed.
        """
        rnd = self._find_round(round_id)
        if not rnd:
            return _reject("rename_round", "round_not_found", round_id=round_id)
        trimmed = InputSanitizer.sanitize_name(name or "")
        if not trimmed:
            return _reject("rename_round", "empty_name", round_id=round_id)
        clash = self._find_round_by_name(trimmed)
        if clash and clash["id"] != round_id:
            return _reject("rename_round", "duplicate_name", name=trimmed)

        updated: Round = {**rnd, "name": trimmed}  # type: ignore[misc]
        if abbreviation is not None:
            updated["abbreviation"] = InputSanitizer.sanitize_abbreviation(abbreviation)
        if updated == rnd:
            return ActionResult(ok=True)
        rounds = [updated if r["id"] == round_id else r for r in self._state["rounds"]]
        return self._commit("rename_round", {"rounds": rounds}, round=dict(updated))

    def delete_round(self, round_id: str) -> ActionResult:
        if not self._find_round(round_id):
            return _reject("delete_round", "round_not_found", round_id=round_id)
        if any(c.get("round_id") == round_id for c in self._state["competitors"]):
            return _reject("delete_round", "round_in_use", round_id=round_id)

        rounds = [r for r in self._state["rounds"] if r["id"] != round_id]
        course_times = {k: v for k, v in self._state["courseTimeConfig"].items() if k != round_id}
        fallback = min(rounds, key=lambda r: r.get("sort_order", 0))["id"] if rounds else None
        changes: Dict[str, Any] = {"rounds": rounds, "courseTimeConfig": course_times}
        if self._state.get("currentRoundId") == round_id:
            changes["currentRoundId"] = fallback
        if self._state.get("liveRoundId") == round_id:
            changes["liveRoundId"] = fallback
        logger.info("Deleted round %s", round_id)
        return self._commit("delete_round", changes)

    def set_round_abbreviation(self, round_id: str, abbreviation: str) -> ActionResult:
        rnd = self._find_round(round_id)
        if not rnd:
            return _reject("set_round_abbreviation", "round_not_found", round_id=round_id)
        updated: Round = {**rnd, "abbreviation": InputSanitizer.sanitize_abbreviation(abbreviation or "")}  # type: ignore[misc]
        rounds = [updated if r["id"] == round_id else r for r in self._state["rounds"]]
        return self._commit("set_round_abbreviation", {"rounds": rounds}, round=dict(updated))

    def merge_rounds(self, rounds: Iterable[Round]) -> ActionResult:
        """Add rounds unknown to this store (by id), e.g. after importing a snapshot.

        Known rounds keep their local name/abbreviation. Added rounds without a course
        time get the defaults.
        """
        known = {r["id"] for r in self._state["rounds"]}
        names = {r["name"] for r in self._state["rounds"]}
        order = max((r.get("sort_order", 0) for r in self._state["rounds"]), default=-1)
        added: List[Round] = []
        for rnd in rounds:
            if not isinstance(rnd, dict) or not rnd.get("id") or rnd["id"] in known:
                continue
            name = rnd.get("name") or rnd["id"]
            if name in names:
                name = f"{name} ({rnd['id']})"
            order += 1
            added.append(
                {
                    "id": rnd["id"],
                    "name": name,
                    "abbreviation": (rnd.get("abbreviation") or name)[:ABBREVIATION_MAX_LEN],
                    "sort_order": order,
                }
            )
            known.add(rnd["id"])
            names.add(name)
        if not added:
            return ActionResult(ok=True)
        course_times = dict(self._state["courseTimeConfig"])
        for rnd in added:
            course_times.setdefault(rnd["id"], {"sct": DEFAULT_SCT, "mct": DEFAULT_MCT})
        return self._commit(
            "merge_rounds",
            {"rounds": [*self._state["rounds"], *added], "courseTimeConfig": course_times},
            added=[r["id"] for r in added],
        )

    # ==================== COMPETITOR ACTIONS ====================

    def add_competitor(
        self,
        dog_name: str,
        human_name: str,
        size: str,
        breed: str = "",
        icon: str | None = None,
        round_id: str | None = None,
        dog_id: str | None = None,
    ) -> ActionResult:
        """Enter a dog into a round (defaults to the current round) at the end of its group."""
        target_round = round_id or self._state.get("currentRoundId")
        if not self._find_round(target_round):
            return _reject("add_competitor", "round_not_found", round_id=target_round)
        try:
            entry = CompetitorInput(
                dog_name=dog_name,
                human_name=human_name,
                breed=breed or "",
                size=size,
                icon=icon,
                dog_id=dog_id,
            )
        except ValidationError as exc:
            return _reject("add_competitor", "invalid_competitor", error=str(exc))

        competitors = self._state["competitors"]
        new_comp: Competitor = {
            "id": self._new_id(),
            "round_id": target_round,
            "dog_id": entry.dog_id or derive_dog_id(entry.dog_name),
            "size": entry.size,
            "run_order": running_order.next_run_order(competitors, target_round, entry.size),
            "dog_name": entry.dog_name,
            "breed": entry.breed or "—",
            "human_name": entry.human_name,
            "icon": entry.icon or dog_emoji(entry.dog_name),
            "fault": None,
            "refusal": None,
            "time_sec": None,
            "time_fault": None,
            "total_fault": None,
            "eliminated": False,
        }
        return self._commit(
            "add_competitor", {"competitors": [*competitors, new_comp]}, competitor=dict(new_comp)
        )

    def remove_competitor(self, competitor_id: str) -> ActionResult:
        target = self._find_competitor(competitor_id)
        if not target:
            return _reject("remove_competitor", "competitor_not_found", competitor_id=competitor_id)
        remaining = [c for c in self._state["competitors"] if c["id"] != competitor_id]
        remaining = running_order.compact_group(remaining, target["round_id"], target["size"])
        changes: Dict[str, Any] = {"competitors": remaining}
        if self._state.get("selectedCompetitorId") == competitor_id:
            changes["selectedCompetitorId"] = None
        return self._commit("remove_competitor", changes)

    def clear_all(self) -> ActionResult:
        logger.info("Clearing all competitors (%s)", len(self._state["competitors"]))
        return self._commit("clear_all", {"competitors": [], "selectedCompetitorId": None})

    def save_score(
        self,
        competitor_id: str,
        fault: Optional[int],
        refusal: Optional[int],
        time: float,
    ) -> ActionResult:
        """Store raw inputs and re-derive the score.

        `data["toast"]` is "eliminated" when the time is over MCT, "saved" otherwise.
        """
        comp = self._find_competitor(competitor_id)
        if not comp:
            return _reject("save_score", "competitor_not_found", competitor_id=competitor_id)
        try:
            score = ScoreInput(fault=fault, refusal=refusal, time=time)
        except ValidationError as exc:
            return _reject("save_score", "invalid_score", competitor_id=competitor_id, error=str(exc))

        updated = score_competitor(
            comp,
            score.fault,
            score.refusal,
            score.time,
            self.course_time_for(comp["round_id"]),
        )
        toast = "eliminated" if updated["eliminated"] else "saved"
        return self._commit(
            "save_score",
            {"competitors": self._replace_competitor(updated)},
            competitor=dict(updated),
            toast=toast,
        )

    def eliminate(self, competitor_id: str) -> ActionResult:
        comp = self._find_competitor(competitor_id)
        if not comp:
            return _reject("eliminate", "competitor_not_found", competitor_id=competitor_id)
        updated = eliminate_competitor(comp)
        return self._commit(
            "eliminate",
            {"competitors": self._replace_competitor(updated)},
            competitor=dict(updated),
            toast="eliminated",
        )

    def update_icon(self, dog_name: str, human_name: str, icon: str | None) -> ActionResult:
        """Set the icon on every entry of this dog+handler pair (all rounds)."""
        matched = False
        competitors: List[Competitor] = []
        for comp in self._state["competitors"]:
            if comp.get("dog_name") == dog_name and comp.get("human_name") == human_name:
                comp = {**comp, "icon": icon or None}  # type: ignore[typeddict-item]
                matched = True
            competitors.append(comp)
        if not matched:
            return _reject("update_icon", "competitor_not_found", dog_name=dog_name)
        return self._commit("update_icon", {"competitors": competitors})

    # ==================== COURSE TIME ====================

    def update_course_time(self, round_id: str, sct: float, mct: float) -> ActionResult:
        """Set SCT/MCT and retroactively re-derive every scored entry of the round."""
        if not self._find_round(round_id):
            return _reject("update_course_time", "round_not_found", round_id=round_id)
        try:
            ct_input = CourseTimeInput(sct=sct, mct=mct)
        except ValidationError as exc:
            return _reject("update_course_time", "invalid_course_time", round_id=round_id, error=str(exc))

        course_time: CourseTime = {"sct": ct_input.sct, "mct": ct_input.mct}
        course_times = {**self._state["courseTimeConfig"], round_id: course_time}
        competitors = recompute_round(self._state["competitors"], round_id, course_time)
        return self._commit(
            "update_course_time",
            {"courseTimeConfig": course_times, "competitors": competitors},
            courseTime=dict(course_time),
        )

    # ==================== RUNNING ORDER ====================

    def reorder_group(self, round_id: str, size: str, ordered_ids: Sequence[str]) -> ActionResult:
        if size not in SIZES:
            return _reject("reorder_group", "invalid_size", size=size)
        result = running_order.apply_group_order(self._state["competitors"], round_id, size, ordered_ids)
        if result is None:
            return _reject("reorder_group", "ids_mismatch", round_id=round_id, size=size)
        return self._commit("reorder_group", {"competitors": result})

    def move_competitor(self, competitor_id: str, target_id: str) -> ActionResult:
        result = running_order.move_before(self._state["competitors"], competitor_id, target_id)
        if result is None:
            return _reject("move_competitor", "invalid_move", competitor_id=competitor_id, target_id=target_id)
        return self._commit("move_competitor", {"competitors": result})

    def randomize_group(self, round_id: str, size: str) -> ActionResult:
        result = running_order.randomize_group(self._state["competitors"], round_id, size, self._rng)
        if result is None:
            return _reject("randomize_group", "group_too_small", round_id=round_id, size=size)
        return self._commit("randomize_group", {"competitors": result})

    # ==================== BULK ====================

    def import_data(
        self, competitors: List[Competitor], course_time_config: CourseTimeConfig
    ) -> ActionResult:
        """Replace competitors and course times wholesale (rounds are reconciled separately).

        Every (round, size) group is compacted to 1..n in its existing order.
        """
        normalized = normalize_competitors(competitors)
        logger.info("Importing %s competitors", len(normalized))
        return self._commit(
            "import_data",
            {
                "competitors": normalized,
                "courseTimeConfig": deepcopy(dict(course_time_config or {})),
                "selectedCompetitorId": None,
            },
        )

    def replace_synced(
        self,
        competitors: List[Competitor],
        course_time_config: CourseTimeConfig,
        rounds: Optional[List[Round]] = None,
    ) -> ActionResult:
        """Destructively adopt a replicated state (no merge). `rounds=None` keeps local rounds.

        Entries without an id are dropped and every group is compacted, as on load.
        """
        changes: Dict[str, Any] = {
            "competitors": normalize_competitors(competitors or []),
            "courseTimeConfig": deepcopy(dict(course_time_config or {})),
        }
        if rounds is not None:
            changes["rounds"] = [deepcopy(r) for r in rounds if isinstance(r, dict) and r.get("id")]
            known = {r["id"] for r in changes["rounds"]}
            if self._state.get("currentRoundId") not in known:
                changes["currentRoundId"] = None
        result = self._commit("replace_synced", changes)
        if "currentRoundId" in changes:
            self.reconcile_current_round()
        return result

    # ==================== PERSISTENCE ====================

    def to_persisted(self) -> Dict[str, Any]:
        payload = {key: deepcopy(self._state.get(key)) for key in PERSISTED_KEYS}
        payload["schemaVersion"] = SCHEMA_VERSION
        return payload

    def sync_payload(self) -> Dict[str, Any]:
        return {
            "competitors": deepcopy(self._state["competitors"]),
            "course_time_config": deepcopy(self._state["courseTimeConfig"]),
            "rounds": deepcopy(self._state["rounds"]),
        }

    @classmethod
    def from_persisted(cls, data: Any, **kwargs: Any) -> "CompetitionStore":
        """Rebuild a store from persisted data; incompatible shapes reset to defaults."""
        if not is_compatible_payload(data):
            if data:
                logger.warning("Persisted state has an incompatible schema; starting fresh")
            store = cls(**kwargs)
            store.reconcile_current_round()
            return store

        state = default_state()
        state["rounds"] = [r for r in data["rounds"] if isinstance(r, dict) and r.get("id")]
        state["courseTimeConfig"] = dict(data.get("courseTimeConfig") or {})
        state["competitors"] = normalize_competitors(data.get("competitors") or [])
        live = data.get("liveRoundId")
        known = {r["id"] for r in state["rounds"]}
        state["liveRoundId"] = live if live in known else (state["rounds"][0]["id"] if state["rounds"] else None)
        state["currentRoundId"] = None
        store = cls(state, **kwargs)
        store.reconcile_current_round()
        return store

    def reconcile_current_round(self) -> ActionResult:
        """Pick the current round after load.

        Prefer the live round while it still has entrants to run; otherwise the first round
        (in configured order) with any entrant; otherwise the first round.
        """
        competitors = self._state["competitors"]
        live = self._state.get("liveRoundId")
        choice: Optional[str] = None
        if live and self._find_round(live) and running_order.run_queue(competitors, live):
            choice = live
        else:
            ordered = self._sorted_rounds()
            with_entries = next(
                (r["id"] for r in ordered if any(c.get("round_id") == r["id"] for c in competitors)),
                None,
            )
            choice = with_entries or (ordered[0]["id"] if ordered else None)
        if choice == self._state.get("currentRoundId"):
            return ActionResult(ok=True)
        return self._commit("reconcile_current_round", {"currentRoundId": choice})


def is_compatible_payload(data: Any) -> bool:
    if not isinstance(data, dict) or data.get("schemaVersion") != SCHEMA_VERSION:
        return False
    rounds = data.get("rounds")
    if not isinstance(rounds, list) or not all(isinstance(r, dict) for r in rounds):
        return False
    return isinstance(data.get("competitors", []), list)


def normalize_competitors(competitors: Iterable[Any]) -> List[Competitor]:
    """Copy entries and compact every (round, size) group to 1..n in existing order."""
    result: List[Competitor] = [deepcopy(c) for c in competitors if isinstance(c, dict) and c.get("id")]
    groups = {(c.get("round_id"), c.get("size")) for c in result}
    for round_id, size in sorted(groups, key=lambda g: (str(g[0]), str(g[1]))):
        result = running_order.compact_group(result, round_id, size)
    return result
