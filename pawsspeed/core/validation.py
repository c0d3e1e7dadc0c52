"""
Input validation schemas using Pydantic v2.

Three layers:
- `ValidatedCmd`: the command envelope accepted by `/api/cmd` (type + optional fields,
  required fields enforced per command type)
- small value models (`ScoreInput`, `CourseTimeInput`, ...) used by the store to reject
  invalid mutations before touching state
- stored-record models (`CompetitorRecord`, `RoundRecord`, `SyncPayload`) checked before a
  backup or a remote sync record replaces local state
"""

import logging
import math
import re
from typing import Dict, List, Literal, Optional, Self, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .constants import ABBREVIATION_MAX_LEN

logger = logging.getLogger(__name__)

SizeField = Literal["S", "M", "I", "L"]

COMMAND_TYPES = {
    "ADD_ROUND",
    "RENAME_ROUND",
    "DELETE_ROUND",
    "SET_ROUND_ABBR",
    "SET_CURRENT_ROUND",
    "SET_LIVE_ROUND",
    "ADD_COMPETITOR",
    "REMOVE_COMPETITOR",
    "SAVE_SCORE",
    "ELIMINATE",
    "UPDATE_ICON",
    "UPDATE_COURSE_TIME",
    "REORDER_GROUP",
    "MOVE_COMPETITOR",
    "RANDOMIZE_GROUP",
    "CLEAR_ALL",
}

# Fields each command cannot do without.
REQUIRED_FIELDS = {
    "ADD_ROUND": ("name",),
    "RENAME_ROUND": ("roundId", "name"),
    "DELETE_ROUND": ("roundId",),
    "SET_ROUND_ABBR": ("roundId", "abbreviation"),
    "SET_CURRENT_ROUND": ("roundId",),
    "SET_LIVE_ROUND": ("roundId",),
    "ADD_COMPETITOR": ("dogName", "humanName", "size"),
    "REMOVE_COMPETITOR": ("competitorId",),
    "SAVE_SCORE": ("competitorId", "time"),
    "ELIMINATE": ("competitorId",),
    "UPDATE_ICON": ("dogName", "humanName", "icon"),
    "UPDATE_COURSE_TIME": ("roundId", "sct", "mct"),
    "REORDER_GROUP": ("roundId", "size", "orderedIds"),
    "MOVE_COMPETITOR": ("competitorId", "targetId"),
    "RANDOMIZE_GROUP": ("roundId", "size"),
}


def _finite(value: Optional[float], field: str) -> Optional[float]:
    if value is not None and not math.isfinite(value):
        raise ValueError(f"{field} must be a finite number")
    return value


class ScoreInput(BaseModel):
    """Raw run inputs. Blank faults/refusals are stored as 0."""

    fault: Optional[int] = Field(None, ge=0, le=1000)
    refusal: Optional[int] = Field(None, ge=0, le=1000)
    time: float = Field(..., ge=0, le=3600)

    @field_validator("time")
    @classmethod
    def validate_time(cls, v: float) -> float:
        return _finite(v, "time")


class CourseTimeInput(BaseModel):
    """SCT/MCT pair. MCT of 0 disables time elimination."""

    sct: float = Field(..., ge=0, le=3600)
    mct: float = Field(..., ge=0, le=3600)

    @model_validator(mode="after")
    def validate_order(self) -> Self:
        _finite(self.sct, "sct")
        _finite(self.mct, "mct")
        if self.mct > 0 and self.mct < self.sct:
            raise ValueError("mct must be greater than or equal to sct")
        return self


class CompetitorInput(BaseModel):
    dog_name: str = Field(..., min_length=1, max_length=100)
    human_name: str = Field(..., min_length=1, max_length=100)
    breed: str = Field("", max_length=100)
    size: SizeField
    icon: Optional[str] = Field(None, max_length=16)
    dog_id: Optional[str] = Field(None, max_length=128)

    @field_validator("dog_name", "human_name")
    @classmethod
    def validate_names(cls, v: str) -> str:
        cleaned = InputSanitizer.sanitize_name(v)
        if not cleaned:
            raise ValueError("name cannot be empty")
        return cleaned

    @field_validator("breed")
    @classmethod
    def validate_breed(cls, v: str) -> str:
        return InputSanitizer.sanitize_name(v)


class ValidatedCmd(BaseModel):
    """Command envelope for `/api/cmd` with per-type required fields."""

    type: str = Field(..., min_length=1, max_length=50, description="Command type")

    roundId: Optional[str] = Field(None, min_length=1, max_length=64)
    name: Optional[str] = Field(None, max_length=100)
    abbreviation: Optional[str] = Field(None, max_length=32)

    competitorId: Optional[str] = Field(None, min_length=1, max_length=64)
    targetId: Optional[str] = Field(None, min_length=1, max_length=64)
    dogName: Optional[str] = Field(None, max_length=100)
    humanName: Optional[str] = Field(None, max_length=100)
    breed: Optional[str] = Field(None, max_length=100)
    size: Optional[SizeField] = None
    icon: Optional[str] = Field(None, max_length=16)
    dogId: Optional[str] = Field(None, max_length=128)

    fault: Optional[int] = None
    refusal: Optional[int] = None
    time: Optional[float] = None

    sct: Optional[float] = None
    mct: Optional[float] = None

    orderedIds: Optional[List[str]] = Field(None, max_length=1000)

    model_config = ConfigDict(extra="ignore")

    @field_validator("type")
    @classmethod
    def validate_type(cls, v: str) -> str:
        if v not in COMMAND_TYPES:
            raise ValueError(f"type must be one of {sorted(COMMAND_TYPES)}, got {v}")
        return v

    @model_validator(mode="after")
    def validate_command_fields(self) -> Self:
        for field in REQUIRED_FIELDS.get(self.type, ()):
            if getattr(self, field) is None:
                raise ValueError(f"{self.type} requires {field}")
        return self


class CompetitorRecord(BaseModel):
    """A stored run entry as it arrives from a backup file or a sync peer.

    Unknown keys (breed, icon, dog_id, ...) are kept as-is.
    """

    model_config = ConfigDict(extra="allow")

    id: str = Field(..., min_length=1)
    round_id: str = Field(..., min_length=1)
    size: SizeField
    dog_name: str
    human_name: str
    run_order: int = Field(..., ge=1)
    fault: Optional[int] = Field(None, ge=0)
    refusal: Optional[int] = Field(None, ge=0)
    time_sec: Optional[float] = Field(None, ge=0)
    time_fault: Optional[int] = None
    total_fault: Optional[int] = None
    eliminated: bool = False


class RoundRecord(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    abbreviation: str = ""
    sort_order: int = 0


class SyncPayload(BaseModel):
    """Replicated part of the competition (one sync session record)."""

    competitors: List[CompetitorRecord] = Field(default_factory=list)
    course_time_config: Dict[str, CourseTimeInput] = Field(default_factory=dict)
    rounds: List[RoundRecord] = Field(default_factory=list)

    @model_validator(mode="after")
    def validate_unique_ids(self) -> Self:
        ids = [c.id for c in self.competitors]
        if len(ids) != len(set(ids)):
            raise ValueError("duplicate competitor ids")
        round_ids = [r.id for r in self.rounds]
        if len(round_ids) != len(set(round_ids)):
            raise ValueError("duplicate round ids")
        return self

    def unpack(self) -> Tuple[List[dict], Dict[str, dict], List[dict]]:
        return (
            [c.model_dump() for c in self.competitors],
            {k: v.model_dump() for k, v in self.course_time_config.items()},
            [r.model_dump() for r in self.rounds],
        )


class InputSanitizer:
    """Utility class for input sanitization"""

    @staticmethod
    def sanitize_string(value: str, max_length: int = 255) -> str:
        if not isinstance(value, str):
            return str(value)[:max_length]
        value = value.strip()[:max_length]
        return value.replace("\0", "")

    @staticmethod
    def sanitize_name(name: str) -> str:
        """Strip markup/control characters; keep letters with diacritics, apostrophes, dashes."""
        name = InputSanitizer.sanitize_string(name, 100)
        dangerous_chars = r'[<>{}[\]\\|;`"\x00-\x1f\x7f]'
        return re.sub(dangerous_chars, "", name).strip()

    @staticmethod
    def sanitize_abbreviation(abbr: str) -> str:
        return InputSanitizer.sanitize_string(abbr, 64)[:ABBREVIATION_MAX_LEN]


__all__ = [
    "COMMAND_TYPES",
    "CompetitorInput",
    "CompetitorRecord",
    "CourseTimeInput",
    "InputSanitizer",
    "RoundRecord",
    "ScoreInput",
    "SyncPayload",
    "ValidatedCmd",
]
