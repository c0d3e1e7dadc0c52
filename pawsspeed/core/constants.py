"""Size classes, default rounds and display helpers."""
from __future__ import annotations

from typing import Dict, List

from .types import CourseTimeConfig, Size

SIZES: List[Size] = ["S", "M", "I", "L"]

# S < M < I < L for display and processing order.
SIZE_RANK: Dict[str, int] = {size: idx for idx, size in enumerate(SIZES)}

SIZE_LABELS: Dict[str, str] = {
    "S": "Small",
    "M": "Medium",
    "I": "Intermediate",
    "L": "Large",
}

SIZE_COLORS: Dict[str, str] = {
    "S": "#f472b6",
    "M": "#60a5fa",
    "I": "#34d399",
    "L": "#fbbf24",
}

# New rounds start with these course times until the host edits them.
DEFAULT_SCT = 40
DEFAULT_MCT = 56

ABBREVIATION_MAX_LEN = 4

DEFAULT_ROUNDS: List[str] = [
    "Novice 1",
    "Novice 2",
    "Jumping Open 1",
    "Jumping Open 2",
    "Agility A1",
    "Agility A2",
    "Agility A3",
]

DEFAULT_COURSE_TIMES: CourseTimeConfig = {
    "Novice 1": {"sct": 50, "mct": 70},
    "Novice 2": {"sct": 48, "mct": 67},
    "Jumping Open 1": {"sct": 40, "mct": 56},
    "Jumping Open 2": {"sct": 38, "mct": 53},
    "Agility A1": {"sct": 35, "mct": 49},
    "Agility A2": {"sct": 34, "mct": 48},
    "Agility A3": {"sct": 33, "mct": 46},
}

DEFAULT_ROUND_ABBREVIATIONS: Dict[str, str] = {
    "Novice 1": "N1",
    "Novice 2": "N2",
    "Jumping Open 1": "JO1",
    "Jumping Open 2": "JO2",
    "Agility A1": "A1",
    "Agility A2": "A2",
    "Agility A3": "A3",
}

DOG_EMOJIS = ["🐕", "🐕‍🦺", "🦮", "🐩", "🐶"]


def dog_emoji(name: str) -> str:
    """Deterministic fallback icon for a dog without one.

    Uses the same rolling 32-bit hash as the web client so every viewer shows
    the same emoji for the same name.
    """
    h = 0
    for ch in name or "":
        h = ((h << 5) - h + ord(ch)) & 0xFFFFFFFF
    if h & 0x80000000:
        h -= 1 << 32
    return DOG_EMOJIS[abs(h) % len(DOG_EMOJIS)]


def size_sort_key(size: str) -> int:
    return SIZE_RANK.get(size, len(SIZES))
