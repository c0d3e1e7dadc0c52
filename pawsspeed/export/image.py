"""Share card PNG for one (round, size) group.

The card is drawn at a fixed logical width and scaled by `DPR` for crisp output:

    header (brand, round name, size badge, SCT/MCT)
    podium (only when at least three entries are ranked; places 2-1-3)
    one row per entry, in ranking order
    footer (branding + date)

All geometry comes from `ShareCardLayout`, so identical data always yields
identical pixels.
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from datetime import date
from io import BytesIO
from typing import List, Optional, Sequence, Tuple

from PIL import Image, ImageDraw, ImageFont

from pawsspeed.core.constants import SIZE_COLORS
from pawsspeed.core.ranking import podium
from pawsspeed.core.types import CompetitionState, RankedCompetitor

from .tables import NO_RANK, GroupTable, build_group, rounds_in_order

logger = logging.getLogger(__name__)

WIDTH = 520
HEADER_H = 104
PODIUM_H = 170
ROW_H = 44
FOOTER_H = 40
DPR = 2
MARGIN_X = 18

RANK_X = 18
DOT_X = 56
DOT_R = 5
NAME_X = 70
BADGE_BOX = (18, 62, 118, 24)
COURSE_TIME_X = 148

# Podium columns, left to right: 2nd, 1st, 3rd.
PODIUM_PLACES = (2, 1, 3)
PODIUM_BAR_HEIGHTS = (68, 90, 50)
PODIUM_COLORS = ("#94a3b8", "#fbbf24", "#d97706")
PODIUM_BAR_W = 110
PODIUM_GAP = 12
PODIUM_BASE_PAD = 10

BG = "#0c0e12"
ACCENT = "#ff6b2c"
TEXT = "#f0f2f8"
MUTED = "#8b90a5"
DIM = "#555b73"
CLEAR = "#2dd4a0"
ELIM = "#ef4444"
DIVIDER = "#2a2f40"


@dataclass(frozen=True)
class ShareCardLayout:
    rows: int
    show_podium: bool

    @property
    def podium_height(self) -> int:
        return PODIUM_H if self.show_podium else 0

    @property
    def rows_top(self) -> int:
        return HEADER_H + self.podium_height

    @property
    def footer_top(self) -> int:
        return self.rows_top + self.rows * ROW_H

    @property
    def height(self) -> int:
        return self.footer_top + FOOTER_H

    @property
    def pixel_size(self) -> Tuple[int, int]:
        return WIDTH * DPR, self.height * DPR

    def row_top(self, index: int) -> int:
        return self.rows_top + index * ROW_H

    def row_center(self, index: int) -> int:
        return self.row_top(index) + ROW_H // 2

    def podium_bars(self) -> List[Tuple[int, int, int, int]]:
        """(x, y, w, h) per podium column, left to right; empty without podium."""
        if not self.show_podium:
            return []
        total = len(PODIUM_PLACES) * PODIUM_BAR_W + (len(PODIUM_PLACES) - 1) * PODIUM_GAP
        left = (WIDTH - total) // 2
        base = HEADER_H + PODIUM_H - PODIUM_BASE_PAD
        return [
            (left + i * (PODIUM_BAR_W + PODIUM_GAP), base - h, PODIUM_BAR_W, h)
            for i, h in enumerate(PODIUM_BAR_HEIGHTS)
        ]

    @classmethod
    def for_group(cls, ranked: Sequence[RankedCompetitor]) -> "ShareCardLayout":
        return cls(rows=len(ranked), show_podium=bool(podium(ranked)))


# -------------------- Drawing helpers --------------------


def _rgb(hex_color: str) -> Tuple[int, int, int]:
    h = hex_color.lstrip("#")
    return int(h[0:2], 16), int(h[2:4], 16), int(h[4:6], 16)


def _mix(fg: str, alpha: float, bg: str = BG) -> Tuple[int, int, int]:
    """Solid colour equivalent to `fg` at `alpha` over `bg`."""
    f, b = _rgb(fg), _rgb(bg)
    return tuple(round(fc * alpha + bc * (1 - alpha)) for fc, bc in zip(f, b))  # type: ignore[return-value]


_FONT_DIRS = (
    "",
    "/usr/share/fonts/truetype/dejavu/",
    "/System/Library/Fonts/Supplemental/",
    "/Library/Fonts/",
    "C:\\Windows\\Fonts\\",
)


def _font(size: int, bold: bool = False) -> ImageFont.FreeTypeFont | ImageFont.ImageFont:
    name = "DejaVuSans-Bold.ttf" if bold else "DejaVuSans.ttf"
    for directory in _FONT_DIRS:
        path = directory + name
        if os.path.exists(path):
            return ImageFont.truetype(path, size * DPR)
    return ImageFont.load_default(size=size * DPR)


def _s(value: float) -> int:
    return int(round(value * DPR))


class _Canvas:
    """Logical-coordinate wrapper around ImageDraw (scales everything by DPR)."""

    def __init__(self, layout: ShareCardLayout) -> None:
        self.image = Image.new("RGB", layout.pixel_size, _rgb(BG))
        self.draw = ImageDraw.Draw(self.image)

    def rect(self, x: float, y: float, w: float, h: float, fill, radius: float = 0) -> None:
        box = (_s(x), _s(y), _s(x + w) - 1, _s(y + h) - 1)
        if radius:
            self.draw.rounded_rectangle(box, radius=_s(radius), fill=fill)
        else:
            self.draw.rectangle(box, fill=fill)

    def dot(self, cx: float, cy: float, r: float, fill) -> None:
        self.draw.ellipse((_s(cx - r), _s(cy - r), _s(cx + r), _s(cy + r)), fill=fill)

    def width(self, text: str, font) -> float:
        return self.draw.textlength(text, font=font) / DPR

    def text(self, x: float, baseline: float, text: str, font, fill) -> None:
        self.draw.text((_s(x), _s(baseline)), text, font=font, fill=fill, anchor="ls")

    def text_right(self, right: float, baseline: float, text: str, font, fill) -> None:
        self.draw.text((_s(right), _s(baseline)), text, font=font, fill=fill, anchor="rs")

    def text_center(self, cx: float, baseline: float, text: str, font, fill) -> None:
        self.draw.text((_s(cx), _s(baseline)), text, font=font, fill=fill, anchor="ms")


def _score_text(comp: RankedCompetitor) -> Optional[str]:
    if comp.get("total_fault") is None or comp.get("time_sec") is None:
        return None
    return f"{comp['total_fault']}F  {comp['time_sec']:.2f}s"


# -------------------- Rendering --------------------


def _draw_header(canvas: _Canvas, group: GroupTable) -> None:
    for x in range(WIDTH):
        alpha = 0.18 + (0.03 - 0.18) * (x / (WIDTH - 1))
        canvas.rect(x, 0, 1, HEADER_H, _mix(ACCENT, alpha))
    canvas.rect(0, 0, 3, HEADER_H, _rgb(ACCENT))

    canvas.text(MARGIN_X, 24, "PAWS & SPEED", _font(12, bold=True), _rgb(ACCENT))
    canvas.text(MARGIN_X, 52, group.round["name"].upper(), _font(20, bold=True), _rgb(TEXT))

    size_color = SIZE_COLORS.get(group.size, TEXT)
    bx, by, bw, bh = BADGE_BOX
    canvas.rect(bx, by, bw, bh, _mix(size_color, 0.13), radius=6)
    canvas.text(bx + 10, by + 16, f"{group.size}  ·  {group.size_label}", _font(11, bold=True), _rgb(size_color))

    ct = group.course_time
    canvas.text(COURSE_TIME_X, 78, f"SCT {ct['sct']}s  ·  MCT {ct['mct']}s", _font(11), _rgb(MUTED))
    canvas.rect(0, HEADER_H, WIDTH, 1, _mix(DIVIDER, 0.8))


def _draw_podium(canvas: _Canvas, layout: ShareCardLayout, top3: List[RankedCompetitor]) -> None:
    display = [top3[1], top3[0], top3[2]]
    for comp, place, color, (x, y, w, h) in zip(display, PODIUM_PLACES, PODIUM_COLORS, layout.podium_bars()):
        cx = x + w / 2
        canvas.rect(x, y, w, h, _mix(color, 0.15), radius=8)
        canvas.rect(x, y + h - 8, w, 8, _mix(color, 0.15))
        canvas.text_center(cx, y + h / 2 + 8, str(place), _font(22, bold=True), _rgb(color))
        canvas.text_center(cx, y - 30, comp.get("dog_name", ""), _font(13, bold=True), _rgb(TEXT))
        canvas.text_center(cx, y - 16, comp.get("human_name", ""), _font(11), _rgb(MUTED))
        score = _score_text(comp)
        if score:
            canvas.text_center(cx, y - 4, score, _font(10), _rgb(DIM))


def _draw_rows(canvas: _Canvas, layout: ShareCardLayout, group: GroupTable) -> None:
    size_color = SIZE_COLORS.get(group.size, TEXT)
    for i, comp in enumerate(group.ranked):
        y = layout.row_top(i)
        center = layout.row_center(i)
        if i % 2 == 0:
            canvas.rect(0, y, WIDTH, ROW_H, _mix("#ffffff", 0.018))
        if i > 0:
            canvas.rect(16, y, WIDTH - 32, 1, _mix(DIVIDER, 0.35))

        rank = comp.get("rank")
        canvas.text(RANK_X, center + 5, str(rank) if rank is not None else NO_RANK, _font(13, bold=True), _rgb(ACCENT))
        canvas.dot(DOT_X, center, DOT_R, _rgb(SIZE_COLORS.get(comp.get("size", ""), size_color)))
        canvas.text(NAME_X, center - 3, comp.get("dog_name", ""), _font(14, bold=True), _rgb(TEXT))
        canvas.text(NAME_X, center + 13, comp.get("breed") or "", _font(11), _rgb(DIM))

        right = WIDTH - MARGIN_X
        canvas.text_right(right, center - 3, comp.get("human_name", ""), _font(12), _rgb(MUTED))
        if comp.get("eliminated"):
            canvas.text_right(right, center + 13, "ELIM", _font(10, bold=True), _rgb(ELIM))
        else:
            score = _score_text(comp)
            if score:
                color = CLEAR if comp.get("total_fault") == 0 else ACCENT
                canvas.text_right(right, center + 13, score, _font(10, bold=True), _rgb(color))


def _draw_footer(canvas: _Canvas, layout: ShareCardLayout, generated_on: date) -> None:
    top = layout.footer_top
    canvas.rect(0, top, WIDTH, FOOTER_H, _mix("#000000", 0.25))
    canvas.rect(0, top, WIDTH, 1, _mix(DIVIDER, 0.5))
    canvas.text(MARGIN_X, top + 25, "paws-and-speed", _font(11), _rgb(DIM))
    canvas.text_right(WIDTH - MARGIN_X, top + 25, generated_on.isoformat(), _font(11), _rgb(DIM))


def render_share_card(group: GroupTable, generated_on: Optional[date] = None) -> bytes:
    layout = ShareCardLayout.for_group(group.ranked)
    canvas = _Canvas(layout)
    _draw_header(canvas, group)
    top3 = podium(group.ranked)
    if top3:
        _draw_podium(canvas, layout, top3)
    _draw_rows(canvas, layout, group)
    _draw_footer(canvas, layout, generated_on or date.today())

    buffer = BytesIO()
    canvas.image.save(buffer, format="PNG")
    return buffer.getvalue()


def build_share_card(
    state: CompetitionState,
    round_id: str,
    size: str,
    generated_on: Optional[date] = None,
) -> Optional[bytes]:
    """PNG bytes for one group, or None when the round is unknown or the group is empty."""
    rounds = rounds_in_order(state, round_id)
    if not rounds:
        return None
    group = build_group(state, rounds[0], size)
    if not group.ranked:
        return None
    logger.debug("Rendering share card %s/%s (%s rows)", round_id, size, len(group.ranked))
    return render_share_card(group, generated_on)


def share_card_filename(round_name: str, size: str) -> str:
    return f"PawsAndSpeed_{'_'.join(round_name.split())}_{size}.png"
