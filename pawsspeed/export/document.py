"""Landscape PDF results: one page per (round, size) with entrants."""

# -------------------- Standard library imports --------------------
import logging
import os
from io import BytesIO
from typing import List, Optional

# -------------------- Third-party imports --------------------
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4, landscape
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.pdfbase import pdfmetrics
from reportlab.pdfbase.ttfonts import TTFont
from reportlab.platypus import PageBreak, Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

# -------------------- Local application imports --------------------
from pawsspeed.core.types import CompetitionState, RankedCompetitor

from .tables import NO_RANK, GroupTable, build_groups, format_time

logger = logging.getLogger(__name__)

BRAND = "Paws & Speed"
ACCENT = colors.Color(255 / 255, 107 / 255, 44 / 255)
PDF_HEADERS = ["Rank", "Size", "#", "Dog", "Breed", "Handler", "C.F", "Ref", "T.F", "Total", "Time", "Status"]

# -------------------- Font setup --------------------
# Prefer a Unicode-capable TTF (DejaVuSans) so accented names and dashes render;
# fall back to Helvetica when it is not installed.
DEFAULT_FONT = "Helvetica"
try:
    font_paths = [
        "DejaVuSans.ttf",
        "/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf",
        "/System/Library/Fonts/Supplemental/DejaVuSans.ttf",
        "C:\\Windows\\Fonts\\DejaVuSans.ttf",
        "/Library/Fonts/DejaVuSans.ttf",
    ]
    for path in font_paths:
        if os.path.exists(path):
            pdfmetrics.registerFont(TTFont("DejaVuSans", path))
            DEFAULT_FONT = "DejaVuSans"
            break
except Exception as e:
    logger.warning(f"Could not register DejaVuSans font: {e}. Using Helvetica.")
    DEFAULT_FONT = "Helvetica"


def _cell(comp: RankedCompetitor, key: str) -> str:
    if comp.get("eliminated"):
        return "—"
    value = comp.get(key)
    return "" if value is None else str(value)


def pdf_row(comp: RankedCompetitor) -> List[str]:
    rank = comp.get("rank")
    if comp.get("eliminated"):
        status = "ELIM"
    elif comp.get("total_fault") is not None:
        status = "Done"
    else:
        status = "Pending"
    return [
        str(rank) if rank is not None else NO_RANK,
        comp.get("size", ""),
        str(comp.get("run_order", "")),
        comp.get("dog_name", ""),
        comp.get("breed") or "",
        comp.get("human_name", ""),
        _cell(comp, "fault"),
        _cell(comp, "refusal"),
        _cell(comp, "time_fault"),
        _cell(comp, "total_fault"),
        format_time(comp.get("time_sec")),
        status,
    ]


def _group_elements(group: GroupTable, styles) -> list:
    title_style = ParagraphStyle(
        "TitleStyle",
        parent=styles["Heading1"],
        fontSize=16,
        fontName=DEFAULT_FONT,
        spaceAfter=6,
    )
    sub_style = ParagraphStyle(
        "SubStyle",
        parent=styles["Normal"],
        fontSize=11,
        fontName=DEFAULT_FONT,
        spaceAfter=8,
    )
    ct = group.course_time
    data = [PDF_HEADERS] + [pdf_row(c) for c in group.ranked]
    table = Table(data, hAlign="LEFT", repeatRows=1)
    tbl_style = TableStyle(
        [
            ("FONTNAME", (0, 0), (-1, -1), DEFAULT_FONT),
            ("FONTSIZE", (0, 0), (-1, -1), 9),
            ("BACKGROUND", (0, 0), (-1, 0), ACCENT),
            ("TEXTCOLOR", (0, 0), (-1, 0), colors.white),
            ("ALIGN", (0, 0), (-1, -1), "CENTER"),
            ("GRID", (0, 0), (-1, -1), 0.5, colors.grey),
        ]
    )
    for i in range(1, len(data)):
        if i % 2 == 0:
            tbl_style.add("BACKGROUND", (0, i), (-1, i), colors.whitesmoke)
    table.setStyle(tbl_style)
    return [
        Paragraph(f"{BRAND} — {group.round['name']}", title_style),
        Paragraph(
            f"Size: {group.size_label} ({group.size})  |  SCT: {ct['sct']}s  |  MCT: {ct['mct']}s",
            sub_style,
        ),
        Spacer(1, 6),
        table,
    ]


def build_document(
    state: CompetitionState,
    round_id: Optional[str] = None,
    size: Optional[str] = None,
) -> bytes:
    """Render the results PDF to bytes (a single placeholder page when nothing has entrants)."""
    buffer = BytesIO()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=landscape(A4),
        leftMargin=36,
        rightMargin=36,
        topMargin=36,
        bottomMargin=36,
        title=f"{BRAND} results",
    )
    styles = getSampleStyleSheet()
    groups = build_groups(state, round_id, size)

    elements: list = []
    for idx, group in enumerate(groups):
        if idx:
            elements.append(PageBreak())
        elements.extend(_group_elements(group, styles))
    if not elements:
        elements.append(Paragraph("No entrants", styles["Normal"]))

    doc.build(elements)
    logger.info("Built results PDF (%s pages)", max(len(groups), 1))
    return buffer.getvalue()
