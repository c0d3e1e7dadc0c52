"""XLSX results workbook: one sheet per round with entrants.

Sheet layout:
    Round: <name>
    SCT: <sct>  MCT: <mct>
    <blank>
    Rank | Size | Order | Dog | ... | Status
    rows for S, then M, I, L (each group ranked)
"""

import logging
import re
from io import BytesIO
from typing import Optional

import pandas as pd
from openpyxl.utils import get_column_letter

from pawsspeed.core.types import CompetitionState

from .tables import COLUMNS, build_groups, course_time, ranking_frame, rounds_in_order

logger = logging.getLogger(__name__)

HEADER_ROWS = 3
COLUMN_WIDTHS = [6, 6, 6, 14, 18, 18, 9, 9, 9, 11, 8, 10]
_SHEET_NAME_FORBIDDEN = re.compile(r"[\\/?*\[\]:]")


def safe_sheet_name(name: str, taken: set[str] | None = None) -> str:
    """Excel sheet names: no \\ / ? * [ ] :, at most 31 chars, unique in the workbook."""
    base = _SHEET_NAME_FORBIDDEN.sub("", name or "").strip()[:31] or "Round"
    candidate = base
    n = 2
    while taken is not None and candidate in taken:
        suffix = f" ({n})"
        candidate = base[: 31 - len(suffix)] + suffix
        n += 1
    return candidate


def build_workbook(state: CompetitionState, round_id: Optional[str] = None) -> bytes:
    """Render the workbook to bytes. Rounds without entrants get no sheet."""
    buffer = BytesIO()
    taken: set[str] = set()
    sheets = 0
    with pd.ExcelWriter(buffer, engine="openpyxl") as writer:
        for rnd in rounds_in_order(state, round_id):
            groups = build_groups(state, rnd["id"])
            if not groups:
                continue
            ct = course_time(state, rnd["id"])
            frame = pd.concat([ranking_frame(g.ranked) for g in groups], ignore_index=True)
            sheet = safe_sheet_name(rnd["name"], taken)
            taken.add(sheet)

            header = pd.DataFrame(
                [["Round:", rnd["name"]], ["SCT:", ct["sct"], "MCT:", ct["mct"]]]
            )
            header.to_excel(writer, sheet_name=sheet, index=False, header=False, startrow=0)
            frame.to_excel(writer, sheet_name=sheet, index=False, startrow=HEADER_ROWS)

            ws = writer.sheets[sheet]
            for idx, width in enumerate(COLUMN_WIDTHS, start=1):
                ws.column_dimensions[get_column_letter(idx)].width = width
            sheets += 1

        if sheets == 0:
            # openpyxl cannot save a workbook without sheets.
            pd.DataFrame(columns=COLUMNS).to_excel(writer, sheet_name="Results", index=False)
    logger.info("Built results workbook (%s round sheets)", sheets)
    return buffer.getvalue()
