"""
Export/import routes.

- GET `/api/export/xlsx`: results workbook (one sheet per round)
- GET `/api/export/pdf`: results document (one landscape page per round + size)
- GET `/api/export/png/{round_id}/{size}`: share card image for one group
- GET `/api/export/json`: full backup snapshot
- POST `/api/import/json`: restore a snapshot (all-or-nothing)
- POST `/api/import/roster/{round_id}`: append entrants from a CSV or XLSX roster
"""

# -------------------- Standard library imports --------------------
import logging
from datetime import date
from io import BytesIO
from typing import Literal, Optional
from zipfile import BadZipFile

# -------------------- Third-party imports --------------------
import openpyxl
from fastapi import APIRouter, File, HTTPException, Request, Response, UploadFile

# -------------------- Local application imports --------------------
from pawsspeed.api import live
from pawsspeed.core.roster import RosterParseResult, import_roster, parse_roster_csv, parse_roster_rows
from pawsspeed.export import (
    SnapshotError,
    build_document,
    build_share_card,
    build_workbook,
    parse_snapshot,
)
from pawsspeed.export.image import share_card_filename
from pawsspeed.export.snapshot import apply_snapshot, dumps_snapshot

logger = logging.getLogger(__name__)

router = APIRouter(tags=["export"])

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
XLSX_UPLOAD_TYPES = {XLSX_MEDIA_TYPE, "application/vnd.ms-excel"}


def _attachment(content: bytes, media_type: str, filename: str) -> Response:
    return Response(
        content=content,
        media_type=media_type,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


def _check_round(round_id: Optional[str]) -> None:
    if round_id is not None and live.get_store().get_round(round_id) is None:
        raise HTTPException(status_code=404, detail="round_not_found")


@router.get("/export/xlsx")
async def export_xlsx(round_id: Optional[str] = None):
    _check_round(round_id)
    content = build_workbook(live.get_store().get_state(), round_id)
    return _attachment(content, XLSX_MEDIA_TYPE, "PawsAndSpeed_Results.xlsx")


@router.get("/export/pdf")
async def export_pdf(round_id: Optional[str] = None, size: Optional[Literal["S", "M", "I", "L"]] = None):
    _check_round(round_id)
    content = build_document(live.get_store().get_state(), round_id, size)
    return _attachment(content, "application/pdf", "PawsAndSpeed_Results.pdf")


@router.get("/export/png/{round_id}/{size}")
async def export_png(round_id: str, size: Literal["S", "M", "I", "L"], on: Optional[date] = None):
    """Share card; `on` pins the footer date."""
    _check_round(round_id)
    current = live.get_store()
    content = build_share_card(current.get_state(), round_id, size, generated_on=on)
    if content is None:
        raise HTTPException(status_code=404, detail="no_entrants")
    rnd = current.get_round(round_id)
    return _attachment(content, "image/png", share_card_filename(rnd["name"], size))


@router.get("/export/json")
async def export_json():
    return Response(
        content=dumps_snapshot(live.get_store().get_state()),
        media_type="application/json",
        headers={"Content-Disposition": 'attachment; filename="PawsAndSpeed_Backup.json"'},
    )


@router.post("/import/json")
async def import_json(request: Request):
    """Restore a snapshot posted as the raw JSON body."""
    raw = await request.body()
    try:
        snapshot = parse_snapshot(raw)
    except SnapshotError as e:
        logger.warning("Snapshot import rejected: %s", e)
        raise HTTPException(status_code=400, detail=str(e))

    async with live.state_lock:
        apply_snapshot(live.get_store(), snapshot)
    return {
        "status": "ok",
        "competitors": len(snapshot.competitors),
        "exportDate": snapshot.export_date,
    }


def _read_xlsx_rows(data: bytes) -> list:
    try:
        wb = openpyxl.load_workbook(filename=BytesIO(data), read_only=True)
    except BadZipFile:
        raise HTTPException(status_code=400, detail="invalid_xlsx")
    try:
        ws = wb.active
        if ws is None:
            raise HTTPException(status_code=400, detail="empty_workbook")
        return [list(row) for row in ws.iter_rows(values_only=True)]
    finally:
        wb.close()


@router.post("/import/roster/{round_id}")
async def import_roster_file(round_id: str, file: UploadFile = File(...)):
    """
    Append entrants to a round from a roster file.

    CSV (or plain text) and XLSX are accepted. Row 1 holds headers; see
    `pawsspeed.core.roster` for the recognised column names.
    """
    _check_round(round_id)
    data = await file.read()
    name = (file.filename or "").lower()
    if file.content_type in XLSX_UPLOAD_TYPES or name.endswith(".xlsx"):
        parsed: RosterParseResult = parse_roster_rows(_read_xlsx_rows(data))
    else:
        try:
            text = data.decode("utf-8-sig")
        except UnicodeDecodeError:
            raise HTTPException(status_code=400, detail="roster must be UTF-8 CSV or XLSX")
        parsed = parse_roster_csv(text)

    async with live.state_lock:
        results = import_roster(live.get_store(), round_id, parsed)

    return {
        "status": "ok",
        "added": sum(1 for r in results if r.ok),
        "skipped": [{"raw": s.raw, "reason": s.reason} for s in parsed.skipped],
    }
