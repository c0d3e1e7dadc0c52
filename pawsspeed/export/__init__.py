from .document import build_document
from .image import ShareCardLayout, build_share_card, render_share_card
from .snapshot import SnapshotError, export_snapshot, import_snapshot, parse_snapshot
from .spreadsheet import build_workbook
from .tables import COLUMNS, build_groups, ranking_frame

__all__ = [
    "COLUMNS",
    "ShareCardLayout",
    "SnapshotError",
    "build_document",
    "build_groups",
    "build_share_card",
    "build_workbook",
    "export_snapshot",
    "import_snapshot",
    "parse_snapshot",
    "ranking_frame",
    "render_share_card",
]
