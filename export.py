import io
import logging

from openpyxl import Workbook
from openpyxl.styles import Font

logger = logging.getLogger(__name__)

EXPORT_FILENAME = "bible_reading_progress.xlsx"
HEADER = ["Day", "Passages", "Done"]
MAX_COLUMN_WIDTH = 30
LINK_FONT = Font(color="FF0000FF", underline="single")


def _column_widths(rows, max_width=MAX_COLUMN_WIDTH):
    widths = [0] * len(rows[0])
    for row in rows:
        for j, text in enumerate(row):
            widths[j] = max(widths[j], len(text))
    return [min(w + 2, max_width) for w in widths]


def build_workbook(schedule, progress_map) -> Workbook:
    """Day / Passages (linked) / Done ("X") sheet for a schedule and its progress."""
    wb = Workbook()
    ws = wb.active
    ws.title = "Sheet1"
    ws.append(HEADER)

    texts = [list(HEADER)]
    for item in schedule:
        done = "X" if progress_map.get(item["day"]) else ""
        ws.append([item["day"], item["passages"], done])
        cell = ws.cell(row=ws.max_row, column=2)
        if item.get("url"):
            cell.hyperlink = item["url"]
            cell.font = LINK_FONT
        texts.append([str(item["day"]), item["passages"], done])

    for i, width in enumerate(_column_widths(texts), start=1):
        ws.column_dimensions[ws.cell(row=1, column=i).column_letter].width = width

    logger.info("[export] Built workbook with %d rows", len(schedule))
    return wb


def workbook_bytes(schedule, progress_map) -> bytes:
    buf = io.BytesIO()
    build_workbook(schedule, progress_map).save(buf)
    return buf.getvalue()
