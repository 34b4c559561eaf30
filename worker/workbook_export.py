"""
Bulk `.xlsx` export: one sheet per processed card, plus a TSV copy for pasting.

Total cells are stored as text so spreadsheet apps never reinterpret "8:30"
as a time of day.
"""
import logging
from datetime import date
from io import BytesIO
from typing import Iterable, Optional, Sequence

from openpyxl import Workbook
from openpyxl.utils import get_column_letter

from durations import format_grand_total, format_row_total
from schemas import ExtractionResult, TimeEntry

logger = logging.getLogger('timecard_worker.workbook_export')


HEADER = ['日付', '開始1', '終了1', '開始2', '終了2', '合計']
GRAND_TOTAL_LABEL = '総合計時間'
COLUMN_WIDTHS = [10, 10, 10, 10, 10, 12]
UNNAMED_SHEET = 'null'
TEXT_FORMAT = '@'
INVALID_SHEET_CHARS = ['\\', '/', '*', '[', ']', ':', '?']
MAX_SHEET_NAME = 31


def safe_sheet_name(value: Optional[str], existing: set) -> str:
    """Spreadsheet-legal, unique sheet name; repeats become ``name2``, ``name3``."""
    base = value or UNNAMED_SHEET
    for ch in INVALID_SHEET_CHARS:
        base = base.replace(ch, ' ')
    base = ' '.join(base.split()).strip() or UNNAMED_SHEET
    base = base[:MAX_SHEET_NAME]
    candidate, counter = base, 2
    while candidate in existing:
        suffix = str(counter)
        candidate = base[:MAX_SHEET_NAME - len(suffix)] + suffix
        counter += 1
    existing.add(candidate)
    return candidate


def default_filename(today: Optional[date] = None) -> str:
    today = today or date.today()
    return f"勤怠データ_{today.strftime('%Y%m%d')}.xlsx"


def table_rows(entries: Sequence[TimeEntry]) -> list:
    rows = [list(HEADER)]
    for entry in entries:
        rows.append([
            entry.date,
            entry.start_time1,
            entry.end_time1,
            entry.start_time2,
            entry.end_time2,
            format_row_total(entry),
        ])
    rows.append([GRAND_TOTAL_LABEL, '', '', '', '', format_grand_total(entries)])
    return rows


def populate_sheet(ws, entries: Sequence[TimeEntry]) -> None:
    for row_index, values in enumerate(table_rows(entries), start=1):
        for col_index, value in enumerate(values, start=1):
            cell = ws.cell(row=row_index, column=col_index, value=value)
            # Totals stay text so "8:30" is never reinterpreted as a time of day.
            if col_index == len(HEADER):
                cell.number_format = TEXT_FORMAT
    for col_index, width in enumerate(COLUMN_WIDTHS, start=1):
        ws.column_dimensions[get_column_letter(col_index)].width = width


def build_workbook(results: Iterable[ExtractionResult]) -> Workbook:
    """One sheet per processed image, named after the detected employee."""
    wb = Workbook()
    wb.remove(wb.active)
    used_names: set = set()
    for result in results:
        ws = wb.create_sheet(title=safe_sheet_name(result.display_name, used_names))
        populate_sheet(ws, result.entries)
    if not wb.worksheets:
        wb.create_sheet(title=UNNAMED_SHEET)
    logger.info(f"Built workbook with {len(wb.worksheets)} sheet(s): {', '.join(wb.sheetnames)}")
    return wb


def workbook_bytes(results: Iterable[ExtractionResult]) -> bytes:
    buffer = BytesIO()
    build_workbook(results).save(buffer)
    return buffer.getvalue()


def to_tsv(entries: Sequence[TimeEntry]) -> str:
    """Tab-separated copy of a table for pasting into a spreadsheet."""
    lines = [
        f"{entry.date}\t{entry.start_time1}\t{entry.end_time1}\t"
        f"{entry.start_time2}\t{entry.end_time2}\t'{format_row_total(entry)}"
        for entry in entries
    ]
    lines.append(f"{GRAND_TOTAL_LABEL}\t\t\t\t\t'{format_grand_total(entries)}")
    return "\n".join(lines)
