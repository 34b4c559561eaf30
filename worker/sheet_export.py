"""
Spreadsheet write-back through a deployed spreadsheet web-app endpoint.

The endpoint receives ``{spreadsheetId, sheetName, values}`` as JSON and
appends the rows to the named sheet, creating it when needed.

Environment variables:
    SHEET_WEBAPP_URL             - endpoint URL; export is skipped if missing
    SHEET_EXPORT_TIMEOUT_SECONDS - default 30
"""
import logging
import os
from typing import List, Optional, Sequence

import requests

from durations import format_row_total
from errors import ExportError
from schemas import TimeEntry

logger = logging.getLogger('timecard_worker.sheet_export')

SHEET_WEBAPP_URL = os.environ.get('SHEET_WEBAPP_URL', '')
SHEET_EXPORT_TIMEOUT_SECONDS = float(os.environ.get('SHEET_EXPORT_TIMEOUT_SECONDS', '30'))

# The web app numbers repeated sheets itself (null, null2, ...).
UNNAMED_SHEET = 'null'
# Leading apostrophe keeps "8:30" from being read as a time of day.
TEXT_PREFIX = "'"


def sheet_rows(entries: Sequence[TimeEntry]) -> List[List[str]]:
    """Rows in export column order: date, start1, end1, start2, end2, total."""
    rows = []
    for entry in entries:
        total = format_row_total(entry)
        rows.append([
            entry.date,
            entry.start_time1,
            entry.end_time1,
            entry.start_time2,
            entry.end_time2,
            f"{TEXT_PREFIX}{total}" if total else '',
        ])
    return rows


class SheetExporter:
    """Posts one attendance table per call to the spreadsheet web app."""

    def __init__(self, webapp_url: Optional[str] = None, timeout: float = SHEET_EXPORT_TIMEOUT_SECONDS):
        self.webapp_url = webapp_url if webapp_url is not None else SHEET_WEBAPP_URL
        self.timeout = timeout

    def export(self, destination_id: str, entries: Sequence[TimeEntry], sheet_name: Optional[str] = None) -> bool:
        """
        Write entries to ``sheet_name`` of spreadsheet ``destination_id``.

        Returns:
            False when there was nothing to do (no destination, URL or rows), True on success

        Raises:
            ExportError: transport failure or non-2xx response
        """
        if not destination_id or not self.webapp_url or not entries:
            return False

        target_sheet = sheet_name or UNNAMED_SHEET
        payload = {
            'spreadsheetId': destination_id,
            'sheetName': target_sheet,
            'values': sheet_rows(entries),
        }
        try:
            resp = requests.post(self.webapp_url, json=payload, timeout=self.timeout)
            resp.raise_for_status()
        except requests.RequestException as e:
            logger.error(f"[Sheet] export to '{target_sheet}' failed: {e}")
            raise ExportError(f"Spreadsheet export failed: {e}") from e

        logger.info(f"[Sheet] exported {len(entries)} rows to sheet '{target_sheet}'")
        return True
