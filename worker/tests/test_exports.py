import sys
from datetime import date
from io import BytesIO
from pathlib import Path

import pytest
import requests
from openpyxl import load_workbook

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

import sheet_export
from errors import ExportError
from schemas import ExtractionResult, TimeEntry
from sheet_export import SheetExporter, sheet_rows
from workbook_export import (
    GRAND_TOTAL_LABEL,
    HEADER,
    build_workbook,
    default_filename,
    safe_sheet_name,
    to_tsv,
    workbook_bytes,
)


def _entries():
    return (
        TimeEntry(dayInt=1, date="1水", dayOfWeek="水", startTime1="9:00", endTime1="12:30",
                  startTime2="13:30", endTime2="18:00"),
        TimeEntry(dayInt=2, date="2木", dayOfWeek="木"),
    )


def test_workbook_has_one_sheet_per_result_with_unique_names():
    results = [
        ExtractionResult(entries=_entries(), detected_name="山田"),
        ExtractionResult(entries=_entries(), detected_name="山田"),
        ExtractionResult(entries=_entries()),
        ExtractionResult.failed("broken.jpg", "bad image"),
    ]

    wb = build_workbook(results)

    assert wb.sheetnames == ["山田", "山田2", "検出なし", "エラー"]


def test_sheet_contents_header_rows_and_grand_total():
    wb = load_workbook(BytesIO(workbook_bytes([ExtractionResult(entries=_entries(), detected_name="A")])))
    ws = wb["A"]

    assert [c.value for c in ws[1]] == HEADER
    assert ws["A2"].value == "1水"
    assert ws["F2"].value == "8:00"
    assert ws["F2"].number_format == "@"
    assert ws["F3"].value in (None, "")
    assert ws["A4"].value == GRAND_TOTAL_LABEL
    assert ws["F4"].value == "8:00"


def test_empty_result_set_still_produces_a_workbook():
    assert build_workbook([]).sheetnames == ["null"]


def test_safe_sheet_name_cleans_and_truncates():
    used = set()
    assert safe_sheet_name("a/b:c", used) == "a b c"
    assert safe_sheet_name("", used) == "null"
    assert safe_sheet_name(None, used) == "null2"
    long_name = "x" * 40
    assert safe_sheet_name(long_name, used) == "x" * 31
    assert safe_sheet_name(long_name, used) == "x" * 30 + "2"


def test_default_filename_uses_date():
    assert default_filename(date(2024, 4, 1)) == "勤怠データ_20240401.xlsx"


def test_tsv_copy_prefixes_totals_as_text():
    lines = to_tsv(_entries()).split("\n")
    assert lines[0] == "1水\t9:00\t12:30\t13:30\t18:00\t'8:00"
    assert lines[1] == "2木\t\t\t\t\t'"
    assert lines[2] == f"{GRAND_TOTAL_LABEL}\t\t\t\t\t'8:00"


def test_sheet_rows_mark_non_empty_totals_as_text():
    assert sheet_rows(_entries()) == [
        ["1水", "9:00", "12:30", "13:30", "18:00", "'8:00"],
        ["2木", "", "", "", "", ""],
    ]


class _Response:
    def __init__(self, status_code=200):
        self.status_code = status_code

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")


def test_exporter_posts_rows_to_named_sheet(monkeypatch):
    posted = {}

    def fake_post(url, json=None, timeout=None):
        posted.update(url=url, json=json, timeout=timeout)
        return _Response()

    monkeypatch.setattr(sheet_export.requests, "post", fake_post)
    exporter = SheetExporter(webapp_url="https://example.invalid/exec", timeout=5)

    assert exporter.export("sheet-123", _entries(), None) is True
    assert posted["url"] == "https://example.invalid/exec"
    assert posted["timeout"] == 5
    assert posted["json"]["spreadsheetId"] == "sheet-123"
    assert posted["json"]["sheetName"] == "null"
    assert len(posted["json"]["values"]) == 2


def test_exporter_wraps_http_failures(monkeypatch):
    monkeypatch.setattr(sheet_export.requests, "post", lambda *a, **k: _Response(500))
    exporter = SheetExporter(webapp_url="https://example.invalid/exec")

    with pytest.raises(ExportError):
        exporter.export("sheet-123", _entries(), "山田")


def test_exporter_is_a_noop_without_destination_url_or_rows(monkeypatch):
    def fail_post(*args, **kwargs):
        raise AssertionError("should not post")

    monkeypatch.setattr(sheet_export.requests, "post", fail_post)

    assert SheetExporter(webapp_url="https://example.invalid/exec").export("", _entries()) is False
    assert SheetExporter(webapp_url="").export("sheet-123", _entries()) is False
    assert SheetExporter(webapp_url="https://example.invalid/exec").export("sheet-123", ()) is False
