"""Coercion of untrusted OCR rows into partial TimeEntry records."""
import logging
import re
import unicodedata
from typing import Any, Dict, Iterable, List, Optional

from schemas import RawExtractionRow, TimeEntry

logger = logging.getLogger('timecard_worker.row_normalization')

MIN_DAY = 1
MAX_DAY = 31

TIME_FIELDS = ('startTime1', 'endTime1', 'startTime2', 'endTime2')

# A dot separator takes exactly two minute digits; "9.3" is unreadable.
CLOCK_PATTERN = re.compile(r"^(\d{1,2})\s*(?:[:時]\s*(\d{1,2})|\.(\d{2}))\s*分?$")
COMPACT_CLOCK_PATTERN = re.compile(r"^(\d{1,2})(\d{2})$")
HOUR_ONLY_PATTERN = re.compile(r"^(\d{1,2})\s*時$")
PARENTHESES_PATTERN = re.compile(r"[()\s]")
NON_DIGIT_PATTERN = re.compile(r"\D")


def clean_str(value: Any) -> str:
    """None, missing and the literal string "null" all become ''."""
    if value is None:
        return ''
    text = str(value).strip()
    if text.lower() == 'null':
        return ''
    return text


def normalize_time(value: Any) -> str:
    """Canonicalise a clock token to ``H:mm``; anything unreadable becomes ''."""
    text = unicodedata.normalize('NFKC', clean_str(value))
    if not text:
        return ''

    hour: Optional[int] = None
    minute = 0
    match = CLOCK_PATTERN.match(text)
    if match:
        hour, minute = int(match.group(1)), int(match.group(2) or match.group(3))
    else:
        match = COMPACT_CLOCK_PATTERN.match(text) or HOUR_ONLY_PATTERN.match(text)
        if match:
            hour = int(match.group(1))
            minute = int(match.group(2)) if match.lastindex and match.lastindex > 1 else 0

    if hour is None or hour > 48 or minute > 59:
        logger.debug("Discarding unreadable time token %r", value)
        return ''
    return f"{hour}:{minute:02d}"


def coerce_day(value: Any) -> Optional[int]:
    """Return the integer day for a raw ``dayInt`` value, or None when unusable."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if value.is_integer() else None
    text = unicodedata.normalize('NFKC', clean_str(value))
    if not text:
        return None
    try:
        return int(text)
    except ValueError:
        pass
    try:
        number = float(text)
    except ValueError:
        return None
    return int(number) if number.is_integer() else None


def clean_day_of_week(value: Any) -> str:
    text = unicodedata.normalize('NFKC', clean_str(value))
    return PARENTHESES_PATTERN.sub('', text)


def _as_row(row: Any) -> RawExtractionRow:
    if isinstance(row, RawExtractionRow):
        return row
    if isinstance(row, dict):
        return RawExtractionRow.model_validate(row)
    return RawExtractionRow()


def normalize_rows(rows: Iterable[Any]) -> List[TimeEntry]:
    """
    Clean raw OCR rows before sequencing.

    Rows without a usable day are dropped. Time fields keep the column the OCR
    service reported them in. When a day appears more than once the last row
    seen wins.

    Args:
        rows: RawExtractionRow instances or plain dicts in the OCR wire shape

    Returns:
        TimeEntry list sorted ascending by day, one entry per day
    """
    by_day: Dict[int, TimeEntry] = {}
    dropped = 0

    for raw in rows:
        row = _as_row(raw)
        day = coerce_day(row.dayInt)
        if day is None:
            dropped += 1
            continue
        if day < MIN_DAY or day > MAX_DAY:
            logger.warning("Dropping row with out-of-range day %s", day)
            dropped += 1
            continue

        times = {field: normalize_time(getattr(row, field)) for field in TIME_FIELDS}
        entry = TimeEntry(
            dayInt=day,
            date=NON_DIGIT_PATTERN.sub('', unicodedata.normalize('NFKC', clean_str(row.date))) or str(day),
            dayOfWeek=clean_day_of_week(row.dayOfWeek),
            **times,
        )

        if day in by_day:
            logger.warning("Duplicate rows for day %s; keeping the last one", day)
        by_day[day] = entry

    if dropped:
        logger.debug("Dropped %s row(s) without a usable day", dropped)

    return [by_day[day] for day in sorted(by_day)]
