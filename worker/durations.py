"""Duration arithmetic for clock-in/clock-out periods.

All helpers are total: malformed input degrades to zero minutes instead of
raising, since OCR noise is expected on every card.
"""
from typing import Iterable, Optional, Tuple


def _split_clock(value: Optional[str]) -> Optional[Tuple[int, int]]:
    if not value:
        return None
    parts = str(value).strip().split(':')
    try:
        hour = int(parts[0])
    except ValueError:
        return None
    if hour < 0:
        return None
    minute = 0
    if len(parts) > 1:
        try:
            minute = int(parts[1])
        except ValueError:
            minute = 0
    return hour, minute


def duration_minutes(start: Optional[str], end: Optional[str]) -> int:
    """Elapsed minutes between two ``H:mm`` strings, or 0 when either is unusable."""
    start_parts = _split_clock(start)
    end_parts = _split_clock(end)
    if start_parts is None or end_parts is None:
        return 0
    start_minutes = start_parts[0] * 60 + start_parts[1]
    end_minutes = end_parts[0] * 60 + end_parts[1]
    return max(0, end_minutes - start_minutes)


def format_minutes(total_minutes: int) -> str:
    """Render minutes as ``H:mm``; zero renders as an empty string."""
    if not total_minutes:
        return ''
    hours, minutes = divmod(int(total_minutes), 60)
    return f"{hours}:{minutes:02d}"


def row_total_minutes(entry) -> int:
    """Sum of both periods of a TimeEntry-like object."""
    return (
        duration_minutes(entry.start_time1, entry.end_time1)
        + duration_minutes(entry.start_time2, entry.end_time2)
    )


def grand_total_minutes(entries: Iterable) -> int:
    return sum(row_total_minutes(entry) for entry in entries)


def format_row_total(entry) -> str:
    return format_minutes(row_total_minutes(entry))


def format_grand_total(entries: Iterable) -> str:
    return format_minutes(grand_total_minutes(entries))
