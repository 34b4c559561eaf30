"""Gap-filling and final display formatting of normalized day entries."""
import logging
from typing import Dict, List, Optional, Sequence

from schemas import TimeEntry
from weekday_consensus import WEEKDAYS, weekday_for

logger = logging.getLogger('timecard_worker.sequencer')


def display_date(day: int, day_of_week: str) -> str:
    """``"20土"`` when a weekday is known, otherwise the bare day number."""
    return f"{day}{day_of_week}" if day_of_week else str(day)


def fill_gaps(
    rows: Sequence[TimeEntry],
    offset: Optional[int],
    alphabet: Sequence[str] = WEEKDAYS,
) -> List[TimeEntry]:
    """
    Produce exactly one entry per day between the first and last observed day.

    Every entry, original or synthesized, gets the consensus weekday (blank
    when ``offset`` is None) and is formatted for display as the last step.

    Args:
        rows: Normalized entries sorted ascending by day
        offset: Resolved weekday offset, or None
        alphabet: Weekday symbols, Sunday first

    Returns:
        Contiguous, strictly increasing list of entries
    """
    if not rows:
        return []

    by_day: Dict[int, TimeEntry] = {row.day_int: row for row in rows}
    first_day = rows[0].day_int
    last_day = rows[-1].day_int

    filled: List[TimeEntry] = []
    synthesized = 0
    for day in range(first_day, last_day + 1):
        day_of_week = weekday_for(day, offset, alphabet)
        entry = by_day.get(day)
        if entry is None:
            entry = TimeEntry(dayInt=day, date=str(day))
            synthesized += 1
        filled.append(entry.model_copy(update={
            'day_of_week': day_of_week,
            'date': display_date(day, day_of_week),
        }))

    if synthesized:
        logger.info("Filled %s missing day(s) between %s and %s", synthesized, first_day, last_day)
    return filled
