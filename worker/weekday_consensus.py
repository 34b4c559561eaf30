"""
Majority-vote inference of the day-of-month to weekday offset.

Within one calendar month ``weekday(day) = WEEKDAYS[(day + offset) % 7]`` for
a single unknown offset. Every row with a readable weekday label votes for the
offset that would make its own label correct; the most voted offset wins, so a
handful of misread labels cannot break the sequence.
"""
import logging
from collections import Counter
from typing import Iterable, Optional, Sequence

from schemas import TimeEntry

logger = logging.getLogger('timecard_worker.weekday_consensus')

# Sunday first, matching the order printed on Japanese cards.
WEEKDAYS_JA = ('日', '月', '火', '水', '木', '金', '土')
WEEKDAYS_EN = ('Sun', 'Mon', 'Tue', 'Wed', 'Thu', 'Fri', 'Sat')
WEEKDAYS = WEEKDAYS_JA

JA_WEEKDAY_SUFFIXES = ('曜日', '曜')


def weekday_index(label: Optional[str], alphabet: Sequence[str] = WEEKDAYS) -> Optional[int]:
    """Position of a cleaned weekday label in the alphabet, or None."""
    if not label:
        return None
    candidate = label.strip()
    for suffix in JA_WEEKDAY_SUFFIXES:
        if len(candidate) > len(suffix) and candidate.endswith(suffix):
            candidate = candidate[:-len(suffix)]
            break
    lowered = [symbol.lower() for symbol in alphabet]
    if candidate.lower() in lowered:
        return lowered.index(candidate.lower())
    # Full English names ("Monday") match on their abbreviation.
    prefix = candidate[:3].lower()
    if len(candidate) > 3 and prefix in lowered and len(lowered[0]) == 3:
        return lowered.index(prefix)
    return None


def weekday_for(day: int, offset: Optional[int], alphabet: Sequence[str] = WEEKDAYS) -> str:
    if offset is None:
        return ''
    return alphabet[(day + offset) % 7]


def consensus_votes(rows: Iterable[TimeEntry], alphabet: Sequence[str] = WEEKDAYS) -> Counter:
    votes: Counter = Counter()
    for row in rows:
        index = weekday_index(row.day_of_week, alphabet)
        if index is None:
            continue
        votes[(index - row.day_int) % 7] += 1
    return votes


def resolve_offset(rows: Iterable[TimeEntry], alphabet: Sequence[str] = WEEKDAYS) -> Optional[int]:
    """
    Return the offset in [0, 6] voted by most rows, or None when no row has a
    readable weekday label.

    Ties go to the first offset that reached the winning count while walking
    the rows in day order.
    """
    ordered = sorted(rows, key=lambda row: row.day_int)
    tally: Counter = Counter()
    best_offset: Optional[int] = None
    best_count = 0

    for row in ordered:
        index = weekday_index(row.day_of_week, alphabet)
        if index is None:
            continue
        candidate = (index - row.day_int) % 7
        tally[candidate] += 1
        if tally[candidate] > best_count:
            best_offset = candidate
            best_count = tally[candidate]

    if best_offset is None:
        logger.info("No readable weekday labels; weekdays will be left blank")
        return None

    dissenting = sum(tally.values()) - best_count
    if dissenting:
        logger.info(
            "Weekday offset %s chosen by %s vote(s); overriding %s disagreeing label(s)",
            best_offset,
            best_count,
            dissenting,
        )
    return best_offset
