import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from schemas import TimeEntry
from sequencer import display_date, fill_gaps
from weekday_consensus import WEEKDAYS_EN, weekday_index


def test_gap_days_are_synthesized_with_consensus_weekdays():
    rows = [
        TimeEntry(dayInt=20, date="20", dayOfWeek="土", startTime1="9:00", endTime1="18:00"),
        TimeEntry(dayInt=23, date="23", dayOfWeek="火", startTime1="9:00", endTime1="18:00"),
    ]
    # Day 20 is a Saturday: (6 - 20) % 7 == 0
    filled = fill_gaps(rows, 0)

    assert [e.date for e in filled] == ["20土", "21日", "22月", "23火"]
    assert filled[1].start_time1 == ""
    assert filled[1].total_hours == ""
    assert filled[3].start_time1 == "9:00"


def test_output_is_contiguous_and_weekdays_agree_with_offset():
    rows = [TimeEntry(dayInt=d) for d in (2, 9, 17, 30)]
    filled = fill_gaps(rows, 5)

    assert [e.day_int for e in filled] == list(range(2, 31))
    for entry in filled:
        assert weekday_index(entry.day_of_week) == (entry.day_int + 5) % 7
        assert entry.date == f"{entry.day_int}{entry.day_of_week}"


def test_consensus_overwrites_disagreeing_labels():
    rows = [TimeEntry(dayInt=11, dayOfWeek="月", startTime1="8:00", endTime1="12:00")]
    filled = fill_gaps(rows, 2)

    assert filled[0].day_of_week == "土"
    assert filled[0].date == "11土"
    assert filled[0].end_time1 == "12:00"


def test_without_offset_dates_are_bare_numbers():
    rows = [TimeEntry(dayInt=1, dayOfWeek="月"), TimeEntry(dayInt=3)]
    filled = fill_gaps(rows, None)

    assert [e.date for e in filled] == ["1", "2", "3"]
    assert all(e.day_of_week == "" for e in filled)


def test_alternate_alphabet():
    filled = fill_gaps([TimeEntry(dayInt=1)], 2, WEEKDAYS_EN)
    assert filled[0].date == "1Wed"


def test_empty_input():
    assert fill_gaps([], 3) == []
    assert display_date(7, "") == "7"
