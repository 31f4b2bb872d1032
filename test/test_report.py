"""
Tests for report aggregation and rendering.
"""

from __future__ import annotations

from datetime import datetime, timedelta

import pytest

import tally.report as report
from tally.errors import ValidationError
from tally.time_log import HistoryFile, MemoryHistory, TimerRecord

NOW = datetime(2024, 1, 10, 12, 0, 0)


def _record(start, seconds, category, task):
    return TimerRecord(start, start + timedelta(seconds=seconds), category, task, seconds)


@pytest.mark.unit
def test_report_groups_by_task_category_and_day():
    """
    Ensure the report sums durations and floors percentages.

    Returns
    -------
    None
        This test asserts the aggregation scenario.
    """
    store = MemoryHistory(
        [
            _record(datetime(2024, 1, 9, 9, 0, 0), 3600, "work", "review"),
            _record(datetime(2024, 1, 10, 9, 0, 0), 1800, "work", "review"),
            _record(datetime(2024, 1, 10, 11, 0, 0), 900, None, "read"),
        ]
    )

    result = report.build_report(store, 7, now=NOW)

    assert result.total_seconds == 6300
    assert [(b.key, b.seconds, b.percentage) for b in result.by_task] == [
        ("work:review", 5400, 85),
        ("read", 900, 14),
    ]
    assert [(b.key, b.seconds, b.percentage) for b in result.by_category] == [
        ("work", 5400, 85),
        ("(uncategorized)", 900, 14),
    ]
    assert [(b.key, b.seconds) for b in result.by_day] == [
        ("2024-01-10", 2700),
        ("2024-01-09", 3600),
    ]


@pytest.mark.unit
def test_report_ties_keep_first_seen_order():
    """
    Ensure equal totals are listed in the order they first appeared.

    Returns
    -------
    None
        This test asserts stable tie-breaking.
    """
    start = datetime(2024, 1, 9, 9, 0, 0)
    store = MemoryHistory(
        [
            _record(start, 60, "c", "y"),
            _record(start, 120, "c", "w"),
            _record(start, 60, "c", "x"),
            _record(start, 60, "c", "z"),
            _record(start, 60, "c", "y"),
        ]
    )

    result = report.build_report(store, 7, now=NOW)

    assert [b.task for b in result.by_task] == ["y", "w", "x", "z"]


@pytest.mark.unit
def test_report_window_includes_boundary():
    """
    Ensure records starting exactly at the window start are included.

    Returns
    -------
    None
        This test asserts the inclusive lower bound.
    """
    since = NOW - timedelta(days=7)
    store = MemoryHistory(
        [
            _record(since, 60, None, "edge"),
            _record(since - timedelta(seconds=1), 60, None, "before"),
        ]
    )

    result = report.build_report(store, 7, now=NOW)

    assert result.since == since
    assert [b.key for b in result.by_task] == ["edge"]


@pytest.mark.parametrize("days", [10**6, 10**12])
@pytest.mark.unit
def test_report_window_longer_than_calendar(days):
    """
    Ensure a window reaching before year 1 covers the whole history.

    Parameters
    ----------
    days : int
        Window length beyond the representable date range.

    Returns
    -------
    None
        This test asserts the window clamp.
    """
    store = MemoryHistory([_record(datetime(1990, 5, 1, 9, 0, 0), 60, None, "old")])

    result = report.build_report(store, days, now=NOW)

    assert result.since == datetime.min
    assert [b.key for b in result.by_task] == ["old"]
    assert f"Timer report for the last {days} days (since 0001-01-01):" == (
        report.format_report(result)[0]
    )


@pytest.mark.unit
def test_report_empty_window():
    """
    Ensure an empty window yields zero totals and no buckets.

    Returns
    -------
    None
        This test asserts empty aggregation.
    """
    result = report.build_report(MemoryHistory(), 7, now=NOW)

    assert result.total_seconds == 0
    assert result.by_task == []
    assert result.by_category == []
    assert result.by_day == []


@pytest.mark.unit
def test_report_percentages_never_exceed_total():
    """
    Ensure floored percentages sum to at most 100 and totals add up.

    Returns
    -------
    None
        This test asserts percentage bounds.
    """
    start = datetime(2024, 1, 9, 9, 0, 0)
    store = MemoryHistory(
        [_record(start, 1, None, f"t{index}") for index in range(3)]
    )

    result = report.build_report(store, 7, now=NOW)

    assert sum(b.percentage for b in result.by_task) <= 100
    assert all(b.percentage == 33 for b in result.by_task)
    assert result.total_seconds == sum(b.seconds for b in result.by_task)
    assert result.total_seconds == sum(b.seconds for b in result.by_category)
    assert result.total_seconds == sum(b.seconds for b in result.by_day)


@pytest.mark.unit
def test_report_rejects_negative_days():
    """
    Ensure a negative window is a validation error.

    Returns
    -------
    None
        This test asserts window validation.
    """
    with pytest.raises(ValidationError):
        report.build_report(MemoryHistory(), -1, now=NOW)


@pytest.mark.unit
def test_format_report_lines():
    """
    Ensure rendered output carries the headline sections.

    Returns
    -------
    None
        This test asserts report rendering.
    """
    store = MemoryHistory(
        [
            _record(datetime(2024, 1, 9, 9, 0, 0), 5400, "work", "review"),
            _record(datetime(2024, 1, 10, 9, 0, 0), 900, None, "read"),
        ]
    )

    lines = report.format_report(report.build_report(store, 7, now=NOW))

    assert lines[0] == "Timer report for the last 7 days (since 2024-01-03):"
    assert "Total time tracked: 1h 45m" in lines
    assert "Time spent by category:" in lines
    assert "2024-01-10 (Wed):  0h 15m" in lines
    assert any(line.startswith("work") and "( 85%)" in line for line in lines)


@pytest.mark.unit
def test_run_report_reads_history(config, capsys):
    """
    Ensure the report command prints a report from the history file.

    Returns
    -------
    None
        This test asserts the report command.
    """
    store = HistoryFile(config.history_path)
    start = datetime.now().replace(microsecond=0) - timedelta(hours=1)
    store.append(_record(start, 600, "work", "review"))

    assert report.run_report(config=config) == 0

    output = capsys.readouterr().out
    assert "Total time tracked: 0h 10m" in output
    assert "review" in output

    assert report.run_report(1000000, config=config) == 0
    assert "Total time tracked: 0h 10m" in capsys.readouterr().out


@pytest.mark.unit
def test_run_report_without_history(config, capsys):
    """
    Ensure the report command fails when no history exists.

    Returns
    -------
    None
        This test asserts missing history reporting.
    """
    assert report.run_report(config=config) == 1
    assert "No timer history found" in capsys.readouterr().err


@pytest.mark.unit
def test_report_doctest_examples():
    """
    Run doctest examples embedded in report helpers.

    Returns
    -------
    None
        This test asserts doctest coverage for report helpers.
    """
    import doctest

    results = doctest.testmod(report)
    assert results.failed == 0
