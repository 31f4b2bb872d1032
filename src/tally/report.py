#!/usr/bin/env python3
"""
Aggregate timer history into task, category, and daily summaries.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple

from . import report_error
from .config import TallyConfig, load_config
from .errors import NotFoundError, ValidationError
from .time_log import HistoryFile, RecordStore, TimerRecord, format_task_label, window_start

UNCATEGORIZED = "(uncategorized)"


@dataclass(frozen=True)
class Bucket:
    """
    Summed time for one group.

    Attributes
    ----------
    key : str
        Display key (task label, category, or ISO date).
    seconds : int
        Accumulated seconds.
    percentage : int
        ``floor(seconds * 100 / total)``, 0 when the total is 0.
    category : Optional[str]
        Category of a task bucket.
    task : Optional[str]
        Task name of a task bucket.
    """

    key: str
    seconds: int
    percentage: int
    category: Optional[str] = None
    task: Optional[str] = None


@dataclass(frozen=True)
class Report:
    """
    Aggregated view of a trailing window.

    Attributes
    ----------
    days : int
        Window length in days.
    since : datetime
        Records starting at or after this moment are included.
    total_seconds : int
        Sum of all included records.
    by_task : List[Bucket]
        Buckets keyed by (category, task), largest first.
    by_category : List[Bucket]
        Buckets keyed by category, largest first.
    by_day : List[Bucket]
        Buckets keyed by start date, newest first.
    """

    days: int
    since: datetime
    total_seconds: int
    by_task: List[Bucket]
    by_category: List[Bucket]
    by_day: List[Bucket]


def percentage(seconds: int, total: int) -> int:
    """
    Return the floored share of ``total``.

    Examples
    --------
    >>> percentage(5400, 6300)
    85
    >>> percentage(900, 6300)
    14
    >>> percentage(10, 0)
    0
    """
    if total <= 0:
        return 0
    return (seconds * 100) // total


def rank_by_seconds(totals: Dict[Any, int]) -> List[Tuple[Any, int]]:
    """
    Order totals by seconds descending; ties keep insertion order.

    Examples
    --------
    >>> rank_by_seconds({"a": 10, "b": 30, "c": 10, "d": 30})
    [('b', 30), ('d', 30), ('a', 10), ('c', 10)]
    """
    return sorted(totals.items(), key=lambda item: -item[1])


def aggregate_records(
    records: Iterable[TimerRecord],
) -> Tuple[int, List[Bucket], List[Bucket], List[Bucket]]:
    """
    Group records by task, category, and day.

    Parameters
    ----------
    records : Iterable[TimerRecord]
        Records inside the report window.

    Returns
    -------
    Tuple[int, List[Bucket], List[Bucket], List[Bucket]]
        Total seconds and the task, category, and daily buckets.
    """
    task_totals: Dict[Tuple[Optional[str], str], int] = {}
    category_totals: Dict[str, int] = {}
    day_totals: Dict[str, int] = {}
    total = 0
    for record in records:
        seconds = record.duration_seconds
        task_key = (record.category, record.task)
        task_totals[task_key] = task_totals.get(task_key, 0) + seconds
        category = record.category or UNCATEGORIZED
        category_totals[category] = category_totals.get(category, 0) + seconds
        day = record.start_time.strftime("%Y-%m-%d")
        day_totals[day] = day_totals.get(day, 0) + seconds
        total += seconds

    by_task = [
        Bucket(
            key=format_task_label(category, task),
            seconds=seconds,
            percentage=percentage(seconds, total),
            category=category,
            task=task,
        )
        for (category, task), seconds in rank_by_seconds(task_totals)
    ]
    by_category = [
        Bucket(key=key, seconds=seconds, percentage=percentage(seconds, total))
        for key, seconds in rank_by_seconds(category_totals)
    ]
    by_day = [
        Bucket(key=key, seconds=day_totals[key], percentage=percentage(day_totals[key], total))
        for key in sorted(day_totals, reverse=True)
    ]
    return total, by_task, by_category, by_day


def build_report(
    records: RecordStore,
    days: int,
    *,
    now: Optional[datetime] = None,
) -> Report:
    """
    Build the report for the last ``days`` days.

    Parameters
    ----------
    records : RecordStore
        History to scan.
    days : int
        Trailing window length.
    now : Optional[datetime], optional
        Reference time (default: now).

    Returns
    -------
    Report
        Aggregated report.

    Raises
    ------
    ValidationError
        When ``days`` is negative.
    """
    if days < 0:
        raise ValidationError("Days must be a non-negative number")
    now = now or datetime.now()
    since = window_start(now, days)
    total, by_task, by_category, by_day = aggregate_records(records.scan(since))
    return Report(
        days=days,
        since=since,
        total_seconds=total,
        by_task=by_task,
        by_category=by_category,
        by_day=by_day,
    )


def format_hours_minutes(seconds: int) -> str:
    """
    Format seconds as hours and minutes.

    Examples
    --------
    >>> format_hours_minutes(5400)
    ' 1h 30m'
    """
    return f"{seconds // 3600:2d}h {(seconds % 3600) // 60:2d}m"


def format_report(report: Report) -> List[str]:
    """
    Render a report as plain text lines.

    Parameters
    ----------
    report : Report
        Report to render.

    Returns
    -------
    List[str]
        Output lines.
    """
    total = report.total_seconds
    lines = [
        f"Timer report for the last {report.days} days "
        f"(since {report.since.date().isoformat()}):",
        f"Total time tracked: {total // 3600}h {(total % 3600) // 60}m",
        "",
        "Time spent by task:",
    ]
    for bucket in report.by_task:
        if bucket.category:
            label = f"{bucket.category:<10} | {bucket.task:<20}"
        else:
            label = f"{bucket.key:<33}"
        lines.append(f"{label} {format_hours_minutes(bucket.seconds)} ({bucket.percentage:3d}%)")
    if report.by_category:
        lines.extend(["", "Time spent by category:"])
        for bucket in report.by_category:
            lines.append(
                f"{bucket.key:<20} {format_hours_minutes(bucket.seconds)} "
                f"({bucket.percentage:3d}%)"
            )
    lines.extend(["", "Daily breakdown:"])
    for bucket in report.by_day:
        dayname = datetime.strptime(bucket.key, "%Y-%m-%d").strftime("%a")
        lines.append(f"{bucket.key} ({dayname}): {format_hours_minutes(bucket.seconds)}")
    return lines


def run_report(days: Optional[int] = None, *, config: Optional[TallyConfig] = None) -> int:
    """
    Print the timer report for the last ``days`` days.
    """
    config = config or load_config()
    store = HistoryFile(config.history_path)
    days = config.report_days if days is None else days
    try:
        if not store.exists():
            raise NotFoundError("No timer history found")
        report = build_report(store, days)
    except (NotFoundError, ValidationError) as exc:
        return report_error(exc)
    for line in format_report(report):
        print(line)
    return 0
