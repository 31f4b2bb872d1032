#!/usr/bin/env python3
"""
Start, stop, and inspect the task timer.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, List, Optional, Tuple

from . import confirm, report_error
from .config import TallyConfig, load_config
from .errors import NotFoundError, NotRunningError, TallyError, TimerAlreadyRunning, ValidationError
from .time_log import (
    ActiveTimer,
    HistoryFile,
    RecordStore,
    TimerFile,
    TimerRecord,
    TimerState,
    elapsed_seconds,
    format_clock,
    format_timestamp,
    parse_task_spec,
    truncate_seconds,
    window_start,
)

UNCATEGORIZED_HEADING = "Uncategorized tasks:"


@dataclass(frozen=True)
class TimerStatus:
    """
    Snapshot of the running timer.

    Attributes
    ----------
    timer : ActiveTimer
        The active timer.
    elapsed_seconds : int
        Seconds since the timer started.
    """

    timer: ActiveTimer
    elapsed_seconds: int


def _now(now: Optional[datetime]) -> datetime:
    return truncate_seconds(now or datetime.now())


def start_timer(
    task_spec: str,
    *,
    state: TimerState,
    records: RecordStore,
    replace: bool = False,
    now: Optional[datetime] = None,
) -> Tuple[ActiveTimer, Optional[TimerRecord]]:
    """
    Start timing a task.

    Parameters
    ----------
    task_spec : str
        ``category:task`` or a bare task name.
    state : TimerState
        Active timer slot.
    records : RecordStore
        History receiving the replaced timer, if any.
    replace : bool, optional
        Stop a running timer instead of failing (default: False).
    now : Optional[datetime], optional
        Reference time.

    Returns
    -------
    Tuple[ActiveTimer, Optional[TimerRecord]]
        The new timer and the record of the timer it replaced.

    Raises
    ------
    TimerAlreadyRunning
        When a timer is active and ``replace`` is False.
    """
    category, task = parse_task_spec(task_spec)
    current = truncate_seconds(now or datetime.now())
    existing = state.load()
    replaced: Optional[TimerRecord] = None
    if existing is not None:
        if not replace:
            raise TimerAlreadyRunning(existing)
        replaced = stop_timer(state=state, records=records, now=current)
    timer = ActiveTimer(start_time=current, category=category, task=task)
    state.save(timer)
    return timer, replaced


def stop_timer(
    *,
    state: TimerState,
    records: RecordStore,
    now: Optional[datetime] = None,
) -> TimerRecord:
    """
    Stop the active timer and append its record.

    Returns
    -------
    TimerRecord
        The appended record.

    Raises
    ------
    NotRunningError
        When no timer is active.
    """
    timer = state.load()
    if timer is None:
        raise NotRunningError()
    start = truncate_seconds(timer.start_time)
    end = _now(now)
    seconds = elapsed_seconds(start, end)
    if seconds == 0:
        end = start
    record = TimerRecord(
        start_time=start,
        end_time=end,
        category=timer.category,
        task=timer.task,
        duration_seconds=seconds,
    )
    records.append(record)
    state.clear()
    return record


def timer_status(*, state: TimerState, now: Optional[datetime] = None) -> TimerStatus:
    """
    Report the running timer without changing it.

    Raises
    ------
    NotRunningError
        When no timer is active.
    """
    timer = state.load()
    if timer is None:
        raise NotRunningError()
    elapsed = elapsed_seconds(truncate_seconds(timer.start_time), _now(now))
    return TimerStatus(timer=timer, elapsed_seconds=elapsed)


def recent_records(records: RecordStore, count: int) -> List[TimerRecord]:
    """
    Return the last ``count`` records in file order.

    Examples
    --------
    >>> from tally.time_log import MemoryHistory
    >>> store = MemoryHistory([
    ...     TimerRecord(datetime(2024, 1, d), datetime(2024, 1, d), None, f"t{d}", 0)
    ...     for d in (1, 2, 3)
    ... ])
    >>> [r.task for r in recent_records(store, 2)]
    ['t2', 't3']
    """
    if count <= 0:
        return []
    return list(records.scan())[-count:]


def grouped_tasks(
    records: RecordStore,
    category: Optional[str] = None,
) -> Dict[str, List[str]]:
    """
    Collect unique task names per category.

    Parameters
    ----------
    records : RecordStore
        History to read.
    category : Optional[str], optional
        Only include this category when given.

    Returns
    -------
    Dict[str, List[str]]
        Mapping from category (``""`` for uncategorized) to task names in
        first-seen order, with keys sorted alphabetically.
    """
    groups: Dict[str, List[str]] = {}
    for record in records.scan():
        key = record.category or ""
        if category and key != category:
            continue
        tasks = groups.setdefault(key, [])
        if record.task not in tasks:
            tasks.append(record.task)
    return {key: groups[key] for key in sorted(groups)}


def list_categories(records: RecordStore) -> List[str]:
    return sorted({record.category for record in records.scan() if record.category})


def _stores(config: TallyConfig) -> Tuple[TimerFile, HistoryFile]:
    return TimerFile(config.timer_path), HistoryFile(config.history_path)


def run_start(
    task_spec: str,
    *,
    force: bool = False,
    config: Optional[TallyConfig] = None,
    input_func: Callable[[str], str] = input,
) -> int:
    """
    Start a timer, asking before replacing a running one.
    """
    config = config or load_config()
    state, records = _stores(config)
    try:
        records.ensure_file()
        try:
            timer, replaced = start_timer(task_spec, state=state, records=records, replace=force)
        except TimerAlreadyRunning as exc:
            print(str(exc))
            if not confirm("Do you want to stop it and start a new timer? [y/N] ", input_func):
                return 1
            timer, replaced = start_timer(task_spec, state=state, records=records, replace=True)
    except TallyError as exc:
        return report_error(exc)
    if replaced is not None:
        print(f"Task completed: {replaced.label}")
        print(f"Time spent: {format_clock(replaced.duration_seconds)}")
    print(f"Timer started for task: {timer.label}")
    return 0


def run_stop(*, config: Optional[TallyConfig] = None) -> int:
    """
    Stop the running timer and print the time spent.
    """
    config = config or load_config()
    state, records = _stores(config)
    try:
        record = stop_timer(state=state, records=records)
    except TallyError as exc:
        return report_error(exc)
    print(f"Task completed: {record.label}")
    print(f"Time spent: {format_clock(record.duration_seconds)}")
    return 0


def run_status(*, config: Optional[TallyConfig] = None) -> int:
    config = config or load_config()
    state, _ = _stores(config)
    try:
        status = timer_status(state=state)
    except TallyError as exc:
        return report_error(exc)
    print(f"Current task: {status.timer.label}")
    print(f"Started at: {format_timestamp(status.timer.start_time)}")
    print(f"Time spent so far: {format_clock(status.elapsed_seconds)}")
    return 0


def run_history(count: Optional[int] = None, *, config: Optional[TallyConfig] = None) -> int:
    """
    Print the most recent completed timers.
    """
    config = config or load_config()
    _, records = _stores(config)
    count = config.history_count if count is None else count
    if count < 0:
        return report_error(ValidationError("Count must be a non-negative number"))
    if not records.exists():
        return report_error(NotFoundError("No timer history found"))
    print("Recent tasks:")
    print(f"{'START TIME':<19} | {'END TIME':<19} | {'CATEGORY':<11} | {'TASK':<20} | DURATION")
    for record in recent_records(records, count):
        print(
            f"{format_timestamp(record.start_time):<19} | "
            f"{format_timestamp(record.end_time):<19} | "
            f"{record.category or '':<11} | {record.task:<20} | "
            f"{format_clock(record.duration_seconds)}"
        )
    return 0


def run_list(category: Optional[str] = None, *, config: Optional[TallyConfig] = None) -> int:
    config = config or load_config()
    _, records = _stores(config)
    if not records.exists():
        return report_error(NotFoundError("No timer history found"))
    groups = grouped_tasks(records, category=category)
    print("Task list:")
    if not groups:
        print("  (no tasks)")
        return 0
    for key, tasks in groups.items():
        print(f"Category: {key}" if key else UNCATEGORIZED_HEADING)
        for task in tasks:
            print(f"  - {task}")
        print()
    return 0


def run_categories(*, config: Optional[TallyConfig] = None) -> int:
    config = config or load_config()
    _, records = _stores(config)
    if not records.exists():
        return report_error(NotFoundError("No timer history found"))
    categories = list_categories(records)
    print("Task categories:")
    if not categories:
        print("No categories found in task history")
    for category in categories:
        print(category)
    return 0


def run_clean(
    days: Optional[int] = None,
    *,
    config: Optional[TallyConfig] = None,
    now: Optional[datetime] = None,
) -> int:
    """
    Prune history older than ``days`` (default: the configured clean window).
    """
    config = config or load_config()
    _, records = _stores(config)
    days = config.clean_days if days is None else days
    if days < 0:
        return report_error(ValidationError("Days must be a non-negative number"))
    if not records.exists():
        return report_error(NotFoundError("No timer history found"))
    cutoff = window_start(now or datetime.now(), days).date()
    try:
        kept = records.prune(cutoff)
    except TallyError as exc:
        return report_error(exc)
    print(f"Backup saved to {records.backup_path}")
    print(f"Timer history cleaned. Kept {kept} entries from the last {days} days.")
    return 0
