#!/usr/bin/env python3
"""
Storage for completed timer records and the single active timer.
"""

from __future__ import annotations

import os
import shutil
import tempfile
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Iterable, Iterator, List, Optional, Protocol

from .errors import IOFailure, ValidationError

HISTORY_HEADER = "start_time|end_time|category|task|duration|seconds"
TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"
FIELD_SEPARATOR = "|"


@dataclass(frozen=True)
class TimerRecord:
    """
    One completed timing.

    Attributes
    ----------
    start_time : datetime
        Start timestamp (local, whole seconds).
    end_time : datetime
        End timestamp (local, whole seconds).
    category : Optional[str]
        Category, if any.
    task : str
        Task name.
    duration_seconds : int
        Elapsed seconds measured on the epoch clock; canonical for
        aggregation.
    """

    start_time: datetime
    end_time: datetime
    category: Optional[str]
    task: str
    duration_seconds: int

    @property
    def label(self) -> str:
        return format_task_label(self.category, self.task)


@dataclass(frozen=True)
class ActiveTimer:
    """
    The in-flight timer.

    Attributes
    ----------
    start_time : datetime
        When the timer started.
    category : Optional[str]
        Category, if any.
    task : str
        Task name.
    """

    start_time: datetime
    category: Optional[str]
    task: str

    @property
    def label(self) -> str:
        return format_task_label(self.category, self.task)


def format_task_label(category: Optional[str], task: str) -> str:
    """
    Format a task for display.

    Examples
    --------
    >>> format_task_label("work", "review")
    'work:review'
    >>> format_task_label(None, "review")
    'review'
    """
    return f"{category}:{task}" if category else task


def truncate_seconds(value: datetime) -> datetime:
    return value.replace(microsecond=0)


def elapsed_seconds(start: datetime, end: datetime) -> int:
    """
    Return whole seconds from ``start`` to ``end``, never negative.

    Naive local times are converted to epoch seconds first, so an interval
    spanning a daylight saving change counts real elapsed time.

    Examples
    --------
    >>> elapsed_seconds(datetime(2024, 1, 1, 9, 0), datetime(2024, 1, 1, 10, 30, 15))
    5415
    >>> elapsed_seconds(datetime(2024, 1, 1, 9, 0), datetime(2024, 1, 1, 8, 0))
    0
    """
    return max(0, int(end.timestamp()) - int(start.timestamp()))


def window_start(now: datetime, days: int) -> datetime:
    """
    Return the start of a trailing window of ``days`` days ending at ``now``.

    Windows reaching past the earliest representable moment start at
    ``datetime.min``.

    Examples
    --------
    >>> window_start(datetime(2024, 1, 10, 12, 0), 7)
    datetime.datetime(2024, 1, 3, 12, 0)
    >>> window_start(datetime(2024, 1, 10), 10**12) == datetime.min
    True
    """
    if days >= (now - datetime.min).days:
        return datetime.min
    return now - timedelta(days=days)


def format_timestamp(value: datetime) -> str:
    """
    Format timestamps the way the history file stores them.

    Examples
    --------
    >>> format_timestamp(datetime(2024, 3, 5, 9, 7, 0))
    '2024-03-05 09:07:00'
    """
    return value.strftime(TIMESTAMP_FORMAT)


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """
    Parse a stored timestamp.

    Parameters
    ----------
    value : Optional[str]
        Timestamp text.

    Returns
    -------
    Optional[datetime]
        Parsed datetime, or None when parsing fails.

    Examples
    --------
    >>> parse_timestamp("2024-03-05 09:07:00")
    datetime.datetime(2024, 3, 5, 9, 7)
    >>> parse_timestamp("start_time") is None
    True
    """
    if not value:
        return None
    try:
        return datetime.strptime(value.strip(), TIMESTAMP_FORMAT)
    except ValueError:
        return None


def format_hms(seconds: int) -> str:
    """
    Format seconds as the unpadded ``H:M:S`` stored in the duration column.

    Examples
    --------
    >>> format_hms(3725)
    '1:2:5'
    """
    return f"{seconds // 3600}:{(seconds % 3600) // 60}:{seconds % 60}"


def format_clock(seconds: int) -> str:
    """
    Format seconds as zero-padded ``HH:MM:SS``.

    Examples
    --------
    >>> format_clock(3725)
    '01:02:05'
    >>> format_clock(0)
    '00:00:00'
    """
    return f"{seconds // 3600:02d}:{(seconds % 3600) // 60:02d}:{seconds % 60:02d}"


def _clean_field(value: Optional[str]) -> str:
    return (value or "").replace(FIELD_SEPARATOR, "/").replace("\n", " ").strip()


def format_record_line(record: TimerRecord) -> str:
    """
    Serialize a record as one history line.

    Examples
    --------
    >>> start = datetime(2024, 1, 1, 9, 0, 0)
    >>> end = datetime(2024, 1, 1, 10, 30, 0)
    >>> format_record_line(TimerRecord(start, end, "work", "review", 5400))
    '2024-01-01 09:00:00|2024-01-01 10:30:00|work|review|1:30:0|5400'
    """
    return FIELD_SEPARATOR.join(
        [
            format_timestamp(record.start_time),
            format_timestamp(record.end_time),
            _clean_field(record.category),
            _clean_field(record.task),
            format_hms(record.duration_seconds),
            str(record.duration_seconds),
        ]
    )


def parse_record_line(line: str) -> Optional[TimerRecord]:
    """
    Parse one history line.

    Parameters
    ----------
    line : str
        Raw line.

    Returns
    -------
    Optional[TimerRecord]
        Parsed record, or None for the header and malformed lines.

    Examples
    --------
    >>> parse_record_line(HISTORY_HEADER) is None
    True
    >>> parse_record_line("2024-01-01 09:00:00|2024-01-01 09:10:00||read|0:10:0|600").category is None
    True
    """
    parts = line.rstrip("\r\n").split(FIELD_SEPARATOR)
    if len(parts) != 6:
        return None
    start = parse_timestamp(parts[0])
    end = parse_timestamp(parts[1])
    if start is None or end is None:
        return None
    try:
        seconds = int(parts[5].strip())
    except ValueError:
        return None
    if seconds < 0:
        return None
    return TimerRecord(
        start_time=start,
        end_time=end,
        category=parts[2].strip() or None,
        task=parts[3].strip(),
        duration_seconds=seconds,
    )


def parse_task_spec(spec: str) -> tuple[Optional[str], str]:
    """
    Split ``category:task`` input into its parts.

    Parameters
    ----------
    spec : str
        Raw task text.

    Returns
    -------
    tuple[Optional[str], str]
        Category (None when absent) and task name.

    Examples
    --------
    >>> parse_task_spec("work: write report")
    ('work', 'write report')
    >>> parse_task_spec("plain task")
    (None, 'plain task')
    >>> parse_task_spec("ops:deploy: v2")
    ('ops', 'deploy: v2')
    """
    text = (spec or "").strip()
    category: Optional[str] = None
    task = text
    if ":" in text:
        raw_category, task = text.split(":", 1)
        category = raw_category.strip() or None
        task = task.strip()
    if not task:
        raise ValidationError("Please specify a task name")
    if category and any(ch.isspace() for ch in category):
        raise ValidationError(f"Category cannot contain spaces: {category!r}")
    return category, task


def replace_file(path: Path, lines: Iterable[str]) -> None:
    """
    Replace a file's contents through a temporary file in the same directory.

    Parameters
    ----------
    path : Path
        Destination file.
    lines : Iterable[str]
        Lines to write, without trailing newlines.
    """
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", dir=path.parent)
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            for line in lines:
                handle.write(line + "\n")
        os.replace(tmp_name, path)
    except OSError as exc:
        raise IOFailure(f"Failed to write {path}: {exc}") from exc


def append_lines(path: Path, lines: Iterable[str]) -> None:
    """
    Append lines to a text file, first terminating an unfinished last line.
    """
    try:
        raw = path.read_bytes() if path.exists() else b""
        with path.open("a", encoding="utf-8") as handle:
            if raw and not raw.endswith(b"\n"):
                handle.write("\n")
            for line in lines:
                handle.write(line + "\n")
    except OSError as exc:
        raise IOFailure(f"Failed to append to {path}: {exc}") from exc


class RecordStore(Protocol):
    def append(self, record: TimerRecord) -> None: ...

    def scan(self, since: Optional[datetime] = None) -> Iterator[TimerRecord]: ...

    def prune(self, cutoff: date) -> int: ...


class TimerState(Protocol):
    def load(self) -> Optional[ActiveTimer]: ...

    def save(self, timer: ActiveTimer) -> None: ...

    def clear(self) -> None: ...


class HistoryFile:
    """
    Pipe-delimited, append-only history of completed timers.
    """

    def __init__(self, path: Path) -> None:
        self.path = path

    @property
    def backup_path(self) -> Path:
        return self.path.with_name(self.path.name + ".bak")

    def exists(self) -> bool:
        return self.path.exists()

    def ensure_file(self) -> None:
        """
        Create the history file with its header when missing.
        """
        if self.path.exists():
            return
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(HISTORY_HEADER + "\n", encoding="utf-8")
        except OSError as exc:
            raise IOFailure(f"Failed to create timer history file: {self.path}") from exc

    def append(self, record: TimerRecord) -> None:
        self.ensure_file()
        try:
            with self.path.open("a", encoding="utf-8") as handle:
                handle.write(format_record_line(record) + "\n")
        except OSError as exc:
            raise IOFailure(f"Failed to append to {self.path}: {exc}") from exc

    def scan(self, since: Optional[datetime] = None) -> Iterator[TimerRecord]:
        """
        Yield parsable records starting at or after ``since``.

        Each call re-reads the file.
        """
        if not self.path.exists():
            return
        with self.path.open("r", encoding="utf-8") as handle:
            for line in handle:
                record = parse_record_line(line)
                if record is None:
                    continue
                if since is not None and record.start_time < since:
                    continue
                yield record

    def prune(self, cutoff: date) -> int:
        """
        Drop records that started before ``cutoff``.

        The pre-prune file is copied to ``backup_path`` first.

        Parameters
        ----------
        cutoff : date
            First start date to keep.

        Returns
        -------
        int
            Number of records kept.
        """
        self.ensure_file()
        try:
            shutil.copy2(self.path, self.backup_path)
        except OSError as exc:
            raise IOFailure(f"Failed to back up {self.path}: {exc}") from exc
        kept = [record for record in self.scan() if record.start_time.date() >= cutoff]
        replace_file(self.path, [HISTORY_HEADER, *(format_record_line(r) for r in kept)])
        return len(kept)


class MemoryHistory:
    """
    In-memory record store for tests and dry runs.
    """

    def __init__(self, records: Optional[Iterable[TimerRecord]] = None) -> None:
        self.records: List[TimerRecord] = list(records or [])

    def append(self, record: TimerRecord) -> None:
        self.records.append(record)

    def scan(self, since: Optional[datetime] = None) -> Iterator[TimerRecord]:
        for record in list(self.records):
            if since is None or record.start_time >= since:
                yield record

    def prune(self, cutoff: date) -> int:
        self.records = [r for r in self.records if r.start_time.date() >= cutoff]
        return len(self.records)


def format_timer_line(timer: ActiveTimer) -> str:
    """
    Serialize the active timer as ``<epoch> <category> <task>``.

    Examples
    --------
    >>> line = format_timer_line(ActiveTimer(datetime(2024, 1, 1), None, "read"))
    >>> line.split(" ", 2)[1:]
    ['', 'read']
    """
    epoch = int(timer.start_time.timestamp())
    return f"{epoch} {timer.category or ''} {timer.task}"


def parse_timer_line(line: str) -> Optional[ActiveTimer]:
    """
    Parse the active timer line, reading fields positionally.

    Examples
    --------
    >>> parse_timer_line("not-a-number x y") is None
    True
    """
    parts = line.strip("\r\n").split(" ", 2)
    if not parts or not parts[0].strip().isdigit():
        return None
    start = datetime.fromtimestamp(int(parts[0]))
    category = parts[1].strip() if len(parts) > 1 else ""
    task = parts[2].strip() if len(parts) > 2 else ""
    if not task:
        task, category = category, ""
    if not task:
        return None
    return ActiveTimer(start_time=start, category=category or None, task=task)


class TimerFile:
    """
    Single-line file holding the active timer.
    """

    def __init__(self, path: Path) -> None:
        self.path = path

    def load(self) -> Optional[ActiveTimer]:
        if not self.path.exists():
            return None
        try:
            text = self.path.read_text(encoding="utf-8")
        except OSError as exc:
            raise IOFailure(f"Failed to read {self.path}: {exc}") from exc
        first = text.splitlines()[0] if text.strip() else ""
        return parse_timer_line(first)

    def save(self, timer: ActiveTimer) -> None:
        replace_file(self.path, [format_timer_line(timer)])

    def clear(self) -> None:
        try:
            self.path.unlink(missing_ok=True)
        except OSError as exc:
            raise IOFailure(f"Failed to remove {self.path}: {exc}") from exc


class MemoryTimerState:
    """
    In-memory active timer slot.
    """

    def __init__(self, timer: Optional[ActiveTimer] = None) -> None:
        self.timer = timer

    def load(self) -> Optional[ActiveTimer]:
        return self.timer

    def save(self, timer: ActiveTimer) -> None:
        self.timer = timer

    def clear(self) -> None:
        self.timer = None
