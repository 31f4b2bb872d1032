#!/usr/bin/env python3
"""
Plain-text projects holding ordered, prioritized tasks.
"""

from __future__ import annotations

import re
import shutil
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from enum import Enum
from pathlib import Path
from typing import Callable, List, Optional, Tuple

from . import confirm, report_error
from .config import TallyConfig, load_config
from .errors import AlreadyExistsError, IOFailure, NotFoundError, TallyError, ValidationError
from .time_log import (
    HistoryFile,
    TimerFile,
    append_lines,
    format_clock,
    parse_task_spec,
    replace_file,
)
from .timer import run_start, stop_timer

PROJECT_HEADER = "# Project:"
CREATED_HEADER = "# Created:"
DUE_HEADER = "# Due:"
NOTE_HEADER = "# Note:"
CREATED_FORMAT = "%Y-%m-%d %H:%M:%S"
TASK_FIELD_SEPARATOR = "\t"

TASK_LINE_RE = re.compile(r"^\[(x?)\] (\d+)\t(NONE|LOW|MEDIUM|HIGH)\t(.*)$")
LEGACY_TASK_RE = re.compile(r"^\[(x?)\]\s?(?:\*(HIGH|MEDIUM|LOW)\*:\s?)?(.*)$")
RELATIVE_DUE_RE = re.compile(r"^\+(\d+)\s*days?$")


class Priority(Enum):
    """
    Task priority levels.
    """

    NONE = 0
    LOW = 1
    MEDIUM = 2
    HIGH = 3


def parse_priority(value: Optional[str]) -> Priority:
    """
    Parse a priority name, case insensitively.

    Parameters
    ----------
    value : Optional[str]
        Priority text; empty means ``NONE``.

    Returns
    -------
    Priority
        Parsed priority.

    Examples
    --------
    >>> parse_priority("high")
    <Priority.HIGH: 3>
    >>> parse_priority(None)
    <Priority.NONE: 0>
    """
    text = (value or "").strip().upper()
    if not text:
        return Priority.NONE
    try:
        return Priority[text]
    except KeyError:
        raise ValidationError(
            f"Unknown priority: {value!r} (expected high/medium/low)"
        ) from None


@dataclass(frozen=True)
class Task:
    """
    One task line in a project document.

    Attributes
    ----------
    ordinal : int
        1-based position among task lines at read time.
    task_id : Optional[int]
        Stable identifier, None for legacy lines.
    priority : Priority
        Priority level.
    description : str
        Task text without markers.
    completed : bool
        Whether the task is done.
    line_index : int
        Index of the line inside the document.
    """

    ordinal: int
    task_id: Optional[int]
    priority: Priority
    description: str
    completed: bool
    line_index: int = 0


@dataclass(frozen=True)
class Project:
    """
    Parsed project document.

    Attributes
    ----------
    name : str
        Project name (also the file name).
    created_at : Optional[datetime]
        Creation timestamp when parsable.
    due_date : Optional[str]
        Due text as stored.
    tasks : List[Task]
        Tasks in file order.
    notes : List[str]
        Titles of linked notes.
    """

    name: str
    created_at: Optional[datetime]
    due_date: Optional[str]
    tasks: List[Task] = field(default_factory=list)
    notes: List[str] = field(default_factory=list)

    @property
    def completed_count(self) -> int:
        return sum(1 for task in self.tasks if task.completed)

    @property
    def completion_percentage(self) -> int:
        if not self.tasks:
            return 0
        return (self.completed_count * 100) // len(self.tasks)


@dataclass(frozen=True)
class ProjectView:
    """
    Project plus its derived due countdown.

    Attributes
    ----------
    project : Project
        Parsed project.
    days_left : Optional[int]
        Days until the due date (negative when overdue), None without a
        parsable due date.
    """

    project: Project
    days_left: Optional[int]

    @property
    def overdue(self) -> bool:
        return self.days_left is not None and self.days_left < 0


def format_task_line(task_id: int, priority: Priority, description: str, completed: bool = False) -> str:
    """
    Serialize a task line.

    Examples
    --------
    >>> format_task_line(1, Priority.HIGH, "ship it")
    '[] 1\\tHIGH\\tship it'
    """
    text = description.replace(TASK_FIELD_SEPARATOR, " ").replace("\n", " ").strip()
    mark = "[x]" if completed else "[]"
    return f"{mark} {task_id}{TASK_FIELD_SEPARATOR}{priority.name}{TASK_FIELD_SEPARATOR}{text}"


def parse_task_line(line: str, ordinal: int, line_index: int = 0) -> Optional[Task]:
    """
    Parse a task line in the current or legacy marker format.

    Parameters
    ----------
    line : str
        Raw document line.
    ordinal : int
        Ordinal to assign when the line is a task.
    line_index : int, optional
        Index of the line in the document.

    Returns
    -------
    Optional[Task]
        Parsed task, or None for non-task lines.

    Examples
    --------
    >>> parse_task_line("[] *HIGH*: ship it", 1).priority
    <Priority.HIGH: 3>
    >>> parse_task_line("[x] 4\\tLOW\\tdocs", 2).task_id
    4
    >>> parse_task_line("# Project: demo", 1) is None
    True
    """
    if not (line.startswith("[]") or line.startswith("[x]")):
        return None
    match = TASK_LINE_RE.match(line)
    if match:
        return Task(
            ordinal=ordinal,
            task_id=int(match.group(2)),
            priority=Priority[match.group(3)],
            description=match.group(4),
            completed=match.group(1) == "x",
            line_index=line_index,
        )
    legacy = LEGACY_TASK_RE.match(line)
    if not legacy:
        return None
    marker = legacy.group(2)
    return Task(
        ordinal=ordinal,
        task_id=None,
        priority=Priority[marker] if marker else Priority.NONE,
        description=legacy.group(3).strip(),
        completed=legacy.group(1) == "x",
        line_index=line_index,
    )


def parse_tasks(lines: List[str]) -> List[Task]:
    tasks: List[Task] = []
    for index, line in enumerate(lines):
        task = parse_task_line(line, len(tasks) + 1, index)
        if task is not None:
            tasks.append(task)
    return tasks


def _metadata(lines: List[str], header: str) -> Optional[str]:
    for line in lines:
        if line.startswith(header):
            value = line[len(header):].strip()
            return value or None
    return None


def parse_project(name: str, text: str) -> Project:
    """
    Parse a project document.

    Parameters
    ----------
    name : str
        Project name (file name).
    text : str
        Document contents.

    Returns
    -------
    Project
        Parsed project.
    """
    lines = text.splitlines()
    created_text = _metadata(lines, CREATED_HEADER)
    created_at = None
    if created_text:
        try:
            created_at = datetime.strptime(created_text, CREATED_FORMAT)
        except ValueError:
            created_at = None
    return Project(
        name=name,
        created_at=created_at,
        due_date=_metadata(lines, DUE_HEADER),
        tasks=parse_tasks(lines),
        notes=[
            line[len(NOTE_HEADER):].strip()
            for line in lines
            if line.startswith(NOTE_HEADER) and line[len(NOTE_HEADER):].strip()
        ],
    )


def resolve_due_date(value: Optional[str], today: Optional[date] = None) -> Optional[str]:
    """
    Resolve due date keywords into ISO dates.

    Parameters
    ----------
    value : Optional[str]
        ``today``, ``tomorrow``, ``+Ndays``, or a literal date.
    today : Optional[date], optional
        Reference date.

    Returns
    -------
    Optional[str]
        Due date text, or None for empty input.

    Examples
    --------
    >>> resolve_due_date("tomorrow", date(2024, 1, 31))
    '2024-02-01'
    >>> resolve_due_date("+7days", date(2024, 1, 1))
    '2024-01-08'
    >>> resolve_due_date("2024-05-01")
    '2024-05-01'
    """
    text = (value or "").strip()
    if not text:
        return None
    today = today or date.today()
    lowered = text.lower()
    if lowered == "today":
        return today.isoformat()
    if lowered == "tomorrow":
        return (today + timedelta(days=1)).isoformat()
    match = RELATIVE_DUE_RE.match(lowered)
    if match:
        return (today + timedelta(days=int(match.group(1)))).isoformat()
    return text


def days_until(due_text: Optional[str], now: Optional[datetime] = None) -> Optional[int]:
    """
    Return whole days from ``now`` until midnight of the due date, floored.

    Examples
    --------
    >>> days_until("2024-01-10", datetime(2024, 1, 7, 12, 0))
    2
    >>> days_until("2024-01-05", datetime(2024, 1, 7, 12, 0))
    -3
    >>> days_until("someday") is None
    True
    """
    if not due_text:
        return None
    try:
        due = date.fromisoformat(due_text.strip())
    except ValueError:
        return None
    now = now or datetime.now()
    return (datetime.combine(due, time()) - now) // timedelta(days=1)


def check_file_name(name: Optional[str], kind: str = "Project") -> str:
    """
    Ensure a name is usable as a plain file name inside a store directory.

    Examples
    --------
    >>> check_file_name(" my site ")
    'my site'
    """
    text = (name or "").strip()
    if not text:
        raise ValidationError(f"{kind} name is required")
    if text.startswith(".") or any(ch in text for ch in ("/", "\\", "\0", "\n")):
        raise ValidationError(f"Invalid {kind.lower()} name: {text!r}")
    return text


def validate_project_name(name: Optional[str]) -> str:
    """
    Ensure a new project name is a file name that also works as a timer category.

    Examples
    --------
    >>> validate_project_name(" website ")
    'website'
    """
    text = check_file_name(name)
    if ":" in text or any(ch.isspace() for ch in text):
        raise ValidationError(
            f"Project name cannot contain spaces or ':': {text!r}"
        )
    return text


class ProjectStore:
    """
    Directory of project documents keyed by name.
    """

    def __init__(self, directory: Path, backup_dir: Optional[Path] = None) -> None:
        self.directory = directory
        self.backup_dir = backup_dir or directory / ".backups"

    def path_for(self, name: str) -> Path:
        return self.directory / check_file_name(name)

    def exists(self, name: str) -> bool:
        return self.path_for(name).is_file()

    def _read_lines(self, name: str) -> Tuple[Path, List[str]]:
        path = self.path_for(name)
        if not path.is_file():
            raise NotFoundError(f"Project '{name}' not found")
        try:
            return path, path.read_text(encoding="utf-8").splitlines()
        except OSError as exc:
            raise IOFailure(f"Failed to read {path}: {exc}") from exc

    def names(self) -> List[str]:
        if not self.directory.is_dir():
            return []
        return sorted(
            entry.name
            for entry in self.directory.iterdir()
            if entry.is_file() and not entry.name.startswith(".")
        )

    def create(
        self,
        name: str,
        *,
        due: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Project:
        """
        Create an empty project.

        Parameters
        ----------
        name : str
            Project name.
        due : Optional[str], optional
            Due date text or keyword.
        now : Optional[datetime], optional
            Creation time.

        Returns
        -------
        Project
            The new project.
        """
        name = validate_project_name(name)
        path = self.path_for(name)
        if path.exists():
            raise AlreadyExistsError(f"Project '{name}' already exists")
        now = (now or datetime.now()).replace(microsecond=0)
        due_text = resolve_due_date(due, now.date())
        lines = [f"{PROJECT_HEADER} {name}", f"{CREATED_HEADER} {now.strftime(CREATED_FORMAT)}"]
        if due_text:
            lines.append(f"{DUE_HEADER} {due_text}")
        lines.append("")
        replace_file(path, lines)
        return Project(name=name, created_at=now, due_date=due_text, tasks=[])

    def load(self, name: str) -> Project:
        path, lines = self._read_lines(name)
        return parse_project(path.name, "\n".join(lines))

    def view(self, name: str, *, now: Optional[datetime] = None) -> ProjectView:
        project = self.load(name)
        return ProjectView(project=project, days_left=days_until(project.due_date, now))

    def list_views(self, *, now: Optional[datetime] = None) -> List[ProjectView]:
        return [self.view(name, now=now) for name in self.names()]

    def add_task(
        self,
        name: str,
        description: str,
        priority: Priority = Priority.NONE,
    ) -> Task:
        """
        Append a task with the next stable id.

        Returns
        -------
        Task
            The appended task.
        """
        text = (description or "").strip()
        if not text:
            raise ValidationError("Task description is required")
        path, lines = self._read_lines(name)
        tasks = parse_tasks(lines)
        next_id = max((task.task_id or 0 for task in tasks), default=0) + 1
        line = format_task_line(next_id, priority, text)
        append_lines(path, [line])
        return parse_task_line(line, len(tasks) + 1, len(lines))

    def link_note(self, name: str, note_title: str) -> None:
        """
        Record a ``# Note:`` reference at the end of a project document.
        """
        path, lines = self._read_lines(name)
        if any(line.strip() == f"{NOTE_HEADER} {note_title}" for line in lines):
            return
        append_lines(path, ["", f"{NOTE_HEADER} {note_title}"])

    def unlink_note(self, note_title: str) -> List[str]:
        """
        Remove references to a note from every project.

        Returns
        -------
        List[str]
            Names of the projects that were rewritten.
        """
        reference = f"{NOTE_HEADER} {note_title}"
        changed: List[str] = []
        for name in self.names():
            path, lines = self._read_lines(name)
            kept = [line for line in lines if line.strip() != reference]
            if len(kept) != len(lines):
                replace_file(path, kept)
                changed.append(name)
        return changed

    def _mark(self, name: str, matcher: Callable[[Task], bool], missing: str) -> Tuple[Task, bool]:
        path, lines = self._read_lines(name)
        target = next((task for task in parse_tasks(lines) if matcher(task)), None)
        if target is None:
            raise NotFoundError(missing)
        if target.completed:
            return target, False
        lines[target.line_index] = "[x]" + lines[target.line_index][2:]
        replace_file(path, lines)
        return parse_task_line(lines[target.line_index], target.ordinal, target.line_index), True

    def mark_done(self, name: str, ordinal: int) -> Tuple[Task, bool]:
        """
        Mark the task at ``ordinal`` completed.

        Marking an already completed task leaves the document unchanged.

        Returns
        -------
        Tuple[Task, bool]
            The task and whether the document changed.
        """
        if ordinal < 1:
            raise ValidationError("Task ID must be a positive number")
        return self._mark(
            name,
            lambda task: task.ordinal == ordinal,
            f"Task ID {ordinal} not found in project '{name}'",
        )

    def mark_done_by_id(self, name: str, task_id: int) -> Tuple[Task, bool]:
        if task_id < 1:
            raise ValidationError("Task ID must be a positive number")
        return self._mark(
            name,
            lambda task: task.task_id == task_id,
            f"Task #{task_id} not found in project '{name}'",
        )

    def delete(self, name: str, *, now: Optional[datetime] = None) -> Path:
        """
        Remove a project after copying it to the backup directory.

        Returns
        -------
        Path
            Location of the backup copy.
        """
        path = self.path_for(name)
        if not path.is_file():
            raise NotFoundError(f"Project '{name}' not found")
        stamp = (now or datetime.now()).strftime("%Y%m%d_%H%M%S")
        backup = self.backup_dir / f"{path.name}.{stamp}.bak"
        try:
            self.backup_dir.mkdir(parents=True, exist_ok=True)
            shutil.copy2(path, backup)
            path.unlink()
        except OSError as exc:
            raise IOFailure(f"Failed to delete project '{name}': {exc}") from exc
        return backup

    def rename(self, old: str, new: str) -> Path:
        """
        Rename a project and update its name header.
        """
        old_path, lines = self._read_lines(old)
        new_path = self.path_for(validate_project_name(new))
        if new_path.exists():
            raise AlreadyExistsError(f"Project '{new_path.name}' already exists")
        header = f"{PROJECT_HEADER} {old_path.name}"
        updated = [
            f"{PROJECT_HEADER} {new_path.name}" if line.strip() == header else line
            for line in lines
        ]
        replace_file(new_path, updated)
        try:
            old_path.unlink()
        except OSError as exc:
            raise IOFailure(f"Failed to remove {old_path}: {exc}") from exc
        return new_path


def format_due(days_left: Optional[int], due_text: str) -> str:
    """
    Describe a due date countdown.

    Examples
    --------
    >>> format_due(-2, "2024-01-01")
    '2024-01-01 (2 days overdue)'
    >>> format_due(5, "2024-01-01")
    '2024-01-01 (5 days left)'
    """
    if days_left is None:
        return due_text
    if days_left < 0:
        return f"{due_text} ({-days_left} days overdue)"
    return f"{due_text} ({days_left} days left)"


def format_task(task: Task) -> str:
    """
    Render a task for display, showing the priority outside the text.

    Examples
    --------
    >>> format_task(Task(1, 1, Priority.HIGH, "ship it", False))
    '1. [] (HIGH) ship it'
    >>> format_task(Task(2, 2, Priority.NONE, "docs", True))
    '2. [x] docs'
    """
    mark = "[x]" if task.completed else "[]"
    if task.priority is Priority.NONE:
        return f"{task.ordinal}. {mark} {task.description}"
    return f"{task.ordinal}. {mark} ({task.priority.name}) {task.description}"


def _store(config: TallyConfig) -> ProjectStore:
    return ProjectStore(config.project_dir, config.project_backup_dir)


def run_list(*, config: Optional[TallyConfig] = None) -> int:
    """
    Print project summaries.
    """
    config = config or load_config()
    try:
        views = _store(config).list_views()
    except TallyError as exc:
        return report_error(exc)
    print("Available projects:")
    if not views:
        print("No projects found. Create one with 'project create <name>'")
        return 0
    for view in views:
        project = view.project
        line = (
            f"{project.name} - {project.completed_count}/{len(project.tasks)} tasks completed "
            f"({project.completion_percentage}%)"
        )
        if project.due_date:
            line += f" - Due: {format_due(view.days_left, project.due_date)}"
        print(line)
    return 0


def run_create(name: str, *, due: Optional[str] = None, config: Optional[TallyConfig] = None) -> int:
    config = config or load_config()
    try:
        project = _store(config).create(name, due=due)
    except TallyError as exc:
        return report_error(exc)
    print(f"Project '{project.name}' created successfully")
    if project.due_date:
        print(f"Due: {project.due_date}")
    return 0


def run_view(name: str, *, config: Optional[TallyConfig] = None) -> int:
    """
    Print a project's due countdown, statistics, and tasks.
    """
    config = config or load_config()
    try:
        view = _store(config).view(name)
    except TallyError as exc:
        return report_error(exc)
    project = view.project
    print(f"Project: {project.name}")
    print()
    if project.due_date:
        print(f"Due: {format_due(view.days_left, project.due_date)}")
        print()
    total = len(project.tasks)
    done = project.completed_count
    print(
        f"Tasks: {total} total, {done} completed, {total - done} pending "
        f"({project.completion_percentage}% done)"
    )
    print()
    if not project.tasks:
        print(f"No tasks found. Add tasks with 'project add {project.name} <task>'")
    for task in project.tasks:
        print(format_task(task))
    if project.notes:
        print()
        print("Notes:")
        for title in project.notes:
            print(f"  - {title}")
    return 0


def run_add(
    name: str,
    description: str,
    priority: Optional[str] = None,
    *,
    start: bool = False,
    config: Optional[TallyConfig] = None,
    input_func: Callable[[str], str] = input,
) -> int:
    """
    Append a task, optionally starting a timer for it.
    """
    config = config or load_config()
    try:
        if start:
            validate_project_name(name)
            parse_task_spec(f"{name.strip()}:{description}")
        task = _store(config).add_task(name, description, parse_priority(priority))
    except TallyError as exc:
        return report_error(exc)
    print(f"Task added to project '{name}' as #{task.ordinal}")
    if start:
        return run_start(
            f"{name.strip()}:{task.description}", config=config, input_func=input_func
        )
    return 0


def run_done(
    name: str,
    number: int,
    *,
    by_id: bool = False,
    config: Optional[TallyConfig] = None,
    input_func: Callable[[str], str] = input,
) -> int:
    """
    Mark a task completed and offer to stop a timer running for it.
    """
    config = config or load_config()
    store = _store(config)
    try:
        if by_id:
            task, changed = store.mark_done_by_id(name, number)
        else:
            task, changed = store.mark_done(name, number)
    except TallyError as exc:
        return report_error(exc)
    if changed:
        print(f"Task {number} marked as completed in project '{name}'")
    else:
        print(f"Task {number} in project '{name}' is already completed")

    state = TimerFile(config.timer_path)
    try:
        active = state.load()
    except TallyError as exc:
        return report_error(exc)
    if active and active.category == name and task.description in active.task:
        if confirm("Timer is running for this task. Stop it? [Y/n] ", input_func, default=True):
            try:
                record = stop_timer(state=state, records=HistoryFile(config.history_path))
            except TallyError as exc:
                return report_error(exc)
            print(f"Task completed: {record.label}")
            print(f"Time spent: {format_clock(record.duration_seconds)}")
    return 0


def run_delete(
    name: str,
    *,
    force: bool = False,
    config: Optional[TallyConfig] = None,
    input_func: Callable[[str], str] = input,
) -> int:
    config = config or load_config()
    store = _store(config)
    try:
        if not store.exists(name):
            raise NotFoundError(f"Project '{name}' not found")
        if not force and not confirm(
            f"Are you sure you want to delete project '{name}'? [y/N] ", input_func
        ):
            print("Project deletion cancelled")
            return 1
        backup = store.delete(name)
    except TallyError as exc:
        return report_error(exc)
    print(f"Project '{name}' deleted successfully")
    print(f"(A backup was saved to {backup})")
    return 0


def run_rename(old: str, new: str, *, config: Optional[TallyConfig] = None) -> int:
    config = config or load_config()
    try:
        _store(config).rename(old, new)
    except TallyError as exc:
        return report_error(exc)
    print(f"Project renamed from '{old}' to '{new}'")
    return 0
