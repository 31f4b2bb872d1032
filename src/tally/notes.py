#!/usr/bin/env python3
"""
Plain-text notes with tags and links to projects.
"""

from __future__ import annotations

import shutil
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Callable, List, Optional, Tuple

from . import confirm, report_error
from .config import TallyConfig, load_config
from .errors import AlreadyExistsError, IOFailure, NotFoundError, TallyError, ValidationError
from .projects import ProjectStore, check_file_name
from .projects import run_view as run_project_view
from .time_log import append_lines, replace_file

CREATED_HEADER = "# Created:"
MODIFIED_HEADER = "# Modified:"
TAGS_HEADER = "# Tags:"
RELATED_HEADER = "# Related Project:"
STAMP_FORMAT = "%Y-%m-%d %H:%M:%S"
PREVIEW_WIDTH = 50


def parse_tags(value: Optional[str]) -> Tuple[str, ...]:
    """
    Split comma-separated tags, dropping blanks.

    Examples
    --------
    >>> parse_tags("python, ideas,, work ")
    ('python', 'ideas', 'work')
    >>> parse_tags(None)
    ()
    """
    return tuple(tag.strip() for tag in (value or "").split(",") if tag.strip())


def format_tags(tags: Tuple[str, ...]) -> str:
    return ", ".join(tags)


def _header_end(lines: List[str]) -> int:
    for index, line in enumerate(lines):
        if not line.startswith("#"):
            return index
    return len(lines)


def _header_value(lines: List[str], header: str) -> Optional[str]:
    for line in lines[:_header_end(lines)]:
        if line.startswith(header):
            return line[len(header):].strip() or None
    return None


def set_header(lines: List[str], header: str, value: str) -> bool:
    """
    Set a metadata line in the leading ``#`` block, in place.

    A missing line is inserted after ``# Created:``, or after the title line
    when there is no creation line.

    Returns
    -------
    bool
        True when an existing line was replaced.

    Examples
    --------
    >>> lines = ["# idea", "# Created: 2024-01-01 09:00:00", "", "text"]
    >>> set_header(lines, TAGS_HEADER, "a, b")
    False
    >>> lines[:3]
    ['# idea', '# Created: 2024-01-01 09:00:00', '# Tags: a, b']
    """
    end = _header_end(lines)
    entry = f"{header} {value}"
    for index in range(end):
        if lines[index].startswith(header):
            lines[index] = entry
            return True
    anchor = next(
        (index for index in range(end) if lines[index].startswith(CREATED_HEADER)),
        None,
    )
    position = anchor + 1 if anchor is not None else min(1, end)
    lines.insert(position, entry)
    return False


@dataclass(frozen=True)
class Note:
    """
    Parsed note document.

    Attributes
    ----------
    title : str
        Note title (also the file name).
    lines : Tuple[str, ...]
        Document lines.
    updated_at : Optional[datetime]
        File modification time when read from disk.
    """

    title: str
    lines: Tuple[str, ...]
    updated_at: Optional[datetime] = None

    @property
    def created(self) -> Optional[str]:
        return _header_value(list(self.lines), CREATED_HEADER)

    @property
    def modified(self) -> Optional[str]:
        return _header_value(list(self.lines), MODIFIED_HEADER)

    @property
    def tags(self) -> Tuple[str, ...]:
        return parse_tags(_header_value(list(self.lines), TAGS_HEADER))

    @property
    def related_project(self) -> Optional[str]:
        for line in self.lines:
            if line.startswith(RELATED_HEADER):
                return line[len(RELATED_HEADER):].strip() or None
        return None

    @property
    def body(self) -> List[str]:
        lines = list(self.lines)
        body = [
            line
            for line in lines[_header_end(lines):]
            if not line.startswith(RELATED_HEADER)
        ]
        while body and not body[0].strip():
            body.pop(0)
        while body and not body[-1].strip():
            body.pop()
        return body

    @property
    def preview(self) -> str:
        """
        First line of text, cut to the preview width.

        Examples
        --------
        >>> Note("n", ("# n", "", "x" * 60)).preview == "x" * 50 + "..."
        True
        """
        first = next(
            (line for line in self.body if line.strip() and not line.startswith("#")),
            "",
        )
        if len(first) > PREVIEW_WIDTH:
            return first[:PREVIEW_WIDTH] + "..."
        return first

    def has_tag(self, tag: str) -> bool:
        """
        Match a whole tag, ignoring case.

        Examples
        --------
        >>> note = Note("n", ("# n", "# Tags: Python, work", "", "x"))
        >>> note.has_tag("python"), note.has_tag("py")
        (True, False)
        """
        wanted = tag.strip().casefold()
        return any(existing.casefold() == wanted for existing in self.tags)


class NoteStore:
    """
    Directory of note documents keyed by title.
    """

    def __init__(
        self,
        directory: Path,
        backup_dir: Optional[Path] = None,
        projects: Optional[ProjectStore] = None,
    ) -> None:
        self.directory = directory
        self.backup_dir = backup_dir or directory / ".backups"
        self.projects = projects

    def path_for(self, title: str) -> Path:
        return self.directory / check_file_name(title, "Note")

    def names(self) -> List[str]:
        if not self.directory.is_dir():
            return []
        return sorted(
            entry.name
            for entry in self.directory.iterdir()
            if entry.is_file() and not entry.name.startswith(".")
        )

    def resolve(self, title: str) -> str:
        """
        Return the stored title matching ``title`` exactly or by prefix.

        Raises
        ------
        NotFoundError
            When no title matches.
        """
        text = check_file_name(title, "Note")
        if (self.directory / text).is_file():
            return text
        for name in self.names():
            if name.startswith(text):
                return name
        raise NotFoundError(f"Note '{text}' not found")

    def _read(self, name: str) -> Tuple[Path, List[str]]:
        path = self.directory / name
        try:
            return path, path.read_text(encoding="utf-8").splitlines()
        except OSError as exc:
            raise IOFailure(f"Failed to read {path}: {exc}") from exc

    def load(self, title: str) -> Note:
        name = self.resolve(title)
        path, lines = self._read(name)
        try:
            updated_at = datetime.fromtimestamp(path.stat().st_mtime)
        except OSError:
            updated_at = None
        return Note(title=name, lines=tuple(lines), updated_at=updated_at)

    def list_notes(self) -> List[Note]:
        return [self.load(name) for name in self.names()]

    def create(
        self,
        title: str,
        text: str,
        *,
        tags: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Note:
        """
        Write a new note.

        Parameters
        ----------
        title : str
            Note title.
        text : str
            Note body.
        tags : Optional[str], optional
            Comma-separated tags.
        now : Optional[datetime], optional
            Creation time.

        Returns
        -------
        Note
            The new note.
        """
        path = self.path_for(title)
        name = path.name
        if path.exists():
            raise AlreadyExistsError(f"Note '{name}' already exists")
        body = (text or "").strip("\n")
        if not body.strip():
            raise ValidationError("Note text is required")
        now = (now or datetime.now()).replace(microsecond=0)
        lines = [f"# {name}", f"{CREATED_HEADER} {now.strftime(STAMP_FORMAT)}"]
        tag_list = parse_tags(tags)
        if tag_list:
            lines.append(f"{TAGS_HEADER} {format_tags(tag_list)}")
        lines.append("")
        lines.extend(body.splitlines())
        replace_file(path, lines)
        return Note(title=name, lines=tuple(lines), updated_at=now)

    def link_project(self, title: str, project: str) -> Note:
        """
        Cross-link a note and a project.

        The project gets a ``# Note:`` line and the note a
        ``# Related Project:`` line.
        """
        if self.projects is None:
            raise ValidationError("No project directory configured")
        name = self.resolve(title)
        project_name = self.projects.load(project).name
        self.projects.link_note(project_name, name)
        path, lines = self._read(name)
        entry = f"{RELATED_HEADER} {project_name}"
        if entry not in (line.strip() for line in lines):
            append_lines(path, ["", entry])
        return self.load(name)

    def tag(self, title: str, tags: str) -> Tuple[Note, bool]:
        """
        Set a note's tags.

        Returns
        -------
        Tuple[Note, bool]
            The note and whether existing tags were replaced.
        """
        tag_list = parse_tags(tags)
        if not tag_list:
            raise ValidationError("Tags are required")
        name = self.resolve(title)
        path, lines = self._read(name)
        replaced = set_header(lines, TAGS_HEADER, format_tags(tag_list))
        replace_file(path, lines)
        return self.load(name), replaced

    def by_tag(self, tag: str) -> List[Note]:
        if not (tag or "").strip():
            raise ValidationError("Tag is required")
        return [note for note in self.list_notes() if note.has_tag(tag)]

    def save_edit(self, title: str, text: str, *, now: Optional[datetime] = None) -> Note:
        """
        Replace a note's contents and stamp ``# Modified:``.

        The previous version is copied to ``<backup_dir>/<title>.bak``.
        """
        name = self.resolve(title)
        path = self.directory / name
        try:
            self.backup_dir.mkdir(parents=True, exist_ok=True)
            shutil.copy2(path, self.backup_dir / f"{name}.bak")
        except OSError as exc:
            raise IOFailure(f"Failed to back up note '{name}': {exc}") from exc
        lines = text.splitlines()
        stamp = (now or datetime.now()).strftime(STAMP_FORMAT)
        set_header(lines, MODIFIED_HEADER, stamp)
        replace_file(path, lines)
        return self.load(name)

    def delete(self, title: str, *, now: Optional[datetime] = None) -> Path:
        """
        Remove a note after backing it up and unlinking it from projects.

        Returns
        -------
        Path
            Location of the backup copy.
        """
        name = self.resolve(title)
        path = self.directory / name
        stamp = (now or datetime.now()).strftime("%Y%m%d_%H%M%S")
        backup = self.backup_dir / f"{name}.{stamp}.bak"
        try:
            self.backup_dir.mkdir(parents=True, exist_ok=True)
            shutil.copy2(path, backup)
        except OSError as exc:
            raise IOFailure(f"Failed to back up note '{name}': {exc}") from exc
        if self.projects is not None:
            self.projects.unlink_note(name)
        try:
            path.unlink()
        except OSError as exc:
            raise IOFailure(f"Failed to delete note '{name}': {exc}") from exc
        return backup


def _store(config: TallyConfig) -> NoteStore:
    projects = ProjectStore(config.project_dir, config.project_backup_dir)
    return NoteStore(config.notes_dir, config.note_backup_dir, projects)


def _open_editor(text: str) -> Optional[str]:
    import typer

    return typer.edit(text, extension=".txt")


def _announce_match(requested: str, name: str) -> None:
    if requested.strip() != name:
        print(f"Found matching note: {name}")


def _print_summary(note: Note) -> None:
    stamp = note.updated_at.strftime("%Y-%m-%d %H:%M") if note.updated_at else ""
    tags = f" [{format_tags(note.tags)}]" if note.tags else ""
    print(f"{note.title} - {stamp}{tags}")
    if note.preview:
        print(f"  {note.preview}")


def run_list(*, config: Optional[TallyConfig] = None) -> int:
    config = config or load_config()
    try:
        notes = _store(config).list_notes()
    except TallyError as exc:
        return report_error(exc)
    print("Quick notes:")
    if not notes:
        print("No notes found. Create one with 'note add <title> <text>'")
        return 0
    print(f"Found {len(notes)} notes:")
    print()
    for note in notes:
        _print_summary(note)
    return 0


def run_add(
    title: str,
    text: Optional[str] = None,
    *,
    tags: Optional[str] = None,
    project: Optional[str] = None,
    config: Optional[TallyConfig] = None,
    edit_func: Optional[Callable[[str], Optional[str]]] = None,
) -> int:
    """
    Save a new note, opening an editor when no text is given.
    """
    config = config or load_config()
    store = _store(config)
    try:
        if project and not store.projects.exists(project):
            raise NotFoundError(f"Project '{project}' not found")
        if text is None:
            text = (edit_func or _open_editor)("") or ""
        note = store.create(title, text, tags=tags)
        print(f"Note '{note.title}' saved successfully")
        if project:
            store.link_project(note.title, project)
            print(f"Linked note to project '{project.strip()}'")
    except TallyError as exc:
        return report_error(exc)
    return 0


def run_view(
    title: str,
    *,
    config: Optional[TallyConfig] = None,
    input_func: Callable[[str], str] = input,
) -> int:
    """
    Print a note and offer to open its related project.
    """
    config = config or load_config()
    store = _store(config)
    try:
        note = store.load(title)
    except TallyError as exc:
        return report_error(exc)
    _announce_match(title, note.title)
    print(f"Note: {note.title}")
    print()
    for line in note.lines:
        print(line)
    related = note.related_project
    if not related:
        return 0
    print()
    print(f"Related project: {related}")
    try:
        exists = store.projects.exists(related)
    except TallyError:
        exists = False
    if not exists:
        print("(Project no longer exists)")
        return 0
    if confirm("View related project? [y/N] ", input_func):
        return run_project_view(related, config=config)
    return 0


def run_edit(
    title: str,
    *,
    config: Optional[TallyConfig] = None,
    edit_func: Optional[Callable[[str], Optional[str]]] = None,
) -> int:
    """
    Edit a note in ``$EDITOR`` and stamp the modification time.
    """
    config = config or load_config()
    store = _store(config)
    try:
        note = store.load(title)
        _announce_match(title, note.title)
        original = "\n".join(note.lines) + "\n"
        edited = (edit_func or _open_editor)(original)
        if edited is None or edited == original:
            print(f"Note '{note.title}' unchanged")
            return 0
        store.save_edit(note.title, edited)
    except TallyError as exc:
        return report_error(exc)
    print(f"Note '{note.title}' updated")
    return 0


def run_delete(
    title: str,
    *,
    force: bool = False,
    config: Optional[TallyConfig] = None,
    input_func: Callable[[str], str] = input,
) -> int:
    config = config or load_config()
    store = _store(config)
    try:
        name = store.resolve(title)
        _announce_match(title, name)
        if not force and not confirm(
            f"Are you sure you want to delete note '{name}'? [y/N] ", input_func
        ):
            print("Note deletion cancelled")
            return 1
        backup = store.delete(name)
    except TallyError as exc:
        return report_error(exc)
    print(f"Note '{name}' deleted successfully")
    print(f"(A backup was saved to {backup})")
    return 0


def run_tag(title: str, tags: str, *, config: Optional[TallyConfig] = None) -> int:
    config = config or load_config()
    try:
        note, replaced = _store(config).tag(title, tags)
    except TallyError as exc:
        return report_error(exc)
    _announce_match(title, note.title)
    if replaced:
        print(f"Tags updated for note '{note.title}'")
    else:
        print(f"Tags added to note '{note.title}'")
    return 0


def run_bytag(tag: str, *, config: Optional[TallyConfig] = None) -> int:
    config = config or load_config()
    try:
        notes = _store(config).by_tag(tag)
    except TallyError as exc:
        return report_error(exc)
    print(f"Notes with tag '{tag.strip()}':")
    print()
    if not notes:
        print(f"No notes found with tag '{tag.strip()}'")
        return 0
    for note in notes:
        _print_summary(note)
    return 0
