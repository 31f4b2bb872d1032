"""
Tests for note documents and the note commands.
"""

from __future__ import annotations

from datetime import datetime

import pytest

import tally.notes as notes
from tally.errors import AlreadyExistsError, NotFoundError, ValidationError
from tally.projects import ProjectStore

NOW = datetime(2024, 1, 7, 12, 0, 0)


@pytest.fixture
def projects(tmp_path):
    """
    Provide a project store holding one project.

    Returns
    -------
    ProjectStore
        Store with a ``website`` project.
    """
    store = ProjectStore(tmp_path / "projects", tmp_path / "backups" / "projects")
    store.create("website", now=NOW)
    return store


@pytest.fixture
def store(tmp_path, projects):
    """
    Provide a note store linked to the project store.

    Returns
    -------
    NoteStore
        Empty note store.
    """
    return notes.NoteStore(tmp_path / "notes", tmp_path / "backups" / "notes", projects)


@pytest.mark.unit
def test_create_writes_headers_and_body(store):
    """
    Ensure a new note carries title, creation time, tags, and text.

    Returns
    -------
    None
        This test asserts the note document layout.
    """
    note = store.create("idea", "first line\nsecond", tags="python, ,work", now=NOW)

    assert store.path_for("idea").read_text(encoding="utf-8").splitlines() == [
        "# idea",
        "# Created: 2024-01-07 12:00:00",
        "# Tags: python, work",
        "",
        "first line",
        "second",
    ]
    assert note.tags == ("python", "work")
    assert note.body == ["first line", "second"]
    assert note.preview == "first line"


@pytest.mark.unit
def test_create_rejects_duplicates_and_empty_text(store):
    """
    Ensure duplicate titles and empty notes are rejected.

    Returns
    -------
    None
        This test asserts creation validation.
    """
    store.create("idea", "text", now=NOW)

    with pytest.raises(AlreadyExistsError):
        store.create("idea", "other", now=NOW)
    with pytest.raises(ValidationError):
        store.create("blank", "  \n", now=NOW)


@pytest.mark.parametrize("title", ["", ".hidden", "a/b"])
@pytest.mark.unit
def test_invalid_note_titles(store, title):
    """
    Ensure titles that are not plain file names are rejected.

    Parameters
    ----------
    title : str
        Candidate note title.

    Returns
    -------
    None
        This test asserts title validation.
    """
    with pytest.raises(ValidationError):
        store.create(title, "text", now=NOW)


@pytest.mark.unit
def test_titles_resolve_by_prefix(store):
    """
    Ensure notes can be addressed by a unique title prefix.

    Returns
    -------
    None
        This test asserts prefix lookup.
    """
    store.create("meeting notes", "agenda", now=NOW)

    assert store.load("meeting notes").title == "meeting notes"
    assert store.load("meet").title == "meeting notes"
    with pytest.raises(NotFoundError):
        store.load("standup")


@pytest.mark.unit
def test_tag_inserts_then_replaces(store):
    """
    Ensure tagging adds a tags line after the creation line, then updates it.

    Returns
    -------
    None
        This test asserts tag editing.
    """
    store.create("idea", "text", now=NOW)

    note, replaced = store.tag("idea", "python")
    assert replaced is False
    assert list(note.lines[:3]) == ["# idea", "# Created: 2024-01-07 12:00:00", "# Tags: python"]

    note, replaced = store.tag("idea", "rust, ideas")
    assert replaced is True
    assert note.tags == ("rust", "ideas")
    assert sum(1 for line in note.lines if line.startswith("# Tags:")) == 1

    with pytest.raises(ValidationError):
        store.tag("idea", " , ")


@pytest.mark.unit
def test_by_tag_matches_whole_tags(store):
    """
    Ensure tag lookup ignores case but not partial words.

    Returns
    -------
    None
        This test asserts tag filtering.
    """
    store.create("a", "text", tags="Python", now=NOW)
    store.create("b", "text", tags="python-tips", now=NOW)
    store.create("c", "text", now=NOW)

    assert [note.title for note in store.by_tag("python")] == ["a"]
    assert store.by_tag("go") == []
    with pytest.raises(ValidationError):
        store.by_tag(" ")


@pytest.mark.unit
def test_link_project_cross_references(store, projects):
    """
    Ensure linking writes a reference into both documents once.

    Returns
    -------
    None
        This test asserts note/project links.
    """
    store.create("idea", "text", now=NOW)

    note = store.link_project("idea", "website")
    store.link_project("idea", "website")

    assert note.related_project == "website"
    assert note.body == ["text"]
    assert projects.load("website").notes == ["idea"]
    lines = store.path_for("idea").read_text(encoding="utf-8").splitlines()
    assert lines.count("# Related Project: website") == 1
    with pytest.raises(NotFoundError):
        store.link_project("idea", "missing")


@pytest.mark.unit
def test_delete_backs_up_and_unlinks(store, projects):
    """
    Ensure delete keeps a backup and removes project references.

    Returns
    -------
    None
        This test asserts note deletion.
    """
    store.create("idea", "text", now=NOW)
    store.link_project("idea", "website")
    content = store.path_for("idea").read_text(encoding="utf-8")

    backup = store.delete("id", now=NOW)

    assert backup.name == "idea.20240107_120000.bak"
    assert backup.read_text(encoding="utf-8") == content
    assert store.names() == []
    assert projects.load("website").notes == []
    with pytest.raises(NotFoundError):
        store.delete("idea")


@pytest.mark.unit
def test_save_edit_stamps_modified(store):
    """
    Ensure edits keep a backup and record the modification time.

    Returns
    -------
    None
        This test asserts edit bookkeeping.
    """
    store.create("idea", "text", now=NOW)
    before = store.path_for("idea").read_text(encoding="utf-8")

    note = store.save_edit(
        "idea",
        "# idea\n# Created: 2024-01-07 12:00:00\n\nnew text\n",
        now=datetime(2024, 1, 8, 9, 30, 0),
    )

    assert note.modified == "2024-01-08 09:30:00"
    assert list(note.lines[:3]) == [
        "# idea",
        "# Created: 2024-01-07 12:00:00",
        "# Modified: 2024-01-08 09:30:00",
    ]
    assert note.body == ["new text"]
    assert (store.backup_dir / "idea.bak").read_text(encoding="utf-8") == before


@pytest.mark.unit
def test_run_add_list_and_bytag(config, capsys):
    """
    Ensure the note commands save, list, and filter notes.

    Returns
    -------
    None
        This test asserts command output.
    """
    ProjectStore(config.project_dir).create("website")

    assert notes.run_add("idea", "ship the blog", tags="work", project="website", config=config) == 0
    assert notes.run_add("other", "x" * 60, config=config) == 0
    assert notes.run_list(config=config) == 0
    assert notes.run_bytag("WORK", config=config) == 0
    assert notes.run_bytag("none", config=config) == 0

    output = capsys.readouterr().out
    assert "Note 'idea' saved successfully" in output
    assert "Linked note to project 'website'" in output
    assert "Found 2 notes:" in output
    assert "[work]" in output
    assert "  " + "x" * 50 + "..." in output
    assert "Notes with tag 'WORK':" in output
    assert "No notes found with tag 'none'" in output


@pytest.mark.unit
def test_run_add_missing_project_writes_nothing(config, capsys):
    """
    Ensure linking to a missing project fails before the note is saved.

    Returns
    -------
    None
        This test asserts link validation.
    """
    assert notes.run_add("idea", "text", project="missing", config=config) == 1
    assert "Project 'missing' not found" in capsys.readouterr().err
    assert not (config.notes_dir / "idea").exists()


@pytest.mark.unit
def test_run_add_uses_editor_without_text(config):
    """
    Ensure a note without text is composed in the editor.

    Returns
    -------
    None
        This test asserts editor input.
    """
    assert notes.run_add("idea", config=config, edit_func=lambda _text: "from editor\n") == 0

    assert notes.NoteStore(config.notes_dir).load("idea").body == ["from editor"]


@pytest.mark.unit
def test_run_view_reports_missing_related_project(config, capsys):
    """
    Ensure a dangling project link is reported without prompting.

    Returns
    -------
    None
        This test asserts related project handling.
    """
    path = config.notes_dir / "idea"
    path.parent.mkdir(parents=True)
    path.write_text("# idea\n\ntext\n\n# Related Project: gone\n", encoding="utf-8")

    def refuse(_prompt):
        raise AssertionError("unexpected prompt")

    assert notes.run_view("ide", config=config, input_func=refuse) == 0

    output = capsys.readouterr().out
    assert "Found matching note: idea" in output
    assert "Related project: gone" in output
    assert "(Project no longer exists)" in output


@pytest.mark.unit
def test_run_view_opens_related_project(config, capsys):
    """
    Ensure accepting the prompt shows the linked project.

    Returns
    -------
    None
        This test asserts the related project prompt.
    """
    ProjectStore(config.project_dir).create("website")
    notes.run_add("idea", "text", project="website", config=config)

    assert notes.run_view("idea", config=config, input_func=lambda _prompt: "y") == 0

    output = capsys.readouterr().out
    assert "Project: website" in output
    assert "  - idea" in output


@pytest.mark.unit
def test_run_edit_unchanged_and_changed(config, capsys):
    """
    Ensure closing the editor without changes leaves the note alone.

    Returns
    -------
    None
        This test asserts edit handling.
    """
    notes.run_add("idea", "text", config=config)
    path = config.notes_dir / "idea"
    before = path.read_text(encoding="utf-8")

    assert notes.run_edit("idea", config=config, edit_func=lambda _text: None) == 0
    assert path.read_text(encoding="utf-8") == before

    assert notes.run_edit("idea", config=config, edit_func=lambda text: text + "more\n") == 0
    assert notes.NoteStore(config.notes_dir).load("idea").body == ["text", "more"]

    output = capsys.readouterr().out
    assert "Note 'idea' unchanged" in output
    assert "Note 'idea' updated" in output


@pytest.mark.unit
def test_run_delete_confirmation(config, capsys):
    """
    Ensure delete asks first and keeps the note when declined.

    Returns
    -------
    None
        This test asserts delete confirmation.
    """
    notes.run_add("idea", "text", config=config)

    assert notes.run_delete("idea", config=config, input_func=lambda _prompt: "n") == 1
    assert (config.notes_dir / "idea").exists()
    assert notes.run_delete("idea", config=config, input_func=lambda _prompt: "y") == 0
    assert not (config.notes_dir / "idea").exists()

    output = capsys.readouterr().out
    assert "Note deletion cancelled" in output
    assert "Note 'idea' deleted successfully" in output
    assert list(config.note_backup_dir.glob("idea.*.bak"))


@pytest.mark.unit
def test_notes_doctest_examples():
    """
    Run doctest examples embedded in note helpers.

    Returns
    -------
    None
        This test asserts doctest coverage for note helpers.
    """
    import doctest

    results = doctest.testmod(notes)
    assert results.failed == 0
