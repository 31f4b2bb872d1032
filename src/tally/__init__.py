#!/usr/bin/env python3
"""
Task timer with plain-text projects and notes.
"""

import sys
from typing import Callable, List, Optional

TALLY_HELP_LINES = [
    "tally timer start <category:task>  Start timing a task",
    "tally timer stop                   Stop the current timer",
    "tally timer status                 Show the running timer",
    "tally timer report [days]          Summarize the last n days (default: 7)",
    "tally project view <name>          Show a project's tasks",
    "tally project done <name> <n>      Mark task n completed",
    "tally note add <title> [text]      Save a note",
    "tally note bytag <tag>             List notes with a tag",
]


def report_error(exc: Exception) -> int:
    """
    Print an error the way every tally command reports failures.

    Parameters
    ----------
    exc : Exception
        Error to report.

    Returns
    -------
    int
        Exit code 1.
    """
    print(f"tally: {exc}", file=sys.stderr)
    return 1


def confirm(
    prompt: str,
    input_func: Callable[[str], str] = input,
    default: bool = False,
) -> bool:
    """
    Ask a yes/no question.

    Parameters
    ----------
    prompt : str
        Prompt text.
    input_func : Callable[[str], str], optional
        Input function (default: input).
    default : bool, optional
        Answer used for empty input or end of input.

    Returns
    -------
    bool
        True when the user agreed.

    Examples
    --------
    >>> confirm("Continue? ", input_func=lambda _prompt: "y")
    True
    >>> confirm("Continue? ", input_func=lambda _prompt: "")
    False
    >>> confirm("Stop it? ", input_func=lambda _prompt: "", default=True)
    True
    """
    try:
        answer = input_func(prompt).strip().lower()
    except EOFError:
        return default
    if not answer:
        return default
    return answer in {"y", "yes"}


def build_app():
    """
    Build the Typer app lazily to keep fast-path imports light.

    Returns
    -------
    typer.Typer
        Configured Typer application for the tally CLI.
    """
    import typer

    app = typer.Typer(help="Task timer with plain-text projects and notes.")

    @app.command("help")
    def help_cmd():
        """
        Print a brief reminder of the most used commands.
        """
        for line in TALLY_HELP_LINES:
            print(line)

    timer_app = typer.Typer(help="Time tasks and report on tracked time.")

    @timer_app.command("start")
    def timer_start_cmd(
        task: List[str] = typer.Argument(
            ...,
            help="Task to time, optionally as 'category: task name'.",
        ),
        force: bool = typer.Option(
            False,
            "--force",
            "-f",
            help="Stop a running timer without asking.",
        ),
    ):
        from . import timer as timer_module

        raise typer.Exit(code=timer_module.run_start(" ".join(task), force=force))

    @timer_app.command("stop")
    def timer_stop_cmd():
        from . import timer as timer_module

        raise typer.Exit(code=timer_module.run_stop())

    @timer_app.command("status")
    def timer_status_cmd():
        from . import timer as timer_module

        raise typer.Exit(code=timer_module.run_status())

    @timer_app.command("history")
    def timer_history_cmd(
        count: Optional[int] = typer.Argument(
            None,
            help="Number of recent tasks to show (default: 10).",
        ),
    ):
        from . import timer as timer_module

        raise typer.Exit(code=timer_module.run_history(count))

    @timer_app.command("report")
    def timer_report_cmd(
        days: Optional[int] = typer.Argument(
            None,
            help="Trailing window in days (default: 7).",
        ),
    ):
        from . import report as report_module

        raise typer.Exit(code=report_module.run_report(days))

    @timer_app.command("list")
    def timer_list_cmd(
        category: Optional[str] = typer.Argument(
            None,
            help="Only list tasks in this category.",
        ),
    ):
        from . import timer as timer_module

        raise typer.Exit(code=timer_module.run_list(category))

    @timer_app.command("categories")
    def timer_categories_cmd():
        from . import timer as timer_module

        raise typer.Exit(code=timer_module.run_categories())

    @timer_app.command("clean")
    def timer_clean_cmd(
        days: Optional[int] = typer.Option(
            None,
            "--days",
            help="Keep records from the last n days (default: 30).",
        ),
    ):
        from . import timer as timer_module

        raise typer.Exit(code=timer_module.run_clean(days))

    app.add_typer(timer_app, name="timer")

    project_app = typer.Typer(help="Manage projects and their tasks.")

    @project_app.command("list")
    def project_list_cmd():
        from . import projects as projects_module

        raise typer.Exit(code=projects_module.run_list())

    @project_app.command("create")
    def project_create_cmd(
        name: str = typer.Argument(..., help="Project name."),
        due: Optional[str] = typer.Option(
            None,
            "--due",
            help="Due date: YYYY-MM-DD, today, tomorrow, or +Ndays.",
        ),
    ):
        from . import projects as projects_module

        raise typer.Exit(code=projects_module.run_create(name, due=due))

    @project_app.command("view")
    def project_view_cmd(name: str = typer.Argument(..., help="Project name.")):
        from . import projects as projects_module

        raise typer.Exit(code=projects_module.run_view(name))

    @project_app.command("add")
    def project_add_cmd(
        name: str = typer.Argument(..., help="Project name."),
        description: str = typer.Argument(..., help="Task description."),
        priority: Optional[str] = typer.Argument(
            None,
            help="Priority: high/medium/low (default: none).",
        ),
        start: bool = typer.Option(
            False,
            "--start",
            help="Start a timer for the new task.",
        ),
    ):
        from . import projects as projects_module

        raise typer.Exit(
            code=projects_module.run_add(name, description, priority, start=start)
        )

    @project_app.command("done")
    def project_done_cmd(
        name: str = typer.Argument(..., help="Project name."),
        number: int = typer.Argument(..., help="Task number as shown by view."),
        by_id: bool = typer.Option(
            False,
            "--id",
            help="Treat the number as the task's stable id.",
        ),
    ):
        from . import projects as projects_module

        raise typer.Exit(code=projects_module.run_done(name, number, by_id=by_id))

    @project_app.command("delete")
    def project_delete_cmd(
        name: str = typer.Argument(..., help="Project name."),
        force: bool = typer.Option(
            False,
            "--force",
            "-f",
            help="Delete without asking.",
        ),
    ):
        from . import projects as projects_module

        raise typer.Exit(code=projects_module.run_delete(name, force=force))

    @project_app.command("rename")
    def project_rename_cmd(
        old: str = typer.Argument(..., help="Current project name."),
        new: str = typer.Argument(..., help="New project name."),
    ):
        from . import projects as projects_module

        raise typer.Exit(code=projects_module.run_rename(old, new))

    app.add_typer(project_app, name="project")

    note_app = typer.Typer(help="Keep tagged notes linked to projects.")

    @note_app.command("list")
    def note_list_cmd():
        from . import notes as notes_module

        raise typer.Exit(code=notes_module.run_list())

    @note_app.command("add")
    def note_add_cmd(
        title: str = typer.Argument(..., help="Note title."),
        text: Optional[str] = typer.Argument(
            None,
            help="Note text (default: open $EDITOR).",
        ),
        tags: Optional[str] = typer.Option(
            None,
            "--tags",
            help="Comma-separated tags.",
        ),
        project: Optional[str] = typer.Option(
            None,
            "--project",
            help="Link the note to this project.",
        ),
    ):
        from . import notes as notes_module

        raise typer.Exit(
            code=notes_module.run_add(title, text, tags=tags, project=project)
        )

    @note_app.command("view")
    def note_view_cmd(title: str = typer.Argument(..., help="Note title or prefix.")):
        from . import notes as notes_module

        raise typer.Exit(code=notes_module.run_view(title))

    @note_app.command("edit")
    def note_edit_cmd(title: str = typer.Argument(..., help="Note title or prefix.")):
        from . import notes as notes_module

        raise typer.Exit(code=notes_module.run_edit(title))

    @note_app.command("delete")
    def note_delete_cmd(
        title: str = typer.Argument(..., help="Note title or prefix."),
        force: bool = typer.Option(
            False,
            "--force",
            "-f",
            help="Delete without asking.",
        ),
    ):
        from . import notes as notes_module

        raise typer.Exit(code=notes_module.run_delete(title, force=force))

    @note_app.command("tag")
    def note_tag_cmd(
        title: str = typer.Argument(..., help="Note title or prefix."),
        tags: str = typer.Argument(..., help="Comma-separated tags."),
    ):
        from . import notes as notes_module

        raise typer.Exit(code=notes_module.run_tag(title, tags))

    @note_app.command("bytag")
    def note_bytag_cmd(tag: str = typer.Argument(..., help="Tag to look for.")):
        from . import notes as notes_module

        raise typer.Exit(code=notes_module.run_bytag(tag))

    app.add_typer(note_app, name="note")
    return app


def main():
    """
    Entry point for the tally command.
    """
    app = build_app()
    app()


if __name__ == "__main__":
    main()
