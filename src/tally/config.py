#!/usr/bin/env python3
"""
Resolve file locations and defaults for tally commands.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import tomllib

CONFIG_PATH_ENV = "TALLY_CONFIG_PATH"
PATH_ENV_VARS = {
    "timer_path": "TALLY_TIMER_FILE",
    "history_path": "TALLY_TIMER_HISTORY",
    "project_dir": "TALLY_PROJECT_DIR",
    "notes_dir": "TALLY_NOTES_DIR",
    "backup_dir": "TALLY_BACKUP_DIR",
}
INT_SETTINGS = ("report_days", "history_count", "clean_days")


@dataclass(frozen=True)
class TallyConfig:
    """
    Settings passed explicitly into every tally operation.

    Attributes
    ----------
    timer_path : Path
        File holding the single active timer.
    history_path : Path
        Pipe-delimited history of completed timers.
    project_dir : Path
        Directory of project documents.
    notes_dir : Path
        Directory of note documents.
    backup_dir : Path
        Root for backup copies taken before destructive edits.
    report_days : int
        Default trailing window for ``timer report``.
    history_count : int
        Default number of rows for ``timer history``.
    clean_days : int
        Records older than this many days are pruned by ``timer clean``.
    """

    timer_path: Path
    history_path: Path
    project_dir: Path
    notes_dir: Path
    backup_dir: Path
    report_days: int = 7
    history_count: int = 10
    clean_days: int = 30

    @property
    def project_backup_dir(self) -> Path:
        return self.backup_dir / "projects"

    @property
    def note_backup_dir(self) -> Path:
        return self.backup_dir / "notes"


def expand_path(value: str) -> Path:
    """
    Expand ``~`` and environment variables in a configured path.

    Parameters
    ----------
    value : str
        Raw path text.

    Returns
    -------
    Path
        Expanded path.

    Examples
    --------
    >>> expand_path("/tmp/tally") == Path("/tmp/tally")
    True
    """
    return Path(os.path.expandvars(os.path.expanduser(value.strip())))


def default_config(home: Optional[Path] = None) -> TallyConfig:
    """
    Return the built-in configuration rooted at the home directory.

    Parameters
    ----------
    home : Optional[Path], optional
        Home directory override (default: ``Path.home()``).

    Returns
    -------
    TallyConfig
        Default settings.

    Examples
    --------
    >>> default_config(Path("/home/u")).history_path
    PosixPath('/home/u/.timer_history')
    """
    home = home or Path.home()
    return TallyConfig(
        timer_path=home / ".timer",
        history_path=home / ".timer_history",
        project_dir=home / ".projects",
        notes_dir=home / ".notes",
        backup_dir=home / ".backups" / "productivity",
    )


def get_config_path() -> Path:
    """
    Return the TOML configuration file path.

    Returns
    -------
    Path
        Config file location.
    """
    override = os.environ.get(CONFIG_PATH_ENV, "").strip()
    if override:
        return expand_path(override)
    return Path.home() / ".config" / "tally" / "config.toml"


def _read_config_file(path: Path) -> Dict[str, Any]:
    if not path.exists():
        return {}
    try:
        parsed = tomllib.loads(path.read_text(encoding="utf-8"))
    except (OSError, tomllib.TOMLDecodeError):
        return {}
    section = parsed.get("tally", parsed)
    return section if isinstance(section, dict) else {}


def _apply_settings(config: TallyConfig, settings: Mapping[str, Any]) -> TallyConfig:
    updates: Dict[str, Any] = {}
    for key in PATH_ENV_VARS:
        value = settings.get(key)
        if isinstance(value, str) and value.strip():
            updates[key] = expand_path(value)
    for key in INT_SETTINGS:
        value = settings.get(key)
        if isinstance(value, bool):
            continue
        if isinstance(value, int) and value >= 0:
            updates[key] = value
    return replace(config, **updates) if updates else config


def load_config(
    path: Optional[Path] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> TallyConfig:
    """
    Load settings from defaults, the TOML file, and environment overrides.

    Parameters
    ----------
    path : Optional[Path], optional
        Config file to read (default: ``get_config_path()``).
    environ : Optional[Mapping[str, str]], optional
        Environment mapping (default: ``os.environ``).

    Returns
    -------
    TallyConfig
        Resolved settings.
    """
    environ = os.environ if environ is None else environ
    config = default_config()
    config = _apply_settings(config, _read_config_file(path or get_config_path()))
    env_paths = {
        key: environ[var]
        for key, var in PATH_ENV_VARS.items()
        if environ.get(var, "").strip()
    }
    return _apply_settings(config, env_paths)
