"""
Shared pytest fixtures for tally tests.
"""

from __future__ import annotations

import pytest

from tally.config import TallyConfig, load_config


@pytest.fixture(autouse=True)
def isolate_tally_paths(tmp_path, monkeypatch) -> None:
    """
    Ensure tests never touch the real timer, history, projects, or notes.

    Parameters
    ----------
    tmp_path : pathlib.Path
        Temporary path provided by pytest.
    monkeypatch : pytest.MonkeyPatch
        Monkeypatch fixture for environment updates.
    """
    monkeypatch.setenv("TALLY_CONFIG_PATH", str(tmp_path / "config.toml"))
    monkeypatch.setenv("TALLY_TIMER_FILE", str(tmp_path / "timer"))
    monkeypatch.setenv("TALLY_TIMER_HISTORY", str(tmp_path / "timer_history"))
    monkeypatch.setenv("TALLY_PROJECT_DIR", str(tmp_path / "projects"))
    monkeypatch.setenv("TALLY_NOTES_DIR", str(tmp_path / "notes"))
    monkeypatch.setenv("TALLY_BACKUP_DIR", str(tmp_path / "backups"))


@pytest.fixture
def config() -> TallyConfig:
    """
    Configuration resolved against the isolated paths.

    Returns
    -------
    TallyConfig
        Settings pointing into ``tmp_path``.
    """
    return load_config()
