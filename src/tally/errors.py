"""
Error kinds raised by tally operations.
"""

from __future__ import annotations


class TallyError(Exception):
    """
    Base class for errors reported to the user as ``tally: <message>``.
    """


class ValidationError(TallyError, ValueError):
    """
    Missing or malformed user input.
    """


class NotFoundError(TallyError, LookupError):
    """
    Requested task, project, or record does not exist.
    """


class AlreadyExistsError(TallyError):
    """
    Target name is already taken.
    """


class TimerAlreadyRunning(AlreadyExistsError):
    """
    A timer is active and the caller did not ask to replace it.
    """

    def __init__(self, active) -> None:
        super().__init__(f"Timer already running for task: {active.label}")
        self.active = active


class NotRunningError(TallyError):
    """
    Stop or status was requested while no timer is active.
    """

    def __init__(self, message: str = "No timer is running") -> None:
        super().__init__(message)


class IOFailure(TallyError, OSError):
    """
    A file or directory could not be created, read, or replaced.
    """
