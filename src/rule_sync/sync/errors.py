"""Error taxonomy for the rule sync engine.

Cycle-level errors abort a reconciliation cycle and leave the persisted
state untouched:

- ``RemoteUnavailable`` -- network or content API failure.
- ``CycleInProgress`` -- another cycle holds the sync lock.
- ``InteractiveRequired`` -- the ``prompt`` policy needs an operator but
  none is attached.

``StateCorrupt`` is raised only by strict state loads; the normal load
path logs it and falls back to an empty state.

``PerFileIOError`` is raised per file inside the applier and collected
into the cycle report; it never aborts a cycle.
"""

from __future__ import annotations


class SyncError(Exception):
    """Base class for all sync engine errors."""

    #: Short machine-readable category used in reports and logs.
    kind = "sync_error"


class RemoteUnavailable(SyncError):
    """The remote repository could not be reached or returned garbage."""

    kind = "remote_unavailable"


class CycleInProgress(SyncError):
    """A reconciliation cycle is already running for this project."""

    kind = "cycle_in_progress"


class InteractiveRequired(SyncError):
    """The conflict policy needs a human but the session is headless."""

    kind = "interactive_required"


class StateCorrupt(SyncError):
    """The persisted sync state file could not be parsed."""

    kind = "state_corrupt"


class PerFileIOError(SyncError):
    """Writing, deleting or backing up a single file failed.

    Args:
        path: Relative path of the file that failed.
        message: Human-readable failure description.
    """

    kind = "per_file_io_error"

    def __init__(self, path: str, message: str) -> None:
        super().__init__(f"{path}: {message}")
        self.path = path
        self.message = message
