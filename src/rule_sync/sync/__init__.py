"""One-way rule synchronisation engine.

Public API for keeping a local rules directory in step with a remote
repository while detecting and resolving local edits.

Architecture
------------
The engine uses **three-way reconciliation**: for every tracked path the
hash recorded at the last successful sync (the base) is compared with
the current local and remote hashes.  Only the remote drives tracking;
local-only files are never added to the state.

Modules:

- ``engine``     -- ``SyncEngine``: runs one reconciliation cycle.
- ``state``      -- ``StateStore``: load/save the JSON state file.
- ``remote``     -- ``SnapshotFetcher`` protocol and ``GitHubFetcher``.
- ``local``      -- ``LocalTree``: hashes of the local rules directory.
- ``classifier`` -- three-way change classification.
- ``resolver``   -- conflict policies and the ``ConflictPrompt`` boundary.
- ``applier``    -- best-effort per-file application.
- ``scheduler``  -- lock-guarded cycles and the auto-sync daemon.
- ``lock``       -- ``FileLock`` and ``InMemoryLock``.
- ``service``    -- systemd / launchd service file generation.
- ``reporter``   -- human-readable and JSON report formatting.

Usage example
-------------
::

    from pathlib import Path
    from rule_sync.sync import (
        FileLock, StateStore, SyncEngine, SyncScheduler, format_cycle_report,
    )

    engine = SyncEngine(
        store=StateStore(Path("vdk.config.json")),
        fetcher=fetcher,             # any SnapshotFetcher
        rules_root=Path("templates").resolve(),
    )
    scheduler = SyncScheduler(engine, FileLock(Path(".vdk/sync.lock")))
    report = scheduler.run_once(force=False)
    print(format_cycle_report(report))
"""

from .applier import ReconciliationApplier
from .classifier import classify, classify_triple
from .engine import SyncEngine
from .errors import (
    CycleInProgress,
    InteractiveRequired,
    PerFileIOError,
    RemoteUnavailable,
    StateCorrupt,
    SyncError,
)
from .lock import FileLock, InMemoryLock
from .models import (
    ConflictPolicy,
    CycleOutcome,
    CycleReport,
    FileClass,
    StatusReport,
    SyncState,
)
from .reporter import format_cycle_report, format_status, report_to_json
from .resolver import PendingDecision, PromptAnswer, resolve
from .scheduler import SyncScheduler, should_run_auto_sync
from .state import StateStore

__all__ = [
    "ConflictPolicy",
    "CycleInProgress",
    "CycleOutcome",
    "CycleReport",
    "FileClass",
    "FileLock",
    "InMemoryLock",
    "InteractiveRequired",
    "PendingDecision",
    "PerFileIOError",
    "PromptAnswer",
    "ReconciliationApplier",
    "RemoteUnavailable",
    "StateCorrupt",
    "StateStore",
    "StatusReport",
    "SyncEngine",
    "SyncError",
    "SyncScheduler",
    "SyncState",
    "classify",
    "classify_triple",
    "format_cycle_report",
    "format_status",
    "report_to_json",
    "resolve",
    "should_run_auto_sync",
]
