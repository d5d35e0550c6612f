"""Pydantic models for the rule sync engine.

Defines the data contracts shared across all sync modules:

- ``ConflictPolicy``: How conflicted files are resolved.
- ``FileRecord``: Base-state fingerprint of one tracked file.
- ``SyncState``: The persisted per-project sync state.
- ``RemoteFile``: One file listed in a remote snapshot.
- ``FileClass`` / ``Classification``: Three-way comparison result.
- ``DecisionAction`` / ``ConflictDecision``: Resolver output.
- ``FileFailure`` / ``ApplyReport``: Applier output.
- ``CycleOutcome`` / ``CycleReport``: Aggregate result of one cycle.
- ``StatusReport``: Read-only "does this project need a sync" answer.

``SyncState`` is mutable so one cycle can update it in memory and persist
it once at the end; everything else is frozen.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

DEFAULT_SYNC_INTERVAL_MS = 24 * 60 * 60 * 1000
DEFAULT_EXCLUDE_PATTERNS = [".DS_Store", "*.tmp", "*.log"]
DEFAULT_INCLUDE_PATTERNS = ["**/*.mdc", "**/*.md"]


class ConflictPolicy(str, Enum):
    """Conflict resolution policy, persisted as ``conflictResolution``."""

    PROMPT = "prompt"
    REMOTE = "remote"
    LOCAL = "local"
    BACKUP = "backup"

    @classmethod
    def parse(cls, value: str) -> ConflictPolicy:
        """Accept both the persisted names and ``remote-wins`` style names.

        Raises:
            ValueError: If *value* names no known policy.
        """
        normalised = value.strip().lower().removesuffix("-wins")
        try:
            return cls(normalised)
        except ValueError:
            valid = sorted(p.value for p in cls)
            raise ValueError(
                f"Unknown conflict policy: '{value}'. Valid policies: {valid}"
            ) from None


class FileRecord(BaseModel):
    """Fingerprint of a file at its last successful sync.

    Attributes:
        content_hash: Git blob id of the file bytes (``hash`` on disk).
        size_bytes: Size of the synced content (``size`` on disk).
        synced_at: ISO 8601 timestamp of the sync (``lastSync`` on disk).
        local_hash: Hash of the local edit the last cycle left in place
            (``localHash`` on disk), or ``"deleted"`` for a tracked file
            removed locally.  ``None`` when no local edit was noted.
    """

    content_hash: str = Field(alias="hash")
    size_bytes: int = Field(default=0, alias="size")
    synced_at: str | None = Field(default=None, alias="lastSync")
    local_hash: str | None = Field(default=None, alias="localHash")

    model_config = ConfigDict(frozen=True, populate_by_name=True)


class SyncState(BaseModel):
    """Persisted sync state for one project.

    Serialised with ``by_alias=True`` this is exactly the on-disk JSON
    schema (``lastSync``, ``remoteCommitSha``, ``syncedFiles``, ...).
    """

    last_sync: str | None = Field(default=None, alias="lastSync")
    remote_revision: str | None = Field(
        default=None, alias="remoteCommitSha"
    )
    tracked_files: dict[str, FileRecord] = Field(
        default_factory=dict, alias="syncedFiles"
    )
    policy: ConflictPolicy = Field(
        default=ConflictPolicy.PROMPT, alias="conflictResolution"
    )
    auto_sync: bool = Field(default=False, alias="autoSync")
    sync_interval_ms: int = Field(
        default=DEFAULT_SYNC_INTERVAL_MS, ge=1, alias="syncInterval"
    )
    exclude_globs: list[str] = Field(
        default_factory=lambda: list(DEFAULT_EXCLUDE_PATTERNS),
        alias="excludePatterns",
    )
    include_globs: list[str] = Field(
        default_factory=lambda: list(DEFAULT_INCLUDE_PATTERNS),
        alias="includePatterns",
    )
    initialized: bool = False
    init_date: str | None = Field(default=None, alias="initDate")

    model_config = ConfigDict(populate_by_name=True)


class RemoteFile(BaseModel):
    """A file listed in the remote tree at some revision.

    Attributes:
        path: Local-relative POSIX path.
        remote_path: Full path inside the remote repository.
        content_hash: Git blob id reported by the remote.
        size: Size in bytes reported by the remote.
    """

    path: str
    remote_path: str
    content_hash: str
    size: int = 0

    model_config = {"frozen": True}


class FileClass(str, Enum):
    """Outcome of the three-way (base, local, remote) comparison."""

    UNCHANGED = "unchanged"
    REMOTE_ONLY_CHANGED = "remote_only_changed"
    LOCAL_ONLY_CHANGED = "local_only_changed"
    CONVERGED = "converged"
    CONFLICTED = "conflicted"


class Classification(BaseModel):
    """Classification of a single path.

    Hash fields are ``None`` when the file is absent on that side.
    """

    path: str
    file_class: FileClass
    base_hash: str | None = None
    local_hash: str | None = None
    remote_hash: str | None = None

    model_config = {"frozen": True}


class DecisionAction(str, Enum):
    """What the applier should do with one path."""

    OVERWRITE = "overwrite"
    KEEP = "keep"
    BACKUP_THEN_OVERWRITE = "backup_then_overwrite"
    SKIP = "skip"


class ConflictDecision(BaseModel):
    """Resolution decision for one path.

    Attributes:
        path: Local-relative POSIX path.
        file_class: The classification that produced this decision.
        action: Applier action.
        content: Bytes to write for overwrite actions; ``None`` together
            with an overwrite action means "delete the local file".
        remote_hash: Remote hash to record; ``None`` means untrack.
        commit: Whether the ``FileRecord`` is updated once the action
            succeeds.
    """

    path: str
    file_class: FileClass
    action: DecisionAction
    content: bytes | None = None
    remote_hash: str | None = None
    commit: bool = False

    model_config = {"frozen": True}

    @property
    def writes(self) -> bool:
        """True for overwrite actions that leave a file on disk."""
        return (
            self.action
            in (DecisionAction.OVERWRITE, DecisionAction.BACKUP_THEN_OVERWRITE)
            and self.content is not None
        )

    @property
    def deletes(self) -> bool:
        """True for overwrite actions whose remote side is a deletion."""
        return (
            self.action
            in (DecisionAction.OVERWRITE, DecisionAction.BACKUP_THEN_OVERWRITE)
            and self.content is None
        )


class FileFailure(BaseModel):
    """A per-file error collected during application."""

    path: str
    error: str

    model_config = {"frozen": True}


class ApplyReport(BaseModel):
    """Result of applying a list of decisions.

    Attributes:
        succeeded: Paths whose decision was fully applied.
        failed: Paths whose decision failed, with the error message.
        backups: Map of path to the backup file written for it.
    """

    succeeded: list[str] = []
    failed: list[FileFailure] = []
    backups: dict[str, str] = {}

    model_config = {"frozen": True}


class CycleOutcome(str, Enum):
    """Overall result of a reconciliation cycle."""

    UP_TO_DATE = "up_to_date"
    COMPLETED = "completed"
    PARTIAL = "partial"


class CycleReport(BaseModel):
    """Aggregate report for one reconciliation cycle.

    Attributes:
        outcome: Up-to-date short circuit, full success, or partial.
        revision: Remote revision observed by this cycle.
        previous_revision: Remote revision recorded before the cycle.
        counts: Number of paths per ``FileClass`` value.
        updated: Paths overwritten with remote content.
        deleted: Paths deleted because the remote removed them.
        kept_local: Conflicted paths where local content was kept.
        backups: Backup files written (path -> backup path).
        failed: Per-file failures.
        started_at: ISO 8601 start timestamp.
        completed_at: ISO 8601 completion timestamp.
    """

    outcome: CycleOutcome
    revision: str | None = None
    previous_revision: str | None = None
    forced: bool = False
    counts: dict[str, int] = {}
    updated: list[str] = []
    deleted: list[str] = []
    kept_local: list[str] = []
    backups: dict[str, str] = {}
    failed: list[FileFailure] = []
    started_at: str
    completed_at: str | None = None

    model_config = {"frozen": True}

    @property
    def files_processed(self) -> int:
        """Number of paths whose local file was changed."""
        return len(self.updated) + len(self.deleted)

    @property
    def conflicts(self) -> int:
        """Number of conflicted paths seen by the cycle."""
        return self.counts.get(FileClass.CONFLICTED.value, 0)

    def summary(self) -> str:
        """Format a one-line summary of the cycle.

        Returns:
            Summary string with the outcome and counts.
        """
        if self.outcome == CycleOutcome.UP_TO_DATE:
            return "Rules are up to date"
        return (
            f"Sync {self.outcome.value}: "
            f"{len(self.updated)} updated, {len(self.deleted)} deleted, "
            f"{len(self.kept_local)} kept local, "
            f"{self.conflicts} conflicts, {len(self.failed)} errors"
        )


class StatusReport(BaseModel):
    """Read-only sync status for a project."""

    needs_sync: bool
    last_sync: str | None = None
    local_revision: str | None = None
    remote_revision: str | None = None
    tracked_files: int = 0
    locally_modified: list[str] = []
    policy: ConflictPolicy = ConflictPolicy.PROMPT
    auto_sync: bool = False

    model_config = {"frozen": True}
