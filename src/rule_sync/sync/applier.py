"""Reconciliation applier.

Materialises resolver decisions on the local filesystem.  Every file is
handled independently and best-effort: a permission or disk error on one
path is recorded in ``ApplyReport.failed`` and the remaining paths are
still applied.  Writes go through a temp file and ``os.replace()``.

The applier never touches the sync state; the engine commits
fingerprints afterwards, and only for paths in ``succeeded``.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from pathlib import Path

from rule_sync.file_handler import (
    create_backup,
    delete_file,
    resolve_within,
    write_bytes_atomic,
)
from rule_sync.sync.errors import PerFileIOError
from rule_sync.sync.models import (
    ApplyReport,
    ConflictDecision,
    DecisionAction,
    FileFailure,
)

logger = logging.getLogger(__name__)


class ReconciliationApplier:
    """Apply decisions under a rules root.

    Args:
        root: Absolute path of the local rules directory.
        clock_ms: Returns the current Unix time in milliseconds, used for
            backup file names.
    """

    def __init__(
        self,
        root: Path,
        clock_ms: Callable[[], int] | None = None,
    ) -> None:
        self.root = root
        self._clock_ms = clock_ms or (lambda: time.time_ns() // 1_000_000)

    def apply(self, decisions: list[ConflictDecision]) -> ApplyReport:
        """Apply every decision and report per-path success or failure.

        ``SKIP`` decisions are not reported.  ``KEEP`` decisions perform
        no I/O and always succeed.
        """
        succeeded: list[str] = []
        failed: list[FileFailure] = []
        backups: dict[str, str] = {}

        for decision in decisions:
            if decision.action == DecisionAction.SKIP:
                continue
            try:
                backup = self._apply_one(decision)
            except PerFileIOError as exc:
                logger.error("Failed to apply %s: %s", exc.path, exc.message)
                failed.append(FileFailure(path=exc.path, error=exc.message))
                continue
            if backup is not None:
                backups[decision.path] = backup
            succeeded.append(decision.path)

        return ApplyReport(succeeded=succeeded, failed=failed, backups=backups)

    def _apply_one(self, decision: ConflictDecision) -> str | None:
        """Apply a single decision.

        Returns:
            Path of the backup written, relative to the root, if any.

        Raises:
            PerFileIOError: On any filesystem error for this path.
        """
        if decision.action == DecisionAction.KEEP:
            return None

        try:
            target = resolve_within(self.root, decision.path)
        except ValueError as exc:
            raise PerFileIOError(decision.path, str(exc)) from exc

        backup_rel: str | None = None
        if decision.action == DecisionAction.BACKUP_THEN_OVERWRITE:
            backup_rel = self._backup(decision.path, target)

        try:
            if decision.deletes:
                if delete_file(target):
                    logger.info("Deleted %s (removed remotely)", decision.path)
            else:
                assert decision.content is not None
                write_bytes_atomic(target, decision.content)
                logger.info(
                    "Wrote %s (%d bytes)", decision.path, len(decision.content)
                )
        except OSError as exc:
            raise PerFileIOError(
                decision.path, exc.strerror or str(exc)
            ) from exc

        return backup_rel

    def _backup(self, rel_path: str, target: Path) -> str | None:
        if not target.exists():
            return None
        try:
            backup = create_backup(target, self._clock_ms())
        except OSError as exc:
            raise PerFileIOError(
                rel_path, f"backup failed: {exc.strerror or exc}"
            ) from exc
        logger.info("Backed up %s to %s", rel_path, backup.name)
        return backup.relative_to(self.root.resolve()).as_posix()
