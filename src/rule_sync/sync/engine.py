"""Reconciliation engine that runs one full sync cycle.

The ``SyncEngine`` ties together state, fetcher, classifier, resolver and
applier into one sequential pipeline.  It:

1. Loads the persisted sync state.
2. Asks the remote for its current revision and short-circuits when
   nothing changed on either side since the last cycle (unless forced).
   Local edits a previous cycle left in place do not count as changes.
3. Lists the remote tree and classifies every in-scope path.
4. Resolves each path into a decision under the configured policy.
5. Applies the decisions best-effort, file by file.
6. Commits fingerprints for successfully applied paths only, and notes
   the local edits it left untouched.
7. Saves the state exactly once and returns a ``CycleReport``.

Cycle-level errors (``RemoteUnavailable``, ``InteractiveRequired``) are
raised before anything is saved, so the persisted state is untouched.
"""

from __future__ import annotations

import logging
from pathlib import Path

from rule_sync.sync.applier import ReconciliationApplier
from rule_sync.sync.classifier import classify, count_by_class
from rule_sync.sync.local import LocalTree, local_fingerprint
from rule_sync.sync.models import (
    ApplyReport,
    Classification,
    ConflictDecision,
    ConflictPolicy,
    CycleOutcome,
    CycleReport,
    DecisionAction,
    FileClass,
    StatusReport,
    SyncState,
)
from rule_sync.sync.remote import SnapshotFetcher, checked_revision
from rule_sync.sync.resolver import ConflictPrompt, resolve
from rule_sync.sync.state import StateStore, utc_now

logger = logging.getLogger(__name__)


class SyncEngine:
    """Run reconciliation cycles for one project.

    Args:
        store: State store for the project's state file.
        fetcher: Remote snapshot fetcher.
        rules_root: Absolute path of the local rules directory.
    """

    def __init__(
        self,
        store: StateStore,
        fetcher: SnapshotFetcher,
        rules_root: Path,
    ) -> None:
        self.store = store
        self.fetcher = fetcher
        self.rules_root = rules_root

    # ------------------------------------------------------------------
    # Main entry point
    # ------------------------------------------------------------------

    def run_cycle(
        self,
        force: bool = False,
        prompt: ConflictPrompt | None = None,
    ) -> CycleReport:
        """Execute one reconciliation cycle.

        Args:
            force: Skip the unchanged-revision short circuit.
            prompt: Operator adapter for the ``prompt`` policy; ``None``
                means the session is headless.

        Returns:
            A ``CycleReport`` describing what was done.

        Raises:
            RemoteUnavailable: The remote could not be read.
            InteractiveRequired: Conflicts need an operator and *prompt*
                is ``None``.
        """
        started_at = utc_now()
        state = self.store.load()
        previous = state.remote_revision
        local = LocalTree(self.rules_root)

        revision = checked_revision(self.fetcher)
        logger.info(
            "Sync cycle started (remote %s, last synced %s)",
            revision,
            previous or "never",
        )

        if not force and revision == previous:
            modified = local.changed_since_last_cycle(state)
            if not modified:
                logger.info("Rules are up to date at %s", revision)
                return CycleReport(
                    outcome=CycleOutcome.UP_TO_DATE,
                    revision=revision,
                    previous_revision=previous,
                    started_at=started_at,
                    completed_at=utc_now(),
                )
            logger.debug(
                "Remote unchanged but %d tracked files changed locally "
                "since the last cycle",
                len(modified),
            )

        snapshot = self.fetcher.fetch_tree(
            revision, state.include_globs, state.exclude_globs
        )
        classifications = classify(state, snapshot, local)
        counts = count_by_class(classifications)
        logger.info(
            "Classified %d paths: %s",
            len(classifications),
            ", ".join(f"{k}={v}" for k, v in counts.items() if v),
        )

        decisions = resolve(
            classifications,
            state.policy,
            load_remote=snapshot.fetch_content,
            load_local=local.read_bytes,
            prompt=prompt,
        )

        applied = ReconciliationApplier(self.rules_root).apply(decisions)
        self._note_local_edits(state, classifications, applied)
        self._commit(state, decisions, applied, local)

        # Failed paths must not be hidden by the unchanged-revision short
        # circuit on the next cycle.
        if not applied.failed:
            state.remote_revision = revision
        state.last_sync = utc_now()
        self.store.save(state)

        report = self._build_report(
            decisions,
            applied,
            counts=counts,
            revision=revision,
            previous=previous,
            forced=force,
            started_at=started_at,
        )
        if report.outcome == CycleOutcome.PARTIAL:
            logger.warning(report.summary())
        else:
            logger.info(report.summary())
        return report

    # ------------------------------------------------------------------
    # Status and initialisation
    # ------------------------------------------------------------------

    def check_status(self) -> StatusReport:
        """Report whether the project needs a sync, without mutating it.

        Raises:
            RemoteUnavailable: The remote revision could not be read.
        """
        state = self.store.load()
        local = LocalTree(self.rules_root)
        revision = checked_revision(self.fetcher)
        modified = local.modified_tracked(state)
        return StatusReport(
            needs_sync=(
                state.last_sync is None or revision != state.remote_revision
            ),
            last_sync=state.last_sync,
            local_revision=state.remote_revision,
            remote_revision=revision,
            tracked_files=len(state.tracked_files),
            locally_modified=modified,
            policy=state.policy,
            auto_sync=state.auto_sync,
        )

    def init_state(
        self,
        policy: ConflictPolicy | None = None,
        auto_sync: bool | None = None,
        interval_ms: int | None = None,
        include: list[str] | None = None,
        exclude: list[str] | None = None,
    ) -> SyncState:
        """Write the sync preferences and mark the project initialised.

        Tracked files and the recorded revision are preserved; options
        left as ``None`` keep their current value.
        """
        state = self.store.load()
        if policy is not None:
            state.policy = ConflictPolicy(policy)
        if auto_sync is not None:
            state.auto_sync = auto_sync
        if interval_ms is not None:
            if interval_ms < 1:
                raise ValueError("Sync interval must be positive")
            state.sync_interval_ms = interval_ms
        if include is not None:
            state.include_globs = list(include)
        if exclude is not None:
            state.exclude_globs = list(exclude)
        state.initialized = True
        state.init_date = utc_now()
        self.store.save(state)
        logger.info(
            "Sync initialised: policy=%s auto_sync=%s interval=%dms",
            state.policy.value,
            state.auto_sync,
            state.sync_interval_ms,
        )
        return state

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _note_local_edits(
        self,
        state: SyncState,
        classifications: list[Classification],
        applied: ApplyReport,
    ) -> None:
        failed = {failure.path for failure in applied.failed}
        for item in classifications:
            if item.path in failed:
                continue
            noted = (
                local_fingerprint(item.local_hash)
                if item.file_class == FileClass.LOCAL_ONLY_CHANGED
                else None
            )
            self.store.note_local_hash(state, item.path, noted)

    def _commit(
        self,
        state: SyncState,
        decisions: list[ConflictDecision],
        applied: ApplyReport,
        local: LocalTree,
    ) -> None:
        succeeded = set(applied.succeeded)
        for decision in decisions:
            if not decision.commit or decision.path not in succeeded:
                continue
            if decision.remote_hash is None:
                self.store.forget_file(state, decision.path)
                continue
            size = (
                len(decision.content)
                if decision.content is not None
                else local.size_of(decision.path)
            )
            self.store.record_file(
                state, decision.path, decision.remote_hash, size
            )

    @staticmethod
    def _build_report(
        decisions: list[ConflictDecision],
        applied: ApplyReport,
        *,
        counts: dict[str, int],
        revision: str,
        previous: str | None,
        forced: bool,
        started_at: str,
    ) -> CycleReport:
        succeeded = set(applied.succeeded)
        updated: list[str] = []
        deleted: list[str] = []
        kept_local: list[str] = []
        for decision in decisions:
            if decision.path not in succeeded:
                continue
            if decision.writes:
                updated.append(decision.path)
            elif decision.deletes:
                deleted.append(decision.path)
            elif (
                decision.action == DecisionAction.KEEP
                and decision.file_class == FileClass.CONFLICTED
            ):
                kept_local.append(decision.path)

        return CycleReport(
            outcome=(
                CycleOutcome.PARTIAL if applied.failed else CycleOutcome.COMPLETED
            ),
            revision=revision,
            previous_revision=previous,
            forced=forced,
            counts=counts,
            updated=updated,
            deleted=deleted,
            kept_local=kept_local,
            backups=dict(applied.backups),
            failed=list(applied.failed),
            started_at=started_at,
            completed_at=utc_now(),
        )
