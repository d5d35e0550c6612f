"""Three-way change classifier.

Compares, for every path, the base hash recorded at the last sync with
the current local and remote hashes.  An absent file is represented by
``None`` and takes part in the comparison like any other hash value, so
creations and deletions follow the same table:

=================  ==================  ===================  ==================
base == local      base == remote      local == remote      class
=================  ==================  ===================  ==================
yes                yes                 --                   UNCHANGED
yes                no                  --                   REMOTE_ONLY_CHANGED
no                 yes                 --                   LOCAL_ONLY_CHANGED
no                 no                  yes                  CONVERGED
no                 no                  no                   CONFLICTED
=================  ==================  ===================  ==================

Classification is deterministic and side-effect free.
"""

from __future__ import annotations

from rule_sync.sync.local import FileSystemView
from rule_sync.sync.models import Classification, FileClass, SyncState
from rule_sync.sync.patterns import in_scope
from rule_sync.sync.remote import RemoteSnapshot


def classify_triple(
    base: str | None, local: str | None, remote: str | None
) -> FileClass:
    """Classify one ``(base, local, remote)`` hash triple."""
    if base == local:
        if base == remote:
            return FileClass.UNCHANGED
        return FileClass.REMOTE_ONLY_CHANGED
    if base == remote:
        return FileClass.LOCAL_ONLY_CHANGED
    if local == remote:
        return FileClass.CONVERGED
    return FileClass.CONFLICTED


def classify(
    state: SyncState,
    remote: RemoteSnapshot,
    local_fs: FileSystemView,
) -> list[Classification]:
    """Classify every in-scope path known to state, remote, or local disk.

    Args:
        state: Loaded sync state (base fingerprints and globs).
        remote: Remote snapshot for this cycle.
        local_fs: View of the local rules directory.

    Returns:
        Classifications sorted by path.
    """
    include = state.include_globs
    exclude = state.exclude_globs

    paths = {
        p for p in state.tracked_files if in_scope(p, include, exclude)
    }
    paths.update(
        p for p in remote.files if in_scope(p, include, exclude)
    )
    paths.update(local_fs.list_paths(include, exclude))

    results: list[Classification] = []
    for path in sorted(paths):
        record = state.tracked_files.get(path)
        base_hash = record.content_hash if record else None
        local_hash = local_fs.hash_of(path)
        remote_hash = remote.hash_of(path)
        results.append(
            Classification(
                path=path,
                file_class=classify_triple(
                    base_hash, local_hash, remote_hash
                ),
                base_hash=base_hash,
                local_hash=local_hash,
                remote_hash=remote_hash,
            )
        )
    return results


def count_by_class(
    classifications: list[Classification],
) -> dict[str, int]:
    """Return the number of paths per ``FileClass`` value."""
    counts = {fc.value: 0 for fc in FileClass}
    for c in classifications:
        counts[c.file_class.value] += 1
    return counts
