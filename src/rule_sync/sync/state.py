"""Content fingerprint store.

Manages the JSON state file that records, per tracked rule file, the
fingerprint observed at the last successful sync (the "base" of the
three-way comparison), plus the remote revision and the project's sync
preferences.

Key design choices:

* **Atomic writes** -- ``save()`` writes to a temp file in the target
  directory then calls ``os.replace()`` so readers never see partial data.
* **Git blob hashing** -- ``content_hash()`` computes the same object id
  the hosting API reports in tree listings, so remote hashes are known
  without downloading content.
* **Availability over history** -- an unparseable state file is logged
  and replaced by the default state instead of aborting the sync.
* **Explicit commits** -- ``record_file()`` and ``forget_file()`` only
  mutate the in-memory ``SyncState``; callers persist with ``save()``.
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path

from pydantic import ValidationError

from rule_sync.sync.errors import StateCorrupt
from rule_sync.sync.models import FileRecord, SyncState

logger = logging.getLogger(__name__)


class StateStore:
    """Load, save, and mutate the sync state of one project.

    Args:
        state_file: Path of the JSON state file (typically
            ``vdk.config.json`` in the project root).
    """

    def __init__(self, state_file: Path) -> None:
        self._state_file = state_file

    @property
    def path(self) -> Path:
        """Location of the state file."""
        return self._state_file

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def load(self, strict: bool = False) -> SyncState:
        """Load sync state from disk.

        A missing file is not an error: the default state is returned.

        Args:
            strict: Raise ``StateCorrupt`` instead of falling back to the
                default state when the file cannot be parsed.

        Returns:
            The loaded ``SyncState``.

        Raises:
            StateCorrupt: Only when *strict* is set and the file is bad.
        """
        if not self._state_file.exists():
            return SyncState()

        try:
            with open(self._state_file, encoding="utf-8") as fh:
                raw = json.load(fh)
            if not isinstance(raw, dict):
                raise ValueError(
                    f"expected a JSON object, got {type(raw).__name__}"
                )
            return SyncState.model_validate(raw)
        except (OSError, ValueError, ValidationError) as exc:
            # json.JSONDecodeError is a ValueError subclass.
            if strict:
                raise StateCorrupt(
                    f"Cannot parse sync state {self._state_file}: {exc}"
                ) from exc
            logger.warning(
                "Sync state %s is corrupt (%s); starting from an empty state",
                self._state_file,
                exc,
            )
            return SyncState()

    def save(self, state: SyncState) -> None:
        """Persist sync state to disk atomically.

        Writes to a temporary file next to the target, then atomically
        replaces it.  Creates the parent directory if needed.

        Args:
            state: The state to persist.

        Raises:
            OSError: If the state could not be written.  The previous
                state file is left intact.
        """
        directory = self._state_file.parent
        directory.mkdir(parents=True, exist_ok=True)

        payload = state.model_dump(mode="json", by_alias=True)
        fd, tmp_path = tempfile.mkstemp(
            dir=str(directory),
            prefix=f".{self._state_file.name}.",
            suffix=".tmp",
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(payload, fh, indent=2)
                fh.write("\n")
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp_path, self._state_file)
        except BaseException:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise

    # ------------------------------------------------------------------
    # Record helpers
    # ------------------------------------------------------------------

    @staticmethod
    def get_record(state: SyncState, path: str) -> FileRecord | None:
        """Return the record for *path*, or ``None`` if untracked."""
        return state.tracked_files.get(path)

    @staticmethod
    def record_file(
        state: SyncState, path: str, content_hash: str, size: int
    ) -> None:
        """Upsert the base fingerprint of *path*.  Mutates *state* only."""
        state.tracked_files[path] = FileRecord(
            content_hash=content_hash,
            size_bytes=size,
            synced_at=utc_now(),
        )

    @staticmethod
    def note_local_hash(
        state: SyncState, path: str, local_hash: str | None
    ) -> None:
        """Set the kept local edit of a tracked *path*.  Mutates *state* only."""
        record = state.tracked_files.get(path)
        if record is None or record.local_hash == local_hash:
            return
        state.tracked_files[path] = record.model_copy(
            update={"local_hash": local_hash}
        )

    @staticmethod
    def forget_file(state: SyncState, path: str) -> None:
        """Stop tracking *path*.  No-op if it is not tracked."""
        state.tracked_files.pop(path, None)


# ----------------------------------------------------------------------
# Content hashing
# ----------------------------------------------------------------------


def content_hash(data: bytes) -> str:
    """Compute the git blob object id of *data*.

    This is ``sha1(b"blob <len>\\0" + data)``, the digest content APIs
    report for files in a tree listing.
    """
    digest = hashlib.sha1(usedforsecurity=False)
    digest.update(b"blob %d\0" % len(data))
    digest.update(data)
    return digest.hexdigest()


def hash_file(path: Path) -> tuple[str, int]:
    """Return ``(content_hash, size)`` for the file at *path*."""
    data = path.read_bytes()
    return content_hash(data), len(data)


def utc_now() -> str:
    """Current UTC time as an ISO 8601 string."""
    return datetime.now(timezone.utc).isoformat()
