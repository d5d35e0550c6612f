"""Read-only view of the local rules directory.

``LocalTree`` lists in-scope files under the rules root and computes
their content hashes on demand (cached for the lifetime of the view, so
one view should be created per cycle).
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from pathlib import Path
from typing import Protocol

from rule_sync.sync.models import SyncState
from rule_sync.sync.patterns import in_scope
from rule_sync.sync.state import content_hash

logger = logging.getLogger(__name__)

#: Hash reported for files that exist but cannot be read.  It never
#: equals a real hash, so such files are never treated as unchanged.
UNREADABLE_HASH = "unreadable"

#: Noted in ``FileRecord.local_hash`` for tracked files deleted locally.
DELETED_HASH = "deleted"


class FileSystemView(Protocol):
    """What the classifier needs to know about the local side."""

    def list_paths(
        self, include: Iterable[str], exclude: Iterable[str]
    ) -> set[str]:
        """Return in-scope relative paths that exist locally."""
        ...  # pragma: no cover

    def hash_of(self, path: str) -> str | None:
        """Return the content hash of *path*, or ``None`` if absent."""
        ...  # pragma: no cover


class LocalTree:
    """Filesystem-backed ``FileSystemView``.

    Args:
        root: Absolute path of the rules directory.
    """

    def __init__(self, root: Path) -> None:
        self.root = root
        self._hashes: dict[str, str | None] = {}

    def list_paths(
        self, include: Iterable[str], exclude: Iterable[str]
    ) -> set[str]:
        """Walk the rules directory and return in-scope file paths."""
        if not self.root.is_dir():
            return set()
        include = list(include)
        exclude = list(exclude)
        found: set[str] = set()
        for candidate in self.root.rglob("*"):
            if not candidate.is_file():
                continue
            rel = candidate.relative_to(self.root).as_posix()
            if in_scope(rel, include, exclude):
                found.add(rel)
        return found

    def hash_of(self, path: str) -> str | None:
        if path not in self._hashes:
            self._hashes[path] = self._compute_hash(path)
        return self._hashes[path]

    def read_bytes(self, path: str) -> bytes | None:
        """Return the bytes of *path*, or ``None`` if missing/unreadable."""
        try:
            return (self.root / path).read_bytes()
        except FileNotFoundError:
            return None
        except OSError as exc:
            logger.warning("Cannot read local file %s: %s", path, exc)
            return None

    def size_of(self, path: str) -> int:
        """Size of *path* in bytes, 0 if it does not exist."""
        try:
            return (self.root / path).stat().st_size
        except OSError:
            return 0

    def modified_tracked(self, state: SyncState) -> list[str]:
        """Tracked paths whose local content differs from the base record.

        Deleted tracked files count as modified.  Newly created untracked
        files do not: tracking is remote-driven.
        """
        return sorted(
            path
            for path, record in state.tracked_files.items()
            if self.hash_of(path) != record.content_hash
        )

    def changed_since_last_cycle(self, state: SyncState) -> list[str]:
        """Tracked paths whose local content moved since the last cycle.

        A path is quiet while it matches its base record or the local
        edit the previous cycle noted for it.  Unreadable files are never
        quiet.
        """
        changed = []
        for path, record in state.tracked_files.items():
            current = self.hash_of(path)
            if current == record.content_hash:
                continue
            if (
                record.local_hash is not None
                and local_fingerprint(current) == record.local_hash
            ):
                continue
            changed.append(path)
        return sorted(changed)

    def _compute_hash(self, path: str) -> str | None:
        target = self.root / path
        try:
            return content_hash(target.read_bytes())
        except FileNotFoundError:
            return None
        except IsADirectoryError:
            return UNREADABLE_HASH
        except OSError as exc:
            logger.warning("Cannot hash local file %s: %s", path, exc)
            return UNREADABLE_HASH


def local_fingerprint(local_hash: str | None) -> str | None:
    """Value noted in ``FileRecord.local_hash`` for a kept local edit.

    ``None`` for unreadable files, which are re-examined every cycle.
    """
    if local_hash is None:
        return DELETED_HASH
    if local_hash == UNREADABLE_HASH:
        return None
    return local_hash
