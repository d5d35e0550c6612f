"""Include/exclude glob matching for tracked paths.

Paths are POSIX-style and relative to the rules root.  Matching rules:

1. ``**/`` matches zero or more leading directories, so ``**/*.md``
   matches both ``a.md`` and ``x/y/a.md``.
2. A pattern without ``/`` is also tried against the basename, so
   ``*.log`` excludes ``logs/debug.log``.
3. Backup files written by the applier and the engine's own temporary
   files are never in scope.
"""

from __future__ import annotations

import fnmatch
import re
from collections.abc import Iterable
from pathlib import PurePosixPath

from rule_sync.file_handler import TEMP_PREFIX

_BACKUP_RE = re.compile(r"\.backup\.\d+$")


def matches(path: str, pattern: str) -> bool:
    """Return ``True`` if *path* matches the glob *pattern*."""
    if fnmatch.fnmatchcase(path, pattern):
        return True

    # "**/" may stand for no directory at all.
    stripped = pattern
    while stripped.startswith("**/"):
        stripped = stripped[3:]
        if fnmatch.fnmatchcase(path, stripped):
            return True

    if "/" not in pattern:
        return fnmatch.fnmatchcase(PurePosixPath(path).name, pattern)
    return False


def matches_any(path: str, patterns: Iterable[str]) -> bool:
    """Return ``True`` if *path* matches at least one of *patterns*."""
    return any(matches(path, p) for p in patterns)


def is_internal(path: str) -> bool:
    """True for backup and temporary files owned by the sync engine."""
    name = PurePosixPath(path).name
    return bool(_BACKUP_RE.search(name)) or name.startswith(TEMP_PREFIX)


def in_scope(
    path: str, include: Iterable[str], exclude: Iterable[str]
) -> bool:
    """Decide whether *path* belongs to the tracked path set.

    Args:
        path: Relative POSIX path.
        include: Include globs; an empty list includes everything.
        exclude: Exclude globs; any match removes the path.
    """
    if is_internal(path):
        return False
    include = list(include)
    if include and not matches_any(path, include):
        return False
    return not matches_any(path, exclude)
