"""File handler module: path containment, atomic writes, backups, decoding.

Provides the file I/O primitives the reconciliation applier is built on.
All functions raise ``OSError`` (or ``ValueError`` for bad paths) and
leave error aggregation to the caller.
"""

import os
import shutil
import tempfile
import time
from pathlib import Path

from charset_normalizer import from_bytes

TEMP_PREFIX = ".rule-sync-"

# =============================================================================
# Path Validation
# =============================================================================


def resolve_within(root: Path, rel_path: str) -> Path:
    """Resolve *rel_path* under *root*, refusing paths that escape it.

    Args:
        root: Directory all managed files live under.
        rel_path: POSIX relative path as listed by the remote.

    Returns:
        Absolute path of the file (which need not exist).

    Raises:
        ValueError: If the path is absolute or resolves outside *root*.
    """
    if rel_path.startswith("/") or Path(rel_path).is_absolute():
        raise ValueError(f"Path must be relative: {rel_path}")
    root_resolved = root.resolve()
    target = (root_resolved / rel_path).resolve()
    if not target.is_relative_to(root_resolved):
        raise ValueError(
            f"Path escapes rules directory: {rel_path} not under {root_resolved}"
        )
    return target


# =============================================================================
# File Read/Write
# =============================================================================


def decode_for_display(raw: bytes) -> str:
    """Decode file bytes to text with automatic encoding detection.

    Used for diffs and previews only; synced content is always handled
    as raw bytes.  Defaults to UTF-8 for empty input or when detection
    fails.
    """
    if not raw:
        return ""

    result = from_bytes(raw).best()
    if result is None:
        return raw.decode("utf-8", errors="replace")
    return str(result)


def write_bytes_atomic(path: Path, data: bytes) -> int:
    """Write *data* to *path* via a temp file and ``os.replace()``.

    Creates parent directories as needed.  A crash mid-write leaves
    either the old file or the new one, never a truncated file.

    Returns:
        Number of bytes written.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(
        dir=str(path.parent), prefix=TEMP_PREFIX, suffix=".tmp"
    )
    try:
        with os.fdopen(fd, "wb") as fh:
            fh.write(data)
            fh.flush()
            os.fsync(fh.fileno())
        os.replace(tmp_path, path)
    except BaseException:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise
    return len(data)


def create_backup(path: Path, timestamp_ms: int | None = None) -> Path:
    """Copy *path* to ``<path>.backup.<unix-millis>``.

    Args:
        path: Existing file to back up.
        timestamp_ms: Override for the timestamp suffix.

    Returns:
        Path of the backup file.
    """
    stamp = timestamp_ms if timestamp_ms is not None else time.time_ns() // 1_000_000
    backup = path.with_name(f"{path.name}.backup.{stamp}")
    # Never clobber an older backup written in the same millisecond.
    while backup.exists():
        stamp += 1
        backup = path.with_name(f"{path.name}.backup.{stamp}")
    shutil.copy2(path, backup)
    return backup


def delete_file(path: Path) -> bool:
    """Delete *path* if it exists.

    Returns:
        ``True`` if a file was removed.
    """
    try:
        path.unlink()
    except FileNotFoundError:
        return False
    return True
