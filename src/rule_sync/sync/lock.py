"""Cycle lock implementations.

At most one reconciliation cycle may run per project.  The scheduler
takes a ``CycleLock`` before each cycle; ``acquire()`` never blocks and
returns ``False`` when another holder exists.

- ``FileLock``: advisory lock file shared between processes (daemon and
  manual invocations).  Holds the owner's pid, acquisition time and a
  per-acquisition token.  A lock is broken only when its owner pid is
  dead, or when it names no pid and is older than ``stale_after``
  seconds.  ``release()`` removes the file only while it still carries
  the holder's token.
- ``InMemoryLock``: in-process lock for tests and embedded use.
"""

from __future__ import annotations

import json
import logging
import os
import threading
import time
import uuid
from pathlib import Path
from typing import Any, Protocol

logger = logging.getLogger(__name__)

DEFAULT_STALE_AFTER = 600.0

#: Age in seconds after which a leftover ``.break`` guard is removed.
GUARD_STALE_AFTER = 30.0


class CycleLock(Protocol):
    """Non-blocking mutual exclusion for reconciliation cycles."""

    def acquire(self) -> bool:
        """Try to take the lock; return ``False`` if it is held."""
        ...  # pragma: no cover

    def release(self) -> None:
        """Release a lock taken by ``acquire()``."""
        ...  # pragma: no cover


class InMemoryLock:
    """``CycleLock`` backed by a ``threading.Lock``."""

    def __init__(self) -> None:
        self._lock = threading.Lock()

    def acquire(self) -> bool:
        return self._lock.acquire(blocking=False)

    def release(self) -> None:
        if self._lock.locked():
            self._lock.release()

    @property
    def held(self) -> bool:
        return self._lock.locked()


def _pid_alive(pid: int) -> bool:
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        # Exists, owned by another user.
        return True
    except OSError:
        return False
    return True


def _parse_owner(raw: bytes | None) -> dict[str, Any]:
    """Decode lock file content; unknown or malformed fields are dropped."""
    if not raw:
        return {}
    try:
        data = json.loads(raw)
    except ValueError:
        return {}
    if not isinstance(data, dict):
        return {}
    owner: dict[str, Any] = {}
    pid = data.get("pid")
    if isinstance(pid, int) and not isinstance(pid, bool):
        owner["pid"] = pid
    acquired_at = data.get("acquired_at")
    if isinstance(acquired_at, (int, float)):
        owner["acquired_at"] = float(acquired_at)
    token = data.get("token")
    if isinstance(token, str):
        owner["token"] = token
    return owner


class FileLock:
    """Advisory lock file created with ``O_CREAT | O_EXCL``.

    Args:
        path: Lock file location.
        stale_after: Age in seconds after which a lock that names no
            owner pid is considered abandoned.
    """

    def __init__(
        self, path: Path, stale_after: float = DEFAULT_STALE_AFTER
    ) -> None:
        self.path = path
        self.stale_after = stale_after
        self._token: str | None = None

    @property
    def _guard(self) -> Path:
        return self.path.with_name(f"{self.path.name}.break")

    def acquire(self) -> bool:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        if self._try_create():
            return True
        seen = self._read_raw()
        if seen is not None and not self._is_stale(seen):
            return False
        if seen is not None:
            self._break(seen)
        # Another process may have broken or retaken it first; O_EXCL decides.
        return self._try_create()

    def release(self) -> None:
        if self._token is None:
            return
        token, self._token = self._token, None
        raw = self._read_raw()
        if raw is None:
            logger.debug("Lock file %s already removed", self.path)
            return
        owner = _parse_owner(raw)
        if owner.get("token") != token:
            logger.warning(
                "Sync lock %s now belongs to pid %s; leaving it in place",
                self.path,
                owner.get("pid", "unknown"),
            )
            return
        try:
            self.path.unlink()
        except FileNotFoundError:
            logger.debug("Lock file %s already removed", self.path)

    def _try_create(self) -> bool:
        try:
            fd = os.open(
                self.path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644
            )
        except FileExistsError:
            return False
        token = uuid.uuid4().hex
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            json.dump(
                {
                    "pid": os.getpid(),
                    "acquired_at": time.time(),
                    "token": token,
                },
                fh,
            )
        self._token = token
        return True

    def _read_raw(self) -> bytes | None:
        """Lock file bytes; ``None`` if absent, empty if unreadable."""
        try:
            return self.path.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as exc:
            logger.warning("Cannot read sync lock %s: %s", self.path, exc)
            return b""

    def _is_stale(self, raw: bytes) -> bool:
        owner = _parse_owner(raw)
        pid = owner.get("pid")
        if pid is not None:
            return pid != os.getpid() and not _pid_alive(pid)
        # No owner pid: fall back to the recorded time, then the mtime.
        acquired_at = owner.get("acquired_at")
        if acquired_at is None:
            try:
                acquired_at = self.path.stat().st_mtime
            except FileNotFoundError:
                return True
        return time.time() - acquired_at >= self.stale_after

    def _break(self, seen: bytes) -> None:
        """Remove the lock file if it still holds exactly *seen*.

        Only one contender at a time may break a lock: the check and the
        unlink run while holding the ``.break`` guard file.
        """
        try:
            fd = os.open(
                self._guard, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644
            )
        except FileExistsError:
            self._clear_abandoned_guard()
            return
        os.close(fd)
        try:
            if self._read_raw() != seen:
                return
            logger.warning("Breaking stale sync lock %s", self.path)
            try:
                self.path.unlink()
            except FileNotFoundError:
                pass
        finally:
            try:
                self._guard.unlink()
            except FileNotFoundError:
                pass

    def _clear_abandoned_guard(self) -> None:
        try:
            age = time.time() - self._guard.stat().st_mtime
        except FileNotFoundError:
            return
        if age >= GUARD_STALE_AFTER:
            logger.warning("Removing abandoned lock guard %s", self._guard)
            try:
                self._guard.unlink()
            except FileNotFoundError:
                pass
