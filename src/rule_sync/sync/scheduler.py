"""Sync scheduler: on-demand cycles and the auto-sync daemon loop.

``SyncScheduler.run_once()`` guards each cycle with a non-blocking
``CycleLock``: a second cycle started while one is in flight fails
immediately with ``CycleInProgress``.

``SyncScheduler.run_daemon()`` repeats headless cycles on an interval
until a cancellation ``threading.Event`` is set (by SIGINT/SIGTERM when
``install_signal_handlers()`` is used).  Each tick consults
``should_run_auto_sync()`` so the project's ``autoSync`` and
``syncInterval`` preferences are honoured.  Cycle-level errors are
logged and never stop the daemon.
"""

from __future__ import annotations

import logging
import signal
import threading
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone

from rule_sync.sync.engine import SyncEngine
from rule_sync.sync.errors import CycleInProgress, SyncError
from rule_sync.sync.lock import CycleLock
from rule_sync.sync.models import CycleReport, SyncState
from rule_sync.sync.resolver import ConflictPrompt

logger = logging.getLogger(__name__)

DEFAULT_DAEMON_INTERVAL_MINUTES = 60

_HOUR_MS = 60 * 60 * 1000


@dataclass(frozen=True)
class AutoSyncDecision:
    """Whether an automatic cycle is due, and why."""

    should: bool
    reason: str


def _round_hours(ms: float) -> int:
    return int(ms / _HOUR_MS + 0.5)


def _parse_timestamp(value: str) -> datetime:
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def should_run_auto_sync(
    state: SyncState, now: datetime | None = None
) -> AutoSyncDecision:
    """Decide whether an automatic cycle should run now.

    Args:
        state: Loaded sync state.
        now: Current time (timezone-aware); defaults to UTC now.
    """
    if not state.auto_sync:
        return AutoSyncDecision(False, "Auto-sync is disabled")
    if not state.last_sync:
        return AutoSyncDecision(True, "No previous sync found")

    now = now or datetime.now(timezone.utc)
    try:
        last = _parse_timestamp(state.last_sync)
    except ValueError:
        return AutoSyncDecision(
            True, f"Unreadable last sync time {state.last_sync!r}"
        )

    elapsed_ms = (now - last).total_seconds() * 1000
    if elapsed_ms >= state.sync_interval_ms:
        return AutoSyncDecision(
            True, f"Last sync was {_round_hours(elapsed_ms)} hours ago"
        )
    remaining = state.sync_interval_ms - elapsed_ms
    return AutoSyncDecision(
        False, f"Next sync in {_round_hours(remaining)} hours"
    )


class SyncScheduler:
    """Serialise cycles of one engine behind a lock.

    Args:
        engine: Engine for the project.
        lock: Cycle lock shared by every process syncing the project.
    """

    def __init__(self, engine: SyncEngine, lock: CycleLock) -> None:
        self.engine = engine
        self.lock = lock

    def run_once(
        self,
        force: bool = False,
        prompt: ConflictPrompt | None = None,
    ) -> CycleReport:
        """Run one cycle while holding the lock.

        Raises:
            CycleInProgress: Another cycle holds the lock.
            RemoteUnavailable: Propagated from the engine.
            InteractiveRequired: Propagated from the engine.
        """
        if not self.lock.acquire():
            raise CycleInProgress(
                "Another sync cycle is in progress; try again later"
            )
        try:
            return self.engine.run_cycle(force=force, prompt=prompt)
        finally:
            self.lock.release()

    def check_auto_sync(
        self, now: datetime | None = None
    ) -> tuple[AutoSyncDecision, CycleReport | None]:
        """Run a headless cycle only if ``should_run_auto_sync`` says so."""
        decision = should_run_auto_sync(self.engine.store.load(), now)
        if not decision.should:
            logger.info("Skipping sync: %s", decision.reason)
            return decision, None
        logger.info("Running sync: %s", decision.reason)
        return decision, self.run_once(force=False)

    def run_daemon(
        self,
        interval_ms: int,
        stop_event: threading.Event,
        run_immediately: bool = True,
        clock: Callable[[], datetime] | None = None,
    ) -> int:
        """Tick every *interval_ms* until *stop_event* is set.

        Args:
            interval_ms: Time between checks in milliseconds.
            stop_event: Cancellation signal; setting it wakes the loop.
            run_immediately: Run the first check before sleeping.
            clock: Returns "now" for the auto-sync decision.

        Returns:
            Number of ticks executed.
        """
        if interval_ms < 1:
            raise ValueError("Daemon interval must be positive")
        logger.info(
            "Starting auto-sync daemon (checking every %d minutes)",
            round(interval_ms / 60000),
        )
        ticks = 0
        if not run_immediately:
            stop_event.wait(interval_ms / 1000)
        while not stop_event.is_set():
            self._tick(clock() if clock else None)
            ticks += 1
            stop_event.wait(interval_ms / 1000)
        logger.info("Auto-sync daemon shutting down")
        return ticks

    def _tick(self, now: datetime | None) -> None:
        try:
            _, report = self.check_auto_sync(now)
        except SyncError as exc:
            logger.error("Auto-sync failed (%s): %s", exc.kind, exc)
            return
        except OSError as exc:
            logger.error("Auto-sync failed writing state: %s", exc)
            return
        except Exception:
            logger.exception("Auto-sync tick failed unexpectedly")
            return
        if report is not None:
            logger.info("Auto-sync finished: %s", report.summary())


def install_signal_handlers(stop_event: threading.Event) -> None:
    """Set *stop_event* on SIGINT or SIGTERM."""

    def _handle_signal(signum, frame):
        logger.info(
            "Received signal %s, stopping", signal.Signals(signum).name
        )
        stop_event.set()

    for sig in (signal.SIGTERM, signal.SIGINT):
        signal.signal(sig, _handle_signal)
