"""Sync report formatting functions.

Provides human-readable and machine-readable output for sync operations:

- ``format_cycle_report`` -- full post-cycle summary.
- ``format_status`` -- ``sync-status`` output.
- ``format_conflict_diff`` -- unified diff for interactive conflict review.
- ``report_to_json`` / ``status_to_json`` -- structured dicts for
  ``--json`` output.
"""

from __future__ import annotations

import difflib
from typing import TYPE_CHECKING

from rule_sync.file_handler import decode_for_display

from .models import CycleOutcome

if TYPE_CHECKING:
    from .models import CycleReport, StatusReport
    from .resolver import PendingDecision

# ------------------------------------------------------------------
# Human-readable report
# ------------------------------------------------------------------


def _short(revision: str | None) -> str:
    return revision[:8] if revision else "none"


def format_cycle_report(report: CycleReport) -> str:
    """Format a cycle report as human-readable text.

    Sections are only included when they contain at least one path.

    Args:
        report: The completed cycle report.

    Returns:
        Multi-line formatted string.
    """
    lines: list[str] = []

    if report.outcome == CycleOutcome.UP_TO_DATE:
        lines.append(f"Rules are up to date ({_short(report.revision)})")
        return "\n".join(lines)

    header = (
        f"Synced rules {_short(report.previous_revision)} -> "
        f"{_short(report.revision)}"
    )
    if report.forced:
        header += " (forced)"
    lines.append(header)
    lines.append(f"Started: {report.started_at}")
    if report.completed_at:
        lines.append(f"Completed: {report.completed_at}")
    lines.append("")
    lines.append(report.summary())
    lines.append("")

    sections = [
        ("Updated from remote:", report.updated),
        ("Deleted (removed remotely):", report.deleted),
        ("Kept local (conflicts):", report.kept_local),
    ]
    for title, paths in sections:
        if not paths:
            continue
        lines.append(title)
        for path in paths:
            lines.append(f"  {path}")
        lines.append("")

    if report.backups:
        lines.append("Backups written:")
        for path, backup in sorted(report.backups.items()):
            lines.append(f"  {path} -> {backup}")
        lines.append("")

    if report.failed:
        lines.append("Errors:")
        for failure in report.failed:
            lines.append(f"  {failure.path}: {failure.error}")
        lines.append("")

    return "\n".join(lines).rstrip()


def format_status(status: StatusReport) -> str:
    """Format a status report for ``sync-status``."""
    lines = [
        "Sync needed" if status.needs_sync else "Rules are up to date",
        f"Last sync: {status.last_sync or 'never'}",
        f"Local revision: {_short(status.local_revision)}",
        f"Remote revision: {_short(status.remote_revision)}",
        f"Tracked files: {status.tracked_files}",
        f"Conflict policy: {status.policy.value}",
        f"Auto-sync: {'enabled' if status.auto_sync else 'disabled'}",
    ]
    if status.locally_modified:
        lines.append("")
        lines.append(f"Locally modified ({len(status.locally_modified)}):")
        for path in status.locally_modified:
            lines.append(f"  {path}")
    return "\n".join(lines)


# ------------------------------------------------------------------
# Conflict diff
# ------------------------------------------------------------------


def format_conflict_diff(pending: PendingDecision) -> str:
    """Format a single conflict for interactive review.

    Shows a unified diff from the local file to the remote file.  An
    absent side is rendered as empty content.

    Args:
        pending: The conflicted path awaiting an answer.

    Returns:
        Multi-line formatted string.
    """
    local = pending.local_content()
    remote = pending.remote_content()
    local_text = decode_for_display(local or b"")
    remote_text = decode_for_display(remote or b"")

    lines = [f"Conflict: {pending.path}"]
    if local is None:
        lines.append("(deleted locally)")
    if remote is None:
        lines.append("(deleted remotely)")
    lines.append("")

    diff = difflib.unified_diff(
        local_text.splitlines(keepends=True),
        remote_text.splitlines(keepends=True),
        fromfile=f"local: {pending.path}",
        tofile=f"remote: {pending.path}",
    )
    diff_text = "".join(diff)
    if diff_text:
        lines.append(diff_text.rstrip())
    else:
        lines.append("(no textual differences)")
    return "\n".join(lines).rstrip()


# ------------------------------------------------------------------
# JSON output
# ------------------------------------------------------------------


def report_to_json(report: CycleReport) -> dict:
    """Convert a cycle report to a structured dict for JSON output."""
    return {
        "status": report.outcome.value,
        "revision": report.revision,
        "previousRevision": report.previous_revision,
        "forced": report.forced,
        "filesProcessed": report.files_processed,
        "conflicts": report.conflicts,
        "counts": dict(report.counts),
        "updated": list(report.updated),
        "deleted": list(report.deleted),
        "keptLocal": list(report.kept_local),
        "backups": dict(report.backups),
        "errors": [
            {"path": f.path, "error": f.error} for f in report.failed
        ],
        "startedAt": report.started_at,
        "completedAt": report.completed_at,
    }


def status_to_json(status: StatusReport) -> dict:
    """Convert a status report to a structured dict for JSON output."""
    return {
        "needsSync": status.needs_sync,
        "lastSync": status.last_sync,
        "localCommit": status.local_revision,
        "remoteCommit": status.remote_revision,
        "trackedFiles": status.tracked_files,
        "locallyModified": list(status.locally_modified),
        "conflictResolution": status.policy.value,
        "autoSync": status.auto_sync,
    }
