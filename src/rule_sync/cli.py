"""Command line interface for vdk-rule-sync.

Commands:
    sync [--force]          Run one reconciliation cycle.
    sync-status             Report whether a sync is needed.
    sync-init               Write sync preferences to the state file.
    auto-sync check         Run a cycle if the auto-sync schedule says so.
    auto-sync daemon [MIN]  Check every MIN minutes (default 60).
    auto-sync status        Show the auto-sync decision and sync status.
    auto-sync install-service
                            Generate a systemd unit or launchd plist.

Exit codes: 0 success or up to date, 1 error, 2 completed with per-file
failures, 130 interrupted.
"""

import argparse
import json
import logging
import os
import sys
import threading
from pathlib import Path

from rich.console import Console
from rich.prompt import Confirm, Prompt
from yaml import YAMLError

from . import __version__
from .config import Config, resolve_config
from .config_loader import ensure_config
from .core.client import GitHubClient
from .logger import setup_logging
from .sync.engine import SyncEngine
from .sync.errors import SyncError
from .sync.lock import FileLock
from .sync.models import ConflictPolicy, CycleOutcome, CycleReport
from .sync.remote import GitHubFetcher
from .sync.reporter import (
    format_conflict_diff,
    format_cycle_report,
    format_status,
    report_to_json,
    status_to_json,
)
from .sync.resolver import PendingDecision, PromptAnswer
from .sync.scheduler import (
    DEFAULT_DAEMON_INTERVAL_MINUTES,
    SyncScheduler,
    install_signal_handlers,
    should_run_auto_sync,
)
from .sync.service import install_service
from .sync.state import StateStore

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_PARTIAL = 2
EXIT_INTERRUPTED = 130

_HOUR_MS = 60 * 60 * 1000


# ---------------------------------------------------------------------------
# Interactive prompt adapter
# ---------------------------------------------------------------------------


class TerminalPrompt:
    """``ConflictPrompt`` that asks on the terminal with rich."""

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console(stderr=True)

    def ask(self, pending: PendingDecision) -> str:
        c = pending.classification
        self.console.print()
        self.console.print(f"[bold yellow]Conflict:[/] {pending.path}")
        if c.remote_hash is None:
            self.console.print("  removed remotely, edited locally")
        elif c.local_hash is None:
            self.console.print("  changed remotely, deleted locally")
        else:
            self.console.print("  changed both locally and remotely")
        return Prompt.ask(
            "How would you like to resolve this conflict?",
            choices=[answer.value for answer in PromptAnswer],
            default=PromptAnswer.SHOW_DIFF.value,
            console=self.console,
        )

    def show_diff(self, pending: PendingDecision) -> None:
        self.console.print(
            format_conflict_diff(pending), markup=False, highlight=False
        )


def _is_interactive() -> bool:
    return sys.stdin.isatty()


# ---------------------------------------------------------------------------
# Wiring
# ---------------------------------------------------------------------------


def build_engine(config: Config) -> SyncEngine:
    """Create a ``SyncEngine`` for *config*."""
    fetcher = GitHubFetcher(
        GitHubClient(config), config.branch, config.path_prefix
    )
    return SyncEngine(
        store=StateStore(config.state_file),
        fetcher=fetcher,
        rules_root=config.rules_dir.resolve(),
    )


def build_scheduler(config: Config) -> SyncScheduler:
    """Create a lock-guarded scheduler for *config*."""
    return SyncScheduler(
        build_engine(config),
        FileLock(config.lock_file, stale_after=config.lock_stale_seconds),
    )


def _print_json(data: dict) -> None:
    print(json.dumps(data, indent=2))


def _cycle_exit_code(report: CycleReport) -> int:
    return EXIT_PARTIAL if report.outcome == CycleOutcome.PARTIAL else EXIT_OK


def _print_report(report: CycleReport, as_json: bool) -> None:
    if as_json:
        _print_json(report_to_json(report))
    else:
        print(format_cycle_report(report))


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


def cmd_sync(args: argparse.Namespace, config: Config) -> int:
    prompt = TerminalPrompt() if _is_interactive() else None
    report = build_scheduler(config).run_once(force=args.force, prompt=prompt)
    _print_report(report, args.json)
    return _cycle_exit_code(report)


def cmd_sync_status(args: argparse.Namespace, config: Config) -> int:
    status = build_engine(config).check_status()
    if args.json:
        _print_json(status_to_json(status))
    else:
        print(format_status(status))
    return EXIT_OK


def cmd_sync_init(args: argparse.Namespace, config: Config) -> int:
    policy = ConflictPolicy.parse(args.policy) if args.policy else None
    auto_sync = args.auto_sync

    if _is_interactive():
        console = Console(stderr=True)
        if policy is None:
            policy = ConflictPolicy(
                Prompt.ask(
                    "How should conflicts be resolved by default?",
                    choices=[p.value for p in ConflictPolicy],
                    default=ConflictPolicy.PROMPT.value,
                    console=console,
                )
            )
        if auto_sync is None:
            auto_sync = Confirm.ask(
                "Enable automatic sync checking?",
                default=False,
                console=console,
            )

    interval_ms = (
        int(args.interval * _HOUR_MS) if args.interval is not None else None
    )
    state = build_engine(config).init_state(
        policy=policy,
        auto_sync=auto_sync,
        interval_ms=interval_ms,
        include=args.include,
        exclude=args.exclude,
    )
    if args.write_config:
        ensure_config()

    if args.json:
        _print_json(state.model_dump(mode="json", by_alias=True))
    else:
        print(f"Sync configuration saved to {config.state_file}")
        print("Run 'vdk-rule-sync sync' to perform your first sync")
    return EXIT_OK


def cmd_auto_sync(args: argparse.Namespace, config: Config) -> int:
    action = args.action

    if action == "install-service":
        result = install_service(
            Path.cwd(), interval_minutes=args.interval
        )
        if result.supported:
            print(f"Service file created: {result.path}")
            print("\nTo install the service:")
        else:
            print(f"Service installation not supported on {result.platform}")
        for line in result.instructions:
            print(f"  {line}")
        return EXIT_OK

    scheduler = build_scheduler(config)

    if action == "check":
        decision, report = scheduler.check_auto_sync()
        if report is None:
            print(f"Skipping sync: {decision.reason}")
            return EXIT_OK
        _print_report(report, args.json)
        return _cycle_exit_code(report)

    if action == "status":
        decision = should_run_auto_sync(scheduler.engine.store.load())
        status = scheduler.engine.check_status()
        if args.json:
            data = status_to_json(status)
            data["shouldRun"] = decision.should
            data["reason"] = decision.reason
            _print_json(data)
        else:
            print(f"Auto-sync due: {'yes' if decision.should else 'no'}")
            print(f"Reason: {decision.reason}")
            print(format_status(status))
        return EXIT_OK

    # daemon
    minutes = args.interval or DEFAULT_DAEMON_INTERVAL_MINUTES
    stop_event = threading.Event()
    install_signal_handlers(stop_event)
    scheduler.run_daemon(minutes * 60 * 1000, stop_event)
    return EXIT_OK


COMMANDS = {
    "sync": cmd_sync,
    "sync-status": cmd_sync_status,
    "sync-init": cmd_sync_init,
    "auto-sync": cmd_auto_sync,
}


# ---------------------------------------------------------------------------
# Argument parsing
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="vdk-rule-sync",
        description="Keep a local rules directory in sync with a remote repository",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Sync with the default repository
  vdk-rule-sync sync

  # Re-sync even if the remote revision did not change
  vdk-rule-sync sync --force

  # Always back up local edits before taking remote content
  vdk-rule-sync sync-init --policy backup --auto-sync --interval 12

  # Check every 30 minutes in the background
  vdk-rule-sync auto-sync daemon 30
        """,
    )
    parser.add_argument(
        "--repo", help="Remote repository owner/name (overrides RULE_SYNC_REPO)"
    )
    parser.add_argument(
        "--branch", help="Branch to sync (overrides RULE_SYNC_BRANCH)"
    )
    parser.add_argument(
        "--rules-dir", help="Local rules directory (overrides RULE_SYNC_RULES_DIR)"
    )
    parser.add_argument(
        "--state-file", help="Sync state file (overrides RULE_SYNC_STATE_FILE)"
    )
    parser.add_argument(
        "--timeout", type=float, help="Network timeout in seconds"
    )
    parser.add_argument(
        "--json", action="store_true", help="Print machine-readable JSON"
    )
    parser.add_argument(
        "--debug", action="store_true", help="Enable debug logging"
    )
    parser.add_argument("--log-file", help="Also write logs to this file")
    parser.add_argument(
        "--log-format",
        choices=["text", "json"],
        default="text",
        help="Log record format (default: text)",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"vdk-rule-sync version {__version__}",
    )

    sub = parser.add_subparsers(dest="command", required=True)

    p_sync = sub.add_parser("sync", help="Synchronise with the remote repository")
    p_sync.add_argument(
        "--force",
        action="store_true",
        help="Run a full cycle even if nothing changed",
    )

    sub.add_parser("sync-status", help="Check whether a sync is needed")

    p_init = sub.add_parser("sync-init", help="Initialise sync preferences")
    p_init.add_argument(
        "--policy",
        help="Conflict policy: prompt, remote, local or backup",
    )
    p_init.add_argument(
        "--auto-sync",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Enable or disable automatic sync checking",
    )
    p_init.add_argument(
        "--interval", type=float, help="Auto-sync interval in hours"
    )
    p_init.add_argument(
        "--include", action="append", help="Include glob (repeatable)"
    )
    p_init.add_argument(
        "--exclude", action="append", help="Exclude glob (repeatable)"
    )
    p_init.add_argument(
        "--write-config",
        action="store_true",
        help="Also create a starter .vdk/config.yml",
    )

    p_auto = sub.add_parser("auto-sync", help="Scheduled synchronisation")
    p_auto.add_argument(
        "action",
        nargs="?",
        default="check",
        choices=["check", "daemon", "status", "install-service"],
    )
    p_auto.add_argument(
        "interval",
        nargs="?",
        type=int,
        help="Daemon interval in minutes (default: 60)",
    )

    return parser


def main(argv: list[str] | None = None) -> int:
    """Parse *argv*, run the command and return the exit code."""
    args = build_parser().parse_args(argv)

    if getattr(args, "interval", None) is not None and args.interval <= 0:
        print("Error: interval must be positive", file=sys.stderr)
        return EXIT_ERROR

    overrides = {
        "repo": args.repo,
        "branch": args.branch,
        "rules_dir": args.rules_dir,
        "state_file": args.state_file,
        "timeout": args.timeout,
        "debug": args.debug,
    }
    try:
        config, unified = resolve_config(overrides)
    except (ValueError, YAMLError) as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return EXIT_ERROR

    is_daemon = args.command == "auto-sync" and args.action == "daemon"
    if is_daemon:
        log_file = args.log_file or os.getenv("LOG_FILE") or unified.logging.file
    else:
        log_file = args.log_file or unified.logging.file
    setup_logging(
        mode="daemon" if is_daemon else "cli",
        debug=args.debug,
        log_file=log_file,
        debug_format=args.log_format,
        level=unified.logging.level,
    )

    try:
        return COMMANDS[args.command](args, config)
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        return EXIT_INTERRUPTED
    except SyncError as exc:
        logger.debug("Command failed", exc_info=True)
        print(f"Error: {exc}", file=sys.stderr)
        return EXIT_ERROR
    except ValueError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return EXIT_ERROR
    except OSError as exc:
        logger.debug("I/O failure", exc_info=True)
        print(f"Error: {exc}", file=sys.stderr)
        return EXIT_ERROR


def run() -> None:
    """Console script entry point."""
    sys.exit(main())


if __name__ == "__main__":
    run()
