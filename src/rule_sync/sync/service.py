"""Service file generation for the auto-sync daemon.

Writes a systemd user unit (Linux) or a launchd agent plist (macOS)
that runs ``vdk-rule-sync auto-sync daemon`` in the project directory,
and returns the commands needed to activate it.  Nothing is installed
system-wide: the operator copies the file into place.

Usage:
    from rule_sync.sync.service import install_service
    result = install_service(project_dir=Path.cwd())
    print(result.path, result.instructions)
"""

from __future__ import annotations

import logging
import plistlib
import shlex
import shutil
import sys
import tempfile
from dataclasses import dataclass, field
from pathlib import Path

logger = logging.getLogger(__name__)

SERVICE_NAME = "vdk-rule-sync.service"
LAUNCHD_LABEL = "com.vdk.rule-sync"
DAEMON_LOG = "/tmp/vdk-rule-sync.log"


@dataclass
class ServiceInstallResult:
    """Outcome of ``install_service``.

    Attributes:
        platform: ``linux``, ``darwin`` or the unsupported platform name.
        path: Generated service file, ``None`` when unsupported.
        instructions: Shell commands the operator runs to activate it.
    """

    platform: str
    path: Path | None = None
    instructions: list[str] = field(default_factory=list)

    @property
    def supported(self) -> bool:
        return self.path is not None


def daemon_command(interval_minutes: int | None = None) -> list[str]:
    """Command line that starts the daemon."""
    executable = shutil.which("vdk-rule-sync")
    if executable:
        cmd = [executable]
    else:
        cmd = [sys.executable, "-m", "rule_sync"]
    cmd += ["auto-sync", "daemon"]
    if interval_minutes is not None:
        cmd.append(str(interval_minutes))
    return cmd


def render_systemd_unit(
    command: list[str], working_dir: Path
) -> str:
    """Render a systemd user unit running *command* in *working_dir*."""
    exec_start = " ".join(shlex.quote(part) for part in command)
    return (
        "[Unit]\n"
        "Description=VDK rule auto-sync\n"
        "After=network-online.target\n"
        "\n"
        "[Service]\n"
        "Type=simple\n"
        f"WorkingDirectory={working_dir}\n"
        f"ExecStart={exec_start}\n"
        "Restart=on-failure\n"
        "RestartSec=30\n"
        f"Environment=LOG_FILE={DAEMON_LOG}\n"
        "\n"
        "[Install]\n"
        "WantedBy=default.target\n"
    )


def render_launchd_plist(command: list[str], working_dir: Path) -> bytes:
    """Render a launchd agent plist running *command* in *working_dir*."""
    return plistlib.dumps(
        {
            "Label": LAUNCHD_LABEL,
            "ProgramArguments": command,
            "WorkingDirectory": str(working_dir),
            "RunAtLoad": True,
            "KeepAlive": True,
            "StandardOutPath": DAEMON_LOG,
            "StandardErrorPath": "/tmp/vdk-rule-sync.error.log",
        }
    )


def install_service(
    project_dir: Path,
    platform: str | None = None,
    output_dir: Path | None = None,
    interval_minutes: int | None = None,
) -> ServiceInstallResult:
    """Generate the service file for *platform* (default: this one).

    Args:
        project_dir: Working directory of the daemon.
        platform: ``sys.platform`` style name.
        output_dir: Where the file is written (default: temp dir).
        interval_minutes: Daemon interval baked into the command.

    Raises:
        OSError: If the file could not be written.
    """
    platform = platform or sys.platform
    target_dir = output_dir or Path(tempfile.gettempdir())
    command = daemon_command(interval_minutes)
    project_dir = project_dir.resolve()

    if platform.startswith("linux"):
        path = target_dir / SERVICE_NAME
        path.write_text(
            render_systemd_unit(command, project_dir), encoding="utf-8"
        )
        unit_dir = "~/.config/systemd/user"
        instructions = [
            f"mkdir -p {unit_dir}",
            f"cp {path} {unit_dir}/",
            "systemctl --user daemon-reload",
            f"systemctl --user enable --now {SERVICE_NAME}",
        ]
        logger.info("Systemd unit written to %s", path)
        return ServiceInstallResult("linux", path, instructions)

    if platform == "darwin":
        path = target_dir / f"{LAUNCHD_LABEL}.plist"
        path.write_bytes(render_launchd_plist(command, project_dir))
        agents = "~/Library/LaunchAgents"
        instructions = [
            f"cp {path} {agents}/",
            f"launchctl load {agents}/{path.name}",
        ]
        logger.info("Launchd plist written to %s", path)
        return ServiceInstallResult("darwin", path, instructions)

    logger.warning("Service installation not supported on %s", platform)
    return ServiceInstallResult(
        platform,
        None,
        [
            "Run the daemon manually: "
            + " ".join(shlex.quote(p) for p in command)
        ],
    )
