"""Runtime configuration for the rule sync engine.

Reads remote repository and local path settings from CLI args,
environment variables, .env files, and YAML config file fallbacks.

Precedence (highest to lowest):
    CLI args > Environment variables > .env file > YAML config > Built-in defaults

Environment variables:
    RULE_SYNC_REPO: Remote repository slug ``owner/name``
    RULE_SYNC_BRANCH: Branch to sync (default: main)
    RULE_SYNC_RULES_DIR: Local rules directory (default: templates)
    RULE_SYNC_STATE_FILE: Sync state file (default: vdk.config.json)
    RULE_SYNC_TIMEOUT: Network timeout in seconds (default: 30)
    GITHUB_TOKEN: Optional API token
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any
from urllib.parse import urlparse

from dotenv import load_dotenv

from .config_loader import load_hierarchical_config
from .config_schema import DEFAULT_REPO, UnifiedConfig, build_config

logger = logging.getLogger(__name__)

DEFAULT_BRANCH = "main"
DEFAULT_RULES_DIR = "templates"
DEFAULT_STATE_FILE = "vdk.config.json"
DEFAULT_LOCK_FILE = ".vdk/sync.lock"
DEFAULT_TIMEOUT = 30.0


@dataclass
class Config:
    repo_owner: str
    repo_name: str
    branch: str = DEFAULT_BRANCH
    path_prefix: str = ""
    api_url: str = "https://api.github.com"
    raw_url: str = "https://raw.githubusercontent.com"
    token: str | None = None
    timeout: float = DEFAULT_TIMEOUT
    rules_dir: Path = Path(DEFAULT_RULES_DIR)
    state_file: Path = Path(DEFAULT_STATE_FILE)
    lock_file: Path = Path(DEFAULT_LOCK_FILE)
    lock_stale_seconds: int = 600
    debug: bool = False

    @property
    def repo_slug(self) -> str:
        return f"{self.repo_owner}/{self.repo_name}"


def parse_repo_slug(slug: str) -> tuple[str, str]:
    """Split ``owner/name`` into its parts.

    Raises:
        ValueError: If *slug* is not exactly two non-empty segments.
    """
    parts = slug.strip().strip("/").split("/")
    if len(parts) != 2 or not all(p.strip() for p in parts):
        raise ValueError(
            f"Invalid repository '{slug}': expected the form owner/name"
        )
    return parts[0].strip(), parts[1].strip()


def validate_config(config: Config) -> None:
    """Validate configuration values and raise ValueError if invalid.

    Normalises URLs (trailing slash) and the path prefix in place.
    """
    for label in ("api_url", "raw_url"):
        url = getattr(config, label).strip()
        if not url.startswith(("http://", "https://")):
            raise ValueError(
                f"Invalid {label} '{url}': must start with http:// or https://"
            )
        if not urlparse(url).hostname:
            raise ValueError(
                f"Invalid {label} '{url}': URL must include a hostname"
            )
        setattr(config, label, url.removesuffix("/"))

    if not (1 <= config.timeout <= 600):
        raise ValueError(
            f"Invalid timeout '{config.timeout}': must be between 1 and 600 seconds"
        )

    if not config.branch.strip():
        raise ValueError("Branch cannot be empty.")

    config.path_prefix = config.path_prefix.strip("/")

    if config.api_url.startswith("http://"):
        logger.warning(
            "Remote API URL is not using HTTPS: %s", config.api_url
        )


def load_config(
    repo: str | None = None,
    branch: str | None = None,
    rules_dir: str | None = None,
    state_file: str | None = None,
    timeout: float | None = None,
    debug: bool = False,
    unified: UnifiedConfig | None = None,
) -> Config:
    """Load configuration with unified precedence.

    Resolution order for each field (highest to lowest):
        CLI arg > env var / .env > YAML (``unified``) > built-in default

    The caller is responsible for calling ``load_dotenv()`` first so that
    .env values are visible through ``os.getenv()``.

    Returns:
        Validated Config instance.

    Raises:
        ValueError: If a value is malformed.
    """
    yaml_cfg = unified or UnifiedConfig()
    remote = yaml_cfg.remote
    paths = yaml_cfg.sync

    slug = repo or os.getenv("RULE_SYNC_REPO") or remote.repo or DEFAULT_REPO
    owner, name = parse_repo_slug(slug)

    final_branch = (
        branch
        or os.getenv("RULE_SYNC_BRANCH")
        or remote.branch
        or DEFAULT_BRANCH
    )

    final_rules_dir = (
        rules_dir
        or os.getenv("RULE_SYNC_RULES_DIR")
        or paths.rules_dir
        or DEFAULT_RULES_DIR
    )
    final_state_file = (
        state_file
        or os.getenv("RULE_SYNC_STATE_FILE")
        or paths.state_file
        or DEFAULT_STATE_FILE
    )

    if timeout is not None:
        final_timeout = float(timeout)
    else:
        timeout_raw = os.getenv("RULE_SYNC_TIMEOUT")
        if timeout_raw is not None:
            try:
                final_timeout = float(timeout_raw)
            except ValueError:
                raise ValueError(
                    f"Invalid RULE_SYNC_TIMEOUT '{timeout_raw}': must be a number between 1 and 600"
                ) from None
        elif remote.timeout is not None:
            final_timeout = remote.timeout
        else:
            final_timeout = DEFAULT_TIMEOUT

    config = Config(
        repo_owner=owner,
        repo_name=name,
        branch=final_branch.strip(),
        path_prefix=remote.path_prefix,
        api_url=remote.api_url,
        raw_url=remote.raw_url,
        token=os.getenv("GITHUB_TOKEN") or remote.token or None,
        timeout=final_timeout,
        rules_dir=Path(final_rules_dir).expanduser(),
        state_file=Path(final_state_file).expanduser(),
        lock_file=Path(paths.lock_file or DEFAULT_LOCK_FILE).expanduser(),
        lock_stale_seconds=paths.lock_stale_seconds,
        debug=debug,
    )

    validate_config(config)

    return config


def resolve_config(
    cli_overrides: dict[str, Any] | None = None,
) -> tuple[Config, UnifiedConfig]:
    """Load .env, YAML files and environment, then apply CLI overrides.

    Args:
        cli_overrides: Optional dict with keys accepted by
            ``load_config()`` (repo, branch, rules_dir, state_file,
            timeout, debug).

    Returns:
        The runtime ``Config`` and the ``UnifiedConfig`` it was built on
        (the latter carries the logging section).
    """
    # .env first so ${VAR} interpolation in YAML can use its values.
    load_dotenv()
    unified = build_config(load_hierarchical_config())
    overrides = cli_overrides or {}
    config = load_config(unified=unified, **overrides)
    return config, unified
