"""Unified configuration schema for rule_sync.

Defines Pydantic models for the YAML config structure with dedicated
sections for the remote repository, local sync paths, and logging.

Usage:
    from rule_sync.config_loader import load_hierarchical_config
    from rule_sync.config_schema import build_config

    unified = build_config(load_hierarchical_config())
    unified.remote.branch
"""

from __future__ import annotations

import logging

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

DEFAULT_REPO = "idominikosgr/VibeKit-VDK-AI-rules"
DEFAULT_API_URL = "https://api.github.com"
DEFAULT_RAW_URL = "https://raw.githubusercontent.com"


# ---------------------------------------------------------------------------
# Section models
# ---------------------------------------------------------------------------


class RemoteConfig(BaseModel):
    """Remote content repository settings.

    ``token`` is optional; it is normally supplied through the
    ``GITHUB_TOKEN`` environment variable and is never persisted in the
    sync state file.
    """

    repo: str | None = Field(
        default=None, description="Repository slug, e.g. owner/name"
    )
    branch: str | None = Field(
        default=None, description="Branch whose head is synced"
    )
    path_prefix: str = Field(
        default="",
        description="Only sync files under this remote directory",
    )
    api_url: str = Field(
        default=DEFAULT_API_URL, description="Content API base URL"
    )
    raw_url: str = Field(
        default=DEFAULT_RAW_URL, description="Raw file download base URL"
    )
    token: str | None = Field(default=None, description="API token")
    timeout: float | None = Field(
        default=None,
        gt=0,
        le=600,
        description="Network timeout in seconds (1-600)",
    )

    model_config = {"frozen": True}


class SyncPathsConfig(BaseModel):
    """Local locations used by the sync engine."""

    rules_dir: str | None = Field(
        default=None, description="Directory holding the synced rules"
    )
    state_file: str | None = Field(
        default=None, description="JSON sync state file"
    )
    lock_file: str | None = Field(
        default=None, description="Advisory lock file"
    )
    lock_stale_seconds: int = Field(
        default=600,
        ge=1,
        description="Age after which a lock naming no owner pid is broken",
    )

    model_config = {"frozen": True}


class LoggingConfig(BaseModel):
    """Logging configuration.

    Attributes:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        file: Optional log file path.
    """

    level: str = Field(default="INFO", description="Log level")
    file: str | None = Field(default=None, description="Log file path")

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Top-level unified config
# ---------------------------------------------------------------------------


class UnifiedConfig(BaseModel):
    """Top-level configuration.

    Every section has defaults, so ``UnifiedConfig()`` (zero-config) is
    always valid.
    """

    remote: RemoteConfig = Field(default_factory=RemoteConfig)
    sync: SyncPathsConfig = Field(default_factory=SyncPathsConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = {"frozen": True}


def build_config(raw_data: dict) -> UnifiedConfig:
    """Construct a ``UnifiedConfig`` from the dict returned by
    ``load_hierarchical_config()``.

    Unknown top-level sections are ignored with a warning; missing
    sections get defaults.

    Raises:
        pydantic.ValidationError: If a known section has invalid values.
    """
    if not raw_data:
        return UnifiedConfig()

    known = set(UnifiedConfig.model_fields)
    unknown = sorted(set(raw_data) - known)
    if unknown:
        logger.warning(
            "Ignoring unknown config sections: %s", ", ".join(unknown)
        )
    return UnifiedConfig(
        **{
            k: v
            for k, v in raw_data.items()
            if k in known and v is not None
        }
    )
