"""Remote repository access shared between the CLI and the sync engine."""

from .client import GitHubClient

__all__ = ["GitHubClient"]
