"""Remote snapshot fetcher.

Retrieves the remote repository's current revision and the list of
tracked files (with their content hashes) at that revision.  File bytes
are downloaded lazily, one file at a time, only for paths the classifier
says actually need remote content.

Any network or API failure surfaces as ``RemoteUnavailable``; a failed
fetch never yields a partial snapshot.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Protocol

from rule_sync.sync.errors import RemoteUnavailable
from rule_sync.sync.models import RemoteFile
from rule_sync.sync.patterns import in_scope
from rule_sync.sync.state import content_hash

if TYPE_CHECKING:
    from rule_sync.core.client import GitHubClient

logger = logging.getLogger(__name__)


class SnapshotFetcher(Protocol):
    """Protocol every remote fetcher must satisfy."""

    def current_revision(self) -> str:
        """Return the remote's current revision id (cheap call)."""
        ...  # pragma: no cover

    def fetch_tree(
        self,
        revision: str,
        include: Iterable[str],
        exclude: Iterable[str],
    ) -> RemoteSnapshot:
        """List in-scope files and their hashes at *revision*."""
        ...  # pragma: no cover

    def fetch_content(self, revision: str, path: str) -> bytes:
        """Download the bytes of *path* (local-relative) at *revision*."""
        ...  # pragma: no cover


@dataclass
class RemoteSnapshot:
    """The remote tree at one revision.

    Ephemeral: built fresh each cycle and discarded after reconciliation.
    Downloaded content is memoised so a path is fetched at most once per
    cycle (the interactive ``show-diff`` loop relies on this).
    """

    revision: str
    files: dict[str, RemoteFile]
    fetcher: SnapshotFetcher
    _content: dict[str, bytes] = field(default_factory=dict, repr=False)

    def hash_of(self, path: str) -> str | None:
        remote = self.files.get(path)
        return remote.content_hash if remote else None

    def fetch_content(self, path: str) -> bytes:
        """Return the bytes of *path* at this snapshot's revision.

        Raises:
            KeyError: If *path* is not part of the snapshot.
            RemoteUnavailable: If the download fails or the bytes do not
                match the hash listed for *path*.
        """
        if path not in self.files:
            raise KeyError(path)
        if path not in self._content:
            data = self.fetcher.fetch_content(self.revision, path)
            expected = self.files[path].content_hash
            if content_hash(data) != expected:
                raise RemoteUnavailable(
                    f"Content of {path} at {self.revision} does not match "
                    f"its listed hash {expected}"
                )
            self._content[path] = data
        return self._content[path]


class GitHubFetcher:
    """``SnapshotFetcher`` backed by a ``GitHubClient``.

    Args:
        client: Configured API client.
        branch: Branch whose head is the current revision.
        path_prefix: Remote directory holding the tracked files; local
            paths are remote paths with this prefix removed.
    """

    def __init__(
        self, client: GitHubClient, branch: str, path_prefix: str = ""
    ) -> None:
        self.client = client
        self.branch = branch
        self.path_prefix = path_prefix.strip("/")

    def current_revision(self) -> str:
        return self.client.get_head_revision(self.branch)

    def fetch_tree(
        self,
        revision: str,
        include: Iterable[str],
        exclude: Iterable[str],
    ) -> RemoteSnapshot:
        include = list(include)
        exclude = list(exclude)
        files: dict[str, RemoteFile] = {}
        for item in self.client.get_tree(revision):
            local_path = self._to_local(item["path"])
            if local_path is None:
                continue
            if not in_scope(local_path, include, exclude):
                continue
            files[local_path] = RemoteFile(
                path=local_path,
                remote_path=item["path"],
                content_hash=item["sha"],
                size=item["size"],
            )
        logger.debug(
            "Remote tree at %s: %d tracked files", revision, len(files)
        )
        return RemoteSnapshot(revision=revision, files=files, fetcher=self)

    def fetch_content(self, revision: str, path: str) -> bytes:
        return self.client.get_raw(revision, self._to_remote(path))

    def _to_local(self, remote_path: str) -> str | None:
        if not self.path_prefix:
            return remote_path
        prefix = self.path_prefix + "/"
        if not remote_path.startswith(prefix):
            return None
        return remote_path[len(prefix) :]

    def _to_remote(self, local_path: str) -> str:
        if not self.path_prefix:
            return local_path
        return f"{self.path_prefix}/{local_path}"


def checked_revision(fetcher: SnapshotFetcher) -> str:
    """Call ``current_revision()`` and reject empty answers."""
    revision = fetcher.current_revision()
    if not revision:
        raise RemoteUnavailable("Remote returned an empty revision id")
    return revision
