"""Shared pytest fixtures for vdk-rule-sync tests."""

from __future__ import annotations

import threading
from pathlib import Path

import pytest

from rule_sync.config import Config
from rule_sync.sync.engine import SyncEngine
from rule_sync.sync.errors import RemoteUnavailable
from rule_sync.sync.models import RemoteFile
from rule_sync.sync.patterns import in_scope
from rule_sync.sync.remote import RemoteSnapshot
from rule_sync.sync.state import StateStore, content_hash


class FakeFetcher:
    """In-memory ``SnapshotFetcher``.

    ``files`` maps local paths to bytes at the current ``revision``.
    Setting ``gate`` makes ``current_revision()`` signal ``entered`` and
    then block until the gate is set.
    """

    def __init__(
        self, files: dict[str, bytes] | None = None, revision: str = "rev1"
    ) -> None:
        self.files = dict(files or {})
        self.revision = revision
        self.fail = False
        self.gate: threading.Event | None = None
        self.entered = threading.Event()
        self.content_calls: list[str] = []
        self.tree_calls = 0

    def publish(
        self, revision: str, changes: dict[str, bytes | None]
    ) -> None:
        """Move to *revision*, applying *changes* (``None`` deletes)."""
        self.revision = revision
        for path, data in changes.items():
            if data is None:
                self.files.pop(path, None)
            else:
                self.files[path] = data

    def current_revision(self) -> str:
        self.entered.set()
        if self.gate is not None:
            self.gate.wait(timeout=5)
        if self.fail:
            raise RemoteUnavailable("remote down")
        return self.revision

    def fetch_tree(self, revision, include, exclude) -> RemoteSnapshot:
        if self.fail:
            raise RemoteUnavailable("remote down")
        self.tree_calls += 1
        include = list(include)
        exclude = list(exclude)
        files = {
            path: RemoteFile(
                path=path,
                remote_path=path,
                content_hash=content_hash(data),
                size=len(data),
            )
            for path, data in self.files.items()
            if in_scope(path, include, exclude)
        }
        return RemoteSnapshot(revision=revision, files=files, fetcher=self)

    def fetch_content(self, revision: str, path: str) -> bytes:
        if self.fail:
            raise RemoteUnavailable("remote down")
        self.content_calls.append(path)
        return self.files[path]


class FakePrompt:
    """``ConflictPrompt`` that replays scripted answers."""

    def __init__(self, *answers: str) -> None:
        self.answers = list(answers)
        self.asked: list[str] = []
        self.diffs: list[str] = []

    def ask(self, pending) -> str:
        self.asked.append(pending.path)
        return self.answers.pop(0)

    def show_diff(self, pending) -> None:
        self.diffs.append(pending.path)


def write_rule(root: Path, rel: str, data: bytes) -> Path:
    """Write *data* to ``root/rel``, creating directories."""
    target = root / rel
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_bytes(data)
    return target


@pytest.fixture
def rules_dir(tmp_path: Path) -> Path:
    root = tmp_path / "templates"
    root.mkdir()
    return root


@pytest.fixture
def store(tmp_path: Path) -> StateStore:
    return StateStore(tmp_path / "vdk.config.json")


@pytest.fixture
def fetcher() -> FakeFetcher:
    return FakeFetcher()


@pytest.fixture
def engine(store: StateStore, fetcher: FakeFetcher, rules_dir: Path) -> SyncEngine:
    return SyncEngine(store=store, fetcher=fetcher, rules_root=rules_dir)


@pytest.fixture
def mock_config(tmp_path: Path) -> Config:
    """Create a Config instance for testing."""
    return Config(
        repo_owner="octo",
        repo_name="rules",
        branch="main",
        token="test-token",
        timeout=5.0,
        rules_dir=tmp_path / "templates",
        state_file=tmp_path / "vdk.config.json",
        lock_file=tmp_path / ".vdk" / "sync.lock",
    )
