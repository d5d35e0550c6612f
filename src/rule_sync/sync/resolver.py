"""Conflict resolution for the rule sync engine.

Turns classifications into ``ConflictDecision`` values.  Non-conflicted
classes are handled the same way under every policy:

- ``UNCHANGED`` / ``LOCAL_ONLY_CHANGED``: skip, local file untouched.
- ``REMOTE_ONLY_CHANGED``: overwrite (or delete) with remote content.
- ``CONVERGED``: keep the local file and record it as synced.

Conflicted paths go through a strategy chosen by the policy:

- ``RemoteWinsStrategy``: overwrite with remote content.
- ``LocalWinsStrategy``: keep local content, leave the base untouched so
  the path is reported as conflicted again next cycle.
- ``BackupStrategy``: copy the local file aside, then overwrite.
- ``PromptStrategy``: ask a ``ConflictPrompt`` per path.  The resolver
  does no terminal I/O itself; it hands a ``PendingDecision`` to the
  prompt and maps the answer onto one of the strategies above.

The ``create_strategy()`` factory maps policies to strategy instances.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Protocol

from rule_sync.sync.errors import InteractiveRequired
from rule_sync.sync.models import (
    Classification,
    ConflictDecision,
    ConflictPolicy,
    DecisionAction,
    FileClass,
)

logger = logging.getLogger(__name__)

ContentLoader = Callable[[str], bytes]
LocalLoader = Callable[[str], "bytes | None"]


class PromptAnswer(str, Enum):
    """Answers an operator can give for one conflicted path."""

    USE_REMOTE = "use-remote"
    KEEP_LOCAL = "keep-local"
    BACKUP = "backup"
    SHOW_DIFF = "show-diff"


@dataclass
class PendingDecision:
    """A conflicted path waiting for an operator answer.

    Content is loaded lazily and cached, so re-asking after ``show-diff``
    never downloads the remote file twice.
    """

    classification: Classification
    load_remote: ContentLoader = field(repr=False)
    load_local: LocalLoader = field(repr=False)
    _remote: bytes | None = field(default=None, repr=False)
    _local: bytes | None = field(default=None, repr=False)
    _local_loaded: bool = field(default=False, repr=False)

    @property
    def path(self) -> str:
        return self.classification.path

    @property
    def remote_deleted(self) -> bool:
        return self.classification.remote_hash is None

    def remote_content(self) -> bytes | None:
        """Remote bytes, or ``None`` when the remote deleted the file."""
        if self.remote_deleted:
            return None
        if self._remote is None:
            self._remote = self.load_remote(self.path)
        return self._remote

    def local_content(self) -> bytes | None:
        """Local bytes, or ``None`` when the local file is absent."""
        if not self._local_loaded:
            self._local = self.load_local(self.path)
            self._local_loaded = True
        return self._local


# ---------------------------------------------------------------------------
# Protocols
# ---------------------------------------------------------------------------


class ConflictPrompt(Protocol):
    """Boundary adapter that asks an operator about one conflict."""

    def ask(self, pending: PendingDecision) -> PromptAnswer | str:
        """Return the operator's answer for *pending*."""
        ...  # pragma: no cover

    def show_diff(self, pending: PendingDecision) -> None:
        """Present local vs remote content for *pending*."""
        ...  # pragma: no cover


class ConflictStrategy(Protocol):
    """Protocol that all conflict strategies must satisfy."""

    def decide(self, pending: PendingDecision) -> ConflictDecision:
        """Produce the decision for one conflicted path."""
        ...  # pragma: no cover


# ---------------------------------------------------------------------------
# Decision builders
# ---------------------------------------------------------------------------


def take_remote(
    pending: PendingDecision, backup: bool = False
) -> ConflictDecision:
    """Decision that replaces the local file with the remote side."""
    return ConflictDecision(
        path=pending.path,
        file_class=pending.classification.file_class,
        action=(
            DecisionAction.BACKUP_THEN_OVERWRITE
            if backup
            else DecisionAction.OVERWRITE
        ),
        content=pending.remote_content(),
        remote_hash=pending.classification.remote_hash,
        commit=True,
    )


def keep_local(pending: PendingDecision) -> ConflictDecision:
    """Decision that keeps the local file as it is.

    The base record is left alone so the divergence is reported again on
    the next cycle.  When the remote deleted the file the record is
    dropped instead: the kept file becomes an untracked local file.
    """
    return ConflictDecision(
        path=pending.path,
        file_class=pending.classification.file_class,
        action=DecisionAction.KEEP,
        remote_hash=None,
        commit=pending.remote_deleted,
    )


# ---------------------------------------------------------------------------
# Strategies
# ---------------------------------------------------------------------------


class RemoteWinsStrategy:
    """Always resolve conflicts in favour of the remote content."""

    def decide(self, pending: PendingDecision) -> ConflictDecision:
        return take_remote(pending)


class LocalWinsStrategy:
    """Always keep the local content."""

    def decide(self, pending: PendingDecision) -> ConflictDecision:
        return keep_local(pending)


class BackupStrategy:
    """Back up the local file, then take the remote content."""

    def decide(self, pending: PendingDecision) -> ConflictDecision:
        return take_remote(pending, backup=True)


class PromptStrategy:
    """Ask an operator for every conflicted path.

    ``show-diff`` re-prompts only the same path; unknown answers are
    logged and asked again.
    """

    def __init__(self, prompt: ConflictPrompt) -> None:
        self.prompt = prompt

    def decide(self, pending: PendingDecision) -> ConflictDecision:
        while True:
            raw = self.prompt.ask(pending)
            try:
                answer = PromptAnswer(raw)
            except ValueError:
                logger.warning(
                    "Unknown answer %r for %s, asking again",
                    raw,
                    pending.path,
                )
                continue

            match answer:
                case PromptAnswer.USE_REMOTE:
                    return take_remote(pending)
                case PromptAnswer.KEEP_LOCAL:
                    return keep_local(pending)
                case PromptAnswer.BACKUP:
                    return take_remote(pending, backup=True)
                case PromptAnswer.SHOW_DIFF:
                    self.prompt.show_diff(pending)


def create_strategy(
    policy: ConflictPolicy, prompt: ConflictPrompt | None = None
) -> ConflictStrategy:
    """Create the conflict strategy for *policy*.

    Raises:
        InteractiveRequired: If *policy* is ``prompt`` and no prompt
            adapter is attached.
    """
    match ConflictPolicy(policy):
        case ConflictPolicy.REMOTE:
            return RemoteWinsStrategy()
        case ConflictPolicy.LOCAL:
            return LocalWinsStrategy()
        case ConflictPolicy.BACKUP:
            return BackupStrategy()
        case ConflictPolicy.PROMPT:
            if prompt is None:
                raise InteractiveRequired(
                    "Conflict policy 'prompt' needs an interactive session; "
                    "run 'sync' from a terminal or choose the remote, local "
                    "or backup policy"
                )
            return PromptStrategy(prompt)
    raise ValueError(f"Unknown conflict policy: {policy!r}")


# ---------------------------------------------------------------------------
# Resolution pass
# ---------------------------------------------------------------------------


def _non_conflict_decision(
    c: Classification, load_remote: ContentLoader
) -> ConflictDecision:
    if c.file_class == FileClass.REMOTE_ONLY_CHANGED:
        content = (
            load_remote(c.path) if c.remote_hash is not None else None
        )
        return ConflictDecision(
            path=c.path,
            file_class=c.file_class,
            action=DecisionAction.OVERWRITE,
            content=content,
            remote_hash=c.remote_hash,
            commit=True,
        )
    if c.file_class == FileClass.CONVERGED:
        return ConflictDecision(
            path=c.path,
            file_class=c.file_class,
            action=DecisionAction.KEEP,
            remote_hash=c.remote_hash,
            commit=True,
        )
    return ConflictDecision(
        path=c.path,
        file_class=c.file_class,
        action=DecisionAction.SKIP,
        remote_hash=c.remote_hash,
        commit=False,
    )


def resolve(
    classifications: list[Classification],
    policy: ConflictPolicy,
    load_remote: ContentLoader,
    load_local: LocalLoader | None = None,
    prompt: ConflictPrompt | None = None,
) -> list[ConflictDecision]:
    """Produce one decision per classification, in input order.

    Remote content is downloaded only for paths whose decision writes it.

    Args:
        classifications: Output of the classifier.
        policy: Conflict policy for ``CONFLICTED`` paths.
        load_remote: Returns remote bytes for a path.
        load_local: Returns local bytes for a path (used by prompts).
        prompt: Operator adapter, required for the ``prompt`` policy
            when conflicts exist.

    Raises:
        InteractiveRequired: Policy is ``prompt``, at least one path is
            conflicted and no prompt is attached.  Raised before any
            decision is produced.
    """
    conflicted = [
        c for c in classifications if c.file_class == FileClass.CONFLICTED
    ]
    strategy = create_strategy(policy, prompt) if conflicted else None
    local_loader: LocalLoader = load_local or (lambda _path: None)

    decisions: list[ConflictDecision] = []
    for c in classifications:
        if c.file_class != FileClass.CONFLICTED:
            decisions.append(_non_conflict_decision(c, load_remote))
            continue
        assert strategy is not None
        pending = PendingDecision(
            classification=c,
            load_remote=load_remote,
            load_local=local_loader,
        )
        decision = strategy.decide(pending)
        logger.info(
            "Conflict on %s resolved as %s", c.path, decision.action.value
        )
        decisions.append(decision)
    return decisions
