"""Tests for conflict policies and the prompt boundary."""

from __future__ import annotations

import pytest

from rule_sync.sync.errors import InteractiveRequired
from rule_sync.sync.models import (
    Classification,
    ConflictPolicy,
    DecisionAction,
    FileClass,
)
from rule_sync.sync.resolver import (
    BackupStrategy,
    LocalWinsStrategy,
    PromptStrategy,
    RemoteWinsStrategy,
    create_strategy,
    resolve,
)

from tests.conftest import FakePrompt

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

REMOTE = {"a.mdc": b"remote a\n", "b.mdc": b"remote b\n", "c.mdc": b"remote c\n"}


def _classification(
    path: str,
    file_class: FileClass,
    *,
    base: str | None = "h0",
    local: str | None = "h1",
    remote: str | None = "h2",
) -> Classification:
    return Classification(
        path=path,
        file_class=file_class,
        base_hash=base,
        local_hash=local,
        remote_hash=remote,
    )


class _Loader:
    def __init__(self) -> None:
        self.calls: list[str] = []

    def __call__(self, path: str) -> bytes:
        self.calls.append(path)
        return REMOTE[path]


def _local(path: str) -> bytes:
    return b"local " + path.encode()


# ---------------------------------------------------------------------------
# Non-conflicted classes
# ---------------------------------------------------------------------------


class TestNonConflicted:
    @pytest.mark.parametrize("policy", list(ConflictPolicy))
    def test_same_under_every_policy(self, policy: ConflictPolicy):
        loader = _Loader()
        decisions = resolve(
            [
                _classification("a.mdc", FileClass.UNCHANGED),
                _classification("b.mdc", FileClass.REMOTE_ONLY_CHANGED),
                _classification("c.mdc", FileClass.LOCAL_ONLY_CHANGED),
                _classification("d.mdc", FileClass.CONVERGED, local="h2"),
            ],
            policy,
            load_remote=loader,
        )
        actions = [d.action for d in decisions]
        assert actions == [
            DecisionAction.SKIP,
            DecisionAction.OVERWRITE,
            DecisionAction.SKIP,
            DecisionAction.KEEP,
        ]
        assert decisions[1].content == b"remote b\n"
        assert [d.commit for d in decisions] == [False, True, False, True]
        # Only the overwritten path is downloaded.
        assert loader.calls == ["b.mdc"]

    def test_remote_deletion_has_no_content(self):
        loader = _Loader()
        [d] = resolve(
            [
                _classification(
                    "gone.mdc", FileClass.REMOTE_ONLY_CHANGED, local="h0", remote=None
                )
            ],
            ConflictPolicy.PROMPT,
            load_remote=loader,
        )
        assert d.action == DecisionAction.OVERWRITE
        assert d.deletes
        assert d.remote_hash is None
        assert loader.calls == []


# ---------------------------------------------------------------------------
# Conflict policies
# ---------------------------------------------------------------------------


class TestPolicies:
    def _resolve(self, policy, classification=None, prompt=None):
        c = classification or _classification("a.mdc", FileClass.CONFLICTED)
        [decision] = resolve(
            [c], policy, load_remote=_Loader(), load_local=_local, prompt=prompt
        )
        return decision

    def test_remote_wins_overwrites(self):
        d = self._resolve(ConflictPolicy.REMOTE)
        assert d.action == DecisionAction.OVERWRITE
        assert d.content == REMOTE["a.mdc"]
        assert d.remote_hash == "h2"
        assert d.commit is True

    def test_local_wins_keeps_and_does_not_commit(self):
        d = self._resolve(ConflictPolicy.LOCAL)
        assert d.action == DecisionAction.KEEP
        assert d.content is None
        assert d.commit is False

    def test_local_wins_with_remote_deletion_untracks(self):
        c = _classification("a.mdc", FileClass.CONFLICTED, remote=None)
        d = self._resolve(ConflictPolicy.LOCAL, c)
        assert d.action == DecisionAction.KEEP
        assert d.commit is True
        assert d.remote_hash is None

    def test_backup_then_overwrite(self):
        d = self._resolve(ConflictPolicy.BACKUP)
        assert d.action == DecisionAction.BACKUP_THEN_OVERWRITE
        assert d.content == REMOTE["a.mdc"]
        assert d.commit is True

    @pytest.mark.parametrize(
        "policy", [ConflictPolicy.REMOTE, ConflictPolicy.BACKUP]
    )
    def test_remote_deletion_deletes_local(self, policy):
        c = _classification("a.mdc", FileClass.CONFLICTED, remote=None)
        d = self._resolve(policy, c)
        assert d.deletes
        assert d.remote_hash is None

    @pytest.mark.parametrize(
        "policy",
        [ConflictPolicy.REMOTE, ConflictPolicy.LOCAL, ConflictPolicy.BACKUP],
    )
    def test_policy_determinism(self, policy):
        classifications = [
            _classification(p, FileClass.CONFLICTED) for p in sorted(REMOTE)
        ]
        first = resolve(classifications, policy, load_remote=_Loader())
        second = resolve(classifications, policy, load_remote=_Loader())
        assert first == second
        assert [d.path for d in first] == sorted(REMOTE)


# ---------------------------------------------------------------------------
# Prompt policy
# ---------------------------------------------------------------------------


class TestPromptPolicy:
    def test_headless_fails_fast_before_any_decision(self):
        loader = _Loader()
        with pytest.raises(InteractiveRequired):
            resolve(
                [
                    _classification("b.mdc", FileClass.REMOTE_ONLY_CHANGED),
                    _classification("a.mdc", FileClass.CONFLICTED),
                ],
                ConflictPolicy.PROMPT,
                load_remote=loader,
            )
        assert loader.calls == []

    def test_headless_without_conflicts_is_fine(self):
        decisions = resolve(
            [_classification("b.mdc", FileClass.REMOTE_ONLY_CHANGED)],
            ConflictPolicy.PROMPT,
            load_remote=_Loader(),
        )
        assert decisions[0].action == DecisionAction.OVERWRITE

    @pytest.mark.parametrize(
        "answer,action",
        [
            ("use-remote", DecisionAction.OVERWRITE),
            ("keep-local", DecisionAction.KEEP),
            ("backup", DecisionAction.BACKUP_THEN_OVERWRITE),
        ],
    )
    def test_answers_map_to_policies(self, answer, action):
        prompt = FakePrompt(answer)
        [d] = resolve(
            [_classification("a.mdc", FileClass.CONFLICTED)],
            ConflictPolicy.PROMPT,
            load_remote=_Loader(),
            load_local=_local,
            prompt=prompt,
        )
        assert d.action == action
        assert prompt.asked == ["a.mdc"]

    def test_show_diff_reasks_same_path_without_refetch(self):
        loader = _Loader()

        class DiffPrompt(FakePrompt):
            def show_diff(self, pending):
                super().show_diff(pending)
                assert pending.remote_content() == REMOTE[pending.path]
                assert pending.local_content() == _local(pending.path)

        prompt = DiffPrompt("show-diff", "show-diff", "use-remote", "keep-local")
        decisions = resolve(
            [
                _classification("a.mdc", FileClass.CONFLICTED),
                _classification("b.mdc", FileClass.CONFLICTED),
            ],
            ConflictPolicy.PROMPT,
            load_remote=loader,
            load_local=_local,
            prompt=prompt,
        )
        assert prompt.asked == ["a.mdc", "a.mdc", "a.mdc", "b.mdc"]
        assert prompt.diffs == ["a.mdc", "a.mdc"]
        assert [d.action for d in decisions] == [
            DecisionAction.OVERWRITE,
            DecisionAction.KEEP,
        ]
        assert loader.calls == ["a.mdc"]

    def test_unknown_answer_is_asked_again(self):
        prompt = FakePrompt("merge", "keep-local")
        [d] = resolve(
            [_classification("a.mdc", FileClass.CONFLICTED)],
            ConflictPolicy.PROMPT,
            load_remote=_Loader(),
            prompt=prompt,
        )
        assert d.action == DecisionAction.KEEP
        assert len(prompt.asked) == 2


class TestCreateStrategy:
    def test_factory(self):
        assert isinstance(create_strategy(ConflictPolicy.REMOTE), RemoteWinsStrategy)
        assert isinstance(create_strategy(ConflictPolicy.LOCAL), LocalWinsStrategy)
        assert isinstance(create_strategy(ConflictPolicy.BACKUP), BackupStrategy)
        assert isinstance(
            create_strategy(ConflictPolicy.PROMPT, FakePrompt()), PromptStrategy
        )

    def test_prompt_without_adapter_raises(self):
        with pytest.raises(InteractiveRequired):
            create_strategy(ConflictPolicy.PROMPT)

    def test_policy_parse_accepts_wins_suffix(self):
        assert ConflictPolicy.parse("remote-wins") == ConflictPolicy.REMOTE
        assert ConflictPolicy.parse(" Local ") == ConflictPolicy.LOCAL
        with pytest.raises(ValueError):
            ConflictPolicy.parse("merge")
