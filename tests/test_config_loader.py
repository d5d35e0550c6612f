"""Tests for rule_sync.config_loader: hierarchical config loading."""

import textwrap
from pathlib import Path
from unittest.mock import patch

import pytest
import yaml

from rule_sync.config_loader import (
    _interpolate_recursive,
    discover_config_files,
    ensure_config,
    interpolate_env_vars,
    load_hierarchical_config,
)


@pytest.fixture
def isolated(tmp_path, monkeypatch):
    """Run in an empty CWD with a fake HOME and no explicit config."""
    monkeypatch.delenv("RULE_SYNC_CONFIG", raising=False)
    monkeypatch.chdir(tmp_path)
    home = tmp_path / "home"
    monkeypatch.setenv("HOME", str(home))
    return tmp_path


def _write(path: Path, text: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(textwrap.dedent(text))
    return path


# -------------------------------------------------------------------------
# Env var interpolation
# -------------------------------------------------------------------------


class TestInterpolateEnvVars:
    """Tests for ${VAR} and ${VAR:-default} substitution."""

    def test_replaces_set_var(self, monkeypatch):
        monkeypatch.setenv("RULES_REPO", "octo/rules")
        assert interpolate_env_vars("${RULES_REPO}") == "octo/rules"

    def test_unset_var_replaced_with_empty(self, monkeypatch):
        monkeypatch.delenv("UNSET_VAR_XYZ", raising=False)
        assert interpolate_env_vars("${UNSET_VAR_XYZ}") == ""

    def test_default_used_when_unset(self, monkeypatch):
        monkeypatch.delenv("UNSET_VAR_XYZ", raising=False)
        assert interpolate_env_vars("${UNSET_VAR_XYZ:-main}") == "main"

    def test_empty_env_var_uses_default(self, monkeypatch):
        monkeypatch.setenv("EMPTY_VAR", "")
        assert interpolate_env_vars("${EMPTY_VAR:-x}") == "x"

    def test_nested_structures(self, monkeypatch):
        monkeypatch.setenv("TOKEN_X", "secret")
        data = {"remote": {"token": "${TOKEN_X}", "timeout": 5}, "l": ["${TOKEN_X}"]}
        assert _interpolate_recursive(data) == {
            "remote": {"token": "secret", "timeout": 5},
            "l": ["secret"],
        }


# -------------------------------------------------------------------------
# Discovery
# -------------------------------------------------------------------------


class TestDiscoverConfigFiles:
    def test_env_var_takes_highest_precedence(self, isolated, monkeypatch):
        custom = _write(isolated / "custom.yml", "remote: {}\n")
        _write(isolated / ".vdk" / "config.yml", "remote: {}\n")
        monkeypatch.setenv("RULE_SYNC_CONFIG", str(custom))

        result = discover_config_files()
        assert result[0] == custom.resolve()
        assert len(result) == 2

    def test_project_before_global(self, isolated):
        project = _write(isolated / ".vdk" / "config.yml", "a: 1\n")
        global_cfg = _write(
            isolated / "home" / ".config" / "vdk-rule-sync" / "config.yml",
            "b: 2\n",
        )
        result = discover_config_files()
        assert result.index(project) < result.index(global_cfg)

    def test_yaml_extension(self, isolated):
        alt = _write(isolated / ".vdk" / "config.yaml", "a: 1\n")
        assert alt in discover_config_files()

    def test_missing_files_excluded(self, isolated):
        assert discover_config_files() == []


# -------------------------------------------------------------------------
# Hierarchical merge
# -------------------------------------------------------------------------


class TestLoadHierarchicalConfig:
    def test_zero_config_returns_empty_dict(self, isolated):
        assert load_hierarchical_config() == {}

    def test_project_overrides_global_at_section_level(self, isolated):
        _write(
            isolated / "home" / ".config" / "vdk-rule-sync" / "config.yml",
            """\
            remote:
              repo: global/rules
            logging:
              level: DEBUG
            """,
        )
        _write(
            isolated / ".vdk" / "config.yml",
            """\
            remote:
              branch: dev
            """,
        )
        result = load_hierarchical_config()
        assert result["remote"] == {"branch": "dev"}
        assert result["logging"] == {"level": "DEBUG"}

    def test_env_var_interpolation_after_merge(self, isolated, monkeypatch):
        monkeypatch.setenv("MY_BRANCH", "release")
        _write(
            isolated / ".vdk" / "config.yml",
            """\
            remote:
              branch: ${MY_BRANCH}
            """,
        )
        assert load_hierarchical_config()["remote"]["branch"] == "release"

    def test_non_dict_root_skipped(self, isolated, caplog):
        _write(isolated / ".vdk" / "config.yml", "- a\n- b\n")
        with caplog.at_level("WARNING"):
            assert load_hierarchical_config() == {}
        assert "non-dict root" in caplog.text

    def test_invalid_yaml_raises(self, isolated):
        _write(isolated / ".vdk" / "config.yml", "remote: [unclosed\n")
        with pytest.raises(yaml.YAMLError):
            load_hierarchical_config()


# -------------------------------------------------------------------------
# Bootstrapping
# -------------------------------------------------------------------------


class TestEnsureConfig:
    def test_noop_when_exists(self, tmp_path):
        existing = Path("/fake/existing/config.yml")
        with patch(
            "rule_sync.config_loader.discover_config_files",
            return_value=[existing],
        ):
            assert ensure_config() == existing
        assert not (tmp_path / ".vdk").exists()

    def test_creates_starter_file(self, isolated):
        result = ensure_config()
        assert result == isolated / ".vdk" / "config.yml"
        content = result.read_text()
        assert "# vdk-rule-sync configuration" in content
        assert "# remote:" in content
        assert yaml.safe_load(content) is None

    def test_uses_explicit_target(self, isolated):
        target = isolated / "nested" / "dir" / "rules.yml"
        assert ensure_config(target=target) == target
        assert target.exists()
