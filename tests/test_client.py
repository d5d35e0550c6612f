from unittest.mock import Mock, patch

import pytest
import requests

from rule_sync.config import Config
from rule_sync.core.client import GitHubClient
from rule_sync.sync.errors import RemoteUnavailable
from rule_sync.sync.engine import SyncEngine
from rule_sync.sync.models import ConflictPolicy, SyncState
from rule_sync.sync.remote import GitHubFetcher, checked_revision
from rule_sync.sync.state import StateStore, content_hash


def _response(json_data=None, content=b"", status=200):
    response = Mock()
    response.status_code = status
    response.content = content
    if json_data is None:
        response.json.side_effect = ValueError("no json")
    else:
        response.json.return_value = json_data
    if status >= 400:
        error = requests.HTTPError(f"{status} error")
        error.response = response
        response.raise_for_status.side_effect = error
    else:
        response.raise_for_status.return_value = None
    return response


# TestGitHubClient tests
def test_url_construction(mock_config):
    """Test that API and raw base URLs are built from the repo slug."""
    client = GitHubClient(mock_config)
    assert client.repo_url == "https://api.github.com/repos/octo/rules"
    assert client.raw_base == "https://raw.githubusercontent.com/octo/rules"


def test_session_headers_with_token(mock_config):
    """Test that the session carries the bearer token and API headers."""
    session = GitHubClient(mock_config).session
    assert session.headers["Authorization"] == "Bearer test-token"
    assert session.headers["Accept"] == "application/vnd.github+json"
    assert session.headers["User-Agent"].startswith("vdk-rule-sync/")


def test_session_without_token():
    """Test that no Authorization header is sent without a token."""
    client = GitHubClient(Config(repo_owner="o", repo_name="r"))
    assert "Authorization" not in client.session.headers


@patch("rule_sync.core.client.requests.Session.get")
def test_get_head_revision(mock_get, mock_config):
    """Test head revision lookup."""
    mock_get.return_value = _response({"sha": "abc123"})
    client = GitHubClient(mock_config)

    assert client.get_head_revision("main") == "abc123"
    url = mock_get.call_args[0][0]
    assert url == "https://api.github.com/repos/octo/rules/commits/main"
    assert mock_get.call_args[1]["timeout"] == 5.0


@patch("rule_sync.core.client.requests.Session.get")
def test_get_head_revision_missing_sha(mock_get, mock_config):
    mock_get.return_value = _response({"message": "weird"})
    with pytest.raises(RemoteUnavailable):
        GitHubClient(mock_config).get_head_revision("main")


@patch("rule_sync.core.client.requests.Session.get")
def test_get_tree_returns_blobs_only(mock_get, mock_config):
    """Test that tree listing keeps blobs and drops directories."""
    mock_get.return_value = _response(
        {
            "sha": "abc",
            "truncated": False,
            "tree": [
                {"path": "core", "type": "tree", "sha": "t1"},
                {"path": "core/a.mdc", "type": "blob", "sha": "b1", "size": 10},
                {"path": "README.md", "type": "blob", "sha": "b2"},
            ],
        }
    )
    tree = GitHubClient(mock_config).get_tree("abc")

    assert tree == [
        {"path": "core/a.mdc", "sha": "b1", "size": 10},
        {"path": "README.md", "sha": "b2", "size": 0},
    ]
    assert mock_get.call_args[1]["params"] == {"recursive": "1"}


@patch("rule_sync.core.client.requests.Session.get")
def test_truncated_tree_raises(mock_get, mock_config):
    mock_get.return_value = _response(
        {
            "truncated": True,
            "tree": [{"path": "a.md", "type": "blob", "sha": "b1"}],
        }
    )
    with pytest.raises(RemoteUnavailable, match="truncated"):
        GitHubClient(mock_config).get_tree("abc")


@patch("rule_sync.core.client.requests.Session.get")
def test_get_raw(mock_get, mock_config):
    mock_get.return_value = _response(content=b"rule body")
    data = GitHubClient(mock_config).get_raw("abc", "core/a.mdc")
    assert data == b"rule body"
    assert (
        mock_get.call_args[0][0]
        == "https://raw.githubusercontent.com/octo/rules/abc/core/a.mdc"
    )


@patch("rule_sync.core.client.requests.Session.get")
def test_get_raw_escapes_path(mock_get, mock_config):
    """Test that URL-significant characters in a path are percent-encoded."""
    mock_get.return_value = _response(content=b"")
    client = GitHubClient(mock_config)

    client.get_raw("abc", "languages/c#.md")
    client.get_raw("abc", "odd/what?100%.md")

    urls = [call[0][0] for call in mock_get.call_args_list]
    assert urls == [
        "https://raw.githubusercontent.com/octo/rules/abc/languages/c%23.md",
        "https://raw.githubusercontent.com/octo/rules/abc/odd/what%3F100%25.md",
    ]


@pytest.mark.parametrize(
    "side_effect",
    [
        requests.ConnectionError("refused"),
        requests.Timeout("slow"),
    ],
)
def test_network_errors_become_remote_unavailable(mock_config, side_effect):
    with patch(
        "rule_sync.core.client.requests.Session.get", side_effect=side_effect
    ):
        with pytest.raises(RemoteUnavailable) as exc_info:
            GitHubClient(mock_config).get_head_revision("main")
    assert exc_info.value.__cause__ is side_effect


@patch("rule_sync.core.client.requests.Session.get")
def test_http_error_becomes_remote_unavailable(mock_get, mock_config):
    mock_get.return_value = _response({}, status=404)
    with pytest.raises(RemoteUnavailable, match="HTTP 404"):
        GitHubClient(mock_config).get_tree("abc")


@patch("rule_sync.core.client.requests.Session.get")
def test_malformed_json_becomes_remote_unavailable(mock_get, mock_config):
    mock_get.return_value = _response(None)
    with pytest.raises(RemoteUnavailable, match="Malformed JSON"):
        GitHubClient(mock_config).get_head_revision("main")


def test_close_resets_session(mock_config):
    client = GitHubClient(mock_config)
    first = client.session
    client.close()
    assert client.session is not first


# GitHubFetcher tests
BYTES_HASH = content_hash(b"bytes")


def _fetcher(prefix=""):
    client = Mock(spec=GitHubClient)
    client.get_tree.return_value = [
        {"path": "templates/a.mdc", "sha": BYTES_HASH, "size": 5},
        {"path": "templates/sub/b.md", "sha": "s2", "size": 2},
        {"path": "templates/notes.txt", "sha": "s3", "size": 3},
        {"path": "README.md", "sha": "s4", "size": 4},
    ]
    client.get_raw.return_value = b"bytes"
    return client, GitHubFetcher(client, "main", prefix)


def test_fetcher_strips_prefix_and_filters_globs():
    client, fetcher = _fetcher("templates/")
    snapshot = fetcher.fetch_tree("rev", ["**/*.mdc", "**/*.md"], [])

    assert sorted(snapshot.files) == ["a.mdc", "sub/b.md"]
    assert snapshot.files["sub/b.md"].remote_path == "templates/sub/b.md"
    assert snapshot.hash_of("a.mdc") == BYTES_HASH
    assert snapshot.hash_of("missing.mdc") is None


def test_fetcher_without_prefix_keeps_paths():
    _, fetcher = _fetcher()
    snapshot = fetcher.fetch_tree("rev", ["**/*.md"], [])
    assert sorted(snapshot.files) == ["README.md", "templates/sub/b.md"]


def test_snapshot_content_is_fetched_once():
    client, fetcher = _fetcher("templates")
    snapshot = fetcher.fetch_tree("rev", [], [])

    assert snapshot.fetch_content("a.mdc") == b"bytes"
    assert snapshot.fetch_content("a.mdc") == b"bytes"
    client.get_raw.assert_called_once_with("rev", "templates/a.mdc")
    with pytest.raises(KeyError):
        snapshot.fetch_content("unknown.mdc")


def test_checked_revision_rejects_empty():
    fetcher = Mock()
    fetcher.current_revision.return_value = ""
    with pytest.raises(RemoteUnavailable):
        checked_revision(fetcher)


def test_snapshot_rejects_content_not_matching_listed_hash():
    client, fetcher = _fetcher("templates")
    snapshot = fetcher.fetch_tree("rev", [], [])
    client.get_raw.return_value = b"tampered"

    with pytest.raises(RemoteUnavailable, match="does not match"):
        snapshot.fetch_content("a.mdc")
    client.get_raw.return_value = b"bytes"
    assert snapshot.fetch_content("a.mdc") == b"bytes"


# Truncated listings through a full cycle
@patch("rule_sync.core.client.requests.Session.get")
def test_truncated_listing_leaves_tracked_files(mock_get, mock_config, tmp_path):
    """A truncated tree aborts the cycle instead of deleting unlisted files."""
    rules = tmp_path / "templates"
    rules.mkdir()
    store = StateStore(tmp_path / "vdk.config.json")
    state = SyncState(policy=ConflictPolicy.REMOTE)
    for name, data in {"a.md": b"a", "b.md": b"b"}.items():
        (rules / name).write_bytes(data)
        store.record_file(state, name, content_hash(data), len(data))
    state.remote_revision = "rev1"
    store.save(state)
    before = store.path.read_bytes()

    mock_get.side_effect = [
        _response({"sha": "rev2"}),
        _response(
            {
                "truncated": True,
                "tree": [
                    {
                        "path": "a.md",
                        "type": "blob",
                        "sha": content_hash(b"a"),
                        "size": 1,
                    }
                ],
            }
        ),
    ]
    client = GitHubClient(mock_config)
    engine = SyncEngine(store, GitHubFetcher(client, "main"), rules)

    with pytest.raises(RemoteUnavailable, match="truncated"):
        engine.run_cycle()

    assert (rules / "b.md").read_bytes() == b"b"
    assert store.path.read_bytes() == before
