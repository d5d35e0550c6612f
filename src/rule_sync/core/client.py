import logging
from typing import Any
from urllib.parse import quote

import requests

from .. import __version__
from ..config import Config
from ..sync.errors import RemoteUnavailable

logger = logging.getLogger(__name__)


class GitHubClient:
    """Thin client for a GitHub-style revision-addressed content API.

    All failures (connection errors, timeouts, non-2xx responses and
    malformed JSON) are raised as ``RemoteUnavailable``, as is a tree
    listing the remote reports as truncated.
    """

    def __init__(self, config: Config):
        self.config = config
        self.repo_url = (
            f"{config.api_url}/repos/{config.repo_owner}/{config.repo_name}"
        )
        self.raw_base = (
            f"{config.raw_url}/{config.repo_owner}/{config.repo_name}"
        )
        self._session: requests.Session | None = None

    @property
    def session(self) -> requests.Session:
        if self._session is None:
            self._session = self._create_session()
        return self._session

    def _create_session(self) -> requests.Session:
        session = requests.Session()
        session.headers.update(
            {
                "User-Agent": f"vdk-rule-sync/{__version__}",
                "Accept": "application/vnd.github+json",
            }
        )
        if self.config.token:
            session.headers["Authorization"] = f"Bearer {self.config.token}"
        return session

    def close(self) -> None:
        if self._session is not None:
            self._session.close()
            self._session = None

    def _get(self, url: str, **kwargs: Any) -> requests.Response:
        """GET *url* with the configured timeout, raising RemoteUnavailable."""
        logger.debug("GET %s", url)
        try:
            response = self.session.get(
                url, timeout=self.config.timeout, **kwargs
            )
            response.raise_for_status()
        except requests.HTTPError as exc:
            status = exc.response.status_code if exc.response is not None else "?"
            raise RemoteUnavailable(
                f"HTTP {status} from {url}"
            ) from exc
        except requests.RequestException as exc:
            raise RemoteUnavailable(f"Request to {url} failed: {exc}") from exc
        return response

    def _get_json(self, url: str, **kwargs: Any) -> Any:
        response = self._get(url, **kwargs)
        try:
            return response.json()
        except ValueError as exc:
            raise RemoteUnavailable(
                f"Malformed JSON from {url}"
            ) from exc

    def get_head_revision(self, branch: str) -> str:
        """
        Return the commit id at the head of *branch*.
        """
        data = self._get_json(f"{self.repo_url}/commits/{branch}")
        sha = data.get("sha") if isinstance(data, dict) else None
        if not sha:
            raise RemoteUnavailable(
                f"No commit id in response for branch '{branch}'"
            )
        return str(sha)

    def get_tree(self, revision: str) -> list[dict[str, Any]]:
        """
        List every blob in the repository at *revision*.

        Returns dicts with ``path``, ``sha`` and ``size`` keys.
        """
        data = self._get_json(
            f"{self.repo_url}/git/trees/{revision}",
            params={"recursive": "1"},
        )
        if not isinstance(data, dict) or not isinstance(
            data.get("tree"), list
        ):
            raise RemoteUnavailable(
                f"Malformed tree listing for revision {revision}"
            )
        if data.get("truncated"):
            raise RemoteUnavailable(
                f"Tree listing for revision {revision} was truncated "
                "by the remote"
            )
        return [
            {
                "path": item["path"],
                "sha": item["sha"],
                "size": int(item.get("size") or 0),
            }
            for item in data["tree"]
            if item.get("type") == "blob" and "path" in item and "sha" in item
        ]

    def get_raw(self, revision: str, path: str) -> bytes:
        """
        Download the bytes of *path* at *revision*.
        """
        return self._get(
            f"{self.raw_base}/{revision}/{quote(path, safe='/')}"
        ).content
