"""GitHub collaborator: tree listing, commit history and raw file contents.

The access token is passed explicitly to every call. A rejected token raises
GitHubAuthError; callers clear their cached token and retry with
``token=None``.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

from flat_viewer.config import GITHUB_API_URL, GITHUB_RAW_URL, GITHUB_TIMEOUT_SECONDS
from flat_viewer.decoders import SUPPORTED_EXTENSIONS, extension_for
from flat_viewer.errors import (
    GitHubAuthError,
    GitHubError,
    GitHubNotFoundError,
    GitHubRateLimitError,
)
from flat_viewer.models import RawFile

logger = logging.getLogger(__name__)

IGNORED_FILES = {"package.json", "tsconfig.json"}
IGNORED_FOLDERS = {".vscode", ".github"}
DEFAULT_BRANCHES = ("main", "master")
FLAT_WORKFLOW_PATHS = (".github/workflows/flat.yaml", ".github/workflows/flat.yml")


def is_data_file(path: str) -> bool:
    """True for allow-listed data files outside tooling folders."""
    parts = path.split("/")
    return (
        extension_for(path) in SUPPORTED_EXTENSIONS
        and parts[-1] not in IGNORED_FILES
        and parts[0] not in IGNORED_FOLDERS
    )


def _raise_for_status(response: httpx.Response, what: str) -> None:
    if response.status_code < 400:
        return
    if response.status_code == 401:
        raise GitHubAuthError(f"GitHub rejected the access token while fetching {what}")
    if response.status_code == 404:
        raise GitHubNotFoundError(f"{what} not found")
    if response.status_code == 403 and "API rate limit exceeded" in response.text:
        raise GitHubRateLimitError("Rate limit exceeded")
    raise GitHubError(f"GitHub returned {response.status_code} for {what}")


class GitHubClient:
    """Thin async wrapper over the GitHub REST API and raw content host."""

    def __init__(
        self,
        http: Optional[httpx.AsyncClient] = None,
        api_url: str = GITHUB_API_URL,
        raw_url: str = GITHUB_RAW_URL,
    ) -> None:
        self._http = http or httpx.AsyncClient(timeout=GITHUB_TIMEOUT_SECONDS)
        self.api_url = api_url.rstrip("/")
        self.raw_url = raw_url.rstrip("/")

    async def __aenter__(self) -> "GitHubClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    @staticmethod
    def _headers(token: Optional[str]) -> dict[str, str]:
        headers = {"accept": "application/vnd.github+json"}
        if token:
            headers["authorization"] = f"token {token}"
        return headers

    async def _get_json(self, url: str, what: str, token: Optional[str], **params: Any) -> Any:
        response = await self._http.get(url, headers=self._headers(token), params=params or None)
        _raise_for_status(response, what)
        return response.json()

    async def list_data_files(self, owner: str, name: str, token: Optional[str] = None) -> list[str]:
        """List data file paths in the repo tree, trying ``main`` then ``master``."""
        last_error: Optional[GitHubError] = None
        for branch in DEFAULT_BRANCHES:
            url = f"{self.api_url}/repos/{owner}/{name}/git/trees/{branch}"
            try:
                tree = await self._get_json(url, f"{owner}/{name}@{branch}", token, recursive="1")
            except (GitHubAuthError, GitHubRateLimitError):
                raise
            except GitHubError as e:
                logger.info("[GITHUB] Branch %s unavailable for %s/%s: %s", branch, owner, name, e)
                last_error = e
                continue
            return [item["path"] for item in tree.get("tree", []) if is_data_file(item["path"])]

        raise last_error or GitHubNotFoundError(f"{owner}/{name} not found")

    async def list_commits(
        self, owner: str, name: str, path: str, token: Optional[str] = None
    ) -> list[dict[str, Any]]:
        """List commits touching ``path``, newest first."""
        url = f"{self.api_url}/repos/{owner}/{name}/commits"
        commits = await self._get_json(url, f"commits for {path}", token, path=path)
        if not commits:
            raise GitHubNotFoundError(f"No commits for {path}")
        return commits

    async def fetch_raw_file(
        self, owner: str, name: str, path: str, sha: str, token: Optional[str] = None
    ) -> RawFile:
        """Fetch the raw text of ``path`` at commit ``sha``."""
        url = f"{self.raw_url}/{owner}/{name}/{sha}/{path}"
        response = await self._http.get(url, headers=self._headers(token))
        _raise_for_status(response, f"Data file {path}")
        logger.info("[GITHUB] Fetched %s@%s (%d bytes)", path, sha[:7], len(response.content))
        return RawFile(text=response.text, filename=path, sha=sha)

    async def has_flat_workflow(self, owner: str, name: str, token: Optional[str] = None) -> bool:
        """True when the repo carries a non-empty flat workflow on ``main``."""
        for path in FLAT_WORKFLOW_PATHS:
            url = f"{self.raw_url}/{owner}/{name}/main/{path}"
            response = await self._http.get(url, headers=self._headers(token))
            if response.status_code == 404:
                continue
            _raise_for_status(response, path)
            return bool(response.text)
        return False
