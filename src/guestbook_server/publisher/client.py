"""Async GitHub API client using httpx.

Covers the small slice of the GitHub REST API needed to publish an entry:
git refs, repository contents and pull requests.
"""

from __future__ import annotations

import base64
import contextlib
from dataclasses import dataclass
from typing import Any

import httpx

from guestbook_server.logging import get_logger

log = get_logger("guestbook_server.publisher.client")

GITHUB_API_BASE = "https://api.github.com"
DEFAULT_TIMEOUT = 30.0


class GitHubAPIError(Exception):
    """Base exception for GitHub API errors."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        response: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.response = response or {}


class GitHubAuthError(GitHubAPIError):
    """Authentication failed."""

    pass


class GitHubNotFoundError(GitHubAPIError):
    """Resource not found."""

    pass


class GitHubRateLimitError(GitHubAPIError):
    """Rate limit exceeded."""

    def __init__(self, message: str, reset_at: int | None = None):
        super().__init__(message, status_code=403)
        self.reset_at = reset_at


class GitHubValidationError(GitHubAPIError):
    """Validation error (422), e.g. the branch already exists."""

    pass


@dataclass
class GitRef:
    """A git reference and the commit it points at."""

    ref: str
    sha: str

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> GitRef:
        obj = data.get("object") or {}
        return cls(ref=data.get("ref", ""), sha=obj.get("sha", ""))


@dataclass
class PullRequest:
    """The fields of a created pull request the publisher reports."""

    number: int
    html_url: str = ""

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> PullRequest:
        return cls(
            number=int(data.get("number", 0)),
            html_url=data.get("html_url", ""),
        )


class GitHubClient:
    """Async GitHub API client.

    Uses httpx for async HTTP operations and maps error statuses to the
    typed exceptions above.
    """

    def __init__(
        self,
        token: str,
        base_url: str = GITHUB_API_BASE,
        timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize the GitHub client.

        Args:
            token: GitHub personal access token or app token.
            base_url: GitHub API base URL (for enterprise).
            timeout: Request timeout in seconds.
            transport: Optional httpx transport (used by tests).
        """
        self._token = token
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                timeout=self._timeout,
                transport=self._transport,
                headers={
                    "Authorization": f"Bearer {self._token}",
                    "Accept": "application/vnd.github+json",
                    "X-GitHub-Api-Version": "2022-11-28",
                },
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    @staticmethod
    def _reset_at(headers: httpx.Headers) -> int | None:
        """Unix time at which the rate limit window resets, if GitHub sent it."""
        with contextlib.suppress(ValueError, TypeError):
            return int(headers.get("x-ratelimit-reset"))
        return None

    async def _request(
        self,
        method: str,
        path: str,
        json: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Make a request to the GitHub API.

        Args:
            method: HTTP method.
            path: API path (without base URL).
            json: JSON body for POST/PUT/PATCH.

        Returns:
            Parsed JSON response.

        Raises:
            GitHubAuthError: Authentication failed.
            GitHubNotFoundError: Resource not found.
            GitHubRateLimitError: Rate limit exceeded.
            GitHubValidationError: Validation error.
            GitHubAPIError: Other API errors.
        """
        client = await self._get_client()

        try:
            response = await client.request(method=method, url=path, json=json)
        except httpx.RequestError as e:
            log.error("github_request_failed", path=path, error=str(e))
            raise GitHubAPIError(f"Request failed: {e}") from e

        if response.status_code == 401:
            raise GitHubAuthError("Authentication failed", status_code=401)

        if response.status_code == 403:
            if "rate limit" in response.text.lower():
                raise GitHubRateLimitError(
                    "Rate limit exceeded",
                    reset_at=self._reset_at(response.headers),
                )
            raise GitHubAPIError(f"Forbidden: {response.text}", status_code=403)

        if response.status_code == 404:
            raise GitHubNotFoundError("Resource not found", status_code=404)

        if response.status_code >= 400:
            try:
                error_data = response.json()
            except ValueError:
                error_data = {"message": response.text}
            error_cls = GitHubValidationError if response.status_code == 422 else GitHubAPIError
            raise error_cls(
                error_data.get("message", f"HTTP {response.status_code}"),
                status_code=response.status_code,
                response=error_data,
            )

        if response.status_code == 204:
            return {}

        try:
            result = response.json()
        except ValueError as e:
            raise GitHubAPIError("Unexpected response format") from e
        if not isinstance(result, dict):
            raise GitHubAPIError("Unexpected response format")
        return result

    # ========== Git refs ==========

    async def get_ref(self, owner: str, repo: str, ref: str) -> GitRef:
        """Get a git reference such as ``heads/main``."""
        data = await self._request("GET", f"/repos/{owner}/{repo}/git/ref/{ref}")
        return GitRef.from_api(data)

    async def create_ref(self, owner: str, repo: str, ref: str, sha: str) -> GitRef:
        """Create a fully-qualified ref (``refs/heads/<branch>``) at *sha*."""
        data = await self._request(
            "POST",
            f"/repos/{owner}/{repo}/git/refs",
            json={"ref": ref, "sha": sha},
        )
        log.info("github_ref_created", repo=f"{owner}/{repo}", ref=ref)
        return GitRef.from_api(data)

    # ========== Contents ==========

    async def create_file(
        self,
        owner: str,
        repo: str,
        path: str,
        content: bytes,
        message: str,
        branch: str,
    ) -> dict[str, Any]:
        """Create a new file on *branch* with a single commit.

        Returns:
            The API response (``content`` and ``commit`` objects).
        """
        return await self._request(
            "PUT",
            f"/repos/{owner}/{repo}/contents/{path}",
            json={
                "message": message,
                "content": base64.b64encode(content).decode("ascii"),
                "branch": branch,
            },
        )

    # ========== Pull Requests ==========

    async def create_pull_request(
        self,
        owner: str,
        repo: str,
        title: str,
        head: str,
        base: str,
        body: str = "",
    ) -> PullRequest:
        """Open a pull request from *head* into *base*."""
        data = await self._request(
            "POST",
            f"/repos/{owner}/{repo}/pulls",
            json={"title": title, "head": head, "base": base, "body": body},
        )
        pr = PullRequest.from_api(data)
        log.info("pr_created", repo=f"{owner}/{repo}", number=pr.number)
        return pr
