"""Publish accepted guestbook entries as GitHub pull requests.

Each entry becomes a YAML data file committed to a fresh branch, with a
pull request against the base branch so a human reviews it before it goes
live. Any failed step aborts the whole publish.
"""

from __future__ import annotations

import secrets
from datetime import UTC, datetime
from typing import Protocol

import structlog

from guestbook_server.errors import PublishError
from guestbook_server.logging import get_logger
from guestbook_server.models import GuestbookEntry, PublishedEntry
from guestbook_server.publisher.client import (
    GitHubAPIError,
    GitHubClient,
    GitHubRateLimitError,
)

log = get_logger("guestbook_server.publisher.entry")

ENTRY_DIRECTORY = "data/guestbook"
BRANCH_PREFIX = "guestbook-entry"


class EntryPublisher(Protocol):
    """Persists an accepted entry somewhere a human can review it."""

    async def publish(self, entry: GuestbookEntry) -> PublishedEntry:
        """Persist *entry*; raise :class:`PublishError` on any failure."""
        ...


class UnconfiguredPublisher:
    """Publisher used when GitHub credentials are missing. Always fails."""

    async def publish(self, entry: GuestbookEntry) -> PublishedEntry:
        raise PublishError("GitHub publisher not configured", step="configure")


def _unique_suffix(entry: GuestbookEntry) -> str:
    return f"{entry.created_at}-{secrets.token_hex(3)}"


def pull_request_title(entry: GuestbookEntry) -> str:
    return f"New Guestbook Entry from {entry.name}"


def pull_request_body(entry: GuestbookEntry) -> str:
    submitted = datetime.fromtimestamp(entry.created_at, UTC)
    return (
        "New guestbook entry submission:\n\n"
        f"**Name:** {entry.name}\n"
        f"**Message:** {entry.message}\n\n"
        f"Submitted on: {submitted:%B} {submitted.day}, {submitted:%Y %H:%M:%S} UTC"
    )


class GitHubEntryPublisher:
    """Opens one pull request per entry against ``owner/repo``."""

    def __init__(
        self,
        client: GitHubClient,
        owner: str,
        repo: str,
        base_branch: str = "main",
        *,
        logger: structlog.stdlib.BoundLogger | None = None,
    ) -> None:
        self._client = client
        self._owner = owner
        self._repo = repo
        self._base_branch = base_branch
        self._log = logger or log

    async def close(self) -> None:
        await self._client.close()

    async def publish(self, entry: GuestbookEntry) -> PublishedEntry:
        """Branch, commit the entry file, and open a pull request.

        Raises:
            PublishError: Naming the step (``get_ref``, ``create_branch``,
                ``create_file`` or ``create_pull_request``) that failed.
        """
        suffix = _unique_suffix(entry)
        branch = f"{BRANCH_PREFIX}-{suffix}"
        path = f"{ENTRY_DIRECTORY}/entry{suffix}.yml"

        step = "get_ref"
        try:
            base = await self._client.get_ref(
                self._owner, self._repo, f"heads/{self._base_branch}"
            )

            step = "create_branch"
            await self._client.create_ref(
                self._owner, self._repo, f"refs/heads/{branch}", base.sha
            )

            step = "create_file"
            await self._client.create_file(
                self._owner,
                self._repo,
                path,
                entry.to_yaml().encode("utf-8"),
                message=f"New Guestbook Post from {entry.name}",
                branch=branch,
            )

            step = "create_pull_request"
            pr = await self._client.create_pull_request(
                self._owner,
                self._repo,
                title=pull_request_title(entry),
                head=branch,
                base=self._base_branch,
                body=pull_request_body(entry),
            )
        except GitHubAPIError as e:
            extra: dict[str, int | None] = {}
            if isinstance(e, GitHubRateLimitError):
                extra["rate_limit_reset_at"] = e.reset_at
            self._log.error(
                "entry_publish_failed",
                step=step,
                entry_id=entry.id,
                status_code=e.status_code,
                error=str(e),
                **extra,
            )
            raise PublishError(f"{step} failed: {e}", step=step) from e

        self._log.info(
            "entry_published",
            entry_id=entry.id,
            branch=branch,
            path=path,
            pr_number=pr.number,
        )
        return PublishedEntry(
            branch=branch,
            path=path,
            pull_request_number=pr.number,
            pull_request_url=pr.html_url,
        )
