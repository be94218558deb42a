"""Akismet spam reputation check.

Optional and fail-open: callers treat :class:`SpamCheckError` as an
inconclusive answer and let the submission through.
"""

from __future__ import annotations

from typing import Protocol

import httpx
import structlog

from guestbook_server.errors import SpamCheckError
from guestbook_server.logging import get_logger

log = get_logger("guestbook_server.spam.akismet")

COMMENT_CHECK_URL = "https://{api_key}.rest.akismet.com/1.1/comment-check"
COMMENT_TYPE = "guestbook"
USER_AGENT = "GuestbookServer/1.0"
DEFAULT_TIMEOUT = 10.0


class SpamReputationChecker(Protocol):
    """Interface for remote spam-corpus services."""

    @property
    def enabled(self) -> bool: ...

    async def check_spam(
        self,
        ip: str,
        user_agent: str,
        referrer: str,
        author: str,
        content: str,
    ) -> bool:
        """Return True when the service classifies the submission as spam."""
        ...


class DisabledSpamChecker:
    """Checker used when no Akismet key is configured. Never flags spam."""

    enabled = False

    async def check_spam(
        self,
        ip: str,
        user_agent: str,
        referrer: str,
        author: str,
        content: str,
    ) -> bool:
        return False


class AkismetChecker:
    """Akismet ``comment-check`` client."""

    enabled = True

    def __init__(
        self,
        api_key: str,
        site_url: str,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        client: httpx.AsyncClient | None = None,
        logger: structlog.stdlib.BoundLogger | None = None,
    ) -> None:
        if not api_key:
            raise ValueError("api_key is required; use DisabledSpamChecker instead")
        self._api_key = api_key
        self._site_url = site_url
        self._timeout = timeout
        self._client = client
        self._log = logger or log

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=self._timeout,
                headers={"User-Agent": USER_AGENT},
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def check_spam(
        self,
        ip: str,
        user_agent: str,
        referrer: str,
        author: str,
        content: str,
    ) -> bool:
        """Ask Akismet whether a submission is spam.

        Raises:
            SpamCheckError: Transport failure, non-200 status, or an answer
                other than ``true``/``false`` (``invalid`` for a bad key).
        """
        client = await self._get_client()
        self._log.debug(
            "akismet_check_started",
            user_ip=ip,
            author=author,
            content_length=len(content),
        )
        try:
            response = await client.post(
                COMMENT_CHECK_URL.format(api_key=self._api_key),
                data={
                    "blog": self._site_url,
                    "user_ip": ip,
                    "user_agent": user_agent,
                    "referrer": referrer,
                    "comment_type": COMMENT_TYPE,
                    "comment_author": author,
                    "comment_content": content,
                },
            )
        except httpx.RequestError as e:
            raise SpamCheckError(f"Akismet request failed: {e}") from e

        if response.status_code != 200:
            raise SpamCheckError(
                f"Akismet API returned status {response.status_code}",
                status_code=response.status_code,
            )

        if debug_help := response.headers.get("X-akismet-debug-help"):
            self._log.debug("akismet_debug_help", info=debug_help)
        if pro_tip := response.headers.get("X-akismet-pro-tip"):
            self._log.debug("akismet_pro_tip", tip=pro_tip)

        answer = response.text.strip()
        if answer not in ("true", "false"):
            raise SpamCheckError(f"Unexpected Akismet answer: {answer[:50]!r}")

        is_spam = answer == "true"
        self._log.debug("akismet_result", is_spam=is_spam, author=author)
        return is_spam


def create_spam_checker(
    api_key: str | None,
    site_url: str,
    *,
    timeout: float = DEFAULT_TIMEOUT,
    logger: structlog.stdlib.BoundLogger | None = None,
) -> SpamReputationChecker:
    """Build a checker; an empty key yields the no-op :class:`DisabledSpamChecker`."""
    if not api_key:
        return DisabledSpamChecker()
    return AkismetChecker(api_key, site_url, timeout=timeout, logger=logger)
