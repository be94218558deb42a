"""Submission admission pipeline.

Stages run in a fixed order, cheapest first::

    validation -> honeypot -> verification -> spam reputation
        -> content heuristics -> publish -> redirect decision

Honeypot, spam reputation and heuristics reject *silently*: the outcome is
indistinguishable from an accepted submission. Verification and publishing
fail closed and raise. The spam reputation check fails open.
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterable
from urllib.parse import urlsplit

import structlog

from guestbook_server.errors import (
    PublishError,
    SpamCheckError,
    StructuralError,
    VerificationError,
)
from guestbook_server.logging import get_logger
from guestbook_server.models import (
    ClientContext,
    GuestbookEntry,
    PublishedEntry,
    ReasonCode,
    RejectStage,
    SubmissionOutcome,
    SubmissionRequest,
)
from guestbook_server.publisher.entry import EntryPublisher
from guestbook_server.spam import heuristics
from guestbook_server.spam.akismet import SpamReputationChecker
from guestbook_server.spam.recaptcha import ReputationVerifier

log = get_logger("guestbook_server.pipeline")

DEFAULT_STAGE_TIMEOUT = 10.0


def _is_unsafe_target(target: str) -> bool:
    # Browsers read a backslash as a slash; urlsplit drops tabs and newlines
    return any(c == "\\" or c.isspace() or ord(c) < 0x20 or ord(c) == 0x7F for c in target)


def resolve_redirect(target: str, allowed_domains: Iterable[str]) -> str | None:
    """Return *target* if its hostname is allow-listed, else None.

    Targets carrying credentials, backslashes, whitespace or control
    characters are refused outright.
    """
    if not target or _is_unsafe_target(target):
        return None
    try:
        parts = urlsplit(target)
    except ValueError:
        return None
    if parts.scheme not in ("http", "https") or not parts.hostname:
        return None
    if parts.username is not None or parts.password is not None:
        return None
    if parts.hostname in {d.lower() for d in allowed_domains}:
        return target
    return None


class SubmissionPipeline:
    """Compose the spam filters and publisher into one admission decision."""

    def __init__(
        self,
        *,
        verifier: ReputationVerifier,
        spam_checker: SpamReputationChecker,
        publisher: EntryPublisher,
        allowed_redirect_domains: Iterable[str] = (),
        stage_timeout: float = DEFAULT_STAGE_TIMEOUT,
        logger: structlog.stdlib.BoundLogger | None = None,
    ) -> None:
        self._verifier = verifier
        self._spam_checker = spam_checker
        self._publisher = publisher
        self._allowed_redirect_domains = frozenset(d.lower() for d in allowed_redirect_domains)
        self._stage_timeout = stage_timeout
        self._log = logger or log

    async def submit(
        self, request: SubmissionRequest, client: ClientContext
    ) -> SubmissionOutcome:
        """Run one submission through every stage.

        Raises:
            StructuralError: ``name`` is empty.
            VerificationError: Token missing or verification failed.
            PublishError: The entry could not be persisted.
        """
        bound = self._log.bind(client_ip=client.ip)

        if not request.name.strip():
            raise StructuralError("Name is required")

        # Honeypot first: free, and must run before any network call
        if request.honeypot:
            bound.info("honeypot_triggered")
            return SubmissionOutcome.silent_reject(RejectStage.HONEYPOT)

        await self._verify(request, client, bound)

        if await self._is_reputation_spam(request, client, bound):
            bound.info("akismet_flagged_spam", author=request.name)
            return SubmissionOutcome.silent_reject(RejectStage.SPAM_REPUTATION)

        rule = heuristics.check(request.name, request.message)
        if rule is not None:
            bound.info("heuristics_flagged_spam", rule=rule, author=request.name)
            return SubmissionOutcome.silent_reject(RejectStage.CONTENT_HEURISTICS)

        entry = GuestbookEntry.from_request(request)
        published = await self._publish(entry, bound)

        redirect_url = resolve_redirect(request.redirect, self._allowed_redirect_domains)
        if request.redirect and redirect_url is None:
            bound.warning("redirect_blocked", target=request.redirect)

        return SubmissionOutcome(
            accepted=True,
            entry=entry,
            published=published,
            redirect_url=redirect_url,
        )

    async def _verify(
        self,
        request: SubmissionRequest,
        client: ClientContext,
        bound: structlog.stdlib.BoundLogger,
    ) -> None:
        if self._verifier.enabled and not request.verification_token:
            bound.info("verification_token_missing")
            raise VerificationError(ReasonCode.MISSING_TOKEN, "Verification is required")

        try:
            async with asyncio.timeout(self._stage_timeout):
                await self._verifier.verify(request.verification_token, client.ip)
        except TimeoutError as e:
            bound.warning("verification_timeout", timeout=self._stage_timeout)
            raise VerificationError(ReasonCode.TIMEOUT, "Verification timed out") from e
        except VerificationError as e:
            bound.info("verification_failed", reason=str(e.reason), detail=e.detail)
            raise

    async def _is_reputation_spam(
        self,
        request: SubmissionRequest,
        client: ClientContext,
        bound: structlog.stdlib.BoundLogger,
    ) -> bool:
        try:
            async with asyncio.timeout(self._stage_timeout):
                return await self._spam_checker.check_spam(
                    client.ip,
                    client.user_agent,
                    client.referrer,
                    request.name,
                    request.message,
                )
        except TimeoutError:
            bound.warning("akismet_check_timeout", timeout=self._stage_timeout)
        except SpamCheckError as e:
            bound.warning("akismet_check_failed", error=str(e))
        return False

    async def _publish(
        self, entry: GuestbookEntry, bound: structlog.stdlib.BoundLogger
    ) -> PublishedEntry:
        try:
            async with asyncio.timeout(self._stage_timeout):
                return await self._publisher.publish(entry)
        except TimeoutError as e:
            bound.error("entry_publish_timeout", entry_id=entry.id)
            raise PublishError("publish timed out", step="timeout") from e

    async def close(self) -> None:
        """Release HTTP clients held by the stages."""
        for component in (self._verifier, self._spam_checker, self._publisher):
            close = getattr(component, "close", None)
            if close is not None:
                await close()
