"""HTTP server for guestbook submissions.

Wires the submission pipeline, CORS and rate limiting into an aiohttp
application and runs the idle-bucket sweeper for the life of the app.
"""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import AsyncIterator
from typing import Any

from aiohttp import web

from guestbook_server.api.middleware import (
    RateLimiter,
    create_cors_middleware,
    create_rate_limit_middleware,
)
from guestbook_server.api.routes.guestbook import handle_guestbook
from guestbook_server.api.routes.health import handle_health
from guestbook_server.config import Settings, mask_secret
from guestbook_server.logging import get_logger
from guestbook_server.pipeline import SubmissionPipeline
from guestbook_server.publisher import (
    EntryPublisher,
    GitHubClient,
    GitHubEntryPublisher,
    UnconfiguredPublisher,
)
from guestbook_server.spam import create_spam_checker, create_verifier

log = get_logger("guestbook_server.api.server")

DEFAULT_SWEEP_INTERVAL = 600.0


def _secret_value(secret: Any) -> str:
    return secret.get_secret_value() if secret is not None else ""


def build_pipeline(settings: Settings) -> SubmissionPipeline:
    """Create the submission pipeline from settings.

    Missing credentials select the no-op verifier and spam checker. A
    missing GitHub configuration selects a publisher that always fails.
    """
    timeout = settings.upstream_timeout_seconds

    verifier = create_verifier(
        _secret_value(settings.recaptcha_secret_key),
        score_threshold=settings.recaptcha_score_threshold,
        expected_action=settings.recaptcha_action,
        timeout=timeout,
    )
    spam_checker = create_spam_checker(
        _secret_value(settings.akismet_api_key),
        settings.akismet_site_url,
        timeout=timeout,
    )

    publisher: EntryPublisher
    if settings.github_configured:
        client = GitHubClient(
            _secret_value(settings.github_token),
            base_url=settings.github_api_url,
            timeout=timeout,
        )
        publisher = GitHubEntryPublisher(
            client,
            settings.github_owner,
            settings.github_repo,
            settings.github_branch,
        )
    else:
        log.warning("github_publisher_not_configured")
        publisher = UnconfiguredPublisher()

    log.info(
        "pipeline_configured",
        recaptcha_enabled=verifier.enabled,
        recaptcha_secret=mask_secret(settings.recaptcha_secret_key),
        recaptcha_threshold=settings.recaptcha_score_threshold,
        akismet_enabled=spam_checker.enabled,
        akismet_key=mask_secret(settings.akismet_api_key),
        github_repo=f"{settings.github_owner}/{settings.github_repo}",
        github_token=mask_secret(settings.github_token),
        allowed_redirect_domains=settings.allowed_redirect_domains,
    )

    return SubmissionPipeline(
        verifier=verifier,
        spam_checker=spam_checker,
        publisher=publisher,
        allowed_redirect_domains=settings.allowed_redirect_domains,
        stage_timeout=timeout,
    )


class GuestbookServer:
    """Public-facing guestbook submission server."""

    def __init__(
        self,
        pipeline: SubmissionPipeline,
        *,
        host: str = "0.0.0.0",  # nosec B104 - Intentional for Docker container
        port: int = 8080,
        allowed_origins: list[str] | None = None,
        rate_limiter: RateLimiter | None = None,
        sweep_interval: float = DEFAULT_SWEEP_INTERVAL,
        trust_forwarded_for: bool = False,
    ) -> None:
        self._pipeline = pipeline
        self._host = host
        self._port = port
        self._allowed_origins = allowed_origins
        self._rate_limiter = rate_limiter or RateLimiter(10, 60)
        self._sweep_interval = sweep_interval
        self._trust_forwarded_for = trust_forwarded_for
        self._app: web.Application | None = None
        self._runner: web.AppRunner | None = None

        log.info(
            "guestbook_server_initialized",
            host=host,
            port=port,
            allowed_origins=allowed_origins or [],
        )

    @property
    def rate_limiter(self) -> RateLimiter:
        return self._rate_limiter

    async def _sweeper(self, app: web.Application) -> AsyncIterator[None]:
        task = asyncio.create_task(self._rate_limiter.run_sweeper(self._sweep_interval))
        yield
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    def create_app(self) -> web.Application:
        """Create and configure the aiohttp application."""
        middlewares: list[Any] = [
            # CORS (outermost, answers preflight before rate limiting)
            create_cors_middleware(self._allowed_origins),
            create_rate_limit_middleware(
                self._rate_limiter, trust_forwarded_for=self._trust_forwarded_for
            ),
        ]

        app = web.Application(middlewares=middlewares)

        # Shared state for handlers
        app["pipeline"] = self._pipeline
        app["trust_forwarded_for"] = self._trust_forwarded_for

        app.cleanup_ctx.append(self._sweeper)

        app.router.add_get("/health", handle_health)
        app.router.add_post("/guestbook", handle_guestbook)

        self._app = app
        return app

    async def start(self) -> None:
        """Start the server."""
        if self._app is None:
            self.create_app()

        if self._app is None:  # pragma: no cover
            raise RuntimeError("create_app() must be called first")

        self._runner = web.AppRunner(self._app)
        await self._runner.setup()

        site = web.TCPSite(self._runner, self._host, self._port)
        await site.start()

        log.info("guestbook_server_started", host=self._host, port=self._port)

    async def stop(self) -> None:
        """Stop the server and release upstream clients."""
        if self._runner:
            await self._runner.cleanup()
            self._runner = None
        await self._pipeline.close()
        log.info("guestbook_server_stopped")


def create_server(settings: Settings) -> GuestbookServer:
    """Build a server with every component configured from *settings*."""
    return GuestbookServer(
        build_pipeline(settings),
        host=settings.host,
        port=settings.port,
        allowed_origins=settings.allowed_origins,
        rate_limiter=RateLimiter(settings.rate_limit_requests, settings.rate_limit_window),
        sweep_interval=settings.rate_limit_sweep_interval,
        trust_forwarded_for=settings.trust_forwarded_for,
    )


async def run_server(settings: Settings) -> None:
    """Run the server until cancelled."""
    server = create_server(settings)
    await server.start()

    try:
        while True:
            await asyncio.sleep(3600)
    except asyncio.CancelledError:
        pass
    finally:
        await server.stop()
