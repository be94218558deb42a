"""Pytest fixtures for guestbook server tests."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from guestbook_server.models import ClientContext, PublishedEntry, SubmissionRequest
from guestbook_server.pipeline import SubmissionPipeline
from guestbook_server.spam.akismet import DisabledSpamChecker
from guestbook_server.spam.recaptcha import DisabledVerifier


@pytest.fixture(scope="session", autouse=True)
def setup_test_environment():
    """Start every session with an empty settings cache."""
    from guestbook_server.config import get_settings

    get_settings.cache_clear()

    yield

    get_settings.cache_clear()


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def client_context() -> ClientContext:
    return ClientContext(ip="203.0.113.7", user_agent="pytest-agent", referrer="https://example.com/")


@pytest.fixture
def published_entry() -> PublishedEntry:
    return PublishedEntry(
        branch="guestbook-entry-1700000000-abc123",
        path="data/guestbook/entry1700000000-abc123.yml",
        pull_request_number=42,
        pull_request_url="https://github.com/owner/site/pull/42",
    )


@pytest.fixture
def mock_publisher(published_entry: PublishedEntry) -> AsyncMock:
    """Publisher whose ``publish`` succeeds and records calls."""
    publisher = AsyncMock()
    publisher.publish = AsyncMock(return_value=published_entry)
    return publisher


@pytest.fixture
def make_pipeline(mock_publisher: AsyncMock):
    """Factory for a pipeline with no-op reputation stages by default."""

    def _make(**overrides) -> SubmissionPipeline:
        kwargs = {
            "verifier": DisabledVerifier(),
            "spam_checker": DisabledSpamChecker(),
            "publisher": mock_publisher,
            "allowed_redirect_domains": ["example.com"],
            "stage_timeout": 1.0,
        }
        kwargs.update(overrides)
        return SubmissionPipeline(**kwargs)

    return _make


@pytest.fixture
def make_request():
    """Factory for submission requests with sensible defaults."""

    def _make(**fields) -> SubmissionRequest:
        data = {"name": "Jo", "message": "Lovely site, thanks for sharing"}
        data.update(fields)
        return SubmissionRequest(**data)

    return _make
