"""Entry publishing via GitHub pull requests."""

from guestbook_server.publisher.client import (
    GitHubAPIError,
    GitHubAuthError,
    GitHubClient,
    GitHubNotFoundError,
    GitHubRateLimitError,
    GitHubValidationError,
)
from guestbook_server.publisher.entry import (
    EntryPublisher,
    GitHubEntryPublisher,
    UnconfiguredPublisher,
)

__all__ = [
    "EntryPublisher",
    "GitHubAPIError",
    "GitHubAuthError",
    "GitHubClient",
    "GitHubEntryPublisher",
    "GitHubNotFoundError",
    "GitHubRateLimitError",
    "GitHubValidationError",
    "UnconfiguredPublisher",
]
