"""Error taxonomy for the submission pipeline.

Each error maps to one HTTP outcome. Silent rejects are deliberately not
errors: they travel as a normal :class:`~guestbook_server.models.SubmissionOutcome`
so the response cannot differ from a genuine success.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from guestbook_server.models import VerificationResult


class GuestbookError(Exception):
    """Base exception for guestbook submission errors."""

    status_code = 500
    public_message = "Internal server error"


class StructuralError(GuestbookError):
    """The request body is malformed or a required field is missing."""

    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.public_message = message


class RateLimitError(GuestbookError):
    """The client has no tokens left in its bucket."""

    status_code = 429
    public_message = "Rate limit exceeded"


class VerificationError(GuestbookError):
    """Human verification was missing or did not pass.

    ``reason`` is one of the :class:`~guestbook_server.models.ReasonCode`
    values and is returned to the caller.
    """

    status_code = 400
    public_message = "Verification failed"

    def __init__(
        self,
        reason: str,
        detail: str = "",
        result: VerificationResult | None = None,
    ):
        super().__init__(detail or reason)
        self.reason = reason
        self.detail = detail
        self.result = result


class PublishError(GuestbookError):
    """Persisting the entry failed. Detail is logged, never returned."""

    status_code = 500
    public_message = "Failed to submit entry"

    def __init__(self, message: str, step: str = ""):
        super().__init__(message)
        self.step = step


class SpamCheckError(GuestbookError):
    """The spam reputation service could not give an answer.

    Recovered locally by the pipeline (fail-open).
    """

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.upstream_status = status_code
