"""Data models for guestbook submissions."""

from __future__ import annotations

import html
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, StrictStr

GENERIC_SUCCESS_MESSAGE = "Thank you for your submission! It will be reviewed before being published."


class ReasonCode(StrEnum):
    """Why a submission failed human verification."""

    MISSING_TOKEN = "missing-token"  # nosec B105
    TRANSPORT_ERROR = "transport-error"
    INVALID_RESPONSE = "invalid-response"
    SCORE_ZERO_NO_ERRORS = "score-zero-no-errors"
    VERIFICATION_FAILED = "verification-failed"
    ACTION_MISMATCH = "action-mismatch"
    LOW_SCORE = "low-score"
    TIMEOUT = "timeout"


class RejectStage(StrEnum):
    """Pipeline stage that silently rejected a submission."""

    HONEYPOT = "honeypot"
    SPAM_REPUTATION = "spam_reputation"
    CONTENT_HEURISTICS = "content_heuristics"


class SubmissionRequest(BaseModel):
    """A guestbook form submission as received on the wire."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    name: StrictStr = ""
    message: StrictStr = ""
    verification_token: StrictStr = Field(default="", alias="g-recaptcha-response")
    redirect: StrictStr = ""
    honeypot: StrictStr = Field(default="", alias="website")


@dataclass(frozen=True)
class ClientContext:
    """Request metadata forwarded to the reputation services."""

    ip: str
    user_agent: str = ""
    referrer: str = ""


def sanitize(text: str) -> str:
    """Escape HTML special characters to prevent stored XSS."""
    return html.escape(text, quote=True)


def generate_entry_id(now: datetime) -> str:
    """Second-resolution timestamp ID (``YYYYMMDDHHMMSS``)."""
    return now.strftime("%Y%m%d%H%M%S")


@dataclass(frozen=True)
class GuestbookEntry:
    """An accepted guestbook entry, ready for publishing."""

    id: str
    name: str
    message: str
    created_at: int  # Unix epoch seconds

    @classmethod
    def from_request(cls, request: SubmissionRequest, now: datetime | None = None) -> GuestbookEntry:
        """Build a sanitized entry from a submission that passed every check."""
        now = now or datetime.now(UTC)
        return cls(
            id=generate_entry_id(now),
            name=sanitize(request.name.strip()),
            message=sanitize(request.message),
            created_at=int(now.timestamp()),
        )

    def to_yaml(self) -> str:
        """Serialize to the site's guestbook data-file format."""
        data = {
            "_id": self.id,
            "name": self.name,
            "message": self.message,
            "date": self.created_at,
        }
        return yaml.safe_dump(data, sort_keys=False, allow_unicode=True)


@dataclass
class VerificationResult:
    """Outcome of a human-verification check."""

    accepted: bool
    score: float = 0.0
    reason_codes: list[str] = field(default_factory=list)
    action: str = ""
    hostname: str = ""
    error_codes: list[str] = field(default_factory=list)

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> VerificationResult:
        """Create from a siteverify API response (``accepted`` starts False)."""
        raw_codes = data.get("error-codes") or []
        return cls(
            accepted=False,
            score=float(data.get("score") or 0.0),
            action=str(data.get("action") or ""),
            hostname=str(data.get("hostname") or ""),
            error_codes=[str(c) for c in raw_codes],
        )


@dataclass(frozen=True)
class PublishedEntry:
    """Where an entry ended up after publishing."""

    branch: str
    path: str
    pull_request_number: int | None = None
    pull_request_url: str = ""


@dataclass(frozen=True)
class SubmissionOutcome:
    """Final decision for a submission that raised no error.

    Accepted and silently rejected outcomes share one response message.
    """

    accepted: bool
    rejected_by: RejectStage | None = None
    entry: GuestbookEntry | None = None
    published: PublishedEntry | None = None
    redirect_url: str | None = None
    message: str = GENERIC_SUCCESS_MESSAGE

    @classmethod
    def silent_reject(cls, stage: RejectStage) -> SubmissionOutcome:
        return cls(accepted=False, rejected_by=stage)
