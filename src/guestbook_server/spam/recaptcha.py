"""Human verification via Google reCAPTCHA v3.

Verification is a mandatory, fail-closed gate: any transport problem or
failed rule raises :class:`VerificationError`. Without a secret key the
server uses :class:`DisabledVerifier`, which accepts everything.
"""

from __future__ import annotations

from typing import Any, NoReturn, Protocol

import httpx
import structlog

from guestbook_server.config import DEFAULT_SCORE_THRESHOLD
from guestbook_server.errors import VerificationError
from guestbook_server.logging import get_logger
from guestbook_server.models import ReasonCode, VerificationResult

log = get_logger("guestbook_server.spam.recaptcha")

SITEVERIFY_URL = "https://www.google.com/recaptcha/api/siteverify"
DEFAULT_ACTION = "submit"
DEFAULT_TIMEOUT = 10.0


class ReputationVerifier(Protocol):
    """Interface for human/bot verification backends."""

    @property
    def enabled(self) -> bool:
        """False for the no-op verifier; the token is then not required."""
        ...

    async def verify(self, token: str, remote_ip: str) -> VerificationResult:
        """Return an accepted result or raise :class:`VerificationError`."""
        ...


class DisabledVerifier:
    """Verifier used when no secret key is configured. Accepts everything."""

    enabled = False

    def __init__(self, logger: structlog.stdlib.BoundLogger | None = None) -> None:
        self._log = logger or log

    async def verify(self, token: str, remote_ip: str) -> VerificationResult:
        self._log.debug("verification_skipped", remote_ip=remote_ip)
        return VerificationResult(accepted=True, score=1.0)


class RecaptchaVerifier:
    """reCAPTCHA v3 siteverify client.

    Checks, in order: transport and JSON parsing, the score-zero
    misconfiguration case, the ``success`` flag, the action label and
    finally the score threshold.
    """

    enabled = True

    def __init__(
        self,
        secret_key: str,
        *,
        score_threshold: float = DEFAULT_SCORE_THRESHOLD,
        expected_action: str = DEFAULT_ACTION,
        timeout: float = DEFAULT_TIMEOUT,
        client: httpx.AsyncClient | None = None,
        logger: structlog.stdlib.BoundLogger | None = None,
    ) -> None:
        if not secret_key:
            raise ValueError("secret_key is required; use DisabledVerifier instead")
        self._secret_key = secret_key
        self._threshold = score_threshold if score_threshold > 0 else DEFAULT_SCORE_THRESHOLD
        self._expected_action = expected_action
        self._timeout = timeout
        self._client = client
        self._log = logger or log

    @property
    def score_threshold(self) -> float:
        return self._threshold

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self._timeout)
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def _siteverify(self, token: str, remote_ip: str) -> dict[str, Any]:
        client = await self._get_client()
        try:
            response = await client.post(
                SITEVERIFY_URL,
                data={
                    "secret": self._secret_key,
                    "response": token,
                    "remoteip": remote_ip,
                },
            )
        except httpx.RequestError as e:
            self._log.warning("recaptcha_request_failed", error=str(e))
            raise VerificationError(ReasonCode.TRANSPORT_ERROR, f"Request failed: {e}") from e

        if response.status_code != 200:
            self._log.warning("recaptcha_bad_status", status=response.status_code)
            raise VerificationError(
                ReasonCode.TRANSPORT_ERROR,
                f"siteverify returned status {response.status_code}",
            )

        try:
            data = response.json()
        except ValueError as e:
            raise VerificationError(
                ReasonCode.INVALID_RESPONSE, "siteverify returned invalid JSON"
            ) from e
        if not isinstance(data, dict):
            raise VerificationError(
                ReasonCode.INVALID_RESPONSE, "siteverify returned a non-object body"
            )
        return data

    def _reject(self, result: VerificationResult, reason: ReasonCode, detail: str) -> NoReturn:
        result.accepted = False
        result.reason_codes.append(reason)
        self._log.info(
            "recaptcha_rejected",
            reason=str(reason),
            score=result.score,
            action=result.action,
            error_codes=result.error_codes,
        )
        raise VerificationError(reason, detail, result)

    async def verify(self, token: str, remote_ip: str) -> VerificationResult:
        """Verify a reCAPTCHA token for *remote_ip*."""
        self._log.debug("recaptcha_verify_started", remote_ip=remote_ip, token_length=len(token))

        data = await self._siteverify(token, remote_ip)
        try:
            result = VerificationResult.from_api(data)
        except (TypeError, ValueError) as e:
            raise VerificationError(
                ReasonCode.INVALID_RESPONSE, "siteverify returned a malformed score"
            ) from e
        success = data.get("success") is True

        self._log.info(
            "recaptcha_response",
            success=success,
            score=result.score,
            action=result.action,
            hostname=result.hostname,
            error_codes=result.error_codes,
        )

        # A zero score without error codes usually means a v2 widget or a
        # site key mismatch on the frontend; it is not the same as a low score.
        if result.score == 0.0 and not result.error_codes:
            self._reject(
                result,
                ReasonCode.SCORE_ZERO_NO_ERRORS,
                "score is 0.0 with no errors; check the frontend site key and version",
            )

        if not success:
            self._reject(
                result,
                ReasonCode.VERIFICATION_FAILED,
                f"verification failed: {result.error_codes}",
            )

        if result.action != self._expected_action:
            self._reject(
                result,
                ReasonCode.ACTION_MISMATCH,
                f"expected action {self._expected_action!r}, got {result.action!r}",
            )

        if result.score < self._threshold:
            self._reject(
                result,
                ReasonCode.LOW_SCORE,
                f"score too low: {result.score:.2f} (minimum: {self._threshold:.2f})",
            )

        result.accepted = True
        self._log.debug(
            "recaptcha_verified", score=result.score, threshold=self._threshold
        )
        return result


def create_verifier(
    secret_key: str | None,
    *,
    score_threshold: float = DEFAULT_SCORE_THRESHOLD,
    expected_action: str = DEFAULT_ACTION,
    timeout: float = DEFAULT_TIMEOUT,
    logger: structlog.stdlib.BoundLogger | None = None,
) -> ReputationVerifier:
    """Build a verifier; an empty secret yields the no-op :class:`DisabledVerifier`."""
    if not secret_key:
        return DisabledVerifier(logger=logger)
    return RecaptchaVerifier(
        secret_key,
        score_threshold=score_threshold,
        expected_action=expected_action,
        timeout=timeout,
        logger=logger,
    )
