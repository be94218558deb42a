"""Guestbook submission endpoint.

Maps pipeline outcomes and errors onto HTTP responses. Silent rejects and
accepted entries share one response body.
"""

from __future__ import annotations

from typing import Any

from aiohttp import web
from pydantic import ValidationError

from guestbook_server.api.middleware import client_ip
from guestbook_server.errors import PublishError, StructuralError, VerificationError
from guestbook_server.logging import get_logger
from guestbook_server.models import ClientContext, ReasonCode, SubmissionRequest

log = get_logger("guestbook_server.api.routes.guestbook")


async def parse_submission(request: web.Request) -> SubmissionRequest:
    """Bind the body as JSON or form data depending on ``Content-Type``.

    Raises:
        StructuralError: The body cannot be parsed or has wrongly typed fields.
    """
    if "application/json" in request.headers.get("Content-Type", ""):
        try:
            data: Any = await request.json()
        except ValueError as e:
            raise StructuralError("Invalid JSON format") from e
        if not isinstance(data, dict):
            raise StructuralError("Invalid JSON format")
    else:
        try:
            form = await request.post()
        except ValueError as e:
            raise StructuralError("Invalid request format") from e
        data = {key: form.get(key) for key in form.keys()}

    try:
        return SubmissionRequest.model_validate(data)
    except ValidationError as e:
        raise StructuralError("Invalid request format") from e


def _error(message: str, status: int, **extra: Any) -> web.Response:
    return web.json_response({"error": message, **extra}, status=status)


async def handle_guestbook(request: web.Request) -> web.Response:
    """POST /guestbook: accept a guestbook submission."""
    pipeline = request.app["pipeline"]
    client = ClientContext(
        ip=client_ip(request, trust_forwarded_for=request.app["trust_forwarded_for"]),
        user_agent=request.headers.get("User-Agent", ""),
        referrer=request.headers.get("Referer", ""),
    )

    try:
        submission = await parse_submission(request)
        outcome = await pipeline.submit(submission, client)
    except StructuralError as e:
        log.debug("submission_invalid", client_ip=client.ip, error=e.public_message)
        return _error(e.public_message, e.status_code)
    except VerificationError as e:
        if e.reason == ReasonCode.MISSING_TOKEN:
            return _error("Verification is required", e.status_code)
        return _error(e.public_message, e.status_code, reason=str(e.reason))
    except PublishError as e:
        log.error("submission_publish_failed", client_ip=client.ip, step=e.step, error=str(e))
        return _error(e.public_message, e.status_code)

    if outcome.redirect_url:
        return web.Response(status=302, headers={"Location": outcome.redirect_url})
    return web.json_response({"message": outcome.message})
