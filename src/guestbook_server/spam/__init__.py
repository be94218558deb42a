"""Spam filtering stages for guestbook submissions.

Public API
----------
- :func:`is_likely_spam`: local content heuristics
- :class:`RecaptchaVerifier`, :class:`DisabledVerifier`: human verification
- :class:`AkismetChecker`, :class:`DisabledSpamChecker`: spam reputation
"""

from guestbook_server.spam.akismet import (
    AkismetChecker,
    DisabledSpamChecker,
    SpamReputationChecker,
    create_spam_checker,
)
from guestbook_server.spam.heuristics import is_likely_spam
from guestbook_server.spam.recaptcha import (
    DisabledVerifier,
    RecaptchaVerifier,
    ReputationVerifier,
    create_verifier,
)

__all__ = [
    "AkismetChecker",
    "DisabledSpamChecker",
    "DisabledVerifier",
    "RecaptchaVerifier",
    "ReputationVerifier",
    "SpamReputationChecker",
    "create_spam_checker",
    "create_verifier",
    "is_likely_spam",
]
