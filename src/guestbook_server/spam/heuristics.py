"""Local content heuristics for guestbook spam.

Pure and synchronous; no network access and no error path.
"""

from __future__ import annotations

import re
from collections import Counter

# Case-insensitive substrings (checked against name + message)
_SUSPICIOUS_PATTERNS: tuple[str, ...] = (
    "[url=http",
    "[link=http",
    "click here",
    "buy now",
    "free",
    "offer",
    "deal",
    "viagra",
    "casino",
    "loan",
    "crypto",
    "bitcoin",
)

_LINK_RE = re.compile(
    r"(http|ftp|https)://([\w_-]+(?:(?:\.[\w_-]+)+))([\w.,@?^=%&:/~+#-]*[\w@?^=%&/~+#-])?"
)

MAX_LINKS = 2
MAX_MESSAGE_LENGTH = 1000
REPETITION_MIN_LENGTH = 10
REPETITION_RATIO = 0.7


def count_links(text: str) -> int:
    """Number of URL-like substrings in *text*."""
    return sum(1 for _ in _LINK_RE.finditer(text))


def is_repetitive(text: str) -> bool:
    """True when one character makes up more than 70% of *text*.

    Messages shorter than 10 characters are never considered repetitive.
    """
    if len(text) < REPETITION_MIN_LENGTH:
        return False
    _, top = Counter(text).most_common(1)[0]
    return top / len(text) > REPETITION_RATIO


def check(name: str, message: str) -> str | None:
    """Return the name of the first rule that flags the submission, or None."""
    content = f"{name} {message}".lower()
    for pattern in _SUSPICIOUS_PATTERNS:
        if pattern in content:
            return f"pattern:{pattern}"

    if count_links(message) > MAX_LINKS:
        return "too_many_links"

    if len(message) > MAX_MESSAGE_LENGTH:
        return "too_long"

    if is_repetitive(message):
        return "repetitive"

    return None


def is_likely_spam(name: str, message: str) -> bool:
    """Classify a submission as spam using local rules only."""
    return check(name, message) is not None
