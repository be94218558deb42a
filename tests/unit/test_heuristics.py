"""Tests for local spam content heuristics."""

import pytest

from guestbook_server.spam.heuristics import (
    MAX_MESSAGE_LENGTH,
    check,
    count_links,
    is_likely_spam,
    is_repetitive,
)


class TestSuspiciousPatterns:
    """Substring patterns matched against name and message."""

    @pytest.mark.parametrize(
        "message",
        [
            "Click HERE for prizes",
            "BUY NOW while stocks last",
            "[url=http://spam.test]hi[/url]",
            "best casino in town",
            "Bitcoin doubling service",
        ],
    )
    def test_pattern_in_message(self, message):
        assert is_likely_spam("Jo", message) is True

    def test_pattern_in_name(self):
        assert check("Cheap Viagra", "hello there") == "pattern:viagra"

    def test_pattern_match_is_substring(self):
        """Patterns match inside other words ("freedom" contains "free")."""
        assert check("Jo", "Freedom rings") == "pattern:free"

    def test_clean_message(self):
        assert check("Jo", "Lovely site, thanks for sharing") is None
        assert is_likely_spam("Jo", "Lovely site, thanks for sharing") is False


class TestLinks:
    """Link counting and the two-link limit."""

    def test_count_links(self):
        text = "see https://a.example.com and http://b.example.org/path?q=1"
        assert count_links(text) == 2

    def test_two_links_allowed(self):
        message = "https://a.example.com https://b.example.com"
        assert check("Jo", message) is None

    def test_three_links_flagged(self):
        message = "https://a.example.com https://b.example.com ftp://c.example.com"
        assert check("Jo", message) == "too_many_links"

    def test_bare_domain_not_counted(self):
        assert count_links("visit example.com sometime") == 0


class TestLength:
    """Messages longer than the maximum are flagged."""

    def test_at_limit_allowed(self):
        message = ("ab cd " * 200)[:MAX_MESSAGE_LENGTH]
        assert len(message) == MAX_MESSAGE_LENGTH
        assert check("Jo", message) is None

    def test_over_limit_flagged(self):
        message = ("ab cd " * 200)[: MAX_MESSAGE_LENGTH + 1]
        assert check("Jo", message) == "too_long"


class TestRepetition:
    """Single-character dominance."""

    def test_repetitive_at_minimum_length(self):
        assert is_repetitive("aaaaaaaaaa") is True
        assert check("Jo", "aaaaaaaaaa") == "repetitive"

    def test_short_message_never_repetitive(self):
        assert is_repetitive("aaaaaaaaa") is False
        assert check("Jo", "aaaaaaaaa") is None

    def test_exactly_seventy_percent_not_repetitive(self):
        assert is_repetitive("aaaaaaabcd") is False

    def test_above_seventy_percent_repetitive(self):
        assert is_repetitive("aaaaaaaabc") is True

    def test_empty_message(self):
        assert is_repetitive("") is False
