"""Tests for logging setup and the custom structlog processors."""

from __future__ import annotations

import json
import logging
from logging.handlers import RotatingFileHandler

import pytest
import structlog

from guestbook_server.config import Settings
from guestbook_server.logging import (
    CONSOLE_HANDLER_NAME,
    FILE_HANDLER_NAME,
    MAX_VALUE_LENGTH,
    ServiceContext,
    get_logger,
    sanitize_visitor_values,
    setup_logging,
)


def _settings(**kwargs) -> Settings:
    return Settings(_env_file=None, **kwargs)


def _ours() -> list[logging.Handler]:
    return [
        h
        for h in logging.getLogger().handlers
        if h.get_name() in (CONSOLE_HANDLER_NAME, FILE_HANDLER_NAME)
    ]


@pytest.fixture(autouse=True)
def restore_logging(monkeypatch: pytest.MonkeyPatch):
    for name in ("LOG_LEVEL", "LOG_TO_FILE", "LOG_DIRECTORY", "ENVIRONMENT"):
        monkeypatch.delenv(name, raising=False)
    root = logging.getLogger()
    level = root.level
    yield
    for handler in _ours():
        root.removeHandler(handler)
        handler.close()
    root.setLevel(level)
    structlog.reset_defaults()


class TestSanitizeVisitorValues:
    """Processor that keeps visitor-supplied strings from corrupting log lines."""

    def test_escapes_line_breaks(self):
        event = {"event": "redirect_blocked", "target": "https://example.com/\r\nSet-Cookie: x=1"}
        result = sanitize_visitor_values(None, "warning", event)
        assert result["target"] == "https://example.com/\\r\\nSet-Cookie: x=1"

    def test_clips_long_values(self):
        result = sanitize_visitor_values(None, "info", {"event": "e", "user_agent": "A" * 5000})
        assert result["user_agent"] == "A" * MAX_VALUE_LENGTH + "..."

    def test_leaves_event_and_non_strings(self):
        event = {"event": "x" * 500, "score": 0.9, "codes": ["a\nb"]}
        result = sanitize_visitor_values(None, "info", dict(event))
        assert result == event

    def test_printable_values_unchanged(self):
        result = sanitize_visitor_values(None, "info", {"event": "e", "name": "Jo Ünïcode"})
        assert result["name"] == "Jo Ünïcode"


class TestServiceContext:
    def test_adds_service_and_environment(self):
        result = ServiceContext("staging")(None, "info", {"event": "e"})
        assert result["service"] == "guestbook_server"
        assert result["environment"] == "staging"

    def test_does_not_override_bound_values(self):
        result = ServiceContext("staging")(None, "info", {"event": "e", "environment": "x"})
        assert result["environment"] == "x"


class TestSetupLogging:
    """Handler installation."""

    def test_console_only_by_default(self):
        setup_logging(_settings())

        (handler,) = _ours()
        assert handler.get_name() == CONSOLE_HANDLER_NAME
        assert logging.getLogger().level == logging.INFO

    def test_log_level_from_settings(self):
        setup_logging(_settings(log_level="debug"))
        assert logging.getLogger().level == logging.DEBUG

    def test_unknown_level_falls_back_to_info(self):
        setup_logging(_settings(log_level="chatty"))
        assert logging.getLogger().level == logging.INFO

    def test_file_handler_created(self, tmp_path):
        log_dir = tmp_path / "logs"
        setup_logging(_settings(log_to_file=True, log_directory=str(log_dir)))

        (file_handler,) = [h for h in _ours() if h.get_name() == FILE_HANDLER_NAME]
        assert isinstance(file_handler, RotatingFileHandler)
        assert file_handler.baseFilename == str(log_dir / "guestbook_server.log")

        get_logger("guestbook_server.test").info("entry_published", entry_id="1")
        file_handler.flush()

        record = json.loads((log_dir / "guestbook_server.log").read_text().splitlines()[-1])
        assert record["event"] == "entry_published"
        assert record["service"] == "guestbook_server"
        assert record["environment"] == "production"

    def test_repeated_setup_does_not_stack_handlers(self, tmp_path):
        settings = _settings(log_to_file=True, log_directory=str(tmp_path))
        setup_logging(settings)
        setup_logging(settings)

        assert sorted(h.get_name() for h in _ours()) == [CONSOLE_HANDLER_NAME, FILE_HANDLER_NAME]

    def test_unusable_log_directory_falls_back_to_console(self, tmp_path, capsys):
        blocker = tmp_path / "not-a-dir"
        blocker.write_text("")

        setup_logging(_settings(log_to_file=True, log_directory=str(blocker / "logs")))

        assert [h.get_name() for h in _ours()] == [CONSOLE_HANDLER_NAME]
        assert "log_file_unavailable" in capsys.readouterr().out
