"""
Unit tests for structured logging helpers.
"""

import logging

import pytest
import structlog
from structlog.testing import capture_logs

from phototimeline.logging_config import (
    configure_structured_logging,
    get_log_level,
    is_development_environment,
    log_error,
    log_performance,
    log_security_event,
    log_user_action,
)


class TestLoggingConfiguration:
    """Test cases for logging setup."""

    def teardown_method(self):
        structlog.reset_defaults()

    @pytest.mark.parametrize("raw,expected", [("debug", logging.DEBUG), ("WARNING", logging.WARNING), ("bogus", logging.INFO)])
    def test_get_log_level(self, monkeypatch, raw, expected):
        monkeypatch.setenv("LOG_LEVEL", raw)

        assert get_log_level() == expected

    def test_development_environment(self, monkeypatch):
        monkeypatch.setenv("ENVIRONMENT", "local")
        assert is_development_environment() is True

        monkeypatch.setenv("ENVIRONMENT", "production")
        assert is_development_environment() is False

    def test_configure_sets_root_level(self, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "DEBUG")
        monkeypatch.setenv("ENVIRONMENT", "production")

        configure_structured_logging()
        configure_structured_logging()

        assert logging.getLogger().level == logging.DEBUG


class TestLogHelpers:
    """Test cases for the event helpers."""

    def test_log_performance(self):
        with capture_logs() as logs:
            log_performance("upload_photo", 0.25, attempts=2)

        assert logs[0]["event"] == "performance_metric"
        assert logs[0]["operation"] == "upload_photo"
        assert logs[0]["duration_seconds"] == 0.25
        assert logs[0]["attempts"] == 2

    def test_log_user_action(self):
        with capture_logs() as logs:
            log_user_action("user-1", "sign_in", email="a@example.com")

        assert logs[0]["event"] == "user_action"
        assert logs[0]["user_id"] == "user-1"
        assert logs[0]["action"] == "sign_in"

    def test_log_error(self):
        with capture_logs() as logs:
            log_error(ValueError("bad value"), {"operation": "delete_photo"})

        assert logs[0]["log_level"] == "error"
        assert logs[0]["error_type"] == "ValueError"
        assert logs[0]["error_message"] == "bad value"
        assert logs[0]["operation"] == "delete_photo"

    def test_log_security_event(self):
        with capture_logs() as logs:
            log_security_event("session_expired", user_id="user-1")

        assert logs[0]["log_level"] == "warning"
        assert logs[0]["event_type"] == "session_expired"
