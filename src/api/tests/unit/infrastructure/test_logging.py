"""Unit tests for structlog configuration."""

import json

import pytest
import structlog

from infrastructure.logging import configure_logging


@pytest.fixture(autouse=True)
def reset_structlog():
    yield
    structlog.contextvars.clear_contextvars()
    structlog.reset_defaults()


class TestConfigureLogging:
    """Tests for configure_logging."""

    def test_json_output_outside_tty(self, monkeypatch, capsys):
        monkeypatch.delenv("FORCE_COLOR", raising=False)
        configure_logging(service="tessera-test")

        structlog.get_logger().info("authz_tuples_written", revision=3)

        event = json.loads(capsys.readouterr().out.strip().splitlines()[-1])
        assert event["event"] == "authz_tuples_written"
        assert event["revision"] == 3
        assert event["level"] == "info"
        assert event["service"] == "tessera-test"

    def test_debug_events_filtered_by_default(self, monkeypatch, capsys):
        monkeypatch.delenv("FORCE_COLOR", raising=False)
        configure_logging()

        structlog.get_logger().debug("authz_check_completed")

        assert capsys.readouterr().out == ""

    def test_debug_events_emitted_in_debug_mode(self, monkeypatch, capsys):
        monkeypatch.delenv("FORCE_COLOR", raising=False)
        configure_logging(debug=True)

        structlog.get_logger().debug("authz_check_completed")

        assert "authz_check_completed" in capsys.readouterr().out
