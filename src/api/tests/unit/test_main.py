"""Unit tests for the main FastAPI application.

Covers the health endpoint and the startup schema bootstrap performed
by the lifespan.
"""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from authz.domain.schema_dsl import SchemaParseError
from authz.infrastructure import ConsistencyCoordinator, InMemoryNamespaceRegistry


@pytest.fixture
def mock_settings() -> MagicMock:
    settings = MagicMock()
    settings.app_name = "Test Tessera"
    settings.debug = False
    settings.schema_path = None
    return settings


@pytest.fixture
def fresh_state():
    """Fresh coordinator and registry in place of the process singletons."""
    coordinator = ConsistencyCoordinator()
    registry = InMemoryNamespaceRegistry(coordinator=coordinator)
    with (
        patch("main.get_consistency_coordinator", return_value=coordinator),
        patch("main.get_namespace_registry", return_value=registry),
    ):
        yield coordinator, registry


class TestHealth:
    def test_health_returns_ok(self, mock_settings):
        from main import app

        with patch("main.get_settings", return_value=mock_settings):
            with TestClient(app) as client:
                response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "ok"}


class TestLifespan:
    """Tests for the startup schema bootstrap."""

    def test_bootstrap_skipped_without_schema_path(self, mock_settings, fresh_state):
        from main import app

        probe = MagicMock()
        with (
            patch("main.get_settings", return_value=mock_settings),
            patch("main.DefaultStartupProbe", return_value=probe),
        ):
            with TestClient(app):
                pass

        probe.application_starting.assert_called_once()
        probe.schema_bootstrap_skipped.assert_called_once_with()
        probe.application_stopped.assert_called_once_with()

    def test_bootstrap_loads_schema_file(self, mock_settings, fresh_state, tmp_path):
        from main import app

        _, registry = fresh_state
        path = tmp_path / "schema.zed"
        path.write_text("definition user {} definition team { relation member: user }")
        mock_settings.schema_path = str(path)
        probe = MagicMock()

        with (
            patch("main.get_settings", return_value=mock_settings),
            patch("main.DefaultStartupProbe", return_value=probe),
        ):
            with TestClient(app):
                assert registry.find("team", "member") is not None

        revision = probe.schema_bootstrapped.call_args.kwargs["revision"]
        assert revision == registry.schema_revision()

    def test_bootstrap_failure_aborts_startup(
        self, mock_settings, fresh_state, tmp_path
    ):
        from main import app

        path = tmp_path / "schema.zed"
        path.write_text("definition {")
        mock_settings.schema_path = str(path)
        probe = MagicMock()

        with (
            patch("main.get_settings", return_value=mock_settings),
            patch("main.DefaultStartupProbe", return_value=probe),
        ):
            with pytest.raises(SchemaParseError):
                with TestClient(app):
                    pass

        probe.schema_bootstrap_failed.assert_called_once()
