"""Unit tests for SchemaService."""

from unittest.mock import MagicMock

import pytest

from authz.application.services import SchemaService
from authz.domain.schema_dsl import SchemaParseError
from authz.ports.exceptions import SchemaValidationError


BROKEN_REFERENCE = """
definition document {
    relation viewer: user
}
"""


@pytest.fixture
def mock_probe():
    return MagicMock()


@pytest.fixture
def schema_service(registry, coordinator, mock_probe):
    return SchemaService(registry=registry, coordinator=coordinator, probe=mock_probe)


class TestLoadSchema:
    """Tests for SchemaService.load_schema."""

    def test_load_returns_new_revision(self, schema_service, registry, mock_probe):
        before = registry.schema_revision()

        revision = schema_service.load_schema(
            "definition user {} definition team { relation member: user }"
        )

        assert revision > before
        assert registry.find("document", "view", revision) is None
        assert registry.find("team", "member", revision) is not None
        assert registry.find("document", "view", before) is not None
        mock_probe.schema_loaded.assert_called_once_with(
            revision=revision, object_types=["team", "user"], source="api"
        )

    def test_parse_error_is_recorded_and_raised(self, schema_service, mock_probe):
        with pytest.raises(SchemaParseError):
            schema_service.load_schema("definition {")

        mock_probe.schema_load_failed.assert_called_once()
        mock_probe.schema_loaded.assert_not_called()

    def test_invalid_reference_leaves_schema_unchanged(
        self, schema_service, registry, mock_probe
    ):
        before = registry.schema_revision()

        with pytest.raises(SchemaValidationError) as exc_info:
            schema_service.load_schema(BROKEN_REFERENCE)

        assert any("user" in error for error in exc_info.value.errors)
        assert registry.schema_revision() == before
        mock_probe.schema_load_failed.assert_called_once()

    def test_load_schema_file(self, schema_service, registry, tmp_path):
        path = tmp_path / "schema.zed"
        path.write_text("definition user {} definition team { relation member: user }")

        revision = schema_service.load_schema_file(path)

        assert registry.find("team", "member", revision) is not None
        assert schema_service._probe.schema_loaded.call_args.kwargs["source"] == str(
            path
        )


class TestValidateSchema:
    """Tests for SchemaService.validate_schema."""

    def test_current_document_has_no_errors(self, schema_service):
        text, _ = schema_service.current_schema()
        assert schema_service.validate_schema(text) == []

    def test_reports_parse_error(self, schema_service):
        errors = schema_service.validate_schema("definition user {")
        assert len(errors) == 1

    def test_reports_reference_errors_without_applying(
        self, schema_service, registry
    ):
        before = registry.schema_revision()

        errors = schema_service.validate_schema(BROKEN_REFERENCE)

        assert errors
        assert registry.schema_revision() == before


class TestCurrentSchema:
    """Tests for SchemaService.current_schema."""

    def test_renders_definitions_at_head(
        self, schema_service, coordinator
    ):
        text, revision = schema_service.current_schema()

        assert revision == coordinator.head()
        assert "definition document {" in text
        assert "permission view = viewer + edit + parent->view - banned" in text
