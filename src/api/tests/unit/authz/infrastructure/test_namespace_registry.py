"""Unit tests for the versioned namespace registry."""

from unittest.mock import MagicMock

import pytest

from authz.domain import rewrites
from authz.domain.namespace import AllowedSubjectType
from authz.domain.schema_dsl import parse_schema
from authz.infrastructure import ConsistencyCoordinator, InMemoryNamespaceRegistry
from authz.ports.exceptions import SchemaValidationError, UndefinedRelationError


@pytest.fixture
def empty_registry(coordinator: ConsistencyCoordinator) -> InMemoryNamespaceRegistry:
    return InMemoryNamespaceRegistry(coordinator=coordinator)


class TestDefine:
    """Tests for incremental relation definitions."""

    def test_define_bumps_global_revision(self, empty_registry, coordinator):
        first = empty_registry.declare("user")
        second = empty_registry.define(
            "doc",
            "viewer",
            rewrites.this(),
            subject_types=[AllowedSubjectType(subject_type="user")],
        )

        assert second == first + 1
        assert coordinator.head() == second
        assert empty_registry.get("doc", "viewer").rewrite == rewrites.This()

    def test_declare_existing_type_is_a_no_op(self, empty_registry):
        revision = empty_registry.declare("user")
        assert empty_registry.declare("user") == revision

    def test_define_rejects_undefined_reference(self, empty_registry, coordinator):
        with pytest.raises(SchemaValidationError) as exc_info:
            empty_registry.define("doc", "view", rewrites.computed("viewer"))

        assert exc_info.value.errors == [
            "doc#view: relation 'viewer' is not defined on 'doc'"
        ]
        assert coordinator.head() == 0

    def test_define_validates_only_the_changed_type(self, empty_registry):
        empty_registry.declare("user")
        empty_registry.define("doc", "viewer", rewrites.this())
        empty_registry.define(
            "doc", "view", rewrites.union(rewrites.computed("viewer"))
        )

        assert empty_registry.validate("doc") == []

    def test_rejection_is_reported_to_probe(self, coordinator):
        probe = MagicMock()
        registry = InMemoryNamespaceRegistry(coordinator=coordinator, probe=probe)

        with pytest.raises(SchemaValidationError):
            registry.define("doc", "view", rewrites.computed("viewer"))

        probe.schema_rejected.assert_called_once()
        probe.schema_changed.assert_not_called()


class TestVersionedLookups:
    """Tests for reading the schema as of a revision."""

    def test_get_at_old_revision_sees_old_schema(self, empty_registry):
        before = empty_registry.declare("doc")
        after = empty_registry.define("doc", "viewer", rewrites.this())

        assert empty_registry.find("doc", "viewer", before) is None
        assert empty_registry.find("doc", "viewer", after) is not None
        with pytest.raises(UndefinedRelationError) as exc_info:
            empty_registry.get("doc", "viewer", before)
        assert exc_info.value.revision == before

    def test_lookups_between_schema_changes_use_latest_prior_schema(
        self, empty_registry, coordinator
    ):
        revision = empty_registry.define("doc", "viewer", rewrites.this())
        later = coordinator.mint_token()
        coordinator.publish(later)

        assert empty_registry.find("doc", "viewer", later) is not None
        assert empty_registry.schema_revision(later) == revision

    def test_unknown_type_and_relation(self, registry):
        assert registry.find("nothing", "viewer") is None
        with pytest.raises(UndefinedRelationError, match="document#nothing"):
            registry.get("document", "nothing")


class TestApplySchema:
    """Tests for whole-schema replacement."""

    def test_apply_schema_replaces_everything(self, empty_registry):
        empty_registry.apply_schema(parse_schema("definition user {}"))
        empty_registry.apply_schema(
            parse_schema("definition team { relation member: team#member }")
        )

        assert set(empty_registry.namespaces()) == {"team"}

    def test_invalid_schema_is_not_applied(self, empty_registry):
        empty_registry.apply_schema(parse_schema("definition user {}"))

        with pytest.raises(SchemaValidationError):
            empty_registry.apply_schema(
                parse_schema("definition doc { relation viewer: person }")
            )

        assert set(empty_registry.namespaces()) == {"user"}
