"""Unit tests for namespace validation rules."""

from authz.domain import rewrites
from authz.domain.namespace import (
    AllowedSubjectType,
    NamespaceDefinition,
    RelationDefinition,
    validate_namespaces,
)
from authz.domain.schema_dsl import parse_schema


class TestValidateNamespaces:
    """Tests for cross-namespace validation."""

    def test_valid_schema_has_no_errors(self):
        namespaces = parse_schema(
            """
            definition user {}
            definition folder { relation viewer: user }
            definition doc {
                relation parent: folder
                relation viewer: user
                permission view = viewer + parent->viewer
            }
            """
        )
        assert validate_namespaces(namespaces) == []

    def test_undefined_computed_relation(self):
        namespaces = parse_schema("definition doc { permission view = viewer }")
        errors = validate_namespaces(namespaces)
        assert errors == ["doc#view: relation 'viewer' is not defined on 'doc'"]

    def test_undefined_subject_type(self):
        namespaces = parse_schema("definition doc { relation viewer: user }")
        assert validate_namespaces(namespaces) == [
            "doc#viewer: subject type 'user' is not defined"
        ]

    def test_undefined_subject_relation(self):
        namespaces = parse_schema(
            "definition group {} definition doc { relation viewer: group#member }"
        )
        assert validate_namespaces(namespaces) == [
            "doc#viewer: subject relation 'group#member' is not defined"
        ]

    def test_reserved_relation_name(self):
        namespaces = {
            "doc": NamespaceDefinition(
                name="doc",
                relations={"self": RelationDefinition(name="self")},
            )
        }
        assert "doc#self: 'self' is a reserved word" in validate_namespaces(namespaces)

    def test_tupleset_must_exist(self):
        namespaces = parse_schema(
            "definition doc { permission view = parent->viewer }"
        )
        assert validate_namespaces(namespaces) == [
            "doc#view: tupleset relation 'parent' is not defined"
        ]

    def test_tupleset_must_hold_direct_tuples(self):
        namespaces = parse_schema(
            """
            definition folder { relation viewer: folder }
            definition doc {
                relation owner: folder
                permission parent = owner
                permission view = parent->viewer
            }
            """
        )
        errors = validate_namespaces(namespaces)
        assert any("must be a plain relation" in error for error in errors)

    def test_tuple_to_userset_target_must_exist_on_a_candidate_type(self):
        namespaces = parse_schema(
            """
            definition folder {}
            definition doc {
                relation parent: folder
                permission view = parent->viewer
            }
            """
        )
        assert validate_namespaces(namespaces) == [
            "doc#view: relation 'viewer' is not defined on any type reachable "
            "through 'parent'"
        ]

    def test_computed_cycle_is_reported(self):
        namespaces = parse_schema(
            "definition doc { permission a = b permission b = c + a permission c = this }"
        )
        errors = validate_namespaces(namespaces)
        assert "doc: computed relations form a cycle: a -> b -> a" in errors

    def test_only_restricts_validation_to_one_type(self):
        namespaces = {
            "doc": NamespaceDefinition(
                name="doc",
                relations={
                    "view": RelationDefinition(
                        name="view", rewrite=rewrites.computed("missing")
                    )
                },
            ),
            "folder": NamespaceDefinition(name="folder"),
        }
        assert validate_namespaces(namespaces, only="folder") == []
        assert len(validate_namespaces(namespaces, only="doc")) == 1

    def test_only_reports_missing_type(self):
        assert validate_namespaces({}, only="doc") == ["object type 'doc' is not defined"]

    def test_wildcard_subject_type_cannot_carry_relation(self):
        try:
            AllowedSubjectType(subject_type="user", relation="member", wildcard=True)
        except ValueError as e:
            assert "wildcard" in str(e).lower()
        else:
            raise AssertionError("expected a validation error")
