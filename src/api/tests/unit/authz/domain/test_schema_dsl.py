"""Unit tests for the schema language parser and renderer."""

import pytest

from authz.domain import rewrites
from authz.domain.namespace import AllowedSubjectType
from authz.domain.schema_dsl import (
    SchemaParseError,
    parse_schema,
    render_expression,
    render_schema,
)


def _permission(expression: str) -> rewrites.RewriteExpression:
    namespaces = parse_schema(
        f"definition doc {{ permission p = {expression} }}"
    )
    return namespaces["doc"].relations["p"].rewrite


class TestParseSchema:
    """Tests for parsing schema documents."""

    def test_parses_definitions_relations_and_subject_types(self):
        namespaces = parse_schema(
            """
            // users have no relations
            definition user {}

            definition group {
                relation member: user | group#member | user:*
            }
            """
        )

        assert set(namespaces) == {"user", "group"}
        member = namespaces["group"].relations["member"]
        assert member.rewrite == rewrites.This()
        assert member.subject_types == (
            AllowedSubjectType(subject_type="user"),
            AllowedSubjectType(subject_type="group", relation="member"),
            AllowedSubjectType(subject_type="user", wildcard=True),
        )

    def test_relation_with_expression_replaces_this(self):
        namespaces = parse_schema(
            "definition doc { relation owner: user relation editor: user = this + owner }"
        )
        editor = namespaces["doc"].relations["editor"]
        assert editor.rewrite == rewrites.union(rewrites.this(), rewrites.computed("owner"))

    def test_intersection_binds_tighter_than_union(self):
        assert _permission("a + b & c") == rewrites.union(
            rewrites.computed("a"),
            rewrites.intersection(rewrites.computed("b"), rewrites.computed("c")),
        )

    def test_union_and_exclusion_associate_left(self):
        assert _permission("a + b - c") == rewrites.exclusion(
            rewrites.union(rewrites.computed("a"), rewrites.computed("b")),
            rewrites.computed("c"),
        )
        assert _permission("a - b + c") == rewrites.union(
            rewrites.exclusion(rewrites.computed("a"), rewrites.computed("b")),
            rewrites.computed("c"),
        )

    def test_parentheses_group(self):
        assert _permission("a - (b + c)") == rewrites.exclusion(
            rewrites.computed("a"),
            rewrites.union(rewrites.computed("b"), rewrites.computed("c")),
        )

    def test_unions_are_flattened(self):
        assert _permission("a + b + c") == rewrites.union(
            rewrites.computed("a"), rewrites.computed("b"), rewrites.computed("c")
        )

    def test_arrow_is_tuple_to_userset(self):
        assert _permission("parent->view") == rewrites.tuple_to_userset(
            "parent", "view"
        )

    def test_block_comments_are_ignored(self):
        namespaces = parse_schema("definition doc { /* nothing\n here */ }")
        assert namespaces["doc"].relations == {}

    def test_duplicate_definition_is_rejected(self):
        with pytest.raises(SchemaParseError, match="declared twice"):
            parse_schema("definition user {}\ndefinition user {}")

    def test_duplicate_relation_is_rejected(self):
        with pytest.raises(SchemaParseError, match="declared twice"):
            parse_schema("definition doc { relation a: user relation a: user }")

    def test_error_reports_line_number(self):
        with pytest.raises(SchemaParseError) as exc_info:
            parse_schema("definition doc {\n    relation a: user\n    bogus b\n}")
        assert exc_info.value.line == 3
        assert str(exc_info.value).startswith("line 3:")

    def test_unexpected_character(self):
        with pytest.raises(SchemaParseError, match="unexpected character"):
            parse_schema("definition doc { permission p = a ! b }")

    def test_unterminated_definition(self):
        with pytest.raises(SchemaParseError, match="end of input"):
            parse_schema("definition doc {")

    def test_parse_error_is_a_value_error(self):
        with pytest.raises(ValueError):
            parse_schema("relation a")


class TestRenderSchema:
    """Tests for rendering namespaces back to text."""

    @pytest.mark.parametrize(
        "expression",
        [
            "a + b & c",
            "(a + b) & c",
            "a - (b + c)",
            "a + (b - c)",
            "(a - b) & c",
            "parent->view + this",
        ],
    )
    def test_rendered_expression_parses_to_same_tree(self, expression):
        tree = _permission(expression)
        assert _permission(render_expression(tree)) == tree

    def test_render_minimal_parentheses(self):
        assert render_expression(_permission("(a + b) - c")) == "a + b - c"
        assert render_expression(_permission("a & (b + c)")) == "a & (b + c)"

    def test_render_schema_layout(self):
        text = render_schema(
            parse_schema(
                """
                definition document {
                    relation owner: user
                    relation viewer: user | user:*
                    permission view = viewer + owner
                }
                definition user {}
                """
            )
        )

        assert text == (
            "definition document {\n"
            "    relation owner: user\n"
            "    relation viewer: user | user:*\n"
            "    permission view = viewer + owner\n"
            "}\n"
            "\n"
            "definition user {}\n"
        )
