"""Text schema language for namespace definitions.

The format follows SpiceDB's ``.zed`` schemas:

    definition user {}

    definition group {
        relation member: user | group#member
    }

    definition document {
        relation parent: folder
        relation owner: user
        relation editor: user | group#member = this + owner
        relation viewer: user | user:*
        permission view = viewer + editor + parent->view
        permission comment = view & editor
        permission delete = owner - banned
    }

``relation`` declares a relation that accepts direct tuples from the listed
subject types; an optional ``= expression`` replaces the implicit ``this``
(use ``this`` inside the expression to keep direct tuples). ``permission``
declares a computed relation with no direct tuples.

Operators: ``&`` (intersection) binds tighter than ``+`` (union) and ``-``
(exclusion), which share a level and associate to the left. ``a->b`` is a
tuple-to-userset. Parentheses group. ``//`` and ``/* */`` are comments.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass

from authz.domain import rewrites
from authz.domain.namespace import (
    AllowedSubjectType,
    NamespaceDefinition,
    RelationDefinition,
)
from authz.domain.rewrites import RewriteExpression


class SchemaParseError(ValueError):
    """Raised when schema text is not well formed."""

    def __init__(self, message: str, line: int):
        super().__init__(f"line {line}: {message}")
        self.line = line


@dataclass(frozen=True)
class _Token:
    kind: str
    value: str
    line: int


_TOKEN_RE = re.compile(
    r"""
    (?P<comment>//[^\n]*|/\*.*?\*/)
    |(?P<newline>\n)
    |(?P<space>[ \t\r]+)
    |(?P<arrow>->)
    |(?P<name>[a-z][a-z0-9_]*)
    |(?P<symbol>[{}():|#=+&*-])
    """,
    re.VERBOSE | re.DOTALL,
)


def _tokenize(text: str) -> list[_Token]:
    tokens: list[_Token] = []
    line = 1
    pos = 0
    while pos < len(text):
        match = _TOKEN_RE.match(text, pos)
        if match is None:
            raise SchemaParseError(f"unexpected character {text[pos]!r}", line)
        kind = match.lastgroup
        value = match.group()
        if kind in ("name", "symbol", "arrow"):
            tokens.append(_Token(kind=kind, value=value, line=line))
        line += value.count("\n")
        pos = match.end()
    tokens.append(_Token(kind="eof", value="", line=line))
    return tokens


class _Parser:
    def __init__(self, text: str):
        self._tokens = _tokenize(text)
        self._pos = 0

    def _peek(self) -> _Token:
        return self._tokens[self._pos]

    def _next(self) -> _Token:
        token = self._tokens[self._pos]
        self._pos += 1
        return token

    def _accept(self, value: str) -> bool:
        if self._peek().value == value and self._peek().kind != "eof":
            self._pos += 1
            return True
        return False

    def _expect(self, value: str) -> _Token:
        token = self._next()
        if token.value != value or token.kind == "eof":
            raise SchemaParseError(
                f"expected '{value}', found '{token.value or 'end of input'}'",
                token.line,
            )
        return token

    def _name(self) -> str:
        token = self._next()
        if token.kind != "name":
            raise SchemaParseError(
                f"expected a name, found '{token.value or 'end of input'}'",
                token.line,
            )
        return token.value

    def parse(self) -> dict[str, NamespaceDefinition]:
        namespaces: dict[str, NamespaceDefinition] = {}
        while self._peek().kind != "eof":
            line = self._peek().line
            namespace = self._definition()
            if namespace.name in namespaces:
                raise SchemaParseError(
                    f"definition '{namespace.name}' is declared twice", line
                )
            namespaces[namespace.name] = namespace
        return namespaces

    def _definition(self) -> NamespaceDefinition:
        self._expect("definition")
        name = self._name()
        self._expect("{")
        relations: dict[str, RelationDefinition] = {}
        while not self._accept("}"):
            line = self._peek().line
            keyword = self._name()
            if keyword == "relation":
                relation = self._relation()
            elif keyword == "permission":
                relation = self._permission()
            else:
                raise SchemaParseError(
                    f"expected 'relation' or 'permission', found '{keyword}'", line
                )
            if relation.name in relations:
                raise SchemaParseError(
                    f"'{name}#{relation.name}' is declared twice", line
                )
            relations[relation.name] = relation
        return NamespaceDefinition(name=name, relations=relations)

    def _relation(self) -> RelationDefinition:
        name = self._name()
        subject_types: list[AllowedSubjectType] = []
        if self._accept(":"):
            subject_types.append(self._subject_type())
            while self._accept("|"):
                subject_types.append(self._subject_type())
        rewrite: RewriteExpression = rewrites.This()
        if self._accept("="):
            rewrite = self._expression()
        return RelationDefinition(
            name=name,
            rewrite=rewrite,
            subject_types=tuple(subject_types),
        )

    def _permission(self) -> RelationDefinition:
        name = self._name()
        self._expect("=")
        return RelationDefinition(name=name, rewrite=self._expression())

    def _subject_type(self) -> AllowedSubjectType:
        subject_type = self._name()
        if self._accept(":"):
            self._expect("*")
            return AllowedSubjectType(subject_type=subject_type, wildcard=True)
        if self._accept("#"):
            return AllowedSubjectType(subject_type=subject_type, relation=self._name())
        return AllowedSubjectType(subject_type=subject_type)

    def _expression(self) -> RewriteExpression:
        left = self._term()
        while self._peek().value in ("+", "-"):
            operator = self._next().value
            right = self._term()
            if operator == "+":
                left = _flatten(rewrites.Union, left, right)
            else:
                left = rewrites.Exclusion(base=left, subtract=right)
        return left

    def _term(self) -> RewriteExpression:
        left = self._factor()
        while self._accept("&"):
            left = _flatten(rewrites.Intersection, left, self._factor())
        return left

    def _factor(self) -> RewriteExpression:
        if self._accept("("):
            expression = self._expression()
            self._expect(")")
            return expression
        name = self._name()
        if name == "this":
            return rewrites.This()
        if self._peek().kind == "arrow":
            self._next()
            return rewrites.TupleToUserset(
                tupleset=name,
                computed_relation=self._name(),
            )
        return rewrites.ComputedUserset(relation=name)


def _flatten(
    combinator: type[rewrites.Union] | type[rewrites.Intersection],
    left: RewriteExpression,
    right: RewriteExpression,
) -> RewriteExpression:
    children: list[RewriteExpression] = []
    for side in (left, right):
        if isinstance(side, combinator):
            children.extend(side.children)
        else:
            children.append(side)
    return combinator(children=tuple(children))


def parse_schema(text: str) -> dict[str, NamespaceDefinition]:
    """Parse schema text into namespace definitions keyed by object type.

    Raises:
        SchemaParseError: If the text is not well formed
    """
    return _Parser(text).parse()


# Binding strength used when rendering, higher binds tighter.
_PRECEDENCE = {"union": 1, "exclusion": 1, "intersection": 2}


def render_expression(expression: RewriteExpression, parent: int = 0) -> str:
    """Render a rewrite expression in schema syntax."""
    match expression:
        case rewrites.This():
            return "this"
        case rewrites.ComputedUserset(relation=relation):
            return relation
        case rewrites.TupleToUserset(tupleset=tupleset, computed_relation=target):
            return f"{tupleset}->{target}"
        case rewrites.Union(children=children):
            own = _PRECEDENCE["union"]
            text = " + ".join(render_expression(c, own + 1) for c in children)
        case rewrites.Intersection(children=children):
            own = _PRECEDENCE["intersection"]
            text = " & ".join(render_expression(c, own + 1) for c in children)
        case rewrites.Exclusion(base=base, subtract=subtract):
            own = _PRECEDENCE["exclusion"]
            text = (
                f"{render_expression(base, own)} - "
                f"{render_expression(subtract, own + 1)}"
            )
    return f"({text})" if own < parent else text


def _render_relation(definition: RelationDefinition) -> str:
    if definition.subject_types or isinstance(definition.rewrite, rewrites.This):
        line = f"relation {definition.name}"
        if definition.subject_types:
            line += ": " + " | ".join(str(t) for t in definition.subject_types)
        if not isinstance(definition.rewrite, rewrites.This):
            line += f" = {render_expression(definition.rewrite)}"
        return line
    return f"permission {definition.name} = {render_expression(definition.rewrite)}"


def render_schema(namespaces: Mapping[str, NamespaceDefinition]) -> str:
    """Render namespaces back to schema text, sorted by object type."""
    blocks: list[str] = []
    for name in sorted(namespaces):
        namespace = namespaces[name]
        if not namespace.relations:
            blocks.append(f"definition {name} {{}}")
            continue
        lines: Iterable[str] = (
            f"    {_render_relation(definition)}"
            for definition in namespace.relations.values()
        )
        blocks.append("\n".join([f"definition {name} {{", *lines, "}"]))
    return "\n\n".join(blocks) + "\n"
