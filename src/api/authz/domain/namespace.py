"""Namespace definitions and their validation.

A namespace is the configuration of one object type: the relations it
defines, the rewrite expression of each relation, and (optionally) the
subject types a relation accepts for direct tuples.
"""

from __future__ import annotations

from collections.abc import Mapping

from pydantic import BaseModel, ConfigDict, Field, model_validator

from authz.domain import rewrites
from authz.domain.rewrites import RewriteExpression
from authz.domain.value_objects import NAME_PATTERN

_NAME = f"^{NAME_PATTERN}$"

RESERVED_NAMES: frozenset[str] = frozenset(
    {
        "this",
        "self",
        "nil",
        "any",
        "all",
        "definition",
        "relation",
        "permission",
    }
)


class AllowedSubjectType(BaseModel):
    """A subject type accepted by a relation for direct tuples.

    Rendered as ``user``, ``group#member`` or ``user:*``.
    """

    model_config = ConfigDict(frozen=True)

    subject_type: str = Field(pattern=_NAME)
    relation: str | None = Field(default=None, pattern=_NAME)
    wildcard: bool = False

    @model_validator(mode="after")
    def validate_wildcard(self) -> AllowedSubjectType:
        if self.wildcard and self.relation is not None:
            raise ValueError("A wildcard subject type cannot carry a relation")
        return self

    def __str__(self) -> str:
        if self.wildcard:
            return f"{self.subject_type}:*"
        if self.relation is not None:
            return f"{self.subject_type}#{self.relation}"
        return self.subject_type


class RelationDefinition(BaseModel):
    """A relation of a namespace with its rewrite expression."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(pattern=_NAME)
    rewrite: RewriteExpression = Field(default_factory=rewrites.This)
    subject_types: tuple[AllowedSubjectType, ...] = ()


class NamespaceDefinition(BaseModel):
    """The relations defined for one object type."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(pattern=_NAME)
    relations: dict[str, RelationDefinition] = Field(default_factory=dict)

    def with_relation(self, definition: RelationDefinition) -> NamespaceDefinition:
        """Return a copy with the relation added or replaced."""
        relations = {**self.relations, definition.name: definition}
        return NamespaceDefinition(name=self.name, relations=relations)


def validate_namespaces(
    namespaces: Mapping[str, NamespaceDefinition],
    only: str | None = None,
) -> list[str]:
    """Validate namespaces against each other.

    Args:
        namespaces: Every namespace of the schema, keyed by object type
        only: Restrict validation to a single object type

    Returns:
        Human readable error messages; empty when the schema is valid
    """
    errors: list[str] = []
    for object_type, namespace in namespaces.items():
        if only is not None and object_type != only:
            continue
        errors.extend(_validate_namespace(object_type, namespace, namespaces))
    if only is not None and only not in namespaces:
        errors.append(f"object type '{only}' is not defined")
    return errors


def _validate_namespace(
    object_type: str,
    namespace: NamespaceDefinition,
    namespaces: Mapping[str, NamespaceDefinition],
) -> list[str]:
    errors: list[str] = []
    if namespace.name != object_type:
        errors.append(
            f"namespace '{namespace.name}' is registered under '{object_type}'"
        )
    if object_type in RESERVED_NAMES:
        errors.append(f"'{object_type}' is a reserved word")

    for key, definition in namespace.relations.items():
        where = f"{object_type}#{key}"
        if definition.name != key:
            errors.append(f"{where}: relation is named '{definition.name}'")
        if key in RESERVED_NAMES:
            errors.append(f"{where}: '{key}' is a reserved word")

        for allowed in definition.subject_types:
            target = namespaces.get(allowed.subject_type)
            if target is None:
                errors.append(
                    f"{where}: subject type '{allowed.subject_type}' is not defined"
                )
            elif allowed.relation and allowed.relation not in target.relations:
                errors.append(
                    f"{where}: subject relation '{allowed}' is not defined"
                )

        for node in rewrites.walk(definition.rewrite):
            if isinstance(node, rewrites.ComputedUserset):
                if node.relation not in namespace.relations:
                    errors.append(
                        f"{where}: relation '{node.relation}' is not defined "
                        f"on '{object_type}'"
                    )
            elif isinstance(node, rewrites.TupleToUserset):
                errors.extend(
                    _validate_tuple_to_userset(where, node, namespace, namespaces)
                )

    errors.extend(_computed_cycles(object_type, namespace))
    return errors


def _validate_tuple_to_userset(
    where: str,
    node: rewrites.TupleToUserset,
    namespace: NamespaceDefinition,
    namespaces: Mapping[str, NamespaceDefinition],
) -> list[str]:
    tupleset = namespace.relations.get(node.tupleset)
    if tupleset is None:
        return [f"{where}: tupleset relation '{node.tupleset}' is not defined"]
    if not isinstance(tupleset.rewrite, rewrites.This):
        return [
            f"{where}: tupleset relation '{node.tupleset}' must be a plain "
            "relation holding direct tuples"
        ]

    candidates = {
        allowed.subject_type
        for allowed in tupleset.subject_types
        if allowed.relation is None and allowed.subject_type in namespaces
    }
    if not tupleset.subject_types:
        candidates = set(namespaces)
    if not any(
        node.computed_relation in namespaces[candidate].relations
        for candidate in candidates
    ):
        return [
            f"{where}: relation '{node.computed_relation}' is not defined on any "
            f"type reachable through '{node.tupleset}'"
        ]
    return []


def _computed_cycles(
    object_type: str,
    namespace: NamespaceDefinition,
) -> list[str]:
    """Detect relations that rewrite to themselves on the same object."""
    edges: dict[str, set[str]] = {}
    for key, definition in namespace.relations.items():
        edges[key] = {
            node.relation
            for node in rewrites.walk(definition.rewrite)
            if isinstance(node, rewrites.ComputedUserset)
        }

    errors: list[str] = []
    done: set[str] = set()

    def visit(relation: str, stack: list[str]) -> None:
        if relation in stack:
            cycle = " -> ".join([*stack[stack.index(relation) :], relation])
            errors.append(f"{object_type}: computed relations form a cycle: {cycle}")
            return
        if relation in done:
            return
        for target in sorted(edges.get(relation, ())):
            visit(target, [*stack, relation])
        done.add(relation)

    for relation in sorted(edges):
        visit(relation, [])
    return errors
