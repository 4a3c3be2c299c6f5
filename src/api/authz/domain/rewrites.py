"""Userset rewrite expressions.

A relation's rewrite expression describes how its subjects are computed
from tuples and from other relations. Expressions are plain data: a
tagged union of frozen pydantic models discriminated by ``kind``, walked
by a single recursive evaluator in the resolver and the expansion engine.

    this                      direct tuples on (object, relation)
    computed_userset(R)       relation R on the same object
    tuple_to_userset(T, R)    follow tuples (object, T, x), then R on x
    union / intersection      any / all of the children
    exclusion(base, subtract) base but not subtract
"""

from __future__ import annotations

from collections.abc import Iterator
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field

from authz.domain.value_objects import NAME_PATTERN

_NAME = f"^{NAME_PATTERN}$"


class _Rewrite(BaseModel):
    model_config = ConfigDict(frozen=True)


class This(_Rewrite):
    """Subjects written directly against the relation."""

    kind: Literal["this"] = "this"


class ComputedUserset(_Rewrite):
    """Subjects of another relation on the same object."""

    kind: Literal["computed_userset"] = "computed_userset"
    relation: str = Field(pattern=_NAME)


class TupleToUserset(_Rewrite):
    """Subjects of ``computed_relation`` on every object related by ``tupleset``."""

    kind: Literal["tuple_to_userset"] = "tuple_to_userset"
    tupleset: str = Field(pattern=_NAME)
    computed_relation: str = Field(pattern=_NAME)


class Union(_Rewrite):
    kind: Literal["union"] = "union"
    children: tuple[RewriteExpression, ...] = Field(min_length=1)


class Intersection(_Rewrite):
    kind: Literal["intersection"] = "intersection"
    children: tuple[RewriteExpression, ...] = Field(min_length=1)


class Exclusion(_Rewrite):
    kind: Literal["exclusion"] = "exclusion"
    base: RewriteExpression
    subtract: RewriteExpression


RewriteExpression = Annotated[
    This | ComputedUserset | TupleToUserset | Union | Intersection | Exclusion,
    Field(discriminator="kind"),
]

Union.model_rebuild()
Intersection.model_rebuild()
Exclusion.model_rebuild()


def this() -> This:
    return This()


def computed(relation: str) -> ComputedUserset:
    return ComputedUserset(relation=relation)


def tuple_to_userset(tupleset: str, computed_relation: str) -> TupleToUserset:
    return TupleToUserset(tupleset=tupleset, computed_relation=computed_relation)


def union(*children: RewriteExpression) -> Union:
    return Union(children=children)


def intersection(*children: RewriteExpression) -> Intersection:
    return Intersection(children=children)


def exclusion(base: RewriteExpression, subtract: RewriteExpression) -> Exclusion:
    return Exclusion(base=base, subtract=subtract)


def walk(expression: RewriteExpression) -> Iterator[RewriteExpression]:
    """Yield every node of the expression tree, depth first."""
    yield expression
    match expression:
        case Union(children=children) | Intersection(children=children):
            for child in children:
                yield from walk(child)
        case Exclusion(base=base, subtract=subtract):
            yield from walk(base)
            yield from walk(subtract)
