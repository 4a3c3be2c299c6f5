"""Relation graph resolver.

Answers "does subject S have relation R on object O at revision N" by
interpreting R's rewrite expression and following tuples through the
store. One recursive evaluator walks the expression tree; every relation
hop goes through ``_check_relation``, which enforces the request's depth
budget and cycle protection.

Cycle protection uses the set of (object, relation, subject) frames on
the current resolution path. Re-entering a frame means the tuple data
loops back on itself; that branch resolves to False and the recursion
unwinds, so cyclic group memberships terminate.

Fan-out across union children, tuple-to-userset targets and userset
subjects runs as concurrent asyncio tasks while the request has spare
task slots, and sequentially otherwise. Siblings are cancelled as soon
as one of them decides the answer.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Iterable, Sequence
from dataclasses import dataclass, field
from functools import partial

from authz.domain import rewrites
from authz.domain.rewrites import RewriteExpression
from authz.domain.value_objects import (
    CheckTrace,
    ObjectRef,
    RelationTuple,
    Revision,
    SubjectRef,
    TupleFilter,
)
from authz.application.snapshot import SnapshotReader
from authz.ports.exceptions import ResolutionLimitExceeded
from authz.ports.repositories import INamespaceRegistry

Frame = tuple[ObjectRef, str, SubjectRef]
Branch = Callable[[], Awaitable[bool]]


@dataclass(frozen=True)
class ResolutionLimits:
    """Per-request resolution budget.

    Attributes:
        max_depth: Maximum number of relation hops on one path
        max_tuples_expanded: Maximum tuples read over the whole request
        max_concurrency: Maximum concurrent sub-resolution tasks
    """

    max_depth: int = 50
    max_tuples_expanded: int = 10_000
    max_concurrency: int = 8


@dataclass
class ResolutionBudget:
    """Mutable request-scoped counters. Never shared across requests."""

    limits: ResolutionLimits
    tuples_expanded: int = 0
    active_tasks: int = 0

    def charge(self, tuples: int) -> None:
        self.tuples_expanded += tuples
        if self.tuples_expanded > self.limits.max_tuples_expanded:
            raise ResolutionLimitExceeded(
                "max_tuples_expanded", self.limits.max_tuples_expanded
            )

    def enter(self, depth: int) -> None:
        if depth > self.limits.max_depth:
            raise ResolutionLimitExceeded("max_depth", self.limits.max_depth)

    def reserve_tasks(self, count: int) -> bool:
        if self.active_tasks + count > self.limits.max_concurrency:
            return False
        self.active_tasks += count
        return True

    def release_tasks(self, count: int) -> None:
        self.active_tasks -= count


@dataclass
class _Request:
    reader: SnapshotReader
    budget: ResolutionBudget
    subject: SubjectRef
    reads: dict[TupleFilter, list[RelationTuple]] = field(default_factory=dict)

    @property
    def revision(self) -> Revision:
        return self.reader.revision

    async def read(self, tuple_filter: TupleFilter) -> list[RelationTuple]:
        # The snapshot is immutable, so repeated reads of one filter within
        # the request are served from the first result. Every visit is still
        # charged: the budget bounds traversal work, not store round trips.
        tuples = self.reads.get(tuple_filter)
        if tuples is None:
            tuples = await self.reader.read(tuple_filter)
            self.reads[tuple_filter] = tuples
        self.budget.charge(max(len(tuples), 1))
        return tuples


class RelationGraphResolver:
    """Evaluates rewrite expressions against a pinned snapshot."""

    def __init__(
        self,
        registry: INamespaceRegistry,
        limits: ResolutionLimits | None = None,
    ) -> None:
        self._registry = registry
        self._limits = limits or ResolutionLimits()

    @property
    def limits(self) -> ResolutionLimits:
        return self._limits

    def new_budget(self) -> ResolutionBudget:
        return ResolutionBudget(limits=self._limits)

    async def check(
        self,
        reader: SnapshotReader,
        subject: SubjectRef,
        relation: str,
        obj: ObjectRef,
        trace: bool = False,
        budget: ResolutionBudget | None = None,
    ) -> tuple[bool, CheckTrace | None]:
        """Resolve one check at the reader's revision.

        Args:
            reader: Store reads pinned to the request revision
            subject: The subject being checked
            relation: Relation (or permission) to check
            obj: The object the relation is checked on
            trace: Whether to record a resolution trace
            budget: Shared budget when called as part of a larger request

        Returns:
            Tuple of (allowed, trace or None)

        Raises:
            UndefinedRelationError: If the relation is not defined
            ResolutionLimitExceeded: If the depth or tuple budget runs out
        """
        request = _Request(
            reader=reader,
            budget=budget or self.new_budget(),
            subject=subject,
        )
        root = CheckTrace(
            kind="check",
            object=str(obj),
            relation=relation,
            subject=str(subject),
        )
        allowed = await self._check_relation(
            request,
            obj,
            relation,
            path=frozenset(),
            depth=0,
            required=True,
            parent=root if trace else None,
        )
        root.result = allowed
        return allowed, root if trace else None

    async def _check_relation(
        self,
        request: _Request,
        obj: ObjectRef,
        relation: str,
        path: frozenset[Frame],
        depth: int,
        required: bool,
        parent: CheckTrace | None,
    ) -> bool:
        subject = request.subject
        frame = (obj, relation, subject)
        if frame in path:
            if parent is not None:
                parent.child("cycle", obj, relation, subject).result = False
            return False
        request.budget.enter(depth)

        # A userset always contains itself: group:eng#member is a member
        # of group:eng.
        if subject.relation == relation and subject.as_object() == obj:
            if parent is not None:
                parent.child("self", obj, relation, subject).result = True
            return True

        if required:
            definition = self._registry.get(obj.object_type, relation, request.revision)
        else:
            definition = self._registry.find(obj.object_type, relation, request.revision)
            if definition is None:
                # Tuple data pointing at an undefined relation never matches.
                return False

        node = parent.child("relation", obj, relation, subject) if parent else None
        result = await self._evaluate(
            request,
            definition.rewrite,
            obj,
            relation,
            path | {frame},
            depth,
            node,
        )
        if node is not None:
            node.result = result
        return result

    async def _evaluate(
        self,
        request: _Request,
        expression: RewriteExpression,
        obj: ObjectRef,
        relation: str,
        path: frozenset[Frame],
        depth: int,
        parent: CheckTrace | None,
    ) -> bool:
        node = (
            parent.child(expression.kind, obj, relation, request.subject)
            if parent is not None
            else None
        )

        match expression:
            case rewrites.This():
                result = await self._evaluate_this(
                    request, obj, relation, path, depth, node
                )
            case rewrites.ComputedUserset(relation=target):
                result = await self._check_relation(
                    request, obj, target, path, depth + 1, True, node
                )
            case rewrites.TupleToUserset(tupleset=tupleset, computed_relation=target):
                result = await self._evaluate_tuple_to_userset(
                    request, obj, tupleset, target, path, depth, node
                )
            case rewrites.Union(children=children):
                result = await self._race(
                    request,
                    [
                        partial(self._evaluate, request, c, obj, relation, path, depth, node)
                        for c in children
                    ],
                    decisive=True,
                )
            case rewrites.Intersection(children=children):
                result = await self._race(
                    request,
                    [
                        partial(self._evaluate, request, c, obj, relation, path, depth, node)
                        for c in children
                    ],
                    decisive=False,
                )
            case rewrites.Exclusion(base=base, subtract=subtract):
                result = await self._evaluate(
                    request, base, obj, relation, path, depth, node
                ) and not await self._evaluate(
                    request, subtract, obj, relation, path, depth, node
                )

        if node is not None:
            node.result = result
        return result

    async def _evaluate_this(
        self,
        request: _Request,
        obj: ObjectRef,
        relation: str,
        path: frozenset[Frame],
        depth: int,
        parent: CheckTrace | None,
    ) -> bool:
        subject = request.subject
        tuples = await request.read(
            TupleFilter(
                object_type=obj.object_type,
                object_id=obj.object_id,
                relation=relation,
            )
        )

        usersets: list[SubjectRef] = []
        for relation_tuple in tuples:
            candidate = relation_tuple.subject
            if candidate == subject:
                return True
            if (
                candidate.is_wildcard
                and subject.relation is None
                and candidate.subject_type == subject.subject_type
            ):
                return True
            if candidate.is_userset:
                usersets.append(candidate)

        return await self._race(
            request,
            [
                partial(
                    self._check_relation,
                    request,
                    userset.as_object(),
                    userset.relation,
                    path,
                    depth + 1,
                    False,
                    parent,
                )
                for userset in usersets
            ],
            decisive=True,
        )

    async def _evaluate_tuple_to_userset(
        self,
        request: _Request,
        obj: ObjectRef,
        tupleset: str,
        target: str,
        path: frozenset[Frame],
        depth: int,
        parent: CheckTrace | None,
    ) -> bool:
        tuples = await request.read(
            TupleFilter(
                object_type=obj.object_type,
                object_id=obj.object_id,
                relation=tupleset,
            )
        )
        related = _unique(
            t.subject.as_object() for t in tuples if not t.subject.is_wildcard
        )
        return await self._race(
            request,
            [
                partial(
                    self._check_relation,
                    request,
                    related_object,
                    target,
                    path,
                    depth + 1,
                    False,
                    parent,
                )
                for related_object in related
            ],
            decisive=True,
        )

    async def _race(
        self,
        request: _Request,
        branches: Sequence[Branch],
        decisive: bool,
    ) -> bool:
        """Evaluate branches until one returns ``decisive``.

        Returns ``decisive`` if any branch produced it, otherwise its
        negation. With ``decisive=True`` this is a short-circuit OR, with
        ``decisive=False`` a short-circuit AND.
        """
        if not branches:
            return not decisive
        if len(branches) == 1 or not request.budget.reserve_tasks(len(branches)):
            for branch in branches:
                if await branch() == decisive:
                    return decisive
            return not decisive

        tasks = [asyncio.create_task(branch()) for branch in branches]
        try:
            for next_done in asyncio.as_completed(tasks):
                if await next_done == decisive:
                    return decisive
            return not decisive
        finally:
            for task in tasks:
                task.cancel()
            # Tasks cancelled before their first step never run a finally
            # block of their own, so the slots are released here.
            try:
                await asyncio.gather(*tasks, return_exceptions=True)
            finally:
                request.budget.release_tasks(len(tasks))


def _unique(objects: Iterable[ObjectRef]) -> list[ObjectRef]:
    seen: dict[ObjectRef, None] = {}
    for obj in objects:
        seen.setdefault(obj, None)
    return list(seen)
