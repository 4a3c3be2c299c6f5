"""Expansion and listing engine.

``expand`` returns the userset tree of a relation on an object, mirroring
its rewrite expression. ``list_subjects`` flattens that tree into the set
of terminal subjects, applying set union, intersection and difference at
the corresponding nodes. ``list_objects`` walks the reverse index from a
subject to find candidate objects and verifies each one with the
resolver, so its answers agree with ``check`` by construction.
"""

from __future__ import annotations

import asyncio
from collections import deque
from collections.abc import Iterable
from dataclasses import dataclass, field

from authz.application.observability import CheckProbe, DefaultCheckProbe
from authz.application.resolver import RelationGraphResolver, ResolutionBudget
from authz.application.snapshot import SnapshotReader, SnapshotSelector
from authz.domain import rewrites
from authz.domain.rewrites import RewriteExpression
from authz.domain.value_objects import (
    WILDCARD,
    Consistency,
    ExpandNode,
    ObjectRef,
    RelationTuple,
    Revision,
    SubjectListing,
    SubjectRef,
    TupleFilter,
)
from authz.ports.exceptions import (
    ConsistencyTimeoutError,
    DeadlineExceeded,
    ResolutionLimitExceeded,
)
from authz.ports.repositories import INamespaceRegistry, ITupleStore

Frame = tuple[ObjectRef, str]


class _Walk:
    """Request-scoped state for one expansion or reverse walk."""

    def __init__(self, reader: SnapshotReader, budget: ResolutionBudget) -> None:
        self.reader = reader
        self.budget = budget

    @property
    def revision(self) -> Revision:
        return self.reader.revision

    async def read(self, tuple_filter: TupleFilter) -> list[RelationTuple]:
        tuples = await self.reader.read(tuple_filter)
        self.budget.charge(max(len(tuples), 1))
        return tuples


class ExpansionEngine:
    """Application service for expansion and listing queries."""

    def __init__(
        self,
        store: ITupleStore,
        registry: INamespaceRegistry,
        resolver: RelationGraphResolver,
        selector: SnapshotSelector,
        probe: CheckProbe | None = None,
    ) -> None:
        self._store = store
        self._registry = registry
        self._resolver = resolver
        self._selector = selector
        self._probe = probe or DefaultCheckProbe()

    async def expand(
        self,
        relation: str,
        obj: ObjectRef,
        consistency: Consistency | None = None,
        deadline_seconds: float | None = None,
    ) -> tuple[ExpandNode, Revision]:
        """Expand ``relation`` on ``obj`` into a userset tree.

        Returns:
            Tuple of (root node, revision the tree was computed at)

        Raises:
            UndefinedRelationError: If the relation is not defined
            ResolutionLimitExceeded: If expansion exceeds its budget
            DeadlineExceeded: If the deadline elapses
        """
        async with self._guard("expand", relation, obj, deadline_seconds):
            walk = await self._start(consistency)
            node = await self._expand_relation(
                walk, obj, relation, frozenset(), 0, required=True
            )
            return node, walk.revision

    async def list_subjects(
        self,
        relation: str,
        obj: ObjectRef,
        consistency: Consistency | None = None,
        subject_type: str | None = None,
        deadline_seconds: float | None = None,
    ) -> tuple[SubjectListing, Revision]:
        """List the terminal subjects that have ``relation`` on ``obj``.

        Usersets are expanded into their members. A wildcard is returned
        as ``type:*`` together with the subjects of that type an exclusion
        removed from it, so a subject is listed exactly when ``check``
        would allow it. Both lists are deduplicated and sorted.
        """
        async with self._guard("list_subjects", relation, obj, deadline_seconds):
            walk = await self._start(consistency)
            node = await self._expand_relation(
                walk, obj, relation, frozenset(), 0, required=True
            )
            listing = _SubjectSet.of_node(node).listing(subject_type)

        self._probe.subjects_listed(
            relation=relation,
            object=str(obj),
            count=len(listing.subjects),
            revision=walk.revision,
        )
        return listing, walk.revision

    async def list_objects(
        self,
        relation: str,
        subject: SubjectRef,
        object_type: str,
        consistency: Consistency | None = None,
        deadline_seconds: float | None = None,
    ) -> tuple[list[ObjectRef], Revision]:
        """List objects of ``object_type`` on which ``subject`` has ``relation``.

        Candidates come from a breadth-first walk of the reverse index
        starting at the subject; every candidate is then checked, so the
        result never contains an object ``check`` would deny.
        """
        target = ObjectRef(object_type=object_type, object_id=WILDCARD)
        async with self._guard("list_objects", relation, target, deadline_seconds):
            walk = await self._start(consistency)
            # Fails fast on an undefined relation, even with no candidates.
            self._registry.get(object_type, relation, walk.revision)

            candidates = await self._reverse_candidates(walk, subject, object_type)
            allowed = await self._verify(walk, subject, relation, candidates)
            result = sorted(allowed, key=str)

        self._probe.objects_listed(
            relation=relation,
            subject=str(subject),
            object_type=object_type,
            candidates=len(candidates),
            count=len(result),
            revision=walk.revision,
        )
        return result, walk.revision

    async def _start(self, consistency: Consistency | None) -> _Walk:
        revision = await self._selector.select(consistency)
        return _Walk(SnapshotReader(self._store, revision), self._resolver.new_budget())

    def _guard(
        self,
        operation: str,
        relation: str,
        obj: ObjectRef,
        deadline_seconds: float | None,
    ) -> _Deadline:
        return _Deadline(self._probe, operation, relation, obj, deadline_seconds)

    async def _expand_relation(
        self,
        walk: _Walk,
        obj: ObjectRef,
        relation: str,
        path: frozenset[Frame],
        depth: int,
        required: bool,
    ) -> ExpandNode | None:
        frame = (obj, relation)
        if frame in path:
            return ExpandNode(kind="cycle", object=obj, relation=relation)
        walk.budget.enter(depth)

        if required:
            definition = self._registry.get(obj.object_type, relation, walk.revision)
        else:
            definition = self._registry.find(obj.object_type, relation, walk.revision)
            if definition is None:
                return None

        return await self._expand(
            walk, definition.rewrite, obj, relation, path | {frame}, depth
        )

    async def _expand(
        self,
        walk: _Walk,
        expression: RewriteExpression,
        obj: ObjectRef,
        relation: str,
        path: frozenset[Frame],
        depth: int,
    ) -> ExpandNode:
        node = ExpandNode(kind=expression.kind, object=obj, relation=relation)

        match expression:
            case rewrites.This():
                tuples = await walk.read(
                    TupleFilter(
                        object_type=obj.object_type,
                        object_id=obj.object_id,
                        relation=relation,
                    )
                )
                for relation_tuple in tuples:
                    subject = relation_tuple.subject
                    node.subjects.append(subject)
                    if subject.relation is not None:
                        child = await self._expand_relation(
                            walk,
                            subject.as_object(),
                            subject.relation,
                            path,
                            depth + 1,
                            required=False,
                        )
                        if child is not None:
                            node.children.append(child)
            case rewrites.ComputedUserset(relation=target):
                child = await self._expand_relation(
                    walk, obj, target, path, depth + 1, required=True
                )
                if child is not None:
                    node.children.append(child)
            case rewrites.TupleToUserset(tupleset=tupleset, computed_relation=target):
                tuples = await walk.read(
                    TupleFilter(
                        object_type=obj.object_type,
                        object_id=obj.object_id,
                        relation=tupleset,
                    )
                )
                related = dict.fromkeys(
                    t.subject.as_object() for t in tuples if not t.subject.is_wildcard
                )
                for related_object in related:
                    child = await self._expand_relation(
                        walk, related_object, target, path, depth + 1, required=False
                    )
                    if child is not None:
                        node.children.append(child)
            case (
                rewrites.Union(children=children)
                | rewrites.Intersection(children=children)
            ):
                for child_expression in children:
                    node.children.append(
                        await self._expand(
                            walk, child_expression, obj, relation, path, depth
                        )
                    )
            case rewrites.Exclusion(base=base, subtract=subtract):
                node.children.append(
                    await self._expand(walk, base, obj, relation, path, depth)
                )
                node.children.append(
                    await self._expand(walk, subtract, obj, relation, path, depth)
                )

        return node

    async def _reverse_candidates(
        self,
        walk: _Walk,
        subject: SubjectRef,
        object_type: str,
    ) -> list[ObjectRef]:
        start = subject.as_object()
        seen: set[ObjectRef] = {start}
        candidates: dict[ObjectRef, None] = {}
        if start.object_type == object_type and not subject.is_wildcard:
            candidates[start] = None

        wildcard_types: set[str] = set()
        queue: deque[ObjectRef] = deque([start])
        while queue:
            node = queue.popleft()
            reads = [
                TupleFilter(subject_type=node.object_type, subject_id=node.object_id)
            ]
            # Tuples granting every subject of a type reach this node too.
            if node.object_id != WILDCARD and node.object_type not in wildcard_types:
                wildcard_types.add(node.object_type)
                reads.append(
                    TupleFilter(subject_type=node.object_type, subject_id=WILDCARD)
                )
            for tuple_filter in reads:
                for relation_tuple in await walk.read(tuple_filter):
                    reached = relation_tuple.object
                    if reached.object_type == object_type:
                        candidates.setdefault(reached, None)
                    if reached not in seen:
                        seen.add(reached)
                        queue.append(reached)
        return list(candidates)

    async def _verify(
        self,
        walk: _Walk,
        subject: SubjectRef,
        relation: str,
        candidates: list[ObjectRef],
    ) -> list[ObjectRef]:
        # Verification draws on the walk's budget, so the whole listing
        # stays within one request's tuple and task limits.
        semaphore = asyncio.Semaphore(self._resolver.limits.max_concurrency)

        async def verify(candidate: ObjectRef) -> bool:
            async with semaphore:
                allowed, _ = await self._resolver.check(
                    walk.reader, subject, relation, candidate, budget=walk.budget
                )
                return allowed

        try:
            async with asyncio.TaskGroup() as group:
                tasks = [group.create_task(verify(c)) for c in candidates]
        except ExceptionGroup as failures:
            raise failures.exceptions[0] from None
        return [c for c, task in zip(candidates, tasks, strict=True) if task.result()]


class _Deadline:
    """Async context manager applying a deadline and logging budget failures."""

    def __init__(
        self,
        probe: CheckProbe,
        operation: str,
        relation: str,
        obj: ObjectRef,
        deadline_seconds: float | None,
    ) -> None:
        self._probe = probe
        self._operation = operation
        self._relation = relation
        self._object = str(obj)
        self._deadline = deadline_seconds
        self._timeout = asyncio.timeout(deadline_seconds)

    async def __aenter__(self) -> _Deadline:
        await self._timeout.__aenter__()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        try:
            await self._timeout.__aexit__(exc_type, exc, tb)
        except TimeoutError as e:
            if self._deadline is None:
                raise
            self._probe.deadline_exceeded(
                operation=self._operation,
                relation=self._relation,
                object=self._object,
                deadline_seconds=self._deadline,
            )
            raise DeadlineExceeded(
                f"{self._operation} of {self._object}#{self._relation} "
                f"exceeded {self._deadline}s"
            ) from e

        if isinstance(exc, ResolutionLimitExceeded):
            self._probe.resolution_limit_exceeded(
                operation=self._operation,
                relation=self._relation,
                object=self._object,
                limit=exc.limit,
                value=exc.value,
            )
        return False


@dataclass
class _SubjectSet:
    """Set of terminal subjects closed under union, intersection and difference.

    ``wildcards`` maps a subject type to the subjects of that type removed
    from its ``type:*``. Concrete subjects never share a type with a
    wildcard, since the wildcard already covers them.
    """

    concrete: set[SubjectRef] = field(default_factory=set)
    wildcards: dict[str, set[SubjectRef]] = field(default_factory=dict)

    @classmethod
    def of(cls, subjects: Iterable[SubjectRef]) -> _SubjectSet:
        result = cls()
        for subject in subjects:
            if subject.is_userset:
                continue
            if subject.is_wildcard:
                result.wildcards.setdefault(subject.subject_type, set())
            else:
                result.concrete.add(subject)
        return result._normalized()

    @classmethod
    def of_node(cls, node: ExpandNode | None) -> _SubjectSet:
        """Flatten an expansion tree into the subjects it grants."""
        if node is None:
            return cls()
        match node.kind:
            case "cycle":
                return cls()
            case "this":
                result = cls.of(node.subjects)
                for child in node.children:
                    result = result | cls.of_node(child)
                return result
            case "computed_userset" | "tuple_to_userset" | "union":
                result = cls()
                for child in node.children:
                    result = result | cls.of_node(child)
                return result
            case "intersection":
                sets = [cls.of_node(child) for child in node.children]
                result = sets[0]
                for other in sets[1:]:
                    result = result & other
                return result
            case "exclusion":
                base, subtract = node.children
                return cls.of_node(base) - cls.of_node(subtract)
        raise ValueError(f"Unknown expansion node kind: {node.kind}")

    def __contains__(self, subject: SubjectRef) -> bool:
        if subject in self.concrete:
            return True
        excluded = self.wildcards.get(subject.subject_type)
        return excluded is not None and subject not in excluded

    def __or__(self, other: _SubjectSet) -> _SubjectSet:
        wildcards: dict[str, set[SubjectRef]] = {}
        for subject_type in self.wildcards.keys() | other.wildcards.keys():
            ours = self.wildcards.get(subject_type)
            theirs = other.wildcards.get(subject_type)
            if ours is not None and theirs is not None:
                wildcards[subject_type] = ours & theirs
            else:
                wildcards[subject_type] = set(ours if ours is not None else theirs)
        return _SubjectSet(self.concrete | other.concrete, wildcards)._normalized()

    def __and__(self, other: _SubjectSet) -> _SubjectSet:
        wildcards = {
            subject_type: excluded | other.wildcards[subject_type]
            for subject_type, excluded in self.wildcards.items()
            if subject_type in other.wildcards
        }
        concrete = {s for s in self.concrete if s in other}
        concrete |= {s for s in other.concrete if s in self}
        return _SubjectSet(concrete, wildcards)._normalized()

    def __sub__(self, other: _SubjectSet) -> _SubjectSet:
        concrete = {s for s in self.concrete if s not in other}
        wildcards: dict[str, set[SubjectRef]] = {}
        for subject_type, excluded in self.wildcards.items():
            removed = other.wildcards.get(subject_type)
            if removed is None:
                wildcards[subject_type] = excluded | {
                    s for s in other.concrete if s.subject_type == subject_type
                }
            else:
                # Only the subjects the other wildcard leaves out survive.
                concrete |= removed - excluded
        return _SubjectSet(concrete, wildcards)._normalized()

    def _normalized(self) -> _SubjectSet:
        for excluded in self.wildcards.values():
            excluded -= self.concrete
        self.concrete = {
            s for s in self.concrete if s.subject_type not in self.wildcards
        }
        return self

    def listing(self, subject_type: str | None = None) -> SubjectListing:
        subjects = set(self.concrete)
        subjects.update(SubjectRef(t, WILDCARD) for t in self.wildcards)
        excluded = set().union(*self.wildcards.values())
        if subject_type is not None:
            subjects = {s for s in subjects if s.subject_type == subject_type}
            excluded = {s for s in excluded if s.subject_type == subject_type}
        return SubjectListing(
            subjects=sorted(subjects, key=str),
            excluded=sorted(excluded, key=str),
        )
