"""Check engine: the public permission-check API.

Wraps the relation graph resolver with snapshot selection, the
revision-scoped check cache, caller deadlines and observability. Errors
from the store, the registry and the resolver propagate to the caller
unchanged (deadlines are translated to DeadlineExceeded); callers that
need a plain yes/no use ``is_allowed``, which denies on any error.
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence

from authz.application.check_cache import CheckCache
from authz.application.observability import CheckProbe, DefaultCheckProbe
from authz.application.resolver import RelationGraphResolver
from authz.application.snapshot import SnapshotReader, SnapshotSelector
from authz.domain.value_objects import (
    CheckItem,
    CheckResult,
    Consistency,
    ObjectRef,
    RelationTuple,
    Revision,
    SubjectRef,
)
from authz.ports.exceptions import (
    AuthorizationError,
    ConsistencyTimeoutError,
    DeadlineExceeded,
    ResolutionLimitExceeded,
)
from authz.ports.repositories import ITupleStore


class CheckEngine:
    """Application service answering permission checks."""

    def __init__(
        self,
        store: ITupleStore,
        resolver: RelationGraphResolver,
        selector: SnapshotSelector,
        cache: CheckCache | None = None,
        probe: CheckProbe | None = None,
    ) -> None:
        """Initialize the engine.

        Args:
            store: Tuple store the resolver reads from
            resolver: Relation graph resolver
            selector: Maps consistency requirements to revisions
            cache: Optional check cache; disabled when None
            probe: Optional domain probe for observability
        """
        self._store = store
        self._resolver = resolver
        self._selector = selector
        self._cache = cache
        self._probe = probe or DefaultCheckProbe()

    async def check(
        self,
        subject: SubjectRef,
        relation: str,
        obj: ObjectRef,
        consistency: Consistency | None = None,
        contextual_tuples: Sequence[RelationTuple] = (),
        trace: bool = False,
        deadline_seconds: float | None = None,
    ) -> CheckResult:
        """Check whether ``subject`` has ``relation`` on ``obj``.

        Args:
            subject: Subject to check (a concrete subject or a userset)
            relation: Relation or permission name
            obj: Object the relation is checked on
            consistency: Snapshot requirement; fully consistent when None
            contextual_tuples: Tuples assumed to exist for this request only
            trace: Whether to return a resolution trace
            deadline_seconds: Optional deadline for the whole request

        Returns:
            CheckResult with the answer and the revision used

        Raises:
            UndefinedRelationError: If the relation is not defined
            ResolutionLimitExceeded: If resolution exceeds its budget
            ConsistencyTimeoutError: If the requested revision is not reached
            DeadlineExceeded: If the deadline elapses
        """
        try:
            async with asyncio.timeout(deadline_seconds):
                revision = await self._selector.select(consistency)
                return await self._check_at(
                    subject, relation, obj, revision, contextual_tuples, trace
                )
        except ConsistencyTimeoutError:
            raise
        except ResolutionLimitExceeded as e:
            self._probe.resolution_limit_exceeded(
                operation="check",
                relation=relation,
                object=str(obj),
                limit=e.limit,
                value=e.value,
            )
            raise
        except TimeoutError as e:
            if deadline_seconds is None:
                raise
            self._probe.deadline_exceeded(
                operation="check",
                relation=relation,
                object=str(obj),
                deadline_seconds=deadline_seconds,
            )
            raise DeadlineExceeded(
                f"Check {obj}#{relation}@{subject} exceeded {deadline_seconds}s"
            ) from e

    async def bulk_check(
        self,
        items: Sequence[CheckItem],
        consistency: Consistency | None = None,
        deadline_seconds: float | None = None,
    ) -> list[CheckResult]:
        """Check many (subject, relation, object) items at one revision.

        Results are returned in the order of ``items``.
        """
        try:
            async with asyncio.timeout(deadline_seconds):
                revision = await self._selector.select(consistency)
                results = [
                    await self._check_at(
                        item.subject, item.relation, item.object, revision, (), False
                    )
                    for item in items
                ]
        except (ConsistencyTimeoutError, AuthorizationError):
            raise
        except TimeoutError as e:
            if deadline_seconds is None:
                raise
            self._probe.deadline_exceeded(
                operation="bulk_check",
                relation="*",
                object="*",
                deadline_seconds=deadline_seconds,
            )
            raise DeadlineExceeded(
                f"Bulk check of {len(items)} items exceeded {deadline_seconds}s"
            ) from e

        self._probe.bulk_check_completed(
            total_requests=len(items),
            permitted_count=sum(1 for r in results if r.allowed),
            revision=revision,
        )
        return results

    async def is_allowed(
        self,
        subject: SubjectRef,
        relation: str,
        obj: ObjectRef,
        consistency: Consistency | None = None,
        deadline_seconds: float | None = None,
    ) -> bool:
        """Return the check answer, denying on any authorization error.

        Intended for request-authorization middleware. The error is
        recorded by the probe so failures remain visible.
        """
        try:
            result = await self.check(
                subject,
                relation,
                obj,
                consistency=consistency,
                deadline_seconds=deadline_seconds,
            )
        except AuthorizationError as e:
            self._probe.check_failed(
                subject=str(subject),
                relation=relation,
                object=str(obj),
                error=e,
            )
            return False
        return result.allowed

    async def _check_at(
        self,
        subject: SubjectRef,
        relation: str,
        obj: ObjectRef,
        revision: Revision,
        contextual_tuples: Sequence[RelationTuple],
        trace: bool,
    ) -> CheckResult:
        cache = self._cache if not contextual_tuples and not trace else None
        if cache is not None:
            cached = cache.get(subject, relation, obj, revision)
            if cached is not None:
                self._probe.check_completed(
                    subject=str(subject),
                    relation=relation,
                    object=str(obj),
                    allowed=cached,
                    revision=revision,
                    cached=True,
                )
                return CheckResult(allowed=cached, revision=revision, cached=True)

        reader = SnapshotReader(self._store, revision, contextual_tuples)
        allowed, check_trace = await self._resolver.check(
            reader, subject, relation, obj, trace=trace
        )

        if cache is not None:
            cache.put(subject, relation, obj, revision, allowed)
        self._probe.check_completed(
            subject=str(subject),
            relation=relation,
            object=str(obj),
            allowed=allowed,
            revision=revision,
            cached=False,
        )
        return CheckResult(allowed=allowed, revision=revision, trace=check_trace)
