"""Relationship application service for the Authorization bounded context.

Orchestrates tuple writes, bulk deletes and filtered reads against the
tuple store, recording each use case through its domain probe.
"""

from __future__ import annotations

from collections.abc import Sequence

from authz.application.observability import (
    DefaultRelationshipServiceProbe,
    RelationshipServiceProbe,
)
from authz.application.snapshot import SnapshotSelector
from authz.domain.value_objects import (
    Consistency,
    RelationTuple,
    Revision,
    TupleFilter,
    TupleUpdate,
)
from authz.ports.repositories import ITupleStore


class RelationshipService:
    """Application service for relationship management."""

    def __init__(
        self,
        store: ITupleStore,
        selector: SnapshotSelector,
        probe: RelationshipServiceProbe | None = None,
    ):
        """Initialize RelationshipService with dependencies.

        Args:
            store: Tuple store holding the relationships
            selector: Resolves read consistency to a revision
            probe: Optional domain probe for observability
        """
        self._store = store
        self._selector = selector
        self._probe = probe or DefaultRelationshipServiceProbe()

    async def write(
        self,
        updates: Sequence[TupleUpdate],
        expected_revision: Revision | None = None,
    ) -> Revision:
        """Apply a batch of relationship updates atomically.

        Args:
            updates: Touch and delete operations to apply
            expected_revision: Optional optimistic-concurrency precondition

        Returns:
            The revision at which the batch became visible

        Raises:
            ConflictError: If expected_revision is stale
            ValueError: If the batch touches and deletes the same tuple
        """
        try:
            revision = await self._store.write(updates, expected_revision)
        except Exception as e:
            self._probe.relationships_write_failed(count=len(updates), error=e)
            raise

        self._probe.relationships_written(revision=revision, count=len(updates))
        return revision

    async def delete_by_filter(
        self,
        tuple_filter: TupleFilter,
        expected_revision: Revision | None = None,
    ) -> tuple[Revision, int]:
        """Delete every relationship matching a filter.

        Returns:
            Tuple of (revision, number of relationships deleted)
        """
        revision, count = await self._store.delete_by_filter(
            tuple_filter, expected_revision
        )
        self._probe.relationships_deleted(revision=revision, count=count)
        return revision, count

    async def read(
        self,
        tuple_filter: TupleFilter,
        consistency: Consistency | None = None,
    ) -> tuple[list[RelationTuple], Revision]:
        """Read relationships matching a filter.

        Returns:
            Tuple of (matching relationships, revision they were read at)
        """
        revision = await self._selector.select(consistency)
        tuples = await self._store.read(tuple_filter, revision)
        self._probe.relationships_read(revision=revision, count=len(tuples))
        return tuples, revision
