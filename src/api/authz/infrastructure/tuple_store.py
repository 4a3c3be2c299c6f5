"""In-memory multi-version implementation of ITupleStore.

Every tuple version records the revision that created it and, once
deleted, the revision that removed it. A read at revision N sees exactly
the versions with ``created_at <= N < deleted_at``, which gives snapshot
isolation without copying data: old snapshots stay readable until they
are compacted away.

Versions are indexed three ways: by object (for forward checks), by
subject (the reverse index used by object listing) and by object type.
"""

from __future__ import annotations

import asyncio
from collections import defaultdict
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from authz.domain.value_objects import (
    RelationTuple,
    Revision,
    TupleFilter,
    TupleUpdate,
    WriteOperation,
)
from authz.infrastructure.observability import (
    DefaultTupleStoreProbe,
    TupleStoreProbe,
)
from authz.ports.exceptions import ConflictError, RevisionExpiredError
from authz.ports.repositories import IConsistencyCoordinator, WriteListener


@dataclass
class _Version:
    tuple: RelationTuple
    created_at: Revision
    deleted_at: Revision | None = None

    def visible_at(self, revision: Revision) -> bool:
        return self.created_at <= revision and (
            self.deleted_at is None or revision < self.deleted_at
        )


def _normalize(updates: Iterable[TupleUpdate]) -> list[TupleUpdate]:
    """Drop repeated updates and reject a tuple both touched and deleted."""
    seen: dict[RelationTuple, WriteOperation] = {}
    batch: list[TupleUpdate] = []
    for update in updates:
        previous = seen.get(update.tuple)
        if previous is None:
            seen[update.tuple] = update.operation
            batch.append(update)
        elif previous != update.operation:
            raise ValueError(
                f"Tuple {update.tuple} is both touched and deleted in one batch"
            )
    return batch


class InMemoryTupleStore:
    """Multi-version tuple store held in process memory.

    Writes are serialized by an asyncio lock and applied in a single
    synchronous step between minting and publishing their revision.
    Reads take no lock.
    """

    def __init__(
        self,
        coordinator: IConsistencyCoordinator,
        probe: TupleStoreProbe | None = None,
    ) -> None:
        self._coordinator = coordinator
        self._probe = probe or DefaultTupleStoreProbe()
        self._write_lock = asyncio.Lock()
        self._listeners: list[WriteListener] = []
        self._horizon: Revision = 0

        self._live: dict[RelationTuple, _Version] = {}
        self._versions: list[_Version] = []
        self._by_object: dict[tuple[str, str], list[_Version]] = defaultdict(list)
        self._by_subject: dict[tuple[str, str], list[_Version]] = defaultdict(list)
        self._by_type: dict[str, list[_Version]] = defaultdict(list)

    def head_revision(self) -> Revision:
        return self._coordinator.head()

    @property
    def horizon(self) -> Revision:
        """Oldest revision that can still be read."""
        return self._horizon

    def subscribe(self, listener: WriteListener) -> None:
        self._listeners.append(listener)

    async def write(
        self,
        updates: Iterable[TupleUpdate],
        expected_revision: Revision | None = None,
    ) -> Revision:
        """Apply a batch of touches and deletes atomically.

        Touching a live tuple and deleting an absent one are no-ops, but
        the batch still commits and receives a revision.

        Args:
            updates: Operations of the batch
            expected_revision: Optional optimistic-concurrency precondition

        Returns:
            The revision at which the whole batch became visible

        Raises:
            ConflictError: If expected_revision is not the head revision
            ValueError: If a tuple is both touched and deleted in the batch
        """
        batch = _normalize(updates)
        async with self._write_lock:
            return self._commit(batch, expected_revision)

    async def delete_by_filter(
        self,
        tuple_filter: TupleFilter,
        expected_revision: Revision | None = None,
    ) -> tuple[Revision, int]:
        """Delete every live tuple matching the filter in one batch.

        Raises:
            ValueError: If the filter does not name an object type plus at
                least one more field
        """
        if tuple_filter.object_type is None:
            raise ValueError("object_type must be specified to delete by filter")
        if tuple_filter == TupleFilter(object_type=tuple_filter.object_type):
            raise ValueError(
                "At least one filter parameter beyond object_type must be specified"
            )

        async with self._write_lock:
            batch = [
                TupleUpdate.delete(version.tuple)
                for version in self._candidates(tuple_filter)
                if version.deleted_at is None and tuple_filter.matches(version.tuple)
            ]
            revision = self._commit(batch, expected_revision)
        return revision, len(batch)

    async def read(
        self,
        tuple_filter: TupleFilter,
        revision: Revision,
    ) -> list[RelationTuple]:
        """Return tuples matching the filter as they were at ``revision``.

        Raises:
            RevisionExpiredError: If the revision is older than the horizon
            ValueError: If the revision has not been committed yet
        """
        self._check_readable(revision)
        return [
            version.tuple
            for version in self._candidates(tuple_filter)
            if version.visible_at(revision) and tuple_filter.matches(version.tuple)
        ]

    async def exists(self, relation_tuple: RelationTuple, revision: Revision) -> bool:
        self._check_readable(revision)
        key = (relation_tuple.object.object_type, relation_tuple.object.object_id)
        return any(
            version.tuple == relation_tuple and version.visible_at(revision)
            for version in self._by_object.get(key, ())
        )

    def compact(self, horizon: Revision) -> int:
        """Garbage-collect versions deleted at or before ``horizon``.

        Reads below the horizon raise RevisionExpiredError afterwards.

        Returns:
            Number of versions removed
        """
        if horizon > self.head_revision():
            raise ValueError("Cannot compact past the head revision")
        if horizon <= self._horizon:
            return 0

        kept = [
            version
            for version in self._versions
            if version.deleted_at is None or version.deleted_at > horizon
        ]
        removed = len(self._versions) - len(kept)

        self._versions = []
        self._by_object = defaultdict(list)
        self._by_subject = defaultdict(list)
        self._by_type = defaultdict(list)
        for version in kept:
            self._index(version)
        self._horizon = horizon

        self._probe.compacted(horizon=horizon, removed=removed)
        return removed

    def _commit(
        self,
        batch: Sequence[TupleUpdate],
        expected_revision: Revision | None,
    ) -> Revision:
        head = self._coordinator.head()
        if expected_revision is not None and expected_revision != head:
            self._probe.write_conflict(
                expected_revision=expected_revision,
                actual_revision=head,
            )
            raise ConflictError(
                expected_revision=expected_revision,
                actual_revision=head,
            )

        revision = self._coordinator.mint_token()
        changed: list[RelationTuple] = []
        deleted = 0
        for update in batch:
            if update.operation == WriteOperation.TOUCH:
                if update.tuple not in self._live:
                    version = _Version(tuple=update.tuple, created_at=revision)
                    self._live[update.tuple] = version
                    self._index(version)
                    changed.append(update.tuple)
            else:
                removed = self._live.pop(update.tuple, None)
                if removed is not None:
                    removed.deleted_at = revision
                    changed.append(update.tuple)
                    deleted += 1
        self._coordinator.publish(revision)

        self._probe.batch_committed(
            revision=revision,
            touched=len(changed) - deleted,
            deleted=deleted,
        )
        for listener in self._listeners:
            listener(revision, changed)
        return revision

    def _index(self, version: _Version) -> None:
        obj = version.tuple.object
        subject = version.tuple.subject
        self._versions.append(version)
        self._by_object[(obj.object_type, obj.object_id)].append(version)
        self._by_subject[(subject.subject_type, subject.subject_id)].append(version)
        self._by_type[obj.object_type].append(version)

    def _candidates(self, tuple_filter: TupleFilter) -> Sequence[_Version]:
        if tuple_filter.object_type is not None and tuple_filter.object_id is not None:
            key = (tuple_filter.object_type, tuple_filter.object_id)
            return self._by_object.get(key, ())
        if tuple_filter.subject_type is not None and tuple_filter.subject_id is not None:
            key = (tuple_filter.subject_type, tuple_filter.subject_id)
            return self._by_subject.get(key, ())
        if tuple_filter.object_type is not None:
            return self._by_type.get(tuple_filter.object_type, ())
        return self._versions

    def _check_readable(self, revision: Revision) -> None:
        if revision < self._horizon:
            raise RevisionExpiredError(revision=revision, horizon=self._horizon)
        if revision > self.head_revision():
            raise ValueError(f"Revision {revision} has not been committed yet")
