"""Snapshot selection and pinned reads.

``SnapshotSelector`` turns a caller's consistency requirement into the
revision a request is evaluated at. ``SnapshotReader`` binds the tuple
store to that revision for the lifetime of one request and overlays any
contextual tuples the caller supplied.
"""

from __future__ import annotations

import time
from collections.abc import Sequence

from authz.domain.value_objects import (
    Consistency,
    ConsistencyMode,
    RelationTuple,
    Revision,
    TupleFilter,
)
from authz.ports.repositories import IConsistencyCoordinator, ITupleStore


class SnapshotReader:
    """Tuple store reads pinned to one revision."""

    def __init__(
        self,
        store: ITupleStore,
        revision: Revision,
        contextual_tuples: Sequence[RelationTuple] = (),
    ) -> None:
        self._store = store
        self._revision = revision
        self._contextual = tuple(contextual_tuples)

    @property
    def revision(self) -> Revision:
        return self._revision

    @property
    def has_contextual_tuples(self) -> bool:
        return bool(self._contextual)

    async def read(self, tuple_filter: TupleFilter) -> list[RelationTuple]:
        tuples = await self._store.read(tuple_filter, self._revision)
        if not self._contextual:
            return tuples
        seen = set(tuples)
        for extra in self._contextual:
            if extra not in seen and tuple_filter.matches(extra):
                seen.add(extra)
                tuples.append(extra)
        return tuples


class SnapshotSelector:
    """Resolves consistency requirements to revisions.

    ``minimize_latency`` reuses one head revision for up to
    ``quantization_seconds`` so that concurrent requests share cache
    entries; the other modes never return a revision older than asked.
    """

    def __init__(
        self,
        coordinator: IConsistencyCoordinator,
        wait_timeout_seconds: float = 5.0,
        quantization_seconds: float = 1.0,
    ) -> None:
        self._coordinator = coordinator
        self._wait_timeout = wait_timeout_seconds
        self._quantization = quantization_seconds
        self._quantized: Revision | None = None
        self._quantized_at = 0.0

    async def select(self, consistency: Consistency | None) -> Revision:
        """Return the revision a request should be evaluated at.

        Raises:
            ConsistencyTimeoutError: If a requested revision is not reached
                within the wait timeout
        """
        if consistency is None:
            consistency = Consistency.fully_consistent()

        match consistency.mode:
            case ConsistencyMode.FULLY_CONSISTENT:
                return self._coordinator.head()
            case ConsistencyMode.MINIMIZE_LATENCY:
                return self._quantized_head()
            case ConsistencyMode.AT_LEAST_AS_FRESH if consistency.revision is not None:
                return await self._coordinator.wait_for(
                    consistency.revision, self._wait_timeout
                )
            case ConsistencyMode.AT_EXACT_SNAPSHOT if consistency.revision is not None:
                await self._coordinator.wait_for(
                    consistency.revision, self._wait_timeout
                )
                return consistency.revision
        raise ValueError(
            f"Consistency mode {consistency.mode} with revision "
            f"{consistency.revision} cannot be resolved"
        )

    def _quantized_head(self) -> Revision:
        now = time.monotonic()
        if self._quantized is None or now - self._quantized_at >= self._quantization:
            self._quantized = self._coordinator.head()
            self._quantized_at = now
        return self._quantized
