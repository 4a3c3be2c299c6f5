"""Unit test fixtures for the authorization engine."""

from collections.abc import Awaitable, Callable

import pytest

from authz.application.check_cache import CheckCache
from authz.application.check_engine import CheckEngine
from authz.application.expansion_engine import ExpansionEngine
from authz.application.resolver import RelationGraphResolver, ResolutionLimits
from authz.application.snapshot import SnapshotSelector
from authz.domain.schema_dsl import parse_schema
from authz.domain.value_objects import RelationTuple, Revision, TupleUpdate
from authz.infrastructure import (
    ConsistencyCoordinator,
    InMemoryNamespaceRegistry,
    InMemoryTupleStore,
)

DOCS_SCHEMA = """
definition user {}

definition group {
    relation member: user | group#member
}

definition folder {
    relation owner: user
    relation viewer: user | group#member
    permission view = viewer + owner
}

definition document {
    relation parent: folder
    relation owner: user
    relation editor: user | group#member
    relation viewer: user | user:* | group#member
    relation banned: user
    permission edit = editor + owner
    permission view = (viewer + edit + parent->view) - banned
    permission comment = view & editor
}
"""


@pytest.fixture
def coordinator() -> ConsistencyCoordinator:
    return ConsistencyCoordinator()


@pytest.fixture
def store(coordinator: ConsistencyCoordinator) -> InMemoryTupleStore:
    return InMemoryTupleStore(coordinator=coordinator)


@pytest.fixture
def registry(coordinator: ConsistencyCoordinator) -> InMemoryNamespaceRegistry:
    """Registry preloaded with the documents schema."""
    registry = InMemoryNamespaceRegistry(coordinator=coordinator)
    registry.apply_schema(parse_schema(DOCS_SCHEMA))
    return registry


@pytest.fixture
def limits() -> ResolutionLimits:
    return ResolutionLimits()


@pytest.fixture
def resolver(
    registry: InMemoryNamespaceRegistry, limits: ResolutionLimits
) -> RelationGraphResolver:
    return RelationGraphResolver(registry=registry, limits=limits)


@pytest.fixture
def selector(coordinator: ConsistencyCoordinator) -> SnapshotSelector:
    return SnapshotSelector(
        coordinator=coordinator,
        wait_timeout_seconds=0.2,
        quantization_seconds=0.0,
    )


@pytest.fixture
def check_cache(store: InMemoryTupleStore) -> CheckCache:
    cache = CheckCache(max_entries=1000, ttl_seconds=60.0)
    store.subscribe(cache.invalidate)
    return cache


@pytest.fixture
def check_engine(
    store: InMemoryTupleStore,
    resolver: RelationGraphResolver,
    selector: SnapshotSelector,
    check_cache: CheckCache,
) -> CheckEngine:
    return CheckEngine(
        store=store,
        resolver=resolver,
        selector=selector,
        cache=check_cache,
    )


@pytest.fixture
def expansion_engine(
    store: InMemoryTupleStore,
    registry: InMemoryNamespaceRegistry,
    resolver: RelationGraphResolver,
    selector: SnapshotSelector,
) -> ExpansionEngine:
    return ExpansionEngine(
        store=store,
        registry=registry,
        resolver=resolver,
        selector=selector,
    )


@pytest.fixture
def touch(store: InMemoryTupleStore) -> Callable[..., Awaitable[Revision]]:
    """Write tuples given in ``object#relation@subject`` form."""

    async def _touch(*tuples: str) -> Revision:
        return await store.write(
            [TupleUpdate.touch(RelationTuple.parse(t)) for t in tuples]
        )

    return _touch


@pytest.fixture
def delete(store: InMemoryTupleStore) -> Callable[..., Awaitable[Revision]]:
    """Delete tuples given in ``object#relation@subject`` form."""

    async def _delete(*tuples: str) -> Revision:
        return await store.write(
            [TupleUpdate.delete(RelationTuple.parse(t)) for t in tuples]
        )

    return _delete
