"""Dependency injection for the Authorization bounded context.

The tuple store, namespace registry and consistency coordinator hold the
engine's state, so they are process-wide singletons. Engines and services
are cheap wrappers built over them.
"""

from functools import lru_cache
from typing import Annotated

from fastapi import Depends

from authz.application.check_cache import CheckCache
from authz.application.check_engine import CheckEngine
from authz.application.expansion_engine import ExpansionEngine
from authz.application.resolver import RelationGraphResolver, ResolutionLimits
from authz.application.services import RelationshipService, SchemaService
from authz.application.snapshot import SnapshotSelector
from authz.infrastructure import (
    ConsistencyCoordinator,
    InMemoryNamespaceRegistry,
    InMemoryTupleStore,
)
from infrastructure.settings import (
    get_cache_settings,
    get_consistency_settings,
    get_resolver_settings,
)


@lru_cache
def get_consistency_coordinator() -> ConsistencyCoordinator:
    """Get the process-wide consistency coordinator."""
    return ConsistencyCoordinator()


@lru_cache
def get_tuple_store() -> InMemoryTupleStore:
    """Get the process-wide tuple store."""
    return InMemoryTupleStore(coordinator=get_consistency_coordinator())


@lru_cache
def get_namespace_registry() -> InMemoryNamespaceRegistry:
    """Get the process-wide namespace registry."""
    return InMemoryNamespaceRegistry(coordinator=get_consistency_coordinator())


@lru_cache
def get_check_cache() -> CheckCache | None:
    """Get the check cache, or None when caching is disabled.

    The cache subscribes to committed writes on the tuple store so that
    entries touching a written object or subject are dropped.
    """
    settings = get_cache_settings()
    if not settings.enabled:
        return None
    cache = CheckCache(
        max_entries=settings.max_entries,
        ttl_seconds=settings.ttl_seconds,
    )
    get_tuple_store().subscribe(cache.invalidate)
    return cache


@lru_cache
def get_snapshot_selector() -> SnapshotSelector:
    """Get the snapshot selector configured from consistency settings."""
    settings = get_consistency_settings()
    return SnapshotSelector(
        coordinator=get_consistency_coordinator(),
        wait_timeout_seconds=settings.wait_timeout_seconds,
        quantization_seconds=settings.quantization_seconds,
    )


@lru_cache
def get_resolver() -> RelationGraphResolver:
    """Get the relation graph resolver configured from resolver settings."""
    settings = get_resolver_settings()
    return RelationGraphResolver(
        registry=get_namespace_registry(),
        limits=ResolutionLimits(
            max_depth=settings.max_depth,
            max_tuples_expanded=settings.max_tuples_expanded,
            max_concurrency=settings.max_concurrency,
        ),
    )


def get_check_engine(
    store: Annotated[InMemoryTupleStore, Depends(get_tuple_store)],
    resolver: Annotated[RelationGraphResolver, Depends(get_resolver)],
    selector: Annotated[SnapshotSelector, Depends(get_snapshot_selector)],
    cache: Annotated[CheckCache | None, Depends(get_check_cache)],
) -> CheckEngine:
    """Get CheckEngine instance.

    Args:
        store: Process-wide tuple store
        resolver: Relation graph resolver
        selector: Snapshot selector
        cache: Check cache, None when disabled

    Returns:
        CheckEngine instance
    """
    return CheckEngine(store=store, resolver=resolver, selector=selector, cache=cache)


def get_expansion_engine(
    store: Annotated[InMemoryTupleStore, Depends(get_tuple_store)],
    registry: Annotated[InMemoryNamespaceRegistry, Depends(get_namespace_registry)],
    resolver: Annotated[RelationGraphResolver, Depends(get_resolver)],
    selector: Annotated[SnapshotSelector, Depends(get_snapshot_selector)],
) -> ExpansionEngine:
    """Get ExpansionEngine instance."""
    return ExpansionEngine(
        store=store,
        registry=registry,
        resolver=resolver,
        selector=selector,
    )


def get_relationship_service(
    store: Annotated[InMemoryTupleStore, Depends(get_tuple_store)],
    selector: Annotated[SnapshotSelector, Depends(get_snapshot_selector)],
) -> RelationshipService:
    """Get RelationshipService instance."""
    return RelationshipService(store=store, selector=selector)


def get_schema_service(
    registry: Annotated[InMemoryNamespaceRegistry, Depends(get_namespace_registry)],
    coordinator: Annotated[
        ConsistencyCoordinator, Depends(get_consistency_coordinator)
    ],
) -> SchemaService:
    """Get SchemaService instance."""
    return SchemaService(registry=registry, coordinator=coordinator)
