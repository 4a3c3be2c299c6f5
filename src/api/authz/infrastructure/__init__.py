"""Authorization infrastructure: revision clock, tuple store and registry."""

from authz.infrastructure.consistency import ConsistencyCoordinator
from authz.infrastructure.namespace_registry import InMemoryNamespaceRegistry
from authz.infrastructure.tuple_store import InMemoryTupleStore

__all__ = [
    "ConsistencyCoordinator",
    "InMemoryNamespaceRegistry",
    "InMemoryTupleStore",
]
