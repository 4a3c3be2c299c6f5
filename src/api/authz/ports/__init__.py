"""Authorization ports (interfaces) module.

Ports define the contracts between the application layer and
infrastructure, keeping the resolver independent of how tuples and
namespace definitions are stored.
"""

from authz.ports.repositories import (
    IConsistencyCoordinator,
    INamespaceRegistry,
    ITupleStore,
    WriteListener,
)

__all__ = [
    "IConsistencyCoordinator",
    "INamespaceRegistry",
    "ITupleStore",
    "WriteListener",
]
