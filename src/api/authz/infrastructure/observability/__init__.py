"""Observability for authorization storage components."""

from authz.infrastructure.observability.consistency_probe import (
    ConsistencyProbe,
    DefaultConsistencyProbe,
)
from authz.infrastructure.observability.tuple_store_probe import (
    DefaultTupleStoreProbe,
    TupleStoreProbe,
)

__all__ = [
    "ConsistencyProbe",
    "DefaultConsistencyProbe",
    "DefaultTupleStoreProbe",
    "TupleStoreProbe",
]
