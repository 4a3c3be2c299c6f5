"""Authorization application layer.

Contains the relation graph resolver, the check and expansion engines,
snapshot selection and the application services.
"""

from authz.application.check_cache import CheckCache
from authz.application.check_engine import CheckEngine
from authz.application.expansion_engine import ExpansionEngine
from authz.application.resolver import (
    RelationGraphResolver,
    ResolutionBudget,
    ResolutionLimits,
)
from authz.application.snapshot import SnapshotReader, SnapshotSelector

__all__ = [
    "CheckCache",
    "CheckEngine",
    "ExpansionEngine",
    "RelationGraphResolver",
    "ResolutionBudget",
    "ResolutionLimits",
    "SnapshotReader",
    "SnapshotSelector",
]
