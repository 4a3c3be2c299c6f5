"""Authorization domain module.

Contains the relationship data model, rewrite expressions, namespace
definitions and the schema language for the Authorization bounded context.
"""

from authz.domain.namespace import (
    AllowedSubjectType,
    NamespaceDefinition,
    RelationDefinition,
    validate_namespaces,
)
from authz.domain.value_objects import (
    CheckItem,
    CheckResult,
    CheckTrace,
    Consistency,
    ConsistencyMode,
    ExpandNode,
    ObjectRef,
    RelationTuple,
    Revision,
    SubjectListing,
    SubjectRef,
    TupleFilter,
    TupleUpdate,
    WriteOperation,
)

__all__ = [
    "AllowedSubjectType",
    "CheckItem",
    "CheckResult",
    "CheckTrace",
    "Consistency",
    "ConsistencyMode",
    "ExpandNode",
    "NamespaceDefinition",
    "ObjectRef",
    "RelationDefinition",
    "RelationTuple",
    "Revision",
    "SubjectListing",
    "SubjectRef",
    "TupleFilter",
    "TupleUpdate",
    "WriteOperation",
    "validate_namespaces",
]
