"""Application services for the Authorization bounded context.

Application services orchestrate the tuple store and namespace registry
to fulfill relationship and schema management use cases.
"""

from authz.application.services.relationship_service import RelationshipService
from authz.application.services.schema_service import SchemaService

__all__ = [
    "RelationshipService",
    "SchemaService",
]
