"""Application-level observability for the Authorization bounded context."""

from authz.application.observability.check_probe import (
    CheckProbe,
    DefaultCheckProbe,
)
from authz.application.observability.service_probes import (
    DefaultRelationshipServiceProbe,
    DefaultSchemaServiceProbe,
    RelationshipServiceProbe,
    SchemaServiceProbe,
)

__all__ = [
    "CheckProbe",
    "DefaultCheckProbe",
    "DefaultRelationshipServiceProbe",
    "DefaultSchemaServiceProbe",
    "RelationshipServiceProbe",
    "SchemaServiceProbe",
]
