"""Schema application service for the Authorization bounded context.

Loads schema documents written in the schema language into the namespace
registry, validates them without applying, and renders the current
schema back to text.
"""

from __future__ import annotations

from pathlib import Path

from authz.application.observability import (
    DefaultSchemaServiceProbe,
    SchemaServiceProbe,
)
from authz.domain.namespace import validate_namespaces
from authz.domain.schema_dsl import SchemaParseError, parse_schema, render_schema
from authz.domain.value_objects import Revision
from authz.ports.exceptions import SchemaValidationError
from authz.ports.repositories import IConsistencyCoordinator, INamespaceRegistry


class SchemaService:
    """Application service for schema management."""

    def __init__(
        self,
        registry: INamespaceRegistry,
        coordinator: IConsistencyCoordinator,
        probe: SchemaServiceProbe | None = None,
    ):
        self._registry = registry
        self._coordinator = coordinator
        self._probe = probe or DefaultSchemaServiceProbe()

    def load_schema(self, text: str, source: str = "api") -> Revision:
        """Parse, validate and apply a schema document.

        The document replaces the whole schema atomically.

        Args:
            text: Schema document
            source: Where the document came from, for logging

        Returns:
            The revision at which the new schema took effect

        Raises:
            SchemaParseError: If the document is not valid schema syntax
            SchemaValidationError: If the definitions are inconsistent
        """
        try:
            namespaces = parse_schema(text)
            revision = self._registry.apply_schema(namespaces)
        except (SchemaParseError, SchemaValidationError) as e:
            self._probe.schema_load_failed(source=source, error=e)
            raise

        self._probe.schema_loaded(
            revision=revision,
            object_types=sorted(namespaces),
            source=source,
        )
        return revision

    def load_schema_file(self, path: str | Path) -> Revision:
        """Load a schema document from a file."""
        schema_path = Path(path)
        return self.load_schema(schema_path.read_text(), source=str(schema_path))

    def validate_schema(self, text: str) -> list[str]:
        """Return the problems with a schema document without applying it.

        An empty list means the document would be accepted.
        """
        try:
            namespaces = parse_schema(text)
        except SchemaParseError as e:
            return [str(e)]
        return validate_namespaces(namespaces)

    def current_schema(self) -> tuple[str, Revision]:
        """Render the schema in effect at head.

        Returns:
            Tuple of (schema document, current head revision)
        """
        revision = self._coordinator.head()
        return render_schema(self._registry.namespaces(revision)), revision
