"""In-memory implementation of INamespaceRegistry.

The registry keeps every schema version it has ever published, keyed by
the revision minted for the change. Checks pinned to revision N resolve
relations against the schema in effect at N, so a request always sees a
consistent (tuples, schema) pair.
"""

from __future__ import annotations

import bisect
import threading
from collections.abc import Mapping, Sequence

from authz.domain.namespace import (
    AllowedSubjectType,
    NamespaceDefinition,
    RelationDefinition,
    validate_namespaces,
)
from authz.domain.rewrites import RewriteExpression
from authz.domain.value_objects import Revision
from authz.infrastructure.observability import (
    DefaultTupleStoreProbe,
    TupleStoreProbe,
)
from authz.ports.exceptions import SchemaValidationError, UndefinedRelationError
from authz.ports.repositories import IConsistencyCoordinator


class InMemoryNamespaceRegistry:
    """Versioned namespace definitions held in process memory.

    Each change produces a new immutable snapshot of the whole schema;
    snapshots share unchanged NamespaceDefinition objects.
    """

    def __init__(
        self,
        coordinator: IConsistencyCoordinator,
        probe: TupleStoreProbe | None = None,
    ) -> None:
        self._coordinator = coordinator
        self._probe = probe or DefaultTupleStoreProbe()
        self._lock = threading.Lock()
        self._revisions: list[Revision] = [0]
        self._snapshots: list[dict[str, NamespaceDefinition]] = [{}]

    def declare(self, object_type: str) -> Revision:
        """Declare an object type with no relations (e.g. ``user``)."""
        current = self._snapshot(None)
        if object_type in current:
            return self._coordinator.head()
        candidate = {**current, object_type: NamespaceDefinition(name=object_type)}
        return self._apply(candidate, only=object_type)

    def define(
        self,
        object_type: str,
        relation: str,
        expression: RewriteExpression,
        subject_types: Sequence[AllowedSubjectType] = (),
    ) -> Revision:
        """Add or replace one relation definition.

        Raises:
            SchemaValidationError: If the definition references undefined
                relations or types, or uses a reserved name
        """
        definition = RelationDefinition(
            name=relation,
            rewrite=expression,
            subject_types=tuple(subject_types),
        )
        current = self._snapshot(None)
        namespace = current.get(object_type) or NamespaceDefinition(name=object_type)
        candidate = {**current, object_type: namespace.with_relation(definition)}
        return self._apply(candidate, only=object_type)

    def apply_schema(self, namespaces: Mapping[str, NamespaceDefinition]) -> Revision:
        """Replace the whole schema after validating it as a unit.

        Raises:
            SchemaValidationError: If any namespace is invalid
        """
        return self._apply(dict(namespaces), only=None)

    def get(
        self,
        object_type: str,
        relation: str,
        revision: Revision | None = None,
    ) -> RelationDefinition:
        definition = self.find(object_type, relation, revision)
        if definition is None:
            raise UndefinedRelationError(object_type, relation, revision)
        return definition

    def find(
        self,
        object_type: str,
        relation: str,
        revision: Revision | None = None,
    ) -> RelationDefinition | None:
        namespace = self._snapshot(revision).get(object_type)
        if namespace is None:
            return None
        return namespace.relations.get(relation)

    def namespaces(
        self, revision: Revision | None = None
    ) -> dict[str, NamespaceDefinition]:
        return dict(self._snapshot(revision))

    def schema_revision(self, revision: Revision | None = None) -> Revision:
        """Return the revision at which the schema seen at ``revision`` was set."""
        if revision is None:
            return self._revisions[-1]
        index = bisect.bisect_right(self._revisions, revision) - 1
        return self._revisions[max(index, 0)]

    def validate(self, object_type: str, revision: Revision | None = None) -> list[str]:
        return validate_namespaces(self._snapshot(revision), only=object_type)

    def _snapshot(self, revision: Revision | None) -> dict[str, NamespaceDefinition]:
        if revision is None:
            return self._snapshots[-1]
        index = bisect.bisect_right(self._revisions, revision) - 1
        return self._snapshots[max(index, 0)]

    def _apply(
        self,
        candidate: dict[str, NamespaceDefinition],
        only: str | None,
    ) -> Revision:
        errors = validate_namespaces(candidate, only=only)
        if errors:
            self._probe.schema_rejected(errors=errors)
            raise SchemaValidationError(errors)

        with self._lock:
            revision = self._coordinator.mint_token()
            self._revisions.append(revision)
            self._snapshots.append(candidate)
            self._coordinator.publish(revision)

        self._probe.schema_changed(revision=revision, object_types=sorted(candidate))
        return revision
