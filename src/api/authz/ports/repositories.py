"""Repository interfaces (ports) for the Authorization bounded context.

These protocols define the contracts the application layer depends on.
The in-memory implementations live in ``authz.infrastructure``; a
database-backed tuple store only has to honour the same snapshot
semantics.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping, Sequence
from typing import Protocol, runtime_checkable

from authz.domain.namespace import (
    AllowedSubjectType,
    NamespaceDefinition,
    RelationDefinition,
)
from authz.domain.rewrites import RewriteExpression
from authz.domain.value_objects import (
    RelationTuple,
    Revision,
    TupleFilter,
    TupleUpdate,
)

# Called after a batch is committed with its revision and touched tuples.
WriteListener = Callable[[Revision, Sequence[RelationTuple]], None]


@runtime_checkable
class IConsistencyCoordinator(Protocol):
    """Mints revision tokens and lets readers wait for them."""

    def mint_token(self) -> Revision:
        """Reserve the next revision for a write batch being committed."""
        ...

    def publish(self, revision: Revision) -> None:
        """Mark a minted revision as fully applied and visible."""
        ...

    def head(self) -> Revision:
        """Return the latest published revision."""
        ...

    async def wait_for(self, token: Revision, timeout: float) -> Revision:
        """Wait until the head revision reaches ``token``.

        Returns:
            The head revision once it is at least ``token``

        Raises:
            ConsistencyTimeoutError: If the timeout elapses first
        """
        ...


@runtime_checkable
class ITupleStore(Protocol):
    """Multi-version storage of relationship tuples."""

    async def write(
        self,
        updates: Iterable[TupleUpdate],
        expected_revision: Revision | None = None,
    ) -> Revision:
        """Apply a batch atomically and return its revision.

        Raises:
            ConflictError: If expected_revision is not the head revision
        """
        ...

    async def read(
        self,
        tuple_filter: TupleFilter,
        revision: Revision,
    ) -> list[RelationTuple]:
        """Return tuples matching the filter as of ``revision``.

        Raises:
            RevisionExpiredError: If the revision has been compacted
        """
        ...

    async def exists(self, relation_tuple: RelationTuple, revision: Revision) -> bool:
        """Return True if the tuple is live at ``revision``."""
        ...

    async def delete_by_filter(
        self,
        tuple_filter: TupleFilter,
        expected_revision: Revision | None = None,
    ) -> tuple[Revision, int]:
        """Delete every live tuple matching the filter in one batch.

        Returns:
            The batch revision and the number of tuples deleted
        """
        ...

    def head_revision(self) -> Revision:
        """Return the latest committed revision."""
        ...

    def subscribe(self, listener: WriteListener) -> None:
        """Register a callback invoked after every committed batch."""
        ...


@runtime_checkable
class INamespaceRegistry(Protocol):
    """Versioned registry of namespace definitions."""

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
                relations or uses a reserved name
        """
        ...

    def apply_schema(self, namespaces: Mapping[str, NamespaceDefinition]) -> Revision:
        """Replace the whole schema atomically after validating it."""
        ...

    def get(
        self,
        object_type: str,
        relation: str,
        revision: Revision | None = None,
    ) -> RelationDefinition:
        """Return a relation definition.

        Raises:
            UndefinedRelationError: If the relation is not defined at revision
        """
        ...

    def find(
        self,
        object_type: str,
        relation: str,
        revision: Revision | None = None,
    ) -> RelationDefinition | None:
        """Return a relation definition, or None if it is not defined."""
        ...

    def namespaces(self, revision: Revision | None = None) -> dict[str, NamespaceDefinition]:
        """Return every namespace as of revision."""
        ...

    def validate(self, object_type: str, revision: Revision | None = None) -> list[str]:
        """Validate one namespace against the rest of the schema."""
        ...
