"""Protocols for relationship and schema service observability."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol

import structlog

if TYPE_CHECKING:
    from shared_kernel.observability_context import ObservationContext


class RelationshipServiceProbe(Protocol):
    """Domain probe for relationship write and read use cases."""

    def relationships_written(self, revision: int, count: int) -> None:
        """Record that a batch of relationship updates was committed."""
        ...

    def relationships_write_failed(self, count: int, error: Exception) -> None:
        """Record that a batch of relationship updates was rejected."""
        ...

    def relationships_deleted(self, revision: int, count: int) -> None:
        """Record that relationships were deleted by filter."""
        ...

    def relationships_read(self, revision: int, count: int) -> None:
        """Record that relationships were read."""
        ...

    def with_context(self, context: ObservationContext) -> RelationshipServiceProbe:
        """Create a new probe with observation context bound."""
        ...


class DefaultRelationshipServiceProbe:
    """Default implementation of RelationshipServiceProbe using structlog."""

    def __init__(
        self,
        logger: structlog.stdlib.BoundLogger | None = None,
        context: ObservationContext | None = None,
    ):
        self._logger = logger or structlog.get_logger()
        self._context = context

    def _get_context_kwargs(self) -> dict[str, Any]:
        if self._context is None:
            return {}
        return self._context.as_dict()

    def with_context(
        self, context: ObservationContext
    ) -> DefaultRelationshipServiceProbe:
        return DefaultRelationshipServiceProbe(logger=self._logger, context=context)

    def relationships_written(self, revision: int, count: int) -> None:
        self._logger.info(
            "relationships_written",
            revision=revision,
            count=count,
            **self._get_context_kwargs(),
        )

    def relationships_write_failed(self, count: int, error: Exception) -> None:
        self._logger.error(
            "relationships_write_failed",
            count=count,
            error=str(error),
            error_type=type(error).__name__,
            **self._get_context_kwargs(),
        )

    def relationships_deleted(self, revision: int, count: int) -> None:
        self._logger.info(
            "relationships_deleted",
            revision=revision,
            count=count,
            **self._get_context_kwargs(),
        )

    def relationships_read(self, revision: int, count: int) -> None:
        self._logger.debug(
            "relationships_read",
            revision=revision,
            count=count,
            **self._get_context_kwargs(),
        )


class SchemaServiceProbe(Protocol):
    """Domain probe for schema loading."""

    def schema_loaded(self, revision: int, object_types: list[str], source: str) -> None:
        """Record that a schema was applied."""
        ...

    def schema_load_failed(self, source: str, error: Exception) -> None:
        """Record that a schema could not be parsed or validated."""
        ...

    def with_context(self, context: ObservationContext) -> SchemaServiceProbe:
        """Create a new probe with observation context bound."""
        ...


class DefaultSchemaServiceProbe:
    """Default implementation of SchemaServiceProbe using structlog."""

    def __init__(
        self,
        logger: structlog.stdlib.BoundLogger | None = None,
        context: ObservationContext | None = None,
    ):
        self._logger = logger or structlog.get_logger()
        self._context = context

    def _get_context_kwargs(self) -> dict[str, Any]:
        if self._context is None:
            return {}
        return self._context.as_dict()

    def with_context(self, context: ObservationContext) -> DefaultSchemaServiceProbe:
        return DefaultSchemaServiceProbe(logger=self._logger, context=context)

    def schema_loaded(self, revision: int, object_types: list[str], source: str) -> None:
        self._logger.info(
            "schema_loaded",
            revision=revision,
            object_types=object_types,
            source=source,
            **self._get_context_kwargs(),
        )

    def schema_load_failed(self, source: str, error: Exception) -> None:
        self._logger.error(
            "schema_load_failed",
            source=source,
            error=str(error),
            error_type=type(error).__name__,
            **self._get_context_kwargs(),
        )
