"""Domain probe for tuple store and namespace registry writes.

Following Domain-Oriented Observability patterns, this probe captures
the storage events that change what the engine can answer: committed
tuple batches, rejected preconditions, schema changes and compaction.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol

import structlog

if TYPE_CHECKING:
    from shared_kernel.observability_context import ObservationContext


class TupleStoreProbe(Protocol):
    """Domain probe for storage of tuples and namespace definitions."""

    def batch_committed(self, revision: int, touched: int, deleted: int) -> None:
        """Record that a write batch became visible at a revision."""
        ...

    def write_conflict(self, expected_revision: int, actual_revision: int) -> None:
        """Record that a write precondition was stale."""
        ...

    def compacted(self, horizon: int, removed: int) -> None:
        """Record that old tuple versions were garbage collected."""
        ...

    def schema_changed(self, revision: int, object_types: list[str]) -> None:
        """Record that namespace definitions changed."""
        ...

    def schema_rejected(self, errors: list[str]) -> None:
        """Record that namespace definitions failed validation."""
        ...

    def with_context(self, context: ObservationContext) -> TupleStoreProbe:
        """Create a new probe with observation context bound."""
        ...


class DefaultTupleStoreProbe:
    """Default implementation of TupleStoreProbe using structlog."""

    def __init__(
        self,
        logger: structlog.stdlib.BoundLogger | None = None,
        context: ObservationContext | None = None,
    ):
        self._logger = logger or structlog.get_logger()
        self._context = context

    def _get_context_kwargs(self) -> dict[str, Any]:
        """Get context metadata as kwargs for logging."""
        if self._context is None:
            return {}
        return self._context.as_dict()

    def with_context(self, context: ObservationContext) -> DefaultTupleStoreProbe:
        """Create a new probe with observation context bound."""
        return DefaultTupleStoreProbe(logger=self._logger, context=context)

    def batch_committed(self, revision: int, touched: int, deleted: int) -> None:
        """Record that a write batch became visible at a revision."""
        self._logger.info(
            "authz_tuples_written",
            revision=revision,
            touched=touched,
            deleted=deleted,
            **self._get_context_kwargs(),
        )

    def write_conflict(self, expected_revision: int, actual_revision: int) -> None:
        """Record that a write precondition was stale."""
        self._logger.warning(
            "authz_write_conflict",
            expected_revision=expected_revision,
            actual_revision=actual_revision,
            **self._get_context_kwargs(),
        )

    def compacted(self, horizon: int, removed: int) -> None:
        """Record that old tuple versions were garbage collected."""
        self._logger.info(
            "authz_tuples_compacted",
            horizon=horizon,
            removed=removed,
            **self._get_context_kwargs(),
        )

    def schema_changed(self, revision: int, object_types: list[str]) -> None:
        """Record that namespace definitions changed."""
        self._logger.info(
            "authz_schema_changed",
            revision=revision,
            object_types=object_types,
            **self._get_context_kwargs(),
        )

    def schema_rejected(self, errors: list[str]) -> None:
        """Record that namespace definitions failed validation."""
        self._logger.error(
            "authz_schema_rejected",
            errors=errors,
            error_count=len(errors),
            **self._get_context_kwargs(),
        )
