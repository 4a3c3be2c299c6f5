"""Domain probe for revision minting and consistency waits."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol

import structlog

if TYPE_CHECKING:
    from shared_kernel.observability_context import ObservationContext


class ConsistencyProbe(Protocol):
    """Domain probe for the consistency coordinator."""

    def revision_published(self, revision: int) -> None:
        """Record that a revision became visible to readers."""
        ...

    def wait_completed(self, token: int, head: int, waited_seconds: float) -> None:
        """Record that a reader waited for a revision and got it."""
        ...

    def wait_timed_out(self, token: int, head: int, timeout: float) -> None:
        """Record that a reader gave up waiting for a revision."""
        ...

    def with_context(self, context: ObservationContext) -> ConsistencyProbe:
        """Create a new probe with observation context bound."""
        ...


class DefaultConsistencyProbe:
    """Default implementation of ConsistencyProbe using structlog."""

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

    def with_context(self, context: ObservationContext) -> DefaultConsistencyProbe:
        return DefaultConsistencyProbe(logger=self._logger, context=context)

    def revision_published(self, revision: int) -> None:
        self._logger.debug(
            "authz_revision_published",
            revision=revision,
            **self._get_context_kwargs(),
        )

    def wait_completed(self, token: int, head: int, waited_seconds: float) -> None:
        self._logger.debug(
            "authz_consistency_wait_completed",
            token=token,
            head=head,
            waited_seconds=waited_seconds,
            **self._get_context_kwargs(),
        )

    def wait_timed_out(self, token: int, head: int, timeout: float) -> None:
        self._logger.warning(
            "authz_consistency_wait_timed_out",
            token=token,
            head=head,
            timeout=timeout,
            **self._get_context_kwargs(),
        )
