"""Domain probe for application startup and lifecycle events.

Following Domain-Oriented Observability patterns, this probe captures
domain-significant events during application initialization and shutdown.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol

import structlog

if TYPE_CHECKING:
    from shared_kernel.observability_context import ObservationContext


class StartupProbe(Protocol):
    """Domain probe for application startup operations."""

    def application_starting(self, app_name: str, version: str) -> None:
        """Record that the application is starting."""
        ...

    def schema_bootstrapped(self, path: str, revision: int) -> None:
        """Record that the startup schema document was loaded."""
        ...

    def schema_bootstrap_skipped(self) -> None:
        """Record that no startup schema document is configured."""
        ...

    def schema_bootstrap_failed(self, path: str, error: Exception) -> None:
        """Record that the startup schema document could not be loaded."""
        ...

    def application_stopped(self) -> None:
        """Record that the application shut down."""
        ...

    def with_context(self, context: ObservationContext) -> StartupProbe:
        """Create a new probe with observation context bound."""
        ...


class DefaultStartupProbe:
    """Default implementation of StartupProbe using structlog."""

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

    def with_context(self, context: ObservationContext) -> DefaultStartupProbe:
        """Create a new probe with observation context bound."""
        return DefaultStartupProbe(logger=self._logger, context=context)

    def application_starting(self, app_name: str, version: str) -> None:
        self._logger.info(
            "application_starting",
            app_name=app_name,
            version=version,
            **self._get_context_kwargs(),
        )

    def schema_bootstrapped(self, path: str, revision: int) -> None:
        self._logger.info(
            "schema_bootstrapped",
            path=path,
            revision=revision,
            **self._get_context_kwargs(),
        )

    def schema_bootstrap_skipped(self) -> None:
        self._logger.info(
            "schema_bootstrap_skipped",
            **self._get_context_kwargs(),
        )

    def schema_bootstrap_failed(self, path: str, error: Exception) -> None:
        """Record that the startup schema document could not be loaded.

        Startup aborts after this event; serving checks against a missing
        schema would deny everything.
        """
        self._logger.error(
            "schema_bootstrap_failed",
            path=path,
            error=str(error),
            error_type=type(error).__name__,
            **self._get_context_kwargs(),
        )

    def application_stopped(self) -> None:
        self._logger.info(
            "application_stopped",
            **self._get_context_kwargs(),
        )
