"""Protocol for check and expansion observability.

Defines the interface for domain probes that capture the outcome of
permission checks and listings, including failures that must never be
mistaken for an allow or a quiet deny.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol

import structlog

if TYPE_CHECKING:
    from shared_kernel.observability_context import ObservationContext


class CheckProbe(Protocol):
    """Domain probe for check and expansion operations."""

    def check_completed(
        self,
        subject: str,
        relation: str,
        object: str,
        allowed: bool,
        revision: int,
        cached: bool,
    ) -> None:
        """Record that a check produced an answer."""
        ...

    def check_failed(
        self,
        subject: str,
        relation: str,
        object: str,
        error: Exception,
    ) -> None:
        """Record that a check failed and was treated as a deny."""
        ...

    def resolution_limit_exceeded(
        self,
        operation: str,
        relation: str,
        object: str,
        limit: str,
        value: int,
    ) -> None:
        """Record that a resolution ran out of budget."""
        ...

    def deadline_exceeded(
        self,
        operation: str,
        relation: str,
        object: str,
        deadline_seconds: float,
    ) -> None:
        """Record that a request ran past its deadline."""
        ...

    def bulk_check_completed(
        self,
        total_requests: int,
        permitted_count: int,
        revision: int,
    ) -> None:
        """Record that a bulk check completed."""
        ...

    def subjects_listed(
        self,
        relation: str,
        object: str,
        count: int,
        revision: int,
    ) -> None:
        """Record that subjects of a relation were listed."""
        ...

    def objects_listed(
        self,
        relation: str,
        subject: str,
        object_type: str,
        candidates: int,
        count: int,
        revision: int,
    ) -> None:
        """Record that objects reachable by a subject were listed."""
        ...

    def with_context(self, context: ObservationContext) -> CheckProbe:
        """Create a new probe with observation context bound."""
        ...


class DefaultCheckProbe:
    """Default implementation of CheckProbe using structlog."""

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

    def with_context(self, context: ObservationContext) -> DefaultCheckProbe:
        """Create a new probe with observation context bound."""
        return DefaultCheckProbe(logger=self._logger, context=context)

    def check_completed(
        self,
        subject: str,
        relation: str,
        object: str,
        allowed: bool,
        revision: int,
        cached: bool,
    ) -> None:
        """Record that a check produced an answer."""
        self._logger.debug(
            "authz_check_completed",
            subject=subject,
            relation=relation,
            object=object,
            allowed=allowed,
            revision=revision,
            cached=cached,
            **self._get_context_kwargs(),
        )

    def check_failed(
        self,
        subject: str,
        relation: str,
        object: str,
        error: Exception,
    ) -> None:
        """Record that a check failed and was treated as a deny."""
        self._logger.error(
            "authz_check_failed",
            subject=subject,
            relation=relation,
            object=object,
            error=str(error),
            error_type=type(error).__name__,
            **self._get_context_kwargs(),
        )

    def resolution_limit_exceeded(
        self,
        operation: str,
        relation: str,
        object: str,
        limit: str,
        value: int,
    ) -> None:
        """Record that a resolution ran out of budget."""
        self._logger.warning(
            "authz_resolution_limit_exceeded",
            operation=operation,
            relation=relation,
            object=object,
            limit=limit,
            value=value,
            **self._get_context_kwargs(),
        )

    def deadline_exceeded(
        self,
        operation: str,
        relation: str,
        object: str,
        deadline_seconds: float,
    ) -> None:
        """Record that a request ran past its deadline."""
        self._logger.warning(
            "authz_deadline_exceeded",
            operation=operation,
            relation=relation,
            object=object,
            deadline_seconds=deadline_seconds,
            **self._get_context_kwargs(),
        )

    def bulk_check_completed(
        self,
        total_requests: int,
        permitted_count: int,
        revision: int,
    ) -> None:
        """Record that a bulk check completed."""
        self._logger.info(
            "authz_bulk_check_completed",
            total_requests=total_requests,
            permitted_count=permitted_count,
            revision=revision,
            **self._get_context_kwargs(),
        )

    def subjects_listed(
        self,
        relation: str,
        object: str,
        count: int,
        revision: int,
    ) -> None:
        """Record that subjects of a relation were listed."""
        self._logger.info(
            "authz_subjects_listed",
            relation=relation,
            object=object,
            count=count,
            revision=revision,
            **self._get_context_kwargs(),
        )

    def objects_listed(
        self,
        relation: str,
        subject: str,
        object_type: str,
        candidates: int,
        count: int,
        revision: int,
    ) -> None:
        """Record that objects reachable by a subject were listed."""
        self._logger.info(
            "authz_objects_listed",
            relation=relation,
            subject=subject,
            object_type=object_type,
            candidates=candidates,
            count=count,
            revision=revision,
            **self._get_context_kwargs(),
        )
