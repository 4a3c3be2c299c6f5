"""Exceptions for the Authorization bounded context.

Store and registry errors propagate unchanged through the check and
expansion engines; the presentation layer maps each kind to an HTTP
status. Whatever the error, the authorization answer is "not allowed".
"""

from __future__ import annotations


class AuthorizationError(Exception):
    """Base exception for authorization engine errors."""

    pass


class ConflictError(AuthorizationError):
    """Raised when a write's expected-revision precondition is stale.

    The caller should re-read current state and retry.
    """

    def __init__(self, expected_revision: int, actual_revision: int):
        super().__init__(
            f"Expected revision {expected_revision} but store is at "
            f"revision {actual_revision}"
        )
        self.expected_revision = expected_revision
        self.actual_revision = actual_revision


class UndefinedRelationError(AuthorizationError):
    """Raised when a request or schema references a relation that is not defined.

    Fatal for the request; not worth retrying without a schema change.
    """

    def __init__(self, object_type: str, relation: str, revision: int | None = None):
        message = f"Relation '{object_type}#{relation}' is not defined"
        if revision is not None:
            message += f" at revision {revision}"
        super().__init__(message)
        self.object_type = object_type
        self.relation = relation
        self.revision = revision


class SchemaValidationError(AuthorizationError):
    """Raised when namespace definitions fail validation."""

    def __init__(self, errors: list[str]):
        super().__init__("; ".join(errors))
        self.errors = errors


class ResolutionLimitExceeded(AuthorizationError):
    """Raised when a resolution exceeds its depth or fan-out budget.

    Never translated into an allow or a silent deny; the check fails.
    """

    def __init__(self, limit: str, value: int):
        super().__init__(f"Resolution exceeded {limit} of {value}")
        self.limit = limit
        self.value = value


class DeadlineExceeded(AuthorizationError, TimeoutError):
    """Raised when a check or expansion runs past the caller's deadline."""

    pass


class ConsistencyTimeoutError(AuthorizationError, TimeoutError):
    """Raised when the store does not reach a requested revision in time."""

    def __init__(self, revision: int, head: int, timeout: float):
        super().__init__(
            f"Revision {revision} not reached within {timeout}s "
            f"(store is at revision {head})"
        )
        self.revision = revision
        self.head = head
        self.timeout = timeout


class RevisionExpiredError(AuthorizationError):
    """Raised when reading at a revision older than the compaction horizon."""

    def __init__(self, revision: int, horizon: int):
        super().__init__(
            f"Revision {revision} has been compacted (oldest readable "
            f"revision is {horizon})"
        )
        self.revision = revision
        self.horizon = horizon
