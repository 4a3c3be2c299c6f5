"""Domain value objects for the Authorization bounded context.

These are immutable descriptors for the relationship data model: typed
object and subject references, relationship tuples, read filters and
consistency requirements. Equality is based on attribute values, which
makes them usable as dictionary keys by the tuple store and the caches.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TypeAlias

# Revisions are minted by the consistency coordinator on every committed
# write batch (tuple or schema) and are strictly increasing.
Revision: TypeAlias = int

WILDCARD = "*"

NAME_PATTERN = r"[a-z][a-z0-9_]*"
ID_PATTERN = r"[A-Za-z0-9_|\-=+/.@]+"

_NAME_RE = re.compile(rf"^{NAME_PATTERN}$")
_OBJECT_RE = re.compile(rf"^({NAME_PATTERN}):({ID_PATTERN})$")
_SUBJECT_RE = re.compile(
    rf"^({NAME_PATTERN}):({ID_PATTERN}|\*)(?:#({NAME_PATTERN}))?$"
)


def is_valid_name(value: str) -> bool:
    """Return True if value is a valid object type or relation name."""
    return bool(_NAME_RE.match(value))


@dataclass(frozen=True)
class ObjectRef:
    """Reference to an object, e.g. ``document:readme``.

    Object references are opaque: no component checks that the object
    exists anywhere, and dangling references simply never match.
    """

    object_type: str
    object_id: str

    def __str__(self) -> str:
        return f"{self.object_type}:{self.object_id}"

    @classmethod
    def parse(cls, value: str) -> ObjectRef:
        """Parse a ``type:id`` string.

        Raises:
            ValueError: If value is not a valid object reference
        """
        match = _OBJECT_RE.match(value)
        if match is None:
            raise ValueError(f"Invalid object format: {value!r}")
        return cls(object_type=match.group(1), object_id=match.group(2))


@dataclass(frozen=True)
class SubjectRef:
    """Reference to a subject: a concrete object, a wildcard or a userset.

    Examples:
        ``user:alice``         a single subject
        ``user:*``             every subject of type user
        ``group:eng#member``   the userset of members of group:eng
    """

    subject_type: str
    subject_id: str
    relation: str | None = None

    def __post_init__(self) -> None:
        if self.subject_id == WILDCARD and self.relation is not None:
            raise ValueError("Wildcard subjects cannot carry a relation")

    def __str__(self) -> str:
        base = f"{self.subject_type}:{self.subject_id}"
        if self.relation is None:
            return base
        return f"{base}#{self.relation}"

    @property
    def is_wildcard(self) -> bool:
        return self.subject_id == WILDCARD

    @property
    def is_userset(self) -> bool:
        return self.relation is not None

    def as_object(self) -> ObjectRef:
        """Return the object part of this subject, dropping any relation."""
        return ObjectRef(object_type=self.subject_type, object_id=self.subject_id)

    @classmethod
    def of(cls, obj: ObjectRef, relation: str | None = None) -> SubjectRef:
        """Build a subject from an object reference and optional relation."""
        return cls(
            subject_type=obj.object_type,
            subject_id=obj.object_id,
            relation=relation,
        )

    @classmethod
    def parse(cls, value: str) -> SubjectRef:
        """Parse a ``type:id`` or ``type:id#relation`` string.

        Raises:
            ValueError: If value is not a valid subject reference
        """
        match = _SUBJECT_RE.match(value)
        if match is None:
            raise ValueError(f"Invalid subject format: {value!r}")
        return cls(
            subject_type=match.group(1),
            subject_id=match.group(2),
            relation=match.group(3),
        )


@dataclass(frozen=True)
class RelationTuple:
    """A relationship fact: ``subject`` has ``relation`` to ``object``.

    Tuples are immutable once written. The canonical string form is
    ``document:readme#viewer@group:eng#member``.
    """

    object: ObjectRef
    relation: str
    subject: SubjectRef

    def __post_init__(self) -> None:
        if not is_valid_name(self.relation):
            raise ValueError(f"Invalid relation name: {self.relation!r}")

    def __str__(self) -> str:
        return f"{self.object}#{self.relation}@{self.subject}"

    @classmethod
    def of(cls, obj: str, relation: str, subject: str) -> RelationTuple:
        """Build a tuple from its string parts."""
        return cls(
            object=ObjectRef.parse(obj),
            relation=relation,
            subject=SubjectRef.parse(subject),
        )

    @classmethod
    def parse(cls, value: str) -> RelationTuple:
        """Parse the canonical ``object#relation@subject`` form.

        Raises:
            ValueError: If value is not a valid tuple string
        """
        resource, sep, subject = value.partition("@")
        if not sep:
            raise ValueError(f"Invalid tuple format: {value!r}")
        obj, sep, relation = resource.partition("#")
        if not sep:
            raise ValueError(f"Invalid tuple format: {value!r}")
        return cls.of(obj, relation, subject)


class WriteOperation(StrEnum):
    """Kind of change applied to a tuple in a write batch."""

    TOUCH = "touch"
    DELETE = "delete"


@dataclass(frozen=True)
class TupleUpdate:
    """One operation of an atomic write batch."""

    operation: WriteOperation
    tuple: RelationTuple

    @classmethod
    def touch(cls, relation_tuple: RelationTuple) -> TupleUpdate:
        return cls(operation=WriteOperation.TOUCH, tuple=relation_tuple)

    @classmethod
    def delete(cls, relation_tuple: RelationTuple) -> TupleUpdate:
        return cls(operation=WriteOperation.DELETE, tuple=relation_tuple)


@dataclass(frozen=True)
class TupleFilter:
    """Exact-match filter over tuples.

    The object side is matched on a prefix of (object_type, object_id,
    relation) and the subject side on (subject_type, subject_id,
    subject_relation). Unset fields match anything.
    """

    object_type: str | None = None
    object_id: str | None = None
    relation: str | None = None
    subject_type: str | None = None
    subject_id: str | None = None
    subject_relation: str | None = None

    def __post_init__(self) -> None:
        if self.object_id is not None and self.object_type is None:
            raise ValueError("object_type must be provided when object_id is specified")
        if self.subject_id is not None and self.subject_type is None:
            raise ValueError(
                "subject_type must be provided when subject_id is specified"
            )
        if self.subject_relation is not None and self.subject_type is None:
            raise ValueError(
                "subject_type must be provided when subject_relation is specified"
            )

    @property
    def is_empty(self) -> bool:
        return all(
            value is None
            for value in (
                self.object_type,
                self.object_id,
                self.relation,
                self.subject_type,
                self.subject_id,
                self.subject_relation,
            )
        )

    def matches(self, relation_tuple: RelationTuple) -> bool:
        """Return True if the tuple satisfies every set field."""
        obj = relation_tuple.object
        subject = relation_tuple.subject
        return (
            (self.object_type is None or obj.object_type == self.object_type)
            and (self.object_id is None or obj.object_id == self.object_id)
            and (self.relation is None or relation_tuple.relation == self.relation)
            and (
                self.subject_type is None
                or subject.subject_type == self.subject_type
            )
            and (self.subject_id is None or subject.subject_id == self.subject_id)
            and (
                self.subject_relation is None
                or subject.relation == self.subject_relation
            )
        )


class ConsistencyMode(StrEnum):
    """How fresh the snapshot used to answer a request must be."""

    MINIMIZE_LATENCY = "minimize_latency"
    AT_LEAST_AS_FRESH = "at_least_as_fresh"
    AT_EXACT_SNAPSHOT = "at_exact_snapshot"
    FULLY_CONSISTENT = "fully_consistent"


@dataclass(frozen=True)
class Consistency:
    """Consistency requirement attached to a read, check or listing.

    Use the class constructors rather than building instances directly:

        Consistency.fully_consistent()
        Consistency.at_least_as_fresh_as(revision)
    """

    mode: ConsistencyMode
    revision: Revision | None = None

    def __post_init__(self) -> None:
        needs_revision = self.mode in (
            ConsistencyMode.AT_LEAST_AS_FRESH,
            ConsistencyMode.AT_EXACT_SNAPSHOT,
        )
        if needs_revision and self.revision is None:
            raise ValueError(f"Consistency mode {self.mode} requires a revision")
        if not needs_revision and self.revision is not None:
            raise ValueError(f"Consistency mode {self.mode} does not take a revision")
        if self.revision is not None and self.revision < 0:
            raise ValueError("Revision must be non-negative")

    @classmethod
    def minimize_latency(cls) -> Consistency:
        return cls(mode=ConsistencyMode.MINIMIZE_LATENCY)

    @classmethod
    def at_least_as_fresh_as(cls, revision: Revision) -> Consistency:
        return cls(mode=ConsistencyMode.AT_LEAST_AS_FRESH, revision=revision)

    @classmethod
    def at_exact_snapshot(cls, revision: Revision) -> Consistency:
        return cls(mode=ConsistencyMode.AT_EXACT_SNAPSHOT, revision=revision)

    @classmethod
    def fully_consistent(cls) -> Consistency:
        return cls(mode=ConsistencyMode.FULLY_CONSISTENT)


@dataclass
class CheckTrace:
    """One evaluated node of a resolution, for explainability.

    ``result`` stays None for branches abandoned once a sibling decided
    the answer.
    """

    kind: str
    object: str
    relation: str | None
    subject: str
    result: bool | None = None
    children: list[CheckTrace] = field(default_factory=list)

    def child(
        self,
        kind: str,
        obj: ObjectRef,
        relation: str | None,
        subject: SubjectRef,
    ) -> CheckTrace:
        node = CheckTrace(
            kind=kind,
            object=str(obj),
            relation=relation,
            subject=str(subject),
        )
        self.children.append(node)
        return node


@dataclass(frozen=True)
class CheckItem:
    """A single (subject, relation, object) question for bulk checks."""

    subject: SubjectRef
    relation: str
    object: ObjectRef


@dataclass(frozen=True)
class CheckResult:
    """Answer to a check request.

    Attributes:
        allowed: Whether the subject has the relation to the object
        revision: The revision the answer was computed at
        trace: Resolution trace, when requested
        cached: True if the answer came from the check cache
    """

    allowed: bool
    revision: Revision
    trace: CheckTrace | None = None
    cached: bool = False


@dataclass
class ExpandNode:
    """Node of a userset expansion tree.

    The tree mirrors the rewrite expression: ``kind`` is one of ``this``,
    ``computed_userset``, ``tuple_to_userset``, ``union``,
    ``intersection``, ``exclusion`` or ``cycle``. Leaf subjects are
    attached to the branch that produced them.
    """

    kind: str
    object: ObjectRef
    relation: str
    subjects: list[SubjectRef] = field(default_factory=list)
    children: list[ExpandNode] = field(default_factory=list)


@dataclass
class SubjectListing:
    """Terminal subjects that hold a relation on an object.

    A ``type:*`` entry in ``subjects`` stands for every subject of that
    type except the subjects of the same type listed in ``excluded``.
    """

    subjects: list[SubjectRef] = field(default_factory=list)
    excluded: list[SubjectRef] = field(default_factory=list)
