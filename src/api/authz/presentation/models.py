"""Pydantic models for authorization API requests and responses.

References travel as strings in their canonical forms (``document:readme``,
``group:eng#member``) and revisions as opaque zookies. Conversion to
domain objects raises ValueError for malformed input, which the routes
report as 400.
"""

from __future__ import annotations

from pydantic import BaseModel, Field

from authz.domain.value_objects import (
    CheckItem,
    CheckTrace,
    Consistency,
    ConsistencyMode,
    ExpandNode,
    ObjectRef,
    RelationTuple,
    Revision,
    SubjectRef,
    TupleFilter,
    TupleUpdate,
    WriteOperation,
)
from authz.domain.zookie import decode_zookie, encode_zookie


class RelationshipModel(BaseModel):
    """A relationship in its string form."""

    object: str = Field(..., description="Object reference, e.g. document:readme")
    relation: str = Field(..., description="Relation name, e.g. viewer")
    subject: str = Field(
        ..., description="Subject reference, e.g. user:alice or group:eng#member"
    )

    def to_domain(self) -> RelationTuple:
        return RelationTuple.of(self.object, self.relation, self.subject)

    @classmethod
    def from_domain(cls, relation_tuple: RelationTuple) -> RelationshipModel:
        return cls(
            object=str(relation_tuple.object),
            relation=relation_tuple.relation,
            subject=str(relation_tuple.subject),
        )


class RelationshipUpdateModel(BaseModel):
    """One operation of a write batch."""

    operation: WriteOperation = Field(..., description="touch or delete")
    relationship: RelationshipModel

    def to_domain(self) -> TupleUpdate:
        return TupleUpdate(
            operation=self.operation,
            tuple=self.relationship.to_domain(),
        )


class ConsistencyModel(BaseModel):
    """Consistency requirement of a read."""

    mode: ConsistencyMode = Field(
        default=ConsistencyMode.FULLY_CONSISTENT,
        description="Snapshot freshness requirement",
    )
    zookie: str | None = Field(
        default=None,
        description="Revision token, required by at_least_as_fresh and at_exact_snapshot",
    )

    def to_domain(self) -> Consistency:
        revision = decode_zookie(self.zookie) if self.zookie is not None else None
        return Consistency(mode=self.mode, revision=revision)


def consistency_of(model: ConsistencyModel | None) -> Consistency | None:
    """Convert an optional consistency model to the domain requirement."""
    return model.to_domain() if model is not None else None


def expected_revision_of(zookie: str | None) -> Revision | None:
    """Decode an optional expected-revision zookie."""
    return decode_zookie(zookie) if zookie is not None else None


class RelationshipFilterModel(BaseModel):
    """Exact-match relationship filter."""

    object_type: str | None = None
    object_id: str | None = None
    relation: str | None = None
    subject_type: str | None = None
    subject_id: str | None = None
    subject_relation: str | None = None

    def to_domain(self) -> TupleFilter:
        return TupleFilter(**self.model_dump())


class WriteRelationshipsRequest(BaseModel):
    """Request model for an atomic relationship write batch."""

    updates: list[RelationshipUpdateModel] = Field(..., min_length=1)
    expected_zookie: str | None = Field(
        default=None,
        description="Reject the write unless the store is still at this revision",
    )


class RevisionResponse(BaseModel):
    """Response carrying the revision a change became visible at."""

    revision: int
    zookie: str

    @classmethod
    def at(cls, revision: Revision) -> RevisionResponse:
        return cls(revision=revision, zookie=encode_zookie(revision))


class ReadRelationshipsRequest(BaseModel):
    """Request model for reading relationships by filter."""

    filter: RelationshipFilterModel = Field(default_factory=RelationshipFilterModel)
    consistency: ConsistencyModel | None = None


class ReadRelationshipsResponse(RevisionResponse):
    relationships: list[RelationshipModel]


class DeleteRelationshipsRequest(BaseModel):
    """Request model for deleting every relationship matching a filter."""

    filter: RelationshipFilterModel
    expected_zookie: str | None = None


class DeleteRelationshipsResponse(RevisionResponse):
    deleted_count: int


class CheckRequest(BaseModel):
    """Request model for a permission check."""

    subject: str = Field(..., description="Subject reference, e.g. user:alice")
    relation: str = Field(..., description="Relation or permission to check")
    object: str = Field(..., description="Object reference, e.g. document:readme")
    consistency: ConsistencyModel | None = None
    contextual_relationships: list[RelationshipModel] = Field(
        default_factory=list,
        description="Relationships assumed to exist for this request only",
    )
    trace: bool = Field(default=False, description="Return a resolution trace")
    deadline_seconds: float | None = Field(default=None, gt=0)


class CheckTraceModel(BaseModel):
    """Node of a check resolution trace."""

    kind: str
    object: str
    relation: str | None
    subject: str
    result: bool | None
    children: list[CheckTraceModel] = Field(default_factory=list)

    @classmethod
    def from_domain(cls, trace: CheckTrace) -> CheckTraceModel:
        return cls(
            kind=trace.kind,
            object=trace.object,
            relation=trace.relation,
            subject=trace.subject,
            result=trace.result,
            children=[cls.from_domain(child) for child in trace.children],
        )


class CheckResponse(RevisionResponse):
    allowed: bool
    cached: bool = False
    trace: CheckTraceModel | None = None


class CheckItemModel(BaseModel):
    subject: str
    relation: str
    object: str

    def to_domain(self) -> CheckItem:
        return CheckItem(
            subject=SubjectRef.parse(self.subject),
            relation=self.relation,
            object=ObjectRef.parse(self.object),
        )


class BulkCheckRequest(BaseModel):
    """Request model for checking many items at one revision."""

    items: list[CheckItemModel] = Field(..., min_length=1)
    consistency: ConsistencyModel | None = None
    deadline_seconds: float | None = Field(default=None, gt=0)


class BulkCheckResultModel(CheckItemModel):
    allowed: bool


class BulkCheckResponse(RevisionResponse):
    results: list[BulkCheckResultModel]


class ExpandRequest(BaseModel):
    relation: str
    object: str
    consistency: ConsistencyModel | None = None
    deadline_seconds: float | None = Field(default=None, gt=0)


class ExpandNodeModel(BaseModel):
    """Node of a userset expansion tree."""

    kind: str
    object: str
    relation: str
    subjects: list[str] = Field(default_factory=list)
    children: list[ExpandNodeModel] = Field(default_factory=list)

    @classmethod
    def from_domain(cls, node: ExpandNode) -> ExpandNodeModel:
        return cls(
            kind=node.kind,
            object=str(node.object),
            relation=node.relation,
            subjects=[str(subject) for subject in node.subjects],
            children=[cls.from_domain(child) for child in node.children],
        )


class ExpandResponse(RevisionResponse):
    tree: ExpandNodeModel


class ListSubjectsRequest(BaseModel):
    relation: str
    object: str
    subject_type: str | None = Field(
        default=None, description="Only return subjects of this type"
    )
    consistency: ConsistencyModel | None = None
    deadline_seconds: float | None = Field(default=None, gt=0)


class ListSubjectsResponse(RevisionResponse):
    subjects: list[str]
    excluded_subjects: list[str] = Field(
        default_factory=list,
        description="Subjects removed from a type:* entry in subjects",
    )


class ListObjectsRequest(BaseModel):
    relation: str
    subject: str
    object_type: str
    consistency: ConsistencyModel | None = None
    deadline_seconds: float | None = Field(default=None, gt=0)


class ListObjectsResponse(RevisionResponse):
    objects: list[str]


class SchemaRequest(BaseModel):
    """Request model carrying a schema document."""

    schema_text: str = Field(..., alias="schema", description="Schema document")


class SchemaResponse(RevisionResponse):
    schema_text: str = Field(..., serialization_alias="schema")


class ValidateSchemaResponse(BaseModel):
    valid: bool
    errors: list[str] = Field(default_factory=list)
