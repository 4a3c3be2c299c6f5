"""HTTP routes for the Authorization bounded context."""

from __future__ import annotations

from typing import Annotated

import structlog
from fastapi import APIRouter, Depends, HTTPException, status

from authz.application.check_engine import CheckEngine
from authz.application.expansion_engine import ExpansionEngine
from authz.application.services import RelationshipService, SchemaService
from authz.dependencies import (
    get_check_engine,
    get_expansion_engine,
    get_relationship_service,
    get_schema_service,
)
from authz.domain.value_objects import ObjectRef, SubjectRef
from authz.domain.zookie import encode_zookie
from authz.ports.exceptions import (
    ConflictError,
    ConsistencyTimeoutError,
    DeadlineExceeded,
    ResolutionLimitExceeded,
    RevisionExpiredError,
    SchemaValidationError,
    UndefinedRelationError,
)
from authz.presentation.models import (
    BulkCheckRequest,
    BulkCheckResponse,
    BulkCheckResultModel,
    CheckRequest,
    CheckResponse,
    CheckTraceModel,
    DeleteRelationshipsRequest,
    DeleteRelationshipsResponse,
    ExpandNodeModel,
    ExpandRequest,
    ExpandResponse,
    ListObjectsRequest,
    ListObjectsResponse,
    ListSubjectsRequest,
    ListSubjectsResponse,
    ReadRelationshipsRequest,
    ReadRelationshipsResponse,
    RelationshipModel,
    RevisionResponse,
    SchemaRequest,
    SchemaResponse,
    ValidateSchemaResponse,
    WriteRelationshipsRequest,
    consistency_of,
    expected_revision_of,
)

logger = structlog.get_logger()

router = APIRouter(
    prefix="/authz",
    tags=["authorization"],
)


def _http_error(error: Exception, action: str) -> HTTPException:
    """Translate an engine error into the HTTP error reported to callers."""
    match error:
        case ConflictError():
            return HTTPException(status.HTTP_409_CONFLICT, detail=str(error))
        case SchemaValidationError():
            return HTTPException(
                status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail={"message": "Schema validation failed", "errors": error.errors},
            )
        case UndefinedRelationError():
            return HTTPException(
                status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(error)
            )
        case ResolutionLimitExceeded():
            return HTTPException(
                status.HTTP_429_TOO_MANY_REQUESTS, detail=str(error)
            )
        case DeadlineExceeded() | ConsistencyTimeoutError():
            return HTTPException(status.HTTP_504_GATEWAY_TIMEOUT, detail=str(error))
        case RevisionExpiredError():
            return HTTPException(status.HTTP_410_GONE, detail=str(error))
        case ValueError():
            return HTTPException(status.HTTP_400_BAD_REQUEST, detail=str(error))
    logger.exception("authz_request_failed", action=action)
    return HTTPException(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=f"Failed to {action}",
    )


@router.post(
    "/relationships/write",
    summary="Write relationships",
    description="Apply a batch of touch and delete operations atomically",
    responses={
        200: {"description": "Batch committed"},
        400: {"description": "Invalid relationship or zookie"},
        409: {"description": "Expected revision is stale"},
    },
)
async def write_relationships(
    request: WriteRelationshipsRequest,
    service: Annotated[RelationshipService, Depends(get_relationship_service)],
) -> RevisionResponse:
    """Write a batch of relationships.

    Returns:
        RevisionResponse with the revision the batch became visible at
    """
    try:
        updates = [update.to_domain() for update in request.updates]
        revision = await service.write(
            updates,
            expected_revision=expected_revision_of(request.expected_zookie),
        )
        return RevisionResponse.at(revision)
    except Exception as e:
        raise _http_error(e, "write relationships") from e


@router.post("/relationships/read")
async def read_relationships(
    request: ReadRelationshipsRequest,
    service: Annotated[RelationshipService, Depends(get_relationship_service)],
) -> ReadRelationshipsResponse:
    """Read relationships matching a filter at the requested consistency."""
    try:
        tuples, revision = await service.read(
            request.filter.to_domain(),
            consistency=consistency_of(request.consistency),
        )
        return ReadRelationshipsResponse(
            revision=revision,
            zookie=encode_zookie(revision),
            relationships=[RelationshipModel.from_domain(t) for t in tuples],
        )
    except Exception as e:
        raise _http_error(e, "read relationships") from e


@router.post("/relationships/delete")
async def delete_relationships(
    request: DeleteRelationshipsRequest,
    service: Annotated[RelationshipService, Depends(get_relationship_service)],
) -> DeleteRelationshipsResponse:
    """Delete every relationship matching a filter in one batch.

    Raises:
        HTTPException: 400 if the filter does not name an object type
            plus at least one more field
    """
    try:
        revision, count = await service.delete_by_filter(
            request.filter.to_domain(),
            expected_revision=expected_revision_of(request.expected_zookie),
        )
        return DeleteRelationshipsResponse(
            revision=revision,
            zookie=encode_zookie(revision),
            deleted_count=count,
        )
    except Exception as e:
        raise _http_error(e, "delete relationships") from e


@router.post(
    "/check",
    summary="Check a permission",
    responses={
        200: {"description": "Check answered"},
        400: {"description": "Invalid reference or zookie"},
        422: {"description": "Relation is not defined"},
        429: {"description": "Resolution limit exceeded"},
        504: {"description": "Deadline or consistency wait exceeded"},
    },
)
async def check(
    request: CheckRequest,
    engine: Annotated[CheckEngine, Depends(get_check_engine)],
) -> CheckResponse:
    """Check whether a subject has a relation on an object."""
    try:
        result = await engine.check(
            SubjectRef.parse(request.subject),
            request.relation,
            ObjectRef.parse(request.object),
            consistency=consistency_of(request.consistency),
            contextual_tuples=[
                r.to_domain() for r in request.contextual_relationships
            ],
            trace=request.trace,
            deadline_seconds=request.deadline_seconds,
        )
        return CheckResponse(
            allowed=result.allowed,
            revision=result.revision,
            zookie=encode_zookie(result.revision),
            cached=result.cached,
            trace=(
                CheckTraceModel.from_domain(result.trace)
                if result.trace is not None
                else None
            ),
        )
    except Exception as e:
        raise _http_error(e, "check permission") from e


@router.post("/check/bulk")
async def bulk_check(
    request: BulkCheckRequest,
    engine: Annotated[CheckEngine, Depends(get_check_engine)],
) -> BulkCheckResponse:
    """Check many items against one pinned revision."""
    try:
        items = [item.to_domain() for item in request.items]
        results = await engine.bulk_check(
            items,
            consistency=consistency_of(request.consistency),
            deadline_seconds=request.deadline_seconds,
        )
        revision = results[0].revision
        return BulkCheckResponse(
            revision=revision,
            zookie=encode_zookie(revision),
            results=[
                BulkCheckResultModel(
                    subject=item.subject,
                    relation=item.relation,
                    object=item.object,
                    allowed=result.allowed,
                )
                for item, result in zip(request.items, results, strict=True)
            ],
        )
    except Exception as e:
        raise _http_error(e, "check permissions") from e


@router.post("/expand")
async def expand(
    request: ExpandRequest,
    engine: Annotated[ExpansionEngine, Depends(get_expansion_engine)],
) -> ExpandResponse:
    """Expand a relation on an object into its userset tree."""
    try:
        tree, revision = await engine.expand(
            request.relation,
            ObjectRef.parse(request.object),
            consistency=consistency_of(request.consistency),
            deadline_seconds=request.deadline_seconds,
        )
        return ExpandResponse(
            revision=revision,
            zookie=encode_zookie(revision),
            tree=ExpandNodeModel.from_domain(tree),
        )
    except Exception as e:
        raise _http_error(e, "expand relation") from e


@router.post("/subjects")
async def list_subjects(
    request: ListSubjectsRequest,
    engine: Annotated[ExpansionEngine, Depends(get_expansion_engine)],
) -> ListSubjectsResponse:
    """List the subjects that have a relation on an object."""
    try:
        listing, revision = await engine.list_subjects(
            request.relation,
            ObjectRef.parse(request.object),
            consistency=consistency_of(request.consistency),
            subject_type=request.subject_type,
            deadline_seconds=request.deadline_seconds,
        )
        return ListSubjectsResponse(
            revision=revision,
            zookie=encode_zookie(revision),
            subjects=[str(subject) for subject in listing.subjects],
            excluded_subjects=[str(subject) for subject in listing.excluded],
        )
    except Exception as e:
        raise _http_error(e, "list subjects") from e


@router.post("/objects")
async def list_objects(
    request: ListObjectsRequest,
    engine: Annotated[ExpansionEngine, Depends(get_expansion_engine)],
) -> ListObjectsResponse:
    """List the objects of a type on which a subject has a relation."""
    try:
        objects, revision = await engine.list_objects(
            request.relation,
            SubjectRef.parse(request.subject),
            request.object_type,
            consistency=consistency_of(request.consistency),
            deadline_seconds=request.deadline_seconds,
        )
        return ListObjectsResponse(
            revision=revision,
            zookie=encode_zookie(revision),
            objects=[str(obj) for obj in objects],
        )
    except Exception as e:
        raise _http_error(e, "list objects") from e


@router.put(
    "/schema",
    summary="Load schema",
    description="Replace the whole schema with a schema document",
    responses={
        200: {"description": "Schema applied"},
        400: {"description": "Schema document does not parse"},
        422: {"description": "Schema definitions are inconsistent"},
    },
)
async def load_schema(
    request: SchemaRequest,
    service: Annotated[SchemaService, Depends(get_schema_service)],
) -> RevisionResponse:
    """Apply a schema document."""
    try:
        revision = service.load_schema(request.schema_text, source="api")
        return RevisionResponse.at(revision)
    except Exception as e:
        raise _http_error(e, "load schema") from e


@router.get("/schema")
async def get_schema(
    service: Annotated[SchemaService, Depends(get_schema_service)],
) -> SchemaResponse:
    """Return the schema document in effect at head."""
    text, revision = service.current_schema()
    return SchemaResponse(
        schema_text=text,
        revision=revision,
        zookie=encode_zookie(revision),
    )


@router.post("/schema/validate")
async def validate_schema(
    request: SchemaRequest,
    service: Annotated[SchemaService, Depends(get_schema_service)],
) -> ValidateSchemaResponse:
    """Validate a schema document without applying it."""
    errors = service.validate_schema(request.schema_text)
    return ValidateSchemaResponse(valid=not errors, errors=errors)
