"""Unit tests for Authorization HTTP routes."""

from unittest.mock import AsyncMock, Mock

import pytest
from fastapi import FastAPI, status
from fastapi.testclient import TestClient

from authz import dependencies
from authz.application.services import RelationshipService, SchemaService
from authz.domain.zookie import decode_zookie, encode_zookie
from authz.ports.exceptions import (
    ConsistencyTimeoutError,
    DeadlineExceeded,
    ResolutionLimitExceeded,
    RevisionExpiredError,
)
from authz.presentation import routes


@pytest.fixture
def test_client(check_engine, expansion_engine, store, selector, registry, coordinator):
    """Create TestClient wired to in-memory engines."""
    app = FastAPI()

    app.dependency_overrides[dependencies.get_check_engine] = lambda: check_engine
    app.dependency_overrides[dependencies.get_expansion_engine] = (
        lambda: expansion_engine
    )
    app.dependency_overrides[dependencies.get_relationship_service] = (
        lambda: RelationshipService(store=store, selector=selector)
    )
    app.dependency_overrides[dependencies.get_schema_service] = (
        lambda: SchemaService(registry=registry, coordinator=coordinator)
    )

    app.include_router(routes.router)

    return TestClient(app)


@pytest.fixture
def mock_check_engine():
    return Mock()


@pytest.fixture
def failing_client(mock_check_engine):
    """TestClient whose check engine is a mock."""
    app = FastAPI()
    app.dependency_overrides[dependencies.get_check_engine] = lambda: mock_check_engine
    app.include_router(routes.router)
    return TestClient(app)


def _write(client: TestClient, *relationships: str, operation: str = "touch"):
    updates = []
    for text in relationships:
        obj_rel, subject = text.split("@")
        obj, relation = obj_rel.split("#")
        updates.append(
            {
                "operation": operation,
                "relationship": {"object": obj, "relation": relation, "subject": subject},
            }
        )
    return client.post("/authz/relationships/write", json={"updates": updates})


class TestRelationshipRoutes:
    """Tests for /authz/relationships endpoints."""

    def test_write_returns_zookie(self, test_client):
        response = _write(test_client, "document:readme#viewer@user:alice")

        assert response.status_code == status.HTTP_200_OK
        body = response.json()
        assert decode_zookie(body["zookie"]) == body["revision"]

    def test_write_rejects_empty_batch(self, test_client):
        response = test_client.post("/authz/relationships/write", json={"updates": []})

        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY

    def test_write_rejects_malformed_reference(self, test_client):
        response = _write(test_client, "document#viewer@user:alice")

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_stale_expected_zookie_returns_409(self, test_client):
        first = _write(test_client, "document:readme#viewer@user:alice").json()
        _write(test_client, "document:readme#viewer@user:bob")

        response = test_client.post(
            "/authz/relationships/write",
            json={
                "updates": [
                    {
                        "operation": "touch",
                        "relationship": {
                            "object": "document:readme",
                            "relation": "viewer",
                            "subject": "user:carol",
                        },
                    }
                ],
                "expected_zookie": first["zookie"],
            },
        )

        assert response.status_code == status.HTTP_409_CONFLICT

    def test_read_and_delete_by_filter(self, test_client):
        _write(
            test_client,
            "document:readme#viewer@user:alice",
            "document:readme#viewer@user:bob",
        )

        deleted = test_client.post(
            "/authz/relationships/delete",
            json={
                "filter": {
                    "object_type": "document",
                    "subject_type": "user",
                    "subject_id": "bob",
                }
            },
        )
        read = test_client.post(
            "/authz/relationships/read",
            json={"filter": {"object_type": "document"}},
        )

        assert deleted.json()["deleted_count"] == 1
        assert read.json()["relationships"] == [
            {"object": "document:readme", "relation": "viewer", "subject": "user:alice"}
        ]

    def test_delete_requires_narrow_filter(self, test_client):
        response = test_client.post(
            "/authz/relationships/delete",
            json={"filter": {"object_type": "document"}},
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST


class TestCheckRoutes:
    """Tests for /authz/check endpoints."""

    def test_check_after_write_with_zookie(self, test_client):
        written = _write(test_client, "document:readme#viewer@user:alice").json()

        response = test_client.post(
            "/authz/check",
            json={
                "subject": "user:alice",
                "relation": "view",
                "object": "document:readme",
                "consistency": {
                    "mode": "at_least_as_fresh",
                    "zookie": written["zookie"],
                },
            },
        )

        assert response.status_code == status.HTTP_200_OK
        body = response.json()
        assert body["allowed"] is True
        assert body["revision"] >= written["revision"]
        assert body["trace"] is None

    def test_check_with_trace_and_contextual_relationship(self, test_client):
        response = test_client.post(
            "/authz/check",
            json={
                "subject": "user:alice",
                "relation": "view",
                "object": "document:readme",
                "trace": True,
                "contextual_relationships": [
                    {
                        "object": "document:readme",
                        "relation": "viewer",
                        "subject": "user:alice",
                    }
                ],
            },
        )

        body = response.json()
        assert body["allowed"] is True
        assert body["cached"] is False
        assert body["trace"]["kind"] == "check"

    def test_undefined_relation_returns_422(self, test_client):
        response = test_client.post(
            "/authz/check",
            json={"subject": "user:alice", "relation": "fly", "object": "document:x"},
        )

        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY

    def test_garbage_zookie_returns_400(self, test_client):
        response = test_client.post(
            "/authz/check",
            json={
                "subject": "user:alice",
                "relation": "view",
                "object": "document:readme",
                "consistency": {"mode": "at_least_as_fresh", "zookie": "not-a-zookie"},
            },
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_bulk_check(self, test_client):
        _write(test_client, "document:readme#editor@user:bob")

        response = test_client.post(
            "/authz/check/bulk",
            json={
                "items": [
                    {"subject": "user:bob", "relation": "edit", "object": "document:readme"},
                    {"subject": "user:eve", "relation": "edit", "object": "document:readme"},
                ]
            },
        )

        results = response.json()["results"]
        assert [r["allowed"] for r in results] == [True, False]
        assert results[1]["subject"] == "user:eve"

    @pytest.mark.parametrize(
        ("error", "expected_status"),
        [
            (
                ResolutionLimitExceeded("max_depth", 50),
                status.HTTP_429_TOO_MANY_REQUESTS,
            ),
            (DeadlineExceeded("too slow"), status.HTTP_504_GATEWAY_TIMEOUT),
            (
                ConsistencyTimeoutError(revision=9, head=3, timeout=1.0),
                status.HTTP_504_GATEWAY_TIMEOUT,
            ),
            (
                RevisionExpiredError(revision=1, horizon=5),
                status.HTTP_410_GONE,
            ),
            (RuntimeError("boom"), status.HTTP_500_INTERNAL_SERVER_ERROR),
        ],
    )
    def test_engine_errors_map_to_status(
        self, failing_client, mock_check_engine, error, expected_status
    ):
        mock_check_engine.check = AsyncMock(side_effect=error)

        response = failing_client.post(
            "/authz/check",
            json={"subject": "user:a", "relation": "view", "object": "document:x"},
        )

        assert response.status_code == expected_status

    def test_internal_error_detail_is_generic(self, failing_client, mock_check_engine):
        mock_check_engine.check = AsyncMock(side_effect=RuntimeError("secret"))

        response = failing_client.post(
            "/authz/check",
            json={"subject": "user:a", "relation": "view", "object": "document:x"},
        )

        assert response.json()["detail"] == "Failed to check permission"


class TestExpansionRoutes:
    """Tests for expand and listing endpoints."""

    def test_expand_returns_tree(self, test_client):
        _write(test_client, "group:eng#member@user:alice")

        response = test_client.post(
            "/authz/expand", json={"relation": "member", "object": "group:eng"}
        )

        tree = response.json()["tree"]
        assert tree["kind"] == "this"
        assert tree["subjects"] == ["user:alice"]

    def test_list_subjects(self, test_client):
        _write(
            test_client,
            "document:readme#viewer@group:eng#member",
            "group:eng#member@user:bob",
        )

        response = test_client.post(
            "/authz/subjects", json={"relation": "view", "object": "document:readme"}
        )

        assert response.json()["subjects"] == ["user:bob"]
        assert response.json()["excluded_subjects"] == []

    def test_list_subjects_reports_wildcard_exclusions(self, test_client):
        _write(
            test_client,
            "document:readme#viewer@user:*",
            "document:readme#banned@user:alice",
        )

        response = test_client.post(
            "/authz/subjects", json={"relation": "view", "object": "document:readme"}
        )

        assert response.json()["subjects"] == ["user:*"]
        assert response.json()["excluded_subjects"] == ["user:alice"]

    def test_list_objects(self, test_client):
        _write(
            test_client,
            "document:a#viewer@user:alice",
            "document:b#owner@user:alice",
        )

        response = test_client.post(
            "/authz/objects",
            json={"relation": "view", "subject": "user:alice", "object_type": "document"},
        )

        assert response.json()["objects"] == ["document:a", "document:b"]


class TestSchemaRoutes:
    """Tests for /authz/schema endpoints."""

    def test_get_schema(self, test_client, coordinator):
        response = test_client.get("/authz/schema")

        body = response.json()
        assert "definition document {" in body["schema"]
        assert body["zookie"] == encode_zookie(coordinator.head())

    def test_put_schema(self, test_client):
        response = test_client.put(
            "/authz/schema",
            json={"schema": "definition user {} definition team { relation member: user }"},
        )

        assert response.status_code == status.HTTP_200_OK
        assert "definition team {" in test_client.get("/authz/schema").json()["schema"]

    def test_put_unparseable_schema_returns_400(self, test_client):
        response = test_client.put("/authz/schema", json={"schema": "definition {"})

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_put_inconsistent_schema_returns_422(self, test_client):
        response = test_client.put(
            "/authz/schema",
            json={"schema": "definition doc { relation viewer: user }"},
        )

        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
        assert response.json()["detail"]["errors"]

    def test_validate_schema(self, test_client):
        response = test_client.post(
            "/authz/schema/validate",
            json={"schema": "definition doc { relation viewer: user }"},
        )

        body = response.json()
        assert body["valid"] is False
        assert body["errors"]
