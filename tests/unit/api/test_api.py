"""Tests for the HTTP API."""

import pytest
from fastapi.testclient import TestClient

from ratebook.api.dependencies import ServiceContainer
from ratebook.core.config import Settings
from ratebook.main import create_app

HEADERS = {"X-Actor": "alice"}


@pytest.fixture
def client() -> TestClient:
    app = create_app(ServiceContainer.build(Settings()))
    with TestClient(app) as test_client:
        yield test_client


def create_version(client, entity_type, entity_id, payload):
    response = client.post(
        f"/api/v1/versions/{entity_type}/{entity_id}", json={"payload": payload}, headers=HEADERS
    )
    assert response.status_code == 201, response.text
    return response.json()


class TestMeta:
    """Test root and health endpoints."""

    def test_root(self, client):
        """Root describes the API."""
        body = client.get("/").json()
        assert body["name"] == "Ratebook"
        assert body["status"] == "operational"

    def test_health(self, client):
        """Health check answers without dependencies."""
        response = client.get("/api/v1/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"


class TestVersionEndpoints:
    """Test version endpoints."""

    def test_create_and_read(self, client):
        """Drafts are created per entity and read back by id."""
        created = create_version(client, "coverage", "building", {"name": "Building"})

        fetched = client.get(f"/api/v1/versions/by-id/{created['version_id']}").json()
        history = client.get("/api/v1/versions/coverage/building").json()

        assert fetched["status"] == "draft"
        assert [v["version_id"] for v in history] == [created["version_id"]]

    def test_actor_header_required(self, client):
        """Mutations need an acting user."""
        response = client.post(
            "/api/v1/versions/coverage/building", json={"payload": {"name": "Building"}}
        )
        assert response.status_code == 422

    def test_invalid_payload(self, client):
        """Domain validation errors carry their code."""
        response = client.post(
            "/api/v1/versions/coverage/building",
            json={"payload": {"name": "Flood", "category": "optional"}},
            headers=HEADERS,
        )
        assert response.status_code == 422
        assert response.json()["code"] == "invalid-payload"

    def test_rate_program_with_broken_steps(self, client):
        """Rate programs are refused when their steps skip an order."""
        response = client.post(
            "/api/v1/versions/rate_program/bop-rates",
            json={
                "payload": {
                    "name": "Businessowners",
                    "steps": [
                        {"step_type": "factor", "order": 0, "name": "BaseRate", "value": "100"},
                        {"step_type": "factor", "order": 5, "name": "Territory", "value": "1.1"},
                    ],
                }
            },
            headers=HEADERS,
        )
        assert response.status_code == 422
        assert response.json()["code"] == "invalid-payload"
        assert "gapless" in response.json()["message"]

    def test_illegal_transition_is_conflict(self, client):
        """Lifecycle violations map to 409."""
        created = create_version(client, "coverage", "building", {"name": "Building"})

        response = client.post(
            f"/api/v1/versions/by-id/{created['version_id']}/transition",
            json={"status": "published"},
            headers=HEADERS,
        )

        assert response.status_code == 409
        assert response.json()["code"] == "illegal-transition"

    def test_unknown_version(self, client):
        """Unknown ids map to 404."""
        response = client.get("/api/v1/versions/by-id/missing")
        assert response.status_code == 404
        assert response.json()["error"] == "not_found"

    def test_update_clone_and_compare(self, client):
        """Edits, clones and diffs round trip through the API."""
        created = create_version(client, "form", "cp0010", {"name": "Building form"})
        updated = client.put(
            f"/api/v1/versions/by-id/{created['version_id']}",
            json={"payload": {"name": "Building coverage form"}, "expected_revision": 1},
            headers=HEADERS,
        ).json()
        clone = client.post(
            f"/api/v1/versions/by-id/{created['version_id']}/clone", headers=HEADERS
        )

        diff = client.get(
            "/api/v1/versions/compare",
            params={"left": created["version_id"], "right": clone.json()["version_id"]},
        ).json()

        assert updated["revision"] == 2
        assert clone.status_code == 201
        assert diff["changes"] == []


class TestChangeSetEndpoints:
    """Test the change set flow over HTTP."""

    def test_full_publish_flow(self, client):
        """Draft, submit, approve by both roles, preflight and publish."""
        version = create_version(client, "form", "cp0010", {"name": "Building form"})
        change_set = client.post(
            "/api/v1/change-sets", json={"title": "Q3 filing"}, headers=HEADERS
        ).json()
        cs_url = f"/api/v1/change-sets/{change_set['id']}"

        client.post(
            f"{cs_url}/items",
            json={"action": "create", "version_id": version["version_id"]},
            headers=HEADERS,
        )
        submitted = client.post(f"{cs_url}/submit", headers=HEADERS).json()
        for role in submitted["required_roles"]:
            client.post(f"{cs_url}/approve", json={"role": role}, headers=HEADERS)

        preflight = client.get(f"{cs_url}/preflight", params={"jurisdictions": ["CA"]}).json()
        published = client.post(f"{cs_url}/publish", headers=HEADERS)
        again = client.post(f"{cs_url}/publish", json={"jurisdictions": []}, headers=HEADERS)

        assert preflight["issues"] == []
        assert preflight["jurisdictions"] == ["CA"]
        assert published.status_code == 200
        assert published.json()["published_version_ids"] == [version["version_id"]]
        assert again.json()["already_published"] is True
        listed = client.get("/api/v1/change-sets", params={"status": "published"}).json()
        assert [cs["id"] for cs in listed] == [change_set["id"]]

    def test_blocked_publish_returns_report(self, client):
        """Preflight failures come back with the report."""
        product = create_version(
            client, "product", "bop", {"name": "BOP", "coverage_ids": ["building"]}
        )
        change_set = client.post(
            "/api/v1/change-sets", json={"title": "BOP"}, headers=HEADERS
        ).json()
        cs_url = f"/api/v1/change-sets/{change_set['id']}"
        client.post(
            f"{cs_url}/items",
            json={"action": "create", "version_id": product["version_id"]},
            headers=HEADERS,
        )
        client.post(f"{cs_url}/submit", headers=HEADERS)
        for role in ("product_manager", "compliance"):
            client.post(f"{cs_url}/approve", json={"role": role}, headers=HEADERS)

        response = client.post(f"{cs_url}/publish", headers=HEADERS)

        assert response.status_code == 409
        body = response.json()
        assert body["code"] == "preflight-blocked"
        assert [issue["code"] for issue in body["report"]["issues"]] == ["missing-form"]

    def test_reject_and_clone(self, client):
        """Rejected change sets can be cloned into a new draft."""
        version = create_version(client, "coverage", "building", {"name": "Building"})
        change_set = client.post(
            "/api/v1/change-sets", json={"title": "Q3"}, headers=HEADERS
        ).json()
        cs_url = f"/api/v1/change-sets/{change_set['id']}"
        client.post(
            f"{cs_url}/items",
            json={"action": "create", "version_id": version["version_id"]},
            headers=HEADERS,
        )
        client.post(f"{cs_url}/submit", headers=HEADERS)

        rejected = client.post(
            f"{cs_url}/reject", json={"role": "compliance", "notes": "No filing"}, headers=HEADERS
        ).json()
        clone = client.post(f"{cs_url}/clone", headers=HEADERS)

        assert rejected["status"] == "rejected"
        assert clone.status_code == 201
        assert clone.json()["cloned_from"] == change_set["id"]


class TestRatingEndpoints:
    """Test rating over HTTP."""

    STEPS = [
        {"step_type": "factor", "order": 0, "name": "BaseRate", "value": "0.50"},
        {"step_type": "operand", "order": 1, "operand": "*"},
        {"step_type": "factor", "order": 2, "name": "BuildingValue", "input_field": "buildingValue"},
        {"step_type": "operand", "order": 3, "operand": "*"},
        {"step_type": "factor", "order": 4, "name": "ProtectionClass", "value": "0.85"},
        {"step_type": "operand", "order": 5, "operand": "*"},
        {"step_type": "factor", "order": 6, "name": "Territory", "value": "1.15"},
        {"step_type": "operand", "order": 7, "operand": "-"},
        {"step_type": "factor", "order": 8, "name": "DeductibleCredit", "value": "50"},
    ]

    def test_rate(self, client):
        """Premiums are returned as exact decimal strings."""
        response = client.post(
            "/api/v1/rating/rate",
            json={
                "steps": self.STEPS,
                "context": {"state_code": "CA", "risk_attributes": {"buildingValue": 10000}},
            },
        )
        assert response.status_code == 200, response.text
        body = response.json()
        assert body["premium"] == "4838"
        assert len(body["trace"]) == 9

    def test_missing_table_entry(self, client):
        """Missing cells map to 404."""
        response = client.post(
            "/api/v1/rating/rate",
            json={
                "steps": [{"step_type": "factor", "order": 0, "name": "Territory", "table": "Territory"}],
                "context": {
                    "state_code": "CA",
                    "risk_attributes": {"territory": "T11"},
                    "tables": {
                        "Territory": {
                            "name": "Territory",
                            "dimensions": [
                                {"kind": "discrete", "name": "territory", "values": ["T10", "T12"]}
                            ],
                            "cells": {"T10": "1.15", "T12": "1.0"},
                        }
                    },
                },
            },
        )
        assert response.status_code == 404
        assert response.json()["code"] == "missing-table-entry"

    def test_unknown_step_kind(self, client):
        """Unrecognized step tags are rejected at the boundary."""
        response = client.post(
            "/api/v1/rating/rate",
            json={
                "steps": [{"step_type": "lookup", "order": 0}],
                "context": {"state_code": "CA"},
            },
        )
        assert response.status_code == 422

    def test_rate_unpublished_program(self, client):
        """Rating an unpublished program is not found."""
        response = client.post(
            "/api/v1/rating/rate-programs/bop-rates/rate",
            json={"context": {"state_code": "CA"}},
            headers=HEADERS,
        )
        assert response.status_code == 404
        assert response.json()["code"] == "no-effective-version"
