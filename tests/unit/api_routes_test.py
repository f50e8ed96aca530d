"""Tests for the FastAPI routes using an in-memory database."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from typing import Any, cast

import pytest
from fastapi.testclient import TestClient

from garment_forge.api.app import create_app
from garment_forge.api.dependencies import get_database, get_storage
from garment_forge.api.pagination import InvalidCursorError, decode_cursor, encode_cursor
from garment_forge.core.ports.database import DesignDatabase
from garment_forge.core.ports.storage import ArtifactStorage
from garment_forge.db.memory import InMemoryDesignDatabase
from garment_forge.models import JobStatus, VariantStatus
from garment_forge.storage.local import LocalArtifactStorage
from tests.conftest import seed_catalog

RED_BODY = {"colors": [{"layerName": "Body", "colorId": "red"}]}


@pytest.fixture
def client(
    in_memory_db: InMemoryDesignDatabase, storage: LocalArtifactStorage, monkeypatch: pytest.MonkeyPatch
) -> TestClient:
    monkeypatch.delenv("BRIDGE_API_TOKEN", raising=False)
    asyncio.run(seed_catalog(in_memory_db, storage))
    app = create_app()

    async def _db() -> AsyncIterator[DesignDatabase]:
        yield cast(DesignDatabase, in_memory_db)

    async def _storage() -> AsyncIterator[ArtifactStorage]:
        yield cast(ArtifactStorage, storage)

    app.dependency_overrides[get_database] = _db
    app.dependency_overrides[get_storage] = _storage
    return TestClient(app)


def _generate(client: TestClient, config: dict[str, Any] | None = None) -> dict[str, Any]:
    resp = client.post("/variants/generate", json={"itemId": "item-1", "config": config or RED_BODY})
    assert resp.status_code == 200, resp.text
    variant: dict[str, Any] = resp.json()["variants"][0]
    return variant


class TestRootAndHealth:
    def test_root_returns_discovery(self, client: TestClient) -> None:
        body = client.get("/").json()
        assert body["jsonapi"]["version"] == "1.0"
        assert body["links"]["variants"] == "/variants"

    def test_health(self, client: TestClient) -> None:
        assert client.get("/health").json() == {"status": "ok"}
        assert client.get("/healthz/live").status_code == 200

    def test_readiness(self, client: TestClient) -> None:
        resp = client.get("/healthz/ready")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok", "database": "up"}


class TestGenerateVariants:
    def test_generate_returns_variant(self, client: TestClient) -> None:
        resp = client.post("/variants/generate", json={"item_id": "item-1", "config": RED_BODY})
        assert resp.status_code == 200
        body = resp.json()
        assert body["message"] == "Generated 1 variant(s)"
        assert body["variants"][0]["name"] == "Variant 1"
        assert body["variants"][0]["status"] == "preview"

    def test_missing_config(self, client: TestClient) -> None:
        resp = client.post("/variants/generate", json={"itemId": "item-1"})
        assert resp.status_code == 400

    def test_unknown_item(self, client: TestClient) -> None:
        resp = client.post("/variants/generate", json={"itemId": "nope", "config": RED_BODY})
        assert resp.status_code == 404

    def test_cap_returns_conflict(self, client: TestClient) -> None:
        for _ in range(20):
            _generate(client)
        resp = client.post("/variants/generate", json={"itemId": "item-1", "config": RED_BODY})
        assert resp.status_code == 409

    def test_preview_is_served(self, client: TestClient, in_memory_db: InMemoryDesignDatabase) -> None:
        variant = _generate(client)
        ref = variant["preview_artifact_ref"]
        resp = client.get(f"/artifacts/{ref}")
        assert resp.status_code == 200
        assert resp.headers["content-type"].startswith("image/svg+xml")
        assert b'height="500" fill="#ff0000"' in resp.content


class TestVariantResource:
    def test_get_single_variant(self, client: TestClient) -> None:
        variant = _generate(client)
        resp = client.get(f"/variants/{variant['id']}")
        assert resp.status_code == 200
        data = resp.json()["data"]
        assert data["type"] == "variants"
        assert data["attributes"]["item_id"] == "item-1"
        assert data["attributes"]["preview_url"].startswith("/artifacts/previews/")

    def test_get_unknown_variant(self, client: TestClient) -> None:
        assert client.get("/variants/missing").status_code == 404

    def test_list_filters_by_item(self, client: TestClient) -> None:
        _generate(client)
        resp = client.get("/variants", params={"filter[item_id]": "item-1"})
        assert resp.status_code == 200
        assert len(resp.json()["data"]) == 1
        other = client.get("/variants", params={"filter[item_id]": "item-2"})
        assert other.json()["data"] == []

    def test_list_paginates_with_cursors(self, client: TestClient) -> None:
        for _ in range(3):
            _generate(client)

        first = client.get("/variants", params={"page[size]": "2"}).json()
        assert len(first["data"]) == 2
        assert first["links"]["prev"] is None
        assert first["links"]["next"] is not None

        second = client.get(first["links"]["next"]).json()
        assert len(second["data"]) == 1
        assert second["links"]["next"] is None
        assert second["links"]["prev"] is not None
        assert {d["id"] for d in first["data"]}.isdisjoint({d["id"] for d in second["data"]})

        back = client.get(second["links"]["prev"]).json()
        assert [d["id"] for d in back["data"]] == [d["id"] for d in first["data"]]

    def test_invalid_cursor(self, client: TestClient) -> None:
        resp = client.get("/variants", params={"page[after]": "not-a-cursor"})
        assert resp.status_code == 400


class TestSelectionAndDeletion:
    def test_select_and_deselect(self, client: TestClient) -> None:
        variant = _generate(client)
        resp = client.patch(f"/variants/{variant['id']}", json={"status": "selected"})
        assert resp.json()["status"] == "selected"
        resp = client.patch(f"/variants/{variant['id']}", json={"status": "preview"})
        assert resp.json()["status"] == "preview"

    def test_invalid_selection_status(self, client: TestClient) -> None:
        variant = _generate(client)
        resp = client.patch(f"/variants/{variant['id']}", json={"status": "generated"})
        assert resp.status_code == 422

    def test_delete_one(self, client: TestClient) -> None:
        variant = _generate(client)
        assert client.delete(f"/variants/{variant['id']}").status_code == 200
        assert client.delete(f"/variants/{variant['id']}").status_code == 404

    def test_delete_all_requires_flag(self, client: TestClient) -> None:
        _generate(client)
        assert client.delete("/variants", params={"item_id": "item-1"}).status_code == 400
        resp = client.delete("/variants", params={"item_id": "item-1", "all": "true"})
        assert resp.json() == {"deleted": 1}


class TestTemplateLayers:
    def test_lists_editable_layers(self, client: TestClient) -> None:
        resp = client.get("/templates/tpl-1/layers")
        assert resp.status_code == 200
        roles = {layer["id"]: layer["role"] for layer in resp.json()}
        assert roles["body"] == "graphic"
        assert roles["team-name"] == "text"
        assert roles["chest-logo"] == "logo"

    def test_unknown_template(self, client: TestClient) -> None:
        assert client.get("/templates/missing/layers").status_code == 404

    def test_missing_vector_file(self, client: TestClient, in_memory_db: InMemoryDesignDatabase) -> None:
        template = in_memory_db.templates["tpl-1"]
        in_memory_db.templates["tpl-1"] = template.model_copy(update={"vector_source_ref": "templates/missing.svg"})
        assert client.get("/templates/tpl-1/layers").status_code == 404

    def test_malformed_template(
        self, client: TestClient, in_memory_db: InMemoryDesignDatabase, storage: LocalArtifactStorage
    ) -> None:
        ref = asyncio.run(storage.put(b"<svg><g></svg>", prefix="templates", suffix=".svg"))
        template = in_memory_db.templates["tpl-1"]
        in_memory_db.templates["tpl-1"] = template.model_copy(update={"vector_source_ref": ref})
        assert client.get("/templates/tpl-1/layers").status_code == 422


class TestBridgeRoutes:
    def test_enqueue_claim_complete(self, client: TestClient, in_memory_db: InMemoryDesignDatabase) -> None:
        variant = _generate(client)
        resp = client.post("/bridge/jobs", json={"variantIds": [variant["id"], variant["id"]], "priority": 1})
        assert resp.status_code == 200
        assert (resp.json()["created"], resp.json()["skipped"]) == (1, 1)

        pending = client.get("/bridge/jobs", params={"status": "pending"}).json()
        assert len(pending) == 1

        claimed = client.post("/bridge/jobs/claim", params={"limit": 5}).json()["jobs"]
        assert len(claimed) == 1
        job_id = claimed[0]["job"]["id"]
        assert claimed[0]["master_document_url"].startswith("/artifacts/templates/")
        assert client.post("/bridge/jobs/claim").json()["jobs"] == []

        assert client.patch(f"/bridge/jobs/{job_id}", json={"status": "processing"}).status_code == 200
        upload = client.put(f"/bridge/jobs/{job_id}/artifacts/ai", content=b"%AI final")
        assert upload.status_code == 200
        ref = upload.json()["ref"]

        done = client.patch(f"/bridge/jobs/{job_id}", json={"status": "completed", "finalArtifactRef": ref})
        assert done.json()["status"] == JobStatus.COMPLETED.value
        stored = asyncio.run(in_memory_db.get_variant(variant["id"]))
        assert stored is not None
        assert stored.status is VariantStatus.GENERATED
        assert stored.final_artifact_ref == ref

    def test_empty_enqueue(self, client: TestClient) -> None:
        assert client.post("/bridge/jobs", json={"variantIds": []}).status_code == 400

    def test_failed_without_message(self, client: TestClient, in_memory_db: InMemoryDesignDatabase) -> None:
        variant = _generate(client)
        job_id = client.post("/bridge/jobs", json={"variantIds": [variant["id"]]}).json()["jobs"][0]["id"]
        client.patch(f"/bridge/jobs/{job_id}", json={"status": "failed"})
        stored = asyncio.run(in_memory_db.get_variant(variant["id"]))
        assert stored is not None and stored.error_message == "Unknown error"

    def test_transition_after_completion_conflicts(self, client: TestClient) -> None:
        variant = _generate(client)
        job_id = client.post("/bridge/jobs", json={"variantIds": [variant["id"]]}).json()["jobs"][0]["id"]
        client.patch(f"/bridge/jobs/{job_id}", json={"status": "completed"})
        assert client.patch(f"/bridge/jobs/{job_id}", json={"status": "failed"}).status_code == 409

    def test_unknown_job(self, client: TestClient) -> None:
        assert client.patch("/bridge/jobs/missing", json={"status": "processing"}).status_code == 404
        assert client.put("/bridge/jobs/missing/artifacts/png", content=b"png").status_code == 404

    def test_empty_upload(self, client: TestClient) -> None:
        variant = _generate(client)
        job_id = client.post("/bridge/jobs", json={"variantIds": [variant["id"]]}).json()["jobs"][0]["id"]
        assert client.put(f"/bridge/jobs/{job_id}/artifacts/pdf", content=b"").status_code == 400

    def test_token_required_when_configured(self, client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("BRIDGE_API_TOKEN", "secret")
        assert client.get("/bridge/jobs").status_code == 401
        resp = client.get("/bridge/jobs", headers={"Authorization": "Bearer secret"})
        assert resp.status_code == 200


class TestCursorHelpers:
    def test_encode_decode_cursor_roundtrip(self) -> None:
        from datetime import datetime, timezone

        created = datetime(2026, 1, 2, 3, 4, 5, 6, tzinfo=timezone.utc)
        assert decode_cursor(encode_cursor(created, "abc-123")) == (created, "abc-123")

    def test_malformed_cursor(self) -> None:
        with pytest.raises(InvalidCursorError):
            decode_cursor("%%%")
