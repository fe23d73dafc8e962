"""
tests/test_api.py

HTTP contract tests for the FastAPI routers with service dependencies
overridden. The lifespan is not entered, so no database check or scheduler
runs.

Coverage
--------
- /health
- POST /context/report: 200 body shape, 400 with validation messages
- POST /batch-jobs: 202, 400 for bad type/target
- GET /batch-jobs: paging bounds, filters, invalid sort
- GET /batch-jobs/{id}: 404
- retry/cancel: 409 conflicts, 200 on success
"""

from __future__ import annotations

import uuid

import pytest
from fastapi.testclient import TestClient

from app.main import create_app
from app.services.batch_job_service import BatchJobService, get_batch_job_service
from app.services.context_report_service import get_context_report_service
from tests.fakes import make_report_service


@pytest.fixture()
def job_service(session_factory, clock) -> BatchJobService:
    return BatchJobService(session_factory=session_factory, clock=clock)


@pytest.fixture()
def client(job_service) -> TestClient:
    application = create_app()
    application.dependency_overrides[get_batch_job_service] = lambda: job_service
    application.dependency_overrides[get_context_report_service] = lambda: make_report_service()
    return TestClient(application)


class TestHealth:
    def test_health(self, client) -> None:
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok"}


class TestContextReport:
    def test_report_body(self, client) -> None:
        response = client.post("/context/report", json={"input": "Damrak 1 Amsterdam"})
        assert response.status_code == 200
        body = response.json()
        assert body["location"]["neighborhood_code"] == "BU03630000"
        assert set(body["category_scores"]) == {
            "social",
            "safety",
            "demographics",
            "housing",
            "amenities",
            "environment",
        }
        assert body["warnings"] == []
        assert body["sources"][0]["source"] == "PDOK Locatieserver"
        assert body["metrics"]["safety"][0]["key"] == "total_crimes"

    def test_radius_clamp_is_reported(self, client) -> None:
        response = client.post("/context/report", json={"input": "Damrak 1 Amsterdam", "radius_meters": 50})
        assert response.status_code == 200
        assert response.json()["warnings"] == ["Radius clamped from 50m to 200m to respect system limits."]

    def test_unresolvable_input_is_400(self, client) -> None:
        response = client.post("/context/report", json={"input": "Nowhere 999"})
        assert response.status_code == 400
        assert response.json()["detail"] == ["Could not resolve input to an address."]

    def test_blank_input_is_400(self, client) -> None:
        response = client.post("/context/report", json={"input": "  "})
        assert response.status_code == 400


class TestBatchJobs:
    def test_enqueue_returns_202(self, client) -> None:
        response = client.post("/batch-jobs", json={"type": "CityIngestion", "target": "Amsterdam"})
        assert response.status_code == 202
        body = response.json()
        assert body["status"] == "Pending"
        assert body["progress"] == 0
        assert body["execution_log"] is None

    @pytest.mark.parametrize(
        "payload",
        [{"type": "Reindex", "target": "Amsterdam"}, {"type": "CityIngestion", "target": "A"}],
    )
    def test_enqueue_validation_is_400(self, client, payload) -> None:
        response = client.post("/batch-jobs", json=payload)
        assert response.status_code == 400
        assert isinstance(response.json()["detail"], list)

    def test_list_paging_and_filters(self, client) -> None:
        for city in ("Amsterdam", "Rotterdam", "Utrecht"):
            client.post("/batch-jobs", json={"type": "CityIngestion", "target": city})
        client.post("/batch-jobs", json={"type": "AllCitiesIngestion", "target": "all"})

        response = client.get("/batch-jobs", params={"page": 1, "page_size": 2, "type": "CityIngestion"})
        assert response.status_code == 200
        body = response.json()
        assert body["total_count"] == 3
        assert body["total_pages"] == 2
        assert body["has_next_page"] is True
        assert [item["target"] for item in body["items"]] == ["Utrecht", "Rotterdam"]
        assert "execution_log" not in body["items"][0]

    @pytest.mark.parametrize("params", [{"page": 0}, {"page_size": 0}, {"page_size": 101}])
    def test_out_of_range_paging_is_400(self, client, params) -> None:
        assert client.get("/batch-jobs", params=params).status_code == 400

    def test_invalid_sort_is_400(self, client) -> None:
        assert client.get("/batch-jobs", params={"sort": "progress_up"}).status_code == 400

    def test_recent(self, client) -> None:
        client.post("/batch-jobs", json={"type": "CityIngestion", "target": "Delft"})
        response = client.get("/batch-jobs/recent", params={"limit": 5})
        assert response.status_code == 200
        assert [item["target"] for item in response.json()] == ["Delft"]

    def test_unknown_job_is_404(self, client) -> None:
        assert client.get(f"/batch-jobs/{uuid.uuid4()}").status_code == 404
        assert client.post(f"/batch-jobs/{uuid.uuid4()}/cancel").status_code == 404

    def test_cancel_then_retry(self, client) -> None:
        job_id = client.post("/batch-jobs", json={"type": "CityIngestion", "target": "Delft"}).json()["id"]

        cancelled = client.post(f"/batch-jobs/{job_id}/cancel")
        assert cancelled.status_code == 200
        assert cancelled.json()["status"] == "Failed"
        assert cancelled.json()["error"] == "Job cancelled by user."

        assert client.post(f"/batch-jobs/{job_id}/cancel").status_code == 409

        retried = client.post(f"/batch-jobs/{job_id}/retry")
        assert retried.status_code == 200
        assert retried.json()["status"] == "Pending"

        detail = client.get(f"/batch-jobs/{job_id}").json()
        assert detail["execution_log"] is None

    def test_retry_pending_is_409(self, client) -> None:
        job_id = client.post("/batch-jobs", json={"type": "CityIngestion", "target": "Delft"}).json()["id"]
        assert client.post(f"/batch-jobs/{job_id}/retry").status_code == 409
