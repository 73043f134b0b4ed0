"""
Tests: HTTP routes and the error body contract.

Run with:
    pytest gap_analysis/tests/test_api.py -v
"""

import pytest
from fastapi.testclient import TestClient

from gap_analysis.errors import ModelUnavailableError
from gap_analysis.models.enums import DocumentType
from gap_analysis.models.schemas import DocumentChunk, DocumentRecord
from gap_analysis.tests.fakes import (
    FakeGateway,
    compliance_answer,
    make_settings,
    quality_answer,
    seeded_stores,
)


def _client(stores, gateway) -> TestClient:
    from gap_analysis.api import create_app
    from gap_analysis.api.routes import get_orchestrator
    from gap_analysis.orchestration import AnalysisOrchestrator

    orchestrator = AnalysisOrchestrator(
        stores.documents, stores.requirements, stores.reports,
        gateway=gateway, settings=make_settings(),
    )
    app = create_app()
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator
    return TestClient(app)


@pytest.fixture
def stores():
    return seeded_stores()


@pytest.fixture
def gateway():
    return FakeGateway(
        compliance=compliance_answer({"REQ-EVAC-1": "Route 9", "REQ-COMM-1": "Sirens"}),
        quality=quality_answer({"REQ-EVAC-1": "excellent", "REQ-COMM-1": "excellent"}),
        extraction='[{"text": "Map evacuation routes", "section": "Evacuation"}]',
        reconciliation="[]",
    )


class TestHealth:
    def test_health(self, stores, gateway):
        response = _client(stores, gateway).get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"


class TestPlanRoutes:
    def test_analyze_then_fetch(self, stores, gateway):
        client = _client(stores, gateway)

        response = client.post("/api/plans/PLAN-1/analyze", json={"reference_ids": ["REF-A"]})
        assert response.status_code == 200
        body = response.json()
        assert body["overall_compliance_score"] == 40
        assert body["overall_quality_score"] == 100

        latest = client.get("/api/plans/PLAN-1/analysis")
        assert latest.status_code == 200
        assert latest.json()["analysis_id"] == body["analysis_id"]

        thinking = client.get("/api/plans/PLAN-1/thinking")
        assert thinking.status_code == 200
        assert [s["type"] for s in thinking.json()["steps"]][:2] == ["start", "reference"]

    def test_no_analysis_yet(self, stores, gateway):
        client = _client(stores, gateway)

        expected = {
            "success": False,
            "error_code": "NOT_FOUND",
            "message": "No analysis found for plan PLAN-1",
            "retryable": False,
        }
        for path in ("/api/plans/PLAN-1/analysis", "/api/plans/PLAN-1/thinking"):
            response = client.get(path)
            assert response.status_code == 404
            assert response.json() == expected

    def test_validation_error_body(self, stores, gateway):
        response = _client(stores, gateway).post("/api/plans/PLAN-1/analyze", json={"reference_ids": []})
        assert response.status_code == 400
        assert response.json()["error_code"] == "VALIDATION_ERROR"
        assert response.json()["success"] is False

    def test_quota_exhausted_is_429(self, stores):
        gateway = FakeGateway(compliance=ModelUnavailableError("quota", quota_exhausted=True))

        response = _client(stores, gateway).post("/api/plans/PLAN-1/analyze", json={"reference_ids": ["REF-A"]})

        assert response.status_code == 429
        assert response.json()["error_code"] == "QUOTA_EXHAUSTED"
        assert response.json()["retryable"] is True


class TestReferenceRoutes:
    def test_process_and_delete(self, stores, gateway):
        stores.documents.add_document(
            DocumentRecord(id="REF-B", type=DocumentType.REFERENCE),
            [DocumentChunk(content="Evacuation routes shall be mapped.")],
        )
        client = _client(stores, gateway)

        processed = client.post("/api/references/REF-B/process")
        assert processed.status_code == 200
        assert processed.json()["requirements_count"] == 1
        assert processed.json()["requirements_by_section"] == {"Evacuation": 1}

        deleted = client.delete("/api/references/REF-B/requirements")
        assert deleted.status_code == 200
        assert deleted.json() == {"document_id": "REF-B", "deleted_requirements_count": 1}

    def test_process_unknown_reference(self, stores, gateway):
        response = _client(stores, gateway).post("/api/references/REF-404/process")
        assert response.status_code == 404
        assert response.json()["error_code"] == "NOT_FOUND"

    def test_reconcile(self, stores, gateway):
        stores.documents.add_document(DocumentRecord(id="REF-B", type=DocumentType.REFERENCE))
        client = _client(stores, gateway)

        response = client.post("/api/references/reconcile", json={"reference_ids": ["REF-A", "REF-B"]})

        assert response.status_code == 200
        assert response.json()["mappings_found"] == 0
        assert response.json()["sections_processed"] == 2

    def test_reconcile_needs_two_references(self, stores, gateway):
        response = _client(stores, gateway).post("/api/references/reconcile", json={"reference_ids": ["REF-A"]})
        assert response.status_code == 400
