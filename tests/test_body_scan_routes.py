"""Tests for the body scan HTTP routes."""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from bodyscan_api.api.dependencies import get_body_scan_pipeline, get_uow
from bodyscan_api.main import app
from bodyscan_api.models.body_scan import BodyScanRecord
from bodyscan_api.services.scan_stages import ScanStage, StageServiceError

from doubles import CLIENT_SCAN_ID


@pytest.fixture
def scan_records():
    return MagicMock(
        get_latest=AsyncMock(return_value=None),
        get_latest_with_morph_data=AsyncMock(return_value=None),
        get_history=AsyncMock(return_value=[]),
        get_by_id=AsyncMock(return_value=None),
    )


@pytest.fixture
def client(make_pipeline, scan_records):
    """Test client with the pipeline and database replaced by doubles."""
    pipeline = make_pipeline()
    app.dependency_overrides[get_body_scan_pipeline] = lambda: pipeline
    app.dependency_overrides[get_uow] = lambda: MagicMock(body_scans=scan_records)
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def process_body(scan_config):
    return {
        "user_id": "user_123",
        "client_scan_id": CLIENT_SCAN_ID,
        "photos": [photo.model_dump(mode="json") for photo in scan_config.photos],
        "sex": "male",
        "height_cm": 180,
        "weight_kg": 78,
    }


class TestProcessBodyScan:
    """Tests for POST /body-scan/process."""

    def test_process_success(self, client, process_body, stage_doubles):
        """Test a clean scan returns the committed result."""
        response = client.post("/body-scan/process", json=process_body)

        assert response.status_code == 200
        data = response.json()
        assert data["client_scan_id"] == CLIENT_SCAN_ID
        assert data["server_scan_id"] == "srv-scan-001"
        assert data["resolved_gender"] == "masculine"
        assert data["data_quality"]["is_high_confidence"] is True
        assert len(stage_doubles["committer"].calls) == 1

    def test_client_scan_id_is_generated_when_omitted(self, client, process_body, stage_doubles):
        del process_body["client_scan_id"]

        response = client.post("/body-scan/process", json=process_body)

        assert response.status_code == 200
        generated = response.json()["client_scan_id"]
        assert len(generated) == 36
        assert stage_doubles["estimator"].requests[0].client_scan_id == generated

    def test_stage_failure_returns_502(self, client, process_body, stage_doubles):
        """Test a stage failure names the stage and the scan."""
        stage_doubles["classifier"].error = StageServiceError("model overloaded", ScanStage.SEMANTIC)

        response = client.post("/body-scan/process", json=process_body)

        assert response.status_code == 502
        body = response.json()
        assert body["error"] == "semantic stage failed: model overloaded"
        assert body["details"] == {
            "stage": "semantic",
            "client_scan_id": CLIENT_SCAN_ID,
            "error_code": "SERVICE_ERROR",
        }

    def test_invalid_request_is_rejected(self, client, process_body):
        process_body["photos"] = []

        response = client.post("/body-scan/process", json=process_body)

        assert response.status_code == 422


class TestScanQueries:
    """Tests for the scan read endpoints."""

    def test_latest_returns_null_without_scans(self, client):
        response = client.get("/body-scan/latest", params={"user_id": "user_123"})

        assert response.status_code == 200
        assert response.json() is None

    def test_latest_with_morph_data(self, client, scan_records):
        scan_records.get_latest_with_morph_data.return_value = BodyScanRecord(
            id="scan-1",
            user_id="user_123",
            created_at=datetime(2026, 3, 1, tzinfo=timezone.utc),
            morph_values={"bigHips": 0.3},
            limb_masses={"armMass": 1.0},
        )

        response = client.get("/body-scan/latest", params={"user_id": "user_123", "with_morph_data": True})

        assert response.status_code == 200
        assert response.json()["morph_values"] == {"bigHips": 0.3}
        scan_records.get_latest_with_morph_data.assert_awaited_once_with("user_123")
        scan_records.get_latest.assert_not_called()

    def test_history_limit_is_bounded(self, client, scan_records):
        assert client.get("/body-scan/history", params={"user_id": "u", "limit": 1001}).status_code == 422

        response = client.get("/body-scan/history", params={"user_id": "u", "limit": 20})

        assert response.status_code == 200
        scan_records.get_history.assert_awaited_once_with("u", limit=20)

    def test_unknown_scan_returns_404(self, client):
        response = client.get("/body-scan/does-not-exist")

        assert response.status_code == 404
        assert response.json()["details"] == {"resource": "Body scan", "id": "does-not-exist"}


class TestHealth:
    """Tests for the service endpoints."""

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["mongodb"] is False
        assert "edge_functions" in data
