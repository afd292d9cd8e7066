from __future__ import annotations

import os
import sys
import time
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

sys.path.append(str(Path(__file__).resolve().parents[1]))

from leadflow.application import get_campaign_service, reset_campaign_state, reset_workflow_state
from leadflow.core.settings import reset_settings
from leadflow.infrastructure import CampaignLockManager, ScrapeStatus, configure_collaborators
from tests.fakes import FakeRepository, FakeScraper, make_collaborators, make_lead

CRITERIA = {"job_titles": ["CTO"], "company_sizes": ["11-50"]}


@pytest.fixture(autouse=True)
def reset_state(tmp_path, monkeypatch):
    monkeypatch.setenv("LEADFLOW_DATA_DIR", str(tmp_path))
    monkeypatch.setenv("SCRAPE_POLL_INTERVAL_SECONDS", "0.01")
    monkeypatch.setenv("WORKFLOW_CHUNK_DELAY_SECONDS", "0")
    reset_settings()
    reset_campaign_state()
    reset_workflow_state()
    yield
    configure_collaborators(None)
    reset_workflow_state()
    reset_campaign_state()
    reset_settings()


@pytest.fixture()
def scraper():
    return FakeScraper([make_lead(i) for i in range(3)])


@pytest.fixture()
def client(scraper):
    configure_collaborators(make_collaborators(scraper, repository=FakeRepository()))
    from leadflow.app import create_app

    app = create_app()
    with TestClient(app) as test_client:
        yield test_client


def _wait_for(client: TestClient, job_id: str, timeout: float = 5.0) -> dict:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        body = client.get(f"/api/workflows/{job_id}/status").json()
        if body["is_complete"]:
            return body
        time.sleep(0.01)
    raise AssertionError(f"job {job_id} did not finish")


def test_start_returns_job_id_and_completes(client):
    response = client.post("/api/workflows", json={"criteria": CRITERIA, "max_records": 10})
    assert response.status_code == 202
    job_id = response.json()["job_id"]

    status = _wait_for(client, job_id)
    assert status["status"] == "completed"
    assert status["completed_at"] is not None
    assert status["error"] is None

    result = client.get(f"/api/workflows/{job_id}/result")
    assert result.status_code == 200
    body = result.json()
    assert body["count"] == 3
    assert body["metadata"]["record_limit"] == 10

    listing = client.get("/api/workflows").json()
    assert listing["count"] == 1
    assert listing["items"][0]["job_id"] == job_id


def test_unknown_job_is_404(client):
    assert client.get("/api/workflows/missing/status").status_code == 404
    assert client.get("/api/workflows/missing/result").status_code == 404


def test_validation_errors(client):
    response = client.post("/api/workflows", json={"criteria": {"job_titles": [], "company_sizes": ["1-10"]}})
    assert response.status_code == 400
    assert "Job titles" in response.json()["detail"]

    response = client.post("/api/workflows", json={"criteria": CRITERIA, "max_records": -1})
    assert response.status_code == 422


def test_result_of_failed_job_is_rejected(client, scraper):
    scraper.statuses = [ScrapeStatus("failed", True, "Dataset quota exceeded")]

    job_id = client.post("/api/workflows", json={"criteria": CRITERIA}).json()["job_id"]
    status = _wait_for(client, job_id)

    assert status["status"] == "failed"
    assert status["error"] == "Dataset quota exceeded"
    response = client.get(f"/api/workflows/{job_id}/result")
    assert response.status_code == 400
    assert "not complete" in response.json()["detail"]


def test_result_before_completion_is_rejected(client, scraper):
    scraper.statuses = [ScrapeStatus("running", False)] * 200

    job_id = client.post("/api/workflows", json={"criteria": CRITERIA}).json()["job_id"]
    response = client.get(f"/api/workflows/{job_id}/result")

    assert response.status_code == 400
    status = client.get(f"/api/workflows/{job_id}/status").json()
    assert status["is_complete"] is False


def test_campaign_workflow_refused_while_session_locked(client):
    locks = get_campaign_service().locks
    assert locks.acquire("S1", "outreach")

    response = client.post(
        "/api/workflows",
        json={"criteria": CRITERIA, "session_id": "S1", "save_to_store": True},
    )

    assert response.status_code == 409


def test_campaign_lock_released_when_job_finishes(client):
    response = client.post(
        "/api/workflows",
        json={"criteria": CRITERIA, "session_id": "S2", "save_to_store": True},
    )
    assert response.status_code == 202
    _wait_for(client, response.json()["job_id"])

    locks = get_campaign_service().locks
    deadline = time.monotonic() + 5
    while locks.is_locked("S2") and time.monotonic() < deadline:
        time.sleep(0.01)
    assert not locks.is_locked("S2")


def test_campaign_status_active_and_stop(client):
    locks = get_campaign_service().locks
    locks.acquire("S3", "outreach")

    status = client.get("/api/campaigns/status/S3").json()
    assert status["is_running"] is True
    assert status["lock"]["campaign_type"] == "outreach"

    active = client.get("/api/campaigns/active").json()
    assert [c["session_id"] for c in active["campaigns"]] == ["S3"]

    stopped = client.post("/api/campaigns/stop/S3").json()
    assert stopped["stopped"] is True
    assert client.get("/api/campaigns/status/S3").json()["is_running"] is False


def test_stopping_foreign_campaign_needs_force(client):
    lock_dir = get_campaign_service().locks.lock_dir
    foreign = CampaignLockManager(lock_dir, pid=os.getppid())
    assert foreign.acquire("S4")

    assert client.post("/api/campaigns/stop/S4").status_code == 403
    response = client.post("/api/campaigns/stop/S4", params={"force": "true"})
    assert response.status_code == 200
    assert response.json()["stopped"] is True


def test_cleanup_requires_confirmation(client):
    get_campaign_service().locks.acquire("S5")

    assert client.post("/api/campaigns/cleanup", json={}).status_code == 400
    response = client.post("/api/campaigns/cleanup", json={"confirm": True})
    assert response.status_code == 200
    assert response.json()["removed"] == 1


def test_health_endpoints(client):
    health = client.get("/health").json()
    assert health["status"] == "ok"
    assert "version" in health

    campaigns = client.get("/api/campaigns/health").json()
    assert campaigns["status"] == "ok"
    assert campaigns["active_campaigns"] == 0
