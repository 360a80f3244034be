"""
Tests for the FastAPI server over a live coordinator (background loop running,
analysis functions faked).
"""

from __future__ import annotations

import threading

import pytest
from fastapi.testclient import TestClient

from chainguardian.api_server.server import create_app
from chainguardian.config import get_settings
from chainguardian.swarm import SwarmConfig, SwarmCoordinator, TaskType

VALID_WALLET = "9QCfNuQuxct1Xk9ytFYgxc5fThmTzL4pHQnSjjrVUrka"
VALID_WALLET_2 = "7F1WzVNQ1Qpurqxxdyv3UrFQR3uoNepULVW9A4bAJ5nZ"


@pytest.fixture
def coordinator(analyzers):
    return SwarmCoordinator(
        SwarmConfig(loop_interval_sec=0.01, heartbeat_interval_sec=0.05, poll_interval_sec=0.01),
        analyzers=analyzers.as_mapping(),
    )


@pytest.fixture
def client(coordinator):
    """TestClient with lifespan: coordinator threads start on enter and stop on exit."""
    app = create_app(lambda: coordinator)
    with TestClient(app) as c:
        yield c


@pytest.fixture
def blocked_comprehensive(coordinator):
    """Comprehensive analysis that blocks until the test releases it."""
    release = threading.Event()

    def slow(target, params):
        release.wait(timeout=10)
        return {"wallet_address": target, "overall_risk_score": 0.1}

    coordinator._analyzers[TaskType.COMPREHENSIVE_ANALYSIS] = slow
    yield release
    release.set()


def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200
    data = r.json()
    assert data["status"] == "healthy"
    assert data["swarm_healthy"] is True


def test_status_masks_rpc_key(client, monkeypatch):
    monkeypatch.delenv("SOLANA_RPC_URL", raising=False)
    monkeypatch.setenv("HELIUS_API_KEY", "secret-key")
    get_settings.cache_clear()
    r = client.get("/status")
    assert r.status_code == 200
    data = r.json()
    assert "secret-key" not in data["config"]["solana_rpc_url"]
    assert data["swarm"]["workers"] == 7
    assert data["agent"]["name"] == "ChainGuardian"


def test_swarm_status_and_workers(client):
    status = client.get("/swarm/status").json()
    assert status["is_running"] is True
    assert status["workers"] == 7
    workers = client.get("/swarm/workers").json()
    assert {w["worker_type"] for w in workers} == {"token_scanner", "tx_scanner", "risk_evaluator"}


def test_swarm_submit_then_poll(client, coordinator):
    r = client.post(
        "/swarm/submit",
        json={"task_type": "token_analysis", "wallet_address": VALID_WALLET, "priority": 2},
    )
    assert r.status_code == 200
    data = r.json()
    assert data["status"] == "submitted"
    assert data["priority"] == 2
    task_id = data["task_id"]

    done = coordinator.wait_for_completion(task_id, timeout=5, poll_interval=0.01)
    assert done["status"] == "COMPLETED"
    r2 = client.get(f"/task/{task_id}")
    assert r2.status_code == 200
    assert r2.json()["result"]["wallet_address"] == VALID_WALLET


def test_swarm_submit_invalid_task_type(client):
    r = client.post("/swarm/submit", json={"task_type": "risk_evaluation", "wallet_address": VALID_WALLET})
    assert r.status_code == 400
    assert "Invalid task_type" in r.json()["detail"]


def test_swarm_submit_invalid_wallet(client):
    r = client.post("/swarm/submit", json={"task_type": "token_analysis", "wallet_address": "not-a-valid-pubkey"})
    assert r.status_code == 400
    assert r.json()["detail"] == "Invalid Solana wallet address"


def test_task_not_found(client):
    r = client.get("/task/token_analysis_missing_0_0")
    assert r.status_code == 404
    assert r.json() == {"detail": "Task not found"}


def test_risk_returns_completed_result(client):
    r = client.get(f"/risk/{VALID_WALLET}")
    assert r.status_code == 200
    data = r.json()
    assert data["status"] == "COMPLETED"
    assert data["task"]["priority"] == 2
    assert data["result"]["wallet_address"] == VALID_WALLET


def test_risk_returns_202_while_processing(client, blocked_comprehensive, monkeypatch):
    monkeypatch.setenv("RISK_WAIT_TIMEOUT_SEC", "0.1")
    get_settings.cache_clear()
    r = client.get(f"/risk/{VALID_WALLET}")
    assert r.status_code == 202
    data = r.json()
    assert data["status"] == "processing"
    assert data["task_id"].startswith("wallet_analysis_")

    polled = client.get(f"/task/{data['task_id']}").json()
    assert polled["status"] in ("ASSIGNED", "RUNNING")


def test_risk_invalid_address(client):
    r = client.get("/risk/xyz")
    assert r.status_code == 400


def test_analyze_async_returns_task_id(client, coordinator, analyzers):
    r = client.post("/risk/analyze", json={"wallet_address": VALID_WALLET_2, "analysis_type": "tokens", "async": True})
    assert r.status_code == 202
    task_id = r.json()["task_id"]
    assert task_id.startswith("token_analysis_")
    assert coordinator.wait_for_completion(task_id, timeout=5, poll_interval=0.01)["status"] == "COMPLETED"
    assert (TaskType.TOKEN_ANALYSIS, VALID_WALLET_2) in analyzers.calls


def test_analyze_sync_transactions(client):
    r = client.post("/risk/analyze", json={"wallet_address": VALID_WALLET, "analysis_type": "transactions"})
    assert r.status_code == 200
    data = r.json()
    assert data["status"] == "COMPLETED"
    assert data["task"]["task_type"] == "transaction_analysis"


def test_analyze_sync_timeout(client, blocked_comprehensive, monkeypatch):
    monkeypatch.setenv("ANALYZE_WAIT_TIMEOUT_SEC", "0.1")
    get_settings.cache_clear()
    r = client.post("/risk/analyze", json={"wallet_address": VALID_WALLET})
    assert r.status_code == 202
    assert r.json()["status"] == "timeout"


def test_failed_analysis_reported_on_task(client, coordinator):
    def broken(target, params):
        raise RuntimeError("rpc unavailable")

    coordinator._analyzers[TaskType.TRANSACTION_ANALYSIS] = broken
    r = client.post("/risk/analyze", json={"wallet_address": VALID_WALLET, "analysis_type": "transactions"})
    assert r.status_code == 200
    data = r.json()
    assert data["status"] == "FAILED"
    assert data["error"] == "rpc unavailable"
