"""
ChainGuardian API Python client example.

Uses httpx (already a service dependency).

Usage:
    from docs.python_sdk_example import ChainGuardianClient
    client = ChainGuardianClient("http://localhost:8080")
    report = client.get_risk("7xKXtg2CW87d97TXJSDpbD5jBkheTqA83TZRuJosgAsU")
"""

from __future__ import annotations

import time
from typing import Any

import httpx


class ChainGuardianClientError(Exception):
    """Raised when the API returns an error response."""

    def __init__(self, message: str, status_code: int | None = None, response: httpx.Response | None = None):
        super().__init__(message)
        self.status_code = status_code
        self.response = response


class ChainGuardianClient:
    """Client for the ChainGuardian swarm API."""

    def __init__(self, base_url: str = "http://localhost:8080", timeout: float = 120.0):
        self.base_url = base_url.rstrip("/")
        self._client = httpx.Client(base_url=self.base_url, timeout=timeout)

    def _request(self, method: str, path: str, *, json: dict[str, Any] | None = None) -> httpx.Response:
        resp = self._client.request(method, path, json=json)
        if resp.is_error:
            detail = resp.json().get("detail", resp.text) if resp.headers.get("content-type", "").startswith("application/json") else resp.text
            raise ChainGuardianClientError(
                f"API error: {detail}",
                status_code=resp.status_code,
                response=resp,
            )
        return resp

    def health(self) -> dict[str, Any]:
        """Liveness probe."""
        return self._request("GET", "/health").json()

    def swarm_status(self) -> dict[str, Any]:
        return self._request("GET", "/swarm/status").json()

    def workers(self) -> list[dict[str, Any]]:
        return self._request("GET", "/swarm/workers").json()

    def submit(self, task_type: str, wallet: str, priority: int = 1) -> str:
        """Queue a task; returns its task_id immediately."""
        r = self._request(
            "POST",
            "/swarm/submit",
            json={"task_type": task_type, "wallet_address": wallet, "priority": priority},
        )
        return r.json()["task_id"]

    def get_task(self, task_id: str) -> dict[str, Any]:
        return self._request("GET", f"/task/{task_id}").json()

    def get_risk(self, wallet: str) -> dict[str, Any]:
        """Comprehensive analysis. May return a 202 "processing" body with a task_id to poll."""
        return self._request("GET", f"/risk/{wallet}").json()

    def analyze(self, wallet: str, analysis_type: str = "comprehensive", async_mode: bool = False) -> dict[str, Any]:
        r = self._request(
            "POST",
            "/risk/analyze",
            json={"wallet_address": wallet, "analysis_type": analysis_type, "async": async_mode},
        )
        return r.json()

    def wait_for_task(self, task_id: str, timeout: float = 120.0, interval: float = 2.0) -> dict[str, Any]:
        """Poll /task/{id} until COMPLETED or FAILED."""
        deadline = time.monotonic() + timeout
        while True:
            record = self.get_task(task_id)
            if record.get("status") in ("COMPLETED", "FAILED"):
                return record
            if time.monotonic() >= deadline:
                raise ChainGuardianClientError(f"Task {task_id} still {record.get('status')} after {timeout}s")
            time.sleep(interval)


# -----------------------------------------------------------------------------
# Example usage
# -----------------------------------------------------------------------------

if __name__ == "__main__":
    client = ChainGuardianClient("http://localhost:8080")

    print("Health:", client.health())

    wallet = "7xKXtg2CW87d97TXJSDpbD5jBkheTqA83TZRuJosgAsU"
    report = client.get_risk(wallet)
    if report.get("status") == "processing":
        report = client.wait_for_task(report["task_id"])
    if report.get("status") == "COMPLETED":
        result = report["result"]
        print("Risk:", result.get("risk_level"), "score:", result.get("overall_risk_score"))
    else:
        print("Analysis failed:", report.get("error"))

    task_id = client.submit("token_analysis", wallet, priority=2)
    print("Token scan:", client.wait_for_task(task_id)["status"])
    print("Swarm:", client.swarm_status())
