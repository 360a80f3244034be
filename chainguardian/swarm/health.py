"""
Worker health: heartbeat staleness detection and the idle-worker heartbeat pump.

- A worker whose last heartbeat is older than the staleness threshold is
  reported stale; the coordinator takes it OFFLINE and fails its task.
- In-process workers have no process of their own to send heartbeats, so the
  pump refreshes IDLE workers only. A BUSY worker is refreshed solely by its
  execution unit at start and finish, so an analysis call that hangs past the
  threshold is caught as unresponsive.
"""

from __future__ import annotations

from typing import Iterable

from chainguardian.swarm.models import Worker, WorkerStatus

DEFAULT_HEARTBEAT_TIMEOUT_SEC = 300.0
DEFAULT_HEARTBEAT_INTERVAL_SEC = 30.0


def find_stale_workers(
    workers: Iterable[Worker],
    now: float,
    timeout_sec: float = DEFAULT_HEARTBEAT_TIMEOUT_SEC,
) -> list[tuple[Worker, float]]:
    """Return (worker, seconds_since_heartbeat) for non-offline workers past timeout_sec."""
    stale: list[tuple[Worker, float]] = []
    for worker in workers:
        if worker.status == WorkerStatus.OFFLINE:
            continue
        elapsed = now - worker.last_heartbeat
        if elapsed > timeout_sec:
            stale.append((worker, elapsed))
    return stale


def refresh_idle_heartbeats(workers: Iterable[Worker], now: float) -> int:
    """Stamp now on every IDLE worker; return how many were refreshed."""
    refreshed = 0
    for worker in workers:
        if worker.status == WorkerStatus.IDLE:
            worker.last_heartbeat = now
            refreshed += 1
    return refreshed
