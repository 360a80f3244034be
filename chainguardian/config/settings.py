"""
Application settings.

Loads configuration from environment variables (and .env via config.env),
applies defaults for optional values and exposes one typed Settings object
shared by the coordinator, analytics and API server.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache

from chainguardian.config.env import get_solana_rpc_url, load_guardian_env


def _env_float(name: str, default: float) -> float:
    raw = (os.getenv(name) or "").strip()
    return float(raw) if raw else default


def _env_int(name: str, default: int) -> int:
    raw = (os.getenv(name) or "").strip()
    return int(raw) if raw else default


@dataclass(frozen=True)
class Settings:
    """Resolved service configuration."""

    solana_rpc_url: str
    rpc_timeout_sec: float
    birdeye_api_key: str
    api_host: str
    api_port: int
    loop_interval_sec: float
    error_backoff_sec: float
    heartbeat_timeout_sec: float
    heartbeat_interval_sec: float
    max_concurrency: int
    completed_retention: int
    failed_retention: int
    poll_interval_sec: float
    risk_wait_timeout_sec: float
    analyze_wait_timeout_sec: float
    max_tx_history: int


def load_settings() -> Settings:
    """Build Settings from the current environment (no caching)."""
    load_guardian_env()
    return Settings(
        solana_rpc_url=get_solana_rpc_url(),
        rpc_timeout_sec=_env_float("RPC_TIMEOUT_SEC", 15.0),
        birdeye_api_key=(os.getenv("BIRDEYE_API_KEY") or "").strip(),
        api_host=(os.getenv("API_HOST") or "0.0.0.0").strip(),
        api_port=_env_int("API_PORT", 8080),
        loop_interval_sec=_env_float("SWARM_LOOP_INTERVAL_SEC", 1.0),
        error_backoff_sec=_env_float("SWARM_ERROR_BACKOFF_SEC", 5.0),
        heartbeat_timeout_sec=_env_float("WORKER_HEARTBEAT_TIMEOUT_SEC", 300.0),
        heartbeat_interval_sec=_env_float("WORKER_HEARTBEAT_INTERVAL", 30.0),
        max_concurrency=_env_int("THREADS", 8),
        completed_retention=_env_int("SWARM_COMPLETED_RETENTION", 100),
        failed_retention=_env_int("SWARM_FAILED_RETENTION", 50),
        poll_interval_sec=_env_float("SWARM_POLL_INTERVAL_SEC", 1.0),
        risk_wait_timeout_sec=_env_float("RISK_WAIT_TIMEOUT_SEC", 60.0),
        analyze_wait_timeout_sec=_env_float("ANALYZE_WAIT_TIMEOUT_SEC", 90.0),
        max_tx_history=_env_int("MAX_TX_HISTORY", 100),
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return the process-wide settings (loaded once)."""
    return load_settings()
