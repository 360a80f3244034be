"""
Pytest fixtures for ChainGuardian tests.

Coordinator tests run deterministically: a fake clock, analysis functions that
record their calls, and executors that either run execution units inline or
hold them until the test releases them.
"""

from __future__ import annotations

from concurrent.futures import Executor, Future
from typing import Any

import pytest

from chainguardian.swarm import SwarmConfig, SwarmCoordinator, TaskType

TOKEN_CAPS = ["token_analysis", "liquidity_check", "rugpull_detection"]


class FakeClock:
    """Manually advanced wall clock (epoch seconds)."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class InlineExecutor(Executor):
    """Runs each submitted callable immediately in the caller's thread."""

    def submit(self, fn, /, *args, **kwargs) -> Future:
        future: Future = Future()
        try:
            future.set_result(fn(*args, **kwargs))
        except Exception as e:
            future.set_exception(e)
        return future


class ManualExecutor(Executor):
    """Holds submitted callables until run_next()/run_all()."""

    def __init__(self) -> None:
        self.pending: list[tuple[Any, tuple, dict]] = []

    def submit(self, fn, /, *args, **kwargs) -> Future:
        self.pending.append((fn, args, kwargs))
        return Future()

    def run_next(self) -> None:
        fn, args, kwargs = self.pending.pop(0)
        fn(*args, **kwargs)

    def run_all(self) -> None:
        while self.pending:
            self.run_next()


class RecordingAnalyzers:
    """Analysis functions for every task type; records (task_type, target) in call order."""

    def __init__(self) -> None:
        self.calls: list[tuple[TaskType, str]] = []

    def _make(self, task_type: TaskType):
        def analyze(target: str, params: Any) -> dict[str, Any]:
            self.calls.append((task_type, target))
            return {"wallet_address": target, "analysis": task_type.value, "risk_score": 0.1}

        return analyze

    def as_mapping(self) -> dict[TaskType, Any]:
        return {t: self._make(t) for t in TaskType}

    @property
    def targets(self) -> list[str]:
        return [target for _, target in self.calls]


@pytest.fixture(autouse=True)
def _fresh_settings(monkeypatch):
    """Settings and file-backed lists are cached; start each test from the current env."""
    from chainguardian.analytics.token_scanner import _load_verified_mints
    from chainguardian.analytics.tx_scanner import _load_risky_programs
    from chainguardian.config import get_settings

    monkeypatch.delenv("BIRDEYE_API_KEY", raising=False)
    get_settings.cache_clear()
    _load_verified_mints.cache_clear()
    _load_risky_programs.cache_clear()
    yield
    get_settings.cache_clear()
    _load_verified_mints.cache_clear()
    _load_risky_programs.cache_clear()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def analyzers() -> RecordingAnalyzers:
    return RecordingAnalyzers()


@pytest.fixture
def inline_executor() -> InlineExecutor:
    return InlineExecutor()


@pytest.fixture
def manual_executor() -> ManualExecutor:
    return ManualExecutor()


@pytest.fixture
def make_coordinator(analyzers, clock):
    """Factory: coordinator with fake analyzers and clock; no workers unless default_pool=True."""

    def _make(executor: Executor | None = None, default_pool: bool = False, **config: Any) -> SwarmCoordinator:
        return SwarmCoordinator(
            SwarmConfig(register_default_workers=default_pool, **config),
            analyzers=analyzers.as_mapping(),
            executor=executor or InlineExecutor(),
            clock=clock,
        )

    return _make


@pytest.fixture
def single_token_worker(make_coordinator, manual_executor):
    """One token-capable worker; execution units wait for the test to run them."""
    coordinator = make_coordinator(manual_executor)
    coordinator.register_worker("token_scanner_1", "token_scanner", TOKEN_CAPS)
    return coordinator


@pytest.fixture
def pool_coordinator(make_coordinator):
    """Default pool (3 token, 2 tx, 2 risk workers), execution inline."""
    return make_coordinator(default_pool=True)
