"""
Tests for the swarm data model, capability-based selection, containers and health checks.
"""

from __future__ import annotations

import pytest

from chainguardian.core.exceptions import SubmissionError
from chainguardian.swarm.health import find_stale_workers, refresh_idle_heartbeats
from chainguardian.swarm.models import (
    PerformanceMetrics,
    Task,
    TaskStatus,
    TaskType,
    TokenAnalysisParams,
    TransactionAnalysisParams,
    WalletAnalysisParams,
    Worker,
    WorkerStatus,
    build_parameters,
)
from chainguardian.swarm.registry import ResultStore, TaskQueue, WorkerRegistry
from chainguardian.swarm.selection import DEFAULT_POOL, required_capabilities, select_worker

TOKEN_CAPS = frozenset({"token_analysis", "liquidity_check", "rugpull_detection"})
RISK_CAPS = frozenset({"risk_aggregation", "comprehensive_analysis", "report_generation"})


def _worker(worker_id: str, caps=TOKEN_CAPS, status=WorkerStatus.IDLE, heartbeat: float = 0.0) -> Worker:
    return Worker(id=worker_id, worker_type="token_scanner", capabilities=caps, last_heartbeat=heartbeat, status=status)


def _task(task_id: str, priority: int, sequence: int) -> Task:
    return Task(
        id=task_id,
        task_type=TaskType.TOKEN_ANALYSIS,
        target_address="wallet",
        parameters=TokenAnalysisParams(),
        priority=priority,
        created_at=0.0,
        sequence=sequence,
    )


# -----------------------------------------------------------------------------
# Task types and parameters
# -----------------------------------------------------------------------------


@pytest.mark.parametrize(
    "name, expected",
    [
        ("token_analysis", TaskType.TOKEN_ANALYSIS),
        ("transaction_analysis", TaskType.TRANSACTION_ANALYSIS),
        ("comprehensive_analysis", TaskType.COMPREHENSIVE_ANALYSIS),
        ("comprehensive_wallet_analysis", TaskType.COMPREHENSIVE_ANALYSIS),
        (" Risk_Evaluation ", TaskType.RISK_EVALUATION),
    ],
)
def test_task_type_parse(name, expected):
    assert TaskType.parse(name) is expected


def test_task_type_parse_unknown():
    with pytest.raises(SubmissionError, match="Unknown task_type"):
        TaskType.parse("price_prediction")


def test_id_prefixes():
    assert TaskType.COMPREHENSIVE_ANALYSIS.id_prefix == "wallet_analysis"
    assert TaskType.TRANSACTION_ANALYSIS.id_prefix == "tx_analysis"


def test_build_parameters_defaults_and_mapping():
    assert build_parameters(TaskType.TOKEN_ANALYSIS, None) == TokenAnalysisParams()
    tx = build_parameters(TaskType.TRANSACTION_ANALYSIS, {"tx_limit": "25"})
    assert tx == TransactionAnalysisParams(tx_limit=25)
    wallet = build_parameters(TaskType.RISK_EVALUATION, {"include_tokens": False})
    assert wallet == WalletAnalysisParams(include_tokens=False, include_transactions=True)


def test_build_parameters_rejects_wrong_variant():
    with pytest.raises(SubmissionError, match="expects TransactionAnalysisParams"):
        build_parameters(TaskType.TRANSACTION_ANALYSIS, TokenAnalysisParams())


def test_wallet_params_need_a_scan():
    with pytest.raises(SubmissionError):
        WalletAnalysisParams(include_tokens=False, include_transactions=False)


def test_task_to_dict_shape():
    task = _task("token_analysis_wallet_0_1", priority=2, sequence=1)
    d = task.to_dict()
    assert d["task_id"] == "token_analysis_wallet_0_1"
    assert d["status"] == "PENDING"
    assert d["parameters"] == {}
    assert d["created_at"] == "1970-01-01T00:00:00+00:00"
    assert d["started_at"] is None


def test_task_status_flags():
    assert [s for s in TaskStatus if s.is_terminal] == [TaskStatus.COMPLETED, TaskStatus.FAILED]
    assert [s for s in TaskStatus if s.is_in_flight] == [TaskStatus.ASSIGNED, TaskStatus.RUNNING]


def test_performance_metrics_record():
    m = PerformanceMetrics()
    assert m.success_rate == 1.0
    m.record(2.0, True)
    m.record(4.0, False)
    assert m.tasks_completed == 2
    assert m.successful_tasks == 1
    assert m.average_duration == pytest.approx(3.0)
    assert m.success_rate == pytest.approx(0.5)


# -----------------------------------------------------------------------------
# Selection
# -----------------------------------------------------------------------------


def test_default_pool_shape():
    assert [(s.worker_type, s.count) for s in DEFAULT_POOL] == [
        ("token_scanner", 3),
        ("tx_scanner", 2),
        ("risk_evaluator", 2),
    ]


def test_comprehensive_requires_risk_aggregation():
    assert required_capabilities(TaskType.COMPREHENSIVE_ANALYSIS) == frozenset({"risk_aggregation"})
    assert required_capabilities(TaskType.RISK_EVALUATION) == frozenset({"risk_aggregation"})


def test_select_worker_highest_success_rate():
    a, b, c = _worker("a"), _worker("b"), _worker("c")
    a.metrics.success_rate = 0.5
    b.metrics.success_rate = 0.9
    c.metrics.success_rate = 0.9
    assert select_worker([a, b, c], frozenset({"token_analysis"})) is b


def test_select_worker_skips_busy_offline_and_incapable():
    busy = _worker("busy", status=WorkerStatus.BUSY)
    offline = _worker("offline", status=WorkerStatus.OFFLINE)
    risk = _worker("risk", caps=RISK_CAPS)
    assert select_worker([busy, offline, risk], frozenset({"token_analysis"})) is None
    assert select_worker([busy, offline, risk], frozenset({"risk_aggregation"})) is risk


def test_empty_requirement_never_matches():
    assert select_worker([_worker("a")], frozenset()) is None


# -----------------------------------------------------------------------------
# Containers
# -----------------------------------------------------------------------------


def test_task_queue_orders_by_priority_then_sequence():
    queue = TaskQueue()
    queue.push(_task("low", 1, 1))
    queue.push(_task("high-1", 5, 2))
    queue.push(_task("mid", 3, 3))
    queue.push(_task("high-2", 5, 4))
    assert [t.id for t in queue.pending()] == ["high-1", "high-2", "mid", "low"]


def test_task_queue_remove_terminal():
    queue = TaskQueue()
    done = _task("done", 1, 1)
    live = _task("live", 1, 2)
    queue.push(done)
    queue.push(live)
    done.status = TaskStatus.COMPLETED
    assert queue.remove_terminal() == ["done"]
    assert queue.get("done") is None
    assert len(queue) == 1
    assert queue.counts_by_status()[TaskStatus.PENDING] == 1


def test_result_store_trim_evicts_oldest():
    store = ResultStore(limit=2)
    store.put("t1", {"task_id": "t1"}, finished_at=10.0)
    store.put("t2", {"task_id": "t2"}, finished_at=30.0)
    store.put("t3", {"task_id": "t3"}, finished_at=20.0)
    assert store.trim() == ["t1"]
    assert "t1" not in store
    assert len(store) == 2


def test_result_store_trim_ties_keep_latest_inserted():
    store = ResultStore(limit=1)
    store.put("first", {}, finished_at=5.0)
    store.put("second", {}, finished_at=5.0)
    assert store.trim() == ["first"]
    assert "second" in store


def test_result_store_get_returns_copy():
    store = ResultStore(limit=5)
    store.put("t1", {"status": "COMPLETED"}, finished_at=1.0)
    record = store.get("t1")
    record["status"] = "mutated"
    assert store.get("t1")["status"] == "COMPLETED"


def test_worker_registry_counts():
    registry = WorkerRegistry()
    registry.add(_worker("a"))
    registry.add(_worker("b", status=WorkerStatus.BUSY))
    registry.add(_worker("c", status=WorkerStatus.OFFLINE))
    counts = registry.counts_by_status()
    assert counts == {WorkerStatus.IDLE: 1, WorkerStatus.BUSY: 1, WorkerStatus.OFFLINE: 1}
    assert "a" in registry
    assert [w.id for w in registry] == ["a", "b", "c"]


# -----------------------------------------------------------------------------
# Health
# -----------------------------------------------------------------------------


def test_find_stale_workers_skips_offline():
    fresh = _worker("fresh", heartbeat=900.0)
    stale = _worker("stale", status=WorkerStatus.BUSY, heartbeat=500.0)
    gone = _worker("gone", status=WorkerStatus.OFFLINE, heartbeat=0.0)
    result = find_stale_workers([fresh, stale, gone], now=1000.0, timeout_sec=300.0)
    assert [(w.id, elapsed) for w, elapsed in result] == [("stale", 500.0)]


def test_threshold_is_exclusive():
    worker = _worker("edge", heartbeat=700.0)
    assert find_stale_workers([worker], now=1000.0, timeout_sec=300.0) == []


def test_refresh_idle_heartbeats_only_idle():
    idle = _worker("idle", heartbeat=0.0)
    busy = _worker("busy", status=WorkerStatus.BUSY, heartbeat=0.0)
    assert refresh_idle_heartbeats([idle, busy], now=50.0) == 1
    assert idle.last_heartbeat == 50.0
    assert busy.last_heartbeat == 0.0
