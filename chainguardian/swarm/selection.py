"""
Capability map and worker selection.

Each task type maps statically to the capability tags a worker must carry.
Selection is greedy and deterministic:
- candidates = IDLE workers whose capabilities are a superset of the requirement
- pick the highest current success_rate
- ties go to the first match in registration order

The greedy rule can starve lower-performing workers; acceptable for small,
bounded pools.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from chainguardian.swarm.models import TaskType, Worker, WorkerStatus

CAP_TOKEN_ANALYSIS = "token_analysis"
CAP_LIQUIDITY_CHECK = "liquidity_check"
CAP_RUGPULL_DETECTION = "rugpull_detection"
CAP_TRANSACTION_ANALYSIS = "transaction_analysis"
CAP_MEV_DETECTION = "mev_detection"
CAP_RISK_PATTERN_ANALYSIS = "risk_pattern_analysis"
CAP_RISK_AGGREGATION = "risk_aggregation"
CAP_COMPREHENSIVE_ANALYSIS = "comprehensive_analysis"
CAP_REPORT_GENERATION = "report_generation"

REQUIRED_CAPABILITIES: dict[TaskType, frozenset[str]] = {
    TaskType.TOKEN_ANALYSIS: frozenset({CAP_TOKEN_ANALYSIS}),
    TaskType.TRANSACTION_ANALYSIS: frozenset({CAP_TRANSACTION_ANALYSIS}),
    TaskType.COMPREHENSIVE_ANALYSIS: frozenset({CAP_RISK_AGGREGATION}),
    TaskType.RISK_EVALUATION: frozenset({CAP_RISK_AGGREGATION}),
}


@dataclass(frozen=True)
class WorkerSpec:
    """One group of identical workers in the default pool."""

    worker_type: str
    capabilities: frozenset[str]
    count: int


DEFAULT_POOL: tuple[WorkerSpec, ...] = (
    WorkerSpec(
        "token_scanner",
        frozenset({CAP_TOKEN_ANALYSIS, CAP_LIQUIDITY_CHECK, CAP_RUGPULL_DETECTION}),
        3,
    ),
    WorkerSpec(
        "tx_scanner",
        frozenset({CAP_TRANSACTION_ANALYSIS, CAP_MEV_DETECTION, CAP_RISK_PATTERN_ANALYSIS}),
        2,
    ),
    WorkerSpec(
        "risk_evaluator",
        frozenset({CAP_RISK_AGGREGATION, CAP_COMPREHENSIVE_ANALYSIS, CAP_REPORT_GENERATION}),
        2,
    ),
)


def required_capabilities(task_type: TaskType) -> frozenset[str]:
    """Capability tags needed for task_type. Empty (unsatisfiable) when unmapped."""
    return REQUIRED_CAPABILITIES.get(task_type, frozenset())


def select_worker(workers: Iterable[Worker], required: frozenset[str]) -> Worker | None:
    """Return the best IDLE worker able to satisfy required, or None."""
    best: Worker | None = None
    for worker in workers:
        if worker.status != WorkerStatus.IDLE or not worker.can_run(required):
            continue
        if best is None or worker.metrics.success_rate > best.metrics.success_rate:
            best = worker
    return best
