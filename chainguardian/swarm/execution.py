"""
Execution unit core: invoke one analysis function and capture the outcome.

The coordinator wraps this with its two boundary writes (mark RUNNING before,
record result and free the worker after). Nothing here touches shared state.
An analysis function either returns a result mapping or raises; a returned
mapping with a truthy "error" key counts as a failure too. No retry.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Callable, Mapping

from chainguardian.core.exceptions import ExecutionError
from chainguardian.swarm.models import TaskParameters, TaskType

AnalysisFn = Callable[[str, TaskParameters], Mapping[str, Any]]


@dataclass
class ExecutionOutcome:
    result: Mapping[str, Any] | None
    error: BaseException | None
    duration: float

    @property
    def success(self) -> bool:
        return self.error is None


def execute_analysis(
    analyzer: AnalysisFn | None,
    target_address: str,
    parameters: TaskParameters,
    *,
    task_id: str | None = None,
) -> ExecutionOutcome:
    """Run analyzer(target_address, parameters), timing it; never raises."""
    start = time.monotonic()
    if analyzer is None:
        return ExecutionOutcome(
            result=None,
            error=ExecutionError("No analysis function registered for task", task_id=task_id),
            duration=0.0,
        )
    try:
        result = analyzer(target_address, parameters)
    except Exception as e:
        return ExecutionOutcome(result=None, error=e, duration=time.monotonic() - start)
    duration = time.monotonic() - start
    if result is None:
        return ExecutionOutcome(
            result=None,
            error=ExecutionError("Analysis returned no result", task_id=task_id),
            duration=duration,
        )
    if isinstance(result, Mapping) and result.get("error"):
        return ExecutionOutcome(
            result=None,
            error=ExecutionError(str(result["error"]), task_id=task_id),
            duration=duration,
        )
    return ExecutionOutcome(result=result, error=None, duration=duration)


def default_analyzers() -> dict[TaskType, AnalysisFn]:
    """Analysis functions backed by Solana RPC (token scan, tx scan, risk evaluation)."""
    from chainguardian.analytics.risk_evaluator import evaluate_wallet_risk
    from chainguardian.analytics.token_scanner import scan_wallet_tokens
    from chainguardian.analytics.tx_scanner import scan_wallet_transactions

    return {
        TaskType.TOKEN_ANALYSIS: scan_wallet_tokens,
        TaskType.TRANSACTION_ANALYSIS: scan_wallet_transactions,
        TaskType.COMPREHENSIVE_ANALYSIS: evaluate_wallet_risk,
        TaskType.RISK_EVALUATION: evaluate_wallet_risk,
    }
