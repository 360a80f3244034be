"""
Application-level exceptions.

Submission problems are raised to the caller. Execution and worker-timeout
failures are recorded on the failed-task record and never re-raised into the
coordinator loop.
"""

from __future__ import annotations


class ChainGuardianError(Exception):
    """Base class for all ChainGuardian errors."""


class SubmissionError(ChainGuardianError):
    """Task rejected at submission (unknown task type, bad parameters)."""


class ExecutionError(ChainGuardianError):
    """An analysis function raised or returned an error payload."""

    def __init__(self, message: str, *, task_id: str | None = None) -> None:
        super().__init__(message)
        self.task_id = task_id


class WorkerTimeoutError(ChainGuardianError):
    """Worker heartbeat went stale; its in-flight task is failed."""

    def __init__(self, worker_id: str, stale_for_sec: float) -> None:
        super().__init__(
            f"Worker {worker_id} heartbeat stale for {stale_for_sec:.0f}s; marked offline"
        )
        self.worker_id = worker_id
        self.stale_for_sec = stale_for_sec


class WorkerNotFoundError(ChainGuardianError):
    """Operation referenced a worker id that is not registered."""


class RPCError(ChainGuardianError):
    """Solana JSON-RPC transport or protocol error."""

    def __init__(self, method: str, message: str) -> None:
        super().__init__(f"{method}: {message}")
        self.method = method
