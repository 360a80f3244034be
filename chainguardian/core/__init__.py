"""
Core utilities — shared exceptions and cross-cutting helpers used by the
swarm coordinator, analytics and API server.
"""

from chainguardian.core.exceptions import (
    ChainGuardianError,
    ExecutionError,
    RPCError,
    SubmissionError,
    WorkerNotFoundError,
    WorkerTimeoutError,
)

__all__ = [
    "ChainGuardianError",
    "ExecutionError",
    "RPCError",
    "SubmissionError",
    "WorkerNotFoundError",
    "WorkerTimeoutError",
]
