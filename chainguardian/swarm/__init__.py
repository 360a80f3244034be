"""
Swarm package — task coordination for wallet risk analysis.

A single coordinator owns the worker registry and the priority task queue,
assigns tasks to capable idle workers, runs each assignment in an execution
unit, detects unresponsive workers and keeps bounded completed/failed stores
for status polling.
"""

from chainguardian.swarm.coordinator import SwarmConfig, SwarmCoordinator, get_coordinator
from chainguardian.swarm.models import (
    Task,
    TaskStatus,
    TaskType,
    TokenAnalysisParams,
    TransactionAnalysisParams,
    WalletAnalysisParams,
    Worker,
    WorkerStatus,
)

__all__ = [
    "SwarmConfig",
    "SwarmCoordinator",
    "Task",
    "TaskStatus",
    "TaskType",
    "TokenAnalysisParams",
    "TransactionAnalysisParams",
    "WalletAnalysisParams",
    "Worker",
    "WorkerStatus",
    "get_coordinator",
]
