"""
Swarm data model: tasks, workers, typed task parameters and performance metrics.

Task lifecycle: PENDING → ASSIGNED → RUNNING → COMPLETED | FAILED. PENDING is the
only initial state and nothing ever returns to it. A worker going offline can
force ASSIGNED/RUNNING straight to FAILED.

Records are mutable and owned by the coordinator; every mutation happens under
the coordinator lock.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Mapping, Union

from chainguardian.core.exceptions import SubmissionError

DEFAULT_TX_LIMIT = 100
MAX_TX_LIMIT = 1000


class TaskStatus(str, Enum):
    PENDING = "PENDING"
    ASSIGNED = "ASSIGNED"
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in (TaskStatus.COMPLETED, TaskStatus.FAILED)

    @property
    def is_in_flight(self) -> bool:
        return self in (TaskStatus.ASSIGNED, TaskStatus.RUNNING)


class WorkerStatus(str, Enum):
    IDLE = "IDLE"
    BUSY = "BUSY"
    OFFLINE = "OFFLINE"


class TaskType(str, Enum):
    TOKEN_ANALYSIS = "token_analysis"
    TRANSACTION_ANALYSIS = "transaction_analysis"
    COMPREHENSIVE_ANALYSIS = "comprehensive_wallet_analysis"
    RISK_EVALUATION = "risk_evaluation"

    @property
    def id_prefix(self) -> str:
        return _ID_PREFIXES[self]

    @classmethod
    def parse(cls, value: str | TaskType) -> TaskType:
        """Resolve a task type name (or alias); raise SubmissionError when unknown."""
        if isinstance(value, TaskType):
            return value
        if not isinstance(value, str):
            raise SubmissionError(f"task_type must be a string, got {type(value).__name__}")
        key = value.strip().lower()
        try:
            return cls(key)
        except ValueError:
            pass
        alias = _TASK_TYPE_ALIASES.get(key)
        if alias is None:
            raise SubmissionError(f"Unknown task_type: {value!r}")
        return alias


_ID_PREFIXES: dict[TaskType, str] = {
    TaskType.TOKEN_ANALYSIS: "token_analysis",
    TaskType.TRANSACTION_ANALYSIS: "tx_analysis",
    TaskType.COMPREHENSIVE_ANALYSIS: "wallet_analysis",
    TaskType.RISK_EVALUATION: "risk_evaluation",
}

# Names used by the HTTP layer and older clients
_TASK_TYPE_ALIASES: dict[str, TaskType] = {
    "comprehensive_analysis": TaskType.COMPREHENSIVE_ANALYSIS,
    "wallet_analysis": TaskType.COMPREHENSIVE_ANALYSIS,
    "tx_analysis": TaskType.TRANSACTION_ANALYSIS,
    "tokens": TaskType.TOKEN_ANALYSIS,
    "transactions": TaskType.TRANSACTION_ANALYSIS,
    "comprehensive": TaskType.COMPREHENSIVE_ANALYSIS,
}


# -----------------------------------------------------------------------------
# Typed parameters (one variant per task type)
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class TokenAnalysisParams:
    """Token scan takes no tunables; holdings are read in full."""

    def to_dict(self) -> dict[str, Any]:
        return {}


@dataclass(frozen=True)
class TransactionAnalysisParams:
    tx_limit: int = DEFAULT_TX_LIMIT

    def __post_init__(self) -> None:
        object.__setattr__(self, "tx_limit", int(self.tx_limit))
        if not 1 <= self.tx_limit <= MAX_TX_LIMIT:
            raise SubmissionError(f"tx_limit must be between 1 and {MAX_TX_LIMIT}, got {self.tx_limit}")

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class WalletAnalysisParams:
    """Comprehensive / risk-evaluation parameters: which scans feed the aggregate."""

    include_tokens: bool = True
    include_transactions: bool = True
    tx_limit: int = DEFAULT_TX_LIMIT

    def __post_init__(self) -> None:
        if not (self.include_tokens or self.include_transactions):
            raise SubmissionError("At least one of include_tokens / include_transactions must be set")
        object.__setattr__(self, "tx_limit", int(self.tx_limit))
        if not 1 <= self.tx_limit <= MAX_TX_LIMIT:
            raise SubmissionError(f"tx_limit must be between 1 and {MAX_TX_LIMIT}, got {self.tx_limit}")

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


TaskParameters = Union[TokenAnalysisParams, TransactionAnalysisParams, WalletAnalysisParams]

_PARAMS_BY_TYPE: dict[TaskType, type] = {
    TaskType.TOKEN_ANALYSIS: TokenAnalysisParams,
    TaskType.TRANSACTION_ANALYSIS: TransactionAnalysisParams,
    TaskType.COMPREHENSIVE_ANALYSIS: WalletAnalysisParams,
    TaskType.RISK_EVALUATION: WalletAnalysisParams,
}


def build_parameters(
    task_type: TaskType,
    parameters: TaskParameters | Mapping[str, Any] | None,
) -> TaskParameters:
    """
    Return the typed parameter variant for task_type.

    Accepts an instance of the right variant, a mapping of its fields, or None
    (defaults). Unknown keys or a mismatched variant raise SubmissionError.
    """
    params_cls = _PARAMS_BY_TYPE[task_type]
    if parameters is None:
        return params_cls()
    if isinstance(parameters, params_cls):
        return parameters
    if not isinstance(parameters, Mapping):
        raise SubmissionError(
            f"{task_type.value} expects {params_cls.__name__}, got {type(parameters).__name__}"
        )
    allowed = {f.name for f in fields(params_cls)}
    unknown = sorted(set(parameters) - allowed)
    if unknown:
        raise SubmissionError(f"Unknown parameters for {task_type.value}: {', '.join(unknown)}")
    try:
        return params_cls(**dict(parameters))
    except (TypeError, ValueError) as e:
        raise SubmissionError(f"Invalid parameters for {task_type.value}: {e}") from e


def format_ts(ts: float | None) -> str | None:
    """Epoch seconds → ISO 8601 (UTC); None passes through."""
    if ts is None:
        return None
    return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat()


# -----------------------------------------------------------------------------
# Task and worker records
# -----------------------------------------------------------------------------


@dataclass
class Task:
    """One unit of risk-analysis work against a target address."""

    id: str
    task_type: TaskType
    target_address: str
    parameters: TaskParameters
    priority: int
    created_at: float
    sequence: int
    """Submission order; tie-breaker for equal priorities."""
    assigned_worker: str | None = None
    status: TaskStatus = TaskStatus.PENDING
    started_at: float | None = None

    @property
    def sort_key(self) -> tuple[int, int]:
        return (-self.priority, self.sequence)

    def to_dict(self) -> dict[str, Any]:
        return {
            "task_id": self.id,
            "task_type": self.task_type.value,
            "wallet_address": self.target_address,
            "parameters": self.parameters.to_dict(),
            "priority": self.priority,
            "created_at": format_ts(self.created_at),
            "assigned_worker": self.assigned_worker,
            "status": self.status.value,
            "started_at": format_ts(self.started_at),
        }


@dataclass
class PerformanceMetrics:
    tasks_completed: int = 0
    total_time: float = 0.0
    successful_tasks: int = 0
    average_duration: float = 0.0
    success_rate: float = 1.0

    def record(self, duration: float, success: bool) -> None:
        """Fold one finished task into the running totals."""
        self.tasks_completed += 1
        self.total_time += duration
        if success:
            self.successful_tasks += 1
        self.average_duration = self.total_time / self.tasks_completed
        self.success_rate = self.successful_tasks / self.tasks_completed

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class Worker:
    """A logical execution slot with capability tags, health and metrics."""

    id: str
    worker_type: str
    capabilities: frozenset[str]
    last_heartbeat: float
    status: WorkerStatus = WorkerStatus.IDLE
    current_task: str | None = None
    metrics: PerformanceMetrics = field(default_factory=PerformanceMetrics)

    def can_run(self, required: frozenset[str]) -> bool:
        return bool(required) and required <= self.capabilities

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "worker_type": self.worker_type,
            "capabilities": sorted(self.capabilities),
            "status": self.status.value,
            "current_task": self.current_task,
            "last_heartbeat": format_ts(self.last_heartbeat),
            "performance_metrics": self.metrics.to_dict(),
        }
