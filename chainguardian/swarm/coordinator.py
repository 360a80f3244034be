"""
Swarm coordinator — owns the task queue and worker registry and runs the control loop.

Each loop iteration, in order:
1. assign PENDING tasks (descending priority, submission order on ties) to the
   best IDLE capable worker and hand each pair to an execution unit;
2. monitor worker health: a stale heartbeat takes the worker OFFLINE and
   force-fails its in-flight task (no retry, no reassignment);
3. recompute aggregate metrics from the result stores;
4. cleanup: trim result stores, drop terminal tasks from the live queue.

The loop runs in a background thread on a fixed cadence (1 s, 5 s after a
caught error) and only stops on stop(). Execution units run in a thread pool
and touch shared state only at start (RUNNING) and finish (result + free
worker), each under the coordinator lock.
"""

from __future__ import annotations

import itertools
import statistics
import threading
import time
from concurrent.futures import Executor, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Mapping

from chainguardian.core.exceptions import (
    ChainGuardianError,
    SubmissionError,
    WorkerNotFoundError,
    WorkerTimeoutError,
)
from chainguardian.guardian_logging import bind_task, get_logger
from chainguardian.swarm.execution import AnalysisFn, ExecutionOutcome, default_analyzers, execute_analysis
from chainguardian.swarm.health import (
    DEFAULT_HEARTBEAT_INTERVAL_SEC,
    DEFAULT_HEARTBEAT_TIMEOUT_SEC,
    find_stale_workers,
    refresh_idle_heartbeats,
)
from chainguardian.swarm.models import (
    DEFAULT_TX_LIMIT,
    MAX_TX_LIMIT,
    Task,
    TaskParameters,
    TaskStatus,
    TaskType,
    TokenAnalysisParams,
    TransactionAnalysisParams,
    WalletAnalysisParams,
    Worker,
    WorkerStatus,
    build_parameters,
    format_ts,
)
from chainguardian.swarm.registry import ResultStore, TaskQueue, WorkerRegistry
from chainguardian.swarm.selection import DEFAULT_POOL, required_capabilities, select_worker

logger = get_logger(__name__)

DEFAULT_LOOP_INTERVAL_SEC = 1.0
DEFAULT_ERROR_BACKOFF_SEC = 5.0
DEFAULT_MAX_CONCURRENCY = 8
DEFAULT_COMPLETED_RETENTION = 100
DEFAULT_FAILED_RETENTION = 50
DEFAULT_POLL_INTERVAL_SEC = 1.0
SHUTDOWN_JOIN_TIMEOUT_SEC = 15.0


@dataclass
class SwarmConfig:
    """
    Coordinator configuration.

    loop_interval_sec: sleep between loop iterations.
    error_backoff_sec: sleep after an iteration raised.
    heartbeat_timeout_sec: staleness after which a worker goes OFFLINE.
    heartbeat_interval_sec: cadence of the idle-worker heartbeat pump.
    max_concurrency: thread pool size; also the cap on tasks in flight at once.
    tx_limit: signatures fetched per transaction scan (MAX_TX_HISTORY).
    """

    loop_interval_sec: float = DEFAULT_LOOP_INTERVAL_SEC
    error_backoff_sec: float = DEFAULT_ERROR_BACKOFF_SEC
    heartbeat_timeout_sec: float = DEFAULT_HEARTBEAT_TIMEOUT_SEC
    heartbeat_interval_sec: float = DEFAULT_HEARTBEAT_INTERVAL_SEC
    max_concurrency: int = DEFAULT_MAX_CONCURRENCY
    completed_retention: int = DEFAULT_COMPLETED_RETENTION
    failed_retention: int = DEFAULT_FAILED_RETENTION
    poll_interval_sec: float = DEFAULT_POLL_INTERVAL_SEC
    tx_limit: int = DEFAULT_TX_LIMIT
    register_default_workers: bool = True

    def __post_init__(self) -> None:
        self.loop_interval_sec = max(0.01, float(self.loop_interval_sec))
        self.error_backoff_sec = max(self.loop_interval_sec, float(self.error_backoff_sec))
        self.heartbeat_timeout_sec = max(1.0, float(self.heartbeat_timeout_sec))
        self.heartbeat_interval_sec = max(0.01, float(self.heartbeat_interval_sec))
        self.max_concurrency = max(1, int(self.max_concurrency))
        self.completed_retention = max(1, int(self.completed_retention))
        self.failed_retention = max(1, int(self.failed_retention))
        self.poll_interval_sec = max(0.01, float(self.poll_interval_sec))
        self.tx_limit = min(MAX_TX_LIMIT, max(1, int(self.tx_limit)))

    @classmethod
    def from_settings(cls, settings: Any) -> SwarmConfig:
        return cls(
            loop_interval_sec=settings.loop_interval_sec,
            error_backoff_sec=settings.error_backoff_sec,
            heartbeat_timeout_sec=settings.heartbeat_timeout_sec,
            heartbeat_interval_sec=settings.heartbeat_interval_sec,
            max_concurrency=settings.max_concurrency,
            completed_retention=settings.completed_retention,
            failed_retention=settings.failed_retention,
            poll_interval_sec=settings.poll_interval_sec,
            tx_limit=settings.max_tx_history,
        )


class SwarmCoordinator:
    """
    Task queue + worker registry + control loop, behind one re-entrant lock.

    analyzers: task type → analysis function; defaults to the Solana RPC analytics.
    executor: runs execution units; a ThreadPoolExecutor is created when omitted.
    clock: wall-clock source (epoch seconds) for heartbeats and timestamps.
    """

    def __init__(
        self,
        config: SwarmConfig | None = None,
        *,
        analyzers: Mapping[TaskType, AnalysisFn] | None = None,
        executor: Executor | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.config = config or SwarmConfig()
        self._analyzers: dict[TaskType, AnalysisFn] = (
            dict(analyzers) if analyzers is not None else default_analyzers()
        )
        self._executor = executor
        self._owns_executor = executor is None
        self._clock = clock

        self._lock = threading.RLock()
        self._completion = threading.Condition(self._lock)
        self._workers = WorkerRegistry()
        self._queue = TaskQueue()
        self._completed = ResultStore(self.config.completed_retention)
        self._failed = ResultStore(self.config.failed_retention)
        self._performance_stats: dict[str, Any] = _empty_stats()
        self._sequence = itertools.count(1)
        self._iterations = 0
        # execution units handed to the executor and not yet returned
        self._active_units = 0

        self._stop_event = threading.Event()
        self._loop_thread: threading.Thread | None = None
        self._heartbeat_thread: threading.Thread | None = None
        self.is_running = False

        if self.config.register_default_workers:
            self.initialize_default_workers()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Start the control loop and heartbeat pump in daemon threads."""
        with self._lock:
            if self.is_running:
                return
            self.is_running = True
            self._stop_event.clear()
            self._ensure_executor()
        self._loop_thread = threading.Thread(
            target=self._run_loop, name="swarm-coordinator", daemon=True
        )
        self._heartbeat_thread = threading.Thread(
            target=self._run_heartbeat_pump, name="swarm-heartbeat", daemon=True
        )
        self._loop_thread.start()
        self._heartbeat_thread.start()
        logger.info(
            "swarm_coordinator_started",
            workers=len(self._workers),
            loop_interval_sec=self.config.loop_interval_sec,
            max_concurrency=self.config.max_concurrency,
        )

    def stop(self, timeout: float = SHUTDOWN_JOIN_TIMEOUT_SEC) -> None:
        """Signal the loop to stop and wait for it. In-flight execution units are not cancelled."""
        self._stop_event.set()
        for thread in (self._loop_thread, self._heartbeat_thread):
            if thread is not None and thread is not threading.current_thread():
                thread.join(timeout=timeout)
                if thread.is_alive():
                    logger.warning("swarm_thread_shutdown_timeout", thread=thread.name, timeout_sec=timeout)
        with self._lock:
            self.is_running = False
            executor = self._executor if self._owns_executor else None
            if executor is not None:
                self._executor = None
        if executor is not None:
            executor.shutdown(wait=False)
        logger.info("swarm_coordinator_stopped", iterations=self._iterations)

    def _ensure_executor(self) -> Executor:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(
                max_workers=self.config.max_concurrency,
                thread_name_prefix="swarm-exec",
            )
            self._owns_executor = True
        return self._executor

    def _run_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                self.run_once()
                delay = self.config.loop_interval_sec
            except Exception as e:
                logger.exception("swarm_loop_iteration_failed", iteration=self._iterations, error=str(e))
                delay = self.config.error_backoff_sec
            self._stop_event.wait(timeout=delay)

    def _run_heartbeat_pump(self) -> None:
        while not self._stop_event.wait(timeout=self.config.heartbeat_interval_sec):
            with self._lock:
                refreshed = refresh_idle_heartbeats(self._workers, self._clock())
            logger.debug("swarm_heartbeat_pump", refreshed=refreshed)

    # ------------------------------------------------------------------
    # Worker registry
    # ------------------------------------------------------------------

    def initialize_default_workers(self) -> None:
        """Register the default pool: 3 token scanners, 2 tx scanners, 2 risk evaluators."""
        for entry in DEFAULT_POOL:
            for i in range(1, entry.count + 1):
                self.register_worker(f"{entry.worker_type}_{i}", entry.worker_type, entry.capabilities)
        logger.info("swarm_default_workers_initialized", workers=len(self._workers))

    def register_worker(
        self,
        worker_id: str,
        worker_type: str,
        capabilities: Iterable[str],
    ) -> dict[str, Any]:
        """
        Register a worker as IDLE with a fresh heartbeat.

        Re-registering an existing id (e.g. an OFFLINE worker brought back by a
        supervisor) resets it to IDLE and keeps its performance history.
        A BUSY worker cannot be re-registered.
        """
        worker_id = (worker_id or "").strip()
        if not worker_id:
            raise ValueError("worker_id must be non-empty")
        caps = frozenset(c.strip() for c in capabilities if c and c.strip())
        with self._lock:
            existing = self._workers.get(worker_id)
            if existing is not None and existing.status == WorkerStatus.BUSY:
                raise ValueError(f"Worker {worker_id} is busy with {existing.current_task}")
            worker = Worker(
                id=worker_id,
                worker_type=worker_type,
                capabilities=caps,
                last_heartbeat=self._clock(),
            )
            if existing is not None:
                worker.metrics = existing.metrics
            self._workers.add(worker)
            snapshot = worker.to_dict()
        logger.info(
            "swarm_worker_registered",
            worker_id=worker_id,
            worker_type=worker_type,
            capabilities=sorted(caps),
            re_registered=existing is not None,
        )
        return snapshot

    def record_heartbeat(self, worker_id: str) -> bool:
        """
        Refresh a worker's heartbeat. Returns False for an OFFLINE worker,
        which stays offline until re-registered.
        """
        with self._lock:
            worker = self._workers.get(worker_id)
            if worker is None:
                raise WorkerNotFoundError(f"Unknown worker: {worker_id}")
            if worker.status == WorkerStatus.OFFLINE:
                logger.debug("swarm_heartbeat_ignored_offline", worker_id=worker_id)
                return False
            worker.last_heartbeat = self._clock()
            return True

    def get_worker_status(self, worker_id: str) -> dict[str, Any] | None:
        with self._lock:
            worker = self._workers.get(worker_id)
            return worker.to_dict() if worker else None

    def list_workers(self) -> list[dict[str, Any]]:
        with self._lock:
            return [w.to_dict() for w in self._workers]

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    def submit_task(
        self,
        task_type: str | TaskType,
        target: str,
        parameters: TaskParameters | Mapping[str, Any] | None = None,
        priority: int = 1,
    ) -> str:
        """
        Queue a PENDING task and return its id. Returns immediately.

        Raises SubmissionError for an unknown task type, an empty target or
        invalid parameters.
        """
        ttype = TaskType.parse(task_type)
        if target is not None and not isinstance(target, str):
            raise SubmissionError(f"target address must be a string, got {type(target).__name__}")
        target = (target or "").strip()
        if not target:
            raise SubmissionError("target address must be non-empty")
        params = build_parameters(ttype, parameters)
        try:
            priority = int(priority)
        except (TypeError, ValueError) as e:
            raise SubmissionError(f"priority must be an integer, got {priority!r}") from e
        with self._lock:
            now = self._clock()
            seq = next(self._sequence)
            task = Task(
                id=f"{ttype.id_prefix}_{target}_{int(now)}_{seq}",
                task_type=ttype,
                target_address=target,
                parameters=params,
                priority=priority,
                created_at=now,
                sequence=seq,
            )
            self._queue.push(task)
        logger.info(
            "swarm_task_submitted",
            task_id=task.id,
            task_type=ttype.value,
            wallet=target,
            priority=priority,
        )
        return task.id

    def submit_wallet_analysis_task(self, wallet_address: str, priority: int = 1) -> str:
        """Comprehensive analysis: token + transaction scans aggregated into one risk assessment."""
        return self.submit_task(
            TaskType.COMPREHENSIVE_ANALYSIS,
            wallet_address,
            WalletAnalysisParams(include_tokens=True, include_transactions=True, tx_limit=self.config.tx_limit),
            priority,
        )

    def submit_token_analysis_task(self, wallet_address: str, priority: int = 1) -> str:
        return self.submit_task(TaskType.TOKEN_ANALYSIS, wallet_address, TokenAnalysisParams(), priority)

    def submit_transaction_analysis_task(self, wallet_address: str, priority: int = 1) -> str:
        return self.submit_task(
            TaskType.TRANSACTION_ANALYSIS,
            wallet_address,
            TransactionAnalysisParams(tx_limit=self.config.tx_limit),
            priority,
        )

    # ------------------------------------------------------------------
    # Control loop
    # ------------------------------------------------------------------

    def run_once(self) -> None:
        """One loop iteration: assign, monitor health, update metrics, clean up."""
        self._iterations += 1
        assignments = self._assign_pending_tasks()
        for task_id, worker_id in assignments:
            self._spawn_execution_unit(task_id, worker_id)
        with self._lock:
            self._monitor_worker_health()
            self._update_performance_metrics()
            self._cleanup_old_tasks()

    def _assign_pending_tasks(self) -> list[tuple[str, str]]:
        """Pair PENDING tasks with IDLE workers while the pool has a free thread."""
        assignments: list[tuple[str, str]] = []
        with self._lock:
            for task in self._queue.pending():
                if self._active_units >= self.config.max_concurrency:
                    logger.debug(
                        "swarm_assignment_saturated",
                        active_units=self._active_units,
                        max_concurrency=self.config.max_concurrency,
                    )
                    break
                worker = select_worker(self._workers, required_capabilities(task.task_type))
                if worker is None:
                    continue
                task.status = TaskStatus.ASSIGNED
                task.assigned_worker = worker.id
                worker.status = WorkerStatus.BUSY
                worker.current_task = task.id
                worker.last_heartbeat = self._clock()
                assignments.append((task.id, worker.id))
                self._active_units += 1
                logger.info(
                    "swarm_task_assigned",
                    task_id=task.id,
                    worker_id=worker.id,
                    priority=task.priority,
                )
        return assignments

    def _spawn_execution_unit(self, task_id: str, worker_id: str) -> None:
        try:
            self._ensure_executor().submit(self._execute, task_id, worker_id)
        except RuntimeError as e:
            # Executor already shut down; the task cannot go back to PENDING
            logger.error("swarm_execution_spawn_failed", task_id=task_id, worker_id=worker_id, error=str(e))
            with self._lock:
                self._active_units -= 1
                task = self._queue.get(task_id)
                if task is not None and task.status.is_in_flight:
                    self._record_failure(task, worker_id, ChainGuardianError(f"Executor unavailable: {e}"), 0.0)
                    self._release_worker(worker_id, task_id, duration=0.0, success=False)

    def _execute(self, task_id: str, worker_id: str) -> None:
        try:
            self._run_unit(task_id, worker_id)
        finally:
            with self._lock:
                self._active_units -= 1

    def _run_unit(self, task_id: str, worker_id: str) -> None:
        """Execution unit body: start boundary, analysis call, finish boundary."""
        log = bind_task(task_id, worker_id)
        with self._lock:
            task = self._queue.get(task_id)
            if task is None or task.status != TaskStatus.ASSIGNED or task.assigned_worker != worker_id:
                log.warning("swarm_execution_skipped", status=task.status.value if task else None)
                return
            task.status = TaskStatus.RUNNING
            task.started_at = self._clock()
            worker = self._workers.get(worker_id)
            if worker is not None:
                worker.last_heartbeat = task.started_at
            task_type, target, params = task.task_type, task.target_address, task.parameters
        log.info("swarm_task_running", task_type=task_type.value, wallet=target)

        outcome = execute_analysis(self._analyzers.get(task_type), target, params, task_id=task_id)

        with self._lock:
            task = self._queue.get(task_id)
            if task is None or task.status != TaskStatus.RUNNING or task.assigned_worker != worker_id:
                log.warning(
                    "swarm_late_result_discarded",
                    status=task.status.value if task else None,
                    success=outcome.success,
                    duration_sec=round(outcome.duration, 3),
                )
                return
            self._record_outcome(task, worker_id, outcome)
            self._release_worker(worker_id, task_id, duration=outcome.duration, success=outcome.success)
        if outcome.success:
            log.info("swarm_task_completed", duration_sec=round(outcome.duration, 3))
        else:
            log.warning(
                "swarm_task_failed",
                duration_sec=round(outcome.duration, 3),
                error=str(outcome.error),
                error_type=type(outcome.error).__name__,
            )

    def _record_outcome(self, task: Task, worker_id: str, outcome: ExecutionOutcome) -> None:
        if not outcome.success:
            self._record_failure(task, worker_id, outcome.error, outcome.duration)
            return
        now = self._clock()
        task.status = TaskStatus.COMPLETED
        self._completed.put(
            task.id,
            {
                "task_id": task.id,
                "status": TaskStatus.COMPLETED.value,
                "task": task.to_dict(),
                "result": dict(outcome.result or {}),
                "execution_time": outcome.duration,
                "worker_id": worker_id,
                "completed_at": format_ts(now),
            },
            finished_at=now,
        )
        self._completion.notify_all()

    def _record_failure(
        self,
        task: Task,
        worker_id: str,
        error: BaseException | None,
        execution_time: float,
    ) -> None:
        now = self._clock()
        task.status = TaskStatus.FAILED
        self._failed.put(
            task.id,
            {
                "task_id": task.id,
                "status": TaskStatus.FAILED.value,
                "task": task.to_dict(),
                "error": str(error),
                "error_type": type(error).__name__,
                "execution_time": execution_time,
                "worker_id": worker_id,
                "failed_at": format_ts(now),
            },
            finished_at=now,
        )
        self._completion.notify_all()

    def _release_worker(self, worker_id: str, task_id: str, *, duration: float, success: bool) -> None:
        worker = self._workers.get(worker_id)
        if worker is None or worker.current_task != task_id:
            return
        worker.metrics.record(duration, success)
        worker.status = WorkerStatus.IDLE
        worker.current_task = None
        worker.last_heartbeat = self._clock()

    def _monitor_worker_health(self) -> None:
        now = self._clock()
        for worker, stale_for in find_stale_workers(self._workers, now, self.config.heartbeat_timeout_sec):
            error = WorkerTimeoutError(worker.id, stale_for)
            failed_task = None
            if worker.status == WorkerStatus.BUSY and worker.current_task:
                task = self._queue.get(worker.current_task)
                if task is not None and task.status.is_in_flight:
                    started = task.started_at
                    self._record_failure(task, worker.id, error, now - started if started else 0.0)
                    failed_task = task.id
            worker.status = WorkerStatus.OFFLINE
            worker.current_task = None
            logger.error(
                "swarm_worker_offline",
                worker_id=worker.id,
                stale_for_sec=round(stale_for, 1),
                failed_task=failed_task,
            )

    def _update_performance_metrics(self) -> None:
        completed = self._completed.records()
        failed_count = len(self._failed)
        total = len(completed) + failed_count
        if total == 0:
            self._performance_stats = _empty_stats()
            return
        times = [r["execution_time"] for r in completed]
        self._performance_stats = {
            "tasks_processed": total,
            "successful_tasks": len(completed),
            "failed_tasks": failed_count,
            "success_rate": len(completed) / total,
            "average_completion_time": statistics.mean(times) if times else 0.0,
        }

    def _cleanup_old_tasks(self) -> None:
        evicted_completed = self._completed.trim()
        evicted_failed = self._failed.trim()
        removed = self._queue.remove_terminal()
        if evicted_completed or evicted_failed or removed:
            logger.debug(
                "swarm_cleanup",
                evicted_completed=len(evicted_completed),
                evicted_failed=len(evicted_failed),
                removed_from_queue=len(removed),
            )

    # ------------------------------------------------------------------
    # Status and polling
    # ------------------------------------------------------------------

    def get_task_status(self, task_id: str) -> dict[str, Any] | None:
        """Completed store, then failed store, then live queue; None when not found."""
        with self._lock:
            record = self._completed.get(task_id)
            if record is not None:
                return record
            record = self._failed.get(task_id)
            if record is not None:
                return record
            task = self._queue.get(task_id)
            return task.to_dict() if task else None

    def get_swarm_status(self) -> dict[str, Any]:
        """Read-only snapshot of worker/task counts and aggregate performance."""
        with self._lock:
            workers = self._workers.counts_by_status()
            tasks = self._queue.counts_by_status()
            return {
                "is_running": self.is_running,
                "workers": len(self._workers),
                "idle_workers": workers[WorkerStatus.IDLE],
                "busy_workers": workers[WorkerStatus.BUSY],
                "offline_workers": workers[WorkerStatus.OFFLINE],
                "pending_tasks": tasks[TaskStatus.PENDING],
                "assigned_tasks": tasks[TaskStatus.ASSIGNED],
                "running_tasks": tasks[TaskStatus.RUNNING],
                "completed_tasks": len(self._completed),
                "failed_tasks": len(self._failed),
                "performance_stats": dict(self._performance_stats),
            }

    def wait_for_completion(
        self,
        task_id: str,
        timeout: float,
        poll_interval: float | None = None,
    ) -> dict[str, Any] | None:
        """
        Block until task_id is COMPLETED/FAILED or timeout elapses.

        Returns the terminal record; on timeout a "still running" record with
        the current status (the task keeps executing and stays pollable);
        None when the id is unknown.
        """
        interval = poll_interval if poll_interval is not None else self.config.poll_interval_sec
        deadline = time.monotonic() + max(0.0, timeout)
        with self._completion:
            while True:
                status = self.get_task_status(task_id)
                if status is None:
                    return None
                if TaskStatus(status["status"]).is_terminal:
                    return status
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    return {
                        "task_id": task_id,
                        "status": status["status"],
                        "still_running": True,
                        "message": "Analysis in progress. Use task_id to check status.",
                    }
                self._completion.wait(timeout=min(interval, remaining))


def _empty_stats() -> dict[str, Any]:
    return {
        "tasks_processed": 0,
        "successful_tasks": 0,
        "failed_tasks": 0,
        "success_rate": 0.0,
        "average_completion_time": 0.0,
    }


_default_coordinator: SwarmCoordinator | None = None
_default_lock = threading.Lock()


def get_coordinator() -> SwarmCoordinator:
    """
    Return the process-wide coordinator, created on first use from Settings
    with the default worker pool. Not started; the caller owns start()/stop().
    """
    global _default_coordinator
    with _default_lock:
        if _default_coordinator is None:
            from chainguardian.config import get_settings

            _default_coordinator = SwarmCoordinator(SwarmConfig.from_settings(get_settings()))
        return _default_coordinator
