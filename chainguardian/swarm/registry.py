"""
Worker registry, live task queue and bounded result stores.

Plain containers: none of them lock. SwarmCoordinator owns one of each and
touches them only while holding its lock.
"""

from __future__ import annotations

from collections import Counter
from typing import Any, Iterator

from chainguardian.swarm.models import Task, TaskStatus, Worker, WorkerStatus


class WorkerRegistry:
    """Workers by id, iterated in registration order."""

    def __init__(self) -> None:
        self._workers: dict[str, Worker] = {}

    def add(self, worker: Worker) -> None:
        """Insert or replace; a replaced worker keeps its registration position."""
        self._workers[worker.id] = worker

    def get(self, worker_id: str) -> Worker | None:
        return self._workers.get(worker_id)

    def __contains__(self, worker_id: object) -> bool:
        return worker_id in self._workers

    def __iter__(self) -> Iterator[Worker]:
        return iter(list(self._workers.values()))

    def __len__(self) -> int:
        return len(self._workers)

    def counts_by_status(self) -> dict[WorkerStatus, int]:
        counts = Counter(w.status for w in self._workers.values())
        return {status: counts.get(status, 0) for status in WorkerStatus}


class TaskQueue:
    """
    Live tasks ordered by descending priority, then submission order.

    Holds PENDING/ASSIGNED/RUNNING tasks plus terminal ones until the next
    cleanup pass removes them.
    """

    def __init__(self) -> None:
        self._tasks: list[Task] = []
        self._index: dict[str, Task] = {}

    def push(self, task: Task) -> None:
        self._tasks.append(task)
        self._index[task.id] = task
        self._tasks.sort(key=lambda t: t.sort_key)

    def get(self, task_id: str) -> Task | None:
        return self._index.get(task_id)

    def pending(self) -> list[Task]:
        """PENDING tasks in assignment order."""
        return [t for t in self._tasks if t.status == TaskStatus.PENDING]

    def remove_terminal(self) -> list[str]:
        """Drop COMPLETED/FAILED tasks; return removed ids."""
        removed = [t.id for t in self._tasks if t.status.is_terminal]
        if removed:
            self._tasks = [t for t in self._tasks if not t.status.is_terminal]
            for task_id in removed:
                self._index.pop(task_id, None)
        return removed

    def counts_by_status(self) -> dict[TaskStatus, int]:
        counts = Counter(t.status for t in self._tasks)
        return {status: counts.get(status, 0) for status in TaskStatus}

    def __iter__(self) -> Iterator[Task]:
        return iter(list(self._tasks))

    def __len__(self) -> int:
        return len(self._tasks)


class ResultStore:
    """
    Terminal task records keyed by task id, bounded by trim().

    trim() keeps the `limit` most recent records by finish time and evicts the
    oldest first. Between trims the store may briefly exceed the limit.
    """

    def __init__(self, limit: int) -> None:
        self.limit = max(1, int(limit))
        self._records: dict[str, tuple[float, int, dict[str, Any]]] = {}
        self._seq = 0

    def put(self, task_id: str, record: dict[str, Any], finished_at: float) -> None:
        self._seq += 1
        self._records[task_id] = (finished_at, self._seq, record)

    def get(self, task_id: str) -> dict[str, Any] | None:
        entry = self._records.get(task_id)
        return dict(entry[2]) if entry else None

    def __contains__(self, task_id: object) -> bool:
        return task_id in self._records

    def __len__(self) -> int:
        return len(self._records)

    def records(self) -> list[dict[str, Any]]:
        return [record for _, _, record in self._records.values()]

    def trim(self) -> list[str]:
        """Evict the oldest records beyond limit; return evicted ids."""
        if len(self._records) <= self.limit:
            return []
        ordered = sorted(self._records.items(), key=lambda item: (item[1][0], item[1][1]), reverse=True)
        evicted = [task_id for task_id, _ in ordered[self.limit:]]
        self._records = dict(ordered[: self.limit])
        return evicted
