"""
Dataset Store — holds the uploaded client, worker and task records.

Updated by: Data upload (PUT /data)
Queried by: Confidence scoring, rule generation, export
"""

import threading
from collections import Counter
from typing import Any, Dict, List, Optional

from alchemist_kernel.models.entities import AvailableData, Client, Task, Worker


class DatasetStore:
    """
    In-memory entity store. Records are immutable; uploads replace whole
    collections.
    """

    def __init__(
        self,
        clients: Optional[List[Client]] = None,
        workers: Optional[List[Worker]] = None,
        tasks: Optional[List[Task]] = None,
    ):
        self._lock = threading.RLock()
        self._clients: List[Client] = list(clients or [])
        self._workers: List[Worker] = list(workers or [])
        self._tasks: List[Task] = list(tasks or [])

    @property
    def clients(self) -> List[Client]:
        with self._lock:
            return list(self._clients)

    @property
    def workers(self) -> List[Worker]:
        with self._lock:
            return list(self._workers)

    @property
    def tasks(self) -> List[Task]:
        with self._lock:
            return list(self._tasks)

    def replace(
        self,
        clients: Optional[List[Client]] = None,
        workers: Optional[List[Worker]] = None,
        tasks: Optional[List[Task]] = None,
    ) -> None:
        """Replace the given collections; collections passed as None are kept."""
        with self._lock:
            if clients is not None:
                self._clients = list(clients)
            if workers is not None:
                self._workers = list(workers)
            if tasks is not None:
                self._tasks = list(tasks)

    def clear(self) -> None:
        with self._lock:
            self._clients, self._workers, self._tasks = [], [], []

    def get_task(self, task_id: str) -> Optional[Task]:
        with self._lock:
            return next((t for t in self._tasks if t.task_id == task_id), None)

    def get_workers_by_group(self, worker_group: str) -> List[Worker]:
        with self._lock:
            return [w for w in self._workers if w.worker_group == worker_group]

    def available_data(self) -> AvailableData:
        """A consistent view of the dataset for scoring and generation."""
        with self._lock:
            return AvailableData.from_entities(self._clients, self._workers, self._tasks)

    def summary(self) -> Dict[str, Any]:
        """Counts and lookup lists, as shown next to the rule builder."""
        data = self.available_data()
        return {
            "clients": len(data.clients),
            "workers": len(data.workers),
            "tasks": len(data.tasks),
            "clientGroups": data.client_groups,
            "workerGroups": data.worker_groups,
            "taskIds": data.task_ids,
            "skills": data.skills,
            "workersPerGroup": dict(Counter(w.worker_group for w in data.workers if w.worker_group)),
        }
