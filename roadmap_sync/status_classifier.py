"""
Status Classifier

Computes Blocked / To-Do / In-Progress / Done for every task from the
dependency graph and the task's current placement.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from roadmap_sync.task_graph import Bucket, Document, Pinned, Status, Task, TaskGraph

logger = logging.getLogger(__name__)


@dataclass
class Classification:
    """Output of one classification pass."""

    statuses: dict[str, Status] = field(default_factory=dict)
    dangling: dict[str, list[str]] = field(default_factory=dict)
    order: list[str] = field(default_factory=list)

    def status_of(self, task_id: str) -> Status:
        return self.statuses[task_id]

    def has_dangling(self, task_id: str) -> bool:
        return bool(self.dangling.get(task_id))


class StatusClassifier:
    """Classifies tasks in dependency order."""

    @classmethod
    def classify(cls, document: Document) -> Classification:
        """
        Classify every task in the document.

        Args:
            document: Parsed document with unique IDs

        Returns:
            Classification keyed by task ID

        Raises:
            CycleError: If open tasks depend on each other in a loop
        """
        graph = document.graph()
        result = Classification()

        for task in graph.topological_order():
            result.statuses[task.id] = cls._classify_task(task, graph, result)
            result.order.append(task.id)

        logger.debug(
            "Classified %d task(s): %s",
            len(result.statuses),
            ", ".join(f"{tid}={st.value}" for tid, st in result.statuses.items()),
        )
        return result

    @classmethod
    def _classify_task(cls, task: Task, graph: TaskGraph, result: Classification) -> Status:
        if task.explicitly_done:
            return Status.DONE

        blocked = False
        for dep_id in task.dependencies:
            if dep_id not in graph:
                # Missing dependencies count as satisfied
                result.dangling.setdefault(task.id, []).append(dep_id)
                continue
            if result.statuses[dep_id] != Status.DONE:
                blocked = True

        if blocked:
            return Status.BLOCKED
        if task.placement == Pinned(Bucket.IN_PROGRESS):
            return Status.IN_PROGRESS
        return Status.TODO
