"""
Section Reconciler

Turns classifier output into final checklist placement: which section each
task belongs in, the list of moves needed to get there, and the resulting
order of every section.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from roadmap_sync.status_classifier import Classification
from roadmap_sync.task_graph import Bucket, Document, Status

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Move:
    """A checklist entry relocated between sections."""

    task_id: str
    from_bucket: Bucket
    to_bucket: Bucket


@dataclass
class ReconcilePlan:
    """Final placement for every task."""

    statuses: dict[str, Status] = field(default_factory=dict)
    buckets: dict[str, Bucket] = field(default_factory=dict)
    moves: list[Move] = field(default_factory=list)
    sections: dict[tuple[int, Bucket], list[str]] = field(default_factory=dict)
    held: list[str] = field(default_factory=list)
    newly_unblocked: list[str] = field(default_factory=list)

    def moved_ids(self) -> set[str]:
        return {m.task_id for m in self.moves}

    def is_moved(self, task_id: str) -> bool:
        return task_id in self.moved_ids()

    def section_order(self, milestone: int, bucket: Bucket) -> list[str]:
        return self.sections.get((milestone, bucket), [])

    def proposed_promotions(self) -> list[str]:
        """To-Do tasks a human may move into In-Progress, in document order."""
        promotions = []
        for (_, bucket), task_ids in self.sections.items():
            if bucket == Bucket.TODO:
                promotions.extend(task_ids)
        return promotions

    def counts(self) -> dict[Bucket, int]:
        counts = dict.fromkeys(Bucket, 0)
        for bucket in self.buckets.values():
            counts[bucket] += 1
        return counts


class SectionReconciler:
    """Decides the minimal set of section moves."""

    @classmethod
    def reconcile(cls, document: Document, classification: Classification) -> ReconcilePlan:
        """
        Build the reconcile plan.

        Args:
            document: Parsed document
            classification: Statuses from the classifier

        Returns:
            ReconcilePlan with moves and per-section ordering
        """
        plan = ReconcilePlan()

        for task in document.tasks:
            status = classification.status_of(task.id)
            if (
                status in (Status.TODO, Status.IN_PROGRESS)
                and task.bucket == Bucket.BLOCKED
                and classification.has_dangling(task.id)
            ):
                # Unknown dependencies never promote a task out of Blocked
                status = Status.BLOCKED
                plan.held.append(task.id)
                logger.info(
                    "Keeping %s in Blocked: unknown dependencies %s",
                    task.id,
                    ", ".join(classification.dangling[task.id]),
                )

            plan.statuses[task.id] = status
            plan.buckets[task.id] = status.bucket

            if status.bucket != task.bucket:
                plan.moves.append(Move(task.id, task.bucket, status.bucket))
                if task.bucket == Bucket.BLOCKED and status != Status.DONE:
                    plan.newly_unblocked.append(task.id)
                logger.info(
                    "Moving %s: %s -> %s", task.id, task.bucket.heading, status.bucket.heading
                )

        moved = {m.task_id for m in plan.moves}
        for milestone in document.milestones:
            for bucket in Bucket:
                section = milestone.sections[bucket]
                staying = [tid for tid in section.task_ids if tid not in moved]
                arriving = [
                    tid
                    for tid in milestone.task_ids
                    if tid in moved and plan.buckets[tid] == bucket
                ]
                plan.sections[(milestone.number, bucket)] = staying + arriving

        logger.debug("Reconcile plan: %d move(s), %d held", len(plan.moves), len(plan.held))
        return plan
