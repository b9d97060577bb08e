"""
Validator

Graph and diagram invariant checks run before and after reconciliation.
Any violation aborts the run before output is produced.
"""

from __future__ import annotations

import logging
from collections import defaultdict

from roadmap_sync.diagram_sync import SyncResult, SyncedDiagram
from roadmap_sync.document_parser import parse_diagram_line, referenced_task_keys
from roadmap_sync.section_reconciler import ReconcilePlan
from roadmap_sync.task_graph import (
    MARKER_KEY_RE,
    Bucket,
    CycleError,
    DanglingReferenceWarning,
    Document,
    DuplicateIdError,
    IntegrityError,
    StatementKind,
    Status,
    node_key,
    task_id_for_key,
)

logger = logging.getLogger(__name__)


class RoadmapValidator:
    """Checks ID uniqueness, acyclicity and view agreement."""

    @classmethod
    def pre_check(cls, document: Document) -> list[DanglingReferenceWarning]:
        """
        Validate the document as found.

        Returns:
            Warnings for dependencies on IDs missing from the document

        Raises:
            DuplicateIdError: If two entries share an ID
            CycleError: If open tasks form a dependency cycle
        """
        cls.check_unique_ids(document)
        cls.check_acyclic(document)

        graph = document.graph()
        warnings = []
        for task in document.tasks:
            for dep_id in task.dependencies:
                if dep_id not in graph:
                    warning = DanglingReferenceWarning(
                        dep_id, task_id=task.id, line_number=task.line_number
                    )
                    logger.warning(str(warning))
                    warnings.append(warning)
        return warnings

    @classmethod
    def post_check(cls, document: Document, plan: ReconcilePlan, sync: SyncResult) -> None:
        """
        Validate the reconciled model about to be rendered.

        Raises:
            DuplicateIdError: If two entries share an ID
            CycleError: If open tasks form a dependency cycle
            IntegrityError: If placement or diagrams disagree with the checklist
        """
        cls.check_unique_ids(document)
        cls.check_acyclic(document)

        problems = cls._placement_problems(document, plan)
        for diagram in sync.diagrams:
            problems.extend(cls._diagram_problems(document, plan, diagram))

        if problems:
            for problem in problems:
                logger.error("Integrity check failed: %s", problem)
            raise IntegrityError(problems)

    @staticmethod
    def check_unique_ids(document: Document) -> None:
        seen: dict[str, list[int]] = defaultdict(list)
        for task in document.tasks:
            seen[task.id].append(task.line_number)
        for task_id, line_numbers in seen.items():
            if len(line_numbers) > 1:
                raise DuplicateIdError(task_id, line_numbers)

    @staticmethod
    def check_acyclic(document: Document) -> None:
        cycle = document.graph().find_cycle()
        if cycle is not None:
            raise CycleError(cycle)

    @staticmethod
    def _placement_problems(document: Document, plan: ReconcilePlan) -> list[str]:
        problems = []
        placed: dict[str, int] = defaultdict(int)
        for task_ids in plan.sections.values():
            for task_id in task_ids:
                placed[task_id] += 1

        for task in document.tasks:
            if placed[task.id] != 1:
                problems.append(f"{task.id} is placed in {placed[task.id]} sections")
            bucket = plan.buckets.get(task.id)
            if (bucket == Bucket.DONE) != task.explicitly_done:
                problems.append(f"{task.id} is in {bucket} but checkbox done={task.explicitly_done}")
            status = plan.statuses.get(task.id)
            if status is None or status.bucket != bucket:
                problems.append(f"{task.id} status {status} does not match section {bucket}")
        return problems

    @staticmethod
    def _diagram_problems(
        document: Document,
        plan: ReconcilePlan,
        diagram: SyncedDiagram,
    ) -> list[str]:
        """Re-read the regenerated block and compare it with the checklist."""
        scope = diagram.block.milestone
        name = "aggregate diagram" if scope is None else f"milestone {scope} diagram"
        problems = []

        open_tasks = [
            t
            for t in document.tasks
            if plan.statuses[t.id] != Status.DONE and (scope is None or t.milestone == scope)
        ]
        expected_nodes = {node_key(t.id) for t in open_tasks}
        open_ids = {t.id for t in open_tasks}
        expected_edges = {
            (node_key(dep_id), node_key(t.id))
            for t in open_tasks
            for dep_id in t.dependencies
            if dep_id in open_ids
        }

        task_nodes: set[str] = set()
        marker_nodes: set[str] = set()
        task_edges: set[tuple[str, str]] = set()
        for index, line in enumerate(diagram.lines):
            st = parse_diagram_line(line.text, index)
            if st.kind == StatementKind.NODE:
                if task_id_for_key(st.key) is not None:
                    task_nodes.add(st.key)
                    if st.css_class != diagram.target.nodes.get(st.key):
                        problems.append(f"{name}: {st.key} has class {st.css_class}")
                elif MARKER_KEY_RE.match(st.key):
                    marker_nodes.add(st.key)
            elif st.kind == StatementKind.EDGE:
                for source in st.sources:
                    for dest in st.targets:
                        if task_id_for_key(source) and task_id_for_key(dest):
                            task_edges.add((source, dest))
            elif st.kind == StatementKind.OTHER:
                for key in referenced_task_keys(st.text):
                    if key not in diagram.target.nodes:
                        problems.append(f"{name}: line {index + 1} still references {key}")

        if task_nodes != expected_nodes:
            problems.append(
                f"{name}: nodes {sorted(task_nodes ^ expected_nodes)} disagree with checklist"
            )
        if marker_nodes != diagram.target.markers:
            problems.append(
                f"{name}: milestone markers {sorted(marker_nodes ^ diagram.target.markers)} disagree"
            )
        if task_edges != expected_edges:
            problems.append(
                f"{name}: edges {sorted(task_edges ^ expected_edges)} disagree with dependencies"
            )
        return problems
