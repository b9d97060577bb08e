"""
Diagram Synchronizer

Regenerates the Mermaid dependency diagrams from the reconciled model.

The target node and edge sets are computed from scratch on every run and
then projected onto the existing block: surviving lines keep their bytes,
declarations and edges of finished tasks disappear, and anything the block
is missing is appended next to its peers.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional

from roadmap_sync.document_parser import referenced_task_keys
from roadmap_sync.models import RoadmapConfig
from roadmap_sync.section_reconciler import ReconcilePlan
from roadmap_sync.task_graph import (
    DanglingReferenceWarning,
    DiagramBlock,
    DiagramStatement,
    Document,
    StatementKind,
    Status,
    Task,
    is_managed_key,
    marker_key,
    node_key,
    split_task_id,
    task_id_for_key,
)

logger = logging.getLogger(__name__)


@dataclass
class DiagramTarget:
    """What a diagram must show after reconciliation."""

    milestone: Optional[int]
    nodes: dict[str, str] = field(default_factory=dict)  # key -> class
    labels: dict[str, str] = field(default_factory=dict)  # key -> shape text
    edges: list[tuple[str, str]] = field(default_factory=list)
    task_ids: set[str] = field(default_factory=set)
    markers: set[str] = field(default_factory=set)

    def task_edges(self) -> set[tuple[str, str]]:
        return {e for e in self.edges if e[1] not in self.markers}


@dataclass
class OutputLine:
    """A diagram body line; `origin` is set when carried over unchanged."""

    text: str
    origin: Optional[int] = None


@dataclass
class SyncedDiagram:
    """Regenerated body for one diagram block."""

    block: DiagramBlock
    target: DiagramTarget
    lines: list[OutputLine] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        origins = [line.origin for line in self.lines]
        return origins != [st.line_index for st in self.block.statements]


@dataclass
class SyncResult:
    """All regenerated diagrams plus stale-reference warnings."""

    diagrams: list[SyncedDiagram] = field(default_factory=list)
    warnings: list[DanglingReferenceWarning] = field(default_factory=list)

    def for_milestone(self, milestone: Optional[int]) -> Optional[SyncedDiagram]:
        for diagram in self.diagrams:
            if diagram.block.milestone == milestone:
                return diagram
        return None


def escape_label(text: str) -> str:
    """Make text safe inside a quoted Mermaid label."""
    return text.replace('"', "#quot;").replace("\n", " ").strip()


class DiagramSynchronizer:
    """Keeps diagram blocks a projection of the checklist."""

    def __init__(self, config: Optional[RoadmapConfig] = None) -> None:
        self.config = config or RoadmapConfig()

    def synchronize(self, document: Document, plan: ReconcilePlan) -> SyncResult:
        """Regenerate the aggregate diagram and every milestone diagram."""
        result = SyncResult()

        if document.aggregate_diagram is not None:
            target = self.build_target(document, plan, None)
            result.diagrams.append(
                self.project(document, document.aggregate_diagram, target, result.warnings)
            )
        else:
            logger.warning("Roadmap has no aggregate diagram block; skipped")

        for milestone in document.milestones:
            if milestone.diagram is None:
                logger.warning("Milestone %d has no diagram block; skipped", milestone.number)
                continue
            target = self.build_target(document, plan, milestone.number)
            result.diagrams.append(
                self.project(document, milestone.diagram, target, result.warnings)
            )

        return result

    def build_target(
        self,
        document: Document,
        plan: ReconcilePlan,
        milestone: Optional[int],
    ) -> DiagramTarget:
        """Compute nodes, classes and edges for one diagram from the plan."""
        target = DiagramTarget(milestone=milestone)
        numbers = (
            [m.number for m in document.milestones] if milestone is None else [milestone]
        )
        # Task ID order keeps generated lines stable across section moves
        open_tasks = sorted(
            (
                t
                for t in document.tasks
                if plan.statuses[t.id] != Status.DONE and t.milestone in numbers
            ),
            key=lambda t: split_task_id(t.id),
        )
        open_ids = {t.id for t in open_tasks}
        target.task_ids = open_ids

        if self.config.milestone_markers:
            for number in numbers:
                key = marker_key(number)
                ms = document.get_milestone(number)
                title = f"Milestone {number}: {ms.title}" if ms and ms.title else f"Milestone {number}"
                target.nodes[key] = self.config.milestone_class
                target.labels[key] = f'{{{{"{escape_label(title)}"}}}}'
                target.markers.add(key)

        for task in open_tasks:
            key = node_key(task.id)
            target.nodes[key] = self._class_for(plan.statuses[task.id])
            target.labels[key] = self._label_for(task)

        for task in open_tasks:
            for dep_id in task.dependencies:
                if dep_id in open_ids:
                    target.edges.append((node_key(dep_id), node_key(task.id)))

        if self.config.milestone_markers:
            for number in numbers:
                members = [t for t in open_tasks if t.milestone == number]
                required = {dep for t in members for dep in t.dependencies}
                for task in members:
                    if task.id not in required:
                        target.edges.append((node_key(task.id), marker_key(number)))

        return target

    def _class_for(self, status: Status) -> str:
        if status in (Status.TODO, Status.IN_PROGRESS):
            return self.config.open_class
        return self.config.blocked_class

    @staticmethod
    def _label_for(task: Task) -> str:
        text = f"{task.id}: {task.description}" if task.description else task.id
        return f'["{escape_label(text)}"]'

    def project(
        self,
        document: Document,
        block: DiagramBlock,
        target: DiagramTarget,
        warnings: list[DanglingReferenceWarning],
    ) -> SyncedDiagram:
        """Project the target onto an existing block, keeping surviving lines."""
        synced = SyncedDiagram(block=block, target=target)
        out = synced.lines
        target_edges = set(target.edges)
        indent = self._block_indent(block.statements)

        emitted: set[str] = set()
        covered: set[tuple[str, str]] = set()
        class_names: set[str] = set()
        has_header = False
        header_pos = 0
        class_pos: Optional[int] = None
        node_pos: Optional[int] = None
        edge_pos: Optional[int] = None

        for st in block.statements:
            if st.kind == StatementKind.HEADER:
                out.append(OutputLine(st.text, st.line_index))
                has_header = True
                header_pos = len(out)

            elif st.kind == StatementKind.CLASS_DEF:
                out.append(OutputLine(st.text, st.line_index))
                class_names.add(st.key)
                class_pos = len(out)

            elif st.kind == StatementKind.NODE and is_managed_key(st.key):
                if st.key not in target.nodes or st.key in emitted:
                    self._note_stale(document, st.key, st, warnings)
                    continue
                emitted.add(st.key)
                css_class = target.nodes[st.key]
                if st.css_class == css_class:
                    out.append(OutputLine(st.text, st.line_index))
                else:
                    out.append(OutputLine(f"{st.indent}{st.key}{st.shape}:::{css_class}{st.trailer}"))
                node_pos = len(out)

            elif st.kind == StatementKind.EDGE:
                line = self._project_edge(document, st, target, target_edges, covered, warnings)
                if line is not None:
                    out.append(line)
                    edge_pos = len(out)

            elif st.kind == StatementKind.OTHER and self._mentions_removed(st, target):
                for key in referenced_task_keys(st.text):
                    self._note_stale(document, key, st, warnings)
                continue

            else:
                out.append(OutputLine(st.text, st.line_index))

        if class_pos is None:
            class_pos = header_pos
        if node_pos is None:
            node_pos = class_pos
        if edge_pos is None:
            edge_pos = len(out)

        insertions: list[tuple[int, int, list[str]]] = []
        if not has_header:
            insertions.append((0, 0, [f"graph {self.config.diagram_direction}"]))

        missing_classes = [
            indent + line
            for line in self.config.class_def_lines()
            if line.split()[1] not in class_names
        ]
        insertions.append((class_pos, 1, missing_classes))

        missing_nodes = [
            f"{indent}{key}{target.labels[key]}:::{css_class}"
            for key, css_class in target.nodes.items()
            if key not in emitted
        ]
        insertions.append((node_pos, 2, missing_nodes))

        insertions.append((edge_pos, 3, self._edge_lines(target, covered, indent)))

        # Later positions first so earlier anchors stay valid
        for position, _, texts in sorted(insertions, key=lambda i: (i[0], i[1]), reverse=True):
            out[position:position] = [OutputLine(text) for text in texts]

        if synced.changed:
            logger.debug(
                "Diagram %s regenerated: %d node(s), %d edge(s)",
                "aggregate" if block.milestone is None else f"M{block.milestone}",
                len(target.nodes),
                len(target.edges),
            )
        return synced

    def _project_edge(
        self,
        document: Document,
        st: DiagramStatement,
        target: DiagramTarget,
        target_edges: set[tuple[str, str]],
        covered: set[tuple[str, str]],
        warnings: list[DanglingReferenceWarning],
    ) -> Optional[OutputLine]:
        """Strip removed nodes from an edge line; None when the line goes away."""
        sources = [k for k in st.sources if not is_managed_key(k) or k in target.nodes]
        targets = [k for k in st.targets if not is_managed_key(k) or k in target.nodes]
        for key in set(st.sources + st.targets) - set(sources + targets):
            self._note_stale(document, key, st, warnings)

        if not sources or not targets:
            return None

        pairs = [
            (s, t)
            for s in sources
            for t in targets
            if is_managed_key(s) and is_managed_key(t)
        ]
        if any(pair not in target_edges for pair in pairs):
            # Valid pairs on this line are re-emitted as missing edges
            return None

        covered.update(pairs)
        if sources == st.sources and targets == st.targets:
            return OutputLine(st.text, st.line_index)
        return OutputLine(f"{st.indent}{' & '.join(sources)} {st.link} {' & '.join(targets)}")

    @staticmethod
    def _mentions_removed(st: DiagramStatement, target: DiagramTarget) -> bool:
        """True when an unmodelled line (style, click, labelled link) names a removed task."""
        return any(key not in target.nodes for key in referenced_task_keys(st.text))

    @staticmethod
    def _edge_lines(
        target: DiagramTarget,
        covered: set[tuple[str, str]],
        indent: str,
    ) -> list[str]:
        """Missing edges, one line per destination with combined sources."""
        grouped: dict[str, list[str]] = {}
        for source, dest in target.edges:
            if (source, dest) in covered:
                continue
            sources = grouped.setdefault(dest, [])
            if source not in sources:
                sources.append(source)
        return [f"{indent}{' & '.join(sources)} --> {dest}" for dest, sources in grouped.items()]

    def _block_indent(self, statements: list[DiagramStatement]) -> str:
        for st in statements:
            if st.kind in (StatementKind.NODE, StatementKind.EDGE, StatementKind.CLASS_DEF):
                return st.indent
        return self.config.indent

    @staticmethod
    def _note_stale(
        document: Document,
        key: str,
        st: DiagramStatement,
        warnings: list[DanglingReferenceWarning],
    ) -> None:
        """Warn when a diagram mentions a task the checklist no longer has."""
        task_id = task_id_for_key(key)
        if task_id is None or document.get_task(task_id) is not None:
            return
        warning = DanglingReferenceWarning(
            task_id, line_number=st.line_index + 1, source="diagram"
        )
        if all((w.missing_id, w.line_number) != (task_id, warning.line_number) for w in warnings):
            warnings.append(warning)
            logger.warning(str(warning))
