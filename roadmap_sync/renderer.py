"""
Document Renderer

Serialises the reconciled model back to text. Only section bodies with
moves and diagram bodies that changed are rewritten; every other line is
emitted with its original bytes and line ending.
"""

from __future__ import annotations

import logging

from roadmap_sync.diagram_sync import SyncResult
from roadmap_sync.section_reconciler import ReconcilePlan
from roadmap_sync.task_graph import Document, Line, Milestone, Section, Task

logger = logging.getLogger(__name__)


class DocumentRenderer:
    """Rewrites moved checklist entries and regenerated diagrams."""

    @classmethod
    def render(cls, document: Document, plan: ReconcilePlan, sync: SyncResult) -> str:
        """
        Render the reconciled document.

        Args:
            document: Parsed source document (not modified)
            plan: Final placement from the reconciler
            sync: Regenerated diagram bodies

        Returns:
            The new document text
        """
        lines = document.lines
        replacements: dict[int, tuple[int, list[Line]]] = {}
        tasks = document.task_index()
        moved = plan.moved_ids()

        for milestone in document.milestones:
            for section in milestone.sections.values():
                if plan.section_order(milestone.number, section.bucket) == section.task_ids:
                    continue
                body = cls._render_section(document, milestone, section, plan, tasks, moved)
                replacements[section.heading_index + 1] = (section.end_index, body)

        for diagram in sync.diagrams:
            if not diagram.changed:
                continue
            body = [
                Line(lines[line.origin].text, lines[line.origin].ending or document.newline)
                if line.origin is not None
                else Line(line.text, document.newline)
                for line in diagram.lines
            ]
            replacements[diagram.block.open_index + 1] = (diagram.block.close_index, body)

        rewritten = len(replacements)
        out: list[Line] = []
        index = 0
        while index < len(lines):
            if index in replacements:
                end, body = replacements.pop(index)
                out.extend(body)
                if end > index:
                    index = end
                    continue
            out.append(lines[index])
            index += 1
        if len(lines) in replacements:
            out.extend(replacements.pop(len(lines))[1])

        logger.debug("Rendered %d line(s), %d region(s) rewritten", len(out), rewritten)
        return cls._join(out, document)

    @staticmethod
    def _join(out: list[Line], document: Document) -> str:
        trailing = document.lines[-1].ending if document.lines else ""
        parts = []
        for position, line in enumerate(out):
            if position == len(out) - 1:
                ending = trailing
            else:
                ending = line.ending or document.newline
            parts.append(line.text + ending)
        return "".join(parts)

    @staticmethod
    def _render_section(
        document: Document,
        milestone: Milestone,
        section: Section,
        plan: ReconcilePlan,
        tasks: dict[str, Task],
        moved: set[str],
    ) -> list[Line]:
        """Remove departing entries and append arriving ones at the bottom."""
        lines = document.lines
        start, end = section.heading_index + 1, section.end_index

        departing = set()
        staying = set()
        for task_id in section.task_ids:
            task = tasks[task_id]
            if task_id in moved:
                departing.add(task.line_index)
            else:
                staying.add(task.line_index)

        kept = []
        previous_blank = False
        removed = False
        for i in range(start, end):
            if i in departing:
                removed = True
                continue
            blank = not lines[i].text.strip()
            if blank and previous_blank and removed:
                # Collapse the double blank left where an entry used to be
                removed = False
                continue
            kept.append(i)
            previous_blank = blank
            removed = False
        body = [lines[i] for i in kept]

        arriving = []
        for task_id in plan.section_order(milestone.number, section.bucket):
            if task_id in section.task_ids:
                continue
            source = lines[tasks[task_id].line_index]
            arriving.append(Line(source.text, source.ending or document.newline))

        if not arriving:
            return body

        entry_positions = [pos for pos, i in enumerate(kept) if i in staying]
        if entry_positions:
            position = entry_positions[-1] + 1
            body[position:position] = arriving
            return body

        position = 1 if body and not body[0].text.strip() else 0
        body[position:position] = arriving
        if position == len(body) - len(arriving):
            # Keep a blank line before the next heading
            body.append(Line("", document.newline))
        return body
