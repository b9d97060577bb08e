"""
Document Parser

Reads a roadmap Markdown document and extracts milestones, checklist
sections, tasks with their dependency annotations, and Mermaid diagram
blocks. Lines the parser does not model are kept verbatim in
`Document.lines` so they can be re-emitted unchanged.
"""

from __future__ import annotations

import logging
import re
from collections import Counter
from typing import Optional

from roadmap_sync.task_graph import (
    Bucket,
    DiagramBlock,
    DiagramStatement,
    Document,
    Line,
    Milestone,
    ParseError,
    Section,
    StatementKind,
    Task,
    is_task_id,
    split_task_id,
    task_id_for_key,
)

logger = logging.getLogger(__name__)

_EOL_RE = re.compile(r"\r\n|\n|\r")

# Diagram statement patterns
_KEY = r"[A-Za-z0-9_]+"
_SIDE = rf"{_KEY}(?:\s*&\s*{_KEY})*"
# Arrow, open, dotted and thick links, with an optional |label| or inline text
_LINK = (
    r"<?(?:-{2,}|={2,}|-\.+-)[->ox]?(?:\|[^|]*\|)?"
    r"|<?(?:--|==|-\.)\s+[^-=|.\s][^-=|]*?\s+(?:-{2,}|={2,}|\.+-)[->ox]?"
)
HEADER_RE = re.compile(r"^\s*(?:graph|flowchart)\b", re.IGNORECASE)
CLASS_DEF_RE = re.compile(r"^(\s*)classDef\s+([\w-]+)\b")
EDGE_RE = re.compile(rf"^(\s*)({_SIDE})\s*({_LINK})\s*({_SIDE})\s*;?\s*$")
NODE_RE = re.compile(
    r"^(\s*)([A-Za-z0-9_]+)"
    r"(\[\[.*\]\]|\[\(.*\)\]|\(\[.*\]\)|\(\(.*\)\)|\[.*\]|\(.*\)|\{\{.*\}\}|\{.*\}|>.*\])?"
    r"(?::::([\w-]+))?(\s*;?\s*)$"
)
RESERVED_WORDS = {
    "end", "subgraph", "direction", "graph", "flowchart",
    "class", "classdef", "style", "linkstyle", "click",
}
_QUOTED_RE = re.compile(r"\"[^\"]*\"")
_WORD_RE = re.compile(_KEY)


def split_lines(content: str) -> list[Line]:
    """Split text into lines, remembering each line's exact terminator."""
    lines = []
    pos = 0
    for match in _EOL_RE.finditer(content):
        lines.append(Line(content[pos:match.start()], match.group()))
        pos = match.end()
    if pos < len(content):
        lines.append(Line(content[pos:], ""))
    return lines


def parse_diagram_line(text: str, line_index: int) -> DiagramStatement:
    """Classify one line of a Mermaid block."""
    if HEADER_RE.match(text):
        return DiagramStatement(StatementKind.HEADER, text, line_index)

    match = CLASS_DEF_RE.match(text)
    if match:
        return DiagramStatement(
            StatementKind.CLASS_DEF, text, line_index,
            indent=match.group(1), key=match.group(2),
        )

    match = EDGE_RE.match(text)
    if match:
        return DiagramStatement(
            StatementKind.EDGE, text, line_index,
            indent=match.group(1),
            sources=[k.strip() for k in match.group(2).split("&")],
            targets=[k.strip() for k in match.group(4).split("&")],
            link=match.group(3),
        )

    match = NODE_RE.match(text)
    if match and match.group(2).lower() not in RESERVED_WORDS:
        shape = match.group(3) or ""
        css_class = match.group(4)
        # A bare word is not a declaration
        if shape or css_class:
            return DiagramStatement(
                StatementKind.NODE, text, line_index,
                indent=match.group(1), key=match.group(2),
                shape=shape, css_class=css_class, trailer=match.group(5),
            )

    return DiagramStatement(StatementKind.OTHER, text, line_index)


def referenced_task_keys(text: str) -> list[str]:
    """Task node keys named by a diagram line outside quoted labels and comments."""
    if text.lstrip().startswith("%%"):
        return []
    bare = _QUOTED_RE.sub("", text)
    return [k for k in _WORD_RE.findall(bare) if task_id_for_key(k) is not None]


class DocumentParser:
    """Parser for roadmap documents."""

    MILESTONE_RE = re.compile(
        r"^##\s+Milestone\s+(\d+)\b\s*(?:[:\-–—]\s*(.*?))?\s*$",
        re.IGNORECASE,
    )
    HEADING_RE = re.compile(r"^(#{1,6})\s+(.*?)\s*$")
    ANCHOR_RE = re.compile(r"<a\s+(?:id|name)\s*=\s*\"[^\"]*\"\s*>\s*</a>", re.IGNORECASE)
    FENCE_OPEN_RE = re.compile(r"^\s*(`{3,}|~{3,})\s*([\w-]*)")
    CHECKBOX_RE = re.compile(r"^\s*[-*+]\s+\[([ xX])\]\s*(.*?)\s*$")
    DEPENDS_RE = re.compile(
        r"(?:^|\s)[(\[{]?\s*depends\s+on\b:?\s*"
        r"(?P<body>\{[^{}]*\}|\[[^\[\]]*\]|[^(){}\[\]]*?)\s*[)\]}]?\s*$",
        re.IGNORECASE,
    )
    DEPENDENCY_SPLIT_RE = re.compile(r"\s*(?:,|;|&|\band\b)\s*", re.IGNORECASE)

    SECTION_NAMES = {
        "blocked": Bucket.BLOCKED,
        "to-do": Bucket.TODO,
        "todo": Bucket.TODO,
        "in-progress": Bucket.IN_PROGRESS,
        "done": Bucket.DONE,
    }

    @classmethod
    def parse(cls, content: str) -> Document:
        """
        Parse a roadmap document.

        Args:
            content: Raw Markdown text

        Returns:
            Document with milestones, tasks and diagram blocks

        Raises:
            ParseError: On malformed task IDs, dependency annotations,
                missing section headings, or an unterminated fence
        """
        lines = split_lines(content)
        endings = Counter(line.ending for line in lines if line.ending)
        newline = endings.most_common(1)[0][0] if endings else "\n"
        doc = Document(lines=lines, newline=newline)

        milestone: Optional[Milestone] = None
        section: Optional[Section] = None
        fence: Optional[tuple[str, str, int]] = None  # (marker, language, open index)

        for index, line in enumerate(lines):
            text = line.text

            if fence is not None:
                marker, language, open_index = fence
                if text.strip().startswith(marker) and not text.strip().strip(marker[0]):
                    if language == "mermaid":
                        cls._attach_diagram(doc, milestone, lines, open_index, index)
                    fence = None
                continue

            fence_match = cls.FENCE_OPEN_RE.match(text)
            if fence_match:
                fence = (fence_match.group(1), fence_match.group(2).lower(), index)
                section = cls._close_section(section, index)
                continue

            milestone_match = cls.MILESTONE_RE.match(text)
            if milestone_match:
                section = cls._close_section(section, index)
                cls._close_milestone(milestone, index)
                milestone = Milestone(
                    number=int(milestone_match.group(1)),
                    title=(milestone_match.group(2) or "").strip(),
                    heading_index=index,
                )
                if doc.get_milestone(milestone.number) is not None:
                    raise ParseError(
                        f"Milestone {milestone.number} appears twice", index + 1, text
                    )
                doc.milestones.append(milestone)
                continue

            heading_match = cls.HEADING_RE.match(text)
            if heading_match:
                level = len(heading_match.group(1))
                section = cls._close_section(section, index)
                bucket = cls._section_bucket(heading_match.group(2))
                if milestone is not None and bucket is not None and level >= 3:
                    if bucket in milestone.sections:
                        raise ParseError(
                            f"Duplicate {bucket.heading} section in milestone {milestone.number}",
                            index + 1,
                            text,
                        )
                    section = Section(bucket=bucket, heading_index=index)
                    milestone.sections[bucket] = section
                elif level <= 2:
                    cls._close_milestone(milestone, index)
                    milestone = None
                continue

            if section is not None and milestone is not None:
                checkbox = cls.CHECKBOX_RE.match(text)
                if checkbox:
                    task = cls._parse_entry(checkbox, section.bucket, milestone, index, text)
                    doc.tasks.append(task)
                    section.task_ids.append(task.id)
                    milestone.task_ids.append(task.id)

        if fence is not None:
            open_index = fence[2]
            raise ParseError("Unterminated code fence", open_index + 1, lines[open_index].text)

        cls._close_section(section, len(lines))
        cls._close_milestone(milestone, len(lines))

        for ms in doc.milestones:
            missing = [b.heading for b in Bucket if b not in ms.sections]
            if missing:
                raise ParseError(
                    f"Milestone {ms.number} is missing section(s): {', '.join(missing)}",
                    ms.heading_index + 1,
                    lines[ms.heading_index].text,
                )

        logger.debug(
            "Parsed %d milestone(s), %d task(s), %d diagram(s)",
            len(doc.milestones), len(doc.tasks), len(list(doc.diagrams())),
        )
        return doc

    @classmethod
    def _section_bucket(cls, heading_text: str) -> Optional[Bucket]:
        name = cls.ANCHOR_RE.sub("", heading_text).strip().strip("*_").strip()
        name = re.sub(r"[\s_]+", "-", name.lower())
        return cls.SECTION_NAMES.get(name)

    @staticmethod
    def _close_section(section: Optional[Section], index: int) -> None:
        if section is not None and section.end_index < 0:
            section.end_index = index
        return None

    @staticmethod
    def _close_milestone(milestone: Optional[Milestone], index: int) -> None:
        if milestone is not None and milestone.end_index < 0:
            milestone.end_index = index

    @staticmethod
    def _attach_diagram(
        doc: Document,
        milestone: Optional[Milestone],
        lines: list[Line],
        open_index: int,
        close_index: int,
    ) -> None:
        if milestone is not None:
            if milestone.diagram is not None:
                return
            block = DiagramBlock(open_index, close_index, milestone.number)
            milestone.diagram = block
        else:
            if doc.aggregate_diagram is not None:
                return
            block = DiagramBlock(open_index, close_index, None)
            doc.aggregate_diagram = block
        block.statements = [
            parse_diagram_line(lines[i].text, i) for i in range(open_index + 1, close_index)
        ]

    @classmethod
    def _parse_entry(
        cls,
        checkbox: re.Match,
        bucket: Bucket,
        milestone: Milestone,
        index: int,
        text: str,
    ) -> Task:
        """Parse one checklist line into a Task."""
        line_number = index + 1
        rest = checkbox.group(2)
        parts = rest.split(None, 1)
        if not parts:
            raise ParseError("Checklist entry has no task ID", line_number, text)

        task_id = parts[0].strip("*`").rstrip(":").strip("*`")
        if not is_task_id(task_id):
            raise ParseError(f"Malformed task ID {parts[0]!r}", line_number, text)

        if split_task_id(task_id)[0] != milestone.number:
            raise ParseError(
                f"Task {task_id} is listed under milestone {milestone.number}",
                line_number,
                text,
            )

        description = parts[1] if len(parts) > 1 else ""
        description = description.lstrip(":-–— ")
        dependencies: list[str] = []

        depends = cls.DEPENDS_RE.search(description)
        if depends:
            dependencies = cls._parse_dependencies(depends.group("body"), line_number, text)
            description = description[:depends.start()].rstrip(" -–—:;,")

        return Task(
            id=task_id,
            description=description,
            bucket=bucket,
            explicitly_done=checkbox.group(1).lower() == "x",
            dependencies=dependencies,
            line_number=line_number,
            line_index=index,
        )

    @classmethod
    def _parse_dependencies(cls, body: str, line_number: int, text: str) -> list[str]:
        inner = body.strip().strip("{}[]").strip()
        tokens = [t.strip("*` ") for t in cls.DEPENDENCY_SPLIT_RE.split(inner)]
        tokens = [t for t in tokens if t]
        if not tokens:
            raise ParseError("Dependency annotation lists no task IDs", line_number, text)

        dependencies: list[str] = []
        for token in tokens:
            if not is_task_id(token):
                raise ParseError(
                    f"Dependency {token!r} is not a task ID", line_number, text
                )
            if token not in dependencies:
                dependencies.append(token)
        return dependencies
