"""
Task Graph Model

Value types for roadmap documents (tasks, milestones, sections, diagram
blocks) and the invariant checks shared by every pipeline stage.
"""

from __future__ import annotations

import heapq
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, Iterator, Optional, Union


# =============================================================================
# ERRORS
# =============================================================================


class RoadmapError(Exception):
    """Base class for every fatal reconciliation error."""

    pass


class ParseError(RoadmapError):
    """Raised when the document contains malformed required syntax."""

    def __init__(self, message: str, line_number: int = 0, line: str = "") -> None:
        self.message = message
        self.line_number = line_number
        self.line = line
        if line_number:
            super().__init__(f"line {line_number}: {message}: {line.strip()!r}")
        else:
            super().__init__(message)


class CycleError(RoadmapError):
    """Raised when non-Done tasks depend on each other in a loop."""

    def __init__(self, cycle: list[str]) -> None:
        self.cycle = list(cycle)
        path = " -> ".join(self.cycle + self.cycle[:1])
        super().__init__(f"Dependency cycle among open tasks: {path}")


class DuplicateIdError(RoadmapError):
    """Raised when two checklist entries share one task ID."""

    def __init__(self, task_id: str, line_numbers: list[int]) -> None:
        self.task_id = task_id
        self.line_numbers = list(line_numbers)
        lines = ", ".join(str(n) for n in self.line_numbers)
        super().__init__(f"Task ID {task_id} is used more than once (lines {lines})")


class IntegrityError(RoadmapError):
    """Raised when a reconciled model breaks an invariant (internal bug)."""

    def __init__(self, details: list[str]) -> None:
        self.details = list(details)
        super().__init__("Reconciled roadmap failed integrity checks: " + "; ".join(self.details))


class DanglingReferenceWarning(UserWarning):
    """A reference to a task ID that no longer exists in the document.

    Non-fatal: reconciliation proceeds and the reference is ignored.
    """

    def __init__(
        self,
        missing_id: str,
        task_id: Optional[str] = None,
        line_number: int = 0,
        source: str = "checklist",
    ) -> None:
        self.missing_id = missing_id
        self.task_id = task_id
        self.line_number = line_number
        self.source = source
        if task_id:
            message = f"{task_id} depends on unknown task {missing_id}"
        else:
            message = f"diagram references unknown task {missing_id}"
        if line_number:
            message += f" (line {line_number})"
        super().__init__(message)

    def key(self) -> tuple[Optional[str], str]:
        return (self.task_id, self.missing_id)


# =============================================================================
# ENUMS AND PLACEMENT
# =============================================================================


class Bucket(Enum):
    """Checklist section a task is listed under."""

    BLOCKED = "blocked"
    TODO = "todo"
    IN_PROGRESS = "in-progress"
    DONE = "done"

    @property
    def heading(self) -> str:
        return _BUCKET_HEADINGS[self]


_BUCKET_HEADINGS = {
    Bucket.BLOCKED: "Blocked",
    Bucket.TODO: "To-Do",
    Bucket.IN_PROGRESS: "In-Progress",
    Bucket.DONE: "Done",
}


class Status(Enum):
    """Classification computed for a task on every run."""

    BLOCKED = "blocked"
    TODO = "todo"
    IN_PROGRESS = "in-progress"
    DONE = "done"

    @property
    def bucket(self) -> Bucket:
        return Bucket(self.value)


@dataclass(frozen=True)
class Automatic:
    """Task placement is decided entirely by classification."""

    pass


@dataclass(frozen=True)
class Pinned:
    """Task was placed in a bucket by hand and stays there once unblocked."""

    bucket: Bucket


Placement = Union[Automatic, Pinned]


# =============================================================================
# TASK IDS
# =============================================================================

TASK_ID_RE = re.compile(r"^(\d+)([A-Za-z]+)\.(\d+)([a-z]?)$")
NODE_KEY_RE = re.compile(r"^(\d+)([A-Za-z]+)_(\d+)([a-z]?)$")
MARKER_KEY_RE = re.compile(r"^M(\d+)$")


def is_task_id(value: str) -> bool:
    return TASK_ID_RE.match(value) is not None


def split_task_id(task_id: str) -> tuple[int, str, int, str]:
    """Split `2TI.3a` into (2, "TI", 3, "a").

    Raises:
        ValueError: If the value does not have the task ID shape
    """
    match = TASK_ID_RE.match(task_id)
    if not match:
        raise ValueError(f"Not a task ID: {task_id!r}")
    return (int(match.group(1)), match.group(2), int(match.group(3)), match.group(4))


def node_key(task_id: str) -> str:
    """Diagram node key for a task (`1WA.12` -> `1WA_12`)."""
    return task_id.replace(".", "_")


def task_id_for_key(key: str) -> Optional[str]:
    """Inverse of node_key; None for keys that are not task nodes."""
    match = NODE_KEY_RE.match(key)
    if not match:
        return None
    return f"{match.group(1)}{match.group(2)}.{match.group(3)}{match.group(4)}"


def marker_key(milestone: int) -> str:
    return f"M{milestone}"


def is_managed_key(key: str) -> bool:
    """Keys owned by the synchronizer: task nodes and milestone markers."""
    return NODE_KEY_RE.match(key) is not None or MARKER_KEY_RE.match(key) is not None


# =============================================================================
# DOCUMENT STRUCTURE
# =============================================================================


@dataclass
class Line:
    """One source line and the exact terminator it had."""

    text: str
    ending: str = "\n"


@dataclass
class Task:
    """A single checklist entry."""

    id: str
    description: str
    bucket: Bucket
    explicitly_done: bool = False
    dependencies: list[str] = field(default_factory=list)
    line_number: int = 0
    line_index: int = -1

    @property
    def milestone(self) -> int:
        return split_task_id(self.id)[0]

    @property
    def category(self) -> str:
        return split_task_id(self.id)[1]

    @property
    def sequence(self) -> int:
        return split_task_id(self.id)[2]

    @property
    def sub(self) -> str:
        return split_task_id(self.id)[3]

    @property
    def placement(self) -> Placement:
        if self.bucket == Bucket.IN_PROGRESS:
            return Pinned(Bucket.IN_PROGRESS)
        return Automatic()


@dataclass(frozen=True)
class DependencyEdge:
    """`source` depends on `target`."""

    source: str
    target: str


@dataclass
class Section:
    """One of the four checklist sections of a milestone.

    The section body is `lines[heading_index + 1:end_index]`.
    """

    bucket: Bucket
    heading_index: int
    end_index: int = -1
    task_ids: list[str] = field(default_factory=list)


class StatementKind(Enum):
    """Kinds of lines inside a diagram block."""

    HEADER = "header"
    CLASS_DEF = "classDef"
    NODE = "node"
    EDGE = "edge"
    OTHER = "other"


@dataclass
class DiagramStatement:
    """A parsed line of a Mermaid block."""

    kind: StatementKind
    text: str
    line_index: int
    indent: str = ""
    key: str = ""
    shape: str = ""
    css_class: Optional[str] = None
    trailer: str = ""
    sources: list[str] = field(default_factory=list)
    targets: list[str] = field(default_factory=list)
    link: str = "-->"


@dataclass
class DiagramBlock:
    """A fenced Mermaid block. `milestone` is None for the aggregate diagram."""

    open_index: int
    close_index: int
    milestone: Optional[int]
    statements: list[DiagramStatement] = field(default_factory=list)


@dataclass
class Milestone:
    """A milestone heading with its sections and diagram."""

    number: int
    title: str
    heading_index: int
    end_index: int = -1
    sections: dict[Bucket, Section] = field(default_factory=dict)
    diagram: Optional[DiagramBlock] = None
    task_ids: list[str] = field(default_factory=list)


@dataclass
class Document:
    """A parsed roadmap. Owns every task and milestone for one run."""

    lines: list[Line]
    milestones: list[Milestone] = field(default_factory=list)
    tasks: list[Task] = field(default_factory=list)
    aggregate_diagram: Optional[DiagramBlock] = None
    newline: str = "\n"

    def get_task(self, task_id: str) -> Optional[Task]:
        for task in self.tasks:
            if task.id == task_id:
                return task
        return None

    def task_index(self) -> dict[str, Task]:
        """Tasks by ID; the first entry wins for a duplicated ID."""
        index: dict[str, Task] = {}
        for task in self.tasks:
            index.setdefault(task.id, task)
        return index

    def get_milestone(self, number: int) -> Optional[Milestone]:
        for milestone in self.milestones:
            if milestone.number == number:
                return milestone
        return None

    def graph(self) -> TaskGraph:
        return TaskGraph(self.tasks)

    def diagrams(self) -> Iterator[DiagramBlock]:
        if self.aggregate_diagram is not None:
            yield self.aggregate_diagram
        for milestone in self.milestones:
            if milestone.diagram is not None:
                yield milestone.diagram


# =============================================================================
# GRAPH
# =============================================================================


class TaskGraph:
    """Read-only dependency view over a set of tasks."""

    def __init__(self, tasks: Iterable[Task]) -> None:
        self.tasks = list(tasks)
        self._by_id: dict[str, Task] = {}
        self._order: dict[str, int] = {}
        for index, task in enumerate(self.tasks):
            self._by_id.setdefault(task.id, task)
            self._order.setdefault(task.id, index)

    def __contains__(self, task_id: str) -> bool:
        return task_id in self._by_id

    def get(self, task_id: str) -> Optional[Task]:
        return self._by_id.get(task_id)

    def edges(self) -> list[DependencyEdge]:
        """Dependency edges whose endpoints both exist, in document order."""
        return [
            DependencyEdge(task.id, dep_id)
            for task in self.tasks
            for dep_id in task.dependencies
            if dep_id in self._by_id
        ]

    def dangling_references(self) -> set[str]:
        """IDs referenced as dependencies but absent from the document."""
        return {
            dep_id
            for task in self.tasks
            for dep_id in task.dependencies
            if dep_id not in self._by_id
        }

    def _open_dependencies(self, task: Task) -> list[str]:
        return [
            dep_id
            for dep_id in task.dependencies
            if dep_id in self._by_id and not self._by_id[dep_id].explicitly_done
        ]

    def find_cycle(self) -> Optional[list[str]]:
        """
        Depth-first search for a cycle among non-Done tasks.

        Returns:
            The cycle as an ordered list of IDs (each depends on the next,
            the last depends on the first), or None
        """
        open_ids = [t.id for t in self._by_id.values() if not t.explicitly_done]
        open_ids.sort(key=self._order.__getitem__)
        state = dict.fromkeys(open_ids, 0)  # 0 unvisited, 1 on path, 2 finished

        for root in open_ids:
            if state[root]:
                continue
            path = [root]
            state[root] = 1
            stack = [iter(self._open_dependencies(self._by_id[root]))]
            while stack:
                dep_id = next(stack[-1], None)
                if dep_id is None:
                    stack.pop()
                    state[path.pop()] = 2
                    continue
                if state[dep_id] == 1:
                    return path[path.index(dep_id):]
                if state[dep_id] == 0:
                    state[dep_id] = 1
                    path.append(dep_id)
                    stack.append(iter(self._open_dependencies(self._by_id[dep_id])))
        return None

    def has_cycle(self) -> bool:
        return self.find_cycle() is not None

    def topological_order(self) -> list[Task]:
        """
        Return tasks with every dependency before its dependents.

        Done tasks impose no ordering on their own dependencies. Independent
        tasks keep document order.

        Raises:
            CycleError: If open tasks form a cycle
        """
        tasks = list(self._by_id.values())
        in_degree = {t.id: 0 for t in tasks}
        dependents: dict[str, list[str]] = {t.id: [] for t in tasks}

        for task in tasks:
            if task.explicitly_done:
                continue
            for dep_id in dict.fromkeys(task.dependencies):
                if dep_id in dependents:
                    dependents[dep_id].append(task.id)
                    in_degree[task.id] += 1

        # Kahn's algorithm, ready set ordered by document position
        ready = [(self._order[tid], tid) for tid, deg in in_degree.items() if deg == 0]
        heapq.heapify(ready)
        result = []

        while ready:
            _, current = heapq.heappop(ready)
            result.append(self._by_id[current])
            for dependent in dependents[current]:
                in_degree[dependent] -= 1
                if in_degree[dependent] == 0:
                    heapq.heappush(ready, (self._order[dependent], dependent))

        if len(result) != len(tasks):
            raise CycleError(self.find_cycle() or sorted(t for t, d in in_degree.items() if d))

        return result


def has_cycle(graph: TaskGraph) -> bool:
    """True when the dependency relation over non-Done tasks is cyclic."""
    return graph.has_cycle()


def dangling_references(graph: TaskGraph) -> set[str]:
    """Dependency IDs that do not resolve to a task in the graph."""
    return graph.dangling_references()
