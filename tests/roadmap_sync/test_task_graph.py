"""
Tests for the task graph model.

Task IDs have the form <milestone><category>.<sequence>[<sub>] and map to
diagram node keys by replacing the dot with an underscore. The graph view
answers dependency questions for every other stage.

Acceptance Criteria:
- Task IDs split into milestone, category, sequence and optional sub-letter
- Node keys and task IDs convert both ways; milestone markers are not tasks
- Cycles are detected only among tasks that are not Done
- Topological order puts dependencies first and keeps document order for ties
- References to missing IDs are reported, never treated as edges

Edge Cases:
- Self-dependency is a cycle
- A Done task depending on an open one does not form a cycle
- Duplicate dependency entries count once
"""

import pytest

from roadmap_sync.task_graph import (
    Automatic,
    Bucket,
    CycleError,
    DanglingReferenceWarning,
    DependencyEdge,
    ParseError,
    Pinned,
    Status,
    Task,
    TaskGraph,
    dangling_references,
    has_cycle,
    is_managed_key,
    is_task_id,
    marker_key,
    node_key,
    split_task_id,
    task_id_for_key,
)


def make_task(task_id, deps=(), bucket=Bucket.TODO, done=False):
    return Task(
        id=task_id,
        description=f"Task {task_id}",
        bucket=Bucket.DONE if done else bucket,
        explicitly_done=done,
        dependencies=list(deps),
    )


class TestTaskIds:
    """Task ID shape and node key mapping."""

    def test_split_plain_id(self):
        assert split_task_id("1WA.3") == (1, "WA", 3, "")

    def test_split_sub_task_id(self):
        assert split_task_id("2TI.12b") == (2, "TI", 12, "b")

    def test_split_rejects_malformed(self):
        with pytest.raises(ValueError):
            split_task_id("WA.3")

    @pytest.mark.parametrize("value", ["1WA", "1WA.", "1.3", "1WA-3", "1WA.3B", "M1"])
    def test_is_task_id_rejects(self, value):
        assert not is_task_id(value)

    def test_node_key_replaces_dot(self):
        assert node_key("1WA.12") == "1WA_12"
        assert task_id_for_key("1WA_12") == "1WA.12"
        assert task_id_for_key("2TI_3a") == "2TI.3a"

    def test_marker_is_not_a_task(self):
        assert marker_key(3) == "M3"
        assert task_id_for_key("M3") is None
        assert is_managed_key("M3")
        assert is_managed_key("1WA_2")
        assert not is_managed_key("legend")

    def test_task_properties(self):
        task = make_task("3API.7c")
        assert task.milestone == 3
        assert task.category == "API"
        assert task.sequence == 7
        assert task.sub == "c"


class TestPlacement:
    """Placement is automatic unless the task sits in In-Progress."""

    def test_in_progress_is_pinned(self):
        task = make_task("1WA.1", bucket=Bucket.IN_PROGRESS)
        assert task.placement == Pinned(Bucket.IN_PROGRESS)

    @pytest.mark.parametrize("bucket", [Bucket.BLOCKED, Bucket.TODO, Bucket.DONE])
    def test_other_sections_are_automatic(self, bucket):
        assert make_task("1WA.1", bucket=bucket).placement == Automatic()

    def test_status_maps_to_bucket(self):
        assert Status.IN_PROGRESS.bucket == Bucket.IN_PROGRESS
        assert Bucket.TODO.heading == "To-Do"


class TestCycles:
    """Cycle detection over open tasks."""

    def test_two_task_cycle_names_both(self):
        graph = TaskGraph([make_task("1WA.1", ["1WA.2"]), make_task("1WA.2", ["1WA.1"])])
        assert graph.find_cycle() == ["1WA.1", "1WA.2"]
        assert has_cycle(graph)

    def test_self_dependency(self):
        graph = TaskGraph([make_task("1WA.1", ["1WA.1"])])
        assert graph.find_cycle() == ["1WA.1"]

    def test_done_task_breaks_cycle(self):
        graph = TaskGraph([make_task("1WA.1", ["1WA.2"], done=True), make_task("1WA.2", ["1WA.1"])])
        assert graph.find_cycle() is None
        assert not has_cycle(graph)

    def test_cycle_reported_without_lead_in(self):
        graph = TaskGraph(
            [
                make_task("1WA.1", ["1WA.2"]),
                make_task("1WA.2", ["1WA.3"]),
                make_task("1WA.3", ["1WA.2"]),
            ]
        )
        assert graph.find_cycle() == ["1WA.2", "1WA.3"]

    def test_topological_order_raises(self):
        graph = TaskGraph([make_task("1WA.1", ["1WA.2"]), make_task("1WA.2", ["1WA.1"])])
        with pytest.raises(CycleError) as exc_info:
            graph.topological_order()
        assert exc_info.value.cycle == ["1WA.1", "1WA.2"]
        assert "1WA.1 -> 1WA.2 -> 1WA.1" in str(exc_info.value)


class TestTopologicalOrder:
    """Dependencies before dependents."""

    def test_dependency_first(self):
        graph = TaskGraph([make_task("1WA.2", ["1WA.1"]), make_task("1WA.1")])
        assert [t.id for t in graph.topological_order()] == ["1WA.1", "1WA.2"]

    def test_independent_tasks_keep_document_order(self):
        graph = TaskGraph([make_task("1WA.3"), make_task("1WA.1"), make_task("1WA.2")])
        assert [t.id for t in graph.topological_order()] == ["1WA.3", "1WA.1", "1WA.2"]

    def test_duplicate_dependency_counts_once(self):
        graph = TaskGraph([make_task("1WA.1"), make_task("1WA.2", ["1WA.1", "1WA.1"])])
        assert [t.id for t in graph.topological_order()] == ["1WA.1", "1WA.2"]


class TestDanglingReferences:
    """Missing IDs are reported and ignored as edges."""

    def test_missing_dependency_reported(self):
        graph = TaskGraph([make_task("1WA.2", ["1WA.9", "1WA.1"]), make_task("1WA.1")])
        assert dangling_references(graph) == {"1WA.9"}
        assert graph.edges() == [DependencyEdge("1WA.2", "1WA.1")]

    def test_warning_message(self):
        warning = DanglingReferenceWarning("1WA.9", task_id="1WA.2", line_number=12)
        assert str(warning) == "1WA.2 depends on unknown task 1WA.9 (line 12)"
        assert warning.key() == ("1WA.2", "1WA.9")

    def test_diagram_warning_message(self):
        warning = DanglingReferenceWarning("1WA.9", source="diagram")
        assert str(warning) == "diagram references unknown task 1WA.9"


class TestErrors:
    """Error messages carry location."""

    def test_parse_error_includes_line(self):
        error = ParseError("Malformed task ID", 7, "- [ ] WA.1 Oops\n")
        assert str(error) == "line 7: Malformed task ID: '- [ ] WA.1 Oops'"
        assert error.line_number == 7
