"""
Tests for the MCP roadmap tools.

Acceptance Criteria:
- RoadmapReconcile rewrites the roadmap and returns the report
- dryRun and RoadmapCheck never write
- RoadmapPromotions lists To-Do tasks without moving anything
- Errors (invalid roadmap, unreadable or unwritable file) come back as
  {"error", "kind"} objects and leave the file alone
- Relative paths resolve against MCP_WORKING_DIR
"""

import pytest

from mcp_roadmap.server import (
    RoadmapCheck,
    RoadmapPromotions,
    RoadmapReconcile,
    resolve_roadmap,
)


STALE = """## Milestone 1: Web App

### Blocked

- [ ] 1WA.2 Build login form (depends on 1WA.1)

### To-Do

- [ ] 1WA.4 Styles

### In-Progress

### Done

- [x] 1WA.1 Set up project
"""


@pytest.fixture
def workdir(tmp_path, monkeypatch):
    monkeypatch.setenv("MCP_WORKING_DIR", str(tmp_path))
    monkeypatch.delenv("MCP_ROADMAP_PATH", raising=False)
    (tmp_path / "ROADMAP.md").write_text(STALE)
    return tmp_path


class TestTools:
    """Tool functions called directly."""

    def test_reconcile_writes(self, workdir):
        report = RoadmapReconcile()
        assert report["written"] is True
        assert report["changed"] is True
        assert report["path"] == str(workdir / "ROADMAP.md")
        assert "- [ ] 1WA.4 Styles\n- [ ] 1WA.2 Build login form" in (workdir / "ROADMAP.md").read_text()

    def test_dry_run(self, workdir):
        report = RoadmapReconcile(dryRun=True)
        assert report["written"] is False
        assert (workdir / "ROADMAP.md").read_text() == STALE

    def test_check(self, workdir):
        report = RoadmapCheck()
        assert report["changed"] is True
        assert report["moves"][0]["task_id"] == "1WA.2"
        assert (workdir / "ROADMAP.md").read_text() == STALE

    def test_promotions(self, workdir):
        result = RoadmapPromotions()
        assert result["proposed_promotions"] == ["1WA.4", "1WA.2"]
        assert result["total"] == 2
        assert (workdir / "ROADMAP.md").read_text() == STALE

    def test_custom_path(self, workdir):
        (workdir / "docs").mkdir()
        (workdir / "docs" / "plan.md").write_text(STALE)
        assert resolve_roadmap("docs/plan.md") == workdir / "docs" / "plan.md"
        assert RoadmapCheck("docs/plan.md")["changed"] is True


class TestErrors:
    """Failures are reported, never raised."""

    def test_missing_roadmap(self, workdir):
        result = RoadmapReconcile("missing.md")
        assert result["kind"] == "NotFound"

    def test_cycle(self, workdir):
        cyclic = STALE.replace(
            "- [ ] 1WA.4 Styles",
            "- [ ] 1WA.4 Styles (depends on 1WA.5)\n- [ ] 1WA.5 Theme (depends on 1WA.4)",
        )
        (workdir / "ROADMAP.md").write_text(cyclic)
        result = RoadmapReconcile()
        assert result["kind"] == "CycleError"
        assert "1WA.4" in result["error"]
        assert (workdir / "ROADMAP.md").read_text() == cyclic

    def test_undecodable_roadmap(self, workdir):
        (workdir / "ROADMAP.md").write_bytes(b"\xff\xfe bad\n")
        result = RoadmapCheck()
        assert result["kind"] == "IOError"
        assert "Cannot read" in result["error"]

    def test_write_failure(self, workdir, monkeypatch):
        def fail(path, text):
            raise PermissionError("read-only file system")

        monkeypatch.setattr("mcp_roadmap.server.write_atomic", fail)
        result = RoadmapReconcile()
        assert result["kind"] == "IOError"
        assert "read-only" in result["error"]
        assert (workdir / "ROADMAP.md").read_text() == STALE
