#!/usr/bin/env python3
"""
MCP Roadmap Server

Provides RoadmapReconcile, RoadmapCheck and RoadmapPromotions tools so agents
can keep a project's roadmap checklist and dependency diagrams in sync.
Roadmaps are resolved relative to the detected project root.
"""

import os
from pathlib import Path
from typing import Optional

from mcp.server.fastmcp import FastMCP

from roadmap_sync.cli import write_atomic
from roadmap_sync.maintainer import RoadmapMaintainer, load_config_from_pyproject
from roadmap_sync.task_graph import RoadmapError

mcp = FastMCP("Roadmap Sync")

DEFAULT_ROADMAP = "ROADMAP.md"


def _find_project_root(start_path: Path) -> Optional[Path]:
    """Walk up from start_path to find a project root.

    Looks for common project markers (.git, .claude, pyproject.toml, package.json).
    """
    current = start_path.resolve()

    while current != current.parent:
        for marker in (".git", ".claude", "pyproject.toml", "package.json"):
            if (current / marker).exists():
                return current
        current = current.parent

    return None


def get_working_dir() -> Path:
    """Get the project directory roadmap paths are relative to.

    Priority:
    1. MCP_WORKING_DIR environment variable (explicit override)
    2. Project root detected from PWD/cwd (fresh each call)
    3. PWD or cwd
    """
    if os.environ.get("MCP_WORKING_DIR"):
        return Path(os.environ["MCP_WORKING_DIR"])

    start = Path(os.environ.get("PWD", os.getcwd()))
    project_root = _find_project_root(start)

    return project_root if project_root else start


def resolve_roadmap(path: Optional[str] = None) -> Path:
    """Resolve a roadmap path; defaults to $MCP_ROADMAP_PATH or ROADMAP.md."""
    raw = path or os.environ.get("MCP_ROADMAP_PATH") or DEFAULT_ROADMAP
    candidate = Path(raw)
    if not candidate.is_absolute():
        candidate = get_working_dir() / candidate
    return candidate


def _run(path: Optional[str], write: bool) -> dict:
    roadmap = resolve_roadmap(path)
    if not roadmap.exists():
        return {"error": f"Roadmap not found: {roadmap}", "kind": "NotFound"}

    try:
        with open(roadmap, encoding="utf-8", newline="") as f:
            text = f.read()
    except (OSError, UnicodeDecodeError) as e:
        return {
            "error": f"Cannot read {roadmap}: {e}", "kind": "IOError", "path": str(roadmap)
        }

    maintainer = RoadmapMaintainer(load_config_from_pyproject(get_working_dir()))
    try:
        result = maintainer.reconcile(text)
    except RoadmapError as e:
        return {"error": str(e), "kind": type(e).__name__, "path": str(roadmap)}

    written = False
    if write and result.changed:
        try:
            write_atomic(roadmap, result.text)
        except OSError as e:
            return {
                "error": f"Cannot write {roadmap}: {e}", "kind": "IOError", "path": str(roadmap)
            }
        written = True

    report = result.to_report().model_dump()
    report["path"] = str(roadmap)
    report["written"] = written
    return report


@mcp.tool()
def RoadmapReconcile(path: Optional[str] = None, dryRun: bool = False) -> dict:
    """
    Recompute task status, move checklist entries and regenerate diagrams.

    Args:
        path: Roadmap file (relative to the project root); defaults to ROADMAP.md
        dryRun: If true, report what would change without writing the file

    Returns:
        Report with section counts, moves, warnings and promotion candidates,
        or an error object if the roadmap is invalid (the file is left untouched)
    """
    return _run(path, write=not dryRun)


@mcp.tool()
def RoadmapCheck(path: Optional[str] = None) -> dict:
    """
    Check whether the roadmap is already reconciled.

    Args:
        path: Roadmap file (relative to the project root); defaults to ROADMAP.md

    Returns:
        Report whose `changed` field is true when the roadmap is out of date
    """
    return _run(path, write=False)


@mcp.tool()
def RoadmapPromotions(path: Optional[str] = None) -> dict:
    """
    List To-Do tasks whose dependencies are all done.

    These are candidates for moving into In-Progress; the move itself is a
    human decision and is never applied by this tool.

    Args:
        path: Roadmap file (relative to the project root); defaults to ROADMAP.md

    Returns:
        The candidate task IDs in roadmap order
    """
    report = _run(path, write=False)
    if "error" in report:
        return report
    return {
        "path": report["path"],
        "proposed_promotions": report["proposed_promotions"],
        "total": len(report["proposed_promotions"]),
    }


if __name__ == "__main__":
    mcp.run()
