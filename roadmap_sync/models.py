"""
Roadmap Sync Data Models

Pydantic models for configuration and for the report returned to callers.
"""

from __future__ import annotations

from pydantic import BaseModel, Field

# =============================================================================
# CONFIGURATION MODELS
# =============================================================================

DEFAULT_CLASS_STYLES = {
    "open": "fill:#d4edda,stroke:#28a745,color:#155724",
    "blocked": "fill:#f8d7da,stroke:#dc3545,color:#721c24",
    "milestone": "fill:#cce5ff,stroke:#004085,stroke-width:2px",
}


class RoadmapConfig(BaseModel):
    """Configuration for roadmap reconciliation."""

    open_class: str = "open"
    blocked_class: str = "blocked"
    milestone_class: str = "milestone"
    class_styles: dict[str, str] = Field(default_factory=lambda: dict(DEFAULT_CLASS_STYLES))
    diagram_direction: str = Field(default="TD", pattern=r"^(TD|TB|BT|LR|RL)$")
    milestone_markers: bool = True
    aggregate_required: bool = False
    indent: str = "    "

    def class_def_lines(self) -> list[str]:
        """The classDef lines every diagram must carry, in a stable order."""
        names = [self.open_class, self.blocked_class, self.milestone_class]
        names += [n for n in self.class_styles if n not in names]
        return [
            f"classDef {name} {self.class_styles[name]}"
            for name in names
            if name in self.class_styles
        ]


# =============================================================================
# REPORT MODELS
# =============================================================================


class MoveRecord(BaseModel):
    """A checklist entry relocated by this run."""

    task_id: str
    from_section: str
    to_section: str


class WarningRecord(BaseModel):
    """A non-fatal dangling reference."""

    missing_id: str
    task_id: str | None = None
    line_number: int = 0
    source: str = "checklist"
    message: str = ""


class BucketCounts(BaseModel):
    """Number of tasks per section after reconciliation."""

    blocked: int = 0
    todo: int = 0
    in_progress: int = 0
    done: int = 0

    @property
    def total(self) -> int:
        return self.blocked + self.todo + self.in_progress + self.done


class ReconcileReport(BaseModel):
    """Summary of one reconciliation run."""

    changed: bool
    counts: BucketCounts = Field(default_factory=BucketCounts)
    moves: list[MoveRecord] = Field(default_factory=list)
    warnings: list[WarningRecord] = Field(default_factory=list)
    proposed_promotions: list[str] = Field(default_factory=list)
    newly_unblocked: list[str] = Field(default_factory=list)
