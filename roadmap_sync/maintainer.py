"""
Roadmap Maintainer

Entry point for reconciliation. Runs parser, validator, classifier,
reconciler, diagram synchronizer, validator again and renderer as one
batch transform over a document string.
"""

from __future__ import annotations

import logging
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from roadmap_sync.diagram_sync import DiagramSynchronizer
from roadmap_sync.document_parser import DocumentParser
from roadmap_sync.models import (
    BucketCounts,
    MoveRecord,
    ReconcileReport,
    RoadmapConfig,
    WarningRecord,
)
from roadmap_sync.renderer import DocumentRenderer
from roadmap_sync.section_reconciler import Move, ReconcilePlan, SectionReconciler
from roadmap_sync.status_classifier import StatusClassifier
from roadmap_sync.task_graph import Bucket, DanglingReferenceWarning, ParseError
from roadmap_sync.validator import RoadmapValidator

logger = logging.getLogger(__name__)


@dataclass
class ReconcileResult:
    """Outcome of a successful reconciliation."""

    text: str
    original: str
    plan: ReconcilePlan
    warnings: list[DanglingReferenceWarning] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return self.text != self.original

    @property
    def moves(self) -> list[Move]:
        return list(self.plan.moves)

    def proposed_promotions(self) -> list[str]:
        """To-Do tasks a human may choose to start."""
        return self.plan.proposed_promotions()

    def to_report(self) -> ReconcileReport:
        counts = self.plan.counts()
        return ReconcileReport(
            changed=self.changed,
            counts=BucketCounts(
                blocked=counts[Bucket.BLOCKED],
                todo=counts[Bucket.TODO],
                in_progress=counts[Bucket.IN_PROGRESS],
                done=counts[Bucket.DONE],
            ),
            moves=[
                MoveRecord(
                    task_id=m.task_id,
                    from_section=m.from_bucket.heading,
                    to_section=m.to_bucket.heading,
                )
                for m in self.plan.moves
            ],
            warnings=[
                WarningRecord(
                    missing_id=w.missing_id,
                    task_id=w.task_id,
                    line_number=w.line_number,
                    source=w.source,
                    message=str(w),
                )
                for w in self.warnings
            ],
            proposed_promotions=self.proposed_promotions(),
            newly_unblocked=list(self.plan.newly_unblocked),
        )


class RoadmapMaintainer:
    """Runs the reconciliation pipeline."""

    def __init__(self, config: Optional[RoadmapConfig] = None) -> None:
        self.config = config or RoadmapConfig()
        self._last_result: Optional[ReconcileResult] = None

    def reconcile(self, text: str) -> ReconcileResult:
        """
        Reconcile a roadmap document.

        Args:
            text: Current document text

        Returns:
            ReconcileResult with the new text, moves and warnings

        Raises:
            ParseError: Malformed document
            DuplicateIdError: Two tasks share an ID
            CycleError: Open tasks depend on each other in a loop
            IntegrityError: The reconciled model broke an invariant
        """
        self._last_result = None

        document = DocumentParser.parse(text)
        if self.config.aggregate_required and document.aggregate_diagram is None:
            raise ParseError("Roadmap has no aggregate dependency diagram")

        warnings = RoadmapValidator.pre_check(document)
        classification = StatusClassifier.classify(document)
        plan = SectionReconciler.reconcile(document, classification)
        sync = DiagramSynchronizer(self.config).synchronize(document, plan)
        RoadmapValidator.post_check(document, plan, sync)
        new_text = DocumentRenderer.render(document, plan, sync)

        seen = {w.key() for w in warnings}
        for warning in sync.warnings:
            if warning.key() not in seen:
                seen.add(warning.key())
                warnings.append(warning)

        result = ReconcileResult(text=new_text, original=text, plan=plan, warnings=warnings)
        logger.info(
            "Reconciled %d task(s): %d move(s), %d warning(s), %s",
            len(document.tasks),
            len(plan.moves),
            len(warnings),
            "changed" if result.changed else "unchanged",
        )
        self._last_result = result
        return result

    def proposed_promotions(self) -> list[str]:
        """Promotion candidates from the last successful run (empty otherwise)."""
        if self._last_result is None:
            return []
        return self._last_result.proposed_promotions()


def reconcile(text: str, config: Optional[RoadmapConfig] = None) -> ReconcileResult:
    """Reconcile a roadmap document with a one-off maintainer."""
    return RoadmapMaintainer(config).reconcile(text)


def load_config(config_path: Path) -> RoadmapConfig:
    """Load configuration from a TOML file.

    A pyproject.toml (or any file with a [tool] table) is read from its
    [tool.roadmap-sync] table; any other file holds the settings at the
    top level.

    Args:
        config_path: TOML file to read

    Returns:
        RoadmapConfig (defaults if the file is unreadable or invalid)
    """
    try:
        with open(config_path, "rb") as f:
            data = tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError) as e:
        logger.warning("Could not parse %s: %s", config_path, e)
        return RoadmapConfig()

    if config_path.name == "pyproject.toml" or "tool" in data:
        tool_config = data.get("tool", {}).get("roadmap-sync", {})
    else:
        tool_config = data
    if not tool_config:
        return RoadmapConfig()

    try:
        return RoadmapConfig(**tool_config)
    except ValidationError as e:
        logger.warning("Invalid roadmap-sync settings in %s, using defaults: %s", config_path, e)
        return RoadmapConfig()


def load_config_from_pyproject(repo_root: Path) -> RoadmapConfig:
    """Load configuration from pyproject.toml.

    Args:
        repo_root: Path to repository root

    Returns:
        RoadmapConfig (defaults if not found)
    """
    pyproject_path = repo_root / "pyproject.toml"

    if not pyproject_path.exists():
        return RoadmapConfig()

    return load_config(pyproject_path)
