"""
Roadmap Sync - Keeps a roadmap's checklist and dependency diagrams in agreement.

This module recomputes task status from the dependency graph, moves
checklist entries to the right section, and regenerates the Mermaid
diagrams from the same model.
"""

from roadmap_sync.task_graph import (
    RoadmapError,
    ParseError,
    CycleError,
    DuplicateIdError,
    IntegrityError,
    DanglingReferenceWarning,
    Bucket,
    Status,
    Automatic,
    Pinned,
    Task,
    Milestone,
    Section,
    DependencyEdge,
    DiagramBlock,
    Document,
    TaskGraph,
    has_cycle,
    dangling_references,
)
from roadmap_sync.document_parser import DocumentParser
from roadmap_sync.status_classifier import StatusClassifier, Classification
from roadmap_sync.section_reconciler import SectionReconciler, ReconcilePlan, Move
from roadmap_sync.diagram_sync import DiagramSynchronizer, DiagramTarget, SyncResult
from roadmap_sync.validator import RoadmapValidator
from roadmap_sync.renderer import DocumentRenderer
from roadmap_sync.models import RoadmapConfig, ReconcileReport
from roadmap_sync.maintainer import (
    RoadmapMaintainer,
    ReconcileResult,
    reconcile,
    load_config_from_pyproject,
)

__all__ = [
    # task_graph - errors
    "RoadmapError",
    "ParseError",
    "CycleError",
    "DuplicateIdError",
    "IntegrityError",
    "DanglingReferenceWarning",
    # task_graph - model
    "Bucket",
    "Status",
    "Automatic",
    "Pinned",
    "Task",
    "Milestone",
    "Section",
    "DependencyEdge",
    "DiagramBlock",
    "Document",
    "TaskGraph",
    "has_cycle",
    "dangling_references",
    # pipeline stages
    "DocumentParser",
    "StatusClassifier",
    "Classification",
    "SectionReconciler",
    "ReconcilePlan",
    "Move",
    "DiagramSynchronizer",
    "DiagramTarget",
    "SyncResult",
    "RoadmapValidator",
    "DocumentRenderer",
    # models
    "RoadmapConfig",
    "ReconcileReport",
    # maintainer
    "RoadmapMaintainer",
    "ReconcileResult",
    "reconcile",
    "load_config_from_pyproject",
]
