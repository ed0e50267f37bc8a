from maestro.state.analyzer import ProjectAnalysis, ProjectAnalyzer, Violation, format_analysis
from maestro.state.collaboration import CollaborationMessage, CollaborationStore, SharedContext
from maestro.state.repository import (
    BranchCreation,
    BranchInfo,
    BranchKind,
    BranchSpec,
    MergeResult,
    RepositoryError,
    RepositoryManager,
    RepositoryStatus,
    ValidationResult,
)

__all__ = [
    "BranchCreation",
    "BranchInfo",
    "BranchKind",
    "BranchSpec",
    "CollaborationMessage",
    "CollaborationStore",
    "MergeResult",
    "ProjectAnalysis",
    "ProjectAnalyzer",
    "RepositoryError",
    "RepositoryManager",
    "RepositoryStatus",
    "SharedContext",
    "ValidationResult",
    "Violation",
    "format_analysis",
]
