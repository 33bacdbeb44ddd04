"""Version-control engine: diff, ancestry, branches, merge and projection."""

from .ancestry import AncestorResolver
from .branches import BranchRegistry
from .commits import CommitWriter
from .diff import diff_graphs, structurally_equal
from .merge import MergeEngine, MergePlan, three_way_merge
from .projector import CommitGraphProjector
from .validation import (GraphValidationResult, IssueSeverity,
                         ValidationIssue, validate_graph)

__all__ = [
    "AncestorResolver",
    "BranchRegistry",
    "CommitGraphProjector",
    "CommitWriter",
    "GraphValidationResult",
    "IssueSeverity",
    "MergeEngine",
    "MergePlan",
    "ValidationIssue",
    "diff_graphs",
    "structurally_equal",
    "three_way_merge",
    "validate_graph",
]
