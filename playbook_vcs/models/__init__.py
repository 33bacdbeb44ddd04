"""Domain model package exports."""

from .dag import CommitDAGNode, DAGView
from .diff import EdgeChange, GraphDiff, NodeChange, NodeModification
from .graph import Edge, Graph, Node, StepType
from .merge import (ConflictKind, ConflictResolution, EdgeRef, EntityRef,
                    MergeCompleted, MergeConflict, MergeConflicts,
                    MergeOutcome, NodeRef, Resolution, parse_entity_key,
                    resolutions_from_key_map)
from .versioning import (Branch, BranchSummary, Commit, ensure_utc, utc_now,
                         validate_branch_name, validate_commit_message)

__all__ = [
    "Branch",
    "BranchSummary",
    "Commit",
    "CommitDAGNode",
    "ConflictKind",
    "ConflictResolution",
    "DAGView",
    "Edge",
    "EdgeChange",
    "EdgeRef",
    "EntityRef",
    "Graph",
    "GraphDiff",
    "MergeCompleted",
    "MergeConflict",
    "MergeConflicts",
    "MergeOutcome",
    "Node",
    "NodeChange",
    "NodeModification",
    "NodeRef",
    "Resolution",
    "StepType",
    "ensure_utc",
    "parse_entity_key",
    "resolutions_from_key_map",
    "utc_now",
    "validate_branch_name",
    "validate_commit_message",
]
