"""Advisory structural checks for playbook graphs.

These mirror the editor's checks. Commits never depend on them; whether a
graph can run is decided by the executor.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import List, Sequence

from playbook_vcs.models import Graph, StepType


class IssueSeverity(str, Enum):
    ERROR = "error"
    WARNING = "warning"


@dataclass(frozen=True)
class ValidationIssue:
    code: str
    message: str
    severity: IssueSeverity


@dataclass(frozen=True)
class GraphValidationResult:
    issues: Sequence[ValidationIssue]

    @property
    def valid(self) -> bool:
        return not any(
            issue.severity is IssueSeverity.ERROR for issue in self.issues
        )

    @property
    def errors(self) -> List[str]:
        return [
            issue.message
            for issue in self.issues
            if issue.severity is IssueSeverity.ERROR
        ]


def validate_graph(graph: Graph) -> GraphValidationResult:
    issues: List[ValidationIssue] = []
    node_ids = {node.id for node in graph.nodes}

    if not graph.nodes:
        issues.append(
            ValidationIssue(
                "EMPTY_GRAPH", "Graph has no steps", IssueSeverity.ERROR
            )
        )
        return GraphValidationResult(issues=issues)

    for edge in graph.edges:
        for end, node_id in (("source", edge.source), ("target", edge.target)):
            if node_id not in node_ids:
                issues.append(
                    ValidationIssue(
                        "DANGLING_EDGE",
                        f"Edge '{edge.id}' {end} '{node_id}' is not a step "
                        "in this graph",
                        IssueSeverity.ERROR,
                    )
                )

    targets = {edge.target for edge in graph.edges}
    entries = [node.id for node in graph.nodes if node.id not in targets]
    if not entries:
        issues.append(
            ValidationIssue(
                "NO_ENTRY_POINT",
                "Every step has an incoming edge; no entry point",
                IssueSeverity.ERROR,
            )
        )
    elif len(entries) > 1:
        issues.append(
            ValidationIssue(
                "MULTIPLE_ENTRY_POINTS",
                f"Graph has {len(entries)} entry points: "
                + ", ".join(entries),
                IssueSeverity.ERROR,
            )
        )

    if len(graph.nodes) > 1:
        connected = {edge.source for edge in graph.edges} | targets
        for node in graph.nodes:
            if node.id not in connected:
                issues.append(
                    ValidationIssue(
                        "ORPHANED_NODE",
                        f"Step '{node.id}' is not connected to any other step",
                        IssueSeverity.ERROR,
                    )
                )

    outgoing: dict[str, list] = {}
    for edge in graph.edges:
        outgoing.setdefault(edge.source, []).append(edge)
    for node in graph.nodes:
        if node.type is not StepType.BRANCH:
            continue
        labels = {edge.label for edge in outgoing.get(node.id, [])}
        if not {"true", "false"} <= labels:
            issues.append(
                ValidationIssue(
                    "BRANCH_PATHS",
                    f"Branch step '{node.id}' should have 'true' and 'false' "
                    "outgoing edges",
                    IssueSeverity.WARNING,
                )
            )

    return GraphValidationResult(issues=issues)
