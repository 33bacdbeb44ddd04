"""
Playbook VCS Repository
Introductory remarks: This module is part of the Playbook VCS codebase.

Tests for advisory graph validation.
"""

from __future__ import annotations

from typing import Callable

from playbook_vcs.engine import IssueSeverity, validate_graph
from playbook_vcs.models import Graph


def _codes(graph: Graph) -> list[str]:
    return [issue.code for issue in validate_graph(graph).issues]


def test_linear_graph_is_valid(graph_factory: Callable[..., Graph]) -> None:
    graph = graph_factory(
        {"a": "A", "b": "B", "c": "C"}, [("e1", "a", "b"), ("e2", "b", "c")]
    )

    result = validate_graph(graph)

    assert result.valid
    assert result.issues == []


def test_empty_graph_is_reported() -> None:
    result = validate_graph(Graph())

    assert not result.valid
    assert result.errors == ["Graph has no steps"]


def test_structural_errors(graph_factory: Callable[..., Graph]) -> None:
    dangling = graph_factory({"a": "A"}, [("e1", "a", "ghost")])
    two_entries = graph_factory(
        {"a": "A", "b": "B", "c": "C"}, [("e1", "a", "c"), ("e2", "b", "c")]
    )
    orphan = graph_factory({"a": "A", "b": "B", "z": "Z"}, [("e1", "a", "b")])
    cycle = graph_factory({"a": "A", "b": "B"}, [("e1", "a", "b"), ("e2", "b", "a")])

    assert "DANGLING_EDGE" in _codes(dangling)
    assert "MULTIPLE_ENTRY_POINTS" in _codes(two_entries)
    assert "ORPHANED_NODE" in _codes(orphan)
    assert _codes(cycle) == ["NO_ENTRY_POINT"]


def test_branch_step_without_labelled_paths_is_a_warning(
    graph_factory: Callable[..., Graph],
) -> None:
    graph = graph_factory(
        {"a": "A", "check": {"type": "BRANCH"}, "yes": "Y", "no": "N"},
        [
            ("e1", "a", "check"),
            ("e2", "check", "yes", "true"),
            ("e3", "check", "no"),
        ],
    )

    result = validate_graph(graph)

    assert result.valid
    assert [(i.code, i.severity) for i in result.issues] == [
        ("BRANCH_PATHS", IssueSeverity.WARNING)
    ]
