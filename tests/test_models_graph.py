"""
Playbook VCS Repository
Introductory remarks: This module is part of the Playbook VCS codebase.

Tests for the graph models and their JSON boundary codec.
"""

from __future__ import annotations

import pytest

from playbook_vcs.models import Edge, Graph, Node, StepType


def test_from_payload_accepts_flat_and_editor_shapes() -> None:
    graph = Graph.from_payload(
        {
            "nodes": [
                {"id": "a", "type": "AGENT", "label": "Start",
                 "config": {"model": "m1"}},
                {
                    "id": "b",
                    "type": "BRANCH",
                    "position": {"x": 1, "y": 2},
                    "data": {"label": "Check", "config": {"expr": "x > 1"}},
                },
            ],
            "edges": [{"id": "e1", "source": "a", "target": "b"}],
        }
    )

    a, b = graph.nodes
    assert a == Node("a", StepType.AGENT, "Start", {"model": "m1"})
    assert b.type is StepType.BRANCH
    assert b.label == "Check"
    assert dict(b.config) == {"expr": "x > 1"}
    assert graph.edges == (Edge("e1", "a", "b"),)


def test_from_payload_copies_config() -> None:
    config = {"nested": {"retries": 1}}
    graph = Graph.from_payload(
        {"nodes": [{"id": "a", "type": "DATA", "config": config}]}
    )

    config["nested"]["retries"] = 5

    assert graph.nodes[0].config["nested"]["retries"] == 1


@pytest.mark.parametrize(
    "payload, message",
    [
        ({"nodes": "nope"}, "must be arrays"),
        ({"nodes": [{"id": "a", "type": "ROBOT"}]}, "unknown step type"),
        ({"nodes": [{"type": "AGENT"}]}, "non-empty string"),
        (
            {"nodes": [{"id": "a", "type": "AGENT"},
                       {"id": "a", "type": "API"}]},
            "Duplicate node id 'a'",
        ),
        (
            {"edges": [{"id": "e", "source": "a", "target": "b"},
                       {"id": "e", "source": "b", "target": "a"}]},
            "Duplicate edge id 'e'",
        ),
        ({"edges": [{"id": "e", "source": "a"}]}, "target"),
    ],
)
def test_from_payload_rejects_malformed_graphs(payload: dict, message: str) -> None:
    """
    test_from_payload_rejects_malformed_graphs: Function description.
    :param payload:
    :param message:
    :returns:
    """

    with pytest.raises(ValueError, match=message):
        Graph.from_payload(payload)


def test_same_id_for_node_and_edge_is_allowed() -> None:
    graph = Graph(
        nodes=[Node("x", StepType.API)],
        edges=[Edge("x", "x", "x")],
    )

    assert set(graph.node_map()) == {"x"}
    assert set(graph.edge_map()) == {"x"}


def test_to_payload_round_trips_through_from_payload() -> None:
    graph = Graph(
        nodes=[Node("a", StepType.AGENT, "A", {"k": [1, 2]}),
               Node("b", StepType.DATA)],
        edges=[Edge("e1", "a", "b", label="true")],
    )

    assert Graph.from_payload(graph.to_payload()) == graph
    assert Graph.empty() == Graph()
