"""Structural diff between two playbook graph snapshots."""

from __future__ import annotations

from typing import Any, List, Mapping

from playbook_vcs.models import (Edge, EdgeChange, Graph, GraphDiff, Node,
                                 NodeChange, NodeModification)


def structurally_equal(left: Any, right: Any) -> bool:
    """Deep equality for JSON-like values, ignoring mapping key order.

    Booleans never equal numbers, unlike Python's ``True == 1``.
    """
    if isinstance(left, Mapping) and isinstance(right, Mapping):
        if set(left.keys()) != set(right.keys()):
            return False
        return all(structurally_equal(left[key], right[key]) for key in left)
    if isinstance(left, (list, tuple)) and isinstance(right, (list, tuple)):
        if len(left) != len(right):
            return False
        return all(structurally_equal(a, b) for a, b in zip(left, right))
    if isinstance(left, bool) or isinstance(right, bool):
        return type(left) is type(right) and left == right
    if isinstance(left, Mapping) or isinstance(right, Mapping):
        return False
    if isinstance(left, (list, tuple)) or isinstance(right, (list, tuple)):
        return False
    try:
        return bool(left == right)
    except Exception:  # noqa: BLE001 - exotic values compare unequal
        return False


def nodes_equal(left: Node, right: Node) -> bool:
    return (
        left.id == right.id
        and left.type == right.type
        and left.label == right.label
        and structurally_equal(left.config, right.config)
    )


def edges_equal(left: Edge, right: Edge) -> bool:
    return (
        left.id == right.id
        and left.source == right.source
        and left.target == right.target
        and left.label == right.label
    )


def describe_node_changes(before: Node, after: Node) -> List[str]:
    """Human-readable list of what differs between two versions of a node."""
    changes: List[str] = []
    if before.label != after.label:
        changes.append(f"label: {before.label!r} -> {after.label!r}")
    if before.type != after.type:
        changes.append(
            f"type: {before.type.value!r} -> {after.type.value!r}"
        )
    if not structurally_equal(before.config, after.config):
        old_keys = set(before.config.keys())
        new_keys = set(after.config.keys())
        for key in sorted(new_keys - old_keys, key=str):
            changes.append(f"config.{key}: added")
        for key in sorted(old_keys - new_keys, key=str):
            changes.append(f"config.{key}: removed")
        for key in sorted(old_keys & new_keys, key=str):
            if not structurally_equal(before.config[key], after.config[key]):
                changes.append(f"config.{key}: changed")
    return changes


def diff_graphs(base: Graph, other: Graph) -> GraphDiff:
    """Compute the delta that turns ``base`` into ``other``.

    Pure and deterministic. Nodes are matched by id and may be modified;
    edges are matched by id and any difference is a removal plus an addition.
    """
    base_nodes = base.node_map()
    other_nodes = other.node_map()

    added_nodes = [
        _node_change(node) for node in other.nodes if node.id not in base_nodes
    ]
    removed_nodes = [
        _node_change(node) for node in base.nodes if node.id not in other_nodes
    ]
    modified_nodes = []
    for node in other.nodes:
        previous = base_nodes.get(node.id)
        if previous is None or nodes_equal(previous, node):
            continue
        modified_nodes.append(
            NodeModification(
                id=node.id,
                label=node.label,
                changes=describe_node_changes(previous, node),
            )
        )

    base_edges = base.edge_map()
    other_edges = other.edge_map()
    added_edges = [
        _edge_change(edge)
        for edge in other.edges
        if edge.id not in base_edges or not edges_equal(base_edges[edge.id], edge)
    ]
    removed_edges = [
        _edge_change(edge)
        for edge in base.edges
        if edge.id not in other_edges
        or not edges_equal(edge, other_edges[edge.id])
    ]

    return GraphDiff(
        added_nodes=added_nodes,
        removed_nodes=removed_nodes,
        modified_nodes=modified_nodes,
        added_edges=added_edges,
        removed_edges=removed_edges,
    )


def _node_change(node: Node) -> NodeChange:
    return NodeChange(id=node.id, label=node.label, type=node.type.value)


def _edge_change(edge: Edge) -> EdgeChange:
    return EdgeChange(
        id=edge.id, source=edge.source, target=edge.target, label=edge.label
    )
