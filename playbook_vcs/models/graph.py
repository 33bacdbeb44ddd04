"""
Playbook VCS Repository
Introductory remarks: This module is part of the Playbook VCS codebase.

Playbook graph domain models and their JSON boundary codec.

A playbook graph is a set of workflow steps (nodes) connected by transitions
(edges). Node ``config`` is opaque to version control: it is copied on the way
in and compared structurally, never interpreted.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, Mapping, Optional, Sequence


class StepType(str, Enum):
    """Closed set of workflow step kinds."""

    AGENT = "AGENT"
    DATA = "DATA"
    BRANCH = "BRANCH"
    API = "API"


def _require_id(value: Any, what: str) -> str:
    if not isinstance(value, str) or not value:
        raise ValueError(f"{what} id must be a non-empty string")
    return value


@dataclass(frozen=True)
class Node:
    """Single workflow step."""

    id: str
    type: StepType
    label: str = ""
    config: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        _require_id(self.id, "Node")
        if not isinstance(self.type, StepType):
            try:
                object.__setattr__(self, "type", StepType(self.type))
            except ValueError as exc:
                raise ValueError(
                    f"Node '{self.id}' has unknown step type '{self.type}'"
                ) from exc
        if not isinstance(self.label, str):
            raise ValueError(f"Node '{self.id}' label must be a string")
        if not isinstance(self.config, Mapping):
            raise ValueError(f"Node '{self.id}' config must be a mapping")

    def to_payload(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type.value,
            "label": self.label,
            "config": copy.deepcopy(dict(self.config)),
        }


@dataclass(frozen=True)
class Edge:
    """Directed transition between two steps.

    Edges are value objects identified by ``id``; a changed endpoint or label
    is a different edge under the same id.
    """

    id: str
    source: str
    target: str
    label: Optional[str] = None

    def __post_init__(self) -> None:
        _require_id(self.id, "Edge")
        _require_id(self.source, f"Edge '{self.id}' source")
        _require_id(self.target, f"Edge '{self.id}' target")
        if self.label is not None and not isinstance(self.label, str):
            raise ValueError(f"Edge '{self.id}' label must be a string")

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "id": self.id,
            "source": self.source,
            "target": self.target,
        }
        if self.label is not None:
            payload["label"] = self.label
        return payload


@dataclass(frozen=True)
class Graph:
    """Snapshot of a playbook graph.

    Entity ids are unique within a snapshot. Edge endpoints are not checked
    against the node set here; see ``engine.validation`` for advisory checks.
    """

    nodes: Sequence[Node] = ()
    edges: Sequence[Edge] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "nodes", tuple(self.nodes))
        object.__setattr__(self, "edges", tuple(self.edges))
        _ensure_unique((node.id for node in self.nodes), "node")
        _ensure_unique((edge.id for edge in self.edges), "edge")

    @classmethod
    def empty(cls) -> "Graph":
        return cls()

    def node_map(self) -> dict[str, Node]:
        return {node.id: node for node in self.nodes}

    def edge_map(self) -> dict[str, Edge]:
        return {edge.id: edge for edge in self.edges}

    def to_payload(self) -> dict[str, Any]:
        return {
            "nodes": [node.to_payload() for node in self.nodes],
            "edges": [edge.to_payload() for edge in self.edges],
        }

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "Graph":
        """Build a graph from the ``{nodes: [...], edges: [...]}`` shape.

        Editor payloads that nest ``label``/``config`` under ``data`` are
        accepted as well; layout fields such as ``position`` are dropped.
        """
        if not isinstance(payload, Mapping):
            raise ValueError("Graph payload must be an object")
        raw_nodes = payload.get("nodes") or []
        raw_edges = payload.get("edges") or []
        if not isinstance(raw_nodes, list) or not isinstance(raw_edges, list):
            raise ValueError("Graph 'nodes' and 'edges' must be arrays")
        nodes = [_node_from_payload(raw) for raw in raw_nodes]
        edges = [_edge_from_payload(raw) for raw in raw_edges]
        return cls(nodes=nodes, edges=edges)


def _ensure_unique(ids: Iterable[str], kind: str) -> None:
    seen: set[str] = set()
    for entity_id in ids:
        if entity_id in seen:
            raise ValueError(f"Duplicate {kind} id '{entity_id}' in graph")
        seen.add(entity_id)


def _node_from_payload(raw: Any) -> Node:
    if not isinstance(raw, Mapping):
        raise ValueError("Graph node entries must be objects")
    data = raw.get("data") if isinstance(raw.get("data"), Mapping) else {}
    label = raw.get("label", data.get("label", ""))
    config = raw.get("config", data.get("config", {}))
    if config is None:
        config = {}
    if not isinstance(config, Mapping):
        raise ValueError(f"Node '{raw.get('id')}' config must be an object")
    return Node(
        id=raw.get("id"),
        type=raw.get("type"),
        label=label if label is not None else "",
        config=copy.deepcopy(dict(config)),
    )


def _edge_from_payload(raw: Any) -> Edge:
    if not isinstance(raw, Mapping):
        raise ValueError("Graph edge entries must be objects")
    return Edge(
        id=raw.get("id"),
        source=raw.get("source"),
        target=raw.get("target"),
        label=raw.get("label"),
    )
