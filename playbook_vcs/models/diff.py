"""Structural delta between two graph snapshots."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional, Sequence


@dataclass(frozen=True)
class NodeChange:
    """Node present on only one side of a diff."""

    id: str
    label: str
    type: str

    def to_payload(self) -> dict[str, Any]:
        return {"id": self.id, "label": self.label, "type": self.type}


@dataclass(frozen=True)
class NodeModification:
    """Node present on both sides whose content differs."""

    id: str
    label: str
    changes: Sequence[str]

    def to_payload(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "label": self.label,
            "changes": list(self.changes),
        }


@dataclass(frozen=True)
class EdgeChange:
    """Edge present on only one side of a diff."""

    id: str
    source: str
    target: str
    label: Optional[str] = None

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
class GraphDiff:
    """Result of ``engine.diff.diff_graphs``."""

    added_nodes: Sequence[NodeChange] = ()
    removed_nodes: Sequence[NodeChange] = ()
    modified_nodes: Sequence[NodeModification] = ()
    added_edges: Sequence[EdgeChange] = ()
    removed_edges: Sequence[EdgeChange] = ()

    def __post_init__(self) -> None:
        for name in (
            "added_nodes",
            "removed_nodes",
            "modified_nodes",
            "added_edges",
            "removed_edges",
        ):
            object.__setattr__(self, name, tuple(getattr(self, name)))

    @property
    def has_changes(self) -> bool:
        return bool(
            self.added_nodes
            or self.removed_nodes
            or self.modified_nodes
            or self.added_edges
            or self.removed_edges
        )

    def touched_node_ids(self) -> set[str]:
        return (
            {change.id for change in self.added_nodes}
            | {change.id for change in self.removed_nodes}
            | {change.id for change in self.modified_nodes}
        )

    def touched_edge_ids(self) -> set[str]:
        return {change.id for change in self.added_edges} | {
            change.id for change in self.removed_edges
        }

    def to_payload(self) -> dict[str, Any]:
        return {
            "addedNodes": [c.to_payload() for c in self.added_nodes],
            "removedNodes": [c.to_payload() for c in self.removed_nodes],
            "modifiedNodes": [c.to_payload() for c in self.modified_nodes],
            "addedEdges": [c.to_payload() for c in self.added_edges],
            "removedEdges": [c.to_payload() for c in self.removed_edges],
            "hasChanges": self.has_changes,
        }
