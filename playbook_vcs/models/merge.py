"""Merge conflict and resolution models.

Conflicts are keyed by a tagged entity reference (``NodeRef`` or ``EdgeRef``)
rather than a bare string, so a node and an edge that share an id never
collide. The ``node:<id>`` / ``edge:<id>`` strings exist only for transport.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping, Optional, Sequence, Union

from .graph import Graph
from .versioning import Commit


@dataclass(frozen=True)
class NodeRef:
    """Reference to a node by id."""

    node_id: str

    @property
    def key(self) -> str:
        return f"node:{self.node_id}"


@dataclass(frozen=True)
class EdgeRef:
    """Reference to an edge by id."""

    edge_id: str

    @property
    def key(self) -> str:
        return f"edge:{self.edge_id}"


EntityRef = Union[NodeRef, EdgeRef]


def parse_entity_key(key: str) -> EntityRef:
    """Parse a ``node:<id>`` or ``edge:<id>`` transport key."""
    kind, sep, entity_id = key.partition(":")
    if not sep or not entity_id:
        raise ValueError(
            f"Conflict key '{key}' must look like 'node:<id>' or 'edge:<id>'"
        )
    if kind == "node":
        return NodeRef(entity_id)
    if kind == "edge":
        return EdgeRef(entity_id)
    raise ValueError(f"Conflict key '{key}' has unknown entity kind '{kind}'")


class ConflictKind(str, Enum):
    """Operation behind a conflicting change, ranked by destructiveness."""

    ADD = "add"
    MODIFY = "modify"
    DELETE = "delete"

    @property
    def severity(self) -> int:
        return _SEVERITY[self]


_SEVERITY = {
    ConflictKind.ADD: 0,
    ConflictKind.MODIFY: 1,
    ConflictKind.DELETE: 2,
}


class Resolution(str, Enum):
    """Which side of a conflict to keep."""

    OURS = "ours"
    THEIRS = "theirs"


@dataclass(frozen=True)
class ConflictResolution:
    """Caller's choice for one conflicting entity."""

    target: EntityRef
    resolution: Resolution

    def __post_init__(self) -> None:
        if not isinstance(self.target, (NodeRef, EdgeRef)):
            raise ValueError("Resolution target must be a NodeRef or EdgeRef")
        if not isinstance(self.resolution, Resolution):
            object.__setattr__(
                self, "resolution", Resolution(self.resolution)
            )

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "ConflictResolution":
        """Parse ``{"nodeId"|"edgeId": ..., "resolution": "ours"|"theirs"}``."""
        node_id = payload.get("nodeId")
        edge_id = payload.get("edgeId")
        if bool(node_id) == bool(edge_id):
            raise ValueError(
                "Resolution must name exactly one of 'nodeId' or 'edgeId'"
            )
        target: EntityRef = NodeRef(node_id) if node_id else EdgeRef(edge_id)
        raw = payload.get("resolution")
        try:
            resolution = Resolution(raw)
        except ValueError as exc:
            raise ValueError(
                f"Resolution for {target.key} must be 'ours' or 'theirs'"
            ) from exc
        return cls(target=target, resolution=resolution)


def resolutions_from_key_map(
    mapping: Mapping[str, str],
) -> list[ConflictResolution]:
    """Convert the editor's ``{"node:<id>": "ours"}`` map to resolutions."""
    return [
        ConflictResolution(parse_entity_key(key), Resolution(choice))
        for key, choice in mapping.items()
    ]


@dataclass(frozen=True)
class MergeConflict:
    """Entity changed incompatibly on both sides of a merge.

    ``ours`` is the target branch's version and ``theirs`` the source's; a
    side that deleted the entity carries ``None``.
    """

    target: EntityRef
    kind: ConflictKind
    ours: Optional[Mapping[str, Any]]
    theirs: Optional[Mapping[str, Any]]

    @property
    def node_id(self) -> Optional[str]:
        return self.target.node_id if isinstance(self.target, NodeRef) else None

    @property
    def edge_id(self) -> Optional[str]:
        return self.target.edge_id if isinstance(self.target, EdgeRef) else None

    @property
    def key(self) -> str:
        return self.target.key

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "type": self.kind.value,
            "ours": dict(self.ours) if self.ours is not None else None,
            "theirs": dict(self.theirs) if self.theirs is not None else None,
        }
        if self.node_id is not None:
            payload["nodeId"] = self.node_id
        else:
            payload["edgeId"] = self.edge_id
        return payload


class MergeOutcome:
    """Base for the two merge results."""

    succeeded: bool = False


@dataclass(frozen=True)
class MergeConflicts(MergeOutcome):
    """Merge stopped; every listed conflict needs a resolution."""

    conflicts: Sequence[MergeConflict]

    succeeded = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "conflicts", tuple(self.conflicts))


@dataclass(frozen=True)
class MergeCompleted(MergeOutcome):
    """Merge applied; ``commit`` is the new merge commit on the target."""

    commit: Commit

    succeeded = True

    @property
    def graph(self) -> Graph:
        return self.commit.graph
