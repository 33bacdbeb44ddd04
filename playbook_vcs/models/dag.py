"""Read-only commit DAG projection models."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Mapping, Sequence


@dataclass(frozen=True)
class CommitDAGNode:
    """One commit as drawn in the history view."""

    commit_id: str
    branch_id: str
    branch_name: str
    parent_ids: Sequence[str]
    is_merge: bool
    version: int
    message: str
    author_id: str
    created_at: datetime
    lane: int

    def to_payload(self) -> dict[str, Any]:
        return {
            "commitId": self.commit_id,
            "branchId": self.branch_id,
            "branchName": self.branch_name,
            "parentIds": list(self.parent_ids),
            "isMerge": self.is_merge,
            "version": self.version,
            "message": self.message,
            "authorId": self.author_id,
            "createdAt": self.created_at.isoformat(),
            "lane": self.lane,
        }


@dataclass(frozen=True)
class DAGView:
    """Topologically ordered commits plus the branch-to-lane assignment."""

    playbook_id: str
    nodes: Sequence[CommitDAGNode]
    lanes: Mapping[str, int]
