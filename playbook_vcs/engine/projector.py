"""Read-only commit DAG projection for history views."""

from __future__ import annotations

import heapq
from typing import Dict, Iterable, List, Set

from playbook_vcs.models import Commit, CommitDAGNode, DAGView
from playbook_vcs.storage.base import BranchStore, CommitStore

# Branch names cannot contain parentheses, so this never shadows a live branch.
DELETED_BRANCH_LABEL = "(deleted)"


class CommitGraphProjector:
    """Lays out the commits reachable from a playbook's branch heads.

    Output is topological (parents before children), ties broken by creation
    time then id. Each branch name gets a lane in first-seen order along that
    sequence. Commits whose branch was deleted are labelled
    DELETED_BRANCH_LABEL and share one lane. Nothing here feeds back into
    merge or commit decisions.
    """

    def __init__(self, commits: CommitStore, branches: BranchStore) -> None:
        self._commits = commits
        self._branches = branches

    def project(self, playbook_id: str) -> DAGView:
        branches = list(self._branches.list(playbook_id))
        names: Dict[str, str] = {branch.id: branch.name for branch in branches}

        reachable = self._reachable(
            branch.head_commit_id for branch in branches
        )
        ordered = _topological(reachable)

        lanes: Dict[str, int] = {}
        nodes: List[CommitDAGNode] = []
        for commit in ordered:
            branch_name = names.get(commit.branch_id, DELETED_BRANCH_LABEL)
            lane = lanes.setdefault(branch_name, len(lanes))
            nodes.append(
                CommitDAGNode(
                    commit_id=commit.id,
                    branch_id=commit.branch_id,
                    branch_name=branch_name,
                    parent_ids=commit.parent_ids,
                    is_merge=commit.is_merge,
                    version=commit.version,
                    message=commit.message,
                    author_id=commit.author_id,
                    created_at=commit.created_at,
                    lane=lane,
                )
            )
        return DAGView(playbook_id=playbook_id, nodes=nodes, lanes=lanes)

    def _reachable(self, heads: Iterable[str]) -> Dict[str, Commit]:
        found: Dict[str, Commit] = {}
        stack = list(heads)
        while stack:
            commit_id = stack.pop()
            if commit_id in found:
                continue
            commit = self._commits.get(commit_id)
            found[commit_id] = commit
            stack.extend(
                parent for parent in commit.parent_ids if parent not in found
            )
        return found


def _topological(commits: Dict[str, Commit]) -> List[Commit]:
    pending: Dict[str, int] = {}
    children: Dict[str, Set[str]] = {commit_id: set() for commit_id in commits}
    for commit in commits.values():
        parents = set(commit.parent_ids)
        pending[commit.id] = len(parents)
        for parent_id in parents:
            children[parent_id].add(commit.id)

    ready = [
        (commit.created_at, commit.id)
        for commit in commits.values()
        if pending[commit.id] == 0
    ]
    heapq.heapify(ready)
    ordered: List[Commit] = []
    while ready:
        _, commit_id = heapq.heappop(ready)
        ordered.append(commits[commit_id])
        for child_id in children[commit_id]:
            pending[child_id] -= 1
            if pending[child_id] == 0:
                child = commits[child_id]
                heapq.heappush(ready, (child.created_at, child.id))
    return ordered
