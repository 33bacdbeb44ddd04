"""Ancestor queries over the commit DAG."""

from __future__ import annotations

import logging
from collections import deque
from typing import Dict, Iterable, Iterator, Optional, Set

from playbook_vcs.storage.base import CommitStore

_LOGGER = logging.getLogger(__name__)


class AncestorResolver:
    """Walks commit parents (one or two per commit) through a CommitStore.

    Answers depend only on parent links, never on commit timestamps.
    """

    def __init__(self, commits: CommitStore) -> None:
        self._commits = commits

    def ancestors(self, commit_id: str) -> Iterator[str]:
        """Yield ``commit_id`` and every ancestor, breadth-first, once each."""
        self._commits.get(commit_id)
        visited: Set[str] = {commit_id}
        queue = deque([commit_id])
        while queue:
            current = queue.popleft()
            yield current
            for parent_id in self._commits.parents_of(current):
                if parent_id not in visited:
                    visited.add(parent_id)
                    queue.append(parent_id)

    def is_ancestor(self, ancestor_id: str, descendant_id: str) -> bool:
        """True when ``ancestor_id`` is reachable from ``descendant_id``.

        A commit counts as its own ancestor.
        """
        self._commits.get(ancestor_id)
        return any(
            commit_id == ancestor_id
            for commit_id in self.ancestors(descendant_id)
        )

    def common_ancestor(self, a: str, b: str) -> Optional[str]:
        """Lowest common ancestor of two commits, or None for disjoint roots.

        Shared commits that are ancestors of another shared commit are
        discarded. Criss-cross histories can leave more than one candidate;
        the one with the highest generation number wins, then the smallest
        id, so the result does not depend on argument order.
        """
        reachable_from_a = set(self.ancestors(a))
        shared = {
            commit_id
            for commit_id in self.ancestors(b)
            if commit_id in reachable_from_a
        }
        if not shared:
            _LOGGER.debug("No common ancestor for %s and %s", a, b)
            return None

        dominated = self._strict_ancestors(shared)
        candidates = shared - dominated
        generations = self.generations(candidates)
        return min(candidates, key=lambda cid: (-generations[cid], cid))

    def generations(self, commit_ids: Iterable[str]) -> Dict[str, int]:
        """Generation number per commit: roots are 1, children 1 + max(parents)."""
        known: Dict[str, int] = {}
        for start in commit_ids:
            stack = [start]
            while stack:
                current = stack[-1]
                if current in known:
                    stack.pop()
                    continue
                parents = self._commits.parents_of(current)
                pending = [p for p in parents if p not in known]
                if pending:
                    stack.extend(pending)
                    continue
                known[current] = 1 + max(
                    (known[p] for p in parents), default=0
                )
                stack.pop()
        return known

    def _strict_ancestors(self, commit_ids: Set[str]) -> Set[str]:
        found: Set[str] = set()
        stack = [
            parent_id
            for commit_id in commit_ids
            for parent_id in self._commits.parents_of(commit_id)
        ]
        while stack:
            current = stack.pop()
            if current in found:
                continue
            found.add(current)
            stack.extend(self._commits.parents_of(current))
        return found
