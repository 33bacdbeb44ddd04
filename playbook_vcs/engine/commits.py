"""Append a commit and advance its branch as one unit."""

from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import Callable, Optional

from playbook_vcs.models import Branch, Commit, Graph, utc_now
from playbook_vcs.storage.atomic_update import (AtomicUpdateGroup,
                                                unwrap_domain_errors)
from playbook_vcs.storage.base import CommitStore
from playbook_vcs.storage.errors import RepositoryError

from .branches import BranchRegistry

_LOGGER = logging.getLogger(__name__)


def _new_id() -> str:
    return str(uuid.uuid4())


class CommitWriter:
    """Creates commits on top of a branch head.

    The commit is appended first and the head compare-and-swap runs last;
    if the swap loses, the unreferenced commit is retracted and the domain
    error (usually ConcurrentModification) reaches the caller unchanged.
    """

    def __init__(
        self,
        commits: CommitStore,
        registry: BranchRegistry,
        *,
        id_factory: Callable[[], str] = _new_id,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._commits = commits
        self._registry = registry
        self._new_id = id_factory
        self._clock = clock

    def next_version(self, branch: Branch) -> int:
        """One past the highest version on the branch or at its head."""
        head = self._commits.get(branch.head_commit_id)
        highest = max(
            (c.version for c in self._commits.list_for_branch(branch.id)),
            default=0,
        )
        return max(highest, head.version) + 1

    def write(
        self,
        branch: Branch,
        graph: Graph,
        message: str,
        author_id: str,
        *,
        merge_parent_commit_id: Optional[str] = None,
    ) -> Commit:
        """Commit ``graph`` on top of ``branch.head_commit_id``."""
        commit = Commit(
            id=self._new_id(),
            playbook_id=branch.playbook_id,
            branch_id=branch.id,
            version=self.next_version(branch),
            graph=graph,
            message=message,
            author_id=author_id,
            created_at=self._clock(),
            parent_commit_id=branch.head_commit_id,
            merge_parent_commit_id=merge_parent_commit_id,
        )

        group = AtomicUpdateGroup.begin(f"branch:{branch.id}")
        group.add_step(
            "commit",
            lambda ctx: self._commits.append(commit),
            undo=lambda ctx: self._commits.retract(commit.id),
        )
        group.add_step(
            "head",
            lambda ctx: self._registry.switch_head(
                branch.id,
                commit.id,
                expected_head=branch.head_commit_id,
            ),
        )
        with unwrap_domain_errors(RepositoryError):
            group.execute()

        _LOGGER.info(
            "Committed %s v%d on branch %s%s",
            commit.id,
            commit.version,
            branch.name,
            " (merge)" if commit.is_merge else "",
        )
        return commit

    def create_root(
        self,
        playbook_id: str,
        branch_id: str,
        graph: Graph,
        message: str,
        author_id: str,
    ) -> Commit:
        """Append the parentless first commit of a playbook."""
        commit = Commit(
            id=self._new_id(),
            playbook_id=playbook_id,
            branch_id=branch_id,
            version=1,
            graph=graph,
            message=message,
            author_id=author_id,
            created_at=self._clock(),
        )
        self._commits.append(commit)
        return commit
