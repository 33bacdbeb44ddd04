"""
Playbook VCS Repository
Introductory remarks: This module is part of the Playbook VCS codebase.

Branch registry: named head pointers and the rules for moving them.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import Callable, Optional, Sequence

from playbook_vcs.models import Branch, utc_now, validate_branch_name
from playbook_vcs.storage.base import BranchStore, CommitStore
from playbook_vcs.storage.errors import (BranchAlreadyExists, BranchInUse,
                                         BranchNameInvalid, BranchNotFound,
                                         ConcurrentModification,
                                         InvalidFastForward, ProtectedBranch,
                                         ValidationError)

from .ancestry import AncestorResolver

_LOGGER = logging.getLogger(__name__)


def _new_id() -> str:
    return str(uuid.uuid4())


class BranchRegistry:
    """Owns the branch to head-commit mapping of every playbook.

    Heads only ever move through ``switch_head``, which enforces linear
    history per branch (the new head must descend from the old one) except
    for merge commits, and publishes the move with a compare-and-swap.
    """

    def __init__(
        self,
        branches: BranchStore,
        commits: CommitStore,
        *,
        ancestry: Optional[AncestorResolver] = None,
        id_factory: Callable[[], str] = _new_id,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._branches = branches
        self._commits = commits
        self._ancestry = ancestry or AncestorResolver(commits)
        self._new_id = id_factory
        self._clock = clock

    def get(self, branch_id: str) -> Branch:
        return self._branches.get(branch_id)

    def list(self, playbook_id: str) -> Sequence[Branch]:
        return self._branches.list(playbook_id)

    def find_by_name(self, playbook_id: str, name: str) -> Optional[Branch]:
        return self._branches.find_by_name(playbook_id, name)

    def create(
        self,
        playbook_id: str,
        name: str,
        from_branch_id: str,
        *,
        created_by: Optional[str] = None,
    ) -> Branch:
        """Create ``name`` pointing at the current head of ``from_branch_id``."""
        _check_name(name)
        source = self._branches.get(from_branch_id)
        if source.playbook_id != playbook_id:
            raise BranchNotFound(
                f"Branch '{from_branch_id}' does not belong to playbook "
                f"'{playbook_id}'"
            )
        # Resolves the head so a dangling pointer fails as CommitNotFound.
        self._commits.get(source.head_commit_id)
        branch = self._insert(
            playbook_id,
            name,
            source.head_commit_id,
            parent_branch_id=source.id,
            created_by=created_by,
        )
        _LOGGER.info(
            "Created branch %s (%s) from %s at %s",
            branch.name,
            branch.id,
            source.name,
            branch.head_commit_id,
        )
        return branch

    def create_root(
        self,
        playbook_id: str,
        name: str,
        head_commit_id: str,
        *,
        branch_id: Optional[str] = None,
        created_by: Optional[str] = None,
        protected: bool = False,
    ) -> Branch:
        """Create the first branch of a playbook at its root commit."""
        _check_name(name)
        self._commits.get(head_commit_id)
        return self._insert(
            playbook_id,
            name,
            head_commit_id,
            branch_id=branch_id,
            created_by=created_by,
            protected=protected,
        )

    def _insert(
        self,
        playbook_id: str,
        name: str,
        head_commit_id: str,
        *,
        branch_id: Optional[str] = None,
        parent_branch_id: Optional[str] = None,
        created_by: Optional[str] = None,
        protected: bool = False,
    ) -> Branch:
        if self._branches.find_by_name(playbook_id, name) is not None:
            raise BranchAlreadyExists(
                f"Branch '{name}' already exists in playbook '{playbook_id}'"
            )
        branch = Branch(
            id=branch_id or self._new_id(),
            playbook_id=playbook_id,
            name=name,
            head_commit_id=head_commit_id,
            created_at=self._clock(),
            parent_branch_id=parent_branch_id,
            is_protected=protected,
            created_by=created_by,
        )
        return self._branches.insert(branch)

    def switch_head(
        self,
        branch_id: str,
        commit_id: str,
        *,
        expected_head: Optional[str] = None,
    ) -> Branch:
        """Move a branch head to ``commit_id``.

        ``expected_head`` defaults to the head read here; pass the head the
        caller computed against to detect moves that happened in between.
        """
        branch = self._branches.get(branch_id)
        old_head = expected_head or branch.head_commit_id
        if old_head != branch.head_commit_id:
            raise ConcurrentModification(
                f"Branch '{branch.name}' is at '{branch.head_commit_id}', "
                f"not '{old_head}'"
            )
        commit = self._commits.get(commit_id)
        if commit.playbook_id != branch.playbook_id:
            raise ValidationError(
                f"Commit '{commit_id}' belongs to another playbook"
            )
        if not commit.is_merge and not self._ancestry.is_ancestor(
            old_head, commit_id
        ):
            raise InvalidFastForward(
                f"Commit '{commit_id}' does not descend from head "
                f"'{old_head}' of branch '{branch.name}'"
            )
        try:
            updated = self._branches.compare_and_swap_head(
                branch_id, old_head, commit_id
            )
        except ConcurrentModification:
            _LOGGER.warning(
                "Lost head update on branch %s (%s -> %s)",
                branch.name,
                old_head,
                commit_id,
            )
            raise
        _LOGGER.debug(
            "Branch %s head %s -> %s", branch.name, old_head, commit_id
        )
        return updated

    def protect(self, branch_id: str, protected: bool = True) -> Branch:
        branch = self._branches.set_protected(branch_id, bool(protected))
        _LOGGER.info(
            "Branch %s protection set to %s", branch.name, branch.is_protected
        )
        return branch

    def delete(self, branch_id: str) -> None:
        """Remove a branch pointer; its commits stay in history."""
        branch = self._branches.get(branch_id)
        if branch.is_protected:
            raise ProtectedBranch(
                f"Cannot delete protected branch '{branch.name}'"
            )
        if self._branches.get_active(branch.playbook_id) == branch_id:
            raise BranchInUse(
                f"Cannot delete active branch '{branch.name}'; "
                "check out another branch first"
            )
        self._branches.delete(branch_id)
        _LOGGER.info("Deleted branch %s (%s)", branch.name, branch_id)

    def active(self, playbook_id: str) -> Optional[Branch]:
        branch_id = self._branches.get_active(playbook_id)
        if branch_id is None:
            return None
        return self._branches.get(branch_id)

    def checkout(self, playbook_id: str, branch_id: str) -> Branch:
        branch = self._branches.get(branch_id)
        if branch.playbook_id != playbook_id:
            raise BranchNotFound(
                f"Branch '{branch_id}' does not belong to playbook "
                f"'{playbook_id}'"
            )
        self._branches.set_active(playbook_id, branch_id)
        return branch


def _check_name(name: str) -> None:
    try:
        validate_branch_name(name)
    except ValueError as exc:
        raise BranchNameInvalid(str(exc)) from exc
