"""In-memory store implementations for development, tests and the CLI."""

from __future__ import annotations

import threading
from collections import defaultdict
from dataclasses import replace
from typing import Dict, Optional, Sequence

from playbook_vcs.models import Branch, Commit

from .base import BranchStore, CommitStore
from .errors import (BranchAlreadyExists, BranchNotFound, CommitNotFound,
                     ConcurrentModification, ParentCommitNotFound,
                     ValidationError)


class InMemoryCommitStore(CommitStore):
    """Dictionary-backed append-only commit log."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._commits: Dict[str, Commit] = {}
        self._children: Dict[str, set[str]] = defaultdict(set)

    def append(self, commit: Commit) -> str:
        with self._lock:
            if commit.id in self._commits:
                raise ValidationError(f"Commit '{commit.id}' already exists")
            for parent_id in commit.parent_ids:
                if parent_id not in self._commits:
                    raise ParentCommitNotFound(
                        f"Parent commit '{parent_id}' of '{commit.id}' "
                        "does not exist"
                    )
            self._commits[commit.id] = commit
            for parent_id in commit.parent_ids:
                self._children[parent_id].add(commit.id)
        return commit.id

    def get(self, commit_id: str) -> Commit:
        try:
            return self._commits[commit_id]
        except KeyError as exc:
            raise CommitNotFound(
                f"Commit '{commit_id}' does not exist"
            ) from exc

    def parents_of(self, commit_id: str) -> Sequence[str]:
        return self.get(commit_id).parent_ids

    def list_for_branch(self, branch_id: str) -> Sequence[Commit]:
        return [
            commit
            for commit in list(self._commits.values())
            if commit.branch_id == branch_id
        ]

    def list_for_playbook(self, playbook_id: str) -> Sequence[Commit]:
        return [
            commit
            for commit in list(self._commits.values())
            if commit.playbook_id == playbook_id
        ]

    def retract(self, commit_id: str) -> None:
        with self._lock:
            commit = self._commits.get(commit_id)
            if commit is None:
                return
            if self._children.get(commit_id):
                raise ValidationError(
                    f"Commit '{commit_id}' has descendants and cannot be "
                    "retracted"
                )
            del self._commits[commit_id]
            self._children.pop(commit_id, None)
            for parent_id in commit.parent_ids:
                self._children[parent_id].discard(commit_id)


class InMemoryBranchStore(BranchStore):
    """Branch records with an atomic head compare-and-swap."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._branches: Dict[str, Branch] = {}
        self._active: Dict[str, str] = {}

    def insert(self, branch: Branch) -> Branch:
        with self._lock:
            if branch.id in self._branches:
                raise ValidationError(f"Branch '{branch.id}' already exists")
            if self._find(branch.playbook_id, branch.name) is not None:
                raise BranchAlreadyExists(
                    f"Branch '{branch.name}' already exists in playbook "
                    f"'{branch.playbook_id}'"
                )
            self._branches[branch.id] = branch
        return branch

    def get(self, branch_id: str) -> Branch:
        try:
            return self._branches[branch_id]
        except KeyError as exc:
            raise BranchNotFound(
                f"Branch '{branch_id}' does not exist"
            ) from exc

    def find_by_name(self, playbook_id: str, name: str) -> Optional[Branch]:
        return self._find(playbook_id, name)

    def _find(self, playbook_id: str, name: str) -> Optional[Branch]:
        for branch in list(self._branches.values()):
            if branch.playbook_id == playbook_id and branch.name == name:
                return branch
        return None

    def list(self, playbook_id: str) -> Sequence[Branch]:
        return [
            branch
            for branch in list(self._branches.values())
            if branch.playbook_id == playbook_id
        ]

    def compare_and_swap_head(
        self,
        branch_id: str,
        expected_head: str,
        new_head: str,
    ) -> Branch:
        with self._lock:
            current = self.get(branch_id)
            if current.head_commit_id != expected_head:
                raise ConcurrentModification(
                    f"Branch '{current.name}' moved to "
                    f"'{current.head_commit_id}' (expected '{expected_head}')"
                )
            updated = replace(current, head_commit_id=new_head)
            self._branches[branch_id] = updated
        return updated

    def set_protected(self, branch_id: str, protected: bool) -> Branch:
        with self._lock:
            updated = replace(self.get(branch_id), is_protected=protected)
            self._branches[branch_id] = updated
        return updated

    def delete(self, branch_id: str) -> None:
        with self._lock:
            branch = self.get(branch_id)
            del self._branches[branch_id]
            if self._active.get(branch.playbook_id) == branch_id:
                del self._active[branch.playbook_id]

    def get_active(self, playbook_id: str) -> Optional[str]:
        return self._active.get(playbook_id)

    def set_active(self, playbook_id: str, branch_id: str) -> None:
        with self._lock:
            branch = self.get(branch_id)
            if branch.playbook_id != playbook_id:
                raise ValidationError(
                    f"Branch '{branch_id}' does not belong to playbook "
                    f"'{playbook_id}'"
                )
            self._active[playbook_id] = branch_id
