"""Abstract store interfaces for commit history and branch pointers."""

from __future__ import annotations

from typing import Optional, Protocol, Sequence

from playbook_vcs.models import Branch, Commit


class CommitStore(Protocol):
    """Append-only repository of immutable commits forming a DAG."""

    def append(self, commit: Commit) -> str:
        """
        Persist a new commit and return its id.

        Raise ParentCommitNotFound when either parent id does not resolve and
        ValidationError on duplicate ids.
        """

    def get(self, commit_id: str) -> Commit:
        """Return the commit or raise CommitNotFound."""

    def parents_of(self, commit_id: str) -> Sequence[str]:
        """Return zero, one or two parent ids (first parent first)."""

    def list_for_branch(self, branch_id: str) -> Sequence[Commit]:
        """Return commits recorded on a branch in append order."""

    def list_for_playbook(self, playbook_id: str) -> Sequence[Commit]:
        """Return every commit of a playbook in append order."""

    def retract(self, commit_id: str) -> None:
        """
        Drop a just-appended commit whose write group failed.

        Only commits nothing else points to may be retracted; this backs the
        rollback of an atomic write and is not a general delete.
        """


class BranchStore(Protocol):
    """Branch records keyed by id with compare-and-swap head moves."""

    def insert(self, branch: Branch) -> Branch:
        """Persist a new branch; raise BranchAlreadyExists on name clashes."""

    def get(self, branch_id: str) -> Branch:
        """Return the branch or raise BranchNotFound."""

    def find_by_name(self, playbook_id: str, name: str) -> Optional[Branch]:
        """Return the branch with that name in the playbook, if any."""

    def list(self, playbook_id: str) -> Sequence[Branch]:
        """Return branches of a playbook in creation order."""

    def compare_and_swap_head(
        self,
        branch_id: str,
        expected_head: str,
        new_head: str,
    ) -> Branch:
        """
        Move a head only if it still equals ``expected_head``.

        Raise ConcurrentModification when the head has moved.
        """

    def set_protected(self, branch_id: str, protected: bool) -> Branch:
        """Update the protection flag."""

    def delete(self, branch_id: str) -> None:
        """Remove a branch record."""

    def get_active(self, playbook_id: str) -> Optional[str]:
        """Return the playbook's active branch id, if one is set."""

    def set_active(self, playbook_id: str, branch_id: str) -> None:
        """Record the playbook's active branch id."""
