"""
Playbook VCS Repository
Introductory remarks: This module is part of the Playbook VCS codebase.

Commit and branch domain models plus their field validators.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from playbook_vcs.config import (BRANCH_NAME_MAX_LENGTH, BRANCH_NAME_PATTERN,
                                 COMMIT_MESSAGE_MAX_LENGTH)

from .graph import Graph

BRANCH_NAME_REGEX = re.compile(BRANCH_NAME_PATTERN)


def validate_branch_name(name: str) -> str:
    """Ensure branch names match the allowed pattern."""
    if not isinstance(name, str) or not name:
        raise ValueError("Branch name cannot be empty")
    if len(name) > BRANCH_NAME_MAX_LENGTH:
        raise ValueError(
            f"Branch name is longer than {BRANCH_NAME_MAX_LENGTH} characters"
        )
    if not BRANCH_NAME_REGEX.fullmatch(name):
        raise ValueError(
            "Branch name "
            f"'{name}' is invalid. Expected pattern "
            f"{BRANCH_NAME_REGEX.pattern}"
        )
    return name


def validate_commit_message(message: str) -> str:
    """Commit messages are required and bounded in length."""
    if not isinstance(message, str) or not message.strip():
        raise ValueError("Commit message cannot be empty")
    if len(message) > COMMIT_MESSAGE_MAX_LENGTH:
        raise ValueError(
            f"Commit message is longer than {COMMIT_MESSAGE_MAX_LENGTH} "
            "characters"
        )
    return message


def ensure_utc(dt: datetime) -> datetime:
    """
    ensure_utc: Normalise an aware timestamp to UTC.
    :param dt:
    :returns:
    """

    if dt.tzinfo is None:
        raise ValueError(
            "Commit timestamps must include timezone information (UTC)"
        )
    if dt.tzinfo != timezone.utc:
        return dt.astimezone(timezone.utc)
    return dt


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Commit:
    """Immutable graph snapshot plus lineage metadata.

    A commit with ``merge_parent_commit_id`` set is a merge commit and has
    two parents: the target head it was merged onto and the source head.
    """

    id: str
    playbook_id: str
    branch_id: str
    version: int
    graph: Graph
    message: str
    author_id: str
    created_at: datetime
    parent_commit_id: Optional[str] = None
    merge_parent_commit_id: Optional[str] = None

    def __post_init__(self) -> None:
        """
        __post_init__: Function description.
        :param:
        :returns:
        """

        for name in ("id", "playbook_id", "branch_id"):
            if not getattr(self, name):
                raise ValueError(f"Commit {name} cannot be empty")
        if isinstance(self.version, bool) or not isinstance(self.version, int):
            raise ValueError("Commit version must be an integer")
        if self.version < 1:
            raise ValueError("Commit version must be positive")
        if not isinstance(self.graph, Graph):
            raise ValueError("Commit graph must be a Graph")
        if self.merge_parent_commit_id and not self.parent_commit_id:
            raise ValueError("Merge commits require a first parent")
        validate_commit_message(self.message)
        object.__setattr__(self, "created_at", ensure_utc(self.created_at))

    @property
    def is_merge(self) -> bool:
        return self.merge_parent_commit_id is not None

    @property
    def parent_ids(self) -> tuple[str, ...]:
        parents = []
        if self.parent_commit_id:
            parents.append(self.parent_commit_id)
        if self.merge_parent_commit_id:
            parents.append(self.merge_parent_commit_id)
        return tuple(parents)


@dataclass(frozen=True)
class Branch:
    """Named, mutable pointer to a commit.

    Instances are immutable; the registry swaps in a new value whenever the
    head or the protection flag changes.
    """

    id: str
    playbook_id: str
    name: str
    head_commit_id: str
    created_at: datetime
    parent_branch_id: Optional[str] = None
    is_protected: bool = False
    created_by: Optional[str] = None

    def __post_init__(self) -> None:
        if not self.id:
            raise ValueError("Branch id cannot be empty")
        if not self.playbook_id:
            raise ValueError("Branch playbook id cannot be empty")
        if not self.head_commit_id:
            raise ValueError("Branch head commit id cannot be empty")
        validate_branch_name(self.name)
        object.__setattr__(self, "created_at", ensure_utc(self.created_at))


@dataclass(frozen=True)
class BranchSummary:
    """Branch listing entry with its head commit and commit count."""

    branch: Branch
    latest_commit: Optional[Commit]
    commit_count: int
