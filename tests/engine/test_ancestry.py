"""
Playbook VCS Repository
Introductory remarks: This module is part of the Playbook VCS codebase.

Tests for ancestor queries over the commit DAG.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable, Optional

import pytest

from playbook_vcs.engine import AncestorResolver
from playbook_vcs.models import Commit, Graph
from playbook_vcs.storage.errors import CommitNotFound
from playbook_vcs.storage.memory import InMemoryCommitStore


@pytest.fixture
def store() -> InMemoryCommitStore:
    return InMemoryCommitStore()


@pytest.fixture
def add(
    store: InMemoryCommitStore, clock: Callable[[], datetime]
) -> Callable[..., str]:
    def _add(
        commit_id: str,
        parent: Optional[str] = None,
        merge_parent: Optional[str] = None,
        branch: str = "main",
        created_at: Optional[datetime] = None,
    ) -> str:
        """
        _add: Function description.
        :param commit_id:
        :param parent:
        :param merge_parent:
        :param branch:
        :param created_at:
        :returns:
        """

        return store.append(
            Commit(
                id=commit_id,
                playbook_id="pb",
                branch_id=branch,
                version=1,
                graph=Graph(),
                message=commit_id,
                author_id="u",
                created_at=created_at or clock(),
                parent_commit_id=parent,
                merge_parent_commit_id=merge_parent,
            )
        )

    return _add


def test_commit_is_its_own_common_ancestor(
    store: InMemoryCommitStore, add: Callable[..., str]
) -> None:
    add("root")
    resolver = AncestorResolver(store)

    assert resolver.common_ancestor("root", "root") == "root"
    assert resolver.is_ancestor("root", "root")


def test_common_ancestor_of_forked_branches(
    store: InMemoryCommitStore, add: Callable[..., str]
) -> None:
    add("root")
    add("m1", "root")
    add("f1", "m1", branch="feature")
    add("m2", "m1")
    add("f2", "f1", branch="feature")
    resolver = AncestorResolver(store)

    assert resolver.common_ancestor("m2", "f2") == "m1"
    assert resolver.common_ancestor("f2", "m2") == "m1"
    assert resolver.common_ancestor("m1", "f2") == "m1"


def test_merge_commit_moves_common_ancestor_forward(
    store: InMemoryCommitStore, add: Callable[..., str]
) -> None:
    add("root")
    add("f1", "root", branch="feature")
    add("m1", "root")
    add("merge", "m1", "f1")
    add("f2", "f1", branch="feature")
    add("m2", "merge")
    resolver = AncestorResolver(store)

    assert resolver.common_ancestor("m2", "f2") == "f1"
    assert resolver.common_ancestor("f2", "m2") == "f1"


def test_merge_shortcut_does_not_pick_an_older_ancestor(
    store: InMemoryCommitStore, add: Callable[..., str]
) -> None:
    # "side" reaches root in one hop while main's path to root is long.
    add("root")
    add("m1", "root")
    add("m2", "m1")
    add("m3", "m2")
    add("side", "root", branch="side")
    add("merge", "side", "m3", branch="side")
    add("m4", "m3")
    resolver = AncestorResolver(store)

    assert resolver.common_ancestor("merge", "m4") == "m3"
    assert resolver.common_ancestor("m4", "merge") == "m3"


def test_disjoint_roots_have_no_common_ancestor(
    store: InMemoryCommitStore, add: Callable[..., str]
) -> None:
    add("r1")
    add("r2")
    add("a", "r1")
    add("b", "r2")
    resolver = AncestorResolver(store)

    assert resolver.common_ancestor("a", "b") is None
    assert not resolver.is_ancestor("r1", "b")


def test_ancestors_walk_both_parents_once(
    store: InMemoryCommitStore, add: Callable[..., str]
) -> None:
    add("root")
    add("a", "root")
    add("b", "root")
    add("merge", "a", "b")
    resolver = AncestorResolver(store)

    visited = list(resolver.ancestors("merge"))

    assert visited[0] == "merge"
    assert sorted(visited) == ["a", "b", "merge", "root"]
    assert resolver.is_ancestor("b", "merge")
    assert not resolver.is_ancestor("merge", "b")


def test_unknown_commits_raise(
    store: InMemoryCommitStore, add: Callable[..., str]
) -> None:
    add("root")
    resolver = AncestorResolver(store)

    with pytest.raises(CommitNotFound):
        resolver.common_ancestor("root", "missing")
    with pytest.raises(CommitNotFound):
        list(resolver.ancestors("missing"))


@pytest.mark.parametrize(
    "timestamps",
    [
        [datetime(2024, 1, 1, tzinfo=timezone.utc)] * 5,
        [datetime(2024, 1, 5 - day, tzinfo=timezone.utc) for day in range(5)],
    ],
    ids=["frozen", "backwards"],
)
def test_common_ancestor_ignores_commit_timestamps(
    store: InMemoryCommitStore,
    add: Callable[..., str],
    timestamps: list[datetime],
) -> None:
    """
    test_common_ancestor_ignores_commit_timestamps: Function description.
    :param store:
    :param add:
    :param timestamps:
    :returns:
    """

    stamps = iter(timestamps)
    add("c-001", created_at=next(stamps))
    add("c-002", "c-001", created_at=next(stamps))
    add("c-003", "c-002", created_at=next(stamps))
    add("c-004", "c-003", branch="feature", created_at=next(stamps))
    add("c-005", "c-003", created_at=next(stamps))
    resolver = AncestorResolver(store)

    assert resolver.common_ancestor("c-005", "c-004") == "c-003"
    assert resolver.common_ancestor("c-004", "c-005") == "c-003"


def test_criss_cross_picks_highest_generation_then_smallest_id(
    store: InMemoryCommitStore, add: Callable[..., str]
) -> None:
    add("root")
    add("a1", "root")
    add("b1", "root", branch="b")
    add("b2", "b1", branch="b")
    add("a2", "a1", "b2")
    add("b3", "b2", "a1", branch="b")
    resolver = AncestorResolver(store)

    # a1 and b2 are both best common ancestors; b2 sits one generation deeper.
    assert resolver.generations(["a1", "b2"]) == {
        "root": 1,
        "a1": 2,
        "b1": 2,
        "b2": 3,
    }
    assert resolver.common_ancestor("a2", "b3") == "b2"
    assert resolver.common_ancestor("b3", "a2") == "b2"
