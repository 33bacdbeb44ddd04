"""
Playbook VCS Repository
Introductory remarks: This module is part of the Playbook VCS codebase.

Tests for the in-memory commit and branch stores.
"""

from __future__ import annotations

import threading
from datetime import datetime, timezone
from typing import Optional

import pytest

from playbook_vcs.models import Branch, Commit, Graph
from playbook_vcs.storage.errors import (BranchAlreadyExists, BranchNotFound,
                                         CommitNotFound,
                                         ConcurrentModification,
                                         ParentCommitNotFound,
                                         ValidationError)
from playbook_vcs.storage.memory import (InMemoryBranchStore,
                                         InMemoryCommitStore)

_NOW = datetime(2024, 1, 1, tzinfo=timezone.utc)


def _commit(
    commit_id: str,
    parent: Optional[str] = None,
    merge_parent: Optional[str] = None,
    branch_id: str = "b1",
    playbook_id: str = "pb",
) -> Commit:
    """
    _commit: Function description.
    :param commit_id:
    :param parent:
    :param merge_parent:
    :param branch_id:
    :param playbook_id:
    :returns:
    """

    return Commit(
        id=commit_id,
        playbook_id=playbook_id,
        branch_id=branch_id,
        version=1,
        graph=Graph(),
        message=commit_id,
        author_id="u",
        created_at=_NOW,
        parent_commit_id=parent,
        merge_parent_commit_id=merge_parent,
    )


def _branch(
    branch_id: str = "b1", name: str = "main", head: str = "c1"
) -> Branch:
    return Branch(
        id=branch_id,
        playbook_id="pb",
        name=name,
        head_commit_id=head,
        created_at=_NOW,
    )


def test_commit_store_append_and_lookup() -> None:
    """
    test_commit_store_append_and_lookup: Function description.
    :param:
    :returns:
    """

    store = InMemoryCommitStore()
    store.append(_commit("c1"))
    store.append(_commit("c2", "c1", branch_id="b2"))
    store.append(_commit("c3", "c1", "c2"))

    assert store.get("c3").parent_ids == ("c1", "c2")
    assert store.parents_of("c3") == ("c1", "c2")
    assert [c.id for c in store.list_for_branch("b1")] == ["c1", "c3"]
    assert [c.id for c in store.list_for_playbook("pb")] == ["c1", "c2", "c3"]
    assert store.list_for_playbook("other") == []


def test_commit_store_rejects_missing_parents_and_duplicates() -> None:
    """
    test_commit_store_rejects_missing_parents_and_duplicates: Function description.
    :param:
    :returns:
    """

    store = InMemoryCommitStore()
    store.append(_commit("c1"))

    with pytest.raises(ParentCommitNotFound):
        store.append(_commit("c2", "ghost"))
    with pytest.raises(ParentCommitNotFound):
        store.append(_commit("c2", "c1", "ghost"))
    with pytest.raises(ValidationError):
        store.append(_commit("c1"))
    with pytest.raises(CommitNotFound):
        store.get("c2")


def test_commit_store_retract_only_removes_leaves() -> None:
    """
    test_commit_store_retract_only_removes_leaves: Function description.
    :param:
    :returns:
    """

    store = InMemoryCommitStore()
    store.append(_commit("c1"))
    store.append(_commit("c2", "c1"))

    with pytest.raises(ValidationError, match="descendants"):
        store.retract("c1")

    store.retract("c2")
    store.retract("c2")
    store.retract("c1")

    assert store.list_for_playbook("pb") == []


def test_branch_store_insert_and_name_uniqueness() -> None:
    """
    test_branch_store_insert_and_name_uniqueness: Function description.
    :param:
    :returns:
    """

    store = InMemoryBranchStore()
    store.insert(_branch())

    with pytest.raises(BranchAlreadyExists):
        store.insert(_branch("b2", "main"))
    with pytest.raises(ValidationError):
        store.insert(_branch("b1", "other"))

    assert store.find_by_name("pb", "main") == _branch()
    assert store.find_by_name("pb", "nope") is None
    with pytest.raises(BranchNotFound):
        store.get("b9")


def test_branch_store_compare_and_swap() -> None:
    """
    test_branch_store_compare_and_swap: Function description.
    :param:
    :returns:
    """

    store = InMemoryBranchStore()
    store.insert(_branch())

    updated = store.compare_and_swap_head("b1", "c1", "c2")
    assert updated.head_commit_id == "c2"
    assert store.get("b1").head_commit_id == "c2"

    with pytest.raises(ConcurrentModification):
        store.compare_and_swap_head("b1", "c1", "c3")
    assert store.get("b1").head_commit_id == "c2"


def test_branch_store_cas_has_single_winner() -> None:
    """
    test_branch_store_cas_has_single_winner: Function description.
    :param:
    :returns:
    """

    store = InMemoryBranchStore()
    store.insert(_branch())
    winners: list[str] = []
    losers: list[str] = []
    start = threading.Barrier(8)

    def _attempt(new_head: str) -> None:
        start.wait()
        try:
            store.compare_and_swap_head("b1", "c1", new_head)
            winners.append(new_head)
        except ConcurrentModification:
            losers.append(new_head)

    threads = [
        threading.Thread(target=_attempt, args=(f"c{i}",))
        for i in range(2, 10)
    ]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=2)

    assert len(winners) == 1
    assert len(losers) == 7
    assert store.get("b1").head_commit_id == winners[0]


def test_branch_store_active_branch_tracking() -> None:
    """
    test_branch_store_active_branch_tracking: Function description.
    :param:
    :returns:
    """

    store = InMemoryBranchStore()
    store.insert(_branch())
    store.insert(_branch("b2", "dev"))

    assert store.get_active("pb") is None
    store.set_active("pb", "b2")
    assert store.get_active("pb") == "b2"

    with pytest.raises(ValidationError):
        store.set_active("other", "b1")

    store.delete("b2")
    assert store.get_active("pb") is None
    assert [b.id for b in store.list("pb")] == ["b1"]


def test_branch_store_set_protected() -> None:
    store = InMemoryBranchStore()
    store.insert(_branch())

    assert store.set_protected("b1", True).is_protected
    assert store.get("b1").is_protected
