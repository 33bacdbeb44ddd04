"""

Playbook VCS Repository
Introductory remarks: This module is part of the Playbook VCS codebase.

"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from playbook_vcs.models import (Branch, Commit, ConflictResolution, EdgeRef,
                                 Graph, NodeRef, Resolution, ensure_utc,
                                 parse_entity_key, resolutions_from_key_map,
                                 validate_branch_name, validate_commit_message)

_NOW = datetime(2024, 1, 1, tzinfo=timezone.utc)


@pytest.mark.parametrize("name", ["main", "feature_1", "hot-fix", "A" * 100])
def test_branch_name_accepts_allowed_pattern(name: str) -> None:
    """
    test_branch_name_accepts_allowed_pattern: Function description.
    :param name:
    :returns:
    """

    assert validate_branch_name(name) == name


@pytest.mark.parametrize(
    "name", ["", "feat/1", "has space", "dots.not.allowed", "A" * 101, "main\n"]
)
def test_branch_name_rejects_invalid(name: str) -> None:
    """
    test_branch_name_rejects_invalid: Function description.
    :param name:
    :returns:
    """

    with pytest.raises(ValueError):
        validate_branch_name(name)


def test_commit_message_bounds() -> None:
    """
    test_commit_message_bounds: Function description.
    :param:
    :returns:
    """

    assert validate_commit_message("x" * 500) == "x" * 500
    with pytest.raises(ValueError, match="cannot be empty"):
        validate_commit_message("   ")
    with pytest.raises(ValueError, match="longer than 500"):
        validate_commit_message("x" * 501)


def test_ensure_utc_rejects_naive_and_converts_offsets() -> None:
    """
    test_ensure_utc_rejects_naive_and_converts_offsets: Function description.
    :param:
    :returns:
    """

    with pytest.raises(ValueError, match="timezone information"):
        ensure_utc(datetime(2024, 1, 1))

    plus_two = timezone(timedelta(hours=2))
    converted = ensure_utc(datetime(2024, 1, 1, 2, tzinfo=plus_two))
    assert converted == _NOW
    assert converted.tzinfo == timezone.utc


def test_commit_parent_ids_put_first_parent_first() -> None:
    """
    test_commit_parent_ids_put_first_parent_first: Function description.
    :param:
    :returns:
    """

    commit = Commit(
        id="c3",
        playbook_id="pb",
        branch_id="b1",
        version=3,
        graph=Graph(),
        message="Merge",
        author_id="u",
        created_at=_NOW,
        parent_commit_id="c2",
        merge_parent_commit_id="c9",
    )

    assert commit.is_merge
    assert commit.parent_ids == ("c2", "c9")


def test_commit_rejects_merge_parent_without_first_parent() -> None:
    """
    test_commit_rejects_merge_parent_without_first_parent: Function description.
    :param:
    :returns:
    """

    with pytest.raises(ValueError, match="first parent"):
        Commit(
            id="c3",
            playbook_id="pb",
            branch_id="b1",
            version=1,
            graph=Graph(),
            message="Merge",
            author_id="u",
            created_at=_NOW,
            merge_parent_commit_id="c9",
        )


@pytest.mark.parametrize("version", [0, -1, True, "2"])
def test_commit_rejects_bad_versions(version: object) -> None:
    """
    test_commit_rejects_bad_versions: Function description.
    :param version:
    :returns:
    """

    with pytest.raises(ValueError, match="version"):
        Commit(
            id="c1",
            playbook_id="pb",
            branch_id="b1",
            version=version,  # type: ignore[arg-type]
            graph=Graph(),
            message="m",
            author_id="u",
            created_at=_NOW,
        )


def test_branch_requires_valid_name_and_head() -> None:
    """
    test_branch_requires_valid_name_and_head: Function description.
    :param:
    :returns:
    """

    with pytest.raises(ValueError):
        Branch(id="b", playbook_id="pb", name="bad name", head_commit_id="c",
               created_at=_NOW)
    with pytest.raises(ValueError, match="head commit"):
        Branch(id="b", playbook_id="pb", name="main", head_commit_id="",
               created_at=_NOW)


def test_entity_keys_parse_to_tagged_refs() -> None:
    """
    test_entity_keys_parse_to_tagged_refs: Function description.
    :param:
    :returns:
    """

    assert parse_entity_key("node:n1") == NodeRef("n1")
    assert parse_entity_key("edge:e:with:colons") == EdgeRef("e:with:colons")
    assert NodeRef("x") != EdgeRef("x")
    for bad in ("n1", "node:", "step:n1"):
        with pytest.raises(ValueError):
            parse_entity_key(bad)


def test_conflict_resolution_from_payload() -> None:
    """
    test_conflict_resolution_from_payload: Function description.
    :param:
    :returns:
    """

    parsed = ConflictResolution.from_payload(
        {"nodeId": "n1", "resolution": "theirs"}
    )
    assert parsed == ConflictResolution(NodeRef("n1"), Resolution.THEIRS)

    with pytest.raises(ValueError, match="exactly one"):
        ConflictResolution.from_payload(
            {"nodeId": "n1", "edgeId": "e1", "resolution": "ours"}
        )
    with pytest.raises(ValueError, match="'ours' or 'theirs'"):
        ConflictResolution.from_payload({"edgeId": "e1", "resolution": "mine"})


def test_resolutions_from_key_map() -> None:
    """
    test_resolutions_from_key_map: Function description.
    :param:
    :returns:
    """

    resolutions = resolutions_from_key_map(
        {"node:n1": "ours", "edge:e1": "theirs"}
    )

    assert resolutions == [
        ConflictResolution(NodeRef("n1"), Resolution.OURS),
        ConflictResolution(EdgeRef("e1"), Resolution.THEIRS),
    ]
