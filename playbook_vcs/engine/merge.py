"""
Playbook VCS Repository
Introductory remarks: This module is part of the Playbook VCS codebase.

Three-way merge of playbook graphs keyed by node and edge identity.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import (Any, Dict, Iterable, List, Mapping, Optional, Sequence,
                    Tuple, TypeVar, Union)

from playbook_vcs.models import (Branch, ConflictKind, ConflictResolution,
                                 Edge, EdgeRef, EntityRef, Graph, GraphDiff,
                                 MergeCompleted, MergeConflict, MergeConflicts,
                                 MergeOutcome, Node, NodeRef, Resolution,
                                 validate_commit_message)
from playbook_vcs.storage.base import CommitStore
from playbook_vcs.storage.errors import (ConcurrentModification,
                                         InvalidCommitMessage,
                                         UnrelatedHistories, ValidationError)

from .ancestry import AncestorResolver
from .branches import BranchRegistry
from .commits import CommitWriter
from .diff import diff_graphs, edges_equal, nodes_equal

_LOGGER = logging.getLogger(__name__)

_Entity = TypeVar("_Entity", Node, Edge)


@dataclass(frozen=True)
class MergePlan:
    """Outcome of comparing both sides against their ancestor.

    ``graph`` is set only when every conflict has a resolution.
    """

    conflicts: Sequence[MergeConflict]
    unresolved: Sequence[MergeConflict]
    graph: Optional[Graph]

    @property
    def clean(self) -> bool:
        return self.graph is not None


def _node_ops(diff: GraphDiff) -> Dict[str, ConflictKind]:
    ops: Dict[str, ConflictKind] = {}
    for change in diff.added_nodes:
        ops[change.id] = ConflictKind.ADD
    for change in diff.removed_nodes:
        ops[change.id] = ConflictKind.DELETE
    for modification in diff.modified_nodes:
        ops[modification.id] = ConflictKind.MODIFY
    return ops


def _edge_ops(diff: GraphDiff) -> Dict[str, ConflictKind]:
    added = {change.id for change in diff.added_edges}
    removed = {change.id for change in diff.removed_edges}
    ops: Dict[str, ConflictKind] = {}
    for edge_id in added | removed:
        if edge_id in added and edge_id in removed:
            # Edges are replaced, never edited; remove+add is a modification.
            ops[edge_id] = ConflictKind.MODIFY
        elif edge_id in added:
            ops[edge_id] = ConflictKind.ADD
        else:
            ops[edge_id] = ConflictKind.DELETE
    return ops


def _ordered_ids(*graphs: Iterable[_Entity]) -> List[str]:
    order: List[str] = []
    seen: set[str] = set()
    for entities in graphs:
        for entity in entities:
            if entity.id not in seen:
                seen.add(entity.id)
                order.append(entity.id)
    return order


def _snapshot(entity: Optional[Union[Node, Edge]]) -> Optional[Dict[str, Any]]:
    return entity.to_payload() if entity is not None else None


def _same(left: Optional[_Entity], right: Optional[_Entity]) -> bool:
    if left is None or right is None:
        return left is None and right is None
    if isinstance(left, Node) and isinstance(right, Node):
        return nodes_equal(left, right)
    if isinstance(left, Edge) and isinstance(right, Edge):
        return edges_equal(left, right)
    return False


def _merge_entities(
    ref_factory: Any,
    order: Sequence[str],
    base: Mapping[str, _Entity],
    ours: Mapping[str, _Entity],
    theirs: Mapping[str, _Entity],
    our_ops: Mapping[str, ConflictKind],
    their_ops: Mapping[str, ConflictKind],
    choices: Mapping[EntityRef, Resolution],
) -> Tuple[List[_Entity], List[MergeConflict], List[MergeConflict]]:
    merged: List[_Entity] = []
    conflicts: List[MergeConflict] = []
    unresolved: List[MergeConflict] = []

    for entity_id in order:
        our_op = our_ops.get(entity_id)
        their_op = their_ops.get(entity_id)
        our_entity = ours.get(entity_id)
        their_entity = theirs.get(entity_id)

        if our_op is None and their_op is None:
            result = base.get(entity_id)
        elif their_op is None:
            result = our_entity
        elif our_op is None:
            result = their_entity
        elif _same(our_entity, their_entity):
            result = our_entity
        else:
            ref = ref_factory(entity_id)
            kind = max(our_op, their_op, key=lambda op: op.severity)
            conflict = MergeConflict(
                target=ref,
                kind=kind,
                ours=_snapshot(our_entity),
                theirs=_snapshot(their_entity),
            )
            conflicts.append(conflict)
            choice = choices.get(ref)
            if choice is None:
                unresolved.append(conflict)
                continue
            result = our_entity if choice is Resolution.OURS else their_entity

        if result is not None:
            merged.append(result)

    return merged, conflicts, unresolved


def three_way_merge(
    ancestor: Graph,
    ours: Graph,
    theirs: Graph,
    resolutions: Sequence[ConflictResolution] = (),
) -> MergePlan:
    """Merge ``theirs`` into ``ours`` relative to ``ancestor``.

    Entities changed on one side only are taken from that side. Entities
    changed on both sides merge cleanly when both ended up identical;
    otherwise they conflict, classified by the more destructive operation
    (delete over modify over add). The merged graph is produced only when
    ``resolutions`` covers every conflict.
    """
    ours_diff = diff_graphs(ancestor, ours)
    theirs_diff = diff_graphs(ancestor, theirs)
    choices: Dict[EntityRef, Resolution] = {
        item.target: item.resolution for item in resolutions
    }

    nodes, node_conflicts, node_unresolved = _merge_entities(
        NodeRef,
        _ordered_ids(ours.nodes, theirs.nodes, ancestor.nodes),
        ancestor.node_map(),
        ours.node_map(),
        theirs.node_map(),
        _node_ops(ours_diff),
        _node_ops(theirs_diff),
        choices,
    )
    edges, edge_conflicts, edge_unresolved = _merge_entities(
        EdgeRef,
        _ordered_ids(ours.edges, theirs.edges, ancestor.edges),
        ancestor.edge_map(),
        ours.edge_map(),
        theirs.edge_map(),
        _edge_ops(ours_diff),
        _edge_ops(theirs_diff),
        choices,
    )

    conflicts = node_conflicts + edge_conflicts
    unresolved = node_unresolved + edge_unresolved
    conflict_refs = {conflict.target for conflict in conflicts}
    for ref in choices:
        if ref not in conflict_refs:
            _LOGGER.debug("Ignoring resolution for non-conflicting %s", ref.key)

    graph = None if unresolved else Graph(nodes=nodes, edges=edges)
    return MergePlan(conflicts=conflicts, unresolved=unresolved, graph=graph)


class MergeEngine:
    """Merges one branch head into another and records a merge commit."""

    def __init__(
        self,
        commits: CommitStore,
        registry: BranchRegistry,
        writer: CommitWriter,
        *,
        ancestry: Optional[AncestorResolver] = None,
    ) -> None:
        self._commits = commits
        self._registry = registry
        self._writer = writer
        self._ancestry = ancestry or AncestorResolver(commits)

    def merge(
        self,
        source_branch_id: str,
        target_branch_id: str,
        author_id: str,
        *,
        message: Optional[str] = None,
        resolutions: Sequence[ConflictResolution] = (),
        expected_target_head: Optional[str] = None,
    ) -> MergeOutcome:
        """Merge source into target.

        Returns ``MergeConflicts`` without writing anything unless every
        conflict is resolved; otherwise appends a two-parent commit on the
        target (first parent: target head, second: source head) and moves
        the target head to it.
        """
        source = self._registry.get(source_branch_id)
        target = self._registry.get(target_branch_id)
        if source.playbook_id != target.playbook_id:
            raise ValidationError(
                "Cannot merge branches of different playbooks"
            )
        if (
            expected_target_head is not None
            and expected_target_head != target.head_commit_id
        ):
            raise ConcurrentModification(
                f"Branch '{target.name}' is at '{target.head_commit_id}', "
                f"not '{expected_target_head}'"
            )
        message = self._message(source, target, message)

        target_head = self._commits.get(target.head_commit_id)
        source_head = self._commits.get(source.head_commit_id)
        ancestor_id = self._ancestry.common_ancestor(
            target_head.id, source_head.id
        )
        if ancestor_id is None:
            raise UnrelatedHistories(
                f"Branches '{source.name}' and '{target.name}' share no "
                "history"
            )
        ancestor = self._commits.get(ancestor_id)

        plan = three_way_merge(
            ancestor.graph, target_head.graph, source_head.graph, resolutions
        )
        if plan.graph is None:
            _LOGGER.info(
                "Merge %s -> %s stopped: %d conflict(s), %d unresolved",
                source.name,
                target.name,
                len(plan.conflicts),
                len(plan.unresolved),
            )
            return MergeConflicts(conflicts=plan.conflicts)

        commit = self._writer.write(
            target,
            plan.graph,
            message,
            author_id,
            merge_parent_commit_id=source_head.id,
        )
        _LOGGER.info(
            "Merged %s into %s at %s (ancestor %s, %d resolved conflict(s))",
            source.name,
            target.name,
            commit.id,
            ancestor_id,
            len(plan.conflicts),
        )
        return MergeCompleted(commit=commit)

    @staticmethod
    def _message(
        source: Branch, target: Branch, message: Optional[str]
    ) -> str:
        if message is None or not message.strip():
            message = f"Merge {source.name} into {target.name}"
        try:
            return validate_commit_message(message)
        except ValueError as exc:
            raise InvalidCommitMessage(str(exc)) from exc
