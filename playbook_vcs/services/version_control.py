"""
Playbook VCS Repository
Introductory remarks: This module is part of the Playbook VCS codebase.

Service facade over the version-control engine.

Callers (the CLI, an HTTP layer, tests) talk to ``PlaybookVersionControl``;
it validates inputs, converts model ``ValueError``s into repository errors
and delegates to the registry, commit writer, merge engine and projector.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import Any, Callable, List, Mapping, Optional, Sequence, Union

from playbook_vcs.config import (DEFAULT_BRANCH_NAME,
                                 DEFAULT_COMMIT_PAGE_SIZE,
                                 INITIAL_COMMIT_MESSAGE, MAX_COMMIT_PAGE_SIZE)
from playbook_vcs.engine import (AncestorResolver, BranchRegistry,
                                 CommitGraphProjector, CommitWriter,
                                 GraphValidationResult, MergeEngine,
                                 diff_graphs)
from playbook_vcs.engine import validate_graph as _validate_graph
from playbook_vcs.models import (Branch, BranchSummary, Commit, CommitDAGNode,
                                 ConflictResolution, DAGView, Graph,
                                 GraphDiff, MergeOutcome, utc_now,
                                 validate_commit_message)
from playbook_vcs.storage.atomic_update import (AtomicUpdateGroup,
                                                unwrap_domain_errors)
from playbook_vcs.storage.base import BranchStore, CommitStore
from playbook_vcs.storage.errors import (BranchAlreadyExists, BranchNotFound,
                                         ConcurrentModification,
                                         InvalidCommitMessage, InvalidGraph,
                                         NoChanges, ProtectedBranch,
                                         RepositoryError, ValidationError)
from playbook_vcs.storage.memory import (InMemoryBranchStore,
                                         InMemoryCommitStore)
from playbook_vcs.storage.snapshot_store import (PlaybookSnapshot,
                                                 capture_snapshot,
                                                 hydrate_snapshot)

_LOGGER = logging.getLogger(__name__)

GraphInput = Union[Graph, Mapping[str, Any]]


def _new_id() -> str:
    return str(uuid.uuid4())


def _coerce_graph(graph: GraphInput) -> Graph:
    if isinstance(graph, Graph):
        return graph
    if not isinstance(graph, Mapping):
        raise InvalidGraph("Graph must be an object with nodes and edges")
    try:
        return Graph.from_payload(graph)
    except ValueError as exc:
        raise InvalidGraph(str(exc)) from exc


def _check_message(message: str) -> str:
    try:
        return validate_commit_message(message)
    except ValueError as exc:
        raise InvalidCommitMessage(str(exc)) from exc


class PlaybookVersionControl:
    """Branches, commits and merges for playbook graphs.

    Stores default to fresh in-memory adapters; pass shared stores to let
    several service instances see the same history.
    """

    def __init__(
        self,
        commits: Optional[CommitStore] = None,
        branches: Optional[BranchStore] = None,
        *,
        id_factory: Callable[[], str] = _new_id,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._commits = commits if commits is not None else InMemoryCommitStore()
        self._branches = (
            branches if branches is not None else InMemoryBranchStore()
        )
        self._new_id = id_factory
        ancestry = AncestorResolver(self._commits)
        self._registry = BranchRegistry(
            self._branches,
            self._commits,
            ancestry=ancestry,
            id_factory=id_factory,
            clock=clock,
        )
        self._writer = CommitWriter(
            self._commits, self._registry, id_factory=id_factory, clock=clock
        )
        self._merger = MergeEngine(
            self._commits, self._registry, self._writer, ancestry=ancestry
        )
        self._projector = CommitGraphProjector(self._commits, self._branches)

    # Snapshots -------------------------------------------------------------

    @classmethod
    def from_snapshot(
        cls, snapshot: PlaybookSnapshot, **kwargs: Any
    ) -> "PlaybookVersionControl":
        """Build a service whose stores hold ``snapshot``'s history."""
        commits, branches = hydrate_snapshot(snapshot)
        return cls(commits, branches, **kwargs)

    def snapshot(self, playbook_id: str) -> PlaybookSnapshot:
        return capture_snapshot(playbook_id, self._commits, self._branches)

    # Branches --------------------------------------------------------------

    def init_playbook(
        self,
        playbook_id: str,
        graph: GraphInput,
        author_id: str,
        *,
        branch_name: str = DEFAULT_BRANCH_NAME,
        message: str = INITIAL_COMMIT_MESSAGE,
        protected: bool = False,
    ) -> Branch:
        """
        init_playbook: Record the root commit and first branch of a playbook.
        :param playbook_id:
        :param graph:
        :param author_id:
        :param branch_name:
        :param message:
        :param protected:
        :returns: The new branch, which is also the active branch.
        """

        if not playbook_id:
            raise ValidationError("Playbook id cannot be empty")
        if self._registry.list(playbook_id):
            raise BranchAlreadyExists(
                f"Playbook '{playbook_id}' already has branches"
            )
        graph = _coerce_graph(graph)
        message = _check_message(message)
        branch_id = self._new_id()

        group = AtomicUpdateGroup.begin(f"playbook:{playbook_id}")
        group.add_step(
            "commit",
            lambda ctx: self._writer.create_root(
                playbook_id, branch_id, graph, message, author_id
            ),
            undo=lambda ctx: self._commits.retract(ctx["commit"].id),
        )
        group.add_step(
            "branch",
            lambda ctx: self._registry.create_root(
                playbook_id,
                branch_name,
                ctx["commit"].id,
                branch_id=branch_id,
                created_by=author_id,
                protected=protected,
            ),
            undo=lambda ctx: self._branches.delete(branch_id),
        )
        group.add_step(
            "activate",
            lambda ctx: self._branches.set_active(playbook_id, branch_id),
        )
        with unwrap_domain_errors(RepositoryError):
            context = group.execute()

        branch = context["branch"]
        _LOGGER.info(
            "Initialised playbook %s on branch %s at %s",
            playbook_id,
            branch.name,
            branch.head_commit_id,
        )
        return branch

    def create_branch(
        self,
        playbook_id: str,
        name: str,
        from_branch_id: Optional[str] = None,
        created_by: Optional[str] = None,
    ) -> Branch:
        """Branch off ``from_branch_id``, or the active branch when omitted."""
        if from_branch_id is None:
            active = self._registry.active(playbook_id)
            if active is None:
                raise BranchNotFound(
                    f"Playbook '{playbook_id}' has no active branch"
                )
            from_branch_id = active.id
        return self._registry.create(
            playbook_id, name, from_branch_id, created_by=created_by
        )

    def get_branch(self, branch_id: str) -> Branch:
        return self._registry.get(branch_id)

    def find_branch(self, playbook_id: str, name: str) -> Branch:
        branch = self._registry.find_by_name(playbook_id, name)
        if branch is None:
            raise BranchNotFound(
                f"Playbook '{playbook_id}' has no branch named '{name}'"
            )
        return branch

    def list_branches(
        self, playbook_id: str, include_protected: bool = True
    ) -> List[BranchSummary]:
        summaries = []
        for branch in sorted(
            self._registry.list(playbook_id),
            key=lambda b: (b.created_at, b.name),
        ):
            if branch.is_protected and not include_protected:
                continue
            summaries.append(
                BranchSummary(
                    branch=branch,
                    latest_commit=self._commits.get(branch.head_commit_id),
                    commit_count=len(self._commits.list_for_branch(branch.id)),
                )
            )
        return summaries

    def delete_branch(self, branch_id: str) -> None:
        self._registry.delete(branch_id)

    def protect_branch(self, branch_id: str, protected: bool = True) -> Branch:
        return self._registry.protect(branch_id, protected)

    def checkout(self, playbook_id: str, branch_id: str) -> Branch:
        branch = self._registry.checkout(playbook_id, branch_id)
        _LOGGER.info("Playbook %s now on branch %s", playbook_id, branch.name)
        return branch

    def active_branch(self, playbook_id: str) -> Optional[Branch]:
        return self._registry.active(playbook_id)

    # Commits ---------------------------------------------------------------

    def commit(
        self,
        branch_id: str,
        graph: GraphInput,
        message: str,
        author_id: str,
        expected_head: Optional[str] = None,
    ) -> Commit:
        """
        commit: Snapshot ``graph`` as the new head of a branch.
        :param branch_id:
        :param graph: A Graph or an editor payload with nodes and edges.
        :param message:
        :param author_id:
        :param expected_head: Head the caller edited against, if known.
        :returns: The new commit.
        """

        branch = self._writable(branch_id, expected_head)
        message = _check_message(message)
        graph = _coerce_graph(graph)
        head = self._commits.get(branch.head_commit_id)
        if not diff_graphs(head.graph, graph).has_changes:
            raise NoChanges(
                f"Graph is identical to the head of branch '{branch.name}'"
            )
        return self._writer.write(branch, graph, message, author_id)

    def restore(
        self,
        branch_id: str,
        commit_id: str,
        author_id: str,
        message: Optional[str] = None,
        expected_head: Optional[str] = None,
    ) -> Commit:
        """Commit an earlier graph on top of the branch head."""
        branch = self._writable(branch_id, expected_head)
        source = self._commits.get(commit_id)
        if source.playbook_id != branch.playbook_id:
            raise ValidationError(
                f"Commit '{commit_id}' belongs to another playbook"
            )
        message = _check_message(
            message or f"Restore version {source.version}"
        )
        head = self._commits.get(branch.head_commit_id)
        if not diff_graphs(head.graph, source.graph).has_changes:
            raise NoChanges(
                f"Branch '{branch.name}' already has the graph of "
                f"'{commit_id}'"
            )
        commit = self._writer.write(branch, source.graph, message, author_id)
        _LOGGER.info(
            "Restored %s (v%d) onto branch %s as %s",
            source.id,
            source.version,
            branch.name,
            commit.id,
        )
        return commit

    def get_commit(self, commit_id: str) -> Commit:
        return self._commits.get(commit_id)

    def list_commits(
        self,
        branch_id: str,
        limit: int = DEFAULT_COMMIT_PAGE_SIZE,
        offset: int = 0,
    ) -> List[Commit]:
        """Commits recorded on a branch, newest version first."""
        if not 1 <= limit <= MAX_COMMIT_PAGE_SIZE:
            raise ValidationError(
                f"limit must be between 1 and {MAX_COMMIT_PAGE_SIZE}"
            )
        if offset < 0:
            raise ValidationError("offset cannot be negative")
        self._registry.get(branch_id)
        commits = sorted(
            self._commits.list_for_branch(branch_id),
            key=lambda c: (c.version, c.created_at),
            reverse=True,
        )
        return commits[offset:offset + limit]

    def get_commit_diff(self, commit_id: str) -> GraphDiff:
        commit = self._commits.get(commit_id)
        if commit.parent_commit_id is None:
            base = Graph.empty()
        else:
            base = self._commits.get(commit.parent_commit_id).graph
        return diff_graphs(base, commit.graph)

    def compare_commits(
        self, base_commit_id: str, other_commit_id: str
    ) -> GraphDiff:
        return diff_graphs(
            self._commits.get(base_commit_id).graph,
            self._commits.get(other_commit_id).graph,
        )

    # Merge -----------------------------------------------------------------

    def merge(
        self,
        source_branch_id: str,
        target_branch_id: str,
        author_id: str,
        message: Optional[str] = None,
        resolutions: Sequence[ConflictResolution] = (),
        expected_target_head: Optional[str] = None,
    ) -> MergeOutcome:
        """Merge the source head into the target branch.

        Protected targets accept merges; conflicts come back as
        ``MergeConflicts`` with nothing written.
        """
        return self._merger.merge(
            source_branch_id,
            target_branch_id,
            author_id,
            message=message,
            resolutions=resolutions,
            expected_target_head=expected_target_head,
        )

    # History views ---------------------------------------------------------

    def project_dag(self, playbook_id: str) -> DAGView:
        return self._projector.project(playbook_id)

    def get_commit_dag(self, playbook_id: str) -> List[CommitDAGNode]:
        return list(self.project_dag(playbook_id).nodes)

    @staticmethod
    def validate_graph(graph: GraphInput) -> GraphValidationResult:
        return _validate_graph(_coerce_graph(graph))

    # Helpers ---------------------------------------------------------------

    def _writable(
        self, branch_id: str, expected_head: Optional[str]
    ) -> Branch:
        branch = self._registry.get(branch_id)
        if branch.is_protected:
            raise ProtectedBranch(
                f"Branch '{branch.name}' is protected; merge into it instead"
            )
        if expected_head is not None and expected_head != branch.head_commit_id:
            raise ConcurrentModification(
                f"Branch '{branch.name}' is at '{branch.head_commit_id}', "
                f"not '{expected_head}'"
            )
        return branch
