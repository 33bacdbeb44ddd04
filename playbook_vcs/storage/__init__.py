"""Storage adapters for commit history and branch pointers."""

from .atomic_update import (AtomicUpdateError, AtomicUpdateGroup,
                            find_exception_in_chain, unwrap_domain_errors)
from .base import BranchStore, CommitStore
from .errors import (BranchAlreadyExists, BranchInUse, BranchNameInvalid,
                     BranchNotFound, CommitNotFound, ConcurrentModification,
                     InvalidCommitMessage, InvalidFastForward, InvalidGraph,
                     NoChanges, ParentCommitNotFound, PlaybookNotFound,
                     PolicyError, ProtectedBranch, ReferentialError,
                     RepositoryError, UnrelatedHistories, ValidationError)
from .memory import InMemoryBranchStore, InMemoryCommitStore
from .snapshot_store import (LocalSnapshotStore, PlaybookSnapshot,
                             S3SnapshotStore, SnapshotStore,
                             SnapshotStoreError,
                             SnapshotStoreUnavailableError,
                             build_snapshot_store_from_env, capture_snapshot,
                             hydrate_snapshot)

__all__ = [
    "AtomicUpdateError",
    "AtomicUpdateGroup",
    "BranchAlreadyExists",
    "BranchInUse",
    "BranchNameInvalid",
    "BranchNotFound",
    "BranchStore",
    "CommitNotFound",
    "CommitStore",
    "ConcurrentModification",
    "InMemoryBranchStore",
    "InMemoryCommitStore",
    "InvalidCommitMessage",
    "InvalidFastForward",
    "InvalidGraph",
    "LocalSnapshotStore",
    "NoChanges",
    "ParentCommitNotFound",
    "PlaybookNotFound",
    "PlaybookSnapshot",
    "PolicyError",
    "ProtectedBranch",
    "ReferentialError",
    "RepositoryError",
    "S3SnapshotStore",
    "SnapshotStore",
    "SnapshotStoreError",
    "SnapshotStoreUnavailableError",
    "UnrelatedHistories",
    "ValidationError",
    "build_snapshot_store_from_env",
    "capture_snapshot",
    "hydrate_snapshot",
    "find_exception_in_chain",
    "unwrap_domain_errors",
]
