"""Common repository errors used across storage adapters and the engine."""

from __future__ import annotations


class RepositoryError(RuntimeError):
    """Base class for version-control failures."""


# Validation: rejected before any mutation; fixed by correcting the input.


class ValidationError(RepositoryError):
    """Raised when user input fails validation."""


class BranchNameInvalid(ValidationError):
    """Raised when a branch name does not match the allowed pattern."""


class BranchAlreadyExists(ValidationError):
    """Raised when a branch name is already taken within a playbook."""


class InvalidCommitMessage(ValidationError):
    """Raised when a commit or merge message is empty or too long."""


class InvalidGraph(ValidationError):
    """Raised when a graph payload cannot be parsed into a Graph."""


class NoChanges(RepositoryError):
    """Raised when a commit would not change the branch head graph."""


# Referential: the call named something that does not exist.


class ReferentialError(RepositoryError):
    """Base class for lookups of missing records."""


class CommitNotFound(ReferentialError):
    """Raised when a requested commit id does not exist."""


class ParentCommitNotFound(ReferentialError):
    """Raised when an appended commit names a parent that does not exist."""


class BranchNotFound(ReferentialError):
    """Raised when a requested branch id does not exist."""


class PlaybookNotFound(ReferentialError):
    """Raised when a playbook has no recorded history."""


# Concurrency: re-read state and recompute before trying again.


class ConcurrentModification(RepositoryError):
    """Raised when a branch head moved between read and write."""


# Policy.


class PolicyError(RepositoryError):
    """Base class for operations refused by engine policy."""


class ProtectedBranch(PolicyError):
    """Raised on direct writes to, or deletion of, a protected branch."""


class InvalidFastForward(PolicyError):
    """Raised when a head move would drop the current head from history."""


class BranchInUse(PolicyError):
    """Raised when deleting the playbook's active branch."""


class UnrelatedHistories(RepositoryError):
    """Raised when two commits share no common ancestor."""
