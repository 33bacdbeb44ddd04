"""
Playbook VCS Repository
Introductory remarks: This module is part of the Playbook VCS codebase.

Central configuration constants for the playbook version-control engine.
"""

from __future__ import annotations

# Branches ------------------------------------------------------------------

BRANCH_NAME_PATTERN = r"^[A-Za-z0-9_-]+$"
"""Allowed characters for branch names (ASCII letters, digits, '-', '_')."""

BRANCH_NAME_MAX_LENGTH = 100
"""Longest branch name accepted by the registry."""

DEFAULT_BRANCH_NAME = "main"
"""Name of the branch created when a playbook is initialised."""

# Commits -------------------------------------------------------------------

COMMIT_MESSAGE_MAX_LENGTH = 500
"""Longest commit/merge message accepted."""

INITIAL_COMMIT_MESSAGE = "Initial commit"

DEFAULT_COMMIT_PAGE_SIZE = 20
"""Default page size for commit listings."""

MAX_COMMIT_PAGE_SIZE = 100
"""Upper bound for commit listing page sizes."""

# Snapshot storage ----------------------------------------------------------

DEFAULT_SNAPSHOT_DIR = "/tmp/playbook-vcs"
"""Local directory used when no bucket is configured."""

DEFAULT_SNAPSHOT_PREFIX = "playbooks"
"""Key prefix for snapshots stored in S3."""
