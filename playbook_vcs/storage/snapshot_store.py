"""
Playbook VCS Repository
Introductory remarks: This module is part of the Playbook VCS codebase.

Persistent snapshots of a playbook's full version history.

A snapshot holds every commit, every branch and the active branch of one
playbook as a single JSON document, stored on local disk or in S3.

Saves are conditional. A loaded snapshot carries the revision it was read
at (a counter on disk, the ETag in S3) and saving it fails with
ConcurrentModification once another writer has replaced the document.
"""

from __future__ import annotations

import contextlib
import json
import logging
import os
import re
import tempfile
import threading
from dataclasses import dataclass, field, replace
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterator, Optional, Sequence, Tuple

from playbook_vcs.config import DEFAULT_SNAPSHOT_DIR, DEFAULT_SNAPSHOT_PREFIX
from playbook_vcs.models import Branch, Commit, Graph
from playbook_vcs.utils.env import env_flag, read_setting

from .base import BranchStore, CommitStore
from .errors import (ConcurrentModification, ParentCommitNotFound,
                     PlaybookNotFound, ValidationError)
from .memory import InMemoryBranchStore, InMemoryCommitStore

SNAPSHOT_FORMAT_VERSION = 1
PLAYBOOK_ID_REGEX = re.compile(r"^[A-Za-z0-9_.-]+$")

_LOGGER = logging.getLogger(__name__)


class SnapshotStoreError(RuntimeError):
    """Raised when snapshot persistence fails."""


class SnapshotStoreUnavailableError(SnapshotStoreError):
    """Raised when snapshot storage is temporarily unavailable (e.g. S3 outage)."""


@dataclass(frozen=True)
class PlaybookSnapshot:
    """Complete history of one playbook.

    ``revision`` is the stored revision the snapshot was loaded from, or
    None for a playbook that has never been saved.
    """

    playbook_id: str
    commits: Sequence[Commit] = ()
    branches: Sequence[Branch] = ()
    active_branch_id: Optional[str] = None
    metadata: dict = field(default_factory=dict)
    revision: Optional[str] = field(default=None, compare=False)

    def __post_init__(self) -> None:
        validate_playbook_id(self.playbook_id)
        object.__setattr__(self, "commits", tuple(self.commits))
        object.__setattr__(self, "branches", tuple(self.branches))


def validate_playbook_id(value: str) -> str:
    """Playbook ids double as file names and object keys."""
    if not value or not PLAYBOOK_ID_REGEX.match(value) or value in {".", ".."}:
        raise ValidationError(
            f"Playbook id '{value}' is invalid. Expected pattern "
            f"{PLAYBOOK_ID_REGEX.pattern}"
        )
    return value


# Capture / hydrate ----------------------------------------------------------


def capture_snapshot(
    playbook_id: str,
    commits: CommitStore,
    branches: BranchStore,
) -> PlaybookSnapshot:
    """Read a playbook's history out of live stores."""
    return PlaybookSnapshot(
        playbook_id=playbook_id,
        commits=list(commits.list_for_playbook(playbook_id)),
        branches=list(branches.list(playbook_id)),
        active_branch_id=branches.get_active(playbook_id),
    )


def hydrate_snapshot(
    snapshot: PlaybookSnapshot,
    commits: Optional[CommitStore] = None,
    branches: Optional[BranchStore] = None,
) -> Tuple[CommitStore, BranchStore]:
    """Load a snapshot into (new or supplied) stores.

    Commits are appended parents-first regardless of their order in the
    document, so the append-only store's parent checks hold.
    """
    commit_store = commits if commits is not None else InMemoryCommitStore()
    branch_store = branches if branches is not None else InMemoryBranchStore()

    remaining = list(snapshot.commits)
    loaded: set[str] = set()
    while remaining:
        progressed = False
        deferred = []
        for commit in remaining:
            if all(parent in loaded for parent in commit.parent_ids):
                commit_store.append(commit)
                loaded.add(commit.id)
                progressed = True
            else:
                deferred.append(commit)
        if not progressed:
            missing = sorted(
                parent
                for commit in deferred
                for parent in commit.parent_ids
                if parent not in loaded
            )
            raise ParentCommitNotFound(
                f"Snapshot of '{snapshot.playbook_id}' references missing "
                f"parent commits: {', '.join(missing)}"
            )
        remaining = deferred

    for branch in snapshot.branches:
        branch_store.insert(branch)
    if snapshot.active_branch_id:
        branch_store.set_active(snapshot.playbook_id, snapshot.active_branch_id)
    return commit_store, branch_store


# Payload codec --------------------------------------------------------------


def _commit_to_payload(commit: Commit) -> dict[str, Any]:
    return {
        "id": commit.id,
        "playbookId": commit.playbook_id,
        "branchId": commit.branch_id,
        "version": commit.version,
        "graph": commit.graph.to_payload(),
        "message": commit.message,
        "authorId": commit.author_id,
        "createdAt": commit.created_at.isoformat(),
        "parentCommitId": commit.parent_commit_id,
        "mergeParentCommitId": commit.merge_parent_commit_id,
    }


def _payload_to_commit(payload: dict[str, Any]) -> Commit:
    return Commit(
        id=payload["id"],
        playbook_id=payload["playbookId"],
        branch_id=payload["branchId"],
        version=payload["version"],
        graph=Graph.from_payload(payload.get("graph") or {}),
        message=payload["message"],
        author_id=payload["authorId"],
        created_at=datetime.fromisoformat(payload["createdAt"]),
        parent_commit_id=payload.get("parentCommitId"),
        merge_parent_commit_id=payload.get("mergeParentCommitId"),
    )


def _branch_to_payload(branch: Branch) -> dict[str, Any]:
    return {
        "id": branch.id,
        "playbookId": branch.playbook_id,
        "name": branch.name,
        "headCommitId": branch.head_commit_id,
        "createdAt": branch.created_at.isoformat(),
        "parentBranchId": branch.parent_branch_id,
        "isProtected": branch.is_protected,
        "createdBy": branch.created_by,
    }


def _payload_to_branch(payload: dict[str, Any]) -> Branch:
    return Branch(
        id=payload["id"],
        playbook_id=payload["playbookId"],
        name=payload["name"],
        head_commit_id=payload["headCommitId"],
        created_at=datetime.fromisoformat(payload["createdAt"]),
        parent_branch_id=payload.get("parentBranchId"),
        is_protected=bool(payload.get("isProtected", False)),
        created_by=payload.get("createdBy"),
    )


def snapshot_to_payload(snapshot: PlaybookSnapshot) -> dict[str, Any]:
    return {
        "formatVersion": SNAPSHOT_FORMAT_VERSION,
        "playbookId": snapshot.playbook_id,
        "activeBranchId": snapshot.active_branch_id,
        "commits": [_commit_to_payload(c) for c in snapshot.commits],
        "branches": [_branch_to_payload(b) for b in snapshot.branches],
        "metadata": dict(snapshot.metadata),
    }


def payload_to_snapshot(payload: dict[str, Any]) -> PlaybookSnapshot:
    version = payload.get("formatVersion")
    if version != SNAPSHOT_FORMAT_VERSION:
        raise SnapshotStoreError(
            f"Unsupported snapshot format version {version!r}"
        )
    try:
        return PlaybookSnapshot(
            playbook_id=payload["playbookId"],
            commits=[_payload_to_commit(c) for c in payload.get("commits", [])],
            branches=[
                _payload_to_branch(b) for b in payload.get("branches", [])
            ],
            active_branch_id=payload.get("activeBranchId"),
            metadata=dict(payload.get("metadata") or {}),
            revision=_document_revision(payload),
        )
    except (KeyError, TypeError, ValueError) as exc:
        raise SnapshotStoreError(f"Malformed snapshot document: {exc}") from exc


def _document_revision(payload: dict[str, Any]) -> str:
    # Documents written before revisions existed count as revision 0.
    return str(int(payload.get("revision") or 0))


# Locking --------------------------------------------------------------------


class _PathLocks:
    """One in-process lock per lock file path."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: Dict[str, threading.Lock] = {}

    def get(self, path: Path) -> threading.Lock:
        key = str(path.resolve())
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._locks[key] = lock
            return lock


_PATH_LOCKS = _PathLocks()


@contextlib.contextmanager
def _exclusive_file_lock(path: Path) -> Iterator[None]:
    """
    _exclusive_file_lock: Hold ``path`` exclusively across threads and, where
    flock is available, across processes.
    :param path:
    :returns:
    """

    with _PATH_LOCKS.get(path):
        with path.open("a+", encoding="utf-8") as handle:
            try:
                import fcntl
            except ImportError:
                _LOGGER.debug("flock unavailable; %s locked in-process", path)
                yield
                return
            fcntl.flock(handle.fileno(), fcntl.LOCK_EX)
            try:
                yield
            finally:
                fcntl.flock(handle.fileno(), fcntl.LOCK_UN)


# Stores ---------------------------------------------------------------------


class SnapshotStore:
    """Interface for persisting playbook snapshots."""

    def save(self, snapshot: PlaybookSnapshot) -> str:
        """
        save: Replace the stored document if it is still at
        ``snapshot.revision`` (absent when the revision is None), else raise
        ConcurrentModification.
        :param snapshot:
        :returns: the revision of the newly stored document
        """

        raise NotImplementedError

    def load(self, playbook_id: str) -> PlaybookSnapshot:
        """
        load: Read a snapshot or raise PlaybookNotFound.
        :param playbook_id:
        :returns:
        """

        raise NotImplementedError

    def exists(self, playbook_id: str) -> bool:
        """
        exists: Function description.
        :param playbook_id:
        :returns:
        """

        try:
            self.load(playbook_id)
        except PlaybookNotFound:
            return False
        return True


class LocalSnapshotStore(SnapshotStore):
    """File-based snapshot store (useful for local runs and tests)."""

    def __init__(self, base_dir: Path) -> None:
        self._base_dir = Path(base_dir)
        self._base_dir.mkdir(parents=True, exist_ok=True)

    def _path(self, playbook_id: str) -> Path:
        return self._base_dir / f"{validate_playbook_id(playbook_id)}.json"

    def save(self, snapshot: PlaybookSnapshot) -> str:
        path = self._path(snapshot.playbook_id)
        with _exclusive_file_lock(path.with_suffix(".json.lock")):
            current = (
                _document_revision(self._read(path, snapshot.playbook_id))
                if path.exists()
                else None
            )
            if current != snapshot.revision:
                raise ConcurrentModification(
                    f"Playbook '{snapshot.playbook_id}' is at revision "
                    f"{current or 'none'}, not {snapshot.revision or 'none'}"
                )
            revision = str(int(current or 0) + 1)
            payload = snapshot_to_payload(snapshot)
            payload["revision"] = int(revision)
            self._write(path, payload)
        _LOGGER.debug(
            "Saved snapshot %s at revision %s", snapshot.playbook_id, revision
        )
        return revision

    def _write(self, path: Path, payload: dict[str, Any]) -> None:
        handle = tempfile.NamedTemporaryFile(
            "w",
            encoding="utf-8",
            dir=self._base_dir,
            prefix=f"{path.stem}.",
            suffix=".tmp",
            delete=False,
        )
        try:
            with handle:
                json.dump(payload, handle)
            os.replace(handle.name, path)
        except BaseException:
            with contextlib.suppress(FileNotFoundError):
                os.unlink(handle.name)
            raise

    def _read(self, path: Path, playbook_id: str) -> dict[str, Any]:
        try:
            with path.open(encoding="utf-8") as handle:
                return json.load(handle)
        except json.JSONDecodeError as exc:
            raise SnapshotStoreError(
                f"Snapshot for '{playbook_id}' is not valid JSON"
            ) from exc

    def load(self, playbook_id: str) -> PlaybookSnapshot:
        path = self._path(playbook_id)
        if not path.exists():
            raise PlaybookNotFound(f"Playbook '{playbook_id}' has no history")
        return payload_to_snapshot(self._read(path, playbook_id))

    def exists(self, playbook_id: str) -> bool:
        return self._path(playbook_id).exists()


class S3SnapshotStore(SnapshotStore):
    """Persist snapshots in S3."""

    def __init__(
        self,
        bucket: str,
        *,
        prefix: str = DEFAULT_SNAPSHOT_PREFIX,
        client: Any | None = None,
    ) -> None:
        """
        __init__: Function description.
        :param bucket:
        :param prefix:
        :param client:
        :returns:
        """

        if not bucket:
            raise ValidationError("bucket name must be provided")
        self._bucket = bucket
        self._prefix = prefix.strip("/")
        if client is None:
            try:
                import boto3 as _boto3
                from botocore.config import Config
            except ImportError as exc:  # pragma: no cover
                raise SnapshotStoreError(
                    "boto3 is required for S3 snapshot store"
                ) from exc
            region = (
                read_setting("PLAYBOOK_VCS_REGION")
                or os.environ.get("AWS_REGION")
                or os.environ.get("AWS_DEFAULT_REGION")
            )
            client_kwargs: dict[str, Any] = {
                "config": Config(
                    retries={"max_attempts": 5, "mode": "standard"}
                ),
            }
            if region:
                client_kwargs["region_name"] = region
            client = _boto3.client("s3", **client_kwargs)
        self._s3 = client

    def _key(self, playbook_id: str) -> str:
        prefix = f"{self._prefix}/" if self._prefix else ""
        return f"{prefix}{validate_playbook_id(playbook_id)}.json"

    def save(self, snapshot: PlaybookSnapshot) -> str:
        """
        save: Conditional put; the stored ETag must equal
        ``snapshot.revision``, or the key must be absent when it is None.
        :param snapshot:
        :returns: the ETag of the new object
        """

        key = self._key(snapshot.playbook_id)
        condition = (
            {"IfNoneMatch": "*"}
            if snapshot.revision is None
            else {"IfMatch": snapshot.revision}
        )
        try:
            payload = json.dumps(snapshot_to_payload(snapshot)).encode(
                "utf-8"
            )
            response = self._s3.put_object(
                Bucket=self._bucket,
                Key=key,
                Body=payload,
                ContentType="application/json",
                **condition,
            )
        except Exception as exc:  # noqa: BLE001
            if _is_precondition_failure(exc) or (
                snapshot.revision is not None and _is_not_found(exc)
            ):
                _LOGGER.warning(
                    "Snapshot for playbook_id=%s changed since revision %s",
                    snapshot.playbook_id,
                    snapshot.revision,
                )
                raise ConcurrentModification(
                    f"Playbook '{snapshot.playbook_id}' was modified by "
                    "another writer"
                ) from exc
            _LOGGER.error(
                "Failed to store snapshot for playbook_id=%s: %s",
                snapshot.playbook_id,
                exc,
            )
            if _looks_like_transient_cloud_failure(exc):
                raise SnapshotStoreUnavailableError(
                    f"S3 temporarily unavailable: {exc}"
                ) from exc
            raise SnapshotStoreError(
                f"Failed to write snapshot: {exc}"
            ) from exc
        etag = (response or {}).get("ETag")
        if not etag:
            raise SnapshotStoreError(
                f"S3 returned no ETag for snapshot '{snapshot.playbook_id}'"
            )
        return etag

    def load(self, playbook_id: str) -> PlaybookSnapshot:
        """
        load: Function description.
        :param playbook_id:
        :returns:
        """

        key = self._key(playbook_id)
        try:
            response = self._s3.get_object(Bucket=self._bucket, Key=key)
        except Exception as exc:  # noqa: BLE001
            if _is_access_denied(exc) or _is_not_found(exc):
                raise PlaybookNotFound(
                    f"Playbook '{playbook_id}' has no history"
                ) from exc
            if _looks_like_transient_cloud_failure(exc):
                raise SnapshotStoreUnavailableError(
                    f"S3 temporarily unavailable: {exc}"
                ) from exc
            raise SnapshotStoreError(
                f"Failed to read snapshot: {exc}"
            ) from exc
        body = response["Body"]
        try:
            payload = json.loads(body.read())
        except json.JSONDecodeError as exc:
            raise SnapshotStoreError(
                f"Snapshot for '{playbook_id}' is not valid JSON"
            ) from exc
        finally:
            if hasattr(body, "close"):
                body.close()
        return replace(
            payload_to_snapshot(payload), revision=response.get("ETag")
        )

    def exists(self, playbook_id: str) -> bool:
        """
        exists: Function description.
        :param playbook_id:
        :returns:
        """

        try:
            self._s3.head_object(
                Bucket=self._bucket, Key=self._key(playbook_id)
            )
            return True
        except Exception as exc:  # noqa: BLE001
            if _is_not_found(exc):
                return False
            if _looks_like_transient_cloud_failure(exc):
                raise SnapshotStoreUnavailableError(
                    f"S3 temporarily unavailable: {exc}"
                ) from exc
            raise SnapshotStoreError(
                f"Failed to check snapshot: {exc}"
            ) from exc


def _error_code(exc: Exception) -> Optional[str]:
    response = getattr(exc, "response", None)
    if not isinstance(response, dict):
        return None
    error = response.get("Error")
    if not isinstance(error, dict):
        return None
    code = error.get("Code")
    return code if isinstance(code, str) and code else None


def _is_access_denied(exc: Exception) -> bool:
    return _error_code(exc) == "AccessDenied"


def _is_not_found(exc: Exception) -> bool:
    return _error_code(exc) in {"404", "NoSuchKey", "NotFound"}


def _is_precondition_failure(exc: Exception) -> bool:
    return _error_code(exc) in {
        "PreconditionFailed",
        "412",
        "ConditionalRequestConflict",
    }


def _looks_like_transient_cloud_failure(exc: Exception) -> bool:
    """
    _looks_like_transient_cloud_failure: Function description.
    :param exc:
    :returns:
    """

    code = _error_code(exc)
    if code in {
        "SlowDown",
        "Throttling",
        "ThrottlingException",
        "RequestTimeout",
        "RequestTimeoutException",
        "ServiceUnavailable",
        "InternalError",
        "503",
    }:
        return True
    name = exc.__class__.__name__
    if name in {
        "EndpointConnectionError",
        "ConnectTimeoutError",
        "ReadTimeoutError",
        "ConnectionClosedError",
    }:
        return True
    message = str(exc).lower()
    return any(
        token in message
        for token in (
            "timed out",
            "timeout",
            "temporarily unavailable",
            "service unavailable",
            "connection reset",
            "connection refused",
        )
    )


def build_snapshot_store_from_env() -> SnapshotStore:
    """
    build_snapshot_store_from_env: Pick the S3 store when a bucket is
    configured, the local store otherwise.
    :param:
    :returns:
    """

    base_dir = Path(read_setting("PLAYBOOK_VCS_STORE_DIR", DEFAULT_SNAPSHOT_DIR))
    if env_flag("PLAYBOOK_VCS_LOCAL"):
        return LocalSnapshotStore(base_dir)

    bucket = read_setting("PLAYBOOK_VCS_BUCKET")
    if bucket:
        prefix = read_setting("PLAYBOOK_VCS_PREFIX", DEFAULT_SNAPSHOT_PREFIX)
        return S3SnapshotStore(bucket=bucket, prefix=prefix)

    return LocalSnapshotStore(base_dir)
