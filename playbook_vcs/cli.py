"""CLI wiring that runs version-control commands and emits NDJSON records."""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from dataclasses import replace
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from .logging_config import configure_logging
from .models import (Branch, BranchSummary, Commit, MergeCompleted,
                     MergeConflicts, resolutions_from_key_map)
from .services import PlaybookVersionControl
from .storage.errors import (BranchAlreadyExists, InvalidGraph,
                             PlaybookNotFound, RepositoryError,
                             ValidationError)
from .storage.snapshot_store import (LocalSnapshotStore, SnapshotStore,
                                     SnapshotStoreError,
                                     build_snapshot_store_from_env)
from .utils.env import validate_runtime_environment

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_CONFLICTS = 2


def to_ndjson_line(record: Mapping[str, Any]) -> str:
    return json.dumps(record, separators=(",", ":"), default=str)


def _branch_record(branch: Branch, active_id: Optional[str]) -> Dict[str, Any]:
    return {
        "record": "branch",
        "id": branch.id,
        "playbookId": branch.playbook_id,
        "name": branch.name,
        "headCommitId": branch.head_commit_id,
        "parentBranchId": branch.parent_branch_id,
        "isProtected": branch.is_protected,
        "createdAt": branch.created_at.isoformat(),
        "isActive": branch.id == active_id,
    }


def _summary_record(
    summary: BranchSummary, active: Optional[str]
) -> Dict[str, Any]:
    record = _branch_record(summary.branch, active)
    record["commitCount"] = summary.commit_count
    if summary.latest_commit is not None:
        record["latestVersion"] = summary.latest_commit.version
        record["latestMessage"] = summary.latest_commit.message
    return record


def _commit_record(commit: Commit) -> Dict[str, Any]:
    return {
        "record": "commit",
        "id": commit.id,
        "playbookId": commit.playbook_id,
        "branchId": commit.branch_id,
        "version": commit.version,
        "message": commit.message,
        "authorId": commit.author_id,
        "createdAt": commit.created_at.isoformat(),
        "parentIds": list(commit.parent_ids),
        "isMerge": commit.is_merge,
    }


def _read_graph(source: str) -> Dict[str, Any]:
    try:
        if source == "-":
            payload = json.load(sys.stdin)
        else:
            with Path(source).open(encoding="utf-8") as handle:
                payload = json.load(handle)
    except OSError as error:
        raise InvalidGraph(f"Cannot read graph file '{source}': {error}") from error
    except json.JSONDecodeError as error:
        raise InvalidGraph(f"Graph file '{source}' is not valid JSON") from error
    if not isinstance(payload, dict):
        raise InvalidGraph("Graph document must be a JSON object")
    return payload


def _parse_resolutions(items: Sequence[str]) -> Dict[str, str]:
    mapping: Dict[str, str] = {}
    for item in items:
        key, sep, choice = item.partition("=")
        if not sep or not key or not choice:
            raise ValidationError(
                f"Resolution '{item}' must look like 'node:<id>=ours'"
            )
        mapping[key.strip()] = choice.strip().lower()
    return mapping


class CLIApp:
    """Command-line entry point for playbook version control.

    Each invocation loads the playbook's snapshot, runs one command against
    an in-memory service and writes the snapshot back when history changed.
    """

    def __init__(
        self,
        store: SnapshotStore,
        *,
        service_cls: type[PlaybookVersionControl] = PlaybookVersionControl,
    ) -> None:
        self._store = store
        self._service_cls = service_cls
        self._handlers: Dict[
            str, Callable[[argparse.Namespace], List[Dict[str, Any]]]
        ] = {
            "init": self._init,
            "branch": self._branch,
            "commit": self._commit,
            "merge": self._merge,
            "log": self._log,
            "diff": self._diff,
            "restore": self._restore,
            "dag": self._dag,
            "validate": self._validate,
        }
        self._service: Optional[PlaybookVersionControl] = None
        self._dirty = False
        self._revision: Optional[str] = None
        self._exit_code = EXIT_OK

    def run(self, args: argparse.Namespace) -> int:
        """Execute one parsed command and emit NDJSON to stdout."""
        self._service = None
        self._dirty = False
        self._revision = None
        self._exit_code = EXIT_OK
        try:
            records = self._handlers[args.command](args)
            if self._dirty and self._service is not None:
                snapshot = self._service.snapshot(args.playbook)
                self._store.save(replace(snapshot, revision=self._revision))
        except (RepositoryError, SnapshotStoreError) as error:
            logger.warning("Command %s failed: %s", args.command, error)
            print(
                to_ndjson_line(
                    {
                        "record": "error",
                        "error": type(error).__name__,
                        "message": str(error),
                    }
                ),
                file=sys.stderr,
            )
            return EXIT_ERROR
        for record in records:
            print(to_ndjson_line(record))
        return self._exit_code

    # Service lifecycle ------------------------------------------------------

    def _load(self, playbook_id: str) -> PlaybookVersionControl:
        snapshot = self._store.load(playbook_id)
        self._revision = snapshot.revision
        self._service = self._service_cls.from_snapshot(snapshot)
        return self._service

    def _branch_ref(
        self,
        service: PlaybookVersionControl,
        playbook_id: str,
        name: Optional[str],
    ) -> Branch:
        if name is None:
            active = service.active_branch(playbook_id)
            if active is None:
                raise PlaybookNotFound(
                    f"Playbook '{playbook_id}' has no active branch"
                )
            return active
        return service.find_branch(playbook_id, name)

    # Commands ---------------------------------------------------------------

    def _init(self, args: argparse.Namespace) -> List[Dict[str, Any]]:
        if self._store.exists(args.playbook):
            raise BranchAlreadyExists(
                f"Playbook '{args.playbook}' already has history"
            )
        self._service = self._service_cls()
        branch = self._service.init_playbook(
            args.playbook,
            _read_graph(args.graph),
            args.author,
            branch_name=args.branch,
            message=args.message,
            protected=args.protected,
        )
        self._dirty = True
        head = self._service.get_commit(branch.head_commit_id)
        return [_branch_record(branch, branch.id), _commit_record(head)]

    def _branch(self, args: argparse.Namespace) -> List[Dict[str, Any]]:
        service = self._load(args.playbook)
        action = args.branch_command

        if action == "list":
            active = service.active_branch(args.playbook)
            active_id = active.id if active is not None else None
            return [
                _summary_record(summary, active_id)
                for summary in service.list_branches(
                    args.playbook,
                    include_protected=not args.exclude_protected,
                )
            ]

        if action == "create":
            source = (
                service.find_branch(args.playbook, args.from_branch).id
                if args.from_branch
                else None
            )
            branch = service.create_branch(
                args.playbook, args.name, source, created_by=args.author
            )
        elif action == "delete":
            branch = service.find_branch(args.playbook, args.name)
            service.delete_branch(branch.id)
            self._dirty = True
            return [{"record": "deleted", "branchId": branch.id,
                     "name": branch.name}]
        elif action == "protect":
            branch = service.find_branch(args.playbook, args.name)
            branch = service.protect_branch(branch.id, not args.off)
        else:
            branch = service.find_branch(args.playbook, args.name)
            branch = service.checkout(args.playbook, branch.id)

        self._dirty = True
        active = service.active_branch(args.playbook)
        return [
            _branch_record(branch, active.id if active is not None else None)
        ]

    def _commit(self, args: argparse.Namespace) -> List[Dict[str, Any]]:
        service = self._load(args.playbook)
        branch = self._branch_ref(service, args.playbook, args.branch)
        commit = service.commit(
            branch.id,
            _read_graph(args.graph),
            args.message,
            args.author,
            expected_head=args.expected_head,
        )
        self._dirty = True
        return [_commit_record(commit)]

    def _merge(self, args: argparse.Namespace) -> List[Dict[str, Any]]:
        service = self._load(args.playbook)
        source = service.find_branch(args.playbook, args.source)
        target = service.find_branch(args.playbook, args.target)
        try:
            resolutions = resolutions_from_key_map(
                _parse_resolutions(args.resolve)
            )
        except ValueError as error:
            raise ValidationError(str(error)) from error

        outcome = service.merge(
            source.id,
            target.id,
            args.author,
            message=args.message,
            resolutions=resolutions,
            expected_target_head=args.expected_head,
        )
        if isinstance(outcome, MergeConflicts):
            self._exit_code = EXIT_CONFLICTS
            print(
                to_ndjson_line(
                    {
                        "record": "error",
                        "error": "MergeConflicts",
                        "message": (
                            f"{len(outcome.conflicts)} conflict(s) need "
                            "a resolution"
                        ),
                    }
                ),
                file=sys.stderr,
            )
            return [
                dict(conflict.to_payload(), record="conflict",
                     key=conflict.key)
                for conflict in outcome.conflicts
            ]
        if not isinstance(outcome, MergeCompleted):
            raise TypeError(
                f"Unexpected merge outcome {type(outcome).__name__}"
            )
        self._dirty = True
        return [_commit_record(outcome.commit)]

    def _log(self, args: argparse.Namespace) -> List[Dict[str, Any]]:
        service = self._load(args.playbook)
        branch = self._branch_ref(service, args.playbook, args.branch)
        return [
            _commit_record(commit)
            for commit in service.list_commits(
                branch.id, limit=args.limit, offset=args.offset
            )
        ]

    def _diff(self, args: argparse.Namespace) -> List[Dict[str, Any]]:
        service = self._load(args.playbook)
        if args.against:
            diff = service.compare_commits(args.against, args.commit)
        else:
            diff = service.get_commit_diff(args.commit)
        return [dict(diff.to_payload(), record="diff")]

    def _restore(self, args: argparse.Namespace) -> List[Dict[str, Any]]:
        service = self._load(args.playbook)
        branch = self._branch_ref(service, args.playbook, args.branch)
        commit = service.restore(
            branch.id, args.commit, args.author, message=args.message
        )
        self._dirty = True
        return [_commit_record(commit)]

    def _dag(self, args: argparse.Namespace) -> List[Dict[str, Any]]:
        service = self._load(args.playbook)
        return [
            dict(node.to_payload(), record="dag-node")
            for node in service.get_commit_dag(args.playbook)
        ]

    def _validate(self, args: argparse.Namespace) -> List[Dict[str, Any]]:
        result = PlaybookVersionControl.validate_graph(_read_graph(args.graph))
        return [
            {
                "record": "validation",
                "valid": result.valid,
                "issues": [
                    {
                        "code": issue.code,
                        "message": issue.message,
                        "severity": issue.severity.value,
                    }
                    for issue in result.issues
                ],
            }
        ]


def _default_author() -> str:
    return os.environ.get("PLAYBOOK_VCS_AUTHOR") or os.environ.get(
        "USER", "cli"
    )


def build_arg_parser() -> argparse.ArgumentParser:
    argument_parser = argparse.ArgumentParser(
        prog="playbook-vcs",
        description="Playbook VCS: branch, commit and merge playbook graphs.",
    )
    argument_parser.add_argument(
        "--store-dir",
        type=Path,
        default=None,
        help="Use a local snapshot directory instead of the configured store.",
    )
    commands = argument_parser.add_subparsers(dest="command", required=True)

    def _with_author(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--author", default=_default_author())

    init = commands.add_parser("init", help="Create a playbook's history.")
    init.add_argument("playbook")
    init.add_argument("--graph", required=True, help="Graph JSON file or '-'.")
    init.add_argument("--branch", default="main")
    init.add_argument("-m", "--message", default="Initial commit")
    init.add_argument("--protected", action="store_true")
    _with_author(init)

    branch = commands.add_parser("branch", help="Manage branches.")
    branch_commands = branch.add_subparsers(
        dest="branch_command", required=True
    )
    create = branch_commands.add_parser("create")
    create.add_argument("playbook")
    create.add_argument("name")
    create.add_argument("--from", dest="from_branch", default=None)
    _with_author(create)
    listing = branch_commands.add_parser("list")
    listing.add_argument("playbook")
    listing.add_argument("--exclude-protected", action="store_true")
    for action in ("delete", "checkout"):
        sub = branch_commands.add_parser(action)
        sub.add_argument("playbook")
        sub.add_argument("name")
    protect = branch_commands.add_parser("protect")
    protect.add_argument("playbook")
    protect.add_argument("name")
    protect.add_argument("--off", action="store_true")

    commit = commands.add_parser("commit", help="Commit a graph.")
    commit.add_argument("playbook")
    commit.add_argument("--graph", required=True, help="Graph JSON file or '-'.")
    commit.add_argument("-m", "--message", required=True)
    commit.add_argument("--branch", default=None)
    commit.add_argument("--expected-head", default=None)
    _with_author(commit)

    merge = commands.add_parser("merge", help="Merge SOURCE into TARGET.")
    merge.add_argument("playbook")
    merge.add_argument("source")
    merge.add_argument("target")
    merge.add_argument("-m", "--message", default=None)
    merge.add_argument(
        "--resolve",
        action="append",
        default=[],
        metavar="KEY=CHOICE",
        help="Conflict resolution such as node:<id>=ours or edge:<id>=theirs.",
    )
    merge.add_argument("--expected-head", default=None)
    _with_author(merge)

    log = commands.add_parser("log", help="List commits on a branch.")
    log.add_argument("playbook")
    log.add_argument("--branch", default=None)
    log.add_argument("--limit", type=int, default=20)
    log.add_argument("--offset", type=int, default=0)

    diff = commands.add_parser("diff", help="Show what a commit changed.")
    diff.add_argument("playbook")
    diff.add_argument("commit")
    diff.add_argument("--against", default=None)

    restore = commands.add_parser("restore", help="Recommit an old graph.")
    restore.add_argument("playbook")
    restore.add_argument("commit")
    restore.add_argument("--branch", default=None)
    restore.add_argument("-m", "--message", default=None)
    _with_author(restore)

    dag = commands.add_parser("dag", help="Print the commit DAG.")
    dag.add_argument("playbook")

    validate = commands.add_parser("validate", help="Check a graph file.")
    validate.add_argument("--graph", required=True, help="Graph JSON file or '-'.")

    return argument_parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    validate_runtime_environment()
    configure_logging()
    argument_parser = build_arg_parser()
    parsed_args = argument_parser.parse_args(argv)

    if parsed_args.store_dir is not None:
        store: SnapshotStore = LocalSnapshotStore(parsed_args.store_dir)
    else:
        store = build_snapshot_store_from_env()
    app = CLIApp(store)
    return app.run(parsed_args)


if __name__ == "__main__":
    sys.exit(main())
