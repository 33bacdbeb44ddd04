"""
Playbook VCS Repository
Introductory remarks: This module is part of the Playbook VCS codebase.

All-or-nothing write groups for history changes.

A group is keyed by the resource it writes (``branch:<id>``,
``playbook:<id>``) and runs named steps in order. Each step's return value
is published in the group context under the step name so later steps and
undo callbacks can use it. When a step fails, completed steps are undone
newest first and the failure is raised as ``AtomicUpdateError``.

Steps should be ordered so the one that publishes the change (the branch
head compare-and-swap) runs last. The group takes no locks; concurrent
writers are serialized by that compare-and-swap in the store.
"""

from __future__ import annotations

import contextlib
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence

_LOGGER = logging.getLogger(__name__)

StepFn = Callable[[Dict[str, Any]], Any]
UndoFn = Callable[[Dict[str, Any]], None]


class AtomicUpdateError(RuntimeError):
    """A write group failed; completed steps were rolled back."""

    def __init__(
        self,
        key: str,
        failed_step: str,
        rolled_back: Sequence[str],
        cause: BaseException,
    ) -> None:
        super().__init__(
            f"Atomic update group failed for {key} at step "
            f"'{failed_step}': {cause}"
        )
        self.key = key
        self.failed_step = failed_step
        self.rolled_back = tuple(rolled_back)


def find_exception_in_chain(
    exc: BaseException,
    types: tuple[type[BaseException], ...],
) -> BaseException | None:
    """
    find_exception_in_chain: Return the first exception of ``types`` found
    walking ``__cause__``/``__context__`` from ``exc``.
    :param exc:
    :param types:
    :returns:
    """

    pending: Optional[BaseException] = exc
    visited: set[int] = set()
    while pending is not None and id(pending) not in visited:
        if isinstance(pending, types):
            return pending
        visited.add(id(pending))
        pending = pending.__cause__ or pending.__context__
    return None


@dataclass(frozen=True)
class _Step:
    name: str
    do: StepFn
    undo: Optional[UndoFn] = None


class AtomicUpdateGroup:
    """Named write steps executed all-or-nothing."""

    def __init__(self, key: str) -> None:
        self.key = key
        self.context: Dict[str, Any] = {}
        self._steps: List[_Step] = []
        self._executed = False

    @classmethod
    def begin(cls, key: str) -> "AtomicUpdateGroup":
        return cls(key)

    def add_step(
        self,
        name: str,
        do: StepFn,
        *,
        undo: Optional[UndoFn] = None,
    ) -> None:
        """Queue ``do``; its result is stored as ``context[name]``."""
        if self._executed:
            raise RuntimeError("Cannot append steps after execute()")
        if any(step.name == name for step in self._steps):
            raise ValueError(f"Step '{name}' already queued for {self.key}")
        self._steps.append(_Step(name=name, do=do, undo=undo))

    def execute(self) -> Dict[str, Any]:
        """Run every queued step; a second call returns the same context."""
        if self._executed:
            return self.context
        self._executed = True

        completed: List[_Step] = []
        for step in self._steps:
            try:
                self.context[step.name] = step.do(self.context)
            except Exception as exc:  # noqa: BLE001
                rolled_back = self._roll_back(completed)
                raise AtomicUpdateError(
                    self.key, step.name, rolled_back, exc
                ) from exc
            completed.append(step)
        _LOGGER.debug(
            "Applied %d step(s) for %s", len(completed), self.key
        )
        return self.context

    def _roll_back(self, completed: List[_Step]) -> List[str]:
        rolled_back: List[str] = []
        for step in reversed(completed):
            if step.undo is None:
                continue
            try:
                step.undo(self.context)
            except Exception:  # noqa: BLE001
                _LOGGER.exception(
                    "Undo of step '%s' failed for %s", step.name, self.key
                )
                continue
            rolled_back.append(step.name)
        return rolled_back


@contextlib.contextmanager
def unwrap_domain_errors(*types: type[BaseException]) -> Iterator[None]:
    """Re-raise the first domain error of ``types`` hidden in a group failure."""
    try:
        yield
    except AtomicUpdateError as exc:
        found = find_exception_in_chain(exc, types)
        if found is not None:
            raise found from None
        raise
