"""
Playbook VCS Repository
Introductory remarks: This module is part of the Playbook VCS codebase.

Shared fixtures: isolated environment, a ticking clock and predictable ids.
"""

from __future__ import annotations

import itertools
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import pytest

from playbook_vcs.models import Graph
from playbook_vcs.services import PlaybookVersionControl
from playbook_vcs.utils import env


@pytest.fixture(autouse=True)
def _default_runtime_env(
    monkeypatch: pytest.MonkeyPatch,
    tmp_path_factory: pytest.TempPathFactory,
) -> None:
    """
    _default_runtime_env: Function description.
    :param monkeypatch:
    :param tmp_path_factory:
    :returns:
    """

    monkeypatch.setattr(env, "_ENV_LOADED", True)
    log_dir = tmp_path_factory.mktemp("logs")
    monkeypatch.setenv("LOG_FILE", str(Path(log_dir) / "playbook-vcs.log"))
    monkeypatch.setenv("LOG_LEVEL", "0")
    for name in (
        "PLAYBOOK_VCS_STORE_DIR",
        "PLAYBOOK_VCS_BUCKET",
        "PLAYBOOK_VCS_PREFIX",
        "PLAYBOOK_VCS_REGION",
        "PLAYBOOK_VCS_LOCAL",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def clock() -> Callable[[], datetime]:
    """Each call returns a timestamp one second after the previous one."""
    start = datetime(2024, 1, 1, tzinfo=timezone.utc)
    ticks = itertools.count()
    return lambda: start + timedelta(seconds=next(ticks))


@pytest.fixture
def id_factory() -> Callable[[], str]:
    counter = itertools.count(1)
    return lambda: f"id-{next(counter)}"


@pytest.fixture
def vcs(
    clock: Callable[[], datetime], id_factory: Callable[[], str]
) -> PlaybookVersionControl:
    return PlaybookVersionControl(id_factory=id_factory, clock=clock)


def make_graph(
    nodes: Optional[Dict[str, Any]] = None,
    edges: Optional[List[tuple]] = None,
) -> Graph:
    """
    make_graph: Build a graph from ``{id: label}`` (or ``{id: dict}``) and
    ``(id, source, target[, label])`` tuples.
    :param nodes:
    :param edges:
    :returns:
    """

    raw_nodes = []
    for node_id, attrs in (nodes or {}).items():
        if isinstance(attrs, dict):
            raw_nodes.append({"id": node_id, "type": "AGENT", **attrs})
        else:
            raw_nodes.append({"id": node_id, "type": "AGENT", "label": attrs})
    raw_edges = []
    for edge in edges or []:
        edge_id, source, target = edge[:3]
        raw = {"id": edge_id, "source": source, "target": target}
        if len(edge) > 3:
            raw["label"] = edge[3]
        raw_edges.append(raw)
    return Graph.from_payload({"nodes": raw_nodes, "edges": raw_edges})


@pytest.fixture
def graph_factory() -> Callable[..., Graph]:
    return make_graph
