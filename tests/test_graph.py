import pytest

from tagr.addresses import SubtaskRef, TaskRef
from tagr.errors import MalformedWorkspaceError, TaskNotFoundError
from tagr.graph import DependencyGraph
from tagr.models import Workspace


def _ws(*tasks):
    return Workspace.from_dict({"tasks": list(tasks)})


def test_nodes_and_edges():
    ws = _ws(
        {"id": 1, "title": "a", "subtasks": [{"id": 1, "title": "a1"}]},
        {"id": 2, "title": "b", "dependencies": [1, "1.1"]},
        {"id": 3, "title": "c", "dependencies": [9]},
    )
    g = DependencyGraph(ws)
    assert g.nodes() == [TaskRef(1), SubtaskRef(1, 1), TaskRef(2), TaskRef(3)]
    assert g.exists(SubtaskRef(1, 1))
    assert not g.exists(TaskRef(9))
    assert g.has_edge(TaskRef(2), SubtaskRef(1, 1))
    assert g.dependents_of(TaskRef(1)) == [TaskRef(2)]
    # dangling edges stay in the list but not in the graph
    assert g.dependencies_of(TaskRef(3)) == [TaskRef(9)]
    assert not g.G.has_node(TaskRef(9))


def test_node_missing_raises():
    g = DependencyGraph(_ws({"id": 1, "title": "a"}))
    with pytest.raises(TaskNotFoundError):
        g.node(TaskRef(2))


def test_duplicate_ids_are_malformed():
    with pytest.raises(MalformedWorkspaceError):
        DependencyGraph(_ws({"id": 1, "title": "a"}, {"id": 1, "title": "b"}))


def test_cycles_start_at_lowest_address():
    ws = _ws(
        {"id": 1, "title": "a", "dependencies": [2]},
        {"id": 2, "title": "b", "dependencies": [3]},
        {"id": 3, "title": "c", "dependencies": [1]},
        {"id": 4, "title": "d", "dependencies": [1]},
    )
    g = DependencyGraph(ws)
    assert g.cycles() == [[TaskRef(1), TaskRef(2), TaskRef(3)]]
    assert not g.is_acyclic()


def test_cycles_include_paths_into_visited_nodes():
    ws = _ws(
        {"id": 1, "title": "a", "dependencies": [2, 3]},
        {"id": 2, "title": "b", "dependencies": [1]},
        {"id": 3, "title": "c", "dependencies": [2]},
    )
    assert DependencyGraph(ws).cycles() == [
        [TaskRef(1), TaskRef(2)],
        [TaskRef(1), TaskRef(3), TaskRef(2)],
    ]


def test_would_create_cycle():
    ws = _ws(
        {"id": 1, "title": "a"},
        {"id": 2, "title": "b", "dependencies": [1]},
        {"id": 3, "title": "c", "dependencies": [2]},
    )
    g = DependencyGraph(ws)
    assert g.is_acyclic()
    assert g.would_create_cycle(TaskRef(1), TaskRef(3))
    assert g.would_create_cycle(TaskRef(2), TaskRef(2))
    assert not g.would_create_cycle(TaskRef(3), TaskRef(1))


def test_rewrite_address_drops_duplicates():
    ws = _ws(
        {"id": 1, "title": "a"},
        {"id": 2, "title": "b"},
        {"id": 3, "title": "c", "dependencies": [1, 2]},
    )
    g = DependencyGraph(ws)
    assert g.rewrite_address(TaskRef(1), TaskRef(2)) == 1
    assert ws.tasks[2].dependencies == [TaskRef(2)]


def test_remove_task_takes_subtasks_and_strips_edges():
    ws = _ws(
        {"id": 1, "title": "a", "subtasks": [{"id": 1, "title": "a1"}]},
        {"id": 2, "title": "b", "dependencies": [1, "1.1"]},
    )
    g = DependencyGraph(ws)
    removed = g.remove_address(TaskRef(1))
    assert removed == [TaskRef(1), SubtaskRef(1, 1)]
    assert [t.id for t in ws.tasks] == [2]
    assert ws.tasks[0].dependencies == []
    assert g.nodes() == [TaskRef(2)]


def test_strip_references_reports_edges():
    ws = _ws(
        {"id": 1, "title": "a"},
        {"id": 2, "title": "b", "dependencies": [1]},
        {"id": 3, "title": "c", "dependencies": [1, 2]},
    )
    removed = DependencyGraph(ws).strip_references([TaskRef(1)])
    assert removed == [(TaskRef(2), TaskRef(1)), (TaskRef(3), TaskRef(1))]
    assert ws.tasks[2].dependencies == [TaskRef(2)]
