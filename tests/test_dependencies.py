import pytest

from tagr.addresses import SubtaskRef, TaskRef
from tagr.dependencies import (
    EdgeChange,
    IssueCode,
    add_dependency,
    fix_dependencies,
    remove_dependency,
    validate_dependencies,
)
from tagr.errors import DependencyError, TaskNotFoundError
from tagr.graph import DependencyGraph
from tagr.models import Workspace


def _ws(*tasks):
    return Workspace.from_dict({"tasks": list(tasks)})


def _cycle_ws():
    return _ws(
        {"id": 1, "title": "A", "dependencies": [2]},
        {"id": 2, "title": "B", "dependencies": [3]},
        {"id": 3, "title": "C", "dependencies": [1]},
    )


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def test_valid_workspace_has_no_issues():
    ws = _ws({"id": 1, "title": "a"}, {"id": 2, "title": "b", "dependencies": [1]})
    report = validate_dependencies(ws)
    assert report.is_valid
    assert report.to_dict() == {"valid": True, "issues": []}


def test_cycle_reported_for_every_member():
    report = validate_dependencies(_cycle_ws())
    cycle = report.by_code(IssueCode.CYCLE)
    assert [i.address for i in cycle] == [TaskRef(1), TaskRef(2), TaskRef(3)]
    assert cycle[0].detail == "1 -> 2 -> 3 -> 1"


def test_dangling_self_and_duplicate():
    ws = _ws(
        {"id": 1, "title": "a", "dependencies": [1, 1]},
        {"id": 2, "title": "b", "dependencies": [9, 9, "1.4"]},
    )
    report = validate_dependencies(ws)
    codes = [(str(i.address), i.code) for i in report.issues]
    assert codes == [
        ("1", IssueCode.SELF),
        ("2", IssueCode.DANGLING),
        ("2", IssueCode.DANGLING),
    ]


def test_repeated_self_edge_reported_like_fix():
    ws = _ws({"id": 1, "title": "a", "dependencies": [1, 1]}, {"id": 2, "title": "b", "dependencies": [1, 1]})
    issues = validate_dependencies(ws).issues
    assert [(str(i.address), i.code) for i in issues] == [("1", IssueCode.SELF), ("2", IssueCode.DUPLICATE)]

    report = fix_dependencies(ws)
    assert report.removed == [EdgeChange(TaskRef(1), TaskRef(1), IssueCode.SELF)]
    assert report.collapsed == [EdgeChange(TaskRef(2), TaskRef(1), IssueCode.DUPLICATE)]


def test_cycle_reached_through_finished_node():
    ws = _ws(
        {"id": 1, "title": "a", "dependencies": [2, 3]},
        {"id": 2, "title": "b", "dependencies": [1]},
        {"id": 3, "title": "c", "dependencies": [2]},
    )
    report = validate_dependencies(ws)
    cycle = report.by_code(IssueCode.CYCLE)
    assert [i.address for i in cycle] == [TaskRef(1), TaskRef(2), TaskRef(3)]
    assert cycle[2].detail == "1 -> 3 -> 2 -> 1"

    fixed = fix_dependencies(ws)
    assert fixed.removed == [EdgeChange(TaskRef(2), TaskRef(1), IssueCode.CYCLE)]
    assert DependencyGraph(ws).is_acyclic()


def test_validate_never_mutates():
    ws = _cycle_ws()
    before = ws.to_dict()
    validate_dependencies(ws)
    assert ws.to_dict() == before


def test_subtask_sibling_cycle():
    ws = _ws({
        "id": 1,
        "title": "a",
        "subtasks": [
            {"id": 1, "title": "x", "dependencies": [2]},
            {"id": 2, "title": "y", "dependencies": [1]},
        ],
    })
    report = validate_dependencies(ws)
    assert [i.address for i in report.by_code(IssueCode.CYCLE)] == [SubtaskRef(1, 1), SubtaskRef(1, 2)]


# ---------------------------------------------------------------------------
# Fixing
# ---------------------------------------------------------------------------


def test_fix_breaks_cycle_at_highest_node():
    ws = _cycle_ws()
    report = fix_dependencies(ws)
    assert report.removed == [EdgeChange(TaskRef(3), TaskRef(1), IssueCode.CYCLE)]
    assert DependencyGraph(ws).is_acyclic()
    assert validate_dependencies(ws).is_valid


def test_fix_is_idempotent():
    ws = _ws(
        {"id": 1, "title": "a", "dependencies": [2, 1, 7]},
        {"id": 2, "title": "b", "dependencies": [3, 3]},
        {"id": 3, "title": "c", "dependencies": [1, 2]},
    )
    first = fix_dependencies(ws)
    assert first.changed
    snapshot = ws.to_dict()["tasks"]

    second = fix_dependencies(ws)
    assert not second.changed
    assert ws.to_dict()["tasks"] == snapshot


def test_fix_collapses_duplicates_once():
    ws = _ws(
        {"id": 3, "title": "c"},
        {"id": 4, "title": "d"},
        {"id": 5, "title": "e", "dependencies": [3, 3, 4, 3]},
    )
    report = fix_dependencies(ws)
    assert ws.find_task(5).dependencies == [TaskRef(3), TaskRef(4)]
    assert report.collapsed == [EdgeChange(TaskRef(5), TaskRef(3), IssueCode.DUPLICATE)]
    assert report.removed == []


def test_fix_removes_dangling_and_self():
    ws = _ws({"id": 1, "title": "a", "dependencies": [1, 8, "1.2"]})
    report = fix_dependencies(ws)
    assert ws.tasks[0].dependencies == []
    assert [c.reason for c in report.removed] == [IssueCode.SELF, IssueCode.DANGLING, IssueCode.DANGLING]


def test_fix_handles_overlapping_cycles():
    ws = _ws(
        {"id": 1, "title": "a", "dependencies": [2]},
        {"id": 2, "title": "b", "dependencies": [1, 3]},
        {"id": 3, "title": "c", "dependencies": [2]},
    )
    report = fix_dependencies(ws)
    assert DependencyGraph(ws).is_acyclic()
    assert all(c.reason == IssueCode.CYCLE for c in report.removed)
    assert len(report.removed) == 2


# ---------------------------------------------------------------------------
# Editing
# ---------------------------------------------------------------------------


def test_add_dependency():
    ws = _ws({"id": 1, "title": "a"}, {"id": 2, "title": "b"})
    add_dependency(ws, TaskRef(2), TaskRef(1))
    assert ws.find_task(2).dependencies == [TaskRef(1)]


def test_add_dependency_rejects_self_duplicate_and_cycle():
    ws = _ws({"id": 1, "title": "a"}, {"id": 2, "title": "b", "dependencies": [1]})
    with pytest.raises(DependencyError):
        add_dependency(ws, TaskRef(1), TaskRef(1))
    with pytest.raises(DependencyError):
        add_dependency(ws, TaskRef(2), TaskRef(1))
    with pytest.raises(DependencyError):
        add_dependency(ws, TaskRef(1), TaskRef(2))
    with pytest.raises(TaskNotFoundError):
        add_dependency(ws, TaskRef(2), TaskRef(5))
    assert ws.find_task(1).dependencies == []


def test_remove_dependency():
    ws = _ws({"id": 1, "title": "a"}, {"id": 2, "title": "b", "dependencies": [1]})
    remove_dependency(ws, TaskRef(2), TaskRef(1))
    assert ws.find_task(2).dependencies == []
    with pytest.raises(DependencyError):
        remove_dependency(ws, TaskRef(2), TaskRef(1))
