from tagr.addresses import SubtaskRef, TaskRef
from tagr.models import SpecFile, Subtask, Task, TaskPriority, TaskStatus, Workspace


def test_task_serialization():
    t = Task(
        id=3,
        title="Build API",
        test_strategy="pytest",
        status=TaskStatus.IN_PROGRESS,
        priority=TaskPriority.HIGH,
        dependencies=[TaskRef(1), SubtaskRef(2, 1)],
        spec_files=[SpecFile(type="design", title="API", file="docs/api.md")],
    )
    d = t.to_dict()
    assert d["testStrategy"] == "pytest"
    assert d["status"] == "in-progress"
    assert d["dependencies"] == [1, "2.1"]
    assert d["spec_files"] == [{"type": "design", "title": "API", "file": "docs/api.md"}]

    t2 = Task.from_dict(d)
    assert t2 == t


def test_subtask_short_form_dependencies():
    d = {
        "id": 4,
        "title": "Parent",
        "subtasks": [
            {"id": 1, "title": "first"},
            {"id": 2, "title": "second", "dependencies": [1, "3", "5.1"]},
        ],
    }
    task = Task.from_dict(d)
    assert task.subtasks[1].dependencies == [SubtaskRef(4, 1), TaskRef(3), SubtaskRef(5, 1)]

    # siblings go back out as bare ints, tasks as strings
    out = task.to_dict()
    assert out["subtasks"][1]["dependencies"] == [1, "3", "5.1"]


def test_defaults_for_missing_fields():
    task = Task.from_dict({"id": 1, "title": "Bare"})
    assert task.status == TaskStatus.PENDING
    assert task.priority == TaskPriority.MEDIUM
    assert task.dependencies == []
    assert task.subtasks == []
    assert task.logs == ""


def test_priority_rank_orders_high_first():
    ranked = sorted(TaskPriority, key=lambda p: p.rank, reverse=True)
    assert ranked == [TaskPriority.HIGH, TaskPriority.MEDIUM, TaskPriority.LOW]


def test_workspace_helpers():
    ws = Workspace(tasks=[
        Task(id=1, title="a", subtasks=[Subtask(id=1, title="a1"), Subtask(id=2, title="a2")]),
        Task(id=4, title="b"),
    ])
    assert ws.next_task_id() == 5
    assert ws.find_task(4).title == "b"
    assert ws.find_task(2) is None
    assert ws.find_task(1).next_subtask_id() == 3
    assert ws.addresses() == [TaskRef(1), SubtaskRef(1, 1), SubtaskRef(1, 2), TaskRef(4)]


def test_workspace_copy_is_independent():
    ws = Workspace(tasks=[Task(id=1, title="a", dependencies=[TaskRef(2)])])
    clone = ws.copy()
    clone.tasks[0].dependencies.clear()
    clone.tasks[0].title = "changed"
    assert ws.tasks[0].dependencies == [TaskRef(2)]
    assert ws.tasks[0].title == "a"


def test_workspace_round_trip_keeps_metadata():
    raw = {
        "tasks": [{"id": 1, "title": "a", "dependencies": [], "subtasks": []}],
        "metadata": {"created": "2026-01-01T00:00:00+00:00", "updated": "2026-01-02T00:00:00+00:00", "description": "x"},
    }
    ws = Workspace.from_dict(raw)
    assert ws.metadata.description == "x"
    assert ws.to_dict()["metadata"] == raw["metadata"]
