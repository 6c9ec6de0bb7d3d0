import json

import pytest
from typer.testing import CliRunner

from tagr.cli import app

runner = CliRunner()


@pytest.fixture
def tasks_file(tmp_path, monkeypatch):
    for var in ("TAGR_TASKS_FILE", "TAGR_STATE_FILE", "TAGR_LOG_LEVEL"):
        monkeypatch.delenv(var, raising=False)
    path = tmp_path / "tasks.json"
    result = runner.invoke(app, ["init", "-f", str(path)])
    assert result.exit_code == 0, result.stdout
    return path


def _invoke(path, *args):
    return runner.invoke(app, [*args, "-f", str(path)])


def _read(path):
    return json.loads(path.read_text())


def test_init_in_cwd(tmp_path, monkeypatch):
    monkeypatch.delenv("TAGR_TASKS_FILE", raising=False)
    monkeypatch.delenv("TAGR_STATE_FILE", raising=False)
    monkeypatch.chdir(tmp_path)

    result = runner.invoke(app, ["init"])
    assert result.exit_code == 0
    assert (tmp_path / ".tagr" / "tasks.json").exists()
    assert _read(tmp_path / ".tagr" / "state.json") == {"currentTag": "main"}

    result = runner.invoke(app, ["init"])
    assert "already exists" in result.stdout


def test_add_list_show(tasks_file):
    assert _invoke(tasks_file, "add", "Design", "-p", "high").exit_code == 0
    result = _invoke(tasks_file, "add", "Build", "--depends", "1")
    assert "task 2" in result.stdout
    assert _invoke(tasks_file, "add-subtask", "2", "Wire it").exit_code == 0

    result = _invoke(tasks_file, "list", "--with-subtasks")
    assert result.exit_code == 0
    assert "Design" in result.stdout
    assert "Wire it" in result.stdout

    result = _invoke(tasks_file, "show", "2")
    assert "Build" in result.stdout
    assert "2.1" in result.stdout

    data = _read(tasks_file)
    assert data["main"]["tasks"][1]["dependencies"] == [1]


def test_list_status_filter(tasks_file):
    _invoke(tasks_file, "add", "One")
    _invoke(tasks_file, "add", "Two")
    _invoke(tasks_file, "set-status", "1", "done")
    result = _invoke(tasks_file, "list", "--status", "done")
    assert "One" in result.stdout
    assert "Two" not in result.stdout

    result = _invoke(tasks_file, "list", "--status", "started")
    assert result.exit_code == 1
    assert "INVALID_FIELD" in result.stdout


def test_next(tasks_file):
    _invoke(tasks_file, "add", "First")
    _invoke(tasks_file, "add", "Second", "--depends", "1")
    result = _invoke(tasks_file, "next")
    assert "First" in result.stdout

    _invoke(tasks_file, "set-status", "1", "done")
    result = _invoke(tasks_file, "next")
    assert "Second" in result.stdout


def test_update_and_log(tasks_file):
    _invoke(tasks_file, "add", "Task")
    assert _invoke(tasks_file, "update", "1", "--details", "Use JSON").exit_code == 0
    assert _invoke(tasks_file, "log", "1", "checked the schema").exit_code == 0
    task = _read(tasks_file)["main"]["tasks"][0]
    assert task["details"] == "Use JSON"
    assert task["logs"].endswith("checked the schema")


def test_missing_task_reports_code(tasks_file):
    result = _invoke(tasks_file, "show", "9")
    assert result.exit_code == 1
    assert "TASK_NOT_FOUND" in result.stdout

    result = _invoke(tasks_file, "show", "1.2.3")
    assert result.exit_code == 1
    assert "INVALID_ADDRESS" in result.stdout


def test_dependency_commands(tasks_file):
    _invoke(tasks_file, "add", "A")
    _invoke(tasks_file, "add", "B")
    assert _invoke(tasks_file, "add-dependency", "2", "1").exit_code == 0

    result = _invoke(tasks_file, "add-dependency", "1", "2")
    assert result.exit_code == 1
    assert "DEPENDENCY_ERROR" in result.stdout

    assert _invoke(tasks_file, "remove-dependency", "2", "1").exit_code == 0
    assert _read(tasks_file)["main"]["tasks"][1]["dependencies"] == []


def test_validate_and_fix(tasks_file):
    data = {"main": {"tasks": [
        {"id": 1, "title": "A", "dependencies": [2]},
        {"id": 2, "title": "B", "dependencies": [1, 7]},
    ]}}
    tasks_file.write_text(json.dumps(data))

    result = _invoke(tasks_file, "validate-dependencies")
    assert result.exit_code == 1
    assert "CYCLE" in result.stdout
    assert "DANGLING" in result.stdout

    result = _invoke(tasks_file, "fix-dependencies")
    assert result.exit_code == 0
    assert "2 removed" in result.stdout

    result = _invoke(tasks_file, "validate-dependencies")
    assert result.exit_code == 0
    assert "valid" in result.stdout
    assert _read(tasks_file)["main"]["tasks"][1]["dependencies"] == []


def test_move_within_tag(tasks_file):
    _invoke(tasks_file, "add", "A")
    _invoke(tasks_file, "add", "B", "--depends", "1")
    result = _invoke(tasks_file, "move", "--from", "1", "--to", "5")
    assert result.exit_code == 0
    tasks = _read(tasks_file)["main"]["tasks"]
    assert [t["id"] for t in tasks] == [2, 5]
    assert tasks[0]["dependencies"] == [5]

    result = _invoke(tasks_file, "move", "--from", "2", "--to", "5")
    assert result.exit_code == 1
    assert "DESTINATION_OCCUPIED" in result.stdout

    result = _invoke(tasks_file, "move", "--from", "2")
    assert result.exit_code == 1


def test_move_across_tags(tasks_file):
    _invoke(tasks_file, "add", "A")
    _invoke(tasks_file, "add", "B", "--depends", "1")
    assert _invoke(tasks_file, "add-tag", "feature").exit_code == 0

    result = _invoke(tasks_file, "move", "--from", "2", "--from-tag", "main", "--to-tag", "feature")
    assert result.exit_code == 1
    assert "CROSS_TAG_DEPENDENCY_CONFLICTS" in result.stdout
    assert "--with-dependencies" in result.stdout

    result = _invoke(
        tasks_file, "move", "--from", "2", "--from-tag", "main", "--to-tag", "feature", "--ignore-dependencies"
    )
    assert result.exit_code == 0
    data = _read(tasks_file)
    assert [t["id"] for t in data["main"]["tasks"]] == [1]
    assert data["feature"]["tasks"][0]["dependencies"] == []

    result = _invoke(tasks_file, "move", "--from", "1", "--from-tag", "main", "--to-tag", "main")
    assert "SAME_SOURCE_TARGET_TAG" in result.stdout


def test_tag_commands(tasks_file):
    _invoke(tasks_file, "add", "A")
    assert _invoke(tasks_file, "copy-tag", "main", "backup").exit_code == 0
    assert _invoke(tasks_file, "use-tag", "backup").exit_code == 0

    result = _invoke(tasks_file, "list")
    assert "backup" in result.stdout

    assert _invoke(tasks_file, "rename-tag", "backup", "old").exit_code == 0
    state = json.loads((tasks_file.parent / "state.json").read_text())
    assert state["currentTag"] == "old"

    result = _invoke(tasks_file, "tags")
    assert "old" in result.stdout
    assert "main" in result.stdout

    assert _invoke(tasks_file, "delete-tag", "old").exit_code == 0
    assert list(_read(tasks_file)) == ["main"]

    result = _invoke(tasks_file, "delete-tag", "main")
    assert result.exit_code == 1
    assert "PROTECTED_TAG" in result.stdout

    result = _invoke(tasks_file, "use-tag", "ghost")
    assert "TAG_NOT_FOUND" in result.stdout


def test_remove_commands(tasks_file):
    _invoke(tasks_file, "add", "A")
    _invoke(tasks_file, "add-subtask", "1", "s1")
    _invoke(tasks_file, "add-subtask", "1", "s2")
    _invoke(tasks_file, "add", "B", "--depends", "1.2")

    result = _invoke(tasks_file, "remove-subtask", "1.2", "--convert")
    assert "task 3" in result.stdout
    assert _read(tasks_file)["main"]["tasks"][1]["dependencies"] == [3]

    assert _invoke(tasks_file, "clear-subtasks", "--id", "1").exit_code == 0
    assert _read(tasks_file)["main"]["tasks"][0]["subtasks"] == []

    assert _invoke(tasks_file, "remove", "3").exit_code == 0
    tasks = _read(tasks_file)["main"]["tasks"]
    assert [t["id"] for t in tasks] == [1, 2]
    assert tasks[1]["dependencies"] == []
