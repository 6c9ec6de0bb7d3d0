"""Task and subtask editing on a loaded workspace."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from tagr.addresses import Address, SubtaskRef, TaskRef, address_key, resolve_address
from tagr.errors import InvalidFieldError, InvalidMoveError, TaskNotFoundError
from tagr.graph import DependencyGraph
from tagr.models import (
    SpecFile,
    Subtask,
    Task,
    TaskPriority,
    TaskStatus,
    Workspace,
    now_iso,
)
from tagr.moves import move_within_tag


def parse_status(value: str) -> TaskStatus:
    try:
        return TaskStatus(value)
    except ValueError:
        valid = ", ".join(s.value for s in TaskStatus)
        raise InvalidFieldError(f"Invalid status '{value}'. Valid statuses: {valid}", field="status") from None


def parse_priority(value: str) -> TaskPriority:
    try:
        return TaskPriority(value)
    except ValueError:
        valid = ", ".join(p.value for p in TaskPriority)
        raise InvalidFieldError(f"Invalid priority '{value}'. Valid priorities: {valid}", field="priority") from None


def _checked_dependencies(ws: Workspace, dependencies: Iterable[Address] | None) -> list[Address]:
    graph = DependencyGraph(ws)
    result: list[Address] = []
    for dep in dependencies or []:
        if not graph.exists(dep):
            raise TaskNotFoundError(f"Dependency {dep} not found", address=str(dep))
        if dep not in result:
            result.append(dep)
    return result


def _require_title(title: str) -> str:
    if not title or not title.strip():
        raise InvalidFieldError("Title must not be empty", field="title")
    return title.strip()


def add_task(
    ws: Workspace,
    title: str,
    description: str = "",
    details: str = "",
    test_strategy: str = "",
    priority: TaskPriority = TaskPriority.MEDIUM,
    dependencies: Sequence[Address] | None = None,
    spec_files: Sequence[SpecFile] | None = None,
    logs: str = "",
) -> Task:
    task = Task(
        id=ws.next_task_id(),
        title=_require_title(title),
        description=description,
        details=details,
        test_strategy=test_strategy,
        priority=priority,
        dependencies=_checked_dependencies(ws, dependencies),
        spec_files=list(spec_files or []),
        logs=logs,
    )
    ws.tasks.append(task)
    ws.touch()
    return task


def add_subtask(
    ws: Workspace,
    parent_id: int,
    title: str,
    description: str = "",
    details: str = "",
    test_strategy: str = "",
    priority: TaskPriority = TaskPriority.MEDIUM,
    dependencies: Sequence[Address] | None = None,
    spec_files: Sequence[SpecFile] | None = None,
) -> SubtaskRef:
    parent = ws.find_task(parent_id)
    if parent is None:
        raise TaskNotFoundError(f"Parent task {parent_id} not found", address=str(parent_id))
    sub = Subtask(
        id=parent.next_subtask_id(),
        title=_require_title(title),
        description=description,
        details=details,
        test_strategy=test_strategy,
        priority=priority,
        dependencies=_checked_dependencies(ws, dependencies),
        spec_files=list(spec_files or []),
    )
    parent.subtasks.append(sub)
    ws.touch()
    return SubtaskRef(parent_id, sub.id)


def update_task(
    ws: Workspace,
    address: Address,
    title: str | None = None,
    description: str | None = None,
    details: str | None = None,
    test_strategy: str | None = None,
    priority: TaskPriority | None = None,
    spec_files: Sequence[SpecFile] | None = None,
) -> Task | Subtask:
    """Update the given fields; fields left as None are unchanged."""
    node = resolve_address(ws, address)
    if title is not None:
        node.title = _require_title(title)
    if description is not None:
        node.description = description
    if details is not None:
        node.details = details
    if test_strategy is not None:
        node.test_strategy = test_strategy
    if priority is not None:
        node.priority = priority
    if spec_files is not None:
        node.spec_files = list(spec_files)
    ws.touch()
    return node


def append_log(ws: Workspace, address: Address, message: str) -> Task | Subtask:
    node = resolve_address(ws, address)
    entry = f"[{now_iso()}] {message.strip()}"
    node.logs = f"{node.logs.rstrip()}\n{entry}".lstrip("\n")
    ws.touch()
    return node


def set_status(ws: Workspace, addresses: Sequence[Address], status: TaskStatus) -> list[tuple[Address, TaskStatus]]:
    """Set *status* on every address; completing a task completes its subtasks.

    Returns (address, previous status) pairs. All addresses are resolved
    before anything changes.
    """
    nodes = [(addr, resolve_address(ws, addr)) for addr in addresses]
    changes = []
    for addr, node in nodes:
        changes.append((addr, node.status))
        node.status = status
        if isinstance(node, Task) and status == TaskStatus.DONE:
            for sub in node.subtasks:
                sub.status = TaskStatus.DONE
    ws.touch()
    return changes


def remove_task(ws: Workspace, addresses: Sequence[Address]) -> list[Address]:
    """Delete tasks or subtasks and strip every dependency edge pointing at them."""
    for addr in addresses:
        resolve_address(ws, addr)
    graph = DependencyGraph(ws)
    removed: list[Address] = []
    for addr in addresses:
        if addr in removed:
            continue
        removed.extend(graph.remove_address(addr))
    ws.touch()
    return removed


def remove_subtask(ws: Workspace, address: Address, convert: bool = False) -> Address | None:
    """Remove a subtask, or with *convert* promote it to the next free task id."""
    if not isinstance(address, SubtaskRef):
        raise InvalidMoveError(f"{address} is not a subtask", address=str(address))
    resolve_address(ws, address)
    if convert:
        new_addr = TaskRef(ws.next_task_id())
        move_within_tag(ws, address, new_addr)
        return new_addr
    DependencyGraph(ws).remove_address(address)
    ws.touch()
    return None


def clear_subtasks(ws: Workspace, task_ids: Sequence[int] | None = None) -> int:
    """Remove all subtasks of the given tasks (every task when None)."""
    if task_ids is None:
        targets = list(ws.tasks)
    else:
        targets = []
        for tid in task_ids:
            task = ws.find_task(tid)
            if task is None:
                raise TaskNotFoundError(f"Task {tid} not found", address=str(tid))
            targets.append(task)

    removed = [SubtaskRef(t.id, s.id) for t in targets for s in t.subtasks]
    for task in targets:
        task.subtasks = []
    DependencyGraph(ws).strip_references(removed)
    ws.touch()
    return len(removed)


# ---------------------------------------------------------------------------
# Next task
# ---------------------------------------------------------------------------


@dataclass
class NextTask:
    address: Address
    title: str
    status: TaskStatus
    priority: TaskPriority
    dependencies: list[Address]

    def to_dict(self) -> dict:
        return {
            "id": str(self.address),
            "title": self.title,
            "status": self.status.value,
            "priority": self.priority.value,
            "dependencies": [str(d) for d in self.dependencies],
        }


def _rank(item: NextTask) -> tuple:
    return (-item.priority.rank, len(item.dependencies), address_key(item.address))


def next_task(ws: Workspace) -> NextTask | None:
    """Pick the next work item.

    Continuing work beats starting work: in-progress subtasks first, then
    ready subtasks of in-progress tasks, then in-progress tasks, then pending
    tasks whose prerequisites are done or in progress. Ties break on
    priority, dependency count and address.
    """
    status_of: dict[Address, TaskStatus] = {}
    for task in ws.tasks:
        status_of[TaskRef(task.id)] = task.status
        for sub in task.subtasks:
            status_of[SubtaskRef(task.id, sub.id)] = sub.status

    def done(deps: list[Address], allow_in_progress: bool = False) -> bool:
        ok = {TaskStatus.DONE, TaskStatus.IN_PROGRESS} if allow_in_progress else {TaskStatus.DONE}
        return all(status_of.get(d) in ok for d in deps)

    tiers: list[list[NextTask]] = [[], [], [], []]
    for task in ws.tasks:
        for sub in task.subtasks:
            item = NextTask(SubtaskRef(task.id, sub.id), sub.title, sub.status, sub.priority, sub.dependencies)
            if sub.status == TaskStatus.IN_PROGRESS:
                tiers[0].append(item)
            elif task.status == TaskStatus.IN_PROGRESS and sub.status == TaskStatus.PENDING and done(sub.dependencies):
                tiers[1].append(item)

        item = NextTask(TaskRef(task.id), task.title, task.status, task.priority, task.dependencies)
        if task.status == TaskStatus.IN_PROGRESS:
            tiers[2].append(item)
        elif task.status == TaskStatus.PENDING and done(task.dependencies, allow_in_progress=True):
            tiers[3].append(item)

    for tier in tiers:
        if tier:
            return min(tier, key=_rank)
    return None
