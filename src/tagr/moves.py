"""Moving tasks within a tag (renumbering) and across tags.

Every operation stages its work on copies of the workspaces involved and
only swaps the result in once the whole move succeeded, so a failed move
leaves the caller's workspaces untouched.
"""

from __future__ import annotations

import enum
from collections.abc import Sequence
from dataclasses import dataclass, field

from tagr.addresses import Address, SubtaskRef, TaskRef, owning_task
from tagr.errors import (
    CannotMoveSubtaskError,
    CrossTagDependencyConflictsError,
    DestinationOccupiedError,
    InvalidMoveError,
    InvalidSourceTagError,
    InvalidTargetTagError,
    SameSourceTargetTagError,
    SourceNotFoundError,
    TaskAlreadyExistsError,
    TaskNotFoundError,
)
from tagr.graph import DependencyGraph
from tagr.models import Subtask, Task, Workspace


def _commit(ws: Workspace, staged: Workspace) -> None:
    ws.tasks = staged.tasks
    ws.metadata = staged.metadata


# ---------------------------------------------------------------------------
# Within a tag
# ---------------------------------------------------------------------------


@dataclass
class MoveRecord:
    source: Address
    destination: Address
    rewritten: int = 0

    def to_dict(self) -> dict:
        return {
            "from": str(self.source),
            "to": str(self.destination),
            "rewritten_dependencies": self.rewritten,
        }


@dataclass
class BatchMoveResult:
    moves: list[MoveRecord] = field(default_factory=list)
    skipped: list[Address] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "moves": [m.to_dict() for m in self.moves],
            "skipped": [str(a) for a in self.skipped],
        }


def _as_subtask(task: Task, sub_id: int) -> Subtask:
    return Subtask(
        id=sub_id,
        title=task.title,
        description=task.description,
        details=task.details,
        test_strategy=task.test_strategy,
        status=task.status,
        priority=task.priority,
        dependencies=list(task.dependencies),
        spec_files=list(task.spec_files),
        logs=task.logs,
    )


def _as_task(sub: Subtask, task_id: int) -> Task:
    return Task(
        id=task_id,
        title=sub.title,
        description=sub.description,
        details=sub.details,
        test_strategy=sub.test_strategy,
        status=sub.status,
        priority=sub.priority,
        dependencies=list(sub.dependencies),
        spec_files=list(sub.spec_files),
        logs=sub.logs,
    )


def _relocate(ws: Workspace, graph: DependencyGraph, frm: Address, to: Address) -> dict[Address, Address]:
    """Move the node at *frm* to *to*; returns old -> new for every address that changed."""
    node = graph.node(frm)

    if isinstance(frm, TaskRef) and isinstance(to, TaskRef):
        renamed: dict[Address, Address] = {frm: to}
        renamed.update({SubtaskRef(frm.id, s.id): SubtaskRef(to.id, s.id) for s in node.subtasks})
        node.id = to.id
        ws.tasks.sort(key=lambda t: t.id)
        return renamed

    if isinstance(to, SubtaskRef):
        parent = ws.find_task(to.parent_id)
        if parent is None:
            raise InvalidMoveError(
                f"Destination parent task {to.parent_id} not found",
                source=str(frm),
                destination=str(to),
            )
        if isinstance(frm, TaskRef):
            if to.parent_id == frm.id:
                raise InvalidMoveError(
                    f"Task {frm} cannot become a subtask of itself",
                    source=str(frm),
                    destination=str(to),
                )
            if node.subtasks:
                raise InvalidMoveError(
                    f"Task {frm} has subtasks and cannot become a subtask",
                    source=str(frm),
                    destination=str(to),
                )
            ws.tasks.remove(node)
            moved = _as_subtask(node, to.sub_id)
        else:
            graph.node(frm.parent).subtasks.remove(node)
            node.id = to.sub_id
            moved = node
        parent.subtasks.append(moved)
        parent.subtasks.sort(key=lambda s: s.id)
        return {frm: to}

    # subtask promoted to a standalone task
    graph.node(frm.parent).subtasks.remove(node)
    ws.tasks.append(_as_task(node, to.id))
    ws.tasks.sort(key=lambda t: t.id)
    return {frm: to}


def _move_staged(ws: Workspace, frm: Address, to: Address) -> MoveRecord:
    graph = DependencyGraph(ws)
    if not graph.exists(frm):
        raise SourceNotFoundError(f"Source task {frm} not found", source=str(frm))
    if graph.exists(to):
        raise DestinationOccupiedError(
            f"Destination {to} already exists",
            source=str(frm),
            destination=str(to),
        )

    renamed = _relocate(ws, graph, frm, to)
    graph.rebuild()
    record = MoveRecord(frm, to)
    for old, new in renamed.items():
        record.rewritten += graph.rewrite_address(old, new)
    ws.touch()
    return record


def move_within_tag(ws: Workspace, frm: Address, to: Address) -> MoveRecord | None:
    """Relocate the task or subtask at *frm* to *to*, rewriting every edge to it.

    Returns None when ``frm == to``.
    """
    if frm == to:
        return None
    staged = ws.copy()
    record = _move_staged(staged, frm, to)
    _commit(ws, staged)
    return record


def move_batch_within_tag(
    ws: Workspace,
    sources: Sequence[Address],
    destinations: Sequence[Address],
) -> BatchMoveResult:
    """Apply pairwise moves left to right; all pairs succeed or none are applied."""
    if len(sources) != len(destinations):
        raise InvalidMoveError(
            f"Got {len(sources)} source IDs but {len(destinations)} destination IDs",
            sources=[str(a) for a in sources],
            destinations=[str(a) for a in destinations],
        )

    staged = ws.copy()
    result = BatchMoveResult()
    for frm, to in zip(sources, destinations):
        if frm == to:
            result.skipped.append(frm)
            continue
        result.moves.append(_move_staged(staged, frm, to))
    _commit(ws, staged)
    return result


# ---------------------------------------------------------------------------
# Across tags
# ---------------------------------------------------------------------------


class MovePolicy(enum.StrEnum):
    STRICT = "strict"
    WITH_DEPENDENCIES = "with-dependencies"
    IGNORE_DEPENDENCIES = "ignore-dependencies"

    @classmethod
    def from_flags(cls, with_dependencies: bool = False, ignore_dependencies: bool = False) -> MovePolicy:
        if with_dependencies and ignore_dependencies:
            raise InvalidMoveError("Cannot combine --with-dependencies and --ignore-dependencies")
        if with_dependencies:
            return cls.WITH_DEPENDENCIES
        if ignore_dependencies:
            return cls.IGNORE_DEPENDENCIES
        return cls.STRICT


@dataclass(frozen=True)
class Conflict:
    """A dependency edge that would span two tags after the move."""

    dependent: Address
    prerequisite: Address

    def to_dict(self) -> dict:
        return {"dependent": str(self.dependent), "prerequisite": str(self.prerequisite)}


@dataclass
class MoveResult:
    moved: list[Address] = field(default_factory=list)
    tips: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {"moved": [str(a) for a in self.moved], "tips": list(self.tips)}


def _edges(task: Task):
    """Yield (node address, dependency) for a task and all of its subtasks."""
    for dep in task.dependencies:
        yield TaskRef(task.id), dep
    for sub in task.subtasks:
        for dep in sub.dependencies:
            yield SubtaskRef(task.id, sub.id), dep


def find_conflicts(src: Workspace, moving: set[int]) -> list[Conflict]:
    """Edges between tasks in *moving* and tasks that stay in *src*, in both directions."""
    graph = DependencyGraph(src)
    conflicts: list[Conflict] = []
    for task in src.tasks:
        for addr, dep in _edges(task):
            if not graph.exists(dep):
                continue
            if (task.id in moving) != (owning_task(dep).id in moving):
                conflicts.append(Conflict(addr, dep))
    return conflicts


def _prerequisite_closure(src: Workspace, dst: Workspace, ids: list[int]) -> list[int]:
    graph = DependencyGraph(src)
    in_dst = dst.task_ids()
    closure = list(ids)
    frontier = list(ids)
    while frontier:
        task = src.find_task(frontier.pop())
        for _, dep in _edges(task):
            owner = owning_task(dep).id
            if graph.exists(dep) and owner not in closure and owner not in in_dst:
                closure.append(owner)
                frontier.append(owner)
    return closure


def _strip_edges(ws: Workspace, conflicts: list[Conflict]) -> None:
    graph = DependencyGraph(ws)
    for c in conflicts:
        if graph.exists(c.dependent):
            graph.remove_edge(c.dependent, c.prerequisite)


def move_across_tags(
    src: Workspace,
    dst: Workspace,
    ids: Sequence[Address],
    policy: MovePolicy = MovePolicy.STRICT,
    source_tag: str = "source",
    target_tag: str = "target",
) -> MoveResult:
    """Move tasks (with their subtasks) from *src* to *dst*, keeping their ids."""
    requested: list[int] = []
    for addr in ids:
        if isinstance(addr, SubtaskRef):
            raise CannotMoveSubtaskError(
                f"Cannot move subtask {addr} across tags; promote it to a task first",
                task_id=str(addr),
                source_tag=source_tag,
                target_tag=target_tag,
            )
        if src.find_task(addr.id) is None:
            raise TaskNotFoundError(
                f"Task {addr} not found in tag '{source_tag}'",
                task_id=str(addr),
                source_tag=source_tag,
            )
        if addr.id not in requested:
            requested.append(addr.id)

    def check_collisions(task_ids: list[int]) -> None:
        existing = dst.task_ids()
        for tid in task_ids:
            if tid in existing:
                raise TaskAlreadyExistsError(
                    f"Task {tid} already exists in target tag '{target_tag}'",
                    task_id=str(tid),
                    source_tag=source_tag,
                    target_tag=target_tag,
                )

    check_collisions(requested)
    conflicts = find_conflicts(src, set(requested))

    staged_src = src.copy()
    staged_dst = dst.copy()
    result = MoveResult()
    moving = requested

    if policy == MovePolicy.STRICT:
        if conflicts:
            raise CrossTagDependencyConflictsError(
                f"Moving {', '.join(map(str, requested))} from '{source_tag}' to '{target_tag}' "
                f"would break {len(conflicts)} cross-tag dependencies",
                conflicts=[c.to_dict() for c in conflicts],
                source_tag=source_tag,
                target_tag=target_tag,
            )

    elif policy == MovePolicy.WITH_DEPENDENCIES:
        moving = _prerequisite_closure(src, dst, requested)
        check_collisions(moving)
        in_dst = dst.task_ids()
        to_strip = []
        for c in find_conflicts(src, set(moving)):
            if owning_task(c.dependent).id in moving and owning_task(c.prerequisite).id in in_dst:
                result.tips.append(
                    f"{c.dependent} keeps its dependency on {c.prerequisite}, "
                    f"which now refers to task {owning_task(c.prerequisite)} in '{target_tag}'"
                )
            else:
                to_strip.append(c)
                result.tips.append(
                    f"Removed dependency {c.dependent} -> {c.prerequisite}: "
                    f"{c.prerequisite} moved to '{target_tag}' while {c.dependent} stays in '{source_tag}'"
                )
        _strip_edges(staged_src, to_strip)

    else:
        _strip_edges(staged_src, conflicts)
        for c in conflicts:
            result.tips.append(
                f"Removed dependency {c.dependent} -> {c.prerequisite} "
                f"(now split between '{source_tag}' and '{target_tag}')"
            )

    moving_set = set(moving)
    moved_tasks = [t for t in staged_src.tasks if t.id in moving_set]
    staged_src.tasks = [t for t in staged_src.tasks if t.id not in moving_set]
    staged_dst.tasks.extend(moved_tasks)
    staged_src.touch()
    staged_dst.touch()

    _commit(src, staged_src)
    _commit(dst, staged_dst)
    result.moved = [TaskRef(t.id) for t in moved_tasks]
    return result


def move_between_tags(
    document: dict[str, Workspace],
    source_tag: str,
    target_tag: str,
    ids: Sequence[Address],
    policy: MovePolicy = MovePolicy.STRICT,
) -> MoveResult:
    """Resolve both tags in *document* and run :func:`move_across_tags`."""
    if source_tag == target_tag:
        raise SameSourceTargetTagError(
            f"Source and target tags are the same ('{source_tag}')",
            source_tag=source_tag,
            target_tag=target_tag,
        )
    if source_tag not in document:
        raise InvalidSourceTagError(f"Source tag '{source_tag}' does not exist", source_tag=source_tag)
    if target_tag not in document:
        raise InvalidTargetTagError(f"Target tag '{target_tag}' does not exist", target_tag=target_tag)
    return move_across_tags(
        document[source_tag],
        document[target_tag],
        ids,
        policy,
        source_tag=source_tag,
        target_tag=target_tag,
    )
