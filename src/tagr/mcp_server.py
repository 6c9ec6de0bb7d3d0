"""MCP server for tagr: exposes task management tools to AI assistants."""

from __future__ import annotations

import json
import logging

from mcp.server.fastmcp import FastMCP

from tagr import tags as tag_ops
from tagr import tasks as task_ops
from tagr.addresses import TaskRef, parse_address, parse_address_list
from tagr.config import DEFAULT_TAG, configure_logging, load_settings
from tagr.dependencies import add_dependency as add_dependency_edge
from tagr.dependencies import fix_dependencies as fix_dependency_graph
from tagr.dependencies import remove_dependency as remove_dependency_edge
from tagr.dependencies import validate_dependencies as validate_dependency_graph
from tagr.errors import InvalidFieldError, InvalidMoveError, TagrError, suggestions_for
from tagr.graph import DependencyGraph
from tagr.models import Task, Workspace
from tagr.moves import MovePolicy, move_batch_within_tag, move_between_tags
from tagr.persistence import Store

logger = logging.getLogger(__name__)

mcp = FastMCP(
    "tagr",
    instructions="""\
tagr tracks project tasks in named tags (independent task lists such as "main" \
or a feature branch). Every task has an integer ID; subtasks are addressed as \
"parent.sub" (e.g. "5.2"). Tasks and subtasks can depend on each other and \
the dependency graph must stay acyclic.

Key concepts:
- **Tags**: Each tag has its own ID space. Tools default to the current tag; \
pass `tag` to work on another one. Use list_tags / use_tag to inspect and switch.
- **Dependencies**: add_dependency refuses self-edges, duplicates and cycles. \
validate_dependencies reports problems without changing anything; \
fix_dependencies removes missing, self, duplicate and circular edges.
- **Moving**: move_task renumbers within a tag ("5" -> "7", "5.2" -> "7" to \
promote, "5" -> "7.1" to demote, or comma lists pairwise). With from_tag and \
to_tag it moves whole tasks (with their subtasks) to another tag, keeping \
their IDs. Cross-tag moves fail on dependencies that would span both tags \
unless with_dependencies (move prerequisites along) or ignore_dependencies \
(drop those edges) is set.

Every tool returns JSON: {"success": true, "data": ...} or \
{"success": false, "error": {"code": ..., "message": ..., "suggestions": [...]}}.

Typical workflow:
1. Use get_tasks for an overview and next_task to find what to work on
2. Use set_task_status to mark progress ("in-progress", "done", ...)
3. Use add_task / add_subtask to break work down
4. Use move_task to reorganise IDs or hand tasks over to another tag\
""",
)


def _get_store(file: str | None = None) -> Store:
    return Store.from_settings(load_settings(), file)


def _ok(data) -> str:
    return json.dumps({"success": True, "data": data}, indent=2)


def _error(e: TagrError) -> str:
    logger.debug("Tool error %s: %s", e.code, e.message)
    payload = e.to_dict()
    tips = suggestions_for(e)
    if tips:
        payload["suggestions"] = tips
    return json.dumps({"success": False, "error": payload}, indent=2)


def _task_summary(t: Task) -> dict:
    d = t.to_dict()
    d["dependencies"] = [str(dep) for dep in t.dependencies]
    d["subtasks"] = [
        {"id": f"{t.id}.{s.id}", "title": s.title, "status": s.status.value, "priority": s.priority.value}
        for s in t.subtasks
    ]
    return d


def _edit(file: str | None, tag: str | None, fn) -> tuple[str, object]:
    """Load a tag, apply *fn(ws)*, save on success. Errors propagate unsaved."""
    store = _get_store(file)
    tag = store.resolve_tag(tag)
    ws = store.load(tag)
    result = fn(ws)
    store.save(tag, ws)
    return tag, result


# ---------------------------------------------------------------------------
# Read tools
# ---------------------------------------------------------------------------


@mcp.tool()
def get_tasks(
    status: str | None = None,
    with_subtasks: bool = True,
    tag: str | None = None,
    file: str | None = None,
) -> str:
    """List tasks in a tag with optional status filtering.

    Args:
        status: Only return tasks with this status (e.g. "pending", "done")
        with_subtasks: Include subtask summaries for each task
        tag: Tag to read (default: current tag)
        file: Path to the tasks JSON file (default: .tagr/tasks.json)
    """
    try:
        store = _get_store(file)
        tag = store.resolve_tag(tag)
        ws = store.load(tag)
        sf = task_ops.parse_status(status) if status else None
    except TagrError as e:
        return _error(e)

    rows = []
    for t in ws.tasks:
        if sf is not None and t.status != sf:
            continue
        d = _task_summary(t)
        if not with_subtasks:
            d.pop("subtasks")
        rows.append(d)
    return _ok({"tag": tag, "tasks": rows, "total": len(ws.tasks)})


@mcp.tool()
def get_task(task_id: str, tag: str | None = None, file: str | None = None) -> str:
    """Get all details for a single task or subtask, including what it blocks.

    Args:
        task_id: Task ID ("5") or subtask ID ("5.2")
        tag: Tag to read (default: current tag)
        file: Path to the tasks JSON file
    """
    try:
        store = _get_store(file)
        ws = store.load(store.resolve_tag(tag))
        addr = parse_address(task_id)
        graph = DependencyGraph(ws)
        node = graph.node(addr)
    except TagrError as e:
        return _error(e)

    if isinstance(node, Task):
        result = _task_summary(node)
    else:
        result = node.to_dict(addr.parent_id)
        result["dependencies"] = [str(dep) for dep in node.dependencies]
    result["id"] = str(addr)
    result["blocks"] = [str(a) for a in graph.dependents_of(addr)]
    return _ok(result)


@mcp.tool()
def next_task(tag: str | None = None, file: str | None = None) -> str:
    """Find the next task or subtask to work on.

    In-progress work comes first, then pending tasks whose dependencies are
    satisfied, ordered by priority.

    Args:
        tag: Tag to read (default: current tag)
        file: Path to the tasks JSON file
    """
    try:
        store = _get_store(file)
        ws = store.load(store.resolve_tag(tag))
    except TagrError as e:
        return _error(e)

    item = task_ops.next_task(ws)
    return _ok(item.to_dict() if item else None)


# ---------------------------------------------------------------------------
# Write tools
# ---------------------------------------------------------------------------


@mcp.tool()
def add_task(
    title: str,
    description: str = "",
    details: str = "",
    test_strategy: str = "",
    priority: str = "medium",
    dependencies: list[str] | None = None,
    tag: str | None = None,
    file: str | None = None,
) -> str:
    """Add a new task; it gets the next free ID in the tag.

    Args:
        title: Task title
        description: Short description
        details: Implementation details
        test_strategy: How the task will be verified
        priority: "high", "medium" or "low"
        dependencies: Task or subtask IDs this depends on (e.g. ["1", "2.3"])
        tag: Tag to add to (default: current tag)
        file: Path to the tasks JSON file
    """
    try:
        deps = [parse_address(d) for d in dependencies or []]
        prio = task_ops.parse_priority(priority)
        tag, task = _edit(
            file,
            tag,
            lambda ws: task_ops.add_task(
                ws, title, description=description, details=details,
                test_strategy=test_strategy, priority=prio, dependencies=deps,
            ),
        )
    except TagrError as e:
        return _error(e)
    return _ok({"tag": tag, "task": _task_summary(task)})


@mcp.tool()
def add_subtask(
    parent_id: int,
    title: str,
    description: str = "",
    details: str = "",
    test_strategy: str = "",
    priority: str = "medium",
    dependencies: list[str] | None = None,
    tag: str | None = None,
    file: str | None = None,
) -> str:
    """Add a subtask to an existing task.

    Args:
        parent_id: ID of the parent task
        title: Subtask title
        description: Short description
        details: Implementation details
        test_strategy: How the subtask will be verified
        priority: "high", "medium" or "low"
        dependencies: Task or subtask IDs this depends on (e.g. ["3", "5.1"])
        tag: Tag to work on (default: current tag)
        file: Path to the tasks JSON file
    """
    try:
        deps = [parse_address(d) for d in dependencies or []]
        prio = task_ops.parse_priority(priority)
        tag, addr = _edit(
            file,
            tag,
            lambda ws: task_ops.add_subtask(
                ws, parent_id, title, description=description, details=details,
                test_strategy=test_strategy, priority=prio, dependencies=deps,
            ),
        )
    except TagrError as e:
        return _error(e)
    return _ok({"tag": tag, "id": str(addr)})


@mcp.tool()
def update_task(
    task_id: str,
    title: str | None = None,
    description: str | None = None,
    details: str | None = None,
    test_strategy: str | None = None,
    priority: str | None = None,
    append_log: str | None = None,
    tag: str | None = None,
    file: str | None = None,
) -> str:
    """Update fields of a task or subtask. Only provided fields are changed.

    Args:
        task_id: Task ID ("5") or subtask ID ("5.2")
        title: New title
        description: New description
        details: New implementation details
        test_strategy: New test strategy
        priority: "high", "medium" or "low"
        append_log: Note to append to the log with a timestamp
        tag: Tag to work on (default: current tag)
        file: Path to the tasks JSON file
    """
    try:
        addr = parse_address(task_id)
        prio = task_ops.parse_priority(priority) if priority else None

        def apply(ws: Workspace):
            node = task_ops.update_task(
                ws, addr, title=title, description=description, details=details,
                test_strategy=test_strategy, priority=prio,
            )
            if append_log:
                task_ops.append_log(ws, addr, append_log)
            return node

        tag, _ = _edit(file, tag, apply)
    except TagrError as e:
        return _error(e)
    return _ok({"tag": tag, "id": str(addr)})


@mcp.tool()
def set_task_status(task_id: str, status: str, tag: str | None = None, file: str | None = None) -> str:
    """Set the status of one or more tasks or subtasks.

    Setting a task to "done" also completes its subtasks.

    Args:
        task_id: Comma-separated IDs (e.g. "5" or "5,6.1")
        status: "pending", "in-progress", "done", "review", "deferred" or "cancelled"
        tag: Tag to work on (default: current tag)
        file: Path to the tasks JSON file
    """
    try:
        new_status = task_ops.parse_status(status)
        addrs = parse_address_list(task_id)
        tag, changes = _edit(file, tag, lambda ws: task_ops.set_status(ws, addrs, new_status))
    except TagrError as e:
        return _error(e)
    return _ok({
        "tag": tag,
        "updated": [{"id": str(a), "from": old.value, "to": new_status.value} for a, old in changes],
    })


@mcp.tool()
def remove_task(task_id: str, tag: str | None = None, file: str | None = None) -> str:
    """Delete tasks or subtasks and remove them from every dependency list.

    Args:
        task_id: Comma-separated IDs (e.g. "5" or "5,6.1")
        tag: Tag to work on (default: current tag)
        file: Path to the tasks JSON file
    """
    try:
        addrs = parse_address_list(task_id)
        tag, removed = _edit(file, tag, lambda ws: task_ops.remove_task(ws, addrs))
    except TagrError as e:
        return _error(e)
    return _ok({"tag": tag, "removed": [str(a) for a in removed]})


@mcp.tool()
def remove_subtask(
    subtask_id: str,
    convert: bool = False,
    tag: str | None = None,
    file: str | None = None,
) -> str:
    """Remove a subtask, or promote it to a standalone task.

    Args:
        subtask_id: Subtask ID (e.g. "5.2")
        convert: Promote the subtask to a new task instead of deleting it
        tag: Tag to work on (default: current tag)
        file: Path to the tasks JSON file
    """
    try:
        addr = parse_address(subtask_id)
        tag, new_addr = _edit(file, tag, lambda ws: task_ops.remove_subtask(ws, addr, convert=convert))
    except TagrError as e:
        return _error(e)
    return _ok({"tag": tag, "removed": str(addr), "converted_to": str(new_addr) if new_addr else None})


@mcp.tool()
def clear_subtasks(
    task_ids: str | None = None,
    all_tasks: bool = False,
    tag: str | None = None,
    file: str | None = None,
) -> str:
    """Remove all subtasks from the given tasks, or from every task.

    Args:
        task_ids: Comma-separated task IDs (e.g. "3,5")
        all_tasks: Clear subtasks from every task in the tag
        tag: Tag to work on (default: current tag)
        file: Path to the tasks JSON file
    """
    try:
        ids = None
        if not all_tasks:
            if not task_ids:
                raise InvalidFieldError("Pass task_ids or all_tasks=true", field="task_ids")
            ids = []
            for addr in parse_address_list(task_ids):
                if not isinstance(addr, TaskRef):
                    raise InvalidFieldError(f"{addr} is a subtask; pass task IDs", field="task_ids")
                ids.append(addr.id)
        tag, count = _edit(file, tag, lambda ws: task_ops.clear_subtasks(ws, ids))
    except TagrError as e:
        return _error(e)
    return _ok({"tag": tag, "cleared": count})


# ---------------------------------------------------------------------------
# Dependency tools
# ---------------------------------------------------------------------------


@mcp.tool()
def add_dependency(task_id: str, depends_on: str, tag: str | None = None, file: str | None = None) -> str:
    """Make a task or subtask depend on another one. Refuses edges that create cycles.

    Args:
        task_id: The dependent task ("5" or "5.2")
        depends_on: The prerequisite ("3" or "3.1")
        tag: Tag to work on (default: current tag)
        file: Path to the tasks JSON file
    """
    try:
        addr, dep = parse_address(task_id), parse_address(depends_on)
        tag, _ = _edit(file, tag, lambda ws: add_dependency_edge(ws, addr, dep))
    except TagrError as e:
        return _error(e)
    return _ok({"tag": tag, "id": str(addr), "depends_on": str(dep)})


@mcp.tool()
def remove_dependency(task_id: str, depends_on: str, tag: str | None = None, file: str | None = None) -> str:
    """Remove a dependency edge.

    Args:
        task_id: The dependent task ("5" or "5.2")
        depends_on: The prerequisite to drop ("3" or "3.1")
        tag: Tag to work on (default: current tag)
        file: Path to the tasks JSON file
    """
    try:
        addr, dep = parse_address(task_id), parse_address(depends_on)
        tag, _ = _edit(file, tag, lambda ws: remove_dependency_edge(ws, addr, dep))
    except TagrError as e:
        return _error(e)
    return _ok({"tag": tag, "id": str(addr), "removed": str(dep)})


@mcp.tool()
def validate_dependencies(tag: str | None = None, file: str | None = None) -> str:
    """Report missing, self, duplicate and circular dependencies without changing anything.

    Args:
        tag: Tag to check (default: current tag)
        file: Path to the tasks JSON file
    """
    try:
        store = _get_store(file)
        tag = store.resolve_tag(tag)
        report = validate_dependency_graph(store.load(tag))
    except TagrError as e:
        return _error(e)
    return _ok({"tag": tag, **report.to_dict()})


@mcp.tool()
def fix_dependencies(tag: str | None = None, file: str | None = None) -> str:
    """Remove invalid dependencies and break every cycle.

    Args:
        tag: Tag to repair (default: current tag)
        file: Path to the tasks JSON file
    """
    try:
        store = _get_store(file)
        tag = store.resolve_tag(tag)
        ws = store.load(tag)
        report = fix_dependency_graph(ws)
        if report.changed:
            store.save(tag, ws)
    except TagrError as e:
        return _error(e)
    return _ok({"tag": tag, **report.to_dict()})


# ---------------------------------------------------------------------------
# Moving
# ---------------------------------------------------------------------------


@mcp.tool()
def move_task(
    from_id: str,
    to_id: str | None = None,
    from_tag: str | None = None,
    to_tag: str | None = None,
    with_dependencies: bool = False,
    ignore_dependencies: bool = False,
    tag: str | None = None,
    file: str | None = None,
) -> str:
    """Move tasks within a tag (renumber, promote, demote) or to another tag.

    Within a tag pass from_id and to_id, e.g. "5" -> "7", "5.2" -> "7",
    "5" -> "7.1", or comma lists "5,6" -> "8,9" moved pairwise.

    Across tags pass from_id with from_tag and/or to_tag (either defaults to
    the current tag). Moved tasks keep their IDs and take their subtasks.

    Args:
        from_id: Source ID(s), comma-separated
        to_id: Destination ID(s) for a move within a tag
        from_tag: Source tag for a cross-tag move
        to_tag: Target tag for a cross-tag move
        with_dependencies: Move prerequisite tasks to the target tag too
        ignore_dependencies: Drop dependencies that would span both tags
        tag: Tag for a move within a tag (default: current tag)
        file: Path to the tasks JSON file
    """
    try:
        store = _get_store(file)
        sources = parse_address_list(from_id)

        if from_tag or to_tag:
            document = store.load_document()
            source = from_tag or store.current_tag()
            target = to_tag or store.current_tag()
            policy = MovePolicy.from_flags(with_dependencies, ignore_dependencies)
            result = move_between_tags(document, source, target, sources, policy)
            store.save_document(document)
            return _ok({"from_tag": source, "to_tag": target, **result.to_dict()})

        if not to_id:
            raise InvalidMoveError("to_id is required when moving within a tag")
        tag = store.resolve_tag(tag)
        ws = store.load(tag)
        batch = move_batch_within_tag(ws, sources, parse_address_list(to_id))
        store.save(tag, ws)
    except TagrError as e:
        return _error(e)
    return _ok({"tag": tag, **batch.to_dict()})


# ---------------------------------------------------------------------------
# Tag tools
# ---------------------------------------------------------------------------


@mcp.tool()
def list_tags(file: str | None = None) -> str:
    """List all tags with task counts; the current tag is flagged.

    Args:
        file: Path to the tasks JSON file
    """
    try:
        store = _get_store(file)
        rows = tag_ops.list_tags(store.load_document(), store.current_tag())
    except TagrError as e:
        return _error(e)
    return _ok({"tags": rows})


@mcp.tool()
def add_tag(
    name: str,
    description: str = "",
    copy_from: str | None = None,
    file: str | None = None,
) -> str:
    """Create a new tag, optionally copying the tasks of another tag.

    Args:
        name: Tag name (letters, digits, "-", "_", ".")
        description: Tag description
        copy_from: Existing tag whose tasks are copied into the new one
        file: Path to the tasks JSON file
    """
    try:
        store = _get_store(file)
        document = store.load_document()
        ws = tag_ops.add_tag(document, name, description=description, copy_from=copy_from)
        store.save_document(document)
    except TagrError as e:
        return _error(e)
    return _ok({"tag": name, "tasks": len(ws.tasks)})


@mcp.tool()
def copy_tag(source: str, target: str, description: str = "", file: str | None = None) -> str:
    """Copy a tag and all of its tasks to a new tag.

    Args:
        source: Existing tag
        target: New tag name
        description: Description for the new tag
        file: Path to the tasks JSON file
    """
    try:
        store = _get_store(file)
        document = store.load_document()
        ws = tag_ops.copy_tag(document, source, target, description=description)
        store.save_document(document)
    except TagrError as e:
        return _error(e)
    return _ok({"tag": target, "copied_from": source, "tasks": len(ws.tasks)})


@mcp.tool()
def rename_tag(old: str, new: str, file: str | None = None) -> str:
    """Rename a tag. The "main" tag cannot be renamed.

    Args:
        old: Current tag name
        new: New tag name
        file: Path to the tasks JSON file
    """
    try:
        store = _get_store(file)
        document = store.load_document()
        was_current = store.current_tag() == old
        tag_ops.rename_tag(document, old, new)
        store.save_document(document)
        if was_current:
            store.set_current_tag(new)
    except TagrError as e:
        return _error(e)
    return _ok({"old": old, "new": new})


@mcp.tool()
def delete_tag(name: str, file: str | None = None) -> str:
    """Delete a tag and all of its tasks. The "main" tag cannot be deleted.

    Args:
        name: Tag to delete
        file: Path to the tasks JSON file
    """
    try:
        store = _get_store(file)
        document = store.load_document()
        was_current = store.current_tag() == name
        ws = tag_ops.delete_tag(document, name)
        store.save_document(document)
        if was_current:
            store.set_current_tag(DEFAULT_TAG)
    except TagrError as e:
        return _error(e)
    return _ok({"deleted": name, "tasks": len(ws.tasks)})


@mcp.tool()
def use_tag(name: str, file: str | None = None) -> str:
    """Switch the current tag used by tools that are not given a tag.

    Args:
        name: Tag to switch to
        file: Path to the tasks JSON file
    """
    try:
        store = _get_store(file)
        tag_ops.require_tag(store.load_document(), name)
        store.set_current_tag(name)
    except TagrError as e:
        return _error(e)
    return _ok({"current": name})


def main():
    """Entry point for the MCP server."""
    configure_logging(load_settings().log_level)
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
