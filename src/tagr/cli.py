"""Typer CLI for tagr."""

from __future__ import annotations

import logging
from typing import Annotated, NoReturn, Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from tagr import tags as tag_ops
from tagr import tasks as task_ops
from tagr.addresses import Address, TaskRef, parse_address, parse_address_list
from tagr.config import DEFAULT_TAG, configure_logging, load_settings
from tagr.dependencies import add_dependency, fix_dependencies, remove_dependency, validate_dependencies
from tagr.errors import TagrError, suggestions_for
from tagr.graph import DependencyGraph
from tagr.models import Task, TaskStatus, Workspace
from tagr.moves import MovePolicy, move_batch_within_tag, move_between_tags
from tagr.persistence import Store

app = typer.Typer(
    name="tagr",
    help="Manual task tracking with tags, subtasks and dependency checks.",
    no_args_is_help=True,
)
console = Console()
logger = logging.getLogger(__name__)

FileOption = Annotated[Optional[str], typer.Option("--file", "-f", help="Path to the tasks JSON file")]
TagOption = Annotated[Optional[str], typer.Option("--tag", help="Tag to operate on (default: current tag)")]

STATUS_STYLES = {
    TaskStatus.DONE: "green",
    TaskStatus.IN_PROGRESS: "yellow",
    TaskStatus.REVIEW: "magenta",
    TaskStatus.DEFERRED: "dim",
    TaskStatus.CANCELLED: "dim strike",
}


@app.callback()
def main() -> None:
    configure_logging(load_settings().log_level)


def _get_store(file: str | None = None) -> Store:
    return Store.from_settings(load_settings(), file)


def _fail(e: TagrError) -> NoReturn:
    console.print(f"[red]Error ({e.code}): {e.message}[/red]")
    for c in e.details.get("conflicts", []):
        console.print(f"  [yellow]{c['dependent']} depends on {c['prerequisite']}[/yellow]")
    for tip in suggestions_for(e):
        console.print(f"  [dim]- {tip}[/dim]")
    raise typer.Exit(1)


def _ids(value: str) -> list[Address]:
    return parse_address_list(value)


def _load(store: Store, tag: str | None) -> tuple[str, Workspace]:
    tag = store.resolve_tag(tag)
    return tag, store.load(tag)


def _status_text(status: TaskStatus) -> str:
    style = STATUS_STYLES.get(status)
    return f"[{style}]{status.value}[/{style}]" if style else status.value


def _deps_text(deps: list[Address]) -> str:
    return ", ".join(str(d) for d in deps) or "-"


# ---------------------------------------------------------------------------
# Setup and reading
# ---------------------------------------------------------------------------


@app.command()
def init(file: FileOption = None) -> None:
    """Create the task file with an empty 'main' tag."""
    store = _get_store(file)
    if store.tasks_path.exists():
        console.print(f"[yellow]{store.tasks_path} already exists.[/yellow]")
        return
    store.save_document({DEFAULT_TAG: Workspace()})
    store.set_current_tag(DEFAULT_TAG)
    console.print(f"[green]Initialized {store.tasks_path} (tag '{DEFAULT_TAG}').[/green]")


@app.command("list")
def list_tasks(
    status_filter: Annotated[Optional[str], typer.Option("--status", "-s", help="Filter by status")] = None,
    with_subtasks: Annotated[bool, typer.Option("--with-subtasks", help="Show subtasks under each task")] = False,
    file: FileOption = None,
    tag: TagOption = None,
) -> None:
    """List tasks in a tag."""
    try:
        tag, ws = _load(_get_store(file), tag)
        sf = task_ops.parse_status(status_filter) if status_filter else None
    except TagrError as e:
        _fail(e)

    filtered = [t for t in ws.tasks if sf is None or t.status == sf]
    if not filtered:
        console.print(f"No tasks found in tag '{tag}'.")
        return

    table = Table(title=f"Tasks ({tag})")
    table.add_column("ID")
    table.add_column("Title")
    table.add_column("Status")
    table.add_column("Priority")
    table.add_column("Depends On")

    for t in filtered:
        table.add_row(str(t.id), t.title, _status_text(t.status), t.priority.value, _deps_text(t.dependencies))
        if with_subtasks:
            for s in t.subtasks:
                table.add_row(
                    f"  {t.id}.{s.id}",
                    f"  {s.title}",
                    _status_text(s.status),
                    s.priority.value,
                    _deps_text(s.dependencies),
                    style="dim" if s.status == TaskStatus.DONE else None,
                )

    console.print(table)
    if sf is not None:
        console.print(f"[dim]Showing {len(filtered)} of {len(ws.tasks)} tasks[/dim]")


@app.command()
def show(task_id: str, file: FileOption = None, tag: TagOption = None) -> None:
    """Show all details for a task or subtask."""
    try:
        tag, ws = _load(_get_store(file), tag)
        addr = parse_address(task_id)
        graph = DependencyGraph(ws)
        node = graph.node(addr)
    except TagrError as e:
        _fail(e)

    console.print(f"\n[bold]{addr}[/bold]  {node.title}  [dim]({tag})[/dim]")
    console.print(f"  Status:     {_status_text(node.status)}")
    console.print(f"  Priority:   {node.priority.value}")
    console.print(f"  Depends on: {_deps_text(node.dependencies)}")
    console.print(f"  Blocks:     {_deps_text(graph.dependents_of(addr))}")
    if node.description:
        console.print(f"  Description: {node.description}")
    if node.details:
        console.print("\n  [dim]── Details ──[/dim]")
        for line in node.details.splitlines():
            console.print(f"  {line}")
    if node.test_strategy:
        console.print("\n  [dim]── Test strategy ──[/dim]")
        for line in node.test_strategy.splitlines():
            console.print(f"  {line}")
    if node.spec_files:
        console.print("\n  [dim]── Spec files ──[/dim]")
        for s in node.spec_files:
            console.print(f"  {escape(f'[{s.type}]')} {s.title}: {s.file}")
    if isinstance(node, Task) and node.subtasks:
        console.print("\n  [dim]── Subtasks ──[/dim]")
        for s in node.subtasks:
            console.print(f"  {node.id}.{s.id}  {s.title}  {_status_text(s.status)}")
    if node.logs:
        console.print("\n  [dim]── Logs ──[/dim]")
        for line in node.logs.splitlines():
            console.print(f"  {line}")
    console.print()


@app.command("next")
def next_task(file: FileOption = None, tag: TagOption = None) -> None:
    """Show the next task to work on."""
    try:
        tag, ws = _load(_get_store(file), tag)
    except TagrError as e:
        _fail(e)

    item = task_ops.next_task(ws)
    if item is None:
        console.print(f"[green]Nothing to do in '{tag}': no eligible tasks.[/green]")
        return
    console.print("\n  [green]Next up:[/green]")
    console.print(f"  [bold]{item.address}[/bold]  {item.title}  ({item.priority.value})")
    console.print(f"  Status: {_status_text(item.status)}")
    if item.dependencies:
        console.print(f"  Depends on: {_deps_text(item.dependencies)}")
    if item.status != TaskStatus.IN_PROGRESS:
        console.print(f"\n  Run [bold]tagr set-status {item.address} in-progress[/bold] to begin.")
    console.print()


# ---------------------------------------------------------------------------
# Editing tasks
# ---------------------------------------------------------------------------


def _expand_depends(depends: list[str] | None) -> list[Address]:
    deps: list[Address] = []
    for d in depends or []:
        deps.extend(parse_address_list(d))
    return deps


@app.command()
def add(
    title: str,
    description: Annotated[str, typer.Option("--description", "-d", help="Short description")] = "",
    details: Annotated[str, typer.Option(help="Implementation details")] = "",
    test_strategy: Annotated[str, typer.Option("--test-strategy", help="How the task will be verified")] = "",
    priority: Annotated[str, typer.Option("--priority", "-p", help="high, medium or low")] = "medium",
    depends: Annotated[Optional[list[str]], typer.Option("--depends", help="Task IDs this depends on")] = None,
    file: FileOption = None,
    tag: TagOption = None,
) -> None:
    """Add a new task.

    Dependencies can be given individually (--depends 1 --depends 2.1)
    or comma-separated (--depends 1,2.1).
    """
    store = _get_store(file)
    try:
        tag, ws = _load(store, tag)
        task = task_ops.add_task(
            ws,
            title,
            description=description,
            details=details,
            test_strategy=test_strategy,
            priority=task_ops.parse_priority(priority),
            dependencies=_expand_depends(depends),
        )
    except TagrError as e:
        _fail(e)
    store.save(tag, ws)
    console.print(f"[green]Added '{task.title}' as task {task.id} in '{tag}'[/green]")


@app.command("add-subtask")
def add_subtask(
    parent_id: int,
    title: str,
    description: Annotated[str, typer.Option("--description", "-d", help="Short description")] = "",
    details: Annotated[str, typer.Option(help="Implementation details")] = "",
    test_strategy: Annotated[str, typer.Option("--test-strategy", help="How the subtask will be verified")] = "",
    priority: Annotated[str, typer.Option("--priority", "-p", help="high, medium or low")] = "medium",
    depends: Annotated[Optional[list[str]], typer.Option("--depends", help="Task or subtask IDs this depends on")] = None,
    file: FileOption = None,
    tag: TagOption = None,
) -> None:
    """Add a subtask to an existing task."""
    store = _get_store(file)
    try:
        tag, ws = _load(store, tag)
        addr = task_ops.add_subtask(
            ws,
            parent_id,
            title,
            description=description,
            details=details,
            test_strategy=test_strategy,
            priority=task_ops.parse_priority(priority),
            dependencies=_expand_depends(depends),
        )
    except TagrError as e:
        _fail(e)
    store.save(tag, ws)
    console.print(f"[green]Added subtask {addr}[/green]")


@app.command()
def update(
    task_id: str,
    title: Annotated[Optional[str], typer.Option(help="New title")] = None,
    description: Annotated[Optional[str], typer.Option(help="New description")] = None,
    details: Annotated[Optional[str], typer.Option(help="New implementation details")] = None,
    test_strategy: Annotated[Optional[str], typer.Option("--test-strategy", help="New test strategy")] = None,
    priority: Annotated[Optional[str], typer.Option("--priority", "-p", help="high, medium or low")] = None,
    file: FileOption = None,
    tag: TagOption = None,
) -> None:
    """Update fields of a task or subtask."""
    store = _get_store(file)
    try:
        tag, ws = _load(store, tag)
        addr = parse_address(task_id)
        task_ops.update_task(
            ws,
            addr,
            title=title,
            description=description,
            details=details,
            test_strategy=test_strategy,
            priority=task_ops.parse_priority(priority) if priority else None,
        )
    except TagrError as e:
        _fail(e)
    store.save(tag, ws)
    console.print(f"[green]Updated {addr}.[/green]")


@app.command()
def log(task_id: str, message: str, file: FileOption = None, tag: TagOption = None) -> None:
    """Append a timestamped note to a task's log."""
    store = _get_store(file)
    try:
        tag, ws = _load(store, tag)
        addr = parse_address(task_id)
        task_ops.append_log(ws, addr, message)
    except TagrError as e:
        _fail(e)
    store.save(tag, ws)
    console.print(f"[green]Logged note on {addr}.[/green]")


@app.command("set-status")
def set_status(
    task_ids: Annotated[str, typer.Argument(help="Task or subtask IDs, comma-separated")],
    status: Annotated[str, typer.Argument(help="pending, in-progress, done, review, deferred, cancelled")],
    file: FileOption = None,
    tag: TagOption = None,
) -> None:
    """Set the status of one or more tasks."""
    store = _get_store(file)
    try:
        new_status = task_ops.parse_status(status)
        tag, ws = _load(store, tag)
        changes = task_ops.set_status(ws, _ids(task_ids), new_status)
    except TagrError as e:
        _fail(e)
    store.save(tag, ws)
    for addr, old in changes:
        console.print(f"[green]Set {addr} from {old.value} to {new_status.value}.[/green]")


@app.command()
def remove(
    task_ids: Annotated[str, typer.Argument(help="Task or subtask IDs, comma-separated")],
    file: FileOption = None,
    tag: TagOption = None,
) -> None:
    """Delete tasks or subtasks and remove them from every dependency list."""
    store = _get_store(file)
    try:
        tag, ws = _load(store, tag)
        removed = task_ops.remove_task(ws, _ids(task_ids))
    except TagrError as e:
        _fail(e)
    store.save(tag, ws)
    console.print(f"[green]Removed {', '.join(str(a) for a in removed)}.[/green]")


@app.command("remove-subtask")
def remove_subtask(
    subtask_id: str,
    convert: Annotated[bool, typer.Option("--convert", help="Promote the subtask to a standalone task")] = False,
    file: FileOption = None,
    tag: TagOption = None,
) -> None:
    """Remove a subtask, or promote it to a task with --convert."""
    store = _get_store(file)
    try:
        tag, ws = _load(store, tag)
        addr = parse_address(subtask_id)
        new_addr = task_ops.remove_subtask(ws, addr, convert=convert)
    except TagrError as e:
        _fail(e)
    store.save(tag, ws)
    if new_addr is not None:
        console.print(f"[green]Converted subtask {addr} to task {new_addr}.[/green]")
    else:
        console.print(f"[green]Removed subtask {addr}.[/green]")


@app.command("clear-subtasks")
def clear_subtasks(
    task_ids: Annotated[Optional[str], typer.Option("--id", help="Task IDs, comma-separated")] = None,
    all_tasks: Annotated[bool, typer.Option("--all", help="Clear subtasks from every task")] = False,
    file: FileOption = None,
    tag: TagOption = None,
) -> None:
    """Remove all subtasks from the given tasks."""
    if not task_ids and not all_tasks:
        console.print("[red]Pass --id or --all.[/red]")
        raise typer.Exit(1)
    store = _get_store(file)
    try:
        tag, ws = _load(store, tag)
        ids = None
        if task_ids and not all_tasks:
            ids = []
            for addr in _ids(task_ids):
                if not isinstance(addr, TaskRef):
                    console.print(f"[red]{addr} is a subtask; pass task IDs.[/red]")
                    raise typer.Exit(1)
                ids.append(addr.id)
        count = task_ops.clear_subtasks(ws, ids)
    except TagrError as e:
        _fail(e)
    store.save(tag, ws)
    console.print(f"[green]Cleared {count} subtask(s).[/green]")


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------


@app.command("add-dependency")
def add_dependency_cmd(
    task_id: str,
    depends_on: str,
    file: FileOption = None,
    tag: TagOption = None,
) -> None:
    """Make TASK_ID depend on DEPENDS_ON."""
    store = _get_store(file)
    try:
        tag, ws = _load(store, tag)
        addr, dep = parse_address(task_id), parse_address(depends_on)
        add_dependency(ws, addr, dep)
    except TagrError as e:
        _fail(e)
    store.save(tag, ws)
    console.print(f"[green]{addr} now depends on {dep}.[/green]")


@app.command("remove-dependency")
def remove_dependency_cmd(
    task_id: str,
    depends_on: str,
    file: FileOption = None,
    tag: TagOption = None,
) -> None:
    """Remove the dependency of TASK_ID on DEPENDS_ON."""
    store = _get_store(file)
    try:
        tag, ws = _load(store, tag)
        addr, dep = parse_address(task_id), parse_address(depends_on)
        remove_dependency(ws, addr, dep)
    except TagrError as e:
        _fail(e)
    store.save(tag, ws)
    console.print(f"[green]{addr} no longer depends on {dep}.[/green]")


@app.command("validate-dependencies")
def validate_dependencies_cmd(file: FileOption = None, tag: TagOption = None) -> None:
    """Check every dependency in a tag without changing anything."""
    try:
        tag, ws = _load(_get_store(file), tag)
        report = validate_dependencies(ws)
    except TagrError as e:
        _fail(e)

    if report.is_valid:
        console.print(f"[green]All dependencies in '{tag}' are valid.[/green]")
        return

    table = Table(title=f"Dependency issues ({tag})")
    table.add_column("Task")
    table.add_column("Issue")
    table.add_column("Detail")
    for issue in report.issues:
        table.add_row(str(issue.address), issue.code.value, issue.detail, style="red")
    console.print(table)
    console.print(f"[yellow]{len(report.issues)} issue(s). Run 'tagr fix-dependencies' to repair.[/yellow]")
    raise typer.Exit(1)


@app.command("fix-dependencies")
def fix_dependencies_cmd(file: FileOption = None, tag: TagOption = None) -> None:
    """Remove invalid dependencies (missing, self, duplicate, circular)."""
    store = _get_store(file)
    try:
        tag, ws = _load(store, tag)
        report = fix_dependencies(ws)
    except TagrError as e:
        _fail(e)

    if not report.changed:
        console.print(f"[green]No dependency problems found in '{tag}'.[/green]")
        return

    store.save(tag, ws)
    for change in report.removed:
        console.print(f"  Removed {change.address} -> {change.edge}  [dim]({change.reason.value})[/dim]")
    for change in report.collapsed:
        console.print(f"  Collapsed duplicate {change.address} -> {change.edge}")
    console.print(
        f"[green]Fixed '{tag}': {len(report.removed)} removed, {len(report.collapsed)} collapsed.[/green]"
    )


# ---------------------------------------------------------------------------
# Moving
# ---------------------------------------------------------------------------


@app.command()
def move(
    from_ids: Annotated[str, typer.Option("--from", help="Task/subtask IDs to move, comma-separated")],
    to_ids: Annotated[Optional[str], typer.Option("--to", help="Destination IDs (within a tag)")] = None,
    from_tag: Annotated[Optional[str], typer.Option("--from-tag", help="Source tag for a cross-tag move")] = None,
    to_tag: Annotated[Optional[str], typer.Option("--to-tag", help="Target tag for a cross-tag move")] = None,
    with_dependencies: Annotated[bool, typer.Option("--with-dependencies", help="Move prerequisite tasks along")] = False,
    ignore_dependencies: Annotated[bool, typer.Option("--ignore-dependencies", help="Break cross-tag dependencies")] = False,
    file: FileOption = None,
    tag: TagOption = None,
) -> None:
    """Renumber tasks within a tag, or move them to another tag.

    Within a tag: --from 5 --to 7, --from 5.2 --to 7 (promote), --from 5 --to 7.1
    (demote), or pairwise lists --from 5,6 --to 8,9.

    Across tags: --from 5,6 --from-tag main --to-tag feature. IDs are kept.
    """
    store = _get_store(file)

    if from_tag or to_tag:
        if to_ids:
            logger.warning("--to is ignored for cross-tag moves; tasks keep their IDs")
        try:
            document = store.load_document()
            source = from_tag or store.current_tag()
            target = to_tag or store.current_tag()
            policy = MovePolicy.from_flags(with_dependencies, ignore_dependencies)
            result = move_between_tags(document, source, target, _ids(from_ids), policy)
        except TagrError as e:
            _fail(e)
        store.save_document(document)
        console.print(
            f"[green]Moved {', '.join(str(a) for a in result.moved)} from '{source}' to '{target}'.[/green]"
        )
        for tip in result.tips:
            console.print(f"  [yellow]{tip}[/yellow]")
        return

    if not to_ids:
        console.print("[red]--to is required when moving within a tag.[/red]")
        raise typer.Exit(1)

    try:
        tag, ws = _load(store, tag)
        result = move_batch_within_tag(ws, _ids(from_ids), _ids(to_ids))
    except TagrError as e:
        _fail(e)
    store.save(tag, ws)
    for record in result.moves:
        console.print(f"[green]Moved {record.source} to {record.destination}[/green]")
        if record.rewritten:
            console.print(f"  [dim]Updated {record.rewritten} dependency reference(s)[/dim]")
    for addr in result.skipped:
        console.print(f"  [dim]Skipped {addr} (same source and destination)[/dim]")


# ---------------------------------------------------------------------------
# Tags
# ---------------------------------------------------------------------------


@app.command("tags")
def list_tags_cmd(file: FileOption = None) -> None:
    """List all tags with task counts."""
    store = _get_store(file)
    try:
        rows = tag_ops.list_tags(store.load_document(), store.current_tag())
    except TagrError as e:
        _fail(e)

    table = Table(title="Tags")
    table.add_column("Tag")
    table.add_column("Tasks")
    table.add_column("Done")
    table.add_column("Subtasks")
    table.add_column("Description")
    for row in rows:
        name = f"* {row['name']}" if row["current"] else f"  {row['name']}"
        table.add_row(
            name,
            str(row["tasks"]),
            str(row["completed"]),
            str(row["subtasks"]),
            row["description"] or "-",
            style="bold" if row["current"] else None,
        )
    console.print(table)


@app.command("add-tag")
def add_tag_cmd(
    name: str,
    description: Annotated[str, typer.Option("--description", "-d", help="Tag description")] = "",
    copy_from: Annotated[Optional[str], typer.Option("--copy-from", help="Copy tasks from this tag")] = None,
    copy_from_current: Annotated[bool, typer.Option("--copy-from-current", help="Copy tasks from the current tag")] = False,
    file: FileOption = None,
) -> None:
    """Create a new tag."""
    store = _get_store(file)
    try:
        document = store.load_document()
        source = copy_from or (store.current_tag() if copy_from_current else None)
        ws = tag_ops.add_tag(document, name, description=description, copy_from=source)
    except TagrError as e:
        _fail(e)
    store.save_document(document)
    console.print(f"[green]Created tag '{name}' with {len(ws.tasks)} task(s).[/green]")


@app.command("copy-tag")
def copy_tag_cmd(
    source: str,
    target: str,
    description: Annotated[str, typer.Option("--description", "-d", help="Description for the new tag")] = "",
    file: FileOption = None,
) -> None:
    """Copy a tag and all its tasks to a new tag."""
    store = _get_store(file)
    try:
        document = store.load_document()
        ws = tag_ops.copy_tag(document, source, target, description=description)
    except TagrError as e:
        _fail(e)
    store.save_document(document)
    console.print(f"[green]Copied '{source}' to '{target}' ({len(ws.tasks)} task(s)).[/green]")


@app.command("rename-tag")
def rename_tag_cmd(old: str, new: str, file: FileOption = None) -> None:
    """Rename a tag."""
    store = _get_store(file)
    try:
        document = store.load_document()
        was_current = store.current_tag() == old
        tag_ops.rename_tag(document, old, new)
    except TagrError as e:
        _fail(e)
    store.save_document(document)
    if was_current:
        store.set_current_tag(new)
    console.print(f"[green]Renamed '{old}' to '{new}'.[/green]")


@app.command("delete-tag")
def delete_tag_cmd(name: str, file: FileOption = None) -> None:
    """Delete a tag and all of its tasks."""
    store = _get_store(file)
    try:
        document = store.load_document()
        was_current = store.current_tag() == name
        ws = tag_ops.delete_tag(document, name)
    except TagrError as e:
        _fail(e)
    store.save_document(document)
    if was_current:
        store.set_current_tag(DEFAULT_TAG)
    console.print(f"[green]Deleted tag '{name}' ({len(ws.tasks)} task(s)).[/green]")


@app.command("use-tag")
def use_tag_cmd(name: str, file: FileOption = None) -> None:
    """Switch the current tag."""
    store = _get_store(file)
    try:
        tag_ops.require_tag(store.load_document(), name)
    except TagrError as e:
        _fail(e)
    store.set_current_tag(name)
    console.print(f"[green]Now using tag '{name}'.[/green]")
