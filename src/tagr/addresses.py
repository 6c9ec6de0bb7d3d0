"""Task and subtask addresses.

An address is either ``TaskRef(12)`` (wire form ``12`` / ``"12"``) or
``SubtaskRef(12, 3)`` (wire form ``"12.3"``). Identifiers are parsed once at
the boundary; nothing downstream inspects raw ids.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Union

from tagr.errors import InvalidAddressError, TaskNotFoundError

if TYPE_CHECKING:
    from tagr.models import Subtask, Task, Workspace


@dataclass(frozen=True)
class TaskRef:
    id: int

    def __str__(self) -> str:
        return str(self.id)


@dataclass(frozen=True)
class SubtaskRef:
    parent_id: int
    sub_id: int

    @property
    def parent(self) -> TaskRef:
        return TaskRef(self.parent_id)

    def __str__(self) -> str:
        return f"{self.parent_id}.{self.sub_id}"


Address = Union[TaskRef, SubtaskRef]


def _positive_int(segment: str, raw: object) -> int:
    segment = segment.strip()
    if not (segment.isascii() and segment.isdigit()):
        raise InvalidAddressError(f"Invalid task ID '{raw}'", address=str(raw))
    value = int(segment)
    if value <= 0:
        raise InvalidAddressError(f"Task IDs must be positive, got '{raw}'", address=str(raw))
    return value


def parse_address(value: str | int) -> Address:
    """Parse ``"12"`` / ``12`` into a TaskRef and ``"12.3"`` into a SubtaskRef."""
    if isinstance(value, bool):
        raise InvalidAddressError(f"Invalid task ID '{value}'", address=str(value))
    if isinstance(value, int):
        if value <= 0:
            raise InvalidAddressError(f"Task IDs must be positive, got '{value}'", address=str(value))
        return TaskRef(value)
    if not isinstance(value, str):
        raise InvalidAddressError(f"Invalid task ID '{value}'", address=str(value))

    parts = value.strip().split(".")
    if len(parts) == 1:
        return TaskRef(_positive_int(parts[0], value))
    if len(parts) == 2:
        return SubtaskRef(_positive_int(parts[0], value), _positive_int(parts[1], value))
    raise InvalidAddressError(f"Invalid task ID '{value}'", address=value)


def parse_address_list(value: str) -> list[Address]:
    """Parse a comma-separated list such as ``"5,6.1, 7"``."""
    parts = [p.strip() for p in value.split(",") if p.strip()]
    if not parts:
        raise InvalidAddressError("No task IDs given", address=value)
    return [parse_address(p) for p in parts]


def format_address(addr: Address) -> str:
    return str(addr)


def address_key(addr: Address) -> tuple[int, int]:
    """Total order on addresses: a task sorts just before its own subtasks."""
    if isinstance(addr, SubtaskRef):
        return (addr.parent_id, addr.sub_id)
    return (addr.id, 0)


def owning_task(addr: Address) -> TaskRef:
    return addr.parent if isinstance(addr, SubtaskRef) else addr


def resolve_address(ws: Workspace, addr: Address) -> Task | Subtask:
    """Return the task or subtask at *addr*, raising TaskNotFoundError."""
    task = ws.find_task(owning_task(addr).id)
    if task is None:
        raise TaskNotFoundError(f"Task {owning_task(addr)} not found", address=str(addr))
    if isinstance(addr, TaskRef):
        return task
    sub = task.find_subtask(addr.sub_id)
    if sub is None:
        raise TaskNotFoundError(f"Subtask {addr} not found", address=str(addr))
    return sub


# ---------------------------------------------------------------------------
# Dependency wire form
# ---------------------------------------------------------------------------


def dependency_from_wire(value: object, parent_id: int | None = None) -> Address:
    """Decode one entry of a ``dependencies`` list.

    Inside a subtask (``parent_id`` given) a bare integer is the short form of
    a sibling subtask; a task is referenced there by its string id.
    """
    if isinstance(value, int) and not isinstance(value, bool):
        if parent_id is not None:
            return SubtaskRef(parent_id, _positive_int(str(value), value))
        return parse_address(value)
    if isinstance(value, str):
        return parse_address(value)
    raise InvalidAddressError(f"Invalid dependency '{value}'", address=str(value))


def dependency_to_wire(addr: Address, parent_id: int | None = None) -> int | str:
    if parent_id is None:
        return addr.id if isinstance(addr, TaskRef) else str(addr)
    if isinstance(addr, SubtaskRef) and addr.parent_id == parent_id:
        return addr.sub_id
    return str(addr)
