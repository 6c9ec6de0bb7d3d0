"""Task, subtask and workspace models."""

from __future__ import annotations

import copy
import enum
from dataclasses import dataclass, field
from datetime import datetime, timezone

from tagr.addresses import (
    Address,
    SubtaskRef,
    TaskRef,
    dependency_from_wire,
    dependency_to_wire,
)


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


class TaskStatus(enum.StrEnum):
    PENDING = "pending"
    IN_PROGRESS = "in-progress"
    DONE = "done"
    REVIEW = "review"
    DEFERRED = "deferred"
    CANCELLED = "cancelled"


class TaskPriority(enum.StrEnum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        return {TaskPriority.HIGH: 3, TaskPriority.MEDIUM: 2, TaskPriority.LOW: 1}[self]


@dataclass
class SpecFile:
    """A specification document linked to a task."""

    type: str
    title: str
    file: str

    def to_dict(self) -> dict:
        return {"type": self.type, "title": self.title, "file": self.file}

    @classmethod
    def from_dict(cls, d: dict) -> SpecFile:
        return cls(type=d.get("type", ""), title=d.get("title", ""), file=d.get("file", ""))


@dataclass
class Subtask:
    """A unit of work nested under a task; its id is unique only within the parent."""

    id: int
    title: str
    description: str = ""
    details: str = ""
    test_strategy: str = ""
    status: TaskStatus = TaskStatus.PENDING
    priority: TaskPriority = TaskPriority.MEDIUM
    dependencies: list[Address] = field(default_factory=list)
    spec_files: list[SpecFile] = field(default_factory=list)
    logs: str = ""

    def to_dict(self, parent_id: int) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "details": self.details,
            "testStrategy": self.test_strategy,
            "status": self.status.value,
            "priority": self.priority.value,
            "dependencies": [dependency_to_wire(d, parent_id) for d in self.dependencies],
            "spec_files": [s.to_dict() for s in self.spec_files],
            "logs": self.logs,
        }

    @classmethod
    def from_dict(cls, d: dict, parent_id: int) -> Subtask:
        return cls(
            id=int(d["id"]),
            title=d.get("title", ""),
            description=d.get("description", ""),
            details=d.get("details", ""),
            test_strategy=d.get("testStrategy", ""),
            status=TaskStatus(d.get("status", "pending")),
            priority=TaskPriority(d.get("priority") or "medium"),
            dependencies=[dependency_from_wire(v, parent_id) for v in d.get("dependencies") or []],
            spec_files=[SpecFile.from_dict(s) for s in d.get("spec_files") or []],
            logs=d.get("logs", ""),
        )


@dataclass
class Task:
    """A top-level task inside a workspace."""

    id: int
    title: str
    description: str = ""
    details: str = ""
    test_strategy: str = ""
    status: TaskStatus = TaskStatus.PENDING
    priority: TaskPriority = TaskPriority.MEDIUM
    dependencies: list[Address] = field(default_factory=list)
    subtasks: list[Subtask] = field(default_factory=list)
    spec_files: list[SpecFile] = field(default_factory=list)
    logs: str = ""

    def find_subtask(self, sub_id: int) -> Subtask | None:
        for sub in self.subtasks:
            if sub.id == sub_id:
                return sub
        return None

    def next_subtask_id(self) -> int:
        return max((s.id for s in self.subtasks), default=0) + 1

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "details": self.details,
            "testStrategy": self.test_strategy,
            "status": self.status.value,
            "priority": self.priority.value,
            "dependencies": [dependency_to_wire(d) for d in self.dependencies],
            "subtasks": [s.to_dict(self.id) for s in self.subtasks],
            "spec_files": [s.to_dict() for s in self.spec_files],
            "logs": self.logs,
        }

    @classmethod
    def from_dict(cls, d: dict) -> Task:
        task_id = int(d["id"])
        return cls(
            id=task_id,
            title=d.get("title", ""),
            description=d.get("description", ""),
            details=d.get("details", ""),
            test_strategy=d.get("testStrategy", ""),
            status=TaskStatus(d.get("status", "pending")),
            priority=TaskPriority(d.get("priority") or "medium"),
            dependencies=[dependency_from_wire(v) for v in d.get("dependencies") or []],
            subtasks=[Subtask.from_dict(s, task_id) for s in d.get("subtasks") or []],
            spec_files=[SpecFile.from_dict(s) for s in d.get("spec_files") or []],
            logs=d.get("logs", ""),
        )


@dataclass
class TagMetadata:
    created: str = field(default_factory=now_iso)
    updated: str = field(default_factory=now_iso)
    description: str = ""

    def to_dict(self) -> dict:
        return {"created": self.created, "updated": self.updated, "description": self.description}

    @classmethod
    def from_dict(cls, d: dict) -> TagMetadata:
        stamp = now_iso()
        return cls(
            created=d.get("created", stamp),
            updated=d.get("updated", stamp),
            description=d.get("description", ""),
        )


@dataclass
class Workspace:
    """All tasks belonging to one tag."""

    tasks: list[Task] = field(default_factory=list)
    metadata: TagMetadata = field(default_factory=TagMetadata)

    def find_task(self, task_id: int) -> Task | None:
        for task in self.tasks:
            if task.id == task_id:
                return task
        return None

    def task_ids(self) -> set[int]:
        return {t.id for t in self.tasks}

    def next_task_id(self) -> int:
        return max((t.id for t in self.tasks), default=0) + 1

    def addresses(self) -> list[Address]:
        """Every task and subtask address, in document order."""
        result: list[Address] = []
        for task in self.tasks:
            result.append(TaskRef(task.id))
            result.extend(SubtaskRef(task.id, s.id) for s in task.subtasks)
        return result

    def touch(self) -> None:
        self.metadata.updated = now_iso()

    def copy(self) -> Workspace:
        return copy.deepcopy(self)

    def to_dict(self) -> dict:
        return {
            "tasks": [t.to_dict() for t in self.tasks],
            "metadata": self.metadata.to_dict(),
        }

    @classmethod
    def from_dict(cls, d: dict) -> Workspace:
        return cls(
            tasks=[Task.from_dict(t) for t in d.get("tasks") or []],
            metadata=TagMetadata.from_dict(d.get("metadata") or {}),
        )
