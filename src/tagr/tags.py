"""Tag (workspace) management on a loaded document."""

from __future__ import annotations

import logging
import re

from tagr.config import DEFAULT_TAG
from tagr.errors import InvalidTagNameError, ProtectedTagError, TagExistsError, TagNotFoundError
from tagr.models import TagMetadata, TaskStatus, Workspace

logger = logging.getLogger(__name__)

TAG_NAME_RE = re.compile(r"^[A-Za-z0-9_.-]+$")


def validate_tag_name(name: str) -> str:
    if not name or not TAG_NAME_RE.match(name):
        raise InvalidTagNameError(
            f"Invalid tag name '{name}': use letters, digits, '-', '_' or '.'",
            tag=name,
        )
    return name


def require_tag(document: dict[str, Workspace], name: str) -> Workspace:
    try:
        return document[name]
    except KeyError:
        raise TagNotFoundError(f"Tag '{name}' does not exist", tag=name) from None


def list_tags(document: dict[str, Workspace], current: str | None = None) -> list[dict]:
    rows = []
    for name, ws in document.items():
        rows.append({
            "name": name,
            "tasks": len(ws.tasks),
            "completed": sum(1 for t in ws.tasks if t.status == TaskStatus.DONE),
            "subtasks": sum(len(t.subtasks) for t in ws.tasks),
            "current": name == current,
            "created": ws.metadata.created,
            "updated": ws.metadata.updated,
            "description": ws.metadata.description,
        })
    return rows


def add_tag(
    document: dict[str, Workspace],
    name: str,
    description: str = "",
    copy_from: str | None = None,
) -> Workspace:
    validate_tag_name(name)
    if name in document:
        raise TagExistsError(f"Tag '{name}' already exists", tag=name)
    if copy_from is not None:
        ws = require_tag(document, copy_from).copy()
        ws.metadata = TagMetadata(description=description or f"Copy of '{copy_from}'")
    else:
        ws = Workspace(metadata=TagMetadata(description=description))
    document[name] = ws
    logger.info("Created tag %s with %d tasks", name, len(ws.tasks))
    return ws


def copy_tag(document: dict[str, Workspace], source: str, target: str, description: str = "") -> Workspace:
    return add_tag(document, target, description=description, copy_from=source)


def rename_tag(document: dict[str, Workspace], old: str, new: str) -> None:
    if old == DEFAULT_TAG:
        raise ProtectedTagError(f"The '{DEFAULT_TAG}' tag cannot be renamed", tag=old)
    require_tag(document, old)
    validate_tag_name(new)
    if new in document:
        raise TagExistsError(f"Tag '{new}' already exists", tag=new)
    # rebuild to keep the tag's position in the document
    renamed = {(new if k == old else k): v for k, v in document.items()}
    document.clear()
    document.update(renamed)
    document[new].touch()
    logger.info("Renamed tag %s to %s", old, new)


def delete_tag(document: dict[str, Workspace], name: str) -> Workspace:
    if name == DEFAULT_TAG:
        raise ProtectedTagError(f"The '{DEFAULT_TAG}' tag cannot be deleted", tag=name)
    ws = require_tag(document, name)
    del document[name]
    logger.info("Deleted tag %s (%d tasks)", name, len(ws.tasks))
    return ws
