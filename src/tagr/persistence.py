"""JSON file persistence for tagged task documents."""

from __future__ import annotations

import json
import logging
from pathlib import Path

from tagr.config import DEFAULT_STATE_FILE, DEFAULT_TAG, DEFAULT_TASKS_FILE, Settings
from tagr.errors import StoreError, TagNotFoundError, TagrError
from tagr.models import TagMetadata, Workspace

logger = logging.getLogger(__name__)


def migrate_document(raw: object) -> tuple[dict, bool]:
    """Return (tagged document, migrated?) for a raw JSON value.

    Legacy files hold a bare ``{"tasks": [...]}`` object or a bare task list;
    both become the ``main`` tag.
    """
    if isinstance(raw, list):
        return {DEFAULT_TAG: {"tasks": raw, "metadata": TagMetadata(description="Migrated tasks").to_dict()}}, True
    if isinstance(raw, dict) and isinstance(raw.get("tasks"), list):
        metadata = raw.get("metadata") or TagMetadata(description="Migrated tasks").to_dict()
        return {DEFAULT_TAG: {"tasks": raw["tasks"], "metadata": metadata}}, True
    if isinstance(raw, dict):
        return raw, False
    raise StoreError("Task file must contain a JSON object")


class Store:
    """Reads and writes the tagged task document (JSON file) and the current-tag state."""

    def __init__(
        self,
        tasks_path: str | Path = DEFAULT_TASKS_FILE,
        state_path: str | Path | None = None,
    ):
        self.tasks_path = Path(tasks_path)
        if state_path is None:
            state_path = self.tasks_path.parent / Path(DEFAULT_STATE_FILE).name
        self.state_path = Path(state_path)

    @classmethod
    def from_settings(cls, settings: Settings, tasks_path: str | Path | None = None) -> Store:
        if tasks_path is not None:
            return cls(tasks_path)
        return cls(settings.tasks_file, settings.state_file)

    # ------------------------------------------------------------------
    # Document
    # ------------------------------------------------------------------

    def load_document(self) -> dict[str, Workspace]:
        """Return {tag: Workspace}; a missing file is an empty ``main`` tag."""
        if not self.tasks_path.exists():
            return {DEFAULT_TAG: Workspace()}

        try:
            raw = json.loads(self.tasks_path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise StoreError(f"Invalid JSON in {self.tasks_path}: {e}", path=str(self.tasks_path)) from e

        tagged, migrated = migrate_document(raw)
        if migrated:
            logger.info("Migrated legacy task file %s to tagged format", self.tasks_path)

        document: dict[str, Workspace] = {}
        for tag, data in tagged.items():
            if not isinstance(data, dict):
                raise StoreError(f"Tag '{tag}' in {self.tasks_path} is not an object", path=str(self.tasks_path))
            try:
                document[tag] = Workspace.from_dict(data)
            except TagrError as e:
                raise StoreError(f"Tag '{tag}' in {self.tasks_path}: {e.message}", path=str(self.tasks_path)) from e
            except (KeyError, TypeError, ValueError) as e:
                raise StoreError(f"Tag '{tag}' in {self.tasks_path}: bad task data ({e})", path=str(self.tasks_path)) from e
        return document

    def save_document(self, document: dict[str, Workspace]) -> None:
        """Rewrite the whole document."""
        raw = {tag: ws.to_dict() for tag, ws in document.items()}
        self.tasks_path.parent.mkdir(parents=True, exist_ok=True)
        self.tasks_path.write_text(json.dumps(raw, indent=2, ensure_ascii=False) + "\n", encoding="utf-8")
        logger.debug("Wrote %d tags to %s", len(raw), self.tasks_path)

    def load(self, tag: str | None = None) -> Workspace:
        tag = self.resolve_tag(tag)
        document = self.load_document()
        if tag not in document:
            raise TagNotFoundError(f"Tag '{tag}' does not exist", tag=tag)
        return document[tag]

    def save(self, tag: str, ws: Workspace) -> None:
        document = self.load_document()
        document[tag] = ws
        self.save_document(document)

    # ------------------------------------------------------------------
    # Current tag
    # ------------------------------------------------------------------

    def _read_state(self) -> dict:
        if not self.state_path.exists():
            return {}
        try:
            state = json.loads(self.state_path.read_text(encoding="utf-8"))
        except json.JSONDecodeError:
            logger.warning("Ignoring unreadable state file %s", self.state_path)
            return {}
        return state if isinstance(state, dict) else {}

    def current_tag(self) -> str:
        tag = self._read_state().get("currentTag") or DEFAULT_TAG
        if tag != DEFAULT_TAG and tag not in self.load_document():
            logger.warning("Current tag %s no longer exists; using %s", tag, DEFAULT_TAG)
            return DEFAULT_TAG
        return tag

    def set_current_tag(self, tag: str) -> None:
        state = self._read_state()
        state["currentTag"] = tag
        self.state_path.parent.mkdir(parents=True, exist_ok=True)
        self.state_path.write_text(json.dumps(state, indent=2) + "\n", encoding="utf-8")

    def resolve_tag(self, tag: str | None) -> str:
        """An explicit tag wins; otherwise the current tag from the state file."""
        return tag if tag else self.current_tag()
