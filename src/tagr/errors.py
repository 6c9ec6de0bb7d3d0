"""Error taxonomy shared by the core and its CLI/MCP adapters.

Every error carries a stable ``code`` string. Adapters use the code verbatim
(CLI messages, MCP JSON payloads), so codes must never be renamed.
"""

from __future__ import annotations

from typing import Any


class TagrError(Exception):
    """Base class for every error raised by tagr."""

    code = "TAGR_ERROR"

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        d = {"code": self.code, "message": self.message}
        d.update(self.details)
        return d


# ---------------------------------------------------------------------------
# Input errors
# ---------------------------------------------------------------------------


class InvalidAddressError(TagrError):
    code = "INVALID_ADDRESS"


class TaskNotFoundError(TagrError):
    code = "TASK_NOT_FOUND"


class InvalidFieldError(TagrError):
    code = "INVALID_FIELD"


class DependencyError(TagrError):
    """Rejected add/remove of a single dependency edge."""

    code = "DEPENDENCY_ERROR"


# ---------------------------------------------------------------------------
# Move errors
# ---------------------------------------------------------------------------


class SourceNotFoundError(TagrError):
    code = "SOURCE_NOT_FOUND"


class DestinationOccupiedError(TagrError):
    code = "DESTINATION_OCCUPIED"


class InvalidMoveError(TagrError):
    code = "INVALID_MOVE"


class CannotMoveSubtaskError(TagrError):
    code = "CANNOT_MOVE_SUBTASK"


class TaskAlreadyExistsError(TagrError):
    code = "TASK_ALREADY_EXISTS"


class CrossTagDependencyConflictsError(TagrError):
    """Raised under the strict policy; ``conflicts`` lists every offending edge."""

    code = "CROSS_TAG_DEPENDENCY_CONFLICTS"

    def __init__(self, message: str, conflicts: list[dict], **details: Any) -> None:
        super().__init__(message, conflicts=conflicts, **details)
        self.conflicts = conflicts


class InvalidSourceTagError(TagrError):
    code = "INVALID_SOURCE_TAG"


class InvalidTargetTagError(TagrError):
    code = "INVALID_TARGET_TAG"


class SameSourceTargetTagError(TagrError):
    code = "SAME_SOURCE_TARGET_TAG"


# ---------------------------------------------------------------------------
# Tags and storage
# ---------------------------------------------------------------------------


class TagNotFoundError(TagrError):
    code = "TAG_NOT_FOUND"


class TagExistsError(TagrError):
    code = "TAG_EXISTS"


class InvalidTagNameError(TagrError):
    code = "INVALID_TAG_NAME"


class ProtectedTagError(TagrError):
    code = "PROTECTED_TAG"


class MalformedWorkspaceError(TagrError):
    code = "MALFORMED_WORKSPACE"


class StoreError(TagrError):
    code = "STORE_ERROR"


SUGGESTIONS: dict[str, list[str]] = {
    CrossTagDependencyConflictsError.code: [
        "Use --with-dependencies to move the prerequisite tasks together",
        "Use --ignore-dependencies to break the cross-tag dependencies",
        "Run validate-dependencies to inspect the dependency graph",
        "Move the prerequisites first, then move the main task",
    ],
    CannotMoveSubtaskError.code: [
        "Promote the subtask to a standalone task first (move 5.2 --to 12)",
        "Move the parent task instead; its subtasks travel with it",
    ],
    TaskAlreadyExistsError.code: [
        "Choose a different target tag without conflicting IDs",
        "Renumber the task within its tag first, then move it across tags",
    ],
    InvalidSourceTagError.code: ["Run 'tagr tags' to see the available tags"],
    InvalidTargetTagError.code: ["Run 'tagr tags' to see the available tags"],
    SameSourceTargetTagError.code: [
        "Use two different tags for a cross-tag move",
        "Use --from/--to without tags to move within a tag",
    ],
}


def suggestions_for(error: TagrError) -> list[str]:
    return SUGGESTIONS.get(error.code, [])
