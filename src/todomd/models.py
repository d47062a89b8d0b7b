"""Pydantic models for issue records and sync settings."""

from __future__ import annotations

import math
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

ISSUE_STATUS_VALUES = ("open", "in_progress", "blocked", "closed")
IssueStatus = Literal["open", "in_progress", "blocked", "closed"]

ISSUE_TYPE_VALUES = ("task", "bug", "feature", "epic")
IssueType = Literal["task", "bug", "feature", "epic"]

ISSUE_SOURCE_VALUES = ("file", "beads")
IssueSource = Literal["file", "beads"]

SYNC_DIRECTION_VALUES = ("beads-to-files", "files-to-beads", "bidirectional")
SyncDirection = Literal["beads-to-files", "files-to-beads", "bidirectional"]

CONFLICT_STRATEGY_VALUES = ("beads-wins", "file-wins", "newest-wins")
ConflictStrategy = Literal["beads-wins", "file-wins", "newest-wins"]

TEMPLATE_KIND_VALUES = ("issue", "todo")
TemplateKind = Literal["issue", "todo"]

DEFAULT_PRIORITY = 2
MIN_PRIORITY = 0
MAX_PRIORITY = 4

_STATUS_ALIASES = {
    "done": "closed",
    "completed": "closed",
    "complete": "closed",
    "resolved": "closed",
    "in-progress": "in_progress",
    "inprogress": "in_progress",
    "in progress": "in_progress",
    "working": "in_progress",
    "doing": "in_progress",
    "todo": "open",
    "backlog": "open",
}


def _clean_str(value: object) -> str | None:
    if value is None:
        return None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        value = str(value)
    if not isinstance(value, str):
        return None
    cleaned = value.strip()
    return cleaned or None


def normalize_status(value: object) -> str:
    """Map free-form status text onto the issue status enum.

    Example:
        >>> normalize_status("Done")
        'closed'
        >>> normalize_status("in-progress")
        'in_progress'
    """
    cleaned = _clean_str(value)
    if cleaned is None:
        return "open"
    key = cleaned.lower()
    if key in ISSUE_STATUS_VALUES:
        return key
    return _STATUS_ALIASES.get(key, "open")


def normalize_type(value: object) -> str:
    """Map an issue type onto the enum; unrecognized values become ``task``.

    Example:
        >>> normalize_type("Bug")
        'bug'
        >>> normalize_type("chore")
        'task'
    """
    cleaned = _clean_str(value)
    if cleaned is None:
        return "task"
    key = cleaned.lower()
    return key if key in ISSUE_TYPE_VALUES else "task"


def normalize_priority(value: object) -> int:
    """Floor then clamp a priority into ``[0, 4]``; non-numeric input yields 2.

    Example:
        >>> normalize_priority(-5), normalize_priority(2.7), normalize_priority("10")
        (0, 2, 4)
    """
    if isinstance(value, bool) or value is None:
        return DEFAULT_PRIORITY
    number: float
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return DEFAULT_PRIORITY
    else:
        return DEFAULT_PRIORITY
    if math.isnan(number):
        return DEFAULT_PRIORITY
    if math.isinf(number):
        return MAX_PRIORITY if number > 0 else MIN_PRIORITY
    return max(MIN_PRIORITY, min(MAX_PRIORITY, math.floor(number)))


def normalize_id_list(value: object) -> list[str] | None:
    """Normalize a list-ish value into a list of non-blank strings.

    ``None`` stays ``None`` so absent sequences remain distinguishable from
    explicitly empty ones.
    """
    if value is None:
        return None
    if isinstance(value, str):
        value = value.split(",")
    if isinstance(value, (list, tuple)):
        items = [_clean_str(item) for item in value]
        return [item for item in items if item]
    return None


class Issue(BaseModel):
    """Issue record shared by the Markdown tree and the beads store.

    Attributes:
        id: Stable identifier; never blank.
        title: Issue title.
        description: Free Markdown text.
        status: open|in_progress|blocked|closed.
        type: task|bug|feature|epic.
        priority: Integer in ``[0, 4]``.
        labels: Ordered labels, or ``None`` when absent.
        assignee: Optional assignee (often an email).
        created_at: ISO-8601 creation timestamp (alias ``createdAt``).
        updated_at: ISO-8601 update timestamp (alias ``updatedAt``).
        closed_at: ISO-8601 close timestamp (alias ``closedAt``).
        depends_on: Ids this issue depends on (alias ``dependsOn``).
        blocks: Ids this issue blocks.
        children: Child issue ids.
        parent: Parent issue id.
        source: Loader that produced the record (file|beads).

    Example:
        >>> issue = Issue(id=" todo-1 ", title="Fix", priority=9, status="done")
        >>> issue.id, issue.priority, issue.status
        ('todo-1', 4, 'closed')
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str
    title: str = "Untitled"
    description: str | None = None
    status: IssueStatus = "open"
    type: IssueType = "task"
    priority: int = DEFAULT_PRIORITY
    labels: list[str] | None = None
    assignee: str | None = None
    created_at: str | None = Field(default=None, alias="createdAt")
    updated_at: str | None = Field(default=None, alias="updatedAt")
    closed_at: str | None = Field(default=None, alias="closedAt")
    depends_on: list[str] | None = Field(default=None, alias="dependsOn")
    blocks: list[str] | None = None
    children: list[str] | None = None
    parent: str | None = None
    source: IssueSource | None = None

    @field_validator("id", mode="before")
    @classmethod
    def _normalize_id(cls, value: object) -> object:
        normalized = _clean_str(value)
        if normalized is None:
            raise ValueError("issue id must not be empty")
        return normalized

    @field_validator("title", mode="before")
    @classmethod
    def _normalize_title(cls, value: object) -> object:
        if value is None:
            return "Untitled"
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return value

    @field_validator("status", mode="before")
    @classmethod
    def _normalize_status(cls, value: object) -> object:
        return normalize_status(value)

    @field_validator("type", mode="before")
    @classmethod
    def _normalize_type(cls, value: object) -> object:
        return normalize_type(value)

    @field_validator("priority", mode="before")
    @classmethod
    def _normalize_priority(cls, value: object) -> object:
        return normalize_priority(value)

    @field_validator("labels", "depends_on", "blocks", "children", mode="before")
    @classmethod
    def _normalize_lists(cls, value: object) -> object:
        return normalize_id_list(value)

    @field_validator(
        "description",
        "assignee",
        "created_at",
        "updated_at",
        "closed_at",
        "parent",
        mode="before",
    )
    @classmethod
    def _normalize_optional_text(cls, value: object) -> object:
        if isinstance(value, str) and not value.strip():
            return None
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return value

    @field_validator("source", mode="before")
    @classmethod
    def _normalize_source(cls, value: object) -> object:
        cleaned = _clean_str(value)
        if cleaned is None:
            return None
        lowered = cleaned.lower()
        return lowered if lowered in ISSUE_SOURCE_VALUES else None

    def content_key(self) -> tuple[object, ...]:
        """Fields compared when deciding whether two copies differ."""
        return (
            self.id,
            self.title,
            self.status,
            self.type,
            self.priority,
            (self.description or "").strip(),
            self.assignee,
            tuple(self.labels or ()),
            tuple(self.depends_on or ()),
            tuple(self.blocks or ()),
            self.parent,
        )

    def with_source(self, source: IssueSource) -> Issue:
        return self.model_copy(update={"source": source})
