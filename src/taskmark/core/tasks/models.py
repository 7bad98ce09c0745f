"""
Task data models for taskmark.

Defines the Task model persisted as one Markdown file per task, the
lightweight IndexEntry projection used by the indexed repository, and the
filter and creation request models consumed by repositories and the
Backlog facade.

Every list field defaults to an empty list so downstream code can rely on
field presence; optional scalars default to None and are omitted from the
file when unset.
"""

from datetime import date
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from taskmark.utils.dates import coerce_timestamp

# Collaboration fields kept out of the index to keep it small
AI_FIELDS = ("ai_plan", "ai_notes", "ai_documentation", "ai_review")

# Fields the facade maintains itself; callers may not set them in an update
DERIVED_FIELDS = frozenset(
    {
        "id",
        "file_path",
        "created_date",
        "updated_date",
        "closed_date",
        "changelog",
        "subtasks",
        "blocked_by",
    }
)

_DATE_FIELDS = (
    "start_date",
    "end_date",
    "release_date",
    "created_date",
    "updated_date",
    "closed_date",
)

_TEXT_FIELDS = ("title", "status", "priority", "milestone", *AI_FIELDS)


def _as_text(v: Any) -> Any:
    """Render an unquoted YAML scalar (`title: 2024`, `done: yes`) as the text it was."""
    if isinstance(v, bool):
        return "true" if v else "false"
    if isinstance(v, (int, float)):
        return str(v)
    if isinstance(v, date):
        return v.isoformat()
    return v


class ChangelogEntry(BaseModel):
    """One entry of a task's append-only history."""

    timestamp: str = Field(..., description="When the change happened (ISO 8601)")
    action: str = Field(..., description="Kind of change (created, updated, modified)")
    details: str = Field(default="", description="Human-readable summary")
    user: str | None = Field(default=None, description="Who made the change")

    model_config = ConfigDict(extra="ignore")

    @field_validator("timestamp", mode="before")
    @classmethod
    def _coerce_timestamp(cls, v: Any) -> Any:
        return coerce_timestamp(v)


class AcceptanceCriterion(BaseModel):
    """A checkable acceptance criterion."""

    text: str
    checked: bool = False

    model_config = ConfigDict(extra="ignore")


class Task(BaseModel):
    """
    A unit of trackable work.

    Example:
        >>> task = Task(
        ...     id=1,
        ...     title="Write parser",
        ...     created_date="2025-10-22T10:00:00.000Z",
        ...     updated_date="2025-10-22T10:00:00.000Z",
        ... )
        >>> task.status
        'To Do'
        >>> task.subtasks
        []
    """

    # Core
    id: int = Field(..., ge=1, description="Unique, immutable task number")
    title: str = Field(..., description="Short task title")
    description: str = Field(default="", description="Markdown body of the task file")

    # Planned dates
    start_date: str | None = None
    end_date: str | None = None
    release_date: str | None = None

    # Automatic dates
    created_date: str = Field(..., description="Creation timestamp (ISO 8601)")
    updated_date: str = Field(..., description="Last mutation timestamp (ISO 8601)")
    closed_date: str | None = None

    # Organisation
    status: str = "To Do"
    priority: str = "medium"
    milestone: str | None = None

    # People and labels
    assignees: list[str] = Field(default_factory=list)
    labels: list[str] = Field(default_factory=list)
    keywords: list[str] = Field(default_factory=list)

    # Hierarchy and dependencies
    parent_task: int | None = None
    subtasks: list[int] = Field(default_factory=list)
    dependencies: list[int] = Field(default_factory=list)
    blocked_by: list[int] = Field(default_factory=list)

    # History
    changelog: list[ChangelogEntry] = Field(default_factory=list)

    acceptance_criteria: list[AcceptanceCriterion] = Field(default_factory=list)

    # Collaboration spaces
    ai_plan: str | None = None
    ai_notes: str | None = None
    ai_documentation: str | None = None
    ai_review: str | None = None

    # Storage location, supplied by the repository and never written to the file
    file_path: Path | None = Field(default=None, exclude=True)

    # Unknown frontmatter keys are kept and written back unchanged
    model_config = ConfigDict(extra="allow")

    @field_validator(*_DATE_FIELDS, mode="before")
    @classmethod
    def _coerce_dates(cls, v: Any) -> Any:
        return coerce_timestamp(v)

    @field_validator("description", mode="before")
    @classmethod
    def _strip_description(cls, v: Any) -> Any:
        # The file body is stripped on read, so keep it stripped in memory too
        if isinstance(v, str):
            return v.strip()
        return v

    @field_validator(*_TEXT_FIELDS, mode="before")
    @classmethod
    def _coerce_text(cls, v: Any) -> Any:
        return _as_text(v)

    @field_validator("assignees", "labels", "keywords", mode="before")
    @classmethod
    def _coerce_text_list(cls, v: Any) -> Any:
        if v is None:
            return []
        if isinstance(v, list):
            return [_as_text(item) for item in v]
        return v

    @field_validator(
        "subtasks", "dependencies", "blocked_by", "changelog", "acceptance_criteria",
        mode="before",
    )
    @classmethod
    def _none_to_empty(cls, v: Any) -> Any:
        # `subtasks:` with no value parses as None
        return [] if v is None else v

    @property
    def criteria_progress(self) -> tuple[int, int]:
        """Return (checked, total) acceptance criteria counts."""
        checked = sum(1 for c in self.acceptance_criteria if c.checked)
        return checked, len(self.acceptance_criteria)


class IndexEntry(BaseModel):
    """
    Lightweight projection of a task stored in the index.

    Holds everything except the description and the collaboration fields,
    plus the modification time of the file it was read from. Derived data:
    it can always be rebuilt from the task files.
    """

    id: int
    title: str
    status: str
    priority: str
    milestone: str | None = None
    assignees: list[str] = Field(default_factory=list)
    labels: list[str] = Field(default_factory=list)
    keywords: list[str] = Field(default_factory=list)
    parent_task: int | None = None
    subtasks: list[int] = Field(default_factory=list)
    dependencies: list[int] = Field(default_factory=list)
    blocked_by: list[int] = Field(default_factory=list)
    start_date: str | None = None
    end_date: str | None = None
    release_date: str | None = None
    created_date: str
    updated_date: str
    closed_date: str | None = None
    changelog: list[ChangelogEntry] = Field(default_factory=list)
    acceptance_criteria: list[AcceptanceCriterion] = Field(default_factory=list)
    file_path: Path
    file_mtime: int = Field(..., description="File modification time in nanoseconds")

    @classmethod
    def from_task(cls, task: Task, file_mtime: int) -> "IndexEntry":
        """Project a full task into an index entry."""
        if task.file_path is None:
            raise ValueError(f"Task #{task.id} has no storage location")
        fields = set(cls.model_fields) - {"file_path", "file_mtime"}
        data = task.model_dump(include=fields)
        return cls(**data, file_path=task.file_path, file_mtime=file_mtime)


class TaskFilters(BaseModel):
    """
    Conjunction of optional query constraints.

    Unset fields impose no constraint. ``assignee``, ``label`` and
    ``keyword`` are membership tests; the rest are exact matches.
    """

    status: str | None = None
    priority: str | None = None
    assignee: str | None = None
    label: str | None = None
    keyword: str | None = None
    milestone: str | None = None
    parent: int | None = None

    def matches(self, task: Task | IndexEntry) -> bool:
        """Return True if the task satisfies every set constraint."""
        if self.status is not None and task.status != self.status:
            return False
        if self.priority is not None and task.priority != self.priority:
            return False
        if self.assignee is not None and self.assignee not in task.assignees:
            return False
        if self.label is not None and self.label not in task.labels:
            return False
        if self.keyword is not None and self.keyword not in task.keywords:
            return False
        if self.milestone is not None and task.milestone != self.milestone:
            return False
        if self.parent is not None and task.parent_task != self.parent:
            return False
        return True


class TaskData(BaseModel):
    """Fields a caller may supply when creating a task."""

    title: str = Field(..., min_length=1)
    description: str = ""
    status: str | None = None
    priority: str | None = None
    milestone: str | None = None
    assignees: list[str] = Field(default_factory=list)
    labels: list[str] = Field(default_factory=list)
    keywords: list[str] = Field(default_factory=list)
    start_date: str | None = None
    end_date: str | None = None
    release_date: str | None = None
    parent_task: int | None = None
    dependencies: list[int] = Field(default_factory=list)
    acceptance_criteria: list[AcceptanceCriterion] = Field(default_factory=list)
