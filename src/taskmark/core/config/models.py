"""
Configuration data models for taskmark.

These models define the structure of ``backlog/config.yml``, with
validation and defaults via Pydantic. Older config files that lack newer
sections still load: every section and field has a default.

Both snake_case keys and the camelCase spellings used by earlier config
files (``useIndex``, ``zeroPaddedIds``, ...) are accepted.
"""

from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class ProjectConfig(BaseModel):
    """Project identity."""

    name: str = Field(default="My Project", description="Project display name")
    created_at: str = Field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat(),
        alias="createdAt",
        description="When the backlog was initialized",
    )

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("created_at", mode="before")
    @classmethod
    def _coerce_created_at(cls, v: object) -> object:
        if isinstance(v, datetime):
            return v.isoformat()
        return v


class BoardConfig(BaseModel):
    """
    Allowed workflow values.

    ``columns`` and ``priorities`` are ordered; the first column is the
    default status for new tasks.
    """

    columns: list[str] = Field(
        default_factory=lambda: ["To Do", "In Progress", "Review", "Done"],
        min_length=1,
        description="Ordered list of allowed statuses",
    )
    priorities: list[str] = Field(
        default_factory=lambda: ["low", "medium", "high", "critical"],
        min_length=1,
        description="Ordered list of allowed priorities",
    )
    completed_statuses: list[str] = Field(
        default_factory=lambda: ["Done"],
        alias="completedStatuses",
        min_length=1,
        description="Statuses that mark a task as completed (set closed_date)",
    )
    cancelled_statuses: list[str] = Field(
        default_factory=lambda: ["Cancelled"],
        alias="cancelledStatuses",
        description="Statuses that count as resolved when gating a close",
    )

    model_config = ConfigDict(populate_by_name=True)

    @property
    def default_status(self) -> str:
        return self.columns[0]

    @property
    def default_priority(self) -> str:
        return "medium" if "medium" in self.priorities else self.priorities[0]

    @property
    def done_status(self) -> str:
        """Status a closed task moves to."""
        return self.completed_statuses[0]

    @property
    def resolved_statuses(self) -> frozenset[str]:
        """Statuses that no longer block anything (completed or cancelled)."""
        return frozenset(self.completed_statuses) | frozenset(self.cancelled_statuses)


class DisplayConfig(BaseModel):
    """Presentation settings that also affect file naming."""

    date_format: str = Field(default="yyyy-MM-dd HH:mm", alias="dateFormat")
    zero_padded_ids: bool = Field(
        default=True,
        alias="zeroPaddedIds",
        description="Pad ids to 3 digits in task file names",
    )

    model_config = ConfigDict(populate_by_name=True)


class PerformanceConfig(BaseModel):
    """Storage backend selection."""

    use_index: bool = Field(
        default=True,
        alias="useIndex",
        description="Use the indexed repository instead of scanning every file",
    )
    rebuild_index_on_start: bool = Field(
        default=False,
        alias="rebuildIndexOnStart",
        description="Rebuild the index from scratch when the backlog is loaded",
    )

    model_config = ConfigDict(populate_by_name=True)


class CloseValidationConfig(BaseModel):
    """
    Rules applied when closing a task.

    Each blocking check and warning can be toggled on its own.
    ``warn_quick_close`` is a threshold in seconds; 0 disables it.
    """

    check_subtasks: bool = True
    check_dependencies: bool = True
    check_blocked_by: bool = True
    check_acceptance_criteria: bool = True
    warn_missing_ai_review: bool = True
    warn_early_close: bool = True
    warn_late_close: bool = True
    warn_quick_close: int = Field(default=300, ge=0)
    suggest_parent_close: bool = True
    notify_unblocked: bool = True
    allow_force: bool = True
    ai_assignees: list[str] = Field(
        default_factory=lambda: ["claude", "gpt", "ai", "copilot"],
        description="Assignee names (case-insensitive) treated as automated agents",
    )


class ValidationsConfig(BaseModel):
    """Validation rule groups."""

    close: CloseValidationConfig = Field(default_factory=CloseValidationConfig)


class TaskmarkConfig(BaseModel):
    """
    Root configuration model (``backlog/config.yml``).

    Example:
        >>> config = TaskmarkConfig()
        >>> config.board.columns
        ['To Do', 'In Progress', 'Review', 'Done']
        >>> config.performance.use_index
        True
    """

    project: ProjectConfig = Field(default_factory=ProjectConfig)
    board: BoardConfig = Field(default_factory=BoardConfig)
    display: DisplayConfig = Field(default_factory=DisplayConfig)
    performance: PerformanceConfig = Field(default_factory=PerformanceConfig)
    validations: ValidationsConfig = Field(default_factory=ValidationsConfig)

    # Sections owned by other tools (search, templates, ...) are kept as-is
    model_config = ConfigDict(extra="allow")

    @model_validator(mode="after")
    def _check_board(self) -> "TaskmarkConfig":
        missing = [s for s in self.board.completed_statuses if s not in self.board.columns]
        if missing:
            raise ValueError(
                f"completed_statuses {missing} must also appear in board.columns"
            )
        return self
