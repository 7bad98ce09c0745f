"""
Close validation.

Decides whether a task may move to a completed status. The decision is a
pure function of the task, the full task set, the force flag, the
configuration and the current time:

* **Blocking issues** (subtasks, dependencies, blocked-by, acceptance
  criteria) make the close invalid unless forced.
* **Warnings** never block; they are only evaluated on a non-forced close
  that has no blocking issues.
* **Suggestions** are computed separately, after a successful close.
"""

from collections.abc import Collection
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from math import ceil

from taskmark.core.config.models import CloseValidationConfig
from taskmark.utils.dates import now_utc, parse_timestamp

from .models import AcceptanceCriterion, Task


class BlockingType(str, Enum):
    """Hard failures that prevent a close."""

    SUBTASK = "subtask"
    DEPENDENCY = "dependency"
    BLOCKED_BY = "blocked_by"
    ACCEPTANCE_CRITERIA = "acceptance_criteria"


class WarningType(str, Enum):
    """Non-blocking observations about a close."""

    MISSING_AI_REVIEW = "missing_ai_review"
    EARLY_CLOSE = "early_close"
    LATE_CLOSE = "late_close"
    QUICK_CLOSE = "quick_close"


class SuggestionType(str, Enum):
    """Follow-ups offered after a close."""

    PARENT_CLOSE = "parent_close"
    UNBLOCKED_TASKS = "unblocked_tasks"


@dataclass
class TaskRef:
    """Minimal reference to another task in a validation message."""

    id: int
    title: str
    status: str

    @classmethod
    def of(cls, task: Task) -> "TaskRef":
        return cls(id=task.id, title=task.title, status=task.status)


@dataclass
class BlockingIssue:
    type: BlockingType
    message: str
    tasks: list[TaskRef] = field(default_factory=list)
    criteria: list[AcceptanceCriterion] = field(default_factory=list)


@dataclass
class CloseWarning:
    type: WarningType
    message: str
    details: str | None = None


@dataclass
class CloseSuggestion:
    type: SuggestionType
    message: str
    tasks: list[TaskRef] = field(default_factory=list)
    command: str | None = None


@dataclass
class CloseValidationResult:
    """Outcome of a close attempt: allowed or blocked, plus warnings."""

    valid: bool = True
    blocking: list[BlockingIssue] = field(default_factory=list)
    warnings: list[CloseWarning] = field(default_factory=list)
    suggestions: list[CloseSuggestion] = field(default_factory=list)


def _plural(count: int, singular: str, plural: str) -> str:
    return singular if count == 1 else plural


class CloseValidator:
    """
    Evaluates close rules for a task.

    Args:
        config: Which checks are enabled and their thresholds
        resolved_statuses: Statuses counted as finished (completed or cancelled)

    Example:
        >>> validator = CloseValidator(CloseValidationConfig(), {"Done", "Cancelled"})
        >>> result = validator.validate_close(task, all_tasks)
        >>> result.valid
        False
        >>> [issue.type.value for issue in result.blocking]
        ['subtask']
    """

    def __init__(self, config: CloseValidationConfig, resolved_statuses: Collection[str]):
        self.config = config
        self.resolved_statuses = frozenset(resolved_statuses)

    def _is_resolved(self, task: Task) -> bool:
        return task.status in self.resolved_statuses

    def validate_close(
        self,
        task: Task,
        all_tasks: list[Task],
        force: bool = False,
        now: datetime | None = None,
    ) -> CloseValidationResult:
        """
        Check whether a task can be closed.

        Args:
            task: Task being closed
            all_tasks: Every task in the backlog
            force: Skip blocking checks if configuration allows it
            now: Current time (defaults to now, injectable for tests)

        Returns:
            CloseValidationResult with blocking issues and, unless forced,
            warnings (also reported when the close is blocked)
        """
        result = CloseValidationResult()

        if force and self.config.allow_force:
            return result

        checks = (
            (self.config.check_subtasks, lambda: self._check_subtasks(task, all_tasks)),
            (self.config.check_dependencies, lambda: self._check_dependencies(task, all_tasks)),
            (self.config.check_blocked_by, lambda: self._check_blocked_by(task, all_tasks)),
            (self.config.check_acceptance_criteria, lambda: self._check_criteria(task)),
        )
        for enabled, check in checks:
            if not enabled:
                continue
            issue = check()
            if issue is not None:
                result.blocking.append(issue)
                result.valid = False

        if force:
            return result

        now = now or now_utc()

        if self.config.warn_missing_ai_review:
            if warning := self._check_ai_review(task):
                result.warnings.append(warning)

        if self.config.warn_early_close or self.config.warn_late_close:
            if warning := self._check_dates(task, now):
                result.warnings.append(warning)

        if self.config.warn_quick_close > 0:
            if warning := self._check_duration(task, now):
                result.warnings.append(warning)

        return result

    def get_suggestions_after_close(
        self, task: Task, all_tasks: list[Task]
    ) -> list[CloseSuggestion]:
        """Return follow-ups to show after a task was closed."""
        suggestions: list[CloseSuggestion] = []

        if self.config.suggest_parent_close and task.parent_task is not None:
            if suggestion := self._check_parent_completion(task, all_tasks):
                suggestions.append(suggestion)

        if self.config.notify_unblocked:
            if suggestion := self._check_unblocked_tasks(task, all_tasks):
                suggestions.append(suggestion)

        return suggestions

    # ------------------------------------------------------------------
    # Blocking checks
    # ------------------------------------------------------------------

    def _unresolved(self, ids: list[int], all_tasks: list[Task]) -> list[Task]:
        wanted = set(ids)
        return [t for t in all_tasks if t.id in wanted and not self._is_resolved(t)]

    def _check_subtasks(self, task: Task, all_tasks: list[Task]) -> BlockingIssue | None:
        incomplete = self._unresolved(task.subtasks, all_tasks)
        if not incomplete:
            return None
        return BlockingIssue(
            type=BlockingType.SUBTASK,
            message=f"{len(incomplete)} subtask(s) not completed",
            tasks=[TaskRef.of(t) for t in incomplete],
        )

    def _check_dependencies(self, task: Task, all_tasks: list[Task]) -> BlockingIssue | None:
        unresolved = self._unresolved(task.dependencies, all_tasks)
        if not unresolved:
            return None
        n = len(unresolved)
        return BlockingIssue(
            type=BlockingType.DEPENDENCY,
            message=f"{n} {_plural(n, 'dependency', 'dependencies')} not resolved",
            tasks=[TaskRef.of(t) for t in unresolved],
        )

    def _check_blocked_by(self, task: Task, all_tasks: list[Task]) -> BlockingIssue | None:
        blocking = self._unresolved(task.blocked_by, all_tasks)
        if not blocking:
            return None
        return BlockingIssue(
            type=BlockingType.BLOCKED_BY,
            message=f"Task is blocked by {len(blocking)} task(s)",
            tasks=[TaskRef.of(t) for t in blocking],
        )

    def _check_criteria(self, task: Task) -> BlockingIssue | None:
        unchecked = [c for c in task.acceptance_criteria if not c.checked]
        if not unchecked:
            return None
        checked, total = task.criteria_progress
        n = len(unchecked)
        return BlockingIssue(
            type=BlockingType.ACCEPTANCE_CRITERIA,
            message=(
                f"{n} acceptance {_plural(n, 'criterion', 'criteria')} not met "
                f"({checked}/{total} completed)"
            ),
            criteria=unchecked,
        )

    # ------------------------------------------------------------------
    # Warnings
    # ------------------------------------------------------------------

    def _check_ai_review(self, task: Task) -> CloseWarning | None:
        agents = {name.lower() for name in self.config.ai_assignees}
        if any(a.lower() in agents for a in task.assignees) and not task.ai_review:
            return CloseWarning(
                type=WarningType.MISSING_AI_REVIEW,
                message="No AI review found",
                details=(
                    f"This task was assigned to AI ({', '.join(task.assignees)}) "
                    "but has no ai-review section"
                ),
            )
        return None

    def _check_dates(self, task: Task, now: datetime) -> CloseWarning | None:
        if not task.end_date:
            return None
        try:
            end = parse_timestamp(task.end_date)
        except ValueError:
            return None

        seconds_per_day = 24 * 60 * 60
        if self.config.warn_early_close and now < end:
            days = ceil((end - now).total_seconds() / seconds_per_day)
            return CloseWarning(
                type=WarningType.EARLY_CLOSE,
                message=f"Task closed {days} day(s) before planned end date",
                details=f"End date: {task.end_date}",
            )
        if self.config.warn_late_close and now > end:
            days = ceil((now - end).total_seconds() / seconds_per_day)
            return CloseWarning(
                type=WarningType.LATE_CLOSE,
                message=f"Task closed {days} day(s) after planned end date",
                details=f"End date: {task.end_date}",
            )
        return None

    def _check_duration(self, task: Task, now: datetime) -> CloseWarning | None:
        try:
            created = parse_timestamp(task.created_date)
        except ValueError:
            return None

        elapsed = (now - created).total_seconds()
        if elapsed >= self.config.warn_quick_close:
            return None

        minutes, seconds = divmod(int(max(elapsed, 0)), 60)
        details = None
        if task.priority in ("critical", "high"):
            details = f"This is a {task.priority} priority task"
        return CloseWarning(
            type=WarningType.QUICK_CLOSE,
            message=f"Task completed very quickly ({minutes}m {seconds}s)",
            details=details,
        )

    # ------------------------------------------------------------------
    # Suggestions
    # ------------------------------------------------------------------

    def _check_parent_completion(
        self, task: Task, all_tasks: list[Task]
    ) -> CloseSuggestion | None:
        parent = next((t for t in all_tasks if t.id == task.parent_task), None)
        if parent is None or self._is_resolved(parent):
            return None

        siblings = [t for t in all_tasks if t.parent_task == parent.id and t.id != task.id]
        if not all(self._is_resolved(s) for s in siblings):
            return None

        return CloseSuggestion(
            type=SuggestionType.PARENT_CLOSE,
            message=f"All subtasks of #{parent.id} ({parent.title}) are now complete!",
            tasks=[TaskRef.of(parent)],
            command=f"taskmark task close {parent.id}",
        )

    def _check_unblocked_tasks(
        self, task: Task, all_tasks: list[Task]
    ) -> CloseSuggestion | None:
        unblocked = [
            t
            for t in all_tasks
            if task.id in t.blocked_by and t.id != task.id and not self._is_resolved(t)
        ]
        if not unblocked:
            return None
        return CloseSuggestion(
            type=SuggestionType.UNBLOCKED_TASKS,
            message=f"{len(unblocked)} task(s) unblocked",
            tasks=[TaskRef.of(t) for t in unblocked],
        )
