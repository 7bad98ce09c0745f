"""
Backlog facade.

Owns one repository instance and is the only component that mutates task
files. Every operation that touches relationships keeps both sides in
step:

* ``dependencies`` on task A and ``blocked_by`` on each dependency
* ``parent_task`` on a child and ``subtasks`` on its parent

Relationship propagation is a sequence of independent writes. The primary
task is written first; peer tasks follow in the order their ids are
discovered. Nothing is rolled back if a later peer write fails; the error
propagates and the remaining peer writes are abandoned.
"""

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from taskmark.core.config.loader import (
    get_backlog_dir,
    init_backlog,
    load_config,
    save_config,
)
from taskmark.core.config.models import TaskmarkConfig
from taskmark.core.exceptions import NotFoundError, ValidationError
from taskmark.utils.dates import now_iso

from .close import CloseSuggestion, CloseValidationResult, CloseValidator
from .codec import task_filename
from .models import (
    DERIVED_FIELDS,
    AcceptanceCriterion,
    ChangelogEntry,
    Task,
    TaskData,
    TaskFilters,
)
from .repository import TaskRepository, get_repository
from .validation import FieldValidator

logger = logging.getLogger(__name__)

DEFAULT_USER = "system"
AI_USER = "AI"

# Fields a caller may change through update_task
UPDATABLE_FIELDS = frozenset(Task.model_fields) - DERIVED_FIELDS


@dataclass
class CloseOutcome:
    """Result of a close attempt."""

    task: Task
    result: CloseValidationResult
    suggestions: list[CloseSuggestion] = field(default_factory=list)

    @property
    def closed(self) -> bool:
        return self.result.valid


@dataclass
class TaskTree:
    """A task with its parent and direct subtasks."""

    task: Task
    parent: Task | None = None
    subtasks: list[Task] = field(default_factory=list)


@dataclass
class DependencyView:
    """Tasks related to one task through dependencies."""

    task: Task
    dependencies: list[Task] = field(default_factory=list)
    blocked_by: list[Task] = field(default_factory=list)
    dependents: list[Task] = field(default_factory=list)


def _task_id(value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise ValidationError(f'Invalid task id "{value}"') from e


def _unique_ids(values: Iterable[Any]) -> list[int]:
    """Coerce to ints and drop duplicates, keeping first-seen order."""
    seen: list[int] = []
    for value in values:
        task_id = _task_id(value)
        if task_id not in seen:
            seen.append(task_id)
    return seen


class Backlog:
    """
    Entry point for reading and changing tasks in a backlog.

    Use as a context manager so the repository is always closed:

        >>> with Backlog.load(Path(".")) as backlog:
        ...     task = backlog.create_task(TaskData(title="Write docs"))
        ...     backlog.update_task(task.id, {"status": "In Progress"})
    """

    def __init__(
        self,
        project_dir: Path,
        config: TaskmarkConfig,
        repository: TaskRepository | None = None,
    ):
        """
        Args:
            project_dir: Project root containing ``backlog/``
            config: Loaded configuration
            repository: Storage backend (chosen from ``performance.use_index`` if omitted)
        """
        self.project_dir = Path(project_dir)
        self.config = config
        self.backlog_dir = get_backlog_dir(self.project_dir)

        if repository is None:
            name = "indexed" if config.performance.use_index else "filesystem"
            repository = get_repository(name, self.backlog_dir)
            if config.performance.rebuild_index_on_start:
                repository.rebuild()
        self.repository = repository

        self.fields = FieldValidator(config.board)
        self.close_validator = CloseValidator(
            config.validations.close, config.board.resolved_statuses
        )
        logger.debug(
            f"Backlog at {self.backlog_dir} using {self.repository.repository_name} repository"
        )

    @classmethod
    def load(cls, project_dir: Path | None = None) -> "Backlog":
        """
        Open the backlog of a project.

        Raises:
            BacklogNotInitializedError: If the project has no backlog
            ConfigError: If the configuration is invalid
        """
        project_dir = Path(project_dir) if project_dir else Path.cwd()
        return cls(project_dir, load_config(project_dir))

    @classmethod
    def init(cls, project_dir: Path | None = None, name: str | None = None) -> "Backlog":
        """Create a new backlog and open it."""
        project_dir = Path(project_dir) if project_dir else Path.cwd()
        config = init_backlog(project_dir, name)
        return cls(project_dir, config)

    def __enter__(self) -> "Backlog":
        return self

    def __exit__(self, exc_type: object, exc: object, tb: object) -> None:
        self.close()

    def close(self) -> None:
        """Release the repository. Safe to call more than once."""
        self.repository.close()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def list_tasks(self, filters: TaskFilters | None = None) -> list[Task]:
        """List tasks matching the filters, ascending by id."""
        return self.repository.list_tasks(filters)

    def get_task(self, task_id: int) -> Task | None:
        return self.repository.get_task(task_id)

    def require_task(self, task_id: int) -> Task:
        """
        Get a task or raise.

        Raises:
            NotFoundError: If the task does not exist
        """
        task = self.repository.get_task(task_id)
        if task is None:
            raise NotFoundError(task_id)
        return task

    def get_subtasks(self, parent_id: int) -> list[Task]:
        return self.list_tasks(TaskFilters(parent=parent_id))

    def get_blocked_tasks(self) -> list[Task]:
        """Return every task with a non-empty blocked_by list."""
        return [t for t in self.list_tasks() if t.blocked_by]

    def get_task_tree(self, task_id: int) -> TaskTree:
        task = self.require_task(task_id)
        parent = self.get_task(task.parent_task) if task.parent_task is not None else None
        return TaskTree(task=task, parent=parent, subtasks=self.get_subtasks(task_id))

    def get_dependencies(self, task_id: int) -> DependencyView:
        """Collect the tasks linked to a task through dependencies."""
        task = self.require_task(task_id)
        by_id = {t.id: t for t in self.list_tasks()}
        return DependencyView(
            task=task,
            dependencies=[by_id[i] for i in task.dependencies if i in by_id],
            blocked_by=[by_id[i] for i in task.blocked_by if i in by_id],
            dependents=[t for t in by_id.values() if task_id in t.dependencies],
        )

    def get_valid_statuses(self) -> list[str]:
        return self.fields.get_valid_statuses()

    def get_valid_priorities(self) -> list[str]:
        return self.fields.get_valid_priorities()

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    def add_status(self, status: str) -> list[str]:
        """Append a status column to the board and save the config."""
        status = status.strip()
        if not status:
            raise ValidationError("Status cannot be empty")
        if status not in self.config.board.columns:
            self.config.board.columns.append(status)
            save_config(self.config, self.project_dir)
            logger.info(f'Added status "{status}"')
        return self.get_valid_statuses()

    def add_priority(self, priority: str) -> list[str]:
        """Append a priority to the board and save the config."""
        priority = priority.strip()
        if not priority:
            raise ValidationError("Priority cannot be empty")
        if priority not in self.config.board.priorities:
            self.config.board.priorities.append(priority)
            save_config(self.config, self.project_dir)
            logger.info(f'Added priority "{priority}"')
        return self.get_valid_priorities()

    # ------------------------------------------------------------------
    # Index
    # ------------------------------------------------------------------

    def sync_index(self) -> None:
        self.repository.sync()

    def rebuild_index(self) -> None:
        self.repository.rebuild()

    # ------------------------------------------------------------------
    # Create and update
    # ------------------------------------------------------------------

    def _require_existing(self, ids: Iterable[int], role: str) -> None:
        for task_id in ids:
            if self.repository.get_task(task_id) is None:
                raise NotFoundError(task_id, f"{role} task #{task_id} not found")

    def create_task(self, data: TaskData, user: str | None = None) -> Task:
        """
        Create a task and link it to its parent and dependencies.

        Args:
            data: Fields supplied by the caller
            user: Who is creating the task (recorded in the changelog)

        Returns:
            The created task

        Raises:
            ValidationError: If status or priority is not allowed
            NotFoundError: If the parent or a dependency does not exist
        """
        status, priority = self.fields.validate_task_data(data.status, data.priority)
        dependencies = _unique_ids(data.dependencies)
        parent_id = _task_id(data.parent_task) if data.parent_task is not None else None

        if parent_id is not None:
            self._require_existing([parent_id], "Parent")
        self._require_existing(dependencies, "Dependency")

        task_id = self.repository.next_id()
        now = now_iso()
        filename = task_filename(task_id, data.title, self.config.display.zero_padded_ids)

        try:
            task = Task(
                id=task_id,
                title=data.title,
                description=data.description,
                start_date=data.start_date,
                end_date=data.end_date,
                release_date=data.release_date,
                created_date=now,
                updated_date=now,
                status=status,
                priority=priority,
                milestone=data.milestone,
                assignees=list(data.assignees),
                labels=list(data.labels),
                keywords=list(data.keywords),
                parent_task=parent_id,
                dependencies=dependencies,
                acceptance_criteria=list(data.acceptance_criteria),
                changelog=[
                    ChangelogEntry(
                        timestamp=now,
                        action="created",
                        details="Task created",
                        user=user or DEFAULT_USER,
                    )
                ],
                file_path=self.backlog_dir / filename,
            )
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid task data: {e}") from e

        self.repository.create_task(task)
        logger.info(f"Created task #{task.id}: {task.title}")

        if task.parent_task is not None:
            self._add_subtask(task.parent_task, task.id)
        if dependencies:
            self._sync_blocked_by(task.id, [], dependencies)

        return task

    def _check_update_fields(self, updates: Mapping[str, Any]) -> None:
        derived = sorted(k for k in updates if k in DERIVED_FIELDS)
        if derived:
            raise ValidationError(
                f"Cannot update derived field(s): {', '.join(derived)}",
                ["These fields are maintained automatically"],
                fields=derived,
            )
        unknown = sorted(k for k in updates if k not in UPDATABLE_FIELDS)
        if unknown:
            raise ValidationError(
                f"Unknown field(s): {', '.join(unknown)}",
                [f"Updatable fields: {', '.join(sorted(UPDATABLE_FIELDS))}"],
                fields=unknown,
            )

    def _check_dependencies(self, task_id: int, added: list[int]) -> None:
        if task_id in added:
            raise ValidationError(f"Task #{task_id} cannot depend on itself")
        for dep_id in added:
            dep = self.repository.get_task(dep_id)
            if dep is None:
                raise NotFoundError(dep_id, f"Dependency task #{dep_id} not found")
            if task_id in dep.dependencies:
                raise ValidationError(
                    f"Circular dependency: task #{dep_id} already depends on #{task_id}"
                )

    def _check_parent(self, task_id: int, parent_id: int | None) -> None:
        if parent_id is None:
            return
        if parent_id == task_id:
            raise ValidationError(f"Task #{task_id} cannot be its own parent")
        parent = self.repository.get_task(parent_id)
        if parent is None:
            raise NotFoundError(parent_id, f"Parent task #{parent_id} not found")
        if parent.parent_task == task_id:
            raise ValidationError(
                f"Circular hierarchy: task #{parent_id} is a subtask of #{task_id}"
            )

    def _describe_changes(self, before: Task, after: Task) -> list[str]:
        changes = []
        if after.status != before.status:
            changes.append(f"status: {before.status} → {after.status}")
        if after.priority != before.priority:
            changes.append(f"priority: {before.priority} → {after.priority}")
        if after.milestone != before.milestone:
            changes.append(f"milestone: {before.milestone or 'none'} → {after.milestone or 'none'}")
        if after.dependencies != before.dependencies:
            changes.append("dependencies updated")
        if after.parent_task != before.parent_task:
            old = f"#{before.parent_task}" if before.parent_task is not None else "none"
            new = f"#{after.parent_task}" if after.parent_task is not None else "none"
            changes.append(f"parent: {old} → {new}")
        return changes

    def update_task(
        self, task_id: int, updates: Mapping[str, Any], user: str | None = None
    ) -> Task:
        """
        Apply a partial update to a task.

        Appends exactly one changelog entry: "updated" listing the tracked
        changes (status, priority, milestone, dependencies, parent), or
        "modified" if none of those changed. Dependency and parent changes
        are propagated to the affected tasks after the task itself is
        written.

        Raises:
            NotFoundError: If the task, a new parent or a new dependency does not exist
            ValidationError: If a field is unknown, derived, or has an invalid value
        """
        self._check_update_fields(updates)
        self.fields.validate_task_updates(updates)
        task = self.require_task(task_id)

        updates = dict(updates)
        if "dependencies" in updates:
            updates["dependencies"] = _unique_ids(updates["dependencies"] or [])
            added = [d for d in updates["dependencies"] if d not in task.dependencies]
            self._check_dependencies(task_id, added)
        if updates.get("parent_task") is not None:
            updates["parent_task"] = _task_id(updates["parent_task"])
        if "parent_task" in updates and updates["parent_task"] != task.parent_task:
            self._check_parent(task_id, updates["parent_task"])

        try:
            candidate = Task.model_validate({**task.model_dump(), **updates})
        except PydanticValidationError as e:
            raise ValidationError(
                f"Invalid update for task #{task_id}",
                [f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()],
            ) from e

        now = now_iso()
        changes = self._describe_changes(task, candidate)
        completed = self.config.board.completed_statuses
        closed_date = candidate.closed_date
        if candidate.status in completed and task.status not in completed:
            closed_date = now

        entry = ChangelogEntry(
            timestamp=now,
            action="updated" if changes else "modified",
            details=", ".join(changes) or "Task updated",
            user=user or DEFAULT_USER,
        )
        updated = candidate.model_copy(
            update={
                "updated_date": now,
                "closed_date": closed_date,
                "changelog": [*task.changelog, entry],
                "file_path": task.file_path,
            }
        )

        self.repository.update_task(updated)
        logger.info(f"Updated task #{task_id}: {entry.details}")

        if "dependencies" in updates:
            self._sync_blocked_by(task_id, task.dependencies, updated.dependencies)
        if updated.parent_task != task.parent_task:
            self._move_subtask(task_id, task.parent_task, updated.parent_task)

        return updated

    # ------------------------------------------------------------------
    # Relationship propagation
    # ------------------------------------------------------------------

    def _write_peer(self, peer: Task) -> None:
        # Peers get a fresh updated_date but no changelog entry
        peer.updated_date = now_iso()
        self.repository.update_task(peer)

    def _add_subtask(self, parent_id: int, child_id: int) -> None:
        parent = self.repository.get_task(parent_id)
        if parent is None:
            raise NotFoundError(parent_id, f"Parent task #{parent_id} not found")
        if child_id not in parent.subtasks:
            parent.subtasks.append(child_id)
            self._write_peer(parent)
            logger.debug(f"Linked subtask #{child_id} to parent #{parent_id}")

    def _remove_subtask(self, parent_id: int, child_id: int) -> None:
        parent = self.repository.get_task(parent_id)
        if parent is None:
            logger.warning(f"Former parent #{parent_id} no longer exists")
            return
        if child_id in parent.subtasks:
            parent.subtasks = [i for i in parent.subtasks if i != child_id]
            self._write_peer(parent)
            logger.debug(f"Unlinked subtask #{child_id} from parent #{parent_id}")

    def _move_subtask(self, task_id: int, old_parent: int | None, new_parent: int | None) -> None:
        if old_parent is not None:
            self._remove_subtask(old_parent, task_id)
        if new_parent is not None:
            self._add_subtask(new_parent, task_id)

    def _sync_blocked_by(self, task_id: int, old_deps: list[int], new_deps: list[int]) -> None:
        """Mirror a dependency change onto the blocked_by lists of the affected tasks."""
        added = [d for d in new_deps if d not in old_deps]
        removed = [d for d in old_deps if d not in new_deps]

        for dep_id in added:
            dep = self.repository.get_task(dep_id)
            if dep is None:
                raise NotFoundError(dep_id, f"Dependency task #{dep_id} not found")
            if task_id not in dep.blocked_by:
                dep.blocked_by.append(task_id)
                self._write_peer(dep)

        for dep_id in removed:
            dep = self.repository.get_task(dep_id)
            if dep is None:
                logger.warning(f"Former dependency #{dep_id} no longer exists")
                continue
            if task_id in dep.blocked_by:
                dep.blocked_by = [i for i in dep.blocked_by if i != task_id]
                self._write_peer(dep)

    # ------------------------------------------------------------------
    # Close
    # ------------------------------------------------------------------

    def validate_close(self, task_id: int, force: bool = False) -> CloseValidationResult:
        """Evaluate the close rules for a task without changing anything."""
        task = self.require_task(task_id)
        return self.close_validator.validate_close(task, self.list_tasks(), force=force)

    def close_task(self, task_id: int, force: bool = False, user: str | None = None) -> CloseOutcome:
        """
        Close a task if the close rules allow it.

        A blocked close writes nothing and returns the blocking issues.
        An allowed close moves the task to the first completed status and
        returns follow-up suggestions computed on the updated task set.
        """
        task = self.require_task(task_id)
        all_tasks = self.list_tasks()
        result = self.close_validator.validate_close(task, all_tasks, force=force)
        if not result.valid:
            logger.info(f"Close of task #{task_id} blocked by {len(result.blocking)} issue(s)")
            return CloseOutcome(task=task, result=result)

        closed = self.update_task(task_id, {"status": self.config.board.done_status}, user)
        after = [closed if t.id == task_id else t for t in all_tasks]
        suggestions = self.close_validator.get_suggestions_after_close(closed, after)
        result.suggestions = suggestions
        return CloseOutcome(task=closed, result=result, suggestions=suggestions)

    # ------------------------------------------------------------------
    # Convenience mutations
    # ------------------------------------------------------------------

    def assign_task(self, task_id: int, assignees: list[str], user: str | None = None) -> Task:
        return self.update_task(task_id, {"assignees": list(assignees)}, user)

    def add_dependency(self, task_id: int, dep_id: int, user: str | None = None) -> Task:
        """Make a task depend on another one."""
        task = self.require_task(task_id)
        if dep_id in task.dependencies:
            raise ValidationError(f"Task #{task_id} already depends on #{dep_id}")
        return self.update_task(task_id, {"dependencies": [*task.dependencies, dep_id]}, user)

    def remove_dependency(self, task_id: int, dep_id: int, user: str | None = None) -> Task:
        task = self.require_task(task_id)
        if dep_id not in task.dependencies:
            raise ValidationError(f"Task #{task_id} does not depend on #{dep_id}")
        remaining = [d for d in task.dependencies if d != dep_id]
        return self.update_task(task_id, {"dependencies": remaining}, user)

    def add_acceptance_criterion(self, task_id: int, text: str, user: str | None = None) -> Task:
        text = text.strip()
        if not text:
            raise ValidationError("Acceptance criterion text cannot be empty")
        task = self.require_task(task_id)
        criteria = [c.model_dump() for c in task.acceptance_criteria]
        criteria.append(AcceptanceCriterion(text=text).model_dump())
        return self.update_task(task_id, {"acceptance_criteria": criteria}, user)

    def _set_criterion(self, task_id: int, index: int, checked: bool, user: str | None) -> Task:
        task = self.require_task(task_id)
        count = len(task.acceptance_criteria)
        if not 0 <= index < count:
            raise ValidationError(
                f"Criterion index {index} out of range",
                [f"Task #{task_id} has {count} criteria (0-{count - 1})" if count else
                 f"Task #{task_id} has no acceptance criteria"],
            )
        criteria = [c.model_dump() for c in task.acceptance_criteria]
        criteria[index]["checked"] = checked
        return self.update_task(task_id, {"acceptance_criteria": criteria}, user)

    def check_criterion(self, task_id: int, index: int, user: str | None = None) -> Task:
        """Mark the criterion at a 0-based index as met."""
        return self._set_criterion(task_id, index, True, user)

    def uncheck_criterion(self, task_id: int, index: int, user: str | None = None) -> Task:
        return self._set_criterion(task_id, index, False, user)

    def add_ai_plan(self, task_id: int, plan: str, user: str = AI_USER) -> Task:
        return self.update_task(task_id, {"ai_plan": plan}, user)

    def add_ai_note(self, task_id: int, note: str, user: str = AI_USER) -> Task:
        """Append a timestamped line to the task's notes."""
        task = self.require_task(task_id)
        notes = (task.ai_notes or "") + f"**{now_iso()}** - {note}\n"
        return self.update_task(task_id, {"ai_notes": notes}, user)

    def add_ai_documentation(self, task_id: int, documentation: str, user: str = AI_USER) -> Task:
        return self.update_task(task_id, {"ai_documentation": documentation}, user)

    def add_ai_review(self, task_id: int, review: str, user: str = AI_USER) -> Task:
        return self.update_task(task_id, {"ai_review": review}, user)

    # ------------------------------------------------------------------
    # Delete
    # ------------------------------------------------------------------

    def delete_task(self, task_id: int) -> list[int]:
        """
        Delete a task and remove every reference to it from other tasks.

        The file is removed first, then each task that referenced the
        deleted id (dependencies, blocked_by, subtasks, parent_task) is
        rewritten without it.

        Returns:
            Ids of the tasks that were rewritten

        Raises:
            NotFoundError: If the task does not exist
        """
        self.require_task(task_id)
        others = [t for t in self.list_tasks() if t.id != task_id]

        self.repository.delete_task(task_id)
        logger.info(f"Deleted task #{task_id}")

        touched = []
        for peer in others:
            references = (
                task_id in peer.dependencies
                or task_id in peer.blocked_by
                or task_id in peer.subtasks
                or peer.parent_task == task_id
            )
            if not references:
                continue
            peer.dependencies = [i for i in peer.dependencies if i != task_id]
            peer.blocked_by = [i for i in peer.blocked_by if i != task_id]
            peer.subtasks = [i for i in peer.subtasks if i != task_id]
            if peer.parent_task == task_id:
                peer.parent_task = None
            self._write_peer(peer)
            touched.append(peer.id)

        if touched:
            logger.debug(f"Removed references to #{task_id} from {touched}")
        return touched
