"""
Task repository protocol and registry.

This module defines the TaskRepository protocol that every storage backend
implements, so the Backlog facade can work against a plain directory scan
or an indexed cache without knowing which one it holds.
"""

from collections.abc import Callable
from pathlib import Path
from typing import Protocol, runtime_checkable

from .models import Task, TaskFilters


@runtime_checkable
class TaskRepository(Protocol):
    """
    Protocol for task repository implementations.

    Repositories are responsible for physical persistence only:
    - Reading task files and answering filtered queries
    - Writing complete task records to their storage location
    - Computing the next free task id

    They never propagate relationship changes between tasks; that is the
    job of the Backlog facade.
    """

    def list_tasks(self, filters: TaskFilters | None = None) -> list[Task]:
        """
        List all tasks matching the filters, ascending by id.

        Args:
            filters: Conjunction of constraints; None or empty means all tasks

        Returns:
            Matching tasks sorted by id
        """
        ...

    def get_task(self, task_id: int) -> Task | None:
        """
        Get a specific task by id.

        Returns:
            Task if found, None otherwise
        """
        ...

    def create_task(self, task: Task) -> None:
        """
        Persist a new task.

        The task must already carry its id and storage location.

        Raises:
            AlreadyExistsError: If the location already exists on disk
        """
        ...

    def update_task(self, task: Task) -> None:
        """
        Replace the full record at the task's storage location.

        The task passed in is the complete desired post-state.
        """
        ...

    def delete_task(self, task_id: int) -> None:
        """Remove a task's file. Missing tasks are a no-op."""
        ...

    def next_id(self) -> int:
        """Return one more than the highest existing id, or 1 if there are none."""
        ...

    def sync(self) -> None:
        """Refresh any cached state from the files (no-op without a cache)."""
        ...

    def rebuild(self) -> None:
        """Discard and rebuild any cached state (no-op without a cache)."""
        ...

    def close(self) -> None:
        """Release held resources. Safe to call more than once."""
        ...

    @property
    def repository_name(self) -> str:
        """Name this repository is registered under (e.g. 'filesystem')."""
        ...


# Repository registry
_repositories: dict[str, Callable[[Path], TaskRepository]] = {}


def register_repository(
    name: str,
) -> Callable[[type], type]:
    """
    Decorator to register a repository implementation.

    Usage:
        @register_repository("filesystem")
        class FileSystemRepository:
            def __init__(self, backlog_dir: Path):
                ...

    Args:
        name: Repository name (e.g., 'filesystem', 'indexed')
    """

    def decorator(repository_class: type) -> type:
        _repositories[name] = repository_class
        return repository_class

    return decorator


def get_repository(name: str, backlog_dir: Path) -> TaskRepository:
    """
    Instantiate a registered repository for a backlog directory.

    Raises:
        ValueError: If no repository is registered under that name
    """
    repository_class = _repositories.get(name)
    if repository_class is None:
        raise ValueError(
            f"Repository '{name}' not registered. "
            f"Available repositories: {', '.join(_repositories.keys())}"
        )
    return repository_class(backlog_dir)


def list_repositories() -> list[str]:
    """List all registered repository names."""
    return list(_repositories.keys())
