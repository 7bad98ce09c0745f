"""
Plain file system repository.

Scans the backlog directory and decodes every task file on each call. Holds
no state between calls, which makes it the correctness baseline the indexed
repository is checked against.
"""

import logging
from pathlib import Path

from .codec import (
    decode_task,
    encode_task,
    list_task_files,
    read_record,
    remove_record,
    write_record,
)
from .models import Task, TaskFilters
from .repository import register_repository

logger = logging.getLogger(__name__)


@register_repository("filesystem")
class FileSystemRepository:
    """
    Task repository that reads every task file on every operation.

    Example:
        >>> repo = FileSystemRepository(Path("backlog"))
        >>> todo = repo.list_tasks(TaskFilters(status="To Do"))
        >>> task = repo.get_task(3)
    """

    def __init__(self, backlog_dir: Path):
        """
        Initialize the repository.

        Args:
            backlog_dir: Directory holding the task files
        """
        self.backlog_dir = Path(backlog_dir)

    @property
    def repository_name(self) -> str:
        return "filesystem"

    def _load_all(self) -> list[Task]:
        tasks = []
        for path in list_task_files(self.backlog_dir):
            tasks.append(decode_task(read_record(path), path))
        return tasks

    def list_tasks(self, filters: TaskFilters | None = None) -> list[Task]:
        """
        List tasks matching the filters, sorted by id.

        Raises:
            MalformedRecordError: If any task file fails to decode
            StorageError: If the directory or a file cannot be read
        """
        tasks = self._load_all()
        if filters is not None:
            tasks = [t for t in tasks if filters.matches(t)]
        return sorted(tasks, key=lambda t: t.id)

    def get_task(self, task_id: int) -> Task | None:
        for task in self.list_tasks():
            if task.id == task_id:
                return task
        return None

    def create_task(self, task: Task) -> None:
        if task.file_path is None:
            raise ValueError(f"Task #{task.id} has no storage location")
        write_record(task.file_path, encode_task(task), exclusive=True)

    def update_task(self, task: Task) -> None:
        if task.file_path is None:
            raise ValueError(f"Task #{task.id} has no storage location")
        write_record(task.file_path, encode_task(task))

    def delete_task(self, task_id: int) -> None:
        task = self.get_task(task_id)
        if task is None:
            logger.debug(f"Task #{task_id} not found, nothing to delete")
            return
        assert task.file_path is not None
        remove_record(task.file_path)

    def next_id(self) -> int:
        tasks = self._load_all()
        if not tasks:
            return 1
        return max(t.id for t in tasks) + 1

    def sync(self) -> None:
        """No cache to refresh."""

    def rebuild(self) -> None:
        """No cache to rebuild."""

    def close(self) -> None:
        """Nothing to release."""
