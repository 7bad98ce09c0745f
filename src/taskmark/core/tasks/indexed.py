"""
Indexed task repository.

Answers the same contract as FileSystemRepository, but keeps a persistent
SQLite index of lightweight IndexEntry projections so queries don't have
to decode every task file.

The index is refreshed incrementally: ``sync()`` stats every task file and
only re-decodes files that are new or whose modification time is newer
than the one recorded in the index. Unchanged files are never re-read.

Writes go to the task file first, then to the index. The files are always
authoritative; if an index write fails, the next ``sync()`` heals it.
"""

import logging
import sqlite3
from dataclasses import dataclass
from pathlib import Path

from taskmark.core.exceptions import MalformedRecordError, StorageError

from .codec import (
    decode_task,
    encode_task,
    list_task_files,
    read_record,
    remove_record,
    write_record,
)
from .index_store import TaskIndex
from .models import IndexEntry, Task, TaskFilters
from .repository import register_repository

logger = logging.getLogger(__name__)

CACHE_DIR_NAME = ".cache"
INDEX_FILE_NAME = "index.db"


@dataclass
class SyncResult:
    """Counters from the most recent sync."""

    scanned: int = 0
    refreshed: int = 0
    removed: int = 0
    skipped: int = 0


@register_repository("indexed")
class IndexedRepository:
    """
    Task repository backed by an incrementally synced index.

    Example:
        >>> repo = IndexedRepository(Path("backlog"))
        >>> repo.sync()
        >>> high = repo.list_tasks(TaskFilters(priority="high"))
        >>> repo.close()
    """

    def __init__(self, backlog_dir: Path, index_path: Path | None = None):
        """
        Initialize the repository. The index file is not opened until first use.

        Args:
            backlog_dir: Directory holding the task files
            index_path: Explicit index location (defaults to backlog/.cache/index.db)
        """
        self.backlog_dir = Path(backlog_dir)
        self.index_path = (
            Path(index_path)
            if index_path
            else self.backlog_dir / CACHE_DIR_NAME / INDEX_FILE_NAME
        )
        self._index = TaskIndex(self.index_path)
        self._needs_sync = False
        self.last_sync = SyncResult()

    @property
    def repository_name(self) -> str:
        return "indexed"

    def _ensure_open(self) -> None:
        if self._index.is_open:
            return
        if self._index.open():
            # Fresh or recreated index: populate it from the files
            self.sync()

    def _refresh_if_needed(self) -> None:
        self._ensure_open()
        if self._needs_sync:
            self.sync()

    # ------------------------------------------------------------------
    # Index maintenance
    # ------------------------------------------------------------------

    def sync(self) -> None:
        """
        Bring the index up to date with the task files.

        New and modified files are decoded and upserted; entries whose file
        no longer exists are removed. Corrupt or unreadable files are logged
        and left out of the index.
        """
        self._ensure_open()
        result = SyncResult()

        files = list_task_files(self.backlog_dir)
        known = self._index.mtimes()

        for path in files:
            result.scanned += 1
            try:
                mtime = path.stat().st_mtime_ns
            except OSError as e:
                logger.warning(f"Skipping {path}: {e}")
                result.skipped += 1
                continue

            cached_mtime = known.get(str(path))
            if cached_mtime is not None and mtime <= cached_mtime:
                continue

            try:
                task = decode_task(read_record(path), path)
            except (MalformedRecordError, StorageError) as e:
                logger.warning(f"Skipping {path} during index sync: {e}")
                if cached_mtime is not None:
                    self._index.remove_path(path)
                result.skipped += 1
                continue

            self._index.upsert(IndexEntry.from_task(task, mtime))
            result.refreshed += 1
            logger.debug(f"Indexed task #{task.id} from {path.name}")

        existing = {str(p) for p in files}
        for indexed_path in known:
            if indexed_path not in existing:
                self._index.remove_path(indexed_path)
                result.removed += 1
                logger.debug(f"Dropped index entry for deleted file {indexed_path}")

        self._index.commit()
        self._needs_sync = False
        self.last_sync = result
        logger.debug(
            f"Index sync: {result.scanned} scanned, {result.refreshed} refreshed, "
            f"{result.removed} removed, {result.skipped} skipped"
        )

    def rebuild(self) -> None:
        """Clear the index and rebuild it from every task file."""
        self._ensure_open()
        self._index.clear()
        self._index.commit()
        logger.info(f"Rebuilding task index at {self.index_path}")
        self.sync()

    def close(self) -> None:
        """Flush and release the index. Safe to call more than once."""
        self._index.close()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def _hydrate(self, entry: IndexEntry, strict: bool = False) -> Task | None:
        """
        Load the full task behind an index entry.

        Reads the file once to recover the description and collaboration
        fields. If the file changed since it was indexed, the entry is
        refreshed from what was read.

        Args:
            entry: Index entry to hydrate
            strict: Raise decode errors instead of logging and skipping
        """
        path = entry.file_path
        try:
            mtime = path.stat().st_mtime_ns
            task = decode_task(read_record(path), path)
        except FileNotFoundError:
            logger.debug(f"{path} disappeared, dropping it from the index")
            self._index.remove_path(path)
            return None
        except (MalformedRecordError, StorageError) as e:
            if strict:
                raise
            logger.warning(f"Skipping task #{entry.id}: {e}")
            return None

        if mtime > entry.file_mtime:
            self._index.upsert(IndexEntry.from_task(task, mtime))
        return task

    def _find_entry(self, task_id: int) -> IndexEntry | None:
        """Index entry for an id, resyncing when the id is unknown or its file moved."""
        self._refresh_if_needed()
        entry = self._index.get_by_id(task_id)
        if entry is None or not entry.file_path.exists():
            self.sync()
            entry = self._index.get_by_id(task_id)
        return entry

    def list_tasks(self, filters: TaskFilters | None = None) -> list[Task]:
        """
        List tasks matching the filters, sorted by id.

        Runs an incremental sync first, so files added, changed or removed
        outside taskmark are reflected. Equality filters (status, priority,
        milestone, parent) are answered by the index; membership filters
        (assignee, label, keyword) are applied to the candidate entries
        before any file is read.
        """
        self.sync()
        filters = filters or TaskFilters()

        entries = self._index.find(
            status=filters.status,
            priority=filters.priority,
            milestone=filters.milestone,
            parent_task=filters.parent,
        )
        if filters.assignee is not None:
            entries = [e for e in entries if filters.assignee in e.assignees]
        if filters.label is not None:
            entries = [e for e in entries if filters.label in e.labels]
        if filters.keyword is not None:
            entries = [e for e in entries if filters.keyword in e.keywords]

        tasks = []
        for entry in entries:
            task = self._hydrate(entry)
            # The entry may have been stale; check the fresh record too
            if task is not None and filters.matches(task):
                tasks.append(task)

        self._index.commit()
        return sorted(tasks, key=lambda t: t.id)

    def get_task(self, task_id: int) -> Task | None:
        """
        Get a task by id.

        Falls back to a sync when the id is unknown or its file has moved,
        so files added or renamed outside taskmark are still found.

        Raises:
            MalformedRecordError: If the task's file fails to decode
        """
        entry = self._find_entry(task_id)
        if entry is None:
            return None

        task = self._hydrate(entry, strict=True)
        self._index.commit()
        if task is None or task.id != task_id:
            return None
        return task

    def next_id(self) -> int:
        """Return max id + 1 over the freshly synced task set."""
        self.sync()
        max_id = self._index.max_id()
        return (max_id or 0) + 1

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def _index_written(self, task: Task) -> None:
        assert task.file_path is not None
        try:
            mtime = task.file_path.stat().st_mtime_ns
            self._index.upsert(IndexEntry.from_task(task, mtime))
            self._index.commit()
        except (OSError, sqlite3.Error) as e:
            # The file is authoritative; resync before the next read
            logger.warning(f"Index update failed for task #{task.id}, will resync: {e}")
            self._needs_sync = True

    def create_task(self, task: Task) -> None:
        """
        Write a new task file and index it.

        Raises:
            AlreadyExistsError: If the task's file already exists
        """
        if task.file_path is None:
            raise ValueError(f"Task #{task.id} has no storage location")
        self._ensure_open()
        write_record(task.file_path, encode_task(task), exclusive=True)
        self._index_written(task)

    def update_task(self, task: Task) -> None:
        """Replace a task's file and refresh its index entry."""
        if task.file_path is None:
            raise ValueError(f"Task #{task.id} has no storage location")
        self._ensure_open()
        write_record(task.file_path, encode_task(task))
        self._index_written(task)

    def delete_task(self, task_id: int) -> None:
        """Remove a task's file and its index entry. Unknown ids are a no-op."""
        entry = self._find_entry(task_id)
        if entry is None:
            logger.debug(f"Task #{task_id} not found, nothing to delete")
            return

        remove_record(entry.file_path)
        self._index.remove_path(entry.file_path)
        self._index.commit()
