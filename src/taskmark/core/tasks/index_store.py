"""
SQLite storage for the task index.

The index lives in a single SQLite file under the backlog's cache
directory (``backlog/.cache/index.db``). It holds one row per task file:
the columns used for equality filters plus the full IndexEntry as JSON.

The index is derived data. Whenever the schema version changes or the
file turns out not to be a database, it is dropped and recreated, and the
caller repopulates it from the task files.

Usage:
    index = TaskIndex(Path("backlog/.cache/index.db"))
    created = index.open()
    index.upsert(entry)
    index.commit()
    index.close()
"""

import logging
import sqlite3
from pathlib import Path
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from .models import IndexEntry

logger = logging.getLogger(__name__)

# Schema version; bump to force every existing index to be rebuilt
SCHEMA_VERSION = 2

SCHEMA_DDL = """
-- Schema version tracking
CREATE TABLE IF NOT EXISTS schema_info (
    version INTEGER PRIMARY KEY,
    applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    description TEXT
);

-- One row per task file
CREATE TABLE IF NOT EXISTS task_index (
    file_path TEXT PRIMARY KEY,
    id INTEGER NOT NULL,
    title TEXT NOT NULL,
    status TEXT NOT NULL,
    priority TEXT NOT NULL,
    milestone TEXT,
    parent_task INTEGER,
    file_mtime INTEGER NOT NULL,
    entry_json TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_task_index_id ON task_index(id);
CREATE INDEX IF NOT EXISTS idx_task_index_status ON task_index(status);
CREATE INDEX IF NOT EXISTS idx_task_index_priority ON task_index(priority);
CREATE INDEX IF NOT EXISTS idx_task_index_milestone ON task_index(milestone);
CREATE INDEX IF NOT EXISTS idx_task_index_parent ON task_index(parent_task);
"""


def dict_factory(cursor: sqlite3.Cursor, row: tuple[Any, ...]) -> dict[str, Any]:
    """Row factory that returns rows as dictionaries keyed by column name."""
    fields = [column[0] for column in cursor.description]
    return dict(zip(fields, row))


def configure_connection(conn: sqlite3.Connection) -> None:
    """
    Configure a SQLite connection for the index.

    Settings applied:
    - WAL mode: readers don't block the writer
    - dict_factory: dict-like row access
    """
    conn.execute("PRAGMA journal_mode=WAL")
    conn.row_factory = dict_factory


def get_schema_version(conn: sqlite3.Connection) -> int | None:
    """Return the stored schema version, or None if there is no schema yet."""
    try:
        row = conn.execute("SELECT MAX(version) AS version FROM schema_info").fetchone()
    except sqlite3.OperationalError:
        return None
    if row is None:
        return None
    version = row["version"] if isinstance(row, dict) else row[0]
    return int(version) if version is not None else None


def needs_migration(conn: sqlite3.Connection) -> bool:
    """Return True if the index schema is missing or from another version."""
    return get_schema_version(conn) != SCHEMA_VERSION


def create_schema(conn: sqlite3.Connection) -> None:
    """
    Create the index schema, discarding any previous index tables.

    The index holds nothing that can't be rebuilt from the task files, so
    migrations simply start over.
    """
    conn.executescript(
        """
        DROP TABLE IF EXISTS task_index;
        DROP TABLE IF EXISTS schema_info;
        """
    )
    conn.executescript(SCHEMA_DDL)
    conn.execute(
        "INSERT OR REPLACE INTO schema_info (version, description) VALUES (?, ?)",
        (SCHEMA_VERSION, "Task index keyed by file path"),
    )
    conn.commit()


class TaskIndex:
    """
    Handle on the persisted task index.

    Opened lazily, explicitly closed. ``close()`` commits pending writes and
    may be called any number of times; the next access reopens the file.
    """

    def __init__(self, db_path: Path):
        self.db_path = Path(db_path)
        self._conn: sqlite3.Connection | None = None

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    @property
    def conn(self) -> sqlite3.Connection:
        if self._conn is None:
            self.open()
        assert self._conn is not None
        return self._conn

    def open(self) -> bool:
        """
        Open the index file, creating or recreating the schema as needed.

        Returns:
            True if the schema was (re)created and the index is empty
        """
        if self._conn is not None:
            return False

        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        try:
            self._conn, created = self._connect()
        except sqlite3.DatabaseError as e:
            logger.warning(f"Task index at {self.db_path} is unreadable ({e}), recreating it")
            self._discard_files()
            self._conn, created = self._connect()

        if created:
            logger.info(f"Created task index at {self.db_path}")
        return created

    def _connect(self) -> tuple[sqlite3.Connection, bool]:
        conn = sqlite3.connect(str(self.db_path))
        try:
            configure_connection(conn)
            created = needs_migration(conn)
            if created:
                create_schema(conn)
        except sqlite3.DatabaseError:
            conn.close()
            raise
        return conn, created

    def _discard_files(self) -> None:
        for suffix in ("", "-wal", "-shm"):
            Path(f"{self.db_path}{suffix}").unlink(missing_ok=True)

    def commit(self) -> None:
        if self._conn is not None:
            self._conn.commit()

    def close(self) -> None:
        """Commit pending writes and release the file handle."""
        if self._conn is None:
            return
        try:
            self._conn.commit()
        finally:
            self._conn.close()
            self._conn = None

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def _to_entries(self, rows: list[dict[str, Any]]) -> list[IndexEntry]:
        entries = []
        for row in rows:
            try:
                entries.append(IndexEntry.model_validate_json(row["entry_json"]))
            except PydanticValidationError as e:
                # Drop the row; the next sync re-reads the file
                logger.warning(f"Discarding unreadable index row for {row['file_path']}: {e}")
                self.remove_path(Path(row["file_path"]))
        return entries

    def find(
        self,
        status: str | None = None,
        priority: str | None = None,
        milestone: str | None = None,
        parent_task: int | None = None,
    ) -> list[IndexEntry]:
        """Return entries matching the equality constraints, ascending by id."""
        clauses: list[str] = []
        params: list[Any] = []
        for column, value in (
            ("status", status),
            ("priority", priority),
            ("milestone", milestone),
            ("parent_task", parent_task),
        ):
            if value is not None:
                clauses.append(f"{column} = ?")
                params.append(value)

        query = "SELECT file_path, entry_json FROM task_index"
        if clauses:
            query += " WHERE " + " AND ".join(clauses)
        query += " ORDER BY id, file_path"
        return self._to_entries(self.conn.execute(query, params).fetchall())

    def get_by_id(self, task_id: int) -> IndexEntry | None:
        rows = self.conn.execute(
            "SELECT file_path, entry_json FROM task_index WHERE id = ? ORDER BY file_path",
            (task_id,),
        ).fetchall()
        entries = self._to_entries(rows)
        return entries[0] if entries else None

    def mtimes(self) -> dict[str, int]:
        """Return the stored modification time for every indexed file path."""
        rows = self.conn.execute("SELECT file_path, file_mtime FROM task_index").fetchall()
        return {row["file_path"]: row["file_mtime"] for row in rows}

    def max_id(self) -> int | None:
        row = self.conn.execute("SELECT MAX(id) AS max_id FROM task_index").fetchone()
        return row["max_id"] if row else None

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def upsert(self, entry: IndexEntry) -> None:
        """Insert or overwrite the row for the entry's file."""
        self.conn.execute(
            """
            INSERT INTO task_index (
                file_path, id, title, status, priority, milestone, parent_task,
                file_mtime, entry_json
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(file_path) DO UPDATE SET
                id = excluded.id,
                title = excluded.title,
                status = excluded.status,
                priority = excluded.priority,
                milestone = excluded.milestone,
                parent_task = excluded.parent_task,
                file_mtime = excluded.file_mtime,
                entry_json = excluded.entry_json
            """,
            (
                str(entry.file_path),
                entry.id,
                entry.title,
                entry.status,
                entry.priority,
                entry.milestone,
                entry.parent_task,
                entry.file_mtime,
                entry.model_dump_json(),
            ),
        )

    def remove_path(self, file_path: Path | str) -> None:
        self.conn.execute("DELETE FROM task_index WHERE file_path = ?", (str(file_path),))

    def clear(self) -> None:
        self.conn.execute("DELETE FROM task_index")
