"""
Task record codec.

Converts between Task models and task files: a YAML frontmatter block
followed by a blank line and the Markdown description. Uses
python-frontmatter for parsing and serialization.

Decoding defaults every absent field (empty lists, None scalars) so callers
can rely on presence. Encoding omits unset values entirely, keeping files
minimal and diff-friendly. The storage location is never part of the
content; it is attached by whoever read the file.
"""

import logging
import os
import re
import tempfile
import unicodedata
from pathlib import Path
from typing import Any

import frontmatter
import yaml
from pydantic import ValidationError as PydanticValidationError

from taskmark.core.exceptions import AlreadyExistsError, MalformedRecordError, StorageError
from taskmark.core.tasks.models import Task

logger = logging.getLogger(__name__)

TASK_FILE_PREFIX = "task-"
TASK_FILE_SUFFIX = ".md"

# Characters rejected by common filesystems, plus control characters
_UNSAFE_CHARS = re.compile(r'[<>:"/\\|?*\x00-\x1f]')
_WHITESPACE = re.compile(r"\s+")


def decode_task(raw_text: str, file_path: Path | None = None) -> Task:
    """
    Parse a task file's content into a fully-defaulted Task.

    Args:
        raw_text: Complete file content
        file_path: Storage location to attach to the result

    Returns:
        Task with every field present

    Raises:
        MalformedRecordError: If the frontmatter is not valid YAML, is missing
            an integer ``id``, or fails model validation
    """
    try:
        post = frontmatter.loads(raw_text)
    except yaml.YAMLError as e:
        raise MalformedRecordError(file_path, f"invalid frontmatter: {e}") from e

    metadata: dict[str, Any] = dict(post.metadata)
    if "id" not in metadata:
        raise MalformedRecordError(file_path, "missing 'id' field")
    if "title" not in metadata:
        raise MalformedRecordError(file_path, "missing 'title' field")

    metadata["description"] = post.content
    # Never trust a location written into the content
    metadata.pop("file_path", None)

    try:
        task = Task.model_validate(metadata)
    except PydanticValidationError as e:
        raise MalformedRecordError(file_path, str(e)) from e

    task.file_path = file_path
    return task


def encode_task(task: Task) -> str:
    """
    Serialize a task to file content.

    Fields whose value is None are omitted from the frontmatter. Keys are
    written in model field order, followed by any unknown keys read from
    the file.
    """
    metadata = task.model_dump(mode="json", exclude={"description"}, exclude_none=True)
    post = frontmatter.Post(task.description)
    post.metadata.update(metadata)
    return frontmatter.dumps(post, sort_keys=False) + "\n"


def sanitize_filename(name: str) -> str:
    """
    Make a file name safe for common filesystems.

    Strips accents, removes forbidden characters and collapses whitespace.

    Example:
        >>> sanitize_filename('task-001 - Réparer: "login"?.md')
        'task-001 - Reparer login.md'
    """
    decomposed = unicodedata.normalize("NFD", name)
    without_marks = "".join(c for c in decomposed if not unicodedata.combining(c))
    cleaned = _UNSAFE_CHARS.sub("", without_marks)
    return _WHITESPACE.sub(" ", cleaned).strip()


def format_task_id(task_id: int, zero_padded: bool = True) -> str:
    """Format a task id for file names (zero-padded to 3 digits by default)."""
    return f"{task_id:03d}" if zero_padded else str(task_id)


def task_filename(task_id: int, title: str, zero_padded: bool = True) -> str:
    """Build the deterministic file name for a task."""
    return sanitize_filename(
        f"{TASK_FILE_PREFIX}{format_task_id(task_id, zero_padded)} - {title}{TASK_FILE_SUFFIX}"
    )


def is_task_file(path: Path) -> bool:
    """Return True if the path names a task file."""
    return path.name.startswith(TASK_FILE_PREFIX) and path.name.endswith(TASK_FILE_SUFFIX)


def list_task_files(backlog_dir: Path) -> list[Path]:
    """
    List task files in a backlog directory, sorted by name.

    Raises:
        StorageError: If the directory cannot be listed
    """
    try:
        return sorted(p for p in backlog_dir.iterdir() if p.is_file() and is_task_file(p))
    except OSError as e:
        raise StorageError(backlog_dir, str(e)) from e


def read_record(path: Path) -> str:
    """
    Read a task file's raw content.

    Raises:
        StorageError: If the file cannot be read
    """
    try:
        return path.read_text(encoding="utf-8")
    except OSError as e:
        raise StorageError(path, str(e)) from e


def write_record(path: Path, content: str, *, exclusive: bool = False) -> None:
    """
    Write a task file, replacing it atomically.

    Writes to a temporary file in the same directory and renames it over the
    target so readers never see a half-written file.

    Args:
        path: Destination file
        content: Full file content
        exclusive: If True, refuse to overwrite an existing file

    Raises:
        AlreadyExistsError: If exclusive and the file exists
        StorageError: If the write fails
    """
    if exclusive and path.exists():
        raise AlreadyExistsError(path)

    try:
        fd, temp_path = tempfile.mkstemp(dir=path.parent, prefix=".task_", suffix=".md.tmp")
    except OSError as e:
        raise StorageError(path, str(e)) from e

    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
        os.replace(temp_path, path)
    except OSError as e:
        try:
            os.unlink(temp_path)
        except OSError:
            pass
        raise StorageError(path, str(e)) from e

    logger.debug(f"Wrote {path}")


def remove_record(path: Path) -> None:
    """
    Delete a task file; a missing file is not an error.

    Raises:
        StorageError: If the file exists but cannot be removed
    """
    try:
        path.unlink()
    except FileNotFoundError:
        logger.debug(f"{path} already removed")
    except OSError as e:
        raise StorageError(path, str(e)) from e
