"""
Exceptions raised by the taskmark core.

Exception Hierarchy:
    TaskmarkError (base)
    ├── ValidationError (invalid field value or update, carries suggestions)
    ├── NotFoundError (referenced task does not exist)
    ├── MalformedRecordError (task file failed to decode)
    ├── StorageError (underlying file operation failed)
    │   └── AlreadyExistsError (create on an existing location)
    ├── ConfigError (config file unreadable or invalid)
    │   └── BacklogNotInitializedError (no backlog/config.yml)

Codec and repository errors propagate to the caller unmodified. Only the
Backlog facade attaches user-facing suggestions (ValidationError).

Example:
    >>> from taskmark.core.exceptions import NotFoundError
    >>> try:
    ...     raise NotFoundError(42)
    ... except NotFoundError as e:
    ...     print(e.task_id)
    42
"""

from pathlib import Path


class TaskmarkError(Exception):
    """
    Base exception for all taskmark errors.

    Attributes:
        message: Human-readable error message
        context: Additional context as keyword arguments
    """

    def __init__(self, message: str, **context: object) -> None:
        super().__init__(message)
        self.message = message
        self.context = context

    def __str__(self) -> str:
        return self.message


class ValidationError(TaskmarkError):
    """
    Raised when a status, priority or partial update is invalid.

    Always raised before any write, so nothing is partially applied.

    Attributes:
        suggestions: Lines of remediation help for the user
    """

    def __init__(
        self, message: str, suggestions: list[str] | None = None, **context: object
    ) -> None:
        super().__init__(message, **context)
        self.suggestions = list(suggestions or [])


class NotFoundError(TaskmarkError):
    """
    Raised when a referenced task (target, parent or dependency) does not exist.

    Attributes:
        task_id: The id that could not be resolved
    """

    def __init__(self, task_id: int, message: str | None = None, **context: object) -> None:
        super().__init__(message or f"Task #{task_id} not found", **context)
        self.task_id = task_id


class MalformedRecordError(TaskmarkError):
    """
    Raised when a task file cannot be decoded.

    Attributes:
        path: The offending file, when known
        reason: Why decoding failed
    """

    def __init__(self, path: Path | None, reason: str, **context: object) -> None:
        where = f" {path}" if path else ""
        super().__init__(f"Malformed task record{where}: {reason}", **context)
        self.path = path
        self.reason = reason


class StorageError(TaskmarkError):
    """
    Raised when a file operation on the backlog fails.

    Attributes:
        path: The path the failing operation touched
        reason: Underlying error text
    """

    def __init__(self, path: Path, reason: str, **context: object) -> None:
        super().__init__(f"Storage error at {path}: {reason}", **context)
        self.path = path
        self.reason = reason


class AlreadyExistsError(StorageError):
    """Raised when creating a task at a location that already exists on disk."""

    def __init__(self, path: Path, **context: object) -> None:
        super().__init__(path, "file already exists", **context)


class ConfigError(TaskmarkError):
    """Raised when the backlog configuration cannot be read or validated."""

    pass


class BacklogNotInitializedError(ConfigError):
    """Raised when no backlog exists in the project directory."""

    def __init__(self, project_dir: Path) -> None:
        super().__init__(
            f"Backlog not initialized in {project_dir}",
            project_dir=project_dir,
        )
        self.project_dir = project_dir
