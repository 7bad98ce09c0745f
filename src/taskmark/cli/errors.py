"""
Standardized error handling and exit codes for the taskmark CLI.

This module provides consistent error messaging with actionable guidance
and standardized exit codes across all CLI commands.
"""

from collections.abc import Iterator
from contextlib import contextmanager
from enum import IntEnum
from pathlib import Path

import typer
from rich.console import Console

from taskmark.core.exceptions import (
    BacklogNotInitializedError,
    ConfigError,
    NotFoundError,
    TaskmarkError,
    ValidationError,
)
from taskmark.core.tasks.service import Backlog

console = Console()


class ExitCode(IntEnum):
    """Standard exit codes for taskmark CLI operations."""

    SUCCESS = 0
    """Operation completed successfully."""

    GENERAL_ERROR = 1
    """Storage failure or other unexpected error."""

    USER_ERROR = 2
    """Invalid input, unknown task, or a blocked close (actionable by user)."""

    SIGINT = 130
    """Terminated by SIGINT (Ctrl+C) - Unix standard."""


def print_error(
    problem: str,
    *,
    reason: str | None = None,
    solution: str | None = None,
) -> None:
    """
    Print a standardized error message with actionable guidance.

    Args:
        problem: Brief description of what went wrong
        reason: Optional explanation of why it happened
        solution: Optional command or action to fix it

    Example:
        >>> print_error(
        ...     "Task #12 not found",
        ...     solution="taskmark task list  # to see available tasks",
        ... )
    """
    console.print(f"[red]Error:[/red] {problem}")

    if reason:
        console.print(f"[dim]{reason}[/dim]")

    if solution:
        console.print(f"[cyan]→ Try:[/cyan] {solution}")


def print_task_not_found_error(task_id: int) -> None:
    """Print error when a specific task is not found."""
    print_error(
        f"Task #{task_id} not found",
        reason="The task ID may be incorrect or the task may have been deleted",
        solution="taskmark task list  # to see available tasks",
    )


def print_backlog_not_initialized_error(project_dir: Path) -> None:
    """Print error when the project has no backlog."""
    print_error(
        f"No backlog found in {project_dir}",
        reason="Tasks are stored in backlog/ next to backlog/config.yml",
        solution="taskmark init",
    )


def print_validation_error(error: ValidationError) -> None:
    """Print a validation error with its remediation suggestions."""
    console.print(f"[red]Error:[/red] {error.message}")
    for line in error.suggestions:
        console.print(f"[dim]{line}[/dim]" if line else "")


def handle_error(error: TaskmarkError) -> None:
    """
    Report a taskmark error and exit with the matching code.

    Raises:
        typer.Exit: Always
    """
    if isinstance(error, BacklogNotInitializedError):
        print_backlog_not_initialized_error(error.project_dir)
        raise typer.Exit(ExitCode.USER_ERROR)
    if isinstance(error, NotFoundError):
        print_error(
            error.message,
            solution="taskmark task list  # to see available tasks",
        )
        raise typer.Exit(ExitCode.USER_ERROR)
    if isinstance(error, ValidationError):
        print_validation_error(error)
        raise typer.Exit(ExitCode.USER_ERROR)
    if isinstance(error, ConfigError):
        print_error(error.message, solution="Check backlog/config.yml")
        raise typer.Exit(ExitCode.USER_ERROR)

    print_error(error.message)
    raise typer.Exit(ExitCode.GENERAL_ERROR)


@contextmanager
def backlog_session(project_dir: Path | None = None) -> Iterator[Backlog]:
    """
    Open the backlog for a command and close it on every exit path.

    Taskmark errors raised inside the block are reported with
    ``handle_error`` and turned into an exit code.
    """
    try:
        with Backlog.load(project_dir) as backlog:
            yield backlog
    except TaskmarkError as e:
        handle_error(e)


__all__ = [
    "ExitCode",
    "backlog_session",
    "console",
    "handle_error",
    "print_backlog_not_initialized_error",
    "print_error",
    "print_task_not_found_error",
    "print_validation_error",
]
