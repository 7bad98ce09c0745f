"""
Taskmark CLI - Init command.
"""

from pathlib import Path

import typer

from taskmark.cli.errors import ExitCode, console, print_error
from taskmark.core.config.loader import init_backlog
from taskmark.core.exceptions import ConfigError


def main(
    name: str | None = typer.Option(None, "--name", "-n", help="Project name"),
) -> None:
    """
    Create backlog/ with a default configuration.

    Examples:
        taskmark init
        taskmark init --name "Website redesign"
    """
    project_dir = Path.cwd()
    try:
        config = init_backlog(project_dir, name)
    except ConfigError as e:
        print_error(e.message, solution="taskmark task list  # the backlog is ready to use")
        raise typer.Exit(ExitCode.USER_ERROR)

    console.print(f"[green]Initialized backlog:[/green] {config.project.name}")
    console.print(f"[dim]Statuses: {', '.join(config.board.columns)}[/dim]")
