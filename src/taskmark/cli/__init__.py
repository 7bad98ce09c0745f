"""
Taskmark CLI - Main application entry point.

This module sets up the Typer CLI application with all subcommands.
"""

import logging
import sys

import typer
from rich.console import Console

from taskmark import __version__
from taskmark.cli import config, index, init_cmd, task
from taskmark.cli.errors import ExitCode

app = typer.Typer(
    name="taskmark",
    help="Markdown task backlog with dependency tracking",
    no_args_is_help=True,
    context_settings={"help_option_names": ["--help", "-h"]},
)

console = Console()


@app.callback()
def main(
    ctx: typer.Context,
    debug: bool = typer.Option(
        False,
        "--debug",
        help="Enable debug output with detailed logging",
    ),
) -> None:
    """
    Taskmark - tasks as Markdown files.

    Quick Start:
        1. taskmark init                       # Create backlog/
        2. taskmark task create "Title"        # Create a task
        3. taskmark task list                  # See what's there
        4. taskmark task close 1               # Close it when done
    """
    level = logging.DEBUG if debug else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )
    ctx.obj = {"debug": debug}


app.command(name="init")(init_cmd.main)
app.add_typer(task.app, name="task")
app.add_typer(index.app, name="index")
app.add_typer(config.app, name="config")


@app.command()
def version() -> None:
    """Show taskmark version and exit."""
    console.print(f"taskmark version {__version__}")
    raise typer.Exit(0)


def cli_main() -> None:
    """Main CLI entry point."""
    try:
        app()
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted[/yellow]")
        sys.exit(ExitCode.SIGINT)


__all__ = ["app", "cli_main"]
