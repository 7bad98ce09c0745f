"""
Taskmark CLI - Board configuration commands.
"""

import typer

from taskmark.cli.errors import backlog_session, console

app = typer.Typer(help="Inspect and extend the board configuration")


@app.command()
def statuses() -> None:
    """List the allowed statuses, in board order."""
    with backlog_session() as backlog:
        values = backlog.get_valid_statuses()
        completed = set(backlog.config.board.completed_statuses)
    for value in values:
        suffix = " [dim](completed)[/dim]" if value in completed else ""
        console.print(f"  • {value}{suffix}")


@app.command()
def priorities() -> None:
    """List the allowed priorities."""
    with backlog_session() as backlog:
        values = backlog.get_valid_priorities()
    for value in values:
        console.print(f"  • {value}")


@app.command("add-status")
def add_status(name: str = typer.Argument(..., help="Status to add")) -> None:
    """Append a status column to the board."""
    with backlog_session() as backlog:
        values = backlog.add_status(name)
    console.print(f"[green]Statuses:[/green] {', '.join(values)}")


@app.command("add-priority")
def add_priority(name: str = typer.Argument(..., help="Priority to add")) -> None:
    """Append a priority to the board."""
    with backlog_session() as backlog:
        values = backlog.add_priority(name)
    console.print(f"[green]Priorities:[/green] {', '.join(values)}")
