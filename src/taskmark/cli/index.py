"""
Taskmark CLI - Index commands.
"""

import typer

from taskmark.cli.errors import backlog_session, console
from taskmark.core.tasks.indexed import IndexedRepository

app = typer.Typer(help="Maintain the task index cache")


def _report(repository: object) -> None:
    if isinstance(repository, IndexedRepository):
        result = repository.last_sync
        console.print(
            f"[dim]{result.scanned} scanned, {result.refreshed} refreshed, "
            f"{result.removed} removed, {result.skipped} skipped[/dim]"
        )
    else:
        console.print("[dim]Index disabled (performance.use_index is false)[/dim]")


@app.command()
def sync() -> None:
    """Refresh the index from task files that changed."""
    with backlog_session() as backlog:
        backlog.sync_index()
        _report(backlog.repository)
    console.print("[green]Index synced[/green]")


@app.command()
def rebuild() -> None:
    """Discard the index and rebuild it from every task file."""
    with backlog_session() as backlog:
        backlog.rebuild_index()
        _report(backlog.repository)
    console.print("[green]Index rebuilt[/green]")
