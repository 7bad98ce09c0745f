"""
Taskmark CLI - Task commands.

Thin surface over the Backlog facade: parse options, call one facade
operation, print the result.
"""

import json

import typer
from rich.table import Table

from taskmark.cli.errors import ExitCode, backlog_session, console, print_task_not_found_error
from taskmark.core.tasks.close import CloseValidationResult
from taskmark.core.tasks.models import AcceptanceCriterion, Task, TaskData, TaskFilters

app = typer.Typer(help="Create, inspect and change tasks")


def _print_task_line(task: Task) -> None:
    console.print(f"  #{task.id} {task.title} [dim]({task.status})[/dim]")


def _print_json(data: object) -> None:
    console.print_json(json.dumps(data))


def _split_keywords(values: list[str] | None) -> list[str]:
    # `-k auth,login -k api` gives three keywords
    keywords: list[str] = []
    for value in values or []:
        for part in value.split(","):
            part = part.strip()
            if part and part not in keywords:
                keywords.append(part)
    return keywords


def _print_close_result(result: CloseValidationResult) -> None:
    for issue in result.blocking:
        console.print(f"[red]✗[/red] {issue.message}")
        for ref in issue.tasks:
            console.print(f"    #{ref.id} {ref.title} [dim]({ref.status})[/dim]")
        for criterion in issue.criteria:
            console.print(f"    [ ] {criterion.text}")
    for warning in result.warnings:
        console.print(f"[yellow]![/yellow] {warning.message}")
        if warning.details:
            console.print(f"    [dim]{warning.details}[/dim]")


@app.command()
def create(
    title: str = typer.Argument(..., help="Task title"),
    description: str = typer.Option("", "--description", "-d", help="Task description"),
    status: str | None = typer.Option(None, "--status", "-s", help="Initial status"),
    priority: str | None = typer.Option(None, "--priority", "-p", help="Priority"),
    milestone: str | None = typer.Option(None, "--milestone", "-m", help="Milestone"),
    assignees: list[str] | None = typer.Option(
        None, "--assignee", "-a", help="Assignee (can be repeated)"
    ),
    labels: list[str] | None = typer.Option(None, "--label", "-l", help="Label (can be repeated)"),
    keywords: list[str] | None = typer.Option(
        None, "--keyword", "-k", help="Search keyword (can be repeated or comma-separated)"
    ),
    parent: int | None = typer.Option(None, "--parent", help="Parent task ID"),
    depends_on: list[int] | None = typer.Option(
        None, "--depends-on", help="Task ID this task depends on (can be repeated)"
    ),
    criteria: list[str] | None = typer.Option(
        None, "--criterion", "-c", help="Acceptance criterion (can be repeated)"
    ),
    start_date: str | None = typer.Option(None, "--start", help="Planned start date"),
    end_date: str | None = typer.Option(None, "--end", help="Planned end date"),
    user: str | None = typer.Option(None, "--user", "-u", help="Recorded as the author"),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
) -> None:
    """
    Create a new task.

    Examples:
        taskmark task create "Fix login bug" --priority high
        taskmark task create "Write tests" --parent 3 --depends-on 4
        taskmark task create "Ship it" -c "Changelog updated" -c "Tagged"
        taskmark task create "Login form" -k auth,login
    """
    data = TaskData(
        title=title,
        description=description,
        status=status,
        priority=priority,
        milestone=milestone,
        assignees=assignees or [],
        labels=labels or [],
        keywords=_split_keywords(keywords),
        parent_task=parent,
        dependencies=depends_on or [],
        acceptance_criteria=[AcceptanceCriterion(text=c) for c in criteria or []],
        start_date=start_date,
        end_date=end_date,
    )
    with backlog_session() as backlog:
        task = backlog.create_task(data, user=user)

    if json_output:
        _print_json(task.model_dump(mode="json"))
        return
    console.print(f"[green]Created:[/green] #{task.id} {task.title}")
    if task.parent_task is not None:
        console.print(f"  Parent: #{task.parent_task}")


@app.command("list")
def list_tasks(
    status: str | None = typer.Option(None, "--status", "-s", help="Filter by status"),
    priority: str | None = typer.Option(None, "--priority", "-p", help="Filter by priority"),
    assignee: str | None = typer.Option(None, "--assignee", "-a", help="Filter by assignee"),
    label: str | None = typer.Option(None, "--label", "-l", help="Filter by label"),
    keyword: str | None = typer.Option(None, "--keyword", "-k", help="Filter by keyword"),
    milestone: str | None = typer.Option(None, "--milestone", "-m", help="Filter by milestone"),
    parent: int | None = typer.Option(None, "--parent", help="Filter by parent task ID"),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
) -> None:
    """
    List tasks with optional filters.

    Examples:
        taskmark task list
        taskmark task list --status "In Progress" --assignee alice
        taskmark task list --parent 3
        taskmark task list --keyword auth
    """
    filters = TaskFilters(
        status=status,
        priority=priority,
        assignee=assignee,
        label=label,
        keyword=keyword,
        milestone=milestone,
        parent=parent,
    )
    with backlog_session() as backlog:
        tasks = backlog.list_tasks(filters)

    if json_output:
        _print_json([t.model_dump(mode="json") for t in tasks])
        return

    if not tasks:
        console.print("[dim]No tasks found[/dim]")
        return

    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("ID", style="dim")
    table.add_column("Status", width=12)
    table.add_column("Priority", width=8)
    table.add_column("Title", overflow="fold")

    for task in tasks:
        table.add_row(str(task.id), task.status, task.priority, task.title)

    console.print(table)
    console.print(f"\n[dim]Total: {len(tasks)} tasks[/dim]")


@app.command()
def view(
    task_id: int = typer.Argument(..., help="Task ID to display"),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
) -> None:
    """Show detailed information about a task."""
    with backlog_session() as backlog:
        task = backlog.get_task(task_id)

    if task is None:
        print_task_not_found_error(task_id)
        raise typer.Exit(ExitCode.USER_ERROR)

    if json_output:
        _print_json(task.model_dump(mode="json"))
        return

    console.print(f"[bold cyan]#{task.id}[/bold cyan] - {task.title}")
    console.print(f"[dim]Status:[/dim] {task.status}")
    console.print(f"[dim]Priority:[/dim] {task.priority}")
    if task.milestone:
        console.print(f"[dim]Milestone:[/dim] {task.milestone}")
    if task.assignees:
        console.print(f"[dim]Assignees:[/dim] {', '.join(task.assignees)}")
    if task.labels:
        console.print(f"[dim]Labels:[/dim] {', '.join(task.labels)}")
    if task.keywords:
        console.print(f"[dim]Keywords:[/dim] {', '.join(task.keywords)}")
    if task.parent_task is not None:
        console.print(f"[dim]Parent:[/dim] #{task.parent_task}")
    if task.subtasks:
        console.print(f"[dim]Subtasks:[/dim] {', '.join(f'#{i}' for i in task.subtasks)}")
    if task.dependencies:
        console.print(f"[dim]Depends on:[/dim] {', '.join(f'#{i}' for i in task.dependencies)}")
    if task.blocked_by:
        console.print(f"[dim]Blocked by:[/dim] {', '.join(f'#{i}' for i in task.blocked_by)}")
    if task.acceptance_criteria:
        checked, total = task.criteria_progress
        console.print(f"\n[bold]Acceptance criteria ({checked}/{total}):[/bold]")
        for index, criterion in enumerate(task.acceptance_criteria):
            mark = "x" if criterion.checked else " "
            console.print(f"  {index}. \\[{mark}] {criterion.text}")
    if task.description:
        console.print(f"\n[bold]Description:[/bold]\n{task.description}")
    for heading, text in (
        ("Plan", task.ai_plan),
        ("Notes", task.ai_notes),
        ("Documentation", task.ai_documentation),
        ("Review", task.ai_review),
    ):
        if text:
            console.print(f"\n[bold]{heading}:[/bold]\n{text}")
    if task.changelog:
        console.print("\n[bold]History:[/bold]")
        for entry in task.changelog[-10:]:
            console.print(f"  [dim]{entry.timestamp}[/dim] {entry.action}: {entry.details}")


@app.command()
def edit(
    task_id: int = typer.Argument(..., help="Task ID to update"),
    title: str | None = typer.Option(None, "--title", help="New title"),
    description: str | None = typer.Option(None, "--description", "-d", help="New description"),
    status: str | None = typer.Option(None, "--status", "-s", help="New status"),
    priority: str | None = typer.Option(None, "--priority", "-p", help="New priority"),
    milestone: str | None = typer.Option(None, "--milestone", "-m", help="New milestone"),
    add_label: list[str] | None = typer.Option(None, "--add-label", help="Add a label"),
    remove_label: list[str] | None = typer.Option(None, "--remove-label", help="Remove a label"),
    add_keyword: list[str] | None = typer.Option(None, "--add-keyword", help="Add a keyword"),
    remove_keyword: list[str] | None = typer.Option(
        None, "--remove-keyword", help="Remove a keyword"
    ),
    parent: int | None = typer.Option(None, "--parent", help="Move under another parent"),
    no_parent: bool = typer.Option(False, "--no-parent", help="Detach from the current parent"),
    start_date: str | None = typer.Option(None, "--start", help="Planned start date"),
    end_date: str | None = typer.Option(None, "--end", help="Planned end date"),
    release_date: str | None = typer.Option(None, "--release", help="Release date"),
    user: str | None = typer.Option(None, "--user", "-u", help="Recorded as the author"),
) -> None:
    """
    Update a task's fields.

    Examples:
        taskmark task edit 3 --status "In Progress"
        taskmark task edit 3 --add-label backend --priority high
        taskmark task edit 7 --parent 2
    """
    updates: dict[str, object] = {}
    for key, value in (
        ("title", title),
        ("description", description),
        ("status", status),
        ("priority", priority),
        ("milestone", milestone),
        ("start_date", start_date),
        ("end_date", end_date),
        ("release_date", release_date),
    ):
        if value is not None:
            updates[key] = value
    if no_parent:
        updates["parent_task"] = None
    elif parent is not None:
        updates["parent_task"] = parent

    with backlog_session() as backlog:
        if add_label or remove_label:
            current = backlog.require_task(task_id)
            labels = [lbl for lbl in current.labels if lbl not in (remove_label or [])]
            labels += [lbl for lbl in add_label or [] if lbl not in labels]
            updates["labels"] = labels
        if add_keyword or remove_keyword:
            current = backlog.require_task(task_id)
            keywords = [k for k in current.keywords if k not in (remove_keyword or [])]
            keywords += [k for k in _split_keywords(add_keyword) if k not in keywords]
            updates["keywords"] = keywords
        task = backlog.update_task(task_id, updates, user=user)

    console.print(f"[green]Updated:[/green] #{task.id} {task.title}")
    console.print(f"  [dim]{task.changelog[-1].details}[/dim]")


@app.command()
def assign(
    task_id: int = typer.Argument(..., help="Task ID"),
    assignees: list[str] = typer.Argument(..., help="Assignees (replaces the current list)"),
) -> None:
    """Set the assignees of a task."""
    with backlog_session() as backlog:
        task = backlog.assign_task(task_id, assignees)
    console.print(f"[green]Assigned:[/green] #{task.id} → {', '.join(task.assignees)}")


@app.command()
def close(
    task_id: int = typer.Argument(..., help="Task ID to close"),
    force: bool = typer.Option(False, "--force", "-f", help="Skip blocking checks"),
    user: str | None = typer.Option(None, "--user", "-u", help="Recorded as the author"),
) -> None:
    """
    Close a task if nothing blocks it.

    Examples:
        taskmark task close 5
        taskmark task close 5 --force
    """
    with backlog_session() as backlog:
        outcome = backlog.close_task(task_id, force=force, user=user)

    _print_close_result(outcome.result)
    if not outcome.closed:
        console.print(f"\n[red]Cannot close #{task_id}[/red]")
        console.print("[cyan]→ Try:[/cyan] resolve the issues above, or use --force")
        raise typer.Exit(ExitCode.USER_ERROR)

    console.print(f"[green]Closed:[/green] #{outcome.task.id} {outcome.task.title}")
    for suggestion in outcome.suggestions:
        console.print(f"[cyan]ℹ[/cyan] {suggestion.message}")
        for ref in suggestion.tasks:
            console.print(f"    #{ref.id} {ref.title}")
        if suggestion.command:
            console.print(f"    [dim]{suggestion.command}[/dim]")


@app.command()
def delete(
    task_id: int = typer.Argument(..., help="Task ID to delete"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
) -> None:
    """Delete a task and remove references to it from other tasks."""
    if not yes:
        typer.confirm(f"Delete task #{task_id}?", abort=True)
    with backlog_session() as backlog:
        touched = backlog.delete_task(task_id)
    console.print(f"[green]Deleted:[/green] #{task_id}")
    if touched:
        console.print(f"  [dim]Updated references in {', '.join(f'#{i}' for i in touched)}[/dim]")


@app.command()
def deps(
    task_id: int = typer.Argument(..., help="Task ID"),
    add: int | None = typer.Option(None, "--add", help="Add a dependency"),
    remove: int | None = typer.Option(None, "--remove", help="Remove a dependency"),
) -> None:
    """Show or change a task's dependencies."""
    with backlog_session() as backlog:
        if add is not None:
            backlog.add_dependency(task_id, add)
        if remove is not None:
            backlog.remove_dependency(task_id, remove)
        links = backlog.get_dependencies(task_id)

    console.print(f"[bold cyan]#{links.task.id}[/bold cyan] - {links.task.title}")
    for heading, tasks in (
        ("Depends on", links.dependencies),
        ("Blocked by", links.blocked_by),
        ("Required by", links.dependents),
    ):
        if tasks:
            console.print(f"[dim]{heading}:[/dim]")
            for task in tasks:
                _print_task_line(task)


@app.command()
def blocked() -> None:
    """List every task that has blockers."""
    with backlog_session() as backlog:
        tasks = backlog.get_blocked_tasks()
    if not tasks:
        console.print("[dim]No blocked tasks[/dim]")
        return
    for task in tasks:
        blockers = ", ".join(f"#{i}" for i in task.blocked_by)
        console.print(f"  #{task.id} {task.title} [dim](blocked by {blockers})[/dim]")


@app.command()
def subtasks(task_id: int = typer.Argument(..., help="Parent task ID")) -> None:
    """Show a task's parent and subtasks."""
    with backlog_session() as backlog:
        tree = backlog.get_task_tree(task_id)

    if tree.parent is not None:
        console.print(f"[dim]Parent:[/dim] #{tree.parent.id} {tree.parent.title}")
    console.print(f"[bold cyan]#{tree.task.id}[/bold cyan] - {tree.task.title}")
    if not tree.subtasks:
        console.print("[dim]No subtasks[/dim]")
    for task in tree.subtasks:
        _print_task_line(task)


@app.command()
def check(
    task_id: int = typer.Argument(..., help="Task ID"),
    index: int = typer.Argument(..., help="Criterion index (from 0)"),
) -> None:
    """Mark an acceptance criterion as met."""
    with backlog_session() as backlog:
        task = backlog.check_criterion(task_id, index)
    console.print(f"[green]✓[/green] {task.acceptance_criteria[index].text}")


@app.command()
def uncheck(
    task_id: int = typer.Argument(..., help="Task ID"),
    index: int = typer.Argument(..., help="Criterion index (from 0)"),
) -> None:
    """Mark an acceptance criterion as not met."""
    with backlog_session() as backlog:
        task = backlog.uncheck_criterion(task_id, index)
    console.print(f"[dim]○[/dim] {task.acceptance_criteria[index].text}")


@app.command()
def criterion(
    task_id: int = typer.Argument(..., help="Task ID"),
    text: str = typer.Argument(..., help="Criterion text"),
) -> None:
    """Add an acceptance criterion."""
    with backlog_session() as backlog:
        task = backlog.add_acceptance_criterion(task_id, text)
    index = len(task.acceptance_criteria) - 1
    console.print(f"[green]Added:[/green] [{index}] {text}")


@app.command()
def plan(
    task_id: int = typer.Argument(..., help="Task ID"),
    text: str = typer.Argument(..., help="Implementation plan"),
) -> None:
    """Set a task's plan."""
    with backlog_session() as backlog:
        backlog.add_ai_plan(task_id, text)
    console.print(f"[green]Plan saved[/green] for #{task_id}")


@app.command()
def note(
    task_id: int = typer.Argument(..., help="Task ID"),
    text: str = typer.Argument(..., help="Note to append"),
) -> None:
    """Append a timestamped note to a task."""
    with backlog_session() as backlog:
        backlog.add_ai_note(task_id, text)
    console.print(f"[green]Note added[/green] to #{task_id}")


@app.command()
def doc(
    task_id: int = typer.Argument(..., help="Task ID"),
    text: str = typer.Argument(..., help="Documentation"),
) -> None:
    """Set a task's documentation."""
    with backlog_session() as backlog:
        backlog.add_ai_documentation(task_id, text)
    console.print(f"[green]Documentation saved[/green] for #{task_id}")


@app.command()
def review(
    task_id: int = typer.Argument(..., help="Task ID"),
    text: str = typer.Argument(..., help="Review"),
) -> None:
    """Set a task's review."""
    with backlog_session() as backlog:
        backlog.add_ai_review(task_id, text)
    console.print(f"[green]Review saved[/green] for #{task_id}")
