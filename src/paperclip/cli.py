"""Command-line interface for Paperclip."""

import functools
import logging
import shlex
from typing import List, Optional, Tuple

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from . import __version__
from .config import Config
from .exceptions import DateParseError, PaperclipError
from .session import ActionResult, TodoSession, View
from .todo import Todo, TodoStatus
from .tree import DueDateFilter


logger = logging.getLogger(__name__)

console = Console()
error_console = Console(stderr=True)

DUE_CHOICES = {
    'overdue': DueDateFilter.OVERDUE,
    'today': DueDateFilter.TODAY,
    'tomorrow': DueDateFilter.TOMORROW,
    'week': DueDateFilter.THIS_WEEK,
    'none': DueDateFilter.NO_DUE_DATE,
}

STATUS_ICONS = {
    TodoStatus.PENDING: "[ ]",
    TodoStatus.IN_PROGRESS: "[/]",
    TodoStatus.COMPLETED: "[x]",
}


def configure_logging(level: str = "WARNING") -> None:
    """Configure the root logger once with a rich handler."""
    root = logging.getLogger()
    if not any(isinstance(h, RichHandler) for h in root.handlers):
        handler = RichHandler(console=error_console, rich_tracebacks=True, show_path=False)
        handler.setFormatter(logging.Formatter("%(message)s"))
        root.addHandler(handler)
    root.setLevel(level)


def get_session() -> TodoSession:
    return click.get_current_context().obj['session']


def show_error(error: Exception):
    console.print(f"[red]Error: {escape(str(error))}[/red]")
    if isinstance(error, DateParseError):
        for suggestion in error.suggestions:
            console.print(f"  [blue]{escape(suggestion)}[/blue]")


def handle_errors(func):
    """Report PaperclipError and ValueError and exit with status 1."""
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except (PaperclipError, ValueError) as e:
            show_error(e)
            click.get_current_context().exit(1)
    return wrapper


def format_todo(todo: Todo, depth: int = 0) -> str:
    """One-line label for a todo with rich markup."""
    if todo.children:
        fold = "▾ " if todo.expanded else "▸ "
    else:
        fold = "  "
    icon = escape(STATUS_ICONS[todo.status])
    text = escape(todo.description)
    if todo.completed:
        text = f"[dim strike]{text}[/dim strike]"
    label = f"{'  ' * depth}{fold}{icon} {text}"

    extras = []
    if todo.tags:
        extras.append(' '.join(f"#{tag}" for tag in sorted(todo.tags)))
    if todo.contexts:
        extras.append(' '.join(f"@{ctx}" for ctx in sorted(todo.contexts)))
    if extras:
        label += f" [cyan]{escape(' '.join(extras))}[/cyan]"
    if todo.has_notes():
        label += " [dim](note)[/dim]"
    return label


def format_due(todo: Todo, session: TodoSession) -> str:
    if todo.due_date is None:
        return ""
    text = todo.due_date.astimezone(session.clock().tzinfo).strftime('%Y-%m-%d %H:%M')
    if todo.is_overdue(session.clock()):
        return f"[red]{text}[/red]"
    return text


def render_rows(session: TodoSession, rows: List[Tuple[Todo, int]], title: str):
    if not rows:
        console.print("[dim]No todos to show[/dim]")
        return

    now = session.clock()
    table = Table(title=escape(title), show_lines=False)
    table.add_column("ID", justify="right", style="dim")
    table.add_column("Task", overflow="fold")
    table.add_column("Due")
    table.add_column("Pri", justify="center")
    table.add_column("Repeat")
    table.add_column("Time", justify="right")

    for todo, depth in rows:
        elapsed = ""
        if todo.is_timer_running() or todo.time_spent:
            elapsed = todo.elapsed_formatted(now)
            if todo.is_timer_running():
                elapsed = f"[green]{elapsed}*[/green]"
        table.add_row(
            str(todo.id),
            format_todo(todo, depth),
            format_due(todo, session),
            str(todo.priority) if todo.priority else "",
            todo.recurrence.describe() if todo.recurrence else "",
            elapsed,
        )
    console.print(table)

    stats = session.summary()
    console.print(
        f"[dim]{stats['pending']} pending, {stats['completed']} done, "
        f"{stats['overdue']} overdue, {stats['due_today']} due today, "
        f"{stats['timers']} timers running[/dim]"
    )


def report(result: ActionResult, verb: str):
    console.print(f"[green]{verb} todo {result.todo_id}[/green]")
    for warning in result.warnings:
        console.print(f"  [yellow]{escape(warning)}[/yellow]")
    for suggestion in result.suggestions:
        console.print(f"  [blue]{escape(suggestion)}[/blue]")


@click.group()
@click.option("--data-dir", type=click.Path(file_okay=False), help="Directory holding config and data")
@click.option("--workspace", "-w", help="Workspace to use for this command")
@click.option("--verbose", "-v", is_flag=True, help="Verbose output")
@click.version_option(__version__, prog_name="paperclip")
@click.pass_context
def cli(ctx, data_dir, workspace, verbose):
    """Paperclip - hierarchical todos with undo, workspaces and natural dates."""
    ctx.ensure_object(dict)

    if ctx.obj.get('session') is None:
        try:
            config = Config.load(overrides={'data_dir': data_dir})
            configure_logging("DEBUG" if verbose else config.log_level)
            session = TodoSession.open(config)
        except (PaperclipError, ValueError) as e:
            show_error(e)
            ctx.exit(1)
        logger.debug(f"Loaded {len(session.store)} workspace(s) from {config.data_dir}")
        ctx.obj['session'] = session
        ctx.call_on_close(session.save)
    elif verbose:
        configure_logging("DEBUG")

    if workspace:
        try:
            get_session().switch_workspace(workspace)
        except PaperclipError as e:
            show_error(e)
            ctx.exit(1)


@cli.command()
@click.argument("text", nargs=-1, required=True)
@click.option("--parent", "-p", type=int, help="Add as a subtask of this todo")
@handle_errors
def add(text, parent):
    """Add a todo.

    Inline markers: #tag @context due:tomorrow ~3 (priority) %weekly

    Examples:
      paperclip add "Review PR #work due:friday ~4"
      paperclip add --parent 3 "Write tests @laptop"
    """
    result = get_session().add(' '.join(text), parent)
    report(result, "Added")


@cli.command(name="list")
@click.option("--pending", "view", flag_value="pending", help="Only open todos")
@click.option("--completed", "view", flag_value="completed", help="Only finished todos")
@click.option("--tag", "-t", help="Todos with this tag")
@click.option("--context", "-c", help="Todos with this context")
@click.option("--search", "-s", help="Todos matching text")
@click.option("--due", type=click.Choice(list(DUE_CHOICES)), help="Todos by due date")
def list_todos(view, tag, context, search, due):
    """Show todos in the active workspace."""
    session = get_session()
    if search:
        selected = View.search(search)
    elif tag:
        selected = View.tag(tag)
    elif context:
        selected = View.context(context)
    elif due:
        selected = View.due(DUE_CHOICES[due])
    elif view == "pending":
        selected = View.pending()
    elif view == "completed":
        selected = View.completed()
    else:
        selected = View.all()

    render_rows(session, session.visible(selected), session.workspace.name)


@cli.command()
@click.argument("query")
def find(query):
    """Search every workspace."""
    results = get_session().search_all(query)
    if not results:
        console.print("[dim]No matches[/dim]")
        return
    for workspace_name, todo in results:
        console.print(f"[magenta]{escape(workspace_name)}[/magenta] {todo.id} {format_todo(todo)}")


@cli.command()
@click.argument("todo_id", type=int)
@handle_errors
def done(todo_id):
    """Toggle completion of a todo."""
    command = get_session().toggle_complete(todo_id)
    todo = get_session().get(todo_id)
    state = "Completed" if todo.completed else "Reopened"
    console.print(f"[green]{state} todo {todo_id}[/green]")
    if command.successor_id is not None:
        console.print(f"  [blue]Next occurrence is todo {command.successor_id}[/blue]")


@cli.command()
@click.argument("todo_id", type=int)
@handle_errors
def rm(todo_id):
    """Delete a todo and its subtasks."""
    command = get_session().delete(todo_id)
    console.print(f"[green]{escape(command.describe())}[/green]")


@cli.command()
@click.argument("todo_id", type=int)
@click.option("--parent", "-p", type=int, help="New parent todo")
@click.option("--root", is_flag=True, help="Move to the top level")
@click.option("--position", type=int, help="Index among the new siblings")
@handle_errors
def mv(todo_id, parent, root, position):
    """Move a todo under another one, to the top level, or to a new position."""
    session = get_session()
    if parent is not None and root:
        raise click.UsageError("Use either --parent or --root, not both")
    if parent is None and not root:
        parent, _ = session.tree.position_of(todo_id)
    command = session.move(todo_id, None if root else parent, position)
    console.print(f"[green]{escape(command.describe())}[/green]")


@cli.command()
@click.argument("todo_id", type=int)
@click.argument("text", nargs=-1, required=True)
@handle_errors
def edit(todo_id, text):
    """Replace a todo's text (markers are parsed again)."""
    result = get_session().edit(todo_id, ' '.join(text))
    report(result, "Updated")


@cli.command()
@click.argument("todo_id", type=int)
@click.argument("level", type=int, required=False)
@click.option("--up", "delta", flag_value=1, type=int, help="Raise priority by one")
@click.option("--down", "delta", flag_value=-1, type=int, help="Lower priority by one")
@handle_errors
def priority(todo_id, level, delta):
    """Set priority 0-5, or bump it with --up/--down."""
    session = get_session()
    if level is not None:
        session.set_priority(todo_id, level)
    elif delta:
        session.bump_priority(todo_id, delta)
    else:
        raise click.UsageError("Give a level or --up/--down")
    console.print(f"[green]Priority of todo {todo_id} is {session.get(todo_id).priority}[/green]")


@cli.command()
@click.argument("todo_id", type=int)
@click.argument("text", nargs=-1)
@handle_errors
def note(todo_id, text):
    """Set the note on a todo; no text clears it."""
    command = get_session().set_note(todo_id, ' '.join(text) or None)
    console.print(f"[green]{escape(command.describe())}[/green]")


@cli.command()
@click.argument("todo_id", type=int)
@click.argument("labels", nargs=-1)
@handle_errors
def tag(todo_id, labels):
    """Replace tags and contexts: words starting with @ are contexts, the rest tags."""
    contexts = [label for label in labels if label.startswith('@')]
    tags = [label for label in labels if not label.startswith('@')]
    command = get_session().set_tags(todo_id, tags, contexts)
    console.print(f"[green]{escape(command.describe())}[/green]")


@cli.command()
@click.argument("todo_id", type=int)
@click.argument("expression", nargs=-1)
@click.option("--clear", is_flag=True, help="Remove the due date")
@handle_errors
def due(todo_id, expression, clear):
    """Set a due date: today, friday, next monday, in 3 days, 2024-12-25, dec 25."""
    session = get_session()
    if clear or not expression:
        command = session.clear_due(todo_id)
    else:
        command = session.set_due(todo_id, ' '.join(expression))
    console.print(f"[green]{escape(command.describe())}[/green]")


@cli.command()
@click.argument("todo_id", type=int)
@click.argument("expression", nargs=-1)
@click.option("--clear", is_flag=True, help="Stop repeating")
@handle_errors
def recur(todo_id, expression, clear):
    """Repeat a todo: daily, weekly, every 2 weeks, every friday, monthly, yearly."""
    pattern = None if clear or not expression else ' '.join(expression)
    command = get_session().set_recurrence(todo_id, pattern)
    console.print(f"[green]{escape(command.describe())}[/green]")


@cli.command()
@click.argument("todo_id", type=int)
@handle_errors
def timer(todo_id):
    """Start or stop the time tracker on a todo."""
    session = get_session()
    command = session.toggle_timer(todo_id)
    todo = session.get(todo_id)
    console.print(f"[green]{escape(command.describe())}[/green] ({todo.elapsed_formatted(session.clock())} total)")


@cli.command()
@click.argument("todo_id", type=int)
@handle_errors
def fold(todo_id):
    """Collapse or expand a todo's subtasks in listings."""
    command = get_session().toggle_expanded(todo_id)
    console.print(f"[green]{escape(command.describe())}[/green]")


@cli.command()
@handle_errors
def undo():
    """Undo the last change in the active workspace."""
    command = get_session().undo()
    console.print(f"[green]Undid: {escape(command.describe())}[/green]")


@cli.command()
@handle_errors
def redo():
    """Redo the last undone change."""
    command = get_session().redo()
    console.print(f"[green]Redid: {escape(command.describe())}[/green]")


@cli.command()
@handle_errors
def save():
    """Write all workspaces to disk now."""
    get_session().save()
    console.print("[green]Saved[/green]")


@cli.group()
def workspace():
    """Manage workspaces."""


@workspace.command(name="list")
def workspace_list():
    """List workspaces; the active one is marked."""
    session = get_session()
    table = Table(title="Workspaces")
    table.add_column("")
    table.add_column("Name")
    table.add_column("Todos", justify="right")
    table.add_column("Description")
    for name in session.store.names():
        ws = session.store.get(name)
        marker = "*" if name == session.store.active_name else ""
        table.add_row(marker, escape(name), str(len(ws.tree)), escape(ws.description or ""))
    console.print(table)


@workspace.command(name="create")
@click.argument("name")
@click.option("--description", "-d", help="What the workspace is for")
@handle_errors
def workspace_create(name, description):
    get_session().create_workspace(name, description)
    console.print(f"[green]Created workspace '{escape(name)}'[/green]")


@workspace.command(name="delete")
@click.argument("name")
@handle_errors
def workspace_delete(name):
    session = get_session()
    session.delete_workspace(name)
    console.print(f"[green]Deleted workspace '{escape(name)}'; active is '{escape(session.workspace.name)}'[/green]")


@workspace.command(name="use")
@click.argument("name")
@handle_errors
def workspace_use(name):
    """Make a workspace active."""
    get_session().switch_workspace(name)
    console.print(f"[green]Switched to '{escape(name)}'[/green]")


@workspace.command(name="rename")
@click.argument("name")
@click.argument("new_name")
@handle_errors
def workspace_rename(name, new_name):
    get_session().rename_workspace(name, new_name)
    console.print(f"[green]Renamed '{escape(name)}' to '{escape(new_name)}'[/green]")


@cli.group()
def template():
    """Manage todo templates."""


@template.command(name="list")
def template_list():
    table = Table(title="Templates")
    table.add_column("ID", style="dim")
    table.add_column("Name")
    table.add_column("Tags")
    table.add_column("Pri", justify="center")
    for tpl in get_session().templates.all():
        labels = [f"#{t}" for t in sorted(tpl.tags)] + [f"@{c}" for c in sorted(tpl.contexts)]
        table.add_row(escape(tpl.id), escape(tpl.name), escape(' '.join(labels)), str(tpl.priority))
    console.print(table)


@template.command(name="apply")
@click.argument("todo_id", type=int)
@click.argument("template_id")
@handle_errors
def template_apply(todo_id, template_id):
    """Apply a template (by id or name) to a todo."""
    command = get_session().apply_template(todo_id, template_id)
    console.print(f"[green]{escape(command.describe())}[/green]")


@template.command(name="create")
@click.argument("todo_id", type=int)
@click.argument("name")
@handle_errors
def template_create(todo_id, name):
    """Save a todo's tags, contexts, priority and notes as a template."""
    template_id = get_session().create_template(todo_id, name)
    console.print(f"[green]Created template {escape(template_id)}[/green]")


@cli.command()
@click.pass_context
def shell(ctx):
    """Interactive prompt; undo and redo work across lines."""
    session = get_session()
    console.print("[dim]Type a command (e.g. 'add Buy milk', 'list', 'undo'), 'help' or 'exit'.[/dim]")

    while True:
        try:
            line = click.prompt(
                f"paperclip:{session.workspace.name}",
                default="",
                show_default=False,
                prompt_suffix="> ",
            )
        except click.Abort:
            break

        line = line.strip()
        if not line:
            continue
        if line in ("exit", "quit"):
            break
        if line == "help":
            console.print(escape(cli.get_help(ctx.parent)))
            continue

        try:
            args = shlex.split(line)
        except ValueError as e:
            show_error(e)
            continue
        if args[0] == "shell":
            console.print("[yellow]Already in the shell[/yellow]")
            continue

        run_line(args, ctx.obj)


def run_line(args: List[str], obj: dict) -> Optional[int]:
    """Run one shell line against the shared session."""
    try:
        return cli.main(args=args, prog_name="paperclip", obj=obj, standalone_mode=False)
    except click.ClickException as e:
        e.show()
    except click.Abort:
        console.print("[yellow]Aborted[/yellow]")
    return 1


def main():
    """Entry point for the paperclip console script."""
    cli(obj={})


if __name__ == "__main__":
    main()
