"""
Main CLI interface for the Prompt Shelf.

This module provides the Typer-based command-line interface with commands for:
- Listing, searching and filtering prompts (table, tree or JSON)
- Creating, editing, deleting and copying prompts
- Importing and exporting the CSV file
- Quick capture of text from the command line or stdin
"""

import json
import sys
from pathlib import Path
from typing import List, Optional

import pyperclip
import typer
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text
from rich.tree import Tree

from .core.capture import quick_capture
from .core.config import ConfigError, config, load_home_env, validate_config
from .core.debug_log import get_debug_logger
from .core.index import NO_SUBGROUP_LABEL, UNGROUPED_LABEL, display_group, display_subgroup
from .core.progress import reporter
from .core.session import UNSET, PromptSession
from .core.storage import FileBlobStore, PersistenceError
from .core.store import RecordValidationError
from .core.types import CommandResult, MergePolicy, Record, ViewState

app = typer.Typer(
    name="prompt-shelf",
    help="Prompt Shelf CLI - Keep grouped prompt snippets in a local CSV file",
    no_args_is_help=True,
)

console = Console()

PLACEHOLDER_PATTERN = r"\[[^\]]*\]"
PLACEHOLDER_STYLE = "bold yellow"


@app.callback()
def main(
    ctx: typer.Context,
    home: Optional[str] = typer.Option(None, "--home", help="Data directory (default: $PS_HOME or ~/.prompt_shelf)"),
):
    """Manage prompts stored in a local CSV file."""
    home_path = Path(home).expanduser() if home else None
    load_home_env(home_path)
    ctx.obj = {"home": home_path or config.home}


def _home(ctx: typer.Context) -> Path:
    return (ctx.obj or {}).get("home") or config.home


def _blob_handle(ctx: typer.Context):
    validate_config()
    return FileBlobStore(_home(ctx)).handle(config.storage_filename)


def _open_session(ctx: typer.Context, policy: Optional[MergePolicy] = None) -> PromptSession:
    home = _home(ctx)
    debug_logger = get_debug_logger(home) if config.debug else None
    session = PromptSession(_blob_handle(ctx), policy=policy or config.merge_policy, debug_logger=debug_logger)
    session.open()

    skipped = session.store.last_load.skipped
    if skipped:
        console.print(f"[dim]Skipped {skipped} unusable row(s) in {session.handle.path}[/dim]")
    return session


def _selection(value: Optional[str], sentinel: str):
    """Map a CLI label to a selection: absent -> unchanged, empty -> no filter, sentinel -> empty bucket."""
    if value is None:
        return UNSET
    if value.strip().lower() == sentinel.lower():
        return sentinel
    return value.strip() or None


def _resolve_id(session: PromptSession, ref: str) -> str:
    """Resolve a full id or a unique id prefix; unknown refs are returned unchanged."""
    if session.get(ref) is not None:
        return ref
    matches = [record.id for record in session.store.records if record.id.startswith(ref)]
    if len(matches) > 1:
        console.print(f"[bold red]Error:[/bold red] Id prefix '{ref}' is ambiguous ({len(matches)} matches)")
        sys.exit(1)
    return matches[0] if matches else ref


def _report(result: CommandResult) -> None:
    """Print the outcome of a session intent; exit 1 on failure."""
    if result.ok:
        console.print(f"[bold green]{escape(result.message)}[/bold green]")
        return

    labels = {"validation": "Validation Error", "schema": "Import Error", "persistence": "Save Error"}
    console.print(f"[bold red]{labels.get(result.error_kind or '', 'Error')}:[/bold red] {escape(result.message)}")
    if result.error_kind == "persistence":
        console.print("[yellow]Changes are kept in memory only and were not saved.[/yellow]")
    sys.exit(1)


def _read_text_argument(text: Optional[str], file: Optional[str], what: str) -> Optional[str]:
    if text is not None and file is not None:
        console.print(f"[bold red]Error:[/bold red] Cannot specify both --{what} and --{what}-file options")
        sys.exit(1)
    if file is None:
        return text
    file_path = Path(file)
    if not file_path.exists():
        console.print(f"[bold red]Error:[/bold red] File not found: {file}")
        sys.exit(1)
    try:
        return file_path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        console.print(f"[bold red]Error:[/bold red] Failed to read file '{file}': {e}")
        sys.exit(1)


@app.command("list")
def list_prompts(
    ctx: typer.Context,
    group: Optional[str] = typer.Option(None, "--group", "-g", help=f"Filter by group ('{UNGROUPED_LABEL}' for none)"),
    subgroup: Optional[str] = typer.Option(None, "--subgroup", "-s", help=f"Filter by subgroup ('{NO_SUBGROUP_LABEL}' for none)"),
    search: str = typer.Option("", "--search", "-q", help="Case-insensitive text search over title and content"),
    tree: bool = typer.Option(False, "--tree", help="Show a Group -> Subgroup tree"),
    output_format: str = typer.Option("rich", "--format", "-f", help="Output format (rich, json)"),
):
    """
    List prompts, newest first.

    Examples:
        prompt-shelf list --group Work
        prompt-shelf list --subgroup Emails --search greeting
        prompt-shelf list --tree
    """
    try:
        session = _open_session(ctx)
        session.set_filter(query=search)
        session.set_filter(group=_selection(group, UNGROUPED_LABEL), subgroup=_selection(subgroup, NO_SUBGROUP_LABEL))
        view = session.view()

        if output_format == "json":
            output = {
                "state": view.state.model_dump(),
                "options": view.options.model_dump(),
                "total": view.total,
                "prompts": [record.model_dump() for record in view.visible],
            }
            typer.echo(json.dumps(output, indent=2, ensure_ascii=False))
            return

        if tree:
            _display_tree(view)
        else:
            _display_table(view)

    except (ConfigError, PersistenceError) as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        sys.exit(1)


@app.command()
def groups(
    ctx: typer.Context,
    group: Optional[str] = typer.Option(None, "--group", "-g", help="Selected group"),
    subgroup: Optional[str] = typer.Option(None, "--subgroup", "-s", help="Selected subgroup"),
):
    """
    Show the Group and Subgroup options offered for a selection.

    Examples:
        prompt-shelf groups
        prompt-shelf groups --subgroup Emails
    """
    try:
        session = _open_session(ctx)
        view = session.set_filter(group=_selection(group, UNGROUPED_LABEL), subgroup=_selection(subgroup, NO_SUBGROUP_LABEL))

        table = Table(title="Filter Options")
        table.add_column("Groups", style="cyan")
        table.add_column("Subgroups", style="white")
        group_options = [escape(label) for label in view.options.groups]
        subgroup_options = [escape(label) for label in view.options.subgroups]
        for i in range(max(len(group_options), len(subgroup_options))):
            table.add_row(
                group_options[i] if i < len(group_options) else "",
                subgroup_options[i] if i < len(subgroup_options) else "",
            )
        console.print(table)

        selected_group = escape(view.state.group or "all")
        selected_subgroup = escape(view.state.subgroup or "all")
        console.print(f"[dim]Selection: group={selected_group}, subgroup={selected_subgroup}[/dim]")

    except (ConfigError, PersistenceError) as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        sys.exit(1)


@app.command()
def show(ctx: typer.Context, record_id: str = typer.Argument(..., help="Prompt id or unique id prefix")):
    """Show a single prompt."""
    try:
        session = _open_session(ctx)
        record = session.get(_resolve_id(session, record_id))
        if record is None:
            console.print(f"[bold red]Error:[/bold red] No prompt with id {record_id}")
            sys.exit(1)
        _display_record(record)

    except (ConfigError, PersistenceError) as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        sys.exit(1)


@app.command()
def add(
    ctx: typer.Context,
    title: str = typer.Option(..., "--title", "-t", help="Prompt title"),
    content: Optional[str] = typer.Option(None, "--content", "-c", help="Prompt content"),
    content_file: Optional[str] = typer.Option(None, "--content-file", help="Read prompt content from a file"),
    group: str = typer.Option("", "--group", "-g", help=f"Group (empty or '{UNGROUPED_LABEL}' = ungrouped)"),
    subgroup: str = typer.Option("", "--subgroup", "-s", help=f"Subgroup within the group (empty or '{NO_SUBGROUP_LABEL}' = none)"),
):
    """
    Create a prompt.

    Examples:
        prompt-shelf add --title Greeting --content "Hi, friend" --group Work --subgroup Emails
        prompt-shelf add --title "Review checklist" --content-file review.md
    """
    try:
        body = _read_text_argument(content, content_file, "content")
        session = _open_session(ctx)
        result = session.create(group=group, subgroup=subgroup, title=title, content=body or "")
        _report(result)
        if result.record is not None:
            console.print(f"[dim]id: {result.record.id}[/dim]")

    except (ConfigError, PersistenceError) as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        sys.exit(1)


@app.command()
def edit(
    ctx: typer.Context,
    record_id: str = typer.Argument(..., help="Prompt id or unique id prefix"),
    title: Optional[str] = typer.Option(None, "--title", "-t", help="New title"),
    content: Optional[str] = typer.Option(None, "--content", "-c", help="New content"),
    content_file: Optional[str] = typer.Option(None, "--content-file", help="Read new content from a file"),
    group: Optional[str] = typer.Option(None, "--group", "-g", help=f"New group ('' or '{UNGROUPED_LABEL}' for ungrouped)"),
    subgroup: Optional[str] = typer.Option(None, "--subgroup", "-s", help=f"New subgroup ('' or '{NO_SUBGROUP_LABEL}' for none)"),
):
    """
    Edit a prompt; only the given fields change.

    Examples:
        prompt-shelf edit 3f2a --title "Warm greeting"
        prompt-shelf edit 3f2a --group Personal --subgroup ""
    """
    try:
        body = _read_text_argument(content, content_file, "content")
        session = _open_session(ctx)
        result = session.update(_resolve_id(session, record_id), group=group, subgroup=subgroup, title=title, content=body)
        _report(result)

    except (ConfigError, PersistenceError) as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        sys.exit(1)


@app.command()
def delete(
    ctx: typer.Context,
    record_id: str = typer.Argument(..., help="Prompt id or unique id prefix"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
):
    """Delete a prompt."""
    try:
        session = _open_session(ctx)
        resolved = _resolve_id(session, record_id)
        record = session.get(resolved)
        if record is not None and not yes:
            if not typer.confirm(f"Delete “{record.title}”?"):
                console.print("[yellow]Cancelled.[/yellow]")
                return
        _report(session.delete(resolved))

    except (ConfigError, PersistenceError) as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        sys.exit(1)


@app.command()
def copy(ctx: typer.Context, record_id: str = typer.Argument(..., help="Prompt id or unique id prefix")):
    """Copy a prompt's content to the clipboard."""
    try:
        session = _open_session(ctx)
        record = session.get(_resolve_id(session, record_id))
        if record is None:
            console.print(f"[bold red]Error:[/bold red] No prompt with id {record_id}")
            sys.exit(1)
        try:
            pyperclip.copy(record.content)
        except pyperclip.PyperclipException as e:
            console.print(f"[bold red]Clipboard Error:[/bold red] {e}")
            sys.exit(1)
        console.print(f"[bold green]Copied “{escape(record.title)}” to the clipboard.[/bold green]")

    except (ConfigError, PersistenceError) as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        sys.exit(1)


@app.command("import")
def import_prompts(
    ctx: typer.Context,
    path: str = typer.Argument(..., help="CSV file to import"),
    policy: Optional[MergePolicy] = typer.Option(None, "--policy", help="Id collision policy (default: $PS_MERGE_POLICY or append)"),
):
    """
    Merge prompts from a CSV file with the expected header.

    Rows already present (same group, subgroup and title, ignoring case) are
    skipped. A file with a different header is rejected as a whole.

    Examples:
        prompt-shelf import prompts-2024-01-01T00-00-00-000Z.csv
        prompt-shelf import backup.csv --policy overwrite
    """
    try:
        with reporter.initialize(console, "Reading import file…"):
            text = _read_text_argument(None, path, "import")
            reporter.step("Loading prompts…")
            session = _open_session(ctx, policy=policy)
            reporter.step("Merging rows…")
            result = session.import_text(text or "")
            reporter.complete_count("Merged", result.added, result.rows)
        _report(result)

    except (ConfigError, PersistenceError) as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        sys.exit(1)


@app.command()
def export(
    ctx: typer.Context,
    output: str = typer.Option(".", "--output", "-o", help="Directory to write the export into"),
):
    """
    Export all prompts to a timestamped CSV file.

    Examples:
        prompt-shelf export --output ~/backups
    """
    try:
        with reporter.initialize(console, "Loading prompts…"):
            session = _open_session(ctx)
            bundle = session.export()
            reporter.step("Writing export…")
            target_dir = Path(output).expanduser()
            target_dir.mkdir(parents=True, exist_ok=True)
            target = target_dir / bundle.filename
            with open(target, "w", encoding="utf-8", newline="") as f:
                f.write(bundle.text)
            total = len(session.store)
            reporter.complete_count("Wrote", total, total, "prompts")
        console.print(f"[bold green]Exported {total} prompts to {target}[/bold green]")

    except OSError as e:
        console.print(f"[bold red]Error:[/bold red] Failed to write export: {e}")
        sys.exit(1)
    except (ConfigError, PersistenceError) as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        sys.exit(1)


@app.command()
def capture(
    ctx: typer.Context,
    text: Optional[str] = typer.Option(None, "--text", "-t", help="Text to capture (default: read stdin)"),
):
    """
    Save a piece of text as a new ungrouped prompt.

    Examples:
        prompt-shelf capture --text "Summarize the following in three bullets"
        xclip -o | prompt-shelf capture
    """
    try:
        if text is None:
            text = sys.stdin.read()
        home = _home(ctx)
        debug_logger = get_debug_logger(home) if config.debug else None
        record = quick_capture(_blob_handle(ctx), text, title_limit=config.capture_title_limit, debug_logger=debug_logger)
        if record is None:
            console.print("[yellow]Nothing to capture.[/yellow]")
            return
        console.print(f"[bold green]Captured “{escape(record.title)}”[/bold green]")
        console.print(f"[dim]id: {record.id}[/dim]")

    except RecordValidationError as e:
        console.print(f"[bold red]Validation Error:[/bold red] {escape(e.reason)}")
        sys.exit(1)
    except (ConfigError, PersistenceError) as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        sys.exit(1)


def _display_table(view: ViewState) -> None:
    """Display visible prompts as a table."""
    if view.total == 0:
        console.print("[yellow]No prompts yet. Create one with 'prompt-shelf add'.[/yellow]")
        return

    table = Table(title=f"Prompts ({len(view.visible)} of {view.total})")
    table.add_column("ID", style="dim", no_wrap=True)
    table.add_column("Group", style="cyan")
    table.add_column("Subgroup", style="cyan")
    table.add_column("Title", style="white")
    table.add_column("Updated", style="dim")

    for record in view.visible:
        table.add_row(record.id[:8], escape(display_group(record.group)), escape(display_subgroup(record.subgroup)), escape(record.title), record.updated_at)

    console.print(table)


def _display_tree(view: ViewState) -> None:
    """Display visible prompts as a Group -> Subgroup tree; collapsed nodes show counts."""
    root = Tree(f"[bold]Prompts ({len(view.visible)} of {view.total})[/bold]")
    for group_node in view.tree:
        count = sum(len(node.records) for node in group_node.subgroups)
        branch = root.add(f"[bold cyan]{escape(group_node.label)}[/bold cyan] [dim]({count})[/dim]")
        if not group_node.expanded:
            continue
        for subgroup_node in group_node.subgroups:
            leaf = branch.add(f"[cyan]{escape(subgroup_node.label)}[/cyan] [dim]({len(subgroup_node.records)})[/dim]")
            if not subgroup_node.expanded:
                continue
            for record in subgroup_node.records:
                leaf.add(f"{escape(record.title)} [dim]{record.id[:8]}[/dim]")
    console.print(root)


def highlight_placeholders(content: str) -> Text:
    """Render content with [bracketed] fill-in placeholders highlighted."""
    text = Text(content)
    text.highlight_regex(PLACEHOLDER_PATTERN, PLACEHOLDER_STYLE)
    return text


def _display_record(record: Record) -> None:
    details: List[str] = [
        f"[cyan]Group:[/cyan] {escape(display_group(record.group))}",
        f"[cyan]Subgroup:[/cyan] {escape(display_subgroup(record.subgroup))}",
        f"[cyan]Created:[/cyan] {record.created_at}",
        f"[cyan]Updated:[/cyan] {record.updated_at}",
        f"[cyan]ID:[/cyan] {record.id}",
    ]
    console.print(Panel(highlight_placeholders(record.content), title=escape(record.title), border_style="green"))
    console.print("\n".join(details))


if __name__ == "__main__":
    app()
