"""Maintenance commands: reindex, diagnose, recover, hide, unhide, delete."""

from typing import List

import typer
from rich.markup import escape
from rich.table import Table

from ..db import get_connection
from ..ingestion import MailerLiteClient
from ..pipeline import ContentRecovery, delete_item, find_missing_content, reindex_all, set_hidden
from ..pipeline.diagnostics import validate_recovery_ids
from ..search import SearchIndex
from .common import EXIT_FAILURE, EXIT_INVALID_INPUT, console, load_config, print_event, require_item_id


def reindex_command() -> None:
    """Rebuild the search index from the archive."""
    config = load_config()
    index = SearchIndex(config.content_root, config.config.search.excerpt_words)

    with get_connection(config.get_db_config()) as conn:
        result = reindex_all(conn, index, on_event=print_event)

    if result.failed:
        console.print("\n[yellow]⚠ Some items failed to index. Check the log for details.[/yellow]")
        raise typer.Exit(EXIT_FAILURE)


def diagnose_command() -> None:
    """List archived items whose content file is missing."""
    config = load_config()

    with get_connection(config.get_db_config()) as conn:
        missing = find_missing_content(conn, config.content_root)

    if not missing:
        console.print("[green]✅ Every archived item has its content file.[/green]")
        return

    table = Table(title=f"Items with missing content ({len(missing)})")
    table.add_column("ID", style="dim")
    table.add_column("Sent", style="cyan")
    table.add_column("Source", style="magenta")
    table.add_column("Subject", style="bold")
    table.add_column("Problem", style="yellow")
    table.add_column("Recoverable", style="green")

    for entry in missing:
        table.add_row(
            entry.item.id,
            entry.item.sent_at.strftime("%Y-%m-%d"),
            entry.item.source.value,
            escape(entry.item.subject),
            escape(entry.reason),
            "✓" if entry.recoverable else "✗",
        )
    console.print(table)

    recoverable = [entry.item.id for entry in missing if entry.recoverable]
    if recoverable:
        console.print(f"\n{len(recoverable)} item(s) can be recovered with: [bold]nlarchive recover <id>...[/bold]")


def recover_command(
    item_ids: List[str] = typer.Argument(..., help="Archive ids to recover (at most 20)"),
) -> None:
    """Re-fetch missing content from the MailerLite API."""
    try:
        validate_recovery_ids(item_ids)
    except ValueError as e:
        console.print(f"[red]{escape(str(e))}[/red]")
        raise typer.Exit(EXIT_INVALID_INPUT)

    config = load_config()
    api_config = config.get_api_config()
    if not api_config.api_key:
        console.print(f"[red]❌ No MailerLite API key configured (set {api_config.api_key_env}).[/red]")
        raise typer.Exit(EXIT_FAILURE)

    index = SearchIndex(config.content_root, config.config.search.excerpt_words)
    with get_connection(config.get_db_config()) as conn, MailerLiteClient(api_config) as client:
        recovery = ContentRecovery(
            conn,
            client,
            config.content_root,
            index=index,
            on_event=print_event,
            delay_seconds=api_config.page_delay_seconds,
        )
        result = recovery.recover(item_ids)

    if result.failed:
        raise typer.Exit(EXIT_FAILURE)


def _change_visibility(item_id: str, hidden: bool) -> None:
    require_item_id(item_id)
    config = load_config()
    index = SearchIndex(config.content_root, config.config.search.excerpt_words)

    with get_connection(config.get_db_config()) as conn:
        item = set_hidden(conn, item_id, hidden, index)

    if item is None:
        console.print(f"[red]Item {item_id} not found.[/red]")
        raise typer.Exit(EXIT_FAILURE)

    state = "hidden" if hidden else "visible"
    console.print(f"✅ [bold]{escape(item.subject)}[/bold] is now {state}")


def hide_command(item_id: str = typer.Argument(..., help="Archive id")) -> None:
    """Hide an item from listings and search."""
    _change_visibility(item_id, True)


def unhide_command(item_id: str = typer.Argument(..., help="Archive id")) -> None:
    """Make a hidden item visible again."""
    _change_visibility(item_id, False)


def delete_command(
    item_id: str = typer.Argument(..., help="Archive id"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
) -> None:
    """Delete an item from the archive (its content file is kept)."""
    require_item_id(item_id)
    config = load_config()

    if not yes:
        typer.confirm(f"Delete item {item_id}?", abort=True)

    with get_connection(config.get_db_config()) as conn:
        deleted = delete_item(conn, item_id)

    if not deleted:
        console.print(f"[red]Item {item_id} not found.[/red]")
        raise typer.Exit(EXIT_FAILURE)

    console.print(f"✅ Deleted item {item_id}")
