"""Sync and import command implementations."""

from pathlib import Path
from typing import Optional

import typer
from rich.markup import escape
from rich.table import Table

from ..db import SyncRunManager, get_connection
from ..ingestion import BatchImporter, BatchImportError, MailerLiteClient, SyncEngine, SyncEvent, encode_sse
from ..search import SearchIndex
from .common import EXIT_FAILURE, EXIT_INVALID_INPUT, console, load_config, print_event


def emit_sse(event: SyncEvent) -> None:
    """Write an event to stdout as a Server-Sent Events frame."""
    typer.echo(encode_sse(event), nl=False)


def sync_command(
    full: bool = typer.Option(
        False,
        "--full/--new-only",
        help="Reconcile every campaign instead of only the newest ones",
    ),
    limit: Optional[int] = typer.Option(
        None,
        "--limit",
        "-l",
        help="Stop a full sync after this many imports and updates",
    ),
    time_budget: Optional[float] = typer.Option(
        None,
        "--time-budget",
        help="Seconds before a full sync stops cleanly (0 disables the budget)",
    ),
    sse: bool = typer.Option(
        False,
        "--sse",
        help="Stream progress as Server-Sent Events frames for a web front end",
    ),
) -> None:
    """Pull sent campaigns from the MailerLite API."""
    if limit is not None and limit < 1:
        console.print("[red]--limit must be a positive number[/red]")
        raise typer.Exit(EXIT_INVALID_INPUT)

    config = load_config()
    api_config = config.get_api_config()
    if time_budget is not None:
        api_config.time_budget_seconds = time_budget or None

    if not api_config.api_key:
        console.print(
            "[red]❌ No MailerLite API key configured.[/red]\n"
            f"Set it via environment variable: [bold]export {api_config.api_key_env}=your_key[/bold]"
        )
        raise typer.Exit(EXIT_FAILURE)

    content_root = config.content_root
    index = SearchIndex(content_root, config.config.search.excerpt_words)

    try:
        with get_connection(config.get_db_config()) as conn, MailerLiteClient(api_config) as client:
            engine = SyncEngine(
                conn,
                client,
                api_config,
                content_root,
                index=index,
                on_event=emit_sse if sse else print_event,
            )
            result = engine.sync_all(limit) if full else engine.sync_new_only()
    except KeyboardInterrupt:
        console.print("\n[yellow]Sync interrupted by user[/yellow]")
        raise typer.Exit(EXIT_FAILURE)

    if sse:
        if result.status == "failed":
            raise typer.Exit(EXIT_FAILURE)
        return

    if result.rate_limited:
        console.print(f"[yellow]Rate limited {result.rate_limited} time(s) during this run[/yellow]")
    if not result.completed:
        console.print("[yellow]Sync stopped early. Run it again to continue.[/yellow]")
    if result.status == "failed":
        raise typer.Exit(EXIT_FAILURE)


def import_command(
    zip_path: Path = typer.Argument(..., help="Batch export ZIP (campaigns.csv + campaigns_content/)"),
) -> None:
    """Import a one-time batch export."""
    config = load_config()
    content_root = config.content_root
    index = SearchIndex(content_root, config.config.search.excerpt_words)

    with get_connection(config.get_db_config()) as conn:
        importer = BatchImporter(conn, content_root, config.config.matching, index=index)
        try:
            with console.status("Importing..."):
                result = importer.import_bundle(zip_path)
        except BatchImportError as e:
            console.print(f"[red]Import failed: {escape(str(e))}[/red]")
            raise typer.Exit(EXIT_INVALID_INPUT)

    style = "red" if result.errors else "green"
    console.print(f"[{style}]{escape(result.message)}[/{style}]")

    for message in result.error_messages:
        console.print(f"  [red]{escape(message)}[/red]")

    if result.unmatched:
        table = Table(title="Unmatched rows (metadata only)")
        table.add_column("Sent", style="cyan")
        table.add_column("Subject", style="bold")
        table.add_column("Title", style="magenta")
        table.add_column("Unique Id", style="dim")
        for row in result.unmatched:
            table.add_row(
                row.sent_at.strftime("%Y-%m-%d %H:%M"),
                escape(row.subject),
                escape(row.title),
                escape(row.unique_id),
            )
        console.print(table)


def status_command(
    limit: int = typer.Option(10, "--limit", "-l", help="Number of runs to show", min=1),
) -> None:
    """Show recent sync runs."""
    config = load_config()
    runs = SyncRunManager()

    with get_connection(config.get_db_config()) as conn:
        last_sync = runs.last_synced_at(conn)
        recent = runs.get_recent_runs(conn, limit)

    console.print(f"Last successful sync: [bold]{last_sync:%Y-%m-%d %H:%M:%S}[/bold]" if last_sync else "Never synced")

    if not recent:
        return

    table = Table(title="Recent sync runs")
    table.add_column("ID", style="dim")
    table.add_column("Mode", style="cyan")
    table.add_column("Started", style="blue")
    table.add_column("Status", style="bold")
    table.add_column("Imported", style="green")
    table.add_column("Updated", style="green")
    table.add_column("Errors", style="red")

    for run in recent:
        stats = run.stats_json or {}
        table.add_row(
            str(run.id),
            run.mode,
            run.started_at.strftime("%Y-%m-%d %H:%M:%S"),
            run.status,
            str(stats.get("imported", 0)),
            str(stats.get("updated", 0)),
            str(len(stats.get("errors", []))),
        )
    console.print(table)
