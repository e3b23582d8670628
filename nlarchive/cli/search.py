"""Search and list command implementations."""

from datetime import datetime
from typing import Optional

import typer
from pydantic import ValidationError
from rich.markup import escape
from rich.table import Table

from ..db import ItemStorage, get_connection
from ..models import ItemSource, SearchRequest, SearchSort
from ..search import QueryError, SearchIndex, compile_query
from .common import EXIT_INVALID_INPUT, console, load_config, render_excerpt


def search_command(
    query: str = typer.Argument(..., help="Search text; wrap it in double quotes for an exact phrase"),
    date_from: Optional[datetime] = typer.Option(
        None, "--from", formats=["%Y-%m-%d"], help="Only issues sent on or after this day"
    ),
    date_to: Optional[datetime] = typer.Option(
        None, "--to", formats=["%Y-%m-%d"], help="Only issues sent on or before this day"
    ),
    sort: SearchSort = typer.Option(SearchSort.RELEVANCE, "--sort", "-s", help="Result ordering"),
    page: int = typer.Option(1, "--page", "-p", help="Page number"),
    per_page: Optional[int] = typer.Option(None, "--per-page", help="Results per page (max 100)"),
) -> None:
    """Full-text search over archived issues."""
    config = load_config()
    try:
        compiled = compile_query(query)
        request = SearchRequest(
            date_from=date_from.date() if date_from else None,
            date_to=date_to.date() if date_to else None,
            sort=sort,
            page=page,
            per_page=per_page or config.config.search.per_page,
        )
    except (QueryError, ValidationError) as e:
        console.print(f"[red]Invalid search: {escape(str(e))}[/red]")
        raise typer.Exit(EXIT_INVALID_INPUT)

    if not compiled:
        console.print("[yellow]Nothing to search for.[/yellow]")
        return

    index = SearchIndex(config.content_root, config.config.search.excerpt_words)
    with get_connection(config.get_db_config()) as conn:
        response = index.query(conn, compiled, request)

    if response.page_out_of_range:
        console.print(
            f"[yellow]Page {response.page} is out of range: {response.total} results "
            f"for [bold]{escape(query)}[/bold] fit on {response.pages} page(s)[/yellow]"
        )
        raise typer.Exit(EXIT_INVALID_INPUT)

    if not response.results:
        console.print(f"No results for [bold]{escape(query)}[/bold]")
        return

    console.print(
        f"[bold]{response.total}[/bold] results for [bold]{escape(query)}[/bold] "
        f"(page {response.page} of {response.pages})\n"
    )
    for hit in response.results:
        subject = render_excerpt(hit.subject_highlight or hit.subject)
        console.print(f"[cyan]{hit.sent_at:%Y-%m-%d}[/cyan]  [bold]{subject}[/bold]  [dim]{hit.id}[/dim]")
        if hit.excerpt:
            console.print(f"    {render_excerpt(hit.excerpt)}")
        console.print()


def list_command(
    source: Optional[ItemSource] = typer.Option(None, "--source", help="Only items from this source"),
    order: str = typer.Option("desc", "--order", "-o", help="Send date order (asc or desc)"),
    page: int = typer.Option(1, "--page", "-p", help="Page number", min=1),
    per_page: int = typer.Option(50, "--per-page", help="Items per page", min=1, max=500),
) -> None:
    """List visible archived issues."""
    if order not in ("asc", "desc"):
        console.print("[red]--order must be 'asc' or 'desc'[/red]")
        raise typer.Exit(EXIT_INVALID_INPUT)

    config = load_config()
    store = ItemStorage()

    with get_connection(config.get_db_config()) as conn:
        total = store.count(conn)
        hidden = store.count(conn, include_hidden=True) - total
        items = store.list_visible(conn, source=source, limit=per_page, offset=(page - 1) * per_page, order=order)

    if not items:
        console.print("[yellow]No archived items.[/yellow]")
        return

    table = Table(title=f"Archived issues ({total} visible, {hidden} hidden)")
    table.add_column("ID", style="dim")
    table.add_column("Sent", style="cyan")
    table.add_column("Source", style="magenta")
    table.add_column("Name", style="bold")
    table.add_column("Content", style="green")

    for item in items:
        table.add_row(
            item.id,
            item.sent_at.strftime("%Y-%m-%d %H:%M"),
            item.source.value,
            escape(item.display_name or item.subject),
            "✓" if item.has_content else "✗",
        )

    console.print(table)
