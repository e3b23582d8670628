"""Helpers shared by CLI commands."""

import logging
import re
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape

from ..config import Config
from ..db import validate_connection
from ..ingestion.events import Severity, SyncEvent

console = Console()

SEVERITY_STYLES = {
    Severity.INFO: "dim",
    Severity.SUCCESS: "green",
    Severity.WARNING: "yellow",
    Severity.ERROR: "red",
}

ITEM_ID_RE = re.compile(r"^[0-9a-f]{16}$")

# Exit codes
EXIT_FAILURE = 1
EXIT_INVALID_INPUT = 2


def setup_logging(level: str = "INFO") -> None:
    """Route library logging through rich."""
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False, rich_tracebacks=True)],
        force=True,
    )


def load_config(config: Optional[Config] = None, check_db: bool = True) -> Config:
    """Load configuration and check the database, exiting on failure."""
    config = config or Config()
    try:
        level = config.config.log_level
    except FileNotFoundError:
        console.print("[red]Config file not found. Run 'nlarchive init' first.[/red]")
        raise typer.Exit(EXIT_FAILURE)
    except ValueError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(EXIT_FAILURE)

    # --verbose wins over the configured level
    root = logging.getLogger()
    if root.level != logging.DEBUG:
        root.setLevel(level)

    if check_db:
        console.print("[dim]Checking database connection...[/dim]")
        if not validate_connection(config.get_db_config()):
            console.print("[red]❌ Database connection failed![/red]")
            console.print("Please check your database configuration and ensure Postgres is running.")
            raise typer.Exit(EXIT_FAILURE)

    return config


def require_item_id(item_id: str) -> str:
    """Reject malformed archive ids."""
    if not ITEM_ID_RE.match(item_id):
        console.print(f"[red]Invalid item ID format: {escape(item_id)}[/red]")
        raise typer.Exit(EXIT_INVALID_INPUT)
    return item_id


def print_event(event: SyncEvent) -> None:
    """Render a progress event on the console."""
    style = SEVERITY_STYLES.get(event.severity, "")
    console.print(f"[{style}]{escape(event.message)}[/{style}]")


def render_excerpt(excerpt: str) -> str:
    """Turn <mark> highlights into rich markup."""
    return escape(excerpt).replace("<mark>", "[bold yellow]").replace("</mark>", "[/bold yellow]")
