"""Main CLI application."""

import typer
from dotenv import load_dotenv

# Load .env file if it exists
load_dotenv()

from .common import setup_logging
from .init import init_command
from .maintenance import (
    delete_command,
    diagnose_command,
    hide_command,
    recover_command,
    reindex_command,
    unhide_command,
)
from .search import list_command, search_command
from .sync import import_command, status_command, sync_command

app = typer.Typer(
    name="nlarchive",
    help="Newsletter Archive - archive and search sent newsletters",
    no_args_is_help=True,
)


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging"),
) -> None:
    """Newsletter Archive."""
    setup_logging("DEBUG" if verbose else "INFO")


# Register commands
app.command("init")(init_command)
app.command("sync")(sync_command)
app.command("import")(import_command)
app.command("status")(status_command)
app.command("search")(search_command)
app.command("list")(list_command)
app.command("reindex")(reindex_command)
app.command("diagnose")(diagnose_command)
app.command("recover")(recover_command)
app.command("hide")(hide_command)
app.command("unhide")(unhide_command)
app.command("delete")(delete_command)


if __name__ == "__main__":
    app()
