"""Init command implementation."""

from pathlib import Path

import typer
from rich.panel import Panel

from ..config import ConfigModel, save_config
from ..db import init_database, validate_connection
from .common import EXIT_FAILURE, console


def init_command(
    config_dir: Path = typer.Option(
        Path.home() / ".config" / "nlarchive",
        "--config-dir",
        "-c",
        help="Configuration directory",
    ),
    archive_root: Path = typer.Option(
        Path.home() / "Newsletter-Archive",
        "--archive-root",
        "-a",
        help="Directory for archived HTML bodies",
    ),
    db_host: str = typer.Option("localhost", "--db-host", help="Postgres host"),
    db_port: int = typer.Option(5432, "--db-port", help="Postgres port"),
    db_name: str = typer.Option("nlarchive", "--db-name", help="Database name"),
    db_user: str = typer.Option("nlarchive_user", "--db-user", help="Database user"),
) -> None:
    """Initialize Newsletter Archive configuration and database."""
    console.print(Panel.fit("📬 Newsletter Archive - Initialization", style="bold blue"))

    config_dir.mkdir(parents=True, exist_ok=True)
    config_path = config_dir / "config.yaml"

    config = ConfigModel(
        archive_root=str(archive_root),
        postgres={
            "host": db_host,
            "port": db_port,
            "database": db_name,
            "user": db_user,
            "password_env": "NLARCHIVE_DB_PASSWORD",
        },
    )

    save_config(config, config_path)
    console.print(f"✅ Created config: {config_path}")

    content_root = archive_root / "content"
    content_root.mkdir(parents=True, exist_ok=True)
    console.print(f"✅ Created archive: {archive_root}")

    console.print("\n[bold]Testing database connection...[/bold]")
    db_config = config.postgres.model_dump()

    if not validate_connection(db_config):
        console.print(
            "[red]❌ Database connection failed![/red]\n"
            "Please ensure Postgres is running and credentials are correct.\n"
            "Set the password via environment variable: "
            "[bold]export NLARCHIVE_DB_PASSWORD=your_password[/bold]"
        )
        raise typer.Exit(EXIT_FAILURE)

    console.print("✅ Database connection successful")

    console.print("\n[bold]Initializing database schema...[/bold]")
    try:
        init_database(db_config)
        console.print("✅ Database schema initialized")
    except Exception as e:
        console.print(f"[red]❌ Failed to initialize database: {e}[/red]")
        raise typer.Exit(EXIT_FAILURE)

    console.print(
        Panel(
            f"[green]✅ Newsletter Archive initialized successfully![/green]\n\n"
            f"Configuration: {config_path}\n"
            f"Archive: {archive_root}\n\n"
            f"Next steps:\n"
            f"1. Set database password: [bold]export NLARCHIVE_DB_PASSWORD=your_password[/bold]\n"
            f"2. Set API key: [bold]export MAILERLITE_API_KEY=your_key[/bold]\n"
            f"3. Run: [bold]nlarchive sync --full[/bold]",
            style="green",
        )
    )
