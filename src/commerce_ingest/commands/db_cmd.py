"""CLI commands for database setup."""

from __future__ import annotations

from typing import Annotated

import typer
from rich.console import Console
from sqlalchemy.exc import SQLAlchemyError

from commerce_ingest.config import get_config
from commerce_ingest.db.session import init_db, make_engine
from commerce_ingest.utils.errors import handle_error

console = Console(stderr=True)
app = typer.Typer(name="db", help="Database setup.")


@app.command("init")
def init(
    org_name: Annotated[str, typer.Option("--org-name", help="Name for organization 1")] = "Default",
) -> None:
    """Create all tables and organization 1 if missing. Safe to re-run."""
    config = get_config()
    engine = make_engine(config.settings.database_url)
    try:
        init_db(engine, org_name)
        console.print(f"[green]Database ready at {engine.url.render_as_string(hide_password=True)}[/green]")
    except SQLAlchemyError as e:
        handle_error(e)
        raise typer.Exit(1)
    finally:
        engine.dispose()
