"""CLI commands for managing encrypted integration credentials."""

from __future__ import annotations

import json
from typing import Annotated, Any

import typer
from rich.console import Console

from commerce_ingest.auth import TokenProvider
from commerce_ingest.client import ShopifyClient
from commerce_ingest.commands.context import credential_store, open_session
from commerce_ingest.config import get_config
from commerce_ingest.credentials import mask_secrets
from commerce_ingest.crypto import generate_key
from commerce_ingest.exceptions import IngestError
from commerce_ingest.models.credentials import INTEGRATIONS
from commerce_ingest.utils.errors import handle_error
from commerce_ingest.utils.output import OutputFormat, print_output

console = Console(stderr=True)
app = typer.Typer(name="credentials", help="Store, inspect and test API credentials.")

SHOP_QUERY = "{ shop { name } }"


def _parse_fields(fields: list[str]) -> dict[str, Any]:
    values: dict[str, Any] = {}
    for field in fields:
        key, sep, value = field.partition("=")
        if not sep or not key.strip():
            raise ValueError(f"Expected key=value, got '{field}'")
        values[key.strip()] = value
    return values


def _check_token(integration: str, credentials: Any) -> str:
    """Make one authenticated call and describe the result."""
    config = get_config()
    if integration == "shopify":
        client = ShopifyClient(credentials, config.endpoints.shopify.api_version)
        try:
            data = client.graphql(SHOP_QUERY)
        finally:
            client.close()
        return f"Connected to shop {data.get('shop', {}).get('name', '?')}"

    endpoint = config.endpoints.amazon_ads if integration == "amazon_ads" else config.endpoints.sp_api
    auth = TokenProvider(credentials, endpoint.token_url)
    try:
        auth.get_access_token()
        status = auth.get_status()
    finally:
        auth.close()
    return f"Token acquired, valid for {status.seconds_remaining}s"


@app.command("set")
def set_credentials(
    integration: Annotated[str, typer.Argument(help=f"One of: {', '.join(sorted(INTEGRATIONS))}")],
    field: Annotated[list[str] | None, typer.Option("--field", "-f", help="key=value (repeatable)")] = None,
    from_json: Annotated[str | None, typer.Option("--from-json", help="Read fields from a JSON file")] = None,
    org: Annotated[int, typer.Option("--org", help="Organization ID")] = 1,
) -> None:
    """Validate, encrypt and store credentials, replacing any existing set."""
    session = open_session()
    try:
        values: dict[str, Any] = {}
        if from_json:
            with open(from_json) as f:
                values.update(json.load(f))
        values.update(_parse_fields(field or []))

        credentials = credential_store(session).set(org, integration, values)
        console.print(f"[green]Stored {integration} credentials for org {org}[/green]")
        print_output(mask_secrets(credentials), OutputFormat.TABLE, title=f"{integration} (org {org})")
    except (IngestError, ValueError, FileNotFoundError) as e:
        handle_error(e)
        raise typer.Exit(1)
    finally:
        session.close()


@app.command("show")
def show_credentials(
    integration: Annotated[str | None, typer.Argument(help="Integration to show; omit to list configured ones")] = None,
    org: Annotated[int, typer.Option("--org", help="Organization ID")] = 1,
    output: Annotated[OutputFormat, typer.Option("--output", "-o")] = OutputFormat.TABLE,
) -> None:
    """Show stored credentials with secrets masked."""
    session = open_session()
    try:
        store = credential_store(session)
        if integration is None:
            configured = store.configured(org)
            rows = [{"integration": name, "configured": name in configured} for name in sorted(INTEGRATIONS)]
            print_output(rows, output, columns=["integration", "configured"], title=f"Credentials (org {org})")
            return

        print_output(mask_secrets(store.get(org, integration)), output, title=f"{integration} (org {org})")
    except (IngestError, ValueError) as e:
        handle_error(e)
        raise typer.Exit(1)
    finally:
        session.close()


@app.command("test")
def test_credentials(
    integration: Annotated[str, typer.Argument(help=f"One of: {', '.join(sorted(INTEGRATIONS))}")],
    org: Annotated[int, typer.Option("--org", help="Organization ID")] = 1,
) -> None:
    """Decrypt the stored credentials and make one authenticated call."""
    session = open_session()
    try:
        credentials = credential_store(session).get(org, integration)
        console.print(f"Testing {integration} credentials for org {org}...", style="yellow")
        console.print(f"[green]{_check_token(integration, credentials)}[/green]")
    except (IngestError, ValueError) as e:
        handle_error(e)
        raise typer.Exit(1)
    finally:
        session.close()


@app.command("keygen")
def keygen() -> None:
    """Print a new random CONFIG_ENCRYPTION_KEY."""
    typer.echo(generate_key())
