"""CLI commands for the product catalogue."""

from __future__ import annotations

from typing import Annotated, Any

import typer
from rich.console import Console
from sqlalchemy import Boolean, Float, Integer, Numeric
from sqlalchemy.orm import Session

from commerce_ingest.commands.context import open_session
from commerce_ingest.db.models import Product
from commerce_ingest.services.products import ProductService, product_economics, product_to_dict
from commerce_ingest.utils.csv_parsing import to_bool, to_int, to_num, to_text
from commerce_ingest.utils.errors import handle_error
from commerce_ingest.utils.output import OutputFormat, print_output

console = Console(stderr=True)
app = typer.Typer(name="products", help="List and edit products and their unit economics.")

LIST_COLUMNS = [
    "sku", "product_name", "active", "landed_cost", "amazon_rrp", "dtc_rrp",
    "amazonContribMargin", "dtcContribMargin",
]


def _build_service(org_id: int) -> tuple[Session, ProductService]:
    session = open_session()
    return session, ProductService(session, org_id)


def _coerce(name: str, raw: str) -> Any:
    """Convert a CLI string to the column's type. Unknown names pass through."""
    column = Product.__table__.columns.get(name)
    if column is None:
        return raw
    if isinstance(column.type, Boolean):
        return to_bool(raw)
    if isinstance(column.type, Integer):
        return to_int(raw)
    if isinstance(column.type, (Numeric, Float)):
        return to_num(raw)
    return to_text(raw)


def _parse_fields(fields: list[str]) -> dict[str, Any]:
    values = {}
    for field in fields:
        key, sep, value = field.partition("=")
        if not sep:
            raise ValueError(f"Expected key=value, got '{field}'")
        values[key.strip()] = _coerce(key.strip(), value)
    return values


@app.command("list")
def list_products(
    org: Annotated[int, typer.Option("--org", help="Organization ID")] = 1,
    active_only: Annotated[bool, typer.Option("--active-only", help="Hide inactive products")] = False,
    output: Annotated[OutputFormat, typer.Option("--output", "-o")] = OutputFormat.TABLE,
) -> None:
    """List products with their contribution margins."""
    session, service = _build_service(org)
    try:
        rows = [{**product_to_dict(p), **product_economics(p)} for p in service.list(active_only)]
        print_output(rows, output, columns=LIST_COLUMNS, title=f"Products (org {org})")
    finally:
        session.close()


@app.command("show")
def show_product(
    sku: Annotated[str, typer.Argument(help="Product SKU")],
    org: Annotated[int, typer.Option("--org", help="Organization ID")] = 1,
    output: Annotated[OutputFormat, typer.Option("--output", "-o")] = OutputFormat.TABLE,
) -> None:
    """Show one product and its per-channel economics."""
    session, service = _build_service(org)
    try:
        product = service.get(sku)
        if product is None:
            handle_error(ValueError(f"Product {sku} not found"))
            raise typer.Exit(1)
        print_output({**product_to_dict(product), **product_economics(product)}, output, title=sku)
    finally:
        session.close()


@app.command("set")
def set_product(
    sku: Annotated[str, typer.Argument(help="Product SKU")],
    field: Annotated[list[str], typer.Option("--field", "-f", help="column=value (repeatable)")] = ...,
    org: Annotated[int, typer.Option("--org", help="Organization ID")] = 1,
    output: Annotated[OutputFormat, typer.Option("--output", "-o")] = OutputFormat.TABLE,
) -> None:
    """Create a product or update the given columns."""
    session, service = _build_service(org)
    try:
        product = service.set(sku, _parse_fields(field))
        console.print(f"[green]Saved {sku}[/green]")
        print_output({**product_to_dict(product), **product_economics(product)}, output, title=sku)
    except ValueError as e:
        handle_error(e)
        raise typer.Exit(1)
    finally:
        session.close()


@app.command("delete")
def delete_product(
    sku: Annotated[str, typer.Argument(help="Product SKU")],
    org: Annotated[int, typer.Option("--org", help="Organization ID")] = 1,
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Skip confirmation")] = False,
) -> None:
    """Delete a product."""
    if not yes:
        typer.confirm(f"Delete product {sku}?", abort=True)

    session, service = _build_service(org)
    try:
        if not service.delete(sku):
            handle_error(ValueError(f"Product {sku} not found"))
            raise typer.Exit(1)
        console.print(f"[green]Deleted {sku}[/green]")
    finally:
        session.close()
