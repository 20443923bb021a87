"""Result rendering for ingestion commands.

Tables are for people and go to stderr. JSON and CSV go to stdout so a
command can be piped into ``jq`` or a spreadsheet without the Rich noise.
"""

from __future__ import annotations

import csv
import json
import sys
from datetime import date, datetime
from enum import Enum
from typing import Any, Callable

from rich.console import Console
from rich.table import Table

console = Console(stderr=True)

Rows = list[dict[str, Any]]


class OutputFormat(str, Enum):
    TABLE = "table"
    JSON = "json"
    CSV = "csv"


def _as_rows(data: Rows | dict[str, Any]) -> Rows:
    return [data] if isinstance(data, dict) else list(data)


def _pick_columns(rows: Rows, columns: list[str] | None) -> list[str]:
    return list(columns) if columns is not None else list(rows[0])


def _cell(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float):
        return f"{value:,.2f}"
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return str(value)


def print_json(data: Any) -> None:
    json.dump(data, sys.stdout, indent=2, default=str)
    sys.stdout.write("\n")


def print_csv(data: Rows | dict[str, Any], columns: list[str] | None = None) -> None:
    """Write rows as CSV. Missing and null values become empty fields."""
    rows = _as_rows(data)
    if not rows:
        return
    fields = _pick_columns(rows, columns)
    writer = csv.writer(sys.stdout, lineterminator="\n")
    writer.writerow(fields)
    writer.writerows([["" if r.get(f) is None else r.get(f) for f in fields] for r in rows])


def print_table(
    data: Rows | dict[str, Any],
    columns: list[str] | None = None,
    title: str | None = None,
) -> None:
    rows = _as_rows(data)
    if not rows:
        console.print("[dim]No results.[/dim]")
        return
    fields = _pick_columns(rows, columns)

    table = Table(*fields, title=title)
    for column in table.columns:
        column.overflow = "fold"
    for r in rows:
        table.add_row(*(_cell(r.get(f)) for f in fields))
    console.print(table)


_RENDERERS: dict[OutputFormat, Callable[..., None]] = {
    OutputFormat.CSV: lambda data, columns, title: print_csv(data, columns),
    OutputFormat.TABLE: print_table,
}


def print_output(
    data: Rows | dict[str, Any],
    fmt: OutputFormat = OutputFormat.TABLE,
    columns: list[str] | None = None,
    title: str | None = None,
) -> None:
    """Render a command result.

    JSON always carries every field; ``columns`` only narrows CSV and table
    views.
    """
    if fmt == OutputFormat.JSON:
        print_json(data)
        return
    _RENDERERS[fmt](data, columns, title)
