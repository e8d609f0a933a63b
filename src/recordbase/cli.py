#!/usr/bin/env python3
"""recordbase CLI for inspecting tables."""

import argparse
import sys

import psycopg
import questionary
from rich.console import Console
from rich.table import Table

from recordbase import db
from recordbase.errors import RecordError
from recordbase.logging import configure_logging
from recordbase.model import BaseModel

console = Console()


def render_rows(title: str, rows: list[dict]) -> None:
    """Print rows as a table; the header comes from the first row."""
    if not rows:
        console.print(f"[dim]No rows in {title}.[/]")
        return

    table = Table(title=title)
    for column in rows[0]:
        table.add_column(column)
    for row in rows:
        table.add_row(*("" if value is None else str(value) for value in row.values()))
    console.print(table)


def parse_where(pairs: list[str]) -> dict:
    """Turn ["name=Ann", "role=admin"] into {"name": "Ann", "role": "admin"}."""
    conditions = {}
    for pair in pairs:
        column, sep, value = pair.partition("=")
        if not sep or not column:
            raise ValueError(f"Expected COLUMN=VALUE, got {pair!r}")
        conditions[column.strip()] = value
    return conditions


def show_columns(model: BaseModel, args) -> None:
    table = Table(title=model.get_table())
    table.add_column("#", justify="right")
    table.add_column("column")
    for position, column in enumerate(model.columns(), start=1):
        marker = " [bold](pk)[/]" if column == model.get_primary_key() else ""
        table.add_row(str(position), column + marker)
    console.print(table)


def list_rows(model: BaseModel, args) -> None:
    if args.where:
        rows = model.get_where(parse_where(args.where))
    else:
        rows = model.get_all()
    render_rows(model.get_table(), rows)


def show_row(model: BaseModel, args) -> None:
    render_rows(model.get_table(), [model.get(args.pk_value)])


def delete_row(model: BaseModel, args) -> None:
    record = model.get(args.pk_value)
    render_rows(model.get_table(), [record])

    if not args.yes and not questionary.confirm("Delete this record?").ask():
        console.print("[dim]Cancelled.[/]")
        return

    if model.delete(args.pk_value):
        console.print(f"[green]Deleted {model.get_primary_key()}={args.pk_value}.[/]")
    else:
        console.print(f"[red]Nothing deleted for {model.get_primary_key()}={args.pk_value}.[/]")


COMMANDS = {
    "columns": show_columns,
    "list": list_rows,
    "show": show_row,
    "delete": delete_row,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="recordbase CLI")
    parser.add_argument("--database-url", help="Connection string (default: DATABASE_URL)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    columns = subparsers.add_parser("columns", help="List the columns of a table")
    listing = subparsers.add_parser("list", help="List rows, optionally filtered")
    listing.add_argument(
        "--where", action="append", default=[], metavar="COLUMN=VALUE",
        help="Equality filter; repeat to AND several",
    )
    show = subparsers.add_parser("show", help="Show one row")
    delete = subparsers.add_parser("delete", help="Delete one row")
    delete.add_argument("-y", "--yes", action="store_true", help="Skip confirmation")

    for sub in (columns, listing, show, delete):
        sub.add_argument("table")
        if sub in (show, delete):
            sub.add_argument("pk_value", metavar="PK")
        sub.add_argument("--pk", default="id", help="Primary key column (default: id)")

    return parser


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(level="DEBUG" if args.verbose else None)

    try:
        with db.connect(args.database_url) as conn:
            model = BaseModel.for_table(conn, args.table, args.pk)
            COMMANDS[args.command](model, args)
    except (RecordError, psycopg.Error, ValueError, RuntimeError) as exc:
        console.print(f"[red]{exc}[/]")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
