"""
Column introspection and input filtering.

The column list of a table is read from information_schema and is the
only source of identifiers allowed into generated write statements.
"""

from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Optional, Tuple

import psycopg

from recordbase import db
from recordbase.errors import QueryError, SchemaError
from recordbase.logging import get_logger

logger = get_logger(__name__)

COLUMNS_QUERY = """
    SELECT column_name
    FROM information_schema.columns
    WHERE table_schema = COALESCE(%s, current_schema())
      AND table_name = %s
    ORDER BY ordinal_position
"""


def split_table_name(table: str) -> Tuple[Optional[str], str]:
    """Split "schema.table" into its parts; the schema is None when absent."""
    if "." in table:
        schema_name, name = table.split(".", 1)
        return schema_name, name
    return None, table


def fetch_columns(conn: psycopg.Connection, table: str) -> tuple[str, ...]:
    """
    Return the column names of a table in schema order.

    Raises:
        SchemaError: If the table does not exist or the lookup fails
    """
    schema_name, name = split_table_name(table)
    try:
        rows = db.fetch_all(
            conn,
            COLUMNS_QUERY,
            (schema_name, name),
            purpose="describe table",
            table=table,
        )
    except QueryError as exc:
        raise SchemaError(f"could not read columns: {exc}", table=table) from exc

    if not rows:
        raise SchemaError("table does not exist or has no columns", table=table)

    return tuple(row["column_name"] for row in rows)


def filter_fields(
    fields: Mapping[str, Any],
    columns: Iterable[str],
    exclude: Optional[str] = None,
) -> dict[str, Any]:
    """
    Restrict a mapping to the keys that are real columns.

    Unknown keys are dropped silently. The caller's key order is kept,
    and `exclude` (normally the primary key) is removed.
    """
    known = set(columns)
    return {
        key: value
        for key, value in fields.items()
        if key in known and key != exclude
    }


@dataclass(frozen=True)
class TableSchema:
    """Column layout of one table, as discovered at load time."""

    table: str
    primary_key: str
    columns: tuple[str, ...]

    @classmethod
    def load(cls, conn: psycopg.Connection, table: str, primary_key: str) -> "TableSchema":
        columns = fetch_columns(conn, table)
        if primary_key not in columns:
            raise SchemaError(
                f"primary key {primary_key} is not a column", table=table, column=primary_key
            )
        logger.debug("schema_loaded", table=table, columns=len(columns))
        return cls(table=table, primary_key=primary_key, columns=columns)

    def has_column(self, column: str) -> bool:
        return column in self.columns

    @property
    def writable_columns(self) -> tuple[str, ...]:
        """All columns except the primary key, in schema order."""
        return tuple(c for c in self.columns if c != self.primary_key)

    def filter(self, fields: Mapping[str, Any]) -> dict[str, Any]:
        """Filter caller input down to writable columns."""
        return filter_fields(fields, self.columns, exclude=self.primary_key)
