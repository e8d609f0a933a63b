"""
SQL statement synthesis.

All identifiers go through psycopg.sql.Identifier and all values are
left as placeholders for the driver to bind. Callers are expected to pass
only column names they have checked against the table's columns.
"""

from typing import Any, Iterable, List, NamedTuple, Sequence, Tuple, Union

from psycopg import sql

from recordbase.errors import ValidationError
from recordbase.schema import split_table_name

OPERATORS = {
    "=": "=",
    "!=": "<>",
    "<>": "<>",
    "<": "<",
    "<=": "<=",
    ">": ">",
    ">=": ">=",
    "LIKE": "LIKE",
    "ILIKE": "ILIKE",
}
NULL_OPERATORS = {"IS NULL", "IS NOT NULL"}


class Predicate(NamedTuple):
    """A single `column <operator> value` condition."""

    column: str
    operator: str = "="
    value: Any = None

    @property
    def normalized_operator(self) -> str:
        return " ".join(self.operator.upper().split())


def table_identifier(table: str) -> sql.Identifier:
    schema_name, name = split_table_name(table)
    if schema_name:
        return sql.Identifier(schema_name, name)
    return sql.Identifier(name)


def build_select(table: str, where: Union[str, sql.Composable, None] = None) -> sql.Composed:
    """
    SELECT * from a table, optionally restricted by a WHERE clause.

    A string `where` is inserted verbatim; it is trusted SQL text.
    """
    query = sql.SQL("SELECT * FROM {}").format(table_identifier(table))
    if where is None:
        return query
    if isinstance(where, str):
        where = sql.SQL(where)
    return query + sql.SQL(" WHERE ") + where


def build_select_by_column(table: str, column: str) -> sql.Composed:
    return build_select(table, sql.SQL("{} = %s").format(sql.Identifier(column)))


def build_insert(table: str, columns: Sequence[str], primary_key: str) -> sql.Composed:
    """
    INSERT with one named placeholder per column, returning the primary key.

    Example: INSERT INTO "users" ("name", "email")
             VALUES (%(name)s, %(email)s) RETURNING "id"
    """
    return sql.SQL("INSERT INTO {table} ({columns}) VALUES ({values}) RETURNING {pk}").format(
        table=table_identifier(table),
        columns=sql.SQL(", ").join(sql.Identifier(c) for c in columns),
        values=sql.SQL(", ").join(sql.Placeholder(c) for c in columns),
        pk=sql.Identifier(primary_key),
    )


def build_update(table: str, columns: Sequence[str], primary_key: str) -> sql.Composed:
    """UPDATE setting each column positionally, keyed on the primary key."""
    assignments = sql.SQL(", ").join(
        sql.SQL("{} = %s").format(sql.Identifier(c)) for c in columns
    )
    return sql.SQL("UPDATE {table} SET {assignments} WHERE {pk} = %s").format(
        table=table_identifier(table),
        assignments=assignments,
        pk=sql.Identifier(primary_key),
    )


def build_delete(table: str, primary_key: str) -> sql.Composed:
    return sql.SQL("DELETE FROM {table} WHERE {pk} = %s").format(
        table=table_identifier(table),
        pk=sql.Identifier(primary_key),
    )


def build_predicates(predicates: Iterable[Predicate], table: str = None) -> Tuple[sql.Composed, List[Any]]:
    """
    AND together a list of predicates.

    Returns the composed condition and the parameter list to bind with it.

    Raises:
        ValidationError: On an unsupported operator or an empty list
    """
    parts = []
    params: List[Any] = []
    for predicate in predicates:
        column = sql.Identifier(predicate.column)
        operator = predicate.normalized_operator

        if operator in NULL_OPERATORS:
            parts.append(sql.SQL("{} " + operator).format(column))
        elif operator == "IN":
            if isinstance(predicate.value, (str, bytes)) or not isinstance(
                predicate.value, Iterable
            ):
                raise ValidationError(
                    "IN needs a list of values",
                    table=table,
                    column=predicate.column,
                )
            parts.append(sql.SQL("{} = ANY(%s)").format(column))
            params.append(list(predicate.value))
        elif operator in OPERATORS:
            parts.append(sql.SQL("{} " + OPERATORS[operator] + " %s").format(column))
            params.append(predicate.value)
        else:
            raise ValidationError(
                f"unsupported operator {predicate.operator!r}",
                table=table,
                column=predicate.column,
            )

    if not parts:
        raise ValidationError("at least one predicate is required", table=table)

    return sql.SQL(" AND ").join(parts), params
