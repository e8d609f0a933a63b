"""
Database connection and query utilities.

Provides the connection helpers used to obtain a psycopg connection, and
the executor functions every model statement runs through. Executors take
the connection explicitly, return rows as dictionaries, and translate
driver failures into QueryError.

For testing, use set_connection_override() to inject a connection
that will be used instead of creating new ones. This enables
transaction rollback between tests.
"""

from contextlib import contextmanager
from typing import Any, Mapping, Sequence, Union

import psycopg
from psycopg import sql
from psycopg.rows import dict_row

from recordbase.config import config
from recordbase.errors import QueryError
from recordbase.logging import get_logger

logger = get_logger(__name__)

Query = Union[str, sql.Composable]
Params = Union[Sequence[Any], Mapping[str, Any], None]

# =============================================================================
# Connection Override (for testing)
# =============================================================================

_connection_override: psycopg.Connection | None = None


def set_connection_override(conn: psycopg.Connection) -> None:
    """
    Set a connection to use instead of creating new ones.

    Used by test fixtures to ensure all database operations run
    within a single transaction that can be rolled back.

    Args:
        conn: The connection to use for all subsequent operations
    """
    global _connection_override
    _connection_override = conn


def clear_connection_override() -> None:
    """Clear the connection override, restoring normal behavior."""
    global _connection_override
    _connection_override = None


# =============================================================================
# Connection Management
# =============================================================================


def connect(url: str = None, **kwargs) -> psycopg.Connection:
    """
    Open a new connection.

    Args:
        url: Connection string; defaults to config.database_url
        **kwargs: Passed through to psycopg.connect()

    Raises:
        RuntimeError: If no connection string is available
    """
    url = url or config.database_url
    if not url:
        raise RuntimeError("No database URL given and DATABASE_URL is not set")
    return psycopg.connect(url, **kwargs)


@contextmanager
def get_connection():
    """
    Context manager for database connections.

    In normal operation:
        - Opens a new connection
        - Commits on successful exit
        - Rolls back on exception
        - Closes connection when done

    With override set (testing):
        - Returns the override connection
        - Does NOT commit, rollback, or close
        - Caller (test fixture) manages the transaction

    Usage:
        with get_connection() as conn:
            users = User(conn)
            users.get(1)
    """
    if _connection_override is not None:
        yield _connection_override
        return

    conn = connect()
    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


# =============================================================================
# Query Helpers
# =============================================================================


def _failure(exc: psycopg.Error, purpose: str, table: str) -> QueryError:
    # The full driver text can carry DETAIL lines quoting bound values,
    # so only the SQLSTATE and primary message are logged.
    logger.warning(
        "query_failed",
        purpose=purpose,
        table=table,
        sqlstate=exc.sqlstate,
        error=exc.diag.message_primary or type(exc).__name__,
    )
    message = str(exc).strip() or exc.__class__.__name__
    return QueryError(message, table=table, purpose=purpose)


def execute(
    conn: psycopg.Connection,
    query: Query,
    params: Params = None,
    purpose: str = "query",
    table: str = None,
) -> bool:
    """
    Execute a statement without returning results.

    Use for UPDATE, DELETE and ad-hoc writes.

    Args:
        conn: Connection to run the statement on
        query: SQL with %s or %(name)s placeholders
        params: Parameter values
        purpose: Short description used in error messages
        table: Table the statement concerns, for error context

    Returns:
        True once the driver has accepted the statement

    Raises:
        QueryError: If the driver reports any failure
    """
    try:
        with conn.cursor() as cur:
            cur.execute(query, params)
    except psycopg.Error as exc:
        raise _failure(exc, purpose, table) from exc
    return True


def fetch_one(
    conn: psycopg.Connection,
    query: Query,
    params: Params = None,
    purpose: str = "query",
    table: str = None,
) -> dict[str, Any] | None:
    """
    Execute a query and return a single row as dict.

    Returns:
        Dict of column names to values, or None if no row found

    Raises:
        QueryError: If the driver reports any failure
    """
    try:
        with conn.cursor(row_factory=dict_row) as cur:
            cur.execute(query, params)
            return cur.fetchone()
    except psycopg.Error as exc:
        raise _failure(exc, purpose, table) from exc


def fetch_all(
    conn: psycopg.Connection,
    query: Query,
    params: Params = None,
    purpose: str = "query",
    table: str = None,
) -> list[dict[str, Any]]:
    """
    Execute a query and return all rows as list of dicts.

    Returns:
        List of dicts, empty list if no rows found

    Raises:
        QueryError: If the driver reports any failure
    """
    try:
        with conn.cursor(row_factory=dict_row) as cur:
            cur.execute(query, params)
            return cur.fetchall()
    except psycopg.Error as exc:
        raise _failure(exc, purpose, table) from exc
