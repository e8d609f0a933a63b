# src/recordbase/conftest.py
"""
Pytest configuration and shared fixtures.

Tests are co-located with implementation files using the *_test.py suffix.
Unit tests use `fake_conn`, an in-memory stand-in for a psycopg connection
that records every statement. Integration tests use `pg_conn`, which needs
a reachable PostgreSQL at DATABASE_URL and is skipped otherwise.
"""

import os

# Set environment BEFORE importing any app modules
os.environ.setdefault("RECORDBASE_ENV", "test")

from contextlib import contextmanager
from types import SimpleNamespace

import psycopg
import pytest
from psycopg.pq import TransactionStatus

from recordbase import db
from recordbase.config import config

# =============================================================================
# Fake connection
# =============================================================================


class FakeCursor:
    def __init__(self, conn: "FakeConnection"):
        self.conn = conn
        self._rows = []

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        return False

    def execute(self, query, params=None):
        text = query if isinstance(query, str) else query.as_string()

        if "information_schema.columns" in text:
            self.conn.introspections += 1
            if self.conn.introspection_error is not None:
                raise self.conn.introspection_error
            _, table = params
            self._rows = [{"column_name": c} for c in self.conn.tables.get(table, ())]
            return self

        self.conn.statements.append((text, params))
        for fragment, error in self.conn.failures:
            if fragment in text:
                raise error
        self._rows = self.conn.responses.pop(0) if self.conn.responses else []
        return self

    def fetchone(self):
        return self._rows[0] if self._rows else None

    def fetchall(self):
        return list(self._rows)


class FakeConnection:
    """
    Records statements instead of running them.

    - tables: table name -> column names, answered for column lookups
    - respond(rows): queue the rows returned by the next statement
    - fail_on(fragment, error): raise `error` for statements containing `fragment`
    - statements: (sql text, params) for every non-lookup statement
    - events: BEGIN / COMMIT / ROLLBACK from transaction()
    """

    def __init__(self, tables=None, status=TransactionStatus.IDLE):
        self.tables = dict(tables or {})
        self.responses = []
        self.failures = []
        self.statements = []
        self.events = []
        self.introspections = 0
        self.introspection_error = None
        self.commit_error = None
        self.autocommit = False
        self.info = SimpleNamespace(transaction_status=status)

    def cursor(self, row_factory=None):
        return FakeCursor(self)

    def respond(self, *row_sets):
        self.responses.extend(row_sets)

    def fail_on(self, fragment, error):
        self.failures.append((fragment, error))

    @contextmanager
    def transaction(self):
        self.events.append("BEGIN")
        try:
            yield
        except Exception:
            self.events.append("ROLLBACK")
            raise
        if self.commit_error is not None:
            self.events.append("ROLLBACK")
            raise self.commit_error
        self.events.append("COMMIT")

    @property
    def sql(self):
        return [text for text, _ in self.statements]


@pytest.fixture
def fake_conn():
    """A fake connection knowing a `users (id, name, email)` table."""
    return FakeConnection(tables={"users": ("id", "name", "email")})


@pytest.fixture
def users(fake_conn):
    """A model for the fake users table."""
    from recordbase import BaseModel

    class User(BaseModel):
        table = "users"
        primary_key = "id"

    return User(fake_conn)


# =============================================================================
# Database Fixtures
# =============================================================================

SCHEMA_SQL = """
    DROP TABLE IF EXISTS rb_users;
    DROP TABLE IF EXISTS rb_accounts;
    CREATE TABLE rb_users (
        id SERIAL PRIMARY KEY,
        name TEXT NOT NULL,
        email TEXT NOT NULL DEFAULT '',
        role TEXT
    );
    CREATE TABLE rb_accounts (
        account_no SERIAL PRIMARY KEY,
        owner TEXT NOT NULL UNIQUE
    );
"""


@pytest.fixture(scope="session")
def test_db():
    """
    Create the scratch tables once per test session.

    Skips every dependent test when no database is reachable.
    """
    if not config.database_url:
        pytest.skip("DATABASE_URL is not set")

    try:
        conn = psycopg.connect(config.database_url, connect_timeout=3, autocommit=True)
    except psycopg.OperationalError as exc:
        pytest.skip(f"database not reachable: {exc}")

    with conn:
        conn.execute(SCHEMA_SQL)

    yield config.database_url

    with psycopg.connect(config.database_url, autocommit=True) as conn:
        conn.execute("DROP TABLE IF EXISTS rb_users; DROP TABLE IF EXISTS rb_accounts;")


@pytest.fixture
def pg_conn(test_db):
    """
    Provide a live connection with empty scratch tables.

    The connection is in autocommit mode, as BaseModel would leave it, so
    tables are truncated before each test instead of rolled back after.
    """
    conn = psycopg.connect(test_db, autocommit=True)
    conn.execute("TRUNCATE rb_users, rb_accounts RESTART IDENTITY")

    db.set_connection_override(conn)

    yield conn

    db.clear_connection_override()
    conn.close()
