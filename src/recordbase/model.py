"""
Base model for table-backed records.

A concrete model names its table and primary key; everything else (column
discovery, statement building, primary-key checks, the insert transaction)
comes from BaseModel:

    class User(BaseModel):
        table = "users"
        primary_key = "id"

    users = User(conn)
    user_id = users.insert({"name": "Ann", "email": "a@x.com"})
    users.update(user_id, {"name": "Ann B."})
    users.get(user_id)
"""

import re
from datetime import datetime
from typing import Any, Iterable, List, Mapping, Optional, Union

import psycopg
from psycopg.pq import TransactionStatus

from recordbase import db, statements
from recordbase.config import config
from recordbase.errors import NotFoundError, QueryError, SchemaError, ValidationError
from recordbase.logging import get_logger
from recordbase.schema import TableSchema
from recordbase.statements import Predicate

logger = get_logger(__name__)

_DIGITS = re.compile(r"[0-9]+")

Rows = List[dict]
PredicateInput = Union[Mapping[str, Any], Iterable[Union[Predicate, tuple]]]


class BaseModel:
    """
    Generic data access for one table.

    Subclasses set `table` (optionally "schema.table") and `primary_key`.
    Column names are read from the database; input keys that are not
    columns are dropped before any write statement is built.

    The column list is cached per instance after its first lookup, so a
    column added or dropped afterwards is not seen until refresh_schema()
    is called. Set `cache_schema = False` (or RECORDBASE_CACHE_SCHEMA=false)
    to read it on every call instead.
    """

    table: Optional[str] = None
    primary_key: str = "id"
    cache_schema: bool = config.cache_schema

    def __init__(self, database: psycopg.Connection):
        if not self.table:
            raise SchemaError(f"{type(self).__name__} has no table configured")

        self.database = database
        self._schema: Optional[TableSchema] = None

        # Single statements should be durable on their own. A connection the
        # caller already has inside a transaction stays under its control.
        if (
            not database.autocommit
            and database.info.transaction_status == TransactionStatus.IDLE
        ):
            database.autocommit = True

    def __repr__(self) -> str:
        return f"<{type(self).__name__} table={self.table!r} primary_key={self.primary_key!r}>"

    @classmethod
    def for_table(
        cls, database: psycopg.Connection, table: str, primary_key: str = "id"
    ) -> "BaseModel":
        """Build a model for a table without declaring a subclass."""
        model_class = type(
            "Model",
            (cls,),
            {"table": table, "primary_key": primary_key},
        )
        return model_class(database)

    def get_table(self) -> str:
        return self.table

    def get_primary_key(self) -> str:
        return self.primary_key

    # =========================================================================
    # Schema
    # =========================================================================

    def schema(self) -> TableSchema:
        """
        Column layout of the table.

        Loaded on first use and kept until refresh_schema(), unless
        cache_schema is off, in which case every call reads it again.
        """
        if self._schema is None or not self.cache_schema:
            self._schema = TableSchema.load(self.database, self.table, self.primary_key)
        return self._schema

    def refresh_schema(self) -> TableSchema:
        """Discard the cached columns and read them again."""
        self._schema = None
        return self.schema()

    def columns(self) -> tuple[str, ...]:
        """Column names in schema order."""
        return self.schema().columns

    # =========================================================================
    # Raw queries
    # =========================================================================

    def get_results(self, query: db.Query, params: db.Params = None) -> Rows:
        """Run a query and return every row."""
        return db.fetch_all(self.database, query, params, table=self.table)

    def get_row(self, query: db.Query, params: db.Params = None) -> Optional[dict]:
        """Run a query and return the first row, or None."""
        return db.fetch_one(self.database, query, params, table=self.table)

    def query(self, query: db.Query, params: db.Params = None) -> bool:
        """Run a statement that returns no rows."""
        return db.execute(self.database, query, params, table=self.table)

    # =========================================================================
    # Reads
    # =========================================================================

    def _requires_numeric_key(self) -> bool:
        return self.primary_key.lower() == "id"

    @staticmethod
    def _is_numeric(value: Any) -> bool:
        if isinstance(value, bool):
            return False
        return _DIGITS.fullmatch(str(value)) is not None

    def get(self, pk: Any) -> dict:
        """
        Get one record by primary key.

        Raises:
            ValidationError: If the key is `id` and the value is not all digits
            NotFoundError: If no row has that key
        """
        if self._requires_numeric_key() and not self._is_numeric(pk):
            raise ValidationError(
                f"{self.primary_key} must be a numerical value",
                table=self.table,
                column=self.primary_key,
            )

        record = self.get_by(self.primary_key, pk, all=False)
        if not record:
            raise NotFoundError(
                f"record not found for {self.primary_key}={pk}",
                table=self.table,
            )
        return record

    def get_by(self, column: str, value: Any, all: bool = True) -> Union[Rows, dict, None]:
        """
        Get records where `column` equals `value`.

        Returns every match, or only the first (None when there is none)
        when `all` is False.

        Raises:
            ValidationError: If the column does not exist
        """
        if (
            column == self.primary_key
            and self._requires_numeric_key()
            and not self._is_numeric(value)
        ):
            return self.get(value)

        if column not in self.columns():
            raise ValidationError(f"unknown column {column}", table=self.table, column=column)

        query = statements.build_select_by_column(self.table, column)
        return self._select(query, [value], all, purpose=f"select by {column}")

    def get_by_query(
        self, where: str, params: db.Params = None, all: bool = True
    ) -> Union[Rows, dict, None]:
        """
        Get records matching a raw WHERE clause.

        `where` is inserted into the statement as-is and must never contain
        untrusted text; values belong in `params`. Prefer get_where().
        """
        query = statements.build_select(self.table, where)
        return self._select(query, params, all, purpose="select by query")

    def get_where(self, predicates: PredicateInput, all: bool = True) -> Union[Rows, dict, None]:
        """
        Get records matching all of the given predicates.

        Accepts a mapping of column to value (equality), or an iterable of
        Predicate / (column, operator, value) tuples:

            users.get_where([("age", ">=", 18), Predicate("email", "IS NOT NULL")])

        Raises:
            ValidationError: On an unknown column or unsupported operator
        """
        if isinstance(predicates, Mapping):
            predicates = [Predicate(column, "=", value) for column, value in predicates.items()]
        else:
            predicates = [p if isinstance(p, Predicate) else Predicate(*p) for p in predicates]

        columns = self.columns()
        for predicate in predicates:
            if predicate.column not in columns:
                raise ValidationError(
                    f"unknown column {predicate.column}",
                    table=self.table,
                    column=predicate.column,
                )

        condition, params = statements.build_predicates(predicates, table=self.table)
        query = statements.build_select(self.table, condition)
        return self._select(query, params, all, purpose="select where")

    def get_all(self) -> Rows:
        """Get every record in the table."""
        query = statements.build_select(self.table)
        return self._select(query, None, True, purpose="select all")

    def _select(self, query, params, all: bool, purpose: str):
        if all:
            return db.fetch_all(self.database, query, params, purpose=purpose, table=self.table)
        return db.fetch_one(self.database, query, params, purpose=purpose, table=self.table)

    # =========================================================================
    # Writes
    # =========================================================================

    def create(self, fields: Mapping[str, Any]) -> Any:
        """Alias of insert()."""
        return self.insert(fields)

    def insert(self, fields: Mapping[str, Any]) -> Any:
        """
        Insert a record and return its generated primary key.

        Every non-key column is listed in the statement; columns missing
        from `fields` are bound as an empty string. The statement runs in
        its own transaction, which is rolled back if anything fails.

        Raises:
            ValidationError: If no key of `fields` is a writable column
            QueryError: If the insert or the commit fails
        """
        schema = self.schema()
        filtered = schema.filter(fields)
        if not filtered:
            raise ValidationError("no valid columns found for insert", table=self.table)

        columns = schema.writable_columns
        params = {column: filtered.get(column, "") for column in columns}
        query = statements.build_insert(self.table, columns, self.primary_key)

        try:
            with self.database.transaction():
                row = db.fetch_one(
                    self.database, query, params, purpose="insert", table=self.table
                )
        except QueryError:
            logger.warning("insert_rolled_back", table=self.table)
            raise
        except psycopg.Error as exc:
            logger.warning("insert_rolled_back", table=self.table, sqlstate=exc.sqlstate)
            raise QueryError(str(exc), table=self.table, purpose="insert") from exc

        generated = row[self.primary_key]
        logger.info(
            "record_inserted",
            table=self.table,
            pk=generated,
            columns=list(filtered),
        )
        return generated

    def insert_nested(self, fields: Mapping[str, Any]) -> Any:
        """
        Insert a record after inserting any nested mappings it contains.

        Each value of `fields` that is itself a mapping is inserted into
        this same table first, recursively, and its generated key is
        discarded. The remaining values are then inserted with insert().
        """
        flat = {}
        for key, value in fields.items():
            if isinstance(value, Mapping):
                self.insert_nested(value)
            else:
                flat[key] = value
        return self.insert(flat)

    def update(self, pk: Any, fields: Mapping[str, Any]) -> bool:
        """
        Update the given columns of one record.

        Only the supplied columns are set; unknown keys and the primary key
        are dropped.

        Raises:
            ValidationError: If no key of `fields` is a writable column
        """
        filtered = self.schema().filter(fields)
        if not filtered:
            raise ValidationError("no valid columns set for update", table=self.table)

        query = statements.build_update(self.table, list(filtered), self.primary_key)
        params = list(filtered.values()) + [pk]
        result = db.execute(self.database, query, params, purpose="update", table=self.table)

        logger.info("record_updated", table=self.table, columns=list(filtered))
        return result

    def delete(self, pk: Any) -> bool:
        """
        Delete a record by primary key.

        Returns False, without issuing a DELETE, when the record does not
        exist or the key is not a valid `id`.
        """
        try:
            self.get(pk)
        except (NotFoundError, ValidationError) as exc:
            logger.info("delete_skipped", table=self.table, reason=type(exc).__name__)
            return False

        if self._requires_numeric_key():
            pk = int(pk)

        query = statements.build_delete(self.table, self.primary_key)
        result = db.execute(self.database, query, [pk], purpose="delete", table=self.table)

        logger.info("record_deleted", table=self.table)
        return result

    # =========================================================================
    # Helpers
    # =========================================================================

    @staticmethod
    def get_timestamp() -> str:
        """Current local time as "YYYY-MM-DD HH:MM:SS"."""
        return datetime.now().strftime("%Y-%m-%d %H:%M:%S")
