"""
Errors raised by recordbase.

Every error carries the table it concerns (and the column where one is
involved) so a failure can be diagnosed without looking at generated SQL.
"""

from typing import Optional


class RecordError(Exception):
    """Base class for all recordbase errors."""

    def __init__(self, message: str, table: str = None, column: str = None):
        self.table = table
        self.column = column
        super().__init__(message)

    def __str__(self) -> str:
        message = super().__str__()
        if self.table and self.column:
            return f"{message} (table={self.table}, column={self.column})"
        if self.table:
            return f"{message} (table={self.table})"
        return message


class ValidationError(RecordError):
    """Caller input was rejected before any statement was issued."""


class SchemaError(RecordError):
    """The table's columns could not be discovered."""


class NotFoundError(RecordError):
    """A primary-key lookup matched no row."""


class QueryError(RecordError):
    """The database driver failed while executing a statement."""

    def __init__(
        self,
        message: str,
        table: str = None,
        column: str = None,
        purpose: Optional[str] = None,
    ):
        self.purpose = purpose
        super().__init__(message, table=table, column=column)

    def __str__(self) -> str:
        message = super().__str__()
        if self.purpose:
            return f"{self.purpose} failed: {message}"
        return message
