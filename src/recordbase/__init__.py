"""
recordbase

Generic create/read/update/delete access to PostgreSQL tables, driven by
the table's live column list.
"""

from recordbase.errors import (
    NotFoundError,
    QueryError,
    RecordError,
    SchemaError,
    ValidationError,
)
from recordbase.model import BaseModel
from recordbase.schema import TableSchema
from recordbase.statements import Predicate

__all__ = [
    "BaseModel",
    "NotFoundError",
    "Predicate",
    "QueryError",
    "RecordError",
    "SchemaError",
    "TableSchema",
    "ValidationError",
]
