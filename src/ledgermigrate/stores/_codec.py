"""
Row encoding shared by the SQL target stores.

Target models are flattened to named query parameters on the way in and
validated back into models on the way out. SQLite has no native UUID,
NUMERIC or timestamp types, so values are rendered as text for it;
PostgreSQL drivers receive the Python objects.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, TypeVar
from uuid import UUID

from ledgermigrate.models import TargetRecord

RecordT = TypeVar("RecordT", bound=TargetRecord)


class LedgerJSONEncoder(json.JSONEncoder):
    """JSON encoder that handles UUID, datetime and Decimal values."""

    def default(self, obj: Any) -> Any:
        if isinstance(obj, UUID):
            return str(obj)
        if isinstance(obj, datetime):
            return obj.isoformat()
        if isinstance(obj, Decimal):
            return str(obj)
        return super().default(obj)


def json_dumps(obj: Any) -> str:
    return json.dumps(obj, cls=LedgerJSONEncoder)


def columns_of(model: type[TargetRecord]) -> list[str]:
    """Column names of a target table, in model field order."""
    return list(model.model_fields)


def insert_statement(
    table: str,
    columns: list[str],
    casts: Mapping[str, str] | None = None,
) -> str:
    """
    Build an INSERT statement with named parameters.

    Args:
        table: Target table name.
        columns: Column names; each one is bound as ``:column``.
        casts: Optional SQL type per column, rendered as ``CAST(:col AS type)``.

    Returns:
        The INSERT statement. Named parameters work for both sqlite3 and
        SQLAlchemy ``text()``.
    """
    casts = casts or {}
    placeholders = [
        f"CAST(:{column} AS {casts[column]})" if column in casts else f":{column}"
        for column in columns
    ]
    return f"INSERT INTO {table} ({', '.join(columns)}) VALUES ({', '.join(placeholders)})"


def encode_row(record: TargetRecord, *, as_text: bool) -> dict[str, Any]:
    """
    Flatten a target model into query parameters.

    Args:
        record: The row to write.
        as_text: Render UUIDs, decimals and timestamps as strings.

    Returns:
        Parameters keyed by column name.
    """
    return {
        key: _encode_value(value, as_text)
        for key, value in record.model_dump().items()
    }


def decode_row(model: type[RecordT], row: Mapping[str, Any]) -> RecordT:
    """Validate a fetched row back into a target model."""
    data = dict(row)
    metadata = data.get("metadata")
    if isinstance(metadata, str):
        data["metadata"] = json.loads(metadata)
    return model.model_validate(data)


def _encode_value(value: Any, as_text: bool) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return json_dumps(value)
    if as_text:
        if isinstance(value, UUID | Decimal):
            return str(value)
        if isinstance(value, datetime):
            return value.isoformat()
    return value
