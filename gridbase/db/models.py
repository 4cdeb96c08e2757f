"""
Physical tables that hold imported rows, and the SQL row store used by the
import pipeline.
"""

from typing import Any, Dict, Iterable, List, Optional, Set
import asyncio
import json
import logging

from sqlalchemy import text
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import DBAPIError, SQLAlchemyError

from gridbase.domain.fields import FieldKind
from gridbase.domain.imports.duplicates import normalize_key
from gridbase.domain.imports.models import InsertResult
from .session import get_engine

logger = logging.getLogger(__name__)

# System column names that are reserved and cannot be used by user data
SYSTEM_COLUMNS = {
    '_row_id',
    '_imported_at',
}

SQL_TYPES = {
    FieldKind.NUMBER: "DOUBLE PRECISION",
    FieldKind.PERCENT: "DOUBLE PRECISION",
    FieldKind.CURRENCY: "DOUBLE PRECISION",
    FieldKind.CHECKBOX: "BOOLEAN",
}


def sql_type_for(kind: FieldKind) -> str:
    """Column type for a field kind; dates are stored as ISO 8601 text."""
    return SQL_TYPES.get(kind, "TEXT")


def quote(identifier: str) -> str:
    """Return a double-quoted identifier for safe SQL usage."""
    return '"' + identifier.replace('"', '""') + '"'


def create_physical_table(conn: Connection, physical_table: str) -> None:
    """Create an empty data table holding only the system columns."""
    if conn.dialect.name == "sqlite":
        row_id = "_row_id INTEGER PRIMARY KEY AUTOINCREMENT"
    else:
        row_id = "_row_id SERIAL PRIMARY KEY"
    conn.execute(text(f"""
        CREATE TABLE {quote(physical_table)} (
            {row_id},
            _imported_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
    """))


def _physical_table(conn: Connection, table_id: str) -> Optional[str]:
    row = conn.execute(
        text("SELECT physical_table FROM grid_tables WHERE id = :table_id"),
        {"table_id": table_id},
    ).fetchone()
    return row[0] if row else None


def _serialize(value: Any) -> Any:
    if isinstance(value, (list, dict)):
        return json.dumps(value)
    return value


def _error_code(exc: SQLAlchemyError) -> Optional[str]:
    if isinstance(exc, DBAPIError) and exc.orig is not None:
        code = getattr(exc.orig, "pgcode", None) or getattr(exc.orig, "sqlite_errorname", None)
        return str(code) if code else None
    return None


class SqlRowStore:
    """Row store over the physical tables registered in grid_tables."""

    def __init__(self, engine: Optional[Engine] = None):
        self._engine = engine

    @property
    def engine(self) -> Engine:
        if self._engine is None:
            self._engine = get_engine()
        return self._engine

    async def existing_keys(self, table_id: str, field_name: str, candidate_keys: Iterable[str]) -> Set[str]:
        keys = set(candidate_keys)
        if not keys:
            return set()
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._existing_keys_sync, table_id, field_name, keys)

    def _existing_keys_sync(self, table_id: str, field_name: str, keys: Set[str]) -> Set[str]:
        with self.engine.connect() as conn:
            physical = _physical_table(conn, table_id)
            if physical is None:
                return set()
            kind_row = conn.execute(
                text("SELECT kind FROM grid_table_fields WHERE table_id = :table_id AND name = :name"),
                {"table_id": table_id, "name": field_name},
            ).fetchone()
            if kind_row is None or FieldKind(kind_row[0]).is_virtual:
                return set()
            is_checkbox = FieldKind(kind_row[0]) is FieldKind.CHECKBOX

            result = conn.execute(text(
                f"SELECT {quote(field_name)} FROM {quote(physical)} WHERE {quote(field_name)} IS NOT NULL"
            ))
            found = set()
            for (value,) in result:
                if is_checkbox:
                    value = bool(value)
                key = normalize_key(value)
                if key in keys:
                    found.add(key)

        logger.debug(f"{len(found)} of {len(keys)} candidate keys already stored in '{field_name}'")
        return found

    async def insert_batch(self, table_id: str, rows: List[Dict[str, Any]]) -> InsertResult:
        if not rows:
            return InsertResult(inserted_count=0)
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._insert_batch_sync, table_id, rows)

    def _insert_batch_sync(self, table_id: str, rows: List[Dict[str, Any]]) -> InsertResult:
        columns: List[str] = []
        for row in rows:
            for name in row:
                if name not in columns:
                    columns.append(name)

        params = {name: f"p{index}" for index, name in enumerate(columns)}
        column_sql = ", ".join(quote(name) for name in columns)
        values_sql = ", ".join(f":{params[name]}" for name in columns)
        records = [
            {params[name]: _serialize(row.get(name)) for name in columns}
            for row in rows
        ]

        try:
            with self.engine.begin() as conn:
                physical = _physical_table(conn, table_id)
                if physical is None:
                    return InsertResult(inserted_count=0, error=f"Table '{table_id}' not found")
                conn.execute(
                    text(f"INSERT INTO {quote(physical)} ({column_sql}) VALUES ({values_sql})"),
                    records,
                )
        except SQLAlchemyError as exc:
            detail = str(exc.orig) if isinstance(exc, DBAPIError) and exc.orig is not None else str(exc)
            logger.error(f"Error inserting {len(rows)} rows into table '{table_id}': {detail}")
            return InsertResult(inserted_count=0, error=detail, error_code=_error_code(exc))

        return InsertResult(inserted_count=len(rows))
