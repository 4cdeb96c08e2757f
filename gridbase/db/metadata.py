"""
Table and field metadata management.

grid_tables maps a table id to the physical table holding its rows;
grid_table_fields lists every field of a table with its kind and options.
Adding a field writes its metadata row and the physical column in the same
transaction.
"""

from typing import Any, Dict, List, Mapping, Optional
import asyncio
import json
import logging
import uuid

from sqlalchemy import text
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import IntegrityError, OperationalError, ProgrammingError

from gridbase.domain.fields import FieldKind, SchemaField, sanitize_field_name
from gridbase.domain.imports.exceptions import FieldConflictError
from .models import SYSTEM_COLUMNS, create_physical_table, quote, sql_type_for
from .session import get_engine

logger = logging.getLogger(__name__)


def create_metadata_tables(engine: Optional[Engine] = None) -> None:
    """Create grid_tables and grid_table_fields if they don't exist."""
    engine = engine or get_engine()

    statements = (
        """
        CREATE TABLE IF NOT EXISTS grid_tables (
            id VARCHAR(36) PRIMARY KEY,
            name VARCHAR(255) NOT NULL,
            physical_table VARCHAR(63) NOT NULL UNIQUE,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
        """,
        """
        CREATE TABLE IF NOT EXISTS grid_table_fields (
            id VARCHAR(36) PRIMARY KEY,
            table_id VARCHAR(36) NOT NULL REFERENCES grid_tables(id) ON DELETE CASCADE,
            name VARCHAR(63) NOT NULL,
            label VARCHAR(255),
            kind VARCHAR(32) NOT NULL,
            options TEXT,
            position INTEGER NOT NULL DEFAULT 0,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            UNIQUE (table_id, name)
        )
        """,
    )

    try:
        with engine.begin() as conn:
            for statement in statements:
                conn.execute(text(statement))
        logger.info("grid_tables/grid_table_fields created/verified successfully")
    except Exception as e:
        logger.error(f"Error creating metadata tables: {str(e)}")
        raise


def _row_to_field(row) -> SchemaField:
    return SchemaField(
        id=row.id,
        name=row.name,
        label=row.label,
        kind=FieldKind(row.kind),
        options=json.loads(row.options) if row.options else {},
    )


def _fetch_fields(conn: Connection, table_id: str) -> List[SchemaField]:
    result = conn.execute(text("""
        SELECT id, name, label, kind, options
        FROM grid_table_fields
        WHERE table_id = :table_id
        ORDER BY position, name
    """), {"table_id": table_id})
    return [_row_to_field(row) for row in result]


class SqlSchemaService:
    """Schema service backed by the metadata tables."""

    def __init__(self, engine: Optional[Engine] = None):
        self._engine = engine

    @property
    def engine(self) -> Engine:
        if self._engine is None:
            self._engine = get_engine()
        return self._engine

    async def _run(self, func, *args):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, func, *args)

    # Tables

    def create_table(self, name: str) -> Dict[str, Any]:
        """Register a new empty table and create its physical table."""
        table_id = str(uuid.uuid4())
        physical_table = f"t_{table_id.replace('-', '')[:16]}"
        with self.engine.begin() as conn:
            conn.execute(
                text("INSERT INTO grid_tables (id, name, physical_table) VALUES (:id, :name, :physical)"),
                {"id": table_id, "name": name, "physical": physical_table},
            )
            create_physical_table(conn, physical_table)
        logger.info(f"Created table '{name}' ({table_id}) as '{physical_table}'")
        return {"id": table_id, "name": name, "physical_table": physical_table}

    def get_table(self, table_id: str) -> Optional[Dict[str, Any]]:
        with self.engine.connect() as conn:
            row = conn.execute(
                text("SELECT id, name, physical_table FROM grid_tables WHERE id = :table_id"),
                {"table_id": table_id},
            ).fetchone()
        if row is None:
            return None
        return {"id": row.id, "name": row.name, "physical_table": row.physical_table}

    async def table_exists(self, table_id: str) -> bool:
        return await self._run(lambda: self.get_table(table_id) is not None)

    # Fields

    def get_fields(self, table_id: str) -> List[SchemaField]:
        with self.engine.connect() as conn:
            return _fetch_fields(conn, table_id)

    async def list_fields(self, table_id: str) -> List[SchemaField]:
        return await self._run(self.get_fields, table_id)

    async def create_field(
        self,
        table_id: str,
        name: str,
        kind: FieldKind,
        options: Optional[Mapping[str, Any]] = None,
    ) -> SchemaField:
        return await self._run(self.add_field, table_id, name, FieldKind(kind), dict(options or {}))

    def add_field(
        self,
        table_id: str,
        name: str,
        kind: FieldKind,
        options: Optional[Dict[str, Any]] = None,
    ) -> SchemaField:
        """
        Add a field: metadata row plus physical column, in one transaction.

        Raises:
            FieldConflictError: if the table already has a field or column
                with the sanitized name.
            ValueError: if the table does not exist or the name is reserved.
        """
        field_name = sanitize_field_name(name)
        if str(name or "").strip().lower() in SYSTEM_COLUMNS or field_name in SYSTEM_COLUMNS:
            raise ValueError(f"Field name '{name}' is reserved")

        table = self.get_table(table_id)
        if table is None:
            raise ValueError(f"Table '{table_id}' not found")

        field_id = str(uuid.uuid4())
        try:
            with self.engine.begin() as conn:
                taken = conn.execute(
                    text("SELECT 1 FROM grid_table_fields WHERE table_id = :table_id AND name = :name"),
                    {"table_id": table_id, "name": field_name},
                ).fetchone()
                if taken:
                    raise FieldConflictError(table_id, field_name)

                position = conn.execute(
                    text("SELECT COUNT(*) FROM grid_table_fields WHERE table_id = :table_id"),
                    {"table_id": table_id},
                ).scalar() or 0
                conn.execute(text("""
                    INSERT INTO grid_table_fields (id, table_id, name, label, kind, options, position)
                    VALUES (:id, :table_id, :name, :label, :kind, :options, :position)
                """), {
                    "id": field_id,
                    "table_id": table_id,
                    "name": field_name,
                    "label": name,
                    "kind": kind.value,
                    "options": json.dumps(options or {}),
                    "position": position,
                })
                if not kind.is_virtual:
                    conn.execute(text(
                        f"ALTER TABLE {quote(table['physical_table'])} "
                        f"ADD COLUMN {quote(field_name)} {sql_type_for(kind)}"
                    ))
        except IntegrityError as exc:
            raise FieldConflictError(table_id, field_name) from exc
        except (OperationalError, ProgrammingError) as exc:
            if "duplicate column" in str(exc).lower() or "already exists" in str(exc).lower():
                raise FieldConflictError(table_id, field_name) from exc
            raise

        logger.info(f"Added field '{field_name}' ({kind.value}) to table '{table_id}'")
        return SchemaField(id=field_id, name=field_name, label=name, kind=kind, options=dict(options or {}))
