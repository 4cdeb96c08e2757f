"""
In-memory schema service and row store for pipeline tests.

Both expose hooks to simulate what the SQL collaborators cannot easily
reproduce: another importer creating the same field, read-after-write lag,
and batch failures.
"""

from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Set
import uuid

from gridbase.domain.fields import FieldKind, SchemaField, sanitize_field_name
from gridbase.domain.imports.duplicates import normalize_key
from gridbase.domain.imports.exceptions import FieldConflictError
from gridbase.domain.imports.models import InsertResult


class InMemorySchemaService:

    def __init__(self):
        self.tables: Dict[str, List[SchemaField]] = {}
        self.hidden: Dict[str, int] = {}
        self.create_calls: List[str] = []
        self.list_calls = 0

        # Field names another importer creates just before our create call
        self.created_concurrently: Dict[str, SchemaField] = {}
        # Field names whose creation always conflicts without the field appearing
        self.phantom_conflicts: Set[str] = set()
        # Field names whose creation fails outright
        self.failing_fields: Set[str] = set()
        # Number of list_fields calls a newly created field stays invisible
        self.visibility_lag = 0
        self.on_create: Optional[Callable[[str], None]] = None

    def add_table(self, table_id: str, fields: Iterable[SchemaField] = ()) -> None:
        self.tables[table_id] = list(fields)

    def add_field(self, table_id: str, schema_field: SchemaField) -> None:
        self.tables[table_id].append(schema_field)

    async def table_exists(self, table_id: str) -> bool:
        return table_id in self.tables

    async def list_fields(self, table_id: str) -> List[SchemaField]:
        self.list_calls += 1
        visible = []
        for schema_field in self.tables.get(table_id, []):
            remaining = self.hidden.get(schema_field.name, 0)
            if remaining > 0:
                self.hidden[schema_field.name] = remaining - 1
                continue
            visible.append(schema_field)
        return visible

    async def create_field(
        self,
        table_id: str,
        name: str,
        kind: FieldKind,
        options: Optional[Mapping[str, Any]] = None,
    ) -> SchemaField:
        field_name = sanitize_field_name(name)
        self.create_calls.append(field_name)
        if self.on_create is not None:
            self.on_create(field_name)

        if field_name in self.failing_fields:
            raise RuntimeError(f"schema service unavailable while creating '{field_name}'")

        if field_name in self.created_concurrently:
            self.tables[table_id].append(self.created_concurrently.pop(field_name))
            raise FieldConflictError(table_id, field_name)

        if field_name in self.phantom_conflicts:
            raise FieldConflictError(table_id, field_name)

        if any(f.name == field_name for f in self.tables[table_id]):
            raise FieldConflictError(table_id, field_name)

        created = SchemaField(
            id=str(uuid.uuid4()),
            name=field_name,
            label=name,
            kind=FieldKind(kind),
            options=dict(options or {}),
        )
        self.tables[table_id].append(created)
        if self.visibility_lag:
            self.hidden[field_name] = self.visibility_lag
        return created


class InMemoryRowStore:

    def __init__(self):
        self.rows: Dict[str, List[Dict[str, Any]]] = {}
        self.batches: List[List[Dict[str, Any]]] = []
        self.key_lookups: List[Set[str]] = []

        # 1-based batch number -> (error message, error code)
        self.failures: Dict[int, tuple] = {}
        self.on_insert: Optional[Callable[[int], None]] = None

    def seed(self, table_id: str, rows: Iterable[Dict[str, Any]]) -> None:
        self.rows.setdefault(table_id, []).extend(dict(r) for r in rows)

    async def existing_keys(self, table_id: str, field_name: str, candidate_keys: Iterable[str]) -> Set[str]:
        keys = set(candidate_keys)
        self.key_lookups.append(keys)
        stored = {normalize_key(row.get(field_name)) for row in self.rows.get(table_id, [])}
        return keys & stored

    async def insert_batch(self, table_id: str, rows: List[Dict[str, Any]]) -> InsertResult:
        batch_number = len(self.batches) + 1
        self.batches.append(list(rows))
        if self.on_insert is not None:
            self.on_insert(batch_number)

        if batch_number in self.failures:
            message, code = self.failures[batch_number]
            return InsertResult(inserted_count=0, error=message, error_code=code)

        self.rows.setdefault(table_id, []).extend(dict(r) for r in rows)
        return InsertResult(inserted_count=len(rows))

    def stored(self, table_id: str) -> List[Dict[str, Any]]:
        return self.rows.get(table_id, [])
