"""
Interfaces of the external collaborators the import pipeline talks to.

Every method is a coroutine: each call is a suspend point where an import
can be cancelled.
"""

from typing import Any, Dict, Iterable, List, Mapping, Optional, Protocol, Set

from gridbase.domain.fields import FieldKind, SchemaField
from gridbase.domain.imports.models import InsertResult


class SchemaService(Protocol):

    async def table_exists(self, table_id: str) -> bool:
        ...

    async def list_fields(self, table_id: str) -> List[SchemaField]:
        ...

    async def create_field(
        self,
        table_id: str,
        name: str,
        kind: FieldKind,
        options: Optional[Mapping[str, Any]] = None,
    ) -> SchemaField:
        """Create a field; raise FieldConflictError when the name is taken."""
        ...


class RowStore(Protocol):

    async def existing_keys(
        self,
        table_id: str,
        field_name: str,
        candidate_keys: Iterable[str],
    ) -> Set[str]:
        """Return the subset of normalized candidate keys already stored."""
        ...

    async def insert_batch(self, table_id: str, rows: List[Dict[str, Any]]) -> InsertResult:
        ...
