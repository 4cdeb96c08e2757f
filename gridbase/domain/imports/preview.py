"""
Import preview: what the engine would do with each column, without
touching the schema or the row store.
"""

from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from gridbase.domain.fields import FieldKind, SchemaField, sanitize_field_name
from gridbase.domain.imports.models import ParsedTable
from gridbase.domain.imports.schema_mapper import find_matching_field
from gridbase.domain.imports.type_inference import infer_column_kind

PREVIEW_SAMPLE_COUNT = 5


@dataclass(frozen=True)
class ColumnPreview:
    name: str
    sanitized_name: str
    inferred_kind: FieldKind
    samples: Tuple[str, ...]
    mapped_field: Optional[str] = None


def preview_columns(
    table: ParsedTable,
    existing_fields: Sequence[SchemaField] = (),
    threshold: Optional[float] = None,
) -> List[ColumnPreview]:
    previews = []
    for column in table.columns:
        samples = [v.strip() for v in column.raw_values if v and v.strip()][:PREVIEW_SAMPLE_COUNT]
        match = find_matching_field(column.name, existing_fields)
        previews.append(
            ColumnPreview(
                name=column.name,
                sanitized_name=sanitize_field_name(column.name),
                inferred_kind=infer_column_kind(column.raw_values, threshold=threshold),
                samples=tuple(samples),
                mapped_field=match.name if match else None,
            )
        )
    return previews
