from typing import Any, Dict, List, Optional, Sequence, Tuple
import logging
import math
import re
import uuid

from gridbase.domain.fields import FieldKind, SchemaField
from gridbase.domain.imports.choices import split_multi_value
from gridbase.domain.imports.models import CandidateRow, ColumnMapping, ParsedTable, TypedValue
from gridbase.domain.imports.type_inference import clean_number
from gridbase.utils.date import format_iso_utc, parse_import_date

logger = logging.getLogger(__name__)

TRUE_VALUES = {'true', '1', 'yes'}
_FLOAT_RE = re.compile(r'^[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?$')


def _to_float(text: str) -> float:
    cleaned = clean_number(text)
    if not _FLOAT_RE.match(cleaned):
        return 0.0
    value = float(cleaned)
    if math.isinf(value) or math.isnan(value):
        return 0.0
    return value


def _to_uuid(text: str) -> Optional[str]:
    try:
        return str(uuid.UUID(text))
    except ValueError:
        logger.debug(f"Dropping link value '{text}': not a record id")
        return None


def coerce_value(raw: Any, schema_field: SchemaField) -> TypedValue:
    """
    Convert one raw CSV cell into the typed value stored in ``schema_field``.

    Empty values are null for every kind. Unparseable dates are null;
    unparseable numbers are 0.
    """
    kind = schema_field.kind
    if raw is None:
        return TypedValue(kind)
    text = str(raw).strip()
    if not text:
        return TypedValue(kind)

    if kind.is_numeric:
        return TypedValue(kind, _to_float(text))
    if kind is FieldKind.CHECKBOX:
        return TypedValue(kind, text.lower() in TRUE_VALUES)
    if kind is FieldKind.DATE:
        parsed = parse_import_date(text, log_context=schema_field.name, log_failures=True)
        return TypedValue(kind, format_iso_utc(parsed) if parsed else None)
    if kind is FieldKind.MULTI_CHOICE:
        parts = split_multi_value(text)
        return TypedValue(kind, parts or None)
    if kind is FieldKind.LINK_TO_TABLE:
        return TypedValue(kind, _to_uuid(text))
    return TypedValue(kind, text)


def _field_for(mapping: ColumnMapping) -> SchemaField:
    if mapping.field is not None:
        return mapping.field
    return SchemaField(name=mapping.name, kind=mapping.kind, options=dict(mapping.options))


def build_candidate_rows(table: ParsedTable, mappings: Sequence[ColumnMapping]) -> List[CandidateRow]:
    """
    Translate every source row into field names and typed values.

    Skipped columns are left out. When several columns feed the same field
    the first non-null value wins.
    """
    targets: List[Tuple[int, SchemaField]] = []
    for mapping in mappings:
        if mapping.is_skipped or not mapping.target_name:
            continue
        targets.append((table.column_names.index(mapping.column), _field_for(mapping)))

    candidates: List[CandidateRow] = []
    for row_index, row in enumerate(table.rows):
        values: Dict[str, TypedValue] = {}
        for column_index, schema_field in targets:
            typed = coerce_value(row[column_index], schema_field)
            current = values.get(schema_field.name)
            if current is None or (current.is_null and not typed.is_null):
                values[schema_field.name] = typed
        candidates.append(
            CandidateRow(source_index=row_index, values=values, source=table.row_dict(row_index))
        )

    logger.debug(f"Built {len(candidates)} candidate rows for {len(targets)} mapped columns")
    return candidates
